"""Estimatix - header data shared by generated documents."""
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class DocumentHeader:
    """Project/contractor block printed at the top of every document."""

    project_name: str
    owner_name: str | None = None
    project_address: str | None = None
    document_date: date | None = None
    estimator_name: str | None = None
    company_name: str | None = None
