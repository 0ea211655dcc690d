"""Document text extractors."""

from .pdf_extractor import PdfPlanExtractor

__all__ = ["PdfPlanExtractor"]
