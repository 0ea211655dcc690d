"""Estimatix - Application Services."""

from .repository import Repository
from .services import Services, build_services

__all__ = [
    "Repository",
    "Services",
    "build_services",
]
