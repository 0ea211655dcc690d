"""PDF documents (reportlab)."""

from .pdf_renderer import PdfRenderer

__all__ = ["PdfRenderer"]
