"""
Unit tests for PdfPlanExtractor (pdfplumber mocked).
"""

from unittest.mock import MagicMock, Mock, patch

import pytest

from estimatix.domain.exceptions import ExtractionError
from estimatix.infrastructure.extractors.pdf_extractor import PdfPlanExtractor


def fake_pdf(texts):
    pages = []
    for text in texts:
        page = Mock()
        page.extract_text.return_value = text
        pages.append(page)
    pdf = MagicMock()
    pdf.__enter__.return_value = pdf
    pdf.pages = pages
    return pdf


@pytest.fixture
def extractor():
    return PdfPlanExtractor()


class TestCanHandle:
    def test_pdf_only(self, extractor):
        assert extractor.can_handle("Plans.PDF")
        assert not extractor.can_handle("floor.png")
        assert extractor.supported_extensions == (".pdf",)


class TestExtractPages:
    def test_page_text(self, extractor):
        pdf = fake_pdf(["FIRST FLOOR PLAN", None, "ROOM SCHEDULE"])
        with patch("estimatix.infrastructure.extractors.pdf_extractor.pdfplumber.open", return_value=pdf) as op:
            pages = extractor.extract_pages(b"%PDF", "plans.pdf", max_pages=10)

        assert [(p.number, p.text) for p in pages] == [(1, "FIRST FLOOR PLAN"), (2, ""), (3, "ROOM SCHEDULE")]
        assert {p.file_name for p in pages} == {"plans.pdf"}
        assert op.call_args.args[0].read() == b"%PDF"

    def test_page_limit(self, extractor):
        pdf = fake_pdf([f"page {i}" for i in range(5)])
        with patch("estimatix.infrastructure.extractors.pdf_extractor.pdfplumber.open", return_value=pdf):
            pages = extractor.extract_pages(b"%PDF", "plans.pdf", max_pages=2)

        assert [p.text for p in pages] == ["page 0", "page 1"]

    def test_unreadable_pdf(self, extractor):
        with patch("estimatix.infrastructure.extractors.pdf_extractor.pdfplumber.open",
                   side_effect=ValueError("EOF marker not found")):
            with pytest.raises(ExtractionError, match="Failed to extract PDF") as exc_info:
                extractor.extract_pages(b"junk", "broken.pdf", max_pages=10)

        assert exc_info.value.file_name == "broken.pdf"
