"""
Unit tests for the transcript parsing schema.
"""

import pytest
from pydantic import ValidationError

from estimatix.domain.models.transcript import ParsedItem, ParsedTranscript, Upload, UploadKind, UploadStatus


class TestParsedItem:
    def test_defaults(self):
        item = ParsedItem(description="Replace toilet")
        assert item.category == "Other"
        assert item.quantity == 1
        assert item.priced_total() is None

    def test_priced_total(self):
        assert ParsedItem(description="Door", quantity=2, unit_cost=300).priced_total() == 600
        assert ParsedItem(description="Door", quantity=2, unit_cost=300, total=550).priced_total() == 550

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            ParsedItem(category="Roofing", description="Shingles")

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            ParsedItem(description="Window", quantity=0)

    def test_dimensions(self):
        item = ParsedItem.model_validate({
            "category": "Windows",
            "description": "Vinyl window",
            "dimensions": {"unit": "in", "width": 36, "height": 48},
        })
        assert item.dimensions.width == 36
        assert item.dimensions.depth is None


class TestParsedTranscript:
    def test_total(self):
        parsed = ParsedTranscript(items=[
            ParsedItem(description="Door", quantity=2, unit_cost=300),
            ParsedItem(description="Demo"),
        ])
        assert parsed.total == 600

    def test_empty(self):
        parsed = ParsedTranscript.model_validate({})
        assert parsed.items == []
        assert parsed.total == 0


class TestUpload:
    def test_from_row(self):
        upload = Upload.from_row({"id": "u", "project_id": "p", "kind": "audio", "storage_path": "p/u/a.webm",
                                  "filename": "a.webm", "status": None})
        assert upload.kind is UploadKind.AUDIO
        assert upload.status is UploadStatus.QUEUED
