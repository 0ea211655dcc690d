"""
Unit tests for configuration models.
"""

import pytest
from pydantic import ValidationError

from estimatix.domain.models.config import (
    AppConfig,
    DatabaseConfig,
    OllamaConfig,
    PlansConfig,
    PricingConfig,
    QueueConfig,
    WhisperConfig,
)


class TestDatabaseConfig:
    def test_default_config(self):
        config = DatabaseConfig()
        assert config.port == 5432
        assert config.database == "estimatix"

    def test_invalid_port(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(port=0)

    def test_config_immutable(self):
        config = DatabaseConfig()
        with pytest.raises(Exception):  # Pydantic frozen
            config.port = 5433


class TestServiceConfigs:
    def test_ollama_defaults(self):
        config = OllamaConfig()
        assert config.enabled is True
        assert config.text_model == "qwen2.5:7b"

    def test_ollama_timeout_validation(self):
        """Timeout must be between 10 and 600"""
        with pytest.raises(ValidationError):
            OllamaConfig(timeout_seconds=5)

    def test_whisper_language_optional(self):
        assert WhisperConfig(language=None).language is None

    def test_queue_defaults(self):
        assert QueueConfig().job_timeout == "30m"


class TestPricingConfig:
    def test_defaults(self):
        config = PricingConfig()
        assert config.default_margin_percent == 30.0
        assert config.use_user_library is False
        assert config.use_task_library is False
        assert config.fuzzy_match_threshold == 0.6

    def test_threshold_range(self):
        with pytest.raises(ValidationError):
            PricingConfig(fuzzy_match_threshold=1.5)


class TestPlansConfig:
    def test_defaults(self):
        config = PlansConfig()
        assert config.max_pages == 200
        assert config.max_upload_mb == 50
        assert config.classification_sample_size == 20

    def test_page_limit_range(self):
        with pytest.raises(ValidationError):
            PlansConfig(max_pages=0)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PLANS_MAX_PAGES", "40")
        monkeypatch.setenv("PLANS_MAX_UPLOAD_MB", "10")
        config = AppConfig.from_env()
        assert (config.plans.max_pages, config.plans.max_upload_mb) == (40, 10)


class TestAppConfig:
    def test_for_testing_disables_services(self):
        config = AppConfig.for_testing("/tmp/storage")
        assert config.ollama.enabled is False
        assert config.whisper.enabled is False
        assert config.queue.enabled is False
        assert config.storage.root_dir == "/tmp/storage"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_HOST", "db.internal")
        monkeypatch.setenv("DATABASE_PORT", "6543")
        monkeypatch.setenv("OLLAMA_ENABLED", "false")
        monkeypatch.setenv("WHISPER_LANGUAGE", "")
        monkeypatch.setenv("PRICING_USE_TASK_LIBRARY", "yes")
        monkeypatch.setenv("PRICING_DEFAULT_MARGIN", "25")

        config = AppConfig.from_env()

        assert config.database.host == "db.internal"
        assert config.database.port == 6543
        assert config.ollama.enabled is False
        assert config.whisper.language is None
        assert config.pricing.use_task_library is True
        assert config.pricing.default_margin_percent == 25.0
