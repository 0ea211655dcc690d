"""
Estimatix - Configuration Models (Pydantic v2)

Validated configuration classes for application settings.
"""
import os

from pydantic import BaseModel, Field, ConfigDict


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class DatabaseConfig(BaseModel):
    """PostgreSQL database configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="estimatix-postgres", description="Database host")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    database: str = Field(default="estimatix", description="Database name")
    user: str = Field(default="estimatix", description="Database user")
    password: str = Field(default="estimatix", description="Database password")
    pool_min_size: int = Field(default=2, ge=1, description="Min connection pool size")
    pool_max_size: int = Field(default=10, ge=1, le=100, description="Max connection pool size")


class OllamaConfig(BaseModel):
    """Ollama AI service configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Use the LLM for transcript parsing")
    url: str = Field(default="http://ollama:11434", description="Ollama server URL")
    text_model: str = Field(default="qwen2.5:7b", description="Model for JSON extraction")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Sampling temperature")
    cache_ttl_seconds: int = Field(default=300, ge=0, description="Model cache TTL")
    timeout_seconds: int = Field(default=120, ge=10, le=600, description="Request timeout")


class WhisperConfig(BaseModel):
    """Whisper ASR service configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Use Whisper for audio transcription")
    url: str = Field(default="http://whisper:9000", description="Whisper ASR URL")
    language: str | None = Field(default="en", description="Forced language (None = autodetect)")
    timeout_seconds: int = Field(default=300, ge=10, le=3600, description="Request timeout")


class StorageConfig(BaseModel):
    """Local file storage configuration."""

    model_config = ConfigDict(frozen=True)

    root_dir: str = Field(default="data/storage", description="Root directory for stored files")
    public_prefix: str = Field(default="/api/files", description="URL prefix files are served under")
    max_upload_mb: int = Field(default=200, ge=1, description="Max audio upload size (MB)")


class QueueConfig(BaseModel):
    """Redis/RQ background queue configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Enqueue jobs in Redis (False = run inline)")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    queue_name: str = Field(default="estimatix", description="RQ queue name")
    job_timeout: str = Field(default="30m", description="RQ job timeout")


class PricingConfig(BaseModel):
    """Pricing waterfall configuration."""

    model_config = ConfigDict(frozen=True)

    default_margin_percent: float = Field(default=30.0, ge=0, le=500, description="Fallback margin")
    use_user_library: bool = Field(default=False, description="Look up the user's cost library")
    use_task_library: bool = Field(default=False, description="Look up the shared task library")
    fuzzy_match_threshold: float = Field(default=0.6, ge=0.0, le=1.0, description="Min fuzzy score")
    default_region: str = Field(default="national", description="Region when the profile has none")


class PlansConfig(BaseModel):
    """Blueprint parsing configuration."""

    model_config = ConfigDict(frozen=True)

    max_pages: int = Field(default=200, ge=1, le=2000, description="Pages read per PDF")
    max_upload_mb: int = Field(default=50, ge=1, description="Max plan file size (MB)")
    classification_sample_size: int = Field(default=20, ge=1, le=100, description="Pages sent for classification")
    max_sheet_chars: int = Field(default=20000, ge=1000, description="Page text sent per room extraction")


class AppConfig(BaseModel):
    """
    Complete application configuration.

    Loaded from environment variables via from_env().
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    whisper: WhisperConfig = Field(default_factory=WhisperConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    plans: PlansConfig = Field(default_factory=PlansConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - DATABASE_HOST, DATABASE_PORT, DATABASE_NAME, DATABASE_USER, DATABASE_PASSWORD
        - OLLAMA_URL, OLLAMA_MODEL, OLLAMA_ENABLED
        - WHISPER_URL, WHISPER_LANGUAGE, WHISPER_ENABLED
        - STORAGE_DIR, REDIS_URL, QUEUE_ENABLED
        - PRICING_DEFAULT_MARGIN, PRICING_USE_USER_LIBRARY, PRICING_USE_TASK_LIBRARY
        - PLANS_MAX_PAGES, PLANS_MAX_UPLOAD_MB

        Returns:
            AppConfig instance
        """
        return cls(
            database=DatabaseConfig(
                host=os.getenv("DATABASE_HOST", "estimatix-postgres"),
                port=int(os.getenv("DATABASE_PORT", "5432")),
                database=os.getenv("DATABASE_NAME", "estimatix"),
                user=os.getenv("DATABASE_USER", "estimatix"),
                password=os.getenv("DATABASE_PASSWORD", "estimatix"),
            ),
            ollama=OllamaConfig(
                enabled=_env_bool("OLLAMA_ENABLED", True),
                url=os.getenv("OLLAMA_URL", "http://ollama:11434"),
                text_model=os.getenv("OLLAMA_MODEL", "qwen2.5:7b"),
            ),
            whisper=WhisperConfig(
                enabled=_env_bool("WHISPER_ENABLED", True),
                url=os.getenv("WHISPER_URL", "http://whisper:9000"),
                language=os.getenv("WHISPER_LANGUAGE", "en") or None,
            ),
            storage=StorageConfig(
                root_dir=os.getenv("STORAGE_DIR", "data/storage"),
            ),
            queue=QueueConfig(
                enabled=_env_bool("QUEUE_ENABLED", True),
                redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            ),
            pricing=PricingConfig(
                default_margin_percent=float(os.getenv("PRICING_DEFAULT_MARGIN", "30")),
                use_user_library=_env_bool("PRICING_USE_USER_LIBRARY", False),
                use_task_library=_env_bool("PRICING_USE_TASK_LIBRARY", False),
            ),
            plans=PlansConfig(
                max_pages=int(os.getenv("PLANS_MAX_PAGES", "200")),
                max_upload_mb=int(os.getenv("PLANS_MAX_UPLOAD_MB", "50")),
            ),
        )

    @classmethod
    def for_testing(cls, storage_dir: str = "data/test-storage") -> "AppConfig":
        """
        Create minimal configuration for testing.

        Returns:
            AppConfig with every external service disabled
        """
        return cls(
            database=DatabaseConfig(
                host="localhost",
                database="estimatix_test",
                user="test_user",
                password="test_pass"
            ),
            ollama=OllamaConfig(
                enabled=False,
                url="http://localhost:11434",
                cache_ttl_seconds=0  # Disable cache for tests
            ),
            whisper=WhisperConfig(enabled=False, url="http://localhost:9000"),
            storage=StorageConfig(root_dir=storage_dir),
            queue=QueueConfig(enabled=False),
        )
