"""
Estimatix - Domain Exceptions

Custom exception hierarchy for structured error handling.
"""
from typing import Any


class EstimatixError(Exception):
    """Base exception for all Estimatix errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ValidationError(EstimatixError):
    """Validation error (e.g., invalid input data)."""

    def __init__(self, message: str, field_name: str | None = None, **kwargs):
        super().__init__(message, {"field_name": field_name, **kwargs})


class PermissionDeniedError(EstimatixError):
    """Entity exists but belongs to another user."""

    def __init__(self, message: str = "Unauthorized", entity_type: str | None = None, **kwargs):
        super().__init__(message, {"entity_type": entity_type, **kwargs})


class BusinessRuleError(EstimatixError):
    """Operation rejected by a business rule (e.g., empty estimate)."""

    pass


class EstimateLockedError(BusinessRuleError):
    """Edit attempted on an estimate that is no longer a draft."""

    def __init__(self, status: str, **kwargs):
        super().__init__(
            f"Estimate is locked (status={status}). Only drafts can be edited.",
            {"status": status, **kwargs}
        )
        self.status = status


class InvalidTransitionError(BusinessRuleError):
    """Lifecycle transition not allowed from the current status."""

    def __init__(self, message: str, current: str | None = None, target: str | None = None, **kwargs):
        super().__init__(message, {"current": current, "target": target, **kwargs})


class DatabaseError(EstimatixError):
    """Database operation error."""

    def __init__(self, message: str, query: str | None = None, **kwargs):
        super().__init__(message, {"query": query, **kwargs})


class ConnectionError(DatabaseError):
    """Database connection error."""

    pass


class QueryError(DatabaseError):
    """Database query execution error."""

    pass


class StorageError(EstimatixError):
    """Entity or file storage error."""

    def __init__(self, message: str, entity_type: str | None = None, entity_id: str | None = None, **kwargs):
        super().__init__(message, {"entity_type": entity_type, "entity_id": entity_id, **kwargs})


class NotFoundError(StorageError):
    """Entity not found error."""

    pass


class ExternalServiceError(EstimatixError):
    """Base for failures of AI, speech and rendering services."""

    pass


class AIGenerationError(ExternalServiceError):
    """AI response generation error."""

    def __init__(self, message: str, model: str | None = None, prompt_length: int | None = None, **kwargs):
        super().__init__(message, {"model": model, "prompt_length": prompt_length, **kwargs})


class AIResponseParsingError(AIGenerationError):
    """AI response parsing error (e.g., invalid JSON)."""

    def __init__(self, message: str, response_text: str | None = None, **kwargs):
        super().__init__(message, response_text=response_text[:200] if response_text else None, **kwargs)


class TranscriptionError(ExternalServiceError):
    """Speech-to-text failure."""

    def __init__(self, message: str, service: str | None = None, **kwargs):
        super().__init__(message, {"service": service, **kwargs})


class ExtractionError(ExternalServiceError):
    """Text could not be read from an uploaded document."""

    def __init__(self, message: str, file_name: str | None = None, **kwargs):
        super().__init__(message, {"file_name": file_name, **kwargs})
        self.file_name = file_name


class DocumentRenderError(ExternalServiceError):
    """PDF rendering failure."""

    def __init__(self, message: str, document: str | None = None, **kwargs):
        super().__init__(message, {"document": document, **kwargs})


class ConfigurationError(EstimatixError):
    """Configuration error."""

    def __init__(self, message: str, config_key: str | None = None, **kwargs):
        super().__init__(message, {"config_key": config_key, **kwargs})
