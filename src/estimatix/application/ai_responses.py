"""
Estimatix - Model answer decoding

JSON from the language model, validated against a pydantic schema.
"""
import json
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from estimatix.domain.exceptions import AIResponseParsingError

M = TypeVar("M", bound=BaseModel)


def load_json(response: str) -> Any:
    """
    Decode JSON, falling back to the outermost {...} when the model wraps it in prose.

    Raises:
        AIResponseParsingError: If no JSON object can be decoded
    """
    try:
        return json.loads(response)
    except json.JSONDecodeError:
        start_idx = response.find('{')
        end_idx = response.rfind('}') + 1
        if start_idx < 0 or end_idx <= start_idx:
            raise AIResponseParsingError("Invalid JSON response from model", response_text=response)
        try:
            return json.loads(response[start_idx:end_idx])
        except json.JSONDecodeError:
            raise AIResponseParsingError("Invalid JSON response from model", response_text=response)


def parse_model_json(response: str, schema: type[M]) -> M:
    """
    Decode and validate the model's JSON answer.

    Raises:
        AIResponseParsingError: Not JSON, or JSON not matching the schema
    """
    data = load_json(response)
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise AIResponseParsingError(
            f"Model response does not match schema: {e.error_count()} error(s)",
            response_text=response,
        )
