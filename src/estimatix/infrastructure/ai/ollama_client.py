"""
Estimatix - Ollama AI Client

Implementation of the AIClient protocol for a local Ollama server.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable

import requests

from estimatix.domain.models.config import OllamaConfig
from estimatix.domain.exceptions import AIGenerationError

logger = logging.getLogger(__name__)


class ModelCache:
    """
    Time-based cache for Ollama models list.

    Reduces HTTP requests by caching model list with TTL.
    """

    def __init__(self, ttl_seconds: int = 300):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[str, tuple[datetime, list[str]]] = {}

    def get(self, key: str, fetcher: Callable[[], list[str]], force_refresh: bool = False) -> list[str]:
        """
        Get cached data or fetch if expired.

        Args:
            key: Cache key
            fetcher: Function to fetch data if cache miss
            force_refresh: Force refresh even if cached

        Returns:
            Cached or freshly fetched data
        """
        now = datetime.now()

        if not force_refresh and key in self._cache:
            timestamp, data = self._cache[key]
            if now - timestamp < self.ttl:
                logger.debug(f"Cache HIT for '{key}' (age: {(now - timestamp).seconds}s)")
                return data

        logger.debug(f"Cache MISS for '{key}' - fetching...")
        data = fetcher()
        self._cache[key] = (now, data)
        return data

    def clear(self):
        self._cache.clear()
        logger.debug("ModelCache cleared")


class OllamaClient:
    """
    Ollama AI client implementation.

    Implements AIClient protocol (text generation with optional JSON mode).
    """

    def __init__(self, config: OllamaConfig):
        """
        Initialize OllamaClient.

        The server is not contacted here; availability is checked lazily
        through the cached model list.

        Args:
            config: Ollama configuration
        """
        self.config = config
        self.base_url = config.url.rstrip('/')
        self.cache = ModelCache(ttl_seconds=config.cache_ttl_seconds)
        logger.info(f"OllamaClient initialized (url={self.base_url}, model={config.text_model})")

    def generate_text(
        self,
        prompt: str,
        model: str | None = None,
        json_mode: bool = False,
        timeout: int | None = None,
        system: str | None = None
    ) -> str:
        """
        Generate text response from AI model.

        Args:
            prompt: Input prompt
            model: Model name (None = use default from config)
            json_mode: Enable JSON output format
            timeout: Request timeout in seconds (None = config default)
            system: Optional system message

        Returns:
            Generated text response

        Raises:
            AIGenerationError: If generation fails
        """
        model = model or self.config.text_model
        timeout = timeout or self.config.timeout_seconds

        if model != self.config.text_model and not self.is_model_available(model):
            logger.warning(f"Model '{model}' not available, falling back to default")
            model = self.config.text_model

        logger.info(f"🤖 Generating text with {model} (json={json_mode}, len={len(prompt)})")

        try:
            payload: dict[str, Any] = {
                "model": model,
                "prompt": prompt,
                "stream": False,
                "options": {
                    "temperature": self.config.temperature,
                    "num_ctx": 8192
                }
            }

            if json_mode:
                payload["format"] = "json"
            if system:
                payload["system"] = system

            response = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=timeout
            )
            response.raise_for_status()

            data = response.json()
            text = data.get("response", "")

            if not text:
                raise AIGenerationError(
                    "Empty response from Ollama",
                    model=model,
                    prompt_length=len(prompt)
                )

            logger.info(f"✅ Generated {len(text)} chars")
            return text

        except AIGenerationError:
            raise
        except requests.exceptions.Timeout:
            raise AIGenerationError(
                f"Ollama request timed out after {timeout}s",
                model=model,
                prompt_length=len(prompt)
            )
        except requests.exceptions.RequestException as e:
            raise AIGenerationError(
                f"Ollama request failed: {e}",
                model=model,
                prompt_length=len(prompt)
            )
        except Exception as e:
            logger.error(f"Unexpected error in generate_text: {e}", exc_info=True)
            raise AIGenerationError(
                f"Text generation failed: {e}",
                model=model,
                prompt_length=len(prompt)
            )

    def list_available_models(self) -> list[str]:
        """
        List available AI models.

        Raises:
            AIGenerationError: If listing fails
        """
        def _fetch_models() -> list[str]:
            try:
                response = requests.get(f"{self.base_url}/api/tags", timeout=10)
                response.raise_for_status()
                data = response.json()
                models = [m["name"] for m in data.get("models", [])]
                logger.debug(f"Found {len(models)} Ollama models")
                return models

            except Exception as e:
                logger.error(f"Failed to list models: {e}", exc_info=True)
                raise AIGenerationError(f"Failed to list Ollama models: {e}")

        return self.cache.get("models_list", _fetch_models)

    def is_model_available(self, model_name: str) -> bool:
        try:
            return model_name in self.list_available_models()
        except AIGenerationError:
            return False
