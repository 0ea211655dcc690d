"""Ollama LLM client."""

from .ollama_client import OllamaClient, ModelCache

__all__ = ["OllamaClient", "ModelCache"]
