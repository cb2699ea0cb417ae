"""Completion backends, prompts and the math delimiter engine."""

from .client import AIClient, ClientSettings
from .ollama_client import OllamaClient, OllamaClientSettings

__all__ = ["AIClient", "ClientSettings", "OllamaClient", "OllamaClientSettings"]
