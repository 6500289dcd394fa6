"""LLM integration for address translation."""

from .translator import OllamaTranslator

__all__ = [
    "OllamaTranslator",
]
