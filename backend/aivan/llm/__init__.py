"""LLM module - provides a unified interface for LLM API providers."""

from .base import LLMProvider, LLMMessage, LLMResponse, GroundingCitation, GeneratedImage
from .gemini_provider import GeminiProvider
from .factory import create_llm_provider

__all__ = [
    'LLMProvider',
    'LLMMessage',
    'LLMResponse',
    'GroundingCitation',
    'GeneratedImage',
    'GeminiProvider',
    'create_llm_provider',
]
