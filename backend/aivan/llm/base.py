"""
LLM Provider Base - Abstract base for language-model providers.
Supports multimodal turns (text + inline files), tools and grounding.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

from ..models import Attachment


@dataclass
class LLMMessage:
    """
    One conversation turn in provider format.
    ``parts`` holds ``{"text": ...}`` and ``{"inlineData": {...}}`` blocks.
    """
    role: str  # "user" or "model"
    parts: List[Dict[str, Any]]

    @staticmethod
    def text(role: str, text: str) -> "LLMMessage":
        """Create a text-only turn."""
        return LLMMessage(role=role, parts=[{"text": text}])

    @staticmethod
    def multimodal(role: str, text: str,
                   attachments: Optional[List[Attachment]] = None) -> "LLMMessage":
        """
        Create a turn with text followed by inline attachments.

        Args:
            role: Turn role
            text: Text content
            attachments: Files sent inline as base64
        """
        parts: List[Dict[str, Any]] = [{"text": text}]
        for attachment in attachments or []:
            parts.append({
                "inlineData": {
                    "mimeType": attachment.mime_type,
                    "data": attachment.base64_data,
                }
            })
        return LLMMessage(role=role, parts=parts)

    @property
    def plain_text(self) -> str:
        return "".join(part.get("text", "") for part in self.parts)


@dataclass
class GroundingCitation:
    """A source returned by a grounded (search/maps) call. Both fields may be absent."""
    uri: Optional[str] = None
    title: Optional[str] = None


@dataclass
class LLMResponse:
    """Response from a content generation call."""
    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    citations: List[GroundingCitation] = field(default_factory=list)
    raw: Optional[Dict[str, Any]] = None


@dataclass
class GeneratedImage:
    """Inline image returned by an image generation call."""
    data: str  # base64
    mime_type: str = "image/png"

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class LLMProvider(ABC):
    """
    Abstract base class for LLM API providers.
    """

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 default_temperature: float = 0.7, default_max_tokens: int = 8192):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens

    @abstractmethod
    async def generate_content(
        self,
        messages: List[LLMMessage],
        system_instruction: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Generate the next model turn.

        Args:
            messages: Prior turns followed by the new user turn
            system_instruction: System prompt
            tools: Provider tool declarations, e.g. ``{"googleSearch": {}}``
            model: Model override
            temperature: Sampling temperature override
            max_tokens: Max output tokens override

        Returns:
            LLMResponse with text and any grounding citations
        """
        pass

    @abstractmethod
    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        model: Optional[str] = None,
    ) -> Optional[GeneratedImage]:
        """
        Generate an image from a text prompt.

        Returns:
            The first inline image, or None if the reply had none
        """
        pass
