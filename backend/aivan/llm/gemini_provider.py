"""
Google Gemini LLM Provider.
Talks to the Generative Language REST API (``models/{model}:generateContent``).
"""

import httpx
import logging
import time
from typing import Optional, List, Dict, Any

from .base import LLMProvider, LLMMessage, LLMResponse, GroundingCitation, GeneratedImage

logger = logging.getLogger(__name__)


def _first_candidate(data: Dict[str, Any]) -> Dict[str, Any]:
    candidates = data.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _candidate_parts(candidate: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = candidate.get("content") or {}
    return [part for part in content.get("parts") or [] if isinstance(part, dict)]


def parse_citations(candidate: Dict[str, Any]) -> List[GroundingCitation]:
    """Read grounding chunks (web or maps sources) from a candidate."""
    metadata = candidate.get("groundingMetadata") or {}
    citations = []
    for chunk in metadata.get("groundingChunks") or []:
        if not isinstance(chunk, dict):
            continue
        source = chunk.get("web") or chunk.get("maps")
        if not isinstance(source, dict):
            continue
        citations.append(GroundingCitation(uri=source.get("uri"), title=source.get("title")))
    return citations


class GeminiProvider(LLMProvider):
    """
    Provider for Google Gemini models.
    The API key is sent in the ``x-goog-api-key`` header.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-3-pro-preview",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        image_model: str = "gemini-2.5-flash-image",
        default_temperature: float = 0.7,
        default_max_tokens: int = 8192,
        timeout: float = 120.0,
    ):
        super().__init__(api_key, model, base_url, default_temperature, default_max_tokens)
        self.image_model = image_model
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def _url(self, model: str) -> str:
        return f"{self.base_url}/models/{model}:generateContent"

    def _format_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        return [{"role": m.role, "parts": m.parts} for m in messages]

    async def _post(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self._url(model), json=payload, headers=self._get_headers())
            resp.raise_for_status()
            return resp.json()

    async def generate_content(
        self,
        messages: List[LLMMessage],
        system_instruction: Optional[str] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Send a generateContent request with history, tools and system prompt."""
        start_time = time.time()
        model_name = model or self.model
        payload: Dict[str, Any] = {
            "contents": self._format_messages(messages),
            "generationConfig": {
                "temperature": temperature if temperature is not None else self.default_temperature,
                "maxOutputTokens": max_tokens or self.default_max_tokens,
            },
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if tools:
            payload["tools"] = tools

        if logger.isEnabledFor(logging.DEBUG):
            tool_names = [name for tool in tools or [] for name in tool]
            logger.debug(
                f"LLM API call starting: provider=gemini, model={model_name}, "
                f"turns={len(messages)}, tools={tool_names}"
            )

        try:
            data = await self._post(model_name, payload)

            candidate = _first_candidate(data)
            content = "".join(
                part.get("text", "") for part in _candidate_parts(candidate)
                if not part.get("thought")
            )
            usage = data.get("usageMetadata") or {}
            citations = parse_citations(candidate)
            duration_ms = (time.time() - start_time) * 1000

            logger.info(
                "LLM API call completed",
                extra={"extra_fields": {
                    "provider": "gemini",
                    "model": model_name,
                    "prompt_tokens": usage.get("promptTokenCount", 0),
                    "completion_tokens": usage.get("candidatesTokenCount", 0),
                    "total_tokens": usage.get("totalTokenCount", 0),
                    "citations": len(citations),
                    "duration_ms": round(duration_ms, 2),
                }}
            )

            return LLMResponse(
                content=content,
                model=data.get("modelVersion", model_name),
                usage=usage,
                citations=citations,
                raw=data,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"LLM API call failed: {str(e)}",
                exc_info=True,
                extra={"extra_fields": {
                    "provider": "gemini",
                    "model": model_name,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(e),
                }}
            )
            raise

    async def generate_image(
        self,
        prompt: str,
        aspect_ratio: str = "1:1",
        model: Optional[str] = None,
    ) -> Optional[GeneratedImage]:
        """Ask an image model for a picture; returns the first inline image part."""
        start_time = time.time()
        model_name = model or self.image_model
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio},
            },
        }

        try:
            data = await self._post(model_name, payload)
        except Exception as e:
            logger.error(
                f"Image generation failed: {str(e)}",
                exc_info=True,
                extra={"extra_fields": {"provider": "gemini", "model": model_name, "error": str(e)}}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        for part in _candidate_parts(_first_candidate(data)):
            inline = part.get("inlineData")
            if isinstance(inline, dict) and inline.get("data"):
                logger.info(
                    "Image generation completed",
                    extra={"extra_fields": {
                        "provider": "gemini",
                        "model": model_name,
                        "duration_ms": round(duration_ms, 2),
                    }}
                )
                return GeneratedImage(
                    data=inline["data"],
                    mime_type=inline.get("mimeType") or "image/png",
                )

        logger.warning(f"Image model {model_name} returned no image")
        return None
