"""
LLM Service - Local language model access through Ollama.

Features:
- Async HTTP via httpx, one client per call
- Plain text and JSON generation
- Upstream failures mapped to UpstreamUnavailableError (429 -> throttled)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from sectionlens.config import LLMError, UpstreamUnavailableError, get_settings

logger = logging.getLogger(__name__)

__all__ = ["LLMService", "LLMResponse", "strip_code_fences"]


@dataclass
class LLMResponse:
    """Response from LLM generation."""

    text: str
    model: str
    tokens_used: int | None = None


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    text = text[3:]
    newline = text.find("\n")
    if newline >= 0 and text[:newline].strip().isalpha():
        text = text[newline + 1 :]
    if text.rstrip().endswith("```"):
        text = text.rstrip()[:-3]
    return text.strip()


class LLMService:
    """
    Ollama-backed text generation.

    Example:
        >>> llm = LLMService()
        >>> response = await llm.generate("Which section is 'hero-section-items'?")
        >>> data = await llm.generate_json("Return the section key as JSON")
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize LLM service.

        Args:
            base_url: Ollama server URL (defaults to settings)
            model: Model name (defaults to settings)
            temperature: Sampling temperature (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            transport: Optional httpx transport, used by tests
        """
        self.settings = get_settings()
        self.base_url = (base_url or self.settings.ollama_url).rstrip("/")
        self.model = model or self.settings.ollama_model
        self.temperature = self.settings.llm_temperature if temperature is None else temperature
        self.timeout = timeout or self.settings.llm_timeout_seconds
        self._transport = transport

    async def generate(
        self,
        prompt: str,
        system_instruction: str | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """
        Generate text response.

        Args:
            prompt: User prompt
            system_instruction: System prompt
            temperature: Override default temperature

        Returns:
            LLMResponse with generated text
        """
        body: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature if temperature is None else temperature,
            },
        }
        if system_instruction:
            body["system"] = system_instruction

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post("/api/generate", json=body)
        except httpx.ConnectError as e:
            raise UpstreamUnavailableError(
                "Ollama not running. Start with: ollama serve",
                {"hint": "Run 'ollama serve' in a terminal", "url": self.base_url},
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"Ollama request failed: {e}") from e

        if response.status_code == 429:
            raise UpstreamUnavailableError(
                "Ollama is throttling requests", {"status": 429}, throttled=True
            )
        if response.status_code != 200:
            logger.error("Ollama error: %s %s", response.status_code, response.text[:200])
            raise UpstreamUnavailableError(
                f"Ollama error: {response.status_code}", {"status": response.status_code}
            )

        data = response.json()
        return LLMResponse(
            text=data.get("response", ""),
            model=self.model,
            tokens_used=data.get("eval_count"),
        )

    async def generate_json(
        self,
        prompt: str,
        system_instruction: str | None = None,
    ) -> dict[str, Any]:
        """Generate a JSON object response."""
        json_instruction = (system_instruction or "") + "\n\nRespond with valid JSON only."
        response = await self.generate(prompt, json_instruction.strip())
        text = strip_code_fences(response.text)

        try:
            result = json.loads(text)
        except json.JSONDecodeError:
            # Try to extract JSON from response
            start = text.find("{")
            end = text.rfind("}") + 1
            if start < 0 or end <= start:
                raise LLMError("Model did not return JSON", {"text": text[:200]}) from None
            try:
                result = json.loads(text[start:end])
            except json.JSONDecodeError as e:
                raise LLMError("Model returned malformed JSON", {"text": text[:200]}) from e

        if not isinstance(result, dict):
            raise LLMError("Model returned JSON that is not an object", {"text": text[:200]})
        return result
