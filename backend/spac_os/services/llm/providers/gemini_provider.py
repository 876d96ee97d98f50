from __future__ import annotations

from typing import Optional

from google import genai
from google.genai import types

from spac_os.config import get_settings
from spac_os.services.llm.types import LLMProviderError


class GeminiProvider:
    name = "gemini"

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.gemini_api_key:
            raise LLMProviderError("GEMINI_API_KEY not configured", retryable=False)
        self._client = genai.Client(api_key=settings.gemini_api_key)

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        timeout_seconds: int,
        max_tokens: int = 4000,
    ) -> str:
        # The SDK takes its timeout at client construction; per-call limits are not exposed.
        del timeout_seconds
        cfg = types.GenerateContentConfig(
            system_instruction=system or None,
            max_output_tokens=max_tokens,
        )
        try:
            response = self._client.models.generate_content(
                model=model,
                contents=prompt,
                config=cfg,
            )
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
        return str(response.text or "").strip()
