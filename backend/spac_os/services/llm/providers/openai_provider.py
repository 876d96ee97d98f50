from __future__ import annotations

from typing import Dict, List, Optional

from openai import OpenAI

from spac_os.config import get_settings
from spac_os.services.llm.types import LLMProviderError


class OpenAIProvider:
    name = "openai"

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.openai_api_key:
            raise LLMProviderError("OPENAI_API_KEY not configured", retryable=False)
        self._client = OpenAI(api_key=settings.openai_api_key)

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        timeout_seconds: int,
        max_tokens: int = 4000,
    ) -> str:
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                timeout=timeout_seconds,
            )
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
        content = response.choices[0].message.content if response.choices else ""
        return str(content or "").strip()
