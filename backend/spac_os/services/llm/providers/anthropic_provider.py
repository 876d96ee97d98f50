from __future__ import annotations

from typing import Any, Dict, Optional

from anthropic import Anthropic

from spac_os.config import get_settings
from spac_os.services.llm.types import LLMProviderError


class AnthropicProvider:
    name = "anthropic"

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.anthropic_api_key:
            raise LLMProviderError("ANTHROPIC_API_KEY not configured", retryable=False)
        self._client = Anthropic(api_key=settings.anthropic_api_key)

    def generate(
        self,
        *,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        timeout_seconds: int,
        max_tokens: int = 4000,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": timeout_seconds,
        }
        if system:
            kwargs["system"] = system
        try:
            response = self._client.messages.create(**kwargs)
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
        text_parts = []
        for block in getattr(response, "content", []) or []:
            value = getattr(block, "text", None)
            if value:
                text_parts.append(str(value))
        return "\n".join(text_parts).strip()
