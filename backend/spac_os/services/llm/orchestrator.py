from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from spac_os.config import Settings, get_settings
from spac_os.log import get_logger
from spac_os.services.llm.providers.anthropic_provider import AnthropicProvider
from spac_os.services.llm.providers.gemini_provider import GeminiProvider
from spac_os.services.llm.providers.openai_provider import OpenAIProvider
from spac_os.services.llm.types import (
    LLMOrchestrationError,
    LLMProviderError,
    LLMRequest,
    LLMResponse,
    ModelAttemptTrace,
    classify_retryable_error,
)

logger = get_logger(__name__)

DEFAULT_ROUTE = ("anthropic", "claude-3-7-sonnet-latest")

PROVIDER_FACTORIES: Dict[str, Callable[[], Any]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


class LLMOrchestrator:
    """Runs a stage prompt across the configured provider routes in order.

    Each route is retried with linear backoff while its errors look transient,
    then the next route is tried. Every call is recorded as an attempt trace
    and handed back on the response or on the final error.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        providers: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._providers: Dict[str, Any] = dict(providers or {})
        self._sleep = sleep

    def _provider(self, name: str):
        key = str(name or "").strip().lower()
        if key not in self._providers:
            factory = PROVIDER_FACTORIES.get(key)
            if factory is None:
                raise LLMProviderError(f"Unsupported LLM provider: {name}", retryable=False)
            # Providers raise on construction when their API key is missing.
            self._providers[key] = factory()
        return self._providers[key]

    def _routes_for_stage(self, stage_name: str) -> List[Tuple[str, str]]:
        return self._settings.stage_model_routes(stage_name) or [DEFAULT_ROUTE]

    def _call(self, request: LLMRequest, provider_name: str, model: str) -> str:
        text = self._provider(provider_name).generate(
            model=model,
            prompt=request.prompt,
            system=request.system,
            timeout_seconds=max(1, int(request.timeout_seconds)),
            max_tokens=request.max_tokens,
        )
        if request.expect_json and "{" not in (text or ""):
            raise LLMProviderError(f"{provider_name}:{model} returned no JSON object", retryable=False)
        return text

    def run_stage(self, request: LLMRequest) -> LLMResponse:
        stage = request.stage.value
        attempts: List[ModelAttemptTrace] = []
        max_attempts = max(1, int(self._settings.stage_retry_max_attempts))
        backoff = max(0.0, float(self._settings.stage_retry_backoff_seconds))

        for provider_name, model in self._routes_for_stage(stage):
            for retry_count in range(max_attempts):
                started = time.perf_counter()
                try:
                    text = self._call(request, provider_name, model)
                except Exception as exc:
                    retryable = classify_retryable_error(exc)
                    attempts.append(
                        ModelAttemptTrace(
                            stage=stage,
                            provider=provider_name,
                            model=model,
                            latency_ms=int((time.perf_counter() - started) * 1000),
                            status="retryable_error" if retryable else "terminal_error",
                            retry_count=retry_count,
                            error_class=type(exc).__name__,
                            error_message=str(exc)[:500],
                        )
                    )
                    logger.warning(
                        "LLM stage %s failed on %s:%s (retry %d): %s",
                        stage,
                        provider_name,
                        model,
                        retry_count,
                        exc,
                    )
                    if not retryable or retry_count == max_attempts - 1:
                        break
                    if backoff > 0:
                        self._sleep(backoff * (retry_count + 1))
                    continue

                attempts.append(
                    ModelAttemptTrace(
                        stage=stage,
                        provider=provider_name,
                        model=model,
                        latency_ms=int((time.perf_counter() - started) * 1000),
                        status="success",
                        retry_count=retry_count,
                    )
                )
                logger.info(
                    "LLM stage %s answered by %s:%s after %d attempt(s) %s",
                    stage,
                    provider_name,
                    model,
                    len(attempts),
                    request.metadata or "",
                )
                return LLMResponse(text=text, provider=provider_name, model=model, attempts=attempts)

        raise LLMOrchestrationError(f"All model routes failed for stage={stage}", attempts=attempts)
