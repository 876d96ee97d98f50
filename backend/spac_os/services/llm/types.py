from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Lower-cased fragments of provider errors that are worth retrying on the same route.
RETRYABLE_MARKERS = (
    "rate limit",
    "429",
    "overloaded",
    "timeout",
    "timed out",
    "connection reset",
    "connection aborted",
    "502",
    "503",
    "504",
    "529",
)


class LLMStage(str, Enum):
    deal_scoring = "deal_scoring"
    investment_thesis = "investment_thesis"


@dataclass
class LLMRequest:
    stage: LLMStage
    prompt: str
    system: Optional[str] = None
    timeout_seconds: int = 60
    max_tokens: int = 4000
    expect_json: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelAttemptTrace:
    """One call to one provider route; failed calls keep the error text."""

    stage: str
    provider: str
    model: str
    latency_ms: int
    status: str
    retry_count: int
    error_class: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LLMResponse:
    text: str
    provider: str
    model: str
    attempts: List[ModelAttemptTrace] = field(default_factory=list)


class LLMProviderError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class LLMOrchestrationError(RuntimeError):
    def __init__(self, message: str, *, attempts: Optional[List[ModelAttemptTrace]] = None) -> None:
        super().__init__(message)
        self.attempts = list(attempts or [])

    @property
    def not_configured(self) -> bool:
        """True when every route failed only because its API key is missing."""
        if not self.attempts:
            return False
        return all("not configured" in (attempt.error_message or "") for attempt in self.attempts)


def classify_retryable_error(exc: Exception) -> bool:
    if isinstance(exc, LLMProviderError) and exc.retryable:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in RETRYABLE_MARKERS)
