import pytest

from spac_os.config import Settings
from spac_os.services.llm.orchestrator import LLMOrchestrator
from spac_os.services.llm.types import (
    LLMOrchestrationError,
    LLMProviderError,
    LLMRequest,
    LLMStage,
    classify_retryable_error,
)


class _FakeProvider:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def generate(self, *, model: str, prompt: str, system=None, timeout_seconds: int, max_tokens: int = 4000):
        self.calls.append({"model": model, "system": system, "timeout_seconds": timeout_seconds})
        if not self._responses:
            return ""
        nxt = self._responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return str(nxt)


def _settings(**overrides):
    values = dict(
        llm_stage_deal_scoring_models="anthropic:claude-3-7-sonnet-latest,openai:gpt-4.1",
        stage_retry_max_attempts=2,
        stage_retry_backoff_seconds=0.5,
    )
    values.update(overrides)
    return Settings(**values)


def test_orchestrator_falls_back_to_next_provider():
    providers = {
        "anthropic": _FakeProvider([LLMProviderError("schema invalid", retryable=False)]),
        "openai": _FakeProvider(['{"overallScore": 70}']),
    }
    orchestrator = LLMOrchestrator(settings=_settings(), providers=providers, sleep=lambda _s: None)

    response = orchestrator.run_stage(
        LLMRequest(stage=LLMStage.deal_scoring, prompt="Return JSON.", system="Be terse.", timeout_seconds=30, expect_json=True)
    )
    assert response.provider == "openai"
    assert response.model == "gpt-4.1"
    assert [attempt.provider for attempt in response.attempts] == ["anthropic", "openai"]
    assert response.attempts[0].status == "terminal_error"
    assert providers["openai"].calls[0]["system"] == "Be terse."


def test_orchestrator_retries_retryable_provider_errors_with_backoff():
    sleeps = []
    provider = _FakeProvider([LLMProviderError("timeout", retryable=True), '{"thesis": "ok"}'])
    orchestrator = LLMOrchestrator(
        settings=_settings(llm_stage_investment_thesis_models="gemini:gemini-2.0-flash"),
        providers={"gemini": provider},
        sleep=sleeps.append,
    )

    response = orchestrator.run_stage(LLMRequest(stage=LLMStage.investment_thesis, prompt="Return JSON.", timeout_seconds=20))
    assert response.provider == "gemini"
    assert len(response.attempts) == 2
    assert response.attempts[0].status == "retryable_error"
    assert response.attempts[1].status == "success"
    assert response.attempts[1].retry_count == 1
    assert sleeps == [0.5]


def test_orchestrator_raises_with_every_attempt_when_all_routes_fail():
    providers = {
        "anthropic": _FakeProvider([RuntimeError("rate limit exceeded"), RuntimeError("rate limit exceeded")]),
        "openai": _FakeProvider([ValueError("bad request")]),
    }
    orchestrator = LLMOrchestrator(settings=_settings(), providers=providers, sleep=lambda _s: None)

    with pytest.raises(LLMOrchestrationError) as excinfo:
        orchestrator.run_stage(LLMRequest(stage=LLMStage.deal_scoring, prompt="x"))
    statuses = [(attempt.provider, attempt.status) for attempt in excinfo.value.attempts]
    assert statuses == [
        ("anthropic", "retryable_error"),
        ("anthropic", "retryable_error"),
        ("openai", "terminal_error"),
    ]
    assert excinfo.value.not_configured is False


def test_missing_api_keys_are_reported_as_not_configured(monkeypatch):
    orchestrator = LLMOrchestrator(
        settings=_settings(llm_stage_deal_scoring_models="anthropic:claude-3-7-sonnet-latest"),
        sleep=lambda _s: None,
    )

    def _unconfigured(_name):
        raise LLMProviderError("ANTHROPIC_API_KEY not configured", retryable=False)

    monkeypatch.setattr(orchestrator, "_provider", _unconfigured)
    with pytest.raises(LLMOrchestrationError) as excinfo:
        orchestrator.run_stage(LLMRequest(stage=LLMStage.deal_scoring, prompt="x"))
    assert excinfo.value.not_configured is True


def test_unknown_provider_is_a_terminal_attempt():
    orchestrator = LLMOrchestrator(
        settings=_settings(llm_stage_deal_scoring_models="mistral:large"),
        sleep=lambda _s: None,
    )
    with pytest.raises(LLMOrchestrationError) as excinfo:
        orchestrator.run_stage(LLMRequest(stage=LLMStage.deal_scoring, prompt="x"))
    assert excinfo.value.attempts[0].error_message == "Unsupported LLM provider: mistral"


def test_empty_route_config_falls_back_to_default_route():
    orchestrator = LLMOrchestrator(settings=_settings(llm_stage_deal_scoring_models=" , bogus"))
    assert orchestrator._routes_for_stage("deal_scoring") == [("anthropic", "claude-3-7-sonnet-latest")]


def test_classify_retryable_error():
    assert classify_retryable_error(RuntimeError("Error 529: Overloaded"))
    assert classify_retryable_error(RuntimeError("Request timed out"))
    assert not classify_retryable_error(RuntimeError("invalid api key"))


def test_json_stages_move_on_when_a_route_answers_in_prose():
    providers = {
        "anthropic": _FakeProvider(["I cannot score this company."]),
        "openai": _FakeProvider(['{"overallScore": 64}']),
    }
    orchestrator = LLMOrchestrator(settings=_settings(), providers=providers, sleep=lambda _s: None)

    response = orchestrator.run_stage(LLMRequest(stage=LLMStage.deal_scoring, prompt="x", expect_json=True))
    assert response.provider == "openai"
    assert response.attempts[0].error_message == "anthropic:claude-3-7-sonnet-latest returned no JSON object"
    assert [attempt.succeeded for attempt in response.attempts] == [False, True]
