import asyncio
import json
from datetime import date

import httpx

from spac_os.auth import AuthContext
from spac_os.models import Spac, Target
from spac_os.repositories.memory import (
    MemoryScoreHistoryRepository,
    MemorySpacRepository,
    MemoryStore,
    MemoryTargetRepository,
)
from spac_os.services.edgar import EdgarClient, EdgarClientError, EdgarFiling
from spac_os.services.llm.types import LLMOrchestrationError, LLMResponse, ModelAttemptTrace
from spac_os.services.vocabulary import SpacStatus, TargetStage
from spac_os.workers.tasks import run_edgar_sync, run_scoring, run_thesis, target_info_for

CTX = AuthContext.build("u-analyst", "org-1", ["member"])

SCORE_JSON = json.dumps(
    {
        "overallScore": 82,
        "categoryScores": {
            "management": {"score": 8},
            "market": {"score": 9},
            "financial": {"score": 7},
            "operational": {"score": 8},
            "transaction": {"score": 7},
        },
        "investmentThesis": "Category leader in grid storage.",
        "recommendation": "proceed",
    }
)


class _FakeOrchestrator:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    def run_stage(self, request):
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.text, provider="openai", model="gpt-4.1")


class _FakeEdgar:
    def __init__(self, filings=None, error=None):
        self.filings = filings or []
        self.error = error
        self.ciks = []

    def recent_filings(self, cik):
        self.ciks.append(cik)
        if self.error is not None:
            raise self.error
        return self.filings


def _store():
    store = MemoryStore()
    spac = store.insert(Spac(org_id="org-1", name="Soren Acquisition Corp", status=SpacStatus.active, cik="1841761"))
    target = store.insert(
        Target(
            org_id="org-1",
            spac_id=spac.id,
            name="Helio Grid",
            industry="Energy",
            stage=TargetStage.deep_evaluation,
            revenue=120_000_000,
            profile_json={"competitors": ["Fluence"], "name": "stale name"},
        )
    )
    return store, spac, target


def test_target_info_prefers_columns_over_profile():
    _, _, target = _store()
    info = target_info_for(target)
    assert info.name == "Helio Grid"
    assert info.competitors == ["Fluence"]
    assert info.revenue == 120_000_000


def test_run_scoring_records_history_and_evaluation_score():
    store, _, target = _store()
    targets = MemoryTargetRepository(store)
    scores = MemoryScoreHistoryRepository(store)

    result = asyncio.run(
        run_scoring(CTX, target.id, targets, scores, orchestrator=_FakeOrchestrator(SCORE_JSON))
    )
    assert result["overall_score"] == 82
    assert result["grade"] == "B"
    assert result["recommendation"] == "proceed"
    assert result["trend"]["trend"] == "new"
    assert target.evaluation_score == 82.0

    history = asyncio.run(scores.list_for_target(CTX, target.id))
    assert len(history) == 1
    assert history[0].market_score == 90
    assert history[0].thesis == "Category leader in grid storage."


def test_run_scoring_reports_llm_failures_without_writing():
    store, _, target = _store()
    scores = MemoryScoreHistoryRepository(store)
    error = LLMOrchestrationError(
        "All model routes failed for stage=deal_scoring",
        attempts=[ModelAttemptTrace("deal_scoring", "anthropic", "claude", 3, "terminal_error", 0, error_message="boom")],
    )
    result = asyncio.run(
        run_scoring(CTX, target.id, MemoryTargetRepository(store), scores, orchestrator=_FakeOrchestrator(error=error))
    )
    assert result == {"target_id": target.id, "error": "All model routes failed for stage=deal_scoring"}
    assert asyncio.run(scores.list_for_target(CTX, target.id)) == []
    assert target.evaluation_score is None


def test_run_scoring_reports_unparseable_answers():
    store, _, target = _store()
    result = asyncio.run(
        run_scoring(
            CTX,
            target.id,
            MemoryTargetRepository(store),
            MemoryScoreHistoryRepository(store),
            orchestrator=_FakeOrchestrator("Sorry, no score."),
        )
    )
    assert "error" in result


def test_run_thesis_keeps_the_thesis_on_the_target_profile():
    store, _, target = _store()
    thesis_json = json.dumps(
        {
            "thesis": "Grid storage demand outpaces supply.",
            "summary": "Storage leader at a fair price",
            "keyArguments": ["Backlog", "Margins"],
            "exitStrategies": ["Strategic sale"],
        }
    )
    result = asyncio.run(
        run_thesis(CTX, target.id, MemoryTargetRepository(store), orchestrator=_FakeOrchestrator(thesis_json))
    )
    assert result == {"target_id": target.id, "summary": "Storage leader at a fair price"}
    assert target.profile_json["investment_thesis"]["key_arguments"] == ["Backlog", "Margins"]
    assert target.profile_json["competitors"] == ["Fluence"]

    failed = asyncio.run(
        run_thesis(CTX, target.id, MemoryTargetRepository(store), orchestrator=_FakeOrchestrator("No thesis today."))
    )
    assert "error" in failed


def test_run_edgar_sync_stores_new_filings():
    store, spac, _ = _store()
    spacs = MemorySpacRepository(store)
    edgar = _FakeEdgar(
        [EdgarFiling("8-K", date(2024, 3, 1), "0001213900-24-018877", "ea1934.htm", "https://sec.test/a")]
    )
    assert asyncio.run(run_edgar_sync(CTX, spac.id, spacs, client=edgar)) == {"spac_id": spac.id, "fetched": 1, "added": 1}
    assert asyncio.run(run_edgar_sync(CTX, spac.id, spacs, client=edgar)) == {"spac_id": spac.id, "fetched": 1, "added": 0}
    assert edgar.ciks == ["1841761", "1841761"]


def test_run_edgar_sync_with_mock_transport():
    store, spac, _ = _store()
    payload = {
        "filings": {
            "recent": {
                "form": ["S-4"],
                "filingDate": ["2024-04-02"],
                "accessionNumber": ["0001193125-24-087654"],
                "primaryDocument": ["d123s4.htm"],
            }
        }
    }
    client = EdgarClient(
        base_url="https://data.sec.test",
        archives_url="https://archives.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)),
    )
    result = asyncio.run(run_edgar_sync(CTX, spac.id, MemorySpacRepository(store), client=client))
    assert result["added"] == 1


def test_run_edgar_sync_errors():
    store, spac, _ = _store()
    spacs = MemorySpacRepository(store)
    failing = _FakeEdgar(error=EdgarClientError("EDGAR request failed"))
    assert asyncio.run(run_edgar_sync(CTX, spac.id, spacs, client=failing)) == {
        "spac_id": spac.id,
        "error": "EDGAR request failed",
    }

    spac.cik = None
    assert asyncio.run(run_edgar_sync(CTX, spac.id, spacs, client=failing))["error"] == "SPAC has no CIK"
