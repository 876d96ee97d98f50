import asyncio
from datetime import datetime, timedelta

import pytest

from spac_os.auth import AuthContext
from spac_os.models import Spac, Target
from spac_os.repositories.base import NotFoundError
from spac_os.repositories.memory import MemoryScoreHistoryRepository, MemoryStore
from spac_os.services.score_history import (
    ScoreInput,
    compute_trend,
    load_history,
    record_score,
    score_comparison,
    sparkline_series,
)
from spac_os.services.vocabulary import ScoreTrend, SpacStatus, TargetStage

CTX = AuthContext.build("user-1", "org-1", ["admin"])


class _Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


def _store_with_target(clock=None):
    store = MemoryStore(clock=clock) if clock else MemoryStore()
    spac = store.insert(Spac(org_id="org-1", name="Soren Acquisition Corp", status=SpacStatus.active))
    target = store.insert(Target(org_id="org-1", spac_id=spac.id, name="Helio Grid", stage=TargetStage.sourcing))
    return store, target


def test_trend_equal_scores_are_stable():
    trend = compute_trend([{"overall_score": 80}, {"overall_score": 80}])
    assert trend.trend == ScoreTrend.stable
    assert trend.change_percent == 0


def test_trend_improving_uses_previous_score_as_base():
    trend = compute_trend([{"overall_score": 90}, {"overall_score": 60}])
    assert trend.trend == ScoreTrend.improving
    assert trend.change_percent == 50.0
    assert trend.previous_score == 60
    assert trend.current_score == 90


def test_trend_declining_and_rounding():
    trend = compute_trend([{"overall_score": 70}, {"overall_score": 75}, {"overall_score": 50}])
    assert trend.trend == ScoreTrend.declining
    assert trend.change_percent == -6.7
    assert trend.average_score == 65.0
    assert trend.score_count == 3


def test_single_entry_and_empty_history_are_new():
    single = compute_trend([{"overall_score": 75}])
    assert single.trend == ScoreTrend.new
    assert single.previous_score is None
    assert single.current_score == 75

    empty = compute_trend([])
    assert empty.trend == ScoreTrend.new
    assert empty.score_count == 0


def test_zero_previous_score_does_not_divide():
    trend = compute_trend([{"overall_score": 40}, {"overall_score": 0}])
    assert trend.trend == ScoreTrend.improving
    assert trend.change_percent == 0.0


def test_sparkline_runs_oldest_to_newest():
    assert sparkline_series([{"overall_score": 90}, {"overall_score": 60}, {"overall_score": 55}]) == [55, 60, 90]


def test_score_input_scales_categories_and_keeps_zero():
    fields = ScoreInput(overall_score=72.6, management_score=8.2, market_score=0, thesis="").to_entry_fields()
    assert fields["overall_score"] == 73
    assert fields["management_score"] == 82
    assert fields["market_score"] == 0
    assert fields["financial_score"] is None
    assert fields["thesis"] is None


def test_score_input_rejects_out_of_range_values():
    with pytest.raises(ValueError):
        ScoreInput(overall_score=101).to_entry_fields()
    with pytest.raises(ValueError):
        ScoreInput(overall_score=50, transaction_score=11).to_entry_fields()


def test_record_score_appends_and_rereads_newest_first():
    clock = _Clock(datetime(2024, 1, 1))
    store, target = _store_with_target(clock)
    repo = MemoryScoreHistoryRepository(store)

    async def run():
        await record_score(repo, CTX, target.id, ScoreInput(overall_score=60), limit=10)
        clock.advance(days=1)
        return await record_score(repo, CTX, target.id, ScoreInput(overall_score=66, management_score=7), limit=10)

    view = asyncio.run(run())
    assert [entry.overall_score for entry in view.history] == [66, 60]
    assert view.history[0].management_score == 70
    assert view.trend.trend == ScoreTrend.improving
    assert view.trend.change_percent == 10.0


def test_equal_timestamps_order_by_insertion():
    clock = _Clock(datetime(2024, 1, 1))
    store, target = _store_with_target(clock)
    repo = MemoryScoreHistoryRepository(store)

    async def run():
        for score in (50, 55, 52):
            await repo.append(CTX, target.id, ScoreInput(overall_score=score))
        return await load_history(repo, CTX, target.id, limit=2)

    view = asyncio.run(run())
    assert [entry.overall_score for entry in view.history] == [52, 55]
    assert view.trend.trend == ScoreTrend.declining


def test_latest_stored_entry_is_current_even_if_its_clock_runs_behind():
    clock = _Clock(datetime(2024, 1, 1, 12, 0, 1))
    store, target = _store_with_target(clock)
    repo = MemoryScoreHistoryRepository(store)

    async def run():
        await record_score(repo, CTX, target.id, ScoreInput(overall_score=60), limit=10)
        clock.advance(seconds=-1)
        return await record_score(repo, CTX, target.id, ScoreInput(overall_score=90), limit=10)

    view = asyncio.run(run())
    assert [entry.overall_score for entry in view.history] == [90, 60]
    assert view.trend.current_score == 90
    assert view.trend.previous_score == 60
    assert view.trend.trend == ScoreTrend.improving
    assert view.trend.change_percent == 50.0


def test_history_of_other_org_target_is_not_found():
    store, target = _store_with_target()
    repo = MemoryScoreHistoryRepository(store)
    stranger = AuthContext.build("user-9", "org-2", ["owner"])
    with pytest.raises(NotFoundError):
        asyncio.run(repo.append(stranger, target.id, ScoreInput(overall_score=50)))
    with pytest.raises(NotFoundError):
        asyncio.run(load_history(repo, stranger, target.id, limit=10))


def test_score_comparison_between_dates():
    clock = _Clock(datetime(2024, 1, 1))
    store, target = _store_with_target(clock)
    repo = MemoryScoreHistoryRepository(store)

    async def run():
        for score in (40, 50, 60):
            await repo.append(CTX, target.id, ScoreInput(overall_score=score))
            clock.advance(days=10)
        return await score_comparison(repo, CTX, target.id, datetime(2024, 1, 5), datetime(2024, 1, 25))

    comparison = asyncio.run(run())
    assert comparison.start_entry.overall_score == 50
    assert comparison.end_entry.overall_score == 60
    assert comparison.change == 10
    assert comparison.percent_change == 20.0


def test_score_comparison_without_entries_is_zero():
    store, target = _store_with_target()
    repo = MemoryScoreHistoryRepository(store)
    comparison = asyncio.run(
        score_comparison(repo, CTX, target.id, datetime(2024, 1, 1), datetime(2024, 2, 1))
    )
    assert comparison.start_entry is None
    assert comparison.change == 0
    assert comparison.percent_change == 0.0
