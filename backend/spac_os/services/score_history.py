"""Append-only deal score history and trend classification."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from spac_os.log import get_logger
from spac_os.services.common import read_field
from spac_os.services.vocabulary import ScoreTrend

if TYPE_CHECKING:
    from spac_os.auth import AuthContext
    from spac_os.repositories.base import ScoreHistoryRepository

logger = get_logger(__name__)

CATEGORY_FIELDS = (
    "management_score",
    "market_score",
    "financial_score",
    "operational_score",
    "transaction_score",
)


@dataclass
class ScoreInput:
    """A completed scoring run. Category scores use the scorer's 1-10 scale."""

    overall_score: float
    management_score: Optional[float] = None
    market_score: Optional[float] = None
    financial_score: Optional[float] = None
    operational_score: Optional[float] = None
    transaction_score: Optional[float] = None
    thesis: Optional[str] = None

    def validate(self) -> None:
        if self.overall_score is None or not 0 <= float(self.overall_score) <= 100:
            raise ValueError(f"overall_score must be within 0-100, got {self.overall_score}")
        for name in CATEGORY_FIELDS:
            value = getattr(self, name)
            if value is not None and not 0 <= float(value) <= 10:
                raise ValueError(f"{name} must be within 0-10, got {value}")

    def to_entry_fields(self) -> Dict[str, Any]:
        """Column values for a stored entry: integer overall, categories scaled to 0-100."""
        self.validate()
        fields: Dict[str, Any] = {"overall_score": int(round(float(self.overall_score)))}
        for name in CATEGORY_FIELDS:
            value = getattr(self, name)
            fields[name] = int(round(float(value) * 10)) if value is not None else None
        fields["thesis"] = self.thesis or None
        return fields


@dataclass
class ScoreTrendData:
    trend: ScoreTrend
    change_percent: float
    previous_score: Optional[int]
    current_score: int
    score_count: int
    average_score: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "trend": self.trend.value,
            "change_percent": self.change_percent,
            "previous_score": self.previous_score,
            "current_score": self.current_score,
            "score_count": self.score_count,
            "average_score": self.average_score,
        }


@dataclass
class ScoreComparison:
    start_entry: Any
    end_entry: Any
    change: int
    percent_change: float


@dataclass
class ScoreHistoryView:
    history: List[Any]
    trend: ScoreTrendData


def compute_trend(history: Sequence[Any]) -> ScoreTrendData:
    """Classify the trend of a newest-first history.

    Only the two most recent entries decide the direction; the average covers
    the whole window that was fetched. Percentages use one decimal.
    """
    if not history:
        return ScoreTrendData(
            trend=ScoreTrend.new,
            change_percent=0.0,
            previous_score=None,
            current_score=0,
            score_count=0,
            average_score=0.0,
        )

    scores = [int(read_field(entry, "overall_score", 0)) for entry in history]
    current = scores[0]
    average = round(sum(scores) / len(scores), 1)
    if len(scores) == 1:
        return ScoreTrendData(
            trend=ScoreTrend.new,
            change_percent=0.0,
            previous_score=None,
            current_score=current,
            score_count=1,
            average_score=average,
        )

    previous = scores[1]
    change_percent = (current - previous) / previous * 100 if previous != 0 else 0.0
    if current > previous:
        trend = ScoreTrend.improving
    elif current < previous:
        trend = ScoreTrend.declining
    else:
        trend = ScoreTrend.stable
    return ScoreTrendData(
        trend=trend,
        change_percent=round(change_percent, 1),
        previous_score=previous,
        current_score=current,
        score_count=len(scores),
        average_score=average,
    )


def sparkline_series(history: Sequence[Any]) -> List[int]:
    """Overall scores oldest to newest for charting a newest-first history."""
    return [int(read_field(entry, "overall_score", 0)) for entry in reversed(list(history))]


async def load_history(
    repo: "ScoreHistoryRepository",
    ctx: "AuthContext",
    target_id: int,
    limit: int,
) -> ScoreHistoryView:
    history = await repo.list_for_target(ctx, target_id, limit=limit)
    return ScoreHistoryView(history=list(history), trend=compute_trend(history))


async def record_score(
    repo: "ScoreHistoryRepository",
    ctx: "AuthContext",
    target_id: int,
    score_input: ScoreInput,
    limit: int,
) -> ScoreHistoryView:
    """Append a scoring result, then re-read the stored history for the trend."""
    entry = await repo.append(ctx, target_id, score_input)
    logger.info(
        "Score history saved target_id=%s entry_id=%s overall=%s",
        target_id,
        read_field(entry, "id"),
        read_field(entry, "overall_score"),
    )
    return await load_history(repo, ctx, target_id, limit)


async def score_comparison(
    repo: "ScoreHistoryRepository",
    ctx: "AuthContext",
    target_id: int,
    start: datetime,
    end: datetime,
) -> ScoreComparison:
    start_entry = await repo.first_on_or_after(ctx, target_id, start)
    end_entry = await repo.last_on_or_before(ctx, target_id, end)
    start_score = int(read_field(start_entry, "overall_score", 0)) if start_entry is not None else 0
    end_score = int(read_field(end_entry, "overall_score", 0)) if end_entry is not None else 0
    change = end_score - start_score
    percent_change = change / start_score * 100 if start_score > 0 else 0.0
    return ScoreComparison(
        start_entry=start_entry,
        end_entry=end_entry,
        change=change,
        percent_change=round(percent_change, 1),
    )
