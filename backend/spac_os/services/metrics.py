"""Derived dashboard metrics: deadline countdowns, urgency, trust per share, percentages, funnel."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from spac_os.config import get_settings
from spac_os.services.common import as_date, as_utc_datetime, read_field, utcnow
from spac_os.services.vocabulary import DeadlineStatus, TargetStage, parse_vocabulary


class InvalidSpacDatesError(ValueError):
    pass


@dataclass
class Urgency:
    days: Optional[int]
    is_urgent: bool
    is_critical: bool


@dataclass
class TrustPerShare:
    value: Optional[float]
    is_placeholder: bool


@dataclass
class FunnelStage:
    stage: str
    count: int
    pipeline_value: float
    average_score: Optional[float]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "count": self.count,
            "pipeline_value": self.pipeline_value,
            "average_score": self.average_score,
        }


@dataclass
class SpacMetrics:
    days: Optional[int]
    is_urgent: bool
    is_critical: bool
    trust_per_share: Optional[float]
    trust_per_share_is_placeholder: bool
    trust_balance: Optional[float]
    redemption_rate_percent: Optional[float]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "days": self.days,
            "is_urgent": self.is_urgent,
            "is_critical": self.is_critical,
            "trust_per_share": self.trust_per_share,
            "trust_per_share_is_placeholder": self.trust_per_share_is_placeholder,
            "trust_balance": self.trust_balance,
            "redemption_rate_percent": self.redemption_rate_percent,
        }


def days_until(deadline: Any, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days from `now` to `deadline`; None when there is no deadline.

    `timedelta.days` floors, so a deadline any amount of time in the past is
    negative and values are never clamped.
    """
    target = as_utc_datetime(deadline)
    if target is None:
        return None
    reference = as_utc_datetime(now) or utcnow()
    return (target - reference).days


def classify_urgency(
    days: Optional[int],
    urgent_days: Optional[int] = None,
    critical_days: Optional[int] = None,
) -> Urgency:
    settings = get_settings()
    urgent_limit = settings.urgent_days if urgent_days is None else urgent_days
    critical_limit = settings.critical_days if critical_days is None else critical_days
    return Urgency(
        days=days,
        is_urgent=days is not None and days <= urgent_limit,
        is_critical=days is not None and days <= critical_limit,
    )


def trust_per_share(
    trust_balance: Any,
    shares_outstanding: Any = None,
    nominal_unit_price: Optional[float] = None,
) -> TrustPerShare:
    """Trust balance per public share.

    Without a usable share count the nominal unit price is returned and
    flagged as a placeholder so callers never present it as computed.
    """
    if trust_balance is None:
        return TrustPerShare(value=None, is_placeholder=False)
    shares = float(shares_outstanding) if shares_outstanding is not None else 0.0
    if shares > 0:
        return TrustPerShare(value=round(float(trust_balance) / shares, 4), is_placeholder=False)
    unit_price = get_settings().nominal_unit_price if nominal_unit_price is None else nominal_unit_price
    return TrustPerShare(value=float(unit_price), is_placeholder=True)


def fraction_to_percent(fraction: Any) -> Optional[float]:
    """Convert a stored 0-1 fraction to a percentage, exactly once.

    The conversion is not idempotent: feeding the result back in is outside
    the 0-1 domain and raises, which is how a double conversion is caught.
    """
    if fraction is None:
        return None
    value = float(fraction)
    if value < 0.0 or value > 1.0:
        raise ValueError(f"Expected a 0-1 fraction, got {value}")
    return round(value * 100, 6)


def format_percent(percent: Optional[float], decimals: int = 1) -> str:
    if percent is None:
        return "-"
    return f"{float(percent):.{decimals}f}%"


def format_fraction(fraction: Any, decimals: int = 1) -> str:
    return format_percent(fraction_to_percent(fraction), decimals=decimals)


def aggregate_funnel(targets: Iterable[Any]) -> List[FunnelStage]:
    """Count targets and sum enterprise value per pipeline stage.

    Every stage is present in canonical order, zero-filled when empty.
    """
    counts: Dict[TargetStage, int] = {stage: 0 for stage in TargetStage}
    values: Dict[TargetStage, float] = {stage: 0.0 for stage in TargetStage}
    scores: Dict[TargetStage, List[float]] = {stage: [] for stage in TargetStage}
    for target in targets:
        stage = parse_vocabulary(TargetStage, read_field(target, "stage"))
        counts[stage] += 1
        enterprise_value = read_field(target, "enterprise_value")
        if enterprise_value is not None:
            values[stage] += float(enterprise_value)
        score = read_field(target, "evaluation_score")
        if score is not None:
            scores[stage].append(float(score))

    funnel: List[FunnelStage] = []
    for stage in TargetStage:
        stage_scores = scores[stage]
        funnel.append(
            FunnelStage(
                stage=stage.value,
                count=counts[stage],
                pipeline_value=values[stage],
                average_score=round(sum(stage_scores) / len(stage_scores), 1) if stage_scores else None,
            )
        )
    return funnel


def validate_spac_dates(ipo_date: Any, deadline_date: Any) -> None:
    ipo = as_utc_datetime(ipo_date)
    deadline = as_utc_datetime(deadline_date)
    if ipo is not None and deadline is not None and deadline < ipo:
        raise InvalidSpacDatesError(
            f"Deadline {deadline.date().isoformat()} precedes IPO date {ipo.date().isoformat()}"
        )


def compute_spac_metrics(
    spac: Any,
    now: Optional[datetime] = None,
    shares_outstanding: Any = None,
) -> SpacMetrics:
    ipo_date = read_field(spac, "ipo_date")
    deadline_date = read_field(spac, "deadline_date")
    validate_spac_dates(ipo_date, deadline_date)

    days = days_until(deadline_date, now=now)
    urgency = classify_urgency(days)
    trust_amount = read_field(spac, "trust_amount")
    shares = shares_outstanding if shares_outstanding is not None else read_field(spac, "shares_outstanding")
    per_share = trust_per_share(trust_amount, shares)
    return SpacMetrics(
        days=days,
        is_urgent=urgency.is_urgent,
        is_critical=urgency.is_critical,
        trust_per_share=per_share.value,
        trust_per_share_is_placeholder=per_share.is_placeholder,
        trust_balance=float(trust_amount) if trust_amount is not None else None,
        redemption_rate_percent=fraction_to_percent(read_field(spac, "redemption_rate")),
    )


def deadline_status(deadline: Any, today: Any = None) -> Optional[DeadlineStatus]:
    deadline_day = as_date(deadline)
    if deadline_day is None:
        return None
    reference = as_date(today) or utcnow().date()
    remaining = (deadline_day - reference).days
    if remaining < 0:
        return DeadlineStatus.OVERDUE
    if remaining == 0:
        return DeadlineStatus.DUE_TODAY
    if remaining <= 7:
        return DeadlineStatus.DUE_SOON
    if remaining <= 30:
        return DeadlineStatus.UPCOMING
    return DeadlineStatus.FUTURE
