"""SEC filing deadline arithmetic on US business days."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Tuple

from dateutil.relativedelta import MO, TH, relativedelta

from spac_os.services.common import as_date, utcnow
from spac_os.services.vocabulary import (
    AlertSeverity,
    DeadlineUrgency,
    FilerStatus,
    InvalidVocabularyError,
    PeriodicFilingStatus,
    parse_vocabulary,
)


class FilingRule(NamedTuple):
    short_name: str
    days: Optional[int]
    business_days: bool = False


# Periodic reports (days=None) take their window from the filer status.
FILING_RULES: Dict[str, FilingRule] = {
    "FORM_10K": FilingRule("10-K", None),
    "FORM_10Q": FilingRule("10-Q", None),
    "FORM_8K": FilingRule("8-K", 4, True),
    "SUPER_8K": FilingRule("Super 8-K", 4, True),
    "SC_13D": FilingRule("13D", 10),
    "SC_13G": FilingRule("13G", 45),
    "FORM_3": FilingRule("Form 3", 10),
    "FORM_4": FilingRule("Form 4", 2, True),
    "FORM_5": FilingRule("Form 5", 45),
}

# (10-K days, 10-Q days) after the period end.
PERIODIC_DEADLINE_DAYS: Dict[FilerStatus, Tuple[int, int]] = {
    FilerStatus.LARGE_ACCELERATED: (60, 40),
    FilerStatus.ACCELERATED: (75, 40),
    FilerStatus.NON_ACCELERATED: (90, 45),
    FilerStatus.SMALLER_REPORTING: (90, 45),
    FilerStatus.EMERGING_GROWTH: (90, 45),
}

URGENCY_BUSINESS_DAYS = (
    (DeadlineUrgency.CRITICAL, 3),
    (DeadlineUrgency.HIGH, 7),
    (DeadlineUrgency.MEDIUM, 14),
)


@dataclass
class EventDeadline:
    filing_type: str
    event_type: str
    event_date: date
    deadline: date
    days_allowed: int
    description: str
    is_business_days: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {
            "filing_type": self.filing_type,
            "event_type": self.event_type,
            "event_date": self.event_date.isoformat(),
            "deadline": self.deadline.isoformat(),
            "days_allowed": self.days_allowed,
            "is_business_days": self.is_business_days,
            "description": self.description,
        }


@dataclass
class FilingDeadline:
    filing_type: str
    base_date: date
    deadline: date
    is_business_days: bool
    days_allowed: int
    days_remaining: int
    business_days_remaining: int
    is_overdue: bool
    urgency: DeadlineUrgency
    warning_thresholds: Dict[str, date]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "filing_type": self.filing_type,
            "base_date": self.base_date.isoformat(),
            "deadline": self.deadline.isoformat(),
            "is_business_days": self.is_business_days,
            "days_allowed": self.days_allowed,
            "days_remaining": self.days_remaining,
            "business_days_remaining": self.business_days_remaining,
            "is_overdue": self.is_overdue,
            "urgency": self.urgency.value,
            "warning_thresholds": {key: value.isoformat() for key, value in self.warning_thresholds.items()},
        }


@dataclass
class PeriodicFiling:
    filing_type: str
    fiscal_year: int
    quarter: Optional[int]
    period_start: date
    period_end: date
    deadline: date
    status: PeriodicFilingStatus

    def as_dict(self) -> Dict[str, Any]:
        return {
            "filing_type": self.filing_type,
            "fiscal_year": self.fiscal_year,
            "quarter": self.quarter,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "deadline": self.deadline.isoformat(),
            "status": self.status.value,
        }


@dataclass
class DeadlineAlert:
    id: str
    filing_type: str
    title: str
    message: str
    deadline: date
    days_remaining: int
    business_days_remaining: int
    severity: AlertSeverity
    created_at: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filing_type": self.filing_type,
            "title": self.title,
            "message": self.message,
            "deadline": self.deadline.isoformat(),
            "days_remaining": self.days_remaining,
            "business_days_remaining": self.business_days_remaining,
            "severity": self.severity.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SpacDeadlines:
    liquidation_deadline: date
    extension_deadline: date
    proxy_filing_deadline: Optional[date]
    redemption_deadline: Optional[date]
    vote_deadline: Optional[date]

    def as_dict(self) -> Dict[str, Any]:
        return {
            key: value.isoformat() if isinstance(value, date) else value
            for key, value in self.__dict__.items()
        }


@dataclass
class CommentResponseDeadline:
    comment_received_date: date
    response_deadline: date
    days_remaining: int
    business_days_remaining: int
    is_overdue: bool
    can_request_extension: bool


def _observed(day: date) -> date:
    if day.weekday() == 5:
        return day - timedelta(days=1)
    if day.weekday() == 6:
        return day + timedelta(days=1)
    return day


@lru_cache(maxsize=64)
def federal_holidays(year: int) -> FrozenSet[date]:
    """Observed US federal holidays for `year`."""
    holidays = [
        date(year, 1, 1),
        date(year, 1, 1) + relativedelta(weekday=MO(+3)),  # MLK Day
        date(year, 2, 1) + relativedelta(weekday=MO(+3)),  # Presidents' Day
        date(year, 5, 31) + relativedelta(weekday=MO(-1)),  # Memorial Day
        date(year, 6, 19),
        date(year, 7, 4),
        date(year, 9, 1) + relativedelta(weekday=MO(+1)),  # Labor Day
        date(year, 10, 1) + relativedelta(weekday=MO(+2)),  # Columbus Day
        date(year, 11, 11),
        date(year, 11, 1) + relativedelta(weekday=TH(+4)),  # Thanksgiving
        date(year, 12, 25),
    ]
    return frozenset(_observed(day) for day in holidays)


def is_federal_holiday(day: date) -> bool:
    # A Saturday New Year's Day is observed on December 31 of the prior year.
    return day in federal_holidays(day.year) or day in federal_holidays(day.year + 1)


def is_business_day(day: date) -> bool:
    return day.weekday() < 5 and not is_federal_holiday(day)


def add_business_days(start: Any, days: int) -> date:
    current = as_date(start)
    remaining = days
    while remaining > 0:
        current += timedelta(days=1)
        if is_business_day(current):
            remaining -= 1
    return current


def subtract_business_days(start: Any, days: int) -> date:
    current = as_date(start)
    remaining = days
    while remaining > 0:
        current -= timedelta(days=1)
        if is_business_day(current):
            remaining -= 1
    return current


def count_business_days(start: Any, end: Any) -> int:
    """Business days in (start, end]."""
    current = as_date(start)
    stop = as_date(end)
    count = 0
    while current < stop:
        current += timedelta(days=1)
        if is_business_day(current):
            count += 1
    return count


def next_business_day(day: Any) -> date:
    current = as_date(day) + timedelta(days=1)
    while not is_business_day(current):
        current += timedelta(days=1)
    return current


def previous_business_day(day: Any) -> date:
    current = as_date(day) - timedelta(days=1)
    while not is_business_day(current):
        current -= timedelta(days=1)
    return current


def fiscal_year_end(fiscal_year: int, fiscal_year_end_month: int = 12) -> date:
    """Last day of the month that closes `fiscal_year` (months are 1-12)."""
    return date(fiscal_year, fiscal_year_end_month, 1) + relativedelta(day=31)


def fiscal_quarter_end(fiscal_year: int, quarter: int, fiscal_year_end_month: int = 12) -> date:
    """End of fiscal quarter 1-4; quarters run from the prior fiscal year end."""
    if quarter not in (1, 2, 3, 4):
        raise ValueError(f"Fiscal quarter must be 1-4, got {quarter!r}")
    opening = fiscal_year_end(fiscal_year - 1, fiscal_year_end_month)
    return opening + relativedelta(months=3 * quarter, day=31)


def current_fiscal_quarter(today: Any = None, fiscal_year_end_month: int = 12) -> Tuple[int, int]:
    """(fiscal_year, quarter) containing `today`; fiscal years are named by the year they end."""
    day = as_date(today) or utcnow().date()
    fiscal_year = day.year + 1 if day.month > fiscal_year_end_month else day.year
    months_into_year = (day.month - fiscal_year_end_month - 1) % 12
    return fiscal_year, months_into_year // 3 + 1


def _filing_rule(filing_type: str) -> FilingRule:
    rule = FILING_RULES.get(filing_type)
    if rule is None:
        raise InvalidVocabularyError("filing type", filing_type)
    return rule


def _urgency(deadline: date, today: date, is_overdue: bool) -> Tuple[DeadlineUrgency, Dict[str, date]]:
    thresholds = {
        urgency.value.lower(): subtract_business_days(deadline, days) for urgency, days in URGENCY_BUSINESS_DAYS
    }
    if is_overdue:
        return DeadlineUrgency.CRITICAL, thresholds
    for urgency, _ in URGENCY_BUSINESS_DAYS:
        if today >= thresholds[urgency.value.lower()]:
            return urgency, thresholds
    return DeadlineUrgency.LOW, thresholds


def calculate_filing_deadline(
    filing_type: str,
    event_date: Any,
    filer_status: Any = FilerStatus.NON_ACCELERATED,
    today: Any = None,
) -> FilingDeadline:
    """Deadline for `filing_type` counted from `event_date` (the period end for 10-K/10-Q).

    Periodic reports use calendar days set by the filer status; event filings
    use the window of their rule. A deadline that lands on a weekend or
    holiday moves back to the previous business day.
    """
    rule = _filing_rule(filing_type)
    status = parse_vocabulary(FilerStatus, filer_status)
    base = as_date(event_date)
    reference = as_date(today) or utcnow().date()

    if rule.days is None:
        ten_k_days, ten_q_days = PERIODIC_DEADLINE_DAYS[status]
        days_allowed = ten_k_days if filing_type == "FORM_10K" else ten_q_days
        deadline = base + timedelta(days=days_allowed)
    elif rule.business_days:
        days_allowed = rule.days
        deadline = add_business_days(base, days_allowed)
    else:
        days_allowed = rule.days
        deadline = base + timedelta(days=days_allowed)

    if not is_business_day(deadline):
        deadline = previous_business_day(deadline)

    is_overdue = deadline < reference
    urgency, thresholds = _urgency(deadline, reference, is_overdue)
    return FilingDeadline(
        filing_type=filing_type,
        base_date=base,
        deadline=deadline,
        is_business_days=rule.business_days,
        days_allowed=days_allowed,
        days_remaining=(deadline - reference).days,
        business_days_remaining=count_business_days(reference, deadline),
        is_overdue=is_overdue,
        urgency=urgency,
        warning_thresholds=thresholds,
    )


def _periodic_status(period_end: date, deadline: date, today: date) -> PeriodicFilingStatus:
    if deadline < today:
        return PeriodicFilingStatus.OVERDUE
    if today < period_end:
        return PeriodicFilingStatus.UPCOMING
    return PeriodicFilingStatus.DUE


def generate_periodic_filing_schedule(
    fiscal_year_end_month: int = 12,
    filer_status: Any = FilerStatus.NON_ACCELERATED,
    years_ahead: int = 2,
    today: Any = None,
) -> List[PeriodicFiling]:
    """10-K and Q1-Q3 10-Q due dates from the current fiscal year onward, soonest first.

    Q4 has no 10-Q; the 10-K covers it. OVERDUE only means the window has
    passed; matching the schedule against filings on record is the caller's job.
    """
    status = parse_vocabulary(FilerStatus, filer_status)
    reference = as_date(today) or utcnow().date()
    first_year, _ = current_fiscal_quarter(reference, fiscal_year_end_month)

    schedule: List[PeriodicFiling] = []
    for fiscal_year in range(first_year, first_year + years_ahead + 1):
        opening = fiscal_year_end(fiscal_year - 1, fiscal_year_end_month) + timedelta(days=1)
        year_end = fiscal_year_end(fiscal_year, fiscal_year_end_month)
        deadline = calculate_filing_deadline("FORM_10K", year_end, status, today=reference).deadline
        schedule.append(
            PeriodicFiling(
                filing_type="FORM_10K",
                fiscal_year=fiscal_year,
                quarter=None,
                period_start=opening,
                period_end=year_end,
                deadline=deadline,
                status=_periodic_status(year_end, deadline, reference),
            )
        )

        period_start = opening
        for quarter in (1, 2, 3):
            quarter_end = fiscal_quarter_end(fiscal_year, quarter, fiscal_year_end_month)
            deadline = calculate_filing_deadline("FORM_10Q", quarter_end, status, today=reference).deadline
            schedule.append(
                PeriodicFiling(
                    filing_type="FORM_10Q",
                    fiscal_year=fiscal_year,
                    quarter=quarter,
                    period_start=period_start,
                    period_end=quarter_end,
                    deadline=deadline,
                    status=_periodic_status(quarter_end, deadline, reference),
                )
            )
            period_start = quarter_end + timedelta(days=1)

    schedule.sort(key=lambda entry: entry.deadline)
    return schedule


def _format_day(day: date) -> str:
    return f"{day:%b} {day.day}, {day.year}"


def generate_deadline_alerts(
    deadlines: Iterable[FilingDeadline],
    now: Optional[datetime] = None,
) -> List[DeadlineAlert]:
    """One alert per deadline, CRITICAL first, then by due date."""
    created_at = now or utcnow()
    alerts: List[DeadlineAlert] = []
    for item in deadlines:
        short_name = _filing_rule(item.filing_type).short_name
        when = _format_day(item.deadline)
        if item.is_overdue:
            severity = AlertSeverity.CRITICAL
            title = f"OVERDUE: {short_name} Filing"
            message = f"Filing was due {when}. Immediate action required."
        elif item.urgency is DeadlineUrgency.CRITICAL:
            severity = AlertSeverity.CRITICAL
            title = f"URGENT: {short_name} Deadline Approaching"
            message = f"Filing due in {item.business_days_remaining} business days ({when})."
        elif item.urgency is DeadlineUrgency.HIGH:
            severity = AlertSeverity.WARNING
            title = f"{short_name} Deadline Approaching"
            message = f"Filing due in {item.business_days_remaining} business days ({when})."
        else:
            severity = AlertSeverity.INFO
            title = f"Upcoming {short_name} Filing"
            message = f"Filing due {when} ({item.days_remaining} days)."

        alerts.append(
            DeadlineAlert(
                id=f"alert-{item.filing_type}-{item.deadline.isoformat()}",
                filing_type=item.filing_type,
                title=title,
                message=message,
                deadline=item.deadline,
                days_remaining=item.days_remaining,
                business_days_remaining=item.business_days_remaining,
                severity=severity,
                created_at=created_at,
            )
        )

    order = list(AlertSeverity)
    alerts.sort(key=lambda alert: (order.index(alert.severity), alert.deadline))
    return alerts


def _event_deadline(filing_type: str, event_type: str, event_date: Any, days: int, description: str) -> EventDeadline:
    start = as_date(event_date)
    return EventDeadline(
        filing_type=filing_type,
        event_type=event_type,
        event_date=start,
        deadline=add_business_days(start, days),
        days_allowed=days,
        description=description,
    )


def form_8k_deadline(event_date: Any) -> EventDeadline:
    return _event_deadline(
        "FORM_8K",
        "Material Event",
        event_date,
        4,
        "Form 8-K must be filed within 4 business days of triggering event",
    )


def super_8k_deadline(closing_date: Any) -> EventDeadline:
    return _event_deadline(
        "SUPER_8K",
        "De-SPAC Transaction Closing",
        closing_date,
        4,
        "Super 8-K must be filed within 4 business days of transaction closing",
    )


def form_4_deadline(transaction_date: Any) -> EventDeadline:
    return _event_deadline(
        "FORM_4",
        "Insider Transaction",
        transaction_date,
        2,
        "Form 4 must be filed within 2 business days of insider transaction",
    )


def schedule_13d_deadline(acquisition_date: Any) -> EventDeadline:
    start = as_date(acquisition_date)
    return EventDeadline(
        filing_type="SC_13D",
        event_type="5% Beneficial Ownership Acquired",
        event_date=start,
        deadline=start + timedelta(days=10),
        days_allowed=10,
        description="Schedule 13D must be filed within 10 calendar days of crossing 5% threshold",
        is_business_days=False,
    )


def calculate_spac_deadlines(
    ipo_date: Any,
    term_months: int = 24,
    extension_months: int = 0,
    vote_date: Any = None,
) -> SpacDeadlines:
    liquidation = as_date(ipo_date) + relativedelta(months=term_months + extension_months)
    vote = as_date(vote_date)
    return SpacDeadlines(
        liquidation_deadline=liquidation,
        extension_deadline=liquidation - timedelta(days=30),
        proxy_filing_deadline=subtract_business_days(vote, 20) if vote else None,
        redemption_deadline=subtract_business_days(vote, 2) if vote else None,
        vote_deadline=vote,
    )


def calculate_comment_response_deadline(
    received: Any,
    response_days: int = 10,
    today: Any = None,
) -> CommentResponseDeadline:
    received_day = as_date(received)
    reference = as_date(today) or utcnow().date()
    deadline = add_business_days(received_day, response_days)
    business_days_remaining = count_business_days(reference, deadline)
    return CommentResponseDeadline(
        comment_received_date=received_day,
        response_deadline=deadline,
        days_remaining=(deadline - reference).days,
        business_days_remaining=business_days_remaining,
        is_overdue=deadline < reference,
        can_request_extension=business_days_remaining >= 2,
    )
