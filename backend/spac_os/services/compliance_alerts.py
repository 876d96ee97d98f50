"""Compliance alerts for a SPAC: its business-combination deadline and open filings."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from spac_os.services.common import as_date, as_utc_datetime, read_field, utcnow
from spac_os.services.filing_deadlines import (
    FILING_RULES,
    FilingDeadline,
    calculate_filing_deadline,
    generate_periodic_filing_schedule,
)
from spac_os.services.metrics import days_until
from spac_os.services.vocabulary import (
    TERMINAL_SPAC_STATUSES,
    AlertSeverity,
    AlertType,
    FilerStatus,
    FilingStatus,
    PeriodicFilingStatus,
    SpacStatus,
    parse_vocabulary,
)

CRITICAL_WITHIN_DAYS = 3
APPROACHING_WITHIN_DAYS = 7

# A filing in one of these states is on record with the SEC.
FILED_STATUSES = (FilingStatus.SUBMITTED, FilingStatus.ACCEPTED, FilingStatus.AMENDED)


@dataclass
class ComplianceAlert:
    type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    due_date: Optional[datetime]
    spac_id: Optional[int]
    spac_name: Optional[str]
    filing_id: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "spac_id": self.spac_id,
            "spac_name": self.spac_name,
            "filing_id": self.filing_id,
        }


def _spac_alert(spac: Any, now: datetime) -> Optional[ComplianceAlert]:
    due = as_utc_datetime(read_field(spac, "deadline_date"))
    if due is None:
        return None
    days = days_until(due, now)
    name = read_field(spac, "name")
    ticker = read_field(spac, "ticker") or "N/A"
    common = {"due_date": due, "spac_id": read_field(spac, "id"), "spac_name": name}

    if days < 0:
        return ComplianceAlert(
            type=AlertType.DEADLINE_MISSED,
            severity=AlertSeverity.CRITICAL,
            title=f"SPAC Deadline Missed: {name}",
            description=(
                f"The business combination deadline for {name} ({ticker}) was {abs(days)} days ago. "
                "Immediate action required."
            ),
            **common,
        )
    if days <= CRITICAL_WITHIN_DAYS:
        return ComplianceAlert(
            type=AlertType.DEADLINE_CRITICAL,
            severity=AlertSeverity.CRITICAL,
            title=f"Critical: SPAC Deadline in {days} Days",
            description=(
                f"{name} ({ticker}) has a business combination deadline in {days} days. Urgent action required."
            ),
            **common,
        )
    if days <= APPROACHING_WITHIN_DAYS:
        return ComplianceAlert(
            type=AlertType.DEADLINE_APPROACHING,
            severity=AlertSeverity.WARNING,
            title=f"SPAC Deadline Approaching: {name}",
            description=f"{name} ({ticker}) has a business combination deadline in {days} days.",
            **common,
        )
    return None


def _filing_alert(filing: Any, spac: Any, now: datetime) -> Optional[ComplianceAlert]:
    status = parse_vocabulary(FilingStatus, read_field(filing, "status"))
    due = as_utc_datetime(read_field(filing, "due_date"))
    if status in FILED_STATUSES or due is None:
        return None
    days = days_until(due, now)
    form = read_field(filing, "form_type")
    name = read_field(spac, "name")
    common = {
        "due_date": due,
        "spac_id": read_field(spac, "id"),
        "spac_name": name,
        "filing_id": read_field(filing, "id"),
    }

    if days < 0:
        return ComplianceAlert(
            type=AlertType.DEADLINE_MISSED,
            severity=AlertSeverity.CRITICAL,
            title=f"Filing Deadline Missed: {form}",
            description=f"The {form} filing for {name} was due {abs(days)} days ago. File immediately to avoid penalties.",
            **common,
        )
    if days <= CRITICAL_WITHIN_DAYS:
        return ComplianceAlert(
            type=AlertType.DEADLINE_CRITICAL,
            severity=AlertSeverity.CRITICAL,
            title=f"Critical: {form} Due in {days} Days",
            description=f"{form} filing for {name} is due in {days} days. Finalize and file promptly.",
            **common,
        )
    if days <= APPROACHING_WITHIN_DAYS:
        return ComplianceAlert(
            type=AlertType.FILING_REQUIRED,
            severity=AlertSeverity.WARNING,
            title=f"Filing Due Soon: {form}",
            description=f"{form} filing for {name} is due in {days} days.",
            **common,
        )
    return None


def _filed_after(filings: List[Any], short_name: str, period_end: date) -> bool:
    for filing in filings:
        filed = as_date(read_field(filing, "filed_date"))
        status = parse_vocabulary(FilingStatus, read_field(filing, "status"))
        if read_field(filing, "form_type") == short_name and status in FILED_STATUSES and filed and filed > period_end:
            return True
    return False


def open_periodic_deadlines(
    filings: Iterable[Any],
    fiscal_year_end_month: int = 12,
    filer_status: Any = FilerStatus.NON_ACCELERATED,
    today: Any = None,
) -> List[FilingDeadline]:
    """10-K/10-Q deadlines whose period has closed and that have no filing on record."""
    reference = as_date(today) or utcnow().date()
    on_record = list(filings)
    open_deadlines: List[FilingDeadline] = []
    for entry in generate_periodic_filing_schedule(fiscal_year_end_month, filer_status, today=reference):
        if entry.status is PeriodicFilingStatus.UPCOMING:
            continue
        if _filed_after(on_record, FILING_RULES[entry.filing_type].short_name, entry.period_end):
            continue
        open_deadlines.append(calculate_filing_deadline(entry.filing_type, entry.period_end, filer_status, reference))
    return open_deadlines


def generate_alerts(spac: Any, filings: Iterable[Any], now: Optional[datetime] = None) -> List[ComplianceAlert]:
    """Alerts for a live SPAC, most severe first, then soonest due.

    Completed and liquidated SPACs raise nothing. Filings already on record
    and anything due more than a week out are skipped.
    """
    reference = as_utc_datetime(now) or utcnow()
    if parse_vocabulary(SpacStatus, read_field(spac, "status")) in TERMINAL_SPAC_STATUSES:
        return []

    alerts: List[ComplianceAlert] = []
    spac_alert = _spac_alert(spac, reference)
    if spac_alert is not None:
        alerts.append(spac_alert)
    for filing in filings:
        filing_alert = _filing_alert(filing, spac, reference)
        if filing_alert is not None:
            alerts.append(filing_alert)

    order = list(AlertSeverity)
    alerts.sort(key=lambda alert: (order.index(alert.severity), alert.due_date))
    return alerts
