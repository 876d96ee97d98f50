"""Read-side SPAC lifecycle timeline built from key dates and tasks."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from spac_os.services.common import as_utc_datetime, read_field, utcnow
from spac_os.services.vocabulary import (
    SpacPhase,
    SpacStatus,
    TaskStatus,
    TimelineEventStatus,
    parse_vocabulary,
)


@dataclass
class TimelineEvent:
    id: str
    date: datetime
    type: str
    title: str
    description: str
    status: TimelineEventStatus

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
        }


@dataclass
class Timeline:
    events: List[TimelineEvent] = field(default_factory=list)
    # Kept apart: an elapsed deadline says nothing about whether the deal closed.
    deadline_passed: bool = False
    combination_closed: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "events": [event.as_dict() for event in self.events],
            "deadline_passed": self.deadline_passed,
            "combination_closed": self.combination_closed,
        }


def _format_large_number(value: float) -> str:
    if value >= 1_000_000_000:
        return f"${value / 1_000_000_000:.1f}B"
    if value >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"${value / 1_000:.1f}K"
    return f"${value:,.0f}"


def _task_event(task: Any, now: datetime) -> Optional[TimelineEvent]:
    status = parse_vocabulary(TaskStatus, read_field(task, "status"))
    event_date = as_utc_datetime(read_field(task, "due_date")) or as_utc_datetime(read_field(task, "created_at"))
    if event_date is None:
        return None
    if status == TaskStatus.COMPLETED:
        event_status = TimelineEventStatus.completed
    elif event_date < now:
        event_status = TimelineEventStatus.current
    else:
        event_status = TimelineEventStatus.upcoming
    return TimelineEvent(
        id=str(read_field(task, "id")),
        date=event_date,
        type="task",
        title=str(read_field(task, "title", "")),
        description=str(read_field(task, "description", "")),
        status=event_status,
    )


def is_combination_closed(spac: Any) -> bool:
    status = read_field(spac, "status")
    phase = read_field(spac, "phase")
    if status is not None and parse_vocabulary(SpacStatus, status) == SpacStatus.completed:
        return True
    return phase is not None and parse_vocabulary(SpacPhase, phase) == SpacPhase.post_merger


def project_timeline(
    spac: Any,
    tasks: Optional[Iterable[Any]] = None,
    now: Optional[datetime] = None,
) -> Timeline:
    """Merge the IPO date, tasks and the SPAC deadline into one ascending event list.

    Equal timestamps keep insertion order: IPO, tasks in source order, deadline.
    """
    reference = as_utc_datetime(now) or utcnow()
    events: List[TimelineEvent] = []

    ipo_date = as_utc_datetime(read_field(spac, "ipo_date"))
    if ipo_date is not None:
        trust_amount = read_field(spac, "trust_amount")
        raised = f" raising {_format_large_number(float(trust_amount))}" if trust_amount else ""
        events.append(
            TimelineEvent(
                id="ipo",
                date=ipo_date,
                type="ipo",
                title="IPO Completed",
                description=f"SPAC went public{raised}",
                status=TimelineEventStatus.completed,
            )
        )

    source_tasks = tasks if tasks is not None else (read_field(spac, "tasks") or [])
    for task in source_tasks:
        event = _task_event(task, reference)
        if event is not None:
            events.append(event)

    deadline_passed = False
    deadline_date = as_utc_datetime(read_field(spac, "deadline_date"))
    if deadline_date is not None:
        deadline_passed = deadline_date < reference
        events.append(
            TimelineEvent(
                id="deadline",
                date=deadline_date,
                type="closing",
                title="SPAC Deadline",
                description="Final deadline for business combination",
                status=TimelineEventStatus.completed if deadline_passed else TimelineEventStatus.upcoming,
            )
        )

    events.sort(key=lambda event: event.date)
    return Timeline(
        events=events,
        deadline_passed=deadline_passed,
        combination_closed=is_combination_closed(spac),
    )
