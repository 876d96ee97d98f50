"""Closed vocabularies for SPAC lifecycle, pipeline, document, task and filing states."""
from __future__ import annotations

from enum import Enum
from typing import Any, List, Type, TypeVar


class SpacStatus(str, Enum):
    draft = "draft"
    active = "active"
    completed = "completed"
    liquidated = "liquidated"


class SpacPhase(str, Enum):
    # Declaration order is lifecycle order.
    formation = "formation"
    pre_ipo = "pre_ipo"
    ipo = "ipo"
    target_search = "target_search"
    due_diligence = "due_diligence"
    definitive_agreement = "definitive_agreement"
    proxy_vote = "proxy_vote"
    closing = "closing"
    post_merger = "post_merger"


class TargetStage(str, Enum):
    sourcing = "sourcing"
    initial_screening = "initial_screening"
    deep_evaluation = "deep_evaluation"
    negotiation = "negotiation"
    execution = "execution"
    closed = "closed"
    passed = "passed"


class DocumentType(str, Enum):
    folder = "folder"
    file = "file"


class DocumentStatus(str, Enum):
    DRAFT = "DRAFT"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    SUBMITTED = "SUBMITTED"
    FINAL = "FINAL"
    ACCEPTED = "ACCEPTED"
    AMENDED = "AMENDED"
    ARCHIVED = "ARCHIVED"


class TaskStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class FilingStatus(str, Enum):
    DRAFT = "DRAFT"
    UNDER_REVIEW = "UNDER_REVIEW"
    SUBMITTED = "SUBMITTED"
    ACCEPTED = "ACCEPTED"
    AMENDED = "AMENDED"
    OVERDUE = "OVERDUE"


class ScoreTrend(str, Enum):
    improving = "improving"
    declining = "declining"
    stable = "stable"
    new = "new"


class PipeInvestorType(str, Enum):
    institutional = "institutional"
    hedge_fund = "hedge_fund"
    family_office = "family_office"
    strategic = "strategic"
    anchor = "anchor"


class SubscriptionStatus(str, Enum):
    committed = "committed"
    soft_circled = "soft_circled"
    in_diligence = "in_diligence"
    declined = "declined"
    pending = "pending"


class ShareClass(str, Enum):
    class_a = "class_a"
    class_b = "class_b"
    public_warrants = "public_warrants"
    private_warrants = "private_warrants"
    options = "options"
    rsus = "rsus"


class HolderType(str, Enum):
    sponsor = "sponsor"
    public = "public"
    institution = "institution"
    management = "management"
    pipe_investor = "pipe_investor"


class TimelineEventStatus(str, Enum):
    completed = "completed"
    current = "current"
    upcoming = "upcoming"


class DeadlineStatus(str, Enum):
    OVERDUE = "OVERDUE"
    DUE_TODAY = "DUE_TODAY"
    DUE_SOON = "DUE_SOON"
    UPCOMING = "UPCOMING"
    FUTURE = "FUTURE"


class FilerStatus(str, Enum):
    LARGE_ACCELERATED = "LARGE_ACCELERATED"
    ACCELERATED = "ACCELERATED"
    NON_ACCELERATED = "NON_ACCELERATED"
    SMALLER_REPORTING = "SMALLER_REPORTING"
    EMERGING_GROWTH = "EMERGING_GROWTH"


class DeadlineUrgency(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class PeriodicFilingStatus(str, Enum):
    UPCOMING = "UPCOMING"
    DUE = "DUE"
    OVERDUE = "OVERDUE"


class AlertSeverity(str, Enum):
    # Declaration order is display order.
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class AlertType(str, Enum):
    DEADLINE_MISSED = "DEADLINE_MISSED"
    DEADLINE_CRITICAL = "DEADLINE_CRITICAL"
    DEADLINE_APPROACHING = "DEADLINE_APPROACHING"
    FILING_REQUIRED = "FILING_REQUIRED"


class TeamRole(str, Enum):
    owner = "owner"
    admin = "admin"
    member = "member"
    viewer = "viewer"


BASIC_SHARE_CLASSES = (ShareClass.class_a, ShareClass.class_b)
TERMINAL_TARGET_STAGES = (TargetStage.closed, TargetStage.passed)
TERMINAL_SPAC_STATUSES = (SpacStatus.completed, SpacStatus.liquidated)

E = TypeVar("E", bound=Enum)


class InvalidVocabularyError(ValueError):
    def __init__(self, vocabulary: str, value: Any) -> None:
        super().__init__(f"{value!r} is not a valid {vocabulary}")
        self.vocabulary = vocabulary
        self.value = value


def parse_vocabulary(enum_cls: Type[E], raw: Any) -> E:
    """Resolve `raw` to a member of `enum_cls` or raise InvalidVocabularyError.

    Matching is exact on the stored value (surrounding whitespace ignored).
    There is no fallback bucket: a value from the data source that is not in
    the vocabulary is a data-integrity problem for the caller to report.
    """
    if isinstance(raw, enum_cls):
        return raw
    if isinstance(raw, Enum):
        raw = raw.value
    if not isinstance(raw, str):
        raise InvalidVocabularyError(enum_cls.__name__, raw)
    try:
        return enum_cls(raw.strip())
    except ValueError:
        raise InvalidVocabularyError(enum_cls.__name__, raw) from None


def vocabulary_values(enum_cls: Type[Enum]) -> List[str]:
    return [member.value for member in enum_cls]


def phase_index(phase: Any) -> int:
    return list(SpacPhase).index(parse_vocabulary(SpacPhase, phase))


def stage_index(stage: Any) -> int:
    return list(TargetStage).index(parse_vocabulary(TargetStage, stage))
