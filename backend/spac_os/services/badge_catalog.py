"""Badge variant catalog for every closed status/stage vocabulary."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Type

from spac_os.services.vocabulary import (
    DocumentStatus,
    FilingStatus,
    SpacPhase,
    SpacStatus,
    SubscriptionStatus,
    TargetStage,
    TaskPriority,
    TaskStatus,
    parse_vocabulary,
)

VARIANTS = ("primary", "secondary", "success", "warning", "danger", "info")


@dataclass(frozen=True)
class Badge:
    variant: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"variant": self.variant, "label": self.label}


SPAC_STATUS_BADGES: Dict[SpacStatus, Badge] = {
    SpacStatus.draft: Badge("secondary", "Draft"),
    SpacStatus.active: Badge("primary", "Active"),
    SpacStatus.completed: Badge("success", "Completed"),
    SpacStatus.liquidated: Badge("danger", "Liquidated"),
}

SPAC_PHASE_BADGES: Dict[SpacPhase, Badge] = {
    SpacPhase.formation: Badge("secondary", "Formation"),
    SpacPhase.pre_ipo: Badge("secondary", "Pre-IPO"),
    SpacPhase.ipo: Badge("info", "IPO"),
    SpacPhase.target_search: Badge("primary", "Target Search"),
    SpacPhase.due_diligence: Badge("primary", "Due Diligence"),
    SpacPhase.definitive_agreement: Badge("info", "Definitive Agreement"),
    SpacPhase.proxy_vote: Badge("warning", "Proxy Vote"),
    SpacPhase.closing: Badge("warning", "Closing"),
    SpacPhase.post_merger: Badge("success", "Post-Merger"),
}

TARGET_STAGE_BADGES: Dict[TargetStage, Badge] = {
    TargetStage.sourcing: Badge("secondary", "Sourcing"),
    TargetStage.initial_screening: Badge("info", "Initial Screening"),
    TargetStage.deep_evaluation: Badge("primary", "Deep Evaluation"),
    TargetStage.negotiation: Badge("warning", "Negotiation"),
    TargetStage.execution: Badge("warning", "Execution"),
    TargetStage.closed: Badge("success", "Closed"),
    TargetStage.passed: Badge("danger", "Passed"),
}

DOCUMENT_STATUS_BADGES: Dict[DocumentStatus, Badge] = {
    DocumentStatus.DRAFT: Badge("secondary", "Draft"),
    DocumentStatus.UNDER_REVIEW: Badge("warning", "Under Review"),
    DocumentStatus.APPROVED: Badge("success", "Approved"),
    DocumentStatus.SUBMITTED: Badge("info", "Submitted"),
    DocumentStatus.FINAL: Badge("success", "Final"),
    DocumentStatus.ACCEPTED: Badge("success", "Accepted"),
    DocumentStatus.AMENDED: Badge("warning", "Amended"),
    DocumentStatus.ARCHIVED: Badge("secondary", "Archived"),
}

TASK_STATUS_BADGES: Dict[TaskStatus, Badge] = {
    TaskStatus.NOT_STARTED: Badge("secondary", "Not Started"),
    TaskStatus.IN_PROGRESS: Badge("primary", "In Progress"),
    TaskStatus.COMPLETED: Badge("success", "Completed"),
    TaskStatus.BLOCKED: Badge("danger", "Blocked"),
    TaskStatus.CANCELLED: Badge("secondary", "Cancelled"),
}

TASK_PRIORITY_BADGES: Dict[TaskPriority, Badge] = {
    TaskPriority.LOW: Badge("secondary", "Low"),
    TaskPriority.MEDIUM: Badge("info", "Medium"),
    TaskPriority.HIGH: Badge("warning", "High"),
    TaskPriority.CRITICAL: Badge("danger", "Critical"),
}

FILING_STATUS_BADGES: Dict[FilingStatus, Badge] = {
    FilingStatus.DRAFT: Badge("secondary", "Draft"),
    FilingStatus.UNDER_REVIEW: Badge("warning", "Under Review"),
    FilingStatus.SUBMITTED: Badge("info", "Submitted"),
    FilingStatus.ACCEPTED: Badge("success", "Accepted"),
    FilingStatus.AMENDED: Badge("warning", "Amended"),
    FilingStatus.OVERDUE: Badge("danger", "Overdue"),
}

SUBSCRIPTION_STATUS_BADGES: Dict[SubscriptionStatus, Badge] = {
    SubscriptionStatus.committed: Badge("success", "Committed"),
    SubscriptionStatus.soft_circled: Badge("primary", "Soft Circled"),
    SubscriptionStatus.in_diligence: Badge("warning", "In Diligence"),
    SubscriptionStatus.declined: Badge("danger", "Declined"),
    SubscriptionStatus.pending: Badge("secondary", "Pending"),
}

CATALOG: Dict[Type[Enum], Mapping[Any, Badge]] = {
    SpacStatus: SPAC_STATUS_BADGES,
    SpacPhase: SPAC_PHASE_BADGES,
    TargetStage: TARGET_STAGE_BADGES,
    DocumentStatus: DOCUMENT_STATUS_BADGES,
    TaskStatus: TASK_STATUS_BADGES,
    TaskPriority: TASK_PRIORITY_BADGES,
    FilingStatus: FILING_STATUS_BADGES,
    SubscriptionStatus: SUBSCRIPTION_STATUS_BADGES,
}


def missing_badges(enum_cls: Type[Enum], table: Mapping[Any, Badge]) -> List[str]:
    return [member.value for member in enum_cls if member not in table]


def _check_exhaustive() -> None:
    problems: List[str] = []
    for enum_cls, table in CATALOG.items():
        missing = missing_badges(enum_cls, table)
        if missing:
            problems.append(f"{enum_cls.__name__}: {', '.join(missing)}")
        bad_variants = sorted({badge.variant for badge in table.values()} - set(VARIANTS))
        if bad_variants:
            problems.append(f"{enum_cls.__name__}: unknown variants {', '.join(bad_variants)}")
    if problems:
        raise RuntimeError("Badge catalog is not exhaustive: " + "; ".join(problems))


_check_exhaustive()


def badge_for(enum_cls: Type[Enum], value: Any) -> Badge:
    table = CATALOG.get(enum_cls)
    if table is None:
        raise KeyError(f"No badge table for {enum_cls.__name__}")
    return table[parse_vocabulary(enum_cls, value)]


def get_catalog_payload() -> Dict[str, Any]:
    return {
        enum_cls.__name__: {member.value: badge.to_dict() for member, badge in table.items()}
        for enum_cls, table in CATALOG.items()
    }
