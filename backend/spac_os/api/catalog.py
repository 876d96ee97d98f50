"""Read-only vocabulary and badge catalog for clients."""
from fastapi import APIRouter

from spac_os.services.badge_catalog import get_catalog_payload
from spac_os.services.vocabulary import (
    DeadlineStatus,
    DocumentStatus,
    DocumentType,
    FilingStatus,
    HolderType,
    PipeInvestorType,
    ScoreTrend,
    ShareClass,
    SpacPhase,
    SpacStatus,
    SubscriptionStatus,
    TargetStage,
    TaskPriority,
    TaskStatus,
    TeamRole,
    TimelineEventStatus,
    vocabulary_values,
)

router = APIRouter()

VOCABULARIES = (
    SpacStatus,
    SpacPhase,
    TargetStage,
    DocumentType,
    DocumentStatus,
    TaskStatus,
    TaskPriority,
    FilingStatus,
    ScoreTrend,
    PipeInvestorType,
    SubscriptionStatus,
    ShareClass,
    HolderType,
    TimelineEventStatus,
    DeadlineStatus,
    TeamRole,
)


@router.get("/badges")
async def get_badges():
    return get_catalog_payload()


@router.get("/vocabularies")
async def get_vocabularies():
    """Ordered values; ordered vocabularies (phase, stage) are listed in lifecycle order."""
    return {enum_cls.__name__: vocabulary_values(enum_cls) for enum_cls in VOCABULARIES}
