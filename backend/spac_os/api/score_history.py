"""Score history API routes. This is the only place the score trend is computed for clients."""
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime

from spac_os.api.deps import get_auth_context, get_score_history_repository, get_target_repository
from spac_os.api.errors import DOMAIN_ERRORS, http_error
from spac_os.auth import AuthContext
from spac_os.config import get_settings
from spac_os.log import get_logger
from spac_os.repositories.base import ScoreHistoryRepository, TargetRepository
from spac_os.services.deal_scorer import resolve_weights
from spac_os.services.score_history import (
    ScoreHistoryView,
    ScoreInput,
    load_history,
    record_score,
    score_comparison,
    sparkline_series,
)

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter()


class ScoreCreate(BaseModel):
    target_id: int
    overall_score: float = Field(..., ge=0, le=100)
    management_score: Optional[float] = Field(default=None, ge=0, le=10)
    market_score: Optional[float] = Field(default=None, ge=0, le=10)
    financial_score: Optional[float] = Field(default=None, ge=0, le=10)
    operational_score: Optional[float] = Field(default=None, ge=0, le=10)
    transaction_score: Optional[float] = Field(default=None, ge=0, le=10)
    thesis: Optional[str] = None


class ScoreRequest(BaseModel):
    target_id: int
    weights: Optional[Dict[str, float]] = None


class ScoreEntryResponse(BaseModel):
    id: int
    target_id: int
    overall_score: int
    management_score: Optional[int]
    market_score: Optional[int]
    financial_score: Optional[int]
    operational_score: Optional[int]
    transaction_score: Optional[int]
    thesis: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


def _history_payload(target_id: int, view: ScoreHistoryView) -> Dict[str, Any]:
    return {
        "target_id": target_id,
        "history": [ScoreEntryResponse.model_validate(entry).model_dump(mode="json") for entry in view.history],
        "trend": view.trend.as_dict(),
        "sparkline": sparkline_series(view.history),
    }


@router.get("")
async def get_score_history(
    target_id: int = Query(...),
    limit: int = Query(default=settings.score_history_default_limit, ge=1, le=settings.score_history_max_limit),
    ctx: AuthContext = Depends(get_auth_context),
    scores: ScoreHistoryRepository = Depends(get_score_history_repository),
):
    """Newest-first history with the trend computed over the returned window."""
    try:
        view = await load_history(scores, ctx, target_id, limit)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _history_payload(target_id, view)


@router.post("")
async def create_score_entry(
    body: ScoreCreate,
    limit: int = Query(default=settings.score_history_default_limit, ge=1, le=settings.score_history_max_limit),
    ctx: AuthContext = Depends(get_auth_context),
    scores: ScoreHistoryRepository = Depends(get_score_history_repository),
):
    """Append a score, then return the re-read history and trend."""
    score_input = ScoreInput(**body.model_dump(exclude={"target_id"}))
    try:
        view = await record_score(scores, ctx, body.target_id, score_input, limit)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _history_payload(body.target_id, view)


@router.get("/comparison")
async def get_score_comparison(
    target_id: int = Query(...),
    start: datetime = Query(...),
    end: datetime = Query(...),
    ctx: AuthContext = Depends(get_auth_context),
    scores: ScoreHistoryRepository = Depends(get_score_history_repository),
):
    try:
        comparison = await score_comparison(scores, ctx, target_id, start, end)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {
        "target_id": target_id,
        "start_score": comparison.start_entry.overall_score if comparison.start_entry else None,
        "end_score": comparison.end_entry.overall_score if comparison.end_entry else None,
        "change": comparison.change,
        "percent_change": comparison.percent_change,
    }


@router.post("/score")
async def request_ai_score(
    body: ScoreRequest,
    ctx: AuthContext = Depends(get_auth_context),
    targets: TargetRepository = Depends(get_target_repository),
):
    """Queue an AI scoring run; the result lands in the score history."""
    from spac_os.workers.tasks import score_target

    try:
        await targets.get(ctx, body.target_id)
        resolve_weights(body.weights)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    current = get_settings()
    if not (current.anthropic_api_key or current.openai_api_key or current.gemini_api_key):
        raise HTTPException(status_code=503, detail="AI scoring is not configured")
    result = score_target.delay(
        ctx.user_id,
        ctx.org_id,
        sorted(role.value for role in ctx.roles),
        body.target_id,
        body.weights,
    )
    logger.info("Queued AI scoring task %s for target %s", result.id, body.target_id)
    return {"task_id": str(result.id), "target_id": body.target_id, "status": "queued"}
