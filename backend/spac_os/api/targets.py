"""Deal pipeline API routes - funnel aggregation and stage moves."""
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Any, Optional, List, Dict

from spac_os.api.deps import get_auth_context, get_target_repository
from spac_os.api.errors import DOMAIN_ERRORS, http_error
from spac_os.auth import AuthContext
from spac_os.config import get_settings
from spac_os.log import get_logger
from spac_os.repositories.base import TargetRepository
from spac_os.services.badge_catalog import badge_for
from spac_os.services.metrics import aggregate_funnel
from spac_os.services.pipeline_stages import allowed_target_transitions, is_terminal_stage
from spac_os.services.vocabulary import TargetStage

router = APIRouter()
logger = get_logger(__name__)


class StageUpdate(BaseModel):
    stage: str


class TargetResponse(BaseModel):
    id: int
    spac_id: int
    name: str
    stage: str
    stage_badge: Dict[str, str]
    allowed_transitions: List[str]
    enterprise_value: Optional[float]
    evaluation_score: Optional[float]
    investment_thesis: Optional[Dict[str, Any]] = None


def _target_response(target) -> TargetResponse:
    stage = TargetStage(getattr(target.stage, "value", target.stage))
    return TargetResponse(
        id=target.id,
        spac_id=target.spac_id,
        name=target.name,
        stage=stage.value,
        stage_badge=badge_for(TargetStage, stage).to_dict(),
        allowed_transitions=[s.value for s in allowed_target_transitions(stage)],
        enterprise_value=target.enterprise_value,
        evaluation_score=target.evaluation_score,
        investment_thesis=(target.profile_json or {}).get("investment_thesis"),
    )


@router.get("/funnel")
async def get_funnel(
    spac_id: int = Query(...),
    ctx: AuthContext = Depends(get_auth_context),
    targets: TargetRepository = Depends(get_target_repository),
):
    """Per-stage counts and pipeline value, every stage present."""
    try:
        rows = await targets.list_for_spac(ctx, spac_id)
        funnel = aggregate_funnel(rows)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {
        "spac_id": spac_id,
        "total_targets": sum(stage.count for stage in funnel),
        "stages": [
            {**stage.as_dict(), "badge": badge_for(TargetStage, stage.stage).to_dict()}
            for stage in funnel
        ],
    }


@router.get("/stages/{stage}/transitions")
async def get_stage_transitions(stage: str):
    try:
        allowed = allowed_target_transitions(stage)
        terminal = is_terminal_stage(stage)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"stage": stage, "terminal": terminal, "allowed": [s.value for s in allowed]}


@router.get("/{target_id}", response_model=TargetResponse)
async def get_target(
    target_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    targets: TargetRepository = Depends(get_target_repository),
):
    try:
        return _target_response(await targets.get(ctx, target_id))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.patch("/{target_id}/stage", response_model=TargetResponse)
async def update_target_stage(
    target_id: int,
    body: StageUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    targets: TargetRepository = Depends(get_target_repository),
):
    try:
        target = await targets.update_stage(ctx, target_id, body.stage)
        return _target_response(target)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.post("/{target_id}/thesis")
async def request_investment_thesis(
    target_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    targets: TargetRepository = Depends(get_target_repository),
):
    """Queue an AI-written investment thesis; it shows up on GET /targets/{id}."""
    from spac_os.workers.tasks import write_investment_thesis

    try:
        await targets.get(ctx, target_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    current = get_settings()
    if not (current.anthropic_api_key or current.openai_api_key or current.gemini_api_key):
        raise HTTPException(status_code=503, detail="AI scoring is not configured")
    result = write_investment_thesis.delay(ctx.user_id, ctx.org_id, sorted(role.value for role in ctx.roles), target_id)
    logger.info("Queued investment thesis task %s for target %s", result.id, target_id)
    return {"task_id": str(result.id), "target_id": target_id, "status": "queued"}
