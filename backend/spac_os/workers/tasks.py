"""Celery tasks: AI target scoring and SEC EDGAR filing sync.

Tasks receive the caller's identity as plain JSON values and rebuild the
AuthContext, so repository calls stay org-scoped inside the worker.
"""
import asyncio
from typing import Any, Dict, List, Optional

from spac_os.auth import AuthContext
from spac_os.config import get_settings
from spac_os.log import get_logger
from spac_os.models.base import worker_session
from spac_os.repositories.base import ScoreHistoryRepository, SpacRepository, TargetRepository
from spac_os.repositories.sql import SqlScoreHistoryRepository, SqlSpacRepository, SqlTargetRepository
from spac_os.services.analysis_cache import AnalysisCache
from spac_os.services.deal_scorer import DealScoreParseError, TargetInfo, generate_investment_thesis, score_deal
from spac_os.services.edgar import EdgarClient, EdgarClientError
from spac_os.services.llm.types import LLMOrchestrationError
from spac_os.services.score_history import record_score
from spac_os.workers.celery_app import celery_app

logger = get_logger(__name__)
settings = get_settings()


def target_info_for(target) -> TargetInfo:
    """Merge the target's columns over its stored profile for the scoring prompt."""
    profile = dict(target.profile_json or {})
    profile.update(
        {
            "name": target.name,
            "industry": target.industry,
            "sector": target.sector,
            "description": target.description,
            "enterprise_value": target.enterprise_value,
            "revenue": target.revenue,
            "ebitda": target.ebitda,
        }
    )
    return TargetInfo.from_record(profile)


async def run_scoring(
    ctx: AuthContext,
    target_id: int,
    targets: TargetRepository,
    scores: ScoreHistoryRepository,
    weights: Optional[Dict[str, float]] = None,
    orchestrator=None,
    cache=None,
) -> Dict[str, Any]:
    target = await targets.get(ctx, target_id)
    info = target_info_for(target)
    try:
        deal_score = await asyncio.to_thread(
            score_deal, info, weights=weights, orchestrator=orchestrator, cache=cache
        )
    except (LLMOrchestrationError, DealScoreParseError) as exc:
        logger.error("AI scoring failed for target %s: %s", target_id, exc)
        return {"target_id": target_id, "error": str(exc)}

    view = await record_score(
        scores,
        ctx,
        target_id,
        deal_score.to_score_input(),
        limit=settings.score_history_default_limit,
    )
    await targets.set_evaluation_score(ctx, target_id, deal_score.overall_score)
    return {
        "target_id": target_id,
        "overall_score": deal_score.overall_score,
        "grade": deal_score.grade,
        "recommendation": deal_score.recommendation,
        "trend": view.trend.as_dict(),
    }


async def run_thesis(
    ctx: AuthContext,
    target_id: int,
    targets: TargetRepository,
    orchestrator=None,
) -> Dict[str, Any]:
    target = await targets.get(ctx, target_id)
    try:
        thesis = await asyncio.to_thread(generate_investment_thesis, target_info_for(target), orchestrator=orchestrator)
    except (LLMOrchestrationError, DealScoreParseError) as exc:
        logger.error("Investment thesis failed for target %s: %s", target_id, exc)
        return {"target_id": target_id, "error": str(exc)}
    await targets.save_thesis(ctx, target_id, thesis)
    return {"target_id": target_id, "summary": thesis["summary"]}


async def run_edgar_sync(
    ctx: AuthContext,
    spac_id: int,
    spacs: SpacRepository,
    client: Optional[EdgarClient] = None,
) -> Dict[str, Any]:
    spac = await spacs.get(ctx, spac_id)
    if not spac.cik:
        return {"spac_id": spac_id, "error": "SPAC has no CIK"}
    edgar = client or EdgarClient()
    try:
        filings = await asyncio.to_thread(edgar.recent_filings, spac.cik)
    except EdgarClientError as exc:
        logger.error("EDGAR sync failed for SPAC %s: %s", spac_id, exc)
        return {"spac_id": spac_id, "error": str(exc)}
    added = await spacs.add_filings(ctx, spac_id, filings)
    logger.info("EDGAR sync for SPAC %s: %d fetched, %d new", spac_id, len(filings), added)
    return {"spac_id": spac_id, "fetched": len(filings), "added": added}


async def _with_session(work):
    async with worker_session() as db:
        return await work(db)


@celery_app.task(name="spac_os.workers.tasks.score_target")
def score_target(
    user_id: str,
    org_id: str,
    roles: List[str],
    target_id: int,
    weights: Optional[Dict[str, float]] = None,
):
    """Score a target with the LLM routes and append the result to its history."""
    ctx = AuthContext.build(user_id, org_id, roles)
    return asyncio.run(
        _with_session(
            lambda db: run_scoring(
                ctx,
                target_id,
                SqlTargetRepository(db),
                SqlScoreHistoryRepository(db),
                weights=weights,
                cache=AnalysisCache(),
            )
        )
    )


@celery_app.task(name="spac_os.workers.tasks.sync_edgar_filings")
def sync_edgar_filings(user_id: str, org_id: str, roles: List[str], spac_id: int):
    """Pull recent SEC filings for a SPAC and store the ones not seen before."""
    ctx = AuthContext.build(user_id, org_id, roles)
    return asyncio.run(_with_session(lambda db: run_edgar_sync(ctx, spac_id, SqlSpacRepository(db))))


@celery_app.task(name="spac_os.workers.tasks.write_investment_thesis")
def write_investment_thesis(user_id: str, org_id: str, roles: List[str], target_id: int):
    """Draft an investment thesis for a target and keep it on the target profile."""
    ctx = AuthContext.build(user_id, org_id, roles)
    return asyncio.run(_with_session(lambda db: run_thesis(ctx, target_id, SqlTargetRepository(db))))
