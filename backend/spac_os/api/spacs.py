"""SPAC API routes - derived metrics, timeline, deadlines, alerts and lifecycle moves."""
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Optional, List, Dict
from datetime import datetime

from spac_os.api.deps import get_auth_context, get_spac_repository
from spac_os.api.errors import DOMAIN_ERRORS, http_error
from spac_os.auth import AuthContext
from spac_os.log import get_logger
from spac_os.repositories.base import SpacRepository
from spac_os.services.badge_catalog import badge_for
from spac_os.services.compliance_alerts import generate_alerts, open_periodic_deadlines
from spac_os.services.filing_deadlines import (
    calculate_spac_deadlines,
    generate_deadline_alerts,
    generate_periodic_filing_schedule,
)
from spac_os.services.metrics import compute_spac_metrics, deadline_status, format_fraction
from spac_os.services.pipeline_stages import allowed_status_transitions
from spac_os.services.timeline import project_timeline
from spac_os.services.vocabulary import FilerStatus, FilingStatus, SpacPhase, SpacStatus

logger = get_logger(__name__)

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class StatusUpdate(BaseModel):
    status: str


class PhaseUpdate(BaseModel):
    phase: str


class SpacResponse(BaseModel):
    id: int
    name: str
    ticker: Optional[str]
    cik: Optional[str]
    status: str
    status_badge: Dict[str, str]
    phase: Optional[str]
    phase_badge: Optional[Dict[str, str]]
    allowed_status_transitions: List[str]
    ipo_date: Optional[datetime]
    deadline_date: Optional[datetime]
    trust_amount: Optional[float]
    counts: Dict[str, int] = {}


class SyncResponse(BaseModel):
    task_id: str
    spac_id: int
    status: str = "queued"


def _spac_response(spac, counts: Optional[Dict[str, int]] = None) -> SpacResponse:
    status = SpacStatus(getattr(spac.status, "value", spac.status))
    phase = SpacPhase(getattr(spac.phase, "value", spac.phase)) if spac.phase is not None else None
    return SpacResponse(
        id=spac.id,
        name=spac.name,
        ticker=spac.ticker,
        cik=spac.cik,
        status=status.value,
        status_badge=badge_for(SpacStatus, status).to_dict(),
        phase=phase.value if phase else None,
        phase_badge=badge_for(SpacPhase, phase).to_dict() if phase else None,
        allowed_status_transitions=[s.value for s in allowed_status_transitions(status)],
        ipo_date=spac.ipo_date,
        deadline_date=spac.deadline_date,
        trust_amount=spac.trust_amount,
        counts=counts or {},
    )


# ============================================================================
# Routes
# ============================================================================

@router.get("/{spac_id}", response_model=SpacResponse)
async def get_spac(
    spac_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    """Get a SPAC with badges and related record counts."""
    try:
        spac = await spacs.get(ctx, spac_id)
        counts = await spacs.related_counts(ctx, spac_id)
        return _spac_response(spac, counts)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{spac_id}/metrics")
async def get_spac_metrics(
    spac_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    """Days remaining, urgency flags, trust per share and redemption rate."""
    try:
        spac = await spacs.get(ctx, spac_id)
        metrics = compute_spac_metrics(spac)
        payload = metrics.as_dict()
        payload["redemption_rate_display"] = format_fraction(spac.redemption_rate)
        return payload
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{spac_id}/timeline")
async def get_spac_timeline(
    spac_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    try:
        spac = await spacs.get(ctx, spac_id)
        tasks = await spacs.list_tasks(ctx, spac_id)
        return project_timeline(spac, tasks).as_dict()
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{spac_id}/deadlines")
async def get_spac_deadlines(
    spac_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    """Regulatory deadlines derived from the IPO date, plus known filings."""
    try:
        spac = await spacs.get(ctx, spac_id)
        if spac.ipo_date is None:
            raise HTTPException(status_code=422, detail="SPAC has no IPO date")
        deadlines = calculate_spac_deadlines(
            spac.ipo_date,
            term_months=spac.term_months if spac.term_months is not None else 24,
            extension_months=spac.extension_months or 0,
            vote_date=spac.vote_date,
        )
        entries = []
        for key, value in deadlines.as_dict().items():
            status = deadline_status(value) if value else None
            entries.append({"name": key, "date": value, "status": status.value if status else None})

        filings = []
        for filing in await spacs.list_filings(ctx, spac_id):
            filing_status = FilingStatus(getattr(filing.status, "value", filing.status))
            filings.append(
                {
                    "id": filing.id,
                    "form_type": filing.form_type,
                    "filed_date": filing.filed_date.isoformat() if filing.filed_date else None,
                    "due_date": filing.due_date.isoformat() if filing.due_date else None,
                    "status": filing_status.value,
                    "status_badge": badge_for(FilingStatus, filing_status).to_dict(),
                    "edgar_url": filing.edgar_url,
                }
            )
        return {"spac_id": spac_id, "deadlines": entries, "filings": filings}
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{spac_id}/filing-calendar")
async def get_spac_filing_calendar(
    spac_id: int,
    filer_status: str = Query(default=FilerStatus.NON_ACCELERATED.value),
    fiscal_year_end_month: int = Query(default=12, ge=1, le=12),
    years_ahead: int = Query(default=2, ge=0, le=5),
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    """10-K and 10-Q due dates for the current fiscal year onward."""
    try:
        await spacs.get(ctx, spac_id)
        schedule = generate_periodic_filing_schedule(fiscal_year_end_month, filer_status, years_ahead)
        return {
            "spac_id": spac_id,
            "filer_status": filer_status,
            "fiscal_year_end_month": fiscal_year_end_month,
            "periodic_filings": [entry.as_dict() for entry in schedule],
        }
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.get("/{spac_id}/alerts")
async def get_spac_alerts(
    spac_id: int,
    filer_status: str = Query(default=FilerStatus.NON_ACCELERATED.value),
    fiscal_year_end_month: int = Query(default=12, ge=1, le=12),
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    """Deadline and filing alerts, plus alerts for periodic reports not yet on record."""
    try:
        spac = await spacs.get(ctx, spac_id)
        filings = await spacs.list_filings(ctx, spac_id)
        alerts = generate_alerts(spac, filings)
        periodic = open_periodic_deadlines(filings, fiscal_year_end_month, filer_status)
        return {
            "spac_id": spac_id,
            "alerts": [alert.as_dict() for alert in alerts],
            "filing_alerts": [alert.as_dict() for alert in generate_deadline_alerts(periodic)],
        }
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.patch("/{spac_id}/status", response_model=SpacResponse)
async def update_spac_status(
    spac_id: int,
    body: StatusUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    try:
        spac = await spacs.update_status(ctx, spac_id, body.status)
        return _spac_response(spac)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.patch("/{spac_id}/phase", response_model=SpacResponse)
async def update_spac_phase(
    spac_id: int,
    body: PhaseUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    try:
        spac = await spacs.update_phase(ctx, spac_id, body.phase)
        return _spac_response(spac)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.post("/{spac_id}/filings:sync", response_model=SyncResponse)
async def sync_spac_filings(
    spac_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    spacs: SpacRepository = Depends(get_spac_repository),
):
    """Queue an SEC EDGAR sync for the SPAC's CIK."""
    from spac_os.workers.tasks import sync_edgar_filings

    try:
        spac = await spacs.get(ctx, spac_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    if not spac.cik:
        raise HTTPException(status_code=422, detail="SPAC has no CIK")
    result = sync_edgar_filings.delay(ctx.user_id, ctx.org_id, sorted(r.value for r in ctx.roles), spac_id)
    logger.info("Queued EDGAR sync task %s for SPAC %s", result.id, spac_id)
    return SyncResponse(task_id=str(result.id), spac_id=spac_id)
