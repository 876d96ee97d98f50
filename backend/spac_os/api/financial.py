"""Financial calculators: PIPE progress, redemption scenarios, cap table."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Optional, List, Dict

from spac_os.api.deps import get_auth_context
from spac_os.api.errors import DOMAIN_ERRORS, http_error
from spac_os.auth import AuthContext
from spac_os.services.badge_catalog import badge_for
from spac_os.services.cap_table import (
    ShareHolder,
    build_cap_table,
    cap_table_issues,
    holder_ownership,
    summarize_cap_table,
    validate_cap_table,
)
from spac_os.services.pipe_tracker import PipeInvestor, compute_pipe_metrics
from spac_os.services.redemption import (
    DEFAULT_SCENARIO_RATES,
    RedemptionInputs,
    calculate_scenarios,
    max_viable_redemption,
)
from spac_os.services.vocabulary import HolderType, ShareClass, SubscriptionStatus, parse_vocabulary

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class PipeInvestorIn(BaseModel):
    id: str
    name: str
    investor_type: str
    commitment_amount: float = Field(..., ge=0)
    price_per_share: float = Field(default=10.0, gt=0)
    shares: Optional[int] = None
    subscription_status: str


class PipeMetricsRequest(BaseModel):
    investors: List[PipeInvestorIn] = Field(default_factory=list)
    target_raise: float = Field(..., ge=0)
    minimum_close: Optional[float] = Field(default=None, ge=0)


class RedemptionRequest(BaseModel):
    public_shares: int = Field(..., ge=0)
    redemption_price: float = Field(..., ge=0)
    trust_value: float = Field(..., ge=0)
    sponsor_shares: int = Field(..., ge=0)
    pipe_commitment: float = Field(default=0.0, ge=0)
    pipe_price_per_share: float = Field(default=10.0, ge=0)
    minimum_cash: float = Field(default=0.0, ge=0)
    target_equity_value: float = Field(..., ge=0)
    rates: List[float] = Field(default_factory=lambda: list(DEFAULT_SCENARIO_RATES))


class ShareHolderIn(BaseModel):
    id: str
    name: str
    holder_type: str
    shares: int = Field(..., ge=0)
    share_class: str
    notes: Optional[str] = None


class CapTableRequest(BaseModel):
    class_totals: Dict[str, int]
    holders: List[ShareHolderIn] = Field(default_factory=list)
    strict: bool = False  # reject instead of reporting issues


# ============================================================================
# Routes
# ============================================================================

@router.post("/pipe-metrics")
async def pipe_metrics(body: PipeMetricsRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        investors = [PipeInvestor.from_dict(item.model_dump()) for item in body.investors]
        metrics = compute_pipe_metrics(investors, body.target_raise, body.minimum_close)
        rows = [
            {
                "id": investor.id,
                "name": investor.name,
                "investor_type": investor.investor_type.value,
                "commitment_amount": investor.commitment_amount,
                "shares": investor.shares,
                "subscription_status": investor.subscription_status.value,
                "status_badge": badge_for(SubscriptionStatus, investor.subscription_status).to_dict(),
            }
            for investor in investors
        ]
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"metrics": metrics.as_dict(), "investors": rows}


@router.post("/redemption-scenarios")
async def redemption_scenarios(body: RedemptionRequest, ctx: AuthContext = Depends(get_auth_context)):
    inputs = RedemptionInputs(**body.model_dump(exclude={"rates"}))
    try:
        scenarios = calculate_scenarios(inputs, body.rates)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {
        "scenarios": [scenario.as_dict() for scenario in scenarios],
        "max_viable_redemption": max_viable_redemption(inputs),
    }


@router.post("/cap-table")
async def cap_table(body: CapTableRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        holders = [
            ShareHolder(
                id=item.id,
                name=item.name,
                holder_type=parse_vocabulary(HolderType, item.holder_type),
                shares=item.shares,
                share_class=parse_vocabulary(ShareClass, item.share_class),
                notes=item.notes,
            )
            for item in body.holders
        ]
        classes = build_cap_table(body.class_totals, holders)
        if body.strict:
            validate_cap_table(classes)
        issues = cap_table_issues(classes)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc

    summary = summarize_cap_table(classes)
    ownership = []
    for row in classes:
        for holder in row.holders:
            basic, diluted = holder_ownership(row, holder)
            ownership.append(
                {"holder_id": holder.id, "share_class": row.share_class.value, "basic": basic, "diluted": diluted}
            )
    return {
        "classes": [row.as_dict() for row in classes],
        "summary": summary.__dict__,
        "ownership": ownership,
        "issues": issues,
    }
