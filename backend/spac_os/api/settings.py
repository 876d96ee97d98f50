"""Organization settings: team, billing, integrations and API keys."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from spac_os.api.deps import (
    get_api_key_repository,
    get_auth_context,
    get_billing_repository,
    get_integration_repository,
    get_team_repository,
)
from spac_os.api.errors import DOMAIN_ERRORS, http_error
from spac_os.auth import AuthContext
from spac_os.repositories.base import (
    INTEGRATION_PROVIDERS,
    PLANS,
    ApiKeyRepository,
    BillingRepository,
    IntegrationRepository,
    TeamRepository,
)

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class InviteRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    role: str = "member"
    name: Optional[str] = None


class RoleUpdate(BaseModel):
    role: str


class MemberResponse(BaseModel):
    id: int
    email: str
    name: Optional[str]
    role: str
    status: str
    invited_at: Optional[datetime]


class PlanChange(BaseModel):
    plan: str


class ConnectRequest(BaseModel):
    provider: str
    config: Dict[str, Any] = Field(default_factory=dict)


class IntegrationResponse(BaseModel):
    id: int
    provider: str
    status: str
    connected_at: Optional[datetime]


class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    permissions: List[str] = Field(default_factory=lambda: ["read"])


class ApiKeyResponse(BaseModel):
    id: int
    name: str
    prefix: str
    permissions: List[str]
    created_by: Optional[str]
    created_at: Optional[datetime]
    revoked_at: Optional[datetime]


def _member(member) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        email=member.email,
        name=member.name,
        role=getattr(member.role, "value", member.role),
        status=member.status,
        invited_at=member.invited_at,
    )


def _api_key(api_key) -> ApiKeyResponse:
    return ApiKeyResponse(
        id=api_key.id,
        name=api_key.name,
        prefix=api_key.prefix,
        permissions=list(api_key.permissions or []),
        created_by=api_key.created_by,
        created_at=api_key.created_at,
        revoked_at=api_key.revoked_at,
    )


# ============================================================================
# Team
# ============================================================================

@router.get("/team", response_model=List[MemberResponse])
async def list_team(
    ctx: AuthContext = Depends(get_auth_context),
    team: TeamRepository = Depends(get_team_repository),
):
    return [_member(member) for member in await team.list_members(ctx)]


@router.post("/team", response_model=MemberResponse, status_code=201)
async def invite_member(
    body: InviteRequest,
    ctx: AuthContext = Depends(get_auth_context),
    team: TeamRepository = Depends(get_team_repository),
):
    try:
        return _member(await team.invite(ctx, body.email, body.role, body.name))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.patch("/team/{member_id}", response_model=MemberResponse)
async def change_member_role(
    member_id: int,
    body: RoleUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    team: TeamRepository = Depends(get_team_repository),
):
    try:
        return _member(await team.change_role(ctx, member_id, body.role))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.delete("/team/{member_id}")
async def remove_member(
    member_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    team: TeamRepository = Depends(get_team_repository),
):
    try:
        await team.remove(ctx, member_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {"status": "deleted", "id": member_id}


# ============================================================================
# Billing
# ============================================================================

def _billing_payload(subscription, invoices) -> Dict[str, Any]:
    return {
        "subscription": {
            "plan": subscription.plan,
            "status": subscription.status,
            "seats": subscription.seats,
            "current_period_end": (
                subscription.current_period_end.isoformat() if subscription.current_period_end else None
            ),
        },
        "invoices": [
            {
                "id": invoice.id,
                "number": invoice.number,
                "amount": invoice.amount,
                "currency": invoice.currency,
                "status": invoice.status,
                "issued_at": invoice.issued_at.isoformat() if invoice.issued_at else None,
            }
            for invoice in invoices
        ],
        "plans": [{"id": key, **value} for key, value in PLANS.items()],
    }


@router.get("/billing")
async def get_billing(
    ctx: AuthContext = Depends(get_auth_context),
    billing: BillingRepository = Depends(get_billing_repository),
):
    subscription = await billing.get_subscription(ctx)
    invoices = await billing.list_invoices(ctx)
    return _billing_payload(subscription, invoices)


@router.put("/billing/plan")
async def change_plan(
    body: PlanChange,
    ctx: AuthContext = Depends(get_auth_context),
    billing: BillingRepository = Depends(get_billing_repository),
    team: TeamRepository = Depends(get_team_repository),
):
    """Switch plans; downgrades below the current member count are refused."""
    try:
        members = await team.list_members(ctx)
        subscription = await billing.change_plan(ctx, body.plan, member_count=len(members))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _billing_payload(subscription, await billing.list_invoices(ctx))


# ============================================================================
# Integrations
# ============================================================================

@router.get("/integrations")
async def list_integrations(
    ctx: AuthContext = Depends(get_auth_context),
    integrations: IntegrationRepository = Depends(get_integration_repository),
):
    rows = await integrations.list_all(ctx)
    return {
        "integrations": [
            IntegrationResponse(
                id=row.id, provider=row.provider, status=row.status, connected_at=row.connected_at
            ).model_dump(mode="json")
            for row in rows
        ],
        "available_providers": sorted(INTEGRATION_PROVIDERS),
    }


@router.post("/integrations", response_model=IntegrationResponse, status_code=201)
async def connect_integration(
    body: ConnectRequest,
    ctx: AuthContext = Depends(get_auth_context),
    integrations: IntegrationRepository = Depends(get_integration_repository),
):
    try:
        row = await integrations.connect(ctx, body.provider, body.config)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return IntegrationResponse(id=row.id, provider=row.provider, status=row.status, connected_at=row.connected_at)


@router.delete("/integrations/{integration_id}", response_model=IntegrationResponse)
async def disconnect_integration(
    integration_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    integrations: IntegrationRepository = Depends(get_integration_repository),
):
    try:
        row = await integrations.disconnect(ctx, integration_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return IntegrationResponse(id=row.id, provider=row.provider, status=row.status, connected_at=row.connected_at)


# ============================================================================
# API keys
# ============================================================================

@router.get("/api-keys", response_model=List[ApiKeyResponse])
async def list_api_keys(
    ctx: AuthContext = Depends(get_auth_context),
    api_keys: ApiKeyRepository = Depends(get_api_key_repository),
):
    return [_api_key(row) for row in await api_keys.list_all(ctx)]


@router.post("/api-keys", status_code=201)
async def create_api_key(
    body: ApiKeyCreate,
    ctx: AuthContext = Depends(get_auth_context),
    api_keys: ApiKeyRepository = Depends(get_api_key_repository),
):
    """The secret is only present in this response."""
    try:
        row, secret = await api_keys.create(ctx, body.name, body.permissions)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return {**_api_key(row).model_dump(mode="json"), "secret": secret}


@router.delete("/api-keys/{key_id}", response_model=ApiKeyResponse)
async def revoke_api_key(
    key_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    api_keys: ApiKeyRepository = Depends(get_api_key_repository),
):
    try:
        return _api_key(await api_keys.revoke(ctx, key_id))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
