"""Repository interfaces.

Every call takes the caller's AuthContext explicitly. Rows belonging to a
different organization are reported as missing, never as forbidden, so a
caller cannot discover another tenant's data.
"""
from __future__ import annotations

import hashlib
import secrets
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from spac_os.auth import ADMIN_ROLES, AuthContext
from spac_os.log import get_logger
from spac_os.models import (
    ApiKey,
    Filing,
    Integration,
    Invoice,
    ScoreHistoryEntry,
    Spac,
    Subscription,
    Target,
    Task,
    TeamMember,
)
from spac_os.services.common import utcnow
from spac_os.services.edgar import EdgarFiling
from spac_os.services.pipeline_stages import (
    validate_phase_advance,
    validate_stage_transition,
    validate_status_transition,
)
from spac_os.services.score_history import ScoreInput
from spac_os.services.vocabulary import (
    InvalidVocabularyError,
    SpacPhase,
    SpacStatus,
    TargetStage,
    TeamRole,
    parse_vocabulary,
)

logger = get_logger(__name__)

API_KEY_PREFIX = "spac_api_"

PLANS: Dict[str, Dict[str, Any]] = {
    "starter": {"name": "Starter", "price": 99, "seats": 5},
    "professional": {"name": "Professional", "price": 299, "seats": 25},
    "enterprise": {"name": "Enterprise", "price": 799, "seats": None},  # unlimited
}

INTEGRATION_PROVIDERS = frozenset(
    {"sec_edgar", "slack", "google_drive", "dropbox", "docusign", "salesforce", "gmail", "google_calendar"}
)

API_KEY_PERMISSIONS = frozenset({"read", "write", "admin"})

# Role an API key acts with, per granted permission.
API_KEY_ROLES = {"read": TeamRole.viewer, "write": TeamRole.member, "admin": TeamRole.admin}


class NotFoundError(LookupError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class PlanLimitError(ValueError):
    """The organization's plan does not allow the change (seats)."""


class ConflictError(ValueError):
    """The change clashes with existing org state (duplicate member, last owner)."""


def hash_api_key(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(24)


def api_key_context(api_key: ApiKey) -> AuthContext:
    roles = frozenset(API_KEY_ROLES[p] for p in (api_key.permissions or []) if p in API_KEY_ROLES)
    return AuthContext(user_id=f"api_key:{api_key.id}", org_id=api_key.org_id, roles=roles)


class SpacRepository(ABC):
    @abstractmethod
    async def get(self, ctx: AuthContext, spac_id: int) -> Spac:
        ...

    @abstractmethod
    async def list_tasks(self, ctx: AuthContext, spac_id: int) -> List[Task]:
        ...

    @abstractmethod
    async def related_counts(self, ctx: AuthContext, spac_id: int) -> Dict[str, int]:
        """Counts of targets, documents, filings and tasks for one SPAC."""

    @abstractmethod
    async def list_filings(self, ctx: AuthContext, spac_id: int) -> List[Filing]:
        ...

    @abstractmethod
    async def add_filings(self, ctx: AuthContext, spac_id: int, filings: Sequence[EdgarFiling]) -> int:
        """Store filings not yet known by accession number; returns how many were new."""

    @abstractmethod
    async def _save(self, spac: Spac) -> None:
        ...

    async def update_status(self, ctx: AuthContext, spac_id: int, status: Any) -> Spac:
        spac = await self.get(ctx, spac_id)
        current = parse_vocabulary(SpacStatus, spac.status)
        requested = validate_status_transition(current, status)
        if requested != current:
            spac.status = requested
            await self._save(spac)
            logger.info("SPAC %s status %s -> %s by %s", spac_id, current.value, requested.value, ctx.user_id)
        return spac

    async def update_phase(self, ctx: AuthContext, spac_id: int, phase: Any) -> Spac:
        spac = await self.get(ctx, spac_id)
        current = parse_vocabulary(SpacPhase, spac.phase) if spac.phase is not None else None
        requested = validate_phase_advance(current, phase)
        if requested != current:
            spac.phase = requested
            await self._save(spac)
            logger.info(
                "SPAC %s phase %s -> %s by %s",
                spac_id,
                current.value if current else None,
                requested.value,
                ctx.user_id,
            )
        return spac


class TargetRepository(ABC):
    @abstractmethod
    async def get(self, ctx: AuthContext, target_id: int) -> Target:
        ...

    @abstractmethod
    async def list_for_spac(self, ctx: AuthContext, spac_id: int) -> List[Target]:
        ...

    @abstractmethod
    async def _save(self, target: Target) -> None:
        ...

    async def update_stage(self, ctx: AuthContext, target_id: int, stage: Any) -> Target:
        target = await self.get(ctx, target_id)
        current = parse_vocabulary(TargetStage, target.stage)
        requested = validate_stage_transition(current, stage)
        if requested != current:
            target.stage = requested
            await self._save(target)
            logger.info("Target %s stage %s -> %s by %s", target_id, current.value, requested.value, ctx.user_id)
        return target

    async def save_thesis(self, ctx: AuthContext, target_id: int, thesis: Dict[str, Any]) -> Target:
        """Keep the latest generated investment thesis in the target profile."""
        target = await self.get(ctx, target_id)
        profile = dict(target.profile_json or {})
        profile["investment_thesis"] = thesis
        target.profile_json = profile
        await self._save(target)
        return target

    async def set_evaluation_score(self, ctx: AuthContext, target_id: int, score: float) -> Target:
        target = await self.get(ctx, target_id)
        target.evaluation_score = float(score)
        await self._save(target)
        return target


class ScoreHistoryRepository(ABC):
    """Append-only store of scoring results. There is no update or delete."""

    @abstractmethod
    async def append(self, ctx: AuthContext, target_id: int, score_input: ScoreInput) -> ScoreHistoryEntry:
        ...

    @abstractmethod
    async def list_for_target(self, ctx: AuthContext, target_id: int, limit: int = 10) -> List[ScoreHistoryEntry]:
        """Newest first; entries with equal timestamps newest insertion first."""

    @abstractmethod
    async def first_on_or_after(
        self, ctx: AuthContext, target_id: int, moment: datetime
    ) -> Optional[ScoreHistoryEntry]:
        ...

    @abstractmethod
    async def last_on_or_before(
        self, ctx: AuthContext, target_id: int, moment: datetime
    ) -> Optional[ScoreHistoryEntry]:
        ...


class TeamRepository(ABC):
    @abstractmethod
    async def list_members(self, ctx: AuthContext) -> List[TeamMember]:
        ...

    @abstractmethod
    async def _get(self, ctx: AuthContext, member_id: int) -> TeamMember:
        ...

    @abstractmethod
    async def _add(self, member: TeamMember) -> TeamMember:
        ...

    @abstractmethod
    async def _save(self, member: TeamMember) -> None:
        ...

    @abstractmethod
    async def _delete(self, member: TeamMember) -> None:
        ...

    @abstractmethod
    async def seat_limit(self, ctx: AuthContext) -> Optional[int]:
        ...

    async def invite(self, ctx: AuthContext, email: str, role: Any = TeamRole.member, name: Optional[str] = None) -> TeamMember:
        ctx.require_role(ADMIN_ROLES, "invite team members")
        new_role = parse_vocabulary(TeamRole, role)
        if new_role == TeamRole.owner:
            ctx.require_role({TeamRole.owner}, "invite an owner")
        members = await self.list_members(ctx)
        limit = await self.seat_limit(ctx)
        if limit is not None and len(members) >= limit:
            raise PlanLimitError(f"Plan allows {limit} team members")
        normalized = email.strip().lower()
        if any(member.email == normalized for member in members):
            raise ConflictError(f"{normalized} is already a team member")
        member = await self._add(
            TeamMember(org_id=ctx.org_id, email=normalized, name=name, role=new_role, status="invited")
        )
        logger.info("Invited %s as %s to org %s", normalized, new_role.value, ctx.org_id)
        return member

    async def change_role(self, ctx: AuthContext, member_id: int, role: Any) -> TeamMember:
        ctx.require_role(ADMIN_ROLES, "change team roles")
        member = await self._get(ctx, member_id)
        new_role = parse_vocabulary(TeamRole, role)
        if TeamRole.owner in (new_role, parse_vocabulary(TeamRole, member.role)):
            ctx.require_role({TeamRole.owner}, "grant or revoke ownership")
        await self._ensure_owner_remains(ctx, member, new_role)
        member.role = new_role
        await self._save(member)
        return member

    async def remove(self, ctx: AuthContext, member_id: int) -> None:
        ctx.require_role(ADMIN_ROLES, "remove team members")
        member = await self._get(ctx, member_id)
        if parse_vocabulary(TeamRole, member.role) == TeamRole.owner:
            ctx.require_role({TeamRole.owner}, "remove an owner")
        await self._ensure_owner_remains(ctx, member, None)
        await self._delete(member)
        logger.info("Removed team member %s from org %s", member_id, ctx.org_id)

    async def _ensure_owner_remains(self, ctx: AuthContext, member: TeamMember, new_role: Optional[TeamRole]) -> None:
        if parse_vocabulary(TeamRole, member.role) != TeamRole.owner or new_role == TeamRole.owner:
            return
        owners = [m for m in await self.list_members(ctx) if parse_vocabulary(TeamRole, m.role) == TeamRole.owner]
        if len(owners) <= 1:
            raise ConflictError("An organization must keep at least one owner")


class BillingRepository(ABC):
    @abstractmethod
    async def get_subscription(self, ctx: AuthContext) -> Subscription:
        """The org's subscription; a starter plan is created on first access."""

    @abstractmethod
    async def list_invoices(self, ctx: AuthContext) -> List[Invoice]:
        ...

    @abstractmethod
    async def _save(self, subscription: Subscription) -> None:
        ...

    async def change_plan(self, ctx: AuthContext, plan: str, member_count: int = 0) -> Subscription:
        ctx.require_role(ADMIN_ROLES, "change the billing plan")
        key = str(plan or "").strip().lower()
        if key not in PLANS:
            raise InvalidVocabularyError("plan", plan)
        seats = PLANS[key]["seats"]
        if seats is not None and member_count > seats:
            raise PlanLimitError(f"{PLANS[key]['name']} allows {seats} team members, org has {member_count}")
        subscription = await self.get_subscription(ctx)
        subscription.plan = key
        subscription.seats = seats
        await self._save(subscription)
        logger.info("Org %s moved to plan %s", ctx.org_id, key)
        return subscription


class IntegrationRepository(ABC):
    @abstractmethod
    async def list_all(self, ctx: AuthContext) -> List[Integration]:
        ...

    @abstractmethod
    async def _get(self, ctx: AuthContext, integration_id: int) -> Integration:
        ...

    @abstractmethod
    async def _add(self, integration: Integration) -> Integration:
        ...

    @abstractmethod
    async def _save(self, integration: Integration) -> None:
        ...

    async def connect(self, ctx: AuthContext, provider: str, config: Optional[Dict[str, Any]] = None) -> Integration:
        ctx.require_role(ADMIN_ROLES, "connect integrations")
        key = str(provider or "").strip().lower()
        if key not in INTEGRATION_PROVIDERS:
            raise InvalidVocabularyError("integration provider", provider)
        for existing in await self.list_all(ctx):
            if existing.provider == key:
                existing.status = "connected"
                existing.config_json = dict(config or {})
                await self._save(existing)
                return existing
        return await self._add(
            Integration(org_id=ctx.org_id, provider=key, status="connected", config_json=dict(config or {}))
        )

    async def disconnect(self, ctx: AuthContext, integration_id: int) -> Integration:
        ctx.require_role(ADMIN_ROLES, "disconnect integrations")
        integration = await self._get(ctx, integration_id)
        integration.status = "disconnected"
        await self._save(integration)
        return integration


class ApiKeyRepository(ABC):
    @abstractmethod
    async def list_all(self, ctx: AuthContext) -> List[ApiKey]:
        ...

    @abstractmethod
    async def _get(self, ctx: AuthContext, key_id: int) -> ApiKey:
        ...

    @abstractmethod
    async def _add(self, api_key: ApiKey) -> ApiKey:
        ...

    @abstractmethod
    async def _save(self, api_key: ApiKey) -> None:
        ...

    @abstractmethod
    async def find_by_hash(self, key_hash: str) -> Optional[ApiKey]:
        ...

    async def create(self, ctx: AuthContext, name: str, permissions: Sequence[str] = ("read",)) -> Tuple[ApiKey, str]:
        """Create a key. The plaintext secret is returned here and never again."""
        ctx.require_role(ADMIN_ROLES, "create API keys")
        unknown = sorted(set(permissions) - API_KEY_PERMISSIONS)
        if unknown:
            raise InvalidVocabularyError("API key permission", ", ".join(unknown))
        secret = generate_api_key()
        api_key = await self._add(
            ApiKey(
                org_id=ctx.org_id,
                name=name.strip(),
                prefix=secret[: len(API_KEY_PREFIX) + 4],
                key_hash=hash_api_key(secret),
                permissions=list(permissions),
                created_by=ctx.user_id,
            )
        )
        logger.info("API key %s created for org %s", api_key.id, ctx.org_id)
        return api_key, secret

    async def revoke(self, ctx: AuthContext, key_id: int, now: Optional[datetime] = None) -> ApiKey:
        ctx.require_role(ADMIN_ROLES, "revoke API keys")
        api_key = await self._get(ctx, key_id)
        if api_key.revoked_at is None:
            api_key.revoked_at = now or utcnow()
            await self._save(api_key)
        return api_key

    async def verify(self, secret: str) -> Optional[ApiKey]:
        api_key = await self.find_by_hash(hash_api_key(secret))
        if api_key is None or api_key.revoked_at is not None:
            return None
        return api_key
