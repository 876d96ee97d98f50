"""SQLAlchemy-backed repositories. Every query filters on the caller's org_id."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spac_os.auth import AuthContext
from spac_os.models import (
    ApiKey,
    Document,
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
from spac_os.repositories.base import (
    PLANS,
    ApiKeyRepository,
    BillingRepository,
    IntegrationRepository,
    NotFoundError,
    ScoreHistoryRepository,
    SpacRepository,
    TargetRepository,
    TeamRepository,
)
from spac_os.services.edgar import EdgarFiling
from spac_os.services.score_history import ScoreInput
from spac_os.services.vocabulary import FilingStatus

M = TypeVar("M")


async def _get_scoped(db: AsyncSession, model: Type[M], ctx: AuthContext, row_id: int, entity: str) -> M:
    result = await db.execute(select(model).where(model.id == row_id, model.org_id == ctx.org_id))
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError(entity, row_id)
    return row


async def _commit(db: AsyncSession, row: Any) -> None:
    db.add(row)
    await db.commit()
    await db.refresh(row)


class SqlSpacRepository(SpacRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, ctx: AuthContext, spac_id: int) -> Spac:
        return await _get_scoped(self.db, Spac, ctx, spac_id, "SPAC")

    async def list_tasks(self, ctx: AuthContext, spac_id: int) -> List[Task]:
        await self.get(ctx, spac_id)
        result = await self.db.execute(
            select(Task).where(Task.spac_id == spac_id, Task.org_id == ctx.org_id).order_by(Task.id)
        )
        return list(result.scalars().all())

    async def related_counts(self, ctx: AuthContext, spac_id: int) -> Dict[str, int]:
        await self.get(ctx, spac_id)
        counts: Dict[str, int] = {}
        for key, model in (("targets", Target), ("documents", Document), ("filings", Filing), ("tasks", Task)):
            result = await self.db.execute(
                select(func.count(model.id)).where(model.spac_id == spac_id, model.org_id == ctx.org_id)
            )
            counts[key] = result.scalar() or 0
        return counts

    async def list_filings(self, ctx: AuthContext, spac_id: int) -> List[Filing]:
        await self.get(ctx, spac_id)
        result = await self.db.execute(
            select(Filing)
            .where(Filing.spac_id == spac_id, Filing.org_id == ctx.org_id)
            .order_by(Filing.filed_date.desc().nulls_last(), Filing.id.desc())
        )
        return list(result.scalars().all())

    async def add_filings(self, ctx: AuthContext, spac_id: int, filings: Sequence[EdgarFiling]) -> int:
        await self.get(ctx, spac_id)
        result = await self.db.execute(
            select(Filing.accession_number).where(Filing.spac_id == spac_id, Filing.org_id == ctx.org_id)
        )
        known = set(result.scalars().all())
        added = 0
        for filing in filings:
            if filing.accession_number in known:
                continue
            self.db.add(
                Filing(
                    org_id=ctx.org_id,
                    spac_id=spac_id,
                    form_type=filing.form_type,
                    filed_date=datetime.combine(filing.filed_date, datetime.min.time()),
                    status=FilingStatus.ACCEPTED,
                    accession_number=filing.accession_number,
                    edgar_url=filing.edgar_url,
                    description=filing.description,
                )
            )
            known.add(filing.accession_number)
            added += 1
        if added:
            await self.db.commit()
        return added

    async def _save(self, spac: Spac) -> None:
        await _commit(self.db, spac)


class SqlTargetRepository(TargetRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, ctx: AuthContext, target_id: int) -> Target:
        return await _get_scoped(self.db, Target, ctx, target_id, "Target")

    async def list_for_spac(self, ctx: AuthContext, spac_id: int) -> List[Target]:
        await _get_scoped(self.db, Spac, ctx, spac_id, "SPAC")
        result = await self.db.execute(
            select(Target).where(Target.spac_id == spac_id, Target.org_id == ctx.org_id).order_by(Target.id)
        )
        return list(result.scalars().all())

    async def _save(self, target: Target) -> None:
        await _commit(self.db, target)


class SqlScoreHistoryRepository(ScoreHistoryRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _query(self, ctx: AuthContext, target_id: int):
        return select(ScoreHistoryEntry).where(
            ScoreHistoryEntry.target_id == target_id,
            ScoreHistoryEntry.org_id == ctx.org_id,
        )

    async def append(self, ctx: AuthContext, target_id: int, score_input: ScoreInput) -> ScoreHistoryEntry:
        await _get_scoped(self.db, Target, ctx, target_id, "Target")
        entry = ScoreHistoryEntry(org_id=ctx.org_id, target_id=target_id, **score_input.to_entry_fields())
        await _commit(self.db, entry)
        return entry

    async def list_for_target(self, ctx: AuthContext, target_id: int, limit: int = 10) -> List[ScoreHistoryEntry]:
        await _get_scoped(self.db, Target, ctx, target_id, "Target")
        result = await self.db.execute(
            self._query(ctx, target_id)
            .order_by(ScoreHistoryEntry.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def first_on_or_after(
        self, ctx: AuthContext, target_id: int, moment: datetime
    ) -> Optional[ScoreHistoryEntry]:
        result = await self.db.execute(
            self._query(ctx, target_id)
            .where(ScoreHistoryEntry.created_at >= moment)
            .order_by(ScoreHistoryEntry.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def last_on_or_before(
        self, ctx: AuthContext, target_id: int, moment: datetime
    ) -> Optional[ScoreHistoryEntry]:
        result = await self.db.execute(
            self._query(ctx, target_id)
            .where(ScoreHistoryEntry.created_at <= moment)
            .order_by(ScoreHistoryEntry.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


class SqlBillingRepository(BillingRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_subscription(self, ctx: AuthContext) -> Subscription:
        result = await self.db.execute(select(Subscription).where(Subscription.org_id == ctx.org_id))
        subscription = result.scalar_one_or_none()
        if subscription is None:
            subscription = Subscription(
                org_id=ctx.org_id,
                plan="starter",
                status="active",
                seats=PLANS["starter"]["seats"],
            )
            await _commit(self.db, subscription)
        return subscription

    async def list_invoices(self, ctx: AuthContext) -> List[Invoice]:
        result = await self.db.execute(
            select(Invoice).where(Invoice.org_id == ctx.org_id).order_by(Invoice.issued_at.desc())
        )
        return list(result.scalars().all())

    async def _save(self, subscription: Subscription) -> None:
        await _commit(self.db, subscription)


class SqlTeamRepository(TeamRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_members(self, ctx: AuthContext) -> List[TeamMember]:
        result = await self.db.execute(
            select(TeamMember).where(TeamMember.org_id == ctx.org_id).order_by(TeamMember.id)
        )
        return list(result.scalars().all())

    async def _get(self, ctx: AuthContext, member_id: int) -> TeamMember:
        return await _get_scoped(self.db, TeamMember, ctx, member_id, "Team member")

    async def _add(self, member: TeamMember) -> TeamMember:
        await _commit(self.db, member)
        return member

    async def _save(self, member: TeamMember) -> None:
        await _commit(self.db, member)

    async def _delete(self, member: TeamMember) -> None:
        await self.db.delete(member)
        await self.db.commit()

    async def seat_limit(self, ctx: AuthContext) -> Optional[int]:
        subscription = await SqlBillingRepository(self.db).get_subscription(ctx)
        return subscription.seats


class SqlIntegrationRepository(IntegrationRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_all(self, ctx: AuthContext) -> List[Integration]:
        result = await self.db.execute(
            select(Integration).where(Integration.org_id == ctx.org_id).order_by(Integration.id)
        )
        return list(result.scalars().all())

    async def _get(self, ctx: AuthContext, integration_id: int) -> Integration:
        return await _get_scoped(self.db, Integration, ctx, integration_id, "Integration")

    async def _add(self, integration: Integration) -> Integration:
        await _commit(self.db, integration)
        return integration

    async def _save(self, integration: Integration) -> None:
        await _commit(self.db, integration)


class SqlApiKeyRepository(ApiKeyRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_all(self, ctx: AuthContext) -> List[ApiKey]:
        result = await self.db.execute(
            select(ApiKey).where(ApiKey.org_id == ctx.org_id).order_by(ApiKey.id.desc())
        )
        return list(result.scalars().all())

    async def _get(self, ctx: AuthContext, key_id: int) -> ApiKey:
        return await _get_scoped(self.db, ApiKey, ctx, key_id, "API key")

    async def _add(self, api_key: ApiKey) -> ApiKey:
        await _commit(self.db, api_key)
        return api_key

    async def _save(self, api_key: ApiKey) -> None:
        await _commit(self.db, api_key)

    async def find_by_hash(self, key_hash: str) -> Optional[ApiKey]:
        result = await self.db.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
        return result.scalar_one_or_none()
