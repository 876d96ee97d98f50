"""In-process repositories over plain dicts of ORM instances.

Used by the test suite and local tooling. Behaviour matches the SQLAlchemy
repositories, including org scoping and newest-first score ordering.
"""
from __future__ import annotations

import itertools
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, TypeVar

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
from spac_os.services.common import utcnow
from spac_os.services.edgar import EdgarFiling
from spac_os.services.score_history import ScoreInput
from spac_os.services.vocabulary import FilingStatus

M = TypeVar("M")


class MemoryStore:
    """Rows keyed by model class then id; ids are assigned on insert."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.clock = clock
        self._tables: Dict[type, Dict[int, Any]] = defaultdict(dict)
        self._ids: Dict[type, Any] = defaultdict(lambda: itertools.count(1))

    def insert(self, row: M) -> M:
        model = type(row)
        if getattr(row, "id", None) is None:
            row.id = next(self._ids[model])
        if hasattr(row, "created_at") and getattr(row, "created_at", None) is None:
            row.created_at = self.clock()
        self._tables[model][row.id] = row
        return row

    def rows(self, model: Type[M]) -> List[M]:
        return list(self._tables[model].values())

    def get(self, model: Type[M], ctx: AuthContext, row_id: int, entity: str) -> M:
        row = self._tables[model].get(row_id)
        if row is None or row.org_id != ctx.org_id:
            raise NotFoundError(entity, row_id)
        return row

    def scoped(self, model: Type[M], ctx: AuthContext, **filters: Any) -> List[M]:
        return [
            row
            for row in self._tables[model].values()
            if row.org_id == ctx.org_id and all(getattr(row, key) == value for key, value in filters.items())
        ]

    def delete(self, row: Any) -> None:
        self._tables[type(row)].pop(row.id, None)


class MemorySpacRepository(SpacRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get(self, ctx: AuthContext, spac_id: int) -> Spac:
        return self.store.get(Spac, ctx, spac_id, "SPAC")

    async def list_tasks(self, ctx: AuthContext, spac_id: int) -> List[Task]:
        await self.get(ctx, spac_id)
        return sorted(self.store.scoped(Task, ctx, spac_id=spac_id), key=lambda task: task.id)

    async def related_counts(self, ctx: AuthContext, spac_id: int) -> Dict[str, int]:
        await self.get(ctx, spac_id)
        return {
            "targets": len(self.store.scoped(Target, ctx, spac_id=spac_id)),
            "documents": len(self.store.scoped(Document, ctx, spac_id=spac_id)),
            "filings": len(self.store.scoped(Filing, ctx, spac_id=spac_id)),
            "tasks": len(self.store.scoped(Task, ctx, spac_id=spac_id)),
        }

    async def list_filings(self, ctx: AuthContext, spac_id: int) -> List[Filing]:
        await self.get(ctx, spac_id)
        filings = self.store.scoped(Filing, ctx, spac_id=spac_id)
        return sorted(filings, key=lambda filing: (filing.filed_date or datetime.min, filing.id), reverse=True)

    async def add_filings(self, ctx: AuthContext, spac_id: int, filings: Sequence[EdgarFiling]) -> int:
        await self.get(ctx, spac_id)
        known = {filing.accession_number for filing in self.store.scoped(Filing, ctx, spac_id=spac_id)}
        added = 0
        for filing in filings:
            if filing.accession_number in known:
                continue
            self.store.insert(
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
        return added

    async def _save(self, spac: Spac) -> None:
        spac.updated_at = self.store.clock()


class MemoryTargetRepository(TargetRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get(self, ctx: AuthContext, target_id: int) -> Target:
        return self.store.get(Target, ctx, target_id, "Target")

    async def list_for_spac(self, ctx: AuthContext, spac_id: int) -> List[Target]:
        self.store.get(Spac, ctx, spac_id, "SPAC")
        return sorted(self.store.scoped(Target, ctx, spac_id=spac_id), key=lambda target: target.id)

    async def _save(self, target: Target) -> None:
        target.updated_at = self.store.clock()


class MemoryScoreHistoryRepository(ScoreHistoryRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    def _entries(self, ctx: AuthContext, target_id: int) -> List[ScoreHistoryEntry]:
        self.store.get(Target, ctx, target_id, "Target")
        entries = self.store.scoped(ScoreHistoryEntry, ctx, target_id=target_id)
        # Store order, newest first. Timestamps come from the writer's clock and only filter.
        return sorted(entries, key=lambda entry: entry.id, reverse=True)

    async def append(self, ctx: AuthContext, target_id: int, score_input: ScoreInput) -> ScoreHistoryEntry:
        self.store.get(Target, ctx, target_id, "Target")
        entry = ScoreHistoryEntry(org_id=ctx.org_id, target_id=target_id, **score_input.to_entry_fields())
        return self.store.insert(entry)

    async def list_for_target(self, ctx: AuthContext, target_id: int, limit: int = 10) -> List[ScoreHistoryEntry]:
        return self._entries(ctx, target_id)[:limit]

    async def first_on_or_after(
        self, ctx: AuthContext, target_id: int, moment: datetime
    ) -> Optional[ScoreHistoryEntry]:
        candidates = [entry for entry in reversed(self._entries(ctx, target_id)) if entry.created_at >= moment]
        return candidates[0] if candidates else None

    async def last_on_or_before(
        self, ctx: AuthContext, target_id: int, moment: datetime
    ) -> Optional[ScoreHistoryEntry]:
        candidates = [entry for entry in self._entries(ctx, target_id) if entry.created_at <= moment]
        return candidates[0] if candidates else None


class MemoryBillingRepository(BillingRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get_subscription(self, ctx: AuthContext) -> Subscription:
        existing = self.store.scoped(Subscription, ctx)
        if existing:
            return existing[0]
        return self.store.insert(
            Subscription(org_id=ctx.org_id, plan="starter", status="active", seats=PLANS["starter"]["seats"])
        )

    async def list_invoices(self, ctx: AuthContext) -> List[Invoice]:
        return sorted(self.store.scoped(Invoice, ctx), key=lambda invoice: invoice.issued_at or datetime.min, reverse=True)

    async def _save(self, subscription: Subscription) -> None:
        subscription.updated_at = self.store.clock()


class MemoryTeamRepository(TeamRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def list_members(self, ctx: AuthContext) -> List[TeamMember]:
        return sorted(self.store.scoped(TeamMember, ctx), key=lambda member: member.id)

    async def _get(self, ctx: AuthContext, member_id: int) -> TeamMember:
        return self.store.get(TeamMember, ctx, member_id, "Team member")

    async def _add(self, member: TeamMember) -> TeamMember:
        return self.store.insert(member)

    async def _save(self, member: TeamMember) -> None:
        return None

    async def _delete(self, member: TeamMember) -> None:
        self.store.delete(member)

    async def seat_limit(self, ctx: AuthContext) -> Optional[int]:
        subscription = await MemoryBillingRepository(self.store).get_subscription(ctx)
        return subscription.seats


class MemoryIntegrationRepository(IntegrationRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def list_all(self, ctx: AuthContext) -> List[Integration]:
        return sorted(self.store.scoped(Integration, ctx), key=lambda integration: integration.id)

    async def _get(self, ctx: AuthContext, integration_id: int) -> Integration:
        return self.store.get(Integration, ctx, integration_id, "Integration")

    async def _add(self, integration: Integration) -> Integration:
        integration.connected_at = self.store.clock()
        return self.store.insert(integration)

    async def _save(self, integration: Integration) -> None:
        return None


class MemoryApiKeyRepository(ApiKeyRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def list_all(self, ctx: AuthContext) -> List[ApiKey]:
        return sorted(self.store.scoped(ApiKey, ctx), key=lambda api_key: api_key.id, reverse=True)

    async def _get(self, ctx: AuthContext, key_id: int) -> ApiKey:
        return self.store.get(ApiKey, ctx, key_id, "API key")

    async def _add(self, api_key: ApiKey) -> ApiKey:
        return self.store.insert(api_key)

    async def _save(self, api_key: ApiKey) -> None:
        return None

    async def find_by_hash(self, key_hash: str) -> Optional[ApiKey]:
        for api_key in self.store.rows(ApiKey):
            if api_key.key_hash == key_hash:
                return api_key
        return None
