import asyncio
from datetime import date, datetime

import pytest

from spac_os.auth import AuthContext, PermissionDeniedError
from spac_os.models import Filing, Spac, Target, Task, TeamMember
from spac_os.repositories.base import API_KEY_PREFIX, ConflictError, NotFoundError, PlanLimitError, hash_api_key
from spac_os.repositories.memory import (
    MemoryApiKeyRepository,
    MemoryBillingRepository,
    MemoryIntegrationRepository,
    MemorySpacRepository,
    MemoryStore,
    MemoryTargetRepository,
    MemoryTeamRepository,
)
from spac_os.services.edgar import EdgarFiling
from spac_os.services.pipeline_stages import IllegalTransitionError
from spac_os.services.vocabulary import InvalidVocabularyError, SpacPhase, SpacStatus, TargetStage, TaskStatus, TeamRole

OWNER = AuthContext.build("u-owner", "org-1", ["owner"])
ADMIN = AuthContext.build("u-admin", "org-1", ["admin"])
MEMBER = AuthContext.build("u-member", "org-1", ["member"])
OUTSIDER = AuthContext.build("u-other", "org-2", ["owner"])


def _seeded_store():
    store = MemoryStore()
    spac = store.insert(
        Spac(org_id="org-1", name="Soren Acquisition Corp", status=SpacStatus.draft, phase=SpacPhase.ipo, cik="1841761")
    )
    store.insert(Target(org_id="org-1", spac_id=spac.id, name="Helio Grid", stage=TargetStage.sourcing))
    store.insert(Task(org_id="org-1", spac_id=spac.id, title="File S-4", status=TaskStatus.NOT_STARTED))
    store.insert(TeamMember(org_id="org-1", email="owner@soren.test", role=TeamRole.owner, status="active"))
    return store, spac


def test_rows_from_another_org_are_not_found():
    store, spac = _seeded_store()
    spacs = MemorySpacRepository(store)
    targets = MemoryTargetRepository(store)
    with pytest.raises(NotFoundError):
        asyncio.run(spacs.get(OUTSIDER, spac.id))
    with pytest.raises(NotFoundError):
        asyncio.run(targets.list_for_spac(OUTSIDER, spac.id))
    assert asyncio.run(spacs.related_counts(MEMBER, spac.id)) == {
        "targets": 1,
        "documents": 0,
        "filings": 0,
        "tasks": 1,
    }


def test_spac_status_and_phase_updates_follow_transition_rules():
    store, spac = _seeded_store()
    spacs = MemorySpacRepository(store)

    updated = asyncio.run(spacs.update_status(MEMBER, spac.id, "active"))
    assert updated.status == SpacStatus.active
    with pytest.raises(IllegalTransitionError):
        asyncio.run(spacs.update_status(MEMBER, spac.id, "draft"))

    asyncio.run(spacs.update_phase(MEMBER, spac.id, "due_diligence"))
    assert spac.phase == SpacPhase.due_diligence
    with pytest.raises(IllegalTransitionError):
        asyncio.run(spacs.update_phase(MEMBER, spac.id, "target_search"))


def test_target_stage_update_and_evaluation_score():
    store, spac = _seeded_store()
    targets = MemoryTargetRepository(store)
    target = asyncio.run(targets.update_stage(MEMBER, 1, "deep_evaluation"))
    assert target.stage == TargetStage.deep_evaluation
    with pytest.raises(IllegalTransitionError):
        asyncio.run(targets.update_stage(MEMBER, 1, "sourcing"))
    asyncio.run(targets.set_evaluation_score(MEMBER, 1, 81))
    assert target.evaluation_score == 81.0


def test_add_filings_skips_known_accession_numbers():
    store, spac = _seeded_store()
    spacs = MemorySpacRepository(store)
    filings = [
        EdgarFiling("8-K", date(2024, 3, 1), "0001213900-24-018877", "ea1934.htm", "https://sec.test/a"),
        EdgarFiling("10-Q", date(2024, 5, 14), "0001213900-24-042001", "f10q.htm", "https://sec.test/b"),
    ]
    assert asyncio.run(spacs.add_filings(MEMBER, spac.id, filings)) == 2
    assert asyncio.run(spacs.add_filings(MEMBER, spac.id, filings)) == 0

    stored = asyncio.run(spacs.list_filings(MEMBER, spac.id))
    assert [filing.form_type for filing in stored] == ["10-Q", "8-K"]
    assert stored[0].filed_date == datetime(2024, 5, 14)
    assert len(store.rows(Filing)) == 2


def test_team_invites_need_an_admin_and_respect_seats():
    store, _ = _seeded_store()
    team = MemoryTeamRepository(store)

    with pytest.raises(PermissionDeniedError):
        asyncio.run(team.invite(MEMBER, "new@soren.test"))

    member = asyncio.run(team.invite(ADMIN, " New@Soren.test ", "member", "New Person"))
    assert member.email == "new@soren.test"
    assert member.status == "invited"
    with pytest.raises(ConflictError):
        asyncio.run(team.invite(ADMIN, "new@soren.test"))
    with pytest.raises(PermissionDeniedError):
        asyncio.run(team.invite(ADMIN, "boss@soren.test", "owner"))

    for index in range(3):
        asyncio.run(team.invite(ADMIN, f"analyst{index}@soren.test"))
    with pytest.raises(PlanLimitError):
        asyncio.run(team.invite(ADMIN, "sixth@soren.test"))


def test_last_owner_cannot_be_removed_or_demoted():
    store, _ = _seeded_store()
    team = MemoryTeamRepository(store)
    owner_id = asyncio.run(team.list_members(OWNER))[0].id

    with pytest.raises(ConflictError):
        asyncio.run(team.change_role(OWNER, owner_id, "admin"))
    with pytest.raises(ConflictError):
        asyncio.run(team.remove(OWNER, owner_id))
    with pytest.raises(PermissionDeniedError):
        asyncio.run(team.remove(ADMIN, owner_id))

    second = asyncio.run(team.invite(OWNER, "cofounder@soren.test", "owner"))
    asyncio.run(team.change_role(OWNER, owner_id, "admin"))
    assert asyncio.run(team.list_members(OWNER))[0].role == TeamRole.admin
    asyncio.run(team.remove(OWNER, owner_id))
    assert [m.id for m in asyncio.run(team.list_members(OWNER))] == [second.id]


def test_plan_changes_check_member_count():
    store, _ = _seeded_store()
    billing = MemoryBillingRepository(store)
    subscription = asyncio.run(billing.get_subscription(OWNER))
    assert subscription.plan == "starter"
    assert subscription.seats == 5

    upgraded = asyncio.run(billing.change_plan(OWNER, "Enterprise", member_count=30))
    assert upgraded.plan == "enterprise"
    assert upgraded.seats is None
    with pytest.raises(PlanLimitError):
        asyncio.run(billing.change_plan(OWNER, "professional", member_count=30))
    with pytest.raises(InvalidVocabularyError):
        asyncio.run(billing.change_plan(OWNER, "platinum"))
    with pytest.raises(PermissionDeniedError):
        asyncio.run(billing.change_plan(MEMBER, "starter"))


def test_integrations_connect_once_per_provider():
    store, _ = _seeded_store()
    integrations = MemoryIntegrationRepository(store)
    first = asyncio.run(integrations.connect(ADMIN, "Slack", {"channel": "#deals"}))
    again = asyncio.run(integrations.connect(ADMIN, "slack", {"channel": "#spac"}))
    assert first.id == again.id
    assert again.config_json == {"channel": "#spac"}
    assert asyncio.run(integrations.disconnect(ADMIN, first.id)).status == "disconnected"
    with pytest.raises(InvalidVocabularyError):
        asyncio.run(integrations.connect(ADMIN, "myspace"))
    with pytest.raises(NotFoundError):
        asyncio.run(integrations.disconnect(OUTSIDER, first.id))


def test_api_keys_store_only_a_hash():
    store, _ = _seeded_store()
    api_keys = MemoryApiKeyRepository(store)
    api_key, secret = asyncio.run(api_keys.create(ADMIN, " CI pipeline ", ["read", "write"]))

    assert secret.startswith(API_KEY_PREFIX)
    assert api_key.name == "CI pipeline"
    assert api_key.key_hash == hash_api_key(secret)
    assert secret not in (api_key.prefix, api_key.key_hash)
    assert secret.startswith(api_key.prefix)
    assert asyncio.run(api_keys.verify(secret)) is api_key
    assert asyncio.run(api_keys.verify(secret + "x")) is None

    asyncio.run(api_keys.revoke(ADMIN, api_key.id, now=datetime(2024, 6, 1)))
    assert api_key.revoked_at == datetime(2024, 6, 1)
    assert asyncio.run(api_keys.verify(secret)) is None

    with pytest.raises(InvalidVocabularyError):
        asyncio.run(api_keys.create(ADMIN, "bad", ["superuser"]))
    with pytest.raises(PermissionDeniedError):
        asyncio.run(api_keys.create(MEMBER, "nope"))
