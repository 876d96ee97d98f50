from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from spac_os.api import deps
from spac_os.config import get_settings
from spac_os.main import app
from spac_os.models import Filing, Spac, Target, Task, TeamMember
from spac_os.repositories.memory import (
    MemoryApiKeyRepository,
    MemoryBillingRepository,
    MemoryIntegrationRepository,
    MemoryScoreHistoryRepository,
    MemorySpacRepository,
    MemoryStore,
    MemoryTargetRepository,
    MemoryTeamRepository,
)
from spac_os.services.common import utcnow
from spac_os.services.vocabulary import FilingStatus, SpacPhase, SpacStatus, TargetStage, TaskStatus, TeamRole

HEADERS = {"X-User-Id": "u-admin", "X-Org-Id": "org-1", "X-Roles": "admin"}
OWNER_HEADERS = {"X-User-Id": "u-owner", "X-Org-Id": "org-1", "X-Roles": "owner"}
OUTSIDER_HEADERS = {"X-User-Id": "u-x", "X-Org-Id": "org-2", "X-Roles": "owner"}


class _QueuedTask:
    def __init__(self):
        self.calls = []

    def delay(self, *args):
        self.calls.append(args)
        return type("AsyncResult", (), {"id": "task-123"})()


@pytest.fixture
def store():
    store = MemoryStore()
    now = utcnow()
    spac = store.insert(
        Spac(
            org_id="org-1",
            name="Soren Acquisition Corp",
            ticker="SOAR",
            cik="1841761",
            status=SpacStatus.active,
            phase=SpacPhase.target_search,
            ipo_date=datetime(2023, 3, 15),
            deadline_date=now + timedelta(days=10, hours=1),
            term_months=24,
            extension_months=0,
            trust_amount=253_000_000.0,
            shares_outstanding=25_300_000,
            redemption_rate=0.325,
        )
    )
    store.insert(
        Target(org_id="org-1", spac_id=spac.id, name="Helio Grid", stage=TargetStage.sourcing, enterprise_value=1.5e9)
    )
    store.insert(
        Target(
            org_id="org-1",
            spac_id=spac.id,
            name="Nimbus Freight",
            stage=TargetStage.deep_evaluation,
            enterprise_value=8e8,
            evaluation_score=71.0,
        )
    )
    store.insert(Task(org_id="org-1", spac_id=spac.id, title="Draft S-4", status=TaskStatus.IN_PROGRESS, due_date=now + timedelta(days=3)))
    store.insert(
        Filing(
            org_id="org-1",
            spac_id=spac.id,
            form_type="10-Q",
            filed_date=datetime(2024, 5, 14),
            status=FilingStatus.ACCEPTED,
            accession_number="0001213900-24-042001",
        )
    )
    store.insert(TeamMember(org_id="org-1", email="owner@soren.test", role=TeamRole.owner, status="active"))
    return store


@pytest.fixture
def client(store):
    overrides = {
        deps.get_spac_repository: lambda: MemorySpacRepository(store),
        deps.get_target_repository: lambda: MemoryTargetRepository(store),
        deps.get_score_history_repository: lambda: MemoryScoreHistoryRepository(store),
        deps.get_team_repository: lambda: MemoryTeamRepository(store),
        deps.get_billing_repository: lambda: MemoryBillingRepository(store),
        deps.get_integration_repository: lambda: MemoryIntegrationRepository(store),
        deps.get_api_key_repository: lambda: MemoryApiKeyRepository(store),
    }
    app.dependency_overrides.update(overrides)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_and_auth_headers(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/spacs/1").status_code == 401
    assert client.get("/spacs/1", headers={**HEADERS, "X-Roles": "superuser"}).status_code == 401


def test_get_spac_with_badges_and_counts(client):
    response = client.get("/spacs/1", headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["status_badge"] == {"variant": "primary", "label": "Active"}
    assert body["phase"] == "target_search"
    assert body["allowed_status_transitions"] == ["completed", "liquidated"]
    assert body["counts"] == {"targets": 2, "documents": 0, "filings": 1, "tasks": 1}


def test_other_org_sees_not_found(client):
    assert client.get("/spacs/1", headers=OUTSIDER_HEADERS).status_code == 404
    assert client.get("/targets/1", headers=OUTSIDER_HEADERS).status_code == 404


def test_spac_metrics(client):
    body = client.get("/spacs/1/metrics", headers=HEADERS).json()
    assert body["days"] == 10
    assert body["is_urgent"] is True
    assert body["is_critical"] is True
    assert body["trust_per_share"] == 10.0
    assert body["redemption_rate_percent"] == 32.5
    assert body["redemption_rate_display"] == "32.5%"


def test_spac_timeline_and_deadlines(client):
    timeline = client.get("/spacs/1/timeline", headers=HEADERS).json()
    assert [event["type"] for event in timeline["events"]] == ["ipo", "task", "closing"]
    assert timeline["deadline_passed"] is False
    assert timeline["combination_closed"] is False

    deadlines = client.get("/spacs/1/deadlines", headers=HEADERS).json()
    by_name = {entry["name"]: entry for entry in deadlines["deadlines"]}
    assert by_name["liquidation_deadline"]["date"] == "2025-03-15"
    assert by_name["liquidation_deadline"]["status"] is not None
    assert by_name["vote_deadline"]["date"] is None
    assert deadlines["filings"][0]["status_badge"]["label"] == "Accepted"


def test_spac_alerts_next_to_deadlines(client, store):
    assert client.get("/spacs/1/alerts", headers=HEADERS).json()["alerts"] == []

    store.insert(
        Filing(
            org_id="org-1",
            spac_id=1,
            form_type="8-K",
            status=FilingStatus.DRAFT,
            due_date=utcnow() + timedelta(days=2, hours=1),
        )
    )
    body = client.get("/spacs/1/alerts", headers=HEADERS).json()
    assert [(alert["type"], alert["severity"]) for alert in body["alerts"]] == [("DEADLINE_CRITICAL", "CRITICAL")]
    assert body["alerts"][0]["title"] == "Critical: 8-K Due in 2 Days"
    assert all(alert["severity"] in ("CRITICAL", "WARNING", "INFO") for alert in body["filing_alerts"])

    assert client.get("/spacs/1/alerts?filer_status=MEGA", headers=HEADERS).status_code == 422
    assert client.get("/spacs/1/alerts", headers=OUTSIDER_HEADERS).status_code == 404


def test_spac_filing_calendar(client):
    body = client.get("/spacs/1/filing-calendar", headers=HEADERS).json()
    assert body["filer_status"] == "NON_ACCELERATED"
    assert len(body["periodic_filings"]) == 12
    deadlines = [entry["deadline"] for entry in body["periodic_filings"]]
    assert deadlines == sorted(deadlines)

    one_year = client.get(
        "/spacs/1/filing-calendar?years_ahead=0&fiscal_year_end_month=6&filer_status=LARGE_ACCELERATED",
        headers=HEADERS,
    ).json()
    assert sorted(entry["filing_type"] for entry in one_year["periodic_filings"]) == ["FORM_10K"] + ["FORM_10Q"] * 3
    assert client.get("/spacs/1/filing-calendar?fiscal_year_end_month=13", headers=HEADERS).status_code == 422


def test_spac_lifecycle_moves(client):
    assert client.patch("/spacs/1/phase", json={"phase": "due_diligence"}, headers=HEADERS).json()["phase"] == "due_diligence"
    assert client.patch("/spacs/1/phase", json={"phase": "ipo"}, headers=HEADERS).status_code == 409
    assert client.patch("/spacs/1/status", json={"status": "draft"}, headers=HEADERS).status_code == 409
    assert client.patch("/spacs/1/status", json={"status": "archived"}, headers=HEADERS).status_code == 422
    body = client.patch("/spacs/1/status", json={"status": "completed"}, headers=HEADERS).json()
    assert body["status"] == "completed"
    assert body["allowed_status_transitions"] == []


def test_filing_sync_is_queued(client, monkeypatch):
    from spac_os.workers import tasks

    queued = _QueuedTask()
    monkeypatch.setattr(tasks, "sync_edgar_filings", queued)
    response = client.post("/spacs/1/filings:sync", headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"task_id": "task-123", "spac_id": 1, "status": "queued"}
    assert queued.calls == [("u-admin", "org-1", ["admin"], 1)]


def test_funnel_and_stage_moves(client):
    funnel = client.get("/targets/funnel", params={"spac_id": 1}, headers=HEADERS).json()
    assert funnel["total_targets"] == 2
    assert [stage["stage"] for stage in funnel["stages"]] == [stage.value for stage in TargetStage]
    negotiation = next(stage for stage in funnel["stages"] if stage["stage"] == "negotiation")
    assert negotiation["count"] == 0
    assert negotiation["badge"]["variant"] == "warning"

    moved = client.patch("/targets/2/stage", json={"stage": "negotiation"}, headers=HEADERS).json()
    assert moved["stage"] == "negotiation"
    assert moved["allowed_transitions"] == ["execution", "closed", "passed"]
    assert client.patch("/targets/2/stage", json={"stage": "sourcing"}, headers=HEADERS).status_code == 409

    transitions = client.get("/targets/stages/passed/transitions").json()
    assert transitions == {"stage": "passed", "terminal": True, "allowed": []}
    assert client.get("/targets/stages/limbo/transitions").status_code == 422


def test_score_history_append_and_trend(client):
    first = client.post("/score-history", json={"target_id": 1, "overall_score": 60}, headers=HEADERS)
    assert first.status_code == 200
    assert first.json()["trend"]["trend"] == "new"

    second = client.post(
        "/score-history",
        json={"target_id": 1, "overall_score": 90, "market_score": 8.5, "thesis": "Better unit economics"},
        headers=HEADERS,
    ).json()
    assert [entry["overall_score"] for entry in second["history"]] == [90, 60]
    assert second["history"][0]["market_score"] == 85
    assert second["trend"]["trend"] == "improving"
    assert second["trend"]["change_percent"] == 50.0
    assert second["sparkline"] == [60, 90]

    listed = client.get("/score-history", params={"target_id": 1, "limit": 1}, headers=HEADERS).json()
    assert len(listed["history"]) == 1
    assert listed["trend"]["trend"] == "new"

    assert client.post("/score-history", json={"target_id": 1, "overall_score": 120}, headers=HEADERS).status_code == 422
    assert client.post("/score-history", json={"target_id": 99, "overall_score": 50}, headers=HEADERS).status_code == 404


def test_ai_scoring_requires_a_provider_key(client, monkeypatch):
    from spac_os.workers import tasks

    queued = _QueuedTask()
    monkeypatch.setattr(tasks, "score_target", queued)
    settings = get_settings()
    for name in ("anthropic_api_key", "openai_api_key", "gemini_api_key"):
        monkeypatch.setattr(settings, name, "")
    assert client.post("/score-history/score", json={"target_id": 1}, headers=HEADERS).status_code == 503

    monkeypatch.setattr(settings, "anthropic_api_key", "sk-test")
    assert client.post("/score-history/score", json={"target_id": 1, "weights": {"vibes": 1}}, headers=HEADERS).status_code == 422
    response = client.post("/score-history/score", json={"target_id": 1, "weights": {"market": 0.4}}, headers=HEADERS)
    assert response.json() == {"task_id": "task-123", "target_id": 1, "status": "queued"}
    assert queued.calls == [("u-admin", "org-1", ["admin"], 1, {"market": 0.4})]


def test_investment_thesis_is_queued_and_shown_on_the_target(client, store, monkeypatch):
    from spac_os.workers import tasks

    queued = _QueuedTask()
    monkeypatch.setattr(tasks, "write_investment_thesis", queued)
    monkeypatch.setattr(get_settings(), "openai_api_key", "sk-test")

    response = client.post("/targets/2/thesis", headers=HEADERS)
    assert response.json() == {"task_id": "task-123", "target_id": 2, "status": "queued"}
    assert queued.calls == [("u-admin", "org-1", ["admin"], 2)]
    assert client.post("/targets/2/thesis", headers=OUTSIDER_HEADERS).status_code == 404

    assert client.get("/targets/2", headers=HEADERS).json()["investment_thesis"] is None
    store.rows(Target)[1].profile_json = {"investment_thesis": {"summary": "Freight network consolidator"}}
    assert client.get("/targets/2", headers=HEADERS).json()["investment_thesis"]["summary"] == "Freight network consolidator"


def test_financial_calculators(client):
    pipe = client.post(
        "/financial/pipe-metrics",
        json={
            "target_raise": 50_000_000,
            "investors": [
                {"id": "1", "name": "Fidelity", "investor_type": "institutional", "commitment_amount": 20_000_000, "subscription_status": "committed"},
                {"id": "2", "name": "Citadel", "investor_type": "hedge_fund", "commitment_amount": 10_000_000, "subscription_status": "soft_circled"},
            ],
        },
        headers=HEADERS,
    ).json()
    assert pipe["metrics"]["percent_complete"] == 40.0
    assert pipe["investors"][0]["shares"] == 2_000_000
    assert pipe["investors"][1]["status_badge"]["label"] == "Soft Circled"

    scenarios = client.post(
        "/financial/redemption-scenarios",
        json={
            "public_shares": 10_000_000,
            "redemption_price": 10.0,
            "trust_value": 100_000_000,
            "sponsor_shares": 2_500_000,
            "pipe_commitment": 50_000_000,
            "minimum_cash": 80_000_000,
            "target_equity_value": 500_000_000,
            "rates": [0, 90],
        },
        headers=HEADERS,
    ).json()
    assert [row["meets_minimum_cash"] for row in scenarios["scenarios"]] == [True, False]
    assert scenarios["max_viable_redemption"] == 70

    cap_table = client.post(
        "/financial/cap-table",
        json={"class_totals": {"class_a": 800, "class_b": 200, "options": 250}},
        headers=HEADERS,
    ).json()
    assert [row["percentage_of_diluted"] for row in cap_table["classes"]] == [64.0, 16.0, 20.0]
    assert cap_table["issues"] == []


def test_cap_table_strict_mode_rejects_mismatched_holders(client):
    response = client.post(
        "/financial/cap-table",
        json={
            "class_totals": {"class_a": 800, "class_b": 200},
            "holders": [{"id": "1", "name": "Public", "holder_type": "public", "shares": 700, "share_class": "class_a"}],
            "strict": True,
        },
        headers=HEADERS,
    )
    assert response.status_code == 422
    assert response.json()["detail"]["issues"] == ["Holders of class_a own 700 shares, class total is 800"]


def test_team_settings(client):
    assert client.post("/settings/team", json={"email": "a@soren.test"}, headers={**HEADERS, "X-Roles": "member"}).status_code == 403
    invited = client.post("/settings/team", json={"email": "A@soren.test", "name": "Analyst"}, headers=HEADERS)
    assert invited.status_code == 201
    assert invited.json()["email"] == "a@soren.test"
    member_id = invited.json()["id"]

    assert client.patch(f"/settings/team/{member_id}", json={"role": "viewer"}, headers=HEADERS).json()["role"] == "viewer"
    assert client.delete("/settings/team/1", headers=OWNER_HEADERS).status_code == 409
    assert client.delete(f"/settings/team/{member_id}", headers=HEADERS).json() == {"status": "deleted", "id": member_id}
    assert [m["email"] for m in client.get("/settings/team", headers=HEADERS).json()] == ["owner@soren.test"]


def test_billing_settings(client):
    billing = client.get("/settings/billing", headers=HEADERS).json()
    assert billing["subscription"]["plan"] == "starter"
    assert [plan["id"] for plan in billing["plans"]] == ["starter", "professional", "enterprise"]

    changed = client.put("/settings/billing/plan", json={"plan": "professional"}, headers=HEADERS).json()
    assert changed["subscription"]["seats"] == 25
    assert client.put("/settings/billing/plan", json={"plan": "gold"}, headers=HEADERS).status_code == 422


def test_integration_settings(client):
    connected = client.post("/settings/integrations", json={"provider": "sec_edgar"}, headers=HEADERS)
    assert connected.status_code == 201
    integration_id = connected.json()["id"]
    listed = client.get("/settings/integrations", headers=HEADERS).json()
    assert listed["integrations"][0]["status"] == "connected"
    assert "slack" in listed["available_providers"]
    assert client.delete(f"/settings/integrations/{integration_id}", headers=HEADERS).json()["status"] == "disconnected"


def test_api_key_secret_is_only_returned_on_creation(client):
    created = client.post("/settings/api-keys", json={"name": "CI", "permissions": ["read", "write"]}, headers=HEADERS)
    assert created.status_code == 201
    body = created.json()
    assert body["secret"].startswith("spac_api_")

    listed = client.get("/settings/api-keys", headers=HEADERS).json()
    assert "secret" not in listed[0]
    assert listed[0]["prefix"] == body["prefix"]

    revoked = client.delete(f"/settings/api-keys/{body['id']}", headers=HEADERS).json()
    assert revoked["revoked_at"] is not None


def test_api_key_authenticates_requests_until_revoked(client):
    body = client.post("/settings/api-keys", json={"name": "Reporting", "permissions": ["read"]}, headers=HEADERS).json()
    key_headers = {"X-Api-Key": body["secret"]}

    assert client.get("/spacs/1", headers=key_headers).status_code == 200
    # A read key acts as a viewer.
    assert client.post("/settings/team", json={"email": "new@soren.test"}, headers=key_headers).status_code == 403
    assert client.get("/spacs/1", headers={"X-Api-Key": body["secret"] + "x"}).status_code == 401

    client.delete(f"/settings/api-keys/{body['id']}", headers=HEADERS)
    assert client.get("/spacs/1", headers=key_headers).status_code == 401


def test_catalog(client):
    badges = client.get("/catalog/badges").json()
    assert badges["FilingStatus"]["OVERDUE"]["variant"] == "danger"
    vocabularies = client.get("/catalog/vocabularies").json()
    assert vocabularies["SpacPhase"][0] == "formation"
    assert vocabularies["TeamRole"] == ["owner", "admin", "member", "viewer"]
