from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
import pytest

from app.main import app
from app.services import policy_service, user_service
from app.services.access_types import PolicyRule
from app.services.errors import NotFoundError
from app.services.route_registry import BUILTIN_FEATURES


@asynccontextmanager
async def api_client(user_id: str | None = None):
    headers = {"X-User-Id": user_id} if user_id else {}
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver", headers=headers) as client:
        yield client


@pytest.fixture
def guarded(kit, monkeypatch):
    for name in BUILTIN_FEATURES:
        kit.policies.add_feature(name)
    kit.users.add("admin", department="IT", level=9)
    kit.roles.assign("admin", "super", grants_all=True)
    kit.users.add("auditor", department="Compliance", level=4)
    kit.roles.assign("auditor", "auditor")
    kit.roles.grant("auditor", "access_diagnostics", can_read=True)
    kit.roles.grant("auditor", "audit_logs", can_read=True)
    monkeypatch.setattr(app.state, "engine", kit.engine, raising=False)
    return kit


@pytest.mark.integration
@pytest.mark.asyncio
async def test_health_is_exempt(guarded) -> None:
    async with api_client() as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert guarded.audit.access_logs == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_missing_user_header_is_401(guarded) -> None:
    async with api_client() as client:
        response = await client.get("/api/abac/policies/stats")

    assert response.status_code == 401
    assert guarded.audit.access_logs == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unregistered_route_is_403(guarded) -> None:
    async with api_client("admin") as client:
        response = await client.get("/api/unknown")

    assert response.status_code == 403
    assert response.json() == {"detail": "access denied"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_evaluate_endpoint_returns_decision(guarded) -> None:
    guarded.users.add("u1", department="Finance", level=5)
    guarded.roles.assign("u1", "analyst")
    guarded.roles.grant("analyst", "reports", can_read=True)
    guarded.policies.add_policy("reports", "department", "==", "HR", policy_id="hr-only")

    async with api_client("auditor") as client:
        response = await client.post(
            "/api/access/evaluate",
            json={"user_id": "u1", "feature": "reports", "action": "read", "path": "/reports", "method": "get"},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["allowed"] is False
    assert body["outcome"] == "denied_by_abac"
    assert body["failed_policies"][0]["policy_id"] == "hr-only"
    assert body["audit_recorded"] is True
    # 中间件与被诊断的评估各写一条访问日志
    assert [(entry.user_id, entry.feature) for entry in guarded.audit.access_logs] == [
        ("auditor", "access_diagnostics"),
        ("u1", "reports"),
    ]
    assert guarded.audit.access_logs[1].method == "GET"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_caller_without_grant_is_denied(guarded) -> None:
    async with api_client("auditor") as client:
        response = await client.post("/api/abac/features/reports/policies", json={"attribute": "region"})

    assert response.status_code == 403
    assert response.json() == {"detail": "access denied"}
    entry = guarded.audit.access_logs[-1]
    assert (entry.feature, entry.action, entry.decision) == ("abac_policies", "create", "deny")


@pytest.mark.integration
@pytest.mark.asyncio
async def test_abac_policy_on_builtin_feature_restricts_superuser(guarded) -> None:
    guarded.policies.add_policy("audit_logs", "department", "==", "Compliance")

    async with api_client("admin") as client:
        response = await client.get("/api/audit/access-logs")

    assert response.status_code == 403
    assert guarded.audit.violations[0].feature == "audit_logs"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_policy_check_with_details(guarded) -> None:
    guarded.users.add("u2", region="US")
    guarded.policies.add_policy("reports", "region", "in", '["APAC", "EMEA"]', policy_id="apac")

    async with api_client("auditor") as client:
        quick = await client.get("/api/access/policy-check", params={"user_id": "u2", "feature": "reports"})
        detailed = await client.get(
            "/api/access/policy-check", params={"user_id": "u2", "feature": "reports", "details": "true"}
        )
        missing = await client.get(
            "/api/access/policy-check", params={"user_id": "ghost", "feature": "reports", "details": "true"}
        )

    assert quick.json()["allowed"] is False
    assert detailed.json()["failed_policies"][0]["actual_value"] == "US"
    assert missing.status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
async def test_invalid_policy_payload_is_422(guarded) -> None:
    async with api_client("admin") as client:
        response = await client.post(
            "/api/abac/features/reports/policies",
            json={"attribute": "level", "operator": ">", "value": "senior"},
        )

    assert response.status_code == 422
    assert any("must be numeric" in message for message in response.json()["errors"])


@pytest.mark.integration
@pytest.mark.asyncio
async def test_create_policy_returns_item(guarded, monkeypatch) -> None:
    async def fake_create(feature: str, payload: dict):
        values = policy_service.validate_policy_payload(payload)
        return policy_service.Feature.PolicyItem(policy_id="new-1", **values)

    monkeypatch.setattr(policy_service, "create_policy", fake_create)

    async with api_client("admin") as client:
        response = await client.post(
            "/api/abac/features/reports/policies",
            json={"attribute": "region", "operator": "in", "value": ["APAC"]},
        )

    assert response.status_code == 201
    body = response.json()
    assert body["policy_id"] == "new-1"
    assert body["value"] == '["APAC"]'


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unknown_feature_policies_is_404(guarded, monkeypatch) -> None:
    async def fake_list(feature: str):
        raise NotFoundError("feature", feature)

    monkeypatch.setattr(policy_service, "list_policies", fake_list)

    async with api_client("admin") as client:
        response = await client.get("/api/abac/features/missing/policies")

    assert response.status_code == 404
    assert response.json() == {"detail": "feature not found: missing"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_user_attributes_validation(guarded, monkeypatch) -> None:
    async def fake_get_user(_user_id: str):
        return None

    monkeypatch.setattr(user_service, "get_user", fake_get_user)

    async with api_client("admin") as client:
        invalid = await client.put("/api/abac/users/u9/attributes", json={"level": 42})
        missing = await client.get("/api/abac/users/u9/attributes")

    assert invalid.status_code == 422
    assert missing.status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
async def test_audit_failure_does_not_change_decision(guarded) -> None:
    guarded.audit.fail_access_log = True
    guarded.users.add("u3", department="Finance")

    async with api_client("auditor") as client:
        allowed = await client.get("/api/access/policy-check", params={"user_id": "u3", "feature": "reports"})
        evaluated = await client.post(
            "/api/access/evaluate", json={"user_id": "u3", "feature": "reports", "action": "read"}
        )
    async with api_client("u3") as client:
        denied = await client.get("/api/audit/access-logs")

    assert allowed.status_code == 200
    assert evaluated.json()["audit_recorded"] is False
    assert evaluated.json()["outcome"] == "denied_by_rbac"
    assert denied.status_code == 403


@pytest.mark.integration
@pytest.mark.asyncio
async def test_overlong_user_header_is_401(guarded) -> None:
    async with api_client("a" * 65) as client:
        response = await client.get("/api/audit/access-logs")

    assert response.status_code == 401
    assert response.json() == {"detail": "invalid user identity"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_prefix_lookalike_path_is_not_guarded(guarded) -> None:
    async with api_client() as client:
        response = await client.get("/apiary")

    assert response.status_code == 404
    assert guarded.audit.access_logs == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_policy_check_details_lookup_failure_is_503(guarded, monkeypatch) -> None:
    guarded.users.add("u4", department="Finance")
    original = guarded.policies.get_policies_for_feature

    async def flaky_policies(feature: str):
        if feature == "reports":
            raise ConnectionError("mongo://internal-host refused")
        return await original(feature)

    monkeypatch.setattr(guarded.policies, "get_policies_for_feature", flaky_policies)

    async with api_client("auditor") as client:
        response = await client.get(
            "/api/access/policy-check", params={"user_id": "u4", "feature": "reports", "details": "true"}
        )

    assert response.status_code == 503
    assert response.json() == {"detail": "lookup failed"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_batch_policy_check(guarded) -> None:
    guarded.users.add("u5", region="APAC")
    guarded.policies.add_policy("reports", "region", "in", '["APAC"]')
    guarded.policies.add_policy("payroll", "region", "==", "US")

    async with api_client("auditor") as client:
        response = await client.post(
            "/api/access/policy-check/batch",
            json={"user_id": "u5", "features": ["reports", "payroll", "missing"]},
        )

    assert response.status_code == 200
    assert response.json() == {"user_id": "u5", "results": {"reports": True, "payroll": False, "missing": False}}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_policies_by_attribute(guarded, monkeypatch) -> None:
    async def fake_by_attribute(attribute: str):
        return [PolicyRule(policy_id="r1", feature="reports", attribute=attribute, operator=">=", value="3")]

    monkeypatch.setattr(policy_service, "get_policies_by_attribute", fake_by_attribute)

    async with api_client("admin") as client:
        response = await client.get("/api/abac/policies/by-attribute/level")

    assert response.status_code == 200
    assert response.json()["items"] == [
        {"policy_id": "r1", "feature": "reports", "attribute": "level", "operator": ">=", "value": "3"}
    ]
