from __future__ import annotations

from types import SimpleNamespace

import pytest

from app.services import role_service
from app.services.errors import ValidationError


@pytest.mark.unit
def test_build_default_role_grants_for_auditor_read_only() -> None:
    grants = role_service.build_default_role_grants("auditor")
    mapping = {item["feature"]: item for item in grants}

    assert set(mapping) == {"audit_logs", "access_diagnostics"}
    assert mapping["audit_logs"]["can_read"] is True
    assert mapping["audit_logs"]["can_delete"] is False


@pytest.mark.unit
def test_build_default_role_grants_for_super_is_empty() -> None:
    assert role_service.build_default_role_grants("super") == []


@pytest.mark.unit
def test_normalize_grants_rejects_duplicate_feature() -> None:
    with pytest.raises(ValidationError) as exc_info:
        role_service.normalize_grants(
            [
                {"feature": "reports", "can_read": True},
                {"feature": "reports", "can_update": True},
            ]
        )

    assert exc_info.value.errors == ["duplicate grant for feature: reports"]


@pytest.mark.unit
def test_normalize_grants_fills_flags() -> None:
    assert role_service.normalize_grants([{"feature": " reports ", "can_read": 1}]) == [
        {"feature": "reports", "can_create": False, "can_read": True, "can_update": False, "can_delete": False}
    ]


@pytest.mark.unit
def test_grants_for_feature_filters_by_feature() -> None:
    role = SimpleNamespace(
        slug="analyst",
        grants=[
            SimpleNamespace(feature="reports", can_create=False, can_read=True, can_update=False, can_delete=False),
            SimpleNamespace(feature="exports", can_create=True, can_read=True, can_update=True, can_delete=True),
        ],
    )

    grants = role_service.grants_for_feature(role, "reports")

    assert len(grants) == 1
    assert grants[0].role_slug == "analyst"
    assert grants[0].can_read is True
    assert grants[0].can_delete is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_mongo_role_source_collects_enabled_roles(monkeypatch) -> None:
    async def fake_enabled_user(_user_id: str):
        return SimpleNamespace(role_slugs=["super", "analyst"])

    requested: list[list[str]] = []

    async def fake_list_enabled_roles(slugs: list[str]):
        requested.append(slugs)
        return [
            SimpleNamespace(slug="super", name="超级管理员", grants_all=True, grants=[]),
            SimpleNamespace(
                slug="analyst",
                name="分析师",
                grants_all=False,
                grants=[
                    SimpleNamespace(
                        feature="reports", can_create=False, can_read=True, can_update=False, can_delete=False
                    )
                ],
            ),
        ]

    monkeypatch.setattr(role_service.user_service, "get_enabled_user", fake_enabled_user)
    monkeypatch.setattr(role_service, "list_enabled_roles", fake_list_enabled_roles)

    roles, grants = await role_service.MongoRoleGrantSource().get_roles_and_grants("u1", "reports")

    assert requested == [["super", "analyst"]]
    assert [(role.slug, role.grants_all) for role in roles] == [("super", True), ("analyst", False)]
    assert [(grant.role_slug, grant.feature) for grant in grants] == [("analyst", "reports")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_enabled_roles_without_slugs() -> None:
    assert await role_service.list_enabled_roles([]) == []
