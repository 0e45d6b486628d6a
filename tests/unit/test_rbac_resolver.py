from __future__ import annotations

import pytest

from app.services import rbac_resolver
from app.services.access_types import CrudAction, FeatureGrant, RoleRef


@pytest.mark.unit
def test_grants_all_role_allows_without_grants() -> None:
    result = rbac_resolver.check([RoleRef(slug="super", grants_all=True)], [], CrudAction.DELETE)

    assert result.allowed is True
    assert result.reason == rbac_resolver.REASON_SUPERUSER


@pytest.mark.unit
def test_no_roles_denied() -> None:
    result = rbac_resolver.check([], [], CrudAction.READ)

    assert result.allowed is False
    assert result.reason == rbac_resolver.REASON_NO_GRANT


@pytest.mark.unit
def test_grant_for_action_allows() -> None:
    roles = [RoleRef(slug="analyst")]
    grants = [FeatureGrant(role_slug="analyst", feature="reports", can_read=True)]

    result = rbac_resolver.check(roles, grants, CrudAction.READ)

    assert result.allowed is True
    assert result.reason == rbac_resolver.REASON_ROLE_GRANT


@pytest.mark.unit
def test_grant_without_action_denied_with_action_reason() -> None:
    roles = [RoleRef(slug="analyst")]
    grants = [FeatureGrant(role_slug="analyst", feature="reports", can_read=True)]

    result = rbac_resolver.check(roles, grants, CrudAction.UPDATE)

    assert result.allowed is False
    assert result.reason == "no role grants update access"


@pytest.mark.unit
def test_grants_union_across_roles() -> None:
    roles = [RoleRef(slug="reader"), RoleRef(slug="writer")]
    grants = [
        FeatureGrant(role_slug="reader", feature="reports", can_read=True),
        FeatureGrant(role_slug="writer", feature="reports", can_update=True),
    ]

    assert rbac_resolver.check(roles, grants, CrudAction.READ).allowed is True
    assert rbac_resolver.check(roles, grants, CrudAction.UPDATE).allowed is True
    assert rbac_resolver.check(roles, grants, CrudAction.DELETE).allowed is False


@pytest.mark.unit
def test_grants_of_roles_not_held_are_ignored() -> None:
    roles = [RoleRef(slug="reader")]
    grants = [FeatureGrant(role_slug="admin", feature="reports", can_read=True, can_delete=True)]

    result = rbac_resolver.check(roles, grants, CrudAction.READ)

    assert result.allowed is False
    assert result.reason == rbac_resolver.REASON_NO_GRANT
