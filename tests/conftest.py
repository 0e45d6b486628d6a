from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from app.services.access_decision_service import AccessDecisionEngine
from app.services.access_types import (
    AccessLogRecord,
    FeatureGrant,
    PolicyRule,
    PolicyViolationRecord,
    RoleRef,
    UserAttributes,
)
from app.services.errors import NotFoundError


class FakeUserSource:
    def __init__(self, users: dict[str, UserAttributes] | None = None) -> None:
        self.users = dict(users or {})
        self.fail_with: Exception | None = None
        self.calls = 0

    def add(self, user_id: str, **attrs) -> UserAttributes:
        user = UserAttributes(user_id=user_id, **attrs)
        self.users[user_id] = user
        return user

    async def get_attributes(self, user_id: str) -> UserAttributes:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        if user_id not in self.users:
            raise NotFoundError("user", user_id)
        return self.users[user_id]


class FakeRoleSource:
    def __init__(self) -> None:
        self.roles: dict[str, list[RoleRef]] = {}
        self.grants: dict[str, list[FeatureGrant]] = {}

    def assign(self, user_id: str, slug: str, *, grants_all: bool = False) -> None:
        self.roles.setdefault(user_id, []).append(RoleRef(slug=slug, name=slug, grants_all=grants_all))

    def grant(self, slug: str, feature: str, **flags: bool) -> None:
        self.grants.setdefault(feature, []).append(FeatureGrant(role_slug=slug, feature=feature, **flags))

    async def get_roles_and_grants(self, user_id: str, feature: str) -> tuple[list[RoleRef], list[FeatureGrant]]:
        return list(self.roles.get(user_id, [])), list(self.grants.get(feature, []))


class FakePolicySource:
    def __init__(self) -> None:
        self.features: dict[str, list[PolicyRule]] = {}
        self.fail_with: Exception | None = None
        self.delay: float = 0.0
        self.calls = 0

    def add_feature(self, name: str) -> None:
        self.features.setdefault(name, [])

    def add_policy(self, feature: str, attribute: str, operator: str, value: str, policy_id: str | None = None) -> PolicyRule:
        rules = self.features.setdefault(feature, [])
        rule = PolicyRule(
            policy_id=policy_id or f"{feature}-{len(rules) + 1}",
            feature=feature,
            attribute=attribute,
            operator=operator,
            value=value,
        )
        rules.append(rule)
        return rule

    async def get_policies_for_feature(self, feature: str) -> list[PolicyRule]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        if feature not in self.features:
            raise NotFoundError("feature", feature)
        return list(self.features[feature])


@dataclass
class FakeAuditSink:
    access_logs: list[AccessLogRecord] = field(default_factory=list)
    violations: list[PolicyViolationRecord] = field(default_factory=list)
    fail_access_log: bool = False
    fail_violation: bool = False
    delay: float = 0.0

    async def append_access_log(self, entry: AccessLogRecord) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_access_log:
            raise RuntimeError("audit store unavailable")
        self.access_logs.append(entry)

    async def append_policy_violation(self, violation: PolicyViolationRecord) -> None:
        if self.fail_violation:
            raise RuntimeError("violation store unavailable")
        self.violations.append(violation)


@dataclass
class EngineKit:
    users: FakeUserSource
    roles: FakeRoleSource
    policies: FakePolicySource
    audit: FakeAuditSink
    engine: AccessDecisionEngine


@pytest.fixture
def kit() -> EngineKit:
    users = FakeUserSource()
    roles = FakeRoleSource()
    policies = FakePolicySource()
    audit = FakeAuditSink()
    engine = AccessDecisionEngine(
        users=users,
        roles=roles,
        policies=policies,
        audit=audit,
        lookup_timeout=0.2,
        audit_timeout=0.2,
    )
    return EngineKit(users=users, roles=roles, policies=policies, audit=audit, engine=engine)
