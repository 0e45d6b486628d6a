"""访问决策引擎：组合 RBAC 与 ABAC，并写入审计记录。

判定流程（单次调用内的状态机，不持久化）::

    开始 -> RBAC 检查 -> (失败则拒绝) -> ABAC 检查（功能挂有策略时）
         -> (任一策略失败则拒绝) -> 放行

任何查找或评估错误都按拒绝处理（fail closed）。无论结果如何，每次调用
恰好写入一条访问日志；ABAC 失败时每条失败策略额外写入一条违规记录。
审计写入失败会以 AuditWriteError 抛给调用方，但不改变已得出的决策。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Iterable, TypeVar

from app.services import abac_evaluator, rbac_resolver
from app.services.access_types import (
    AccessLogRecord,
    AuditSink,
    CrudAction,
    Decision,
    DecisionOutcome,
    EvaluationResult,
    PolicyRule,
    PolicySource,
    PolicyViolationRecord,
    RequestMeta,
    RoleGrantSource,
    UserAttributes,
    UserAttributeSource,
)
from app.services.errors import AuditWriteError, LookupFailedError, NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

REASON_USER_NOT_FOUND = "user not found"
REASON_FEATURE_NOT_FOUND = "feature not found"
REASON_LOOKUP_FAILED = "lookup failed"
REASON_POLICIES_SATISFIED = "all policies satisfied"


class _LookupFailed(Exception):
    """内部信号：查找失败，已记录日志，按拒绝处理。"""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class AccessDecisionEngine:
    """访问决策引擎。

    引擎自身不持有可变状态，可被多个请求并发调用；共享状态只存在于
    注入的数据源与审计写入方中。
    """

    def __init__(
        self,
        *,
        users: UserAttributeSource,
        roles: RoleGrantSource,
        policies: PolicySource,
        audit: AuditSink,
        lookup_timeout: float = 2.0,
        audit_timeout: float = 2.0,
    ) -> None:
        self._users = users
        self._roles = roles
        self._policies = policies
        self._audit = audit
        self._lookup_timeout = lookup_timeout
        self._audit_timeout = audit_timeout

    async def evaluate(
        self,
        user_id: str,
        feature: str,
        action: CrudAction,
        meta: RequestMeta | None = None,
    ) -> Decision:
        """对 (用户, 功能, 动作) 做出决策并写入审计。"""

        meta = meta or RequestMeta()
        violations: list[PolicyViolationRecord] = []

        try:
            decision = await self._decide(user_id, feature, action, violations)
        except _LookupFailed as exc:
            decision = Decision(allowed=False, outcome=DecisionOutcome.DENIED_ERROR, reason=exc.reason)

        if decision.allowed:
            logger.debug("访问放行: user=%s feature=%s action=%s", user_id, feature, action.value)
        else:
            logger.info(
                "访问拒绝: user=%s feature=%s action=%s outcome=%s reason=%s",
                user_id,
                feature,
                action.value,
                decision.outcome.value,
                decision.reason,
            )

        await self._write_audit(user_id, feature, action, meta, decision, violations)
        return decision

    async def evaluate_policies_only(self, user_id: str, feature: str) -> bool:
        """仅评估 ABAC 策略（不写审计），任何错误都返回 False。"""

        try:
            user = await self._load_user(user_id)
            policies = await self._load_policies(feature)
        except _LookupFailed:
            return False
        return abac_evaluator.evaluate_policies(user, policies)

    async def evaluate_policies_with_details(self, user_id: str, feature: str) -> EvaluationResult:
        """仅评估 ABAC 策略并返回失败详情（不写审计）。

        用户或功能不存在时抛出 NotFoundError，供诊断工具区分；
        其他查找失败统一抛出 LookupFailedError。
        """

        user = await self._checked(self._users.get_attributes(user_id), f"user {user_id}")
        policies = await self._checked(self._policies.get_policies_for_feature(feature), f"policies of {feature}")
        return abac_evaluator.evaluate_with_details(user, policies)

    async def batch_evaluate(self, user_id: str, features: Iterable[str]) -> dict[str, bool]:
        """批量评估多个功能的 ABAC 策略，结果为 功能 -> 是否通过。"""

        names = list(dict.fromkeys(features))
        results = await asyncio.gather(*(self.evaluate_policies_only(user_id, name) for name in names))
        return dict(zip(names, results))

    async def _decide(
        self,
        user_id: str,
        feature: str,
        action: CrudAction,
        violations: list[PolicyViolationRecord],
    ) -> Decision:
        user = await self._load_user(user_id)
        roles, grants = await self._load_roles_and_grants(user_id, feature)

        rbac = rbac_resolver.check(roles, grants, action)
        if not rbac.allowed:
            return Decision(allowed=False, outcome=DecisionOutcome.DENIED_BY_RBAC, reason=rbac.reason)

        # grants_all 只跳过 RBAC 授权检查，ABAC 策略仍然生效
        policies = await self._load_policies(feature)
        if not policies:
            return Decision(allowed=True, outcome=DecisionOutcome.ALLOWED, reason=rbac.reason)

        result = abac_evaluator.evaluate_with_details(user, policies)
        if result.is_valid:
            return Decision(allowed=True, outcome=DecisionOutcome.ALLOWED, reason=REASON_POLICIES_SATISFIED)

        for failure in result.failed_policies:
            violations.append(
                PolicyViolationRecord(
                    user_id=user_id,
                    feature=feature,
                    policy_id=failure.policy_id,
                    attribute=failure.attribute,
                    operator=failure.operator,
                    expected_value=failure.value,
                    actual_value=failure.actual_value,
                    reason=failure.reason,
                )
            )
        return Decision(
            allowed=False,
            outcome=DecisionOutcome.DENIED_BY_ABAC,
            reason=result.failed_policies[0].reason,
            failed_policies=result.failed_policies,
        )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._lookup_timeout)

    async def _checked(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await self._call(awaitable)
        except NotFoundError:
            raise
        except asyncio.TimeoutError:
            logger.error("查找超时: %s (timeout=%.2fs)", what, self._lookup_timeout)
            raise LookupFailedError(REASON_LOOKUP_FAILED) from None
        except Exception:
            logger.exception("查找失败: %s", what)
            raise LookupFailedError(REASON_LOOKUP_FAILED) from None

    async def _guarded(self, awaitable: Awaitable[T], what: str, not_found_reason: str) -> T:
        try:
            return await self._checked(awaitable, what)
        except NotFoundError:
            raise _LookupFailed(not_found_reason) from None
        except LookupFailedError:
            raise _LookupFailed(REASON_LOOKUP_FAILED) from None

    async def _load_user(self, user_id: str) -> UserAttributes:
        return await self._guarded(self._users.get_attributes(user_id), f"user {user_id}", REASON_USER_NOT_FOUND)

    async def _load_roles_and_grants(self, user_id: str, feature: str):
        return await self._guarded(
            self._roles.get_roles_and_grants(user_id, feature),
            f"roles of {user_id} on {feature}",
            REASON_USER_NOT_FOUND,
        )

    async def _load_policies(self, feature: str) -> list[PolicyRule]:
        return await self._guarded(
            self._policies.get_policies_for_feature(feature),
            f"policies of {feature}",
            REASON_FEATURE_NOT_FOUND,
        )

    async def _write_audit(
        self,
        user_id: str,
        feature: str,
        action: CrudAction,
        meta: RequestMeta,
        decision: Decision,
        violations: list[PolicyViolationRecord],
    ) -> None:
        errors: list[str] = []

        for violation in violations:
            try:
                await asyncio.wait_for(self._audit.append_policy_violation(violation), timeout=self._audit_timeout)
            except asyncio.TimeoutError:
                errors.append(f"policy violation write timed out ({violation.policy_id})")
            except Exception as exc:
                errors.append(f"policy violation write failed ({violation.policy_id}): {exc}")

        entry = AccessLogRecord(
            user_id=user_id,
            feature=feature,
            action=action.value,
            path=meta.path,
            method=meta.method,
            decision="allow" if decision.allowed else "deny",
            reason=decision.reason,
        )
        try:
            await asyncio.wait_for(self._audit.append_access_log(entry), timeout=self._audit_timeout)
        except asyncio.TimeoutError:
            errors.append("access log write timed out")
        except Exception as exc:
            errors.append(f"access log write failed: {exc}")

        if errors:
            message = "; ".join(errors)
            logger.error("审计写入失败: user=%s feature=%s %s", user_id, feature, message)
            raise AuditWriteError(message, decision)
