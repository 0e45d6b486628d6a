"""ABAC 策略评估。

同一功能上的策略按 AND 组合：任一策略失败即整体失败。
布尔版本与详细版本共用 ``evaluate_policy``，避免两条判定路径出现分歧。
"""

from __future__ import annotations

from typing import Iterable

from app.services import attribute_comparator
from app.services.access_types import EvaluationResult, FailedPolicy, PolicyRule, UserAttribute, UserAttributes
from app.services.errors import ComparisonError

REASON_MISSING_ATTRIBUTE = "missing attribute"


def resolve_user_value(user: UserAttributes, attribute: UserAttribute) -> str | int | None:
    """取用户在指定属性上的值。"""

    if attribute is UserAttribute.DEPARTMENT:
        return user.department
    if attribute is UserAttribute.REGION:
        return user.region
    if attribute is UserAttribute.LEVEL:
        return user.level
    raise ValueError(f"unhandled attribute: {attribute}")


def _failure(policy: PolicyRule, actual: str | int | None, reason: str) -> FailedPolicy:
    return FailedPolicy(
        policy_id=policy.policy_id,
        attribute=policy.attribute,
        operator=policy.operator,
        value=policy.value,
        actual_value=None if actual is None else str(actual),
        reason=reason,
    )


def evaluate_policy(user: UserAttributes, policy: PolicyRule) -> FailedPolicy | None:
    """评估单条策略，通过返回 None，否则返回失败详情。"""

    try:
        attribute = UserAttribute(policy.attribute)
    except ValueError:
        return _failure(policy, None, f"unsupported attribute: {policy.attribute}")

    user_value = resolve_user_value(user, attribute)
    # 空字符串同样视为未设置
    if user_value is None or user_value == "":
        return _failure(policy, None, REASON_MISSING_ATTRIBUTE)

    try:
        matched = attribute_comparator.compare(user_value, policy.operator, policy.value)
    except ComparisonError as exc:
        return _failure(policy, user_value, exc.message)

    if not matched:
        return _failure(policy, user_value, f"{policy.attribute} {policy.operator} {policy.value} not satisfied")
    return None


def evaluate_with_details(user: UserAttributes, policies: Iterable[PolicyRule]) -> EvaluationResult:
    """评估全部策略并收集所有失败项。"""

    failed: list[FailedPolicy] = []
    for policy in policies:
        failure = evaluate_policy(user, policy)
        if failure is not None:
            failed.append(failure)
    return EvaluationResult(is_valid=not failed, failed_policies=tuple(failed))


def evaluate_policies(user: UserAttributes, policies: Iterable[PolicyRule]) -> bool:
    """热路径布尔判定，遇到第一条失败即返回。"""

    return all(evaluate_policy(user, policy) is None for policy in policies)
