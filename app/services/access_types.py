"""鉴权引擎领域类型与协作方协议。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol


def utc_now() -> datetime:
    """返回 UTC 当前时间。"""

    return datetime.now(timezone.utc)


class UserAttribute(str, Enum):
    """ABAC 支持的用户属性（封闭集合）。"""

    DEPARTMENT = "department"
    REGION = "region"
    LEVEL = "level"


class Operator(str, Enum):
    """ABAC 支持的比较运算符（封闭集合）。"""

    EQ = "=="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    IN = "in"


class CrudAction(str, Enum):
    """功能上的 CRUD 动作。"""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class DecisionOutcome(str, Enum):
    """单次评估的终态。"""

    ALLOWED = "allowed"
    DENIED_BY_RBAC = "denied_by_rbac"
    DENIED_BY_ABAC = "denied_by_abac"
    DENIED_ERROR = "denied_error"


_METHOD_ACTIONS: dict[str, CrudAction] = {
    "GET": CrudAction.READ,
    "HEAD": CrudAction.READ,
    "POST": CrudAction.CREATE,
    "PUT": CrudAction.UPDATE,
    "PATCH": CrudAction.UPDATE,
    "DELETE": CrudAction.DELETE,
}


def action_for_method(method: str) -> CrudAction | None:
    """将 HTTP 方法映射为 CRUD 动作，未知方法返回 None。"""

    return _METHOD_ACTIONS.get(str(method or "").upper())


@dataclass(frozen=True, slots=True)
class UserAttributes:
    """参与 ABAC 评估的用户属性快照。"""

    user_id: str
    department: str | None = None
    region: str | None = None
    level: int | None = None


@dataclass(frozen=True, slots=True)
class RoleRef:
    """用户持有的角色。"""

    slug: str
    name: str = ""
    grants_all: bool = False


@dataclass(frozen=True, slots=True)
class FeatureGrant:
    """角色在某个功能上的 CRUD 授权。"""

    role_slug: str
    feature: str
    can_create: bool = False
    can_read: bool = False
    can_update: bool = False
    can_delete: bool = False

    def allows(self, action: CrudAction) -> bool:
        if action is CrudAction.CREATE:
            return self.can_create
        if action is CrudAction.READ:
            return self.can_read
        if action is CrudAction.UPDATE:
            return self.can_update
        if action is CrudAction.DELETE:
            return self.can_delete
        return False


@dataclass(frozen=True, slots=True)
class PolicyRule:
    """挂在功能上的一条 ABAC 策略。"""

    policy_id: str
    feature: str
    attribute: str
    operator: str
    value: str


@dataclass(frozen=True, slots=True)
class FailedPolicy:
    """未通过的策略及原因。"""

    policy_id: str
    attribute: str
    operator: str
    value: str
    actual_value: str | None
    reason: str


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """ABAC 详细评估结果。"""

    is_valid: bool
    failed_policies: tuple[FailedPolicy, ...] = ()


@dataclass(frozen=True, slots=True)
class RbacResult:
    """RBAC 判定结果。"""

    allowed: bool
    reason: str


@dataclass(frozen=True, slots=True)
class RequestMeta:
    """触发评估的请求信息，仅用于审计。"""

    path: str = ""
    method: str = ""


@dataclass(frozen=True, slots=True)
class Decision:
    """单次鉴权的最终决策。"""

    allowed: bool
    outcome: DecisionOutcome
    reason: str
    failed_policies: tuple[FailedPolicy, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "failed_policies": [
                {
                    "policy_id": item.policy_id,
                    "attribute": item.attribute,
                    "operator": item.operator,
                    "value": item.value,
                    "actual_value": item.actual_value,
                    "reason": item.reason,
                }
                for item in self.failed_policies
            ],
        }


@dataclass(frozen=True, slots=True)
class AccessLogRecord:
    """访问日志条目（每次评估恰好一条）。"""

    user_id: str
    feature: str
    action: str
    path: str
    method: str
    decision: str
    reason: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class PolicyViolationRecord:
    """ABAC 策略违规记录（每条失败策略一条）。"""

    user_id: str
    feature: str
    policy_id: str
    attribute: str
    operator: str
    expected_value: str
    actual_value: str | None
    reason: str
    created_at: datetime = field(default_factory=utc_now)


class UserAttributeSource(Protocol):
    async def get_attributes(self, user_id: str) -> UserAttributes:
        """无法解析时抛出 NotFoundError。"""
        ...


class RoleGrantSource(Protocol):
    async def get_roles_and_grants(self, user_id: str, feature: str) -> tuple[list[RoleRef], list[FeatureGrant]]:
        ...


class PolicySource(Protocol):
    async def get_policies_for_feature(self, feature: str) -> list[PolicyRule]:
        """功能不存在时抛出 NotFoundError。"""
        ...


class AuditSink(Protocol):
    async def append_access_log(self, entry: AccessLogRecord) -> None:
        ...

    async def append_policy_violation(self, violation: PolicyViolationRecord) -> None:
        ...
