"""API 路由到 (功能, 动作) 的映射。"""

from __future__ import annotations

import re

from app.services.access_types import CrudAction

BUILTIN_FEATURES: dict[str, str] = {
    "access_diagnostics": "访问决策诊断",
    "abac_policies": "ABAC 策略管理",
    "user_attributes": "用户 ABAC 属性",
    "audit_logs": "审计日志",
}

_SEGMENT = r"[^/]+"

# (方法, 路径正则, 功能, 动作)；按顺序匹配
_ROUTES: list[tuple[str, re.Pattern[str], str, CrudAction]] = [
    ("POST", re.compile(r"/api/access/evaluate"), "access_diagnostics", CrudAction.READ),
    ("GET", re.compile(r"/api/access/policy-check"), "access_diagnostics", CrudAction.READ),
    ("POST", re.compile(r"/api/access/policy-check/batch"), "access_diagnostics", CrudAction.READ),
    ("GET", re.compile(r"/api/abac/policies/stats"), "abac_policies", CrudAction.READ),
    ("GET", re.compile(rf"/api/abac/policies/by-attribute/{_SEGMENT}"), "abac_policies", CrudAction.READ),
    ("GET", re.compile(rf"/api/abac/features/{_SEGMENT}/policies"), "abac_policies", CrudAction.READ),
    ("POST", re.compile(rf"/api/abac/features/{_SEGMENT}/policies"), "abac_policies", CrudAction.CREATE),
    ("DELETE", re.compile(rf"/api/abac/features/{_SEGMENT}/policies"), "abac_policies", CrudAction.DELETE),
    ("GET", re.compile(rf"/api/abac/features/{_SEGMENT}/policies/{_SEGMENT}"), "abac_policies", CrudAction.READ),
    ("PUT", re.compile(rf"/api/abac/features/{_SEGMENT}/policies/{_SEGMENT}"), "abac_policies", CrudAction.UPDATE),
    ("DELETE", re.compile(rf"/api/abac/features/{_SEGMENT}/policies/{_SEGMENT}"), "abac_policies", CrudAction.DELETE),
    (
        "POST",
        re.compile(rf"/api/abac/features/{_SEGMENT}/policies/{_SEGMENT}/duplicate"),
        "abac_policies",
        CrudAction.CREATE,
    ),
    ("GET", re.compile(rf"/api/abac/users/{_SEGMENT}/attributes"), "user_attributes", CrudAction.READ),
    ("PUT", re.compile(rf"/api/abac/users/{_SEGMENT}/attributes"), "user_attributes", CrudAction.UPDATE),
    ("GET", re.compile(r"/api/audit/access-logs"), "audit_logs", CrudAction.READ),
    ("GET", re.compile(r"/api/audit/policy-violations"), "audit_logs", CrudAction.READ),
]


def required_feature(path: str, method: str) -> tuple[str, CrudAction] | None:
    """将请求路径映射到功能与动作，未注册返回 None。"""

    normalized = path.rstrip("/") or "/"
    method = method.upper()
    for route_method, pattern, feature, action in _ROUTES:
        if route_method == method and pattern.fullmatch(normalized):
            return feature, action
    return None
