"""角色服务层。"""

from __future__ import annotations

import logging
from typing import Any

from app.models import Role
from app.models.role import utc_now
from app.services import user_service
from app.services.access_types import FeatureGrant, RoleRef
from app.services.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ROLES = [
    {"name": "超级管理员", "slug": "super", "grants_all": True},
    {"name": "审计员", "slug": "auditor", "grants_all": False},
]

_GRANT_FLAGS = ("can_create", "can_read", "can_update", "can_delete")


def build_default_role_grants(role_slug: str) -> list[dict[str, Any]]:
    """根据默认角色构建授权集；超级角色依赖 grants_all，不需要逐项授权。"""

    if role_slug != "auditor":
        return []
    return [
        {"feature": feature, "can_create": False, "can_read": True, "can_update": False, "can_delete": False}
        for feature in ("audit_logs", "access_diagnostics")
    ]


def normalize_grants(items: list[Any] | None) -> list[dict[str, Any]]:
    """清洗授权项：每个功能只允许一条，重复时报错而不是静默合并。"""

    normalized: dict[str, dict[str, Any]] = {}
    errors: list[str] = []
    for item in items or []:
        feature = getattr(item, "feature", None) or (item.get("feature") if isinstance(item, dict) else None)
        feature = str(feature or "").strip()
        if not feature:
            errors.append("grant feature is required")
            continue
        if feature in normalized:
            errors.append(f"duplicate grant for feature: {feature}")
            continue

        grant: dict[str, Any] = {"feature": feature}
        for flag in _GRANT_FLAGS:
            raw = getattr(item, flag, None) if not isinstance(item, dict) else item.get(flag)
            grant[flag] = bool(raw)
        normalized[feature] = grant

    if errors:
        raise ValidationError(errors)
    return list(normalized.values())


async def get_role_by_slug(slug: str) -> Role | None:
    return await Role.find_one({"slug": slug})


async def list_enabled_roles(slugs: list[str]) -> list[Role]:
    if not slugs:
        return []
    return await Role.find({"slug": {"$in": list(slugs)}, "status": "enabled"}).to_list()


async def create_role(payload: dict[str, Any]) -> Role:
    role = Role(
        name=payload["name"],
        slug=payload["slug"],
        grants_all=bool(payload.get("grants_all", False)),
        status=payload.get("status", "enabled"),
        description=payload.get("description", ""),
        grants=normalize_grants(payload.get("grants", [])),
        updated_at=utc_now(),
    )
    await role.insert()
    return role


async def ensure_default_roles() -> None:
    for item in DEFAULT_ROLES:
        default_grants = build_default_role_grants(item["slug"])
        role = await get_role_by_slug(item["slug"])
        if not role:
            await create_role(
                {
                    "name": item["name"],
                    "slug": item["slug"],
                    "grants_all": item["grants_all"],
                    "status": "enabled",
                    "description": "",
                    "grants": default_grants,
                }
            )
            logger.info("已创建默认角色: %s", item["slug"])
            continue

        if not role.grants and default_grants:
            role.grants = normalize_grants(default_grants)
            role.updated_at = utc_now()
            await role.save()


def to_role_ref(role: Any) -> RoleRef:
    return RoleRef(slug=role.slug, name=role.name, grants_all=bool(role.grants_all))


def grants_for_feature(role: Any, feature: str) -> list[FeatureGrant]:
    return [
        FeatureGrant(
            role_slug=role.slug,
            feature=item.feature,
            can_create=bool(item.can_create),
            can_read=bool(item.can_read),
            can_update=bool(item.can_update),
            can_delete=bool(item.can_delete),
        )
        for item in role.grants or []
        if item.feature == feature
    ]


class MongoRoleGrantSource:
    """基于 Mongo 的角色与授权数据源；禁用角色不参与判定。"""

    async def get_roles_and_grants(self, user_id: str, feature: str) -> tuple[list[RoleRef], list[FeatureGrant]]:
        user = await user_service.get_enabled_user(user_id)
        roles = await list_enabled_roles(user.role_slugs)

        grants: list[FeatureGrant] = []
        for role in roles:
            grants.extend(grants_for_feature(role, feature))
        return [to_role_ref(role) for role in roles], grants
