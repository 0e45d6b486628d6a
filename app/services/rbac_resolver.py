"""RBAC 授权判定（纯函数，不做 I/O）。"""

from __future__ import annotations

from typing import Iterable

from app.services.access_types import CrudAction, FeatureGrant, RbacResult, RoleRef

REASON_SUPERUSER = "superuser"
REASON_ROLE_GRANT = "role grant"
REASON_NO_GRANT = "no role grants access"


def check(roles: Iterable[RoleRef], grants: Iterable[FeatureGrant], action: CrudAction) -> RbacResult:
    """判定角色集合在目标功能上是否拥有指定动作。

    ``grants`` 只应包含这些角色在目标功能上的授权；多个角色的授权取并集。
    持有 ``grants_all`` 角色时直接放行，无需查授权。
    """

    role_list = list(roles)
    if any(role.grants_all for role in role_list):
        return RbacResult(allowed=True, reason=REASON_SUPERUSER)

    held = {role.slug for role in role_list}
    relevant = [grant for grant in grants if grant.role_slug in held]
    if not relevant:
        return RbacResult(allowed=False, reason=REASON_NO_GRANT)

    if any(grant.allows(action) for grant in relevant):
        return RbacResult(allowed=True, reason=REASON_ROLE_GRANT)
    return RbacResult(allowed=False, reason=f"no role grants {action.value} access")
