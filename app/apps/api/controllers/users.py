"""用户 ABAC 属性控制器。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body

from app.services import user_service
from app.services.errors import NotFoundError

router = APIRouter(prefix="/api/abac/users")


def attributes_payload(user: Any) -> dict[str, Any]:
    return {
        "user_id": str(user.id),
        "username": user.username,
        "status": user.status,
        "department": user.department,
        "region": user.region,
        "level": user.level,
    }


@router.get("/{user_id}/attributes")
async def get_attributes(user_id: str) -> dict[str, Any]:
    user = await user_service.get_user(user_id)
    if not user:
        raise NotFoundError("user", user_id)
    return attributes_payload(user)


@router.put("/{user_id}/attributes")
async def update_attributes(user_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    user = await user_service.update_user_attributes(user_id, payload)
    return attributes_payload(user)
