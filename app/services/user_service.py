"""用户属性服务层（ABAC 属性读取与维护）。"""

from __future__ import annotations

from typing import Any

from beanie import PydanticObjectId
from bson import ObjectId
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from app.models import User
from app.models.user import utc_now
from app.services.access_types import UserAttributes
from app.services.errors import NotFoundError, ValidationError


class UserAttributesPayload(BaseModel):
    """用户 ABAC 属性写入载荷；None 表示清空该属性。"""

    department: str | None = Field(default=None, max_length=100)
    region: str | None = Field(default=None, max_length=100)
    level: int | None = Field(default=None, ge=1, le=10, strict=True)

    @field_validator("department", "region")
    @classmethod
    def _strip_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        if not text:
            raise ValueError("must be a non-empty string or null")
        return text


def format_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """将 pydantic 错误整理为 ``字段: 信息`` 列表。"""

    messages: list[str] = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "payload"
        messages.append(f"{location}: {item.get('msg', 'invalid')}")
    return messages


def validate_attributes_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """校验属性载荷，只返回调用方显式给出的字段。"""

    unknown = sorted(set(payload) - set(UserAttributesPayload.model_fields))
    if unknown:
        raise ValidationError([f"unsupported attribute: {name}" for name in unknown])
    try:
        parsed = UserAttributesPayload.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(format_pydantic_errors(exc)) from exc
    return parsed.model_dump(include=set(payload))


async def get_user(user_id: str) -> User | None:
    if not ObjectId.is_valid(user_id):
        return None
    return await User.get(PydanticObjectId(user_id))


async def get_enabled_user(user_id: str) -> User:
    """获取启用状态的用户，不存在或已禁用时抛出 NotFoundError。"""

    user = await get_user(user_id)
    if not user or user.status != "enabled":
        raise NotFoundError("user", user_id)
    return user


def to_attributes(user: Any) -> UserAttributes:
    return UserAttributes(
        user_id=str(user.id),
        department=user.department,
        region=user.region,
        level=user.level,
    )


async def update_user_attributes(user_id: str, payload: dict[str, Any]) -> User:
    values = validate_attributes_payload(payload)
    user = await get_user(user_id)
    if not user:
        raise NotFoundError("user", user_id)

    for key, value in values.items():
        setattr(user, key, value)
    user.updated_at = utc_now()
    await user.save()
    return user


class MongoUserAttributeSource:
    """基于 Mongo 的用户属性数据源。"""

    async def get_attributes(self, user_id: str) -> UserAttributes:
        return to_attributes(await get_enabled_user(user_id))
