"""用户模型（仅包含鉴权所需字段）。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class User(Document):
    """用户身份、角色归属与 ABAC 属性。"""

    username: str = Field(..., min_length=2, max_length=64)
    status: Literal["enabled", "disabled"] = "enabled"
    role_slugs: list[str] = Field(default_factory=list)
    department: str | None = Field(default=None, max_length=100)
    region: str | None = Field(default=None, max_length=100)
    level: int | None = Field(default=None, ge=1, le=10)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "users"
        indexes = [
            IndexModel([("username", 1)], name="uniq_users_username", unique=True),
            IndexModel([("department", 1)], name="idx_users_department"),
            IndexModel([("region", 1)], name="idx_users_region"),
            IndexModel([("level", 1)], name="idx_users_level"),
        ]
