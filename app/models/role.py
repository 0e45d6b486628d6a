"""角色模型。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(Document):
    """角色。``grants_all`` 为超级角色开关。"""

    class FeatureGrant(BaseModel):
        """角色在单个功能上的 CRUD 授权，四个动作相互独立。"""

        feature: str = Field(..., min_length=2, max_length=64)
        can_create: bool = False
        can_read: bool = False
        can_update: bool = False
        can_delete: bool = False

    name: str = Field(..., min_length=2, max_length=64)
    slug: str = Field(..., min_length=2, max_length=32)
    grants_all: bool = False
    status: Literal["enabled", "disabled"] = "enabled"
    description: str = Field(default="", max_length=120)
    grants: list[FeatureGrant] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "roles"
        indexes = [
            IndexModel([("slug", 1)], name="uniq_roles_slug", unique=True),
        ]
