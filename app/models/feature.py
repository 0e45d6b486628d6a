"""功能模型。

功能的 ABAC 策略内嵌在功能文档中：一次读取即得到完整策略集，
批量删除也只是单文档更新，读方不会看到删了一半的策略集。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Feature(Document):
    """受保护的功能。"""

    class PolicyItem(BaseModel):
        """ABAC 策略项，in 运算符的 value 为 JSON 字符串数组。"""

        policy_id: str = Field(..., min_length=1, max_length=64)
        attribute: Literal["department", "region", "level"]
        operator: Literal["==", "!=", ">", ">=", "<", "<=", "in"]
        value: str = Field(..., min_length=1, max_length=1000)
        created_at: datetime = Field(default_factory=utc_now)
        updated_at: datetime = Field(default_factory=utc_now)

    name: str = Field(..., min_length=2, max_length=64)
    description: str = Field(default="", max_length=200)
    policies: list[PolicyItem] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "features"
        indexes = [
            IndexModel([("name", 1)], name="uniq_features_name", unique=True),
            IndexModel([("policies.attribute", 1)], name="idx_features_policy_attribute"),
        ]
