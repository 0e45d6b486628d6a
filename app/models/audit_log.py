"""审计日志模型（只追加，不修改）。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from beanie import Document
from pydantic import Field
from pymongo import IndexModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AccessLog(Document):
    """每次访问决策一条。"""

    user_id: str = Field(..., max_length=64)
    feature: str = Field(default="", max_length=64)
    action: str = Field(default="", max_length=16)
    path: str = Field(default="", max_length=255)
    method: str = Field(default="", max_length=10)
    decision: Literal["allow", "deny"]
    reason: str = Field(default="", max_length=500)
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "access_logs"
        indexes = [
            IndexModel([("user_id", 1), ("created_at", -1)], name="idx_access_logs_user_created"),
            IndexModel([("feature", 1)], name="idx_access_logs_feature"),
            IndexModel([("decision", 1)], name="idx_access_logs_decision"),
            IndexModel([("created_at", -1)], name="idx_access_logs_created_at"),
        ]


class PolicyViolationLog(Document):
    """ABAC 策略失败时，每条失败策略一条。"""

    user_id: str = Field(..., max_length=64)
    feature: str = Field(..., max_length=64)
    policy_id: str = Field(..., max_length=64)
    attribute: str = Field(..., max_length=32)
    operator: str = Field(default="", max_length=8)
    expected_value: str = Field(..., max_length=1000)
    actual_value: str | None = Field(default=None, max_length=1000)
    reason: str = Field(default="", max_length=500)
    created_at: datetime = Field(default_factory=utc_now)

    class Settings:
        name = "policy_violations"
        indexes = [
            IndexModel([("user_id", 1), ("created_at", -1)], name="idx_policy_violations_user_created"),
            IndexModel([("policy_id", 1)], name="idx_policy_violations_policy_id"),
            IndexModel([("created_at", -1)], name="idx_policy_violations_created_at"),
        ]
