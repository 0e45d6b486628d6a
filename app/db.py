"""数据库与 Redis 连接管理。"""

from __future__ import annotations

from typing import Any, cast

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient
from redis.asyncio import Redis

from .config import MONGO_DB, MONGO_URL, REDIS_URL
from .models import AccessLog, Feature, PolicyViolationLog, Role, User

_mongo_client: AsyncIOMotorClient | None = None
_redis_client: Redis | None = None


async def init_db() -> None:
    """初始化 Beanie，并保留客户端用于关闭。"""
    global _mongo_client
    _mongo_client = AsyncIOMotorClient(MONGO_URL)
    await init_beanie(
        # Motor 与 Beanie 的类型标注来源不同，这里显式转换避免类型检查误报。
        database=cast(Any, _mongo_client[MONGO_DB]),
        document_models=[User, Role, Feature, AccessLog, PolicyViolationLog],
    )


async def close_db() -> None:
    """关闭 Mongo 连接。"""
    global _mongo_client
    if _mongo_client is not None:
        _mongo_client.close()
    _mongo_client = None


def init_redis() -> Redis:
    """创建 Redis 客户端（仅在开启审计流时调用）。"""

    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(REDIS_URL, encoding="utf-8", decode_responses=True)
    return _redis_client


async def close_redis() -> None:
    """关闭 Redis 客户端连接。"""

    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
    _redis_client = None
