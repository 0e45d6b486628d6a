"""FastAPI 应用入口。"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .apps.api.common import register_error_handlers
from .apps.api.controllers.access import router as access_router
from .apps.api.controllers.audit import router as audit_router
from .apps.api.controllers.policies import router as policies_router
from .apps.api.controllers.users import router as users_router
from .config import (
    APP_NAME,
    AUDIT_STREAM_ENABLED,
    AUDIT_STREAM_MAXLEN,
    AUDIT_STREAM_PREFIX,
    AUDIT_WRITE_TIMEOUT_SECONDS,
    AUTH_USER_HEADER,
    LOOKUP_TIMEOUT_SECONDS,
    SEED_DEFAULTS,
)
from .db import close_db, close_redis, init_db, init_redis
from .middleware.access_guard import AccessGuardMiddleware
from .services.access_decision_service import AccessDecisionEngine
from .services.access_types import AuditSink
from .services.audit_service import FanoutAuditSink, MongoAuditSink, RedisStreamAuditSink
from .services.policy_service import MongoPolicySource, ensure_default_features
from .services.role_service import MongoRoleGrantSource, ensure_default_roles
from .services.user_service import MongoUserAttributeSource

logger = logging.getLogger(__name__)


def build_audit_sink() -> AuditSink:
    """Mongo 为主存储；开启审计流时同时镜像到 Redis Stream。"""

    if not AUDIT_STREAM_ENABLED:
        return MongoAuditSink()
    stream = RedisStreamAuditSink(init_redis(), prefix=AUDIT_STREAM_PREFIX, maxlen=AUDIT_STREAM_MAXLEN or None)
    return FanoutAuditSink([MongoAuditSink(), stream])


def build_engine() -> AccessDecisionEngine:
    return AccessDecisionEngine(
        users=MongoUserAttributeSource(),
        roles=MongoRoleGrantSource(),
        policies=MongoPolicySource(),
        audit=build_audit_sink(),
        lookup_timeout=LOOKUP_TIMEOUT_SECONDS,
        audit_timeout=AUDIT_WRITE_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期：启动时初始化资源，退出时释放资源。"""

    await init_db()
    if SEED_DEFAULTS:
        await ensure_default_features()
        await ensure_default_roles()
    app.state.engine = build_engine()
    logger.info("访问决策引擎已就绪: audit_stream=%s", AUDIT_STREAM_ENABLED)
    try:
        yield
    finally:
        await close_redis()
        await close_db()


app = FastAPI(title=APP_NAME, lifespan=lifespan)
app.add_middleware(
    AccessGuardMiddleware,
    user_header=AUTH_USER_HEADER,
    exempt_paths={"/health", "/docs", "/openapi.json"},
)
register_error_handlers(app)
app.include_router(access_router)
app.include_router(policies_router)
app.include_router(users_router)
app.include_router(audit_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
