"""应用配置（通过 .env 覆盖）。"""

from __future__ import annotations

import math
import os
from pathlib import Path

from dotenv import load_dotenv

# 优先加载项目根目录下的 .env
BASE_DIR = Path(__file__).resolve().parents[1]
load_dotenv(BASE_DIR / ".env")


def _to_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    """安全解析整数环境变量。"""

    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _to_float(value: str | None, default: float, *, minimum: float = 0.0) -> float:
    """安全解析浮点环境变量（秒级超时等）。"""

    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    if not math.isfinite(parsed):
        return default
    return parsed if parsed >= minimum else default


def _to_bool(value: str | None, default: bool = False) -> bool:
    """安全解析布尔环境变量。"""

    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "on", "yes"}


APP_NAME = os.getenv("APP_NAME", "AuthzEngine")
APP_ENV = os.getenv("APP_ENV", "dev")

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "authz_engine")

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

APP_PORT = _to_int(os.getenv("APP_PORT"), 8000, minimum=1)
HTTP_WORKERS = _to_int(os.getenv("HTTP_WORKERS"), 1, minimum=1)
UVICORN_HOST = os.getenv("UVICORN_HOST", "0.0.0.0")
UVICORN_LOG_LEVEL = os.getenv("UVICORN_LOG_LEVEL", "info")

# 上游网关完成认证后，通过该请求头传递用户 ID
AUTH_USER_HEADER = os.getenv("AUTH_USER_HEADER", "X-User-Id")

LOOKUP_TIMEOUT_SECONDS = _to_float(os.getenv("LOOKUP_TIMEOUT_SECONDS"), 2.0, minimum=0.05)
AUDIT_WRITE_TIMEOUT_SECONDS = _to_float(os.getenv("AUDIT_WRITE_TIMEOUT_SECONDS"), 2.0, minimum=0.05)

AUDIT_STREAM_ENABLED = _to_bool(os.getenv("AUDIT_STREAM_ENABLED"), default=False)
AUDIT_STREAM_PREFIX = os.getenv("AUDIT_STREAM_PREFIX", "authz")
AUDIT_STREAM_MAXLEN = _to_int(os.getenv("AUDIT_STREAM_MAXLEN"), 100000, minimum=0)

SEED_DEFAULTS = _to_bool(os.getenv("SEED_DEFAULTS"), default=True)
