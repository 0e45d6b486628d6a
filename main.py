"""项目主启动入口。"""

from __future__ import annotations

import logging

import uvicorn

from app.config import APP_PORT, HTTP_WORKERS, UVICORN_HOST, UVICORN_LOG_LEVEL

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def main() -> int:
    """启动 HTTP 服务。"""

    logger.info("启动参数: http_workers=%d port=%d", HTTP_WORKERS, APP_PORT)
    uvicorn.run(
        "app.main:app",
        host=UVICORN_HOST,
        port=APP_PORT,
        workers=HTTP_WORKERS,
        log_level=UVICORN_LOG_LEVEL,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
