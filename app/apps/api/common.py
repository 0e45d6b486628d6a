"""API 控制器公共工具。"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.services.access_decision_service import AccessDecisionEngine
from app.services.errors import LookupFailedError, NotFoundError, ValidationError


def get_engine(request: Request) -> AccessDecisionEngine:
    """从应用状态读取引擎实例（启动时注入）。"""

    return request.app.state.engine


def dump_document(document: Any) -> dict[str, Any]:
    """序列化 Beanie 文档为 JSON 友好的字典。"""

    data = document.model_dump(mode="json", exclude={"revision_id"})
    if "id" in data:
        data["id"] = str(data["id"]) if data["id"] is not None else None
    return data


def register_error_handlers(app: FastAPI) -> None:
    """将领域错误映射为 HTTP 响应。"""

    async def _not_found(_request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse({"detail": exc.message}, status_code=404)

    async def _invalid(_request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse({"detail": "validation failed", "errors": exc.errors}, status_code=422)

    async def _lookup_failed(_request: Request, _exc: LookupFailedError) -> JSONResponse:
        return JSONResponse({"detail": "lookup failed"}, status_code=503)

    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ValidationError, _invalid)
    app.add_exception_handler(LookupFailedError, _lookup_failed)
