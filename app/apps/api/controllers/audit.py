"""审计日志查询控制器（只读）。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from app.apps.api.common import dump_document
from app.services import audit_service

router = APIRouter(prefix="/api/audit")


def page_payload(items: list[Any], total: int, request: Request) -> dict[str, Any]:
    _, limit, offset = audit_service.parse_audit_filters(request.query_params)
    return {
        "items": [dump_document(item) for item in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/access-logs")
async def access_logs(request: Request) -> dict[str, Any]:
    items, total = await audit_service.list_access_logs(request.query_params)
    return page_payload(items, total, request)


@router.get("/policy-violations")
async def policy_violations(request: Request) -> dict[str, Any]:
    items, total = await audit_service.list_policy_violations(request.query_params)
    return page_payload(items, total, request)
