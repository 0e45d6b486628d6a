"""访问决策诊断控制器。"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from app.apps.api.common import get_engine
from app.services.access_types import CrudAction, RequestMeta
from app.services.errors import AuditWriteError

router = APIRouter(prefix="/api/access")


class EvaluateRequest(BaseModel):
    """诊断评估请求。"""

    user_id: str = Field(..., min_length=1, max_length=64)
    feature: str = Field(..., min_length=2, max_length=64)
    action: CrudAction
    path: str = Field(default="", max_length=255)
    method: str = Field(default="", max_length=10)


@router.post("/evaluate")
async def evaluate_access(payload: EvaluateRequest, request: Request) -> dict[str, Any]:
    engine = get_engine(request)
    meta = RequestMeta(path=payload.path, method=payload.method.upper())
    try:
        decision = await engine.evaluate(payload.user_id, payload.feature, payload.action, meta)
    except AuditWriteError as exc:
        return {**exc.decision.as_dict(), "audit_recorded": False, "audit_error": exc.message}
    return {**decision.as_dict(), "audit_recorded": True}


@router.get("/policy-check")
async def policy_check(user_id: str, feature: str, request: Request, details: bool = False) -> dict[str, Any]:
    engine = get_engine(request)
    if not details:
        return {"user_id": user_id, "feature": feature, "allowed": await engine.evaluate_policies_only(user_id, feature)}

    result = await engine.evaluate_policies_with_details(user_id, feature)
    return {
        "user_id": user_id,
        "feature": feature,
        "is_valid": result.is_valid,
        "failed_policies": [
            {
                "policy_id": item.policy_id,
                "attribute": item.attribute,
                "operator": item.operator,
                "value": item.value,
                "actual_value": item.actual_value,
                "reason": item.reason,
            }
            for item in result.failed_policies
        ],
    }


class BatchPolicyCheckRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    features: list[str] = Field(..., min_length=1, max_length=100)


@router.post("/policy-check/batch")
async def batch_policy_check(payload: BatchPolicyCheckRequest, request: Request) -> dict[str, Any]:
    results = await get_engine(request).batch_evaluate(payload.user_id, payload.features)
    return {"user_id": payload.user_id, "results": results}
