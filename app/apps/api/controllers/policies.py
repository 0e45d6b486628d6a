"""ABAC 策略管理控制器。"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Body
from pydantic import BaseModel, Field

from app.apps.api.common import dump_document
from app.services import policy_service

router = APIRouter(prefix="/api/abac")


class DuplicateRequest(BaseModel):
    target_feature: str = Field(..., min_length=2, max_length=64)


@router.get("/policies/stats")
async def policy_stats() -> dict[str, Any]:
    return await policy_service.get_policy_statistics()


@router.get("/policies/by-attribute/{attribute}")
async def policies_by_attribute(attribute: str) -> dict[str, Any]:
    rules = await policy_service.get_policies_by_attribute(attribute)
    return {"attribute": attribute, "items": [asdict(rule) for rule in rules]}


@router.get("/features/{feature}/policies")
async def list_policies(feature: str) -> dict[str, Any]:
    items = await policy_service.list_policies(feature)
    return {"feature": feature, "items": [dump_document(item) for item in items]}


@router.post("/features/{feature}/policies", status_code=201)
async def create_policy(feature: str, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    item = await policy_service.create_policy(feature, payload)
    return dump_document(item)


@router.delete("/features/{feature}/policies")
async def delete_feature_policies(feature: str) -> dict[str, Any]:
    deleted = await policy_service.delete_policies_for_feature(feature)
    return {"feature": feature, "deleted": deleted}


@router.get("/features/{feature}/policies/{policy_id}")
async def get_policy(feature: str, policy_id: str) -> dict[str, Any]:
    return dump_document(await policy_service.get_policy(feature, policy_id))


@router.put("/features/{feature}/policies/{policy_id}")
async def update_policy(feature: str, policy_id: str, payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
    item = await policy_service.update_policy(feature, policy_id, payload)
    return dump_document(item)


@router.delete("/features/{feature}/policies/{policy_id}")
async def delete_policy(feature: str, policy_id: str) -> dict[str, Any]:
    await policy_service.delete_policy(feature, policy_id)
    return {"feature": feature, "policy_id": policy_id, "deleted": True}


@router.post("/features/{feature}/policies/{policy_id}/duplicate", status_code=201)
async def duplicate_policy(feature: str, policy_id: str, payload: DuplicateRequest) -> dict[str, Any]:
    item = await policy_service.duplicate_policy(feature, policy_id, payload.target_feature)
    return {"source_feature": feature, "target_feature": payload.target_feature, "policy": dump_document(item)}
