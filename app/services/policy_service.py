"""ABAC 策略管理服务层。

写入前完成全部校验（属性白名单、运算符白名单、取值格式），
评估阶段因此不会遇到格式错误的已存储策略。

策略内嵌在功能文档中，所有写操作都是单文档原子更新
（``$push`` / ``$set`` / ``$pull``），读方总是看到完整的策略集。
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import uuid4

from beanie import UpdateResponse

from app.models import Feature
from app.models.feature import utc_now
from app.services import attribute_comparator
from app.services.access_types import Operator, PolicyRule, UserAttribute
from app.services.errors import ComparisonError, NotFoundError, ValidationError
from app.services.route_registry import BUILTIN_FEATURES

logger = logging.getLogger(__name__)

SUPPORTED_ATTRIBUTES = [item.value for item in UserAttribute]
SUPPORTED_OPERATORS = attribute_comparator.supported_operators()
NUMERIC_OPERATORS = {Operator.GT.value, Operator.GE.value, Operator.LT.value, Operator.LE.value}
POLICY_FIELDS = ("attribute", "operator", "value")


def _normalize_value(operator: str, raw: Any) -> str | None:
    """统一取值为字符串；in 运算符允许直接传入数组。"""

    if raw is None or isinstance(raw, bool):
        return None
    if operator == Operator.IN.value and isinstance(raw, list):
        return json.dumps(raw, ensure_ascii=False)
    if isinstance(raw, (int, float)):
        return str(raw)
    if isinstance(raw, str):
        return raw.strip()
    return None


def validate_policy_payload(payload: dict[str, Any]) -> dict[str, str]:
    """校验策略载荷，返回规范化后的 ``attribute/operator/value``。"""

    errors: list[str] = []
    unknown = sorted(set(payload) - set(POLICY_FIELDS))
    if unknown:
        errors.append(f"unsupported fields: {', '.join(unknown)}")

    attribute = str(payload.get("attribute") or "").strip()
    if attribute not in SUPPORTED_ATTRIBUTES:
        errors.append(f"invalid attribute: {attribute or '<empty>'}. supported: {', '.join(SUPPORTED_ATTRIBUTES)}")

    operator = str(payload.get("operator") or "").strip()
    if not attribute_comparator.is_valid_operator(operator):
        errors.append(f"invalid operator: {operator or '<empty>'}. supported: {', '.join(SUPPORTED_OPERATORS)}")

    value = _normalize_value(operator, payload.get("value"))
    if not value:
        errors.append("value must be a non-empty string")
    elif len(value) > 1000:
        errors.append("value is too long")
    elif operator == Operator.IN.value:
        try:
            if not attribute_comparator.parse_in_values(value):
                errors.append("value for 'in' must not be an empty array")
        except ComparisonError:
            errors.append(f"value for 'in' must be a JSON array of strings, e.g. [\"a\", \"b\"]: {value}")
    elif operator in NUMERIC_OPERATORS:
        if attribute_comparator.to_number(value) is None:
            errors.append(f"value for '{operator}' must be numeric: {value}")

    if errors:
        raise ValidationError(errors)
    return {"attribute": attribute, "operator": operator, "value": str(value)}


def to_policy_rule(feature: str, item: Any) -> PolicyRule:
    return PolicyRule(
        policy_id=item.policy_id,
        feature=feature,
        attribute=item.attribute,
        operator=item.operator,
        value=item.value,
    )


async def get_feature(name: str) -> Feature | None:
    return await Feature.find_one({"name": name})


async def require_feature(name: str) -> Feature:
    feature = await get_feature(name)
    if not feature:
        raise NotFoundError("feature", name)
    return feature


async def ensure_default_features() -> None:
    for name, description in BUILTIN_FEATURES.items():
        if await get_feature(name):
            continue
        await Feature(name=name, description=description, updated_at=utc_now()).insert()
        logger.info("已创建内置功能: %s", name)


async def list_policies(feature: str) -> list[Feature.PolicyItem]:
    return list((await require_feature(feature)).policies)


async def get_policy(feature: str, policy_id: str) -> Feature.PolicyItem:
    for item in await list_policies(feature):
        if item.policy_id == policy_id:
            return item
    raise NotFoundError("policy", policy_id)


async def create_policy(feature: str, payload: dict[str, Any]) -> Feature.PolicyItem:
    values = validate_policy_payload(payload)
    now = utc_now()
    item = Feature.PolicyItem(policy_id=uuid4().hex, created_at=now, updated_at=now, **values)

    result = await Feature.find_one({"name": feature}).update(
        {"$push": {"policies": item.model_dump()}, "$set": {"updated_at": now}}
    )
    if not getattr(result, "matched_count", 0):
        raise NotFoundError("feature", feature)
    logger.info(
        "新增策略: feature=%s policy=%s rule=%s %s %s",
        feature,
        item.policy_id,
        item.attribute,
        item.operator,
        item.value,
    )
    return item


async def update_policy(feature: str, policy_id: str, payload: dict[str, Any]) -> Feature.PolicyItem:
    """更新策略；合并后整体重新校验。"""

    existing = await get_policy(feature, policy_id)
    merged = {name: getattr(existing, name) for name in POLICY_FIELDS}
    merged.update(payload)
    values = validate_policy_payload(merged)

    now = utc_now()
    item = Feature.PolicyItem(policy_id=policy_id, created_at=existing.created_at, updated_at=now, **values)
    result = await Feature.find_one({"name": feature, "policies.policy_id": policy_id}).update(
        {"$set": {"policies.$": item.model_dump(), "updated_at": now}}
    )
    if not getattr(result, "matched_count", 0):
        raise NotFoundError("policy", policy_id)
    logger.info("更新策略: feature=%s policy=%s", feature, policy_id)
    return item


async def delete_policy(feature: str, policy_id: str) -> None:
    result = await Feature.find_one({"name": feature, "policies.policy_id": policy_id}).update(
        {"$pull": {"policies": {"policy_id": policy_id}}, "$set": {"updated_at": utc_now()}}
    )
    if not getattr(result, "matched_count", 0):
        raise NotFoundError("policy", policy_id)
    logger.info("删除策略: feature=%s policy=%s", feature, policy_id)


async def delete_policies_for_feature(feature: str) -> int:
    """一次性清空功能下的全部策略，返回删除数量。"""

    previous = await Feature.find_one({"name": feature}).update(
        {"$set": {"policies": [], "updated_at": utc_now()}},
        response_type=UpdateResponse.OLD_DOCUMENT,
    )
    if previous is None:
        raise NotFoundError("feature", feature)
    deleted = len(previous.policies)
    logger.info("清空功能策略: feature=%s count=%d", feature, deleted)
    return deleted


async def duplicate_policy(feature: str, policy_id: str, target_feature: str) -> Feature.PolicyItem:
    source = await get_policy(feature, policy_id)
    return await create_policy(target_feature, {name: getattr(source, name) for name in POLICY_FIELDS})


async def get_policies_by_attribute(attribute: str) -> list[PolicyRule]:
    """查询所有功能上针对某个属性的策略。"""

    if attribute not in SUPPORTED_ATTRIBUTES:
        raise ValidationError([f"invalid attribute: {attribute}. supported: {', '.join(SUPPORTED_ATTRIBUTES)}"])

    features = await Feature.find({"policies.attribute": attribute}).sort("name").to_list()
    return [
        to_policy_rule(feature.name, item)
        for feature in features
        for item in feature.policies
        if item.attribute == attribute
    ]


async def get_policy_statistics() -> dict[str, Any]:
    features = await Feature.find_all().to_list()
    by_attribute: dict[str, int] = {}
    by_operator: dict[str, int] = {}
    total = 0
    for feature in features:
        for item in feature.policies:
            total += 1
            by_attribute[item.attribute] = by_attribute.get(item.attribute, 0) + 1
            by_operator[item.operator] = by_operator.get(item.operator, 0) + 1
    return {
        "total_policies": total,
        "features_with_policies": sum(1 for feature in features if feature.policies),
        "policies_by_attribute": by_attribute,
        "policies_by_operator": by_operator,
    }


class MongoPolicySource:
    """基于 Mongo 的策略数据源；单次文档读取即为快照。"""

    async def get_policies_for_feature(self, feature: str) -> list[PolicyRule]:
        document = await require_feature(feature)
        return [to_policy_rule(document.name, item) for item in document.policies]
