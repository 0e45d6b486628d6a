"""审计服务层：访问日志与策略违规记录的写入和查询。

写入只追加，不提供修改或删除；保留期清理由外部负责。
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any, Mapping

from app.models import AccessLog, PolicyViolationLog
from app.services.access_types import AccessLogRecord, AuditSink, PolicyViolationRecord

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def _json_dumps(value: dict[str, Any]) -> str:
    """序列化审计载荷。"""

    return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)


def field_limits(model: Any) -> dict[str, int]:
    """读取文档模型上字符串字段的 ``max_length`` 约束。"""

    limits: dict[str, int] = {}
    for name, info in model.model_fields.items():
        for item in info.metadata:
            max_length = getattr(item, "max_length", None)
            if isinstance(max_length, int):
                limits[name] = max_length
    return limits


def clip_fields(values: dict[str, Any], limits: Mapping[str, int]) -> dict[str, Any]:
    """按字段上限截断超长文本，审计记录宁可截断也不能丢失。"""

    clipped = dict(values)
    for name, limit in limits.items():
        value = clipped.get(name)
        if isinstance(value, str) and len(value) > limit:
            clipped[name] = value[:limit]
    return clipped


ACCESS_LOG_LIMITS = field_limits(AccessLog)
POLICY_VIOLATION_LIMITS = field_limits(PolicyViolationLog)


class MongoAuditSink:
    """写入 Mongo 的审计记录（系统主存储）。"""

    async def append_access_log(self, entry: AccessLogRecord) -> None:
        await AccessLog(**clip_fields(asdict(entry), ACCESS_LOG_LIMITS)).insert()

    async def append_policy_violation(self, violation: PolicyViolationRecord) -> None:
        await PolicyViolationLog(**clip_fields(asdict(violation), POLICY_VIOLATION_LIMITS)).insert()


class RedisStreamAuditSink:
    """将审计记录镜像到 Redis Stream，供外部 SIEM 等消费。"""

    def __init__(self, redis: Any, *, prefix: str = "authz", maxlen: int | None = 100000) -> None:
        self._redis = redis
        self._prefix = prefix
        self._maxlen = maxlen

    def stream_name(self, kind: str) -> str:
        return f"{self._prefix}:{kind}"

    async def _append(self, kind: str, payload: dict[str, Any]) -> str:
        fields = {"kind": kind, "payload": _json_dumps(payload)}
        stream = self.stream_name(kind)
        if self._maxlen is not None and self._maxlen > 0:
            return str(await self._redis.xadd(stream, fields, maxlen=self._maxlen, approximate=True))
        return str(await self._redis.xadd(stream, fields))

    async def append_access_log(self, entry: AccessLogRecord) -> None:
        await self._append("access_logs", asdict(entry))

    async def append_policy_violation(self, violation: PolicyViolationRecord) -> None:
        await self._append("policy_violations", asdict(violation))


class FanoutAuditSink:
    """依次写入所有审计目标；任一失败时在全部尝试后抛出。"""

    def __init__(self, sinks: list[AuditSink]) -> None:
        self._sinks = list(sinks)

    async def _each(self, method: str, record: Any) -> None:
        errors: list[str] = []
        for sink in self._sinks:
            try:
                await getattr(sink, method)(record)
            except Exception as exc:
                logger.error("审计目标写入失败: sink=%s error=%s", type(sink).__name__, exc)
                errors.append(f"{type(sink).__name__}: {exc}")
        if errors:
            raise RuntimeError("; ".join(errors))

    async def append_access_log(self, entry: AccessLogRecord) -> None:
        await self._each("append_access_log", entry)

    async def append_policy_violation(self, violation: PolicyViolationRecord) -> None:
        await self._each("append_policy_violation", violation)


def parse_positive_int(value: Any, default: int) -> int:
    """安全解析正整数参数，非法值回退到默认值。"""

    try:
        parsed = int(str(value))
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def parse_audit_filters(values: Mapping[str, Any]) -> tuple[dict[str, Any], int, int]:
    """解析查询参数，返回 (Mongo 过滤条件, limit, offset)。"""

    query: dict[str, Any] = {}
    for key in ("user_id", "feature", "policy_id", "attribute"):
        text = str(values.get(key) or "").strip()
        if text:
            query[key] = text

    decision = str(values.get("decision") or "").strip().lower()
    if decision in {"allow", "deny"}:
        query["decision"] = decision

    limit = min(parse_positive_int(values.get("limit"), DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    try:
        offset = max(int(str(values.get("offset") or 0)), 0)
    except (TypeError, ValueError):
        offset = 0
    return query, limit, offset


async def list_access_logs(values: Mapping[str, Any]) -> tuple[list[AccessLog], int]:
    query, limit, offset = parse_audit_filters(values)
    query.pop("policy_id", None)
    query.pop("attribute", None)
    total = await AccessLog.find(query).count()
    items = await AccessLog.find(query).sort("-created_at").skip(offset).limit(limit).to_list()
    return items, total


async def list_policy_violations(values: Mapping[str, Any]) -> tuple[list[PolicyViolationLog], int]:
    query, limit, offset = parse_audit_filters(values)
    query.pop("decision", None)
    total = await PolicyViolationLog.find(query).count()
    items = await PolicyViolationLog.find(query).sort("-created_at").skip(offset).limit(limit).to_list()
    return items, total
