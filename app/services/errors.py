"""鉴权引擎错误类型。

所有错误都带有 ``kind``，调用方按类别区分失败原因，不依赖错误文本匹配。
评估阶段的任何错误都按拒绝处理（fail closed）。
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.services.access_types import Decision


class ErrorKind(str, Enum):
    """错误类别。"""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    COMPARISON = "comparison"
    AUDIT_WRITE = "audit_write"
    LOOKUP = "lookup"


class AuthzError(Exception):
    """鉴权引擎错误基类。"""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AuthzError):
    """用户、功能或策略无法解析。"""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = identifier


class ValidationError(AuthzError):
    """写入前校验失败（策略、用户属性等）。"""

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) or "invalid payload")
        self.errors = list(errors)


class ComparisonError(AuthzError):
    """运算符与取值无法比较。"""

    kind = ErrorKind.COMPARISON


class LookupFailedError(AuthzError):
    """数据源查找超时或失败；细节只写日志，不对外暴露。"""

    kind = ErrorKind.LOOKUP


class AuditWriteError(AuthzError):
    """审计写入失败；已计算出的决策保持不变。"""

    kind = ErrorKind.AUDIT_WRITE

    def __init__(self, message: str, decision: Decision) -> None:
        super().__init__(message)
        self.decision = decision
