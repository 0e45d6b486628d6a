"""ABAC 属性比较。

纯函数、无状态，可被任意并发调用。无法比较时抛出 ComparisonError，
调用方必须将其视为策略失败，不能当作通过。
"""

from __future__ import annotations

import json
import math
from typing import Any, Callable

from app.services.access_types import Operator
from app.services.errors import ComparisonError

_NUMERIC_COMPARATORS: dict[Operator, Callable[[float, float], bool]] = {
    Operator.GT: lambda a, b: a > b,
    Operator.GE: lambda a, b: a >= b,
    Operator.LT: lambda a, b: a < b,
    Operator.LE: lambda a, b: a <= b,
}


def supported_operators() -> list[str]:
    return [item.value for item in Operator]


def is_valid_operator(operator: str) -> bool:
    return operator in {item.value for item in Operator}


def to_number(value: Any) -> float | None:
    """转换为有限数值，失败返回 None。"""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
    return parsed if math.isfinite(parsed) else None


def parse_in_values(policy_value: str) -> list[str]:
    """解析 in 运算符的 JSON 字符串数组。"""

    try:
        parsed = json.loads(policy_value)
    except (TypeError, ValueError) as exc:
        raise ComparisonError(f"invalid JSON array for 'in': {policy_value}") from exc
    if not isinstance(parsed, list):
        raise ComparisonError(f"value for 'in' must be a JSON array: {policy_value}")
    if not all(isinstance(item, str) for item in parsed):
        raise ComparisonError(f"value for 'in' must contain only strings: {policy_value}")
    return parsed


def compare(user_value: Any, operator: str, policy_value: Any) -> bool:
    """按运算符比较用户取值与策略取值。"""

    try:
        op = Operator(operator)
    except ValueError as exc:
        raise ComparisonError(f"unknown operator: {operator}") from exc

    if op is Operator.EQ:
        return str(user_value) == str(policy_value)
    if op is Operator.NE:
        return str(user_value) != str(policy_value)
    if op is Operator.IN:
        return str(user_value) in parse_in_values(str(policy_value))

    left = to_number(user_value)
    right = to_number(policy_value)
    if left is None or right is None:
        raise ComparisonError(f"cannot compare non-numeric values: {user_value} {operator} {policy_value}")
    return _NUMERIC_COMPARATORS[op](left, right)
