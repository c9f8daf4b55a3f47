"""Row condition DSL used by content declarations (`when` clauses)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass
class ConditionEvalError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class ConditionSchemaError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_SCHEMA_ERROR", message, path)


class ConditionDepthError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_DEPTH_EXCEEDED", message, path)


class VarResolveError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_VAR_UNRESOLVED", message, path)


class UnknownOpError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_UNKNOWN_OP", message, path)


ALLOWED_OPS = {"and", "or", "not", "eq", "neq", "in", "not_in", "exists", "not_exists", "numeric"}


def _depth_check(depth: int, limit: int, path: str) -> None:
    if depth > limit:
        raise ConditionDepthError("Depth limit exceeded", path)


def _resolve_var(ctx: dict, name: str, path: str) -> Any:
    current: Any = ctx
    for part in name.split("."):
        if not isinstance(current, Mapping) or part not in current:
            raise VarResolveError(f"Unresolved var: {name}", path)
        current = current[part]
    return current


def is_numeric(value: Any) -> bool:
    """Numbers and numeric strings ("12", " 3.5", "1e3") count as numeric."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value.strip())
        except ValueError:
            return False
        return bool(value.strip())
    return False


def _eval_value(node: Any, ctx: dict, path: str) -> Any:
    if not isinstance(node, Mapping):
        raise ConditionSchemaError("Value node must be object", path)
    if "var" in node:
        if not isinstance(node["var"], str):
            raise ConditionSchemaError("var must be string", path)
        return _resolve_var(ctx, node["var"], path)
    if "literal" in node:
        return node["literal"]
    raise ConditionSchemaError("Invalid value node", path)


def _eval_exists(node: Any, ctx: dict, path: str) -> bool:
    if isinstance(node, Mapping) and isinstance(node.get("var"), str):
        try:
            value = _resolve_var(ctx, node["var"], path)
        except VarResolveError:
            return False
        return value is not None
    return _eval_value(node, ctx, path) is not None


def _require_fields(cond: dict, fields: list[str], path: str) -> None:
    for field in fields:
        if field not in cond:
            raise ConditionSchemaError(f"Missing required field: {field}", path)


def eval_condition(cond: dict, ctx: dict, depth_limit: int = 10) -> bool:
    if not isinstance(ctx, Mapping):
        raise ConditionSchemaError("ctx must be object", "$")
    return _eval_condition(cond, ctx, "$", 1, depth_limit)


def _eval_condition(cond: Any, ctx: dict, path: str, depth: int, limit: int) -> bool:
    _depth_check(depth, limit, path)
    if not isinstance(cond, Mapping):
        raise ConditionSchemaError("Condition must be object", path)

    op = cond.get("op")
    if op is None:
        raise ConditionSchemaError("Missing op", path)

    if op in {"and", "or"}:
        _require_fields(cond, ["children"], path)
        children = cond.get("children")
        if not isinstance(children, (list, tuple)):
            raise ConditionSchemaError("children must be list", f"{path}.children")
        results = (
            _eval_condition(child, ctx, f"{path}.children[{i}]", depth + 1, limit)
            for i, child in enumerate(children)
        )
        return all(results) if op == "and" else any(results)

    if op == "not":
        _require_fields(cond, ["children"], path)
        children = cond.get("children")
        if not isinstance(children, (list, tuple)) or len(children) != 1:
            raise ConditionSchemaError("not requires single child", f"{path}.children")
        return not _eval_condition(children[0], ctx, f"{path}.children[0]", depth + 1, limit)

    if op in {"eq", "neq"}:
        _require_fields(cond, ["left", "right"], path)
        left = _eval_value(cond.get("left"), ctx, f"{path}.left")
        right = _eval_value(cond.get("right"), ctx, f"{path}.right")
        return left == right if op == "eq" else left != right

    if op in {"in", "not_in"}:
        _require_fields(cond, ["left", "right"], path)
        left = _eval_value(cond.get("left"), ctx, f"{path}.left")
        right = _eval_value(cond.get("right"), ctx, f"{path}.right")
        if not isinstance(right, (list, tuple)):
            raise ConditionSchemaError("right must be list", f"{path}.right")
        result = left in right
        return result if op == "in" else not result

    if op in {"exists", "not_exists"}:
        _require_fields(cond, ["left"], path)
        exists = _eval_exists(cond.get("left"), ctx, f"{path}.left")
        return exists if op == "exists" else not exists

    if op == "numeric":
        _require_fields(cond, ["left"], path)
        return is_numeric(_eval_value(cond.get("left"), ctx, f"{path}.left"))

    raise UnknownOpError(f"Unknown op: {op}", path)
