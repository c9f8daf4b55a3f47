"""Startup validation of the content declaration catalog."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

from condition_eval import ALLOWED_OPS
from xlate.builder import COMPUTATIONS
from xlate.errors import CatalogError


Issue = Dict[str, Any]

_IDENT_RE = re.compile(r"^[A-Za-z0-9_]+$")
_TEMPLATE_RE = re.compile(r"^[A-Za-z0-9_{}]+$")
FLAG_KEYS = {"read_only", "info_only", "to_check", "when"}
ALLOWED_CHILD_KEYS = {
    "field": {"field", "gradebook"} | FLAG_KEYS,
    "link": {"link", "join", "fields", "fallback"} | FLAG_KEYS,
    "collection": {"collection", "table", "join", "entity", "fields", "index", "through"} | FLAG_KEYS,
    "computed": {"computed", "source"} | FLAG_KEYS,
}
ALLOWED_ENTRY_KEYS = {"name", "table", "children"}
MAX_CONDITION_DEPTH = 10


def _issue(code: str, message: str, path: str | None = None) -> Issue:
    return {"code": code, "message": message, "path": path}


def _is_ident(value: Any) -> bool:
    return isinstance(value, str) and bool(_IDENT_RE.match(value))


def _is_field_name(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return all(_is_ident(part) for part in value.split(":", 1))


def _validate_join(join: Any, path: str, errors: List[Issue]) -> None:
    if _is_ident(join):
        return
    if isinstance(join, Mapping) and len(join) == 1 and all(_is_ident(k) and _is_ident(v) for k, v in join.items()):
        return
    errors.append(_issue("CATALOG_JOIN_INVALID", "join must be a column or {target: this}", path))


def _validate_fields(fields: Any, path: str, errors: List[Issue]) -> None:
    if not isinstance(fields, (list, tuple)) or not fields:
        errors.append(_issue("CATALOG_FIELDS_INVALID", "fields must be a non-empty list", path))
        return
    for i, name in enumerate(fields):
        if not _is_field_name(name):
            errors.append(_issue("CATALOG_FIELD_INVALID", "field must be 'column' or 'alias:column'", f"{path}[{i}]"))


def _validate_condition(cond: Any, path: str, errors: List[Issue], depth: int = 1) -> None:
    if depth > MAX_CONDITION_DEPTH:
        errors.append(_issue("CATALOG_CONDITION_DEPTH", "condition is nested too deeply", path))
        return
    if not isinstance(cond, Mapping):
        errors.append(_issue("CATALOG_CONDITION_INVALID", "condition must be an object", path))
        return
    op = cond.get("op")
    if op not in ALLOWED_OPS:
        errors.append(_issue("CATALOG_CONDITION_OP_INVALID", "condition.op must be allowlisted", f"{path}.op"))
        return
    children = cond.get("children")
    if op in {"and", "or", "not"}:
        if not isinstance(children, (list, tuple)) or not children or (op == "not" and len(children) != 1):
            errors.append(_issue("CATALOG_CONDITION_INVALID", f"{op} requires children", f"{path}.children"))
            return
        for i, child in enumerate(children):
            _validate_condition(child, f"{path}.children[{i}]", errors, depth + 1)
    elif "left" not in cond:
        errors.append(_issue("CATALOG_CONDITION_INVALID", "left is required", path))


def _validate_link(child: Mapping[str, Any], path: str, errors: List[Issue]) -> None:
    if not isinstance(child.get("link"), str) or not _TEMPLATE_RE.match(child["link"]):
        errors.append(_issue("CATALOG_TABLE_INVALID", "link must be a table name", f"{path}.link"))
    _validate_join(child.get("join"), f"{path}.join", errors)
    _validate_fields(child.get("fields"), f"{path}.fields", errors)
    fallback = child.get("fallback")
    if fallback is not None:
        if not isinstance(fallback, Mapping) or "link" not in fallback:
            errors.append(_issue("CATALOG_FALLBACK_INVALID", "fallback must be a link", f"{path}.fallback"))
        else:
            _validate_link(fallback, f"{path}.fallback", errors)


def _validate_collection(child: Mapping[str, Any], path: str, catalog: Mapping[str, Any], errors: List[Issue]) -> None:
    if not _is_ident(child.get("collection")):
        errors.append(_issue("CATALOG_KEY_INVALID", "collection key must be an identifier", f"{path}.collection"))
    if not _is_ident(child.get("table")):
        errors.append(_issue("CATALOG_TABLE_INVALID", "table must be an identifier", f"{path}.table"))
    _validate_join(child.get("join"), f"{path}.join", errors)
    has_entity = "entity" in child
    has_fields = "fields" in child
    if has_entity == has_fields:
        errors.append(_issue("CATALOG_MEMBER_INVALID", "collection needs exactly one of entity or fields", path))
    elif has_entity and child.get("entity") not in catalog:
        errors.append(_issue("CATALOG_UNKNOWN_ENTITY", f"Unknown entity type: {child.get('entity')}", f"{path}.entity"))
    elif has_fields:
        _validate_fields(child.get("fields"), f"{path}.fields", errors)
    if "index" in child and not _is_ident(child.get("index")):
        errors.append(_issue("CATALOG_INDEX_INVALID", "index must be a column", f"{path}.index"))
    through = child.get("through")
    if through is not None:
        if not isinstance(through, Mapping) or not _is_ident(through.get("table")):
            errors.append(_issue("CATALOG_THROUGH_INVALID", "through needs a table", f"{path}.through"))
        else:
            _validate_join(through.get("join"), f"{path}.through.join", errors)


def _validate_child(child: Any, path: str, catalog: Mapping[str, Any], errors: List[Issue]) -> None:
    if not isinstance(child, Mapping):
        errors.append(_issue("CATALOG_CHILD_INVALID", "child must be an object or a field name", path))
        return
    kinds = [kind for kind in ALLOWED_CHILD_KEYS if kind in child]
    if len(kinds) != 1:
        errors.append(_issue("CATALOG_CHILD_KIND_INVALID", "child must declare exactly one kind", path))
        return
    kind = kinds[0]
    for key in child:
        if key not in ALLOWED_CHILD_KEYS[kind]:
            errors.append(_issue("CATALOG_UNKNOWN_KEY", f"Unknown key: {key}", f"{path}.{key}"))
    if "when" in child:
        _validate_condition(child["when"], f"{path}.when", errors)
    if kind == "field":
        if not _is_field_name(child.get("field")):
            errors.append(_issue("CATALOG_FIELD_INVALID", "field must be 'column' or 'alias:column'", f"{path}.field"))
    elif kind == "link":
        _validate_link(child, path, errors)
    elif kind == "collection":
        _validate_collection(child, path, catalog, errors)
    elif child.get("source") not in COMPUTATIONS:
        errors.append(_issue("CATALOG_UNKNOWN_COMPUTATION", f"Unknown computation: {child.get('source')}", f"{path}.source"))


def validate_catalog(catalog: Mapping[str, Any]) -> List[Issue]:
    errors: List[Issue] = []
    if not isinstance(catalog, Mapping):
        return [_issue("CATALOG_INVALID", "catalog must be a mapping", "$")]
    for name, entry in catalog.items():
        path = f"$.{name}"
        if not isinstance(entry, Mapping):
            errors.append(_issue("CATALOG_ENTRY_INVALID", "entry must be an object", path))
            continue
        for key in entry:
            if key not in ALLOWED_ENTRY_KEYS:
                errors.append(_issue("CATALOG_UNKNOWN_KEY", f"Unknown key: {key}", f"{path}.{key}"))
        if not _is_ident(entry.get("table")):
            errors.append(_issue("CATALOG_TABLE_INVALID", "table must be an identifier", f"{path}.table"))
        children = entry.get("children")
        if not isinstance(children, (list, tuple)):
            errors.append(_issue("CATALOG_CHILDREN_INVALID", "children must be a list", f"{path}.children"))
            continue
        for i, child in enumerate(children):
            _validate_child(child, f"{path}.children[{i}]", catalog, errors)
    return errors


def ensure_valid_catalog(catalog: Mapping[str, Any]) -> None:
    errors = validate_catalog(catalog)
    if errors:
        first = errors[0]
        raise CatalogError(first["code"], first["message"], first["path"])
