"""Generic entity tree builder driven by catalog declarations."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping

from condition_eval import ConditionEvalError, VarResolveError, eval_condition

from .catalog import CATALOG
from .collection import EntitiesCollection
from .context import RequestContext
from .entity import EntityNode, resolve_join
from .errors import CatalogError
from .rows import id_name


FLAG_KEYS = ("read_only", "info_only", "to_check")


def build_entity(
    ctx: RequestContext,
    spec: Mapping[str, Any],
    id_or_row: Any,
    table: str | None = None,
    fields: Iterable[str] = (),
    info: Mapping[str, Any] | None = None,
) -> EntityNode:
    node = EntityNode(ctx, id_or_row, table=table or spec.get("table"), fields=fields, info=info)
    apply_declarations(node, spec.get("children") or ())
    return node


def apply_declarations(node: EntityNode, children: Iterable[Mapping[str, Any]]) -> None:
    for decl in children:
        if not _matches(decl.get("when"), node):
            continue
        if "field" in decl:
            _add_field(node, decl)
        elif "link" in decl:
            _add_link(node, decl)
        elif "collection" in decl:
            _add_collection(node, decl)
        elif "computed" in decl:
            _add_computed(node, decl)
        else:
            raise CatalogError("CATALOG_UNKNOWN_CHILD", "Unknown child declaration", node.table)


def _flags(decl: Mapping[str, Any]) -> dict:
    return {key: bool(decl.get(key)) for key in FLAG_KEYS}


def _matches(when: Any, node: EntityNode) -> bool:
    if when is None:
        return True
    try:
        return eval_condition(when, {"record": node.record()})
    except VarResolveError:
        return False
    except ConditionEvalError as exc:
        raise CatalogError("CATALOG_CONDITION_INVALID", str(exc), node.table) from exc


def _add_field(node: EntityNode, decl: Mapping[str, Any]) -> None:
    field = node.add_field(decl["field"])
    field.mark(**_flags(decl))
    if decl.get("gradebook"):
        field.sync_gradebook()


def table_name(template: str, row: Mapping[str, Any]) -> str | None:
    """Fill ``{column}`` placeholders from the row; None if a column is missing."""
    if "{" not in template:
        return template
    try:
        return template.format_map({k: v for k, v in row.items() if v is not None})
    except (KeyError, ValueError):
        return None


def _add_link(node: EntityNode, decl: Mapping[str, Any]) -> dict | None:
    table = table_name(decl["link"], node.record())
    row = None
    if table:
        row = node.link_table(table, decl.get("join") or "id", decl.get("fields") or ())
        if row:
            for name in decl.get("fields") or ():
                alias = name.split(":", 1)[0]
                node.children[alias].mark(**_flags(decl))
    if row is None and decl.get("fallback"):
        return _add_link(node, decl["fallback"])
    return row


def _collection_rows(node: EntityNode, decl: Mapping[str, Any]) -> list | None:
    """Rows of the collection; None when its ``through`` row does not exist."""
    ctx = node.ctx
    table = decl["table"]
    through = decl.get("through")
    if through:
        mid_target, this = resolve_join(through["join"], node.table)
        mid = ctx.rows.fetch_one(through["table"], node.record(this), mid_target)
        if not mid:
            return None
        target, _ = resolve_join(decl["join"], through["table"])
        return ctx.rows.fetch_many(table, mid.get(id_name(through["table"])), target)
    target, this = resolve_join(decl["join"], node.table)
    value = node.record(this)
    if value is None:
        return []
    return ctx.rows.fetch_many(table, value, target)


def member_factory(ctx: RequestContext, decl: Mapping[str, Any]) -> Callable[[Mapping[str, Any]], EntityNode]:
    table = decl["table"]
    entity = decl.get("entity")
    if entity:
        spec = declaration_for(ctx, entity)
        return lambda row: build_entity(ctx, spec, row, table=table)
    fields = tuple(decl.get("fields") or ())
    return lambda row: EntityNode(ctx, row, table=table, fields=fields)


def declaration_for(ctx: RequestContext, name: str) -> Mapping[str, Any]:
    if ctx.registry is not None:
        spec = ctx.registry.declaration(name)
    else:
        spec = CATALOG.get(name)
    if spec is None:
        raise CatalogError("CATALOG_UNKNOWN_ENTITY", f"Unknown entity type: {name}", name)
    return spec


def _add_collection(node: EntityNode, decl: Mapping[str, Any]) -> None:
    rows = _collection_rows(node, decl)
    if rows is None:
        return
    index = decl.get("index") or id_name(decl["table"])
    collection = EntitiesCollection(rows, index, member_factory(node.ctx, decl))
    collection.mark(**_flags(decl))
    node.add_child(decl["collection"], collection)


# Computations


def section_modules(node: EntityNode) -> dict:
    """Module type names of the section's course modules, keyed by cmid."""
    modules: Dict[str, str] = {}
    sequence = node.record("sequence") or ""
    for cmid in str(sequence).split(","):
        cmid = cmid.strip()
        if not cmid:
            continue
        name = node.ctx.module_name_for_cm(cmid)
        if name:
            modules[cmid] = name
    return modules


COMPUTATIONS: Dict[str, Callable[[EntityNode], Any]] = {
    "section_modules": section_modules,
}


def _add_computed(node: EntityNode, decl: Mapping[str, Any]) -> None:
    source = COMPUTATIONS.get(decl.get("source"))
    if source is None:
        raise CatalogError("CATALOG_UNKNOWN_COMPUTATION", f"Unknown computation: {decl.get('source')}", node.table)
    flags = _flags(decl)
    flags["read_only"] = True
    node.add_direct(decl["computed"], source(node)).mark(**flags)
