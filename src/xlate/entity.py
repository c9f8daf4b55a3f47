"""Composite node of an entity tree."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping

from . import errors
from .context import RequestContext
from .fields import DetachedValue, FieldNode, Node, is_zero
from .rows import id_name

_UNLOADED = object()


def split_alias(name: str) -> tuple[str, str]:
    """``"alias:column"`` -> ``("alias", "column")``; plain names alias themselves."""
    if ":" in name:
        alias, column = name.split(":", 1)
        return alias, column
    return name, name


def resolve_join(join: str | Mapping[str, str], this_table: str | None) -> tuple[str, str]:
    """Return ``(target_column, this_column)`` for a join declaration."""
    if isinstance(join, Mapping):
        target, this = next(iter(join.items()))
        return target, this
    return join, id_name(this_table)


def keep_output(value: Any) -> bool:
    return bool(value) or is_zero(value)


class EntityNode(Node):
    """A primary row plus an ordered mapping of named children.

    Children are ``FieldNode``/``DetachedValue`` leaves, nested entities or
    ``EntitiesCollection`` instances; all share the ``get``/``update``/
    ``get_errors`` contract.
    """

    table: str | None = None

    def __init__(
        self,
        ctx: RequestContext,
        id_or_row: Any,
        table: str | None = None,
        fields: Iterable[str] = (),
        info: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.ctx = ctx
        if table:
            self.table = table
        self.children: Dict[str, Any] = {}
        self.status = errors.OK
        self.child_errors: Dict[str, str] = {}
        if isinstance(id_or_row, Mapping):
            self._record: Any = dict(id_or_row)
            self.id = self._record.get(id_name(self.table))
        else:
            self._record = _UNLOADED
            self.id = id_or_row
        for name, value in (info or {}).items():
            self.add_direct(name, value).mark(read_only=True)
        self.add_fields(*fields)

    def record(self, name: str | None = None) -> Any:
        if self._record is _UNLOADED:
            row = self.ctx.rows.fetch_one(self.table, self.id) if self.table else None
            self._record = dict(row) if row else {}
        if name is None:
            return self._record
        return self._record.get(name)

    # Declaration building blocks

    def add_direct(self, name: str, value: Any) -> Node:
        if not isinstance(value, Node):
            value = DetachedValue(value)
        self.children[name] = value
        return value

    def add_fields(self, *names: str) -> None:
        for name in names:
            self.add_field(name)

    def add_field(self, name: str) -> FieldNode:
        alias, column = split_alias(name)
        row = self.record()
        node = FieldNode(self.ctx, row, self.table, self.id if row else None, column)
        self.children[alias] = node
        return node

    def add_foreign_field(self, name: str, table: str, row: Mapping[str, Any]) -> FieldNode:
        """Declare a field read from another, already fetched row."""
        alias, column = split_alias(name)
        node = FieldNode(self.ctx, row, table, row.get(id_name(table)), column)
        self.children[alias] = node
        return node

    def link_table(self, table: str, join: str | Mapping[str, str], fields: Iterable[str] = ()) -> dict | None:
        target, this = resolve_join(join, self.table)
        row = self.ctx.rows.fetch_one(table, self.record(this), target)
        if not row:
            return None
        for name in fields:
            self.add_foreign_field(name, table, row)
        return row

    def add_child(self, name: str, node: Any) -> Any:
        self.children[name] = node
        return node

    # Tree contract

    def get(self) -> dict:
        result: Dict[str, Any] = {}
        for name, child in self.children.items():
            value = child.get()
            if keep_output(value):
                result[name] = value
        return result

    def update(self, data: Any, previous: Any = None) -> bool:
        if not isinstance(data, Mapping):
            return self._fail(errors.ERROR)
        previous = previous if isinstance(previous, Mapping) else {}
        ok = True
        for key, value in data.items():
            child = self.children.get(key)
            if child is None:
                self.child_errors[key] = errors.NOTFOUND
                ok = False
                continue
            if not child.update(value, previous.get(key, {})):
                self.child_errors[key] = errors.PARTIAL
                self.status = errors.PARTIAL
                ok = False
        return ok

    def get_errors(self) -> Any:
        if self.error != errors.OK:
            return self.error
        return collect_errors(self.child_errors, self.children.get)


def collect_errors(child_errors: Mapping[str, str], lookup: Callable[[str], Any]) -> dict | None:
    result: Dict[str, Any] = {}
    for key, code in child_errors.items():
        if code == errors.PARTIAL:
            child = lookup(key)
            sub = child.get_errors() if child is not None else None
            if sub:
                result[key] = sub
        elif code != errors.OK:
            result[key] = code
    return result or None
