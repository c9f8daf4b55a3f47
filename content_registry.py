"""Content-type registry: maps a type name to its entity declaration."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

from xlate.builder import build_entity
from xlate.catalog import CATALOG, GENERIC_MODULE_FIELDS, freeze, normalize_catalog
from xlate.context import RequestContext
from xlate.entity import EntityNode
from xlate.errors import CatalogError


class ContentRegistry:
    def __init__(
        self,
        catalog: Mapping[str, Mapping[str, Any]] = CATALOG,
        fallback_fields: Iterable[str] = GENERIC_MODULE_FIELDS,
    ) -> None:
        self._declarations: Dict[str, Mapping[str, Any]] = dict(catalog)
        self._fallback_fields = tuple(fallback_fields)

    def names(self) -> List[str]:
        return sorted(self._declarations.keys())

    def declaration(self, name: str) -> Mapping[str, Any] | None:
        return self._declarations.get(name)

    def is_declared(self, name: str) -> bool:
        return name in self._declarations

    def register(self, name: str, declaration: Mapping[str, Any]) -> Mapping[str, Any]:
        if name in self._declarations:
            raise CatalogError("CATALOG_ALREADY_REGISTERED", f"content type already registered: {name}", name)
        frozen = freeze(normalize_catalog({name: declaration}))[name]
        self._declarations[name] = frozen
        return frozen

    def build(
        self,
        ctx: RequestContext,
        name: str,
        id_or_row: Any,
        info: Mapping[str, Any] | None = None,
        table: str | None = None,
    ) -> EntityNode:
        """Build the tree for ``name``; undeclared types expose name/intro of their own table."""
        if ctx.registry is None:
            ctx.registry = self
        spec = self.declaration(name)
        if spec is None:
            return EntityNode(ctx, id_or_row, table=table or name, fields=self._fallback_fields, info=info)
        return build_entity(ctx, spec, id_or_row, table=table, info=info)
