"""Collaborator contracts consumed by the entity tree.

The tree never talks to a database driver directly. Row access goes through a
``RowStore`` and column introspection through a ``SchemaInspector``; both are
expected to swallow driver errors and answer with neutral values
(``None``, ``[]``, ``False``).
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

# Tables whose primary key is not "id".
ID_COLUMNS: dict[str, str] = {}


def id_name(table: str | None) -> str:
    if table and table in ID_COLUMNS:
        return ID_COLUMNS[table]
    return "id"


class RowStore(Protocol):
    def fetch_one(self, table: str, value: Any, column: str | None = None) -> dict | None: ...

    def fetch_where(self, table: str, conditions: Mapping[str, Any]) -> dict | None: ...

    def fetch_many(self, table: str, value: Any = None, column: str | None = None) -> list[dict]: ...

    def run_query(self, query_ref: str, params: Mapping[str, Any]) -> list[dict]: ...

    def update_column(self, table: str, id_value: Any, column: str, value: Any) -> bool: ...

    def bump_revision(self, table: str, column: str, id_value: Any) -> bool: ...


class SchemaInspector(Protocol):
    def engine_family(self) -> str: ...

    def column_info(self, table: str, column: str) -> dict | None: ...

    def widen_column(self, table: str, column: str, new_length: int) -> None: ...
