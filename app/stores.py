"""In-memory row store and schema inspector used when USE_DB=0."""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping

from xlate.errors import SchemaChangeError
from xlate.rows import id_name

logger = logging.getLogger("xlate.db")


def _same(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    return str(left) == str(right)


def _version_key(row: dict) -> int:
    try:
        return int(row.get("version") or 0)
    except (TypeError, ValueError):
        return 0


class MemoryRowStore:
    def __init__(self, tables: Mapping[str, Iterable[dict]] | None = None) -> None:
        self._tables: Dict[str, List[dict]] = {}
        self.writes: List[tuple] = []
        for table, rows in (tables or {}).items():
            self.seed(table, rows)

    def seed(self, table: str, rows: Iterable[dict]) -> None:
        self._tables.setdefault(table, []).extend(copy.deepcopy(list(rows)))

    def rows(self, table: str) -> list[dict]:
        return [copy.deepcopy(r) for r in self._tables.get(table, [])]

    def fetch_one(self, table: str, value: Any, column: str | None = None) -> dict | None:
        column = column or id_name(table)
        for row in self._tables.get(table, []):
            if _same(row.get(column), value):
                return copy.deepcopy(row)
        return None

    def fetch_where(self, table: str, conditions: Mapping[str, Any]) -> dict | None:
        for row in self._tables.get(table, []):
            if all(_same(row.get(k), v) for k, v in conditions.items()):
                return copy.deepcopy(row)
        return None

    def fetch_many(self, table: str, value: Any = None, column: str | None = None) -> list[dict]:
        rows = self._tables.get(table, [])
        if column is None and value is None:
            return [copy.deepcopy(r) for r in rows]
        column = column or id_name(table)
        return [copy.deepcopy(r) for r in rows if _same(r.get(column), value)]

    def run_query(self, query_ref: str, params: Mapping[str, Any]) -> list[dict]:
        query = MEMORY_QUERIES.get(query_ref)
        if query is None:
            logger.warning("memory_query_unknown query=%s", query_ref)
            return []
        return query(self, params)

    def update_column(self, table: str, id_value: Any, column: str, value: Any) -> bool:
        key = id_name(table)
        for row in self._tables.get(table, []):
            if _same(row.get(key), id_value):
                row[column] = value
                self.writes.append((table, str(id_value), column, value))
                return True
        return False

    def bump_revision(self, table: str, column: str, id_value: Any) -> bool:
        key = id_name(table)
        now = int(time.time())
        for row in self._tables.get(table, []):
            if _same(row.get(key), id_value):
                current = int(row.get(column) or 0)
                row[column] = max(now, current + 1)
                return True
        return False


def _question_versions(store: MemoryRowStore, params: Mapping[str, Any]) -> list[dict]:
    versions = sorted(store.fetch_many("question_versions", params.get("entryid"), "questionbankentryid"), key=_version_key)
    result = []
    for version in versions:
        question = store.fetch_one("question", version.get("questionid"))
        if question:
            result.append(question)
    return result


def _question_latest_version(store: MemoryRowStore, params: Mapping[str, Any]) -> list[dict]:
    versions = store.fetch_many("question_versions", params.get("entryid"), "questionbankentryid")
    for version in sorted(versions, key=_version_key, reverse=True):
        question = store.fetch_one("question", version.get("questionid"))
        if question:
            return [question]
    return []


MEMORY_QUERIES: Dict[str, Callable[[MemoryRowStore, Mapping[str, Any]], list]] = {
    "question_versions_for_entry": _question_versions,
    "question_latest_version_for_entry": _question_latest_version,
}


class MemorySchemaInspector:
    """Column catalog kept in memory; ``refuse`` lists columns whose widening fails."""

    def __init__(
        self,
        columns: Mapping[tuple, Mapping[str, Any]] | None = None,
        family: str = "mysql",
        refuse: Iterable[tuple] = (),
    ) -> None:
        self._family = family
        self._columns: Dict[tuple, dict] = {key: dict(info) for key, info in (columns or {}).items()}
        self._refuse = set(refuse)
        self.changes: List[tuple] = []

    def engine_family(self) -> str:
        return self._family

    def column_info(self, table: str, column: str) -> dict | None:
        info = self._columns.get((table, column))
        return dict(info) if info else None

    def widen_column(self, table: str, column: str, new_length: int) -> None:
        key = (table, column)
        if key not in self._columns or key in self._refuse:
            raise SchemaChangeError(f"cannot change {table}.{column}")
        self._columns[key]["max_length"] = new_length
        self.changes.append((table, column, new_length))
