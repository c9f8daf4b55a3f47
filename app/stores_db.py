"""DB-backed row store and schema inspector over the host platform tables."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping

from app.db import DRIVER_ERRORS, MYSQL, engine_family, execute, fetch_all, fetch_one, get_conn, quote_ident
from xlate.errors import SchemaChangeError
from xlate.rows import id_name

logger = logging.getLogger("xlate.db")

STORE_ERRORS = (ValueError, RuntimeError) + DRIVER_ERRORS

# Joins the declarative layer cannot express. ``{name}`` expands to the quoted, prefixed table.
NAMED_QUERIES: Dict[str, str] = {
    "question_versions_for_entry": """
        select {question}.*
        from {question}
        join {question_versions} on {question_versions}.questionid = {question}.id
        where {question_versions}.questionbankentryid = %(entryid)s
        order by {question_versions}.version
    """,
    "question_latest_version_for_entry": """
        select {question}.*
        from {question}
        join {question_versions} on {question_versions}.questionid = {question}.id
        where {question_versions}.questionbankentryid = %(entryid)s
        order by {question_versions}.version desc
        limit 1
    """,
}
_QUERY_TABLES = ("question", "question_versions")


def _param(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


class _Tables:
    def __init__(self, prefix: str, family: str | None) -> None:
        self.prefix = prefix
        self.family = family or engine_family()

    def table(self, name: str) -> str:
        return quote_ident(f"{self.prefix}{name}", self.family)

    def column(self, name: str) -> str:
        return quote_ident(name, self.family)


class DbRowStore:
    def __init__(self, prefix: str = "mdl_", family: str | None = None) -> None:
        self._names = _Tables(prefix, family)

    def fetch_one(self, table: str, value: Any, column: str | None = None) -> dict | None:
        column = column or id_name(table)
        try:
            sql = f"select * from {self._names.table(table)} where {self._names.column(column)} = %s limit 1"
            with get_conn() as conn:
                return fetch_one(conn, sql, [_param(value)], query_name=f"{table}.fetch_one")
        except STORE_ERRORS as exc:
            logger.warning("row_fetch_failed table=%s column=%s error=%s", table, column, exc)
            return None

    def fetch_where(self, table: str, conditions: Mapping[str, Any]) -> dict | None:
        try:
            clauses = [f"{self._names.column(col)} = %s" for col in conditions]
            where = " and ".join(clauses) or "1=1"
            sql = f"select * from {self._names.table(table)} where {where} limit 1"
            with get_conn() as conn:
                return fetch_one(conn, sql, [_param(v) for v in conditions.values()], query_name=f"{table}.fetch_where")
        except STORE_ERRORS as exc:
            logger.warning("row_fetch_failed table=%s conditions=%s error=%s", table, sorted(conditions), exc)
            return None

    def fetch_many(self, table: str, value: Any = None, column: str | None = None) -> list[dict]:
        try:
            key = id_name(table)
            sql = f"select * from {self._names.table(table)}"
            params: list = []
            if column is not None or value is not None:
                sql += f" where {self._names.column(column or key)} = %s"
                params.append(_param(value))
            sql += f" order by {self._names.column(key)}"
            with get_conn() as conn:
                return fetch_all(conn, sql, params, query_name=f"{table}.fetch_many")
        except STORE_ERRORS as exc:
            logger.warning("row_fetch_failed table=%s column=%s error=%s", table, column, exc)
            return []

    def run_query(self, query_ref: str, params: Mapping[str, Any]) -> list[dict]:
        template = NAMED_QUERIES.get(query_ref)
        if template is None:
            logger.warning("named_query_unknown query=%s", query_ref)
            return []
        try:
            sql = template.format(**{name: self._names.table(name) for name in _QUERY_TABLES})
            with get_conn() as conn:
                return fetch_all(conn, sql, {k: _param(v) for k, v in params.items()}, query_name=query_ref)
        except STORE_ERRORS as exc:
            logger.warning("named_query_failed query=%s error=%s", query_ref, exc)
            return []

    def update_column(self, table: str, id_value: Any, column: str, value: Any) -> bool:
        key = id_name(table)
        try:
            sql = (
                f"update {self._names.table(table)} set {self._names.column(column)} = %s "
                f"where {self._names.column(key)} = %s"
            )
            with get_conn() as conn:
                count = execute(conn, sql, [value, _param(id_value)], query_name=f"{table}.update_column")
        except STORE_ERRORS as exc:
            logger.warning("row_update_failed table=%s id=%s column=%s error=%s", table, id_value, column, exc)
            return False
        # MySQL reports 0 affected rows when the value is unchanged.
        return count > 0 or self._names.family == MYSQL

    def bump_revision(self, table: str, column: str, id_value: Any) -> bool:
        key = id_name(table)
        col = self._names.column(column)
        try:
            sql = (
                f"update {self._names.table(table)} "
                f"set {col} = case when {col} + 1 > %s then {col} + 1 else %s end "
                f"where {self._names.column(key)} = %s"
            )
            now = int(time.time())
            with get_conn() as conn:
                count = execute(conn, sql, [now, now, _param(id_value)], query_name=f"{table}.bump_revision")
        except STORE_ERRORS as exc:
            logger.warning("revision_bump_failed table=%s id=%s error=%s", table, id_value, exc)
            return False
        return count > 0


class DbSchemaInspector:
    def __init__(self, prefix: str = "mdl_", schema: str | None = None, family: str | None = None) -> None:
        self._names = _Tables(prefix, family)
        self._schema = schema

    def engine_family(self) -> str:
        return self._names.family

    def column_info(self, table: str, column: str) -> dict | None:
        full = f"{self._names.prefix}{table}"
        if self._names.family == MYSQL:
            schema_expr = "%s" if self._schema else "database()"
            sql = f"""
                select DATA_TYPE as data_type, CHARACTER_MAXIMUM_LENGTH as max_length,
                       IS_NULLABLE as is_nullable, COLUMN_DEFAULT as column_default
                from information_schema.COLUMNS
                where TABLE_SCHEMA = {schema_expr} and TABLE_NAME = %s and COLUMN_NAME = %s
            """
        else:
            schema_expr = "%s" if self._schema else "current_schema()"
            sql = f"""
                select data_type, character_maximum_length as max_length,
                       is_nullable, column_default
                from information_schema.columns
                where table_schema = {schema_expr} and table_name = %s and column_name = %s
            """
        params = ([self._schema] if self._schema else []) + [full, column]
        try:
            with get_conn() as conn:
                return fetch_one(conn, sql, params, query_name="information_schema.column_info")
        except STORE_ERRORS as exc:
            logger.warning("column_info_failed table=%s column=%s error=%s", table, column, exc)
            return None

    def widen_column(self, table: str, column: str, new_length: int) -> None:
        if self._names.family != MYSQL:
            raise SchemaChangeError(f"column widening is not supported on {self._names.family}")
        info = self.column_info(table, column)
        if not info:
            raise SchemaChangeError(f"column not found: {table}.{column}")
        nullable = str(info.get("is_nullable") or "").upper() == "YES"
        default = info.get("column_default")
        sql = (
            f"alter table {self._names.table(table)} modify column {self._names.column(column)} "
            f"varchar({int(new_length)}) {'null' if nullable else 'not null'}"
        )
        params: list = []
        if default is not None:
            sql += " default %s"
            params.append(default)
        try:
            with get_conn() as conn:
                execute(conn, sql, params, query_name="schema.widen_column")
        except STORE_ERRORS as exc:
            raise SchemaChangeError(f"widening {table}.{column} to {new_length} failed: {exc}") from exc
