"""DB helper for the host platform database (Postgres or MySQL/MariaDB)."""

from __future__ import annotations

import os
import re
import time
from contextlib import closing, contextmanager
import contextvars
from typing import Any, Iterable, Mapping
from urllib.parse import unquote, urlsplit

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool
import mysql.connector
from mysql.connector import pooling
import threading
import logging


POSTGRES = "postgres"
MYSQL = "mysql"

_SCHEME_FAMILIES = {
    "postgres": POSTGRES,
    "postgresql": POSTGRES,
    "mysql": MYSQL,
    "mariadb": MYSQL,
    "mysql+mysqlconnector": MYSQL,
}

DRIVER_ERRORS = (psycopg2.Error, mysql.connector.Error)

_IDENT_RE = re.compile(r"^[A-Za-z0-9_]+$")


def get_db_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required when USE_DB=1")
    return url


def engine_family(url: str | None = None) -> str:
    scheme = urlsplit(url or get_db_url()).scheme.lower()
    family = _SCHEME_FAMILIES.get(scheme)
    if family is None:
        raise RuntimeError(f"Unsupported DATABASE_URL scheme: {scheme}")
    return family


def quote_ident(name: str, family: str | None = None) -> str:
    if not isinstance(name, str) or not _IDENT_RE.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    if (family or engine_family()) == MYSQL:
        return f"`{name}`"
    return f'"{name}"'


def mysql_pool_config(url: str, pool_size: int) -> dict:
    parts = urlsplit(url)
    return {
        "pool_name": "xlate_mysql",
        "pool_size": max(1, min(pool_size, pooling.CNX_POOL_MAXSIZE)),
        "host": parts.hostname or "localhost",
        "port": parts.port or 3306,
        "user": unquote(parts.username or ""),
        "password": unquote(parts.password or ""),
        "database": parts.path.lstrip("/") or None,
        "charset": "utf8mb4",
        "autocommit": False,
    }


_POOL: Any = None
_POOL_FAMILY: str | None = None
_DB_MS = 0.0
_DB_LOCK = threading.Lock()
_logger = logging.getLogger("xlate.db")
_query_logger = logging.getLogger("xlate.db.query")
_DB_STATS: contextvars.ContextVar[dict] = contextvars.ContextVar("xlate_db_stats", default=None)
_DB_QUERY_LOG: contextvars.ContextVar[list] = contextvars.ContextVar("xlate_db_query_log", default=None)
_SLOW_MS = float(os.getenv("XLATE_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("XLATE_QUERY_LOG", "").strip() == "1"


def _redact_params(params: Iterable[Any] | None) -> list[Any] | None:
    if params is None:
        return None
    if isinstance(params, Mapping):
        params = list(params.values())
    redacted: list[Any] = []
    for val in params:
        if isinstance(val, (bytes, bytearray)):
            redacted.append(f"<bytes:{len(val)}>")
        elif isinstance(val, str) and len(val) > 80:
            redacted.append(f"{val[:40]}…{val[-10:]}")
        else:
            redacted.append(val)
    return redacted


def _prepare(params: Any) -> Any:
    if isinstance(params, Mapping):
        return dict(params)
    return list(params or [])


def _log_query(
    *,
    query_name: str | None,
    params: Iterable[Any] | None,
    elapsed_ms: float,
    rowcount: int | None,
) -> None:
    log = get_db_query_log()
    log.append(query_name or "unnamed")
    _DB_QUERY_LOG.set(log)
    if not _LOG_ALL and elapsed_ms < _SLOW_MS:
        return
    message = {
        "query": query_name or "unnamed",
        "ms": round(elapsed_ms, 2),
        "rowcount": rowcount,
        "params": _redact_params(params),
    }
    if elapsed_ms >= _SLOW_MS:
        _query_logger.warning("db_slow_query=%s", message)
    else:
        _query_logger.info("db_query=%s", message)


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> None:
    global _POOL, _POOL_FAMILY
    if _POOL is None:
        if minconn is None:
            minconn = int(os.getenv("XLATE_DB_POOL_MIN", "1"))
        if maxconn is None:
            maxconn = int(os.getenv("XLATE_DB_POOL_MAX", "10"))
        url = get_db_url()
        family = engine_family(url)
        if family == MYSQL:
            # mysql.connector opens every pooled connection up front and reconnects stale ones on checkout.
            _POOL = pooling.MySQLConnectionPool(**mysql_pool_config(url, maxconn))
        else:
            _POOL = SimpleConnectionPool(minconn, maxconn, dsn=url)
        _POOL_FAMILY = family
        _logger.info("db_pool_ready family=%s min=%s max=%s", family, minconn, maxconn)


def reset_db_ms() -> None:
    global _DB_MS
    with _DB_LOCK:
        _DB_MS = 0.0
    _DB_STATS.set({"queries": 0, "acquire_ms": 0.0, "total_ms": 0.0})
    _DB_QUERY_LOG.set([])


def get_db_stats() -> dict:
    stats = _DB_STATS.get()
    if not isinstance(stats, dict):
        return {"queries": 0, "acquire_ms": 0.0, "total_ms": 0.0}
    return stats


def get_db_query_log() -> list:
    log = _DB_QUERY_LOG.get()
    if not isinstance(log, list):
        return []
    return log


def add_db_ms(delta: float) -> None:
    global _DB_MS
    with _DB_LOCK:
        _DB_MS += delta
    stats = get_db_stats()
    stats["total_ms"] = stats.get("total_ms", 0.0) + delta
    stats["queries"] = stats.get("queries", 0) + 1
    _DB_STATS.set(stats)


def add_db_acquire_ms(delta: float) -> None:
    stats = get_db_stats()
    stats["acquire_ms"] = stats.get("acquire_ms", 0.0) + delta
    _DB_STATS.set(stats)


def get_db_ms() -> float:
    with _DB_LOCK:
        return _DB_MS


def _get_pool():
    if _POOL is None:
        init_pool()
    return _POOL


def _acquire(pool):
    if _POOL_FAMILY == MYSQL:
        return pool.get_connection()
    return pool.getconn()


def _release(pool, conn) -> None:
    if _POOL_FAMILY == MYSQL:
        # Closing a pooled mysql.connector connection hands it back to the pool.
        conn.close()
    else:
        pool.putconn(conn)


@contextmanager
def get_conn():
    pool = _get_pool()
    acquire_start = time.perf_counter()
    conn = _acquire(pool)
    add_db_acquire_ms((time.perf_counter() - acquire_start) * 1000)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _release(pool, conn)


def _cursor(conn, dict_rows: bool = False):
    if _POOL_FAMILY == MYSQL:
        return closing(conn.cursor(dictionary=dict_rows, buffered=True))
    if dict_rows:
        return closing(conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor))
    return closing(conn.cursor())


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    start = time.perf_counter()
    with _cursor(conn, dict_rows=True) as cur:
        cur.execute(sql, _prepare(params))
        row = cur.fetchone()
        result = dict(row) if row else None
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    add_db_ms(elapsed_ms)
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return result


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    start = time.perf_counter()
    with _cursor(conn, dict_rows=True) as cur:
        cur.execute(sql, _prepare(params))
        result = [dict(r) for r in cur.fetchall()]
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    add_db_ms(elapsed_ms)
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return result


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    start = time.perf_counter()
    with _cursor(conn) as cur:
        cur.execute(sql, _prepare(params))
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    add_db_ms(elapsed_ms)
    _log_query(query_name=query_name, params=params, elapsed_ms=elapsed_ms, rowcount=rowcount)
    return rowcount
