"""FastAPI entry point for the translation API."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import time
import logging

from app.api import ApiCall, failed, process
from app.catalog_validate import ensure_valid_catalog
from app.db import get_db_ms, get_db_stats, get_db_query_log, reset_db_ms
from app.settings import Settings
from app.stores import MemoryRowStore, MemorySchemaInspector
from app.stores_db import DbRowStore, DbSchemaInspector
from content_registry import ContentRegistry
from xlate.catalog import CATALOG
from xlate.context import RequestContext
from xlate.schema_probe import SchemaProbe


app = FastAPI(title="xlate API")
logger = logging.getLogger("xlate.api")
logging.basicConfig(level=logging.INFO)

USE_DB = os.getenv("USE_DB", "").strip() == "1"
REQ_SLOW_MS = float(os.getenv("XLATE_REQ_SLOW_MS", "250"))

ensure_valid_catalog(CATALOG)
settings = Settings.from_env()
registry = ContentRegistry(CATALOG)

if USE_DB:
    rows = DbRowStore(prefix=settings.db_prefix)
    inspector = DbSchemaInspector(prefix=settings.db_prefix, schema=settings.db_name)
else:
    rows = MemoryRowStore()
    inspector = MemorySchemaInspector()

logger.info(
    "startup use_db=%s open=%s questions=%s tags=%s content_types=%s",
    USE_DB,
    settings.open,
    settings.questions,
    settings.tags,
    len(registry.names()),
)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_ms()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    db_ms = get_db_ms()
    db_stats = get_db_stats()
    logger.info(
        "%s %s %s total_ms=%.1f db_ms=%.1f db_q=%s db_acquire_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        total_ms,
        db_ms,
        db_stats.get("queries", 0),
        db_stats.get("acquire_ms", 0.0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s total_ms=%.1f db_ms=%.1f db_queries=%s",
            request.method,
            request.url.path,
            total_ms,
            db_ms,
            get_db_query_log(),
        )
    response.headers["X-Req-MS"] = f"{total_ms:.1f}"
    response.headers["X-DB-MS"] = f"{db_ms:.1f}"
    response.headers["X-Queries"] = str(db_stats.get("queries", 0))
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(jsonable_encoder(failed("error", "Unexpected server error")), status_code=500)


def _new_context() -> RequestContext:
    return RequestContext(rows=rows, probe=SchemaProbe(inspector, extend_enabled=settings.extend), registry=registry)


async def _read_params(request: Request) -> dict | None:
    try:
        params = await request.json()
    except ValueError:
        return None
    return params if isinstance(params, dict) else None


async def _handle(mode: str, request: Request) -> JSONResponse:
    params = await _read_params(request)
    if params is None:
        return JSONResponse(jsonable_encoder(failed("error", "incorrect request")), status_code=400)
    call = ApiCall(params=params, ctx=_new_context(), settings=settings, registry=registry)
    remote_addr = request.client.host if request.client else None
    return JSONResponse(jsonable_encoder(process(mode, call, remote_addr)))


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.post("/get")
async def api_get(request: Request) -> JSONResponse:
    return await _handle("get", request)


@app.post("/set")
async def api_set(request: Request) -> JSONResponse:
    return await _handle("set", request)


@app.post("/infos")
async def api_infos(request: Request) -> JSONResponse:
    return await _handle("infos", request)
