"""Column capacity discovery and on-demand widening."""

from __future__ import annotations

import logging
from typing import Dict, Tuple

from .errors import SchemaChangeError
from .rows import SchemaInspector

logger = logging.getLogger("xlate.schema")

MAX_CHAR_LENGTH = 65535
BASE_CHAR_LENGTH = 255
SUPPORTED_ENGINES = {"mysql"}

# Column introspected to confirm the engine exposes information_schema.
PROBE_COLUMN = ("user", "id")

# Recycle bin copies of course/category names must grow with their source column.
LEGACY_COMPANIONS = {
    "name": ("tool_recyclebin_course", "name"),
    "fullname": ("tool_recyclebin_category", "fullname"),
    "shortname": ("tool_recyclebin_category", "shortname"),
}


def target_length(required: int) -> int:
    """Smallest 2**n - 1 (n >= 8) that fits ``required`` characters."""
    size = BASE_CHAR_LENGTH
    while required > size:
        size = size * 2 + 1
    return size


class SchemaProbe:
    def __init__(self, inspector: SchemaInspector, extend_enabled: bool = False) -> None:
        self._inspector = inspector
        self._extend_enabled = extend_enabled
        self._lengths: Dict[Tuple[str, str], int | bool] = {}
        self._initial: Dict[str, Dict[str, int]] = {}
        self._supports: bool | None = None
        self._allowed: bool | None = None

    def supports_extension(self) -> bool:
        if self._supports is None:
            family = (self._inspector.engine_family() or "").lower()
            if family not in SUPPORTED_ENGINES:
                self._supports = False
            else:
                self._supports = self._inspector.column_info(*PROBE_COLUMN) is not None
            logger.info("schema_probe engine=%s supports_extension=%s", family, self._supports)
        return self._supports

    def allowed_to_extend(self) -> bool:
        if self._allowed is None:
            self._allowed = bool(self._extend_enabled) and self.supports_extension()
        return self._allowed

    def current_length(self, table: str, column: str, force_refresh: bool = False) -> int | bool:
        if not self.supports_extension():
            return False
        key = (table, column)
        if force_refresh or key not in self._lengths:
            info = self._inspector.column_info(table, column)
            length = info.get("max_length") if info else None
            self._lengths[key] = int(length) if length else False
        return self._lengths[key]

    def widen(self, table: str, column: str, required_length: int) -> bool:
        if not self.allowed_to_extend():
            return False
        size = self.current_length(table, column)
        if not size or size >= MAX_CHAR_LENGTH or size >= required_length:
            return False
        if required_length > MAX_CHAR_LENGTH:
            logger.info("widen_skipped table=%s column=%s required=%s max=%s", table, column, required_length, MAX_CHAR_LENGTH)
            return False

        columns = self._initial.setdefault(table, {})
        first_widen = column not in columns
        columns.setdefault(column, size)

        companion = LEGACY_COMPANIONS.get(column)
        if companion and companion != (table, column):
            self.widen(companion[0], companion[1], required_length)

        new_size = target_length(required_length)
        try:
            self._inspector.widen_column(table, column, new_size)
        except SchemaChangeError as exc:
            logger.warning("widen_failed table=%s column=%s size=%s error=%s", table, column, new_size, exc)
            if first_widen:
                columns.pop(column, None)
                if not columns:
                    self._initial.pop(table, None)
            self.current_length(table, column, force_refresh=True)
            return False
        logger.info("widened table=%s column=%s from=%s to=%s", table, column, size, new_size)
        self.current_length(table, column, force_refresh=True)
        return True

    def extensions_report(self) -> dict:
        result: dict = {}
        for table, columns in self._initial.items():
            result[table] = {}
            for column, size in columns.items():
                result[table][column] = {
                    "previousSize": size,
                    "newSize": self.current_length(table, column, force_refresh=True),
                }
        return result
