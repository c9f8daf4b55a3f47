"""Leaf nodes of an entity tree.

A ``FieldNode`` is bound to one (table, row id, column) triple and can be
written back. A ``DetachedValue`` carries a computed or informational value
with no storage behind it; it can be read but never updated.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from . import errors
from .context import RequestContext

logger = logging.getLogger("xlate.fields")

GRADEBOOK_TABLE = "grade_items"
GRADEBOOK_HISTORY_TABLE = "grade_items_history"
GRADEBOOK_COLUMN = "itemname"


def is_empty(value: Any) -> bool:
    """Emptiness as the host platform understands it ("0" and 0 are empty)."""
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, str):
        return value == "" or value == "0"
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def is_zero(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0
    return value == "0"


def is_blank(value: Any) -> bool:
    if is_empty(value):
        return True
    if isinstance(value, str):
        return is_empty(value.strip())
    return False


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


class Node:
    """Visibility flags and error state shared by every tree node."""

    def __init__(self) -> None:
        self.read_only = False
        self.info_only = False
        self.to_check = False
        self.error = errors.OK

    def mark(self, *, read_only: bool = False, info_only: bool = False, to_check: bool = False) -> "Node":
        self.read_only = self.read_only or read_only
        self.info_only = self.info_only or info_only
        self.to_check = self.to_check or to_check
        return self

    def _fail(self, code: str = errors.ERROR) -> bool:
        self.error = code
        return False

    def get_errors(self) -> Any:
        if self.error != errors.OK:
            return self.error
        return None


class DetachedValue(Node):
    def __init__(self, value: Any) -> None:
        super().__init__()
        self.value = value

    def get(self) -> Any:
        if self.info_only:
            return None
        if is_zero(self.value):
            return 0
        if is_empty(self.value):
            return None
        return self.value

    def update(self, new_value: Any, previous: Any = None) -> bool:
        return self._fail(errors.NOTFOUND)


class FieldNode(DetachedValue):
    def __init__(
        self,
        ctx: RequestContext,
        row: Mapping[str, Any] | None,
        table: str | None,
        row_id: Any,
        column: str,
    ) -> None:
        value = row.get(column) if isinstance(row, Mapping) else None
        super().__init__(value)
        self.ctx = ctx
        self.table = table
        self.row_id = row_id
        self.column = column
        self.gradebook = False

    def sync_gradebook(self) -> "FieldNode":
        self.gradebook = True
        return self

    def update(self, new_value: Any, previous: Any = None) -> bool:
        if self.read_only or self.info_only or not self.table or self.row_id is None:
            return self._fail(errors.NOTFOUND)
        if isinstance(new_value, (dict, list, tuple)):
            return self._fail(errors.ERROR)
        if is_blank(new_value) or is_blank(self.value):
            return self._fail(errors.EMPTY)
        new_value = _as_text(new_value)
        if not self._check_previous(previous):
            return self._fail(errors.PREVIOUS)
        if not self._check_and_extend(len(new_value), self.table, self.column):
            return self._fail(errors.TOOLONG)
        if not self.ctx.rows.update_column(self.table, self.row_id, self.column, new_value):
            logger.warning("field_write_failed table=%s id=%s column=%s", self.table, self.row_id, self.column)
            return self._fail(errors.ERROR)
        if self.gradebook and self.ctx.features.update_gradebook:
            self._update_gradebook(new_value)
        self.value = new_value
        return self.error == errors.OK

    def _check_previous(self, previous: Any) -> bool:
        if not self.ctx.features.previous_verification:
            return True
        if isinstance(previous, (dict, list, tuple)) or is_blank(previous):
            return False
        return _as_text(previous).strip() == _as_text(self.value).strip()

    def _check_and_extend(self, length: int, table: str, column: str) -> bool:
        probe = self.ctx.probe
        size = probe.current_length(table, column)
        if not size or length <= size:
            return True
        if not self.ctx.features.extend:
            return False
        return probe.widen(table, column, length)

    def _update_gradebook(self, new_value: str) -> bool:
        item = self.ctx.rows.fetch_where(
            GRADEBOOK_TABLE,
            {"itemname": self.value, "itemmodule": self.table, "iteminstance": self.row_id},
        )
        if not item:
            return True
        length = len(new_value)
        if not self._check_and_extend(length, GRADEBOOK_TABLE, GRADEBOOK_COLUMN) or not self._check_and_extend(
            length, GRADEBOOK_HISTORY_TABLE, GRADEBOOK_COLUMN
        ):
            return self._fail(errors.GRADEBOOK_FAILED)
        if not self.ctx.rows.update_column(GRADEBOOK_TABLE, item.get("id"), GRADEBOOK_COLUMN, new_value):
            logger.warning("gradebook_write_failed item=%s module=%s instance=%s", item.get("id"), self.table, self.row_id)
            return self._fail(errors.GRADEBOOK_FAILED)
        logger.info("gradebook_synced item=%s module=%s instance=%s", item.get("id"), self.table, self.row_id)
        return True
