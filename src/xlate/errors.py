"""Error codes and exceptions shared by the entity tree."""

from __future__ import annotations

from dataclasses import dataclass

OK = "ok"
NOTFOUND = "notfound"
EMPTY = "empty"
PREVIOUS = "previous"
TOOLONG = "toolong"
ERROR = "error"
GRADEBOOK_FAILED = "gradebookfailed"
RESTRICTED = "restricted"
PARTIAL = "partial"
AUTH = "auth"


@dataclass
class CatalogError(Exception):
    """A content declaration is malformed or references an unknown type."""

    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class SchemaChangeError(RuntimeError):
    """Raised by a schema inspector when a column change is rejected."""
