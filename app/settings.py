"""Admin settings, read from the environment."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import List

DEFAULT_VERSION = "2025061000"
_LIST_SPLIT_RE = re.compile(r"[,\n]")


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def parse_list(raw: str | None) -> List[str]:
    """Split a comma or newline separated admin list, dropping blank entries."""
    if not raw:
        return []
    return [item.strip() for item in _LIST_SPLIT_RE.split(raw) if item.strip()]


@dataclass
class Settings:
    open: bool = False
    key: str = ""
    ips: List[str] = field(default_factory=list)
    previous: bool = False
    extend: bool = False
    gradebook: bool = False
    questions: bool = False
    tags: bool = False
    allowed_courses: List[str] = field(default_factory=list)
    restricted_courses: List[str] = field(default_factory=list)
    version: str = DEFAULT_VERSION
    db_prefix: str = "mdl_"
    db_name: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            open=_flag("XLATE_OPEN"),
            key=os.getenv("XLATE_KEY", "").strip(),
            ips=[ip.lower() for ip in parse_list(os.getenv("XLATE_IPS"))],
            previous=_flag("XLATE_PREVIOUS"),
            extend=_flag("XLATE_EXTEND"),
            gradebook=_flag("XLATE_GRADEBOOK"),
            questions=_flag("XLATE_QUESTIONS"),
            tags=_flag("XLATE_TAGS"),
            allowed_courses=parse_list(os.getenv("XLATE_ALLOWED_COURSES")),
            restricted_courses=parse_list(os.getenv("XLATE_RESTRICTED_COURSES")),
            version=os.getenv("XLATE_VERSION", DEFAULT_VERSION).strip() or DEFAULT_VERSION,
            db_prefix=os.getenv("XLATE_DB_PREFIX", "mdl_").strip(),
            db_name=os.getenv("XLATE_DB_NAME", "").strip() or None,
        )
