"""Course lookup and the admin allowed/restricted course lists."""

from __future__ import annotations

from typing import Any

from condition_eval import is_numeric
from xlate.rows import RowStore


def _in_list(entries: list[str], course: dict) -> bool:
    for entry in entries:
        if is_numeric(entry) and is_numeric(course.get("id")) and float(entry) == float(course.get("id")):
            return True
        if entry == course.get("shortname"):
            return True
    return False


class CourseAccess:
    def __init__(self, rows: RowStore, id_or_shortname: Any) -> None:
        self.lookup = id_or_shortname
        column = "id" if is_numeric(id_or_shortname) else "shortname"
        self.record = rows.fetch_one("course", id_or_shortname, column) if id_or_shortname not in (None, "") else None

    @property
    def exists(self) -> bool:
        return bool(self.record)

    @property
    def id(self) -> Any:
        return self.record.get("id") if self.record else None

    @property
    def shortname(self) -> Any:
        return self.record.get("shortname") if self.record else None

    def allowed(self, allowed_courses: list[str], restricted_courses: list[str]) -> bool:
        if not self.record:
            return False
        if allowed_courses and not _in_list(allowed_courses, self.record):
            return False
        if _in_list(restricted_courses, self.record):
            return False
        return True
