"""Keyed collections of sibling entities loaded from a child table."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping

from . import errors
from .entity import EntityNode, collect_errors
from .fields import Node

MemberFactory = Callable[[Mapping[str, Any]], EntityNode]


class EntitiesCollection(Node):
    def __init__(self, rows: Iterable[Mapping[str, Any]], index_on: str, make_member: MemberFactory) -> None:
        super().__init__()
        self.index_on = index_on
        self.members: Dict[str, EntityNode] = {}
        self.member_errors: Dict[str, str] = {}
        self.status = errors.OK
        for row in rows:
            key = row.get(index_on)
            if key is None:
                continue
            self.members[str(key)] = make_member(row)

    def get(self) -> dict | None:
        if self.info_only or not self.members:
            return None
        result = {}
        for key, member in self.members.items():
            value = member.get()
            if value:
                result[key] = value
        return result or None

    def update(self, data: Any, previous: Any = None) -> bool:
        if self.info_only or self.read_only:
            return self._fail(errors.NOTFOUND)
        if not isinstance(data, Mapping):
            return self._fail(errors.ERROR)
        previous = previous if isinstance(previous, Mapping) else {}
        ok = True
        for key, member_data in data.items():
            key = str(key)
            member = self.members.get(key)
            if member is None:
                self.member_errors[key] = errors.NOTFOUND
                ok = False
                continue
            if not member.update(member_data, previous.get(key, {})):
                self.member_errors[key] = errors.PARTIAL
                self.status = errors.PARTIAL
                ok = False
        return ok

    def get_errors(self) -> Any:
        if self.error != errors.OK:
            return self.error
        return collect_errors(self.member_errors, self.members.get)
