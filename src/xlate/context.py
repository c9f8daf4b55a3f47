"""Request-scoped state handed to every node of an entity tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from .features import UpdateFeatureFlags
from .rows import RowStore
from .schema_probe import SchemaProbe


@dataclass
class RequestContext:
    rows: RowStore
    probe: SchemaProbe
    features: UpdateFeatureFlags = field(default_factory=UpdateFeatureFlags)
    registry: Any = None
    _modules: Dict[str, str] | None = field(default=None, repr=False)

    def _module_names(self) -> Dict[str, str]:
        if self._modules is None:
            self._modules = {str(rec.get("id")): rec.get("name") or "" for rec in self.rows.fetch_many("modules")}
        return self._modules

    def module_name(self, module_id: Any) -> str:
        return self._module_names().get(str(module_id), "")

    def module_name_for_cm(self, cmid: Any) -> str:
        cm = self.rows.fetch_one("course_modules", cmid)
        if not cm:
            return ""
        return self.module_name(cm.get("module"))
