"""Translation entity tree: declarations, nodes and schema probing."""

from .builder import build_entity
from .catalog import CATALOG, GENERIC_MODULE_FIELDS
from .collection import EntitiesCollection
from .context import RequestContext
from .entity import EntityNode
from .errors import CatalogError, SchemaChangeError
from .features import UpdateFeatureFlags
from .fields import DetachedValue, FieldNode
from .schema_probe import SchemaProbe

__all__ = [
    "CATALOG",
    "GENERIC_MODULE_FIELDS",
    "CatalogError",
    "DetachedValue",
    "EntitiesCollection",
    "EntityNode",
    "FieldNode",
    "RequestContext",
    "SchemaChangeError",
    "SchemaProbe",
    "UpdateFeatureFlags",
    "build_entity",
]
