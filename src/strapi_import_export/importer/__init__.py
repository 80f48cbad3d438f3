"""Import pipeline.

This package turns parsed records into entries of an entity store,
resolving media and relation references along the way.
"""

from .media_resolver import MediaResolver
from .orchestrator import EntryImporter
from .relation_resolver import DeferredLink, DeferredRelation, RelationResolver
from .run import ImportRun, KeyedLocks, PendingPatch, natural_key

__all__ = [
    "DeferredLink",
    "DeferredRelation",
    "EntryImporter",
    "ImportRun",
    "KeyedLocks",
    "MediaResolver",
    "PendingPatch",
    "RelationResolver",
    "natural_key",
]
