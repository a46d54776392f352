"""
Librarian Module

Owns the unified graph: the common data model, role classification,
immutable snapshots and the cache that keeps them fresh.
"""

from .classifier import classify, classify_fields
from .graph_index import GraphSnapshot, build_snapshot
from .models import Direction, Edge, Instance, ManufacturingContext, RelationshipRef, Role

__all__ = [
    "classify",
    "classify_fields",
    "GraphSnapshot",
    "build_snapshot",
    "Direction",
    "Edge",
    "Instance",
    "ManufacturingContext",
    "RelationshipRef",
    "Role"
]
