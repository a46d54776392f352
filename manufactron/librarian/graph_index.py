"""
Graph Index

Builds immutable graph snapshots from merged source instances and answers
O(1) lookups against them.
"""

import logging
import time
from collections import Counter
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..errors import SourceError
from .classifier import classify
from .models import CHILD_OF, Direction, Edge, Instance, Namespace, ObjectType, RelationshipRef, Role, freeze

logger = logging.getLogger(__name__)


class GraphSnapshot:
    """
    Point-in-time, read-only view of the unified graph.

    All containers are built once in build_snapshot() and exposed through
    read-only views or tuples; nothing mutates a snapshot after publication,
    so any number of readers may share one without locking.
    """

    def __init__(
        self,
        instances: Mapping[str, Instance],
        edges: Sequence[Edge],
        forward: Mapping[str, Mapping[str, Tuple[str, ...]]],
        reverse: Mapping[str, Mapping[str, Tuple[str, ...]]],
        incident: Mapping[str, Tuple[Tuple[Edge, str], ...]],
        roles: Mapping[str, Role],
        children: Mapping[str, Tuple[str, ...]],
        version: int = 0,
        namespaces: Sequence[Namespace] = (),
        object_types: Sequence[ObjectType] = (),
        errors: Sequence[SourceError] = (),
        built_at: Optional[float] = None
    ):
        self._instances = MappingProxyType(dict(instances))
        self._edges = tuple(edges)
        self._forward = MappingProxyType(dict(forward))
        self._reverse = MappingProxyType(dict(reverse))
        self._incident = MappingProxyType(dict(incident))
        self._roles = MappingProxyType(dict(roles))
        self._children = MappingProxyType(dict(children))
        self.version = version
        self.namespaces = tuple(namespaces)
        self.object_types = tuple(object_types)
        self.errors = tuple(errors)
        self.built_at = built_at if built_at is not None else time.time()

    @classmethod
    def empty(cls, version: int = 0) -> "GraphSnapshot":
        return cls({}, (), {}, {}, {}, {}, {}, version=version)

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._instances

    def get(self, element_id: str) -> Optional[Instance]:
        """Instance by id, or None."""
        return self._instances.get(element_id)

    def role_of(self, element_id: str) -> Role:
        return self._roles.get(element_id, Role.UNKNOWN)

    def instances(self) -> Tuple[Instance, ...]:
        return tuple(self._instances.values())

    def edges(self) -> Tuple[Edge, ...]:
        return self._edges

    def neighbors(
        self,
        element_id: str,
        relationship_type: str,
        direction: Direction = Direction.FORWARD
    ) -> Tuple[str, ...]:
        """
        Adjacent element ids over one relationship type.

        Args:
            element_id: Element to look up
            relationship_type: Relationship type name (e.g. 'ExecutedOn')
            direction: FORWARD for edge targets, REVERSE for edge sources

        Returns:
            Tuple of element ids in edge insertion order (empty if none)
        """
        adjacency = self._forward if direction == Direction.FORWARD else self._reverse
        return adjacency.get(element_id, {}).get(relationship_type, ())

    def relationship_types(self, element_id: str, direction: Direction = Direction.FORWARD) -> Tuple[str, ...]:
        adjacency = self._forward if direction == Direction.FORWARD else self._reverse
        return tuple(adjacency.get(element_id, {}))

    def incident_edges(self, element_id: str) -> Tuple[Tuple[Edge, str], ...]:
        """Every edge touching element_id, paired with the far end, in insertion order."""
        return self._incident.get(element_id, ())

    def children_of(self, element_id: str) -> Tuple[str, ...]:
        """Ids of instances whose parent_id is element_id."""
        return self._children.get(element_id, ())

    def stats(self) -> Dict[str, object]:
        """Node counts by role and edge counts by relationship type."""
        roles = Counter(role.value for role in self._roles.values())
        relationships = Counter(edge.relationship_type for edge in self._edges)
        return {
            'version': self.version,
            'built_at': datetime.fromtimestamp(self.built_at).isoformat(),
            'total_nodes': len(self._instances),
            'total_relationships': len(self._edges),
            'nodes': dict(roles),
            'relationships': dict(relationships),
            'errors': [str(error) for error in self.errors]
        }


def _declared_edges(instance: Instance) -> Iterable[Edge]:
    """Edges an instance declares: containment first, then relationships in order."""
    if instance.parent_id:
        yield Edge(source_id=instance.element_id, relationship_type=CHILD_OF, target_id=instance.parent_id)

    for relationship_type, refs in instance.relationships.items():
        for ref in refs:
            if ref.direction == Direction.FORWARD:
                yield Edge(
                    source_id=instance.element_id,
                    relationship_type=relationship_type,
                    target_id=ref.target_id
                )
            else:
                yield Edge(
                    source_id=ref.target_id,
                    relationship_type=relationship_type,
                    target_id=instance.element_id
                )


def build_snapshot(
    instances: Iterable[Instance],
    version: int = 0,
    namespaces: Sequence[Namespace] = (),
    object_types: Sequence[ObjectType] = (),
    errors: Sequence[SourceError] = ()
) -> GraphSnapshot:
    """
    Build a graph snapshot from a merged instance set.

    Pure function of its inputs: performs no I/O and never mutates the
    given instances (each one is copied with its merged relationship map).

    Args:
        instances: Instances from all sources, in source order
        version: Version number to stamp on the snapshot
        namespaces: Namespaces collected from the sources
        object_types: Object types collected from the sources
        errors: Source errors recorded while fetching

    Returns:
        A fully built GraphSnapshot
    """
    by_id: Dict[str, Instance] = {}
    duplicates = 0
    for instance in instances:
        if instance.element_id in by_id:
            duplicates += 1
            logger.warning(f"Duplicate element id '{instance.element_id}' "
                           f"from {instance.source}; keeping first occurrence")
            continue
        by_id[instance.element_id] = instance

    edges: List[Edge] = []
    seen = set()
    for instance in by_id.values():
        for edge in _declared_edges(instance):
            if edge in seen:
                continue
            seen.add(edge)
            edges.append(edge)

    forward: Dict[str, Dict[str, List[str]]] = {}
    reverse: Dict[str, Dict[str, List[str]]] = {}
    incident: Dict[str, List[Tuple[Edge, str]]] = {}
    merged: Dict[str, Dict[str, List[RelationshipRef]]] = {element_id: {} for element_id in by_id}

    for edge in edges:
        forward.setdefault(edge.source_id, {}).setdefault(edge.relationship_type, []).append(edge.target_id)
        reverse.setdefault(edge.target_id, {}).setdefault(edge.relationship_type, []).append(edge.source_id)

        incident.setdefault(edge.source_id, []).append((edge, edge.target_id))
        if edge.target_id != edge.source_id:
            incident.setdefault(edge.target_id, []).append((edge, edge.source_id))

        if edge.source_id in merged:
            merged[edge.source_id].setdefault(edge.relationship_type, []).append(
                RelationshipRef(direction=Direction.FORWARD, target_id=edge.target_id)
            )
        if edge.target_id in merged:
            merged[edge.target_id].setdefault(edge.relationship_type, []).append(
                RelationshipRef(direction=Direction.REVERSE, target_id=edge.source_id)
            )

    children: Dict[str, List[str]] = {}
    roles: Dict[str, Role] = {}
    nodes: Dict[str, Instance] = {}
    for element_id, instance in by_id.items():
        nodes[element_id] = instance.model_copy(update={
            'attributes': freeze(instance.attributes),
            'relationships': freeze(merged[element_id])
        })
        roles[element_id] = classify(instance)
        if instance.parent_id:
            children.setdefault(instance.parent_id, []).append(element_id)

    snapshot = GraphSnapshot(
        instances=nodes,
        edges=edges,
        forward={key: MappingProxyType({rel: tuple(ids) for rel, ids in value.items()})
                 for key, value in forward.items()},
        reverse={key: MappingProxyType({rel: tuple(ids) for rel, ids in value.items()})
                 for key, value in reverse.items()},
        incident={key: tuple(value) for key, value in incident.items()},
        roles=roles,
        children={key: tuple(value) for key, value in children.items()},
        version=version,
        namespaces=namespaces,
        object_types=object_types,
        errors=errors
    )

    logger.info(f"Graph snapshot v{version} built: {len(nodes)} nodes, {len(edges)} edges"
                + (f", {duplicates} duplicate ids dropped" if duplicates else ""))
    return snapshot
