"""
Context Assembler

Builds the Manufacturing Context around any starting element by bounded
breadth-first traversal of a graph snapshot.
"""

import logging
from collections import deque
from typing import Dict, List, Optional, Set

from pydantic import BaseModel

from ..errors import QueryStatus, SourceError, element_not_found
from ..librarian.graph_index import GraphSnapshot
from ..librarian.models import Direction, Edge, Instance, ManufacturingContext, ROLE_SLOTS, Role

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 4
DEFAULT_MAX_NODES = 10000

UPSTREAM_RELATIONSHIP = "UpstreamFrom"
DOWNSTREAM_RELATIONSHIP = "DownstreamTo"


class ContextBuildResult(BaseModel):
    """Outcome of a context build: a context, or the reason there is none."""
    status: QueryStatus
    context: Optional[ManufacturingContext] = None
    error: Optional[SourceError] = None

    @property
    def found(self) -> bool:
        return self.status == QueryStatus.OK


class ContextBuilder:
    """
    Assembles manufacturing context from a graph snapshot.

    Traversal follows edges in both directions, never revisits an element,
    stops expanding at max_hops and stops visiting after max_nodes, so it
    terminates on any graph, cyclic or not. It reads only the snapshot and
    has no side effects, so one builder may serve concurrent requests.
    """

    def __init__(self, max_hops: int = DEFAULT_MAX_HOPS, max_nodes: int = DEFAULT_MAX_NODES):
        """
        Initialize the context builder.

        Args:
            max_hops: Maximum traversal distance from the starting element
            max_nodes: Hard cap on the number of elements visited per build
        """
        if max_hops < 0 or max_nodes < 1:
            raise ValueError("max_hops must be >= 0 and max_nodes >= 1")
        self.max_hops = max_hops
        self.max_nodes = max_nodes
        logger.info(f"ContextBuilder initialized (max_hops={max_hops}, max_nodes={max_nodes})")

    def build(self, start_id: str, snapshot: GraphSnapshot) -> ContextBuildResult:
        """
        Build the manufacturing context around start_id.

        Args:
            start_id: Element id to start from
            snapshot: Graph snapshot to traverse

        Returns:
            ContextBuildResult with status OK and a populated context, or
            status NOT_FOUND when start_id is not in the snapshot
        """
        logger.info(f"Building manufacturing context from element: {start_id}")

        if start_id not in snapshot:
            logger.warning(f"Starting element not found: {start_id}")
            return ContextBuildResult(status=QueryStatus.NOT_FOUND, error=element_not_found(start_id))

        slots: Dict[Role, Instance] = {}
        edges: List[Edge] = []
        seen_edges: Set[Edge] = set()
        visited: Set[str] = {start_id}
        queue = deque([(start_id, 0)])

        while queue:
            element_id, depth = queue.popleft()

            role = snapshot.role_of(element_id)
            if role in ROLE_SLOTS and role not in slots:
                slots[role] = snapshot.get(element_id)

            if depth >= self.max_hops:
                continue

            for edge, neighbor_id in snapshot.incident_edges(element_id):
                if edge not in seen_edges:
                    seen_edges.add(edge)
                    edges.append(edge)

                if neighbor_id in visited or neighbor_id not in snapshot:
                    continue
                if len(visited) >= self.max_nodes:
                    continue
                visited.add(neighbor_id)
                queue.append((neighbor_id, depth + 1))

        if len(visited) >= self.max_nodes:
            logger.warning(f"Context traversal from {start_id} hit the {self.max_nodes} node cap")

        context = ManufacturingContext(
            start_element_id=start_id,
            all_relationships=edges,
            visited_count=len(visited),
            snapshot_version=snapshot.version,
            **{ROLE_SLOTS[role]: instance for role, instance in slots.items()}
        )

        equipment = slots.get(Role.EQUIPMENT)
        if equipment is not None:
            context.upstream_equipment = self._resolve(snapshot, equipment.element_id, UPSTREAM_RELATIONSHIP)
            context.downstream_equipment = self._resolve(snapshot, equipment.element_id, DOWNSTREAM_RELATIONSHIP)

        populated = ", ".join(role.value for role in context.populated_roles()) or "none"
        logger.info(f"Context building complete. Populated fields: {populated}; "
                    f"{len(edges)} relationships over {len(visited)} elements")
        return ContextBuildResult(status=QueryStatus.OK, context=context)

    def _resolve(self, snapshot: GraphSnapshot, element_id: str, relationship_type: str) -> List[Instance]:
        resolved = []
        for target_id in snapshot.neighbors(element_id, relationship_type, Direction.FORWARD):
            instance = snapshot.get(target_id)
            if instance is not None:
                resolved.append(instance)
        return resolved
