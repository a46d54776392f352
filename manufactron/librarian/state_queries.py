"""
State Queries Module

Single-hop and ad-hoc queries against the current graph snapshot.
Implements the "Librarian" logic: it knows the current state of every
element but never traverses further than one hop.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from ..errors import QueryStatus, SourceError, element_not_found, invalid_query, source_unreachable
from ..ingestion.adapter import SourceFetchError
from .graph_cache import GraphCache
from .graph_index import GraphSnapshot
from .models import Direction, HistoricalValue, Instance, Namespace, ObjectType, RelationshipRef, Role

logger = logging.getLogger(__name__)


class SearchMatch(BaseModel):
    """One search hit and where the term was found."""
    instance: Instance
    matched_in: str


class SearchResult(BaseModel):
    status: QueryStatus
    term: str
    type_filter: Optional[str] = None
    matches: List[SearchMatch] = []
    error: Optional[SourceError] = None


class SourceReadResult(BaseModel):
    """Outcome of a live read passed through to an element's owning source."""
    status: QueryStatus
    element_id: str
    source: Optional[str] = None
    data: Union[Dict[str, Any], List[HistoricalValue], None] = None
    error: Optional[SourceError] = None


def _contains(value: Any, term: str) -> bool:
    return value is not None and term in str(value).lower()


def match_location(instance: Instance, term: str) -> Optional[str]:
    """
    Where a lower-cased term occurs in an instance, checked in order:
    id, name, type id, then attribute keys and values.

    Returns:
        'ID', 'Name', 'Type', 'Attribute: <key>', or None if it does not occur
    """
    if _contains(instance.element_id, term):
        return "ID"
    if _contains(instance.name, term):
        return "Name"
    if _contains(instance.type_id, term):
        return "Type"
    for key, value in instance.attributes.items():
        if _contains(key, term) or _contains(value, term):
            return f"Attribute: {key}"
    return None


class StateQueries:
    """
    High-level interface for querying the unified manufacturing graph.
    Every call reads the cache's current snapshot.
    """

    def __init__(self, cache: GraphCache):
        """
        Initialize StateQueries with a GraphCache.

        Args:
            cache: GraphCache owning the published snapshot
        """
        self.cache = cache
        logger.info("StateQueries initialized")

    @property
    def snapshot(self) -> GraphSnapshot:
        return self.cache.get()

    def get_namespaces(self) -> List[Namespace]:
        """Merged namespace list across all sources."""
        return list(self.snapshot.namespaces)

    def get_object_types(self, namespace_uri: Optional[str] = None) -> List[ObjectType]:
        types = self.snapshot.object_types
        if namespace_uri:
            types = [t for t in types if t.namespace_uri == namespace_uri]
        return list(types)

    def get_object_type(self, element_id: str) -> Optional[ObjectType]:
        """Single type definition by id, or None if no source declares it."""
        for object_type in self.snapshot.object_types:
            if object_type.element_id == element_id:
                return object_type
        logger.warning(f"Object type not found: {element_id}")
        return None

    def _source_for(self, element_id: str):
        """Resolve an element to the adapter of the source that served it."""
        instance = self.snapshot.get(element_id)
        if instance is None:
            logger.warning(f"Object not found: {element_id}")
            return None, SourceReadResult(
                status=QueryStatus.NOT_FOUND,
                element_id=element_id,
                error=element_not_found(element_id)
            )

        for adapter in self.cache.adapters:
            if adapter.name == instance.source:
                return adapter, None

        message = f"no adapter configured for source '{instance.source}'"
        logger.warning(f"Cannot read {element_id}: {message}")
        return None, SourceReadResult(
            status=QueryStatus.UNAVAILABLE,
            element_id=element_id,
            source=instance.source,
            error=source_unreachable(instance.source or "unknown", message)
        )

    def get_value(self, element_id: str) -> SourceReadResult:
        """
        Current values of an element, read live from its owning source.

        Returns:
            SourceReadResult with status OK and the values dict; NOT_FOUND
            when the element is absent or the source has no values for it;
            UNAVAILABLE when the owning source cannot be reached
        """
        adapter, failure = self._source_for(element_id)
        if failure is not None:
            return failure

        logger.info(f"Getting current value for {element_id} from {adapter.name}")
        try:
            values = adapter.get_value(element_id)
        except SourceFetchError as e:
            logger.error(f"Error fetching value for {element_id}: {e}")
            return SourceReadResult(
                status=QueryStatus.UNAVAILABLE,
                element_id=element_id,
                source=adapter.name,
                error=source_unreachable(adapter.name, str(e))
            )

        if not values:
            logger.warning(f"No values found for: {element_id}")
            return SourceReadResult(
                status=QueryStatus.NOT_FOUND,
                element_id=element_id,
                source=adapter.name,
                error=element_not_found(element_id)
            )
        return SourceReadResult(status=QueryStatus.OK, element_id=element_id, source=adapter.name, data=values)

    def get_history(
        self,
        element_id: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        max_points: Optional[int] = None
    ) -> SourceReadResult:
        """
        Historical values of an element, read live from its owning source.
        An element with no recorded history yields OK with an empty list.
        """
        adapter, failure = self._source_for(element_id)
        if failure is not None:
            return failure

        logger.info(f"Getting history for {element_id}, start: {start_time}, "
                    f"end: {end_time}, max: {max_points}")
        try:
            history = adapter.get_history(element_id, start_time, end_time, max_points)
        except SourceFetchError as e:
            logger.error(f"Error fetching history for {element_id}: {e}")
            return SourceReadResult(
                status=QueryStatus.UNAVAILABLE,
                element_id=element_id,
                source=adapter.name,
                error=source_unreachable(adapter.name, str(e))
            )
        return SourceReadResult(status=QueryStatus.OK, element_id=element_id, source=adapter.name, data=history)

    def get_objects(self, type_id: Optional[str] = None) -> List[Instance]:
        """
        All instances, optionally filtered by a type id substring.
        """
        instances = self.snapshot.instances()
        if type_id:
            needle = type_id.lower()
            instances = [i for i in instances if _contains(i.type_id, needle)]
        return list(instances)

    def get_object(self, element_id: str) -> Optional[Instance]:
        """
        Get a single instance from the current snapshot.

        Args:
            element_id: Element identifier (e.g., 'filler-001')

        Returns:
            Instance, or None if not found
        """
        instance = self.snapshot.get(element_id)
        if instance is None:
            logger.warning(f"Object not found: {element_id}")
        return instance

    def search_objects(
        self,
        term: str,
        type_filter: Optional[str] = None,
        limit: Optional[int] = None
    ) -> SearchResult:
        """
        Case-insensitive search over ids, names, types and attributes.

        Args:
            term: Search term
            type_filter: Optional type id substring to restrict results
            limit: Optional maximum number of matches

        Returns:
            SearchResult with matches in snapshot order, or status INVALID
            for an empty term
        """
        if not term or not term.strip():
            return SearchResult(
                status=QueryStatus.INVALID,
                term=term or "",
                type_filter=type_filter,
                error=invalid_query("search term must not be empty")
            )

        needle = term.strip().lower()
        type_needle = type_filter.lower() if type_filter else None
        logger.info(f"Searching objects for '{needle}'"
                    + (f" (type filter: {type_filter})" if type_filter else ""))

        matches = []
        for instance in self.snapshot.instances():
            if type_needle and not _contains(instance.type_id, type_needle):
                continue
            location = match_location(instance, needle)
            if location is None:
                continue
            matches.append(SearchMatch(instance=instance, matched_in=location))
            if limit is not None and len(matches) >= limit:
                break

        logger.info(f"Search for '{needle}' returned {len(matches)} matches")
        return SearchResult(status=QueryStatus.OK, term=term, type_filter=type_filter, matches=matches)

    def get_children(self, element_id: str) -> List[Instance]:
        """Instances whose parent_id is element_id (empty when none or absent)."""
        snapshot = self.snapshot
        return [snapshot.get(child_id) for child_id in snapshot.children_of(element_id)]

    def get_parent(self, element_id: str) -> Optional[Instance]:
        """Parent instance, or None when the element or its parent is absent."""
        snapshot = self.snapshot
        instance = snapshot.get(element_id)
        if instance is None or not instance.parent_id:
            return None
        return snapshot.get(instance.parent_id)

    def relationships_of(self, element_id: str) -> Optional[Dict[str, List[RelationshipRef]]]:
        """
        Direct read of an element's own relationships, both directions, no traversal.

        Returns:
            Mapping of relationship type to references, or None if not found
        """
        instance = self.snapshot.get(element_id)
        if instance is None:
            return None
        return {rel: list(refs) for rel, refs in instance.relationships.items()}

    def get_relationships(self, element_id: str, relationship_type: str) -> List[Instance]:
        """
        Instances related to element_id over one relationship type.

        Forward targets are returned when the element declares the
        relationship; otherwise the sources pointing at it.
        """
        snapshot = self.snapshot
        related_ids = snapshot.neighbors(element_id, relationship_type, Direction.FORWARD)
        if not related_ids:
            related_ids = snapshot.neighbors(element_id, relationship_type, Direction.REVERSE)

        related = [snapshot.get(related_id) for related_id in related_ids]
        return [instance for instance in related if instance is not None]

    def get_production_hierarchy(self, line_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Nested Line -> Equipment -> Sensor view.

        Args:
            line_id: Optional line to restrict the view to

        Returns:
            Dictionary with 'totalLines' and 'hierarchy'
        """
        snapshot = self.snapshot
        lines = [i for i in snapshot.instances() if snapshot.role_of(i.element_id) == Role.LINE]
        if line_id:
            lines = [line for line in lines if line.element_id == line_id]

        hierarchy = []
        for line in lines:
            equipment_nodes = []
            for equipment_id in snapshot.children_of(line.element_id):
                if snapshot.role_of(equipment_id) not in (Role.EQUIPMENT, Role.UNKNOWN):
                    continue
                equipment = snapshot.get(equipment_id)
                sensors = [
                    {
                        'id': sensor.element_id,
                        'name': sensor.name,
                        'type': sensor.type_id,
                        'value': sensor.attributes.get('value', 'N/A'),
                        'unit': sensor.attributes.get('unit', '')
                    }
                    for sensor in (snapshot.get(s) for s in snapshot.children_of(equipment_id))
                ]
                equipment_nodes.append({
                    'id': equipment.element_id,
                    'name': equipment.name,
                    'type': equipment.type_id,
                    'state': equipment.attributes.get('state', 'Unknown'),
                    'sensors': sensors
                })

            hierarchy.append({
                'line': {
                    'id': line.element_id,
                    'name': line.name,
                    'status': line.attributes.get('status', 'Unknown'),
                    'OEE': line.attributes.get('OEE', 'N/A')
                },
                'equipment': equipment_nodes
            })

        logger.info(f"Production hierarchy built for {len(hierarchy)} lines")
        return {'totalLines': len(hierarchy), 'hierarchy': hierarchy}
