"""
I3X Source Adapter

Fetches namespaces, type declarations and instances from one upstream I3X
service (ERP, MES or SCADA) and normalizes them into the common Instance
representation. Fetch never raises: whatever could be retrieved is returned
together with structured errors describing what could not.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import BaseModel, Field, ValidationError

from ..errors import ErrorKind, SourceError, partial_source_data, source_unreachable
from ..librarian.models import (
    Direction, HistoricalValue, Instance, Namespace, ObjectType, RelationshipRef, WireModel
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/i3x"


class RawInstance(WireModel):
    """Instance record as served by an upstream I3X service."""
    element_id: str
    name: Optional[str] = None
    type_id: Optional[str] = None
    parent_id: Optional[str] = None
    has_children: bool = False
    namespace_uri: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None
    relationships: Optional[Dict[str, List[str]]] = None
    last_updated: Optional[str] = None


class SourceFetchResult(BaseModel):
    """Everything one adapter retrieved during a fetch."""
    source: str
    namespaces: List[Namespace] = Field(default_factory=list)
    object_types: List[ObjectType] = Field(default_factory=list)
    instances: List[Instance] = Field(default_factory=list)
    errors: List[SourceError] = Field(default_factory=list)

    @property
    def unreachable(self) -> bool:
        """True when no instance data could be retrieved at all."""
        return not self.instances and any(
            error.kind == ErrorKind.SOURCE_UNREACHABLE for error in self.errors
        )


class SourceFetchError(Exception):
    """Internal: one upstream request failed or returned unusable data."""


class I3XSourceAdapter:
    """
    HTTP client for one upstream I3X service.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        id_prefix: Optional[str] = None
    ):
        """
        Initialize the adapter.

        Args:
            name: Source name stamped on every instance (e.g. 'ERP')
            base_url: Base URL of the upstream service
            session: Optional requests session (one is created if omitted)
            timeout: Per-request timeout in seconds
            id_prefix: When set, local element ids are qualified as '{prefix}:{id}'
        """
        self.name = name
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.id_prefix = id_prefix
        logger.info(f"I3XSourceAdapter '{name}' initialized with URL: {self.base_url}")

    def __repr__(self) -> str:
        return f"I3XSourceAdapter(name={self.name!r}, base_url={self.base_url!r})"

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        url = f"{self.base_url}{API_PREFIX}{path}"
        try:
            response = self.session.get(url, params=params, timeout=timeout or self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise SourceFetchError(f"GET {url} failed: {e}")

        try:
            return response.json()
        except ValueError as e:
            raise SourceFetchError(f"GET {url} returned malformed JSON: {e}")

    def _get_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        payload = self._get_json(path, params)
        if not isinstance(payload, list):
            raise SourceFetchError(
                f"GET {path} returned {type(payload).__name__}, expected a list"
            )
        return payload

    def fetch_namespaces(self) -> List[Namespace]:
        """List namespaces, tagging each description with the source name."""
        namespaces = []
        for record in self._get_list("/namespaces"):
            namespace = Namespace.model_validate(record)
            namespace = namespace.model_copy(
                update={'description': f"[{self.name}] {namespace.description or ''}".rstrip()}
            )
            namespaces.append(namespace)
        return namespaces

    def fetch_object_types(self) -> List[ObjectType]:
        return [ObjectType.model_validate(record) for record in self._get_list("/types")]

    def fetch_raw_instances(self) -> Tuple[List[RawInstance], int]:
        """
        List instances with attributes and relationships.

        Returns:
            Tuple of (valid records, number of malformed records skipped)
        """
        records = self._get_list("/objects", params={'includeMetadata': 'true'})
        valid = []
        skipped = 0
        for record in records:
            try:
                valid.append(RawInstance.model_validate(record))
            except ValidationError as e:
                skipped += 1
                logger.warning(f"[{self.name}] Skipping malformed instance record: "
                               f"{e.error_count()} validation errors")
        return valid, skipped

    def qualify(self, element_id: str) -> str:
        return f"{self.id_prefix}:{element_id}" if self.id_prefix else element_id

    def local_id(self, element_id: str) -> str:
        """Inverse of qualify(): the id this source knows the element by."""
        prefix = f"{self.id_prefix}:" if self.id_prefix else None
        if prefix and element_id.startswith(prefix):
            return element_id[len(prefix):]
        return element_id

    def get_value(self, element_id: str) -> Dict[str, Any]:
        """
        Current values of one element, read live from the source.

        Raises:
            SourceFetchError: If the source fails or returns something other than an object
        """
        payload = self._get_json(f"/value/{self.local_id(element_id)}")
        if not isinstance(payload, dict):
            raise SourceFetchError(
                f"GET /value returned {type(payload).__name__}, expected an object"
            )
        return payload

    def get_history(
        self,
        element_id: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        max_points: Optional[int] = None
    ) -> List[HistoricalValue]:
        """
        Historical values of one element, read live from the source.

        Args:
            element_id: Element identifier as it appears in the graph
            start_time: Optional ISO-8601 lower bound
            end_time: Optional ISO-8601 upper bound
            max_points: Optional cap on the number of points returned

        Raises:
            SourceFetchError: If the source fails or returns malformed records
        """
        params = {}
        if start_time:
            params['startTime'] = start_time
        if end_time:
            params['endTime'] = end_time
        if max_points is not None:
            params['maxPoints'] = max_points

        records = self._get_list(f"/history/{self.local_id(element_id)}", params=params or None)
        try:
            history = [HistoricalValue.model_validate(record) for record in records]
        except ValidationError as e:
            raise SourceFetchError(f"GET /history returned malformed records: {e.error_count()} errors")
        return [point.model_copy(update={'element_id': element_id}) for point in history]

    def normalize(self, raw_instances: List[RawInstance]) -> List[Instance]:
        """
        Map raw records into the common Instance representation.

        Outgoing relationship lists become forward references. With an id
        prefix, local ids and references to local ids are qualified;
        references to ids this source does not serve are left as-is.
        """
        local_ids = {raw.element_id for raw in raw_instances}

        def resolve(reference: str) -> str:
            return self.qualify(reference) if reference in local_ids else reference

        instances = []
        for raw in raw_instances:
            attributes = dict(raw.attributes or {})
            attributes['_source'] = self.name

            relationships = {
                relationship_type: [
                    RelationshipRef(direction=Direction.FORWARD, target_id=resolve(target))
                    for target in targets if target
                ]
                for relationship_type, targets in (raw.relationships or {}).items()
            }

            instances.append(Instance(
                element_id=self.qualify(raw.element_id),
                name=raw.name,
                type_id=raw.type_id,
                parent_id=resolve(raw.parent_id) if raw.parent_id else None,
                namespace_uri=raw.namespace_uri,
                source=self.name,
                has_children=raw.has_children,
                attributes=attributes,
                relationships=relationships,
                last_updated=raw.last_updated
            ))
        return instances

    def fetch(self) -> SourceFetchResult:
        """
        Fetch everything this source serves.

        Returns:
            SourceFetchResult with the retrieved data and any errors.
            Never raises for upstream failures.
        """
        logger.info(f"Fetching graph data from {self.name} at {self.base_url}")
        result = SourceFetchResult(source=self.name)

        try:
            result.namespaces = self.fetch_namespaces()
        except (SourceFetchError, ValidationError) as e:
            logger.warning(f"[{self.name}] Namespaces unavailable: {e}")
            result.errors.append(partial_source_data(self.name, f"namespaces unavailable: {e}"))

        try:
            result.object_types = self.fetch_object_types()
        except (SourceFetchError, ValidationError) as e:
            logger.warning(f"[{self.name}] Object types unavailable: {e}")
            result.errors.append(partial_source_data(self.name, f"object types unavailable: {e}"))

        try:
            raw_instances, skipped = self.fetch_raw_instances()
        except SourceFetchError as e:
            logger.error(f"[{self.name}] Instances unavailable: {e}")
            result.errors.append(source_unreachable(self.name, str(e)))
            return result

        if skipped:
            result.errors.append(
                partial_source_data(self.name, f"skipped {skipped} malformed instance records")
            )

        unique: Dict[str, RawInstance] = {}
        for raw in raw_instances:
            unique.setdefault(raw.element_id, raw)
        if len(unique) < len(raw_instances):
            duplicates = len(raw_instances) - len(unique)
            logger.warning(f"[{self.name}] {duplicates} duplicate element ids dropped")
            result.errors.append(
                partial_source_data(self.name, f"dropped {duplicates} duplicate element ids")
            )

        result.instances = self.normalize(list(unique.values()))
        logger.info(f"[{self.name}] Fetched {len(result.instances)} instances, "
                    f"{len(result.object_types)} types, {len(result.namespaces)} namespaces")
        return result

    def health_check(self, timeout: float = 2.0) -> bool:
        """
        Check whether the upstream service answers.

        Returns:
            True if the namespaces endpoint responds successfully
        """
        try:
            self._get_json("/namespaces", timeout=timeout)
            return True
        except SourceFetchError as e:
            logger.warning(f"[{self.name}] Health check failed: {e}")
            return False
