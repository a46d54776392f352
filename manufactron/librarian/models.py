"""
Graph Data Model

Common instance representation shared by every source, plus the edge,
role and context types built on top of it.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Relationship type materialized from an instance's ParentId.
CHILD_OF = "ChildOf"


def _read_only(self, *args, **kwargs):
    raise TypeError(f"{type(self).__name__} is read-only")


class FrozenDict(dict):
    """A dict that rejects mutation once built. Still serializes as a dict."""
    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def __reduce__(self):
        return (self.__class__, (dict(self),))


class FrozenList(list):
    """A list that rejects mutation once built."""
    __setitem__ = __delitem__ = __iadd__ = __imul__ = _read_only
    append = extend = insert = remove = pop = clear = sort = reverse = _read_only

    def __reduce__(self):
        return (self.__class__, (list(self),))


def freeze(value: Any) -> Any:
    """Recursively wrap dicts and lists in their read-only counterparts."""
    if isinstance(value, dict):
        return FrozenDict({key: freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return FrozenList(freeze(item) for item in value)
    return value


class WireModel(BaseModel):
    """Base for models exchanged over the I3X JSON surface (camelCase keys)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Direction(str, Enum):
    """Which end of an edge an instance sits on."""
    FORWARD = "forward"
    REVERSE = "reverse"


class Role(str, Enum):
    """Inferred semantic role of an instance."""
    EQUIPMENT = "Equipment"
    LINE = "Line"
    JOB = "Job"
    ORDER = "Order"
    MATERIAL_BATCH = "MaterialBatch"
    OPERATOR = "Operator"
    SENSOR = "Sensor"
    UNKNOWN = "Unknown"


class RelationshipRef(WireModel):
    """One entry of an instance's relationship map."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    direction: Direction = Direction.FORWARD
    target_id: str


class Edge(WireModel):
    """A typed, directed relationship between two instances."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source_id: str
    relationship_type: str
    target_id: str

    def other_end(self, element_id: str) -> str:
        return self.target_id if element_id == self.source_id else self.source_id


class Namespace(WireModel):
    """A logical grouping contributed by one upstream source."""
    uri: str
    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None


class AttributeDefinition(WireModel):
    name: str
    data_type: Optional[str] = None
    eng_unit: Optional[str] = None
    description: Optional[str] = None
    is_required: bool = False


class ObjectType(WireModel):
    """A source-declared type."""
    element_id: str
    name: Optional[str] = None
    namespace_uri: Optional[str] = None
    description: Optional[str] = None
    attributes: List[AttributeDefinition] = Field(default_factory=list)
    allowed_relationships: List[str] = Field(default_factory=list)


class Instance(WireModel):
    """A node in the unified graph."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    element_id: str
    name: Optional[str] = None
    type_id: Optional[str] = None
    parent_id: Optional[str] = None
    namespace_uri: Optional[str] = None
    source: Optional[str] = None
    has_children: bool = False
    attributes: Dict[str, Any] = Field(default_factory=dict)
    relationships: Dict[str, List[RelationshipRef]] = Field(default_factory=dict)
    last_updated: Optional[str] = None

    def related_ids(self, relationship_type: str, direction: Direction = Direction.FORWARD) -> List[str]:
        """Targets of one relationship type in one direction, in declaration order."""
        return [
            ref.target_id
            for ref in self.relationships.get(relationship_type, [])
            if ref.direction == direction
        ]

    def to_response(self, include_metadata: bool = True) -> Dict[str, Any]:
        """Serialize with camelCase keys, dropping upstream metadata unless requested."""
        exclude = None if include_metadata else {'last_updated'}
        return self.model_dump(by_alias=True, mode='json', exclude=exclude)


class HistoricalValue(WireModel):
    """One timestamped reading of an element's values."""
    element_id: str
    timestamp: Optional[str] = None
    values: Dict[str, Any] = Field(default_factory=dict)
    quality: Optional[str] = None


class ManufacturingContext(WireModel):
    """
    Role-slot view of the neighbourhood around a starting element.

    Each slot holds the closest instance of that role; all_relationships
    holds every edge traversed while filling them.
    """
    start_element_id: str
    equipment: Optional[Instance] = None
    line: Optional[Instance] = None
    job: Optional[Instance] = None
    order: Optional[Instance] = None
    material_batch: Optional[Instance] = None
    operator: Optional[Instance] = None
    upstream_equipment: List[Instance] = Field(default_factory=list)
    downstream_equipment: List[Instance] = Field(default_factory=list)
    all_relationships: List[Edge] = Field(default_factory=list)
    visited_count: int = 0
    snapshot_version: int = 0

    def slot(self, role: Role) -> Optional[Instance]:
        field_name = ROLE_SLOTS.get(role)
        return getattr(self, field_name) if field_name else None

    def populated_roles(self) -> List[Role]:
        return [role for role in ROLE_SLOTS if self.slot(role) is not None]


# Roles that own a context slot, mapped to the slot's field name.
ROLE_SLOTS: Dict[Role, str] = {
    Role.EQUIPMENT: 'equipment',
    Role.LINE: 'line',
    Role.JOB: 'job',
    Role.ORDER: 'order',
    Role.MATERIAL_BATCH: 'material_batch',
    Role.OPERATOR: 'operator'
}
