"""
Type Classifier

Infers the semantic role of an instance from its declared type, its
identifier and the attributes it carries. Rules are evaluated in a fixed
order and the first match wins, so the tables below are order-sensitive.
"""

import logging
from typing import Any, Mapping, Optional, Sequence, Tuple

from .models import Instance, Role

logger = logging.getLogger(__name__)


# Rule 1: role keywords in the source-declared type id.
TYPE_KEYWORDS: Sequence[Tuple[str, Role]] = (
    ("sensor", Role.SENSOR),
    ("material", Role.MATERIAL_BATCH),
    ("batch", Role.MATERIAL_BATCH),
    ("ingredient", Role.MATERIAL_BATCH),
    ("operator", Role.OPERATOR),
    ("worker", Role.OPERATOR),
    ("production-job", Role.JOB),
    ("work-order", Role.JOB),
    ("job", Role.JOB),
    ("order", Role.ORDER),
    ("purchase", Role.ORDER),
    ("production-line", Role.LINE),
    ("line", Role.LINE),
    ("equipment", Role.EQUIPMENT),
    ("machine", Role.EQUIPMENT),
)

# Rule 2: naming patterns the upstream services use for element ids.
ID_PATTERNS: Sequence[Tuple[str, Role]] = (
    ("sensor", Role.SENSOR),
    ("batch", Role.MATERIAL_BATCH),
    ("material", Role.MATERIAL_BATCH),
    ("operator", Role.OPERATOR),
    ("job", Role.JOB),
    ("order", Role.ORDER),
    ("ord-", Role.ORDER),
    ("line", Role.LINE),
    ("equipment", Role.EQUIPMENT),
    ("equip", Role.EQUIPMENT),
    ("mixer", Role.EQUIPMENT),
    ("filler", Role.EQUIPMENT),
    ("capper", Role.EQUIPMENT),
    ("labeler", Role.EQUIPMENT),
    ("palletizer", Role.EQUIPMENT),
)

# Rule 3: attribute presence.
ATTRIBUTE_HINTS: Sequence[Tuple[Tuple[str, ...], Role]] = (
    (("customerId", "customerName"), Role.ORDER),
    (("jobId", "plannedQuantity"), Role.JOB),
    (("operatorId", "shift"), Role.OPERATOR),
    (("batchId", "material"), Role.MATERIAL_BATCH),
    (("sensorId",), Role.SENSOR),
    (("lineId", "OEE"), Role.LINE),
    (("equipmentId", "serialNumber"), Role.EQUIPMENT),
)


def _match_keyword(value: Optional[str], table: Sequence[Tuple[str, Role]]) -> Optional[Role]:
    if not value:
        return None
    lowered = value.lower()
    for keyword, role in table:
        if keyword in lowered:
            return role
    return None


def _match_attributes(attributes: Optional[Mapping[str, Any]]) -> Optional[Role]:
    if not attributes:
        return None
    for keys, role in ATTRIBUTE_HINTS:
        if any(key in attributes for key in keys):
            return role
    return None


def classify_fields(
    element_id: str,
    type_id: Optional[str] = None,
    attributes: Optional[Mapping[str, Any]] = None
) -> Role:
    """
    Classify raw instance fields.

    Args:
        element_id: Globally unique element identifier
        type_id: Source-declared type identifier
        attributes: Attribute mapping

    Returns:
        The first matching Role, or Role.UNKNOWN
    """
    for rule in (
        lambda: _match_keyword(type_id, TYPE_KEYWORDS),
        lambda: _match_keyword(element_id, ID_PATTERNS),
        lambda: _match_attributes(attributes),
    ):
        role = rule()
        if role is not None:
            return role
    return Role.UNKNOWN


def classify(instance: Instance) -> Role:
    """Classify an instance by its type id, element id and attributes."""
    role = classify_fields(instance.element_id, instance.type_id, instance.attributes)
    logger.debug(f"Classified {instance.element_id} as {role.value}")
    return role
