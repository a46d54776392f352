"""
Context Templates

Field selections for the compact, JSON-ready context summary consumed by
the agent layer.
"""

from collections import Counter
from typing import Any, Dict, Optional, Tuple

from ..librarian.models import Instance, ManufacturingContext

# (output key, attribute name, default). "name" reads Instance.name.
SLOT_FIELDS: Dict[str, Tuple[Tuple[str, str, Any], ...]] = {
    'equipment': (
        ('name', 'name', None),
        ('state', 'state', 'Unknown'),
        ('OEE', 'OEE', 'N/A'),
    ),
    'line': (
        ('name', 'name', None),
        ('status', 'status', 'Unknown'),
        ('OEE', 'OEE', 'N/A'),
    ),
    'job': (
        ('product', 'product', 'Unknown'),
        ('plannedQuantity', 'plannedQuantity', 0),
        ('actualQuantity', 'actualQuantity', 0),
        ('status', 'status', 'Unknown'),
    ),
    'order': (
        ('customer', 'customerName', 'Unknown'),
        ('quantity', 'quantity', 0),
        ('priority', 'priority', 'Normal'),
    ),
    'material_batch': (
        ('material', 'material', 'Unknown'),
        ('supplier', 'supplier', 'Unknown'),
        ('expiryDate', 'expirationDate', 'N/A'),
    ),
    'operator': (
        ('name', 'name', None),
        ('shift', 'shift', 'Unknown'),
    ),
}

SLOT_KEYS = {
    'equipment': 'equipment',
    'line': 'line',
    'job': 'job',
    'order': 'order',
    'material_batch': 'materialBatch',
    'operator': 'operator'
}


class ContextTemplates:
    """
    Summary shapes for a ManufacturingContext.
    """

    @staticmethod
    def summarize_slot(slot: str, instance: Optional[Instance]) -> Optional[Dict[str, Any]]:
        """
        Reduce one populated slot to the fields the agent layer reads.

        Args:
            slot: Context slot field name (e.g. 'material_batch')
            instance: Instance held by the slot, or None

        Returns:
            Dictionary with 'id' plus slot-specific fields, or None
        """
        if instance is None:
            return None

        summary: Dict[str, Any] = {'id': instance.element_id}
        for key, attribute, default in SLOT_FIELDS[slot]:
            if attribute == 'name':
                summary[key] = instance.name
            else:
                summary[key] = instance.attributes.get(attribute, default)
        return summary

    @classmethod
    def summarize_context(cls, context: ManufacturingContext) -> Dict[str, Any]:
        """
        Build the context summary: each slot plus relationship counts.

        Returns:
            JSON-serializable dictionary
        """
        summary: Dict[str, Any] = {'startingElement': context.start_element_id}
        for slot, key in SLOT_KEYS.items():
            summary[key] = cls.summarize_slot(slot, getattr(context, slot))

        by_type = Counter(edge.relationship_type for edge in context.all_relationships)
        summary['relationshipCount'] = len(context.all_relationships)
        summary['relationshipTypes'] = dict(by_type)
        summary['upstreamEquipment'] = [e.element_id for e in context.upstream_equipment]
        summary['downstreamEquipment'] = [e.element_id for e in context.downstream_equipment]
        summary['visitedCount'] = context.visited_count
        summary['snapshotVersion'] = context.snapshot_version
        return summary
