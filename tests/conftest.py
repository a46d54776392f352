"""
Shared fixtures: plant data shaped like the ERP, MES and SCADA services,
and in-process stand-ins for the source adapters.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest

from manufactron.errors import source_unreachable
from manufactron.ingestion.adapter import SourceFetchError, SourceFetchResult
from manufactron.librarian.graph_index import build_snapshot
from manufactron.librarian.models import Direction, HistoricalValue, Instance, ObjectType, RelationshipRef


def make_instance(
    element_id: str,
    type_id: Optional[str] = None,
    parent_id: Optional[str] = None,
    relationships: Optional[Dict[str, List[str]]] = None,
    attributes: Optional[Dict] = None,
    name: Optional[str] = None,
    source: Optional[str] = None
) -> Instance:
    """Instance with forward relationships given as {type: [target ids]}."""
    return Instance(
        element_id=element_id,
        name=name or element_id,
        type_id=type_id,
        parent_id=parent_id,
        source=source,
        attributes=attributes or {},
        relationships={
            rel: [RelationshipRef(direction=Direction.FORWARD, target_id=t) for t in targets]
            for rel, targets in (relationships or {}).items()
        }
    )


class FakeAdapter:
    """Adapter double serving fixed instances, or failing like an unreachable service."""

    def __init__(self, name: str, instances: List[Instance] = (), healthy: bool = True):
        self.name = name
        self.base_url = f"http://{name.lower()}.test"
        self.instances = list(instances)
        self.healthy = healthy
        self.fail = False
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.fetch_count = 0
        self.object_types: List[ObjectType] = []
        self.values: Dict[str, Dict[str, Any]] = {}
        self.history: Dict[str, List[HistoricalValue]] = {}
        self.history_calls: List[Tuple] = []

    def fetch(self) -> SourceFetchResult:
        self.fetch_count += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail:
            return SourceFetchResult(
                source=self.name,
                errors=[source_unreachable(self.name, "connection refused")]
            )
        return SourceFetchResult(
            source=self.name,
            instances=list(self.instances),
            object_types=list(self.object_types)
        )

    def get_value(self, element_id: str) -> Dict[str, Any]:
        if self.fail:
            raise SourceFetchError(f"GET /value/{element_id} failed: connection refused")
        return self.values.get(element_id, {})

    def get_history(self, element_id, start_time=None, end_time=None, max_points=None) -> List[HistoricalValue]:
        if self.fail:
            raise SourceFetchError(f"GET /history/{element_id} failed: connection refused")
        self.history_calls.append((element_id, start_time, end_time, max_points))
        points = self.history.get(element_id, [])
        return points[:max_points] if max_points else list(points)

    def health_check(self, timeout: float = 2.0) -> bool:
        return self.healthy


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def instance_factory():
    return make_instance


@pytest.fixture
def erp_instances():
    return [
        make_instance(
            'ORD-12345', 'order-type',
            attributes={'customerId': 'customer-walmart', 'customerName': 'Walmart',
                        'quantity': 10000, 'priority': 'High'},
            name='Order ORD-12345', source='ERP'
        ),
        make_instance(
            'customer-walmart', 'customer-type',
            attributes={'customerId': 'C-001', 'name': 'Walmart'},
            name='Walmart', source='ERP'
        ),
        make_instance(
            'batch-MB-2025-0142', 'material-batch-type',
            relationships={'UsedInJob': ['job-J-2025-001']},
            attributes={'material': 'Syrup', 'supplier': 'SweetCo', 'expirationDate': '2025-12-01'},
            source='ERP'
        ),
    ]


@pytest.fixture
def mes_instances():
    return [
        make_instance(
            'job-J-2025-001', 'job-type',
            relationships={'ExecutedOn': ['filler-001'], 'ForOrder': ['ORD-12345'],
                           'OperatedBy': ['operator-john-smith']},
            attributes={'product': 'Cola 500ml', 'plannedQuantity': 10000,
                        'actualQuantity': 4200, 'status': 'Running'},
            source='MES'
        ),
        make_instance(
            'operator-john-smith', 'operator-type',
            attributes={'shift': 'Day'}, name='John Smith', source='MES'
        ),
    ]


@pytest.fixture
def scada_instances():
    return [
        make_instance(
            'line-1', 'production-line-type',
            attributes={'status': 'Running', 'OEE': 87.5}, name='Bottling Line 1', source='SCADA'
        ),
        make_instance(
            'mixer-001', 'equipment-type', parent_id='line-1',
            relationships={'DownstreamTo': ['filler-001']},
            attributes={'state': 'Running', 'OEE': 91.0}, source='SCADA'
        ),
        make_instance(
            'filler-001', 'equipment-type', parent_id='line-1',
            relationships={'UpstreamFrom': ['mixer-001'], 'DownstreamTo': ['capper-001']},
            attributes={'state': 'Running', 'OEE': 99.2}, name='Filler 1', source='SCADA'
        ),
        make_instance(
            'capper-001', 'equipment-type', parent_id='line-1',
            relationships={'UpstreamFrom': ['filler-001']},
            attributes={'state': 'Idle'}, source='SCADA'
        ),
        make_instance(
            'filler-temp-sensor', 'sensor-type', parent_id='filler-001',
            attributes={'value': 4.5, 'unit': 'C'}, name='Filler Temperature', source='SCADA'
        ),
    ]


@pytest.fixture
def plant_instances(erp_instances, mes_instances, scada_instances):
    return erp_instances + mes_instances + scada_instances


@pytest.fixture
def plant_snapshot(plant_instances):
    return build_snapshot(plant_instances, version=1)


@pytest.fixture
def adapters(erp_instances, mes_instances, scada_instances):
    return [
        FakeAdapter('ERP', erp_instances),
        FakeAdapter('MES', mes_instances),
        FakeAdapter('SCADA', scada_instances),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def adapter_factory():
    return FakeAdapter
