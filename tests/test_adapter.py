"""
Tests for the I3X source adapter against a mocked HTTP session.
"""

from unittest.mock import Mock

import pytest
import requests

from manufactron.errors import ErrorKind
from manufactron.ingestion.adapter import I3XSourceAdapter, SourceFetchError
from manufactron.librarian.models import Direction

BASE_URL = "http://scada.test:7003"

NAMESPACES = [
    {"uri": "http://i3x.scada/equipment", "name": "Equipment", "description": "Plant floor equipment"}
]

TYPES = [
    {"elementId": "equipment-type", "name": "Equipment", "namespaceUri": "http://i3x.scada/equipment",
     "attributes": [{"name": "state", "dataType": "string"}]}
]

OBJECTS = [
    {
        "elementId": "line-1",
        "name": "Bottling Line 1",
        "typeId": "production-line-type",
        "hasChildren": True,
        "attributes": {"status": "Running", "OEE": 87.5},
        "lastUpdated": "2025-01-15T10:00:00"
    },
    {
        "elementId": "filler-001",
        "name": "Filler 1",
        "typeId": "equipment-type",
        "parentId": "line-1",
        "attributes": {"state": "Running", "OEE": 99.2},
        "relationships": {"ExecutedJob": ["job-J-2025-001"], "UpstreamFrom": ["line-1"]}
    }
]


def make_response(payload=None, status_error=None, json_error=None):
    response = Mock()
    if status_error is not None:
        response.raise_for_status.side_effect = status_error
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


def make_session(routes):
    """Session whose get() answers by path suffix; unknown paths raise ConnectionError."""
    def get(url, params=None, timeout=None):
        for suffix, response in routes.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        raise requests.exceptions.ConnectionError(f"no route to {url}")

    session = Mock()
    session.get.side_effect = get
    return session


@pytest.fixture
def healthy_session():
    return make_session({
        "/api/i3x/namespaces": make_response(NAMESPACES),
        "/api/i3x/types": make_response(TYPES),
        "/api/i3x/objects": make_response(OBJECTS),
    })


def test_fetch_normalizes_instances(healthy_session):
    adapter = I3XSourceAdapter("SCADA", BASE_URL + "/", session=healthy_session)

    result = adapter.fetch()

    assert result.errors == []
    assert not result.unreachable
    assert [i.element_id for i in result.instances] == ["line-1", "filler-001"]

    filler = result.instances[1]
    assert filler.source == "SCADA"
    assert filler.parent_id == "line-1"
    assert filler.attributes["_source"] == "SCADA"
    assert filler.related_ids("ExecutedJob") == ["job-J-2025-001"]
    assert filler.relationships["UpstreamFrom"][0].direction == Direction.FORWARD
    assert result.instances[0].last_updated == "2025-01-15T10:00:00"

    assert result.namespaces[0].description == "[SCADA] Plant floor equipment"
    assert result.object_types[0].attributes[0].data_type == "string"


def test_objects_requested_with_metadata(healthy_session):
    I3XSourceAdapter("SCADA", BASE_URL, session=healthy_session, timeout=3.0).fetch()

    healthy_session.get.assert_any_call(
        f"{BASE_URL}/api/i3x/objects", params={"includeMetadata": "true"}, timeout=3.0
    )


def test_id_prefix_qualifies_local_references(healthy_session):
    adapter = I3XSourceAdapter("SCADA", BASE_URL, session=healthy_session, id_prefix="scada")

    filler = adapter.fetch().instances[1]

    assert filler.element_id == "scada:filler-001"
    assert filler.parent_id == "scada:line-1"
    assert filler.related_ids("UpstreamFrom") == ["scada:line-1"]
    # Another service's id is left alone.
    assert filler.related_ids("ExecutedJob") == ["job-J-2025-001"]


def test_unreachable_service():
    session = make_session({})
    result = I3XSourceAdapter("MES", BASE_URL, session=session).fetch()

    assert result.unreachable
    assert result.instances == []
    assert result.errors[-1].kind == ErrorKind.SOURCE_UNREACHABLE
    assert result.errors[-1].source == "MES"


def test_http_error_on_objects():
    session = make_session({
        "/api/i3x/namespaces": make_response(NAMESPACES),
        "/api/i3x/types": make_response(TYPES),
        "/api/i3x/objects": make_response(
            status_error=requests.exceptions.HTTPError("500 Server Error")
        ),
    })

    result = I3XSourceAdapter("ERP", BASE_URL, session=session).fetch()

    assert result.unreachable
    assert len(result.namespaces) == 1


def test_malformed_json_is_reported():
    session = make_session({
        "/api/i3x/namespaces": make_response(NAMESPACES),
        "/api/i3x/types": make_response(TYPES),
        "/api/i3x/objects": make_response(json_error=ValueError("Expecting value")),
    })

    result = I3XSourceAdapter("ERP", BASE_URL, session=session).fetch()

    assert result.unreachable
    assert "malformed JSON" in result.errors[0].message


def test_types_failure_is_partial():
    session = make_session({
        "/api/i3x/namespaces": make_response(NAMESPACES),
        "/api/i3x/objects": make_response(OBJECTS),
    })

    result = I3XSourceAdapter("SCADA", BASE_URL, session=session).fetch()

    assert not result.unreachable
    assert len(result.instances) == 2
    assert [e.kind for e in result.errors] == [ErrorKind.PARTIAL_SOURCE_DATA]


def test_malformed_records_and_duplicates_are_skipped():
    objects = OBJECTS + [{"name": "no id"}, dict(OBJECTS[0], name="Duplicate Line")]
    session = make_session({
        "/api/i3x/namespaces": make_response(NAMESPACES),
        "/api/i3x/types": make_response(TYPES),
        "/api/i3x/objects": make_response(objects),
    })

    result = I3XSourceAdapter("SCADA", BASE_URL, session=session).fetch()

    assert [i.element_id for i in result.instances] == ["line-1", "filler-001"]
    assert result.instances[0].name == "Bottling Line 1"
    messages = [e.message for e in result.errors]
    assert any("malformed" in m for m in messages)
    assert any("duplicate" in m for m in messages)


def test_non_list_payload_is_unreachable():
    session = make_session({
        "/api/i3x/namespaces": make_response(NAMESPACES),
        "/api/i3x/types": make_response(TYPES),
        "/api/i3x/objects": make_response({"error": "maintenance"}),
    })

    result = I3XSourceAdapter("ERP", BASE_URL, session=session).fetch()

    assert result.unreachable


def test_health_check(healthy_session):
    assert I3XSourceAdapter("SCADA", BASE_URL, session=healthy_session).health_check()
    assert not I3XSourceAdapter("SCADA", BASE_URL, session=make_session({})).health_check()


def test_get_value_strips_id_prefix():
    session = make_session({"/api/i3x/value/filler-001": make_response({"state": "Running", "speed": 600})})
    adapter = I3XSourceAdapter("SCADA", BASE_URL, session=session, id_prefix="scada")

    assert adapter.get_value("scada:filler-001") == {"state": "Running", "speed": 600}
    assert session.get.call_args[0][0] == f"{BASE_URL}/api/i3x/value/filler-001"


def test_get_value_rejects_non_object():
    session = make_session({"/api/i3x/value/filler-001": make_response(["Running"])})
    adapter = I3XSourceAdapter("SCADA", BASE_URL, session=session)

    with pytest.raises(SourceFetchError):
        adapter.get_value("filler-001")


def test_get_history_sends_filters():
    points = [
        {"elementId": "filler-001", "timestamp": "2025-01-15T09:00:00Z",
         "values": {"speed": 590}, "quality": "Good"}
    ]
    session = make_session({"/api/i3x/history/filler-001": make_response(points)})
    adapter = I3XSourceAdapter("SCADA", BASE_URL, session=session)

    history = adapter.get_history("filler-001", start_time="2025-01-15T00:00:00Z", max_points=50)

    assert [point.values for point in history] == [{"speed": 590}]
    assert history[0].quality == "Good"
    assert session.get.call_args[1]["params"] == {"startTime": "2025-01-15T00:00:00Z", "maxPoints": 50}


def test_get_history_source_down():
    adapter = I3XSourceAdapter("SCADA", BASE_URL, session=make_session({}))

    with pytest.raises(SourceFetchError):
        adapter.get_history("filler-001")


def test_get_history_malformed_points():
    session = make_session({"/api/i3x/history/filler-001": make_response([{"values": {"speed": 1}}])})
    adapter = I3XSourceAdapter("SCADA", BASE_URL, session=session)

    with pytest.raises(SourceFetchError):
        adapter.get_history("filler-001")
