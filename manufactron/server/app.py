"""
Unified Query API - FastAPI Service for the Manufacturing Graph

Exposes namespaces, types, objects, live values and history, search,
hierarchy, relationships and manufacturing context over HTTP. Graph handlers
read the cache's current snapshot; value and history reads pass through to
the owning source. Missing elements map to 404, malformed input to 400 and
an unreachable source to 502.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from ..briefcase.assembler import ContextBuilder
from ..briefcase.templates import ContextTemplates
from ..config import AggregatorConfig, build_adapters, setup_environment
from ..errors import QueryStatus
from ..librarian.graph_cache import GraphCache
from ..librarian.state_queries import StateQueries

logger = logging.getLogger(__name__)

API_PREFIX = "/api/i3x"


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    service: str
    timestamp: str
    services: Dict[str, str]
    snapshot_version: int


def create_app(
    cache: Optional[GraphCache] = None,
    config: Optional[AggregatorConfig] = None
) -> FastAPI:
    """
    Create the aggregator application.

    Args:
        cache: GraphCache to serve from (built from config when omitted)
        config: Aggregator configuration (read from the environment when omitted)

    Returns:
        Configured FastAPI application
    """
    config = config or setup_environment()
    if cache is None:
        cache = GraphCache(
            build_adapters(config),
            ttl_seconds=config.cache_ttl_seconds,
            fetch_timeout=config.fetch_timeout
        )

    queries = StateQueries(cache)
    builder = ContextBuilder(max_hops=config.max_hops, max_nodes=config.max_nodes)

    app = FastAPI(
        title="I3X Aggregator API",
        description="Unified manufacturing graph over ERP, MES and SCADA I3X services",
        version="1.0.0"
    )
    app.state.cache = cache
    app.state.queries = queries
    app.state.builder = builder

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"I3X Aggregator starting; sources: {', '.join(a.name for a in cache.adapters)}")
        for adapter in cache.adapters:
            logger.info(f"  - {adapter.name} Service: {adapter.base_url}")

    @app.on_event("shutdown")
    async def shutdown_event():
        if not cache.wait_for_rebuild(timeout=config.fetch_timeout):
            logger.warning("Graph rebuild still running at shutdown")

    @app.get(f"{API_PREFIX}/namespaces")
    def get_namespaces() -> List[Dict[str, Any]]:
        logger.info("Aggregating namespaces from all services")
        return [ns.model_dump(by_alias=True) for ns in queries.get_namespaces()]

    @app.get(f"{API_PREFIX}/types")
    def get_object_types(namespace_uri: Optional[str] = Query(None, alias="namespaceUri")) -> List[Dict[str, Any]]:
        return [t.model_dump(by_alias=True) for t in queries.get_object_types(namespace_uri)]

    @app.get(f"{API_PREFIX}/types/{{element_id}}")
    def get_object_type(element_id: str) -> Dict[str, Any]:
        object_type = queries.get_object_type(element_id)
        if object_type is None:
            raise HTTPException(status_code=404, detail=f"Type '{element_id}' not found")
        return object_type.model_dump(by_alias=True)

    def raise_for_read(result) -> None:
        if result.status == QueryStatus.NOT_FOUND:
            raise HTTPException(status_code=404, detail=result.error.message)
        if result.status == QueryStatus.UNAVAILABLE:
            raise HTTPException(status_code=502, detail=result.error.message)

    @app.get(f"{API_PREFIX}/value/{{element_id}}")
    def get_value(element_id: str) -> Dict[str, Any]:
        result = queries.get_value(element_id)
        raise_for_read(result)
        return result.data

    @app.get(f"{API_PREFIX}/history/{{element_id}}")
    def get_history(
        element_id: str,
        start_time: Optional[str] = Query(None, alias="startTime"),
        end_time: Optional[str] = Query(None, alias="endTime"),
        max_points: Optional[int] = Query(None, alias="maxPoints", ge=1)
    ) -> List[Dict[str, Any]]:
        result = queries.get_history(element_id, start_time, end_time, max_points)
        raise_for_read(result)
        return [point.model_dump(by_alias=True, mode='json') for point in result.data]

    @app.get(f"{API_PREFIX}/objects")
    def get_objects(
        type_id: Optional[str] = Query(None, alias="typeId"),
        include_metadata: bool = Query(False, alias="includeMetadata")
    ) -> List[Dict[str, Any]]:
        logger.info(f"Listing objects, type: {type_id}, metadata: {include_metadata}")
        return [i.to_response(include_metadata) for i in queries.get_objects(type_id)]

    @app.get(f"{API_PREFIX}/objects/{{element_id}}")
    def get_object(
        element_id: str,
        include_metadata: bool = Query(False, alias="includeMetadata")
    ) -> Dict[str, Any]:
        instance = queries.get_object(element_id)
        if instance is None:
            raise HTTPException(status_code=404, detail=f"Object '{element_id}' not found")
        return instance.to_response(include_metadata)

    @app.get(f"{API_PREFIX}/objects/{{element_id}}/children")
    def get_children(
        element_id: str,
        include_metadata: bool = Query(False, alias="includeMetadata")
    ) -> List[Dict[str, Any]]:
        return [child.to_response(include_metadata) for child in queries.get_children(element_id)]

    @app.get(f"{API_PREFIX}/objects/{{element_id}}/parent")
    def get_parent(
        element_id: str,
        include_metadata: bool = Query(False, alias="includeMetadata")
    ) -> Dict[str, Any]:
        parent = queries.get_parent(element_id)
        if parent is None:
            raise HTTPException(status_code=404, detail=f"Parent not found for '{element_id}'")
        return parent.to_response(include_metadata)

    @app.get(f"{API_PREFIX}/objects/{{element_id}}/relationships")
    def get_object_relationships(element_id: str) -> Dict[str, Any]:
        relationships = queries.relationships_of(element_id)
        if relationships is None:
            raise HTTPException(status_code=404, detail=f"Object '{element_id}' not found")
        return {
            'elementId': element_id,
            'relationships': {
                rel: [ref.model_dump(by_alias=True, mode='json') for ref in refs]
                for rel, refs in relationships.items()
            }
        }

    @app.get(f"{API_PREFIX}/relationships/{{element_id}}/{{relationship_type}}")
    def get_relationships(element_id: str, relationship_type: str) -> List[Dict[str, Any]]:
        logger.info(f"Getting relationships for {element_id}, type: {relationship_type}")
        return [i.to_response(False) for i in queries.get_relationships(element_id, relationship_type)]

    @app.get(f"{API_PREFIX}/search")
    def search_objects(
        term: str = Query("", description="Search term"),
        type_filter: Optional[str] = Query(None, alias="typeFilter"),
        limit: Optional[int] = Query(None, ge=1)
    ) -> Dict[str, Any]:
        result = queries.search_objects(term, type_filter, limit)
        if result.status == QueryStatus.INVALID:
            raise HTTPException(status_code=400, detail=result.error.message)
        return {
            'searchTerm': result.term,
            'typeFilter': result.type_filter,
            'resultCount': len(result.matches),
            'results': [
                {
                    'id': match.instance.element_id,
                    'name': match.instance.name,
                    'type': match.instance.type_id,
                    'matchedIn': match.matched_in
                }
                for match in result.matches
            ]
        }

    @app.get(f"{API_PREFIX}/context/{{element_id}}")
    def get_manufacturing_context(element_id: str) -> Dict[str, Any]:
        result = builder.build(element_id, cache.get())
        if result.status == QueryStatus.NOT_FOUND:
            raise HTTPException(status_code=404, detail=result.error.message)
        return {
            'context': result.context.model_dump(by_alias=True, mode='json'),
            'summary': ContextTemplates.summarize_context(result.context)
        }

    @app.get(f"{API_PREFIX}/hierarchy")
    def get_production_hierarchy(line_id: Optional[str] = Query(None, alias="lineId")) -> Dict[str, Any]:
        return queries.get_production_hierarchy(line_id)

    @app.get(f"{API_PREFIX}/graph/status")
    def get_graph_status() -> Dict[str, Any]:
        return {'cache': cache.status(), 'snapshot': cache.get().stats()}

    @app.post(f"{API_PREFIX}/graph/refresh")
    def refresh_graph() -> Dict[str, Any]:
        logger.info("Manual graph refresh requested")
        cache.invalidate()
        published = cache.refresh()
        return {'refreshed': published, 'status': cache.status()}

    @app.get(f"{API_PREFIX}/health", response_model=HealthResponse)
    def health_check():
        services = {
            adapter.name: "Available" if adapter.health_check() else "Unreachable"
            for adapter in cache.adapters
        }
        available = sum(1 for state in services.values() if state == "Available")
        if services and available == len(services):
            status = "Healthy"
        elif available:
            status = "Degraded"
        else:
            status = "Unhealthy"

        return HealthResponse(
            status=status,
            service="I3X Aggregator",
            timestamp=datetime.now().isoformat(),
            services=services,
            snapshot_version=cache.version
        )

    @app.get("/")
    def root():
        return {
            'service': "I3X Aggregator",
            'version': app.version,
            'endpoints': {
                'namespaces': f"{API_PREFIX}/namespaces",
                'objects': f"{API_PREFIX}/objects",
                'value': f"{API_PREFIX}/value/{{elementId}}",
                'history': f"{API_PREFIX}/history/{{elementId}}",
                'search': f"{API_PREFIX}/search?term=...",
                'context': f"{API_PREFIX}/context/{{elementId}}",
                'hierarchy': f"{API_PREFIX}/hierarchy",
                'health': f"{API_PREFIX}/health",
                'docs': "/docs"
            }
        }

    return app
