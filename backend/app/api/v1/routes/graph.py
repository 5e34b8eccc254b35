"""Road graph management endpoints."""

import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_navigation_service
from app.core.exceptions import GraphException
from app.schemas.graph import GraphPayload, GraphStatus
from app.services.errors import GraphError
from app.services.navigation import NavigationService

logger = logging.getLogger(__name__)

router = APIRouter()


def _graph_status(service: NavigationService) -> GraphStatus:
    graph = service.graph
    if graph is None:
        return GraphStatus(loaded=False, node_count=0, edge_count=0, component_count=0)
    return GraphStatus(
        loaded=True,
        node_count=graph.node_count,
        edge_count=graph.edge_count,
        component_count=graph.component_count,
    )


@router.get("", response_model=GraphStatus)
async def get_graph_status(
    service: NavigationService = Depends(get_navigation_service),
) -> GraphStatus:
    return _graph_status(service)


@router.put("", response_model=GraphStatus)
async def reload_graph(
    payload: GraphPayload,
    service: NavigationService = Depends(get_navigation_service),
) -> GraphStatus:
    """
    Replace the road graph.

    The new graph is validated and indexed before it is swapped in; on
    failure the previous graph keeps serving queries.
    """
    try:
        await run_in_threadpool(service.load_graph_data, payload)
    except GraphError as e:
        raise GraphException(e.message)
    logger.info(f"Road graph reloaded: {len(payload.nodes)} nodes, {len(payload.edges)} edges")
    return _graph_status(service)
