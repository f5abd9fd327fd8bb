"""
Route change endpoints
======================

POST  /api/v1/route-changes                    -- driver proposes a new route
PATCH /api/v1/route-changes/{change_id}/respond -- passenger approves / rejects
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_actor, get_services
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import (
    RouteChangeCreateRequest,
    RouteChangeRespondRequest,
    RouteChangeResponse,
    with_dispatch,
)
from ridehail.domain.entities import Actor
from ridehail.services.container import Services

router = APIRouter(prefix="/route-changes", tags=["route-changes"])


@router.post(
    "",
    status_code=201,
    response_model=RouteChangeResponse,
    summary="Request a route change on an in-progress trip",
)
@limiter.limit(DEFAULT_LIMIT)
async def request_route_change(
    request: Request,
    body: RouteChangeCreateRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    result = await services.engine.request_route_change(
        actor.user_id, body.trip_id, body.original_route, body.new_route, body.reason
    )
    return with_dispatch(RouteChangeResponse, result)


@router.patch(
    "/{change_id}/respond",
    response_model=RouteChangeResponse,
    summary="Approve or reject a pending route change",
    responses={409: {"description": "Already answered."}},
)
@limiter.limit(DEFAULT_LIMIT)
async def respond_to_route_change(
    request: Request,
    change_id: UUID,
    body: RouteChangeRespondRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    result = await services.engine.respond_to_route_change(
        actor.user_id, change_id, body.approved
    )
    return with_dispatch(RouteChangeResponse, result)
