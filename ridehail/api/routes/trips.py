"""
Trip endpoints
==============

POST  /api/v1/trips/request         -- passenger requests a trip
GET   /api/v1/trips/mine            -- caller's trips, newest first
GET   /api/v1/trips/{trip_id}       -- one trip (participants and admins)
PATCH /api/v1/trips/{trip_id}/accept   -- driver accepts (first wins)
PATCH /api/v1/trips/{trip_id}/arrive   -- driver is at the pickup
PATCH /api/v1/trips/{trip_id}/start    -- driver starts the ride
PATCH /api/v1/trips/{trip_id}/complete -- driver ends the ride
PATCH /api/v1/trips/{trip_id}/cancel   -- passenger, driver or admin cancels
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_actor, get_services
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import (
    TripAcceptRequest,
    TripCancelRequest,
    TripCompleteRequest,
    TripCreateRequest,
    TripResponse,
    with_dispatch,
)
from ridehail.domain.entities import Actor
from ridehail.services.container import Services

router = APIRouter(prefix="/trips", tags=["trips"])


@router.post(
    "/request",
    status_code=201,
    response_model=TripResponse,
    summary="Request a trip; every available driver is notified",
)
@limiter.limit(DEFAULT_LIMIT)
async def request_trip(
    request: Request,
    body: TripCreateRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    result = await services.engine.request_trip(
        actor.user_id,
        body.origin.to_domain(),
        body.destination.to_domain(),
        body.estimated_price,
    )
    return with_dispatch(TripResponse, result)


@router.get("/mine", response_model=list[TripResponse], summary="List my trips")
@limiter.limit(DEFAULT_LIMIT)
async def list_my_trips(
    request: Request,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return await services.trips.list_trips_for(actor)


@router.get("/{trip_id}", response_model=TripResponse, summary="Get one trip")
@limiter.limit(DEFAULT_LIMIT)
async def get_trip(
    request: Request,
    trip_id: UUID,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return await services.trips.get_trip(actor, trip_id)


@router.patch(
    "/{trip_id}/accept",
    response_model=TripResponse,
    summary="Accept a requested trip",
    responses={409: {"description": "Another driver accepted first."}},
)
@limiter.limit(DEFAULT_LIMIT)
async def accept_trip(
    request: Request,
    trip_id: UUID,
    body: Optional[TripAcceptRequest] = None,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    eta = body.estimated_arrival if body else None
    result = await services.engine.accept_trip(actor.user_id, trip_id, estimated_arrival=eta)
    return with_dispatch(TripResponse, result)


@router.patch("/{trip_id}/arrive", response_model=TripResponse, summary="Driver arrived")
@limiter.limit(DEFAULT_LIMIT)
async def driver_arrived(
    request: Request,
    trip_id: UUID,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    result = await services.engine.notify_driver_arrived(actor.user_id, trip_id)
    return with_dispatch(TripResponse, result)


@router.patch("/{trip_id}/start", response_model=TripResponse, summary="Start the trip")
@limiter.limit(DEFAULT_LIMIT)
async def start_trip(
    request: Request,
    trip_id: UUID,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    result = await services.engine.start_trip(actor.user_id, trip_id)
    return with_dispatch(TripResponse, result)


@router.patch("/{trip_id}/complete", response_model=TripResponse, summary="Complete the trip")
@limiter.limit(DEFAULT_LIMIT)
async def complete_trip(
    request: Request,
    trip_id: UUID,
    body: Optional[TripCompleteRequest] = None,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    price = body.actual_price if body else None
    result = await services.engine.complete_trip(actor.user_id, trip_id, actual_price=price)
    return with_dispatch(TripResponse, result)


@router.patch("/{trip_id}/cancel", response_model=TripResponse, summary="Cancel the trip")
@limiter.limit(DEFAULT_LIMIT)
async def cancel_trip(
    request: Request,
    trip_id: UUID,
    body: Optional[TripCancelRequest] = None,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    reason = body.reason if body else None
    result = await services.engine.cancel_trip(actor.user_id, actor.role, trip_id, reason)
    return with_dispatch(TripResponse, result)
