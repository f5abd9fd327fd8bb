"""
Panic endpoints
===============

POST  /api/v1/panic                    -- passenger or driver raises an alert
PATCH /api/v1/panic/{panic_id}/resolve -- admin closes it
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_actor, get_services, require_role
from ridehail.api.middleware import DEFAULT_LIMIT, PANIC_LIMIT, limiter
from ridehail.api.schemas import (
    PanicAlertResponse,
    PanicCreateRequest,
    PanicResolveRequest,
    with_dispatch,
)
from ridehail.domain.entities import Actor
from ridehail.domain.enums import UserRole
from ridehail.services.container import Services

router = APIRouter(prefix="/panic", tags=["panic"])


@router.post(
    "",
    status_code=201,
    response_model=PanicAlertResponse,
    summary="Raise a panic alert; every admin is notified",
)
@limiter.limit(PANIC_LIMIT)
async def raise_panic_alert(
    request: Request,
    body: PanicCreateRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    coordinates = None
    if body.latitude is not None and body.longitude is not None:
        coordinates = (body.latitude, body.longitude)
    result = await services.engine.raise_panic_alert(
        actor.user_id, body.trip_id, body.alert_type, coordinates
    )
    return with_dispatch(PanicAlertResponse, result)


@router.patch(
    "/{panic_id}/resolve",
    response_model=PanicAlertResponse,
    summary="Resolve a panic alert",
    responses={409: {"description": "Already resolved."}},
)
@limiter.limit(DEFAULT_LIMIT)
async def resolve_panic_alert(
    request: Request,
    panic_id: UUID,
    body: PanicResolveRequest,
    actor: Actor = Depends(require_role(UserRole.ADMIN)),
    services: Services = Depends(get_services),
):
    result = await services.engine.resolve_panic_alert(actor.user_id, panic_id, body.notes)
    return with_dispatch(PanicAlertResponse, result)
