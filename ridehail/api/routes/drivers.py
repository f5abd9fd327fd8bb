"""
Driver endpoints
================

PATCH /api/v1/drivers/me/status   -- available / busy / offline
POST  /api/v1/drivers/me/location -- live position, relayed over websockets
"""

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_services, require_role
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import DriverLocationRequest, DriverResponse, DriverStatusRequest
from ridehail.domain.entities import Actor
from ridehail.domain.enums import UserRole
from ridehail.services.container import Services

router = APIRouter(prefix="/drivers", tags=["drivers"])

_driver = require_role(UserRole.DRIVER)


@router.patch("/me/status", response_model=DriverResponse, summary="Set availability")
@limiter.limit(DEFAULT_LIMIT)
async def set_status(
    request: Request,
    body: DriverStatusRequest,
    actor: Actor = Depends(_driver),
    services: Services = Depends(get_services),
):
    return await services.tracker.set_driver_status(actor.user_id, body.status)


@router.post("/me/location", response_model=DriverResponse, summary="Report position")
@limiter.limit(DEFAULT_LIMIT)
async def update_location(
    request: Request,
    body: DriverLocationRequest,
    actor: Actor = Depends(_driver),
    services: Services = Depends(get_services),
):
    return await services.tracker.update_driver_location(
        actor.user_id, body.latitude, body.longitude, body.trip_id
    )
