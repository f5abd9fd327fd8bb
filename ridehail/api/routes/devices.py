"""POST /api/v1/devices -- register (or refresh) a push token for the caller."""

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_actor, get_services
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import DeviceRegisterRequest, DeviceTokenResponse
from ridehail.domain.entities import Actor
from ridehail.services.container import Services

router = APIRouter(prefix="/devices", tags=["devices"])


@router.post("", status_code=201, response_model=DeviceTokenResponse, summary="Register device")
@limiter.limit(DEFAULT_LIMIT)
async def register_device(
    request: Request,
    body: DeviceRegisterRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return await services.tokens.register(
        actor.user_id, body.token, body.platform, body.device_id
    )
