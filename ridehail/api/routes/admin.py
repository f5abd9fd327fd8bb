"""
Admin / observability endpoints
===============================

GET /api/v1/admin/panic-alerts            -- unresolved panic alerts
GET /api/v1/admin/route-changes/rejected  -- route changes passengers refused
GET /api/v1/admin/health                  -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_services, require_role
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import HealthResponse, PanicAlertResponse, RouteChangeResponse
from ridehail.domain.entities import Actor
from ridehail.domain.enums import UserRole
from ridehail.services.container import Services

router = APIRouter(prefix="/admin", tags=["admin"])

_admin = require_role(UserRole.ADMIN)


@router.get(
    "/panic-alerts",
    response_model=list[PanicAlertResponse],
    summary="List unresolved panic alerts",
)
@limiter.limit(DEFAULT_LIMIT)
async def active_panic_alerts(
    request: Request,
    actor: Actor = Depends(_admin),
    services: Services = Depends(get_services),
):
    return await services.admin.active_panic_alerts()


@router.get(
    "/route-changes/rejected",
    response_model=list[RouteChangeResponse],
    summary="List rejected route changes",
)
@limiter.limit(DEFAULT_LIMIT)
async def rejected_route_changes(
    request: Request,
    actor: Actor = Depends(_admin),
    services: Services = Depends(get_services),
):
    return await services.admin.rejected_route_changes()


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(services: Services = Depends(get_services)):
    return HealthResponse(connections=len(services.presence))
