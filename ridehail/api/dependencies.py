"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, Request

from ridehail.domain.entities import Actor
from ridehail.domain.enums import UserRole
from ridehail.domain.errors import AuthError, Unauthorized
from ridehail.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_actor(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Actor:
    """Resolve ``Authorization: Bearer <token>`` to the calling actor."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthError("Missing bearer token")
    return services.identity.resolve(token.strip())


def require_role(*roles: UserRole):
    def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in roles:
            raise Unauthorized(
                "Requires role " + " or ".join(r.value for r in roles)
            )
        return actor

    return dependency
