"""
Identity Resolver -- maps a bearer credential to ``(user_id, role)``.

Tokens are HS256 JWTs issued by the auth service with claims
``{"sub": <user uuid>, "role": "passenger" | "driver" | "admin"}``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol
from uuid import UUID

from jose import JWTError, jwt

from ridehail.config import settings
from ridehail.domain.entities import Actor
from ridehail.domain.enums import UserRole
from ridehail.domain.errors import AuthError


class IdentityResolver(Protocol):
    def resolve(self, credential: str) -> Actor: ...


class JwtIdentityResolver:
    def __init__(
        self,
        secret: str = settings.jwt_secret,
        algorithm: str = settings.jwt_algorithm,
    ):
        self.secret = secret
        self.algorithm = algorithm

    def resolve(self, credential: str) -> Actor:
        if not credential:
            raise AuthError("Missing credential")
        try:
            claims = jwt.decode(credential, self.secret, algorithms=[self.algorithm])
            return Actor(user_id=UUID(claims["sub"]), role=UserRole(claims["role"]))
        except (JWTError, KeyError, ValueError) as exc:
            raise AuthError("Invalid credential") from exc

    def issue(
        self, user_id: UUID, role: UserRole, expires_in: Optional[timedelta] = None
    ) -> str:
        """Mint a token (seed script and tests; production tokens come from auth)."""
        claims: dict[str, Any] = {"sub": str(user_id), "role": role.value}
        if expires_in is not None:
            claims["exp"] = datetime.now(timezone.utc) + expires_in
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)
