"""Device Token Registry -- which push tokens are live for a user."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from ridehail.domain.enums import DevicePlatform
from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.models import DeviceTokenModel

logger = logging.getLogger(__name__)


class DeviceTokenRegistry:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def active_tokens_for(self, user_id: UUID) -> list[str]:
        async def work(ledger: Ledger) -> list[str]:
            rows = await ledger.query(
                DeviceTokenModel,
                DeviceTokenModel.user_id == user_id,
                DeviceTokenModel.is_active.is_(True),
            )
            return [r.token for r in rows]

        return await self.store.run(work)

    async def deactivate(self, token: str) -> None:
        async def work(ledger: Ledger) -> int:
            return await ledger.update_where(
                DeviceTokenModel,
                [DeviceTokenModel.token == token, DeviceTokenModel.is_active.is_(True)],
                {"is_active": False},
            )

        if await self.store.run(work):
            logger.info("Device token retired: %s…", token[:12])

    async def register(
        self,
        user_id: UUID,
        token: str,
        platform: DevicePlatform,
        device_id: Optional[str] = None,
    ) -> DeviceTokenModel:
        """Upsert *token* for *user_id*; older tokens of the same device go inactive."""
        now = datetime.now(timezone.utc)

        async def work(ledger: Ledger) -> DeviceTokenModel:
            if device_id:
                await ledger.update_where(
                    DeviceTokenModel,
                    [
                        DeviceTokenModel.user_id == user_id,
                        DeviceTokenModel.device_id == device_id,
                        DeviceTokenModel.token != token,
                    ],
                    {"is_active": False},
                )
            existing = await ledger.query(
                DeviceTokenModel, DeviceTokenModel.token == token
            )
            if existing:
                return await ledger.conditional_update(
                    DeviceTokenModel,
                    existing[0].id,
                    {},
                    {
                        "user_id": user_id,
                        "platform": platform,
                        "device_id": device_id,
                        "is_active": True,
                        "last_used_at": now,
                    },
                )
            return await ledger.insert(
                DeviceTokenModel(
                    user_id=user_id,
                    token=token,
                    platform=platform,
                    device_id=device_id,
                    is_active=True,
                    last_used_at=now,
                )
            )

        return await self.store.run(work)
