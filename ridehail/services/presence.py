"""
Presence Directory
==================

Process-local map ``user_id -> {Connection}`` for users with a live
websocket.  It is a latency optimisation only: nothing durable depends on
it, and it is rebuilt from scratch as clients reconnect after a restart.

Each ``Connection`` owns a bounded buffer drained by its own writer task
(``pump``).  ``offer`` never awaits, so one stalled client cannot hold up
a fan-out; a full buffer or a closed handle counts as "not connected" and
the recipient is left to the push channel.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from ridehail.config import settings
from ridehail.domain.delivery import DeliveryOutcome
from ridehail.domain.enums import UserRole

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class Connection:
    def __init__(
        self,
        send: Callable[[Message], Awaitable[None]],
        user_id: UUID,
        role: UserRole,
        buffer_size: int = settings.socket_buffer_size,
    ):
        self._send = send
        self.user_id = user_id
        self.role = role
        self.closed = False
        self._buffer: asyncio.Queue[Message] = asyncio.Queue(maxsize=buffer_size)

    def offer(self, message: Message) -> bool:
        """Queue *message* without blocking.  False if closed or full."""
        if self.closed:
            return False
        try:
            self._buffer.put_nowait(message)
        except asyncio.QueueFull:
            logger.debug("Socket buffer full for user=%s", self.user_id)
            return False
        return True

    async def pump(self) -> None:
        """Writer loop: drain the buffer into the socket until it fails."""
        while not self.closed:
            message = await self._buffer.get()
            try:
                await self._send(message)
            except Exception as exc:
                logger.info("Socket write failed for user=%s: %r", self.user_id, exc)
                self.close()

    def close(self) -> None:
        self.closed = True

    @property
    def pending(self) -> int:
        return self._buffer.qsize()


class PresenceDirectory:
    def __init__(self) -> None:
        self._by_user: dict[UUID, set[Connection]] = defaultdict(set)

    def register(self, user_id: UUID, connection: Connection) -> None:
        self._by_user[user_id].add(connection)
        logger.info(
            "Presence: user=%s connected (%d handles)",
            user_id,
            len(self._by_user[user_id]),
        )

    def unregister(self, connection: Connection) -> None:
        handles = self._by_user.get(connection.user_id)
        if handles is None:
            return
        handles.discard(connection)
        if not handles:
            del self._by_user[connection.user_id]
        logger.info("Presence: user=%s handle removed", connection.user_id)

    def route_handles_for(self, user_id: UUID) -> list[Connection]:
        return [c for c in self._by_user.get(user_id, ()) if not c.closed]

    def send_to_user(self, user_id: UUID, message: Message) -> DeliveryOutcome:
        handles = self.route_handles_for(user_id)
        if not handles:
            return DeliveryOutcome.skipped("not_connected")
        accepted = sum(1 for handle in handles if handle.offer(message))
        if accepted:
            return DeliveryOutcome.delivered()
        return DeliveryOutcome.skipped("buffer_full")

    def broadcast_all(self, message: Message, role: Optional[UserRole] = None) -> int:
        """Offer *message* to every live handle (optionally one role); returns count."""
        sent = 0
        for handles in list(self._by_user.values()):
            for handle in list(handles):
                if role is not None and handle.role != role:
                    continue
                if handle.offer(message):
                    sent += 1
        return sent

    def is_connected(self, user_id: UUID) -> bool:
        return bool(self.route_handles_for(user_id))

    def __len__(self) -> int:
        return sum(len(h) for h in self._by_user.values())
