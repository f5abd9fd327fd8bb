"""Notification inbox: paged listing, unread count, bulk mark-as-read."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select

from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.models import NotificationModel


@dataclass
class InboxPage:
    items: list[NotificationModel]
    total: int
    unread_count: int
    page: int
    limit: int


class Inbox:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def list_notifications(
        self,
        user_id: UUID,
        unread_only: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> InboxPage:
        page = max(1, page)
        limit = max(1, min(limit, 100))
        criteria = [NotificationModel.user_id == user_id]
        if unread_only:
            criteria.append(NotificationModel.is_read.is_(False))

        async def work(ledger: Ledger) -> InboxPage:
            items = await ledger.query(
                NotificationModel,
                *criteria,
                order_by=(NotificationModel.created_at.desc(),),
                limit=limit,
                offset=(page - 1) * limit,
            )
            total = await ledger.scalar(
                select(func.count()).select_from(NotificationModel).where(*criteria)
            )
            unread = await ledger.scalar(
                select(func.count())
                .select_from(NotificationModel)
                .where(
                    NotificationModel.user_id == user_id,
                    NotificationModel.is_read.is_(False),
                )
            )
            return InboxPage(items, total or 0, unread or 0, page, limit)

        return await self.store.run(work)

    async def mark_all_read(self, user_id: UUID) -> int:
        async def work(ledger: Ledger) -> int:
            return await ledger.update_where(
                NotificationModel,
                [
                    NotificationModel.user_id == user_id,
                    NotificationModel.is_read.is_(False),
                ],
                {"is_read": True},
            )

        return await self.store.run(work)
