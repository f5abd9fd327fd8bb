"""Wires the ledger, delivery channels and engine into one ``Services`` bundle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridehail.config import settings
from ridehail.infrastructure.database import async_session_factory
from ridehail.infrastructure.device_tokens import DeviceTokenRegistry
from ridehail.infrastructure.identity import IdentityResolver, JwtIdentityResolver
from ridehail.infrastructure.ledger import LedgerStore
from ridehail.infrastructure.push_gateway import FcmPushGateway, PushGateway
from ridehail.services.dispatcher import NotificationDispatcher
from ridehail.services.inbox import Inbox
from ridehail.services.presence import PresenceDirectory
from ridehail.services.queries import AdminQueries, TripQueries
from ridehail.services.state_machine import EmergencyContactNotifier, StateMachineEngine
from ridehail.services.tracking import DriverTracker


@dataclass
class Services:
    store: LedgerStore
    presence: PresenceDirectory
    tokens: DeviceTokenRegistry
    dispatcher: NotificationDispatcher
    engine: StateMachineEngine
    inbox: Inbox
    trips: TripQueries
    admin: AdminQueries
    tracker: DriverTracker
    identity: IdentityResolver


def build_services(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    *,
    push_gateway: Optional[PushGateway] = None,
    identity: Optional[IdentityResolver] = None,
    emergency_notifier: Optional[EmergencyContactNotifier] = None,
    store: Optional[LedgerStore] = None,
) -> Services:
    store = store or LedgerStore(session_factory)
    presence = PresenceDirectory()
    tokens = DeviceTokenRegistry(store)
    gateway = push_gateway or FcmPushGateway(
        settings.fcm_project_id,
        settings.fcm_access_token,
        timeout=settings.push_timeout_seconds,
    )
    dispatcher = NotificationDispatcher(store, presence, gateway, tokens)
    return Services(
        store=store,
        presence=presence,
        tokens=tokens,
        dispatcher=dispatcher,
        engine=StateMachineEngine(store, dispatcher, emergency_notifier),
        inbox=Inbox(store),
        trips=TripQueries(store),
        admin=AdminQueries(store),
        tracker=DriverTracker(store, presence),
        identity=identity or JwtIdentityResolver(),
    )
