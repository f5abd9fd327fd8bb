"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``           -- passengers, drivers and admins
* ``drivers``         -- availability and last known position per driver
* ``trips``           -- one ride from request to terminal state
* ``route_changes``   -- driver-proposed route modifications
* ``panic_alerts``    -- safety escalations, resolved by admins
* ``notifications``   -- durable record of every notification fan-out
* ``device_tokens``   -- push tokens per user device

Indexes
-------
* **B-Tree** on ``status`` / ``role`` columns used by recipient resolution
  (available drivers, active admins) and on the foreign keys used by the
  inbox and admin views.
* ``trips.version`` is the per-trip event sequence; notifications copy it
  into ``sequence`` so a trip's records can be ordered causally.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)

from ridehail.infrastructure.database import Base
from ridehail.domain.enums import (
    AlertType,
    ApprovalStatus,
    CancelledBy,
    DevicePlatform,
    DriverStatus,
    NotificationType,
    TripStatus,
    UserRole,
    UserStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls):
    """Store enum *values* (lower-case) rather than member names."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(_enum(UserRole), default=UserRole.PASSENGER, nullable=False)
    status = Column(_enum(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    emergency_contact_name = Column(String(120), nullable=True)
    emergency_contact_phone = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_users_role_status", "role", "status"),)


class DriverModel(Base):
    __tablename__ = "drivers"

    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    status = Column(_enum(DriverStatus), default=DriverStatus.OFFLINE, nullable=False)
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_drivers_status", "status"),)


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    passenger_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    driver_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    status = Column(_enum(TripStatus), default=TripStatus.REQUESTED, nullable=False)

    origin_address = Column(String(500), nullable=False)
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination_address = Column(String(500), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)

    estimated_price = Column(Numeric(10, 2), nullable=False)
    actual_price = Column(Numeric(10, 2), nullable=True)

    requested_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(_enum(CancelledBy), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    route_change_count = Column(Integer, default=0, nullable=False)
    panic_alert_count = Column(Integer, default=0, nullable=False)
    version = Column(Integer, default=1, nullable=False)

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_passenger", "passenger_id"),
        Index("idx_trips_driver", "driver_id"),
    )


class RouteChangeModel(Base):
    __tablename__ = "route_changes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    trip_id = Column(Uuid, ForeignKey("trips.id"), nullable=False)
    driver_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    original_route = Column(JSON, nullable=False)
    new_route = Column(JSON, nullable=False)
    reason = Column(Text, nullable=False)
    approval_status = Column(
        _enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False
    )
    admin_notified = Column(Boolean, default=False, nullable=False)
    response_timestamp = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_route_changes_trip", "trip_id"),
        Index("idx_route_changes_status", "approval_status"),
    )


class PanicAlertModel(Base):
    __tablename__ = "panic_alerts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    trip_id = Column(Uuid, ForeignKey("trips.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    alert_type = Column(_enum(AlertType), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_resolved = Column(Boolean, default=False, nullable=False)
    resolved_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    admin_notes = Column(Text, nullable=True)
    emergency_contact_notified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_panic_alerts_trip", "trip_id"),
        Index("idx_panic_alerts_resolved", "is_resolved"),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    notification_type = Column(_enum(NotificationType), nullable=False)
    related_trip_id = Column(Uuid, ForeignKey("trips.id"), nullable=True)
    sequence = Column(Integer, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    is_read = Column(Boolean, default=False, nullable=False)
    is_push_sent = Column(Boolean, default=False, nullable=False)
    push_sent_at = Column(DateTime(timezone=True), nullable=True)
    push_attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_notifications_user", "user_id", "is_read"),
        Index("idx_notifications_trip", "related_trip_id", "sequence"),
        Index("idx_notifications_push_pending", "is_push_sent", "created_at"),
    )


class DeviceTokenModel(Base):
    __tablename__ = "device_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    token = Column(String(512), unique=True, nullable=False)
    platform = Column(_enum(DevicePlatform), nullable=False)
    device_id = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_device_tokens_user", "user_id", "is_active"),)
