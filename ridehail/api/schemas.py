"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from ridehail.domain.delivery import DispatchReport
from ridehail.domain.entities import Location
from ridehail.domain.enums import (
    AlertType,
    ApprovalStatus,
    CancelledBy,
    DevicePlatform,
    DriverStatus,
    NotificationType,
    TripStatus,
)


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=500)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Location:
        return Location(self.address, self.latitude, self.longitude)


class TripCreateRequest(BaseModel):
    origin: LocationIn
    destination: LocationIn
    estimated_price: float = Field(..., gt=0)


class TripAcceptRequest(BaseModel):
    estimated_arrival: Optional[int] = Field(
        None, ge=0, le=240, description="Minutes until pickup."
    )


class TripCompleteRequest(BaseModel):
    actual_price: Optional[float] = Field(None, ge=0)


class TripCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RouteChangeCreateRequest(BaseModel):
    trip_id: UUID
    original_route: dict[str, Any]
    new_route: dict[str, Any]
    reason: str = Field(..., min_length=1, max_length=1000)


class RouteChangeRespondRequest(BaseModel):
    approved: bool


class PanicCreateRequest(BaseModel):
    trip_id: UUID
    alert_type: AlertType
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class PanicResolveRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class DeviceRegisterRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)
    platform: DevicePlatform
    device_id: Optional[str] = Field(None, max_length=255)


class DriverStatusRequest(BaseModel):
    status: DriverStatus


class DriverLocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    trip_id: Optional[UUID] = None


# ── Responses ─────────────────────────────────────────────────────────


class DispatchSummary(BaseModel):
    event: str
    delivered: int
    failed: int
    degraded: int

    @classmethod
    def from_report(cls, report: DispatchReport) -> "DispatchSummary":
        return cls(
            event=report.event_kind,
            delivered=report.success_count,
            failed=report.failure_count,
            degraded=report.degraded_count,
        )


class TripResponse(BaseModel):
    id: UUID
    passenger_id: UUID
    driver_id: Optional[UUID] = None
    status: TripStatus
    origin_address: str
    origin_lat: float
    origin_lng: float
    destination_address: str
    destination_lat: float
    destination_lng: float
    estimated_price: float
    actual_price: Optional[float] = None
    requested_at: datetime
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[CancelledBy] = None
    cancel_reason: Optional[str] = None
    route_change_count: int
    panic_alert_count: int
    version: int
    dispatch: list[DispatchSummary] = []

    model_config = {"from_attributes": True}


class RouteChangeResponse(BaseModel):
    id: UUID
    trip_id: UUID
    driver_id: UUID
    original_route: dict[str, Any]
    new_route: dict[str, Any]
    reason: str
    approval_status: ApprovalStatus
    admin_notified: bool
    response_timestamp: Optional[datetime] = None
    created_at: datetime
    dispatch: list[DispatchSummary] = []

    model_config = {"from_attributes": True}


class PanicAlertResponse(BaseModel):
    id: UUID
    trip_id: UUID
    user_id: UUID
    alert_type: AlertType
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_resolved: bool
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    emergency_contact_notified: bool
    created_at: datetime
    dispatch: list[DispatchSummary] = []

    model_config = {"from_attributes": True}


class NotificationResponse(BaseModel):
    id: UUID
    title: str
    body: str
    notification_type: NotificationType
    related_trip_id: Optional[UUID] = None
    sequence: Optional[int] = None
    data: dict[str, Any]
    is_read: bool
    is_push_sent: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class InboxResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    unread_count: int
    page: int
    limit: int

    model_config = {"from_attributes": True}


class MarkAllReadResponse(BaseModel):
    updated: int


class DeviceTokenResponse(BaseModel):
    id: UUID
    platform: DevicePlatform
    device_id: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}


class DriverResponse(BaseModel):
    user_id: UUID
    status: DriverStatus
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    location_updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
    connections: int = 0


class ErrorResponse(BaseModel):
    code: str
    detail: str


S = TypeVar("S", TripResponse, RouteChangeResponse, PanicAlertResponse)


def with_dispatch(schema: type[S], result) -> S:
    """Render a ``CommandResult`` with its per-event dispatch summary."""
    return schema.model_validate(result.entity).model_copy(
        update={
            "dispatch": [DispatchSummary.from_report(r) for r in result.dispatch_reports]
        }
    )
