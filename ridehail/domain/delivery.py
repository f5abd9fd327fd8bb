"""Tagged delivery results for the two notification channels."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID


class DeliveryStatus(str, enum.Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
    status: DeliveryStatus
    reason: Optional[str] = None

    @classmethod
    def delivered(cls) -> "DeliveryOutcome":
        return cls(DeliveryStatus.DELIVERED)

    @classmethod
    def skipped(cls, reason: str) -> "DeliveryOutcome":
        return cls(DeliveryStatus.SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> "DeliveryOutcome":
        return cls(DeliveryStatus.FAILED, reason)

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED


@dataclass(frozen=True)
class RecipientResult:
    user_id: UUID
    record_id: Optional[UUID]
    socket: DeliveryOutcome
    push: DeliveryOutcome

    @property
    def delivered(self) -> bool:
        return self.socket.ok or self.push.ok

    @property
    def degraded(self) -> bool:
        """Record exists but neither channel reached the recipient."""
        return self.record_id is not None and not self.delivered


@dataclass
class DispatchReport:
    event_kind: str
    results: list[RecipientResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.delivered)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def degraded_count(self) -> int:
        return sum(1 for r in self.results if r.degraded)
