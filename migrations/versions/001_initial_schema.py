"""Initial schema: users, drivers, trips, route changes, panic alerts,
notifications and device tokens.

Enum columns are stored as lower-case strings (non-native enums).

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="passenger"),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("emergency_contact_name", sa.String(120), nullable=True),
        sa.Column("emergency_contact_phone", sa.String(32), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_users_role_status", "users", ["role", "status"])

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="offline"),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        _timestamp("location_updated_at"),
    )
    op.create_index("idx_drivers_status", "drivers", ["status"])

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("passenger_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="requested"),
        sa.Column("origin_address", sa.String(500), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=False),
        sa.Column("origin_lng", sa.Float, nullable=False),
        sa.Column("destination_address", sa.String(500), nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("estimated_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("actual_price", sa.Numeric(10, 2), nullable=True),
        _timestamp("requested_at", nullable=False),
        _timestamp("accepted_at"),
        _timestamp("arrived_at"),
        _timestamp("started_at"),
        _timestamp("completed_at"),
        _timestamp("cancelled_at"),
        sa.Column("cancelled_by", sa.String(32), nullable=True),
        sa.Column("cancel_reason", sa.Text, nullable=True),
        sa.Column("route_change_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("panic_alert_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_passenger", "trips", ["passenger_id"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])

    # ── route_changes ─────────────────────────────────────────────────
    op.create_table(
        "route_changes",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("trip_id", sa.Uuid, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("driver_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("original_route", sa.JSON, nullable=False),
        sa.Column("new_route", sa.JSON, nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column(
            "approval_status", sa.String(32), nullable=False, server_default="pending"
        ),
        sa.Column("admin_notified", sa.Boolean, nullable=False, server_default=sa.false()),
        _timestamp("response_timestamp"),
        _timestamp("created_at", nullable=False),
    )
    op.create_index("idx_route_changes_trip", "route_changes", ["trip_id"])
    op.create_index("idx_route_changes_status", "route_changes", ["approval_status"])

    # ── panic_alerts ──────────────────────────────────────────────────
    op.create_table(
        "panic_alerts",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("trip_id", sa.Uuid, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("alert_type", sa.String(32), nullable=False),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("is_resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("resolved_by", sa.Uuid, sa.ForeignKey("users.id"), nullable=True),
        _timestamp("resolved_at"),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column(
            "emergency_contact_notified",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        _timestamp("created_at", nullable=False),
    )
    op.create_index("idx_panic_alerts_trip", "panic_alerts", ["trip_id"])
    op.create_index("idx_panic_alerts_resolved", "panic_alerts", ["is_resolved"])

    # ── notifications ─────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("notification_type", sa.String(32), nullable=False),
        sa.Column("related_trip_id", sa.Uuid, sa.ForeignKey("trips.id"), nullable=True),
        sa.Column("sequence", sa.Integer, nullable=True),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_push_sent", sa.Boolean, nullable=False, server_default=sa.false()),
        _timestamp("push_sent_at"),
        sa.Column("push_attempts", sa.Integer, nullable=False, server_default="0"),
        _timestamp("created_at", nullable=False),
    )
    op.create_index("idx_notifications_user", "notifications", ["user_id", "is_read"])
    op.create_index(
        "idx_notifications_trip", "notifications", ["related_trip_id", "sequence"]
    )
    op.create_index(
        "idx_notifications_push_pending", "notifications", ["is_push_sent", "created_at"]
    )

    # ── device_tokens ─────────────────────────────────────────────────
    op.create_table(
        "device_tokens",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("token", sa.String(512), unique=True, nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("device_id", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _timestamp("last_used_at"),
    )
    op.create_index("idx_device_tokens_user", "device_tokens", ["user_id", "is_active"])


def downgrade() -> None:
    op.drop_table("device_tokens")
    op.drop_table("notifications")
    op.drop_table("panic_alerts")
    op.drop_table("route_changes")
    op.drop_table("trips")
    op.drop_table("drivers")
    op.drop_table("users")
