"""Initial schema: the rides table.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

RIDE_STATUS = sa.Enum(
    "PENDING",
    "ACCEPTED",
    "DRIVER_ARRIVED",
    "IN_PROGRESS",
    "COMPLETED",
    "CANCELLED",
    name="ridestatus",
)
PAYMENT_STATUS = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETED", "FAILED", name="paymentstatus"
)
PAYMENT_METHOD = sa.Enum("CASH", "CREDIT_CARD", "PIX", name="paymentmethod")
ROLE = sa.Enum("PASSENGER", "DRIVER", "ADMIN", name="role")

# One non-terminal ride per driver; statuses are stored by member name.
ACTIVE_DRIVER_PREDICATE = "status IN ('ACCEPTED', 'DRIVER_ARRIVED', 'IN_PROGRESS')"


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("passenger_id", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=True),
        sa.Column("origin_lng", sa.Float, nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=False),
        sa.Column("origin_address", sa.String(255), nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_address", sa.String(255), nullable=False),
        sa.Column("distance", sa.Float, nullable=False),
        sa.Column("duration", sa.Float, nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("status", RIDE_STATUS, nullable=False),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_by", ROLE, nullable=True),
        sa.Column("rating_by_passenger_score", sa.Integer, nullable=True),
        sa.Column("rating_by_passenger_comment", sa.String(500), nullable=True),
        sa.Column(
            "rating_by_passenger_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("rating_by_driver_score", sa.Integer, nullable=True),
        sa.Column("rating_by_driver_comment", sa.String(500), nullable=True),
        sa.Column("rating_by_driver_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_passenger", "rides", ["passenger_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_idempotency", "rides", ["idempotency_key"])
    op.create_index(
        "uq_rides_driver_active",
        "rides",
        ["driver_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_DRIVER_PREDICATE),
        sqlite_where=sa.text(ACTIVE_DRIVER_PREDICATE),
    )


def downgrade() -> None:
    op.drop_index("uq_rides_driver_active", table_name="rides")
    op.drop_index("idx_rides_idempotency", table_name="rides")
    op.drop_index("idx_rides_driver", table_name="rides")
    op.drop_index("idx_rides_passenger", table_name="rides")
    op.drop_index("idx_rides_status", table_name="rides")
    op.drop_table("rides")

    bind = op.get_bind()
    for enum_type in (RIDE_STATUS, PAYMENT_STATUS, PAYMENT_METHOD, ROLE):
        enum_type.drop(bind, checkfirst=True)
