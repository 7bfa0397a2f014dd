"""Create users, properties, reservations, payment attempts and webhook ledger

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-10-17 09:12:31.402118

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "3f1a9c2d7b10"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="USER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "properties",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("cleaning_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("service_fee_percentage", sa.Numeric(5, 2), nullable=False, server_default="10"),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="24"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("cancellation_policy", sa.String(20), nullable=False, server_default="MODERATE"),
        sa.Column("max_guests", sa.Integer(), nullable=True),
        sa.Column("calendar_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_properties_owner_id", "properties", ["owner_id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "property_id",
            sa.String(36),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("guest_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("guest_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("guest_name", sa.String(255), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("guest_phone", sa.String(50), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("base_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("cleaning_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("service_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("taxes", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("source", sa.String(20), nullable=False, server_default="DIRECT"),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("external_platform_name", sa.String(255), nullable=True),
        sa.Column("external_guest_id", sa.String(255), nullable=True),
        sa.Column("ical_uid", sa.String(255), nullable=True),
        sa.Column("external_data", JSON_TYPE, nullable=True),
        sa.Column("platform_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("owner_revenue", sa.Numeric(12, 2), nullable=True),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("net_revenue", sa.Numeric(12, 2), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("source", "external_id", name="uq_reservations_source_external_id"),
        sa.CheckConstraint("check_out > check_in", name="ck_reservations_dates"),
    )
    op.create_index(
        "ix_reservations_property_dates", "reservations", ["property_id", "check_in", "check_out"]
    )
    op.create_index("ix_reservations_guest_id", "reservations", ["guest_id"])
    op.create_index("ix_reservations_status", "reservations", ["status"])
    op.create_index("ix_reservations_source", "reservations", ["source"])

    # No two date-holding reservations of a property may share a night
    if op.get_bind().dialect.name == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE reservations
            ADD CONSTRAINT excl_reservations_no_overlap
            EXCLUDE USING gist (
                property_id WITH =,
                daterange(check_in, check_out, '[)') WITH &&
            )
            WHERE (status IN ('CONFIRMED', 'CHECKED_IN'))
            """
        )

    op.create_table(
        "payment_attempts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("gateway_session_id", sa.String(255), nullable=True, unique=True),
        sa.Column("gateway_payment_intent_id", sa.String(255), nullable=True, unique=True),
        sa.Column("gateway_charge_id", sa.String(255), nullable=True),
        sa.Column("gateway_refund_id", sa.String(255), nullable=True),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payment_attempts_reservation_id", "payment_attempts", ["reservation_id"])

    op.create_table(
        "webhook_events",
        sa.Column("event_id", sa.String(255), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("reservation_id", sa.String(36), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_webhook_events_reservation_id", "webhook_events", ["reservation_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_webhook_events_reservation_id", table_name="webhook_events")
    op.drop_table("webhook_events")
    op.drop_index("ix_payment_attempts_reservation_id", table_name="payment_attempts")
    op.drop_table("payment_attempts")
    op.drop_index("ix_reservations_source", table_name="reservations")
    op.drop_index("ix_reservations_status", table_name="reservations")
    op.drop_index("ix_reservations_guest_id", table_name="reservations")
    op.drop_index("ix_reservations_property_dates", table_name="reservations")
    op.drop_table("reservations")
    op.drop_index("ix_properties_owner_id", table_name="properties")
    op.drop_table("properties")
    op.drop_table("users")
