"""create riders, delivery_requests, delivery_request_events

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

delivery_request_status = sa.Enum(
    "placed", "accepted", "cancelled", name="delivery_request_status"
)
delivery_event_type = sa.Enum("CREATED", "ACCEPTED", "CANCELLED", name="delivery_event_type")


def upgrade() -> None:
    bind = op.get_bind()
    delivery_request_status.create(bind, checkfirst=True)
    delivery_event_type.create(bind, checkfirst=True)

    op.create_table(
        "riders",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("image", sa.String(length=1024), nullable=True),
        sa.Column("vehicle_type", sa.String(length=50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_online", sa.Boolean(), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "delivery_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        sa.Column("customer_phone", sa.String(length=50), nullable=True),
        sa.Column("rider_id", sa.String(length=64), nullable=True),
        sa.Column("pickup_lat", sa.Float(), nullable=False),
        sa.Column("pickup_lng", sa.Float(), nullable=False),
        sa.Column("pickup_address", sa.Text(), nullable=False),
        sa.Column("dropoff_lat", sa.Float(), nullable=False),
        sa.Column("dropoff_lng", sa.Float(), nullable=False),
        sa.Column("dropoff_address", sa.Text(), nullable=False),
        sa.Column("item_description", sa.Text(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("rider_earning", sa.Float(), nullable=False),
        sa.Column("commission", sa.Float(), nullable=False),
        sa.Column("distance_km", sa.Float(), nullable=False),
        sa.Column("status", delivery_request_status, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_delivery_requests_customer_id"),
        "delivery_requests",
        ["customer_id"],
        unique=False,
    )
    op.create_index(
        "ix_delivery_requests_open", "delivery_requests", ["status", "rider_id"], unique=False
    )

    op.create_table(
        "delivery_request_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("type", delivery_event_type, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["request_id"], ["delivery_requests.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_delivery_request_events_request_id"),
        "delivery_request_events",
        ["request_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        op.f("ix_delivery_request_events_request_id"), table_name="delivery_request_events"
    )
    op.drop_table("delivery_request_events")

    op.drop_index("ix_delivery_requests_open", table_name="delivery_requests")
    op.drop_index(op.f("ix_delivery_requests_customer_id"), table_name="delivery_requests")
    op.drop_table("delivery_requests")

    op.drop_table("riders")

    bind = op.get_bind()
    delivery_event_type.drop(bind, checkfirst=True)
    delivery_request_status.drop(bind, checkfirst=True)
