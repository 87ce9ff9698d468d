import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rider_dispatch.db.base import Base


class DeliveryRequestStatus(str, enum.Enum):
    PLACED = "placed"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"


class DeliveryRequest(Base):
    __tablename__ = "delivery_requests"
    __table_args__ = (Index("ix_delivery_requests_open", "status", "rider_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rider_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    pickup_lat: Mapped[float] = mapped_column(Float, nullable=False)
    pickup_lng: Mapped[float] = mapped_column(Float, nullable=False)
    pickup_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    dropoff_lat: Mapped[float] = mapped_column(Float, nullable=False)
    dropoff_lng: Mapped[float] = mapped_column(Float, nullable=False)
    dropoff_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    item_description: Mapped[str] = mapped_column(Text, nullable=False)

    total: Mapped[float] = mapped_column(Float, nullable=False)
    rider_earning: Mapped[float] = mapped_column(Float, nullable=False)
    commission: Mapped[float] = mapped_column(Float, nullable=False)
    distance_km: Mapped[float] = mapped_column(Float, nullable=False)

    status: Mapped[DeliveryRequestStatus] = mapped_column(
        Enum(
            DeliveryRequestStatus,
            name="delivery_request_status",
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        default=DeliveryRequestStatus.PLACED,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
