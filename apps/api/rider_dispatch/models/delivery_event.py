import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from rider_dispatch.db.base import Base


class DeliveryEventType(str, enum.Enum):
    CREATED = "CREATED"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"


class DeliveryRequestEvent(Base):
    __tablename__ = "delivery_request_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("delivery_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[DeliveryEventType] = mapped_column(
        Enum(DeliveryEventType, name="delivery_event_type"), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
