# src/backend/models/received_courier.py
from __future__ import annotations

from datetime import date, datetime
from sqlalchemy import String, Text, Date, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from src.backend.utils.database import Base
from src.backend.utils.timezone import now_local


class ReceivedCourier(Base):
    """Inbound courier logged at the desk and handed on to its recipient."""

    __tablename__ = "received_couriers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pod_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    received_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    from_location: Mapped[str] = mapped_column(String(255), nullable=False)
    to_user: Mapped[str | None] = mapped_column(String(255), nullable=True)
    courier_vendor: Mapped[str | None] = mapped_column(String(150), nullable=True)
    custom_vendor: Mapped[str | None] = mapped_column(String(150), nullable=True)
    receiver_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    email_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cc_emails: Mapped[str | None] = mapped_column(Text, nullable=True)
    send_email_notification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    custom_department: Mapped[str | None] = mapped_column(String(150), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    confirmation_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True, index=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_email_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_email_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_email_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ReceivedCourier {self.id} pod={self.pod_number} status={self.status}>"
