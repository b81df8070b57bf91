# src/backend/models/courier.py
from __future__ import annotations

from datetime import date, datetime
from sqlalchemy import String, Text, Date, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from src.backend.utils.database import Base
from src.backend.utils.timezone import now_local


class Courier(Base):
    """Outbound courier sent from a department to a branch or person."""

    __tablename__ = "couriers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    to_branch: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cc_emails: Mapped[str | None] = mapped_column(Text, nullable=True)
    courier_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    vendor: Mapped[str | None] = mapped_column(String(150), nullable=True)
    custom_vendor: Mapped[str | None] = mapped_column(String(150), nullable=True)
    pod_no: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    receiver_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="on_the_way", index=True)
    received_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    pod_copy_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    confirmation_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True, index=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reminder_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # outcome of the most recent notification; sending never blocks the status change
    last_email_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_email_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_email_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Courier {self.id} pod={self.pod_no} status={self.status}>"
