# src/backend/models/authority_letter.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy import String, Text, DateTime, Integer, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.backend.utils.database import Base
from src.backend.utils.timezone import now_local

LETTER_FIELD_TYPES = ("text", "number", "date", "textarea")


class AuthorityLetterTemplate(Base):
    __tablename__ = "authority_letter_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    template_name: Mapped[str] = mapped_column(String(200), nullable=False)
    template_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    template_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    word_template_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AuthorityLetterTemplate {self.id} {self.template_name}>"


class AuthorityLetterField(Base):
    """One `##field_name##` placeholder of a template and how to format it."""

    __tablename__ = "authority_letter_fields"
    __table_args__ = (UniqueConstraint("template_id", "field_name", name="uq_template_field_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("authority_letter_templates.id", ondelete="CASCADE"), nullable=True, index=True
    )
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_label: Mapped[str] = mapped_column(String(200), nullable=False)
    field_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    text_transform: Mapped[str] = mapped_column(String(30), nullable=False, default="none")
    number_format: Mapped[str] = mapped_column(String(30), nullable=False, default="none")
    date_format: Mapped[str] = mapped_column(String(30), nullable=False, default="DD-MM-YYYY")
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_local, nullable=False)

    def __repr__(self) -> str:
        return f"<AuthorityLetterField {self.id} {self.field_name}>"


class FieldDropdownOption(Base):
    __tablename__ = "field_dropdown_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    field_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("authority_letter_fields.id", ondelete="CASCADE"), nullable=False, index=True
    )
    department_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    option_value: Mapped[str] = mapped_column(String(255), nullable=False)
    option_label: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_local, nullable=False)
