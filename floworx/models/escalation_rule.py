"""
ORM model for per-user escalation rules.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, Boolean, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from . import Base, utcnow


class EscalationRule(Base):
    __tablename__ = "escalation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    condition: Mapped[str] = mapped_column(String(64))
    value: Mapped[str | None] = mapped_column(String(256), nullable=True)
    action: Mapped[str] = mapped_column(String(64))
    # NULL means "use the condition's default priority"
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_escalation_rules_user_enabled_priority", "user_id", "enabled", "priority"),
    )
