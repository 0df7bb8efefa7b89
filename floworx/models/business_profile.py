"""
ORM model for the business profile a user configured during onboarding.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from . import Base, utcnow


class BusinessProfile(Base):
    __tablename__ = "business_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    client_config: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
