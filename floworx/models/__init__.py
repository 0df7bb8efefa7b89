"""
SQLAlchemy model base class for the FloWorx rules backend.

This package defines ORM models for per-user configuration (escalation
rules, business hours, notification settings, response templates,
approval workflows, business profiles) and the email log that the
history-based conditions read. All models inherit from `Base`.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


from .escalation_rule import EscalationRule  # noqa: E402,F401
from .business_hours import BusinessHours  # noqa: E402,F401
from .notification_settings import NotificationSettings  # noqa: E402,F401
from .response_template import ResponseTemplate  # noqa: E402,F401
from .approval_workflow import ApprovalWorkflow  # noqa: E402,F401
from .business_profile import BusinessProfile  # noqa: E402,F401
from .email_log import EmailLog  # noqa: E402,F401

__all__ = [
    "Base",
    "utcnow",

    # Rules
    "EscalationRule",

    # Singleton configuration
    "BusinessHours",
    "NotificationSettings",
    "BusinessProfile",

    # Collection configuration
    "ResponseTemplate",
    "ApprovalWorkflow",

    # History
    "EmailLog",
]
