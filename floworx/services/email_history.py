"""
Read access to the inbound email log.

The log is written by the email-processing pipeline. The rule engine reads
it to answer sender-history questions and to build escalation statistics.
Rows that fail to convert are skipped so one malformed record never hides
the rest of the history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..models.email_log import EmailLog

logger = logging.getLogger("email_history")


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _db_time(dt: datetime) -> datetime:
    # Stored timestamps are UTC; compare as naive UTC so SQLite string ordering holds.
    return _ensure_utc(dt).replace(tzinfo=None)


@dataclass(frozen=True)
class EmailRecord:
    id: str
    email_from: str
    created_at: datetime
    response_sent: bool
    escalated: bool
    category: Optional[str] = None
    urgency: Optional[str] = None
    escalation_reason: Optional[str] = None


def _to_record(row: EmailLog) -> EmailRecord:
    if row.created_at is None:
        raise ValueError("missing created_at")
    return EmailRecord(
        id=str(row.id),
        email_from=str(row.email_from),
        created_at=_ensure_utc(row.created_at),
        response_sent=bool(row.response_sent),
        escalated=bool(row.escalated),
        category=row.category,
        urgency=row.urgency,
        escalation_reason=row.escalation_reason,
    )


def _records(rows: Iterable[EmailLog]) -> list[EmailRecord]:
    records: list[EmailRecord] = []
    for row in rows:
        try:
            records.append(_to_record(row))
        except Exception as exc:
            logger.warning("Skipping malformed email log row id=%s: %s", getattr(row, "id", None), exc)
            continue
    return records


class EmailHistoryStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return _ensure_utc(self._clock())

    def _sender_window(self, user_id: str, sender: str, window: timedelta):
        since = self.now() - window
        return (
            select(EmailLog)
            .where(
                EmailLog.user_id == user_id,
                EmailLog.email_from == (sender or "").strip().lower(),
                EmailLog.created_at >= _db_time(since),
            )
            .order_by(EmailLog.created_at.desc())
        )

    def recent_from_sender(self, user_id: str, sender: str, window: timedelta) -> list[EmailRecord]:
        """Messages from `sender` within the trailing `window`, newest first."""
        stmt = self._sender_window(user_id, sender, window)
        with self._session_factory() as db:
            return _records(db.execute(stmt).scalars().all())

    def latest_from_sender(self, user_id: str, sender: str, window: timedelta) -> Optional[EmailRecord]:
        """
        Newest message from `sender` within `window`.

        Returns None when there is none, or when the newest row is malformed:
        an older row must not stand in for it.
        """
        stmt = self._sender_window(user_id, sender, window).limit(1)
        with self._session_factory() as db:
            row = db.execute(stmt).scalars().first()
            if row is None:
                return None
            try:
                return _to_record(row)
            except Exception as exc:
                logger.warning("Newest email log row id=%s is malformed: %s", getattr(row, "id", None), exc)
                return None

    def logs_since(self, user_id: str, since: datetime) -> list[EmailRecord]:
        stmt = select(EmailLog).where(
            EmailLog.user_id == user_id,
            EmailLog.created_at >= _db_time(since),
        )
        with self._session_factory() as db:
            return _records(db.execute(stmt).scalars().all())

    def log_email(
        self,
        user_id: str,
        email_from: str,
        *,
        subject: Optional[str] = None,
        category: Optional[str] = None,
        urgency: Optional[str] = None,
        sentiment: Optional[str] = None,
        escalated: bool = False,
        escalation_reason: Optional[str] = None,
        response_sent: bool = False,
        created_at: Optional[datetime] = None,
    ) -> str:
        row = EmailLog(
            user_id=user_id,
            email_from=(email_from or "").strip().lower(),
            email_subject=subject,
            category=category,
            urgency=urgency,
            sentiment=sentiment,
            escalated=escalated,
            escalation_reason=escalation_reason,
            response_sent=response_sent,
            created_at=_db_time(created_at or self.now()),
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            return row.id

    def mark_responded(self, log_id: str) -> bool:
        with self._session_factory() as db:
            row = db.get(EmailLog, log_id)
            if row is None:
                return False
            row.response_sent = True
            db.commit()
            return True
