"""
Condition predicates that decide whether an escalation rule fires.

Every `ConditionName` maps to exactly one predicate with the signature
``(email, user_id, context) -> bool``. Content predicates only look at the
email text and the classification context. Storage-backed predicates read
business hours, the VIP registry or the email log; they run on a worker
pool with a per-call timeout, and a timeout counts as "not triggered".
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from ..schemas.email import EmailIn, EvaluationContext
from ..schemas.rule import ConditionName
from .after_hours import is_after_hours
from .config_store import ConfigStore
from .email_history import EmailHistoryStore

logger = logging.getLogger("conditions")

HIGH_URGENCY_KEYWORDS = (
    "urgent", "asap", "emergency", "critical", "immediate", "help",
    "broken", "not working", "stopped", "failed", "down", "out of order",
)
BUSINESS_KEYWORDS = (
    "quote", "estimate", "pricing", "cost", "payment", "invoice",
    "schedule", "appointment", "booking", "availability", "warranty",
    "guarantee", "service", "repair", "maintenance",
)
MANAGER_KEYWORDS = (
    "manager", "supervisor", "complaint", "refund", "cancel", "lawsuit",
    "legal", "attorney", "better business bureau", "review", "yelp",
    "google review", "social media",
)
COMPLAINT_KEYWORDS = (
    "complaint", "complain", "unhappy", "dissatisfied", "disappointed",
    "poor service", "bad experience", "terrible", "awful", "horrible",
    "refund", "money back", "cancel", "dispute",
)
EMERGENCY_KEYWORDS = (
    "emergency", "urgent", "asap", "immediately", "right now", "can't wait",
    "critical", "life threatening", "dangerous", "flooding", "fire", "smoke",
    "gas leak", "electrical hazard",
)
NEGATIVE_SENTIMENT_KEYWORDS = (
    "angry", "frustrated", "upset", "mad", "furious", "disappointed",
    "terrible", "awful", "horrible", "worst", "hate", "disgusted",
)

HIGH_URGENCY_LEVELS = frozenset({"critical", "high"})
RESPONSE_OVERDUE_WINDOW = timedelta(hours=48)
MULTIPLE_EMAILS_WINDOW = timedelta(hours=24)
MULTIPLE_EMAILS_THRESHOLD = 2

Predicate = Callable[[EmailIn, str, EvaluationContext], bool]


class VipRegistry(Protocol):
    def is_vip(self, user_id: str, sender: str) -> bool:
        ...


class NoVipRegistry:
    """Registry used until a customer list is wired in: nobody is a VIP."""

    def is_vip(self, user_id: str, sender: str) -> bool:
        return False


def email_text(email: EmailIn) -> str:
    return f"{email.subject or ''} {email.body or ''}".lower()


def matches_keywords(email: EmailIn, keywords: Sequence[str]) -> bool:
    text = email_text(email)
    return any(keyword in text for keyword in keywords)


def coerce_email(email: Any) -> EmailIn:
    if isinstance(email, EmailIn):
        return email
    return EmailIn.model_validate(email or {})


def coerce_context(context: Any) -> EvaluationContext:
    if isinstance(context, EvaluationContext):
        return context
    return EvaluationContext.model_validate(context or {})


def _classification_field(context: EvaluationContext, field: str) -> Optional[str]:
    if context.classification is None:
        return None
    return getattr(context.classification, field)


class ConditionEvaluator:
    """
    Registry of condition predicates plus the worker pool that bounds the
    storage-backed ones.
    """

    STORAGE_CONDITIONS = frozenset(
        {
            ConditionName.AFTER_HOURS.value,
            ConditionName.CUSTOMER_VIP.value,
            ConditionName.RESPONSE_OVERDUE.value,
            ConditionName.MULTIPLE_EMAILS.value,
        }
    )

    def __init__(
        self,
        store: ConfigStore,
        history: EmailHistoryStore,
        vip_registry: Optional[VipRegistry] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        timeout: float = 3.0,
        workers: int = 4,
    ) -> None:
        self.store = store
        self.history = history
        self.vip_registry = vip_registry or NoVipRegistry()
        self.timeout = timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="predicate")
        self.predicates: Dict[str, Predicate] = {
            ConditionName.AFTER_HOURS.value: self._after_hours,
            ConditionName.HIGH_URGENCY.value: self._high_urgency,
            ConditionName.KEYWORD_MATCH.value: lambda email, user_id, ctx: matches_keywords(email, BUSINESS_KEYWORDS),
            ConditionName.MANAGER_REQUIRED.value: lambda email, user_id, ctx: matches_keywords(email, MANAGER_KEYWORDS),
            ConditionName.CUSTOMER_VIP.value: self._customer_vip,
            ConditionName.COMPLAINT_DETECTED.value: self._complaint_detected,
            ConditionName.EMERGENCY_KEYWORDS.value: lambda email, user_id, ctx: matches_keywords(email, EMERGENCY_KEYWORDS),
            ConditionName.RESPONSE_OVERDUE.value: self._response_overdue,
            ConditionName.MULTIPLE_EMAILS.value: self._multiple_emails,
            ConditionName.URGENCY_LEVEL.value: lambda email, user_id, ctx: self._field_equals_rule_value(ctx, "urgency"),
            ConditionName.CATEGORY_MATCH.value: lambda email, user_id, ctx: self._field_equals_rule_value(ctx, "category"),
            ConditionName.SENTIMENT_NEGATIVE.value: self._sentiment_negative,
            ConditionName.ALL_EMAILS.value: lambda email, user_id, ctx: True,
        }
        missing = [c.value for c in ConditionName if c.value not in self.predicates]
        if missing:
            raise RuntimeError(f"No predicate registered for conditions: {', '.join(missing)}")

    def now(self) -> datetime:
        return self._clock()

    def evaluate(self, condition: Any, email: Any, user_id: str, context: Any = None) -> bool:
        """
        Run the predicate for `condition`.

        Unknown conditions log a warning and return False. Exceptions raised
        by a predicate propagate to the caller; a storage-backed predicate
        that exceeds the timeout logs a warning and returns False.
        """
        name = condition.value if isinstance(condition, ConditionName) else str(condition)
        predicate = self.predicates.get(name)
        if predicate is None:
            logger.warning("Unknown condition %r; rule not triggered", name)
            return False
        email = coerce_email(email)
        context = coerce_context(context)
        if name not in self.STORAGE_CONDITIONS:
            return bool(predicate(email, user_id, context))
        future = self._executor.submit(predicate, email, user_id, context)
        try:
            return bool(future.result(timeout=self.timeout))
        except FutureTimeout:
            future.cancel()
            logger.warning(
                "Condition %s timed out after %.1fs for user %s; treating as not triggered",
                name,
                self.timeout,
                user_id,
            )
            return False

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    # -- content predicates ---------------------------------------------------

    def _high_urgency(self, email: EmailIn, user_id: str, context: EvaluationContext) -> bool:
        urgency = _classification_field(context, "urgency")
        if urgency:
            return urgency in HIGH_URGENCY_LEVELS
        return matches_keywords(email, HIGH_URGENCY_KEYWORDS)

    def _complaint_detected(self, email: EmailIn, user_id: str, context: EvaluationContext) -> bool:
        category = _classification_field(context, "category")
        if category:
            return category == "complaint"
        return matches_keywords(email, COMPLAINT_KEYWORDS)

    def _sentiment_negative(self, email: EmailIn, user_id: str, context: EvaluationContext) -> bool:
        sentiment = _classification_field(context, "sentiment")
        if sentiment:
            return sentiment == "negative"
        return matches_keywords(email, NEGATIVE_SENTIMENT_KEYWORDS)

    @staticmethod
    def _field_equals_rule_value(context: EvaluationContext, field: str) -> bool:
        actual = _classification_field(context, field)
        expected = context.rule_value
        if not actual or expected is None or expected == "":
            return False
        return actual == expected

    # -- storage-backed predicates ----------------------------------------------

    def _after_hours(self, email: EmailIn, user_id: str, context: EvaluationContext) -> bool:
        return is_after_hours(self.now(), self.store.find_business_hours(user_id))

    def _customer_vip(self, email: EmailIn, user_id: str, context: EvaluationContext) -> bool:
        if not email.sender:
            return False
        return bool(self.vip_registry.is_vip(user_id, email.sender))

    def _response_overdue(self, email: EmailIn, user_id: str, context: EvaluationContext) -> bool:
        if not email.sender:
            return False
        latest = self.history.latest_from_sender(user_id, email.sender, RESPONSE_OVERDUE_WINDOW)
        if latest is None:
            return False
        return not latest.response_sent

    def _multiple_emails(self, email: EmailIn, user_id: str, context: EvaluationContext) -> bool:
        if not email.sender:
            return False
        recent = self.history.recent_from_sender(user_id, email.sender, MULTIPLE_EMAILS_WINDOW)
        return len(recent) >= MULTIPLE_EMAILS_THRESHOLD
