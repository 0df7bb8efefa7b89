import logging
import threading
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from floworx.core.cache import TTLCache
from floworx.models import Base
from floworx.schemas.rule import ConditionName
from floworx.services import email_history
from floworx.services.conditions import ConditionEvaluator, matches_keywords
from floworx.services.config_store import ConfigStore
from floworx.services.email_history import EmailHistoryStore
from floworx.schemas.email import EmailIn, EvaluationContext

# Monday 2026-01-05 12:00 UTC
NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
SENDER = "Customer@Example.com"


def _make_session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


def _make_evaluator(now: datetime = NOW, **kwargs):
    session_factory = _make_session_factory()
    store = ConfigStore(session_factory, config_cache=TTLCache(600), rules_cache=TTLCache(300))
    history = EmailHistoryStore(session_factory, clock=lambda: now)
    evaluator = ConditionEvaluator(store, history, clock=lambda: now, **kwargs)
    return evaluator, store, history


def _email(subject: str = "", body: str = "", sender: str = SENDER) -> dict:
    return {"id": "m1", "from": sender, "subject": subject, "body": body}


def test_every_condition_has_a_predicate():
    evaluator, _, _ = _make_evaluator()
    assert set(evaluator.predicates) == {c.value for c in ConditionName}


def test_keyword_matching_is_case_insensitive_over_subject_and_body():
    email = EmailIn.model_validate(_email(subject="GAS LEAK", body="in the basement"))
    assert matches_keywords(email, ["gas leak"]) is True
    assert matches_keywords(email, ["leak in"]) is True
    assert matches_keywords(email, ["flooding"]) is False


def test_content_predicates():
    evaluator, _, _ = _make_evaluator()
    cases = [
        ("keyword_match", _email(subject="Need a quote for repairs"), True),
        ("keyword_match", _email(subject="Hello there"), False),
        ("manager_required", _email(body="I will leave a Yelp review"), True),
        ("emergency_keywords", _email(body="There is smoke in the kitchen"), True),
        ("emergency_keywords", _email(body="Routine question"), False),
        ("complaint_detected", _email(body="I want my money back"), True),
        ("sentiment_negative", _email(body="I am so frustrated"), True),
        ("sentiment_negative", _email(body="Thanks so much"), False),
        ("all_emails", _email(), True),
    ]
    for condition, email, expected in cases:
        assert evaluator.evaluate(condition, email, "u1") is expected, condition


def test_high_urgency_prefers_classification():
    evaluator, _, _ = _make_evaluator()
    urgent_text = _email(body="This is urgent")
    calm_text = _email(body="Whenever you get a chance")

    assert evaluator.evaluate("high_urgency", calm_text, "u1", {"classification": {"urgency": "critical"}}) is True
    assert evaluator.evaluate("high_urgency", calm_text, "u1", {"classification": {"urgency": "high"}}) is True
    assert evaluator.evaluate("high_urgency", urgent_text, "u1", {"classification": {"urgency": "low"}}) is False
    assert evaluator.evaluate("high_urgency", urgent_text, "u1", {}) is True
    assert evaluator.evaluate("high_urgency", calm_text, "u1", None) is False


def test_classification_shortcuts_for_complaint_and_sentiment():
    evaluator, _, _ = _make_evaluator()
    plain = _email(body="Please call me")
    assert evaluator.evaluate("complaint_detected", plain, "u1", {"classification": {"category": "complaint"}}) is True
    assert evaluator.evaluate("complaint_detected", plain, "u1", {"classification": {"category": "inquiry"}}) is False
    assert evaluator.evaluate("sentiment_negative", plain, "u1", {"classification": {"sentiment": "negative"}}) is True


def test_present_classification_overrides_keyword_fallback():
    evaluator, _, _ = _make_evaluator()
    cancel = _email(body="can I cancel my appointment?")
    mixed = _email(subject="Best service ever", body="worst wait was worth it")

    assert evaluator.evaluate("complaint_detected", cancel, "u1", {"classification": {"category": "inquiry"}}) is False
    assert evaluator.evaluate("complaint_detected", cancel, "u1", {}) is True
    assert evaluator.evaluate("sentiment_negative", mixed, "u1", {"classification": {"sentiment": "positive"}}) is False
    assert evaluator.evaluate("sentiment_negative", mixed, "u1", {}) is True


def test_urgency_level_and_category_match_need_both_values():
    evaluator, _, _ = _make_evaluator()
    email = _email()
    classification = {"category": "billing", "urgency": "medium"}

    assert evaluator.evaluate("urgency_level", email, "u1", {"classification": classification, "ruleValue": "medium"}) is True
    assert evaluator.evaluate("urgency_level", email, "u1", {"classification": classification, "rule_value": "high"}) is False
    assert evaluator.evaluate("urgency_level", email, "u1", {"classification": classification}) is False
    assert evaluator.evaluate("category_match", email, "u1", {"classification": classification, "ruleValue": "billing"}) is True
    assert evaluator.evaluate("category_match", email, "u1", {"ruleValue": "billing"}) is False


def test_context_keeps_only_classification_and_rule_value():
    context = EvaluationContext.model_validate({"routing": {"queue": "vip"}, "ruleValue": "billing"})
    assert context.model_dump() == {"classification": None, "rule_value": "billing"}

def test_after_hours_without_stored_hours_is_false():
    evaluator, _, _ = _make_evaluator(now=datetime(2026, 1, 10, 3, 0, tzinfo=timezone.utc))
    assert evaluator.evaluate("after_hours", _email(), "u1") is False


def test_after_hours_uses_stored_schedule():
    saturday = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)
    evaluator, store, _ = _make_evaluator(now=saturday)
    store.set_config(
        "u1",
        "business_hours",
        {"schedule": {"monday": {"open": True, "start": "09:00", "end": "17:00"}}, "timezone": "UTC"},
    )
    assert evaluator.evaluate("after_hours", _email(), "u1") is True


def test_multiple_emails_counts_trailing_day():
    evaluator, _, history = _make_evaluator()
    history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=30))
    history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=2))
    assert evaluator.evaluate("multiple_emails", _email(), "u1") is False

    history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=1))
    history.log_email("u1", SENDER, created_at=NOW - timedelta(minutes=5))
    assert evaluator.evaluate("multiple_emails", _email(), "u1") is True
    # Other users' history does not count
    assert evaluator.evaluate("multiple_emails", _email(), "u2") is False


def test_response_overdue_checks_most_recent_message():
    evaluator, _, history = _make_evaluator()
    assert evaluator.evaluate("response_overdue", _email(), "u1") is False

    history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=10), response_sent=True)
    assert evaluator.evaluate("response_overdue", _email(), "u1") is False

    latest = history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=1))
    assert evaluator.evaluate("response_overdue", _email(), "u1") is True

    history.mark_responded(latest)
    assert evaluator.evaluate("response_overdue", _email(), "u1") is False


def test_customer_vip_uses_registry():
    class _Registry:
        def __init__(self):
            self.calls = []

        def is_vip(self, user_id, sender):
            self.calls.append((user_id, sender))
            return sender == "customer@example.com"

    evaluator, _, _ = _make_evaluator()
    assert evaluator.evaluate("customer_vip", _email(), "u1") is False

    registry = _Registry()
    evaluator, _, _ = _make_evaluator(vip_registry=registry)
    assert evaluator.evaluate("customer_vip", _email(), "u1") is True
    assert registry.calls == [("u1", "customer@example.com")]


def test_unknown_condition_is_not_triggered(caplog):
    evaluator, _, _ = _make_evaluator()
    caplog.set_level(logging.WARNING)

    assert evaluator.evaluate("moon_phase", _email(body="urgent"), "u1") is False
    assert any("moon_phase" in rec.message for rec in caplog.records)


def test_slow_storage_predicate_times_out(caplog):
    release = threading.Event()

    class _SlowHistory:
        def now(self):
            return NOW

        def recent_from_sender(self, user_id, sender, window):
            release.wait(2)
            return []

    session_factory = _make_session_factory()
    store = ConfigStore(session_factory)
    evaluator = ConditionEvaluator(store, _SlowHistory(), clock=lambda: NOW, timeout=0.05)
    caplog.set_level(logging.WARNING)
    try:
        assert evaluator.evaluate("multiple_emails", _email(), "u1") is False
    finally:
        release.set()
        evaluator.shutdown()
    assert any("timed out" in rec.message for rec in caplog.records)


def test_malformed_history_rows_are_skipped(monkeypatch, caplog):
    _, _, history = _make_evaluator()
    history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=1))
    history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=2))
    caplog.set_level(logging.WARNING)
    original = email_history._to_record
    seen = []

    def _flaky(row):
        seen.append(row.id)
        if len(seen) == 1:
            raise ValueError("corrupt row")
        return original(row)

    monkeypatch.setattr(email_history, "_to_record", _flaky)

    records = history.recent_from_sender("u1", SENDER, timedelta(hours=24))

    assert len(records) == 1
    assert any("Skipping malformed email log row" in rec.message for rec in caplog.records)


def test_response_overdue_ignores_older_rows_when_newest_is_malformed(monkeypatch, caplog):
    evaluator, _, history = _make_evaluator()
    history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=5))
    newest = history.log_email("u1", SENDER, created_at=NOW - timedelta(hours=1), response_sent=True)
    caplog.set_level(logging.WARNING)
    original = email_history._to_record

    def _corrupt_newest(row):
        if row.id == newest:
            raise ValueError("corrupt row")
        return original(row)

    monkeypatch.setattr(email_history, "_to_record", _corrupt_newest)

    assert history.latest_from_sender("u1", SENDER, timedelta(hours=24)) is None
    assert evaluator.evaluate("response_overdue", _email(), "u1") is False
    assert any("is malformed" in rec.message for rec in caplog.records)
