import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from floworx.core.cache import TTLCache
from floworx.models import Base
from floworx.models.escalation_rule import EscalationRule
from floworx.services.conditions import ConditionEvaluator
from floworx.services.config_store import ConfigStore
from floworx.services.email_history import EmailHistoryStore
from floworx.services.rule_engine import BusinessRulesEngine

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def _make_session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


def _make_engine():
    session_factory = _make_session_factory()
    store = ConfigStore(session_factory, config_cache=TTLCache(600), rules_cache=TTLCache(300))
    history = EmailHistoryStore(session_factory, clock=lambda: NOW)
    evaluator = ConditionEvaluator(store, history, clock=lambda: NOW)
    return BusinessRulesEngine(store, evaluator), store, session_factory


def test_gas_leak_triggers_emergency_escalation():
    engine, store, _ = _make_engine()
    store.set_config(
        "u1",
        "escalation_rules",
        [
            {"condition": "keyword_match", "action": "create_ticket"},
            {"condition": "emergency_keywords", "action": "escalate", "priority": 10},
            {"condition": "complaint_detected", "action": "notify_manager"},
        ],
    )

    triggered = engine.evaluate_rules(
        {"id": "m1", "from": "owner@example.com", "subject": "Gas leak!", "body": "Smell gas in the basement"},
        "u1",
    )

    assert [t.condition for t in triggered] == ["emergency_keywords"]
    top = triggered[0]
    assert top.action == "escalate"
    assert top.priority == 10
    assert top.description == "Rule triggered: emergency_keywords"
    assert top.rule.user_id == "u1"


def test_results_sorted_by_priority_descending():
    engine, store, _ = _make_engine()
    store.set_config(
        "u1",
        "escalation_rules",
        [
            {"condition": "all_emails", "action": "notify_manager", "description": "Copy everything"},
            {"condition": "high_urgency", "action": "send_sms"},
            {"condition": "sentiment_negative", "action": "high_priority", "priority": 4},
        ],
    )

    triggered = engine.evaluate_rules(
        {"from": "a@example.com", "subject": "Broken heater", "body": "Please help, we are upset"},
        "u1",
        {"classification": {"urgency": "critical"}},
    )

    assert [(t.condition, t.priority) for t in triggered] == [
        ("high_urgency", 9),
        ("sentiment_negative", 4),
        ("all_emails", 1),
    ]
    assert triggered[-1].description == "Copy everything"


def test_disabled_and_unknown_rules_never_trigger():
    engine, store, session_factory = _make_engine()
    with session_factory() as db:
        db.add(EscalationRule(user_id="u1", condition="all_emails", action="escalate", priority=5, enabled=False))
        db.add(EscalationRule(user_id="u1", condition="moon_phase", action="escalate", priority=9, enabled=True))
        db.add(EscalationRule(user_id="u1", condition="keyword_match", action="auto_reply", priority=2, enabled=True))
        db.commit()

    triggered = engine.evaluate_rules({"from": "a@example.com", "subject": "Invoice question"}, "u1")

    assert [t.condition for t in triggered] == ["keyword_match"]


def test_rule_value_is_passed_to_predicates():
    engine, store, _ = _make_engine()
    store.set_config(
        "u1",
        "escalation_rules",
        [
            {"condition": "category_match", "value": "billing", "action": "create_ticket"},
            {"condition": "category_match", "value": "support", "action": "auto_reply"},
        ],
    )

    triggered = engine.evaluate_rules({"from": "a@example.com"}, "u1", {"classification": {"category": "billing"}})

    assert [(t.value, t.action) for t in triggered] == [("billing", "create_ticket")]


def test_failing_rule_does_not_block_others(monkeypatch, caplog):
    engine, store, _ = _make_engine()
    store.set_config(
        "u1",
        "escalation_rules",
        [
            {"condition": "keyword_match", "action": "create_ticket", "priority": 8},
            {"condition": "all_emails", "action": "notify_manager"},
        ],
    )

    def _boom(email, user_id, context):
        raise RuntimeError("predicate exploded")

    monkeypatch.setitem(engine.evaluator.predicates, "keyword_match", _boom)
    caplog.set_level(logging.ERROR)

    triggered = engine.evaluate_rules({"from": "a@example.com", "subject": "quote"}, "u1")

    assert [t.condition for t in triggered] == ["all_emails"]
    assert any("predicate exploded" in rec.message for rec in caplog.records)


def test_rule_load_failure_returns_empty(monkeypatch):
    engine, store, _ = _make_engine()

    def _unavailable(user_id):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(store, "load_enabled_rules", _unavailable)

    assert engine.evaluate_rules({"from": "a@example.com", "subject": "urgent"}, "u1") == []


def test_rule_set_is_loaded_once_per_ttl(monkeypatch):
    engine, store, _ = _make_engine()
    store.set_config("u1", "escalation_rules", [{"condition": "all_emails", "action": "auto_reply"}])
    calls = []
    original = store.fetch_rules

    def _counting(user_id, *, enabled_only=False):
        calls.append(user_id)
        return original(user_id, enabled_only=enabled_only)

    monkeypatch.setattr(store, "fetch_rules", _counting)

    engine.evaluate_rules({"from": "a@example.com"}, "u1")
    engine.evaluate_rules({"from": "b@example.com"}, "u1")

    assert calls == ["u1"]


def test_evaluate_batch_isolates_failures():
    engine, store, _ = _make_engine()
    store.set_config("u1", "escalation_rules", [{"condition": "emergency_keywords", "action": "escalate"}])

    results = engine.evaluate_batch(
        [
            {"id": "m1", "from": "a@example.com", "subject": "Fire in the kitchen"},
            {"id": 2, "from": None, "subject": "broken payload"},
            {"id": "m3", "from": "c@example.com", "subject": "Hello"},
        ],
        "u1",
    )

    assert [(r.email_id, r.success) for r in results] == [("m1", True), ("2", False), ("m3", True)]
    assert [t.condition for t in results[0].rules] == ["emergency_keywords"]
    assert results[1].error
    assert results[2].rules == []


def test_evaluate_condition_and_default_priority():
    engine, _, _ = _make_engine()
    assert engine.evaluate_condition("all_emails", {"from": "a@example.com"}, "u1") is True
    assert engine.evaluate_condition("nonsense", {"from": "a@example.com"}, "u1") is False
    assert engine.get_default_priority("emergency_keywords") == 10
    assert engine.get_default_priority("urgency_level") == 1
