from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from floworx.core.cache import TTLCache
from floworx.core.errors import RuleNotFoundError, RuleValidationError
from floworx.models import Base
from floworx.schemas.rule import RuleCreate, RuleUpdate
from floworx.services.config_store import ConfigStore
from floworx.services.email_history import EmailHistoryStore
from floworx.services.rule_admin import RuleAdmin, timeframe_hours, validate_rule

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


def _make_admin():
    session_factory = _make_session_factory()
    store = ConfigStore(session_factory, config_cache=TTLCache(600), rules_cache=TTLCache(300))
    history = EmailHistoryStore(session_factory, clock=lambda: NOW)
    return RuleAdmin(store, history), store, history


def test_validate_rule_names_bad_values():
    result = validate_rule({"condition": "bogus", "action": "teleport", "priority": 0})
    assert result.valid is False
    assert result.errors == [
        "Invalid condition: bogus",
        "Invalid action: teleport",
        "Priority must be between 1 and 10",
    ]
    assert validate_rule({}).errors == ["Condition is required", "Action is required"]
    assert validate_rule({"condition": "after_hours", "action": "auto_reply", "priority": 10}).valid is True


def test_create_rule_applies_defaults():
    admin, _, _ = _make_admin()

    rule = admin.create_rule("u1", RuleCreate(condition="customer_vip", action="call_customer"))

    assert rule.priority == 7
    assert rule.enabled is True
    assert rule.user_id == "u1"


def test_create_rule_rejects_invalid_input():
    admin, store, _ = _make_admin()

    with pytest.raises(RuleValidationError) as excinfo:
        admin.create_rule("u1", {"condition": "bogus", "action": "escalate"})

    assert excinfo.value.errors == ["Invalid condition: bogus"]
    assert store.fetch_rules("u1") == []


def test_create_rule_evicts_cached_rule_set():
    admin, store, _ = _make_admin()
    assert store.load_enabled_rules("u1") == ()

    admin.create_rule("u1", {"condition": "all_emails", "action": "auto_reply"})

    assert [r.condition for r in store.load_enabled_rules("u1")] == ["all_emails"]


def test_get_rules_includes_disabled_sorted_by_priority():
    admin, _, _ = _make_admin()
    admin.create_rule("u1", {"condition": "all_emails", "action": "auto_reply"})
    admin.create_rule("u1", {"condition": "manager_required", "action": "notify_manager", "enabled": False})
    admin.create_rule("u1", {"condition": "after_hours", "action": "auto_reply"})

    rules = admin.get_rules("u1")

    assert [(r.condition, r.enabled) for r in rules] == [
        ("manager_required", False),
        ("after_hours", True),
        ("all_emails", True),
    ]


def test_update_rule_partial_and_clears_every_users_cache():
    admin, store, _ = _make_admin()
    rule = admin.create_rule("u1", {"condition": "all_emails", "action": "auto_reply"})
    admin.create_rule("u2", {"condition": "high_urgency", "action": "send_sms"})
    store.load_enabled_rules("u1")
    store.load_enabled_rules("u2")
    assert len(store.rules_cache) == 2

    updated = admin.update_rule(rule.id, RuleUpdate(priority=6, description="Everything"))

    assert updated.priority == 6
    assert updated.description == "Everything"
    assert updated.condition == "all_emails"
    assert updated.action == "auto_reply"
    assert len(store.rules_cache) == 0


def test_update_rule_validates_merged_rule():
    admin, _, _ = _make_admin()
    rule = admin.create_rule("u1", {"condition": "all_emails", "action": "auto_reply"})

    with pytest.raises(RuleValidationError):
        admin.update_rule(rule.id, {"condition": "bogus"})
    with pytest.raises(RuleNotFoundError):
        admin.update_rule(9999, {"priority": 3})

    assert admin.get_rules("u1")[0].condition == "all_emails"


def test_delete_rule():
    admin, store, _ = _make_admin()
    rule = admin.create_rule("u1", {"condition": "all_emails", "action": "auto_reply"})
    store.load_enabled_rules("u1")

    deleted = admin.delete_rule(rule.id)

    assert deleted.id == rule.id
    assert store.load_enabled_rules("u1") == ()
    with pytest.raises(RuleNotFoundError):
        admin.delete_rule(rule.id)


def test_timeframe_mapping():
    assert timeframe_hours("24h") == 24
    assert timeframe_hours("7d") == 168
    assert timeframe_hours("30d") == 720
    assert timeframe_hours("fortnight") == 720


def test_rule_stats_aggregates_window():
    admin, _, history = _make_admin()
    history.log_email("u1", "a@example.com", category="complaint", urgency="high", escalated=True,
                      escalation_reason="complaint_detected", created_at=NOW - timedelta(hours=1))
    history.log_email("u1", "b@example.com", category="complaint", urgency="low", escalated=True,
                      escalation_reason="complaint_detected", created_at=NOW - timedelta(hours=3))
    history.log_email("u1", "c@example.com", category="inquiry", urgency="low", created_at=NOW - timedelta(hours=5))
    history.log_email("u1", "d@example.com", category="inquiry", urgency="low", created_at=NOW - timedelta(days=3))
    history.log_email("u2", "e@example.com", category="inquiry", urgency="low", created_at=NOW - timedelta(hours=1))

    day = admin.get_rule_stats("u1", "24h")
    week = admin.get_rule_stats("u1", "7d")

    assert day.total == 3
    assert day.escalated == 2
    assert day.by_category == {"complaint": 2, "inquiry": 1}
    assert day.by_urgency == {"high": 1, "low": 2}
    assert day.escalation_reasons == {"complaint_detected": 2}
    assert day.since == NOW - timedelta(hours=24)
    assert week.total == 4


def test_rule_stats_returns_none_on_failure(monkeypatch):
    admin, _, history = _make_admin()

    def _unavailable(user_id, since):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(history, "logs_since", _unavailable)

    assert admin.get_rule_stats("u1", "24h") is None
