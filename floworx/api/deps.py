"""
FastAPI dependencies that hand out the process-wide service instances.

Services are built lazily on first use from `settings` and `SessionLocal`
and shared by every request. Tests replace them through
``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from ..core.cache import TTLCache
from ..core.config import settings
from ..core.db import SessionLocal
from ..services.conditions import ConditionEvaluator
from ..services.config_store import ConfigStore
from ..services.email_history import EmailHistoryStore
from ..services.rule_admin import RuleAdmin
from ..services.rule_engine import BusinessRulesEngine


@lru_cache(maxsize=1)
def get_config_store() -> ConfigStore:
    return ConfigStore(
        SessionLocal,
        config_cache=TTLCache(settings.config_cache_ttl_sec),
        rules_cache=TTLCache(settings.rules_cache_ttl_sec),
        default_timezone=settings.default_timezone,
    )


@lru_cache(maxsize=1)
def get_history_store() -> EmailHistoryStore:
    return EmailHistoryStore(SessionLocal)


@lru_cache(maxsize=1)
def get_evaluator() -> ConditionEvaluator:
    return ConditionEvaluator(
        get_config_store(),
        get_history_store(),
        timeout=settings.predicate_timeout_sec,
        workers=settings.predicate_workers,
    )


@lru_cache(maxsize=1)
def get_rules_engine() -> BusinessRulesEngine:
    return BusinessRulesEngine(get_config_store(), get_evaluator())


@lru_cache(maxsize=1)
def get_rule_admin() -> RuleAdmin:
    return RuleAdmin(get_config_store(), get_history_store())
