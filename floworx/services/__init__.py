"""
Service layer for the FloWorx rules backend.

This package holds the configuration store, the condition predicates, the
rule evaluation engine and rule administration.
"""

from .config_store import ConfigStore, ConfigType
from .conditions import ConditionEvaluator
from .email_history import EmailHistoryStore
from .rule_admin import RuleAdmin
from .rule_engine import BusinessRulesEngine

__all__ = [
    "BusinessRulesEngine",
    "ConditionEvaluator",
    "ConfigStore",
    "ConfigType",
    "EmailHistoryStore",
    "RuleAdmin",
]
