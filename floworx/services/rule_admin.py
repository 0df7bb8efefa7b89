"""
Administration of escalation rules: validation, CRUD and escalation stats.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import Any, List, Optional

from ..core.errors import RuleValidationError, log_exception
from ..schemas.rule import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    VALID_ACTIONS,
    VALID_CONDITIONS,
    RuleOut,
    RuleStats,
    ValidationResult,
    get_default_priority,
)
from .config_store import ConfigStore
from .email_history import EmailHistoryStore

logger = logging.getLogger("rule_admin")

TIMEFRAME_HOURS = {"24h": 24, "7d": 168, "30d": 720}
DEFAULT_TIMEFRAME_HOURS = 720

RULE_FIELDS = ("condition", "value", "action", "priority", "description", "enabled")


def timeframe_hours(timeframe: Optional[str]) -> int:
    return TIMEFRAME_HOURS.get(timeframe or "", DEFAULT_TIMEFRAME_HOURS)


def _as_dict(data: Any, *, exclude_unset: bool = False) -> dict:
    if hasattr(data, "model_dump"):
        return data.model_dump(exclude_unset=exclude_unset)
    return dict(data or {})


def validate_rule(data: Any) -> ValidationResult:
    rule = _as_dict(data)
    errors: List[str] = []
    condition = rule.get("condition")
    action = rule.get("action")
    if not condition:
        errors.append("Condition is required")
    elif condition not in VALID_CONDITIONS:
        errors.append(f"Invalid condition: {condition}")
    if not action:
        errors.append("Action is required")
    elif action not in VALID_ACTIONS:
        errors.append(f"Invalid action: {action}")
    priority = rule.get("priority")
    if priority is not None:
        if isinstance(priority, bool) or not isinstance(priority, int) or not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            errors.append(f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
    return ValidationResult.from_errors(errors)


class RuleAdmin:
    def __init__(self, store: ConfigStore, history: EmailHistoryStore) -> None:
        self.store = store
        self.history = history

    def validate_rule(self, data: Any) -> ValidationResult:
        return validate_rule(data)

    def get_rules(self, user_id: str) -> List[RuleOut]:
        """All rules of `user_id`, enabled or not, highest priority first."""
        return self.store.fetch_rules(user_id)

    def create_rule(self, user_id: str, data: Any) -> RuleOut:
        rule = _as_dict(data)
        result = validate_rule(rule)
        if not result.valid:
            raise RuleValidationError(result.errors)
        payload = {key: rule.get(key) for key in RULE_FIELDS}
        if payload["priority"] is None:
            payload["priority"] = get_default_priority(payload["condition"])
        if payload["enabled"] is None:
            payload["enabled"] = True
        created = self.store.insert_rule(user_id, payload)
        self.store.invalidate_rules(user_id)
        logger.info("Created rule id=%s user_id=%s condition=%s", created.id, user_id, created.condition)
        return created

    def update_rule(self, rule_id: int, updates: Any) -> RuleOut:
        """
        Apply a partial update to rule `rule_id`.

        The merged rule is validated before anything is written. Raises
        RuleNotFoundError for an unknown id. Clears the rule cache of every
        user, not just the owner of the rule.
        """
        changes = {k: v for k, v in _as_dict(updates, exclude_unset=True).items() if k in RULE_FIELDS}
        existing = self.store.get_rule(rule_id)
        if existing is not None:
            merged = existing.model_dump()
            merged.update(changes)
            result = validate_rule(merged)
            if not result.valid:
                raise RuleValidationError(result.errors)
        updated = self.store.update_rule(rule_id, changes)
        self.store.invalidate_rules()
        logger.info("Updated rule id=%s fields=%s", rule_id, ",".join(sorted(changes)) or "-")
        return updated

    def delete_rule(self, rule_id: int) -> RuleOut:
        deleted = self.store.delete_rule(rule_id)
        self.store.invalidate_rules()
        logger.info("Deleted rule id=%s user_id=%s", rule_id, deleted.user_id)
        return deleted

    def get_rule_stats(self, user_id: str, timeframe: str = "24h") -> Optional[RuleStats]:
        """
        Escalation counts over the trailing window (24h, 7d, anything else
        30 days). Returns None when the email log cannot be read.
        """
        since = self.history.now() - timedelta(hours=timeframe_hours(timeframe))
        try:
            logs = self.history.logs_since(user_id, since)
        except Exception as exc:
            log_exception(logger, "Failed to get rule stats", exc=exc, user_id=user_id, timeframe=timeframe)
            return None
        by_category: Counter = Counter()
        by_urgency: Counter = Counter()
        reasons: Counter = Counter()
        for log in logs:
            by_category[log.category or "unknown"] += 1
            by_urgency[log.urgency or "unknown"] += 1
            if log.escalated and log.escalation_reason:
                reasons[log.escalation_reason] += 1
        return RuleStats(
            timeframe=timeframe,
            since=since,
            total=len(logs),
            escalated=sum(1 for log in logs if log.escalated),
            by_category=dict(by_category),
            by_urgency=dict(by_urgency),
            escalation_reasons=dict(reasons),
        )
