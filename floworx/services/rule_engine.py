"""
Escalation rule engine.

Loads a user's enabled rules (cached), runs each rule's condition through
the `ConditionEvaluator` and returns the rules that fired, highest
priority first. A rule whose predicate raises is logged and skipped so
the remaining rules are still evaluated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from ..core.errors import log_exception
from ..schemas.rule import BatchResult, RuleOut, TriggeredRule, get_default_priority, resolve_priority
from .conditions import ConditionEvaluator, coerce_context, coerce_email
from .config_store import ConfigStore

logger = logging.getLogger("rule_engine")


def _triggered(rule: RuleOut, timestamp: datetime) -> TriggeredRule:
    return TriggeredRule(
        rule_id=rule.id,
        rule=rule,
        action=rule.action,
        priority=resolve_priority(rule.priority, rule.condition),
        condition=rule.condition,
        value=rule.value,
        description=rule.description or f"Rule triggered: {rule.condition}",
        timestamp=timestamp,
    )


class BusinessRulesEngine:
    def __init__(self, store: ConfigStore, evaluator: ConditionEvaluator) -> None:
        self.store = store
        self.evaluator = evaluator

    def evaluate_rules(self, email: Any, user_id: str, context: Any = None) -> List[TriggeredRule]:
        """
        Evaluate every enabled rule of `user_id` against `email`.

        Returns the triggered rules sorted by priority, highest first. A
        failure to load the rule set is logged and yields an empty list.
        """
        email = coerce_email(email)
        context = coerce_context(context)
        try:
            rules = self.store.load_enabled_rules(user_id)
        except Exception as exc:
            log_exception(logger, "Failed to load escalation rules", exc=exc, user_id=user_id)
            return []

        triggered: List[TriggeredRule] = []
        for rule in rules:
            try:
                fired = self.evaluator.evaluate(rule.condition, email, user_id, context.for_rule(rule.value))
            except Exception as exc:
                logger.error(
                    "Rule %s (%s) failed for user %s: %s",
                    rule.id,
                    rule.condition,
                    user_id,
                    exc,
                    exc_info=exc,
                )
                continue
            if fired:
                triggered.append(_triggered(rule, datetime.now(timezone.utc)))

        # Rules arrive sorted; sort again so the result does not depend on it.
        triggered.sort(key=lambda t: t.priority, reverse=True)
        if triggered:
            logger.info(
                "Triggered %d rule(s) for user %s email %s: %s",
                len(triggered),
                user_id,
                email.id,
                ", ".join(t.condition for t in triggered),
            )
        return triggered

    def evaluate_batch(self, emails: Iterable[Any], user_id: str, context: Any = None) -> List[BatchResult]:
        """Evaluate each email independently; one failure never affects the others."""
        results: List[BatchResult] = []
        for raw in emails:
            raw_id = raw.get("id") if isinstance(raw, dict) else getattr(raw, "id", None)
            email_id = None if raw_id is None else str(raw_id)
            try:
                rules = self.evaluate_rules(raw, user_id, context)
            except Exception as exc:
                logger.error("Batch evaluation failed for email %s: %s", email_id, exc)
                results.append(BatchResult(email_id=email_id, success=False, error=str(exc)))
                continue
            results.append(BatchResult(email_id=email_id, success=True, rules=rules))
        return results

    def evaluate_condition(self, condition: str, email: Any, user_id: str, context: Any = None) -> bool:
        return self.evaluator.evaluate(condition, email, user_id, context)

    @staticmethod
    def get_default_priority(condition: Optional[str]) -> int:
        return get_default_priority(condition)
