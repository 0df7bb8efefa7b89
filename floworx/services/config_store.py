"""
Per-user configuration store with a read-through TTL cache.

Every known configuration type resolves to a usable value: rows that do not
exist yet and storage failures both fall back to the documented defaults,
so the rule engine never has to handle a missing configuration.

Singleton types (business hours, notification settings, business profile)
are upserted by user. Collection types (escalation rules, response
templates, approval workflows) are replaced as a whole inside one
transaction; a failed replace leaves the previous rows in place.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from ..core.cache import MISSING, TTLCache
from ..core.errors import (
    ConfigValidationError,
    RuleNotFoundError,
    UnknownConfigTypeError,
    log_exception,
)
from ..models.approval_workflow import ApprovalWorkflow
from ..models.business_hours import BusinessHours
from ..models.business_profile import BusinessProfile
from ..models.escalation_rule import EscalationRule
from ..models.notification_settings import NotificationSettings
from ..models.response_template import ResponseTemplate
from ..schemas.config import (
    ApprovalWorkflowIn,
    BusinessHoursIn,
    EscalationRuleIn,
    NotificationSettingsIn,
    ResponseTemplateIn,
)
from ..schemas.rule import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    VALID_ACTIONS,
    VALID_CONDITIONS,
    RuleOut,
    ValidationResult,
    get_default_priority,
    resolve_priority,
)
from .after_hours import DAY_NAMES, is_valid_timezone

logger = logging.getLogger("config_store")


class ConfigType(str, Enum):
    BUSINESS_HOURS = "business_hours"
    ESCALATION_RULES = "escalation_rules"
    NOTIFICATION_SETTINGS = "notification_settings"
    RESPONSE_TEMPLATES = "response_templates"
    APPROVAL_WORKFLOWS = "approval_workflows"
    BUSINESS_PROFILE = "business_profile"


DEFAULT_TIMEZONE = "America/New_York"

_WEEKDAY_HOURS = {"open": True, "start": "09:00", "end": "17:00"}

DEFAULT_CONFIGS: Dict[str, Any] = {
    ConfigType.BUSINESS_HOURS.value: {
        "schedule": {
            "monday": dict(_WEEKDAY_HOURS),
            "tuesday": dict(_WEEKDAY_HOURS),
            "wednesday": dict(_WEEKDAY_HOURS),
            "thursday": dict(_WEEKDAY_HOURS),
            "friday": dict(_WEEKDAY_HOURS),
            "saturday": {"open": False},
            "sunday": {"open": False},
        },
        "timezone": DEFAULT_TIMEZONE,
        "holiday_schedule": {},
        "emergency_hours": False,
    },
    ConfigType.ESCALATION_RULES.value: [],
    ConfigType.NOTIFICATION_SETTINGS.value: {
        "email_notifications": True,
        "sms_notifications": False,
        "push_notifications": True,
        "phone_number": None,
        "email_address": None,
        "escalation_enabled": True,
        "auto_reply_enabled": True,
        "notification_hours": {"start": "08:00", "end": "20:00"},
    },
    ConfigType.RESPONSE_TEMPLATES.value: [
        {
            "name": "General Inquiry",
            "category": "inquiry",
            "subject_template": "Re: {{subject}}",
            "body_template": "Thank you for your inquiry. We will get back to you within 24 hours.",
            "variables": ["subject"],
            "enabled": True,
        },
        {
            "name": "Urgent Response",
            "category": "urgent",
            "subject_template": "URGENT: Re: {{subject}}",
            "body_template": "We have received your urgent message and will respond immediately.",
            "variables": ["subject"],
            "enabled": True,
        },
    ],
    ConfigType.APPROVAL_WORKFLOWS.value: [],
    ConfigType.BUSINESS_PROFILE.value: {
        "business": {
            "name": "My Business",
            "type": "Service Business",
            "industry": "General",
            "phone": "",
            "email": "",
            "address": "",
        },
        "managers": [],
        "suppliers": [],
    },
}


def coerce_config_type(config_type: Any) -> ConfigType:
    if isinstance(config_type, ConfigType):
        return config_type
    try:
        return ConfigType(str(config_type))
    except ValueError:
        raise UnknownConfigTypeError(str(config_type)) from None


def get_default_config(config_type: Any) -> Any:
    """Fresh copy of the default for `config_type` ({} for unknown types)."""
    key = config_type.value if isinstance(config_type, ConfigType) else str(config_type)
    return copy.deepcopy(DEFAULT_CONFIGS.get(key, {}))


# ---------------------------------------------------------------------------
# Validation (pure, no I/O)
# ---------------------------------------------------------------------------


def _pick(data: dict, snake: str, camel: Optional[str] = None) -> Any:
    if snake in data:
        return data[snake]
    if camel:
        return data.get(camel)
    return None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _priority_errors(prefix: str, priority: Any) -> list[str]:
    if priority is None:
        return []
    if not _is_int(priority) or not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        return [f"{prefix}priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"]
    return []


def _parse_hhmm(value: Any) -> Optional[time]:
    try:
        return datetime.strptime(str(value), "%H:%M").time()
    except ValueError:
        return None


def _validate_business_hours(data: Any) -> list[str]:
    if not isinstance(data, dict):
        return ["Business hours must be an object"]
    errors: list[str] = []
    schedule = data.get("schedule")
    if not schedule:
        errors.append("Schedule is required")
    elif not isinstance(schedule, dict):
        errors.append("Schedule must be an object keyed by day name")
    else:
        for day in DAY_NAMES:
            day_schedule = schedule.get(day)
            if not isinstance(day_schedule, dict) or not day_schedule.get("open"):
                continue
            start = day_schedule.get("start")
            end = day_schedule.get("end")
            if not start or not end:
                errors.append(f"{day} schedule missing start or end time")
                continue
            start_time = _parse_hhmm(start)
            end_time = _parse_hhmm(end)
            if start_time is None:
                errors.append(f"{day} start time must be HH:MM, got {start!r}")
            if end_time is None:
                errors.append(f"{day} end time must be HH:MM, got {end!r}")
            if start_time is not None and end_time is not None and start_time >= end_time:
                errors.append(f"{day} start time must be before end time")
    tz = data.get("timezone")
    if tz and not is_valid_timezone(str(tz)):
        errors.append(f"Unknown timezone: {tz}")
    return errors


def _validate_escalation_rules(data: Any) -> list[str]:
    if not isinstance(data, list):
        return ["Escalation rules must be an array"]
    errors: list[str] = []
    for index, rule in enumerate(data, start=1):
        prefix = f"Rule {index}: "
        if not isinstance(rule, dict):
            errors.append(f"{prefix}must be an object")
            continue
        condition = rule.get("condition")
        action = rule.get("action")
        if not condition:
            errors.append(f"{prefix}condition is required")
        elif condition not in VALID_CONDITIONS:
            errors.append(f"{prefix}invalid condition '{condition}'")
        if not action:
            errors.append(f"{prefix}action is required")
        elif action not in VALID_ACTIONS:
            errors.append(f"{prefix}invalid action '{action}'")
        errors.extend(_priority_errors(prefix, rule.get("priority")))
    return errors


def _validate_notification_settings(data: Any) -> list[str]:
    if not isinstance(data, dict):
        return ["Notification settings must be an object"]
    errors: list[str] = []
    if _pick(data, "sms_notifications", "smsNotifications") and not _pick(data, "phone_number", "phoneNumber"):
        errors.append("Phone number is required for SMS notifications")
    if _pick(data, "email_notifications", "emailNotifications") and not _pick(data, "email_address", "emailAddress"):
        errors.append("Email address is required for email notifications")
    return errors


def _validate_response_templates(data: Any) -> list[str]:
    if not isinstance(data, list):
        return ["Response templates must be an array"]
    errors: list[str] = []
    for index, template in enumerate(data, start=1):
        if not isinstance(template, dict):
            errors.append(f"Template {index}: must be an object")
            continue
        if not template.get("name"):
            errors.append(f"Template {index}: name is required")
        if not _pick(template, "body_template", "bodyTemplate"):
            errors.append(f"Template {index}: body template is required")
    return errors


def _validate_approval_workflows(data: Any) -> list[str]:
    if not isinstance(data, list):
        return ["Approval workflows must be an array"]
    errors: list[str] = []
    for index, workflow in enumerate(data, start=1):
        if not isinstance(workflow, dict):
            errors.append(f"Workflow {index}: must be an object")
            continue
        if not workflow.get("name"):
            errors.append(f"Workflow {index}: name is required")
        if not workflow.get("description"):
            errors.append(f"Workflow {index}: description is required")
        errors.extend(_priority_errors(f"Workflow {index}: ", workflow.get("priority")))
    return errors


def _validate_business_profile(data: Any) -> list[str]:
    if not isinstance(data, dict):
        return ["Business profile must be an object"]
    business = data.get("business")
    if not business:
        return ["Business information is required"]
    errors: list[str] = []
    if not business.get("name"):
        errors.append("Business name is required")
    if not business.get("type"):
        errors.append("Business type is required")
    return errors


_VALIDATORS: Dict[ConfigType, Callable[[Any], list[str]]] = {
    ConfigType.BUSINESS_HOURS: _validate_business_hours,
    ConfigType.ESCALATION_RULES: _validate_escalation_rules,
    ConfigType.NOTIFICATION_SETTINGS: _validate_notification_settings,
    ConfigType.RESPONSE_TEMPLATES: _validate_response_templates,
    ConfigType.APPROVAL_WORKFLOWS: _validate_approval_workflows,
    ConfigType.BUSINESS_PROFILE: _validate_business_profile,
}


_SCHEMAS: Dict[ConfigType, Tuple[type[BaseModel], Optional[str]]] = {
    ConfigType.BUSINESS_HOURS: (BusinessHoursIn, None),
    ConfigType.ESCALATION_RULES: (EscalationRuleIn, "Rule"),
    ConfigType.NOTIFICATION_SETTINGS: (NotificationSettingsIn, None),
    ConfigType.RESPONSE_TEMPLATES: (ResponseTemplateIn, "Template"),
    ConfigType.APPROVAL_WORKFLOWS: (ApprovalWorkflowIn, "Workflow"),
}


def _pydantic_messages(prefix: str, exc: ValidationError) -> list[str]:
    return [f"{prefix}{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()]


def _schema_errors(ct: ConfigType, data: Any) -> list[str]:
    """Run the storage model over `data` so anything saved later will parse."""
    if ct not in _SCHEMAS:
        return []
    model, item_label = _SCHEMAS[ct]
    documents = [("", data)] if item_label is None else [
        (f"{item_label} {index}: ", item) for index, item in enumerate(data, start=1)
    ]
    errors: list[str] = []
    for prefix, document in documents:
        try:
            model.model_validate(document)
        except ValidationError as exc:
            errors.extend(_pydantic_messages(prefix, exc))
    return errors


def validate_config(config_type: Any, data: Any) -> ValidationResult:
    try:
        ct = coerce_config_type(config_type)
    except UnknownConfigTypeError as exc:
        return ValidationResult(valid=False, errors=[str(exc)])
    errors = _VALIDATORS[ct](data)
    if not errors:
        errors = _schema_errors(ct, data)
    return ValidationResult.from_errors(errors)


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def _business_hours_dict(row: BusinessHours) -> dict:
    return {
        "user_id": row.user_id,
        "schedule": dict(row.schedule or {}),
        "timezone": row.timezone,
        "holiday_schedule": dict(row.holiday_schedule or {}),
        "emergency_hours": bool(row.emergency_hours),
    }


def _notification_settings_dict(row: NotificationSettings) -> dict:
    return {
        "user_id": row.user_id,
        "email_notifications": bool(row.email_notifications),
        "sms_notifications": bool(row.sms_notifications),
        "push_notifications": bool(row.push_notifications),
        "phone_number": row.phone_number,
        "email_address": row.email_address,
        "notification_hours": dict(row.notification_hours or {}),
        "escalation_enabled": bool(row.escalation_enabled),
        "auto_reply_enabled": bool(row.auto_reply_enabled),
    }


def _response_template_dict(row: ResponseTemplate) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "category": row.category,
        "subject_template": row.subject_template,
        "body_template": row.body_template,
        "variables": list(row.variables or []),
        "enabled": bool(row.enabled),
    }


def _approval_workflow_dict(row: ApprovalWorkflow) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "priority": row.priority,
        "enabled": bool(row.enabled),
        "metadata": dict(row.extra or {}),
    }


def _sort_rules(rules: List[RuleOut]) -> List[RuleOut]:
    # Stable: ties keep id order from the query.
    return sorted(rules, key=lambda r: resolve_priority(r.priority, r.condition), reverse=True)


class ConfigStore:
    """
    Typed, cached access to per-user configuration.

    `config_cache` holds whole configuration documents keyed by
    ``"{user_id}:{config_type}"``; `rules_cache` holds the enabled,
    priority-sorted rule set per user that the rule engine evaluates.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        config_cache: Optional[TTLCache] = None,
        rules_cache: Optional[TTLCache] = None,
        default_timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._session_factory = session_factory
        self.config_cache = config_cache if config_cache is not None else TTLCache(600)
        self.rules_cache = rules_cache if rules_cache is not None else TTLCache(300)
        self.default_timezone = default_timezone
        self._fetchers: Dict[ConfigType, Callable[[str], Any]] = {
            ConfigType.BUSINESS_HOURS: self._fetch_business_hours,
            ConfigType.ESCALATION_RULES: lambda user_id: [r.model_dump() for r in self.fetch_rules(user_id)],
            ConfigType.NOTIFICATION_SETTINGS: self._fetch_notification_settings,
            ConfigType.RESPONSE_TEMPLATES: self._fetch_response_templates,
            ConfigType.APPROVAL_WORKFLOWS: self._fetch_approval_workflows,
            ConfigType.BUSINESS_PROFILE: self._fetch_business_profile,
        }
        self._writers: Dict[ConfigType, Callable[[str, Any], Any]] = {
            ConfigType.BUSINESS_HOURS: self._write_business_hours,
            ConfigType.ESCALATION_RULES: self._write_escalation_rules,
            ConfigType.NOTIFICATION_SETTINGS: self._write_notification_settings,
            ConfigType.RESPONSE_TEMPLATES: self._write_response_templates,
            ConfigType.APPROVAL_WORKFLOWS: self._write_approval_workflows,
            ConfigType.BUSINESS_PROFILE: self._write_business_profile,
        }

    # -- generic accessors -------------------------------------------------

    def get_default_config(self, config_type: Any) -> Any:
        default = get_default_config(config_type)
        if coerce_config_type(config_type) is ConfigType.BUSINESS_HOURS:
            default["timezone"] = self.default_timezone
        return default

    def validate_config(self, config_type: Any, data: Any) -> ValidationResult:
        return validate_config(config_type, data)

    def get_config(self, user_id: str, config_type: Any) -> Any:
        """
        Cached configuration for `user_id`.

        Missing rows resolve to the default for the type and are cached like
        any other value. Storage errors also resolve to the default but are
        not cached, so the next call retries storage.
        """
        ct = coerce_config_type(config_type)
        key = f"{user_id}:{ct.value}"
        cached = self.config_cache.get(key)
        if cached is not MISSING:
            return cached
        try:
            value = self._fetchers[ct](user_id)
        except Exception as exc:
            log_exception(logger, "Failed to load config", exc=exc, user_id=user_id, config_type=ct.value)
            return self.get_default_config(ct)
        if value is None:
            value = self.get_default_config(ct)
        self.config_cache.set(key, value)
        return value

    def set_config(self, user_id: str, config_type: Any, data: Any) -> Any:
        """
        Validate and persist a configuration document, then evict its cache.

        Raises ConfigValidationError before touching storage when `data` is
        invalid. Collection types are replaced atomically.
        """
        ct = coerce_config_type(config_type)
        result = validate_config(ct, data)
        if not result.valid:
            raise ConfigValidationError(ct.value, result.errors)
        try:
            saved = self._writers[ct](user_id, data)
        except ValidationError as exc:
            raise ConfigValidationError(ct.value, _pydantic_messages("", exc)) from exc
        self.clear_cache(user_id, ct)
        logger.info("Saved config user_id=%s config_type=%s", user_id, ct.value)
        return saved

    def get_all_configs(self, user_id: str) -> dict:
        return {ct.value: self.get_config(user_id, ct) for ct in ConfigType}

    def set_all_configs(self, user_id: str, configs: dict) -> dict:
        """Save each config independently; failures are reported per type."""
        results: dict = {}
        for config_type, data in configs.items():
            try:
                results[config_type] = self.set_config(user_id, config_type, data)
            except Exception as exc:
                logger.error("Failed to set config user_id=%s config_type=%s: %s", user_id, config_type, exc)
                results[config_type] = {"error": str(exc)}
        return results

    def clear_cache(self, user_id: Optional[str] = None, config_type: Any = None) -> None:
        if user_id is None:
            self.config_cache.clear()
            self.rules_cache.clear()
            return
        if config_type is None:
            self.config_cache.delete_prefix(f"{user_id}:")
            self.invalidate_rules(user_id)
            return
        ct = coerce_config_type(config_type)
        self.config_cache.delete_prefix(f"{user_id}:{ct.value}")
        if ct is ConfigType.ESCALATION_RULES:
            self.invalidate_rules(user_id)

    def cache_stats(self) -> dict:
        return {"config": self.config_cache.stats(), "rules": self.rules_cache.stats()}

    # -- business hours as stored -------------------------------------------

    def find_business_hours(self, user_id: str) -> Optional[dict]:
        """Stored business hours or None; defaults are deliberately not applied."""
        key = f"{user_id}:{ConfigType.BUSINESS_HOURS.value}:stored"
        cached = self.config_cache.get(key)
        if cached is not MISSING:
            return cached
        value = self._fetch_business_hours(user_id)
        self.config_cache.set(key, value)
        return value

    # -- rules ----------------------------------------------------------------

    def fetch_rules(self, user_id: str, *, enabled_only: bool = False) -> List[RuleOut]:
        stmt = select(EscalationRule).where(EscalationRule.user_id == user_id)
        if enabled_only:
            stmt = stmt.where(EscalationRule.enabled.is_(True))
        stmt = stmt.order_by(EscalationRule.id.asc())
        with self._session_factory() as db:
            rows = db.execute(stmt).scalars().all()
            rules = [RuleOut.model_validate(row) for row in rows]
        return _sort_rules(rules)

    def load_enabled_rules(self, user_id: str) -> tuple:
        key = f"rules:{user_id}"
        cached = self.rules_cache.get(key)
        if cached is not MISSING:
            return cached
        rules = tuple(self.fetch_rules(user_id, enabled_only=True))
        self.rules_cache.set(key, rules)
        logger.info("Loaded %d escalation rules for user %s", len(rules), user_id)
        return rules

    def invalidate_rules(self, user_id: Optional[str] = None) -> None:
        """Drop cached rule sets; with no user this clears both caches entirely."""
        if user_id is None:
            self.rules_cache.clear()
            self.config_cache.clear()
            return
        self.rules_cache.delete(f"rules:{user_id}")
        # Cached `escalation_rules` documents go stale with the rule set.
        self.config_cache.delete(f"{user_id}:{ConfigType.ESCALATION_RULES.value}")

    def get_rule(self, rule_id: int) -> Optional[RuleOut]:
        with self._session_factory() as db:
            row = db.get(EscalationRule, rule_id)
            return RuleOut.model_validate(row) if row else None

    def insert_rule(self, user_id: str, data: dict) -> RuleOut:
        with self._session_factory() as db:
            row = EscalationRule(
                user_id=user_id,
                condition=data["condition"],
                value=data.get("value"),
                action=data["action"],
                priority=data.get("priority") or get_default_priority(data["condition"]),
                description=data.get("description"),
                enabled=data.get("enabled", True),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return RuleOut.model_validate(row)

    def update_rule(self, rule_id: int, updates: dict) -> RuleOut:
        with self._session_factory() as db:
            row = db.get(EscalationRule, rule_id)
            if row is None:
                raise RuleNotFoundError(rule_id)
            for key, value in updates.items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return RuleOut.model_validate(row)

    def delete_rule(self, rule_id: int) -> RuleOut:
        with self._session_factory() as db:
            row = db.get(EscalationRule, rule_id)
            if row is None:
                raise RuleNotFoundError(rule_id)
            deleted = RuleOut.model_validate(row)
            db.delete(row)
            db.commit()
            return deleted

    # -- fetchers ---------------------------------------------------------------

    def _fetch_business_hours(self, user_id: str) -> Optional[dict]:
        with self._session_factory() as db:
            row = db.execute(select(BusinessHours).where(BusinessHours.user_id == user_id)).scalars().first()
            return _business_hours_dict(row) if row else None

    def _fetch_notification_settings(self, user_id: str) -> Optional[dict]:
        with self._session_factory() as db:
            row = (
                db.execute(select(NotificationSettings).where(NotificationSettings.user_id == user_id))
                .scalars()
                .first()
            )
            return _notification_settings_dict(row) if row else None

    def _fetch_response_templates(self, user_id: str) -> Optional[list]:
        stmt = (
            select(ResponseTemplate)
            .where(ResponseTemplate.user_id == user_id)
            .order_by(ResponseTemplate.created_at.desc())
        )
        with self._session_factory() as db:
            rows = db.execute(stmt).scalars().all()
            # No templates yet means the defaults apply.
            return [_response_template_dict(r) for r in rows] or None

    def _fetch_approval_workflows(self, user_id: str) -> list:
        stmt = (
            select(ApprovalWorkflow)
            .where(ApprovalWorkflow.user_id == user_id)
            .order_by(ApprovalWorkflow.priority.desc(), ApprovalWorkflow.name.asc())
        )
        with self._session_factory() as db:
            return [_approval_workflow_dict(r) for r in db.execute(stmt).scalars().all()]

    def _fetch_business_profile(self, user_id: str) -> Optional[dict]:
        with self._session_factory() as db:
            row = db.get(BusinessProfile, user_id)
            if row is None or not row.client_config:
                return None
            return dict(row.client_config)

    # -- writers ------------------------------------------------------------------

    def _write_business_hours(self, user_id: str, data: dict) -> dict:
        parsed = BusinessHoursIn.model_validate(data)
        with self._session_factory() as db:
            row = db.execute(select(BusinessHours).where(BusinessHours.user_id == user_id)).scalars().first()
            if row is None:
                row = BusinessHours(user_id=user_id)
                db.add(row)
            row.schedule = {day: sched.model_dump(exclude_none=True) for day, sched in parsed.schedule.items()}
            row.timezone = parsed.timezone or self.default_timezone
            row.holiday_schedule = parsed.holiday_schedule
            row.emergency_hours = parsed.emergency_hours
            db.commit()
            db.refresh(row)
            return _business_hours_dict(row)

    def _write_notification_settings(self, user_id: str, data: dict) -> dict:
        parsed = NotificationSettingsIn.model_validate(data)
        with self._session_factory() as db:
            row = (
                db.execute(select(NotificationSettings).where(NotificationSettings.user_id == user_id))
                .scalars()
                .first()
            )
            if row is None:
                row = NotificationSettings(user_id=user_id)
                db.add(row)
            for key, value in parsed.model_dump().items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return _notification_settings_dict(row)

    def _write_business_profile(self, user_id: str, data: dict) -> dict:
        with self._session_factory() as db:
            row = db.get(BusinessProfile, user_id)
            if row is None:
                row = BusinessProfile(user_id=user_id)
                db.add(row)
            row.client_config = copy.deepcopy(data)
            db.commit()
            return dict(row.client_config)

    def _replace_collection(self, db: Session, model: type, user_id: str, rows: list) -> None:
        """Delete the user's rows and insert `rows`; caller owns the transaction."""
        db.execute(delete(model).where(model.user_id == user_id))
        db.add_all(rows)
        db.flush()

    def _write_escalation_rules(self, user_id: str, data: list) -> list:
        parsed = [EscalationRuleIn.model_validate(item) for item in data]
        rows = [
            EscalationRule(
                user_id=user_id,
                condition=rule.condition,
                value=rule.value,
                action=rule.action,
                priority=rule.priority or get_default_priority(rule.condition),
                description=rule.description,
                enabled=rule.enabled,
            )
            for rule in parsed
        ]
        with self._session_factory() as db:
            with db.begin():
                self._replace_collection(db, EscalationRule, user_id, rows)
                saved = [RuleOut.model_validate(row) for row in rows]
        return [rule.model_dump() for rule in _sort_rules(saved)]

    def _write_response_templates(self, user_id: str, data: list) -> list:
        parsed = [ResponseTemplateIn.model_validate(item) for item in data]
        rows = [ResponseTemplate(user_id=user_id, **template.model_dump()) for template in parsed]
        with self._session_factory() as db:
            with db.begin():
                self._replace_collection(db, ResponseTemplate, user_id, rows)
                return [_response_template_dict(row) for row in rows]

    def _write_approval_workflows(self, user_id: str, data: list) -> list:
        parsed = [ApprovalWorkflowIn.model_validate(item) for item in data]
        rows = [ApprovalWorkflow(user_id=user_id, **workflow.model_dump()) for workflow in parsed]
        with self._session_factory() as db:
            with db.begin():
                self._replace_collection(db, ApprovalWorkflow, user_id, rows)
                return [_approval_workflow_dict(row) for row in rows]
