"""
Pydantic schemas and vocabularies for escalation rules.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConditionName(str, Enum):
    AFTER_HOURS = "after_hours"
    HIGH_URGENCY = "high_urgency"
    KEYWORD_MATCH = "keyword_match"
    MANAGER_REQUIRED = "manager_required"
    CUSTOMER_VIP = "customer_vip"
    COMPLAINT_DETECTED = "complaint_detected"
    EMERGENCY_KEYWORDS = "emergency_keywords"
    RESPONSE_OVERDUE = "response_overdue"
    MULTIPLE_EMAILS = "multiple_emails"
    URGENCY_LEVEL = "urgency_level"
    CATEGORY_MATCH = "category_match"
    SENTIMENT_NEGATIVE = "sentiment_negative"
    ALL_EMAILS = "all_emails"


class ActionName(str, Enum):
    ESCALATE = "escalate"
    NOTIFY_MANAGER = "notify_manager"
    AUTO_REPLY = "auto_reply"
    HIGH_PRIORITY = "high_priority"
    IMMEDIATE_RESPONSE = "immediate_response"
    CREATE_TICKET = "create_ticket"
    SEND_SMS = "send_sms"
    CALL_CUSTOMER = "call_customer"


VALID_CONDITIONS = frozenset(c.value for c in ConditionName)
VALID_ACTIONS = frozenset(a.value for a in ActionName)

MIN_PRIORITY = 1
MAX_PRIORITY = 10


class RuleCreate(BaseModel):
    condition: str
    action: str
    value: Optional[str] = None
    priority: Optional[int] = None
    description: Optional[str] = None
    enabled: bool = True


class RuleUpdate(BaseModel):
    condition: Optional[str] = None
    action: Optional[str] = None
    value: Optional[str] = None
    priority: Optional[int] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None


class RuleOut(BaseModel):
    id: int
    user_id: str
    condition: str
    action: str
    value: Optional[str] = None
    priority: Optional[int] = None
    description: Optional[str] = None
    enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class TriggeredRule(BaseModel):
    rule_id: int
    rule: RuleOut
    action: str
    priority: int
    condition: str
    value: Optional[str] = None
    description: str
    timestamp: datetime


class BatchResult(BaseModel):
    email_id: Optional[str] = None
    success: bool
    rules: Optional[List[TriggeredRule]] = None
    error: Optional[str] = None


class RuleStats(BaseModel):
    timeframe: str
    since: datetime
    total: int = 0
    escalated: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_urgency: Dict[str, int] = Field(default_factory=dict)
    escalation_reasons: Dict[str, int] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=list(errors))


class EvaluateRequest(BaseModel):
    email: Dict[str, Any]
    context: Dict[str, Any] = Field(default_factory=dict)


class EvaluateBatchRequest(BaseModel):
    emails: List[Dict[str, Any]]
    context: Dict[str, Any] = Field(default_factory=dict)


DEFAULT_PRIORITIES: Dict[str, int] = {
    ConditionName.EMERGENCY_KEYWORDS.value: 10,
    ConditionName.HIGH_URGENCY.value: 9,
    ConditionName.MANAGER_REQUIRED.value: 8,
    ConditionName.CUSTOMER_VIP.value: 7,
    ConditionName.COMPLAINT_DETECTED.value: 6,
    ConditionName.AFTER_HOURS.value: 5,
    ConditionName.RESPONSE_OVERDUE.value: 4,
    ConditionName.MULTIPLE_EMAILS.value: 3,
    ConditionName.KEYWORD_MATCH.value: 2,
    ConditionName.SENTIMENT_NEGATIVE.value: 2,
    ConditionName.ALL_EMAILS.value: 1,
}


def get_default_priority(condition: Any) -> int:
    key = condition.value if isinstance(condition, Enum) else condition
    return DEFAULT_PRIORITIES.get(key, MIN_PRIORITY)


def resolve_priority(priority: Optional[int], condition: Any) -> int:
    """Stored priority clamped into range, or the condition default when unset."""
    if priority is None:
        return get_default_priority(condition)
    return max(MIN_PRIORITY, min(MAX_PRIORITY, int(priority)))
