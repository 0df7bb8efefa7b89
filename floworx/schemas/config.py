"""
Pydantic schemas for per-user configuration documents.

Incoming documents may use camelCase (as sent by the web client) or
snake_case keys; everything is stored and returned in snake_case.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DaySchedule(_ConfigModel):
    open: bool = False
    start: Optional[str] = None
    end: Optional[str] = None


class BusinessHoursIn(_ConfigModel):
    schedule: Dict[str, DaySchedule]
    timezone: Optional[str] = None
    holiday_schedule: Dict[str, Any] = Field(default_factory=dict, alias="holidaySchedule")
    emergency_hours: bool = Field(default=False, alias="emergencyHours")


class NotificationSettingsIn(_ConfigModel):
    email_notifications: bool = Field(default=True, alias="emailNotifications")
    sms_notifications: bool = Field(default=False, alias="smsNotifications")
    push_notifications: bool = Field(default=True, alias="pushNotifications")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    email_address: Optional[str] = Field(default=None, alias="emailAddress")
    notification_hours: Dict[str, Any] = Field(default_factory=dict, alias="notificationHours")
    escalation_enabled: bool = Field(default=True, alias="escalationEnabled")
    auto_reply_enabled: bool = Field(default=True, alias="autoReplyEnabled")


class ResponseTemplateIn(_ConfigModel):
    name: str
    category: Optional[str] = None
    subject_template: Optional[str] = Field(default=None, alias="subjectTemplate")
    body_template: str = Field(alias="bodyTemplate")
    variables: List[str] = Field(default_factory=list)
    enabled: bool = True


class ApprovalWorkflowIn(_ConfigModel):
    name: str
    description: str
    priority: int = 5
    enabled: bool = True
    extra: Dict[str, Any] = Field(default_factory=dict, alias="metadata")


class EscalationRuleIn(_ConfigModel):
    condition: str
    action: str
    value: Optional[str] = None
    priority: Optional[int] = None
    description: Optional[str] = None
    enabled: bool = True
