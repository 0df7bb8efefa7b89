"""
API endpoints for managing and evaluating escalation rules.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from ...core.errors import RuleNotFoundError, RuleValidationError
from ...schemas.rule import (
    BatchResult,
    EvaluateBatchRequest,
    EvaluateRequest,
    RuleCreate,
    RuleOut,
    RuleStats,
    RuleUpdate,
    TriggeredRule,
    ValidationResult,
)
from ...services.rule_admin import RuleAdmin
from ...services.rule_engine import BusinessRulesEngine
from ..deps import get_rule_admin, get_rules_engine


router = APIRouter(prefix="/api/v1/rules", tags=["rules"])


def _invalid(exc: RuleValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"errors": exc.errors})


@router.get("", response_model=List[RuleOut])
def list_rules(
    user_id: str = Query(..., min_length=1),
    admin: RuleAdmin = Depends(get_rule_admin),
) -> List[RuleOut]:
    return admin.get_rules(user_id)


@router.post("", response_model=RuleOut, status_code=201)
def create_rule(
    payload: RuleCreate,
    user_id: str = Query(..., min_length=1),
    admin: RuleAdmin = Depends(get_rule_admin),
) -> RuleOut:
    try:
        return admin.create_rule(user_id, payload)
    except RuleValidationError as exc:
        raise _invalid(exc) from exc


@router.post("/validate", response_model=ValidationResult)
def validate_rule(payload: dict, admin: RuleAdmin = Depends(get_rule_admin)) -> ValidationResult:
    return admin.validate_rule(payload)


@router.get("/stats", response_model=RuleStats)
def rule_stats(
    user_id: str = Query(..., min_length=1),
    timeframe: str = Query("24h"),
    admin: RuleAdmin = Depends(get_rule_admin),
) -> RuleStats:
    stats = admin.get_rule_stats(user_id, timeframe)
    if stats is None:
        raise HTTPException(status_code=503, detail="Rule statistics unavailable")
    return stats


@router.post("/evaluate", response_model=List[TriggeredRule])
def evaluate_email(
    payload: EvaluateRequest,
    user_id: str = Query(..., min_length=1),
    engine: BusinessRulesEngine = Depends(get_rules_engine),
) -> List[TriggeredRule]:
    return engine.evaluate_rules(payload.email, user_id, payload.context)


@router.post("/evaluate/batch", response_model=List[BatchResult])
def evaluate_batch(
    payload: EvaluateBatchRequest,
    user_id: str = Query(..., min_length=1),
    engine: BusinessRulesEngine = Depends(get_rules_engine),
) -> List[BatchResult]:
    return engine.evaluate_batch(payload.emails, user_id, payload.context)


@router.put("/{rule_id}", response_model=RuleOut)
def update_rule(rule_id: int, payload: RuleUpdate, admin: RuleAdmin = Depends(get_rule_admin)) -> RuleOut:
    try:
        return admin.update_rule(rule_id, payload)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Rule not found") from exc
    except RuleValidationError as exc:
        raise _invalid(exc) from exc


@router.delete("/{rule_id}", response_model=RuleOut)
def delete_rule(rule_id: int, admin: RuleAdmin = Depends(get_rule_admin)) -> RuleOut:
    try:
        return admin.delete_rule(rule_id)
    except RuleNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Rule not found") from exc
