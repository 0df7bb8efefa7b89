"""
API endpoints for per-user configuration documents.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from ...core.errors import ConfigValidationError, UnknownConfigTypeError
from ...schemas.rule import ValidationResult
from ...services.config_store import ConfigStore, ConfigType, coerce_config_type
from ..deps import get_config_store


router = APIRouter(prefix="/api/v1/config", tags=["config"])


def _config_type(config_type: str) -> ConfigType:
    try:
        return coerce_config_type(config_type)
    except UnknownConfigTypeError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{user_id}")
def get_all_configs(user_id: str, store: ConfigStore = Depends(get_config_store)) -> dict:
    return store.get_all_configs(user_id)


@router.get("/{user_id}/{config_type}")
def get_config(user_id: str, config_type: str, store: ConfigStore = Depends(get_config_store)) -> Any:
    return store.get_config(user_id, _config_type(config_type))


@router.put("/{user_id}/{config_type}")
def put_config(
    user_id: str,
    config_type: str,
    data: Any = Body(...),
    store: ConfigStore = Depends(get_config_store),
) -> Any:
    ct = _config_type(config_type)
    try:
        return store.set_config(user_id, ct, data)
    except ConfigValidationError as exc:
        raise HTTPException(status_code=400, detail={"errors": exc.errors}) from exc


@router.post("/{config_type}/validate", response_model=ValidationResult)
def validate_config(
    config_type: str,
    data: Any = Body(...),
    store: ConfigStore = Depends(get_config_store),
) -> ValidationResult:
    return store.validate_config(_config_type(config_type), data)
