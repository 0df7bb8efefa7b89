"""
Health endpoint for the FloWorx rules backend.

Reports database reachability and the state of the in-process caches.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text

from ...core.db import SessionLocal
from ...services.config_store import ConfigStore
from ..deps import get_config_store


router = APIRouter(prefix="/api/v1/health", tags=["health"])

logger = logging.getLogger("health")


def _database_ok() -> bool:
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("Health check database query failed: %s", exc)
        return False


@router.get("")
def health(store: ConfigStore = Depends(get_config_store)) -> dict:
    db_ok = _database_ok()
    stats = store.cache_stats()
    return {
        "status": "ok" if db_ok else "degraded",
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "database": {"connected": db_ok},
        "cache": {
            "config_entries": stats["config"]["size"],
            "rules_entries": stats["rules"]["size"],
        },
    }
