"""
Lightweight bearer-token auth for the administration API.
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from .config import auth_disabled


@dataclass
class CallerContext:
    role: str
    username: Optional[str] = None


def _expected_token() -> str:
    return (os.getenv("FLOWORX_AUTH_TOKEN") or "").strip()


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def get_current_caller(
    authorization: Optional[str] = Header(None),
    x_caller_name: Optional[str] = Header(None, alias="X-Caller-Name"),
) -> CallerContext:
    if auth_disabled():
        return CallerContext(role="ADMIN", username=x_caller_name)
    token = _extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    expected = _expected_token()
    if not expected or not secrets.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Invalid token")
    return CallerContext(role="SERVICE", username=x_caller_name or "service")
