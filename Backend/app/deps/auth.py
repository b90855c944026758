# Backend/app/deps/auth.py
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException

from app.core.logging import logger
from app.config import settings

__all__ = ["extract_bearer_token", "verify_webhook_token"]


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Token part of ``Bearer <token>``; empty when absent or malformed."""
    if not authorization or not str(authorization).startswith("Bearer "):
        return ""
    return str(authorization)[len("Bearer "):]


async def verify_webhook_token(authorization: Optional[str] = Header(None)) -> None:
    """
    Guard for the push endpoint: the bearer token must equal WEBHOOK_TOKEN.
    """
    token = extract_bearer_token(authorization)
    expected = settings.WEBHOOK_TOKEN or ""
    if not token or not expected:
        logger.info("webhook_auth_missing", has_header=bool(authorization), configured=bool(expected))
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.info("webhook_auth_rejected")
        raise HTTPException(status_code=401, detail="Unauthorized")
