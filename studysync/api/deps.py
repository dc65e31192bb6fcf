"""API dependencies"""

from typing import AsyncGenerator, Generator, Optional

import httpx
from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from studysync.core.config import settings
from studysync.core.db import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Database dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """One outbound HTTP client per request, shared by every provider call."""
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True) as client:
        yield client


def get_current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Authenticated user id, set by the auth proxy in front of the service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()
