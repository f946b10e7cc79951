from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.activity import background_jobs
from allyhub.core.database import get_async_session
from allyhub.core.errors import ForbiddenError, UnauthorizedError
from allyhub.models.database import User
from allyhub.services.users import get_user_by_api_key, record_activity


def mask_api_key(api_key: str) -> str:
    """Hide all but the first and last four characters of a key for logs."""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


def extract_api_key(x_api_key: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # X-API-Key wins; otherwise "Authorization: Bearer <key>" or a bare key
    if x_api_key:
        return x_api_key.strip() or None
    if authorization:
        value = authorization.strip()
        if value.lower().startswith("bearer "):
            value = value[7:].strip()
        return value or None
    return None


async def get_current_user(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    authorization: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_async_session),
) -> User:
    api_key = extract_api_key(x_api_key, authorization)
    if not api_key:
        raise UnauthorizedError("API key missing")
    user = await get_user_by_api_key(session, api_key)
    if user is None:
        raise UnauthorizedError("Invalid API key")
    user_id = user.id
    background_jobs.submit(lambda: record_activity(user_id), op="last_activity")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin role required")
    return user
