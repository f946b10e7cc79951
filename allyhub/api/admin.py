"""Self-service and admin endpoints for API-key users."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.auth.security import get_current_user, mask_api_key, require_admin
from allyhub.core.database import get_async_session
from allyhub.core.errors import BadRequestError
from allyhub.core.language import bot_language, is_valid_language
from allyhub.models.database import User
from allyhub.models.payloads import CreateUserRequest, LanguageUpdate, RoleUpdate, UniverseConfigUpdate
from allyhub.services import users
from allyhub.services.aggregation import set_universe_config

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.get("/login")
async def login(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await users.user_info(session, user)


@router.post("/users/language")
async def post_language(
    payload: LanguageUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    language = await users.update_language(session, user, payload.language)
    return {"success": True, "language": language}


@router.get("/admin/check")
async def admin_check(user: User = Depends(get_current_user)):
    return {"is_admin": user.is_admin}


@router.get("/admin/users")
async def admin_list_users(admin: User = Depends(require_admin), session: AsyncSession = Depends(get_async_session)):
    return await users.list_users(session)


@router.post("/admin/users")
async def admin_create_user(
    payload: CreateUserRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    if payload.player_id is None and not payload.player_name:
        raise BadRequestError("player_id or player_name required")
    created = await users.create_user(
        session,
        player_id=payload.player_id,
        player_name=payload.player_name,
        alliance_id=payload.alliance_id,
    )
    logger.info("admin_user_created user_id=%s api_key=%s", created.id, mask_api_key(created.api_key))
    return {"success": True, "user_id": created.id, "api_key": created.api_key}


@router.delete("/admin/users/{user_id}")
async def admin_delete_user(user_id: int, admin: User = Depends(require_admin), session: AsyncSession = Depends(get_async_session)):
    await users.delete_user(session, admin, user_id)
    return {"success": True}


@router.put("/admin/users/{user_id}/role")
async def admin_update_role(
    user_id: int,
    payload: RoleUpdate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    updated = await users.update_role(session, admin, user_id, payload.role)
    return {"success": True, "user_id": updated.id, "role": updated.role}


@router.get("/admin/users/{user_id}/apikey")
async def admin_get_api_key(user_id: int, admin: User = Depends(require_admin), session: AsyncSession = Depends(get_async_session)):
    target = await users.get_user(session, user_id)
    return {"api_key": target.api_key}


@router.put("/admin/config")
async def admin_update_config(
    payload: UniverseConfigUpdate,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    config = await set_universe_config(session, payload.galaxies, payload.systems, payload.galaxy_wrapped)
    return {"success": True, **config}


@router.get("/admin/bot-language")
async def admin_get_bot_language(admin: User = Depends(require_admin)):
    return {"language": bot_language.get()}


@router.put("/admin/bot-language")
async def admin_set_bot_language(payload: LanguageUpdate, admin: User = Depends(require_admin)):
    language = (payload.language or "").strip().lower()
    if not is_valid_language(language):
        raise BadRequestError(f"Unsupported language: {payload.language}")
    changed = bot_language.set(language)
    return {"success": True, "language": bot_language.get(), "changed": changed}
