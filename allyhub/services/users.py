"""Users (API-key principals) and their administration."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core import database
from allyhub.core.config import DEFAULT_USER_LANGUAGE, SUPPORTED_LANGUAGES
from allyhub.core.errors import BadRequestError, NotFoundError
from allyhub.core.time_utils import isoformat_utc, utc_now
from allyhub.models.database import Alliance, Player, ROLE_ADMIN, ROLE_USER, ROLES, User
from allyhub.services.entities import ensure_player, get_player_by_name, link_player_alliance, load_player

logger = logging.getLogger(__name__)


def generate_api_key() -> str:
    return str(uuid.uuid4())


async def get_user_by_api_key(session: AsyncSession, api_key: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.api_key == api_key))
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, user_id: int) -> User:
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def record_activity(user_id: int, now: Optional[datetime] = None) -> None:
    """Stamp last_activity_at in a session of its own (runs detached from the request)."""
    async with database.session_scope() as session:
        await session.execute(
            update(User).where(User.id == user_id).values(last_activity_at=now or utc_now())
        )
        await session.commit()


async def user_info(session: AsyncSession, user: User) -> Dict[str, Any]:
    player_name = alliance_name = None
    if user.player_id:
        player = await load_player(session, user.player_id)
        player_name = player.name if player is not None else None
    if user.alliance_id is not None:
        alliance = (await session.execute(select(Alliance).where(Alliance.id == user.alliance_id))).scalar_one_or_none()
        alliance_name = alliance.name if alliance is not None else None
    return {
        "id": user.id,
        "player_id": user.player_id,
        "player_name": player_name,
        "alliance_id": user.alliance_id,
        "alliance_name": alliance_name,
        "language": user.language,
        "role": user.role,
        "is_admin": user.is_admin,
        "last_activity_at": isoformat_utc(user.last_activity_at),
        "created_at": isoformat_utc(user.created_at),
    }


async def list_users(session: AsyncSession) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(User, Player.name, Alliance.name)
        .outerjoin(Player, User.player_id == Player.id)
        .outerjoin(Alliance, User.alliance_id == Alliance.id)
        .order_by(User.id)
    )
    return [
        {
            "id": user.id,
            "player_id": user.player_id,
            "player_name": player_name,
            "alliance_id": user.alliance_id,
            "alliance_name": alliance_name,
            "language": user.language,
            "role": user.role,
            "last_activity_at": isoformat_utc(user.last_activity_at),
            "created_at": isoformat_utc(user.created_at),
        }
        for user, player_name, alliance_name in result.all()
    ]


async def create_user(
    session: AsyncSession,
    player_id: Optional[int] = None,
    player_name: Optional[str] = None,
    alliance_id: Optional[int] = None,
    role: str = ROLE_USER,
) -> User:
    """Create a user with a fresh API key.

    The player is resolved by id or, failing that, by exact name. A player may
    own at most one user. When a player is given it is ensured to exist and
    linked to the alliance (if that alliance is known).
    """
    if role not in ROLES:
        raise BadRequestError(f"Invalid role: {role}")
    if player_id is None and player_name:
        player = await get_player_by_name(session, player_name)
        if player is None:
            raise NotFoundError(f"Player '{player_name}' not found")
        player_id = player.id

    if player_id is not None:
        existing = await session.execute(select(User.id).where(User.player_id == player_id))
        if existing.first() is not None:
            raise BadRequestError("A user already exists for this player")

    user = User(
        api_key=generate_api_key(),
        player_id=player_id,
        alliance_id=alliance_id,
        language=DEFAULT_USER_LANGUAGE,
        role=role,
    )
    session.add(user)
    await session.commit()

    if player_id is not None:
        known = await load_player(session, player_id)
        await ensure_player(session, player_id, known.name if known is not None else (player_name or "Unknown"))
        if alliance_id is not None:
            await link_player_alliance(session, player_id, alliance_id)

    logger.info("user_created", extra={"user_id": user.id, "player_id": player_id, "role": role})
    return user


async def delete_user(session: AsyncSession, admin: User, user_id: int) -> None:
    if user_id == admin.id:
        raise BadRequestError("You cannot delete yourself")
    user = await get_user(session, user_id)
    await session.delete(user)
    await session.commit()
    logger.info("user_deleted", extra={"user_id": user_id, "admin_id": admin.id})


async def update_role(session: AsyncSession, admin: User, user_id: int, role: str) -> User:
    if role not in ROLES:
        raise BadRequestError("Invalid role. Allowed: admin, user")
    if user_id == admin.id and role != ROLE_ADMIN:
        admins = (await session.execute(select(func.count(User.id)).where(User.role == ROLE_ADMIN))).scalar_one()
        if admins <= 1:
            raise BadRequestError("You are the last admin and cannot demote yourself")
    user = await get_user(session, user_id)
    user.role = role
    user.updated_at = utc_now()
    await session.commit()
    logger.info("user_role_updated", extra={"user_id": user_id, "role": role, "admin_id": admin.id})
    return user


async def update_language(session: AsyncSession, user: User, language: str) -> str:
    language = (language or "").strip().lower()
    if language not in SUPPORTED_LANGUAGES:
        raise BadRequestError(f"Invalid language. Allowed: {', '.join(SUPPORTED_LANGUAGES)}")
    user.language = language
    user.updated_at = utc_now()
    await session.commit()
    return language
