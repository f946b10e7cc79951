"""Helpers shared by the ingestion and query services."""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.config import POSITIONS_PER_SYSTEM
from allyhub.core.errors import BadRequestError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Coords = Tuple[int, int, int]


def format_coordinates(galaxy: int, system: int, position: int) -> str:
    return f"{galaxy}:{system}:{position}"


def parse_coordinates(value: Optional[str]) -> Optional[Coords]:
    """Split "g:s:p" into three ints.

    Returns None when the string is malformed or names a position outside
    the map: galaxy and system start at 1, positions run 1..POSITIONS_PER_SYSTEM.
    Position 0 is the system marker and is never addressed by a client.
    """
    if not value:
        return None
    parts = str(value).strip().split(":")
    if len(parts) != 3:
        return None
    try:
        g, s, p = (int(part) for part in parts)
    except ValueError:
        return None
    if g < 1 or s < 1 or not 1 <= p <= POSITIONS_PER_SYSTEM:
        return None
    return g, s, p


def require_coordinates(value: Optional[str]) -> Coords:
    coords = parse_coordinates(value)
    if coords is None:
        raise BadRequestError(f"Invalid coordinates: {value!r}")
    return coords


def require_alliance(user) -> int:
    if user is None or user.alliance_id is None:
        raise BadRequestError("No alliance assigned")
    return int(user.alliance_id)


def require_player(user) -> int:
    if user is None or not user.player_id:
        raise BadRequestError("No player assigned")
    return int(user.player_id)


async def merge_upsert(
    session: AsyncSession,
    load: Callable[[], Awaitable[Optional[T]]],
    create: Callable[[], T],
    merge: Callable[[T], None],
) -> Tuple[T, bool]:
    """Read-then-write upsert committed as one unit.

    load() fetches the row by its identity key. When absent, create() builds
    a fresh row that is inserted; if a concurrent writer inserted the same key
    first, the integrity error is rolled back and the row is re-read and
    merged instead. When present, merge(row) applies the field policy
    (overwrite or coalesce) before commit.

    Returns (row, created). Storage errors other than the duplicate-key race
    propagate.
    """
    row = await load()
    if row is None:
        row = create()
        session.add(row)
        try:
            await session.commit()
            return row, True
        except IntegrityError:
            await session.rollback()
            row = await load()
            if row is None:
                raise
            logger.debug("upsert_insert_race_merged", extra={"entity": type(row).__name__})
    merge(row)
    await session.commit()
    return row, False
