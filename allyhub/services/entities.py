"""Entity resolution for players and alliances.

Every ingestion path resolves the owning player (and, where known, its
alliance) before writing anything that references it. The ensure_* helpers
are idempotent and never raise for "already exists"; storage errors
propagate and abort the containing ingestion.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from allyhub.core.errors import NotFoundError
from allyhub.core.time_utils import isoformat_utc, utc_now
from allyhub.models.codec import encode_map, to_wire
from allyhub.models.database import Alliance, Planet, Player, PlayerScore, STATUS_DELETED
from allyhub.services.common import merge_upsert

logger = logging.getLogger(__name__)

# Columns copied from an explicit player upsert when supplied
PLAYER_STAT_FIELDS = (
    "score_buildings", "score_buildings_rank",
    "score_research", "score_research_rank",
    "score_fleet", "score_fleet_rank",
    "score_defense", "score_defense_rank",
    "score_total", "score_total_rank",
    "combats_won", "combats_draw", "combats_lost", "combats_total",
    "honorpoints", "honorpoints_rank",
    "fights_honorable", "fights_dishonorable", "fights_neutral",
    "destruction_units_killed", "destruction_units_lost",
    "destruction_recycled_metal", "destruction_recycled_crystal",
    "real_destruction_units_killed", "real_destruction_units_lost",
    "real_destruction_recycled_metal", "real_destruction_recycled_crystal",
)

SCORE_NAMES = ("total", "economy", "research", "military", "defense")


async def load_player(session: AsyncSession, player_id: int) -> Optional[Player]:
    result = await session.execute(select(Player).where(Player.id == player_id))
    return result.scalar_one_or_none()


async def load_alliance(session: AsyncSession, alliance_id: int) -> Optional[Alliance]:
    result = await session.execute(select(Alliance).where(Alliance.id == alliance_id))
    return result.scalar_one_or_none()


async def ensure_player(session: AsyncSession, player_id: int, name: str) -> Player:
    """Insert a minimal player row if absent. An existing name is never overwritten."""
    player, _ = await merge_upsert(
        session,
        lambda: load_player(session, player_id),
        lambda: Player(id=player_id, name=name or "Unknown"),
        lambda row: None,
    )
    return player


async def ensure_alliance(session: AsyncSession, alliance_id: int, tag: str) -> Alliance:
    """Insert an alliance (name defaults to the tag); an existing row only gets its tag refreshed."""

    def _merge(row: Alliance) -> None:
        row.tag = tag
        row.updated_at = utc_now()

    alliance, _ = await merge_upsert(
        session,
        lambda: load_alliance(session, alliance_id),
        lambda: Alliance(id=alliance_id, name=tag, tag=tag),
        _merge,
    )
    return alliance


async def link_player_alliance(session: AsyncSession, player_id: int, alliance_id: int) -> bool:
    """Point a player at an alliance when both rows exist; otherwise do nothing."""
    player = await load_player(session, player_id)
    if player is None:
        return False
    if await load_alliance(session, alliance_id) is None:
        logger.debug("alliance_link_skipped player_id=%s alliance_id=%s", player_id, alliance_id)
        return False
    player.alliance_id = alliance_id
    player.updated_at = utc_now()
    await session.commit()
    return True


async def upsert_player_full(session: AsyncSession, data: Dict[str, Any]) -> Player:
    """Insert or overwrite a player from an explicit player-card payload.

    Absent (None) stat fields keep their stored value. The alliance is only
    assigned when that alliance row exists.
    """
    player_id = int(data["id"])
    alliance_id = data.get("alliance_id")
    alliance_tag = data.get("alliance_tag")
    if alliance_id is not None and alliance_tag:
        await ensure_alliance(session, int(alliance_id), alliance_tag)
    alliance_known = alliance_id is not None and await load_alliance(session, int(alliance_id)) is not None

    def _apply(row: Player) -> None:
        row.name = data["name"]
        if alliance_known:
            row.alliance_id = int(alliance_id)
        for key in ("main_coordinates", "notice"):
            if data.get(key) is not None:
                setattr(row, key, data[key])
        for key in PLAYER_STAT_FIELDS:
            if data.get(key) is not None:
                setattr(row, key, int(data[key]))
        row.updated_at = utc_now()

    def _create() -> Player:
        row = Player(id=player_id, name=data["name"])
        _apply(row)
        return row

    player, _ = await merge_upsert(session, lambda: load_player(session, player_id), _create, _apply)
    return player


async def mark_player_deleted(session: AsyncSession, player_id: int) -> None:
    player = await load_player(session, player_id)
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    player.is_deleted = True
    player.updated_at = utc_now()
    await session.commit()


async def update_research(session: AsyncSession, player_id: int, research: Dict[Any, Any]) -> Dict[str, int]:
    """Replace the player's research map wholesale."""
    player = await load_player(session, player_id)
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    player.research = encode_map(research)
    player.updated_at = utc_now()
    await session.commit()
    return to_wire(player.research)


# --- Read side ---

def scores_view(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, int]]:
    if raw is None:
        return None
    return {name: int(raw.get(name) or 0) for name in SCORE_NAMES}


def player_view(player: Player, alliance: Optional[Alliance] = None) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "alliance": (
            {"id": alliance.id, "name": alliance.name, "tag": alliance.tag}
            if alliance is not None else None
        ),
        "main_coordinates": player.main_coordinates,
        "notice": player.notice,
        "research": to_wire(player.research) if player.research is not None else None,
        "scores": scores_view(player.scores),
        "combat_stats": {
            "total": player.combats_total,
            "won": player.combats_won,
            "draw": player.combats_draw,
            "lost": player.combats_lost,
            "units_shot": player.units_shot,
            "units_lost": player.units_lost,
        },
        "status": {
            "is_deleted": bool(player.is_deleted),
            "inactive_since": isoformat_utc(player.inactive_since),
            "vacation_since": isoformat_utc(player.vacation_since),
        },
    }


def score_point(score: PlayerScore) -> Dict[str, Any]:
    return {
        "player_id": score.player_id,
        "recorded_at": isoformat_utc(score.recorded_at),
        "score_total": score.score_total,
        "score_economy": score.score_economy,
        "score_research": score.score_research,
        "score_military": score.score_military,
        "score_defense": score.score_defense,
        "rank_total": score.rank_total,
    }


def planet_summary(planet: Planet) -> Dict[str, Any]:
    return {
        "id": planet.id,
        "name": planet.name,
        "player_id": planet.player_id,
        "coordinates": planet.coordinates,
        "galaxy": planet.galaxy,
        "system": planet.system,
        "planet": planet.planet,
        "type": planet.type,
        "planet_id": planet.planet_id,
        "status": planet.status,
        "buildings": to_wire(planet.buildings),
        "fleet": to_wire(planet.fleet),
        "defense": to_wire(planet.defense),
        "resources": to_wire(planet.resources),
        "prod_h": planet.prod_h,
        "points": planet.points,
        "created_at": isoformat_utc(planet.created_at),
        "updated_at": isoformat_utc(planet.updated_at),
    }


async def get_player(session: AsyncSession, player_id: int) -> Dict[str, Any]:
    result = await session.execute(
        select(Player).options(selectinload(Player.alliance)).where(Player.id == player_id)
    )
    player = result.scalar_one_or_none()
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    return player_view(player, player.alliance)


async def get_players(session: AsyncSession, player_ids: Iterable[int]) -> List[Dict[str, Any]]:
    ids = list(dict.fromkeys(int(i) for i in player_ids))
    if not ids:
        return []
    result = await session.execute(
        select(Player).options(selectinload(Player.alliance)).where(Player.id.in_(ids)).order_by(Player.id)
    )
    return [player_view(p, p.alliance) for p in result.scalars().all()]


async def get_player_by_name(session: AsyncSession, name: str) -> Optional[Player]:
    result = await session.execute(select(Player).where(Player.name == name).order_by(Player.id).limit(1))
    return result.scalar_one_or_none()


async def get_player_planets(session: AsyncSession, player_id: int) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(Planet)
        .where(Planet.player_id == player_id, Planet.status != STATUS_DELETED)
        .order_by(Planet.galaxy, Planet.system, Planet.planet, Planet.type)
    )
    return [planet_summary(p) for p in result.scalars().all()]


async def get_player_chart(session: AsyncSession, player_id: int, days: Optional[int] = None, now=None) -> List[Dict[str, Any]]:
    stmt = select(PlayerScore).where(PlayerScore.player_id == player_id)
    if days is not None:
        since = (now or utc_now()) - timedelta(days=days)
        stmt = stmt.where(PlayerScore.recorded_at >= since)
    result = await session.execute(stmt.order_by(PlayerScore.recorded_at.asc(), PlayerScore.id.asc()))
    return [score_point(s) for s in result.scalars().all()]


async def get_alliance_planets(session: AsyncSession, alliance_id: int) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(Planet)
        .join(Player, Planet.player_id == Player.id)
        .where(Player.alliance_id == alliance_id)
        .order_by(Planet.galaxy, Planet.system, Planet.planet, Planet.type)
    )
    return [planet_summary(p) for p in result.scalars().all()]


async def get_alliance_chart(session: AsyncSession, alliance_id: int) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(PlayerScore)
        .join(Player, PlayerScore.player_id == Player.id)
        .where(Player.alliance_id == alliance_id)
        .order_by(PlayerScore.player_id, PlayerScore.recorded_at.asc())
    )
    return [score_point(s) for s in result.scalars().all()]


