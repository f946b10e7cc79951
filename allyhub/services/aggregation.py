"""Derived, read-only views over the reconciled store.

Covers score deltas over fixed lookback windows, raid/expedition/recycling
activity, per-alliance leaderboard maxima, distance estimates, sync freshness
and the universe configuration. Nothing here writes game data except
set_universe_config.

Times are compared in UTC. Functions that depend on the clock take an
optional ``now`` so results are reproducible.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.config import (
    ACTIVITY_WINDOW_HOURS,
    DEFAULT_GALAXIES,
    DEFAULT_GALAXY_WRAPPED,
    DEFAULT_SYSTEMS,
    MAX_GALAXIES,
    MAX_SYSTEMS,
    SCORE_DELTA_WINDOWS_HOURS,
    SCORE_HISTORY_DAYS,
    SYNC_WINDOW_HOURS,
    SYSTEM_PLAYER_ID,
    SYSTEM_PLAYER_NAME,
    TOP_INACTIVE_LIMIT,
)
from allyhub.core.errors import BadRequestError
from allyhub.core.time_utils import (
    ensure_aware_utc,
    hours_since,
    is_within_sync_window,
    isoformat_utc,
    sync_window_start as _bucket_start,
    utc_now,
)
from allyhub.models.codec import decode_map, resource_triplet, sum_maps, to_wire
from allyhub.models.database import (
    Alliance,
    BattleReport,
    ConfigEntry,
    ExpeditionReport,
    PLANET,
    Planet,
    Player,
    PlayerScore,
    RecycleReport,
    STATUS_DELETED,
    SpyReport,
    StatView,
    User,
)
from allyhub.services.common import Coords, merge_upsert, parse_coordinates, require_player
from allyhub.services.entities import score_point
from allyhub.services.reports import get_spy_reports

logger = logging.getLogger(__name__)


# --- Distance ---

def distance(origin: Coords, target: Coords) -> int:
    """Static distance estimate used to sort own planets by proximity to a target."""
    g1, s1, p1 = origin
    g2, s2, p2 = target
    if g1 != g2:
        return 20000 * abs(g1 - g2)
    if s1 != s2:
        return 2700 + 95 * abs(s1 - s2)
    if p1 != p2:
        return 1000 + 5 * abs(p1 - p2)
    return 5


async def target_overview(session: AsyncSession, target: Coords, own_planets: Iterable[str]) -> List[Dict[str, Any]]:
    """Own planets (as "g:s:p") sorted by distance to target; malformed entries are skipped."""
    latest = await get_spy_reports(session, *target, kind=PLANET, lines=1)
    spy = None
    if latest:
        spy = {"id": latest[0]["id"], "created_at": latest[0]["created_at"], "resources": latest[0]["resources"]}
    entries = []
    for raw in own_planets:
        coords = parse_coordinates(raw)
        if coords is None:
            continue
        entries.append({
            "coordinates": raw,
            "distance": distance(coords, target),
            "last_spy_report": spy,
            "resources": spy["resources"] if spy else None,
        })
    entries.sort(key=lambda e: e["distance"])
    return entries


# --- Score deltas ---

async def historical_totals(session: AsyncSession, cutoff: datetime) -> Dict[int, int]:
    """Per player, the total of the latest history row recorded at or before cutoff."""
    latest = (
        select(PlayerScore.player_id.label("player_id"), func.max(PlayerScore.recorded_at).label("recorded_at"))
        .where(PlayerScore.recorded_at <= cutoff)
        .group_by(PlayerScore.player_id)
        .subquery()
    )
    rows = await session.execute(
        select(PlayerScore.player_id, PlayerScore.score_total)
        .join(latest, and_(
            PlayerScore.player_id == latest.c.player_id,
            PlayerScore.recorded_at == latest.c.recorded_at,
        ))
        .order_by(PlayerScore.id)
    )
    # Same-timestamp duplicates resolve to the last inserted row
    return {player_id: total for player_id, total in rows.all()}


def _delta_key(hours: int) -> str:
    return f"diff{hours:02d}"


async def score_deltas(session: AsyncSession, now: Optional[datetime] = None) -> Dict[int, Dict[str, Optional[int]]]:
    """current total minus the historical total per lookback window.

    A window without any history row at or before now - window yields None,
    as does a player without a current total.
    """
    now = ensure_aware_utc(now) if now is not None else utc_now()
    history = {
        hours: await historical_totals(session, now - timedelta(hours=hours))
        for hours in SCORE_DELTA_WINDOWS_HOURS
    }
    current = (await session.execute(select(Player.id, Player.score_total))).all()
    deltas: Dict[int, Dict[str, Optional[int]]] = {}
    for player_id, total in current:
        deltas[player_id] = {
            _delta_key(hours): (
                total - history[hours][player_id]
                if total is not None and player_id in history[hours] else None
            )
            for hours in SCORE_DELTA_WINDOWS_HOURS
        }
    return deltas


async def _latest_planet_spy_reports(session: AsyncSession) -> Dict[Coords, SpyReport]:
    latest = (
        select(
            SpyReport.galaxy.label("galaxy"),
            SpyReport.system.label("system"),
            SpyReport.planet.label("planet"),
            func.max(SpyReport.created_at).label("created_at"),
        )
        .where(SpyReport.type == PLANET)
        .group_by(SpyReport.galaxy, SpyReport.system, SpyReport.planet)
        .subquery()
    )
    rows = await session.execute(
        select(SpyReport)
        .join(latest, and_(
            SpyReport.galaxy == latest.c.galaxy,
            SpyReport.system == latest.c.system,
            SpyReport.planet == latest.c.planet,
            SpyReport.created_at == latest.c.created_at,
        ))
        .where(SpyReport.type == PLANET)
        .order_by(SpyReport.id)
    )
    return {(r.galaxy, r.system, r.planet): r for r in rows.scalars().all()}


async def _latest_battle_times(session: AsyncSession) -> Dict[Coords, datetime]:
    rows = await session.execute(
        select(BattleReport.galaxy, BattleReport.system, BattleReport.planet, func.max(BattleReport.created_at))
        .group_by(BattleReport.galaxy, BattleReport.system, BattleReport.planet)
    )
    return {(g, s, p): at for g, s, p, at in rows.all()}


async def hub_overview(session: AsyncSession, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Every PLANET row of a real player with scores, deltas and latest intel, ordered by coordinates."""
    deltas = await score_deltas(session, now)
    spies = await _latest_planet_spy_reports(session)
    battles = await _latest_battle_times(session)
    rows = await session.execute(
        select(Planet, Player, Alliance.tag)
        .join(Player, Planet.player_id == Player.id)
        .outerjoin(Alliance, Player.alliance_id == Alliance.id)
        .where(
            Planet.type == PLANET,
            Player.id != SYSTEM_PLAYER_ID,
            Player.name != SYSTEM_PLAYER_NAME,
        )
        .order_by(Planet.galaxy, Planet.system, Planet.planet)
    )
    overview = []
    empty = {_delta_key(h): None for h in SCORE_DELTA_WINDOWS_HOURS}
    for planet, player, tag in rows.all():
        key = (planet.galaxy, planet.system, planet.planet)
        spy = spies.get(key)
        spy_metal = spy_crystal = spy_deuterium = None
        if spy is not None and spy.resources is not None:
            spy_metal, spy_crystal, spy_deuterium = resource_triplet(spy.resources)
        entry = {
            "id": planet.id,
            "planet_id": planet.planet_id,
            "coordinates": planet.coordinates,
            "galaxy": planet.galaxy,
            "system": planet.system,
            "planet": planet.planet,
            "status": planet.status,
            "player_id": player.id,
            "player_name": player.name,
            "alliance_id": player.alliance_id,
            "alliance_tag": tag,
            "notice": player.notice,
            "score_total": player.score_total,
            "score_buildings": player.score_buildings,
            "score_research": player.score_research,
            "score_fleet": player.score_fleet,
            "score_defense": player.score_defense,
            "inactive_since": isoformat_utc(player.inactive_since),
            "vacation_since": isoformat_utc(player.vacation_since),
            "last_spy_report": isoformat_utc(spy.created_at) if spy is not None else None,
            "last_battle_report": isoformat_utc(battles.get(key)),
            "spy_metal": spy_metal,
            "spy_crystal": spy_crystal,
            "spy_deuterium": spy_deuterium,
        }
        entry.update(deltas.get(player.id, empty))
        overview.append(entry)
    return overview


# --- Activity statistics ---

def _tally(rows: Iterable[Tuple[datetime, int, int, int]], since: datetime) -> Dict[str, int]:
    count = count_24h = metal = crystal = deuterium = 0
    for created_at, m, c, d in rows:
        count += 1
        if created_at is not None and ensure_aware_utc(created_at) > since:
            count_24h += 1
        metal += int(m or 0)
        crystal += int(c or 0)
        deuterium += int(d or 0)
    return {
        "count": count,
        "count_24h": count_24h,
        "metal": metal,
        "crystal": crystal,
        "deuterium": deuterium,
        "points": (metal + crystal + deuterium) // 1000,
    }


async def activity_stats(
    session: AsyncSession,
    player_id: int,
    last_24h: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Dict[str, int]]:
    """Expedition, raid and recycling tallies for reports filed by player_id.

    Each kind reports a lifetime count and a rolling 24h count in the same
    pass; with last_24h the lifetime figures are restricted to that window
    too. Recycling carries no deuterium.
    """
    now = ensure_aware_utc(now) if now is not None else utc_now()
    since = now - timedelta(hours=ACTIVITY_WINDOW_HOURS)

    def _scoped(stmt, model):
        stmt = stmt.where(model.reported_by == player_id)
        if last_24h:
            stmt = stmt.where(model.created_at > since)
        return stmt

    expos = await session.execute(_scoped(select(ExpeditionReport.created_at, ExpeditionReport.resources), ExpeditionReport))
    raids = await session.execute(_scoped(
        select(BattleReport.created_at, BattleReport.metal, BattleReport.crystal, BattleReport.deuterium), BattleReport
    ))
    recycling = await session.execute(_scoped(
        select(RecycleReport.created_at, RecycleReport.metal, RecycleReport.crystal), RecycleReport
    ))
    return {
        "expos": _tally(((at, *resource_triplet(res)) for at, res in expos.all()), since),
        "raids": _tally(raids.all(), since),
        "recycling": _tally(((at, m, c, 0) for at, m, c in recycling.all()), since),
    }


async def hub_stats(session: AsyncSession, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Own lifetime activity, plus 24h activity of every alliance member when the user has an alliance."""
    player_id = require_player(user)
    alliance_id = user.alliance_id
    own = await activity_stats(session, player_id, last_24h=False, now=now)
    members_stats = None
    if alliance_id is not None:
        members = await session.execute(
            select(Player.id, Player.name).where(Player.alliance_id == alliance_id).order_by(Player.name, Player.id)
        )
        members_stats = []
        for member_id, name in members.all():
            stats = await activity_stats(session, member_id, last_24h=True, now=now)
            members_stats.append({"id": member_id, "name": name, **stats})
    return {"own_stats": own, "alliance_stats": members_stats}


# --- Leaderboard maxima ---

def leaderboard_maxima(rows: Iterable[Tuple[int, str, Any]]) -> Dict[str, Dict[str, Any]]:
    """{id: {max_level, player_name}} over (player_id, player_name, raw_map) rows.

    Rows are processed in ascending player id order; only a strictly higher
    level replaces the holder, so ties stay with the lowest player id.
    """
    best: Dict[int, Dict[str, Any]] = {}
    for _, name, raw in sorted(rows, key=lambda r: r[0]):
        for item_id, level in decode_map(raw).items():
            current = best.get(item_id)
            if current is None or level > current["max_level"]:
                best[item_id] = {"max_level": level, "player_name": name or ""}
    return {str(k): best[k] for k in sorted(best)}


async def max_research(session: AsyncSession, alliance_id: int) -> Dict[str, Dict[str, Any]]:
    rows = await session.execute(
        select(Player.id, Player.name, Player.research)
        .where(Player.alliance_id == alliance_id, Player.is_deleted.is_(False), Player.research.is_not(None))
        .order_by(Player.id)
    )
    return leaderboard_maxima(rows.all())


async def max_buildings(session: AsyncSession, alliance_id: int) -> Dict[str, Dict[str, Any]]:
    rows = await session.execute(
        select(Player.id, Player.name, Planet.buildings)
        .join(Planet, Planet.player_id == Player.id)
        .where(
            Player.alliance_id == alliance_id,
            Player.is_deleted.is_(False),
            Planet.status != STATUS_DELETED,
            Planet.buildings.is_not(None),
        )
        .order_by(Player.id, Planet.id)
    )
    return leaderboard_maxima(rows.all())


async def alliance_research(session: AsyncSession, alliance_id: int) -> List[Dict[str, Any]]:
    rows = await session.execute(
        select(Player.id, Player.name, Player.research)
        .where(Player.alliance_id == alliance_id, Player.is_deleted.is_(False))
        .order_by(Player.name, Player.id)
    )
    return [
        {"id": pid, "name": name, "research": to_wire(research) if research is not None else None}
        for pid, name, research in rows.all()
    ]


async def alliance_planets(session: AsyncSession, alliance_id: int) -> List[Dict[str, Any]]:
    rows = await session.execute(
        select(Player.id, Player.name, Planet.coordinates, Planet.type, Planet.buildings, Planet.points)
        .join(Planet, Planet.player_id == Player.id)
        .where(Player.alliance_id == alliance_id, Planet.status != STATUS_DELETED)
        .order_by(Player.name, Planet.galaxy, Planet.system, Planet.planet, Planet.type)
    )
    return [
        {
            "player_id": pid,
            "player_name": name,
            "coordinates": coords,
            "type": kind,
            "buildings": to_wire(buildings) if buildings is not None else None,
            "points": points or 0,
        }
        for pid, name, coords, kind, buildings, points in rows.all()
    ]


async def alliance_fleet(session: AsyncSession, alliance_id: int) -> Dict[str, Any]:
    """Per-member fleet summed over non-deleted planets, plus the alliance total."""
    rows = await session.execute(
        select(Player.id, Player.name, Player.score_fleet, Planet.fleet)
        .outerjoin(Planet, and_(
            Planet.player_id == Player.id,
            Planet.status != STATUS_DELETED,
            Planet.fleet.is_not(None),
        ))
        .where(Player.alliance_id == alliance_id, Player.is_deleted.is_(False))
        .order_by(Player.id)
    )
    members: Dict[int, Dict[str, Any]] = {}
    fleets: Dict[int, List[Any]] = {}
    for pid, name, score_fleet, fleet in rows.all():
        members.setdefault(pid, {"id": pid, "name": name, "score_fleet": score_fleet})
        fleets.setdefault(pid, [])
        if fleet is not None:
            fleets[pid].append(fleet)
    players = []
    for pid, info in members.items():
        players.append({**info, "fleet": to_wire(sum_maps(fleets[pid]))})
    total = sum_maps(p["fleet"] for p in players)
    return {"players": players, "total": to_wire(total)}


async def alliance_scores(session: AsyncSession, alliance_id: int, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = ensure_aware_utc(now) if now is not None else utc_now()
    rows = await session.execute(
        select(PlayerScore)
        .join(Player, PlayerScore.player_id == Player.id)
        .where(Player.alliance_id == alliance_id, PlayerScore.recorded_at >= now - timedelta(days=SCORE_HISTORY_DAYS))
        .order_by(PlayerScore.recorded_at.desc(), PlayerScore.player_id)
    )
    return [score_point(s) for s in rows.scalars().all()]


# --- Freshness ---

def sync_window_start(now: Optional[datetime] = None) -> datetime:
    return _bucket_start(now, SYNC_WINDOW_HOURS)


def is_synced(last_sync_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return is_within_sync_window(last_sync_at, now, SYNC_WINDOW_HOURS)


async def galaxy_status(session: AsyncSession, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    rows = await session.execute(
        select(Planet.galaxy, Planet.system, Planet.updated_at)
        .where(Planet.planet == 0, Planet.type == PLANET)
        .order_by(Planet.galaxy, Planet.system)
    )
    return [
        {
            "galaxy": g,
            "system": s,
            "last_scan_at": isoformat_utc(at),
            "age_hours": hours_since(at, now),
        }
        for g, s, at in rows.all()
    ]


async def stat_view_status(session: AsyncSession, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    rows = await session.execute(select(StatView).order_by(StatView.stat_type))
    return [
        {
            "stat_type": view.stat_type,
            "last_sync_at": isoformat_utc(view.last_sync_at),
            "is_synced": is_synced(view.last_sync_at, now),
        }
        for view in rows.scalars().all()
    ]


# --- Universe config ---

def _parse_int(value: str, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


async def universe_config(session: AsyncSession) -> Dict[str, Any]:
    rows = await session.execute(
        select(ConfigEntry.key, ConfigEntry.value).where(ConfigEntry.key.in_(("galaxies", "systems", "galaxy_wrapped")))
    )
    values = dict(rows.all())
    wrapped = values.get("galaxy_wrapped")
    return {
        "galaxies": _parse_int(values.get("galaxies"), DEFAULT_GALAXIES),
        "systems": _parse_int(values.get("systems"), DEFAULT_SYSTEMS),
        "galaxy_wrapped": DEFAULT_GALAXY_WRAPPED if wrapped is None else wrapped in ("true", "1"),
    }


async def _set_config_value(session: AsyncSession, key: str, value: str) -> None:
    async def _load():
        res = await session.execute(select(ConfigEntry).where(ConfigEntry.key == key))
        return res.scalar_one_or_none()

    def _merge(entry: ConfigEntry) -> None:
        entry.value = value
        entry.updated_at = utc_now()

    await merge_upsert(session, _load, lambda: ConfigEntry(key=key, value=value), _merge)


async def set_universe_config(
    session: AsyncSession,
    galaxies: Optional[int] = None,
    systems: Optional[int] = None,
    galaxy_wrapped: Optional[bool] = None,
) -> Dict[str, Any]:
    if galaxies is not None and not 1 <= galaxies <= MAX_GALAXIES:
        raise BadRequestError(f"galaxies must be between 1 and {MAX_GALAXIES}")
    if systems is not None and not 1 <= systems <= MAX_SYSTEMS:
        raise BadRequestError(f"systems must be between 1 and {MAX_SYSTEMS}")
    if galaxies is not None:
        await _set_config_value(session, "galaxies", str(galaxies))
    if systems is not None:
        await _set_config_value(session, "systems", str(systems))
    if galaxy_wrapped is not None:
        await _set_config_value(session, "galaxy_wrapped", "true" if galaxy_wrapped else "false")
    config = await universe_config(session)
    logger.info("universe_config_updated", extra=config)
    return config


# --- Inactive players ---

async def top_inactive(session: AsyncSession, limit: int = TOP_INACTIVE_LIMIT) -> List[Dict[str, Any]]:
    rows = await session.execute(
        select(Player)
        .where(
            Player.inactive_since.is_not(None),
            Player.vacation_since.is_(None),
            Player.is_deleted.is_(False),
        )
        .order_by(func.coalesce(Player.score_total, 0).desc(), Player.id)
        .limit(limit)
    )
    return [
        {
            "id": p.id,
            "name": p.name,
            "score_total": p.score_total,
            "score_fleet": p.score_fleet,
            "score_buildings": p.score_buildings,
            "inactive_since": isoformat_utc(p.inactive_since),
        }
        for p in rows.scalars().all()
    ]


__all__ = [
    "distance",
    "target_overview",
    "historical_totals",
    "score_deltas",
    "hub_overview",
    "activity_stats",
    "hub_stats",
    "leaderboard_maxima",
    "max_research",
    "max_buildings",
    "alliance_research",
    "alliance_planets",
    "alliance_fleet",
    "alliance_scores",
    "sync_window_start",
    "is_synced",
    "galaxy_status",
    "stat_view_status",
    "universe_config",
    "set_universe_config",
    "top_inactive",
]
