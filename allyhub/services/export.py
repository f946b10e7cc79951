"""Full-universe export document for the external galaxy viewer.

Layout (a compatibility contract, do not reshape):

    [
      {"g:s": {"1": slot|null, ..., "15": slot|null, "timepoint": ms}, ...},
      {"<player id>": {"name": str, "timepoint": ms}, ...},
      {"<alliance id>": {"name": str, "timepoint": ms}, ..., "-1": {"name": "-", "timepoint": ms}},
    ]

A slot is {"planetname", "hasmoon", "playerid", "name", "allianceid",
"alliancename", "special"}; players without an alliance carry allianceid -1
and alliancename "-".
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.config import POSITIONS_PER_SYSTEM, SYSTEM_PLAYER_ID
from allyhub.core.metrics import metrics
from allyhub.core.time_utils import epoch_ms
from allyhub.models.database import Alliance, MOON, PLANET, Planet, Player, STATUS_DELETED

logger = logging.getLogger(__name__)

NO_ALLIANCE_ID = -1
NO_ALLIANCE_NAME = "-"


def _empty_group() -> Dict[str, Any]:
    group: Dict[str, Any] = {str(pos): None for pos in range(1, POSITIONS_PER_SYSTEM + 1)}
    group["timepoint"] = 0
    return group


def _slot(player: Player, alliance: Optional[Alliance], has_moon: bool) -> Dict[str, Any]:
    return {
        "planetname": "",
        "hasmoon": has_moon,
        "playerid": player.id,
        "name": player.name,
        "allianceid": alliance.id if alliance is not None else NO_ALLIANCE_ID,
        "alliancename": alliance.name if alliance is not None else NO_ALLIANCE_NAME,
        "special": "",
    }


async def _coordinates_map(session: AsyncSession, players: Dict[int, Player], alliances: Dict[int, Alliance]) -> Dict[str, Any]:
    moons: Set[Tuple[int, int, int]] = set()
    moon_rows = await session.execute(
        select(Planet.galaxy, Planet.system, Planet.planet)
        .where(Planet.type == MOON, Planet.status != STATUS_DELETED)
    )
    for g, s, p in moon_rows.all():
        moons.add((g, s, p))

    rows = await session.execute(
        select(Planet).where(Planet.type == PLANET).order_by(Planet.galaxy, Planet.system, Planet.planet)
    )
    groups: Dict[str, Dict[str, Any]] = {}
    for planet in rows.scalars().all():
        key = f"{planet.galaxy}:{planet.system}"
        group = groups.get(key)
        if group is None:
            group = groups[key] = _empty_group()
        group["timepoint"] = max(group["timepoint"], epoch_ms(planet.updated_at))
        if not 1 <= planet.planet <= POSITIONS_PER_SYSTEM or planet.status == STATUS_DELETED:
            continue
        owner = players.get(planet.player_id)
        if owner is None or owner.id == SYSTEM_PLAYER_ID:
            continue
        alliance = alliances.get(owner.alliance_id) if owner.alliance_id is not None else None
        has_moon = (planet.galaxy, planet.system, planet.planet) in moons
        group[str(planet.planet)] = _slot(owner, alliance, has_moon)
    return groups


async def build_export(session: AsyncSession) -> List[Dict[str, Any]]:
    started = time.perf_counter()
    player_rows = (await session.execute(select(Player).order_by(Player.id))).scalars().all()
    alliance_rows = (await session.execute(select(Alliance).order_by(Alliance.id))).scalars().all()
    players = {p.id: p for p in player_rows}
    alliances = {a.id: a for a in alliance_rows}

    coordinates = await _coordinates_map(session, players, alliances)
    players_map = {
        str(p.id): {"name": p.name, "timepoint": epoch_ms(p.updated_at)}
        for p in player_rows
        if p.name
    }
    alliances_map: Dict[str, Any] = {
        str(a.id): {"name": a.name, "timepoint": epoch_ms(a.updated_at)}
        for a in alliance_rows
    }
    alliances_map[str(NO_ALLIANCE_ID)] = {
        "name": NO_ALLIANCE_NAME,
        "timepoint": max((v["timepoint"] for v in alliances_map.values()), default=0),
    }

    metrics.record_timer("export.duration_s", time.perf_counter() - started)
    logger.info("export_built", extra={"systems": len(coordinates), "players": len(players_map), "alliances": len(alliance_rows)})
    return [coordinates, players_map, alliances_map]


async def export_json(session: AsyncSession) -> str:
    return json.dumps(await build_export(session), separators=(",", ":"))
