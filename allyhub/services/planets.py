"""Planet and moon rows keyed by (coordinates, kind).

Each source has its own merge policy:

- galaxy scans overwrite owner and name, coalesce the game-internal planet
  id and revive rows previously marked deleted;
- empire pages overwrite the whole planet state and mark it seen;
- single-map updates (buildings/fleet/defense/resources) touch one column.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.errors import BadRequestError, NotFoundError
from allyhub.core.time_utils import isoformat_utc, utc_now
from allyhub.models.codec import MAP_FIELDS, encode_map
from allyhub.models.database import (
    Alliance,
    MOON,
    PLANET,
    Planet,
    Player,
    STATUS_DELETED,
    STATUS_NEW,
    STATUS_SEEN,
    SpyReport,
)
from allyhub.services.common import format_coordinates, merge_upsert, require_coordinates
from allyhub.services.entities import ensure_player, planet_summary

logger = logging.getLogger(__name__)


async def load_planet(session: AsyncSession, coordinates: str, kind: str) -> Optional[Planet]:
    result = await session.execute(
        select(Planet).where(Planet.coordinates == coordinates, Planet.type == kind)
    )
    return result.scalar_one_or_none()


async def upsert_scanned_planet(
    session: AsyncSession,
    player_id: int,
    galaxy: int,
    system: int,
    position: int,
    kind: str = PLANET,
    name: Optional[str] = None,
    planet_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Planet:
    """Upsert a planet/moon sighted in a galaxy scan.

    The owner must already exist. A row marked deleted that is sighted again
    becomes new; new and seen rows keep their status.
    """
    coordinates = format_coordinates(galaxy, system, position)
    stamp = now or utc_now()

    def _create() -> Planet:
        return Planet(
            player_id=player_id,
            name=name,
            coordinates=coordinates,
            galaxy=galaxy,
            system=system,
            planet=position,
            type=kind,
            planet_id=planet_id,
            status=STATUS_NEW,
            created_at=stamp,
            updated_at=stamp,
        )

    def _merge(row: Planet) -> None:
        row.name = name
        row.player_id = player_id
        if planet_id is not None:
            row.planet_id = planet_id
        if row.status == STATUS_DELETED:
            row.status = STATUS_NEW
        row.updated_at = stamp

    planet, _ = await merge_upsert(session, lambda: load_planet(session, coordinates, kind), _create, _merge)
    return planet


def _empire_fields(player_id: int, snapshot: Dict[str, Any]) -> Dict[str, Any]:
    production = snapshot.get("production") or {}
    metal = int(production.get("metal") or 0)
    crystal = int(production.get("crystal") or 0)
    deuterium = int(production.get("deuterium") or 0)
    return {
        "player_id": player_id,
        "name": snapshot.get("name"),
        "planet_id": snapshot.get("external_id"),
        "fields_used": snapshot.get("fields_used"),
        "fields_max": snapshot.get("fields_max"),
        "temperature": snapshot.get("temperature"),
        "points": snapshot.get("points"),
        "metal_prod_h": metal,
        "crystal_prod_h": crystal,
        "deut_prod_h": deuterium,
        "prod_h": metal + crystal + deuterium,
        "energy_used": int(production.get("energy_used") or 0),
        "energy_max": int(production.get("energy_max") or 0),
        "resources": encode_map(snapshot.get("resources") or {}),
        "buildings": encode_map(snapshot.get("buildings") or {}),
        "fleet": encode_map(snapshot.get("fleet") or {}),
        "defense": encode_map(snapshot.get("defense") or {}),
        "status": STATUS_SEEN,
    }


async def upsert_empire_planet(
    session: AsyncSession,
    player_id: int,
    galaxy: int,
    system: int,
    position: int,
    snapshot: Dict[str, Any],
) -> Planet:
    """Overwrite a PLANET row with the state read from the empire page."""
    coordinates = format_coordinates(galaxy, system, position)
    fields = _empire_fields(player_id, snapshot)
    stamp = utc_now()

    def _merge(row: Planet) -> None:
        for key, value in fields.items():
            setattr(row, key, value)
        row.updated_at = stamp

    def _create() -> Planet:
        return Planet(
            coordinates=coordinates,
            galaxy=galaxy,
            system=system,
            planet=position,
            type=PLANET,
            created_at=stamp,
            updated_at=stamp,
            **fields,
        )

    planet, _ = await merge_upsert(session, lambda: load_planet(session, coordinates, PLANET), _create, _merge)
    return planet


async def mark_planet_deleted(session: AsyncSession, coordinates: str, kind: str = PLANET, now: Optional[datetime] = None) -> bool:
    """Flag the row as deleted, keeping it for history. False when no row matched."""
    result = await session.execute(
        update(Planet)
        .where(Planet.coordinates == coordinates, Planet.type == kind)
        .values(status=STATUS_DELETED, updated_at=now or utc_now())
        .execution_options(synchronize_session="fetch")
    )
    await session.commit()
    return bool(result.rowcount)


async def update_planet_map(session: AsyncSession, coordinates: str, kind: str, field: str, mapping: Dict[Any, Any]) -> None:
    if field not in MAP_FIELDS:
        raise BadRequestError(f"Unknown planet map: {field}")
    planet = await load_planet(session, coordinates, kind)
    if planet is None:
        raise NotFoundError(f"Planet {coordinates} ({kind}) not found")
    setattr(planet, field, encode_map(mapping))
    planet.updated_at = utc_now()
    await session.commit()


async def create_planet(
    session: AsyncSession,
    coordinates: str,
    player_id: int,
    planet_name: Optional[str] = None,
    moon_name: Optional[str] = None,
) -> List[Planet]:
    galaxy, system, position = require_coordinates(coordinates)
    await ensure_player(session, player_id, "Unknown")
    rows = [await upsert_scanned_planet(session, player_id, galaxy, system, position, PLANET, planet_name)]
    if moon_name:
        rows.append(await upsert_scanned_planet(session, player_id, galaxy, system, position, MOON, moon_name))
    return rows


async def get_system(session: AsyncSession, galaxy: int, system: int) -> Dict[str, Any]:
    planets = await session.execute(
        select(Planet)
        .where(
            Planet.galaxy == galaxy,
            Planet.system == system,
            Planet.planet > 0,
            Planet.status != STATUS_DELETED,
        )
        .order_by(Planet.planet, Planet.type)
    )
    reports = await session.execute(
        select(SpyReport)
        .where(SpyReport.galaxy == galaxy, SpyReport.system == system)
        .order_by(SpyReport.planet, SpyReport.created_at.desc())
    )
    marker = await load_planet(session, format_coordinates(galaxy, system, 0), PLANET)
    return {
        "galaxy": galaxy,
        "system": system,
        "planets": [planet_summary(p) for p in planets.scalars().all()],
        "spy_reports": [
            {
                "id": r.id,
                "external_id": r.external_id,
                "planet": r.planet,
                "type": r.type,
                "created_at": isoformat_utc(r.created_at),
            }
            for r in reports.scalars().all()
        ],
        "last_scan_at": isoformat_utc(marker.updated_at) if marker is not None else None,
    }


async def get_new_planets(session: AsyncSession) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(Planet, Player.name, Alliance.tag)
        .outerjoin(Player, Planet.player_id == Player.id)
        .outerjoin(Alliance, Player.alliance_id == Alliance.id)
        .where(Planet.status == STATUS_NEW, Planet.type == PLANET, Planet.planet > 0)
        .order_by(Planet.galaxy, Planet.system, Planet.planet)
    )
    return [
        {
            "id": planet.id,
            "coordinates": planet.coordinates,
            "galaxy": planet.galaxy,
            "system": planet.system,
            "planet": planet.planet,
            "player_name": player_name,
            "alliance_tag": alliance_tag,
            "created_at": isoformat_utc(planet.created_at),
        }
        for planet, player_name, alliance_tag in result.all()
    ]


async def mark_planets_seen(session: AsyncSession, ids: Iterable[int]) -> int:
    ids = [int(i) for i in ids]
    if not ids:
        return 0
    result = await session.execute(
        update(Planet)
        .where(Planet.id.in_(ids), Planet.status == STATUS_NEW)
        .values(status=STATUS_SEEN)
        .execution_options(synchronize_session="fetch")
    )
    await session.commit()
    return int(result.rowcount or 0)
