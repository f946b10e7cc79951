"""Report ingestion (spy, battle, expedition, recycle, hostile spying) and report reads.

Every report kind is deduplicated by the game's report id (external_id).
Re-submitting a report overwrites its payload and report time; where it was
found, what kind of body it was and who reported it stay as first seen.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.config import HOSTILE_SPYING_PAGE_SIZE, SPY_REPORT_DEFAULT_LINES
from allyhub.core.errors import BadRequestError
from allyhub.core.metrics import metrics
from allyhub.core.time_utils import isoformat_utc, parse_utc
from allyhub.models.codec import encode_map, to_wire
from allyhub.models.database import (
    Alliance,
    BattleReport,
    ExpeditionReport,
    HostileSpying,
    PLANET,
    Planet,
    Player,
    RecycleReport,
    SpyReport,
)
from allyhub.models.payloads import (
    BattleReportIn,
    ExpeditionReportIn,
    HostileSpyingIn,
    RecycleReportIn,
    SpyReportIn,
)
from allyhub.services.common import format_coordinates, merge_upsert

logger = logging.getLogger(__name__)


def _report_time(raw: Optional[str]):
    """Parse a submitted report time; an unreadable one is stored as NULL."""
    try:
        return parse_utc(raw)
    except ValueError:
        logger.warning("report_time_unreadable value=%r", raw)
        metrics.increment_event("ingest.reports.bad_time")
        return None


def _time_filter(raw: Optional[str]):
    try:
        return parse_utc(raw)
    except ValueError:
        raise BadRequestError(f"Invalid time filter: {raw!r}")


async def _load_by_external_id(session: AsyncSession, model, external_id: int):
    result = await session.execute(select(model).where(model.external_id == external_id))
    return result.scalar_one_or_none()


async def _upsert_report(session: AsyncSession, model, external_id: int, first_seen: Dict[str, Any], payload: Dict[str, Any], kind: str):
    def _create():
        return model(external_id=external_id, **first_seen, **payload)

    def _merge(row) -> None:
        for key, value in payload.items():
            setattr(row, key, value)

    row, created = await merge_upsert(
        session, lambda: _load_by_external_id(session, model, external_id), _create, _merge
    )
    metrics.increment_event(f"ingest.reports.{kind}")
    logger.debug("report_upserted kind=%s external_id=%s created=%s", kind, external_id, created)
    return row


async def upsert_spy_report(session: AsyncSession, report: SpyReportIn, reported_by: Optional[int]) -> SpyReport:
    first_seen = {
        "coordinates": format_coordinates(report.galaxy, report.system, report.planet),
        "galaxy": report.galaxy,
        "system": report.system,
        "planet": report.planet,
        "type": report.type,
        "reported_by": reported_by,
    }
    payload = {
        "resources": encode_map(report.resources),
        "buildings": encode_map(report.buildings),
        "research": encode_map(report.research),
        "fleet": encode_map(report.fleet),
        "defense": encode_map(report.defense),
        "report_time": _report_time(report.report_time),
    }
    return await _upsert_report(session, SpyReport, report.id, first_seen, payload, "spy")


async def upsert_battle_report(session: AsyncSession, report: BattleReportIn, reported_by: Optional[int]) -> BattleReport:
    first_seen = {
        "coordinates": format_coordinates(report.galaxy, report.system, report.planet),
        "galaxy": report.galaxy,
        "system": report.system,
        "planet": report.planet,
        "type": report.type,
        "reported_by": reported_by,
    }
    payload = {
        "attacker_lost": report.attacker_lost,
        "defender_lost": report.defender_lost,
        "metal": report.metal,
        "crystal": report.crystal,
        "deuterium": report.deuterium,
        "debris_metal": report.debris_metal,
        "debris_crystal": report.debris_crystal,
        "report_time": _report_time(report.report_time),
    }
    return await _upsert_report(session, BattleReport, report.id, first_seen, payload, "battle")


async def upsert_expedition_report(session: AsyncSession, report: ExpeditionReportIn, reported_by: Optional[int]) -> ExpeditionReport:
    payload = {
        "message": report.message,
        "type": report.type,
        "resources": encode_map(report.resources),
        "fleet": encode_map(report.fleet),
        "report_time": _report_time(report.report_time),
    }
    return await _upsert_report(session, ExpeditionReport, report.id, {"reported_by": reported_by}, payload, "expedition")


async def upsert_recycle_report(session: AsyncSession, report: RecycleReportIn, reported_by: Optional[int]) -> RecycleReport:
    first_seen = {
        "coordinates": format_coordinates(report.galaxy, report.system, report.planet),
        "galaxy": report.galaxy,
        "system": report.system,
        "planet": report.planet,
        "reported_by": reported_by,
    }
    payload = {
        "metal": report.metal,
        "crystal": report.crystal,
        "metal_tf": report.metal_tf,
        "crystal_tf": report.crystal_tf,
        "report_time": _report_time(report.report_time),
    }
    return await _upsert_report(session, RecycleReport, report.id, first_seen, payload, "recycle")


async def upsert_hostile_spying(session: AsyncSession, report: HostileSpyingIn) -> HostileSpying:
    payload = {
        "attacker_coordinates": report.attacker_coordinates,
        "target_coordinates": report.target_coordinates,
        "report_time": _report_time(report.report_time),
    }
    return await _upsert_report(session, HostileSpying, report.id, {}, payload, "hostile")


# --- Read side ---

def spy_report_view(report: SpyReport, reporter_name: Optional[str] = None) -> Dict[str, Any]:
    view = {
        "id": report.id,
        "external_id": report.external_id,
        "coordinates": report.coordinates,
        "type": report.type,
        "resources": to_wire(report.resources),
        "buildings": to_wire(report.buildings),
        "research": to_wire(report.research),
        "fleet": to_wire(report.fleet),
        "defense": to_wire(report.defense),
        "reported_by": report.reported_by,
        "report_time": isoformat_utc(report.report_time),
        "created_at": isoformat_utc(report.created_at),
    }
    if reporter_name is not None:
        view["reporter_name"] = reporter_name
    return view


async def get_spy_reports(
    session: AsyncSession,
    galaxy: int,
    system: int,
    planet: int,
    kind: str = PLANET,
    lines: int = SPY_REPORT_DEFAULT_LINES,
) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(SpyReport)
        .where(SpyReport.galaxy == galaxy, SpyReport.system == system, SpyReport.planet == planet, SpyReport.type == kind)
        .order_by(SpyReport.created_at.desc(), SpyReport.id.desc())
        .limit(lines)
    )
    return [spy_report_view(r) for r in result.scalars().all()]


async def get_spy_report_history(
    session: AsyncSession,
    galaxy: int,
    system: int,
    planet: int,
    kind: str = PLANET,
    lines: int = SPY_REPORT_DEFAULT_LINES,
) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(SpyReport, Player.name)
        .outerjoin(Player, SpyReport.reported_by == Player.id)
        .where(SpyReport.galaxy == galaxy, SpyReport.system == system, SpyReport.planet == planet, SpyReport.type == kind)
        .order_by(SpyReport.created_at.desc(), SpyReport.id.desc())
        .limit(lines)
    )
    return [spy_report_view(r, name or "") for r, name in result.all()]


async def get_battle_report_history(
    session: AsyncSession,
    galaxy: int,
    system: int,
    planet: int,
    lines: int = SPY_REPORT_DEFAULT_LINES,
) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(BattleReport, Player.name)
        .outerjoin(Player, BattleReport.reported_by == Player.id)
        .where(BattleReport.galaxy == galaxy, BattleReport.system == system, BattleReport.planet == planet)
        .order_by(BattleReport.created_at.desc(), BattleReport.id.desc())
        .limit(lines)
    )
    return [
        {
            "id": r.id,
            "report_id": str(r.external_id),
            "attacker_lost": r.attacker_lost,
            "defender_lost": r.defender_lost,
            "metal": r.metal,
            "crystal": r.crystal,
            "deuterium": r.deuterium,
            "debris_metal": r.debris_metal,
            "debris_crystal": r.debris_crystal,
            "report_time": isoformat_utc(r.report_time),
            "created_at": isoformat_utc(r.created_at),
            "reporter_name": name or "",
        }
        for r, name in result.all()
    ]


def _like(term: str) -> str:
    return f"%{term}%"


def _total_pages(total: int) -> int:
    return max(1, math.ceil(total / HOSTILE_SPYING_PAGE_SIZE))


async def list_hostile_spying(session: AsyncSession, search: Optional[str] = None, page: int = 1) -> Dict[str, Any]:
    page = max(1, int(page or 1))
    stmt = select(HostileSpying)
    count_stmt = select(func.count(HostileSpying.id))
    if search:
        cond = or_(
            HostileSpying.attacker_coordinates.like(_like(search)),
            HostileSpying.target_coordinates.like(_like(search)),
        )
        stmt = stmt.where(cond)
        count_stmt = count_stmt.where(cond)
    total = int((await session.execute(count_stmt)).scalar_one())
    result = await session.execute(
        stmt.order_by(HostileSpying.created_at.desc(), HostileSpying.id.desc())
        .limit(HOSTILE_SPYING_PAGE_SIZE)
        .offset((page - 1) * HOSTILE_SPYING_PAGE_SIZE)
    )
    return {
        "items": [
            {
                "id": r.id,
                "external_id": r.external_id,
                "attacker_coordinates": r.attacker_coordinates,
                "target_coordinates": r.target_coordinates,
                "report_time": isoformat_utc(r.report_time),
                "created_at": isoformat_utc(r.created_at),
            }
            for r in result.scalars().all()
        ],
        "total": total,
        "page": page,
        "total_pages": _total_pages(total),
    }


async def hostile_spying_overview(
    session: AsyncSession,
    attacker: Optional[str] = None,
    target: Optional[str] = None,
    time_from: Optional[str] = None,
    time_to: Optional[str] = None,
    page: int = 1,
) -> Dict[str, Any]:
    """Hostile spying grouped by attacker coordinates, most recent attacker first.

    The attacker filter matches either the coordinates or the name of the
    player owning the PLANET at those coordinates.
    """
    page = max(1, int(page or 1))
    conditions = []
    if attacker:
        owners_named = (
            select(Planet.coordinates)
            .join(Player, Planet.player_id == Player.id)
            .where(Planet.type == PLANET, Player.name.like(_like(attacker)))
        )
        conditions.append(or_(
            HostileSpying.attacker_coordinates.like(_like(attacker)),
            HostileSpying.attacker_coordinates.in_(owners_named),
        ))
    if target:
        conditions.append(HostileSpying.target_coordinates.like(_like(target)))
    start = _time_filter(time_from)
    end = _time_filter(time_to)
    if start is not None:
        conditions.append(HostileSpying.report_time >= start)
    if end is not None:
        conditions.append(HostileSpying.report_time <= end)

    total = int((await session.execute(
        select(func.count(func.distinct(HostileSpying.attacker_coordinates))).where(*conditions)
    )).scalar_one())

    last_time = func.max(HostileSpying.report_time).label("last_spy_time")
    groups = (await session.execute(
        select(HostileSpying.attacker_coordinates, func.count(HostileSpying.id).label("spy_count"), last_time)
        .where(*conditions)
        .group_by(HostileSpying.attacker_coordinates)
        .order_by(last_time.desc(), HostileSpying.attacker_coordinates)
        .limit(HOSTILE_SPYING_PAGE_SIZE)
        .offset((page - 1) * HOSTILE_SPYING_PAGE_SIZE)
    )).all()

    attackers = [g.attacker_coordinates for g in groups if g.attacker_coordinates is not None]
    targets: Dict[Optional[str], List[str]] = {}
    owners: Dict[str, Any] = {}
    if groups:
        pairs = await session.execute(
            select(HostileSpying.attacker_coordinates, HostileSpying.target_coordinates)
            .where(*conditions)
            .where(HostileSpying.attacker_coordinates.in_(attackers) if attackers else HostileSpying.attacker_coordinates.is_(None))
            .distinct()
            .order_by(HostileSpying.attacker_coordinates, HostileSpying.target_coordinates)
        )
        for att, tgt in pairs.all():
            if tgt is not None:
                targets.setdefault(att, []).append(tgt)
    if attackers:
        rows = await session.execute(
            select(Planet.coordinates, Player.name, Alliance.tag)
            .join(Player, Planet.player_id == Player.id)
            .outerjoin(Alliance, Player.alliance_id == Alliance.id)
            .where(Planet.type == PLANET, Planet.coordinates.in_(attackers))
        )
        for coords, name, tag in rows.all():
            owners[coords] = (name, tag)

    items = []
    for g in groups:
        name, tag = owners.get(g.attacker_coordinates, (None, None))
        items.append({
            "attacker_coordinates": g.attacker_coordinates,
            "attacker_name": name,
            "attacker_alliance_tag": tag,
            "spy_count": int(g.spy_count),
            "last_spy_time": isoformat_utc(g.last_spy_time),
            "targets": targets.get(g.attacker_coordinates, []),
        })
    return {"items": items, "total": total, "page": page, "total_pages": _total_pages(total)}
