"""Write endpoints fed by the browser extension."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.auth.security import get_current_user
from allyhub.core.database import get_async_session
from allyhub.models.database import User
from allyhub.models.payloads import (
    BattleReportIn,
    EmpireSnapshot,
    ExpeditionReportIn,
    GalaxyScan,
    HostileSpyingIn,
    MessageBatch,
    PlanetCreate,
    PlanetIds,
    PlanetMapUpdate,
    PlayerStatsBatch,
    PlayerUpsert,
    RecycleReportIn,
    ResearchUpdate,
    SpyReportIn,
    StatisticsSync,
)
from allyhub.services import reports
from allyhub.services.common import require_player
from allyhub.services.empire import ingest_empire
from allyhub.services.entities import mark_player_deleted, update_research, upsert_player_full
from allyhub.services.galaxy import reconcile_scan
from allyhub.services.messages import check_messages
from allyhub.services.planets import create_planet, get_new_planets, mark_planets_seen, update_planet_map
from allyhub.services.statistics import sync_statistics, upsert_player_stats

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ingest"])


def _reporter(user: User):
    return user.player_id or None


# --- Galaxy & planets ---

@router.post("/planets/new")
async def post_galaxy_scan(
    payload: GalaxyScan,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    result = await reconcile_scan(session, payload)
    return {"success": True, **result.as_dict()}


@router.get("/planets/new")
async def list_new_planets(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return {"planets": await get_new_planets(session)}


@router.post("/planets/new/seen")
async def post_planets_seen(
    payload: PlanetIds,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    updated = await mark_planets_seen(session, payload.ids)
    return {"success": True, "updated": updated}


@router.post("/planets")
async def post_planet(
    payload: PlanetCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    rows = await create_planet(session, payload.coordinates, payload.player_id, payload.planet_name, payload.moon_name)
    return {"success": True, "ids": [row.id for row in rows]}


@router.post("/planets/{field}")
async def post_planet_map(
    field: str,
    payload: PlanetMapUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    await update_planet_map(session, payload.coordinates, payload.type, field, payload.map)
    return {"success": True, "field": field}


@router.post("/empire")
async def post_empire(
    payload: EmpireSnapshot,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    result = await ingest_empire(session, payload, user)
    return {"success": True, **result.as_dict()}


# --- Reports ---

@router.post("/spy-reports")
async def post_spy_report(
    payload: SpyReportIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    row = await reports.upsert_spy_report(session, payload, _reporter(user))
    return {"success": True, "id": row.id}


@router.post("/battle-reports")
async def post_battle_report(
    payload: BattleReportIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    row = await reports.upsert_battle_report(session, payload, _reporter(user))
    return {"success": True, "id": row.id}


@router.post("/expedition-reports")
async def post_expedition_report(
    payload: ExpeditionReportIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    row = await reports.upsert_expedition_report(session, payload, _reporter(user))
    return {"success": True, "id": row.id}


@router.post("/recycle-reports")
async def post_recycle_report(
    payload: RecycleReportIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    row = await reports.upsert_recycle_report(session, payload, _reporter(user))
    return {"success": True, "id": row.id}


@router.post("/hostile-spying")
async def post_hostile_spying(
    payload: HostileSpyingIn,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    row = await reports.upsert_hostile_spying(session, payload)
    return {"success": True, "id": row.id}


@router.post("/messages")
async def post_messages(
    payload: MessageBatch,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return {"new_ids": await check_messages(session, payload.message_ids)}


# --- Players & statistics ---

@router.post("/statistics/sync")
async def post_statistics(
    payload: StatisticsSync,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    result = await sync_statistics(session, payload.stat_type, payload.players, user)
    return {"success": True, "updated": result.updated, "skipped": result.skipped}


@router.post("/players")
async def post_player(
    payload: PlayerUpsert,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    player = await upsert_player_full(session, payload.model_dump())
    return {"success": True, "id": player.id}


@router.post("/players/stats")
async def post_player_stats(
    payload: PlayerStatsBatch,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    count = await upsert_player_stats(session, payload.players, payload.inactive_ids, payload.vacation_ids)
    return {"success": True, "count": count}


@router.post("/players/research")
async def post_player_research(
    payload: ResearchUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    player_id = require_player(user)
    research = await update_research(session, player_id, {item.id: item.level for item in payload.research})
    return {"success": True, "research": research}


@router.post("/players/{player_id}/delete")
async def post_player_delete(
    player_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    await mark_player_deleted(session, player_id)
    logger.info("player_marked_deleted", extra={"player_id": player_id, "user_id": user.id})
    return {"success": True}
