"""Read endpoints: players, alliances, galaxy, reports and the hub aggregates."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.auth.security import get_current_user
from allyhub.core.config import SPY_REPORT_DEFAULT_LINES, TOP_INACTIVE_LIMIT
from allyhub.core.database import get_async_session
from allyhub.models.database import PLANET, User
from allyhub.models.payloads import PlayerIds, TargetOverviewRequest
from allyhub.services import aggregation, entities, reports
from allyhub.services.common import require_alliance, require_player
from allyhub.services.export import export_json
from allyhub.services.planets import get_system

router = APIRouter(tags=["hub"])

_KIND_PATTERN = "^(PLANET|MOON)$"


# --- Players (static paths before /players/{player_id}) ---

@router.get("/players/data")
async def get_own_player(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await entities.get_player(session, require_player(user))


@router.get("/players/chart")
async def get_own_chart(
    days: Optional[int] = Query(default=None, ge=1),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await entities.get_player_chart(session, require_player(user), days)


@router.get("/players/inactive")
async def get_inactive_players(
    limit: int = Query(default=TOP_INACTIVE_LIMIT, ge=1, le=200),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await aggregation.top_inactive(session, limit)


@router.post("/players/getstats")
async def post_get_stats(
    payload: PlayerIds,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await entities.get_players(session, payload.ids)


@router.post("/players/overview")
async def post_target_overview(
    payload: TargetOverviewRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    target = (payload.galaxy, payload.system, payload.planet)
    return await aggregation.target_overview(session, target, payload.own_planets)


@router.get("/players/{player_id}")
async def get_player(player_id: int, user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await entities.get_player(session, player_id)


@router.get("/players/{player_id}/planets")
async def get_player_planets(player_id: int, user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await entities.get_player_planets(session, player_id)


@router.get("/players/{player_id}/chart")
async def get_player_chart(player_id: int, user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await entities.get_player_chart(session, player_id)


@router.get("/players/{player_id}/chart7days")
async def get_player_chart_week(player_id: int, user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await entities.get_player_chart(session, player_id, days=7)


# --- Alliances ---

@router.get("/alliances/{alliance_id}/planets")
async def get_alliance_planets(alliance_id: int, user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await entities.get_alliance_planets(session, alliance_id)


@router.get("/alliances/{alliance_id}/chart")
async def get_alliance_chart(alliance_id: int, user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await entities.get_alliance_chart(session, alliance_id)


# --- Galaxy & reports ---

@router.get("/galaxy/{galaxy}/{system}")
async def get_galaxy_system(
    galaxy: int,
    system: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await get_system(session, galaxy, system)


@router.get("/spy-reports/{galaxy}/{system}/{planet}")
async def get_spy_reports(
    galaxy: int,
    system: int,
    planet: int,
    kind: str = Query(default=PLANET, alias="type", pattern=_KIND_PATTERN),
    lines: int = Query(default=SPY_REPORT_DEFAULT_LINES, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await reports.get_spy_reports(session, galaxy, system, planet, kind=kind, lines=lines)


@router.get("/spy-reports/{galaxy}/{system}/{planet}/history")
async def get_spy_report_history(
    galaxy: int,
    system: int,
    planet: int,
    kind: str = Query(default=PLANET, alias="type", pattern=_KIND_PATTERN),
    lines: int = Query(default=SPY_REPORT_DEFAULT_LINES, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await reports.get_spy_report_history(session, galaxy, system, planet, kind=kind, lines=lines)


@router.get("/battle-reports/{galaxy}/{system}/{planet}/history")
async def get_battle_report_history(
    galaxy: int,
    system: int,
    planet: int,
    lines: int = Query(default=SPY_REPORT_DEFAULT_LINES, ge=1, le=100),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await reports.get_battle_report_history(session, galaxy, system, planet, lines=lines)


@router.get("/hostile-spying")
async def get_hostile_spying(
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await reports.list_hostile_spying(session, search, page)


@router.get("/hostile-spying/overview")
async def get_hostile_spying_overview(
    attacker: Optional[str] = None,
    target: Optional[str] = None,
    time_from: Optional[str] = None,
    time_to: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await reports.hostile_spying_overview(session, attacker, target, time_from, time_to, page)


# --- Hub (alliance-scoped unless noted) ---

@router.get("/hub/planets")
async def hub_planets(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.alliance_planets(session, require_alliance(user))


@router.get("/hub/research")
async def hub_research(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.alliance_research(session, require_alliance(user))


@router.get("/hub/playerresearch")
async def hub_max_research(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.max_research(session, require_alliance(user))


@router.get("/hub/fleet")
async def hub_fleet(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.alliance_fleet(session, require_alliance(user))


@router.get("/hub/buildings")
async def hub_buildings(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.max_buildings(session, require_alliance(user))


@router.get("/hub/scores")
async def hub_scores(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.alliance_scores(session, require_alliance(user))


@router.get("/hub/galaxy")
async def hub_galaxy(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.galaxy_status(session)


@router.get("/hub/statview")
async def hub_statview(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.stat_view_status(session)


@router.get("/hub/config")
async def hub_config(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.universe_config(session)


@router.get("/hub/stats")
async def hub_stats(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.hub_stats(session, user)


@router.get("/hub/overview")
async def hub_overview(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return await aggregation.hub_overview(session)


@router.get("/export")
async def get_export(user: User = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    return Response(content=await export_json(session), media_type="application/json")
