from datetime import datetime, timedelta, timezone

import pytest

from allyhub.core.errors import BadRequestError
from allyhub.models.database import (
    BattleReport,
    ExpeditionReport,
    PLANET,
    Planet,
    Player,
    PlayerScore,
    RecycleReport,
    STATUS_DELETED,
    STATUS_SEEN,
    User,
)
from allyhub.models.payloads import GalaxyScan, SpyReportIn, StatRow
from allyhub.services.aggregation import (
    activity_stats,
    alliance_fleet,
    alliance_planets,
    galaxy_status,
    hub_overview,
    hub_stats,
    leaderboard_maxima,
    max_buildings,
    max_research,
    score_deltas,
    set_universe_config,
    stat_view_status,
    top_inactive,
    universe_config,
)
from allyhub.services.entities import ensure_alliance
from allyhub.services.galaxy import reconcile_scan
from allyhub.services.reports import upsert_spy_report
from allyhub.services.statistics import sync_statistics

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


async def _members(session, *players):
    await ensure_alliance(session, 500, "ALLY")
    for pid, name, extra in players:
        session.add(Player(id=pid, name=name, alliance_id=500, **extra))
    await session.commit()


def _planet(player_id, position, status=STATUS_SEEN, **maps):
    return Planet(
        player_id=player_id,
        coordinates=f"1:1:{position}",
        galaxy=1,
        system=1,
        planet=position,
        type=PLANET,
        status=status,
        **maps,
    )


def test_score_deltas_per_window(run_db):
    async def scenario(session):
        session.add_all([
            Player(id=1, name="Alpha", score_total=1300),
            Player(id=2, name="Beta", score_total=500),
            Player(id=3, name="Gamma"),
        ])
        await session.commit()
        for hours, total in ((25, 1000), (13, 1100), (7, 1200), (1, 1290)):
            session.add(PlayerScore(player_id=1, score_total=total, recorded_at=NOW - timedelta(hours=hours)))
        session.add(PlayerScore(player_id=3, score_total=10, recorded_at=NOW - timedelta(hours=30)))
        await session.commit()
        return await score_deltas(session, now=NOW)

    deltas = run_db(scenario)
    assert deltas[1] == {"diff06": 100, "diff12": 200, "diff18": 300, "diff24": 300}
    assert deltas[2] == {"diff06": None, "diff12": None, "diff18": None, "diff24": None}
    # No current total
    assert deltas[3]["diff24"] is None


def test_activity_stats_counts_lifetime_and_last_day(run_db):
    async def scenario(session):
        old = NOW - timedelta(hours=30)
        recent = NOW - timedelta(hours=2)
        session.add_all([
            ExpeditionReport(external_id=1, reported_by=100, resources={"901": 3000, "902": 1000}, created_at=old),
            ExpeditionReport(external_id=2, reported_by=100, resources={"903": 500}, created_at=recent),
            ExpeditionReport(external_id=3, reported_by=101, resources={"901": 99999}, created_at=recent),
            BattleReport(
                external_id=10, coordinates="2:2:2", galaxy=2, system=2, planet=2,
                reported_by=100, metal=40000, crystal=20000, deuterium=5000, created_at=recent,
            ),
            RecycleReport(
                external_id=20, coordinates="2:2:2", galaxy=2, system=2, planet=2,
                reported_by=100, metal=7000, crystal=3000, created_at=old,
            ),
        ])
        await session.commit()
        lifetime = await activity_stats(session, 100, now=NOW)
        day = await activity_stats(session, 100, last_24h=True, now=NOW)
        return lifetime, day

    lifetime, day = run_db(scenario)
    assert lifetime["expos"] == {
        "count": 2, "count_24h": 1, "metal": 3000, "crystal": 1000, "deuterium": 500, "points": 4,
    }
    assert lifetime["raids"]["points"] == 65
    assert lifetime["recycling"] == {
        "count": 1, "count_24h": 0, "metal": 7000, "crystal": 3000, "deuterium": 0, "points": 10,
    }
    assert day["expos"]["count"] == 1 and day["expos"]["deuterium"] == 500
    assert day["recycling"]["count"] == 0


def test_hub_stats_lists_alliance_members(run_db):
    async def scenario(session):
        await _members(session, (100, "Admiral", {}), (101, "Member", {}))
        session.add(ExpeditionReport(external_id=1, reported_by=101, resources={"901": 2000}, created_at=NOW))
        await session.commit()
        with_alliance = await hub_stats(session, User(api_key="a", player_id=100, alliance_id=500), now=NOW)
        alone = await hub_stats(session, User(api_key="b", player_id=100, alliance_id=None), now=NOW)
        return with_alliance, alone

    with_alliance, alone = run_db(scenario)
    assert with_alliance["own_stats"]["expos"]["count"] == 0
    assert [m["name"] for m in with_alliance["alliance_stats"]] == ["Admiral", "Member"]
    assert with_alliance["alliance_stats"][1]["expos"]["metal"] == 2000
    assert alone["alliance_stats"] is None


def test_leaderboard_ties_go_to_lowest_player_id():
    rows = [
        (7, "Seven", {"109": 12, "110": 8}),
        (3, "Three", {"109": 12, "110": 5}),
        (5, "Five", None),
    ]
    assert leaderboard_maxima(rows) == {
        "109": {"max_level": 12, "player_name": "Three"},
        "110": {"max_level": 8, "player_name": "Seven"},
    }


def test_max_research_and_buildings_are_alliance_scoped(run_db):
    async def scenario(session):
        await _members(
            session,
            (100, "Admiral", {"research": {"109": 14}}),
            (101, "Member", {"research": {"109": 15, "120": 3}}),
        )
        session.add(Player(id=900, name="Outsider", research={"109": 30}))
        session.add_all([
            _planet(100, 4, buildings={"1": 30}),
            _planet(101, 5, buildings={"1": 25, "2": 10}),
            _planet(101, 6, status=STATUS_DELETED, buildings={"1": 40}),
        ])
        await session.commit()
        return await max_research(session, 500), await max_buildings(session, 500), await alliance_planets(session, 500)

    research, buildings, planets = run_db(scenario)
    assert research == {
        "109": {"max_level": 15, "player_name": "Member"},
        "120": {"max_level": 3, "player_name": "Member"},
    }
    assert buildings["1"] == {"max_level": 30, "player_name": "Admiral"}
    assert buildings["2"]["max_level"] == 10
    assert [p["coordinates"] for p in planets] == ["1:1:4", "1:1:5"]


def test_alliance_fleet_sums_live_planets(run_db):
    async def scenario(session):
        await _members(session, (100, "Admiral", {"score_fleet": 4000}), (101, "Member", {}))
        session.add_all([
            _planet(100, 4, fleet={"202": 10}),
            _planet(100, 5, fleet={"202": 5, "203": 1}),
            _planet(100, 6, status=STATUS_DELETED, fleet={"202": 100}),
        ])
        await session.commit()
        return await alliance_fleet(session, 500)

    fleet = run_db(scenario)
    assert fleet["players"][0] == {"id": 100, "name": "Admiral", "score_fleet": 4000, "fleet": {"202": 15, "203": 1}}
    assert fleet["players"][1]["fleet"] == {}
    assert fleet["total"] == {"202": 15, "203": 1}


def test_hub_overview_lists_real_players_with_intel(run_db):
    async def scenario(session):
        scan = GalaxyScan.model_validate({
            "galaxy": 1,
            "system": 42,
            "planets": [{"position": 4, "player_id": 7, "player_name": "Vega", "has_moon": True}],
        })
        await reconcile_scan(session, scan, now=NOW)
        await upsert_spy_report(
            session,
            SpyReportIn(id=1, galaxy=1, system=42, planet=4, resources={"901": 10, "902": 20, "903": 30}),
            reported_by=None,
        )
        return await hub_overview(session, now=NOW)

    overview = run_db(scenario)
    assert [(e["coordinates"], e["player_name"]) for e in overview] == [("1:42:4", "Vega")]
    entry = overview[0]
    assert (entry["spy_metal"], entry["spy_crystal"], entry["spy_deuterium"]) == (10, 20, 30)
    assert entry["last_battle_report"] is None
    assert entry["diff06"] is None


def test_universe_config_defaults_and_bounds(run_db):
    async def scenario(session):
        defaults = await universe_config(session)
        updated = await set_universe_config(session, galaxies=7, galaxy_wrapped=False)
        with pytest.raises(BadRequestError):
            await set_universe_config(session, galaxies=21)
        with pytest.raises(BadRequestError):
            await set_universe_config(session, systems=0)
        return defaults, updated, await universe_config(session)

    defaults, updated, after = run_db(scenario)
    assert defaults == {"galaxies": 9, "systems": 499, "galaxy_wrapped": True}
    assert updated == {"galaxies": 7, "systems": 499, "galaxy_wrapped": False}
    assert after == updated


def test_top_inactive_orders_by_score_and_skips_vacation(run_db):
    async def scenario(session):
        since = NOW - timedelta(days=10)
        session.add_all([
            Player(id=1, name="Low", score_total=100, inactive_since=since),
            Player(id=2, name="High", score_total=900, inactive_since=since),
            Player(id=3, name="Away", score_total=5000, inactive_since=since, vacation_since=since),
            Player(id=4, name="Active", score_total=9999),
            Player(id=5, name="Gone", score_total=7000, inactive_since=since, is_deleted=True),
        ])
        await session.commit()
        return await top_inactive(session), await top_inactive(session, limit=1)

    everyone, first = run_db(scenario)
    assert [p["name"] for p in everyone] == ["High", "Low"]
    assert [p["name"] for p in first] == ["High"]


def test_freshness_views(run_db):
    async def scenario(session):
        await reconcile_scan(session, GalaxyScan(galaxy=3, system=7), now=NOW - timedelta(hours=5))
        await sync_statistics(session, "total", [StatRow(player_id=1, player_name="A", score=1)], now=NOW)
        await sync_statistics(session, "fleet", [StatRow(player_id=1, player_name="A", score=1)], now=NOW - timedelta(hours=7))
        return await galaxy_status(session, now=NOW), await stat_view_status(session, now=NOW)

    systems, views = run_db(scenario)
    assert systems == [{"galaxy": 3, "system": 7, "last_scan_at": "2026-10-18T07:00:00Z", "age_hours": 5}]
    assert {v["stat_type"]: v["is_synced"] for v in views} == {"fleet": False, "total": True}
