import pytest

from allyhub.core.errors import BadRequestError
from allyhub.core.metrics import metrics
from allyhub.models.payloads import (
    BattleReportIn,
    ExpeditionReportIn,
    HostileSpyingIn,
    RecycleReportIn,
    SpyReportIn,
)
from allyhub.services.entities import ensure_player
from allyhub.services.planets import create_planet
from allyhub.services.reports import (
    get_battle_report_history,
    get_spy_report_history,
    get_spy_reports,
    hostile_spying_overview,
    list_hostile_spying,
    upsert_battle_report,
    upsert_expedition_report,
    upsert_hostile_spying,
    upsert_recycle_report,
    upsert_spy_report,
)


def _spy(**overrides):
    data = {
        "id": 900001,
        "galaxy": 2,
        "system": 120,
        "planet": 8,
        "report_time": "18.10.2026 10:15:00",
        "resources": {"901": 120000, "902": 60000, "903": 15000},
        "fleet": {"202": 12},
    }
    data.update(overrides)
    return SpyReportIn.model_validate(data)


def test_spy_report_dedup_keeps_first_seen_location(run_db):
    async def scenario(session):
        first = await upsert_spy_report(session, _spy(), reported_by=100)
        again = await upsert_spy_report(
            session, _spy(galaxy=5, resources={"901": 1}, report_time="2026-10-18T11:00:00Z"), reported_by=101
        )
        return first.id, again, await get_spy_reports(session, 2, 120, 8)

    first_id, again, listed = run_db(scenario)
    assert again.id == first_id
    assert again.coordinates == "2:120:8"
    assert again.reported_by == 100
    assert again.resources == {"901": 1}
    assert len(listed) == 1
    assert listed[0]["report_time"] == "2026-10-18T11:00:00Z"
    assert metrics.event_count("ingest.reports.spy") == 2


def test_unreadable_report_time_is_stored_as_null(run_db):
    async def scenario(session):
        first = await upsert_spy_report(session, _spy(), reported_by=None)
        first_time = first.report_time
        corrected = await upsert_spy_report(
            session, _spy(report_time="last tuesday", resources={"901": 1}), reported_by=None
        )
        return first_time, corrected

    first_time, corrected = run_db(scenario)
    assert first_time is not None
    assert corrected.report_time is None
    assert corrected.resources == {"901": 1}
    assert metrics.event_count("ingest.reports.bad_time") == 1


def test_spy_reports_filter_by_kind_and_limit(run_db):
    async def scenario(session):
        for i in range(3):
            await upsert_spy_report(session, _spy(id=10 + i), reported_by=None)
        await upsert_spy_report(session, _spy(id=99, type="MOON"), reported_by=None)
        planets = await get_spy_reports(session, 2, 120, 8, lines=2)
        moons = await get_spy_reports(session, 2, 120, 8, kind="MOON")
        return planets, moons

    planets, moons = run_db(scenario)
    assert [r["external_id"] for r in planets] == [12, 11]
    assert [r["external_id"] for r in moons] == [99]


def test_history_names_the_reporter(run_db):
    async def scenario(session):
        await ensure_player(session, 100, "Admiral")
        await upsert_spy_report(session, _spy(), reported_by=100)
        await upsert_spy_report(session, _spy(id=900002), reported_by=None)
        await upsert_battle_report(
            session,
            BattleReportIn.model_validate(
                {"id": 77, "galaxy": 2, "system": 120, "planet": 8, "attacker_lost": 5000, "metal": 40000}
            ),
            reported_by=100,
        )
        spy = await get_spy_report_history(session, 2, 120, 8)
        battles = await get_battle_report_history(session, 2, 120, 8)
        return spy, battles

    spy, battles = run_db(scenario)
    assert [r["reporter_name"] for r in spy] == ["", "Admiral"]
    assert battles[0]["report_id"] == "77"
    assert battles[0]["reporter_name"] == "Admiral"
    assert battles[0]["metal"] == 40000


def test_expedition_and_recycle_reports_are_deduplicated(run_db):
    async def scenario(session):
        exp = ExpeditionReportIn.model_validate({"id": 5, "message": "Found nothing", "resources": {"901": 10}})
        first = await upsert_expedition_report(session, exp, reported_by=100)
        second = await upsert_expedition_report(session, exp, reported_by=100)
        rec = RecycleReportIn.model_validate({"id": 6, "galaxy": 1, "system": 2, "planet": 3, "metal": 700})
        recycled = await upsert_recycle_report(session, rec, reported_by=None)
        return first.id, second.id, recycled

    first_id, second_id, recycled = run_db(scenario)
    assert first_id == second_id
    assert recycled.coordinates == "1:2:3"
    assert recycled.metal == 700


def test_hostile_spying_list_pages_and_searches(run_db):
    async def scenario(session):
        for i in range(25):
            await upsert_hostile_spying(
                session,
                HostileSpyingIn(id=i + 1, attacker_coordinates=f"3:{i}:1", target_coordinates="2:120:8"),
            )
        page1 = await list_hostile_spying(session)
        page2 = await list_hostile_spying(session, page=2)
        search = await list_hostile_spying(session, search="3:7:")
        return page1, page2, search

    page1, page2, search = run_db(scenario)
    assert len(page1["items"]) == 20 and page1["total"] == 25 and page1["total_pages"] == 2
    assert len(page2["items"]) == 5
    assert page1["items"][0]["external_id"] == 25
    assert [i["attacker_coordinates"] for i in search["items"]] == ["3:7:1"]


def test_hostile_spying_overview_groups_by_attacker(run_db):
    async def scenario(session):
        await create_planet(session, "3:50:7", player_id=300, planet_name="Lair")
        player = await ensure_player(session, 300, "Unknown")
        player.name = "Raider"
        await session.commit()
        rows = [
            (1, "3:50:7", "2:120:8", "2026-10-18T10:00:00Z"),
            (2, "3:50:7", "2:120:9", "2026-10-18T11:00:00Z"),
            (3, "4:1:1", "2:120:8", "2026-10-18T09:00:00Z"),
        ]
        for ext, att, tgt, when in rows:
            await upsert_hostile_spying(
                session, HostileSpyingIn(id=ext, attacker_coordinates=att, target_coordinates=tgt, report_time=when)
            )
        everything = await hostile_spying_overview(session)
        by_name = await hostile_spying_overview(session, attacker="Raid")
        early = await hostile_spying_overview(session, time_to="2026-10-18T09:30:00Z")
        return everything, by_name, early

    everything, by_name, early = run_db(scenario)
    assert everything["total"] == 2
    top = everything["items"][0]
    assert top["attacker_coordinates"] == "3:50:7"
    assert top["attacker_name"] == "Raider"
    assert top["spy_count"] == 2
    assert top["targets"] == ["2:120:8", "2:120:9"]
    assert top["last_spy_time"] == "2026-10-18T11:00:00Z"
    assert [i["attacker_coordinates"] for i in by_name["items"]] == ["3:50:7"]
    assert [i["attacker_coordinates"] for i in early["items"]] == ["4:1:1"]


def test_hostile_spying_overview_rejects_bad_time_filter(run_db):
    async def scenario(session):
        await hostile_spying_overview(session, time_from="soon")

    with pytest.raises(BadRequestError):
        run_db(scenario)
