from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from allyhub.core.errors import BadRequestError
from allyhub.core.metrics import metrics
from allyhub.core.time_utils import ensure_aware_utc
from allyhub.models.database import MOON, PLANET, Planet, Player, STATUS_DELETED, STATUS_NEW
from allyhub.models.payloads import GalaxyScan
from allyhub.services.galaxy import MARKER_EMPTY, MARKER_SCANNED, reconcile_scan
from allyhub.services.common import parse_coordinates
from allyhub.services.planets import create_planet, get_new_planets, get_system, load_planet, mark_planets_seen

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _scan(**overrides):
    data = {
        "galaxy": 1,
        "system": 42,
        "planets": [
            {
                "position": 4,
                "player_id": 7,
                "player_name": "Vega",
                "planet_name": "Homeworld",
                "has_moon": True,
                "moon_name": "Moon",
                "alliance_id": 9,
                "alliance_tag": "NOVA",
            },
            {"position": 5, "player_id": 0, "player_name": "Nobody"},
        ],
    }
    data.update(overrides)
    return GalaxyScan.model_validate(data)


async def _planet_rows(session):
    result = await session.execute(select(func.count()).select_from(Planet))
    return result.scalar_one()


def test_scan_creates_planet_and_moon_and_skips_unowned(run_db):
    async def scenario(session):
        result = await reconcile_scan(session, _scan(), now=NOW)
        planet = await load_planet(session, "1:42:4", PLANET)
        moon = await load_planet(session, "1:42:4", MOON)
        owner = await session.get(Player, 7)
        return result, planet, moon, owner

    result, planet, moon, owner = run_db(scenario)
    assert result.as_dict() == {"created": 2, "skipped": 1, "deleted": 0}
    assert planet.player_id == 7 and planet.name == "Homeworld" and planet.status == STATUS_NEW
    assert moon.name == "Moon"
    assert owner.name == "Vega" and owner.alliance_id == 9
    assert metrics.event_count("ingest.galaxy.created") == 2


def test_scan_stamps_system_marker_owned_by_system_player(run_db):
    async def scenario(session):
        await reconcile_scan(session, _scan(), now=NOW)
        scanned = await load_planet(session, "1:42:0", PLANET)
        result = await reconcile_scan(session, _scan(system=43, planets=[]), now=NOW)
        empty = await load_planet(session, "1:43:0", PLANET)
        system_player = await session.get(Player, 0)
        return scanned, empty, result, system_player

    scanned, empty, result, system_player = run_db(scenario)
    assert scanned.player_id == 0 and scanned.name == MARKER_SCANNED
    assert empty.name == MARKER_EMPTY
    assert result.marker == MARKER_EMPTY
    assert system_player.name == "System"


def test_rescanning_the_same_system_is_idempotent(run_db):
    async def scenario(session):
        await reconcile_scan(session, _scan(), now=NOW)
        first = await _planet_rows(session)
        await reconcile_scan(session, _scan(), now=NOW)
        return first, await _planet_rows(session)

    first, second = run_db(scenario)
    # marker + planet + moon
    assert first == second == 3


def test_destroyed_moon_is_kept_as_deleted_then_revived(run_db):
    async def scenario(session):
        await reconcile_scan(session, _scan(), now=NOW)
        result = await reconcile_scan(
            session, _scan(planets=[], destroyed=[{"position": 4, "type": "MOON"}]), now=NOW
        )
        moon = await load_planet(session, "1:42:4", MOON)
        status_after_delete = moon.status
        system_view = await get_system(session, 1, 42)
        await reconcile_scan(session, _scan(), now=NOW)
        moon = await load_planet(session, "1:42:4", MOON)
        return result, status_after_delete, system_view, moon.status

    result, status_after_delete, system_view, revived = run_db(scenario)
    assert result.deleted == 1
    assert status_after_delete == STATUS_DELETED
    assert [(p["planet"], p["type"]) for p in system_view["planets"]] == [(4, PLANET)]
    assert revived == STATUS_NEW


def test_new_planets_feed_and_mark_seen(run_db):
    async def scenario(session):
        await reconcile_scan(session, _scan(), now=NOW)
        fresh = await get_new_planets(session)
        updated = await mark_planets_seen(session, [p["id"] for p in fresh])
        return fresh, updated, await get_new_planets(session)

    fresh, updated, after = run_db(scenario)
    # Moons and the position-0 marker are not listed
    assert [p["coordinates"] for p in fresh] == ["1:42:4"]
    assert fresh[0]["player_name"] == "Vega"
    assert fresh[0]["alliance_tag"] == "NOVA"
    assert updated == 1
    assert after == []


def test_rescan_retires_destroyed_position_and_advances_the_marker(run_db):
    later = NOW + timedelta(hours=3)
    first = _scan(planets=[
        {"position": 3, "player_id": 7, "player_name": "Vega", "planet_name": "Three"},
        {"position": 5, "player_id": 8, "player_name": "Rigel", "planet_name": "Five"},
    ])
    second = _scan(
        planets=[{"position": 3, "player_id": 7, "player_name": "Vega", "planet_name": "Three"}],
        destroyed=[{"position": 5, "type": "PLANET"}],
    )

    async def scenario(session):
        await reconcile_scan(session, first, now=NOW)
        result = await reconcile_scan(session, second, now=later)
        three = await load_planet(session, "1:42:3", PLANET)
        five = await load_planet(session, "1:42:5", PLANET)
        marker = await load_planet(session, "1:42:0", PLANET)
        return result, three, five, marker, await get_system(session, 1, 42)

    result, three, five, marker, system_view = run_db(scenario)
    assert result.as_dict() == {"created": 1, "skipped": 0, "deleted": 1}
    assert three.status == STATUS_NEW
    assert five is not None
    assert five.status == STATUS_DELETED
    assert ensure_aware_utc(marker.updated_at) == later
    assert system_view["last_scan_at"].startswith("2026-10-18T15:00:00")
    assert [p["planet"] for p in system_view["planets"]] == [3]


@pytest.mark.parametrize(
    "value,expected",
    [
        ("1:42:4", (1, 42, 4)),
        ("1:42:15", (1, 42, 15)),
        ("1:42:0", None),
        ("1:42:16", None),
        ("1:42:-1", None),
        ("0:42:4", None),
        ("1:0:4", None),
        ("1:42", None),
        ("a:b:c", None),
        ("", None),
    ],
)
def test_parse_coordinates_bounds(value, expected):
    assert parse_coordinates(value) == expected


@pytest.mark.parametrize("coordinates", ["1:42:0", "1:42:99", "1:42:-2"])
def test_create_planet_rejects_positions_off_the_map(run_db, coordinates):
    async def scenario(session):
        await create_planet(session, coordinates, player_id=7, planet_name="Nowhere")

    with pytest.raises(BadRequestError):
        run_db(scenario)
