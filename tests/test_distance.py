import pytest

from allyhub.services.aggregation import distance, target_overview


@pytest.mark.parametrize(
    "origin,target,expected",
    [
        ((1, 100, 5), (3, 100, 5), 40000),
        ((2, 100, 5), (2, 110, 5), 2700 + 95 * 10),
        ((2, 100, 5), (2, 100, 12), 1000 + 5 * 7),
        ((2, 100, 5), (2, 100, 5), 5),
    ],
)
def test_distance_piecewise(origin, target, expected):
    assert distance(origin, target) == expected


def test_distance_is_symmetric():
    assert distance((1, 5, 3), (4, 1, 9)) == distance((4, 1, 9), (1, 5, 3))


def test_target_overview_sorts_by_distance_and_skips_malformed(run_db):
    async def scenario(session):
        return await target_overview(session, (2, 100, 8), ["3:1:1", "2:100:4", "oops", "2:140:8", "2:100:8:1"])

    entries = run_db(scenario)
    assert [e["coordinates"] for e in entries] == ["2:100:4", "2:140:8", "3:1:1"]
    assert [e["distance"] for e in entries] == [1020, 6500, 20000]
    assert all(e["last_spy_report"] is None for e in entries)
