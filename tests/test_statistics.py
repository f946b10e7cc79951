from datetime import datetime, timezone

from sqlalchemy import select

from allyhub.models.database import Player, PlayerScore, StatView
from allyhub.models.payloads import PlayerStatIn, StatRow
from allyhub.services.entities import ensure_alliance
from allyhub.services.statistics import sync_statistics, upsert_player_stats

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _rows():
    return [
        StatRow(player_id=1, player_name="Alpha", rank=1, score=9000),
        StatRow(player_id=2, player_name="Beta", rank=2, score=8000, is_long_inactive=True),
    ]


async def _history(session):
    result = await session.execute(select(PlayerScore).order_by(PlayerScore.player_id))
    return result.scalars().all()


def test_total_page_updates_players_and_appends_history(run_db):
    async def scenario(session):
        result = await sync_statistics(session, "total", _rows(), now=NOW)
        alpha = await session.get(Player, 1)
        beta = await session.get(Player, 2)
        view = (await session.execute(select(StatView).where(StatView.stat_type == "total"))).scalar_one()
        return result, alpha, beta, view, await _history(session)

    result, alpha, beta, view, history = run_db(scenario)
    assert result.as_dict() == {"updated": 2, "skipped": 0}
    assert (alpha.score_total, alpha.score_total_rank) == (9000, 1)
    assert alpha.inactive_since is None
    assert beta.inactive_since is not None
    assert [(h.player_id, h.score_total) for h in history] == [(1, 9000), (2, 8000)]
    assert view.last_sync_at is not None


def test_other_pages_do_not_write_history(run_db):
    async def scenario(session):
        await sync_statistics(session, "fleet", _rows(), now=NOW)
        alpha = await session.get(Player, 1)
        return alpha, await _history(session)

    alpha, history = run_db(scenario)
    assert alpha.score_fleet == 9000
    assert history == []


def test_unknown_page_only_renames(run_db):
    async def scenario(session):
        result = await sync_statistics(session, "economy-x", _rows(), now=NOW)
        views = (await session.execute(select(StatView))).scalars().all()
        alpha = await session.get(Player, 1)
        return result, views, alpha

    result, views, alpha = run_db(scenario)
    assert result.as_dict() == {"updated": 0, "skipped": 2}
    assert views == []
    assert alpha.name == "Alpha"
    assert alpha.score_total is None


def test_active_row_clears_inactivity(run_db):
    async def scenario(session):
        await sync_statistics(session, "total", _rows(), now=NOW)
        await sync_statistics(session, "total", [StatRow(player_id=2, player_name="Beta", score=8100)], now=NOW)
        return await session.get(Player, 2)

    assert run_db(scenario).inactive_since is None


def test_player_stats_store_named_scores_and_flags(run_db):
    async def scenario(session):
        await ensure_alliance(session, 500, "ALLY")
        rows = [
            PlayerStatIn(id=1, name="Alpha", alliance_id=500, score=1200, rank=3),
            PlayerStatIn(id=2, name="Beta", alliance_id=999, score=300, rank=40),
        ]
        count = await upsert_player_stats(session, rows, inactive_ids=[2], vacation_ids=[1], now=NOW)
        alpha = await session.get(Player, 1)
        beta = await session.get(Player, 2)
        return count, alpha, beta, await _history(session)

    count, alpha, beta, history = run_db(scenario)
    assert count == 2
    assert alpha.scores == {"total": 1200, "economy": 0, "research": 0, "military": 0, "defense": 0}
    assert alpha.alliance_id == 500
    assert alpha.vacation_since is not None and alpha.inactive_since is None
    # Unknown alliance is not linked
    assert beta.alliance_id is None
    assert beta.inactive_since is not None
    assert [h.rank_total for h in history] == [3, 40]
