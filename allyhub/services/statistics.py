"""Leaderboard statistics sync and score history."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.metrics import metrics
from allyhub.core.time_utils import utc_now
from allyhub.models.database import Player, PlayerScore, StatView, User
from allyhub.models.payloads import PlayerStatIn, StatRow
from allyhub.services.common import merge_upsert
from allyhub.services.entities import load_alliance, load_player

logger = logging.getLogger(__name__)

# Leaderboard page -> (score column, rank column) on players
STAT_COLUMNS: Dict[str, Tuple[str, str]] = {
    "total": ("score_total", "score_total_rank"),
    "fleet": ("score_fleet", "score_fleet_rank"),
    "research": ("score_research", "score_research_rank"),
    "buildings": ("score_buildings", "score_buildings_rank"),
    "defense": ("score_defense", "score_defense_rank"),
    "honor": ("honorpoints", "honorpoints_rank"),
}


@dataclass
class StatsResult:
    updated: int = 0
    skipped: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {"updated": self.updated, "skipped": self.skipped}


async def _upsert_named_player(session: AsyncSession, player_id: int, name: str, stamp: datetime) -> Player:
    def _merge(row: Player) -> None:
        row.name = name
        row.updated_at = stamp

    player, _ = await merge_upsert(
        session,
        lambda: load_player(session, player_id),
        lambda: Player(id=player_id, name=name, created_at=stamp, updated_at=stamp),
        _merge,
    )
    return player


async def sync_statistics(
    session: AsyncSession,
    stat_type: str,
    rows: Iterable[StatRow],
    user: Optional[User] = None,
    now: Optional[datetime] = None,
) -> StatsResult:
    """Apply one leaderboard page.

    Every row renames (or creates) its player and updates the inactivity
    flag. Unknown stat types skip the score write; only "total" appends to
    the score history.
    """
    stamp = now or utc_now()
    columns = STAT_COLUMNS.get(stat_type)
    synced_by = user.id if user is not None else None
    result = StatsResult()

    for row in rows:
        player = await _upsert_named_player(session, row.player_id, row.player_name, stamp)
        if row.is_long_inactive:
            if player.inactive_since is None:
                player.inactive_since = stamp
        elif not row.is_inactive:
            player.inactive_since = None

        if columns is None:
            await session.commit()
            result.skipped += 1
            continue
        score_col, rank_col = columns
        setattr(player, score_col, row.score)
        setattr(player, rank_col, row.rank)
        player.updated_at = stamp
        if stat_type == "total":
            session.add(PlayerScore(
                player_id=row.player_id,
                score_total=row.score,
                rank_total=row.rank,
                recorded_at=stamp,
            ))
        await session.commit()
        result.updated += 1

    if columns is not None:
        await _touch_stat_view(session, stat_type, synced_by, stamp)
    else:
        logger.warning("statistics_unknown_type stat_type=%s", stat_type)

    metrics.increment_event(f"ingest.statistics.{stat_type if columns else 'unknown'}", result.updated)
    logger.info("statistics_synced", extra={"stat_type": stat_type, "updated": result.updated, "skipped": result.skipped})
    return result


async def _touch_stat_view(session: AsyncSession, stat_type: str, synced_by: Optional[int], stamp: datetime) -> None:
    async def _load():
        res = await session.execute(select(StatView).where(StatView.stat_type == stat_type))
        return res.scalar_one_or_none()

    def _merge(view: StatView) -> None:
        view.last_sync_at = stamp
        view.synced_by = synced_by

    await merge_upsert(
        session,
        _load,
        lambda: StatView(stat_type=stat_type, last_sync_at=stamp, synced_by=synced_by),
        _merge,
    )


async def upsert_player_stats(
    session: AsyncSession,
    rows: Iterable[PlayerStatIn],
    inactive_ids: Optional[Iterable[int]] = None,
    vacation_ids: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
) -> int:
    """Store the five named totals for each row and append a history entry.

    Only the total is known from this page; the other four named scores are
    recorded as zero. Listed inactive/vacation ids get their flag set when
    not already set.
    """
    stamp = now or utc_now()
    inactive = set(inactive_ids or ())
    vacation = set(vacation_ids or ())
    count = 0
    for row in rows:
        alliance_known = row.alliance_id is not None and await load_alliance(session, row.alliance_id) is not None
        scores = {"total": row.score, "economy": 0, "research": 0, "military": 0, "defense": 0}

        def _apply(player: Player) -> None:
            player.name = row.name
            if alliance_known:
                player.alliance_id = row.alliance_id
            player.scores = scores
            if row.id in inactive and player.inactive_since is None:
                player.inactive_since = stamp
            if row.id in vacation and player.vacation_since is None:
                player.vacation_since = stamp
            player.updated_at = stamp

        def _create() -> Player:
            player = Player(id=row.id, name=row.name, created_at=stamp)
            _apply(player)
            return player

        await merge_upsert(session, lambda: load_player(session, row.id), _create, _apply)
        session.add(PlayerScore(
            player_id=row.id,
            score_total=row.score,
            rank_total=row.rank,
            recorded_at=stamp,
        ))
        await session.commit()
        count += 1
    metrics.increment_event("ingest.players.stats", count)
    return count
