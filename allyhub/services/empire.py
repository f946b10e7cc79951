"""Empire page ingestion: one player's authoritative per-planet snapshot."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.errors import BadRequestError
from allyhub.core.metrics import metrics
from allyhub.models.database import User
from allyhub.models.payloads import EmpireSnapshot
from allyhub.services.common import parse_coordinates
from allyhub.services.entities import ensure_player, link_player_alliance, update_research
from allyhub.services.planets import upsert_empire_planet

logger = logging.getLogger(__name__)


@dataclass
class EmpireResult:
    player_id: int
    synced: int = 0
    skipped: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {"player_id": self.player_id, "synced": self.synced, "skipped": self.skipped}


async def ingest_empire(session: AsyncSession, snapshot: EmpireSnapshot, user: User) -> EmpireResult:
    player_id = snapshot.player_id if snapshot.player_id and snapshot.player_id > 0 else user.player_id
    if not player_id:
        raise BadRequestError("No player assigned")
    alliance_id = user.alliance_id

    await ensure_player(session, player_id, snapshot.player_name or "Unknown")
    if alliance_id is not None:
        await link_player_alliance(session, player_id, alliance_id)
    await update_research(session, player_id, snapshot.research)

    result = EmpireResult(player_id=player_id)
    for planet in snapshot.planets:
        coords = parse_coordinates(planet.coordinates)
        if coords is None:
            logger.warning("empire_planet_skipped player_id=%s coordinates=%s", player_id, planet.coordinates)
            result.skipped += 1
            continue
        await upsert_empire_planet(session, player_id, *coords, planet.model_dump())
        result.synced += 1

    metrics.increment_event("ingest.empire.synced", result.synced)
    metrics.increment_event("ingest.empire.skipped", result.skipped)
    logger.info("empire_synced", extra={"player_id": player_id, "synced": result.synced, "skipped": result.skipped})
    return result
