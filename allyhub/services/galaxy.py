"""Galaxy scan reconciliation.

A scan lists the occupied positions of one galaxy/system plus the positions
the client saw destroyed. Reconciling it stamps the system marker at
position 0, retires destroyed rows (kept for history) and upserts every
owned position with its moon. Items are committed one by one; a storage
error aborts the rest of the scan, and re-submitting it is safe.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.config import SYSTEM_PLAYER_ID, SYSTEM_PLAYER_NAME
from allyhub.core.metrics import metrics
from allyhub.core.time_utils import utc_now
from allyhub.models.database import MOON, PLANET
from allyhub.models.payloads import GalaxyScan
from allyhub.services.common import format_coordinates
from allyhub.services.entities import ensure_alliance, ensure_player, link_player_alliance
from allyhub.services.planets import mark_planet_deleted, upsert_scanned_planet

logger = logging.getLogger(__name__)

MARKER_EMPTY = "EMPTY"
MARKER_SCANNED = "SCANNED"


@dataclass
class ScanResult:
    created: int = 0
    skipped: int = 0
    deleted: int = 0
    marker: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"created": self.created, "skipped": self.skipped, "deleted": self.deleted}


async def reconcile_scan(session: AsyncSession, scan: GalaxyScan, now: Optional[datetime] = None) -> ScanResult:
    stamp = now or utc_now()
    g, s = scan.galaxy, scan.system
    result = ScanResult()

    await ensure_player(session, SYSTEM_PLAYER_ID, SYSTEM_PLAYER_NAME)
    result.marker = MARKER_EMPTY if not scan.planets and not scan.destroyed else MARKER_SCANNED
    await upsert_scanned_planet(session, SYSTEM_PLAYER_ID, g, s, 0, PLANET, result.marker, now=stamp)

    for gone in scan.destroyed:
        await mark_planet_deleted(session, format_coordinates(g, s, gone.position), gone.type, now=stamp)
        result.deleted += 1

    for entry in scan.planets:
        if not entry.player_id or entry.player_id <= 0:
            result.skipped += 1
            continue
        await ensure_player(session, entry.player_id, entry.player_name or "Unknown")
        if entry.alliance_id is not None and entry.alliance_tag:
            await ensure_alliance(session, entry.alliance_id, entry.alliance_tag)
            await link_player_alliance(session, entry.player_id, entry.alliance_id)
        await upsert_scanned_planet(
            session, entry.player_id, g, s, entry.position, PLANET, entry.planet_name, entry.planet_id, now=stamp
        )
        result.created += 1
        if entry.has_moon:
            await upsert_scanned_planet(
                session, entry.player_id, g, s, entry.position, MOON, entry.moon_name, entry.moon_id, now=stamp
            )
            result.created += 1

    metrics.increment_event("ingest.galaxy.created", result.created)
    metrics.increment_event("ingest.galaxy.skipped", result.skipped)
    metrics.increment_event("ingest.galaxy.deleted", result.deleted)
    logger.info(
        "galaxy_scan_reconciled",
        extra={"galaxy": g, "system": s, "created_count": result.created,
               "skipped_count": result.skipped, "deleted_count": result.deleted},
    )
    return result
