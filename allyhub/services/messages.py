"""In-game mail dedup: tells the scraper which message ids it has not processed yet."""
from __future__ import annotations

import logging
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from allyhub.core.metrics import metrics
from allyhub.models.database import Message

logger = logging.getLogger(__name__)


async def check_messages(session: AsyncSession, ids: Iterable[int]) -> List[int]:
    """Record the batch and return the ids never seen before, in input order."""
    batch = list(dict.fromkeys(int(i) for i in ids))
    if not batch:
        return []
    result = await session.execute(select(Message.external_id).where(Message.external_id.in_(batch)))
    known = set(result.scalars().all())
    fresh = [i for i in batch if i not in known]
    if not fresh:
        return []
    session.add_all([Message(external_id=i) for i in fresh])
    try:
        await session.commit()
    except IntegrityError:
        # A concurrent request recorded some of them first; fall back to one row at a time
        await session.rollback()
        fresh = await _record_one_by_one(session, fresh)
    metrics.increment_event("ingest.messages.new", len(fresh))
    return fresh


async def _record_one_by_one(session: AsyncSession, ids: List[int]) -> List[int]:
    recorded = []
    for external_id in ids:
        session.add(Message(external_id=external_id))
        try:
            await session.commit()
            recorded.append(external_id)
        except IntegrityError:
            await session.rollback()
            logger.debug("message_already_recorded external_id=%s", external_id)
    return recorded
