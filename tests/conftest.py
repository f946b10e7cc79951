import asyncio

import pytest

from allyhub.core import config
from allyhub.core.database import init_db, session_scope, shutdown_db, start_db
from allyhub.core.language import bot_language
from allyhub.core.metrics import metrics
from allyhub.models.database import ROLE_ADMIN, ROLE_USER
from allyhub.services.entities import ensure_alliance, ensure_player
from allyhub.services.users import create_user


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'allyhub.db'}"


@pytest.fixture
def run_db(db_url):
    """Run ``scenario(session)`` against a fresh schema in its own event loop."""

    def _run(scenario):
        async def _main():
            await start_db(db_url)
            try:
                await init_db()
                async with session_scope() as session:
                    return await scenario(session)
            finally:
                await shutdown_db()

        return asyncio.run(_main())

    return _run


@pytest.fixture(autouse=True)
def _reset_process_state():
    metrics.reset()
    bot_language.reset()
    yield
    bot_language.reset()


@pytest.fixture
def api_db(db_url, monkeypatch):
    """Point the app at the temp database and seed an admin and a member.

    Returns a dict with the two API keys and the seeded player/alliance ids.
    """
    monkeypatch.setattr(config, "DATABASE_URL", db_url)
    monkeypatch.setattr(config, "DEV_CREATE_ALL", True)

    async def _seed():
        await start_db(db_url)
        try:
            await init_db()
            async with session_scope() as session:
                await ensure_alliance(session, 500, "ALLY")
                await ensure_player(session, 100, "Admiral")
                await ensure_player(session, 101, "Member")
                admin = await create_user(session, player_id=100, alliance_id=500, role=ROLE_ADMIN)
                member = await create_user(session, player_id=101, alliance_id=500, role=ROLE_USER)
                return {
                    "admin_key": admin.api_key,
                    "admin_id": admin.id,
                    "member_key": member.api_key,
                    "member_id": member.id,
                    "alliance_id": 500,
                }
        finally:
            await shutdown_db()

    return asyncio.run(_seed())
