from datetime import datetime, timezone

import pytest

from allyhub.core.errors import BadRequestError, NotFoundError
from allyhub.models.database import Player, ROLE_ADMIN, ROLE_USER
from allyhub.services.entities import ensure_alliance, ensure_player
from allyhub.services.users import (
    create_user,
    delete_user,
    get_user,
    get_user_by_api_key,
    list_users,
    record_activity,
    update_language,
    update_role,
    user_info,
)


async def _seed(session):
    await ensure_alliance(session, 500, "ALLY")
    await ensure_player(session, 100, "Admiral")
    admin = await create_user(session, player_id=100, alliance_id=500, role=ROLE_ADMIN)
    return admin


def test_create_user_by_name_links_player_to_alliance(run_db):
    async def scenario(session):
        await _seed(session)
        await ensure_player(session, 101, "Member")
        user = await create_user(session, player_name="Member", alliance_id=500)
        player = await session.get(Player, 101)
        return user, player, await user_info(session, user)

    user, player, info = run_db(scenario)
    assert user.player_id == 101
    assert user.role == ROLE_USER and user.language == "de"
    assert player.alliance_id == 500
    assert info["player_name"] == "Member"
    assert info["alliance_name"] == "ALLY"
    assert info["is_admin"] is False


def test_create_user_rejects_unknown_name_duplicates_and_bad_roles(run_db):
    async def scenario(session):
        await _seed(session)
        with pytest.raises(NotFoundError):
            await create_user(session, player_name="Ghost")
        with pytest.raises(BadRequestError):
            await create_user(session, player_id=100)
        with pytest.raises(BadRequestError):
            await create_user(session, player_id=102, role="owner")

    run_db(scenario)


def test_create_user_for_unscraped_player_creates_the_player(run_db):
    async def scenario(session):
        user = await create_user(session, player_id=4242)
        return user, await session.get(Player, 4242)

    user, player = run_db(scenario)
    assert player is not None and player.name == "Unknown"
    assert len(user.api_key) == 36


def test_api_key_lookup(run_db):
    async def scenario(session):
        admin = await _seed(session)
        found = await get_user_by_api_key(session, admin.api_key)
        missing = await get_user_by_api_key(session, "nope")
        return admin.id, found, missing

    admin_id, found, missing = run_db(scenario)
    assert found.id == admin_id
    assert missing is None


def test_admins_cannot_delete_or_orphan_themselves(run_db):
    async def scenario(session):
        admin = await _seed(session)
        with pytest.raises(BadRequestError):
            await delete_user(session, admin, admin.id)
        with pytest.raises(BadRequestError):
            await update_role(session, admin, admin.id, ROLE_USER)
        with pytest.raises(BadRequestError):
            await update_role(session, admin, admin.id, "root")

        other = await create_user(session, player_id=101, role=ROLE_ADMIN)
        demoted = await update_role(session, admin, admin.id, ROLE_USER)
        await delete_user(session, other, admin.id)
        with pytest.raises(NotFoundError):
            await get_user(session, admin.id)
        return demoted.role, await list_users(session)

    demoted_role, remaining = run_db(scenario)
    assert demoted_role == ROLE_USER
    assert [u["player_id"] for u in remaining] == [101]


def test_update_language(run_db):
    async def scenario(session):
        admin = await _seed(session)
        assert await update_language(session, admin, " EN ") == "en"
        with pytest.raises(BadRequestError):
            await update_language(session, admin, "fr")
        return admin.language

    assert run_db(scenario) == "en"


def test_record_activity_uses_its_own_session(run_db):
    stamp = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)

    async def scenario(session):
        admin = await _seed(session)
        await record_activity(admin.id, now=stamp)
        await session.refresh(admin)
        return await user_info(session, admin)

    assert run_db(scenario)["last_activity_at"] == "2026-10-18T09:30:00Z"
