from datetime import timedelta

from territory_api.core.security import create_token
from territory_api.db.base import utcnow
from territory_api.repositories.sessions import SessionRepository
from territory_api.repositories.users import UserRepository


async def _user(session, username="bob"):
    return await UserRepository(session).create_user(
        username=username, email=f"{username}@example.com", password="x"
    )


async def test_created_session_is_found_by_id_and_token(session):
    user = await _user(session)
    repo = SessionRepository(session)
    token = create_token(user.id, "7d")

    created = await repo.create_session(token, user.id, utcnow() + timedelta(days=7))

    by_id = await repo.get_session_by_id(created.id)
    assert by_id is not None and by_id.user_id == user.id
    by_token = await repo.get_session_by_token(token)
    assert by_token is not None and by_token.id == created.id


async def test_expired_session_is_not_returned_by_token(session):
    user = await _user(session)
    repo = SessionRepository(session)
    created = await repo.create_session("old-token", user.id, utcnow() - timedelta(minutes=1))

    assert await repo.get_session_by_token("old-token") is None
    assert await repo.get_session_by_id(created.id) is not None


async def test_delete_expired_sessions_keeps_live_ones(session):
    user = await _user(session)
    repo = SessionRepository(session)
    live = await repo.create_session("live", user.id, utcnow() + timedelta(hours=1))
    dead = await repo.create_session("dead", user.id, utcnow() - timedelta(hours=1))
    live_id, dead_id = live.id, dead.id

    assert await repo.delete_expired_sessions() == 1

    session.expire_all()
    assert await repo.get_session_by_id(live_id) is not None
    assert await repo.get_session_by_id(dead_id) is None


async def test_delete_session_and_all_user_sessions(session):
    alice = await _user(session, "alice")
    carol = await _user(session, "carol")
    repo = SessionRepository(session)
    for token in ("a1", "a2"):
        await repo.create_session(token, alice.id, utcnow() + timedelta(days=1))
    await repo.create_session("c1", carol.id, utcnow() + timedelta(days=1))

    await repo.delete_session("a1")
    assert await repo.get_session_by_token("a1") is None

    assert await repo.delete_all_user_sessions(alice.id) == 1
    assert await repo.get_session_by_token("a2") is None
    assert await repo.get_session_by_token("c1") is not None


async def test_search_users_by_username_pages(session):
    users = UserRepository(session)
    for name in ("mark", "martin", "mary", "zoe", "ma_x"):
        await _user(session, name)

    first = await users.search_users_by_username("MAR", limit=2, offset=0)
    assert [u.username for u in first] == ["mark", "martin", "mary"]

    second = await users.search_users_by_username("mar", limit=2, offset=2)
    assert [u.username for u in second] == ["mary"]

    # underscore is matched literally
    assert [u.username for u in await users.search_users_by_username("ma_", limit=5, offset=0)] == ["ma_x"]
