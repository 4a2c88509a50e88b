from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlmodel import Session

from skillcast.db.session import engine
from skillcast.models.user import User
from skillcast.services.auth_service import change_password, create_user
from skillcast.services.refresh_store import RefreshStore


@pytest.fixture
def session():
    with Session(engine) as db:
        yield db


@pytest.fixture
def user(session) -> User:
    suffix = uuid4().hex[:10]
    record = User(username=f"store_{suffix}", email=f"{suffix}@skillcast.io", hashed_password='x')
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def _expiry(days: int = 7) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


def test_persist_then_is_valid(session, user):
    store = RefreshStore(session)
    store.persist('tok-a-' + user.id, user.id, _expiry())
    assert store.is_valid('tok-a-' + user.id)
    assert not store.is_valid('never-stored')


def test_revoke_is_idempotent(session, user):
    store = RefreshStore(session)
    token = 'tok-b-' + user.id
    store.persist(token, user.id, _expiry())
    assert store.revoke(token) is True
    assert store.revoke(token) is False
    assert not store.is_valid(token)


def test_revoke_all_only_touches_one_user(session, user):
    store = RefreshStore(session)
    other = User(username=f"other_{uuid4().hex[:10]}", email=f"{uuid4().hex[:10]}@skillcast.io", hashed_password='x')
    session.add(other)
    session.commit()

    for n in range(3):
        store.persist(f"tok-c{n}-{user.id}", user.id, _expiry())
    store.persist(f"tok-other-{other.id}", other.id, _expiry())

    assert store.revoke_all(user.id) == 3
    assert store.count_for_user(user.id) == 0
    assert store.is_valid(f"tok-other-{other.id}")


def test_rotate_swaps_tokens_once(session, user):
    store = RefreshStore(session)
    old, new, newer = (f"tok-{name}-{user.id}" for name in ('old', 'new', 'newer'))
    store.persist(old, user.id, _expiry())

    assert store.rotate(old, new, user.id, _expiry()) is True
    assert not store.is_valid(old)
    assert store.is_valid(new)

    # A second use of the already-rotated token loses and inserts nothing.
    assert store.rotate(old, newer, user.id, _expiry()) is False
    assert not store.is_valid(newer)


def test_purge_expired(session, user):
    store = RefreshStore(session)
    store.persist(f"tok-stale-{user.id}", user.id, _expiry(days=-1))
    store.persist(f"tok-live-{user.id}", user.id, _expiry())

    assert store.purge_expired() >= 1
    assert not store.is_valid(f"tok-stale-{user.id}")
    assert store.is_valid(f"tok-live-{user.id}")


class _FailingRevokeStore(RefreshStore):
    def revoke_all(self, user_id: str, commit: bool = True) -> int:
        super().revoke_all(user_id, commit=commit)
        raise RuntimeError('database went away')


def test_change_password_rolls_back_with_failed_revocation(session):
    user = create_user(session, f"pw_{uuid4().hex[:10]}", f"{uuid4().hex[:10]}@skillcast.io", 'secret123')
    old_hash = user.hashed_password
    token = 'tok-pw-' + user.id
    RefreshStore(session).persist(token, user.id, _expiry())

    with pytest.raises(RuntimeError):
        change_password(session, _FailingRevokeStore(session), user, 'secret123', 'new-secret-456')

    with Session(engine) as fresh:
        assert fresh.get(User, user.id).hashed_password == old_hash
        assert RefreshStore(fresh).is_valid(token)


def test_revoke_all_without_commit_is_undone_by_rollback(session, user):
    store = RefreshStore(session)
    token = 'tok-nc-' + user.id
    store.persist(token, user.id, _expiry())
    assert store.revoke_all(user.id, commit=False) == 1
    session.rollback()
    assert store.is_valid(token)
