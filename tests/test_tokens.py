from datetime import datetime, timedelta

import pytest

from identity.errors import InvalidToken
from identity.models.user import User
from identity.tokens import ValidationTokenManager, day_bounds


NOW = datetime(2024, 5, 17, 12, 30)


def make_user(session, username="alice", phone="0300"):
    user = User(username=username, phone_number=phone, password_hash="x")
    session.add(user)
    session.flush()
    return user


@pytest.fixture
def tokens(session):
    return ValidationTokenManager(session, daily_limit=3, clock=lambda: NOW)


def test_issue_then_find_returns_valid_token(session, tokens):
    user = make_user(session)
    issued = tokens.issue(user, "abc123", "Password Reset Request")

    found = tokens.find_by_token("abc123")
    assert found.id == issued.id
    assert found.token_valid is True
    assert found.user_id == user.id
    assert found.created_at == NOW


def test_issue_never_reuses_existing_token(session, tokens):
    user = make_user(session)
    first = tokens.issue(user, "same")
    second = tokens.issue(user, "same")
    assert first.id != second.id


def test_latest_token_wins(session, tokens):
    alice = make_user(session)
    bob = make_user(session, "bob", "0301")
    tokens.issue(alice, "dup")
    tokens.issue(bob, "dup")

    assert tokens.find_by_token("dup").user_id == bob.id


def test_invalidated_latest_token_shadows_older_valid_one(session, tokens):
    user = make_user(session)
    tokens.issue(user, "dup")
    latest = tokens.issue(user, "dup")
    tokens.invalidate(latest, "Password Reset")

    with pytest.raises(InvalidToken):
        tokens.find_by_token("dup")


@pytest.mark.parametrize("value", [None, "missing"])
def test_find_by_token_rejects_unknown(tokens, value):
    with pytest.raises(InvalidToken):
        tokens.find_by_token(value)


@pytest.mark.parametrize("value", [None, ""])
def test_is_valid_short_circuits_empty_input(tokens, value):
    assert tokens.is_valid(value) is False


def test_is_valid_propagates_invalid_token(session, tokens):
    user = make_user(session)
    record = tokens.issue(user, "tok")
    assert tokens.is_valid("tok") is True

    tokens.invalidate(record, "Password Reset")
    assert record.reason == "Password Reset"
    with pytest.raises(InvalidToken):
        tokens.is_valid("tok")


def test_delete_removes_token(session, tokens):
    user = make_user(session)
    record = tokens.issue(user, "tok")
    tokens.delete(record.id)

    assert tokens.get(record.id) is None
    tokens.delete(record.id)


def test_day_bounds_are_half_open():
    start, end = day_bounds(NOW)
    assert start == datetime(2024, 5, 17)
    assert end == datetime(2024, 5, 18)


def test_daily_count_includes_last_instant_of_day(session):
    user = make_user(session)
    moments = iter([datetime(2024, 5, 17, 23, 59, 59, 999999), datetime(2024, 5, 18)])
    issuer = ValidationTokenManager(session, clock=lambda: next(moments))
    issuer.issue(user, "late")
    issuer.issue(user, "midnight")

    counter = ValidationTokenManager(session, clock=lambda: NOW)
    assert counter.daily_issuance_count(user) == 1


def test_daily_count_ignores_other_days(session):
    user = make_user(session)
    moments = iter(
        [
            datetime(2024, 5, 16, 23, 59, 59),
            datetime(2024, 5, 17, 0, 0),
            datetime(2024, 5, 17, 23, 59, 59),
            datetime(2024, 5, 18, 0, 0),
        ]
    )
    issuer = ValidationTokenManager(session, clock=lambda: next(moments))
    for i in range(4):
        issuer.issue(user, f"t{i}")

    counter = ValidationTokenManager(session, daily_limit=3, clock=lambda: NOW)
    assert counter.daily_issuance_count(user) == 2
    assert counter.daily_issuance_count(user, now=NOW + timedelta(days=1)) == 1


def test_daily_count_is_per_user(session, tokens):
    alice = make_user(session)
    bob = make_user(session, "bob", "0301")
    tokens.issue(alice, "a")
    tokens.issue(bob, "b")
    assert tokens.daily_issuance_count(alice) == 1


def test_daily_limit(session, tokens):
    user = make_user(session)
    for i in range(2):
        tokens.issue(user, f"t{i}")
    assert tokens.is_daily_limit_exceeded(user) is False

    tokens.issue(user, "t2")
    assert tokens.is_daily_limit_exceeded(user) is True


def test_missing_user_counts_as_limit_exceeded(tokens):
    assert tokens.is_daily_limit_exceeded(None) is True
