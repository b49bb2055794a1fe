import pytest

from identity.devices import DeviceTokenService
from identity.errors import AccountNotFound, InvalidInput
from identity.models.token import DeviceToken
from identity.models.user import User


def test_save_creates_then_updates(session):
    user = User(username="alice", phone_number="0300", password_hash="x")
    session.add(user)
    session.commit()
    service = DeviceTokenService(session)

    first = service.save(user.id, "fcm-1")
    second = service.save(user.id, "fcm-2")

    assert first.id == second.id
    assert service.get(user.id).token == "fcm-2"
    assert session.query(DeviceToken).count() == 1


def test_get_missing_returns_none(session):
    assert DeviceTokenService(session).get(1) is None


@pytest.mark.parametrize("user_id, token", [(None, "fcm"), (1, None), (1, "")])
def test_save_requires_user_and_token(session, user_id, token):
    with pytest.raises(InvalidInput):
        DeviceTokenService(session).save(user_id, token)


def test_save_unknown_user(session):
    with pytest.raises(AccountNotFound):
        DeviceTokenService(session).save(42, "fcm")
