import pytest

from identity.errors import InvalidInput
from identity.models.user import Role, RoleKey
from identity.roles import RoleCatalog, parse_role_key, role_key_from_display_name, seed_roles


def test_seed_is_idempotent(session):
    seed_roles(session)
    assert session.query(Role).count() == len(RoleKey)


def test_resolve_returns_persisted_role(session):
    role = RoleCatalog(session).resolve(RoleKey.ROLE_FIELD_EMPLOYEE)
    assert role.role == "ROLE_FIELD_EMPLOYEE"
    assert role.name == "Field Employee"
    assert role.is_admin is False


def test_resolve_missing_role_fails(session):
    session.query(Role).filter(Role.role == RoleKey.ROLE_LANDLORD.value).delete()
    with pytest.raises(InvalidInput):
        RoleCatalog(session).resolve(RoleKey.ROLE_LANDLORD)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Admin", RoleKey.ROLE_ADMIN),
        ("  landlord ", RoleKey.ROLE_LANDLORD),
        ("FIELD EMPLOYEE", RoleKey.ROLE_FIELD_EMPLOYEE),
        ("janitor", RoleKey.ROLE_USER),
        (None, RoleKey.ROLE_USER),
    ],
)
def test_display_name_lookup(session, name, expected):
    assert role_key_from_display_name(name) is expected
    assert RoleCatalog(session).resolve_by_display_name(name) is expected


def test_parse_role_key_falls_back_to_user():
    assert parse_role_key("ROLE_LANDLORD") is RoleKey.ROLE_LANDLORD
    assert parse_role_key("ROLE_OWNER") is RoleKey.ROLE_USER
    assert parse_role_key(None) is RoleKey.ROLE_USER
