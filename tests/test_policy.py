import pytest

from errors import Forbidden
from policy import enforce, forbid_self_delete, forbid_self_demotion
from schemas import Principal, Role

ADMIN = Principal(id="a1", firstName="Ada", lastName="Admin", email="ada@example.com", role=Role.ADMIN)


def test_self_delete_is_a_violation():
    violation = forbid_self_delete(ADMIN, "a1")
    assert violation is not None
    assert violation.rule == "self-delete"


def test_deleting_someone_else_is_allowed():
    assert forbid_self_delete(ADMIN, "b2") is None


@pytest.mark.parametrize("role", [Role.STUDENT, Role.PARENT, Role.TEACHER])
def test_self_demotion_is_a_violation(role):
    assert forbid_self_demotion(ADMIN, "a1", role).rule == "self-demote"


def test_keeping_own_admin_role_is_allowed():
    assert forbid_self_demotion(ADMIN, "a1", Role.ADMIN) is None
    assert forbid_self_demotion(ADMIN, "a1", None) is None


def test_demoting_someone_else_is_allowed():
    assert forbid_self_demotion(ADMIN, "b2", Role.STUDENT) is None


def test_enforce_raises_forbidden_with_message():
    with pytest.raises(Forbidden, match="Cannot delete your own admin account"):
        enforce(forbid_self_delete(ADMIN, "a1"))
    enforce(None)


def test_self_check_ignores_objectid_hex_case():
    oid = "6ad60c24641dc57ebaa6d45d"
    me = ADMIN.model_copy(update={"id": oid})
    assert forbid_self_delete(me, oid.upper()) is not None
    assert forbid_self_demotion(me, oid.upper(), Role.TEACHER) is not None
    assert forbid_self_delete(me, "6ad60c24641dc57ebaa6d45e") is None
