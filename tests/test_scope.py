import pytest
from pydantic import ValidationError

from errors import ForbiddenError, NotFoundError
from scope import (
    Caller,
    Scope,
    assert_can_write,
    assert_not_impersonating,
    assert_not_operator_direct_write,
    assert_within_scope,
    require_operator,
    resolve_scope,
)

REGULAR = Caller(account_id="a1", role="regular", own_portfolio_id="p1")
OPERATOR = Caller(account_id="op", role="platform_operator")


def test_regular_caller_reads_own_portfolio():
    assert resolve_scope(REGULAR) == Scope(portfolio_id="p1", is_impersonating=False)


def test_regular_caller_ignores_pointer():
    scope = resolve_scope(REGULAR, "p2")
    assert scope.portfolio_id == "p1"
    assert not scope.is_impersonating


def test_regular_caller_without_portfolio():
    scope = resolve_scope(Caller(account_id="a2", role="regular"))
    assert scope.portfolio_id is None
    assert not scope.is_impersonating


def test_operator_with_pointer_impersonates():
    assert resolve_scope(OPERATOR, "p9") == Scope(portfolio_id="p9", is_impersonating=True)


def test_operator_without_pointer_is_global():
    scope = resolve_scope(OPERATOR, None)
    assert scope.is_global
    assert not scope.is_impersonating


def test_unknown_role_is_forbidden():
    with pytest.raises(ForbiddenError):
        resolve_scope(Caller(account_id="x", role="superuser"))


def test_impersonation_is_read_only():
    with pytest.raises(ForbiddenError, match="read-only: impersonation active"):
        assert_not_impersonating(Scope(portfolio_id="p9", is_impersonating=True))


def test_operator_global_scope_cannot_write():
    with pytest.raises(ForbiddenError, match="operators cannot write tenant content directly"):
        assert_not_operator_direct_write(OPERATOR, Scope(portfolio_id=None))


@pytest.mark.parametrize("pointer", [None, "p9"])
def test_operator_never_gets_a_writable_scope(pointer):
    with pytest.raises(ForbiddenError):
        assert_can_write(OPERATOR, resolve_scope(OPERATOR, pointer))


def test_impersonation_message_wins():
    with pytest.raises(ForbiddenError, match="read-only"):
        assert_can_write(OPERATOR, resolve_scope(OPERATOR, "p9"))


def test_regular_write_returns_own_portfolio():
    assert assert_can_write(REGULAR, resolve_scope(REGULAR, "p2")) == "p1"


def test_regular_without_portfolio_cannot_write():
    caller = Caller(account_id="a2", role="regular")
    with pytest.raises(NotFoundError):
        assert_can_write(caller, resolve_scope(caller))


def test_within_scope():
    assert_within_scope(Scope(portfolio_id="p1"), "p1")
    with pytest.raises(ForbiddenError):
        assert_within_scope(Scope(portfolio_id="p1"), "p2")
    with pytest.raises(ForbiddenError):
        assert_within_scope(Scope(portfolio_id=None), "p1")


def test_require_operator():
    require_operator(OPERATOR)
    with pytest.raises(ForbiddenError):
        require_operator(REGULAR)


def test_caller_and_scope_are_immutable():
    scope = resolve_scope(REGULAR)
    with pytest.raises(ValidationError):
        scope.portfolio_id = "p2"
    with pytest.raises(ValidationError):
        REGULAR.role = "platform_operator"
    assert resolve_scope(REGULAR).portfolio_id == "p1"
