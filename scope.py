"""
Access scope resolution and write guards.

A request runs as a `Caller`. `resolve_scope` turns the caller plus the
operator's impersonation pointer (if any) into the portfolio the request may
read, and whether that read is an impersonation. The `assert_*` helpers are
consulted before every tenant-content mutation.

Invariant kept by the session store, not here: one operator holds at most
one impersonation pointer at a time (last write wins).
"""
import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict

from errors import ForbiddenError, NotFoundError
from schemas import ROLE_OPERATOR, ROLE_REGULAR

logger = logging.getLogger("portfolio_api.scope")


class Caller(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    role: str
    own_portfolio_id: Optional[str] = None

    @property
    def is_operator(self) -> bool:
        return self.role == ROLE_OPERATOR


class Scope(BaseModel):
    model_config = ConfigDict(frozen=True)

    portfolio_id: Optional[str]
    is_impersonating: bool = False

    @property
    def is_global(self) -> bool:
        """Operator with no tenant selected."""
        return self.portfolio_id is None


def resolve_scope(caller: Caller, impersonated_portfolio_id: Optional[str] = None) -> Scope:
    if caller.role == ROLE_REGULAR:
        # the pointer is an operator concept; a regular account never reads through it
        return Scope(portfolio_id=caller.own_portfolio_id, is_impersonating=False)

    if caller.role == ROLE_OPERATOR:
        if impersonated_portfolio_id:
            return Scope(portfolio_id=str(impersonated_portfolio_id), is_impersonating=True)
        return Scope(portfolio_id=None, is_impersonating=False)

    raise ForbiddenError(f"Unknown role: {caller.role}")


# ======================
# Write guards
# ======================

def assert_not_impersonating(scope: Scope) -> None:
    if scope.is_impersonating:
        raise ForbiddenError("read-only: impersonation active")


def assert_not_operator_direct_write(caller: Caller, scope: Scope) -> None:
    if caller.is_operator and scope.portfolio_id is None:
        raise ForbiddenError("operators cannot write tenant content directly")


def assert_can_write(caller: Caller, scope: Scope) -> str:
    """
    Run every write guard and return the portfolio id the mutation targets.

    Order matters only for the message: an impersonating operator is told the
    session is read-only before anything else.
    """
    try:
        assert_not_impersonating(scope)
        assert_not_operator_direct_write(caller, scope)
    except ForbiddenError as e:
        logger.warning("Refused write by %s (%s): %s", caller.account_id, caller.role, e.message)
        raise
    if caller.is_operator:
        # unreachable with the guards above; operators never hold a writable scope
        raise ForbiddenError("operators cannot write tenant content directly")
    if scope.portfolio_id is None:
        raise NotFoundError("No portfolio found")
    return scope.portfolio_id


def assert_within_scope(scope: Scope, portfolio_id: str) -> None:
    if scope.portfolio_id is None or str(portfolio_id) != str(scope.portfolio_id):
        raise ForbiddenError("You can only access your own portfolio")


def require_operator(caller: Caller) -> None:
    if not caller.is_operator:
        raise ForbiddenError("Platform operator access required")
