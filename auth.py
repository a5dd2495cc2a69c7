"""
Authentication and request scope dependencies.

Bearer JWTs identify the account; the account row is re-read on each request
so the caller's portfolio id is never stale. The operator's impersonation
pointer travels in an httpOnly cookie and is only honoured for operators.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, Response
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    COOKIE_SECURE,
    IMPERSONATE_COOKIE_PATH,
    IMPERSONATE_PORTFOLIO_COOKIE,
    SECRET_KEY,
)
from database import get_db, oid
from scope import Caller, Scope, assert_can_write, require_operator, resolve_scope

logger = logging.getLogger("portfolio_api.auth")

# Use pbkdf2_sha256 to avoid external bcrypt dependency issues
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def token_for_account(account: dict) -> str:
    return create_access_token({"sub": str(account["_id"]), "role": account.get("role")})


def get_current_caller(authorization: Optional[str] = Header(None), db=Depends(get_db)) -> Caller:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    account_id = payload.get("sub")
    account = db["account"].find_one({"_id": oid(account_id)}) if oid(account_id) else None
    if not account:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Caller(
        account_id=str(account["_id"]),
        role=account.get("role"),
        own_portfolio_id=account.get("portfolio_id"),
    )


def get_impersonation_pointer(
    admin_impersonate_portfolio_id: Optional[str] = Cookie(None),
) -> Optional[str]:
    return admin_impersonate_portfolio_id or None


def get_scope(
    caller: Caller = Depends(get_current_caller),
    pointer: Optional[str] = Depends(get_impersonation_pointer),
) -> Scope:
    return resolve_scope(caller, pointer)


def require_write_scope(
    caller: Caller = Depends(get_current_caller),
    scope: Scope = Depends(get_scope),
) -> str:
    """Portfolio id a tenant mutation may write to. Runs every write guard first."""
    return assert_can_write(caller, scope)


def get_operator(caller: Caller = Depends(get_current_caller)) -> Caller:
    require_operator(caller)
    return caller


def set_impersonation_cookie(response: Response, portfolio_id: str) -> None:
    response.set_cookie(
        key=IMPERSONATE_PORTFOLIO_COOKIE,
        value=portfolio_id,
        httponly=True,
        samesite="lax",
        secure=COOKIE_SECURE,
        path=IMPERSONATE_COOKIE_PATH,
    )


def clear_impersonation_cookie(response: Response) -> None:
    response.delete_cookie(key=IMPERSONATE_PORTFOLIO_COOKIE, path=IMPERSONATE_COOKIE_PATH)
