import logging
from typing import Optional

import jwt
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from core.db import get_db
from core.exceptions import Forbidden, Unauthorized
from models.store import Store
from models.user import User
from security.jwt import decode_access

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _load_user(token: str, db: Session) -> User:
    try:
        claims = decode_access(token)
    except jwt.PyJWTError as exc:
        logger.info("rejected access token: %s", exc)
        raise Unauthorized("Invalid or expired token") from None
    if claims.get("type") != "access":
        raise Unauthorized("Invalid token type")
    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token subject") from None

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise Unauthorized("User not found or inactive")
    return user


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user."""
    token = _bearer_token(authorization)
    if token is None:
        raise Unauthorized("Unauthorized")
    return _load_user(token, db)


def get_optional_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Optional[User]:
    token = _bearer_token(authorization)
    if token is None:
        return None
    return _load_user(token, db)


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user


def is_store_owner(user: User, store: Store) -> bool:
    return store.seller_id == user.id


def ensure_store_access(user: User, store: Store) -> None:
    """Owners and admins only."""
    if user.is_admin or is_store_owner(user, store):
        return
    logger.warning("user %s denied access to store %s", user.id, store.id)
    raise Forbidden("You do not have access to this store")
