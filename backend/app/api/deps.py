# backend/app/api/deps.py
from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from backend.app.db import get_db
from backend.app.errors import UnauthorizedError
from backend.app.models import Group, User
from backend.app.services import group_service, identity_service


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if not header or not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the bearer token on the request into a User.

    NOTE:
    - db must be injected via Depends(get_db) so FastAPI doesn't treat Session
      as a Pydantic field (which would crash app startup).
    """
    token = _bearer_token(request)
    if not token:
        raise UnauthorizedError("No token provided. Please authenticate.")

    user_id = identity_service.verify_token(token)
    user = db.get(User, user_id)
    if not user:
        raise UnauthorizedError("Invalid or expired token")
    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but a missing or bad token means anonymous instead of 401."""
    token = _bearer_token(request)
    if not token:
        return None
    try:
        user_id = identity_service.verify_token(token)
    except UnauthorizedError:
        return None
    return db.get(User, user_id)


def require_group_member_dep() -> Callable[..., Group]:
    """
    FastAPI dependency factory that returns the Group for a member caller.

    Usage:
      @router.get("/{group_id}/something")
      def something(
          group_id: str,
          group: Group = Depends(require_group_member_dep()),
      ):
          ...

    404 when the group is missing, 403 when the caller is not a member.
    """
    def _dep(
        group_id: str,
        db: Session = Depends(get_db),
        user: User = Depends(get_current_user),
    ) -> Group:
        return group_service.require_member(db, group_id, user.id)

    return _dep
