from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
import jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.config import bcrypt_rounds, jwt_expires_in_seconds, jwt_secret
from backend.app.errors import NotFoundError, UnauthorizedError, ValidationError
from backend.app.models import User
from backend.app.services.transaction_service import atomic

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=bcrypt_rounds())).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def issue_token(user_id: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=jwt_expires_in_seconds()),
    }
    return jwt.encode(payload, jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> str:
    """Return the user id carried by a bearer token."""
    try:
        payload = jwt.decode(token, jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise UnauthorizedError("Invalid or expired token")
    return user_id


def get_user_by_id(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def public_user(user: User) -> Dict[str, Any]:
    return {"id": user.id, "name": user.name, "email": user.email, "created_at": user.created_at}


def register_user(db: Session, *, name: str, email: str, password: str) -> Dict[str, Any]:
    if len(password.encode("utf-8")) > 72:
        raise ValidationError("Password cannot exceed 72 bytes")
    normalized = email.strip().lower()
    existing = db.execute(select(User.id).where(User.email == normalized)).scalar_one_or_none()
    if existing:
        raise ValidationError("Email already registered")

    with atomic(db):
        user = User(email=normalized, name=name.strip(), password_hash=hash_password(password))
        db.add(user)

    db.refresh(user)
    return {"user": public_user(user), "token": issue_token(user.id)}


def login_user(db: Session, *, email: str, password: str) -> Dict[str, Any]:
    normalized = email.strip().lower()
    user = db.execute(select(User).where(User.email == normalized)).scalars().first()
    if not user or not user.password_hash or not check_password(password, user.password_hash):
        raise UnauthorizedError("Invalid credentials")
    return {"user": public_user(user), "token": issue_token(user.id)}
