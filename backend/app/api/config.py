from __future__ import annotations

import os
import re

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

LOCAL_DEV_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


def cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if raw is None:
        return list(LOCAL_DEV_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET must be set to issue or verify bearer tokens.")
    return secret


def jwt_expires_in_seconds() -> int:
    raw = os.getenv("JWT_EXPIRES_IN", "7d")
    match = _DURATION_RE.match(raw)
    if not match:
        raise RuntimeError(f"JWT_EXPIRES_IN has an invalid duration: {raw!r}")
    value, unit = match.groups()
    return int(value) * _DURATION_UNITS[unit]


def bcrypt_rounds() -> int:
    return int(os.getenv("BCRYPT_ROUNDS", "12"))
