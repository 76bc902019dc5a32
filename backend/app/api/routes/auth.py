from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user
from backend.app.api.schemas import CamelModel, Envelope
from backend.app.db import get_db
from backend.app.models import User
from backend.app.services import identity_service

router = APIRouter(prefix="/api/auth", tags=["auth"])

EMAIL_PATTERN = r"^\S+@\S+\.\S+$"


class RegisterIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    # bcrypt only looks at the first 72 bytes
    password: str = Field(..., min_length=6, max_length=72)


class LoginIn(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class PublicUserOut(CamelModel):
    id: str
    name: str
    email: str
    created_at: datetime


class AuthOut(CamelModel):
    user: PublicUserOut
    token: str


@router.post("/register", status_code=201, response_model=Envelope[AuthOut])
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    result = identity_service.register_user(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
    )
    return Envelope[AuthOut](data=AuthOut(**result))


@router.post("/login", response_model=Envelope[AuthOut])
def login(payload: LoginIn, db: Session = Depends(get_db)):
    result = identity_service.login_user(db, email=payload.email, password=payload.password)
    return Envelope[AuthOut](data=AuthOut(**result))


@router.get("/me", response_model=Envelope[PublicUserOut])
def get_me(user: User = Depends(get_current_user)):
    return Envelope[PublicUserOut](data=PublicUserOut(**identity_service.public_user(user)))
