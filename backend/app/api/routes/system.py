from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from backend.app.api.deps import get_optional_user
from backend.app.api.schemas import CamelModel, Envelope
from backend.app.models import User

router = APIRouter(tags=["system"])


class HealthOut(CamelModel):
    status: str
    authenticated: bool


@router.get("/health", response_model=Envelope[HealthOut])
def health(user: Optional[User] = Depends(get_optional_user)):
    return Envelope[HealthOut](data=HealthOut(status="ok", authenticated=user is not None))
