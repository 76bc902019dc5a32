from __future__ import annotations

from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user
from backend.app.api.schemas import CamelModel, Envelope, GroupRefOut, UserOut
from backend.app.db import get_db
from backend.app.models import User
from backend.app.services import balance_view_service, settlement_service
from backend.app.services.split_service import MAX_AMOUNT

router = APIRouter(prefix="/api", tags=["balances"])


class BalanceEntryOut(CamelModel):
    user: UserOut
    amount: float


class GroupBalancesOut(CamelModel):
    you_owe: List[BalanceEntryOut]
    owes_you: List[BalanceEntryOut]
    total_you_owe: float
    total_owes_you: float


class UserGroupBalancesOut(GroupBalancesOut):
    group: GroupRefOut


class UserBalancesEnvelope(CamelModel):
    success: bool = True
    count: int
    total_you_owe: float
    total_owes_you: float
    data: List[UserGroupBalancesOut]


class SettleIn(CamelModel):
    creditor_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)


class SettlementOut(CamelModel):
    message: str
    amount: float
    from_: str = Field(..., alias="from")
    to: str


@router.get("/groups/{group_id}/balances", response_model=Envelope[GroupBalancesOut])
def get_group_balances(
    group_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    view = balance_view_service.group_balances(db, group_id, user.id)
    return Envelope[GroupBalancesOut](data=GroupBalancesOut(**view))


@router.post("/groups/{group_id}/settle", response_model=Envelope[SettlementOut])
def settle_debt(
    group_id: str,
    payload: SettleIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = settlement_service.settle(db, group_id, user.id, payload.creditor_id, payload.amount)
    return Envelope[SettlementOut](data=SettlementOut(**result))


@router.get("/users/me/balances", response_model=UserBalancesEnvelope)
def get_user_balances(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    view = balance_view_service.user_balances(db, user.id)
    return UserBalancesEnvelope(
        count=len(view["groups"]),
        total_you_owe=view["total_you_owe"],
        total_owes_you=view["total_owes_you"],
        data=[UserGroupBalancesOut(**item) for item in view["groups"]],
    )
