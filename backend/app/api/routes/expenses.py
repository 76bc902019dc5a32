from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user, require_group_member_dep
from backend.app.api.schemas import CamelModel, Envelope, UserOut
from backend.app.db import get_db
from backend.app.models import Group, User
from backend.app.services import expense_service, split_service
from backend.app.services.split_service import MAX_AMOUNT

router = APIRouter(prefix="/api/groups", tags=["expenses"])


# -------------------------
# Schemas
# -------------------------

class SplitIn(CamelModel):
    user_id: str
    amount: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT)
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)


class ExpenseCreateIn(CamelModel):
    description: str = Field(..., max_length=200)
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    split_type: str
    splits: Optional[List[SplitIn]] = None


class ExpenseSplitOut(CamelModel):
    user: UserOut
    amount: float
    percentage: Optional[float] = None


class ExpenseOut(CamelModel):
    id: str
    group_id: str
    description: str
    amount: float
    paid_by: UserOut
    split_type: str
    splits: List[ExpenseSplitOut]
    created_at: datetime


class PaginationOut(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class ExpensePageOut(CamelModel):
    expenses: List[ExpenseOut]
    pagination: PaginationOut


# -------------------------
# Endpoints
# -------------------------

@router.post("/{group_id}/expenses", status_code=201, response_model=Envelope[ExpenseOut])
def create_expense(
    payload: ExpenseCreateIn,
    group: Group = Depends(require_group_member_dep()),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    specs = split_service.build_split_specs(
        payload.split_type,
        [split.model_dump() for split in payload.splits or []],
    )
    expense = expense_service.create_expense(
        db,
        user_id=user.id,
        group_id=group.id,
        description=payload.description,
        amount=payload.amount,
        split_type=payload.split_type,
        splits=specs,
    )
    return Envelope[ExpenseOut](data=ExpenseOut(**expense_service.expense_detail(expense)))


@router.get("/{group_id}/expenses", response_model=Envelope[ExpensePageOut])
def list_group_expenses(
    group_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = expense_service.list_group_expenses(db, user.id, group_id, page=page, limit=limit)
    return Envelope[ExpensePageOut](data=ExpensePageOut(**result))
