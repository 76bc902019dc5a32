from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from backend.app.domain.contracts import Share, SplitSpec
from backend.app.errors import ValidationError
from backend.app.models import Expense, ExpenseSplit
from backend.app.services import group_service, ledger_service, split_service
from backend.app.services.transaction_service import run_atomic

logger = logging.getLogger(__name__)

MAX_DESCRIPTION = 200
MAX_PAGE_SIZE = 100


def _clean_description(description: str) -> str:
    clean = (description or "").strip()
    if not clean:
        raise ValidationError("Description is required")
    if len(clean) > MAX_DESCRIPTION:
        raise ValidationError("Description cannot exceed 200 characters")
    return clean


def _check_participants(shares: Sequence[Share], members: Sequence[str]) -> None:
    member_set = set(members)
    seen: set[str] = set()
    details: List[Dict[str, Any]] = []
    for idx, share in enumerate(shares):
        if share.user_id not in member_set:
            details.append({"field": f"splits[{idx}].userId", "message": "user is not a member of this group"})
        elif share.user_id in seen:
            details.append({"field": f"splits[{idx}].userId", "message": "user appears more than once"})
        seen.add(share.user_id)
    if details:
        raise ValidationError("Split users must be distinct members of the group", details=details)


def create_expense(
    db: Session,
    *,
    user_id: str,
    group_id: str,
    description: str,
    amount: Any,
    split_type: str,
    splits: Optional[Sequence[SplitSpec]] = None,
) -> Expense:
    """
    Record an expense paid by user_id and move the ledger accordingly.

    Shares are calculated and validated before anything is written; the
    expense row and every ledger mutation then commit together or not at all.
    """
    group_service.require_member(db, group_id, user_id)
    clean_description = _clean_description(description)
    total = split_service.to_money(amount)
    members = group_service.member_ids(db, group_id)

    shares = split_service.calculate_shares(
        total,
        split_type,
        splits,
        group_members=members,
        payer_id=user_id,
    )
    split_service.ensure_valid(split_service.validate_shares(total, split_type, shares))
    _check_participants(shares, members)

    def _write(scope: Session) -> Expense:
        expense = Expense(
            group_id=group_id,
            description=clean_description,
            amount=total,
            paid_by=user_id,
            split_type=split_type,
            splits=[
                ExpenseSplit(
                    position=idx,
                    user_id=share.user_id,
                    amount=split_service.to_money(share.amount),
                    percentage=share.percentage,
                )
                for idx, share in enumerate(shares)
            ],
        )
        scope.add(expense)
        scope.flush()
        ledger_service.apply_expense_debts(scope, group_id, user_id, shares)
        return expense

    expense = run_atomic(db, _write)
    logger.info(
        "Expense created expense_id=%s group_id=%s amount=%s split_type=%s shares=%d",
        expense.id,
        group_id,
        total,
        split_type,
        len(shares),
    )
    return expense


def expense_detail(expense: Expense) -> Dict[str, Any]:
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "description": expense.description,
        "amount": expense.amount,
        "paid_by": group_service.user_summary(expense.payer),
        "split_type": expense.split_type,
        "splits": [
            {
                "user": group_service.user_summary(split.user),
                "amount": split.amount,
                "percentage": split.percentage,
            }
            for split in expense.splits
        ],
        "created_at": expense.created_at,
    }


def list_group_expenses(
    db: Session,
    user_id: str,
    group_id: str,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    group_service.require_member(db, group_id, user_id)
    if page < 1:
        raise ValidationError("Page must be a positive integer")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError("Limit must be between 1 and 100")

    total = db.execute(
        select(func.count()).select_from(Expense).where(Expense.group_id == group_id)
    ).scalar_one()

    rows = (
        db.execute(
            select(Expense)
            .where(Expense.group_id == group_id)
            .options(
                selectinload(Expense.payer),
                selectinload(Expense.splits).selectinload(ExpenseSplit.user),
            )
            .order_by(Expense.created_at.desc(), Expense.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )

    return {
        "expenses": [expense_detail(row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }
