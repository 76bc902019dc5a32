from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from backend.app.errors import ForbiddenError, ValidationError
from backend.app.services import group_service, ledger_service
from backend.app.services.split_service import to_money
from backend.app.services.transaction_service import run_atomic

logger = logging.getLogger(__name__)


def settle(
    db: Session,
    group_id: str,
    payer_id: str,
    creditor_id: str,
    amount: Any,
) -> Dict[str, Any]:
    """
    payer_id hands creditor_id `amount` outside of any expense.

    The payer's debt to the creditor drops by `amount` and the mirror rises.
    Amounts above the outstanding debt are accepted and flip the sign, so the
    creditor ends up owing the payer: a settlement is a free-form transfer,
    not a capped repayment.
    """
    group_service.require_group(db, group_id)
    if not (
        group_service.is_member(db, group_id, payer_id)
        and group_service.is_member(db, group_id, creditor_id)
    ):
        raise ForbiddenError("Both users must be members of the group")

    value = to_money(amount)
    if value <= Decimal("0"):
        raise ValidationError(
            "Amount must be greater than 0",
            details=[{"field": "amount", "message": "Amount must be greater than 0"}],
        )
    if payer_id == creditor_id:
        raise ValidationError(
            "Cannot settle with yourself",
            details=[{"field": "creditorId", "message": "creditor must be another member"}],
        )

    run_atomic(db, lambda scope: ledger_service.apply_debt(scope, group_id, payer_id, creditor_id, -value))
    logger.info("Settlement recorded group_id=%s from=%s to=%s amount=%s", group_id, payer_id, creditor_id, value)

    return {
        "message": "Debt settled successfully",
        "amount": value,
        "from": payer_id,
        "to": creditor_id,
    }
