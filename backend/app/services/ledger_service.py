from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from backend.app.domain.contracts import Share
from backend.app.models import LedgerCell, utcnow
from backend.app.services.split_service import to_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class LedgerIntegrityError(ValueError):
    pass


def _increment_cell(
    db: Session,
    group_id: str,
    debtor_id: str,
    creditor_id: str,
    delta: Decimal,
    now: datetime,
) -> None:
    """
    amount += delta for one directed cell, creating it if absent.

    The addition happens in SQL (ON CONFLICT DO UPDATE / UPDATE ... SET
    amount = amount + :delta) so concurrent writers to the same cell compose.
    """
    dialect_insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)
    if dialect_insert is not None:
        stmt = dialect_insert(LedgerCell).values(
            group_id=group_id,
            debtor_id=debtor_id,
            creditor_id=creditor_id,
            amount=delta,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[LedgerCell.group_id, LedgerCell.debtor_id, LedgerCell.creditor_id],
            set_={
                "amount": LedgerCell.amount + stmt.excluded.amount,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        db.execute(stmt)
        return

    result = db.execute(
        update(LedgerCell)
        .where(
            LedgerCell.group_id == group_id,
            LedgerCell.debtor_id == debtor_id,
            LedgerCell.creditor_id == creditor_id,
        )
        .values(amount=LedgerCell.amount + delta, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.execute(
            insert(LedgerCell).values(
                group_id=group_id,
                debtor_id=debtor_id,
                creditor_id=creditor_id,
                amount=delta,
                created_at=now,
                updated_at=now,
            )
        )


def apply_debt(
    db: Session,
    group_id: str,
    debtor_id: str,
    creditor_id: str,
    delta,
) -> None:
    """
    Record that debtor owes creditor `delta` more (negative delta: less).

    Both mirrored cells move in the caller's transaction; nothing is
    committed here.
    """
    if debtor_id == creditor_id:
        raise ValueError("ledger cells require two distinct members")
    amount = to_money(delta)
    if amount == ZERO:
        return
    now = utcnow()
    _increment_cell(db, group_id, debtor_id, creditor_id, amount, now)
    _increment_cell(db, group_id, creditor_id, debtor_id, -amount, now)


def apply_expense_debts(db: Session, group_id: str, payer_id: str, shares: Iterable[Share]) -> int:
    """Each non-payer share becomes debt owed to the payer. Returns cells pairs touched."""
    applied = 0
    for share in shares:
        if share.user_id == payer_id:
            continue
        if to_money(share.amount) == ZERO:
            continue
        apply_debt(db, group_id, share.user_id, payer_id, share.amount)
        applied += 1
    return applied


# -------------------------
# Reads
# -------------------------

def get_cell(db: Session, group_id: str, debtor_id: str, creditor_id: str) -> Optional[LedgerCell]:
    return (
        db.execute(
            select(LedgerCell)
            .where(
                LedgerCell.group_id == group_id,
                LedgerCell.debtor_id == debtor_id,
                LedgerCell.creditor_id == creditor_id,
            )
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )


def cell_amount(db: Session, group_id: str, debtor_id: str, creditor_id: str) -> Decimal:
    cell = get_cell(db, group_id, debtor_id, creditor_id)
    return to_money(cell.amount) if cell else ZERO


def cells_for_user(db: Session, user_id: str, group_ids: Optional[List[str]] = None) -> List[LedgerCell]:
    """Non-zero cells where user_id is either side, optionally limited to group_ids."""
    stmt = select(LedgerCell).where(
        or_(LedgerCell.debtor_id == user_id, LedgerCell.creditor_id == user_id),
        LedgerCell.amount != 0,
    )
    if group_ids is not None:
        if not group_ids:
            return []
        stmt = stmt.where(LedgerCell.group_id.in_(group_ids))
    stmt = stmt.order_by(LedgerCell.group_id, LedgerCell.debtor_id, LedgerCell.creditor_id)
    return list(db.execute(stmt.execution_options(populate_existing=True)).scalars().all())


def check_ledger_integrity(db: Session, group_id: str) -> dict:
    """
    Side-effect-free mirror check for one group.

    Invariants:
    - Every cell has its mirror.
    - cell(A, B).amount == -cell(B, A).amount.
    - No self-debt cells.
    """
    rows = (
        db.execute(
            select(LedgerCell)
            .where(LedgerCell.group_id == group_id)
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    by_pair: Dict[Tuple[str, str], Decimal] = {
        (row.debtor_id, row.creditor_id): to_money(row.amount) for row in rows
    }

    outstanding = ZERO
    for (debtor_id, creditor_id), amount in by_pair.items():
        if debtor_id == creditor_id:
            raise LedgerIntegrityError(f"Invariant violation: self-debt cell for {debtor_id}.")
        mirror = by_pair.get((creditor_id, debtor_id))
        if mirror is None:
            logger.warning("Ledger cell without mirror group_id=%s debtor=%s creditor=%s", group_id, debtor_id, creditor_id)
            raise LedgerIntegrityError("Invariant violation: ledger cell is missing its mirror.")
        if amount != -mirror:
            logger.warning(
                "Mirror mismatch group_id=%s debtor=%s creditor=%s amount=%s mirror=%s",
                group_id,
                debtor_id,
                creditor_id,
                amount,
                mirror,
            )
            raise LedgerIntegrityError("Invariant violation: mirrored ledger cells do not negate.")
        if amount > 0:
            outstanding += amount

    return {
        "cells": len(by_pair),
        "pairs": len(by_pair) // 2,
        "outstanding_total": outstanding,
    }
