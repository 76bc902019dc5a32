from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.models import Group, LedgerCell, User
from backend.app.services import group_service, ledger_service
from backend.app.services.split_service import to_money

ZERO = Decimal("0")

BalanceEntry = Dict[str, Any]


def _users_by_id(db: Session, user_ids: Iterable[str]) -> Dict[str, User]:
    ids = sorted(set(user_ids))
    if not ids:
        return {}
    rows = db.execute(select(User).where(User.id.in_(ids))).scalars().all()
    return {row.id: row for row in rows}


def _entry_sort_key(entry: BalanceEntry) -> Tuple[str, str]:
    user = entry["user"]
    return ((user.get("name") or "").lower(), user["id"])


def _total(entries: List[BalanceEntry]) -> Decimal:
    return sum((entry["amount"] for entry in entries), ZERO)


def categorize_cells(
    cells: Iterable[LedgerCell],
    user_id: str,
    users: Dict[str, User],
) -> Tuple[List[BalanceEntry], List[BalanceEntry]]:
    """
    Split a user's cells into (you_owe, owes_you).

    Each relationship is stored twice; it is read from the cell where the
    user is the debtor (positive: you owe the creditor, negative: the
    creditor owes you). The mirrored cell is skipped so nothing is counted
    twice.
    """
    you_owe: List[BalanceEntry] = []
    owes_you: List[BalanceEntry] = []
    for cell in cells:
        if cell.debtor_id != user_id:
            continue
        amount = to_money(cell.amount)
        counterparty = _summary(cell.creditor_id, users.get(cell.creditor_id))
        if amount > ZERO:
            you_owe.append({"user": counterparty, "amount": amount})
        elif amount < ZERO:
            owes_you.append({"user": counterparty, "amount": -amount})

    you_owe.sort(key=_entry_sort_key)
    owes_you.sort(key=_entry_sort_key)
    return you_owe, owes_you


def _summary(user_id: str, user: User | None) -> Dict[str, Any]:
    if user is None:
        return {"id": user_id, "name": None, "email": None}
    return group_service.user_summary(user)


def _counterparty_ids(cells: Iterable[LedgerCell], user_id: str) -> List[str]:
    return [cell.creditor_id if cell.debtor_id == user_id else cell.debtor_id for cell in cells]


def group_balances(db: Session, group_id: str, user_id: str) -> Dict[str, Any]:
    group_service.require_member(db, group_id, user_id)
    cells = ledger_service.cells_for_user(db, user_id, [group_id])
    users = _users_by_id(db, _counterparty_ids(cells, user_id))
    you_owe, owes_you = categorize_cells(cells, user_id, users)
    return {
        "you_owe": you_owe,
        "owes_you": owes_you,
        "total_you_owe": _total(you_owe),
        "total_owes_you": _total(owes_you),
    }


def user_balances(db: Session, user_id: str) -> Dict[str, Any]:
    """
    Balances across every group the user currently belongs to.

    Groups with nothing outstanding for the user are omitted.
    """
    group_ids = group_service.user_group_ids(db, user_id)
    cells = ledger_service.cells_for_user(db, user_id, group_ids)
    users = _users_by_id(db, _counterparty_ids(cells, user_id))

    cells_by_group: Dict[str, List[LedgerCell]] = {}
    for cell in cells:
        cells_by_group.setdefault(cell.group_id, []).append(cell)

    groups: Dict[str, Group] = {}
    if cells_by_group:
        rows = db.execute(select(Group).where(Group.id.in_(sorted(cells_by_group)))).scalars().all()
        groups = {row.id: row for row in rows}

    out: List[Dict[str, Any]] = []
    for group_id, group_cells in cells_by_group.items():
        you_owe, owes_you = categorize_cells(group_cells, user_id, users)
        if not you_owe and not owes_you:
            continue
        group = groups.get(group_id)
        out.append(
            {
                "group": {"id": group_id, "name": group.name if group else None},
                "you_owe": you_owe,
                "owes_you": owes_you,
                "total_you_owe": _total(you_owe),
                "total_owes_you": _total(owes_you),
            }
        )

    out.sort(key=lambda item: ((item["group"]["name"] or "").lower(), item["group"]["id"]))
    return {
        "groups": out,
        "total_you_owe": sum((item["total_you_owe"] for item in out), ZERO),
        "total_owes_you": sum((item["total_owes_you"] for item in out), ZERO),
    }
