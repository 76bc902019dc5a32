from decimal import Decimal

import pytest

from backend.app.errors import ForbiddenError, NotFoundError, ValidationError
from backend.app.models import Group, GroupMembership, User
from backend.app.services import ledger_service, settlement_service


def _create_user(session, name):
    user = User(name=name, email=f"{name.lower()}@example.com")
    session.add(user)
    session.flush()
    return user


def _create_group(session, creator, *members):
    group = Group(name="Flat", creator_id=creator.id)
    session.add(group)
    session.flush()
    for user in (creator, *members):
        session.add(GroupMembership(group_id=group.id, user_id=user.id))
    session.commit()
    return group


def _setup_debt(session, amount="20.00"):
    alice = _create_user(session, "Alice")
    bob = _create_user(session, "Bob")
    group = _create_group(session, alice, bob)
    ledger_service.apply_debt(session, group.id, bob.id, alice.id, Decimal(amount))
    session.commit()
    return group, alice, bob


def test_settle_reduces_debt_and_mirror(sqlite_session):
    group, alice, bob = _setup_debt(sqlite_session)

    result = settlement_service.settle(sqlite_session, group.id, bob.id, alice.id, "5")

    assert result == {
        "message": "Debt settled successfully",
        "amount": Decimal("5.00"),
        "from": bob.id,
        "to": alice.id,
    }
    assert ledger_service.cell_amount(sqlite_session, group.id, bob.id, alice.id) == Decimal("15.00")
    assert ledger_service.cell_amount(sqlite_session, group.id, alice.id, bob.id) == Decimal("-15.00")


def test_settle_then_reverse_restores_original_state(sqlite_session):
    group, alice, bob = _setup_debt(sqlite_session)

    settlement_service.settle(sqlite_session, group.id, bob.id, alice.id, Decimal("7.25"))
    settlement_service.settle(sqlite_session, group.id, alice.id, bob.id, Decimal("7.25"))

    assert ledger_service.cell_amount(sqlite_session, group.id, bob.id, alice.id) == Decimal("20.00")
    ledger_service.check_ledger_integrity(sqlite_session, group.id)


def test_overpayment_flips_the_direction(sqlite_session):
    group, alice, bob = _setup_debt(sqlite_session, "10.00")

    settlement_service.settle(sqlite_session, group.id, bob.id, alice.id, Decimal("15"))

    assert ledger_service.cell_amount(sqlite_session, group.id, bob.id, alice.id) == Decimal("-5.00")
    assert ledger_service.cell_amount(sqlite_session, group.id, alice.id, bob.id) == Decimal("5.00")


def test_settle_without_prior_debt_creates_cells(sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    group = _create_group(sqlite_session, alice, bob)

    settlement_service.settle(sqlite_session, group.id, bob.id, alice.id, Decimal("3"))

    assert ledger_service.cell_amount(sqlite_session, group.id, alice.id, bob.id) == Decimal("3.00")


def test_settle_unknown_group_is_not_found(sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    sqlite_session.commit()

    with pytest.raises(NotFoundError):
        settlement_service.settle(sqlite_session, "missing-group", bob.id, alice.id, Decimal("1"))


def test_settle_with_non_member_is_forbidden(sqlite_session):
    group, alice, _bob = _setup_debt(sqlite_session)
    outsider = _create_user(sqlite_session, "Mallory")
    sqlite_session.commit()

    with pytest.raises(ForbiddenError) as excinfo:
        settlement_service.settle(sqlite_session, group.id, outsider.id, alice.id, Decimal("1"))
    assert str(excinfo.value) == "Both users must be members of the group"


@pytest.mark.parametrize("amount", ["0", "-4"])
def test_settle_rejects_non_positive_amount(sqlite_session, amount):
    group, alice, bob = _setup_debt(sqlite_session)

    with pytest.raises(ValidationError):
        settlement_service.settle(sqlite_session, group.id, bob.id, alice.id, amount)

    assert ledger_service.cell_amount(sqlite_session, group.id, bob.id, alice.id) == Decimal("20.00")


def test_settle_with_yourself_is_rejected(sqlite_session):
    group, alice, _bob = _setup_debt(sqlite_session)

    with pytest.raises(ValidationError) as excinfo:
        settlement_service.settle(sqlite_session, group.id, alice.id, alice.id, Decimal("1"))
    assert str(excinfo.value) == "Cannot settle with yourself"


def test_settle_amount_beyond_storage_is_rejected(sqlite_session):
    group, alice, bob = _setup_debt(sqlite_session)

    with pytest.raises(ValidationError) as excinfo:
        settlement_service.settle(sqlite_session, group.id, bob.id, alice.id, Decimal("1e30"))

    assert str(excinfo.value) == "Amount is too large"
    assert ledger_service.cell_amount(sqlite_session, group.id, bob.id, alice.id) == Decimal("20.00")
