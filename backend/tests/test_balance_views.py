from decimal import Decimal

import pytest

from backend.app.errors import ForbiddenError
from backend.app.models import Group, GroupMembership, User
from backend.app.services import balance_view_service, expense_service, settlement_service


def _create_user(session, name):
    user = User(name=name, email=f"{name.lower()}@example.com")
    session.add(user)
    session.flush()
    return user


def _create_group(session, name, creator, *members):
    group = Group(name=name, creator_id=creator.id)
    session.add(group)
    session.flush()
    for user in (creator, *members):
        session.add(GroupMembership(group_id=group.id, user_id=user.id))
    session.commit()
    return group


def _expense(session, payer, group, amount):
    return expense_service.create_expense(
        session,
        user_id=payer.id,
        group_id=group.id,
        description="Shared",
        amount=Decimal(amount),
        split_type="EQUAL",
    )


def _pairs(entries):
    return [(entry["user"]["name"], entry["amount"]) for entry in entries]


def test_group_balances_after_expense_and_settlement(sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    carol = _create_user(sqlite_session, "Carol")
    group = _create_group(sqlite_session, "Trip", alice, bob, carol)

    _expense(sqlite_session, alice, group, "30")
    settlement_service.settle(sqlite_session, group.id, bob.id, alice.id, Decimal("10"))

    alice_view = balance_view_service.group_balances(sqlite_session, group.id, alice.id)
    assert alice_view["you_owe"] == []
    assert _pairs(alice_view["owes_you"]) == [("Carol", Decimal("10.00"))]
    assert alice_view["total_owes_you"] == Decimal("10.00")
    assert alice_view["total_you_owe"] == Decimal("0")

    bob_view = balance_view_service.group_balances(sqlite_session, group.id, bob.id)
    assert bob_view["you_owe"] == []
    assert bob_view["owes_you"] == []

    carol_view = balance_view_service.group_balances(sqlite_session, group.id, carol.id)
    assert _pairs(carol_view["you_owe"]) == [("Alice", Decimal("10.00"))]
    assert carol_view["total_you_owe"] == Decimal("10.00")


def test_each_relationship_is_reported_once(sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    group = _create_group(sqlite_session, "Pair", alice, bob)

    _expense(sqlite_session, alice, group, "20")
    _expense(sqlite_session, bob, group, "8")

    alice_view = balance_view_service.group_balances(sqlite_session, group.id, alice.id)
    bob_view = balance_view_service.group_balances(sqlite_session, group.id, bob.id)

    assert _pairs(alice_view["owes_you"]) == [("Bob", Decimal("6.00"))]
    assert _pairs(bob_view["you_owe"]) == [("Alice", Decimal("6.00"))]
    assert alice_view["you_owe"] == [] and bob_view["owes_you"] == []


def test_entries_sorted_by_counterparty_name(sqlite_session):
    zed = _create_user(sqlite_session, "Zed")
    amy = _create_user(sqlite_session, "amy")
    payer = _create_user(sqlite_session, "Max")
    group = _create_group(sqlite_session, "Sorted", payer, zed, amy)

    _expense(sqlite_session, payer, group, "9")

    view = balance_view_service.group_balances(sqlite_session, group.id, payer.id)
    assert [entry["user"]["name"] for entry in view["owes_you"]] == ["amy", "Zed"]


def test_group_balances_requires_membership(sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    outsider = _create_user(sqlite_session, "Mallory")
    group = _create_group(sqlite_session, "Private", alice)

    with pytest.raises(ForbiddenError):
        balance_view_service.group_balances(sqlite_session, group.id, outsider.id)


def test_user_balances_across_groups(sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    carol = _create_user(sqlite_session, "Carol")
    trip = _create_group(sqlite_session, "Trip", alice, bob)
    flat = _create_group(sqlite_session, "Flat", carol, alice)
    quiet = _create_group(sqlite_session, "Quiet", alice, bob)

    _expense(sqlite_session, alice, trip, "50")
    _expense(sqlite_session, carol, flat, "12")
    _expense(sqlite_session, alice, quiet, "4")
    settlement_service.settle(sqlite_session, quiet.id, bob.id, alice.id, Decimal("2"))

    result = balance_view_service.user_balances(sqlite_session, alice.id)

    assert [item["group"]["name"] for item in result["groups"]] == ["Flat", "Trip"]
    flat_view, trip_view = result["groups"]
    assert flat_view["group"]["id"] == flat.id
    assert _pairs(flat_view["you_owe"]) == [("Carol", Decimal("6.00"))]
    assert _pairs(trip_view["owes_you"]) == [("Bob", Decimal("25.00"))]
    assert result["total_you_owe"] == Decimal("6.00")
    assert result["total_owes_you"] == Decimal("25.00")


def test_user_balances_empty_when_nothing_outstanding(sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    sqlite_session.commit()

    assert balance_view_service.user_balances(sqlite_session, alice.id) == {
        "groups": [],
        "total_you_owe": Decimal("0"),
        "total_owes_you": Decimal("0"),
    }
