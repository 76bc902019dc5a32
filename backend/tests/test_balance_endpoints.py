from backend.app.models import Group, GroupMembership, User
from backend.app.services import identity_service


def _create_user(session, name):
    user = User(name=name, email=f"{name.lower()}@example.com")
    session.add(user)
    session.flush()
    return user


def _auth(user):
    return {"Authorization": f"Bearer {identity_service.issue_token(user.id)}"}


def _create_group(session, name, creator, *members):
    group = Group(name=name, creator_id=creator.id)
    session.add(group)
    session.flush()
    for user in (creator, *members):
        session.add(GroupMembership(group_id=group.id, user_id=user.id))
    session.commit()
    return group


def _post_expense(client, group, payer, amount):
    resp = client.post(
        f"/api/groups/{group.id}/expenses",
        json={"description": "Shared", "amount": amount, "splitType": "EQUAL"},
        headers=_auth(payer),
    )
    assert resp.status_code == 201, resp.json()


def test_group_balances_scenario(api_client, sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    carol = _create_user(sqlite_session, "Carol")
    group = _create_group(sqlite_session, "Trip", alice, bob, carol)

    _post_expense(api_client, group, alice, 30)

    resp = api_client.get(f"/api/groups/{group.id}/balances", headers=_auth(alice))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [(e["user"]["name"], e["amount"]) for e in data["owesYou"]] == [("Bob", 10.0), ("Carol", 10.0)]
    assert data["youOwe"] == []
    assert data["totalOwesYou"] == 20.0
    assert data["totalYouOwe"] == 0.0

    resp = api_client.post(
        f"/api/groups/{group.id}/settle",
        json={"creditorId": alice.id, "amount": 10},
        headers=_auth(bob),
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "data": {"message": "Debt settled successfully", "amount": 10.0, "from": bob.id, "to": alice.id},
    }

    data = api_client.get(f"/api/groups/{group.id}/balances", headers=_auth(alice)).json()["data"]
    assert [(e["user"]["name"], e["amount"]) for e in data["owesYou"]] == [("Carol", 10.0)]
    assert data["totalOwesYou"] == 10.0


def test_group_balances_errors(api_client, sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    outsider = _create_user(sqlite_session, "Mallory")
    group = _create_group(sqlite_session, "Trip", alice)

    assert api_client.get(f"/api/groups/{group.id}/balances").status_code == 401
    assert api_client.get(f"/api/groups/{group.id}/balances", headers=_auth(outsider)).status_code == 403
    assert api_client.get("/api/groups/nope/balances", headers=_auth(alice)).status_code == 404


def test_settle_errors(api_client, sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    outsider = _create_user(sqlite_session, "Mallory")
    group = _create_group(sqlite_session, "Trip", alice, bob)

    resp = api_client.post(
        f"/api/groups/{group.id}/settle",
        json={"creditorId": outsider.id, "amount": 5},
        headers=_auth(bob),
    )
    assert resp.status_code == 403
    assert resp.json()["error"] == "Both users must be members of the group"

    resp = api_client.post(
        "/api/groups/nope/settle",
        json={"creditorId": alice.id, "amount": 5},
        headers=_auth(bob),
    )
    assert resp.status_code == 404

    resp = api_client.post(
        f"/api/groups/{group.id}/settle",
        json={"creditorId": alice.id, "amount": 0},
        headers=_auth(bob),
    )
    assert resp.status_code == 400

    resp = api_client.post(
        f"/api/groups/{group.id}/settle",
        json={"creditorId": bob.id, "amount": 5},
        headers=_auth(bob),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Cannot settle with yourself"


def test_user_balances_across_groups(api_client, sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    carol = _create_user(sqlite_session, "Carol")
    trip = _create_group(sqlite_session, "Trip", alice, bob)
    flat = _create_group(sqlite_session, "Flat", carol, alice)

    _post_expense(api_client, trip, alice, 40)
    _post_expense(api_client, flat, carol, 10)

    resp = api_client.get("/api/users/me/balances", headers=_auth(alice))

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["count"] == 2
    assert body["totalYouOwe"] == 5.0
    assert body["totalOwesYou"] == 20.0
    by_name = {item["group"]["name"]: item for item in body["data"]}
    assert by_name["Trip"]["owesYou"][0]["amount"] == 20.0
    assert by_name["Flat"]["youOwe"][0]["user"]["id"] == carol.id
    assert by_name["Flat"]["group"]["id"] == flat.id


def test_user_balances_requires_token(api_client):
    assert api_client.get("/api/users/me/balances").status_code == 401


def test_settle_amount_beyond_storage_is_rejected(api_client, sqlite_session):
    alice = _create_user(sqlite_session, "Alice")
    bob = _create_user(sqlite_session, "Bob")
    group = _create_group(sqlite_session, "Trip", alice, bob)

    resp = api_client.post(
        f"/api/groups/{group.id}/settle",
        json={"creditorId": alice.id, "amount": 1e30},
        headers=_auth(bob),
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["details"][0]["field"] == "amount"
