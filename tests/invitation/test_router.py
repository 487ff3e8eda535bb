"""Tests for invitation domain router."""

import anyio


def _invite_alice(gateways, name: str = "Team") -> str:
    return anyio.run(gateways["bob"].create_group, name, ["alice"])


def test_list_pending_invitations(client, gateways):
    client.get("/profile/me")
    group_id = _invite_alice(gateways)

    response = client.get("/invitations")

    assert response.status_code == 200
    (invitation,) = response.json()
    assert invitation["group_id"] == group_id
    assert invitation["group_name"] == "Team"
    assert invitation["from_name"] == "Bob"


def test_accept_joins_group(client, gateways):
    group_id = _invite_alice(gateways)
    (invitation,) = client.get("/invitations").json()

    response = client.post(f"/invitations/{invitation['id']}/accept")

    assert response.status_code == 200
    assert response.json() == {"group_id": group_id, "joined": True}
    assert client.get("/invitations").json() == []
    (summary,) = client.get("/chats").json()
    assert summary["id"] == group_id
    assert summary["members"] == ["bob", "alice"]


def test_accept_after_group_deleted(client, store, gateways):
    group_id = _invite_alice(gateways)
    (invitation,) = client.get("/invitations").json()
    anyio.run(store.delete, "chats", group_id)

    response = client.post(f"/invitations/{invitation['id']}/accept")

    assert response.json() == {"group_id": group_id, "joined": False}
    assert client.get("/chats").json() == []


def test_reject(client, gateways):
    _invite_alice(gateways)
    (invitation,) = client.get("/invitations").json()

    assert client.post(f"/invitations/{invitation['id']}/reject").status_code == 204
    assert client.get("/invitations").json() == []


def test_unknown_invitation(client, users):
    response = client.post("/invitations/missing/accept")
    assert response.status_code == 404
    assert response.json()["type"] == "invitation_not_found"
