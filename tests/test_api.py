def register(client, email, first=None, last=None):
    res = client.post("/v1/accounts", json={"email": email, "firstName": first, "lastName": last})
    assert res.status_code == 201
    return res.json()["id"]


def auth(account_id):
    return {"Authorization": f"Bearer {account_id}"}


def intent(client, account_id, name, /, **fields):
    return client.post("/v1/intents", json={"intent": name, **fields}, headers=auth(account_id))


def make_board(client, owner_id, name="Roadmap"):
    res = client.post("/v1/boards", json={"name": name}, headers=auth(owner_id))
    assert res.status_code == 201
    return res.json()


def default_column_id(client, owner_id, board_id):
    view = client.get(f"/v1/boards/{board_id}", headers=auth(owner_id)).json()
    return next(c["id"] for c in view["columns"] if c["isDefault"])


def test_bad_token(client):
    res = client.get("/v1/boards", headers={"Authorization": "Token abc"})
    assert res.status_code == 401


def test_unknown_account_token(client):
    res = client.get("/v1/boards", headers=auth("zz000-zz000"))
    assert res.status_code == 401


def test_board_lifecycle(client):
    owner = register(client, "owner@example.com", "Olga", "Owner")
    board = make_board(client, owner)
    assert board["myRole"] == "owner"

    view = client.get(f"/v1/boards/{board['id']}", headers=auth(owner)).json()
    assert [c["name"] for c in view["columns"]] == ["Not Now", "May be?", "Done"]
    assert [a["name"] for a in view["assignees"]] == ["Olga Owner"]

    listed = client.get("/v1/boards", headers=auth(owner)).json()
    assert [b["id"] for b in listed] == [board["id"]]

    assert client.delete(f"/v1/boards/{board['id']}", headers=auth(owner)).status_code == 204
    res = client.get(f"/v1/boards/{board['id']}", headers=auth(owner))
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"


def test_cards_through_intents(client):
    owner = register(client, "owner@example.com")
    board = make_board(client, owner)
    column_id = default_column_id(client, owner, board["id"])

    first = intent(client, owner, "createItem", columnId=column_id, title="First").json()["result"]
    second = intent(client, owner, "createItem", columnId=column_id, title="Second").json()["result"]
    middle = intent(
        client, owner, "createItem", columnId=column_id, title="Middle", prevId=first["id"], nextId=second["id"]
    ).json()["result"]
    assert (first["order"], second["order"], middle["order"]) == (1.0, 2.0, 1.5)

    view = client.get(f"/v1/boards/{board['id']}", headers=auth(owner)).json()
    assert [i["title"] for i in view["items"]] == ["First", "Middle", "Second"]

    res = intent(client, owner, "createComment", itemId=middle["id"], content="Looks good")
    assert res.status_code == 200
    detail = client.get(f"/v1/items/{middle['id']}", headers=auth(owner)).json()
    assert [c["content"] for c in detail["comments"]] == ["Looks good"]

    res = intent(client, owner, "deleteCard", itemId=second["id"])
    assert res.json() == {"intent": "deleteCard", "result": None}

    feed = client.get(
        f"/v1/boards/{board['id']}/activity", params={"type": "card_created"}, headers=auth(owner)
    ).json()
    assert feed["totalCount"] == 3


def test_move_requires_position(client):
    owner = register(client, "owner@example.com")
    board = make_board(client, owner)
    column_id = default_column_id(client, owner, board["id"])
    item = intent(client, owner, "createItem", columnId=column_id, title="Card").json()["result"]

    res = intent(client, owner, "moveItem", id=item["id"], columnId=column_id)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "invalid_input"


def test_unknown_intent(client):
    owner = register(client, "owner@example.com")
    res = intent(client, owner, "launchRockets")
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "unknown_intent"


def test_new_column_alias(client):
    owner = register(client, "owner@example.com")
    board = make_board(client, owner)
    res = intent(client, owner, "newColumn", boardId=board["id"], name="Todo")
    assert res.json()["intent"] == "createColumn"
    assert res.json()["result"]["order"] == 4.0


def test_delete_default_column_is_a_conflict(client):
    owner = register(client, "owner@example.com")
    board = make_board(client, owner)
    column_id = default_column_id(client, owner, board["id"])

    res = intent(client, owner, "deleteColumn", columnId=column_id, boardId=board["id"])
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "default_column"


def test_editor_flow(client):
    owner = register(client, "owner@example.com")
    board = make_board(client, owner)
    column_id = default_column_id(client, owner, board["id"])
    owners_card = intent(client, owner, "createItem", columnId=column_id, title="Owner's").json()["result"]

    res = intent(client, owner, "inviteUser", boardId=board["id"], email="ed@example.com")
    assert res.json()["result"]["status"] == "pending"
    editor = register(client, "ed@example.com")

    listed = client.get("/v1/boards", headers=auth(editor)).json()
    assert [(b["id"], b["myRole"]) for b in listed] == [(board["id"], "editor")]

    res = intent(client, editor, "deleteCard", itemId=owners_card["id"])
    assert res.status_code == 403
    assert res.json()["error"]["message"] == "You can only delete your own cards"

    res = intent(client, editor, "updateColumn", columnId=column_id, color="#000000")
    assert res.status_code == 403

    mine = intent(client, editor, "createItem", columnId=column_id, title="Mine").json()["result"]
    assert intent(client, editor, "deleteCard", itemId=mine["id"]).status_code == 200


def test_accept_invitation_intent(client):
    owner = register(client, "owner@example.com")
    invitee = register(client, "guest@example.com")
    board = make_board(client, owner)
    intent(client, owner, "inviteUser", boardId=board["id"], email="guest@example.com", role="admin")

    pending = client.get("/v1/invitations", headers=auth(invitee)).json()
    assert [i["role"] for i in pending] == ["admin"]

    res = intent(client, invitee, "acceptInvitation", invitationId=pending[0]["id"])
    assert res.json()["result"] == {"boardId": board["id"], "accountId": invitee, "role": "admin"}

    res = intent(client, invitee, "acceptInvitation", invitationId=pending[0]["id"])
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "invitation_already_processed"
    assert client.get("/v1/invitations", headers=auth(invitee)).json() == []


def test_outsider_gets_not_found(client):
    owner = register(client, "owner@example.com")
    outsider = register(client, "nosy@example.com")
    board = make_board(client, owner)

    assert client.get(f"/v1/boards/{board['id']}", headers=auth(outsider)).status_code == 404
    res = intent(client, outsider, "createColumn", boardId=board["id"], name="Mine")
    assert res.status_code == 404
