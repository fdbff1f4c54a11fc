import pytest

from groove.errors import AuthorizationError, DomainError, NotFoundError, ValidationError
from groove.ordering import in_order


def activity_types(repo, board):
    activities, _ = repo.activities([board.id], limit=100)
    return [a.type for a in activities]


def test_new_board_has_presets(repo, board, owner):
    columns = in_order(repo.columns(board.id))
    assert [c.name for c in columns] == ["Not Now", "May be?", "Done"]
    assert [c.is_default for c in columns] == [False, True, False]
    assert repo.member(board.id, owner.id).role == "owner"
    assert repo.assignee_for_account(board.id, owner.id).name == "Olivia Owner"
    assert activity_types(repo, board) == ["board_created"]


def test_create_column_appends(coordinator, repo, board, owner):
    column = coordinator.create_column(board.id, owner.id, "Todo")
    assert column.order == 4.0
    assert not column.is_default
    assert in_order(repo.columns(board.id))[-1].id == column.id


def test_editor_cannot_create_column(coordinator, board, editor):
    with pytest.raises(AuthorizationError):
        coordinator.create_column(board.id, editor.id, "Todo")


def test_outsider_sees_not_found(coordinator, board):
    stranger = coordinator.register_account("stranger@example.com")
    with pytest.raises(NotFoundError):
        coordinator.create_column(board.id, stranger.id, "Todo")


def test_blank_column_name_rejected(coordinator, board, owner):
    with pytest.raises(ValidationError):
        coordinator.create_column(board.id, owner.id, "   ")


def test_default_column_cannot_be_deleted(coordinator, repo, board, owner, default_column):
    coordinator.upsert_item(owner.id, default_column.id, "Stay put")
    before = activity_types(repo, board)

    with pytest.raises(DomainError) as exc:
        coordinator.delete_column(default_column.id, owner.id)

    assert exc.value.code == "default_column"
    assert repo.get_column(default_column.id) is not None
    assert len(repo.items_in_column(default_column.id)) == 1
    assert activity_types(repo, board) == before
    assert sum(c.is_default for c in repo.columns(board.id)) == 1


def test_delete_column_moves_cards_to_default(coordinator, repo, clock, board, owner, default_column):
    todo = coordinator.create_column(board.id, owner.id, "Todo")
    first = coordinator.upsert_item(owner.id, todo.id, "Write copy")
    second = coordinator.upsert_item(owner.id, todo.id, "Pick fonts")
    clock.advance(minutes=5)

    coordinator.delete_column(todo.id, owner.id, board_id=board.id)

    assert repo.get_column(todo.id) is None
    moved = repo.items_in_column(default_column.id)
    assert {i.id for i in moved} == {first.id, second.id}
    assert all(i.last_active_at == clock() for i in moved)
    latest = repo.activities([board.id], limit=1)[0][0]
    assert latest.type == "column_deleted"
    assert latest.content == 'Deleted column "Todo"'


def test_delete_column_board_mismatch(coordinator, board, owner):
    other = coordinator.create_board(owner.id, "Other")
    todo = coordinator.create_column(board.id, owner.id, "Todo")
    with pytest.raises(NotFoundError):
        coordinator.delete_column(todo.id, owner.id, board_id=other.id)


def test_editor_may_rename_but_not_recolor(coordinator, repo, board, editor, default_column):
    coordinator.update_column(default_column.id, editor.id, name="Maybe")
    assert repo.get_column(default_column.id).name == "Maybe"

    with pytest.raises(AuthorizationError):
        coordinator.update_column(default_column.id, editor.id, name="Later", color="#000000")
    assert repo.get_column(default_column.id).name == "Maybe"


def test_update_column_shortcut(coordinator, repo, board, owner, default_column):
    coordinator.update_column(default_column.id, owner.id, shortcut=None)
    assert repo.get_column(default_column.id).shortcut is None
    with pytest.raises(ValidationError):
        coordinator.update_column(default_column.id, owner.id, shortcut="ab")


def test_move_column_between_neighbours(coordinator, repo, board, owner):
    not_now, maybe, done = in_order(repo.columns(board.id))
    coordinator.move_column(done.id, owner.id, prev_id=not_now.id, next_id=maybe.id)
    assert [c.name for c in in_order(repo.columns(board.id))] == ["Not Now", "Done", "May be?"]
    assert repo.get_column(done.id).order == 1.5


def test_move_column_needs_position(coordinator, repo, board, owner, default_column):
    with pytest.raises(ValidationError):
        coordinator.move_column(default_column.id, owner.id)


def test_renumber_columns(coordinator, repo, board, owner):
    not_now, maybe, done = in_order(repo.columns(board.id))
    coordinator.move_column(done.id, owner.id, order=1.25)
    columns = coordinator.renumber_columns(board.id, owner.id)
    assert [(c.name, c.order) for c in columns] == [("Not Now", 1.0), ("Done", 2.0), ("May be?", 3.0)]


def test_cards_append_in_order(coordinator, repo, owner, default_column):
    a = coordinator.upsert_item(owner.id, default_column.id, "A")
    b = coordinator.upsert_item(owner.id, default_column.id, "B")
    c = coordinator.upsert_item(owner.id, default_column.id, "C", prev_id=a.id, next_id=b.id)
    assert (a.order, b.order, c.order) == (1.0, 2.0, 1.5)
    assert [i.title for i in in_order(repo.items_in_column(default_column.id))] == ["A", "C", "B"]


def test_unknown_neighbour(coordinator, owner, default_column):
    with pytest.raises(NotFoundError):
        coordinator.upsert_item(owner.id, default_column.id, "A", prev_id="nope")


def test_update_logs_only_real_changes(coordinator, repo, board, owner, default_column):
    item = coordinator.upsert_item(owner.id, default_column.id, "Draft", content="v1")

    coordinator.upsert_item(owner.id, default_column.id, "Draft", item_id=item.id)
    assert activity_types(repo, board).count("card_updated") == 0

    coordinator.upsert_item(owner.id, default_column.id, "Final", item_id=item.id)
    coordinator.upsert_item(owner.id, default_column.id, "Final", content="v2", item_id=item.id)
    coordinator.upsert_item(owner.id, default_column.id, "Done", content="v3", item_id=item.id)

    updates = [a.content for a in repo.activities([board.id], type="card_updated")[0]]
    assert sorted(updates) == sorted(['Renamed to "Final"', "Updated content", "Updated title and content"])


def test_update_missing_item(coordinator, owner, default_column):
    with pytest.raises(NotFoundError):
        coordinator.upsert_item(owner.id, default_column.id, "X", item_id="zz000-zz000")


def test_move_item_logs_column_change_only(coordinator, repo, board, owner, default_column):
    done = in_order(repo.columns(board.id))[-1]
    item = coordinator.upsert_item(owner.id, default_column.id, "Ship it")

    coordinator.move_item(item.id, owner.id, default_column.id, order=0.5)
    assert activity_types(repo, board).count("card_moved") == 0

    coordinator.move_item(item.id, owner.id, done.id, order=1.0)
    moved = repo.activities([board.id], type="card_moved")[0]
    assert [a.content for a in moved] == ["from May be? to Done"]
    assert repo.get_item(item.id).column_id == done.id


def test_move_item_to_other_board_column(coordinator, repo, owner, default_column):
    other = coordinator.create_board(owner.id, "Other")
    foreign = repo.default_column(other.id)
    item = coordinator.upsert_item(owner.id, default_column.id, "Stay")
    with pytest.raises(NotFoundError):
        coordinator.move_item(item.id, owner.id, foreign.id, order=1.0)


def test_editor_deletes_own_card_only(coordinator, repo, clock, board, owner, editor, default_column):
    owners_card = coordinator.upsert_item(owner.id, default_column.id, "Owner's")
    editors_card = coordinator.upsert_item(editor.id, default_column.id, "Editor's")

    with pytest.raises(AuthorizationError) as exc:
        coordinator.delete_card(owners_card.id, editor.id)
    assert exc.value.message == "You can only delete your own cards"
    assert repo.get_item(owners_card.id) is not None

    clock.advance(seconds=1)
    coordinator.delete_card(editors_card.id, editor.id)
    assert repo.get_item(editors_card.id) is None
    latest = repo.activities([board.id], limit=1)[0][0]
    assert (latest.type, latest.item_id) == ("card_deleted", None)


def test_editor_cannot_delete_another_editors_card(coordinator, repo, editor, second_editor, default_column):
    card = coordinator.upsert_item(editor.id, default_column.id, "Eddie's")

    with pytest.raises(AuthorizationError):
        coordinator.delete_card(card.id, second_editor.id)
    assert repo.get_item(card.id) is not None

    coordinator.delete_card(card.id, editor.id)
    assert repo.get_item(card.id) is None


def test_admin_deletes_any_card(coordinator, repo, owner, admin, default_column):
    card = coordinator.upsert_item(owner.id, default_column.id, "Owner's")
    coordinator.delete_card(card.id, admin.id)
    assert repo.get_item(card.id) is None


def test_deleting_card_keeps_history(coordinator, repo, board, owner, default_column):
    card = coordinator.upsert_item(owner.id, default_column.id, "Gone soon")
    coordinator.create_comment(card.id, owner.id, "note")
    coordinator.delete_card(card.id, owner.id)
    # the link is cleared by the database, not the session
    repo.session.expire_all()
    activities, _ = repo.activities([board.id], limit=100)
    assert "card_created" in [a.type for a in activities]
    assert all(a.item_id is None for a in activities)


def test_comment_edit_window(coordinator, clock, owner, default_column):
    card = coordinator.upsert_item(owner.id, default_column.id, "Card")
    comment = coordinator.create_comment(card.id, owner.id, "first")

    clock.advance(minutes=15)
    coordinator.update_comment(comment.id, owner.id, "edited")

    clock.advance(seconds=1)
    with pytest.raises(DomainError) as exc:
        coordinator.update_comment(comment.id, owner.id, "too late")
    assert exc.value.code == "comment_edit_window_closed"
    with pytest.raises(DomainError):
        coordinator.delete_comment(comment.id, owner.id)


def test_comment_author_only(coordinator, repo, clock, owner, editor, default_column):
    card = coordinator.upsert_item(owner.id, default_column.id, "Card")
    comment = coordinator.create_comment(card.id, owner.id, "mine")

    with pytest.raises(DomainError) as exc:
        coordinator.delete_comment(comment.id, editor.id)
    assert exc.value.code == "comment_not_author"

    coordinator.delete_comment(comment.id, owner.id)
    assert repo.get_comment(comment.id) is None


def test_comment_touches_card(coordinator, repo, clock, owner, default_column):
    card = coordinator.upsert_item(owner.id, default_column.id, "Card")
    clock.advance(hours=2)
    coordinator.create_comment(card.id, owner.id, "x" * 80)
    assert repo.get_item(card.id).last_active_at == clock()
    added = repo.activities([card.board_id], type="comment_added")[0][0]
    assert added.content == "x" * 47 + "..."


def test_assign_card(coordinator, repo, board, owner, editor, default_column):
    card = coordinator.upsert_item(owner.id, default_column.id, "Card")
    eddie = repo.assignee_for_account(board.id, editor.id)

    coordinator.update_item_assignee(card.id, owner.id, eddie.id)
    assert repo.get_item(card.id).assignee_id == eddie.id

    coordinator.update_item_assignee(card.id, owner.id, None)
    assert repo.get_item(card.id).assignee_id is None
    contents = [a.content for a in repo.activities([board.id], type="card_assigned")[0]]
    assert sorted(contents) == ["Assigned to Eddie Editor", "Removed assignee"]


def test_virtual_assignee_is_case_insensitive(coordinator, repo, board, owner):
    first = coordinator.create_virtual_assignee(board.id, owner.id, "Contractor")
    again = coordinator.create_virtual_assignee(board.id, owner.id, "contractor")
    assert first.id == again.id
    assert first.account_id is None
    assert activity_types(repo, board).count("assignee_created") == 1


def test_assignee_names_stay_unique(coordinator, repo, board, owner):
    coordinator.create_virtual_assignee(board.id, owner.id, "Eddie Editor")
    coordinator.invite_user(board.id, owner.id, "eddie.editor@example.com")
    account = coordinator.register_account("eddie.editor@example.com")
    linked = repo.assignee_for_account(board.id, account.id)
    assert linked.name.startswith("Eddie Editor ")
    assert len(linked.name) == len("Eddie Editor ") + 4


def test_failed_log_rolls_back(coordinator, repo, board, owner, default_column, monkeypatch):
    def broken_log(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(coordinator, "_log", broken_log)
    with pytest.raises(RuntimeError):
        coordinator.upsert_item(owner.id, default_column.id, "Never saved")
    assert repo.items(board.id) == []


def test_update_and_delete_board(coordinator, repo, board, owner, editor):
    with pytest.raises(AuthorizationError):
        coordinator.update_board(board.id, editor.id, name="Hijacked")

    coordinator.update_board(board.id, owner.id, name="Relaunch")
    assert repo.get_board(board.id).name == "Relaunch"

    coordinator.delete_board(board.id, owner.id)
    assert repo.get_board(board.id) is None
    assert repo.columns(board.id) == []
    assert repo.member(board.id, editor.id) is None


def test_delete_board_with_cards(coordinator, repo, board, owner, default_column):
    card = coordinator.upsert_item(owner.id, default_column.id, "Card")
    coordinator.create_comment(card.id, owner.id, "note")
    coordinator.delete_board(board.id, owner.id)
    assert repo.get_item(card.id) is None


def test_register_duplicate_email(coordinator, owner):
    with pytest.raises(DomainError) as exc:
        coordinator.register_account(owner.email)
    assert exc.value.code == "email_taken"


def test_renumber_column_keeps_render_order(coordinator, owner, editor, default_column):
    a = coordinator.upsert_item(owner.id, default_column.id, "A")
    b = coordinator.upsert_item(owner.id, default_column.id, "B")
    c = coordinator.upsert_item(owner.id, default_column.id, "C", prev_id=a.id, next_id=b.id)
    items = coordinator.renumber_column(default_column.id, editor.id)
    assert [(i.id, i.order) for i in items] == [(a.id, 1.0), (c.id, 2.0), (b.id, 3.0)]
