from __future__ import annotations

import enum
from typing import Iterable, Optional

from .db import Board, BoardMember
from .errors import AuthorizationError


class Role(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    NONE = "none"


class Action(str, enum.Enum):
    UPDATE_BOARD = "updateBoard"
    DELETE_BOARD = "deleteBoard"
    CREATE_COLUMN = "createColumn"
    DELETE_COLUMN = "deleteColumn"
    MOVE_COLUMN = "moveColumn"
    UPDATE_COLUMN_COLOR = "updateColumnColor"
    UPDATE_COLUMN_SHORTCUT = "updateColumnShortcut"
    UPDATE_COLUMN_NAME = "updateColumnName"
    UPDATE_COLUMN_EXPANDED = "updateColumnExpanded"
    MANAGE_MEMBERS = "manageMembers"
    DELETE_CARD = "deleteCard"
    CREATE_ITEM = "createItem"
    UPDATE_ITEM = "updateItem"
    MOVE_ITEM = "moveItem"
    ASSIGN = "assign"
    COMMENT = "comment"
    CREATE_ASSIGNEE = "createAssignee"


OWNER_ONLY = frozenset({Role.OWNER})
MANAGERS = frozenset({Role.OWNER, Role.ADMIN})
EVERYONE = frozenset({Role.OWNER, Role.ADMIN, Role.EDITOR})

CAPABILITIES: dict[Action, frozenset[Role]] = {
    Action.UPDATE_BOARD: OWNER_ONLY,
    Action.DELETE_BOARD: OWNER_ONLY,
    Action.CREATE_COLUMN: OWNER_ONLY,
    Action.DELETE_COLUMN: OWNER_ONLY,
    Action.MOVE_COLUMN: OWNER_ONLY,
    Action.UPDATE_COLUMN_COLOR: OWNER_ONLY,
    Action.UPDATE_COLUMN_SHORTCUT: OWNER_ONLY,
    Action.UPDATE_COLUMN_NAME: EVERYONE,
    Action.UPDATE_COLUMN_EXPANDED: EVERYONE,
    Action.MANAGE_MEMBERS: MANAGERS,
    # editors are let through here and narrowed to their own cards by can()
    Action.DELETE_CARD: EVERYONE,
    Action.CREATE_ITEM: EVERYONE,
    Action.UPDATE_ITEM: EVERYONE,
    Action.MOVE_ITEM: EVERYONE,
    Action.ASSIGN: EVERYONE,
    Action.COMMENT: EVERYONE,
    Action.CREATE_ASSIGNEE: EVERYONE,
}

DENIED_MESSAGES = {
    Action.UPDATE_BOARD: "Only board owners can update board settings",
    Action.DELETE_BOARD: "Only board owners can delete the board",
    Action.CREATE_COLUMN: "Only board owners can add columns",
    Action.DELETE_COLUMN: "Only board owners can delete columns",
    Action.MOVE_COLUMN: "Only board owners can reorder columns",
    Action.UPDATE_COLUMN_COLOR: "Only board owners can change column colors",
    Action.UPDATE_COLUMN_SHORTCUT: "Only board owners can change column shortcuts",
    Action.MANAGE_MEMBERS: "Only board owners and admins can manage members",
    Action.DELETE_CARD: "You can only delete your own cards",
}


def role_of(board: Board, account_id: str, members: Optional[Iterable[BoardMember]] = None) -> Role:
    """Resolve the caller's role on ``board``.

    The board's owner is always ``OWNER``; anyone else is ``ADMIN`` or
    ``EDITOR`` according to their member row, and ``NONE`` without one.
    ``members`` defaults to the board's loaded member rows.
    """
    if board.owner_id == account_id:
        return Role.OWNER
    rows = board.members if members is None else members
    for member in rows:
        if member.account_id != account_id:
            continue
        if member.role == Role.ADMIN.value:
            return Role.ADMIN
        if member.role == Role.EDITOR.value:
            return Role.EDITOR
    return Role.NONE


def can(role: Role, action: Action, is_creator: bool = False) -> bool:
    if role not in CAPABILITIES[action]:
        return False
    if action is Action.DELETE_CARD and role is Role.EDITOR:
        return is_creator
    return True


def require(role: Role, action: Action, is_creator: bool = False) -> None:
    if not can(role, action, is_creator=is_creator):
        raise AuthorizationError(
            DENIED_MESSAGES.get(action, "You don't have permission to perform this action"),
            details={"action": action.value, "role": role.value},
        )
