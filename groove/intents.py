"""The closed set of named commands a client may send.

Each intent name maps to a payload schema and the coordinator operation that
carries it out. Payloads are validated before anything is looked up, so a
malformed request never reaches authorization or storage.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

import pydantic

from . import schemas
from .coordinator import UNSET, MutationCoordinator
from .errors import ValidationError

Handler = Callable[[MutationCoordinator, str, Any], Any]


@dataclass(frozen=True)
class Intent:
    name: str
    payload: type[pydantic.BaseModel]
    handler: Handler


def _update_column(c: MutationCoordinator, account_id: str, p: schemas.UpdateColumn):
    return c.update_column(
        p.columnId,
        account_id,
        name=p.name,
        color=p.color,
        is_expanded=p.isExpanded,
        shortcut=p.shortcut if "shortcut" in p.model_fields_set else UNSET,
    )


def _update_item(c: MutationCoordinator, account_id: str, p: schemas.UpdateItem):
    return c.upsert_item(
        account_id,
        p.columnId,
        p.title,
        order=p.order,
        content=p.content if "content" in p.model_fields_set else UNSET,
        item_id=p.id,
        prev_id=p.prevId,
        next_id=p.nextId,
    )


INTENTS: dict[str, Intent] = {
    intent.name: intent
    for intent in (
        Intent(
            "createBoard",
            schemas.CreateBoard,
            lambda c, a, p: c.create_board(a, p.name, p.color),
        ),
        Intent(
            "updateBoard",
            schemas.UpdateBoard,
            lambda c, a, p: c.update_board(p.boardId, a, name=p.name, color=p.color),
        ),
        Intent("deleteBoard", schemas.DeleteBoard, lambda c, a, p: c.delete_board(p.boardId, a)),
        Intent(
            "createColumn",
            schemas.CreateColumn,
            lambda c, a, p: c.create_column(p.boardId, a, p.name, color=p.color),
        ),
        Intent("updateColumn", schemas.UpdateColumn, _update_column),
        Intent(
            "moveColumn",
            schemas.MoveColumn,
            lambda c, a, p: c.move_column(p.columnId, a, order=p.order, prev_id=p.prevId, next_id=p.nextId),
        ),
        Intent(
            "deleteColumn",
            schemas.DeleteColumn,
            lambda c, a, p: c.delete_column(p.columnId, a, board_id=p.boardId),
        ),
        Intent(
            "createItem",
            schemas.CreateItem,
            lambda c, a, p: c.upsert_item(
                a, p.columnId, p.title, order=p.order, content=p.content, prev_id=p.prevId, next_id=p.nextId
            ),
        ),
        Intent("updateItem", schemas.UpdateItem, _update_item),
        Intent(
            "moveItem",
            schemas.MoveItem,
            lambda c, a, p: c.move_item(p.id, a, p.columnId, order=p.order, prev_id=p.prevId, next_id=p.nextId),
        ),
        Intent("deleteCard", schemas.DeleteCard, lambda c, a, p: c.delete_card(p.itemId, a)),
        Intent(
            "createComment",
            schemas.CreateComment,
            lambda c, a, p: c.create_comment(p.itemId, a, p.content),
        ),
        Intent(
            "updateComment",
            schemas.UpdateComment,
            lambda c, a, p: c.update_comment(p.commentId, a, p.content),
        ),
        Intent("deleteComment", schemas.DeleteComment, lambda c, a, p: c.delete_comment(p.commentId, a)),
        Intent(
            "inviteUser",
            schemas.InviteUser,
            lambda c, a, p: c.invite_user(p.boardId, a, p.email, role=p.role),
        ),
        Intent(
            "acceptInvitation",
            schemas.InvitationAction,
            lambda c, a, p: c.accept_invitation(p.invitationId, a),
        ),
        Intent(
            "declineInvitation",
            schemas.InvitationAction,
            lambda c, a, p: c.decline_invitation(p.invitationId, a),
        ),
        Intent(
            "removeMember",
            schemas.RemoveMember,
            lambda c, a, p: c.remove_member(p.boardId, a, p.memberAccountId),
        ),
        Intent(
            "updateItemAssignee",
            schemas.UpdateItemAssignee,
            lambda c, a, p: c.update_item_assignee(p.itemId, a, p.assigneeId),
        ),
        Intent(
            "createVirtualAssignee",
            schemas.CreateVirtualAssignee,
            lambda c, a, p: c.create_virtual_assignee(p.boardId, a, p.name),
        ),
    )
}

# older clients post column creation as "newColumn"
ALIASES = {"newColumn": "createColumn"}


def parse(name: str, payload: Mapping[str, Any]) -> tuple[Intent, pydantic.BaseModel]:
    intent = INTENTS.get(ALIASES.get(name, name))
    if intent is None:
        raise ValidationError(f"Unknown intent {name!r}", code="unknown_intent")
    try:
        data = intent.payload.model_validate(dict(payload))
    except pydantic.ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(messages, details={"intent": intent.name}) from None
    return intent, data


def dispatch(
    coordinator: MutationCoordinator,
    account_id: str,
    name: str,
    payload: Mapping[str, Any],
) -> tuple[Intent, Any]:
    """Validate ``payload`` for intent ``name`` and run it as ``account_id``."""
    intent, data = parse(name, payload)
    return intent, intent.handler(coordinator, account_id, data)
