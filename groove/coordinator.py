"""Mutations on boards, columns, cards, comments and memberships.

Every operation has the same shape: check the arguments, load the target and
its board, resolve the caller's role, check the capability, change the rows,
append one activity entry, and commit. All of that happens inside a single
:meth:`Repository.transaction`, so a failure anywhere leaves storage as it
was. Nothing is retried.
"""
from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Sequence

from . import assignees, invitations
from .db import (
    Account,
    Activity,
    Assignee,
    Board,
    BoardInvitation,
    BoardMember,
    ColumnModel,
    Comment,
    Item,
)
from .errors import DomainError, GrooveError, NotFoundError, ValidationError
from .invitations import InvitationStatus
from .ordering import compute_order, in_order, order_between, renumber
from .permissions import Action, Role, require, role_of
from .storage import Repository
from .utils import as_utc, new_id, now_utc

logger = logging.getLogger(__name__)

COMMENT_EDIT_WINDOW = timedelta(minutes=15)
INVITABLE_ROLES = (Role.EDITOR.value, Role.ADMIN.value)

DEFAULT_COLUMNS = (
    {"name": "Not Now", "order": 1.0, "color": "#cbd5e1", "is_default": False, "is_expanded": True},
    {"name": "May be?", "order": 2.0, "color": "#ec4899", "is_default": True, "is_expanded": True, "shortcut": "c"},
    {"name": "Done", "order": 3.0, "color": "#06b6d4", "is_default": False, "is_expanded": False},
)


class ActivityType(str, enum.Enum):
    BOARD_CREATED = "board_created"
    BOARD_UPDATED = "board_updated"
    COLUMN_CREATED = "column_created"
    COLUMN_UPDATED = "column_updated"
    COLUMN_MOVED = "column_moved"
    COLUMN_DELETED = "column_deleted"
    CARD_CREATED = "card_created"
    CARD_UPDATED = "card_updated"
    CARD_MOVED = "card_moved"
    CARD_DELETED = "card_deleted"
    CARD_ASSIGNED = "card_assigned"
    COMMENT_ADDED = "comment_added"
    COMMENT_UPDATED = "comment_updated"
    COMMENT_DELETED = "comment_deleted"
    MEMBER_INVITED = "member_invited"
    MEMBER_JOINED = "member_joined"
    MEMBER_REMOVED = "member_removed"
    ASSIGNEE_CREATED = "assignee_created"


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def _text(value: Optional[str], field: str, max_length: int = 255) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} is too long", details={"field": field})
    return value


def _excerpt(content: str, limit: int = 50) -> str:
    return content if len(content) <= limit else content[: limit - 3] + "..."


class MutationCoordinator:
    def __init__(self, repo: Repository, clock: Callable[[], datetime] = now_utc) -> None:
        self.repo = repo
        self.clock = clock

    # === Helpers ===

    def _board_for(self, board_id: str, account_id: str) -> tuple[Board, Role]:
        board = self.repo.get_board(board_id)
        if board is None:
            raise NotFoundError("Board not found")
        role = role_of(board, account_id, self.repo.members(board.id))
        if role is Role.NONE:
            # hide the board's existence from outsiders
            raise NotFoundError("Board not found")
        return board, role

    def _column_for(self, column_id: str, account_id: str) -> tuple[ColumnModel, Board, Role]:
        column = self.repo.get_column(column_id)
        if column is None:
            raise NotFoundError("Column not found")
        try:
            board, role = self._board_for(column.board_id, account_id)
        except NotFoundError:
            raise NotFoundError("Column not found") from None
        return column, board, role

    def _item_for(self, item_id: str, account_id: str) -> tuple[Item, Board, Role]:
        item = self.repo.get_item(item_id)
        if item is None:
            raise NotFoundError("Item not found or access denied")
        try:
            board, role = self._board_for(item.board_id, account_id)
        except NotFoundError:
            raise NotFoundError("Item not found or access denied") from None
        return item, board, role

    def _comment_for(self, comment_id: str, account_id: str) -> tuple[Comment, Item]:
        comment = self.repo.get_comment(comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        try:
            item, _, _ = self._item_for(comment.item_id, account_id)
        except NotFoundError:
            raise NotFoundError("Comment not found") from None
        return comment, item

    def _target_column(self, board: Board, column_id: str) -> ColumnModel:
        column = self.repo.get_column(column_id)
        if column is None or column.board_id != board.id:
            raise NotFoundError("Column not found")
        return column

    def _position(
        self,
        siblings: Sequence[Any],
        order: Optional[float],
        prev_id: Optional[str],
        next_id: Optional[str],
    ) -> Optional[float]:
        if order is not None:
            return order
        if prev_id or next_id:
            try:
                return order_between(siblings, prev_id, next_id)
            except KeyError as exc:
                raise NotFoundError(f"Neighbour {exc.args[0]} not found") from None
        return None

    def _log(
        self,
        board_id: str,
        type: ActivityType,
        account_id: Optional[str],
        content: Optional[str] = None,
        item_id: Optional[str] = None,
    ) -> Activity:
        activity = Activity(
            id=new_id(),
            board_id=board_id,
            type=type.value,
            content=content,
            item_id=item_id,
            user_id=account_id,
            created_at=self.clock(),
        )
        return self.repo.add(activity)

    # === Accounts ===

    def register_account(
        self,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Account:
        """Create an account and accept every live invitation sent to its email."""
        email = _text(email, "email", max_length=320)
        with self.repo.transaction():
            if self.repo.account_by_email(email) is not None:
                raise DomainError("An account with this email already exists", code="email_taken")
            account = self.repo.add(
                Account(
                    id=new_id(),
                    email=email,
                    first_name=first_name.strip() if first_name else None,
                    last_name=last_name.strip() if last_name else None,
                    created_at=self.clock(),
                )
            )
        logger.info(f"Registered account {account.id}")

        since = invitations.live_since(self.clock())
        for invitation in self.repo.pending_invitations(since, email=email):
            try:
                self.accept_invitation(invitation.id, account.id)
            except GrooveError as exc:
                logger.warning(f"Skipped invitation {invitation.id} for account {account.id}: {exc.message}")
        return account

    # === Boards ===

    def create_board(self, account_id: str, name: str, color: str = "#e0e0e0") -> Board:
        name = _text(name, "name")
        with self.repo.transaction():
            account = self.repo.get_account(account_id)
            if account is None:
                raise NotFoundError("Account not found")
            now = self.clock()
            board = self.repo.add(
                Board(id=new_id(), name=name, color=color, owner_id=account_id, created_at=now)
            )
            self.repo.add(BoardMember(board_id=board.id, account_id=account_id, role=Role.OWNER.value))
            for preset in DEFAULT_COLUMNS:
                self.repo.add(ColumnModel(id=new_id(), board_id=board.id, created_at=now, **preset))
            assignees.ensure_for_account(self.repo, board.id, account)
            self._log(board.id, ActivityType.BOARD_CREATED, account_id, f'Created board "{name}"')
        logger.info(f"Created board {board.id} for account {account_id}")
        return board

    def update_board(
        self,
        board_id: str,
        account_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Board:
        if name is not None:
            name = _text(name, "name")
        with self.repo.transaction():
            board, role = self._board_for(board_id, account_id)
            require(role, Action.UPDATE_BOARD)
            if name is not None:
                board.name = name
            if color is not None:
                board.color = color
            if name and color:
                content = f'Updated name to "{name}" and color'
            elif name:
                content = f'Updated name to "{name}"'
            elif color:
                content = "Updated color"
            else:
                content = "Updated settings"
            self._log(board.id, ActivityType.BOARD_UPDATED, account_id, content)
        logger.info(f"Updated board {board.id} by account {account_id}")
        return board

    def delete_board(self, board_id: str, account_id: str) -> None:
        # the activity trail goes with the board, so nothing is logged here
        with self.repo.transaction():
            board, role = self._board_for(board_id, account_id)
            require(role, Action.DELETE_BOARD)
            self.repo.delete(board)
        logger.info(f"Deleted board {board_id}")

    # === Columns ===

    def create_column(
        self,
        board_id: str,
        account_id: str,
        name: str,
        color: Optional[str] = None,
    ) -> ColumnModel:
        name = _text(name, "name")
        with self.repo.transaction():
            board, role = self._board_for(board_id, account_id)
            require(role, Action.CREATE_COLUMN)
            column = ColumnModel(
                id=new_id(),
                board_id=board.id,
                name=name,
                order=float(self.repo.count_columns(board.id) + 1),
                is_expanded=True,
                created_at=self.clock(),
            )
            if color:
                column.color = color
            self.repo.add(column)
            self._log(board.id, ActivityType.COLUMN_CREATED, account_id, f'Created column "{name}"')
        logger.info(f"Created column {column.id} on board {board_id}")
        return column

    def update_column(
        self,
        column_id: str,
        account_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        is_expanded: Optional[bool] = None,
        shortcut: Optional[str] = UNSET,
    ) -> ColumnModel:
        """Partial update; every requested field is checked before any is applied."""
        if name is not None:
            name = _text(name, "name")
        if shortcut is not UNSET and shortcut is not None and len(shortcut) != 1:
            raise ValidationError("Shortcut must be a single character", details={"field": "shortcut"})
        with self.repo.transaction():
            column, board, role = self._column_for(column_id, account_id)
            if name is not None:
                require(role, Action.UPDATE_COLUMN_NAME)
            if color is not None:
                require(role, Action.UPDATE_COLUMN_COLOR)
            if is_expanded is not None:
                require(role, Action.UPDATE_COLUMN_EXPANDED)
            if shortcut is not UNSET:
                require(role, Action.UPDATE_COLUMN_SHORTCUT)

            old_name = column.name
            if name is not None:
                column.name = name
            if color is not None:
                column.color = color
            if is_expanded is not None:
                column.is_expanded = is_expanded
            if shortcut is not UNSET:
                column.shortcut = shortcut

            if name or color:
                content = f'Renamed "{old_name}" to "{name}"' if name else f'Updated color for "{old_name}"'
                self._log(board.id, ActivityType.COLUMN_UPDATED, account_id, content)
        logger.info(f"Updated column {column.id} on board {board.id} by account {account_id}")
        return column

    def move_column(
        self,
        column_id: str,
        account_id: str,
        order: Optional[float] = None,
        prev_id: Optional[str] = None,
        next_id: Optional[str] = None,
    ) -> ColumnModel:
        with self.repo.transaction():
            column, board, role = self._column_for(column_id, account_id)
            require(role, Action.MOVE_COLUMN)
            siblings = [c for c in self.repo.columns(board.id) if c.id != column.id]
            position = self._position(siblings, order, prev_id, next_id)
            if position is None:
                raise ValidationError("An order or a neighbouring column is required")
            column.order = position
            self._log(board.id, ActivityType.COLUMN_MOVED, account_id, f'Moved column "{column.name}"')
        logger.info(f"Moved column {column.id} to {column.order} on board {board.id}")
        return column

    def delete_column(self, column_id: str, account_id: str, board_id: Optional[str] = None) -> ColumnModel:
        """Delete a column after moving its cards to the board's default column."""
        with self.repo.transaction():
            column, board, role = self._column_for(column_id, account_id)
            if board_id is not None and board_id != board.id:
                raise NotFoundError("Column not found")
            require(role, Action.DELETE_COLUMN)
            if column.is_default:
                raise DomainError("Cannot delete default column", code="default_column")
            fallback = self.repo.default_column(board.id)
            if fallback is None:
                raise DomainError("Default column not found", code="default_column_missing")

            now = self.clock()
            moved = self.repo.items_in_column(column.id)
            for item in moved:
                item.column_id = fallback.id
                item.last_active_at = now
            self.repo.session.flush()
            self.repo.delete(column)
            self._log(board.id, ActivityType.COLUMN_DELETED, account_id, f'Deleted column "{column.name}"')
        logger.info(f"Deleted column {column_id}, moved {len(moved)} card(s) to {fallback.id}")
        return column

    def renumber_columns(self, board_id: str, account_id: str) -> list[ColumnModel]:
        with self.repo.transaction():
            board, role = self._board_for(board_id, account_id)
            require(role, Action.MOVE_COLUMN)
            for column, position in renumber(self.repo.columns(board.id)):
                column.order = position
            columns = in_order(self.repo.columns(board.id))
        logger.info(f"Renumbered {len(columns)} column(s) on board {board_id}")
        return columns

    def renumber_column(self, column_id: str, account_id: str) -> list[Item]:
        with self.repo.transaction():
            column, _, role = self._column_for(column_id, account_id)
            require(role, Action.MOVE_ITEM)
            for item, position in renumber(self.repo.items_in_column(column.id)):
                item.order = position
            items = in_order(self.repo.items_in_column(column.id))
        logger.info(f"Renumbered {len(items)} card(s) in column {column_id}")
        return items

    # === Cards ===

    def upsert_item(
        self,
        account_id: str,
        column_id: str,
        title: str,
        order: Optional[float] = None,
        content: Optional[str] = UNSET,
        item_id: Optional[str] = None,
        prev_id: Optional[str] = None,
        next_id: Optional[str] = None,
    ) -> Item:
        """Create a card when ``item_id`` is None, otherwise update an existing one.

        Updates only write an activity entry when the title or content changed.
        """
        title = _text(title, "title")
        with self.repo.transaction():
            now = self.clock()
            if item_id is None:
                column, board, role = self._column_for(column_id, account_id)
                require(role, Action.CREATE_ITEM)
                siblings = in_order(self.repo.items_in_column(column.id))
                position = self._position(siblings, order, prev_id, next_id)
                if position is None:
                    position = compute_order(siblings[-1].order if siblings else None, None)
                item = self.repo.add(
                    Item(
                        id=new_id(),
                        board_id=board.id,
                        column_id=column.id,
                        title=title,
                        content=None if content is UNSET else content,
                        order=position,
                        created_by=account_id,
                        last_active_at=now,
                        created_at=now,
                    )
                )
                self._log(board.id, ActivityType.CARD_CREATED, account_id, f'Created card "{title}"', item.id)
                logger.info(f"Created card {item.id} in column {column.id}")
                return item

            item, board, role = self._item_for(item_id, account_id)
            require(role, Action.UPDATE_ITEM)
            column = self._target_column(board, column_id)
            old_title, old_content = item.title, item.content
            siblings = [i for i in self.repo.items_in_column(column.id) if i.id != item.id]
            position = self._position(siblings, order, prev_id, next_id)

            item.title = title
            if content is not UNSET:
                item.content = content
            item.column_id = column.id
            if position is not None:
                item.order = position
            item.last_active_at = now

            title_changed = old_title != item.title
            content_changed = old_content != item.content
            if title_changed and content_changed:
                summary = "Updated title and content"
            elif title_changed:
                summary = f'Renamed to "{item.title}"'
            elif content_changed:
                summary = "Updated content"
            else:
                summary = None
            if summary:
                self._log(board.id, ActivityType.CARD_UPDATED, account_id, summary, item.id)
        logger.info(f"Updated card {item.id} on board {board.id} by account {account_id}")
        return item

    def move_item(
        self,
        item_id: str,
        account_id: str,
        column_id: str,
        order: Optional[float] = None,
        prev_id: Optional[str] = None,
        next_id: Optional[str] = None,
    ) -> Item:
        """Reposition a card; only a change of column is logged."""
        with self.repo.transaction():
            item, board, role = self._item_for(item_id, account_id)
            require(role, Action.MOVE_ITEM)
            target = self._target_column(board, column_id)
            siblings = [i for i in self.repo.items_in_column(target.id) if i.id != item.id]
            position = self._position(siblings, order, prev_id, next_id)
            if position is None:
                raise ValidationError("An order or a neighbouring card is required")

            source = self.repo.get_column(item.column_id)
            changed_column = item.column_id != target.id
            item.column_id = target.id
            item.order = position
            item.last_active_at = self.clock()
            if changed_column:
                content = f"from {source.name} to {target.name}" if source is not None else None
                self._log(board.id, ActivityType.CARD_MOVED, account_id, content, item.id)
        logger.info(f"Moved card {item.id} to column {target.id} at {item.order}")
        return item

    def delete_card(self, item_id: str, account_id: str) -> None:
        with self.repo.transaction():
            item, board, role = self._item_for(item_id, account_id)
            require(role, Action.DELETE_CARD, is_creator=item.created_by == account_id)
            title = item.title
            self.repo.delete(item)
            self._log(board.id, ActivityType.CARD_DELETED, account_id, f'Deleted card "{title}"')
        logger.info(f"Deleted card {item_id}")

    def update_item_assignee(
        self,
        item_id: str,
        account_id: str,
        assignee_id: Optional[str] = None,
    ) -> Item:
        with self.repo.transaction():
            item, board, role = self._item_for(item_id, account_id)
            require(role, Action.ASSIGN)
            assignee = None
            if assignee_id is not None:
                assignee = self.repo.get_assignee(assignee_id)
                if assignee is None or assignee.board_id != board.id:
                    raise NotFoundError("Assignee not found")
            item.assignee_id = assignee.id if assignee else None
            item.last_active_at = self.clock()
            content = f"Assigned to {assignee.name}" if assignee else "Removed assignee"
            self._log(board.id, ActivityType.CARD_ASSIGNED, account_id, content, item.id)
        logger.info(f"Set assignee of card {item.id} to {item.assignee_id}")
        return item

    def create_virtual_assignee(self, board_id: str, account_id: str, name: str) -> Assignee:
        """Get or create an assignee without a linked account, matching names case-insensitively."""
        name = _text(name, "name")
        with self.repo.transaction():
            board, role = self._board_for(board_id, account_id)
            require(role, Action.CREATE_ASSIGNEE)
            existing = self.repo.assignee_named(board.id, name)
            if existing is not None:
                return existing
            assignee = self.repo.add(Assignee(id=new_id(), board_id=board.id, name=name, created_at=self.clock()))
            self._log(board.id, ActivityType.ASSIGNEE_CREATED, account_id, f'Added assignee "{name}"')
        logger.info(f"Created assignee {assignee.id} on board {board.id}")
        return assignee

    # === Comments ===

    def create_comment(self, item_id: str, account_id: str, content: str) -> Comment:
        content = _text(content, "content", max_length=10000)
        with self.repo.transaction():
            item, board, role = self._item_for(item_id, account_id)
            require(role, Action.COMMENT)
            now = self.clock()
            comment = self.repo.add(
                Comment(id=new_id(), item_id=item.id, content=content, created_by=account_id, created_at=now)
            )
            item.last_active_at = now
            self._log(board.id, ActivityType.COMMENT_ADDED, account_id, _excerpt(content), item.id)
        logger.info(f"Added comment {comment.id} to card {item.id} by account {account_id}")
        return comment

    def _ensure_editable(self, comment: Comment, account_id: str, verb: str, participle: str) -> None:
        if comment.created_by != account_id:
            raise DomainError(f"You can only {verb} your own comments", code="comment_not_author")
        if self.clock() - as_utc(comment.created_at) > COMMENT_EDIT_WINDOW:
            raise DomainError(
                f"Comments can only be {participle} within 15 minutes of creation",
                code="comment_edit_window_closed",
            )

    def update_comment(self, comment_id: str, account_id: str, content: str) -> Comment:
        content = _text(content, "content", max_length=10000)
        with self.repo.transaction():
            comment, item = self._comment_for(comment_id, account_id)
            self._ensure_editable(comment, account_id, "edit", "edited")
            comment.content = content
            item.last_active_at = self.clock()
            self._log(
                item.board_id,
                ActivityType.COMMENT_UPDATED,
                account_id,
                f'Updated a comment on "{item.title}"',
                item.id,
            )
        logger.info(f"Updated comment {comment_id} by account {account_id}")
        return comment

    def delete_comment(self, comment_id: str, account_id: str) -> None:
        with self.repo.transaction():
            comment, item = self._comment_for(comment_id, account_id)
            self._ensure_editable(comment, account_id, "delete", "deleted")
            self.repo.delete(comment)
            item.last_active_at = self.clock()
            self._log(
                item.board_id,
                ActivityType.COMMENT_DELETED,
                account_id,
                f'Deleted a comment on "{item.title}"',
                item.id,
            )
        logger.info(f"Deleted comment {comment_id} by account {account_id}")

    # === Membership ===

    def invite_user(
        self,
        board_id: str,
        account_id: str,
        email: str,
        role: str = Role.EDITOR.value,
    ) -> BoardInvitation:
        """Create a pending invitation. Repeated invitations to one address are allowed."""
        email = _text(email, "email", max_length=320)
        if role not in INVITABLE_ROLES:
            raise ValidationError(f"Cannot invite with role {role!r}", details={"field": "role"})
        with self.repo.transaction():
            board, caller_role = self._board_for(board_id, account_id)
            require(caller_role, Action.MANAGE_MEMBERS)
            invitation = self.repo.add(
                BoardInvitation(
                    id=new_id(),
                    board_id=board.id,
                    email=email,
                    invited_by=account_id,
                    role=role,
                    status=InvitationStatus.PENDING.value,
                    created_at=self.clock(),
                )
            )
            self._log(board.id, ActivityType.MEMBER_INVITED, account_id, f"Invited {email} to join the board")
        logger.info(f"Invitation {invitation.id} for {email} on board {board.id} created; no mail is sent")
        return invitation

    def accept_invitation(self, invitation_id: str, account_id: str) -> BoardMember:
        with self.repo.transaction():
            invitation = self.repo.get_invitation(invitation_id)
            if invitation is None:
                raise NotFoundError("Invitation not found")
            account = self.repo.get_account(account_id)
            invitations.ensure_acceptable(invitation, account.email if account else None, self.clock())

            member = self.repo.member(invitation.board_id, account_id)
            joined = member is None
            if joined:
                member = self.repo.add(
                    BoardMember(
                        board_id=invitation.board_id,
                        account_id=account_id,
                        role=invitation.role,
                        created_at=self.clock(),
                    )
                )
            invitations.mark(invitation, InvitationStatus.ACCEPTED)
            assignees.ensure_for_account(self.repo, invitation.board_id, account)
            if joined:
                self._log(invitation.board_id, ActivityType.MEMBER_JOINED, account_id, "Joined the board")
        logger.info(f"Account {account_id} accepted invitation {invitation_id}")
        return member

    def decline_invitation(self, invitation_id: str, account_id: str) -> BoardInvitation:
        with self.repo.transaction():
            invitation = self.repo.get_invitation(invitation_id)
            if invitation is None:
                raise NotFoundError("Invitation not found")
            invitations.ensure_declinable(invitation, self.clock())
            invitations.mark(invitation, InvitationStatus.DECLINED)
        logger.info(f"Account {account_id} declined invitation {invitation_id}")
        return invitation

    def remove_member(self, board_id: str, account_id: str, member_account_id: str) -> None:
        with self.repo.transaction():
            board, role = self._board_for(board_id, account_id)
            require(role, Action.MANAGE_MEMBERS)
            if member_account_id == board.owner_id:
                raise DomainError("Cannot remove the board owner", code="owner_not_removable")
            member = self.repo.member(board.id, member_account_id)
            if member is None:
                raise NotFoundError("Member not found")
            account = self.repo.get_account(member_account_id)
            label = (account.first_name or account.email) if account else member_account_id
            self.repo.delete(member)
            self._log(board.id, ActivityType.MEMBER_REMOVED, account_id, f"Removed {label} from the board")
        logger.info(f"Removed account {member_account_id} from board {board_id}")
