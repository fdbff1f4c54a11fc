from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from . import invitations
from .db import Activity, Assignee, Board, BoardInvitation, BoardMember, ColumnModel, Item
from .errors import NotFoundError
from .ordering import in_order
from .permissions import Role, role_of
from .storage import Repository
from .utils import now_utc


@dataclass
class BoardSnapshot:
    board: Board
    role: Role
    columns: list[ColumnModel]
    items: list[Item]
    members: list[BoardMember]
    assignees: list[Assignee]
    invitations: list[BoardInvitation] = field(default_factory=list)


class BoardQueries:
    """Access-checked reads. Invisible boards look exactly like missing ones."""

    def __init__(self, repo: Repository, clock: Callable[[], datetime] = now_utc) -> None:
        self.repo = repo
        self.clock = clock

    def _visible(self, board_id: str, account_id: str) -> tuple[Board, Role]:
        board = self.repo.get_board(board_id)
        if board is None:
            raise NotFoundError("Board not found")
        role = role_of(board, account_id, self.repo.members(board.id))
        if role is Role.NONE:
            raise NotFoundError("Board not found")
        return board, role

    def list_boards(self, account_id: str) -> list[tuple[Board, Role]]:
        return [
            (board, role_of(board, account_id, self.repo.members(board.id)))
            for board in self.repo.boards_for_account(account_id)
        ]

    def board_view(self, board_id: str, account_id: str) -> BoardSnapshot:
        board, role = self._visible(board_id, account_id)
        return BoardSnapshot(
            board=board,
            role=role,
            columns=in_order(self.repo.columns(board.id)),
            items=in_order(self.repo.items(board.id)),
            members=self.repo.members(board.id),
            assignees=self.repo.assignees(board.id),
            invitations=self.pending_invitations_for_board(board.id),
        )

    def item_detail(self, item_id: str, account_id: str) -> Item:
        item = self.repo.get_item(item_id)
        if item is None:
            raise NotFoundError("Item not found")
        try:
            self._visible(item.board_id, account_id)
        except NotFoundError:
            raise NotFoundError("Item not found") from None
        return item

    def activity_feed(
        self,
        account_id: str,
        board_id: Optional[str] = None,
        type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Activity], int]:
        """Newest-first activity across every board the account can see."""
        if board_id is not None:
            self._visible(board_id, account_id)
            board_ids = [board_id]
        else:
            board_ids = [b.id for b in self.repo.boards_for_account(account_id)]
        if not board_ids:
            return [], 0
        return self.repo.activities(board_ids, type=type, limit=limit, offset=offset)

    def pending_invitations_for_email(self, email: str) -> list[BoardInvitation]:
        return self.repo.pending_invitations(invitations.live_since(self.clock()), email=email)

    def pending_invitations_for_board(self, board_id: str) -> list[BoardInvitation]:
        return self.repo.pending_invitations(invitations.live_since(self.clock()), board_id=board_id)

    def pending_invitations_for_account(self, account_id: str) -> list[BoardInvitation]:
        account = self.repo.get_account(account_id)
        if account is None:
            return []
        return self.pending_invitations_for_email(account.email)
