from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

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

logger = logging.getLogger(__name__)


class Repository:
    """Storage handle for one unit of work.

    Wraps a single SQLAlchemy session. Everything done between entering and
    leaving :meth:`transaction` commits together or not at all.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def transaction(self) -> Iterator[Repository]:
        try:
            yield self
            self.session.commit()
        except Exception:
            logger.debug("Rolling back unit of work")
            self.session.rollback()
            raise

    def add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)
        self.session.flush()

    # === Accounts ===
    def get_account(self, account_id: str) -> Optional[Account]:
        return self.session.get(Account, account_id)

    def account_by_email(self, email: str) -> Optional[Account]:
        return self.session.scalars(select(Account).where(Account.email == email)).first()

    # === Boards ===
    def get_board(self, board_id: str) -> Optional[Board]:
        return self.session.get(Board, board_id)

    def boards_for_account(self, account_id: str) -> list[Board]:
        member_of = select(BoardMember.board_id).where(BoardMember.account_id == account_id)
        stmt = (
            select(Board)
            .where(or_(Board.owner_id == account_id, Board.id.in_(member_of)))
            .order_by(Board.created_at.desc())
        )
        return list(self.session.scalars(stmt))

    def member(self, board_id: str, account_id: str) -> Optional[BoardMember]:
        stmt = select(BoardMember).where(
            BoardMember.board_id == board_id, BoardMember.account_id == account_id
        )
        return self.session.scalars(stmt).first()

    def members(self, board_id: str) -> list[BoardMember]:
        stmt = select(BoardMember).where(BoardMember.board_id == board_id).order_by(BoardMember.id)
        return list(self.session.scalars(stmt))

    # === Columns ===
    def get_column(self, column_id: str) -> Optional[ColumnModel]:
        return self.session.get(ColumnModel, column_id)

    def columns(self, board_id: str) -> list[ColumnModel]:
        stmt = select(ColumnModel).where(ColumnModel.board_id == board_id)
        return list(self.session.scalars(stmt))

    def count_columns(self, board_id: str) -> int:
        stmt = select(func.count()).select_from(ColumnModel).where(ColumnModel.board_id == board_id)
        return self.session.scalar(stmt) or 0

    def default_column(self, board_id: str) -> Optional[ColumnModel]:
        stmt = select(ColumnModel).where(
            ColumnModel.board_id == board_id, ColumnModel.is_default.is_(True)
        )
        return self.session.scalars(stmt).first()

    # === Items & comments ===
    def get_item(self, item_id: str) -> Optional[Item]:
        return self.session.get(Item, item_id)

    def items(self, board_id: str) -> list[Item]:
        return list(self.session.scalars(select(Item).where(Item.board_id == board_id)))

    def items_in_column(self, column_id: str) -> list[Item]:
        return list(self.session.scalars(select(Item).where(Item.column_id == column_id)))

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        return self.session.get(Comment, comment_id)

    # === Assignees ===
    def get_assignee(self, assignee_id: str) -> Optional[Assignee]:
        return self.session.get(Assignee, assignee_id)

    def assignees(self, board_id: str) -> list[Assignee]:
        stmt = select(Assignee).where(Assignee.board_id == board_id).order_by(Assignee.name)
        return list(self.session.scalars(stmt))

    def assignee_for_account(self, board_id: str, account_id: str) -> Optional[Assignee]:
        stmt = select(Assignee).where(
            Assignee.board_id == board_id, Assignee.account_id == account_id
        )
        return self.session.scalars(stmt).first()

    def assignee_named(self, board_id: str, name: str) -> Optional[Assignee]:
        stmt = select(Assignee).where(
            Assignee.board_id == board_id, func.lower(Assignee.name) == name.lower()
        )
        return self.session.scalars(stmt).first()

    # === Invitations ===
    def get_invitation(self, invitation_id: str) -> Optional[BoardInvitation]:
        return self.session.get(BoardInvitation, invitation_id)

    def pending_invitations(
        self,
        since: datetime,
        email: Optional[str] = None,
        board_id: Optional[str] = None,
    ) -> list[BoardInvitation]:
        stmt = select(BoardInvitation).where(
            BoardInvitation.status == "pending", BoardInvitation.created_at >= since
        )
        if email is not None:
            stmt = stmt.where(BoardInvitation.email == email)
        if board_id is not None:
            stmt = stmt.where(BoardInvitation.board_id == board_id)
        return list(self.session.scalars(stmt.order_by(BoardInvitation.created_at.desc())))

    # === Activity ===
    def activities(
        self,
        board_ids: list[str],
        type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Activity], int]:
        stmt = select(Activity).where(Activity.board_id.in_(board_ids))
        if type:
            stmt = stmt.where(Activity.type == type)
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        page = self.session.scalars(
            stmt.order_by(Activity.created_at.desc(), Activity.id).limit(limit).offset(offset)
        )
        return list(page), total
