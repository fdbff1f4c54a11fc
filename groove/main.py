import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .auth import get_current_account
from .coordinator import MutationCoordinator
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
    get_db,
    init_db,
)
from .errors import GrooveError
from .intents import dispatch
from .invitations import effective_status
from .permissions import Role
from .queries import BoardQueries
from .schemas import (
    AccountIn,
    AccountOut,
    ActivityOut,
    ActivityPage,
    AssigneeOut,
    BoardOut,
    BoardView,
    ColumnOut,
    CommentOut,
    CreateBoard,
    ErrorEnvelope,
    Health,
    IntentResult,
    InvitationOut,
    ItemDetail,
    ItemOut,
    MemberOut,
    Version,
)
from .storage import Repository
from .utils import now_utc

VERSION = "1.0.0"

logging.basicConfig(level=os.getenv("GROOVE_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database initialized")
    yield


app = FastAPI(title="Groove Board API", version=VERSION, lifespan=lifespan)


def get_coordinator(db: Session = Depends(get_db)) -> MutationCoordinator:
    return MutationCoordinator(Repository(db))


def get_queries(db: Session = Depends(get_db)) -> BoardQueries:
    return BoardQueries(Repository(db))


@app.exception_handler(GrooveError)
async def groove_error_handler(request: Request, exc: GrooveError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} refused: {exc.code} ({exc.message})")
    envelope = ErrorEnvelope(
        code=exc.code,
        message=exc.message,
        details=exc.details or None,
        requestId=str(uuid.uuid4()),
    )
    return JSONResponse(status_code=exc.status_code, content={"error": envelope.model_dump()})


# === Helpers ===


def account_out(account: Account) -> AccountOut:
    return AccountOut(
        id=account.id,
        email=account.email,
        firstName=account.first_name,
        lastName=account.last_name,
    )


def board_out(board: Board, role: Role) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        color=board.color,
        owner=board.owner_id,
        createdAt=board.created_at,
        updatedAt=board.updated_at,
        myRole=role.value,
    )


def column_out(column: ColumnModel) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        boardId=column.board_id,
        name=column.name,
        color=column.color,
        order=column.order,
        isDefault=column.is_default,
        isExpanded=column.is_expanded,
        shortcut=column.shortcut,
        createdAt=column.created_at,
    )


def item_out(item: Item) -> ItemOut:
    return ItemOut(
        id=item.id,
        boardId=item.board_id,
        columnId=item.column_id,
        title=item.title,
        content=item.content,
        order=item.order,
        createdBy=item.created_by,
        assigneeId=item.assignee_id,
        lastActiveAt=item.last_active_at,
        createdAt=item.created_at,
    )


def comment_out(comment: Comment) -> CommentOut:
    return CommentOut(
        id=comment.id,
        itemId=comment.item_id,
        content=comment.content,
        createdBy=comment.created_by,
        createdAt=comment.created_at,
    )


def member_out(member: BoardMember) -> MemberOut:
    return MemberOut(boardId=member.board_id, accountId=member.account_id, role=member.role)


def invitation_out(invitation: BoardInvitation) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        boardId=invitation.board_id,
        email=invitation.email,
        invitedBy=invitation.invited_by,
        role=invitation.role,
        status=effective_status(invitation, now_utc()).value,
        createdAt=invitation.created_at,
    )


def assignee_out(assignee: Assignee) -> AssigneeOut:
    return AssigneeOut(
        id=assignee.id,
        boardId=assignee.board_id,
        name=assignee.name,
        accountId=assignee.account_id,
    )


def activity_out(activity: Activity) -> ActivityOut:
    return ActivityOut(
        id=activity.id,
        boardId=activity.board_id,
        type=activity.type,
        content=activity.content,
        itemId=activity.item_id,
        userId=activity.user_id,
        createdAt=activity.created_at,
    )


def result_out(entity: Any) -> Optional[dict]:
    if entity is None:
        return None
    if isinstance(entity, Board):
        return board_out(entity, Role.OWNER).model_dump(mode="json")
    converters = {
        ColumnModel: column_out,
        Item: item_out,
        Comment: comment_out,
        BoardMember: member_out,
        BoardInvitation: invitation_out,
        Assignee: assignee_out,
    }
    return converters[type(entity)](entity).model_dump(mode="json")


# === Health & metadata ===


@app.get("/v1/health", response_model=Health)
def health() -> Health:
    return Health()


@app.get("/v1/version", response_model=Version)
def version() -> Version:
    return Version(version=VERSION)


# === Accounts ===


@app.post("/v1/accounts", response_model=AccountOut, status_code=201)
def register_account(payload: AccountIn, coordinator: MutationCoordinator = Depends(get_coordinator)):
    account = coordinator.register_account(payload.email, payload.firstName, payload.lastName)
    return account_out(account)


# === Boards ===


@app.get("/v1/boards", response_model=list[BoardOut])
def list_boards(account: str = Depends(get_current_account), queries: BoardQueries = Depends(get_queries)):
    return [board_out(board, role) for board, role in queries.list_boards(account)]


@app.post("/v1/boards", response_model=BoardOut, status_code=201)
def create_board(
    payload: CreateBoard,
    account: str = Depends(get_current_account),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    board = coordinator.create_board(account, payload.name, payload.color)
    return board_out(board, Role.OWNER)


@app.get("/v1/boards/{board_id}", response_model=BoardView)
def get_board(
    board_id: str,
    account: str = Depends(get_current_account),
    queries: BoardQueries = Depends(get_queries),
):
    view = queries.board_view(board_id, account)
    return BoardView(
        board=board_out(view.board, view.role),
        columns=[column_out(c) for c in view.columns],
        items=[item_out(i) for i in view.items],
        members=[member_out(m) for m in view.members],
        assignees=[assignee_out(a) for a in view.assignees],
        invitations=[invitation_out(i) for i in view.invitations],
    )


@app.delete("/v1/boards/{board_id}", status_code=204)
def delete_board(
    board_id: str,
    account: str = Depends(get_current_account),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    coordinator.delete_board(board_id, account)
    return Response(status_code=204)


@app.get("/v1/boards/{board_id}/activity", response_model=ActivityPage)
def board_activity(
    board_id: str,
    type: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    account: str = Depends(get_current_account),
    queries: BoardQueries = Depends(get_queries),
):
    activities, total = queries.activity_feed(account, board_id=board_id, type=type, limit=limit, offset=offset)
    return ActivityPage(activities=[activity_out(a) for a in activities], totalCount=total)


@app.get("/v1/activity", response_model=ActivityPage)
def activity_feed(
    type: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    account: str = Depends(get_current_account),
    queries: BoardQueries = Depends(get_queries),
):
    activities, total = queries.activity_feed(account, type=type, limit=limit, offset=offset)
    return ActivityPage(activities=[activity_out(a) for a in activities], totalCount=total)


# === Cards & invitations ===


@app.get("/v1/items/{item_id}", response_model=ItemDetail)
def get_item(
    item_id: str,
    account: str = Depends(get_current_account),
    queries: BoardQueries = Depends(get_queries),
):
    item = queries.item_detail(item_id, account)
    return ItemDetail(**item_out(item).model_dump(), comments=[comment_out(c) for c in item.comments])


@app.get("/v1/invitations", response_model=list[InvitationOut])
def my_invitations(account: str = Depends(get_current_account), queries: BoardQueries = Depends(get_queries)):
    return [invitation_out(i) for i in queries.pending_invitations_for_account(account)]


# === Intents ===


@app.post("/v1/intents", response_model=IntentResult)
def run_intent(
    body: dict[str, Any] = Body(...),
    account: str = Depends(get_current_account),
    coordinator: MutationCoordinator = Depends(get_coordinator),
):
    name = str(body.get("intent") or "")
    intent, entity = dispatch(coordinator, account, name, body)
    return IntentResult(intent=intent.name, result=result_out(entity))


def run() -> None:
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host=host, port=port, log_level=os.getenv("GROOVE_LOG_LEVEL", "INFO").lower())


if __name__ == "__main__":
    run()
