from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
    requestId: Optional[str] = None


class Health(BaseModel):
    status: str = "ok"


class Version(BaseModel):
    version: str = "1.0.0"


# === Intent payloads ===


class IntentPayload(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def blank_is_none(cls, value: Any) -> Any:
        # form posts send "" for an untouched optional field
        if isinstance(value, str) and value == "":
            return None
        return value


class Positioned(IntentPayload):
    order: Optional[float] = Field(default=None, allow_inf_nan=False)
    prevId: Optional[str] = None
    nextId: Optional[str] = None


class RequiresPosition(Positioned):
    @model_validator(mode="after")
    def order_or_neighbours(self) -> RequiresPosition:
        if self.order is None and not (self.prevId or self.nextId):
            raise ValueError("order or prevId/nextId is required")
        return self


class CreateBoard(IntentPayload):
    name: str = Field(min_length=1, max_length=255)
    color: str = Field(default="#e0e0e0", pattern=COLOR_PATTERN)


class UpdateBoard(IntentPayload):
    boardId: str = Field(min_length=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class DeleteBoard(IntentPayload):
    boardId: str = Field(min_length=1)


class CreateColumn(IntentPayload):
    boardId: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=255)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class UpdateColumn(IntentPayload):
    columnId: str = Field(min_length=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    isExpanded: Optional[bool] = None
    shortcut: Optional[str] = Field(default=None, min_length=1, max_length=1)


class MoveColumn(RequiresPosition):
    columnId: str = Field(min_length=1)


class DeleteColumn(IntentPayload):
    columnId: str = Field(min_length=1)
    boardId: str = Field(min_length=1)


class CreateItem(Positioned):
    columnId: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)
    content: Optional[str] = None


class UpdateItem(Positioned):
    id: str = Field(min_length=1)
    columnId: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)
    content: Optional[str] = None


class MoveItem(RequiresPosition):
    id: str = Field(min_length=1)
    columnId: str = Field(min_length=1)


class DeleteCard(IntentPayload):
    itemId: str = Field(min_length=1)


class CreateComment(IntentPayload):
    itemId: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=10000)


class UpdateComment(IntentPayload):
    commentId: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=10000)


class DeleteComment(IntentPayload):
    commentId: str = Field(min_length=1)


class InviteUser(IntentPayload):
    boardId: str = Field(min_length=1)
    email: str = Field(max_length=320, pattern=EMAIL_PATTERN)
    role: Literal["editor", "admin"] = "editor"


class InvitationAction(IntentPayload):
    invitationId: str = Field(min_length=1)


class RemoveMember(IntentPayload):
    boardId: str = Field(min_length=1)
    memberAccountId: str = Field(min_length=1)


class UpdateItemAssignee(IntentPayload):
    itemId: str = Field(min_length=1)
    assigneeId: Optional[str] = None


class CreateVirtualAssignee(IntentPayload):
    boardId: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=255)


class AccountIn(BaseModel):
    email: str = Field(max_length=320, pattern=EMAIL_PATTERN)
    firstName: Optional[str] = Field(default=None, max_length=128)
    lastName: Optional[str] = Field(default=None, max_length=128)


# === Responses ===


class AccountOut(BaseModel):
    id: str
    email: str
    firstName: Optional[str]
    lastName: Optional[str]


class BoardOut(BaseModel):
    id: str
    name: str
    color: str
    owner: str
    createdAt: datetime
    updatedAt: datetime
    myRole: str


class ColumnOut(BaseModel):
    id: str
    boardId: str
    name: str
    color: str
    order: float
    isDefault: bool
    isExpanded: bool
    shortcut: Optional[str]
    createdAt: datetime


class ItemOut(BaseModel):
    id: str
    boardId: str
    columnId: str
    title: str
    content: Optional[str]
    order: float
    createdBy: Optional[str]
    assigneeId: Optional[str]
    lastActiveAt: datetime
    createdAt: datetime


class CommentOut(BaseModel):
    id: str
    itemId: str
    content: str
    createdBy: str
    createdAt: datetime


class ItemDetail(ItemOut):
    comments: list[CommentOut]


class MemberOut(BaseModel):
    boardId: str
    accountId: str
    role: str


class InvitationOut(BaseModel):
    id: str
    boardId: str
    email: str
    invitedBy: str
    role: str
    status: str
    createdAt: datetime


class AssigneeOut(BaseModel):
    id: str
    boardId: str
    name: str
    accountId: Optional[str]


class ActivityOut(BaseModel):
    id: str
    boardId: str
    type: str
    content: Optional[str]
    itemId: Optional[str]
    userId: Optional[str]
    createdAt: datetime


class ActivityPage(BaseModel):
    activities: list[ActivityOut]
    totalCount: int


class BoardView(BaseModel):
    board: BoardOut
    columns: list[ColumnOut]
    items: list[ItemOut]
    members: list[MemberOut]
    assignees: list[AssigneeOut]
    invitations: list[InvitationOut]


class IntentResult(BaseModel):
    intent: str
    result: Optional[dict[str, Any]] = None
