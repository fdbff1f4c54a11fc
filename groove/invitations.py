"""Board invitation lifecycle.

``pending`` moves to ``accepted`` or ``declined`` exactly once. Expiry is not
stored: an invitation older than :data:`INVITATION_TTL` keeps ``status ==
"pending"`` forever but every reader treats it as expired, so list queries
filter on age as well as on status.
"""
from __future__ import annotations

import enum
from datetime import datetime, timedelta

from .db import BoardInvitation
from .errors import DomainError
from .utils import as_utc

INVITATION_TTL = timedelta(days=7)


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    # derived only, never written
    EXPIRED = "expired"


def is_expired(invitation: BoardInvitation, now: datetime) -> bool:
    return now - as_utc(invitation.created_at) > INVITATION_TTL


def live_since(now: datetime) -> datetime:
    """Oldest ``created_at`` a pending invitation may have and still count."""
    return now - INVITATION_TTL


def effective_status(invitation: BoardInvitation, now: datetime) -> InvitationStatus:
    status = InvitationStatus(invitation.status)
    if status is InvitationStatus.PENDING and is_expired(invitation, now):
        return InvitationStatus.EXPIRED
    return status


def _ensure_open(invitation: BoardInvitation, now: datetime) -> None:
    if invitation.status != InvitationStatus.PENDING.value:
        raise DomainError("Invitation already processed", code="invitation_already_processed")
    if is_expired(invitation, now):
        raise DomainError(
            "Invitation has expired. Please request a new invitation.",
            code="invitation_expired",
        )


def ensure_acceptable(invitation: BoardInvitation, email: str | None, now: datetime) -> None:
    """Raise ``DomainError`` unless ``email`` may accept ``invitation`` at ``now``."""
    _ensure_open(invitation, now)
    if email is None or email != invitation.email:
        raise DomainError(
            "You can only accept invitations sent to your email address",
            code="invitation_email_mismatch",
        )


def ensure_declinable(invitation: BoardInvitation, now: datetime) -> None:
    _ensure_open(invitation, now)


def mark(invitation: BoardInvitation, status: InvitationStatus) -> None:
    if status not in (InvitationStatus.ACCEPTED, InvitationStatus.DECLINED):
        raise ValueError(f"cannot store invitation status {status.value!r}")
    invitation.status = status.value
