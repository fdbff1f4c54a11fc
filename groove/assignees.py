from __future__ import annotations

import re

from .db import Account, Assignee
from .storage import Repository
from .utils import new_id, short_suffix


def name_from_email(email: str) -> str:
    """``john.doe@example.com`` -> ``John Doe``."""
    local = email.split("@")[0]
    parts = [p for p in re.split(r"[._-]", local) if p]
    return " ".join(p[:1].upper() + p[1:].lower() for p in parts) or email


def display_name(account: Account) -> str:
    if account.first_name and account.last_name:
        return f"{account.first_name} {account.last_name}"
    return name_from_email(account.email)


def unique_name(repo: Repository, board_id: str, base: str) -> str:
    name = base.strip()
    while repo.assignee_named(board_id, name) is not None:
        name = f"{base.strip()} {short_suffix()}"
    return name


def ensure_for_account(repo: Repository, board_id: str, account: Account) -> Assignee:
    """Return the board's assignee linked to ``account``, creating it if missing."""
    existing = repo.assignee_for_account(board_id, account.id)
    if existing is not None:
        return existing
    assignee = Assignee(
        id=new_id(),
        board_id=board_id,
        name=unique_name(repo, board_id, display_name(account)),
        account_id=account.id,
    )
    return repo.add(assignee)
