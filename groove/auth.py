from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .storage import Repository

BEARER = "Bearer "


def get_current_account(authorization: str = Header(...), db: Session = Depends(get_db)) -> str:
    """Resolve the bearer token to a registered account id.

    The service sits behind whatever authenticates users; that layer forwards
    the account id as the token. An id with no account row is refused the
    same way as a malformed header.
    """
    if not authorization.startswith(BEARER):
        raise HTTPException(status_code=401, detail="invalid_token")
    account_id = authorization[len(BEARER) :].strip()
    if not account_id or Repository(db).get_account(account_id) is None:
        raise HTTPException(status_code=401, detail="invalid_token")
    return account_id
