import secrets
import string
from datetime import datetime, timezone

LETTERS = string.ascii_lowercase
DIGITS = string.digits


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns, so anything read from storage goes through here before it is
    compared against the clock.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _pick(alphabet: str, n: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(n))


def new_id() -> str:
    """Generate an id shaped like ``ab123-cd456``."""
    return f"{_pick(LETTERS, 2)}{_pick(DIGITS, 3)}-{_pick(LETTERS, 2)}{_pick(DIGITS, 3)}"


def short_suffix() -> str:
    return _pick(string.ascii_uppercase + DIGITS, 4)
