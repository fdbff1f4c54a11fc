"""Client-side merge of in-flight edits over the last confirmed board state.

The table maps an entity key (``card:<id>`` or ``column:<id>``) to an
:class:`Entry` holding the server-confirmed fields, the fields of the newest
request still in flight, and that request's generation number. Every
function here is pure: it returns a new table and never mutates its input.

A newer request for a key replaces the older overlay outright (last writer
wins, as in storage). Settling a request acts only when its generation is
still the newest, so a slow response for a superseded drag cannot snap the
card back. A successful settle folds the server's returned fields into the
confirmed state before dropping the overlay, so the view never steps back to
the pre-request snapshot while a refetch is in flight. A failed request is
settled without a result: its overlay is dropped and the view reverts.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import TypeAdapter

from .utils import as_utc

CARD = "card"
COLUMN = "column"

# entities the server has not stamped yet sort after everything it has
NOT_YET_CREATED = datetime.max.replace(tzinfo=timezone.utc)

_timestamp = TypeAdapter(datetime)


@dataclass(frozen=True)
class Entry:
    confirmed: Optional[Mapping[str, Any]] = None
    pending: Optional[Mapping[str, Any]] = None
    generation: int = 0


Table = Mapping[str, Entry]


def entity_key(kind: str, entity_id: str) -> str:
    return f"{kind}:{entity_id}"


def split_key(key: str) -> tuple[str, str]:
    kind, _, entity_id = key.partition(":")
    return kind, entity_id


def _prune(table: dict[str, Entry]) -> dict[str, Entry]:
    return {k: e for k, e in table.items() if e.confirmed is not None or e.pending is not None}


def begin(table: Table, key: str, fields: Mapping[str, Any]) -> tuple[dict[str, Entry], int]:
    """Record a request for ``key``; returns the new table and the request's generation."""
    entry = table.get(key, Entry())
    generation = entry.generation + 1
    updated = dict(table)
    updated[key] = replace(entry, pending=dict(fields), generation=generation)
    return updated, generation


def settle(
    table: Table,
    key: str,
    generation: int,
    result: Optional[Mapping[str, Any]] = None,
) -> dict[str, Entry]:
    """Finish request ``generation`` for ``key``.

    ``result`` is the entity the server returned; pass ``None`` when the
    request failed. Responses for superseded generations are ignored.
    """
    entry = table.get(key)
    if entry is None or entry.generation != generation:
        return dict(table)
    confirmed = entry.confirmed
    if result is not None:
        confirmed = {**(confirmed or {}), **result}
    updated = dict(table)
    updated[key] = replace(entry, confirmed=confirmed, pending=None)
    return _prune(updated)


def confirm(table: Table, snapshot: Mapping[str, Mapping[str, Any]]) -> dict[str, Entry]:
    """Replace confirmed state with ``snapshot``; keys missing from it are gone server-side."""
    updated: dict[str, Entry] = {}
    for key, entry in table.items():
        updated[key] = replace(entry, confirmed=snapshot.get(key))
    for key, fields in snapshot.items():
        if key not in updated:
            updated[key] = Entry(confirmed=dict(fields))
    return _prune(updated)


def view(entry: Entry) -> Optional[dict[str, Any]]:
    if entry.confirmed is None and entry.pending is None:
        return None
    merged = dict(entry.confirmed or {})
    merged.update(entry.pending or {})
    return merged


def render(table: Table) -> dict[str, dict[str, Any]]:
    rendered = {}
    for key, entry in table.items():
        merged = view(entry)
        if merged is not None:
            rendered[key] = merged
    return rendered


def _created(fields: Mapping[str, Any]) -> datetime:
    value = fields.get("createdAt")
    if value is None:
        return NOT_YET_CREATED
    return as_utc(_timestamp.validate_python(value))


def _position(fields: Mapping[str, Any], entity_id: str) -> tuple:
    # same tie-break as ordering.sort_key on the server
    return (fields.get("order") or 0, _created(fields), entity_id)


def render_board(table: Table) -> list[dict[str, Any]]:
    """Columns in order, each with its cards in order under ``"items"``.

    A card pointing at a column the view does not know goes to the default
    column, mirroring what the server does when a column is deleted.
    """
    columns: dict[str, dict[str, Any]] = {}
    cards: list[tuple[str, dict[str, Any]]] = []
    for key, fields in render(table).items():
        kind, entity_id = split_key(key)
        if kind == COLUMN:
            columns[entity_id] = {**fields, "id": entity_id, "items": []}
        elif kind == CARD:
            cards.append((entity_id, {**fields, "id": entity_id}))

    fallback = next((c for c in columns.values() if c.get("isDefault")), None)
    for entity_id, card in sorted(cards, key=lambda pair: _position(pair[1], pair[0])):
        column = columns.get(card.get("columnId")) or fallback
        if column is not None:
            column["items"].append(card)
    return sorted(columns.values(), key=lambda c: _position(c, c["id"]))


def snapshot_from_board(board_view: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Turn a ``BoardView`` payload into reconciler keys."""
    snapshot = {}
    for column in board_view.get("columns", []):
        snapshot[entity_key(COLUMN, column["id"])] = dict(column)
    for item in board_view.get("items", []):
        snapshot[entity_key(CARD, item["id"])] = dict(item)
    return snapshot


class OptimisticReconciler:
    """Holds a table and threads it through the pure functions above."""

    def __init__(self, table: Optional[Table] = None) -> None:
        self.table: dict[str, Entry] = dict(table or {})

    def begin(self, kind: str, entity_id: str, fields: Mapping[str, Any]) -> int:
        self.table, generation = begin(self.table, entity_key(kind, entity_id), fields)
        return generation

    def settle(
        self,
        kind: str,
        entity_id: str,
        generation: int,
        result: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.table = settle(self.table, entity_key(kind, entity_id), generation, result)

    def confirm_board(self, board_view: Mapping[str, Any]) -> None:
        self.table = confirm(self.table, snapshot_from_board(board_view))

    def render_board(self) -> list[dict[str, Any]]:
        return render_board(self.table)
