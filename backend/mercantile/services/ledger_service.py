# Overview: Service-layer operations for the audit ledger.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
from mercantile.time_utils import utcnow
"""
Ledger invariants (authoritative)

- Append-only audit log for catalog and stock events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back product save leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    store_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Flushes but never commits; the caller owns the transaction.
    """
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        store_id=store_id,
        occurred_at=occurred_at or utcnow(),
        note=(note[:255] if note else None),
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_events(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_category: str | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent)
    if entity_type is not None:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(LedgerEvent.entity_id == entity_id)
    if event_category is not None:
        q = q.filter(LedgerEvent.event_category == event_category)
    limit = max(1, min(limit, 500))
    return q.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc()).limit(limit).all()
