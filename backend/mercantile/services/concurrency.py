# Overview: Retry and row-locking helpers shared by the catalog and stock services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Lock the product, unit configuration or stock row the caller is about
    to change. No-op on SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one catalog unit-of-work, rolling the session back on any failure.

    - Lock timeouts and Product.version_id races are re-run with backoff.
    - A constraint the checks did not catch (unique SKU, unit name, FK)
      becomes a ConflictError naming the constraint.
    - Domain errors propagate unchanged.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            current_app.logger.warning("Constraint violation: %s", exc.orig)
            raise ConflictError(f"Change conflicts with existing data: {exc.orig}") from exc
        except Exception:
            db.session.rollback()
            raise
