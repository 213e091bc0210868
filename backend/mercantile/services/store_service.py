from __future__ import annotations

from mercantile.extensions import db
from mercantile.models import Store
from mercantile.services.concurrency import lock_for_update, run_with_retry
from mercantile.validation import ConflictError, NotFoundError, ValidationError


def _ensure_unique(name: str, code: str | None, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Store).filter(db.func.lower(Store.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Store.id != exclude_id)
    if q.first():
        raise ConflictError(f'Store name "{name}" already exists.')

    if code:
        q = db.session.query(Store).filter(Store.code == code)
        if exclude_id is not None:
            q = q.filter(Store.id != exclude_id)
        if q.first():
            raise ConflictError(f'Store code "{code}" already exists.')


def create_store(name: str | None, code: str | None = None) -> Store:
    def _op():
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Store name is required")
        clean_code = (code or "").strip().upper() or None

        _ensure_unique(clean_name, clean_code)

        store = Store(name=clean_name, code=clean_code)
        db.session.add(store)
        db.session.commit()
        return store

    return run_with_retry(_op)


def update_store(
    store_id: int,
    *,
    name: str | None = None,
    code: str | None = None,
    is_active: bool | None = None,
) -> Store:
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError("Store not found")

        new_name = name.strip() if name is not None else store.name
        if not new_name:
            raise ValidationError("Store name cannot be blank")
        new_code = (code.strip().upper() or None) if code is not None else store.code

        _ensure_unique(new_name, new_code, exclude_id=store.id)

        store.name = new_name
        store.code = new_code
        if is_active is not None:
            store.is_active = is_active

        db.session.commit()
        return store

    return run_with_retry(_op)


def get_store(store_id: int) -> Store | None:
    return db.session.query(Store).filter_by(id=store_id).first()


def require_store(store_id: int) -> Store:
    store = get_store(store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.name.asc()).all()
