# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from mercantile.services import store_service
from .errors import DOMAIN_ERRORS, error_response, internal_error


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
def list_stores():
    stores = store_service.list_stores()
    return jsonify([store.to_dict() for store in stores]), 200


@stores_bp.post("")
def create_store():
    data = request.get_json(silent=True) or {}
    try:
        store = store_service.create_store(
            name=data.get("name"),
            code=data.get("code"),
        )
        return jsonify(store.to_dict()), 201
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create store")


@stores_bp.get("/<int:store_id>")
def get_store(store_id: int):
    store = store_service.get_store(store_id)
    if not store:
        return jsonify({"error": "Store not found"}), 404
    return jsonify(store.to_dict()), 200


@stores_bp.put("/<int:store_id>")
def update_store(store_id: int):
    data = request.get_json(silent=True) or {}
    is_active = data.get("is_active")
    try:
        store = store_service.update_store(
            store_id,
            name=data.get("name"),
            code=data.get("code"),
            is_active=bool(is_active) if is_active is not None else None,
        )
        return jsonify(store.to_dict()), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update store")
