# Overview: Flask API routes for the unit registry; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import unit_service
from .errors import DOMAIN_ERRORS, error_response, internal_error

units_bp = Blueprint("units", __name__, url_prefix="/api/units")


@units_bp.get("")
def list_units():
    return jsonify([unit.to_dict() for unit in unit_service.list_units()]), 200


@units_bp.get("/<int:unit_id>")
def get_unit(unit_id: int):
    unit = unit_service.get_unit(unit_id)
    if unit is None:
        return jsonify({"error": "Unit not found"}), 404
    return jsonify(unit.to_dict()), 200


@units_bp.post("")
def create_unit():
    data = request.get_json(silent=True) or {}
    try:
        unit = unit_service.create_unit(data.get("name"))
        return jsonify(unit.to_dict()), 201
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create unit")


@units_bp.put("/<int:unit_id>")
def update_unit(unit_id: int):
    data = request.get_json(silent=True) or {}
    try:
        unit = unit_service.update_unit(unit_id, data.get("name"))
        return jsonify(unit.to_dict()), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to update unit")


@units_bp.delete("/<int:unit_id>")
def delete_unit(unit_id: int):
    try:
        unit_service.delete_unit(unit_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to delete unit")
