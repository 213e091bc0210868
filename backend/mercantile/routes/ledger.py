# Overview: Flask API routes for ledger operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services.ledger_service import list_events

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("")
def list_ledger_events_route():
    """
    Newest first.

    Query params: entity_type, entity_id, category, limit (default 100, max 500).
    """
    events = list_events(
        entity_type=request.args.get("entity_type") or None,
        entity_id=request.args.get("entity_id", type=int),
        event_category=request.args.get("category") or None,
        limit=request.args.get("limit", default=100, type=int),
    )
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events)}), 200
