# Overview: Flask API routes for lots and stock; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import inventory_service, receive_service, stock_exit_service
from ..validation import ValidationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/products/<int:product_id>/lots")
def receive_lot_route(product_id: int):
    """
    Receive stock as a new lot.

    Request body:
    {
        "quantity": 10,              // required, > 0
        "unit_cost_cents": 1000,     // required, >= 0
        "received_at": "...",        // optional, ISO-8601; not in the future
        "lot_code": "...",           // optional
        "supplier_ref": "...",       // optional
        "actor": "..."               // optional
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        lot = receive_service.receive_lot(
            product_id,
            data.get("quantity"),
            data.get("unit_cost_cents"),
            received_at=data.get("received_at"),
            lot_code=data.get("lot_code"),
            supplier_ref=data.get("supplier_ref"),
            actor=data.get("actor"),
            attempts=current_app.config["CONFIRM_RETRY_ATTEMPTS"],
            backoff_base=current_app.config["CONFIRM_RETRY_BACKOFF"],
        )
        return jsonify({
            "lot": lot.to_dict(),
            "summary": inventory_service.get_stock_summary(product_id),
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to receive lot for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/products/<int:product_id>/exits")
def withdraw_stock_route(product_id: int):
    """
    Take stock out without a sale, consuming lots FIFO.

    Request body:
    {
        "quantity": 2,               // required, > 0
        "reason": "WASTE",           // required, INTERNAL_USE or WASTE
        "note": "...",               // optional
        "actor": "..."               // optional
    }

    Insufficient stock answers 409 and nothing is written.
    """
    try:
        data = request.get_json(silent=True) or {}
        summary = stock_exit_service.withdraw_stock(
            product_id,
            data.get("quantity"),
            data.get("reason"),
            note=data.get("note"),
            actor=data.get("actor"),
            attempts=current_app.config["CONFIRM_RETRY_ATTEMPTS"],
            backoff_base=current_app.config["CONFIRM_RETRY_BACKOFF"],
        )
        return jsonify({"exit": summary.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to withdraw stock for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/lots")
def list_lots_route(product_id: int):
    include_exhausted = request.args.get("include_exhausted", "").lower() in ("1", "true", "yes")
    try:
        lots = inventory_service.list_lots(product_id, include_exhausted=include_exhausted)
        return jsonify({"items": lots, "count": len(lots)})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list lots for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/summary")
def stock_summary_route(product_id: int):
    try:
        return jsonify(inventory_service.get_stock_summary(product_id))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to summarize stock for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
def list_movements_route():
    """
    Lot movements, newest first.

    Query parameters:
    - product_id: filter by product
    - sale_id: filter by sale
    - movement_type: SALE, INTERNAL_USE or WASTE
    - limit: maximum results (default 200, max 500)
    """
    try:
        items = inventory_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            sale_id=request.args.get("sale_id", type=int),
            movement_type=request.args.get("movement_type"),
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"items": items, "count": len(items)})
    except Exception:
        current_app.logger.exception("Failed to list lot movements")
        return jsonify({"error": "Internal server error"}), 500
