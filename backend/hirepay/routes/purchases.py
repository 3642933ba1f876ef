# Overview: Flask API routes for hire-purchases; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import purchase_service
from ..services.authority_service import NotAuthorizedError
from ..services.purchase_service import PurchaseError, PurchaseNotFoundError
from ..decorators import require_auth, require_shop
from hirepay.time_utils import parse_iso_datetime


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/shops/<shop_slug>/purchases")


@purchases_bp.post("/")
@require_auth
@require_shop
def create_purchase_route(shop_slug: str):
    """
    Create a purchase.

    Request body:
    {
        "customer_id": 12,
        "items": [{"product_id": 3, "quantity": 1}, {"product_name": "Delivery", "quantity": 1, "unit_price_cents": 2000}],
        "purchase_type": "CREDIT",       (optional, CASH | CREDIT | LAYAWAY)
        "down_payment_cents": 5000,      (optional)
        "due_date": "2026-12-01",        (optional, default now + DEFAULT_TENOR_DAYS)
        "notes": "..."                   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        customer_id = data.get("customer_id")
        if customer_id is None:
            return jsonify({"success": False, "error": "customer_id is required"}), 400

        try:
            due_date = parse_iso_datetime(data.get("due_date"))
        except ValueError:
            return jsonify({"success": False, "error": "due_date must be an ISO-8601 date"}), 400

        purchase = purchase_service.create_purchase(
            g.authority,
            customer_id=customer_id,
            items=data.get("items") or [],
            purchase_type=data.get("purchase_type") or purchase_service.TYPE_CREDIT,
            down_payment_cents=data.get("down_payment_cents", 0),
            due_date=due_date,
            notes=data.get("notes"),
        )
        return jsonify({"success": True, "data": purchase_service.get_purchase_detail(purchase)}), 201

    except NotAuthorizedError as e:
        return jsonify({"success": False, "error": str(e)}), 403
    except PurchaseNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except PurchaseError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@purchases_bp.get("/")
@require_auth
@require_shop
def list_purchases_route(shop_slug: str):
    """
    Query params:
    - customer_id
    - status
    - limit (default 100, max 500), offset
    """
    try:
        customer_id = request.args.get("customer_id", type=int)
        limit = min(request.args.get("limit", 100, type=int), 500)
        offset = request.args.get("offset", 0, type=int)
        purchases = purchase_service.list_purchases(
            g.authority,
            customer_id=customer_id,
            status=request.args.get("status"),
            limit=limit,
            offset=offset,
        )
        return jsonify({"success": True, "data": [p.to_dict() for p in purchases]}), 200
    except PurchaseError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_shop
def get_purchase_route(shop_slug: str, purchase_id: int):
    """Purchase with line items, payments and waybill."""
    try:
        purchase = purchase_service.get_purchase(purchase_id, g.authority)
        return jsonify({"success": True, "data": purchase_service.get_purchase_detail(purchase)}), 200
    except PurchaseNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get purchase")
        return jsonify({"success": False, "error": "Internal server error"}), 500
