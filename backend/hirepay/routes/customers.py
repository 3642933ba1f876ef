# Overview: Flask API routes for shop customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import customer_service
from ..services.customer_service import CustomerError, CustomerNotFound
from ..decorators import require_auth, require_shop


customers_bp = Blueprint("customers", __name__, url_prefix="/api/shops/<shop_slug>/customers")


@customers_bp.post("/")
@require_auth
@require_shop
def create_customer_route(shop_slug: str):
    """
    Request body:
    {
        "first_name": "Ama", "last_name": "Mensah",
        "phone": "...", "email": "...",
        "address": "...", "city": "...", "region": "..."   (all optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.create_customer(
            g.authority,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            phone=data.get("phone"),
            email=data.get("email"),
            address=data.get("address"),
            city=data.get("city"),
            region=data.get("region"),
        )
        return jsonify({"success": True, "data": customer.to_dict()}), 201
    except CustomerError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@customers_bp.get("/")
@require_auth
@require_shop
def list_customers_route(shop_slug: str):
    try:
        customers = customer_service.list_customers(
            g.authority,
            search=request.args.get("search"),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        )
        return jsonify({"success": True, "data": [c.to_dict() for c in customers]}), 200
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_shop
def get_customer_route(shop_slug: str, customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id, g.authority)
        return jsonify({"success": True, "data": customer.to_dict()}), 200
    except CustomerNotFound as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"success": False, "error": "Internal server error"}), 500
