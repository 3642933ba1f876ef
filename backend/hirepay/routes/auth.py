# Overview: Flask API routes for back-office login and logout.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Exchange email + password for a bearer token.

    Request body: {"email": "...", "password": "..."}
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"success": False, "error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"success": False, "error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "success": True,
            "data": {
                "user": user.to_dict(),
                "token": token,
                "session": session.to_dict(),
            },
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return jsonify({"success": True, "data": {"message": "Logout successful"}}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    memberships = [
        {
            "shop_id": m.shop_id,
            "shop_slug": m.shop.slug if m.shop else None,
            "role": m.role,
            "can_load_wallet": m.can_load_wallet,
        }
        for m in user.shop_memberships
        if m.is_active
    ]
    return jsonify({"success": True, "data": {"user": user.to_dict(), "shops": memberships}}), 200
