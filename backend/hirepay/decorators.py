# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .services.authority_service import NotAuthorizedError, require_shop_authority


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user. Returns 401 for a missing, invalid, expired or
    revoked token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)
        if not user:
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_shop(f):
    """
    Resolve the caller's authority over the shop in the URL.

    Must run after @require_auth. Reads the shop_slug route argument and sets
    g.authority. Unknown and unreachable shops both return 403.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "current_user"):
            return jsonify({"success": False, "error": "Authentication required"}), 401

        try:
            g.authority = require_shop_authority(kwargs.get("shop_slug"), g.current_user)
        except NotAuthorizedError as e:
            return jsonify({"success": False, "error": str(e)}), 403

        return f(*args, **kwargs)

    return decorated_function
