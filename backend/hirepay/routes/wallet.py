# Overview: Flask API routes for customer wallets; parses input and returns JSON responses.

"""
Customer Wallet API Routes

All routes are scoped to one shop: /api/shops/<shop_slug>/wallet/...
The caller's authority over the shop is resolved once by @require_shop;
finer capability checks (load wallet, confirm, adjust) happen in
wallet_service.

RESPONSES: {"success": true, "data": ...} or {"success": false, "error": "..."}
"""

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from ..services import wallet_service
from ..services.authority_service import NotAuthorizedError
from ..services.wallet_service import (
    WalletError,
    InvalidAmountError,
    CustomerNotFoundError,
    TransactionNotFoundError,
    DepositConfirmationError,
    WalletValidationError,
    MemberNotFoundError,
)
from ..decorators import require_auth, require_shop
from ..time_utils import parse_iso_datetime


wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/shops/<shop_slug>/wallet")


ERROR_STATUS = {
    InvalidAmountError: 400,
    WalletValidationError: 400,
    CustomerNotFoundError: 404,
    TransactionNotFoundError: 404,
    MemberNotFoundError: 404,
    DepositConfirmationError: 409,
}


def _ok(data, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def _fail(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def _wallet_error(e: WalletError):
    return _fail(str(e), ERROR_STATUS.get(type(e), 400))


# =============================================================================
# QUERIES
# =============================================================================

@wallet_bp.get("/customers")
@require_auth
@require_shop
def list_customers_route(shop_slug: str):
    """Active customers with balances and pending deposit totals."""
    try:
        return _ok(wallet_service.list_wallet_customers(g.authority, search=request.args.get("search")))
    except Exception:
        current_app.logger.exception("Failed to list wallet customers")
        return _fail("Internal server error", 500)


@wallet_bp.get("/customers/<int:customer_id>/transactions")
@require_auth
@require_shop
def customer_transactions_route(shop_slug: str, customer_id: int):
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
        txns = wallet_service.get_customer_wallet_transactions(customer_id, g.authority, limit=limit)
        return _ok([t.to_dict() for t in txns])
    except ValueError:
        return _fail("limit must be an integer", 400)
    except Exception:
        current_app.logger.exception("Failed to list wallet transactions")
        return _fail("Internal server error", 500)


@wallet_bp.get("/pending")
@require_auth
@require_shop
def pending_route(shop_slug: str):
    """
    Pending deposits of the shop.

    Query params:
    - mine: only deposits created by the caller (default: false)
    """
    try:
        mine_only = request.args.get("mine", "false").lower() == "true"
        txns = wallet_service.list_pending_deposits(g.authority, mine_only=mine_only)
        return _ok([t.to_dict() for t in txns])
    except Exception:
        current_app.logger.exception("Failed to list pending deposits")
        return _fail("Internal server error", 500)


@wallet_bp.get("/stats")
@require_auth
@require_shop
def stats_route(shop_slug: str):
    try:
        return _ok(wallet_service.get_wallet_stats(g.authority))
    except Exception:
        current_app.logger.exception("Failed to compute wallet stats")
        return _fail("Internal server error", 500)


@wallet_bp.get("/transactions")
@require_auth
@require_shop
def transactions_route(shop_slug: str):
    """
    Wallet ledger of the shop, newest first (shop admins and above).

    Query params:
    - status: PENDING | CONFIRMED | REJECTED
    - type: DEPOSIT | WITHDRAWAL | REFUND | ADJUSTMENT
    - from, to: ISO-8601 datetimes; a bare date in "to" covers that whole day
    - limit: max rows (default 200, capped at 500)
    """
    try:
        from_raw = request.args.get("from")
        to_raw = request.args.get("to")
        from_date = parse_iso_datetime(from_raw)
        to_date = parse_iso_datetime(to_raw)
        if to_date is not None and len(to_raw.strip()) == 10:
            to_date = to_date + timedelta(days=1) - timedelta(microseconds=1)
        limit = min(int(request.args.get("limit", 200)), 500)
    except ValueError:
        return _fail("from/to must be ISO-8601 dates and limit an integer", 400)

    try:
        txns = wallet_service.list_wallet_transactions(
            g.authority,
            status=request.args.get("status") or None,
            type=request.args.get("type") or None,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
        )
        return _ok([t.to_dict() for t in txns])
    except NotAuthorizedError as e:
        return _fail(str(e), 403)
    except WalletError as e:
        return _wallet_error(e)
    except Exception:
        current_app.logger.exception("Failed to list wallet transactions")
        return _fail("Internal server error", 500)


# =============================================================================
# DEPOSITS
# =============================================================================

@wallet_bp.post("/deposits")
@require_auth
@require_shop
def create_deposit_route(shop_slug: str):
    """
    Record a pending deposit.

    Request body:
    {
        "customer_id": 12,
        "amount_cents": 15000,
        "payment_method": "MOBILE_MONEY",
        "reference": "MM-778812",  (optional)
        "description": "..."       (optional)
    }

    Returns:
        201: Pending transaction
        400: Invalid amount or payment method
        403: Caller cannot load wallets
        404: Customer not in this shop
    """
    try:
        data = request.get_json(silent=True) or {}
        customer_id = data.get("customer_id")
        if customer_id is None:
            return _fail("customer_id is required", 400)

        txn = wallet_service.create_deposit(
            customer_id=customer_id,
            amount_cents=data.get("amount_cents"),
            payment_method=data.get("payment_method"),
            authority=g.authority,
            reference=data.get("reference"),
            description=data.get("description"),
        )
        return _ok(txn.to_dict(), 201)

    except NotAuthorizedError as e:
        return _fail(str(e), 403)
    except WalletError as e:
        return _wallet_error(e)
    except Exception:
        current_app.logger.exception("Failed to create wallet deposit")
        return _fail("Internal server error", 500)


@wallet_bp.post("/deposits/<int:transaction_id>/confirm")
@require_auth
@require_shop
def confirm_deposit_route(shop_slug: str, transaction_id: int):
    """
    Confirm a pending deposit and auto-allocate it to outstanding purchases.

    Returns:
        200: Confirmed transaction, allocation plan and payments applied
        403: Caller is not a shop admin
        404: Transaction not found or already processed
        409: Confirmation failed and was rolled back
    """
    try:
        result = wallet_service.confirm_deposit(transaction_id, g.authority)
        return _ok(result.to_dict())
    except NotAuthorizedError as e:
        return _fail(str(e), 403)
    except WalletError as e:
        return _wallet_error(e)
    except Exception:
        current_app.logger.exception("Failed to confirm wallet deposit")
        return _fail("Internal server error", 500)


@wallet_bp.post("/deposits/<int:transaction_id>/reject")
@require_auth
@require_shop
def reject_deposit_route(shop_slug: str, transaction_id: int):
    """Request body: {"reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        txn = wallet_service.reject_deposit(transaction_id, data.get("reason"), g.authority)
        return _ok(txn.to_dict())
    except NotAuthorizedError as e:
        return _fail(str(e), 403)
    except WalletError as e:
        return _wallet_error(e)
    except Exception:
        current_app.logger.exception("Failed to reject wallet deposit")
        return _fail("Internal server error", 500)


# =============================================================================
# ADMIN
# =============================================================================

@wallet_bp.post("/customers/<int:customer_id>/adjust")
@require_auth
@require_shop
def adjust_route(shop_slug: str, customer_id: int):
    """
    Direct balance correction (business admins).

    Request body: {"amount_cents": 500, "description": "...", "is_addition": true}
    """
    try:
        data = request.get_json(silent=True) or {}
        txn = wallet_service.adjust_wallet(
            customer_id=customer_id,
            amount_cents=data.get("amount_cents"),
            description=data.get("description"),
            is_addition=bool(data.get("is_addition", True)),
            authority=g.authority,
        )
        return _ok(txn.to_dict())
    except NotAuthorizedError as e:
        return _fail(str(e), 403)
    except WalletError as e:
        return _wallet_error(e)
    except Exception:
        current_app.logger.exception("Failed to adjust wallet")
        return _fail("Internal server error", 500)


@wallet_bp.get("/staff")
@require_auth
@require_shop
def staff_permissions_route(shop_slug: str):
    """Staff of every shop in the business with their wallet loading flag."""
    try:
        return _ok(wallet_service.list_staff_wallet_permissions(g.authority))
    except NotAuthorizedError as e:
        return _fail(str(e), 403)
    except Exception:
        current_app.logger.exception("Failed to list staff wallet permissions")
        return _fail("Internal server error", 500)


@wallet_bp.post("/staff/<int:member_id>/toggle")
@require_auth
@require_shop
def toggle_permission_route(shop_slug: str, member_id: int):
    try:
        member = wallet_service.toggle_wallet_permission(member_id, g.authority)
        return _ok(member.to_dict())
    except NotAuthorizedError as e:
        return _fail(str(e), 403)
    except WalletError as e:
        return _wallet_error(e)
    except Exception:
        current_app.logger.exception("Failed to toggle wallet permission")
        return _fail("Internal server error", 500)
