# Overview: Customer wallet operations; deposit confirmation and auto-allocation to purchases.

"""
Customer Wallet Service

WHY: Customers pre-load money into a shop wallet (cash, mobile money, ...).
Staff record the deposit as PENDING; a shop admin confirms it once the money
is verified. Confirmation credits the wallet and immediately settles the
customer's outstanding purchases, oldest obligation first.

CONFIRMATION (one unit of work):
  a. PENDING -> CONFIRMED via a conditional UPDATE (a concurrent confirmer
     that loses the race sees TransactionNotFoundError)
  b. wallet balance += signed amount
  c. each planned allocation becomes a WALLET payment on a re-read, locked
     purchase
  d. a non-cash purchase that reaches zero outstanding is released for
     delivery (stock out + waybill, at most once)
Any failure in a-d rolls everything back and the deposit stays PENDING.
The audit entry is written after commit, best effort.

MONEY: integer cents throughout.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import case, func, update

from ..extensions import db
from ..models import Customer, Purchase, Payment, Shop, ShopMember, WalletTransaction
from hirepay.time_utils import utcnow, start_of_day
from . import audit_service
from .allocation import AllocationPlan, OutstandingPurchase, plan_allocation
from .authority_service import (
    ShopAuthority,
    NotAuthorizedError,
    can_adjust_wallet,
    can_confirm_deposit,
    can_load_wallet,
    can_manage_staff,
    ensure_acting_member,
)
from .concurrency import UnitOfWork, lock_for_update, run_with_retry
from .purchase_service import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_PENDING as PURCHASE_PENDING,
    TYPE_CASH,
    get_outstanding_purchases,
    outstanding_after,
)
from .waybill_service import release_for_delivery


class WalletError(Exception):
    """Base class for wallet operation errors."""
    pass


class InvalidAmountError(WalletError):
    pass


class CustomerNotFoundError(WalletError):
    pass


class TransactionNotFoundError(WalletError):
    """Missing, in another shop, or already processed (reported identically)."""
    pass


class DepositConfirmationError(WalletError):
    """The confirmation unit of work failed and was rolled back."""
    pass


class WalletValidationError(WalletError):
    pass


class MemberNotFoundError(WalletError):
    pass


# =============================================================================
# CONSTANTS
# =============================================================================

TYPE_DEPOSIT = "DEPOSIT"
TYPE_WITHDRAWAL = "WITHDRAWAL"
TYPE_REFUND = "REFUND"
TYPE_ADJUSTMENT = "ADJUSTMENT"

CREDIT_TYPES = [TYPE_DEPOSIT, TYPE_REFUND]

STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_REJECTED = "REJECTED"

TRANSACTION_TYPES = [TYPE_DEPOSIT, TYPE_WITHDRAWAL, TYPE_REFUND, TYPE_ADJUSTMENT]
TRANSACTION_STATUSES = [STATUS_PENDING, STATUS_CONFIRMED, STATUS_REJECTED]

VALID_PAYMENT_METHODS = ["CASH", "MOBILE_MONEY", "BANK_TRANSFER", "CARD"]

PAYMENT_METHOD_WALLET = "WALLET"


@dataclass
class ConfirmationResult:
    transaction: WalletTransaction
    plan: AllocationPlan
    payments_applied: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            "allocation": self.plan.to_dict(),
            "payments_applied": self.payments_applied,
        }


def signed_amount(transaction_type: str, amount_cents: int) -> int:
    """Credits (DEPOSIT, REFUND) add to the wallet; everything else draws on it."""
    if transaction_type in CREDIT_TYPES:
        return amount_cents
    return -amount_cents


def projected_balance(current_cents: int, transaction_type: str, amount_cents: int) -> int:
    """Balance the customer would have once the transaction is confirmed."""
    return current_cents + signed_amount(transaction_type, amount_cents)


def _validate_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidAmountError("Amount must be an integer number of cents")
    if amount_cents <= 0:
        raise InvalidAmountError("Amount must be greater than 0")
    return amount_cents


def _get_shop_customer(customer_id: int, authority: ShopAuthority, *, active_only: bool = True) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id, shop_id=authority.shop.id)
    if active_only:
        query = query.filter(Customer.is_active.is_(True))
    customer = query.first()
    if not customer:
        raise CustomerNotFoundError("Customer not found in this shop")
    return customer


# =============================================================================
# DEPOSIT CREATION
# =============================================================================

def create_deposit(
    customer_id: int,
    amount_cents: int,
    payment_method: str,
    authority: ShopAuthority,
    reference: str | None = None,
    description: str | None = None,
) -> WalletTransaction:
    """
    Record a PENDING wallet deposit for a customer.

    The customer balance is NOT changed here; balance_after_cents is only a
    projection until a shop admin confirms the deposit.

    Raises:
        NotAuthorizedError, InvalidAmountError, WalletValidationError,
        CustomerNotFoundError
    """
    if not can_load_wallet(authority):
        raise NotAuthorizedError("You don't have permission to load customer wallets")

    _validate_amount(amount_cents)

    if payment_method not in VALID_PAYMENT_METHODS:
        raise WalletValidationError(
            f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}"
        )

    customer = _get_shop_customer(customer_id, authority)
    actor = ensure_acting_member(authority)

    def _create():
        balance = customer.wallet_balance_cents or 0
        txn = WalletTransaction(
            customer_id=customer.id,
            shop_id=authority.shop.id,
            type=TYPE_DEPOSIT,
            amount_cents=amount_cents,
            balance_before_cents=balance,
            balance_after_cents=projected_balance(balance, TYPE_DEPOSIT, amount_cents),
            status=STATUS_PENDING,
            payment_method=payment_method,
            reference=reference,
            description=description or "Wallet deposit",
            created_by_id=actor.id if actor else None,
        )
        db.session.add(txn)
        db.session.commit()
        return txn

    txn = run_with_retry(_create)

    audit_service.record(
        "CREATE_WALLET_DEPOSIT",
        "WALLET_TRANSACTION",
        txn.id,
        {
            "customer_id": customer.id,
            "customer": customer.full_name,
            "amount_cents": amount_cents,
            "payment_method": payment_method,
            "reference": reference,
        },
        actor_user_id=authority.user.id,
    )
    return txn


# =============================================================================
# CONFIRMATION + AUTO-ALLOCATION
# =============================================================================

def confirm_deposit(transaction_id: int, authority: ShopAuthority) -> ConfirmationResult:
    """
    Confirm a pending wallet transaction and settle outstanding purchases.

    Not retried automatically: a retry after a lost race would report
    TransactionNotFoundError, which is the correct answer.

    Raises:
        NotAuthorizedError: caller is not a shop admin (or higher)
        TransactionNotFoundError: missing, other shop, or already processed
        DepositConfirmationError: the unit of work failed and was rolled back
    """
    if not can_confirm_deposit(authority):
        raise NotAuthorizedError("Only shop admins can confirm deposits")

    txn = db.session.query(WalletTransaction).filter_by(
        id=transaction_id,
        shop_id=authority.shop.id,
        status=STATUS_PENDING,
    ).first()
    if not txn:
        raise TransactionNotFoundError("Transaction not found or already processed")

    actor = ensure_acting_member(authority)
    actor_member_id = actor.id if actor else None
    actor_user_id = authority.user.id
    customer_id = txn.customer_id
    txn_type = txn.type
    amount_cents = txn.amount_cents
    shop_id = authority.shop.id

    uow = UnitOfWork()
    try:
        uow.begin()
        now = utcnow()
        _claim_pending(transaction_id, shop_id, actor_member_id, now)
        customer = _adjust_wallet_balance(customer_id, signed_amount(txn_type, amount_cents))

        if txn_type in CREDIT_TYPES:
            outstanding = [
                OutstandingPurchase.from_model(p)
                for p in get_outstanding_purchases(customer_id, lock=True)
            ]
            plan = plan_allocation(amount_cents, outstanding)
        else:
            plan = AllocationPlan(deposit_cents=0, leftover_cents=0)

        payments_applied = _apply_allocations(
            plan,
            customer,
            actor_member_id=actor_member_id,
            actor_user_id=actor_user_id,
            now=now,
        )
        customer_name = customer.full_name
        uow.commit()
    except TransactionNotFoundError:
        if uow.active:
            uow.rollback()
        raise
    except WalletError as exc:
        if uow.active:
            uow.rollback()
        current_app.logger.warning(
            "Wallet deposit confirmation refused: transaction_id=%s reason=%s", transaction_id, exc
        )
        raise DepositConfirmationError("Failed to confirm deposit") from exc
    except Exception as exc:
        if uow.active:
            uow.rollback()
        current_app.logger.exception("Wallet deposit confirmation failed: transaction_id=%s", transaction_id)
        raise DepositConfirmationError("Failed to confirm deposit") from exc

    audit_service.record(
        "CONFIRM_WALLET_DEPOSIT",
        "WALLET_TRANSACTION",
        transaction_id,
        {
            "transaction_id": transaction_id,
            "customer_id": customer_id,
            "customer": customer_name,
            "amount_cents": amount_cents,
            "payments_applied": payments_applied,
        },
        actor_user_id=actor_user_id,
    )

    confirmed = db.session.get(WalletTransaction, transaction_id)
    return ConfirmationResult(transaction=confirmed, plan=plan, payments_applied=payments_applied)


def _claim_pending(transaction_id: int, shop_id: int, confirmed_by_id: int | None, now) -> None:
    stmt = (
        update(WalletTransaction)
        .where(
            WalletTransaction.id == transaction_id,
            WalletTransaction.shop_id == shop_id,
            WalletTransaction.status == STATUS_PENDING,
        )
        .values(status=STATUS_CONFIRMED, confirmed_by_id=confirmed_by_id, confirmed_at=now)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise TransactionNotFoundError("Transaction not found or already processed")


def _adjust_wallet_balance(customer_id: int, delta_cents: int) -> Customer:
    customer = lock_for_update(
        db.session.query(Customer).filter_by(id=customer_id)
    ).populate_existing().one()
    new_balance = (customer.wallet_balance_cents or 0) + delta_cents
    if new_balance < 0:
        raise InvalidAmountError("Insufficient wallet balance")
    customer.wallet_balance_cents = new_balance
    db.session.flush()
    return customer


def _apply_allocations(
    plan: AllocationPlan,
    customer: Customer,
    *,
    actor_member_id: int | None,
    actor_user_id: int | None,
    now,
) -> list[dict]:
    """Turn each planned allocation into a WALLET payment on its purchase."""
    applied = []
    for allocation in plan.allocations:
        purchase = lock_for_update(
            db.session.query(Purchase).filter_by(id=allocation.purchase_id)
        ).populate_existing().one()

        new_paid = purchase.amount_paid_cents + allocation.amount_applied_cents
        new_outstanding = outstanding_after(purchase.total_amount_cents, new_paid)
        completed = new_outstanding == 0

        db.session.add(Payment(
            purchase_id=purchase.id,
            amount_cents=allocation.amount_applied_cents,
            payment_method=PAYMENT_METHOD_WALLET,
            status="COMPLETED",
            is_confirmed=True,
            confirmed_by_id=actor_member_id,
            confirmed_at=now,
            paid_at=now,
            notes="Wallet deposit payment",
        ))

        purchase.amount_paid_cents = new_paid
        purchase.outstanding_balance_cents = new_outstanding
        if completed:
            purchase.status = STATUS_COMPLETED
        elif purchase.status == PURCHASE_PENDING:
            purchase.status = STATUS_ACTIVE
        db.session.flush()

        waybill = None
        if completed and purchase.purchase_type != TYPE_CASH:
            waybill = release_for_delivery(purchase, customer, generated_by_user_id=actor_user_id)

        applied.append({
            "purchase_id": purchase.id,
            "purchase_number": purchase.purchase_number,
            "amount_applied_cents": allocation.amount_applied_cents,
            "outstanding_balance_cents": new_outstanding,
            "completed": completed,
            "waybill_number": waybill.waybill_number if waybill else None,
        })
    return applied


# =============================================================================
# REJECTION
# =============================================================================

def reject_deposit(transaction_id: int, reason: str, authority: ShopAuthority) -> WalletTransaction:
    """
    Reject a pending wallet transaction. The balance is untouched.

    Raises:
        NotAuthorizedError, WalletValidationError, TransactionNotFoundError
    """
    if not can_confirm_deposit(authority):
        raise NotAuthorizedError("Only shop admins can reject deposits")

    reason = (reason or "").strip()
    if not reason:
        raise WalletValidationError("A rejection reason is required")

    actor = ensure_acting_member(authority)

    with UnitOfWork():
        stmt = (
            update(WalletTransaction)
            .where(
                WalletTransaction.id == transaction_id,
                WalletTransaction.shop_id == authority.shop.id,
                WalletTransaction.status == STATUS_PENDING,
            )
            .values(
                status=STATUS_REJECTED,
                rejected_reason=reason,
                confirmed_by_id=actor.id if actor else None,
                confirmed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if not db.session.execute(stmt).rowcount:
            raise TransactionNotFoundError("Transaction not found or already processed")

    txn = db.session.get(WalletTransaction, transaction_id)
    audit_service.record(
        "REJECT_WALLET_DEPOSIT",
        "WALLET_TRANSACTION",
        transaction_id,
        {
            "customer_id": txn.customer_id,
            "amount_cents": txn.amount_cents,
            "reason": reason,
        },
        actor_user_id=authority.user.id,
    )
    return txn


# =============================================================================
# DIRECT ADJUSTMENT
# =============================================================================

def adjust_wallet(
    customer_id: int,
    amount_cents: int,
    description: str,
    is_addition: bool,
    authority: ShopAuthority,
) -> WalletTransaction:
    """
    Business-admin correction of a wallet balance.

    Created already CONFIRMED; no allocation to purchases.

    Raises:
        NotAuthorizedError, InvalidAmountError, WalletValidationError,
        CustomerNotFoundError
    """
    if not can_adjust_wallet(authority):
        raise NotAuthorizedError("Only business admins can adjust wallet balances")

    _validate_amount(amount_cents)
    description = (description or "").strip()
    if not description:
        raise WalletValidationError("A description is required for adjustments")

    _get_shop_customer(customer_id, authority, active_only=False)
    actor = ensure_acting_member(authority)
    actor_id = actor.id if actor else None

    with UnitOfWork():
        customer = lock_for_update(
            db.session.query(Customer).filter_by(id=customer_id)
        ).populate_existing().one()
        before = customer.wallet_balance_cents or 0
        after = before + amount_cents if is_addition else before - amount_cents
        if after < 0:
            raise InvalidAmountError("Adjustment would result in a negative balance")

        now = utcnow()
        txn = WalletTransaction(
            customer_id=customer.id,
            shop_id=authority.shop.id,
            type=TYPE_ADJUSTMENT,
            amount_cents=amount_cents,
            balance_before_cents=before,
            balance_after_cents=after,
            status=STATUS_CONFIRMED,
            description=description,
            created_by_id=actor_id,
            confirmed_by_id=actor_id,
            confirmed_at=now,
        )
        db.session.add(txn)
        customer.wallet_balance_cents = after
        db.session.flush()
        txn_id = txn.id

    audit_service.record(
        "ADJUST_WALLET_BALANCE",
        "CUSTOMER",
        customer_id,
        {
            "transaction_id": txn_id,
            "amount_cents": amount_cents,
            "is_addition": bool(is_addition),
            "balance_before_cents": before,
            "balance_after_cents": after,
            "description": description,
        },
        actor_user_id=authority.user.id,
    )
    return db.session.get(WalletTransaction, txn_id)


# =============================================================================
# QUERIES
# =============================================================================

def list_pending_deposits(authority: ShopAuthority, mine_only: bool = False) -> list[WalletTransaction]:
    query = db.session.query(WalletTransaction).filter_by(
        shop_id=authority.shop.id,
        status=STATUS_PENDING,
    )
    if mine_only:
        if authority.acting_member_id is None:
            return []
        query = query.filter(WalletTransaction.created_by_id == authority.acting_member_id)
    return query.order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc()).all()


def get_customer_wallet_transactions(
    customer_id: int,
    authority: ShopAuthority,
    limit: int = 50,
) -> list[WalletTransaction]:
    """Newest first; empty for a customer outside the shop."""
    customer = db.session.query(Customer).filter_by(id=customer_id, shop_id=authority.shop.id).first()
    if not customer:
        return []
    return (
        db.session.query(WalletTransaction)
        .filter_by(customer_id=customer.id)
        .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        .limit(limit)
        .all()
    )


def list_wallet_transactions(
    authority: ShopAuthority,
    status: str | None = None,
    type: str | None = None,
    from_date=None,
    to_date=None,
    limit: int = 200,
) -> list[WalletTransaction]:
    """
    Wallet ledger of the shop, newest first (shop admins and above).

    from_date / to_date bound created_at inclusively.

    Raises:
        NotAuthorizedError, WalletValidationError
    """
    if not can_confirm_deposit(authority):
        raise NotAuthorizedError("Only shop admins can view the wallet ledger")
    if status and status not in TRANSACTION_STATUSES:
        raise WalletValidationError(f"Invalid status: {status}. Must be one of {TRANSACTION_STATUSES}")
    if type and type not in TRANSACTION_TYPES:
        raise WalletValidationError(f"Invalid type: {type}. Must be one of {TRANSACTION_TYPES}")
    if from_date and to_date and from_date > to_date:
        raise WalletValidationError("from_date must not be after to_date")

    query = db.session.query(WalletTransaction).filter(WalletTransaction.shop_id == authority.shop.id)
    if status:
        query = query.filter(WalletTransaction.status == status)
    if type:
        query = query.filter(WalletTransaction.type == type)
    if from_date:
        query = query.filter(WalletTransaction.created_at >= from_date)
    if to_date:
        query = query.filter(WalletTransaction.created_at <= to_date)

    return (
        query.order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
        .limit(limit)
        .all()
    )


def list_wallet_customers(authority: ShopAuthority, search: str | None = None) -> list[dict]:
    """Active customers with their balance and pending deposit totals."""
    pending = (
        db.session.query(
            WalletTransaction.customer_id,
            func.count(WalletTransaction.id),
            func.coalesce(func.sum(WalletTransaction.amount_cents), 0),
        )
        .filter_by(shop_id=authority.shop.id, status=STATUS_PENDING)
        .group_by(WalletTransaction.customer_id)
        .all()
    )
    pending_by_customer = {row[0]: (row[1], int(row[2])) for row in pending}

    query = db.session.query(Customer).filter_by(shop_id=authority.shop.id, is_active=True)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            Customer.first_name.ilike(like)
            | Customer.last_name.ilike(like)
            | Customer.phone.ilike(like)
        )

    results = []
    for customer in query.order_by(Customer.first_name, Customer.last_name, Customer.id).all():
        count, total = pending_by_customer.get(customer.id, (0, 0))
        results.append({
            "id": customer.id,
            "name": customer.full_name,
            "phone": customer.phone,
            "wallet_balance_cents": customer.wallet_balance_cents,
            "pending_deposit_count": count,
            "pending_deposit_cents": total,
        })
    return results


def get_wallet_stats(authority: ShopAuthority) -> dict:
    shop_id = authority.shop.id

    total_balance, with_balance = db.session.query(
        func.coalesce(func.sum(Customer.wallet_balance_cents), 0),
        func.coalesce(func.sum(case((Customer.wallet_balance_cents > 0, 1), else_=0)), 0),
    ).filter(Customer.shop_id == shop_id, Customer.is_active.is_(True)).one()

    pending_count = db.session.query(func.count(WalletTransaction.id)).filter_by(
        shop_id=shop_id,
        status=STATUS_PENDING,
    ).scalar()

    today_total = db.session.query(
        func.coalesce(func.sum(WalletTransaction.amount_cents), 0)
    ).filter(
        WalletTransaction.shop_id == shop_id,
        WalletTransaction.type == TYPE_DEPOSIT,
        WalletTransaction.status == STATUS_CONFIRMED,
        WalletTransaction.confirmed_at >= start_of_day(),
    ).scalar()

    return {
        "total_balance_cents": int(total_balance or 0),
        "customers_with_balance": int(with_balance or 0),
        "pending_deposits": int(pending_count or 0),
        "today_deposits_cents": int(today_total or 0),
        "can_load_wallet": can_load_wallet(authority),
        "is_shop_admin": can_confirm_deposit(authority),
    }


# =============================================================================
# STAFF PERMISSIONS
# =============================================================================

def list_staff_wallet_permissions(authority: ShopAuthority) -> list[dict]:
    """Active members of every shop in the business with their can_load_wallet flag."""
    if not can_manage_staff(authority):
        raise NotAuthorizedError("Only business admins can manage wallet permissions")

    members = (
        db.session.query(ShopMember)
        .join(Shop, Shop.id == ShopMember.shop_id)
        .filter(Shop.business_id == authority.shop.business_id, ShopMember.is_active.is_(True))
        .order_by(Shop.name, ShopMember.id)
        .all()
    )
    return [
        {
            "id": member.id,
            "name": (member.user.name if member.user else None) or "Unknown",
            "email": member.user.email if member.user else None,
            "role": member.role,
            "shop_id": member.shop_id,
            "shop_name": member.shop.name,
            "can_load_wallet": member.can_load_wallet,
        }
        for member in members
    ]


def toggle_wallet_permission(shop_member_id: int, authority: ShopAuthority) -> ShopMember:
    """Flip a staff member's can_load_wallet flag (business admins only)."""
    if not can_manage_staff(authority):
        raise NotAuthorizedError("Only business admins can manage wallet permissions")

    member = db.session.get(ShopMember, shop_member_id)
    if member is None or member.shop is None or member.shop.business_id != authority.shop.business_id:
        raise MemberNotFoundError("Staff member not found")

    def _toggle():
        row = db.session.get(ShopMember, shop_member_id)
        row.can_load_wallet = not row.can_load_wallet
        db.session.commit()
        return row

    member = run_with_retry(_toggle)

    audit_service.record(
        "GRANT_WALLET_PERMISSION" if member.can_load_wallet else "REVOKE_WALLET_PERMISSION",
        "SHOP_MEMBER",
        member.id,
        {
            "user_id": member.user_id,
            "shop_id": member.shop_id,
            "can_load_wallet": member.can_load_wallet,
        },
        actor_user_id=authority.user.id,
    )
    return member
