from __future__ import annotations

from ..extensions import db
from hirepay.time_utils import to_utc_z


class Customer(db.Model):
    """
    Hire-purchase customer of a shop.

    MULTI-TENANT: Customers are scoped to a single shop via shop_id.

    WALLET: wallet_balance_cents is the authoritative running balance.
    It is only changed inside a wallet confirmation (or adjustment) unit
    of work, never when a pending transaction is created.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_shop_active", "shop_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    # Delivery details (copied onto waybills)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    region = db.Column(db.String(128), nullable=True)

    wallet_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "region": self.region,
            "wallet_balance_cents": self.wallet_balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class WalletTransaction(db.Model):
    """
    Ledger of customer wallet movements.

    TRANSACTION TYPES:
    - DEPOSIT: Cash/mobile money loaded by staff on behalf of the customer
    - WITHDRAWAL: Funds paid back out of the wallet
    - REFUND: Funds returned to the wallet (e.g. cancelled purchase)
    - ADJUSTMENT: Direct correction by a business admin (created CONFIRMED)

    LIFECYCLE: PENDING -> CONFIRMED | REJECTED. Both outcomes are terminal.

    balance_after_cents is a projection taken when the row is created; it is
    only authoritative once the transaction is CONFIRMED.
    """
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        db.Index("ix_wallet_txns_shop_status", "shop_id", "status"),
        db.Index("ix_wallet_txns_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # DEPOSIT, WITHDRAWAL, REFUND, ADJUSTMENT
    amount_cents = db.Column(db.Integer, nullable=False)  # Always positive; direction comes from type
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    payment_method = db.Column(db.String(32), nullable=True)
    reference = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("shop_members.id"), nullable=True, index=True)
    confirmed_by_id = db.Column(db.Integer, db.ForeignKey("shop_members.id"), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("wallet_transactions", lazy=True))
    shop = db.relationship("Shop")
    created_by = db.relationship("ShopMember", foreign_keys=[created_by_id])
    confirmed_by = db.relationship("ShopMember", foreign_keys=[confirmed_by_id])

    def to_dict(self) -> dict:
        customer = self.customer
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": customer.full_name if customer else None,
            "shop_id": self.shop_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "reference": self.reference,
            "description": self.description,
            "created_by_id": self.created_by_id,
            "created_by_name": _member_name(self.created_by) or "Unknown",
            "confirmed_by_id": self.confirmed_by_id,
            "confirmed_by_name": _member_name(self.confirmed_by),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "rejected_reason": self.rejected_reason,
            "created_at": to_utc_z(self.created_at),
        }


def _member_name(member) -> str | None:
    if member is None or member.user is None:
        return None
    return member.user.name or member.user.email
