# Overview: Pure planning of how wallet funds settle outstanding purchases.

"""
Wallet Allocation Planning

No database access and no side effects: given a deposit amount and a
snapshot of a customer's outstanding purchases, produce the ordered list
of (purchase, amount) pairs to apply.

ORDERING: oldest obligation first.
- due_date ascending; purchases without a due date go last
- ties broken by created_at, then by purchase id
The same inputs always produce the same plan, whatever order they were
fetched in.

CONSERVATION: sum(applied) + leftover == deposit, and no purchase is
allocated more than its outstanding balance. Leftover funds stay in the
wallet as free balance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable


@dataclass(frozen=True)
class OutstandingPurchase:
    purchase_id: int
    purchase_number: str
    outstanding_cents: int
    due_date: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, purchase) -> "OutstandingPurchase":
        return cls(
            purchase_id=purchase.id,
            purchase_number=purchase.purchase_number,
            outstanding_cents=purchase.outstanding_balance_cents,
            due_date=purchase.due_date,
            created_at=purchase.created_at,
        )


@dataclass(frozen=True)
class Allocation:
    purchase_id: int
    purchase_number: str
    amount_applied_cents: int

    def to_dict(self) -> dict:
        return {
            "purchase_id": self.purchase_id,
            "purchase_number": self.purchase_number,
            "amount_applied_cents": self.amount_applied_cents,
        }


@dataclass(frozen=True)
class AllocationPlan:
    deposit_cents: int
    allocations: tuple[Allocation, ...] = field(default_factory=tuple)
    leftover_cents: int = 0

    @property
    def applied_cents(self) -> int:
        return sum(a.amount_applied_cents for a in self.allocations)

    def to_dict(self) -> dict:
        return {
            "deposit_cents": self.deposit_cents,
            "applied_cents": self.applied_cents,
            "leftover_cents": self.leftover_cents,
            "allocations": [a.to_dict() for a in self.allocations],
        }


def allocation_order_key(purchase: OutstandingPurchase):
    return (
        purchase.due_date is None,
        purchase.due_date or datetime.min,
        purchase.created_at or datetime.min,
        purchase.purchase_id,
    )


def plan_allocation(deposit_cents: int, purchases: Iterable[OutstandingPurchase]) -> AllocationPlan:
    """
    Walk outstanding purchases oldest-due first, settling as much as the
    deposit covers.

    Raises:
        ValueError: negative deposit
    """
    if deposit_cents < 0:
        raise ValueError("Deposit amount cannot be negative")

    remaining = deposit_cents
    allocations: list[Allocation] = []

    for purchase in sorted(purchases, key=allocation_order_key):
        if remaining <= 0:
            break
        applied = min(remaining, purchase.outstanding_cents)
        if applied > 0:
            allocations.append(Allocation(
                purchase_id=purchase.purchase_id,
                purchase_number=purchase.purchase_number,
                amount_applied_cents=applied,
            ))
            remaining -= applied

    return AllocationPlan(
        deposit_cents=deposit_cents,
        allocations=tuple(allocations),
        leftover_cents=remaining,
    )
