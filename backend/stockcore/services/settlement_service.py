# Overview: Service-layer operations for settlement; allocates a received payment across a contact's open transactions.

"""
Payment Settlement Service

WHY: A customer pays (or we pay a supplier) a lump sum that has to be spread
over several open invoices. The spread must be deterministic, exact, and
must never credit more than was received.

ALLOCATION RULE (oldest debt first):
1. Open transactions = payment_status in (due, partial) for the contact,
   restricted to sales (receivable) or purchases (payable).
2. Sort by transaction_date ascending, then id ascending.
3. Walk the list: applied = min(remaining, total_amount - paid_amount).
4. Stop when the payment is used up or the list ends.

DESIGN PRINCIPLES:
- Outstanding balance is always total_amount - paid_amount read from the row.
  It is never estimated.
- sum(applied) + unapplied_remainder == payment amount, always.
- A remainder (overpayment) is returned, never dropped and never turned into
  credit here. What to do with it is the caller's policy.
- settle_payment holds the contact lock from the read of open transactions
  to the write of the new paid amounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..exceptions import InvalidPaymentAmount, RecordNotFound, SettlementSideError
from ..extensions import db
from ..models import Contact, OutstandingTransaction
from ..numeric import MONEY_DECIMAL_PLACES, ZERO, exceeds_places, to_decimal
from stockcore.time_utils import utcnow
from .concurrency import conflict_guard, finish, lock_for_update


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_DUE = "due"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

OPEN_PAYMENT_STATUSES = [PAYMENT_STATUS_DUE, PAYMENT_STATUS_PARTIAL]


# =============================================================================
# SETTLEMENT SIDES (CONSTANTS)
# =============================================================================

KIND_SALE = "sale"
KIND_PURCHASE = "purchase"

SIDE_RECEIVABLE = "receivable"
SIDE_PAYABLE = "payable"

SIDE_KINDS = {
    SIDE_RECEIVABLE: KIND_SALE,
    SIDE_PAYABLE: KIND_PURCHASE,
}

CONTACT_TYPE_SIDES = {
    "customer": [SIDE_RECEIVABLE],
    "supplier": [SIDE_PAYABLE],
    "both": [SIDE_RECEIVABLE, SIDE_PAYABLE],
}


@dataclass(frozen=True)
class PaymentAllocation:
    transaction_id: int
    amount_applied: Decimal

    def to_dict(self) -> dict:
        return {"transaction_id": self.transaction_id, "amount_applied": str(self.amount_applied)}


@dataclass(frozen=True)
class AllocationResult:
    payment_amount: Decimal
    allocations: tuple[PaymentAllocation, ...]
    unapplied_remainder: Decimal

    @property
    def total_applied(self) -> Decimal:
        return sum((a.amount_applied for a in self.allocations), ZERO)

    def to_dict(self) -> dict:
        return {
            "payment_amount": str(self.payment_amount),
            "allocations": [a.to_dict() for a in self.allocations],
            "total_applied": str(self.total_applied),
            "unapplied_remainder": str(self.unapplied_remainder),
        }


@dataclass(frozen=True)
class SettlementResult:
    contact_id: int
    side: str
    allocation: AllocationResult
    statuses: dict[int, str] = field(default_factory=dict)
    reference: str | None = None

    @property
    def allocations(self) -> tuple[PaymentAllocation, ...]:
        return self.allocation.allocations

    @property
    def unapplied_remainder(self) -> Decimal:
        return self.allocation.unapplied_remainder

    def to_dict(self) -> dict:
        data = self.allocation.to_dict()
        data.update({
            "contact_id": self.contact_id,
            "side": self.side,
            "reference": self.reference,
            "statuses": {str(k): v for k, v in self.statuses.items()},
        })
        return data


# =============================================================================
# PURE RULES
# =============================================================================

def derive_payment_status(paid_amount, total_amount) -> str:
    """
    due iff nothing paid, paid iff fully paid, partial otherwise.

    Exception to "due iff paid == 0": a zero-total transaction (0 of 0) is
    paid, not due. Nothing is owed on it, so it must leave the open list
    and never absorb a payment.
    """
    paid = to_decimal(paid_amount)
    total = to_decimal(total_amount)
    if paid < ZERO or paid > total:
        raise ValueError(f"paid amount {paid} outside 0..{total}")
    if paid == total:
        return PAYMENT_STATUS_PAID
    if paid == ZERO:
        return PAYMENT_STATUS_DUE
    return PAYMENT_STATUS_PARTIAL


def coerce_payment_amount(amount) -> Decimal:
    """
    Raises:
        InvalidPaymentAmount: not a number, zero/negative, or finer than a cent.
    """
    try:
        value = to_decimal(amount)
    except ValueError as exc:
        raise InvalidPaymentAmount(amount, "not a number") from exc
    if value <= ZERO:
        raise InvalidPaymentAmount(amount)
    if exceeds_places(value, MONEY_DECIMAL_PLACES):
        raise InvalidPaymentAmount(amount, f"more than {MONEY_DECIMAL_PLACES} decimal places")
    return value


def _allocation_order(transaction):
    return (transaction.transaction_date, transaction.id)


def allocate_payment(transactions, amount) -> AllocationResult:
    """
    Spread `amount` over `transactions`, oldest first, without side effects.

    `transactions` are rows (or row-like objects) already filtered to one
    contact and side; rows with nothing outstanding are skipped.
    """
    payment_amount = coerce_payment_amount(amount)

    remaining = payment_amount
    allocations = []
    for transaction in sorted(transactions, key=_allocation_order):
        if remaining == ZERO:
            break
        outstanding = to_decimal(transaction.total_amount) - to_decimal(transaction.paid_amount)
        applied = min(remaining, outstanding)
        if applied > ZERO:
            allocations.append(PaymentAllocation(transaction_id=transaction.id, amount_applied=applied))
            remaining -= applied

    return AllocationResult(
        payment_amount=payment_amount,
        allocations=tuple(allocations),
        unapplied_remainder=remaining,
    )


def resolve_side(contact: Contact, side: str | None) -> str:
    """
    Pick receivable/payable for a contact. Only an unambiguous contact type
    lets the side be inferred; a 'both' contact must say which.
    """
    allowed = CONTACT_TYPE_SIDES.get(contact.contact_type)
    if not allowed:
        raise SettlementSideError(contact.id, f"unknown contact type {contact.contact_type!r}")

    if side is None:
        if len(allowed) > 1:
            raise SettlementSideError(contact.id, "contact is both customer and supplier; side is required")
        return allowed[0]

    if side not in SIDE_KINDS:
        raise SettlementSideError(contact.id, f"invalid side {side!r}; must be one of {list(SIDE_KINDS)}")
    if side not in allowed:
        raise SettlementSideError(contact.id, f"{contact.contact_type} contact has no {side} side")
    return side


# =============================================================================
# OUTSTANDING-TRANSACTION SOURCE
# =============================================================================

def get_contact(contact_id: int, *, lock: bool = False) -> Contact:
    query = db.session.query(Contact).filter_by(id=contact_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    contact = query.first()
    if contact is None:
        raise RecordNotFound("contact", contact_id)
    return contact


def list_outstanding(contact_id: int, kind: str, *, lock: bool = False) -> list[OutstandingTransaction]:
    """Open (due/partial) transactions of one kind for a contact, oldest first."""
    query = db.session.query(OutstandingTransaction).filter(
        OutstandingTransaction.contact_id == contact_id,
        OutstandingTransaction.kind == kind,
        OutstandingTransaction.payment_status.in_(OPEN_PAYMENT_STATUSES),
    ).order_by(
        OutstandingTransaction.transaction_date.asc(),
        OutstandingTransaction.id.asc(),
    )
    if lock:
        query = lock_for_update(query).populate_existing()
    return query.all()


def _write_paid_amount(transaction: OutstandingTransaction, new_paid_amount: Decimal) -> str:
    status = derive_payment_status(new_paid_amount, transaction.total_amount)
    transaction.paid_amount = new_paid_amount
    transaction.payment_status = status
    return status


def update_paid_amount(
    transaction_id: int,
    new_paid_amount,
    new_status: str | None = None,
    *,
    commit: bool = True,
) -> OutstandingTransaction:
    """
    Set a transaction's authoritative paid amount.

    new_status, when given, must equal the status derived from the amount;
    the stored status is always the derived one.
    """
    with conflict_guard("outstanding_transaction", transaction_id):
        query = db.session.query(OutstandingTransaction).filter_by(id=transaction_id)
        transaction = lock_for_update(query).populate_existing().first()
        if transaction is None:
            raise RecordNotFound("outstanding_transaction", transaction_id)

        paid = to_decimal(new_paid_amount)
        derived = derive_payment_status(paid, transaction.total_amount)
        if new_status is not None and new_status != derived:
            raise ValueError(f"status {new_status!r} does not match paid amount (expected {derived!r})")

        _write_paid_amount(transaction, paid)
        finish(commit)

    return transaction


# =============================================================================
# SETTLEMENT
# =============================================================================

def get_outstanding_balance(contact_id: int, side: str | None = None) -> Decimal:
    """Total still owed on one side of a contact (suggested default payment)."""
    contact = get_contact(contact_id)
    kind = SIDE_KINDS[resolve_side(contact, side)]
    return sum(
        (to_decimal(t.total_amount) - to_decimal(t.paid_amount) for t in list_outstanding(contact_id, kind)),
        ZERO,
    )


def preview_settlement(contact_id: int, amount, side: str | None = None) -> AllocationResult:
    """Allocation a payment would produce right now. Reads only; may be stale by the time it is settled."""
    payment_amount = coerce_payment_amount(amount)
    contact = get_contact(contact_id)
    kind = SIDE_KINDS[resolve_side(contact, side)]
    return allocate_payment(list_outstanding(contact_id, kind), payment_amount)


def settle_payment(
    contact_id: int,
    amount,
    side: str | None = None,
    *,
    reference: str | None = None,
    commit: bool = True,
) -> SettlementResult:
    """
    Apply a received payment to a contact's open transactions.

    WHY one critical section: fetch open rows -> allocate -> write paid
    amounts all happen under the contact lock, so a racing payment for the
    same contact either waits or fails with ConcurrencyConflict; it can never
    re-apply against a transaction this call just settled.

    Args:
        contact_id: Customer/supplier receiving the payment
        amount: Payment amount (> 0, at most 2 decimal places)
        side: 'receivable' (sales) or 'payable' (purchases); required for
            contacts that are both
        reference: Receipt/voucher number, echoed in the result and log

    Returns:
        SettlementResult with allocations, unapplied remainder, and the new
        payment_status of every touched transaction

    Raises:
        InvalidPaymentAmount, SettlementSideError, RecordNotFound,
        ConcurrencyConflict
    """
    payment_amount = coerce_payment_amount(amount)

    with conflict_guard("contact", contact_id):
        contact = get_contact(contact_id, lock=True)
        side = resolve_side(contact, side)

        open_transactions = list_outstanding(contact_id, SIDE_KINDS[side], lock=True)
        allocation = allocate_payment(open_transactions, payment_amount)

        by_id = {t.id: t for t in open_transactions}
        statuses = {}
        for item in allocation.allocations:
            transaction = by_id[item.transaction_id]
            new_paid = to_decimal(transaction.paid_amount) + item.amount_applied
            statuses[transaction.id] = _write_paid_amount(transaction, new_paid)

        # Bumps the contact's version so racing settlements collide here
        contact.last_settled_at = utcnow()
        finish(commit)

    current_app.logger.info(
        "Settled %s %s for contact %s across %d transaction(s) (ref=%s)",
        side, payment_amount, contact_id, len(allocation.allocations), reference,
    )
    if allocation.unapplied_remainder > ZERO:
        current_app.logger.warning(
            "Payment for contact %s exceeds recorded %s debt; unapplied remainder %s",
            contact_id, side, allocation.unapplied_remainder,
        )

    return SettlementResult(
        contact_id=contact_id,
        side=side,
        allocation=allocation,
        statuses=statuses,
        reference=reference,
    )
