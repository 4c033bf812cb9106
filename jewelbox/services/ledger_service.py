"""
Customer debt ledger.

Four balance mutations, each appending exactly one PaymentHistory entry:

- record_sale     a bill was issued to the customer
- record_payment  the customer paid down (part of) their debt
- adjust_debt     an admin set the debt to an absolute amount
- reverse_bill    a bill linked to the customer was deleted

Customer.total_debt is a cached projection of the last entry's debt_after.
Customer.version is a SQLAlchemy version counter, so a concurrent write to
the same customer makes our flush fail with StaleDataError instead of
silently overwriting it. record_payment and adjust_debt own their
transaction and retry on that conflict; record_sale and reverse_bill run
inside the bill transaction and let bill_service retry the whole unit.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from jewelbox.exceptions import (
    NotFoundError, ConflictError, ConcurrencyConflictError, PreconditionFailedError
)
from jewelbox.models import Customer, PaymentHistory
from jewelbox.utils.formatters import money_in
from jewelbox.utils.number_format import parse_money, to_money

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def max_retries() -> int:
    if has_app_context():
        return int(current_app.config.get('LEDGER_MAX_RETRIES', 3))
    return 3


def _now():
    return datetime.now(timezone.utc)


def _balance(value) -> Decimal:
    return to_money(value or 0)


def _load_customer(session, customer_id: int) -> Customer:
    """Fresh read of the customer, discarding any stale identity-map state."""
    customer = session.query(Customer).filter(
        Customer.id == customer_id
    ).populate_existing().first()
    if not customer:
        raise NotFoundError('Customer not found')
    return customer


def _find_by_key(session, idempotency_key: str) -> Optional[PaymentHistory]:
    return session.query(PaymentHistory).filter(
        PaymentHistory.idempotency_key == idempotency_key
    ).first()


def _check_replay(existing: PaymentHistory, customer_id: int, action: str) -> None:
    """A key may only be replayed for the customer and operation it was first used for."""
    if existing.customer_id != customer_id:
        raise ConflictError('Idempotency key already used for another customer')
    if existing.idempotency_action != action:
        raise ConflictError(f'Idempotency key already used for a {existing.idempotency_action}')


def _append(customer: Customer, entry: PaymentHistory) -> PaymentHistory:
    entry.date = _now()
    customer.payment_history.append(entry)
    return entry


# ---------------------------------------------------------------------------
# Mutations (in-memory; the caller flushes/commits)
# ---------------------------------------------------------------------------

def apply_sale(customer: Customer, bill) -> PaymentHistory:
    final_amount = _balance(bill.final_amount)
    amount_paid = _balance(bill.amount_paid)
    unpaid = max(ZERO, final_amount - amount_paid)

    debt_before = _balance(customer.total_debt)
    debt_after = debt_before + unpaid

    customer.total_debt = debt_after
    customer.total_purchases = _balance(customer.total_purchases) + final_amount
    customer.total_paid = _balance(customer.total_paid) + amount_paid
    customer.bill_count = (customer.bill_count or 0) + 1

    if amount_paid >= final_amount:
        note = 'Full payment'
    elif amount_paid > 0:
        note = f'Partial payment — {money_in(unpaid)} added to debt'
    else:
        note = f'No payment — {money_in(unpaid)} added to debt'

    return _append(customer, PaymentHistory(
        bill_id=bill.id,
        bill_number=bill.bill_number,
        bill_amount=final_amount,
        amount_paid=amount_paid,
        debt_added=unpaid,
        debt_before=debt_before,
        debt_after=debt_after,
        note=note,
    ))


def apply_payment(customer: Customer, amount: Decimal, note: str = '') -> PaymentHistory:
    debt_before = _balance(customer.total_debt)
    if debt_before <= 0:
        raise PreconditionFailedError('Customer has no outstanding debt')

    # Payments never overpay past zero
    payment = min(amount, debt_before)
    debt_after = max(ZERO, debt_before - payment)

    customer.total_debt = debt_after
    customer.total_paid = _balance(customer.total_paid) + payment

    return _append(customer, PaymentHistory(
        bill_amount=ZERO,
        amount_paid=payment,
        debt_added=ZERO,
        debt_before=debt_before,
        debt_after=debt_after,
        note=note or f'Debt payment of {money_in(payment)}',
    ))


def apply_adjustment(customer: Customer, amount: Decimal, note: str = '') -> PaymentHistory:
    debt_before = _balance(customer.total_debt)
    debt_after = amount

    customer.total_debt = debt_after

    return _append(customer, PaymentHistory(
        bill_amount=ZERO,
        amount_paid=ZERO,
        debt_added=debt_after - debt_before,
        debt_before=debt_before,
        debt_after=debt_after,
        note=note or f'Debt manually adjusted from {money_in(debt_before)} to {money_in(debt_after)}',
    ))


def apply_reversal(customer: Customer, bill) -> PaymentHistory:
    final_amount = _balance(bill.final_amount)
    amount_paid = _balance(bill.amount_paid)
    unpaid = max(ZERO, final_amount - amount_paid)

    debt_before = _balance(customer.total_debt)
    debt_after = max(ZERO, debt_before - unpaid)

    customer.total_debt = debt_after
    customer.total_purchases = max(ZERO, _balance(customer.total_purchases) - final_amount)
    customer.total_paid = max(ZERO, _balance(customer.total_paid) - amount_paid)
    customer.bill_count = max(0, (customer.bill_count or 0) - 1)

    if unpaid > 0:
        note = f'Bill {bill.bill_number} deleted — {money_in(unpaid)} removed from debt'
    else:
        note = f'Bill {bill.bill_number} deleted — no unpaid amount to reverse'

    return _append(customer, PaymentHistory(
        bill_id=None,
        bill_number=bill.bill_number,
        bill_amount=final_amount,
        amount_paid=ZERO,
        debt_added=-unpaid,
        debt_before=debt_before,
        debt_after=debt_after,
        note=note,
    ))


# ---------------------------------------------------------------------------
# Bill lifecycle hooks (run inside the bill transaction)
# ---------------------------------------------------------------------------

def record_sale(session, customer: Customer, bill) -> PaymentHistory:
    """
    Record a bill issued to a customer.

    unpaid = max(0, final_amount - amount_paid) is added to the debt.
    Flushes but does not commit; a StaleDataError propagates to the caller.
    """
    entry = apply_sale(customer, bill)
    session.flush()
    logger.info(
        f"[LEDGER] customer={customer.id} sale {bill.bill_number}: "
        f"debt {entry.debt_before} -> {entry.debt_after}"
    )
    return entry


def reverse_bill(session, customer: Customer, bill) -> PaymentHistory:
    """
    Undo a bill's effect on the customer's balances before it is deleted.

    Flushes but does not commit; a StaleDataError propagates to the caller.
    """
    entry = apply_reversal(customer, bill)
    session.flush()
    logger.info(
        f"[LEDGER] customer={customer.id} reversed {bill.bill_number}: "
        f"debt {entry.debt_before} -> {entry.debt_after}"
    )
    return entry


# ---------------------------------------------------------------------------
# Standalone operations (own their transaction)
# ---------------------------------------------------------------------------

def _run_mutation(session, customer_id: int, mutate: Callable[[Customer], PaymentHistory],
                  idempotency_key: Optional[str], action: str) -> PaymentHistory:
    """
    Load, mutate and commit with optimistic-concurrency retries.

    A repeated idempotency key returns the entry recorded the first time
    without applying anything.
    """
    attempts = max_retries()
    for attempt in range(1, attempts + 1):
        try:
            if idempotency_key:
                existing = _find_by_key(session, idempotency_key)
                if existing is not None:
                    _check_replay(existing, customer_id, action)
                    logger.info(f"[LEDGER] customer={customer_id} {action} replayed (key={idempotency_key})")
                    return existing

            customer = _load_customer(session, customer_id)
            entry = mutate(customer)
            entry.idempotency_key = idempotency_key
            entry.idempotency_action = action if idempotency_key else None
            session.commit()

            logger.info(
                f"[LEDGER] customer={customer_id} {action}: "
                f"debt {entry.debt_before} -> {entry.debt_after}"
            )
            return entry

        except StaleDataError:
            session.rollback()
            logger.warning(
                f"[LEDGER] customer={customer_id} {action} conflicted "
                f"(attempt {attempt}/{attempts}), retrying"
            )
        except IntegrityError:
            session.rollback()
            if idempotency_key:
                # Same key committed by a concurrent request
                existing = _find_by_key(session, idempotency_key)
                if existing is not None:
                    _check_replay(existing, customer_id, action)
                    return existing
            raise
        except Exception:
            session.rollback()
            raise

    logger.error(f"[LEDGER] customer={customer_id} {action} gave up after {attempts} attempts")
    raise ConcurrencyConflictError()


def record_payment(session, customer_id: int, amount, note: str = '',
                   idempotency_key: Optional[str] = None) -> PaymentHistory:
    """
    Record a debt payment.

    The amount is clamped to the current debt so the balance never goes
    negative.

    Raises:
        ValidationError: amount missing or below 0.01
        NotFoundError: unknown customer
        PreconditionFailedError: the customer has no outstanding debt
        ConcurrencyConflictError: retries exhausted
    """
    amount = parse_money(amount, 'amount', minimum=Decimal('0.01'))
    note = str(note or '').strip()
    return _run_mutation(
        session, customer_id,
        lambda customer: apply_payment(customer, amount, note),
        idempotency_key, 'payment'
    )


def adjust_debt(session, customer_id: int, amount, note: str = '',
                idempotency_key: Optional[str] = None) -> PaymentHistory:
    """
    Set the customer's debt to an absolute amount (a correction, not a delta).

    The recorded debt_added is amount - debt_before and may be negative.
    """
    amount = parse_money(amount, 'amount', minimum=0)
    note = str(note or '').strip()
    return _run_mutation(
        session, customer_id,
        lambda customer: apply_adjustment(customer, amount, note),
        idempotency_key, 'adjustment'
    )


# ---------------------------------------------------------------------------
# Consistency checks
# ---------------------------------------------------------------------------

def derive_debt_from_history(customer: Customer) -> Decimal:
    """The debt implied by the ledger: the last entry's debt_after."""
    if not customer.payment_history:
        return ZERO
    return _balance(customer.payment_history[-1].debt_after)


def verify_ledger(customer: Customer) -> List[str]:
    """
    Replay the ledger and list every inconsistency found.

    Checks that entries chain (each debt_before equals the previous
    debt_after) and that total_debt matches the ledger. An empty list means
    the cached balance and the history agree.
    """
    problems = []
    previous_after = ZERO
    for index, entry in enumerate(customer.payment_history):
        debt_before = _balance(entry.debt_before)
        if debt_before != previous_after:
            problems.append(
                f'entry {index} starts at {debt_before}, previous entry ended at {previous_after}'
            )
        if _balance(entry.debt_after) < 0:
            problems.append(f'entry {index} leaves a negative debt')
        previous_after = _balance(entry.debt_after)

    derived = derive_debt_from_history(customer)
    if _balance(customer.total_debt) != derived:
        problems.append(f'total_debt {customer.total_debt} does not match ledger {derived}')
    return problems
