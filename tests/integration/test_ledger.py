"""
Integration tests for the customer debt ledger.
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from jewelbox.database import get_database
from jewelbox.exceptions import (
    ConcurrencyConflictError, ConflictError, NotFoundError, PreconditionFailedError, ValidationError
)
from jewelbox.models import Customer, PaymentHistory
from jewelbox.services import bill_service, ledger_service


def _bill_payload(product, customer, final_amount, amount_paid):
    return {
        'customer_id': customer.id,
        'customer': {'name': customer.name, 'phone': customer.phone},
        'product_id': product.id,
        'final_amount': final_amount,
        'amount_paid': amount_paid,
        'payment_mode': 'cash',
    }


def _other_session():
    """Independent session on the same database, standing in for a concurrent request."""
    return sessionmaker(bind=get_database().engine)()


class TestSequentialConsistency:
    """Sale, payments and clamp in sequence."""

    def test_sale_then_payments(self, session, admin, ring, customer):
        bill_service.create_bill(session, _bill_payload(ring, customer, 5000, 2000), admin.id)
        session.refresh(customer)
        assert customer.total_debt == Decimal('3000')

        ledger_service.record_payment(session, customer.id, 1500)
        session.refresh(customer)
        assert customer.total_debt == Decimal('1500')
        assert customer.total_paid == Decimal('3500')

        entry = ledger_service.record_payment(session, customer.id, 9999)
        session.refresh(customer)
        assert entry.amount_paid == Decimal('1500')
        assert customer.total_debt == 0
        assert customer.total_paid == Decimal('5000')

        assert len(customer.payment_history) == 3
        assert ledger_service.verify_ledger(customer) == []

    def test_payment_without_debt_is_rejected(self, session, customer):
        with pytest.raises(PreconditionFailedError):
            ledger_service.record_payment(session, customer.id, 100)

        session.refresh(customer)
        assert customer.payment_history == []

    def test_payment_amount_validated(self, session, indebted_customer):
        with pytest.raises(ValidationError):
            ledger_service.record_payment(session, indebted_customer.id, 0)
        with pytest.raises(ValidationError):
            ledger_service.record_payment(session, indebted_customer.id, 'lots')

    def test_oversized_amount_rejected_before_writing(self, session, indebted_customer):
        customer_id = indebted_customer.id
        with pytest.raises(ValidationError):
            ledger_service.record_payment(session, customer_id, '1e30')
        with pytest.raises(ValidationError):
            ledger_service.adjust_debt(session, customer_id, '10000000000000')

        session.refresh(indebted_customer)
        assert indebted_customer.total_debt == Decimal('5000')
        assert len(indebted_customer.payment_history) == 1

    def test_unknown_customer(self, session):
        with pytest.raises(NotFoundError):
            ledger_service.record_payment(session, 9999, 100)


class TestAdjustments:

    def test_opening_debt_is_a_ledger_entry(self, session, indebted_customer):
        entries = indebted_customer.payment_history

        assert indebted_customer.total_debt == Decimal('5000')
        assert len(entries) == 1
        assert entries[0].debt_added == Decimal('5000')
        assert entries[0].note == 'Initial debt added when creating customer'

    def test_adjust_down_records_negative_delta(self, session, indebted_customer):
        entry = ledger_service.adjust_debt(session, indebted_customer.id, 1200, note='Settled in gold')
        session.refresh(indebted_customer)

        assert indebted_customer.total_debt == Decimal('1200')
        assert entry.debt_added == Decimal('-3800')
        assert entry.note == 'Settled in gold'
        assert ledger_service.verify_ledger(indebted_customer) == []

    def test_adjust_rejects_negative_target(self, session, indebted_customer):
        with pytest.raises(ValidationError):
            ledger_service.adjust_debt(session, indebted_customer.id, -1)


class TestBillReversal:

    def test_delete_restores_every_balance(self, session, admin, ring, indebted_customer):
        customer = indebted_customer
        before = (customer.total_debt, customer.total_purchases, customer.total_paid, customer.bill_count)

        bill = bill_service.create_bill(session, _bill_payload(ring, customer, 5000, 2000), admin.id)
        session.refresh(customer)
        assert customer.total_debt == Decimal('8000')

        result = bill_service.delete_bill(session, bill.id)
        session.refresh(customer)

        assert (customer.total_debt, customer.total_purchases, customer.total_paid, customer.bill_count) == before
        assert result['reversal']['debt_added'] == -3000.0
        assert ledger_service.verify_ledger(customer) == []

    def test_reversal_entry_keeps_bill_number(self, session, admin, ring, customer):
        bill = bill_service.create_bill(session, _bill_payload(ring, customer, 1000, 1000), admin.id)
        bill_number = bill.bill_number

        bill_service.delete_bill(session, bill.id)
        entries = session.query(PaymentHistory).filter_by(customer_id=customer.id).order_by(PaymentHistory.id).all()

        assert [e.bill_number for e in entries] == [bill_number, bill_number]
        assert all(e.bill_id is None for e in entries)
        assert entries[1].note == f'Bill {bill_number} deleted — no unpaid amount to reverse'


class TestIdempotency:
    """A retried mutation with the same key is applied once."""

    def test_payment_replayed(self, session, indebted_customer):
        first = ledger_service.record_payment(session, indebted_customer.id, 1000, idempotency_key='pay-1')
        second = ledger_service.record_payment(session, indebted_customer.id, 1000, idempotency_key='pay-1')
        session.refresh(indebted_customer)

        assert first.id == second.id
        assert indebted_customer.total_debt == Decimal('4000')
        assert len(indebted_customer.payment_history) == 2

    def test_key_reused_for_other_customer(self, session, indebted_customer, customer):
        ledger_service.record_payment(session, indebted_customer.id, 1000, idempotency_key='pay-2')

        with pytest.raises(ConflictError):
            ledger_service.adjust_debt(session, customer.id, 10, idempotency_key='pay-2')

    def test_key_reused_for_other_operation(self, session, indebted_customer):
        ledger_service.record_payment(session, indebted_customer.id, 1000, idempotency_key='pay-3')

        with pytest.raises(ConflictError) as exc_info:
            ledger_service.adjust_debt(session, indebted_customer.id, 10, idempotency_key='pay-3')

        assert 'payment' in exc_info.value.message
        session.refresh(indebted_customer)
        assert indebted_customer.total_debt == Decimal('4000')
        assert len(indebted_customer.payment_history) == 2

    def test_bill_replayed(self, session, admin, ring, customer):
        payload = _bill_payload(ring, customer, 5000, 0)
        first = bill_service.create_bill(session, payload, admin.id, idempotency_key='bill-1')
        second = bill_service.create_bill(session, payload, admin.id, idempotency_key='bill-1')
        session.refresh(customer)

        assert first.id == second.id
        assert customer.total_debt == Decimal('5000')
        assert customer.bill_count == 1


class TestConcurrency:
    """Concurrent writes to the same customer never lose an update."""

    def test_stale_write_is_detected(self, session, indebted_customer):
        other = _other_session()
        try:
            mine = session.get(Customer, indebted_customer.id)
            assert mine.total_debt == Decimal('5000')
            theirs = other.get(Customer, indebted_customer.id)

            ledger_service.apply_payment(theirs, Decimal('1000'))
            other.commit()

            ledger_service.apply_payment(mine, Decimal('500'))
            with pytest.raises(StaleDataError):
                session.commit()
            session.rollback()
        finally:
            other.close()

    def test_racing_payment_is_retried(self, session, indebted_customer, monkeypatch):
        """A payment committed between our read and our write is kept, and ours reapplies on top."""
        customer_id = indebted_customer.id
        original_load = ledger_service._load_customer
        raced = []

        def racing_load(db_session, cid):
            customer = original_load(db_session, cid)
            if not raced:
                raced.append(True)
                other = _other_session()
                try:
                    ledger_service.record_payment(other, cid, 1000)
                finally:
                    other.close()
            return customer

        monkeypatch.setattr(ledger_service, '_load_customer', racing_load)

        ledger_service.record_payment(session, customer_id, 500)
        customer = session.get(Customer, customer_id)
        session.refresh(customer)

        assert customer.total_debt == Decimal('3500')
        assert customer.total_paid == Decimal('1500')
        assert [e.amount_paid for e in customer.payment_history] == [0, Decimal('1000'), Decimal('500')]
        assert ledger_service.verify_ledger(customer) == []

    def test_gives_up_after_retry_budget(self, session, indebted_customer, monkeypatch, app):
        """If every attempt races, the caller gets a retryable conflict."""
        app.config['LEDGER_MAX_RETRIES'] = 2
        original_load = ledger_service._load_customer

        def always_racing(db_session, cid):
            customer = original_load(db_session, cid)
            other = _other_session()
            try:
                theirs = other.get(Customer, cid)
                theirs.notes = f'touched {theirs.version}'
                other.commit()
            finally:
                other.close()
            return customer

        monkeypatch.setattr(ledger_service, '_load_customer', always_racing)

        with pytest.raises(ConcurrencyConflictError):
            ledger_service.record_payment(session, indebted_customer.id, 500)

        session.refresh(indebted_customer)
        assert indebted_customer.total_debt == Decimal('5000')
