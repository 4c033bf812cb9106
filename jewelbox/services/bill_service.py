"""
Bill service with transactional ledger updates.

A bill freezes the priced products in JSON snapshots (amounts as strings so
no precision is lost) and, in the same transaction, records the sale on the
customer's ledger. Deleting a bill reverses its ledger effect and then
removes it for good.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from jewelbox.exceptions import (
    ValidationError, NotFoundError, ConcurrencyConflictError
)
from jewelbox.models import Bill, BillItem, Customer, PaymentHistory, Product, PaymentMode
from jewelbox.services import ledger_service
from jewelbox.services.customer_service import (
    find_or_create_for_bill, parse_customer_name, parse_email, parse_phone
)
from jewelbox.services.pricing_service import Charge
from jewelbox.services.sequence_service import next_sequence, format_bill_number
from jewelbox.utils.number_format import parse_money, parse_int

logger = logging.getLogger(__name__)

PAYMENT_MODES = tuple(mode.value for mode in PaymentMode)


def _dec(value) -> str:
    return str(Decimal(value or 0))


def build_product_snapshot(product: Product) -> Dict[str, Any]:
    """Denormalised copy of a priced product as it is at time of sale."""
    return {
        'id': product.id,
        'name': product.name,
        'product_code': product.product_code,
        'description': product.description,
        'gender': product.gender,
        'metal_composition': [
            {
                'metal_id': c.metal_id,
                'variant_id': c.variant_id,
                'variant_name': c.variant_name,
                'weight_in_grams': _dec(c.weight_in_grams),
                'price_per_gram': _dec(c.price_per_gram),
                'subtotal': _dec(c.subtotal),
                'component_wastage': {'type': c.component_wastage_type, 'value': _dec(c.component_wastage_value)},
            }
            for c in product.metal_components
        ],
        'gemstone_composition': [
            {
                'gemstone_id': c.gemstone_id,
                'variant_id': c.variant_id,
                'variant_name': c.variant_name,
                'weight_in_carats': _dec(c.weight_in_carats),
                'quantity': c.quantity,
                'price_per_carat': _dec(c.price_per_carat),
                'subtotal': _dec(c.subtotal),
                'component_wastage': {'type': c.component_wastage_type, 'value': _dec(c.component_wastage_value)},
            }
            for c in product.gemstone_components
        ],
        'making_charges': {'type': product.making_charge_type, 'value': _dec(product.making_charge_value)},
        'product_wastage': {'type': product.product_wastage_type, 'value': _dec(product.product_wastage_value)},
        'gst_percentage': _dec(product.gst_percentage),
        'other_charges': list(product.other_charges or []),
        'metal_total': _dec(product.metal_total),
        'gemstone_total': _dec(product.gemstone_total),
        'making_charge_amount': _dec(product.making_charge_amount),
        'wastage_charge_amount': _dec(product.wastage_charge_amount),
        'other_charges_total': _dec(product.other_charges_total),
        'subtotal': _dec(product.subtotal),
        'gst_amount': _dec(product.gst_amount),
        'total_price': _dec(product.total_price),
        'last_price_sync': product.last_price_sync.isoformat() if product.last_price_sync else None,
    }


def _parse_customer_snapshot(data) -> Dict[str, str]:
    if not isinstance(data, dict):
        raise ValidationError('customer is required')
    return {
        'name': parse_customer_name(data.get('name')),
        'phone': parse_phone(data.get('phone')),
        'email': parse_email(data.get('email')),
        'address': str(data.get('address') or '').strip(),
    }


def _parse_items(data: Dict[str, Any]) -> List[Tuple[int, int]]:
    """[(product_id, quantity)] from 'items', or the single 'product_id'."""
    raw_items = data.get('items')
    if raw_items:
        if not isinstance(raw_items, list):
            raise ValidationError('items must be a list')
        items = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError('Each item must be an object')
            items.append((
                parse_int(raw.get('product_id'), f'items[{index}].product_id', minimum=1),
                parse_int(raw.get('quantity'), f'items[{index}].quantity', minimum=1, default=1),
            ))
        return items
    if data.get('product_id') is not None:
        return [(parse_int(data.get('product_id'), 'product_id', minimum=1), 1)]
    raise ValidationError('Either product_id or at least one item is required')


def _parse_discount(data) -> Optional[Dict[str, str]]:
    if data is None:
        return None
    charge = Charge.from_dict(data, 'discount')
    amount = parse_money(data.get('amount'), 'discount.amount', minimum=0)
    return {'type': charge.type.value, 'value': str(charge.value), 'amount': str(amount)}


def parse_bill_request(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a bill payload before anything is written."""
    final_amount = parse_money(data.get('final_amount'), 'final_amount', minimum=0)
    amount_paid = parse_money(data.get('amount_paid'), 'amount_paid', minimum=0, default=final_amount)
    payment_mode = data.get('payment_mode') or PaymentMode.CASH.value
    if payment_mode not in PAYMENT_MODES:
        raise ValidationError(f"payment_mode must be one of {', '.join(PAYMENT_MODES)}")
    customer_id = data.get('customer_id')
    return {
        'customer': _parse_customer_snapshot(data.get('customer')),
        'customer_id': parse_int(customer_id, 'customer_id', minimum=1) if customer_id else None,
        'items': _parse_items(data),
        'discount': _parse_discount(data.get('discount')),
        'final_amount': final_amount,
        'amount_paid': amount_paid,
        'payment_mode': payment_mode,
        'notes': str(data.get('notes') or '').strip(),
    }


def _find_by_key(session, idempotency_key: Optional[str]) -> Optional[Bill]:
    if not idempotency_key:
        return None
    return session.query(Bill).filter(Bill.idempotency_key == idempotency_key).first()


def _create_bill_once(session, request: Dict[str, Any], admin_id: int, prefix: str,
                      idempotency_key: Optional[str]) -> Bill:
    items = []
    for product_id, quantity in request['items']:
        product = session.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError(f'Product {product_id} not found')
        items.append((product, quantity))

    now = datetime.now(timezone.utc)
    seq = next_sequence(session, 'bill', prefix, now.year)
    bill_number = format_bill_number(prefix, now.year, seq)

    snapshots = [build_product_snapshot(product) for product, _ in items]
    bill = Bill(
        bill_number=bill_number,
        product_id=items[0][0].id,
        customer=request['customer'],
        product_snapshot=snapshots[0],
        items=[
            BillItem(position=i, product_id=product.id, quantity=quantity, product_snapshot=snapshot)
            for i, ((product, quantity), snapshot) in enumerate(zip(items, snapshots))
        ],
        discount=request['discount'],
        final_amount=request['final_amount'],
        amount_paid=request['amount_paid'],
        payment_mode=request['payment_mode'],
        notes=request['notes'],
        generated_by=admin_id,
        created_at=now,
        idempotency_key=idempotency_key,
    )
    session.add(bill)

    customer = find_or_create_for_bill(session, request['customer_id'], request['customer'])
    session.flush()

    bill.customer_id = customer.id
    ledger_service.record_sale(session, customer, bill)
    session.commit()
    return bill


def create_bill(session, data: Dict[str, Any], admin_id: int, prefix: str = 'AJ',
                idempotency_key: Optional[str] = None) -> Bill:
    """
    Issue a bill and record the sale on the customer's ledger.

    The customer is resolved by id, then by phone, and created if neither
    matches. A repeated idempotency key returns the bill created the first
    time.

    Raises:
        ValidationError: invalid payload
        NotFoundError: unknown product or customer id
        ConcurrencyConflictError: retries exhausted
    """
    request = parse_bill_request(data)

    attempts = ledger_service.max_retries()
    for attempt in range(1, attempts + 1):
        try:
            existing = _find_by_key(session, idempotency_key)
            if existing is not None:
                logger.info(f"[BILL] Replayed {existing.bill_number} (key={idempotency_key})")
                return existing

            bill = _create_bill_once(session, request, admin_id, prefix, idempotency_key)
            logger.info(
                f"[BILL] Created {bill.bill_number} customer={bill.customer_id} "
                f"final={bill.final_amount} paid={bill.amount_paid}"
            )
            return bill

        except (StaleDataError, IntegrityError) as e:
            # Concurrent write on the customer, or a racing insert of the same
            # phone/idempotency key: start over from a clean read
            session.rollback()
            logger.warning(f"[BILL] Create conflicted (attempt {attempt}/{attempts}): {e.__class__.__name__}")
        except Exception:
            session.rollback()
            raise

    existing = _find_by_key(session, idempotency_key)
    if existing is not None:
        return existing
    raise ConcurrencyConflictError()


def get_bill(session, bill_id: int) -> Bill:
    bill = session.query(Bill).filter(Bill.id == bill_id).first()
    if not bill:
        raise NotFoundError('Bill not found')
    return bill


def delete_bill(session, bill_id: int) -> Dict[str, Any]:
    """
    Reverse a bill's ledger effect and hard-delete it.

    Irreversible. Ledger entries that pointed at the bill keep its number
    but lose the reference.
    """
    attempts = ledger_service.max_retries()
    for attempt in range(1, attempts + 1):
        try:
            bill = get_bill(session, bill_id)
            bill_number = bill.bill_number
            customer_id = bill.customer_id
            reversal = None

            if customer_id:
                customer = session.query(Customer).filter(
                    Customer.id == customer_id
                ).populate_existing().first()
                if customer is not None:
                    session.query(PaymentHistory).filter(
                        PaymentHistory.bill_id == bill.id
                    ).update({PaymentHistory.bill_id: None}, synchronize_session='fetch')
                    reversal = ledger_service.reverse_bill(session, customer, bill)

            session.delete(bill)
            session.commit()
            logger.info(f"[BILL] Deleted {bill_number} customer={customer_id}")

            return {
                'bill_number': bill_number,
                'customer_id': customer_id,
                'reversal': reversal.to_dict() if reversal is not None else None,
            }

        except StaleDataError:
            session.rollback()
            logger.warning(f"[BILL] Delete of {bill_id} conflicted (attempt {attempt}/{attempts})")
        except Exception:
            session.rollback()
            raise

    raise ConcurrencyConflictError()
