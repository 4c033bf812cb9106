"""Customer service: profile management and find-or-create for billing."""
import logging
import re
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from jewelbox.exceptions import ValidationError, NotFoundError, ConflictError
from jewelbox.models import Customer, Bill
from jewelbox.services import ledger_service
from jewelbox.utils.number_format import parse_money

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def parse_phone(value) -> str:
    phone = str(value or '').strip()
    if len(phone) < 10:
        raise ValidationError('Valid phone number is required')
    if len(phone) > 15:
        raise ValidationError('Phone number too long')
    return phone


def parse_email(value) -> str:
    email = str(value or '').strip()
    if email and not EMAIL_RE.match(email):
        raise ValidationError('Invalid email')
    return email


def parse_customer_name(value) -> str:
    name = str(value or '').strip()
    if not name:
        raise ValidationError('Customer name is required')
    if len(name) > 200:
        raise ValidationError('Customer name must be at most 200 characters')
    return name


def _check_phone_available(session, phone: str, exclude_id: Optional[int] = None) -> None:
    query = session.query(Customer).filter(Customer.phone == phone)
    if exclude_id:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        if exclude_id:
            raise ConflictError('Another customer with this phone number exists')
        raise ConflictError('A customer with this phone number already exists')


def get_customer(session, customer_id: int) -> Customer:
    customer = session.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError('Customer not found')
    return customer


def create_customer(session, data: Dict[str, Any]) -> Customer:
    """
    Create a customer.

    An opening debt ('total_debt' in the payload) is recorded as the first
    ledger entry rather than written straight onto the balance.

    Raises:
        ValidationError: invalid payload
        ConflictError: phone number already registered
    """
    name = parse_customer_name(data.get('name'))
    phone = parse_phone(data.get('phone'))
    email = parse_email(data.get('email'))
    opening_debt = parse_money(data.get('total_debt'), 'total_debt', minimum=0, default=0)

    try:
        _check_phone_available(session, phone)
        customer = Customer(
            name=name,
            phone=phone,
            email=email,
            address=str(data.get('address') or '').strip(),
            notes=str(data.get('notes') or '').strip(),
            is_active=True,
            total_debt=0,
            total_purchases=0,
            total_paid=0,
            bill_count=0,
        )
        session.add(customer)
        if opening_debt > 0:
            ledger_service.apply_adjustment(
                customer, opening_debt, 'Initial debt added when creating customer'
            )
        session.commit()
        logger.info(f"[CUSTOMER] Created {customer.id} phone={phone} opening_debt={opening_debt}")
        return customer

    except ConflictError:
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise ConflictError('A customer with this phone number already exists')
    except Exception:
        session.rollback()
        raise


def update_customer(session, customer_id: int, data: Dict[str, Any]) -> Customer:
    """
    Update contact details.

    Balances are owned by the ledger and cannot be edited here; use
    adjust-debt for corrections.
    """
    customer = get_customer(session, customer_id)

    balance_fields = {'total_debt', 'total_purchases', 'total_paid', 'bill_count'} & set(data)
    if balance_fields:
        raise ValidationError(
            f"{', '.join(sorted(balance_fields))} cannot be edited directly; use adjust-debt"
        )

    try:
        if 'name' in data:
            customer.name = parse_customer_name(data.get('name'))
        if 'phone' in data:
            phone = parse_phone(data.get('phone'))
            _check_phone_available(session, phone, exclude_id=customer.id)
            customer.phone = phone
        if 'email' in data:
            customer.email = parse_email(data.get('email'))
        if 'address' in data:
            customer.address = str(data.get('address') or '').strip()
        if 'notes' in data:
            customer.notes = str(data.get('notes') or '').strip()
        if 'is_active' in data:
            customer.is_active = bool(data['is_active'])

        session.commit()
        logger.info(f"[CUSTOMER] Updated {customer.id}")
        return customer

    except (ValidationError, ConflictError):
        session.rollback()
        raise
    except IntegrityError:
        session.rollback()
        raise ConflictError('Another customer with this phone number exists')
    except Exception:
        session.rollback()
        raise


def delete_customer(session, customer_id: int) -> int:
    """
    Deactivate a customer and unlink their bills.

    Bills are kept (they are legal records) and the ledger history stays
    attached to the deactivated customer. Returns the number of unlinked
    bills.
    """
    customer = get_customer(session, customer_id)
    try:
        unlinked = session.query(Bill).filter(
            Bill.customer_id == customer.id
        ).update({Bill.customer_id: None}, synchronize_session='fetch')
        customer.is_active = False
        session.commit()
        logger.info(f"[CUSTOMER] Deactivated {customer_id}, {unlinked} bills unlinked")
        return unlinked
    except Exception:
        session.rollback()
        raise


def find_or_create_for_bill(session, customer_id: Optional[int], snapshot: Dict[str, str]) -> Customer:
    """
    Resolve the customer a new bill belongs to.

    Tries the explicit id, then the phone number, and creates a customer as
    a last resort. Contact details are refreshed from the bill snapshot and
    an inactive customer is reactivated. Does not commit.
    """
    customer = None
    if customer_id:
        customer = session.query(Customer).filter(Customer.id == customer_id).first()
        if customer is None:
            raise NotFoundError('Customer not found')

    if customer is None and snapshot.get('phone'):
        customer = session.query(Customer).filter(Customer.phone == snapshot['phone']).first()

    if customer is None:
        customer = Customer(
            name=snapshot['name'],
            phone=snapshot['phone'],
            email=snapshot.get('email', ''),
            address=snapshot.get('address', ''),
            notes='',
            is_active=True,
            total_debt=0,
            total_purchases=0,
            total_paid=0,
            bill_count=0,
        )
        session.add(customer)
        return customer

    customer.name = snapshot['name']
    if snapshot.get('email'):
        customer.email = snapshot['email']
    if snapshot.get('address'):
        customer.address = snapshot['address']
    customer.is_active = True
    return customer
