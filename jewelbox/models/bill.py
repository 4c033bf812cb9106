"""Bill model."""
from sqlalchemy import Column, String, Text, Integer, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.sql import func
from jewelbox.database import Base, IdType
import enum


class PaymentMode(str, enum.Enum):
    """How the paid part of a bill was settled."""
    CASH = 'cash'
    CARD = 'card'
    UPI = 'upi'
    BANK_TRANSFER = 'bank_transfer'


class Bill(Base):
    """
    Bill issued for one or more products.

    Immutable once created: product snapshots freeze the priced product so
    later rate changes never alter an issued bill.
    """

    __tablename__ = 'bill'

    id = Column(IdType, primary_key=True, autoincrement=True)
    bill_number = Column(String(30), nullable=False, unique=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='SET NULL'), nullable=True)

    # Customer snapshot {name, phone, email, address}
    customer = Column(JSON, nullable=False)
    customer_id = Column(IdType, ForeignKey('customer.id', ondelete='SET NULL'), nullable=True, index=True)

    product_snapshot = Column(JSON, nullable=True)
    discount = Column(JSON, nullable=True)  # {type, value, amount}
    final_amount = Column(Numeric(14, 2), nullable=False)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    payment_mode = Column(String(20), nullable=False, default=PaymentMode.CASH.value)
    notes = Column(Text, nullable=False, default='')
    generated_by = Column(IdType, ForeignKey('admin.id'), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    # Idempotency key to prevent duplicate bills on double-submit
    idempotency_key = Column(String(64), unique=True, nullable=True, index=True)

    # Relationships
    items = relationship('BillItem', back_populates='bill', cascade='all, delete-orphan', order_by='BillItem.position')
    customer_record = relationship('Customer', back_populates='bills')
    admin = relationship('Admin')

    @hybrid_property
    def amount_due(self):
        """Amount still owed on this bill."""
        return (self.final_amount or 0) - (self.amount_paid or 0)

    def __repr__(self):
        return f"<Bill(id={self.id}, number='{self.bill_number}', final_amount={self.final_amount})>"

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'bill_number': self.bill_number,
            'product_id': self.product_id,
            'customer': self.customer,
            'customer_id': self.customer_id,
            'product_snapshot': self.product_snapshot,
            'items': [item.to_dict() for item in self.items],
            'discount': self.discount,
            'final_amount': float(self.final_amount or 0),
            'amount_paid': float(self.amount_paid or 0),
            'amount_due': float(self.amount_due),
            'payment_mode': self.payment_mode,
            'notes': self.notes,
            'generated_by': self.generated_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class BillItem(Base):
    """One product line of a bill with its frozen snapshot."""

    __tablename__ = 'bill_item'

    id = Column(IdType, primary_key=True, autoincrement=True)
    bill_id = Column(IdType, ForeignKey('bill.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='SET NULL'), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    product_snapshot = Column(JSON, nullable=False)

    bill = relationship('Bill', back_populates='items')

    def __repr__(self):
        return f"<BillItem(bill_id={self.bill_id}, product_id={self.product_id}, qty={self.quantity})>"

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'quantity': self.quantity,
            'product_snapshot': self.product_snapshot,
        }
