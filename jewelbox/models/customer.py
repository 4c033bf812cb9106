"""Customer model with its debt ledger."""
from sqlalchemy import Column, Integer, String, Text, Boolean, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelbox.database import Base, IdType


class Customer(Base):
    """
    Customer (cliente) with a running debt balance.

    total_debt, total_purchases, total_paid and bill_count are a cached
    projection of payment_history and are only changed by ledger_service.
    The version column makes every flush a compare-and-set, so two
    concurrent ledger writes on the same customer cannot both succeed.
    """

    __tablename__ = 'customer'
    __table_args__ = (
        Index('ix_customer_total_debt', 'total_debt'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=False, unique=True)
    email = Column(String(255), nullable=False, default='')
    address = Column(Text, nullable=False, default='')
    notes = Column(Text, nullable=False, default='')
    is_active = Column(Boolean, nullable=False, default=True)

    total_debt = Column(Numeric(14, 2), nullable=False, default=0)
    total_purchases = Column(Numeric(14, 2), nullable=False, default=0)
    total_paid = Column(Numeric(14, 2), nullable=False, default=0)
    bill_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    payment_history = relationship(
        'PaymentHistory',
        back_populates='customer',
        cascade='all, delete-orphan',
        order_by='PaymentHistory.id'
    )
    bills = relationship('Bill', back_populates='customer_record')

    __mapper_args__ = {'version_id_col': version}

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}', total_debt={self.total_debt})>"

    def to_dict(self, include_history=False):
        """Convert to dictionary for JSON serialization."""
        data = {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
            'address': self.address,
            'notes': self.notes,
            'is_active': self.is_active,
            'total_debt': float(self.total_debt or 0),
            'total_purchases': float(self.total_purchases or 0),
            'total_paid': float(self.total_paid or 0),
            'bill_count': self.bill_count,
        }
        if include_history:
            data['payment_history'] = [entry.to_dict() for entry in self.payment_history]
        return data


class PaymentHistory(Base):
    """
    Immutable ledger entry. One row per balance mutation.

    debt_before/debt_after capture the customer's total_debt around the
    mutation; debt_added is the signed delta that was applied.
    """

    __tablename__ = 'payment_history'

    id = Column(IdType, primary_key=True, autoincrement=True)
    customer_id = Column(IdType, ForeignKey('customer.id', ondelete='CASCADE'), nullable=False, index=True)
    bill_id = Column(IdType, ForeignKey('bill.id', ondelete='SET NULL'), nullable=True)
    bill_number = Column(String(30), nullable=True)
    bill_amount = Column(Numeric(14, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    debt_added = Column(Numeric(14, 2), nullable=False, default=0)
    debt_before = Column(Numeric(14, 2), nullable=False, default=0)
    debt_after = Column(Numeric(14, 2), nullable=False, default=0)
    note = Column(Text, nullable=False, default='')
    date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    idempotency_key = Column(String(64), unique=True, nullable=True, index=True)
    # Operation the key was first used for ('payment' or 'adjustment')
    idempotency_action = Column(String(20), nullable=True)

    customer = relationship('Customer', back_populates='payment_history')

    def __repr__(self):
        return f"<PaymentHistory(id={self.id}, customer_id={self.customer_id}, {self.debt_before} -> {self.debt_after})>"

    def to_dict(self):
        return {
            'id': self.id,
            'bill_id': self.bill_id,
            'bill_number': self.bill_number,
            'bill_amount': float(self.bill_amount or 0),
            'amount_paid': float(self.amount_paid or 0),
            'debt_added': float(self.debt_added or 0),
            'debt_before': float(self.debt_before or 0),
            'debt_after': float(self.debt_after or 0),
            'note': self.note,
            'date': self.date.isoformat() if self.date else None,
        }
