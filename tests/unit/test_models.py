"""
Unit tests for SQLAlchemy models.
"""

import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from jewelbox.models import Admin, Customer, Metal, MetalVariant, Counter


class TestAdminModel:
    """Tests for Admin model."""

    def test_password_hashing(self, session):
        admin = Admin(email='owner@example.com')
        admin.set_password('securepassword')
        session.add(admin)
        session.commit()

        assert admin.id is not None
        assert admin.password_hash != 'securepassword'
        assert admin.check_password('securepassword') is True
        assert admin.check_password('wrong') is False

    def test_email_unique(self, session, admin):
        duplicate = Admin(email=admin.email, password_hash='x')
        session.add(duplicate)

        with pytest.raises(IntegrityError):
            session.commit()


class TestCustomerModel:
    """Tests for Customer model."""

    def test_version_counter_increments(self, session):
        customer = Customer(name='Anita', phone='9000000001')
        session.add(customer)
        session.commit()
        assert customer.version == 1

        customer.notes = 'Prefers 18K'
        session.commit()
        assert customer.version == 2

    def test_phone_unique(self, session, customer):
        session.add(Customer(name='Someone Else', phone=customer.phone))

        with pytest.raises(IntegrityError):
            session.commit()

    def test_to_dict_balances_are_numbers(self, session, indebted_customer):
        data = indebted_customer.to_dict(include_history=True)

        assert data['total_debt'] == 5000.0
        assert len(data['payment_history']) == 1
        assert data['payment_history'][0]['debt_after'] == 5000.0


class TestCatalogModels:
    """Tests for Metal/MetalVariant models."""

    def test_variant_rate_alias(self, session):
        metal = Metal(name='Silver', slug='silver', variants=[
            MetalVariant(name='925', purity=Decimal('92.5'), price_per_gram=Decimal('95.5')),
        ])
        session.add(metal)
        session.commit()

        variant = metal.variants[0]
        assert variant.rate == Decimal('95.5')
        assert metal.to_dict()['variants'][0]['price_per_gram'] == 95.5

    def test_counter_unique_per_name_and_year(self, session):
        session.add(Counter(name='bill', prefix='AJ', year=2026, seq=1))
        session.commit()
        session.add(Counter(name='bill', prefix='AJ', year=2026, seq=1))

        with pytest.raises(IntegrityError):
            session.commit()
