"""
Integration tests for the JSON API endpoints.
"""

from datetime import datetime, timezone
from decimal import Decimal

from jewelbox.models import Bill, Customer, PriceHistory


def _bill_json(product, customer, final_amount, amount_paid):
    return {
        'customer_id': customer.id,
        'customer': {'name': customer.name, 'phone': customer.phone},
        'product_id': product.id,
        'final_amount': final_amount,
        'amount_paid': amount_paid,
        'payment_mode': 'upi',
    }


class TestCatalogAPI:

    def test_create_and_list_metal(self, authenticated_client):
        response = authenticated_client.post('/api/metals', json={
            'name': 'Silver',
            'variants': [{'name': '925', 'purity': 92.5, 'price_per_gram': 95}],
        })
        assert response.status_code == 201
        assert response.json['metal']['variants'][0]['price_per_gram'] == 95.0

        response = authenticated_client.get('/api/metals')
        assert [m['name'] for m in response.json['metals']] == ['Silver']

    def test_metal_without_variants(self, authenticated_client):
        response = authenticated_client.post('/api/metals', json={'name': 'Platinum', 'variants': []})

        assert response.status_code == 400

    def test_duplicate_gemstone(self, authenticated_client, diamond):
        response = authenticated_client.post('/api/gemstones', json={
            'name': 'Diamond',
            'variants': [{'name': 'SI1', 'price_per_carat': 30000}],
        })

        assert response.status_code == 409

    def test_get_missing(self, client):
        response = client.get('/api/gemstones/99')

        assert response.status_code == 404
        assert response.json['message'] == 'Gemstone not found'


class TestProductsAPI:

    def test_create_ignores_client_prices(self, authenticated_client, gold):
        response = authenticated_client.post('/api/products', json={
            'name': 'Gold Bangle',
            'metal_composition': [
                {'metal_id': gold.id, 'variant_id': gold.variants[0].id, 'weight_in_grams': 10},
            ],
            'total_price': 1,
            'gst_amount': 0,
        })

        assert response.status_code == 201
        product = response.json['product']
        # 10 x 5000, default GST 3%
        assert product['subtotal'] == 50000.0
        assert product['total_price'] == 51500.0
        assert product['product_code'] == 'AJ-G-001'

    def test_unknown_metal(self, authenticated_client):
        response = authenticated_client.post('/api/products', json={
            'name': 'Ghost',
            'metal_composition': [{'metal_id': 5, 'variant_id': 1, 'weight_in_grams': 1}],
        })

        assert response.status_code == 404

    def test_bad_charge_type(self, authenticated_client, gold):
        response = authenticated_client.post('/api/products', json={
            'name': 'Odd',
            'metal_composition': [{'metal_id': gold.id, 'variant_id': gold.variants[0].id, 'weight_in_grams': 1}],
            'making_charges': {'type': 'per-gram', 'value': 10},
        })

        assert response.status_code == 400

    def test_get_and_delete(self, authenticated_client, ring):
        product_id = ring.id
        response = authenticated_client.get(f'/api/products/{product_id}')
        assert response.json['product']['total_price'] == 50000.0

        response = authenticated_client.delete(f'/api/products/{product_id}')
        assert response.status_code == 200
        assert authenticated_client.get(f'/api/products/{product_id}').status_code == 404


class TestPricingAPI:

    def test_preview(self, authenticated_client, gold, ring):
        response = authenticated_client.get('/api/pricing/preview', query_string={
            'entity_type': 'metal',
            'entity_id': gold.id,
            'variant_id': gold.variants[0].id,
            'new_price': '6000',
        })

        assert response.status_code == 200
        preview = response.json['preview']
        assert preview['affected_count'] == 1
        assert preview['old_price'] == 5000.0
        assert preview['products'][0]['price_difference'] == 10000.0

    def test_preview_missing_price(self, authenticated_client, gold):
        response = authenticated_client.get('/api/pricing/preview', query_string={
            'entity_type': 'metal', 'entity_id': gold.id, 'variant_id': gold.variants[0].id,
        })

        assert response.status_code == 400

    def test_sync_and_history(self, authenticated_client, session, admin, gold, ring):
        admin_id = admin.id
        response = authenticated_client.post('/api/pricing/sync', json={
            'entity_type': 'metal',
            'entity_id': gold.id,
            'variant_id': gold.variants[0].id,
            'new_price': 6000,
        })

        assert response.status_code == 200
        assert response.json['message'] == 'Updated 1 products'
        assert session.query(PriceHistory).one().changed_by == admin_id

        response = authenticated_client.get('/api/pricing/history')
        history = response.json['history']
        assert len(history) == 1
        assert history[0]['old_price'] == 5000.0
        assert history[0]['new_price'] == 6000.0

    def test_catalog_edit_cannot_change_rate(self, authenticated_client, gold):
        variants = [
            {'id': gold.variants[0].id, 'name': '22K', 'purity': 91.6, 'price_per_gram': 7000},
            {'id': gold.variants[1].id, 'name': '18K', 'purity': 75, 'price_per_gram': 4000},
        ]
        response = authenticated_client.put(f'/api/metals/{gold.id}', json={'variants': variants})

        assert response.status_code == 400


class TestCustomersAPI:

    def test_create_with_opening_debt(self, authenticated_client):
        response = authenticated_client.post('/api/customers', json={
            'name': 'Meera Iyer',
            'phone': '9988776655',
            'total_debt': 2500,
        })

        assert response.status_code == 201
        assert response.json['customer']['total_debt'] == 2500.0

    def test_duplicate_phone(self, authenticated_client, customer):
        response = authenticated_client.post('/api/customers', json={
            'name': 'Someone', 'phone': customer.phone,
        })

        assert response.status_code == 409

    def test_pay_debt(self, authenticated_client, indebted_customer):
        url = f'/api/customers/{indebted_customer.id}/pay-debt'
        response = authenticated_client.post(
            url,
            json={'amount': 1500},
            headers={'Idempotency-Key': 'counter-7'},
        )

        assert response.status_code == 200
        assert response.json['customer']['total_debt'] == 3500.0
        assert response.json['message'] == 'Debt payment of ₹1,500'

        replay = authenticated_client.post(
            url,
            json={'amount': 1500},
            headers={'Idempotency-Key': 'counter-7'},
        )
        assert replay.json['entry']['id'] == response.json['entry']['id']
        assert replay.json['customer']['total_debt'] == 3500.0

    def test_pay_debt_without_debt(self, authenticated_client, customer):
        response = authenticated_client.post(f'/api/customers/{customer.id}/pay-debt', json={'amount': 100})

        assert response.status_code == 422

    def test_pay_debt_invalid_amount(self, authenticated_client, indebted_customer):
        response = authenticated_client.post(f'/api/customers/{indebted_customer.id}/pay-debt', json={'amount': -5})

        assert response.status_code == 400

    def test_pay_debt_oversized_amount(self, authenticated_client, indebted_customer):
        url = f'/api/customers/{indebted_customer.id}/pay-debt'

        assert authenticated_client.post(url, json={'amount': '1e30'}).status_code == 400
        assert authenticated_client.post(url, json={'amount': 1e13}).status_code == 400

    def test_adjust_debt(self, authenticated_client, indebted_customer):
        response = authenticated_client.post(
            f'/api/customers/{indebted_customer.id}/adjust-debt',
            json={'new_debt': 4000, 'note': 'Returned earrings'},
        )

        assert response.status_code == 200
        assert response.json['entry']['debt_added'] == -1000.0
        assert response.json['entry']['note'] == 'Returned earrings'

    def test_ledger(self, authenticated_client, indebted_customer):
        response = authenticated_client.get(f'/api/customers/{indebted_customer.id}/ledger')

        assert response.status_code == 200
        assert response.json['consistent'] is True
        assert response.json['derived_debt'] == 5000.0
        assert len(response.json['entries']) == 1

    def test_debt_pdf(self, authenticated_client, indebted_customer):
        response = authenticated_client.get(f'/api/customers/{indebted_customer.id}/debt-pdf')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')
        assert 'debt-statement-rahul-verma-' in response.headers['Content-Disposition']

    def test_export_debts(self, authenticated_client, customer, indebted_customer):
        response = authenticated_client.get('/api/customers/export-debts')

        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        lines = response.data.decode('utf-8').strip().splitlines()
        assert lines[0].startswith('customer_name,phone')
        assert lines[1].startswith('Rahul Verma,9123456780')
        assert len(lines) == 3

    def test_delete_is_soft(self, authenticated_client, session, admin, ring, customer):
        customer_id = customer.id
        authenticated_client.post('/api/bills', json=_bill_json(ring, customer, 5000, 5000))

        response = authenticated_client.delete(f'/api/customers/{customer_id}')

        assert response.status_code == 200
        assert response.json['unlinked_bills'] == 1
        session.expire_all()
        assert session.get(Customer, customer_id).is_active is False
        assert session.query(Bill).one().customer_id is None


class TestBillsAPI:

    def test_create_bill(self, authenticated_client, session, ring, customer):
        customer_id = customer.id
        expected_total = str(Decimal(ring.total_price))
        response = authenticated_client.post('/api/bills', json=_bill_json(ring, customer, 5000, 2000))

        assert response.status_code == 201
        bill = response.json['bill']
        assert bill['bill_number'] == f'AJ-{datetime.now(timezone.utc).year}-0001'
        assert bill['amount_due'] == 3000.0
        assert bill['product_snapshot']['total_price'] == expected_total

        session.expire_all()
        assert session.get(Customer, customer_id).total_debt == Decimal('3000')

    def test_bill_numbers_increase(self, authenticated_client, ring, customer):
        payload = _bill_json(ring, customer, 100, 100)
        first = authenticated_client.post('/api/bills', json=payload)
        second = authenticated_client.post('/api/bills', json=payload)

        assert first.json['bill']['bill_number'].endswith('-0001')
        assert second.json['bill']['bill_number'].endswith('-0002')

    def test_new_customer_created_from_bill(self, authenticated_client, session, ring):
        response = authenticated_client.post('/api/bills', json={
            'customer': {'name': 'Walk-in Buyer', 'phone': '9000011111'},
            'product_id': ring.id,
            'final_amount': 1000,
            'amount_paid': 0,
        })

        assert response.status_code == 201
        customer = session.query(Customer).filter_by(phone='9000011111').one()
        assert customer.total_debt == Decimal('1000')

    def test_walk_in_phone_too_long(self, authenticated_client, session, ring):
        response = authenticated_client.post('/api/bills', json={
            'customer': {'name': 'Walk-in Buyer', 'phone': '+91 90000 11111 ext 42'},
            'product_id': ring.id,
            'final_amount': 1000,
            'amount_paid': 0,
        })

        assert response.status_code == 400
        assert response.json['message'] == 'Phone number too long'
        assert session.query(Customer).count() == 0
        assert session.query(Bill).count() == 0

    def test_invalid_payment_mode(self, authenticated_client, ring, customer):
        payload = _bill_json(ring, customer, 100, 100)
        payload['payment_mode'] = 'barter'

        response = authenticated_client.post('/api/bills', json=payload)

        assert response.status_code == 400

    def test_delete_bill_reverses_ledger(self, authenticated_client, session, ring, indebted_customer):
        customer_id = indebted_customer.id
        created = authenticated_client.post('/api/bills', json=_bill_json(ring, indebted_customer, 5000, 2000))
        bill_id = created.json['bill']['id']

        response = authenticated_client.delete(f'/api/bills/{bill_id}')

        assert response.status_code == 200
        assert response.json['result']['reversal']['debt_added'] == -3000.0
        session.expire_all()
        assert session.get(Customer, customer_id).total_debt == Decimal('5000')
        assert authenticated_client.get(f'/api/bills/{bill_id}').status_code == 404


class TestBillReportsAPI:

    def test_bill_pdf(self, authenticated_client, make_ring, ring, customer):
        chain = make_ring(gst=3, weight='4.5', name='Gold Chain')
        created = authenticated_client.post('/api/bills', json={
            'customer_id': customer.id,
            'customer': {'name': customer.name, 'phone': customer.phone, 'address': 'MG Road, Pune'},
            'items': [
                {'product_id': ring.id, 'quantity': 2},
                {'product_id': chain.id},
            ],
            'discount': {'type': 'fixed', 'value': 500, 'amount': 500},
            'final_amount': 122675,
            'amount_paid': 100000,
            'payment_mode': 'bank_transfer',
            'notes': 'Deliver after hallmarking',
        })
        bill_id = created.json['bill']['id']
        bill_number = created.json['bill']['bill_number']

        response = authenticated_client.get(f'/api/bills/{bill_id}/pdf')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')
        assert f'Bill-{bill_number}.pdf' in response.headers['Content-Disposition']

    def test_bill_pdf_missing(self, authenticated_client):
        response = authenticated_client.get('/api/bills/404/pdf')

        assert response.status_code == 404

    def test_export_by_period(self, authenticated_client, session, ring, customer):
        old = authenticated_client.post('/api/bills', json=_bill_json(ring, customer, 5000, 2000)).json['bill']
        new = authenticated_client.post('/api/bills', json=_bill_json(ring, customer, 1000, 1000)).json['bill']
        bill = session.get(Bill, old['id'])
        bill.created_at = datetime(2020, 1, 15, 10, 0, tzinfo=timezone.utc)
        session.commit()

        response = authenticated_client.get('/api/bills/export', query_string={
            'period': 'custom', 'from': '2020-01-01', 'to': '2020-01-31',
        })
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert 'Bills-2020-01-01-to-2020-01-31.csv' in response.headers['Content-Disposition']
        lines = response.data.decode('utf-8').strip().splitlines()
        assert lines[0].startswith('bill_number,date,customer_name')
        assert lines[1] == f"{old['bill_number']},2020-01-15,Priya Sharma,9876543210,Gold Ring,5000.00,2000.00,3000.00,UPI"
        assert lines[2] == ',,,,Total (1 bills),5000.00,2000.00,3000.00,'

        monthly = authenticated_client.get('/api/bills/export?period=monthly').data.decode('utf-8')
        assert new['bill_number'] in monthly
        assert old['bill_number'] not in monthly

        everything = authenticated_client.get('/api/bills/export').data.decode('utf-8').strip().splitlines()
        assert [line.split(',')[0] for line in everything[1:3]] == [new['bill_number'], old['bill_number']]
        assert everything[-1].startswith(',,,,Total (2 bills),6000.00')

    def test_export_rejects_unknown_period(self, authenticated_client):
        response = authenticated_client.get('/api/bills/export?period=weekly')

        assert response.status_code == 400
