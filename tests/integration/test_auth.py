"""
Integration tests for admin authentication and authorization.
"""

from flask import session as flask_session


class TestLogin:
    """Test the admin login flow."""

    def test_login_success(self, client, admin):
        admin_id, admin_email = admin.id, admin.email
        with client:
            response = client.post('/api/auth/login', json={
                'email': 'Admin@Jewelbox.test',
                'password': 'password123',
            })

            assert response.status_code == 200
            assert response.json['admin']['email'] == admin_email
            assert response.json['admin']['last_login'] is not None
            assert flask_session['admin_user_id'] == admin_id

    def test_login_wrong_password(self, client, admin):
        response = client.post('/api/auth/login', json={
            'email': admin.email,
            'password': 'wrong-password',
        })

        assert response.status_code == 401
        assert response.json['status'] == 'error'
        assert response.json['message'] == 'Invalid email or password'

    def test_login_unknown_email(self, client):
        response = client.post('/api/auth/login', json={
            'email': 'nobody@jewelbox.test',
            'password': 'password123',
        })

        assert response.status_code == 401

    def test_login_requires_both_fields(self, client):
        response = client.post('/api/auth/login', json={'email': 'admin@jewelbox.test'})

        assert response.status_code == 400

    def test_logout_clears_session(self, authenticated_client):
        response = authenticated_client.post('/api/auth/logout')
        assert response.status_code == 200

        response = authenticated_client.get('/api/auth/me')
        assert response.status_code == 401


class TestAuthorization:
    """Mutations require an admin session."""

    def test_me(self, authenticated_client, admin):
        response = authenticated_client.get('/api/auth/me')

        assert response.status_code == 200
        assert response.json['admin']['id'] == admin.id

    def test_mutations_rejected_without_session(self, client, gold, customer):
        assert client.post('/api/metals', json={'name': 'Platinum'}).status_code == 401
        assert client.post(f'/api/customers/{customer.id}/pay-debt', json={'amount': 10}).status_code == 401
        assert client.post('/api/bills', json={}).status_code == 401
        assert client.post('/api/pricing/sync', json={}).status_code == 401

    def test_stale_session_rejected(self, client, session):
        with client.session_transaction() as sess:
            sess['admin_user_id'] = 4242

        response = client.get('/api/auth/me')

        assert response.status_code == 401
        assert response.json['message'] == 'Invalid admin session'

    def test_csrf_token_endpoint(self, client):
        response = client.get('/api/auth/csrf-token')

        assert response.status_code == 200
        assert response.json['csrf_token']


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200

    def test_cache_health_degrades(self, client):
        response = client.get('/health/cache')

        assert response.status_code == 200
        assert response.json['status'] == 'degraded'

    def test_metrics_exposed(self, client):
        response = client.get('/metrics')

        assert response.status_code == 200
        assert b'jewelbox_ledger_mutations_total' in response.data

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert response.json['status'] == 'error'
