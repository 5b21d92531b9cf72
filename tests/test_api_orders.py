"""
Tests for the orders endpoint, authentication and the error envelope.
"""
import jwt

from posrewards.services.loyalty_engine import LoyaltyEngine


class TestCreateOrderApi:
    """POST /api/orders."""

    def _items(self, products):
        return [
            {'productId': products['coffee'].id, 'quantity': 2},
            {'productId': products['sandwich'].id, 'quantity': 1},
        ]

    def test_order_with_code_and_points(self, client, auth_headers, sample_store, sample_customer,
                                        sample_products, loyalty_settings, make_promotion):
        promotion = make_promotion(codes=('SAVE10',))

        response = client.post('/api/orders', headers=auth_headers, json={
            'items': self._items(sample_products),
            'customerId': sample_customer.id,
            'discountCode': 'save10',
            'paymentMethod': 'card',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['order']['subtotal'] == 17.0
        assert data['order']['discountAmount'] == 1.7
        assert data['order']['total'] == 15.3
        assert data['order']['orderNumber'].startswith('ORD-')
        assert len(data['order']['items']) == 2
        assert data['discount'] == {
            'applied': True,
            'promotionId': promotion.id,
            'discountCode': 'SAVE10',
            'discountAmount': 1.7,
        }
        assert data['loyalty']['pointsEarned'] == 15
        assert data['loyalty']['newBalance'] == 15
        assert data['warnings'] == []

    def test_order_redeeming_points(self, client, auth_headers, sample_store, sample_customer,
                                    sample_products, loyalty_settings):
        LoyaltyEngine(sample_store.id).adjust(sample_customer.id, 100)

        response = client.post('/api/orders', headers=auth_headers, json={
            'items': self._items(sample_products),
            'customerId': sample_customer.id,
            'paymentMethod': 'cash',
            'pointsToRedeem': 100,
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['order']['loyaltyDiscount'] == 1.0
        assert data['order']['total'] == 16.0
        assert data['loyalty']['pointsRedeemed'] == 100
        assert data['loyalty']['redemptionValue'] == 1.0
        assert data['loyalty']['newBalance'] == 16

    def test_anonymous_order(self, client, auth_headers, sample_products):
        response = client.post('/api/orders', headers=auth_headers, json={
            'items': self._items(sample_products),
            'paymentMethod': 'cash',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['discount']['applied'] is False
        assert data['loyalty']['pointsEarned'] == 0
        assert data['loyalty']['newBalance'] is None

    def test_exhausted_code(self, client, auth_headers, sample_products, make_promotion):
        make_promotion(codes=('ONCE',), usage_limit=1)
        body = {'items': self._items(sample_products), 'paymentMethod': 'cash', 'discountCode': 'ONCE'}

        assert client.post('/api/orders', headers=auth_headers, json=body).status_code == 201
        response = client.post('/api/orders', headers=auth_headers, json=body)

        assert response.status_code == 400
        assert response.get_json()['error']['reason'] == 'usage_limit_reached'

    def test_unknown_product(self, client, auth_headers, sample_products):
        response = client.post('/api/orders', headers=auth_headers, json={
            'items': [{'productId': 'missing', 'quantity': 1}],
            'paymentMethod': 'cash',
        })

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'PRODUCT_NOT_FOUND'

    def test_missing_payment_method(self, client, auth_headers, sample_products):
        response = client.post('/api/orders', headers=auth_headers, json={'items': self._items(sample_products)})

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'MISSING_FIELD'

    def test_non_json_body(self, client, auth_headers):
        response = client.post('/api/orders', headers={'Authorization': auth_headers['Authorization']},
                               data='items=1')

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'VALIDATION_ERROR'


class TestAuthentication:
    """Bearer token handling shared by every blueprint."""

    def test_missing_token(self, client, sample_store):
        response = client.get('/api/loyalty/settings')

        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'

    def test_wrong_secret(self, client, sample_store, token_factory):
        token = token_factory(sample_store.user_id, secret='not-the-secret')

        response = client.get('/api/loyalty/settings', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401

    def test_expired_token(self, client, sample_store, token_factory):
        token = token_factory(sample_store.user_id, expires_in=-60)

        response = client.get('/api/loyalty/settings', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401

    def test_token_without_expiry(self, client, app, sample_store):
        token = jwt.encode({'sub': sample_store.user_id}, app.config['AUTH_JWT_SECRET'], algorithm='HS256')

        response = client.get('/api/loyalty/settings', headers={'Authorization': f'Bearer {token}'})

        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'

    def test_user_without_store(self, client, app, auth_headers_for):
        class Nobody:
            user_id = 'user_without_store'

        response = client.get('/api/loyalty/settings', headers=auth_headers_for(Nobody))

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'STORE_NOT_FOUND'


class TestAppSurface:
    """Health check, request ids and framework errors."""

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy', 'service': 'posrewards'}

    def test_request_id_echoed(self, client):
        response = client.get('/health', headers={'X-Request-ID': 'abc-123'})

        assert response.headers['X-Request-ID'] == 'abc-123'

    def test_request_id_generated(self, client):
        response = client.get('/health')

        assert response.headers.get('X-Request-ID')

    def test_unknown_route(self, client):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'NOT_FOUND'

    def test_wrong_method(self, client):
        response = client.delete('/health')

        assert response.status_code == 405
