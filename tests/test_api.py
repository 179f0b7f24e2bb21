from httpx import ASGITransport, AsyncClient

from conftest import RecordingPublisher, bearer, fill_cart, make_user

CHECKOUT_BODY = {
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
    "payment_method": "CARD",
    "payment_method_token": "pm_card_visa",
}


class TestPublicEndpoints:

    async def test_health(self, app_client):
        resp = await app_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "running"

    async def test_register_login_me(self, app_client):
        resp = await app_client.post(
            "/api/auth/register",
            json={"username": "dave", "email": "dave@example.com", "password": "pass1234"},
        )
        assert resp.status_code == 201
        assert resp.json()["roles"] == ["ROLE_USER"]

        resp = await app_client.post("/api/auth/login", json={"username": "dave", "password": "pass1234"})
        assert resp.status_code == 200
        token = resp.json()["access_token"]

        resp = await app_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["username"] == "dave"

    async def test_register_validates_email(self, app_client):
        resp = await app_client.post(
            "/api/auth/register", json={"username": "eve", "email": "not-an-email", "password": "pass1234"}
        )
        assert resp.status_code == 422

    async def test_catalog_reads_are_public(self, app_client, mug):
        resp = await app_client.get("/api/products")
        assert resp.status_code == 200
        assert [p["name"] for p in resp.json()] == ["Mug"]

        resp = await app_client.get("/api/products/search/price-range", params={"minPrice": "20", "maxPrice": "5"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid price range."


class TestAuthorization:

    async def test_catalog_writes_require_admin(self, app_client, session_factory, alice):
        body = {"name": "Teapot", "price": "25.00", "stock_quantity": 3}

        assert (await app_client.post("/api/products", json=body)).status_code == 401
        assert (await app_client.post("/api/products", json=body, headers=bearer(alice))).status_code == 403

        admin = await make_user(session_factory, "root", admin=True)
        resp = await app_client.post("/api/products", json=body, headers=bearer(admin, admin=True))
        assert resp.status_code == 201
        assert resp.json()["price"] == "25.00"

    async def test_admin_endpoints_require_admin(self, app_client, session_factory, alice):
        assert (await app_client.get("/api/admin/dashboard/stats", headers=bearer(alice))).status_code == 403

        admin = await make_user(session_factory, "root", admin=True)
        resp = await app_client.get("/api/admin/dashboard/stats", headers=bearer(admin, admin=True))
        assert resp.status_code == 200
        assert resp.json()["total_users"] == 3

        resp = await app_client.get("/api/admin/notifications/dead-letters", headers=bearer(admin, admin=True))
        assert resp.status_code == 200
        assert resp.json() == []


class TestCheckoutFlow:

    async def test_cart_to_order(self, app_client, dispatcher, alice, mug):
        headers = bearer(alice)

        resp = await app_client.post("/api/cart/add", json={"product_id": mug.id, "quantity": 2}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["total_amount"] == "20.00"

        resp = await app_client.post("/api/orders/place", json=CHECKOUT_BODY, headers=headers)
        assert resp.status_code == 201
        order = resp.json()
        assert order["status"] == "PROCESSING"
        assert order["payment_status"] == "COMPLETED"
        assert order["total_amount"] == "20.00"
        assert len(dispatcher.enqueued) == 1

        resp = await app_client.get("/api/cart", headers=headers)
        assert resp.json()["items"] == []

        resp = await app_client.get("/api/orders", headers=headers)
        assert [o["id"] for o in resp.json()] == [order["id"]]

        resp = await app_client.get(f"/api/products/{mug.id}")
        assert resp.json()["stock_quantity"] == 3

    async def test_insufficient_stock_is_400(self, app_client, session_factory, alice, mug):
        await fill_cart(session_factory, alice.id, [(mug, 9)])
        resp = await app_client.post("/api/orders/place", json=CHECKOUT_BODY, headers=bearer(alice))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Insufficient stock for product: Mug. Available stock: 5"

    async def test_declined_payment_is_402(self, app_client, session_factory, gateway, alice, mug):
        gateway.outcome = "declined"
        await fill_cart(session_factory, alice.id, [(mug, 1)])
        resp = await app_client.post("/api/orders/place", json=CHECKOUT_BODY, headers=bearer(alice))
        assert resp.status_code == 402

    async def test_checkout_request_is_validated(self, app_client, alice):
        resp = await app_client.post("/api/orders/place", json={"street": "1 Main St"}, headers=bearer(alice))
        assert resp.status_code == 422

    async def test_orders_are_private(self, app_client, session_factory, alice, bob, mug):
        await fill_cart(session_factory, alice.id, [(mug, 1)])
        order_id = (await app_client.post("/api/orders/place", json=CHECKOUT_BODY, headers=bearer(alice))).json()["id"]

        assert (await app_client.get(f"/api/orders/{order_id}", headers=bearer(bob))).status_code == 404
        assert (await app_client.get(f"/api/orders/{order_id}", headers=bearer(alice))).status_code == 200

    async def test_status_update(self, app_client, session_factory, alice, mug):
        await fill_cart(session_factory, alice.id, [(mug, 1)])
        order_id = (await app_client.post("/api/orders/place", json=CHECKOUT_BODY, headers=bearer(alice))).json()["id"]
        admin = await make_user(session_factory, "root", admin=True)

        url = f"/api/orders/{order_id}/status"
        assert (await app_client.put(url, params={"status": "SHIPPED"}, headers=bearer(alice))).status_code == 403

        resp = await app_client.put(url, params={"status": "SHIPPED"}, headers=bearer(admin, admin=True))
        assert resp.status_code == 200
        assert resp.json()["status"] == "SHIPPED"

        assert (await app_client.put(url, headers=bearer(admin, admin=True))).status_code == 400
        resp = await app_client.put("/api/orders/99999/status", params={"status": "SHIPPED"}, headers=bearer(admin, admin=True))
        assert resp.status_code == 404


class TestConsumerApp:

    async def test_requires_internal_key(self, session_factory):
        from services.notification_service.consumer import OrderConfirmationConsumer
        from services.notification_service.main import notification_app
        from services.notification_service.repository import DeadLetterStore

        publisher = RecordingPublisher()
        notification_app.state.confirmation_consumer = OrderConfirmationConsumer(
            publisher, DeadLetterStore(session_factory), max_attempts=1, backoff=0
        )
        payload = {"order_id": 1, "username": "alice", "total_amount": "5.00", "status": "PROCESSING", "items": []}

        async with AsyncClient(transport=ASGITransport(app=notification_app), base_url="http://test") as client:
            resp = await client.post("/order-confirmations", json=payload)
            assert resp.status_code == 403

            resp = await client.post(
                "/order-confirmations", json=payload, headers={"X-Internal-API-Key": "test-internal-key"}
            )
            assert resp.status_code == 202
            assert resp.json() == {"status": "published"}

        assert len(publisher.published) == 1
