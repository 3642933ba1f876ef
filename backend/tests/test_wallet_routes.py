# Overview: Pytest coverage for the wallet HTTP API.

"""
Wallet API Tests

Exercises the JSON surface end to end through the Flask test client:
status codes, the {"success": ..., "data"/"error": ...} envelope, and the
shop scoping done by @require_shop.
"""

from hirepay.models import Customer, WalletTransaction


def _url(shop, path=""):
    return f"/api/shops/{shop.slug}/wallet{path}"


class TestAuthentication:
    def test_login_and_me(self, client, db_session, shop_admin):
        response = client.post("/api/auth/login", json={"email": "admin@accra.test", "password": "Password123!"})
        assert response.status_code == 200
        token = response.get_json()["data"]["token"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        data = me.get_json()["data"]
        assert data["user"]["email"] == "admin@accra.test"
        assert data["shops"][0]["role"] == "SHOP_ADMIN"

    def test_bad_password(self, client, db_session, shop_admin):
        response = client.post("/api/auth/login", json={"email": "admin@accra.test", "password": "wrong"})
        assert response.status_code == 401
        assert response.get_json()["success"] is False

    def test_logout_revokes_token(self, client, db_session, shop_admin, auth_headers, shop):
        headers = auth_headers(shop_admin)
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get(_url(shop, "/stats"), headers=headers).status_code == 401

    def test_missing_token(self, client, db_session, shop):
        response = client.get(_url(shop, "/stats"))
        assert response.status_code == 401


class TestShopScoping:
    def test_unknown_shop(self, client, db_session, shop_admin, auth_headers):
        response = client.get("/api/shops/nowhere/wallet/stats", headers=auth_headers(shop_admin))
        assert response.status_code == 403
        assert response.get_json() == {"success": False, "error": "Shop not found"}

    def test_shop_without_membership(self, client, db_session, shop_admin, other_shop, auth_headers):
        response = client.get(_url(other_shop, "/stats"), headers=auth_headers(shop_admin))
        assert response.status_code == 403


class TestDepositFlow:
    def test_create_then_confirm(self, client, db_session, shop, customer, wallet_staff, shop_admin, auth_headers, make_purchase):
        purchase = make_purchase(customer, 2000)

        created = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": customer.id, "amount_cents": 5000, "payment_method": "CASH"},
            headers=auth_headers(wallet_staff),
        )
        assert created.status_code == 201
        txn_id = created.get_json()["data"]["id"]
        assert created.get_json()["data"]["created_by_name"] == "Kofi Sales"

        pending = client.get(_url(shop, "/pending"), headers=auth_headers(shop_admin)).get_json()["data"]
        assert [t["id"] for t in pending] == [txn_id]

        confirmed = client.post(_url(shop, f"/deposits/{txn_id}/confirm"), headers=auth_headers(shop_admin))
        assert confirmed.status_code == 200
        body = confirmed.get_json()["data"]
        assert body["transaction"]["status"] == "CONFIRMED"
        assert body["allocation"]["applied_cents"] == 2000
        assert body["allocation"]["leftover_cents"] == 3000
        assert body["payments_applied"][0]["purchase_id"] == purchase.id
        assert body["payments_applied"][0]["completed"] is True
        assert body["payments_applied"][0]["waybill_number"].startswith("WB-")

        assert db_session.get(Customer, customer.id).wallet_balance_cents == 5000

    def test_invalid_amount(self, client, db_session, shop, customer, wallet_staff, auth_headers):
        response = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": customer.id, "amount_cents": 0, "payment_method": "CASH"},
            headers=auth_headers(wallet_staff),
        )
        assert response.status_code == 400
        assert db_session.query(WalletTransaction).count() == 0

    def test_unknown_customer(self, client, db_session, shop, wallet_staff, auth_headers):
        response = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": 9999, "amount_cents": 100, "payment_method": "CASH"},
            headers=auth_headers(wallet_staff),
        )
        assert response.status_code == 404

    def test_staff_cannot_confirm(self, client, db_session, shop, customer, wallet_staff, auth_headers):
        headers = auth_headers(wallet_staff)
        txn_id = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": customer.id, "amount_cents": 100, "payment_method": "CASH"},
            headers=headers,
        ).get_json()["data"]["id"]

        response = client.post(_url(shop, f"/deposits/{txn_id}/confirm"), headers=headers)
        assert response.status_code == 403

    def test_second_confirm_is_not_found(self, client, db_session, shop, customer, shop_admin, auth_headers):
        headers = auth_headers(shop_admin)
        txn_id = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": customer.id, "amount_cents": 100, "payment_method": "CASH"},
            headers=headers,
        ).get_json()["data"]["id"]

        assert client.post(_url(shop, f"/deposits/{txn_id}/confirm"), headers=headers).status_code == 200
        again = client.post(_url(shop, f"/deposits/{txn_id}/confirm"), headers=headers)
        assert again.status_code == 404
        assert again.get_json()["error"] == "Transaction not found or already processed"

    def test_failed_confirmation_is_409(self, client, db_session, shop, customer, shop_admin, auth_headers, make_purchase, monkeypatch):
        from hirepay.services import wallet_service

        make_purchase(customer, 2000)
        headers = auth_headers(shop_admin)
        txn_id = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": customer.id, "amount_cents": 100, "payment_method": "CASH"},
            headers=headers,
        ).get_json()["data"]["id"]

        def _boom(*args, **kwargs):
            raise RuntimeError("simulated fault")

        monkeypatch.setattr(wallet_service, "_apply_allocations", _boom)

        response = client.post(_url(shop, f"/deposits/{txn_id}/confirm"), headers=headers)
        assert response.status_code == 409
        assert db_session.get(WalletTransaction, txn_id).status == "PENDING"

    def test_reject(self, client, db_session, shop, customer, shop_admin, auth_headers):
        headers = auth_headers(shop_admin)
        txn_id = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": customer.id, "amount_cents": 100, "payment_method": "CASH"},
            headers=headers,
        ).get_json()["data"]["id"]

        missing_reason = client.post(_url(shop, f"/deposits/{txn_id}/reject"), json={}, headers=headers)
        assert missing_reason.status_code == 400

        response = client.post(_url(shop, f"/deposits/{txn_id}/reject"), json={"reason": "Bounced"}, headers=headers)
        assert response.status_code == 200
        assert response.get_json()["data"]["status"] == "REJECTED"


class TestAdminRoutes:
    def test_adjust_requires_business_admin(self, client, db_session, shop, customer, shop_admin, business_admin, auth_headers):
        payload = {"amount_cents": 250, "description": "Promo credit", "is_addition": True}

        denied = client.post(_url(shop, f"/customers/{customer.id}/adjust"), json=payload, headers=auth_headers(shop_admin))
        assert denied.status_code == 403

        allowed = client.post(_url(shop, f"/customers/{customer.id}/adjust"), json=payload, headers=auth_headers(business_admin))
        assert allowed.status_code == 200
        assert allowed.get_json()["data"]["balance_after_cents"] == 250

    def test_toggle_staff_permission(self, client, db_session, shop, plain_staff, business_admin, auth_headers):
        member_id = plain_staff.shop_memberships[0].id
        response = client.post(_url(shop, f"/staff/{member_id}/toggle"), headers=auth_headers(business_admin))
        assert response.status_code == 200
        assert response.get_json()["data"]["can_load_wallet"] is True

    def test_ledger_filters(self, client, db_session, shop, customer, shop_admin, wallet_staff, auth_headers):
        headers = auth_headers(shop_admin)
        txn_id = client.post(
            _url(shop, "/deposits"),
            json={"customer_id": customer.id, "amount_cents": 100, "payment_method": "CASH"},
            headers=headers,
        ).get_json()["data"]["id"]

        pending = client.get(_url(shop, "/transactions?status=PENDING&type=DEPOSIT"), headers=headers)
        assert pending.status_code == 200
        assert [t["id"] for t in pending.get_json()["data"]] == [txn_id]

        # A bare "to" date covers the whole day
        today = db_session.get(WalletTransaction, txn_id).created_at.date().isoformat()
        same_day = client.get(_url(shop, f"/transactions?from={today}&to={today}"), headers=headers)
        assert [t["id"] for t in same_day.get_json()["data"]] == [txn_id]

        assert client.get(_url(shop, "/transactions?from=yesterday"), headers=headers).status_code == 400
        assert client.get(_url(shop, "/transactions?status=SETTLED"), headers=headers).status_code == 400
        assert client.get(_url(shop, "/transactions"), headers=auth_headers(wallet_staff)).status_code == 403

    def test_staff_permissions_listing(self, client, db_session, shop, plain_staff, shop_admin, business_admin, auth_headers):
        response = client.get(_url(shop, "/staff"), headers=auth_headers(business_admin))
        assert response.status_code == 200
        rows = {r["email"]: r for r in response.get_json()["data"]}
        assert rows["esi@accra.test"]["can_load_wallet"] is False
        assert rows["esi@accra.test"]["shop_name"] == shop.name

        assert client.get(_url(shop, "/staff"), headers=auth_headers(shop_admin)).status_code == 403

    def test_stats_and_customers(self, client, db_session, shop, customer, wallet_staff, auth_headers):
        headers = auth_headers(wallet_staff)
        stats = client.get(_url(shop, "/stats"), headers=headers).get_json()["data"]
        assert stats["can_load_wallet"] is True

        customers = client.get(_url(shop, "/customers"), headers=headers).get_json()["data"]
        assert customers[0]["id"] == customer.id

        history = client.get(_url(shop, f"/customers/{customer.id}/transactions"), headers=headers)
        assert history.status_code == 200
        assert history.get_json()["data"] == []


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get("/api/system/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"
