"""Tests for the FastAPI routes."""

from bson import ObjectId


class TestHealth:
    def test_root(self, api_client):
        assert api_client.get("/").status_code == 200

    def test_database_status(self, api_client):
        data = api_client.get("/test").json()
        assert data["connection_status"] == "Connected"

    def test_database_unavailable(self, api_client, monkeypatch):
        import main

        monkeypatch.setattr(main, "db", None)
        response = api_client.get("/admin/orders")
        assert response.status_code == 500
        assert response.json()["detail"] == "Database not available"


class TestAuth:
    def test_register_and_login(self, api_client):
        response = api_client.post("/auth/register", json={"name": "Asha", "email": "asha@gmail.com", "password": "pw"})
        assert response.status_code == 200
        login = api_client.post("/auth/login", json={"email": "asha@gmail.com", "password": "pw"})
        assert login.status_code == 200
        assert login.json()["id"] == response.json()["id"]

    def test_duplicate_registration(self, api_client, make_user):
        make_user(email="asha@gmail.com")
        response = api_client.post("/auth/register", json={"name": "Asha", "email": "asha@gmail.com", "password": "pw"})
        assert response.status_code == 400

    def test_inactive_login_refused(self, api_client, make_user):
        make_user(email="old@gmail.com", is_active=False)
        response = api_client.post("/auth/login", json={"email": "old@gmail.com", "password": "secret"})
        assert response.status_code == 403


class TestCheckout:
    def test_custom_blouse_checkout(self, api_client, db, make_user, checkout_payload):
        user_id = make_user()
        item = {"product_id": "custom-blouse", "final_price": 2950, "custom_design": {"front_design": "Boat neck"}}
        response = api_client.post("/orders", json=checkout_payload(user_id, [item]))
        assert response.status_code == 200
        order = response.json()["order"]
        assert order["order_number"].startswith("ORD-")
        assert "user" not in order
        assert order["order_items"][0]["product_id"] == "custom-blouse"
        assert db["customorder"].find_one()["order_id"] == order["id"]

    def test_invalid_item_is_client_error(self, api_client, db, make_user, checkout_payload):
        user_id = make_user()
        items = [{"product_id": "not-a-real-or-virtual-id", "final_price": 100}]
        response = api_client.post("/orders", json=checkout_payload(user_id, items))
        assert response.status_code == 400
        assert "Invalid item" in response.json()["detail"]
        assert db["order"].count_documents({}) == 0

    def test_unknown_user(self, api_client, checkout_payload):
        items = [{"product_id": "custom-blouse", "final_price": 100}]
        response = api_client.post("/orders", json=checkout_payload(str(ObjectId()), items))
        assert response.status_code == 404

    def test_empty_cart_rejected(self, api_client, make_user, checkout_payload):
        response = api_client.post("/orders", json=checkout_payload(make_user(), []))
        assert response.status_code == 422


class TestOrderListing:
    def test_customer_listing_filters_dummy_orders(self, api_client, make_user, make_order):
        user_id = make_user()
        make_order(user_id, "ORD-445566", total=2950, minutes=10)
        make_order(user_id, "DEMO-000001", total=500, minutes=20)
        make_order(user_id, "ORD-445567", total=0, minutes=30)
        make_order(user_id, "ORD-445568", items=0, minutes=40)

        response = api_client.get("/orders", params={"user_id": user_id})
        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        data = response.json()
        assert [o["order_number"] for o in data["orders"]] == ["ORD-445566"]
        assert data["meta"] == {"total": 1, "filtered": 3}

    def test_demo_account_sees_own_orders(self, api_client, make_user, make_order):
        user_id = make_user(email="demo@example.com")
        make_order(user_id, "ORD-300001")
        data = api_client.get("/orders", params={"user_id": user_id}).json()
        assert [o["order_number"] for o in data["orders"]] == ["ORD-300001"]

    def test_admin_listing_uses_strict_rules(self, api_client, make_user, make_order):
        jane = make_user()
        demo = make_user(email="demo@example.com")
        tester = make_user(email="test@example.com")
        make_order(jane, "ORD-445566", minutes=1)
        make_order(demo, "ORD-300001", minutes=2)
        make_order(tester, "ORD-300002", minutes=3)

        data = api_client.get("/admin/orders").json()
        assert [o["order_number"] for o in data["orders"]] == ["ORD-445566"]
        assert data["orders"][0]["user"]["email"] == "jane@outlook.com"
        assert data["meta"]["filtered"] == 2

    def test_order_detail(self, api_client, make_user, make_order):
        order_id = make_order(make_user(), "ORD-300003")
        assert api_client.get(f"/orders/{order_id}").json()["order"]["order_number"] == "ORD-300003"
        assert api_client.get(f"/orders/{ObjectId()}").status_code == 404

    def test_order_detail_hides_excluded_orders(self, api_client, make_user, make_order):
        jane = make_user()
        demo_order = make_order(jane, "DEMO-000001")
        empty_order = make_order(jane, "ORD-300004", items=0)
        assert api_client.get(f"/orders/{demo_order}").status_code == 404
        assert api_client.get(f"/orders/{empty_order}").status_code == 404

    def test_order_detail_includes_custom_orders(self, api_client, make_user, checkout_payload):
        item = {"product_id": "custom-blouse", "final_price": 2950, "custom_design": {"front_design": "Boat neck"}}
        order_id = api_client.post("/orders", json=checkout_payload(make_user(), [item])).json()["order"]["id"]
        order = api_client.get(f"/orders/{order_id}").json()["order"]
        assert order["custom_orders"][0]["front_design"] == "Boat neck"


class TestAdminOrders:
    def test_status_update(self, api_client, make_user, make_order):
        order_id = make_order(make_user(), "ORD-400001")
        response = api_client.patch(f"/admin/orders/{order_id}/status", json={"status": "CONFIRMED"})
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "CONFIRMED"

    def test_invalid_status(self, api_client, make_user, make_order):
        order_id = make_order(make_user(), "ORD-400002")
        response = api_client.patch(f"/admin/orders/{order_id}/status", json={"status": "LOST"})
        assert response.status_code == 422

    def test_advance_until_delivered(self, api_client, make_user, make_order):
        order_id = make_order(make_user(), "ORD-400003")
        statuses = [api_client.post(f"/admin/orders/{order_id}/advance").json()["order"]["status"] for _ in range(4)]
        assert statuses == ["CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"]
        assert api_client.post(f"/admin/orders/{order_id}/advance").status_code == 400

    def test_cleanup(self, api_client, db, make_user, make_order):
        make_order(make_user(email="dummy@shop.in"), "ORD-400004")
        assert api_client.post("/admin/orders/cleanup").json()["deleted"]["order"] == 0
        response = api_client.post("/admin/orders/cleanup", params={"dry_run": False})
        assert response.json()["deleted"]["order"] == 1
        assert db["order"].count_documents({}) == 0

    def test_cleanup_keeps_inactive_users_orders(self, api_client, db, make_user, make_order):
        make_order(make_user(email="asha@gmail.com", is_active=False), "ORD-482913", total=4200)
        data = api_client.post("/admin/orders/cleanup", params={"dry_run": False}).json()
        assert data["deleted"]["order"] == 0
        assert [e["reason"] for e in data["skipped"]] == ["inactive_user"]
        assert db["order"].count_documents({"order_number": "ORD-482913"}) == 1


class TestDashboard:
    def test_dashboard_counts_only_legitimate_orders(self, api_client, db, make_user, make_product, make_order):
        product_id = make_product(name="Zari Blouse", final_price=1500, stock=3)
        jane = make_user()
        make_order(jane, "ORD-500001", total=1500, product_id=product_id, payment_status="COMPLETED", minutes=1)
        make_order(jane, "ORD-500002", total=700, product_id=product_id, minutes=2)
        make_order(make_user(email="sample@shop.in"), "ORD-500003", total=9000, payment_status="COMPLETED")
        api_client.post("/admin/virtual-products/setup")

        data = api_client.get("/admin/dashboard").json()
        assert data["total_sales"] == 1500
        assert data["total_orders"] == 2
        assert [o["id"] for o in data["recent_orders"]] == ["ORD-500002", "ORD-500001"]
        assert data["top_products"][0]["name"] == "Zari Blouse"
        assert data["top_products"][0]["sales"] == 2
        assert [p["name"] for p in data["low_stock_products"]] == ["Zari Blouse"]


class TestCustomOrders:
    def test_lists_legitimate_custom_orders_with_measurements(self, api_client, db, make_user, checkout_payload):
        jane = make_user()
        demo = make_user(email="demo@example.com")
        fake = make_user(email="placeholder@shop.in")
        item = {"product_id": "custom-blouse", "final_price": 2000, "custom_design": {}}
        for user_id in (jane, demo, fake):
            assert api_client.post("/orders", json=checkout_payload(user_id, [item])).status_code == 200
        api_client.post("/measurements", json={"user_id": jane, "garment_type": "blouse", "values": {"bust": 34}})

        data = api_client.get("/admin/custom-orders").json()
        emails = sorted(o["user"]["email"] for o in data["orders"])
        assert emails == ["demo@example.com", "jane@outlook.com"]
        assert data["measurement_stats"] == {"total": 2, "with_measurements": 1, "pending": 1}

    def _custom_order_id(self, api_client, user_id, checkout_payload):
        item = {"product_id": "custom-blouse", "final_price": 2000, "custom_design": {}}
        order = api_client.post("/orders", json=checkout_payload(user_id, [item])).json()["order"]
        return order["custom_orders"][0]["id"]

    def test_customer_lists_and_cancels(self, api_client, make_user, checkout_payload):
        jane = make_user()
        custom_id = self._custom_order_id(api_client, jane, checkout_payload)
        listing = api_client.get("/custom-orders", params={"user_id": jane}).json()
        assert [c["id"] for c in listing["custom_orders"]] == [custom_id]

        response = api_client.patch(f"/custom-orders/{custom_id}/cancel", params={"user_id": jane})
        assert response.status_code == 200
        assert response.json()["custom_order"]["status"] == "CANCELLED"

    def test_cancel_refused_after_confirmation(self, api_client, make_user, checkout_payload):
        jane = make_user()
        custom_id = self._custom_order_id(api_client, jane, checkout_payload)
        update = api_client.patch(f"/admin/custom-orders/{custom_id}/status", json={"status": "PROCESSING"})
        assert update.json()["custom_order"]["status"] == "PROCESSING"

        response = api_client.patch(f"/custom-orders/{custom_id}/cancel", params={"user_id": jane})
        assert response.status_code == 400
        assert response.json()["detail"] == (
            "This order cannot be cancelled. Only pending or confirmed orders can be cancelled."
        )

    def test_cancel_unknown_custom_order(self, api_client, make_user):
        response = api_client.patch(f"/custom-orders/{ObjectId()}/cancel", params={"user_id": make_user()})
        assert response.status_code == 404
        assert api_client.patch(f"/admin/custom-orders/{ObjectId()}/status", json={"status": "CONFIRMED"}).status_code == 404

    def test_measurement_update_and_delete(self, api_client, make_user, checkout_payload):
        jane = make_user()
        custom_id = self._custom_order_id(api_client, jane, checkout_payload)
        measurement_id = api_client.post(
            "/measurements", json={"user_id": jane, "garment_type": "blouse", "values": {"bust": 34}}
        ).json()["id"]

        response = api_client.put(
            f"/admin/measurements/{measurement_id}",
            json={"values": {"bust": 35, "waist": 29}, "custom_order_id": custom_id},
        )
        assert response.status_code == 200
        assert response.json()["values"] == {"bust": 35, "waist": 29}
        assert response.json()["custom_order_id"] == custom_id

        assert api_client.delete(f"/admin/measurements/{measurement_id}").status_code == 200
        assert api_client.delete(f"/admin/measurements/{measurement_id}").status_code == 404
        assert api_client.get("/measurements", params={"user_id": jane}).json() == []

    def test_measurement_cannot_link_foreign_custom_order(self, api_client, make_user, checkout_payload):
        jane = make_user()
        ravi = make_user(email="ravi@gmail.com")
        ravis_custom = self._custom_order_id(api_client, ravi, checkout_payload)
        measurement_id = api_client.post("/measurements", json={"user_id": jane, "values": {"bust": 34}}).json()["id"]

        response = api_client.put(f"/admin/measurements/{measurement_id}", json={"custom_order_id": ravis_custom})
        assert response.status_code == 404
        assert api_client.put(f"/admin/measurements/{ObjectId()}", json={"notes": "x"}).status_code == 404


class TestCatalog:
    def test_seed_and_list(self, api_client):
        seeded = api_client.post("/seed").json()
        assert seeded["inserted"] == 12
        assert seeded["virtual"] == 2
        names = {c["name"] for c in api_client.get("/categories").json()}
        assert names == {"Virtual Products", "Blouses", "Salwar Kameez", "Lehengas"}
        listing = api_client.get("/products", params={"limit": 60}).json()
        assert listing["total"] == 12
        assert all(not p["id"].startswith("custom-") for p in listing["items"])
        assert api_client.get("/products/custom-blouse").json()["name"] == "Custom Blouse Design"

    def test_cart_rejects_unknown_product(self, api_client):
        response = api_client.post("/cart", json={"user_id": "u1", "product_id": "bogus"})
        assert response.status_code == 400

    def test_cart_roundtrip(self, api_client, make_product):
        product_id = make_product()
        item_id = api_client.post("/cart", json={"user_id": "u1", "product_id": product_id}).json()["id"]
        assert api_client.patch(f"/cart/{item_id}", json={"qty": 3}).status_code == 200
        [item] = api_client.get("/cart", params={"user_id": "u1"}).json()
        assert item["qty"] == 3
        assert item["product"]["name"] == "Silk Blouse"
        api_client.delete(f"/cart/{item_id}")
        assert api_client.get("/cart", params={"user_id": "u1"}).json() == []
