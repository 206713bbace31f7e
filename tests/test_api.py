# tests/test_api.py
from decimal import Decimal

from tests.conftest import ADDRESS, PASSWORD, auth_headers, make_coupon, make_driver, make_listing


async def test_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_register_login_refresh_logout(client):
    response = await client.post("/auth/register", json={
        "username": "shop", "password": PASSWORD, "role": "seller", "business_name": "Shop Ltd",
    })
    assert response.status_code == 201
    assert response.json()["data"]["role"] == "seller"

    response = await client.post("/auth/register", json={"username": "boss", "password": PASSWORD, "role": "admin"})
    assert response.status_code == 400

    tokens = (await client.post("/auth/login", json={"username": "shop", "password": PASSWORD})).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}
    assert (await client.get("/listings", headers=headers)).status_code == 200

    rotated = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert rotated.status_code == 200
    reused = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401

    assert (await client.post("/auth/logout", headers=headers)).status_code == 200
    assert (await client.get("/listings", headers=headers)).status_code == 401


async def test_missing_token(client):
    assert (await client.get("/orders")).status_code == 401


async def test_order_lifecycle_over_http(client, db, admin, buyer, seller):
    listing = await make_listing(db, seller, unit_price="250.00")
    driver = await make_driver(db)

    response = await client.post("/orders", headers=auth_headers(buyer), json={
        "items": [{"listing_id": listing.id, "quantity": 2}],
        "shipping_address": ADDRESS,
    })
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "PENDING_PAYMENT"
    assert Decimal(order["total_amount"]) == Decimal("541.25")
    assert order["allowed_actions"] == ["CANCEL"]
    order_id = order["id"]

    response = await client.post("/payments/record-cash", headers=auth_headers(admin), json={
        "order_id": order_id, "amount": "541.25",
    })
    assert response.status_code == 201
    assert response.json()["payment"]["is_fully_paid"] is True
    assert response.json()["data"]["recorded_by"] == "admin"

    response = await client.patch(f"/orders/{order_id}/status", headers=auth_headers(seller), json={"status": "ACCEPTED"})
    assert response.status_code == 200
    assert response.json()["status"] == "PROCESSING"

    response = await client.post(f"/orders/{order_id}/dispatch", headers=auth_headers(seller), json={"driver_id": driver.id})
    assert response.status_code == 200
    assert response.json()["status"] == "SHIPPED"

    response = await client.patch(f"/orders/{order_id}/fulfillment", headers=auth_headers(seller), json={"status": "DELIVERED"})
    assert response.status_code == 200
    assert response.json()["status"] == "DELIVERED"

    history = (await client.get(f"/orders/{order_id}/history", headers=auth_headers(buyer))).json()
    assert [h["to_status"] for h in history] == ["PENDING_PAYMENT", "PROCESSING", "SHIPPED", "DELIVERED"]

    payment = (await client.get(f"/orders/{order_id}/payment", headers=auth_headers(buyer))).json()
    assert payment["payment_status"] == "PAID"
    assert len(payment["payment_history"]) == 1

    payouts = (await client.get("/payouts", headers=auth_headers(seller))).json()
    assert [Decimal(p["net_amount"]) for p in payouts] == [Decimal("500.00")]


async def test_domain_errors_are_rendered(client, db, admin, buyer, seller):
    listing = await make_listing(db, seller, unit_price="100.00")
    order = (await client.post("/orders", headers=auth_headers(buyer), json={
        "items": [{"listing_id": listing.id, "quantity": 1}],
        "shipping_address": ADDRESS,
    })).json()

    response = await client.post("/payments/record-cash", headers=auth_headers(admin), json={
        "order_id": order["id"], "amount": "1000.00",
    })
    assert response.status_code == 409
    assert response.json()["error"] == "overpayment"

    # the failed write is still audited under the caller
    audit = (await client.get("/activities", headers=auth_headers(admin), params={"search": "record-cash"})).json()
    assert audit["activities"][0]["user_id"] == admin.id
    assert audit["activities"][0]["message"].endswith("(409)")

    response = await client.post(f"/orders/{order['id']}/dispatch", headers=auth_headers(seller), json={"driver_id": 1})
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_transition"

    response = await client.get("/orders/9999", headers=auth_headers(buyer))
    assert response.status_code == 404


async def test_coupon_validate_endpoint(client, db, buyer, seller):
    await make_coupon(db, seller, code="SAVE20", maximum_discount=Decimal("50.00"))
    listing = await make_listing(db, seller, unit_price="400.00")

    response = await client.post("/coupons/validate", headers=auth_headers(buyer), json={
        "code": "save20", "items": [{"listing_id": listing.id, "quantity": 1}],
    })
    assert response.status_code == 200
    assert Decimal(response.json()["discount_amount"]) == Decimal("50.00")

    response = await client.post("/coupons/validate", headers=auth_headers(buyer), json={
        "code": "NOPE", "items": [{"listing_id": listing.id, "quantity": 1}],
    })
    assert response.status_code == 400
    assert response.json()["context"]["reason"] == "NOT_FOUND"


async def test_role_checks(client, buyer, seller):
    response = await client.post("/drivers", headers=auth_headers(seller), json={"first_name": "A", "last_name": "B"})
    assert response.status_code == 403
    response = await client.get("/staff", headers=auth_headers(buyer))
    assert response.status_code == 403
    assert response.json()["error"] == "permission_denied"


async def test_staff_and_payroll_over_http(client, seller):
    headers = auth_headers(seller)
    response = await client.post("/staff", headers=headers, json={
        "first_name": "Sam", "last_name": "Staff", "email": "sam@example.com",
        "department": "WAREHOUSE", "role": "STOCK_MANAGER", "salary": "52000", "start_date": "2026-01-01",
    })
    assert response.status_code == 201

    request = {"period": "WEEKLY", "week_start_date": "2026-03-02"}
    preview = (await client.post("/staff/payroll/preview", headers=headers, json=request)).json()
    assert Decimal(preview["total_amount"]) == Decimal("1000.00")
    assert preview["payslips"][0]["staff"]["first_name"] == "Sam"

    response = await client.post("/staff/payroll/process", headers=headers, json=request)
    assert response.status_code == 201
    assert response.json()["status"] == "PROCESSED"

    listing = (await client.get("/staff/payroll", headers=headers)).json()
    assert listing["pagination"]["total"] == 1


async def test_activity_log_search(client, db, admin, buyer, seller):
    listing = await make_listing(db, seller, unit_price="250.00")
    response = await client.post("/orders", headers=auth_headers(buyer), json={
        "items": [{"listing_id": listing.id, "quantity": 1}],
        "shipping_address": ADDRESS,
    })
    order_number = response.json()["order_number"]

    response = await client.get("/activities", headers=auth_headers(admin), params={"search": order_number})
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert body["activities"][0]["username"] == buyer.username

    response = await client.get("/activities", headers=auth_headers(seller))
    assert response.status_code == 403
