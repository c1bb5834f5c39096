import pytest
from fastapi.testclient import TestClient

from loyalfy.db import get_db
from loyalfy.main import app
from loyalfy.models.customer_loyalty_activity import CustomerLoyaltyActivity
from loyalfy.routes import coupons as coupons_routes
from loyalfy.routes import customers as customers_routes
from loyalfy.routes import events as events_routes
from loyalfy.services import coupon_service


HEADERS = {"X-Merchant": "store-1"}


@pytest.fixture
def client(db, merchant, customer, code_provider, monkeypatch):
    # one session for test and app: the in-memory database lives on a single connection
    def override_get_db():
        yield db

    delivered = []

    def fake_deliver(ids, backend=None):
        delivered.append(list(ids))

    monkeypatch.setattr(coupon_service, "get_coupon_code_provider", lambda: code_provider)
    for module in (events_routes, customers_routes, coupons_routes):
        monkeypatch.setattr(module, "deliver_outbox_ids", fake_deliver)

    app.dependency_overrides[get_db] = override_get_db
    try:
        test_client = TestClient(app)
        test_client.delivered = delivered
        yield test_client
    finally:
        app.dependency_overrides.clear()


def test_missing_merchant_context_is_rejected(client):
    response = client.post("/events", json={"event": "welcome", "customerId": "cust-1"})
    assert response.status_code == 400


def test_unknown_merchant_is_404(client):
    response = client.get("/merchants/settings", headers={"X-Merchant": "nope"})
    assert response.status_code == 404


def test_post_event_awards_points_and_schedules_delivery(client, reward):
    response = client.post(
        "/events",
        headers=HEADERS,
        json={"event": "purchase", "customerId": "cust-1", "metadata": {"amount": 130, "orderId": "o-1"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "COMPLETE"
    assert body["pointsApplied"] == 130
    assert body["coupons"] == ["TEST0001"]
    assert len(client.delivered) == 1

    customer = client.get("/customers/cust-1", headers=HEADERS).json()
    assert customer["points"] == 130

    activities = client.get("/customers/cust-1/activities", headers=HEADERS).json()
    assert {a["event"] for a in activities} == {"purchase", "coupon_generated"}

    coupons = client.get("/customers/cust-1/coupons", headers=HEADERS, params={"active": True}).json()
    assert [c["code"] for c in coupons] == ["TEST0001"]


def test_event_for_unknown_customer_is_skipped(client):
    response = client.post("/events", headers=HEADERS, json={"event": "welcome", "customerId": "ghost"})

    assert response.status_code == 200
    assert response.json()["status"] == "SKIPPED"
    assert client.delivered == []


def test_settings_roundtrip_and_validation(client):
    current = client.get("/merchants/settings", headers=HEADERS).json()
    assert current["merchantId"] == "store-1"

    settings = current["loyaltySettings"]
    settings["pointsPerCurrencyUnit"] = 10
    ok = client.put("/merchants/settings", headers=HEADERS, json={"loyaltySettings": settings})
    assert ok.status_code == 200
    assert ok.json()["loyaltySettings"]["pointsPerCurrencyUnit"] == 10

    settings["tierGold"] = 10
    bad = client.put("/merchants/settings", headers=HEADERS, json={"loyaltySettings": settings})
    assert bad.status_code == 422


def test_reward_crud(client):
    created = client.post(
        "/rewards",
        headers=HEADERS,
        json={"name": "شحن مجاني", "name_en": "Free shipping", "points_required": 200, "reward_type": "shipping"},
    )
    assert created.status_code == 200
    reward_id = created.json()["id"]

    patched = client.patch(f"/rewards/{reward_id}", headers=HEADERS, json={"points_required": 250})
    assert patched.json()["points_required"] == 250

    assert [r["id"] for r in client.get("/rewards", headers=HEADERS).json()] == [reward_id]

    assert client.delete(f"/rewards/{reward_id}", headers=HEADERS).json() == {"deleted": True}
    assert client.get("/rewards", headers=HEADERS, params={"active": True}).json() == []


def test_apply_reward_then_redeem(client, db, merchant, customer, reward):
    # seed the balance directly: going through events would cross the coupon threshold
    customer.points = 150
    db.add(CustomerLoyaltyActivity(customer_id=customer.id, merchant_id=merchant.id, event="welcome", points=150))
    db.commit()

    applied = client.post("/customers/cust-1/rewards/apply", headers=HEADERS, json={"rewardType": "percentage"})
    assert applied.status_code == 200
    coupon = applied.json()
    assert coupon["code"] == "TEST0001"
    assert len(client.delivered) == 1

    again = client.post("/customers/cust-1/rewards/apply", headers=HEADERS, json={"rewardType": "percentage"})
    assert again.status_code == 409

    redeemed = client.post(f"/coupons/{coupon['id']}/redeem", headers=HEADERS, json={"orderId": "o-55"})
    assert redeemed.status_code == 200
    assert redeemed.json()["used"] is True
    assert redeemed.json()["used_on_order_id"] == "o-55"

    assert client.get("/customers/cust-1", headers=HEADERS).json()["points"] == 50

    second = client.post(f"/coupons/{coupon['id']}/redeem", headers=HEADERS, json={})
    assert second.status_code == 400


def test_apply_reward_requires_enough_points(client, reward):
    response = client.post("/customers/cust-1/rewards/apply", headers=HEADERS, json={"rewardType": "percentage"})
    assert response.status_code == 400


def test_admin_reconcile(client):
    client.post("/events", headers=HEADERS, json={"event": "welcome", "customerId": "cust-1"})

    body = client.post("/admin/reconcile", headers=HEADERS).json()

    assert body["drifted"] == 0
    assert body["customersPoints"] == 50
