def seed(client):
    pid = client.post(
        "/api/v1/billing-periods", json={"startDate": "2024-01-01", "endDate": "2024-01-31"}
    ).json()["id"]
    for key, staff, amount in (("k1", "alice", "100"), ("k2", "bob", "300")):
        r = client.post(
            "/api/v1/charges",
            json={
                "billingPeriodId": pid,
                "staffId": staff,
                "type": "other",
                "amount": amount,
                "description": "Canteen",
            },
            headers={"Idempotency-Key": key},
        )
        assert r.status_code == 201, r.text
    return pid


def test_billing_summary(client):
    seed(client)
    r = client.get("/api/v1/analytics/billing")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["totalBillingPeriods"] == 1
    assert body["activeBillingPeriods"] == 1
    assert body["totalCharges"] == 2
    assert body["totalAmount"] == "400.00"
    assert body["averageChargeAmount"] == "200.00"
    assert body["chargesByType"]["other"] == {"count": 2, "amount": "400.00", "percentage": "100.00"}
    assert body["chargesByType"]["rent"]["count"] == 0


def test_staff_summary(client):
    seed(client)
    r = client.get("/api/v1/analytics/staff")
    assert r.status_code == 200
    rows = r.json()
    assert [row["staffId"] for row in rows] == ["bob", "alice"]
    assert rows[0]["byType"]["other"] == "300.00"

    only_alice = client.get("/api/v1/analytics/staff", params={"staffId": "alice"}).json()
    assert [row["staffId"] for row in only_alice] == ["alice"]


def test_reversed_range_is_rejected(client):
    r = client.get("/api/v1/analytics/billing", params={"dateFrom": "2024-02-01", "dateTo": "2024-01-01"})
    assert r.status_code == 400
