from decimal import Decimal

BASE = "/api/v1/billing-periods"


def create(client, start="2024-01-01", end="2024-01-31"):
    return client.post(BASE, json={"startDate": start, "endDate": end})


def test_create_and_get_period(client):
    r = create(client)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "draft"
    assert body["chargeCount"] == 0

    r = client.get(f"{BASE}/{body['id']}")
    assert r.status_code == 200
    assert r.json()["startDate"] == "2024-01-01"


def test_create_rejects_bad_range_and_overlap(client):
    assert create(client, start="2024-01-31", end="2024-01-01").status_code == 422
    assert create(client).status_code == 201
    r = create(client, start="2024-01-20", end="2024-02-19")
    assert r.status_code == 409
    assert "overlaps" in r.json()["detail"]


def test_list_by_status(client):
    jan = create(client).json()["id"]
    create(client, start="2024-02-01", end="2024-02-29")
    client.post(f"{BASE}/{jan}/status", json={"status": "processing"})

    all_periods = client.get(BASE).json()
    assert [p["startDate"] for p in all_periods] == ["2024-02-01", "2024-01-01"]
    processing = client.get(BASE, params={"status": "processing"}).json()
    assert [p["id"] for p in processing] == [jan]


def test_status_transitions(client):
    pid = create(client).json()["id"]
    assert client.post(f"{BASE}/{pid}/status", json={"status": "exported"}).status_code == 409
    assert client.post(f"{BASE}/{pid}/status", json={"status": "processing"}).status_code == 200
    assert client.post(f"{BASE}/{pid}/status", json={"status": "completed"}).status_code == 200

    r = client.post(f"{BASE}/{pid}/status", json={"status": "exported", "exportDate": "2024-01-15T00:00:00Z"})
    assert r.status_code == 409

    r = client.post(f"{BASE}/{pid}/status", json={"status": "exported", "exportDate": "2024-02-01T08:00:00Z"})
    assert r.status_code == 200
    assert r.json()["status"] == "exported"
    assert r.json()["payrollExportDate"].startswith("2024-02-01")


def test_delete_rules(client):
    pid = create(client).json()["id"]
    client.post(f"{BASE}/{pid}/status", json={"status": "processing"})
    assert client.delete(f"{BASE}/{pid}").status_code == 409

    client.post(f"{BASE}/{pid}/status", json={"status": "draft"})
    assert client.delete(f"{BASE}/{pid}").status_code == 204
    assert client.get(f"{BASE}/{pid}").status_code == 404


def test_cancelled_period_with_processed_charge_is_not_deleted(client):
    pid = create(client).json()["id"]
    r = client.post(
        "/api/v1/charges",
        json={"billingPeriodId": pid, "staffId": "a", "type": "other", "amount": "12", "description": "Locker"},
        headers={"Idempotency-Key": "locker-a"},
    )
    charge_id = r.json()["charge"]["id"]
    client.post(f"/api/v1/charges/{charge_id}/status", json={"status": "approved"})
    client.post(f"/api/v1/charges/{charge_id}/status", json={"status": "processed"})
    client.post(f"{BASE}/{pid}/status", json={"status": "cancelled"})

    assert client.delete(f"{BASE}/{pid}").status_code == 409
    assert client.get(f"/api/v1/charges/{charge_id}").json()["status"] == "processed"


def test_unknown_and_malformed_ids(client):
    assert client.get(f"{BASE}/00000000-0000-0000-0000-000000000000").status_code == 404
    assert client.get(f"{BASE}/january").status_code == 400


def test_generate_rent_and_transport_charges(client):
    pid = create(client).json()["id"]

    r = client.post(
        f"{BASE}/{pid}/rent-charges",
        json={
            "occupancies": [
                {"staffId": "a", "startDate": "2023-12-01", "monthlyRent": "850", "label": "Room 1"},
                {"staffId": "b", "startDate": "2024-01-16", "monthlyRent": "600", "label": "Room 2", "sourceId": "occ-2"},
                {"staffId": "c", "startDate": "2023-10-01", "endDate": "2023-12-31", "monthlyRent": "600", "label": "Room 3"},
            ]
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["created"] == 2
    half = next(c for c in body["charges"] if c["staffId"] == "b")
    assert Decimal(half["prorationFactor"]) == Decimal("0.5")
    assert Decimal(half["adjustedAmount"]) == Decimal("300")
    assert half["sourceId"] == "occ-2"

    r = client.post(
        f"{BASE}/{pid}/transport-charges",
        json={
            "trips": [
                {
                    "tripId": "t1",
                    "route": "Camp - Town",
                    "tripDate": "2024-01-10",
                    "cost": "90",
                    "passengerStaffIds": ["a", "b", "c"],
                }
            ]
        },
    )
    assert r.status_code == 201, r.text
    assert r.json()["created"] == 3
    assert {c["amount"] for c in r.json()["charges"]} == {"30.00"}

    assert client.get(f"{BASE}/{pid}").json()["chargeCount"] == 5


def test_generation_refused_for_cancelled_period(client):
    pid = create(client).json()["id"]
    client.post(f"{BASE}/{pid}/status", json={"status": "cancelled"})
    r = client.post(f"{BASE}/{pid}/transport-charges", json={"trips": []})
    assert r.status_code == 409


def test_list_reports_charge_count_per_period(client):
    jan = create(client).json()["id"]
    feb = create(client, start="2024-02-01", end="2024-02-29").json()["id"]
    client.post(
        f"{BASE}/{jan}/transport-charges",
        json={
            "trips": [
                {
                    "tripId": "t1",
                    "route": "Camp - Town",
                    "tripDate": "2024-01-10",
                    "cost": "10",
                    "passengerStaffIds": ["a", "b", "c"],
                }
            ]
        },
    )

    counts = {p["id"]: p["chargeCount"] for p in client.get(BASE).json()}
    assert counts == {jan: 3, feb: 0}
