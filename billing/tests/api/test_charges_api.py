from decimal import Decimal

import pytest
from sqlalchemy import func, select

from billing.models.audit_log import AuditLog
from billing.services.idempotency_service import IdempotencyService

BASE = "/api/v1"

RENT_CALC = {
    "chargeType": "rent",
    "staffId": "staff-1",
    "startDate": "2024-01-01",
    "endDate": "2024-01-31",
    "baseAmount": "850",
    "description": "Room 12 rent",
}


def create_period(client, start="2024-01-01", end="2024-01-31"):
    r = client.post(f"{BASE}/billing-periods", json={"startDate": start, "endDate": end})
    assert r.status_code == 201, r.text
    return r.json()["id"]


def post_charge(client, payload, key, actor="clerk-1"):
    return client.post(
        f"{BASE}/charges",
        json=payload,
        headers={"Idempotency-Key": key, "X-Actor-Id": actor},
    )


def direct_payload(period_id, **overrides):
    payload = {
        "billingPeriodId": period_id,
        "staffId": "staff-2",
        "type": "other",
        "amount": "40",
        "description": "Laundry card",
        "chargeDate": "2024-01-10",
    }
    payload.update(overrides)
    return payload


# ---------------------------
# CALCULATE
# ---------------------------

def test_calculate_rent(client):
    r = client.post(f"{BASE}/charges/calculate", json=RENT_CALC)
    assert r.status_code == 200, r.text
    body = r.json()

    result = body["result"]
    assert result["chargeType"] == "rent"
    assert result["totalDays"] == 31
    assert Decimal(result["proratedAmount"]).quantize(Decimal("0.01")) == Decimal("878.33")
    assert [row["label"] for row in result["breakdown"]] == [
        "Base Monthly Rent",
        "Days in Period",
        "Proration Factor",
        "Prorated Amount",
    ]
    assert result["breakdown"][2]["display"] == "1.033"
    assert len(result["warnings"]) == 1

    assert body["display"] == {"headline": "$878.33", "chargeLabel": "Rent"}
    assert body["draft"]["amount"] == "878.33"
    assert body["draft"]["type"] == "rent"


def test_calculate_utilities_and_transport(client):
    utilities = dict(RENT_CALC, chargeType="utilities", baseAmount="150", occupantCount=2)
    r = client.post(f"{BASE}/charges/calculate", json=utilities)
    assert r.status_code == 200, r.text
    assert Decimal(r.json()["result"]["proratedAmount"]) == Decimal("77.5")

    transport = dict(RENT_CALC, chargeType="transport", baseAmount="0.65", transportDistance="10", passengerCount=4)
    r = client.post(f"{BASE}/charges/calculate", json=transport)
    assert r.status_code == 200, r.text
    assert r.json()["display"]["headline"] == "$26.00"
    assert r.json()["result"]["warnings"] == []


def test_calculate_reversed_dates_is_structured_422(client):
    r = client.post(f"{BASE}/charges/calculate", json=dict(RENT_CALC, startDate="2024-02-01", endDate="2024-01-01"))
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "invalid_date_range"
    assert r.json()["detail"]["field"] == "endDate"


def test_calculate_missing_type_field(client):
    r = client.post(f"{BASE}/charges/calculate", json=dict(RENT_CALC, chargeType="utilities"))
    assert r.status_code == 422
    assert r.json()["detail"] == {
        "code": "missing_field",
        "field": "occupantCount",
        "message": "occupantCount is required for utilities charges.",
    }


def test_calculate_zero_passengers(client):
    transport = dict(RENT_CALC, chargeType="transport", baseAmount="1", transportDistance="10", passengerCount=0)
    r = client.post(f"{BASE}/charges/calculate", json=transport)
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "non_positive_value"


def test_calculate_unknown_type_rejected(client):
    r = client.post(f"{BASE}/charges/calculate", json=dict(RENT_CALC, chargeType="parking"))
    assert r.status_code == 422


# ---------------------------
# CREATE + IDEMPOTENCY
# ---------------------------

def test_create_from_calculation_and_replay(client):
    period_id = create_period(client)
    payload = {"billingPeriodId": period_id, "calculation": RENT_CALC}

    r1 = post_charge(client, payload, "key-1")
    assert r1.status_code == 201, r1.text
    charge = r1.json()["charge"]
    assert charge["amount"] == "878.33"
    assert charge["sourceType"] == "calculator"
    assert charge["status"] == "pending"
    assert r1.json()["calculation"]["totalDays"] == 31

    r2 = post_charge(client, payload, "key-1")
    assert r2.status_code == 201
    assert r2.json()["charge"]["id"] == charge["id"]

    listing = client.get(f"{BASE}/charges", params={"billingPeriodId": period_id}).json()
    assert listing["count"] == 1


def test_idempotency_key_reuse_with_other_payload_conflicts(client):
    period_id = create_period(client)
    assert post_charge(client, direct_payload(period_id), "key-2").status_code == 201

    r = post_charge(client, direct_payload(period_id, amount="41"), "key-2")
    assert r.status_code == 409


def test_idempotency_keys_are_scoped_per_actor(client):
    period_id = create_period(client)
    a = post_charge(client, direct_payload(period_id), "shared", actor="clerk-1")
    b = post_charge(client, direct_payload(period_id), "shared", actor="clerk-2")
    assert a.status_code == b.status_code == 201
    assert a.json()["charge"]["id"] != b.json()["charge"]["id"]


def test_failed_response_store_leaves_no_charge_behind(client, db, monkeypatch):
    period_id = create_period(client)

    def broken_store(self, *args, **kwargs):
        raise RuntimeError("idempotency store unavailable")

    monkeypatch.setattr(IdempotencyService, "store_response", broken_store)
    with pytest.raises(RuntimeError):
        post_charge(client, direct_payload(period_id), "key-9")
    monkeypatch.undo()

    assert client.get(f"{BASE}/charges").json()["count"] == 0

    # the key was never stored, so a retry creates the charge once
    r = post_charge(client, direct_payload(period_id), "key-9")
    assert r.status_code == 201, r.text
    assert client.get(f"{BASE}/charges").json()["count"] == 1

    # the failed attempt left no audit row either
    charge_audits = select(func.count(AuditLog.id)).where(AuditLog.entity_type == "charge")
    assert db.execute(charge_audits).scalar_one() == 1


def test_create_requires_idempotency_key(client):
    period_id = create_period(client)
    r = client.post(f"{BASE}/charges", json=direct_payload(period_id))
    assert r.status_code == 400


def test_direct_create_requires_fields(client):
    period_id = create_period(client)
    payload = direct_payload(period_id)
    del payload["amount"]
    r = post_charge(client, payload, "key-3")
    assert r.status_code == 422


def test_create_with_invalid_calculation_is_422(client):
    period_id = create_period(client)
    payload = {"billingPeriodId": period_id, "calculation": dict(RENT_CALC, description=" ")}
    r = post_charge(client, payload, "key-4")
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "empty_description"


def test_create_in_unknown_period_is_404(client):
    r = post_charge(client, direct_payload("00000000-0000-0000-0000-000000000000"), "key-5")
    assert r.status_code == 404


def test_create_in_exported_period_conflicts(client):
    period_id = create_period(client)
    for status in ("processing", "completed"):
        assert client.post(f"{BASE}/billing-periods/{period_id}/status", json={"status": status}).status_code == 200
    r = client.post(
        f"{BASE}/billing-periods/{period_id}/status",
        json={"status": "exported", "exportDate": "2024-02-05T09:00:00Z"},
    )
    assert r.status_code == 200, r.text

    r = post_charge(client, direct_payload(period_id), "key-6")
    assert r.status_code == 409
    assert "exported" in r.json()["detail"]


# ---------------------------
# READ / UPDATE / STATUS / DELETE
# ---------------------------

def test_get_update_status_delete(client):
    period_id = create_period(client)
    charge_id = post_charge(client, direct_payload(period_id), "key-7").json()["charge"]["id"]

    r = client.get(f"{BASE}/charges/{charge_id}")
    assert r.status_code == 200
    assert r.json()["adjustedAmount"] == "40.00"

    r = client.patch(f"{BASE}/charges/{charge_id}", json={"amount": "55.5", "notes": "corrected"})
    assert r.status_code == 200, r.text
    assert Decimal(r.json()["amount"]) == Decimal("55.50")
    assert r.json()["notes"] == "corrected"

    assert client.patch(f"{BASE}/charges/{charge_id}", json={}).status_code == 400

    r = client.post(f"{BASE}/charges/{charge_id}/status", json={"status": "approved"})
    assert r.status_code == 200
    assert r.json()["status"] == "approved"
    assert client.post(f"{BASE}/charges/{charge_id}/status", json={"status": "pending"}).status_code == 409

    assert client.delete(f"{BASE}/charges/{charge_id}").status_code == 204
    assert client.get(f"{BASE}/charges/{charge_id}").status_code == 404


def test_processed_charge_cannot_be_deleted(client):
    period_id = create_period(client)
    charge_id = post_charge(client, direct_payload(period_id), "key-8").json()["charge"]["id"]
    client.post(f"{BASE}/charges/{charge_id}/status", json={"status": "approved"})
    r = client.post(f"{BASE}/charges/{charge_id}/status", json={"status": "processed"}, headers={"X-Actor-Id": "payroll"})
    assert r.status_code == 200
    assert r.json()["processedBy"] == "payroll"

    assert client.delete(f"{BASE}/charges/{charge_id}").status_code == 409


def test_list_filters_and_paging(client):
    period_id = create_period(client)
    post_charge(client, direct_payload(period_id, staffId="a", description="Gym"), "k-a")
    post_charge(client, direct_payload(period_id, staffId="b", type="utilities", description="Water"), "k-b")

    assert client.get(f"{BASE}/charges", params={"staffId": "a"}).json()["count"] == 1
    assert client.get(f"{BASE}/charges", params={"type": "utilities"}).json()["items"][0]["staffId"] == "b"
    assert client.get(f"{BASE}/charges", params={"search": "wat"}).json()["count"] == 1
    assert client.get(f"{BASE}/charges", params={"limit": 1}).json()["count"] == 1
    assert client.get(f"{BASE}/charges", params={"limit": 0}).status_code == 400
    assert client.get(f"{BASE}/charges", params={"billingPeriodId": "nope"}).status_code == 400


def test_get_charge_bad_id(client):
    assert client.get(f"{BASE}/charges/not-a-uuid").status_code == 400


def test_mutations_leave_an_audit_trail(client):
    period_id = create_period(client)
    created = post_charge(client, direct_payload(period_id), "key-9", actor="clerk-9")
    charge_id = created.json()["charge"]["id"]
    client.post(
        f"{BASE}/charges/{charge_id}/status",
        json={"status": "approved"},
        headers={"X-Actor-Id": "clerk-9", "X-Request-Id": "req-approve"},
    )

    r = client.get(f"{BASE}/charges/{charge_id}/audit")
    assert r.status_code == 200
    entries = r.json()
    assert {e["action"] for e in entries} == {"CHARGE_CREATED", "CHARGE_STATUS_CHANGED"}
    assert {e["actorId"] for e in entries} == {"clerk-9"}
    approved = next(e for e in entries if e["action"] == "CHARGE_STATUS_CHANGED")
    assert approved["requestId"] == "req-approve"
    assert approved["details"] == {"status": "approved"}
