from __future__ import annotations

from conftest import auth, token_from


def received_payload(**overrides):
    data = {
        "podNumber": "IN-500",
        "receivedDate": "2024-07-01",
        "fromLocation": "Head Office",
        "toUser": "Anita",
        "courierVendor": "DTDC",
        "emailId": "anita@example.com",
    }
    data.update(overrides)
    return data


async def create(client, user, **overrides):
    resp = await client.post("/api/received-couriers", json=received_payload(**overrides), headers=auth(user))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_create_starts_pending(client, staff):
    body = await create(client, staff)
    assert body["status"] == "pending"
    assert body["emailStatus"] == "skipped"


async def test_duplicate_pod_number(client, staff):
    await create(client, staff)
    resp = await client.post("/api/received-couriers", json=received_payload(), headers=auth(staff))
    assert resp.status_code == 409
    assert resp.json()["errors"][0]["field"] == "podNumber"


async def test_arrival_notification_is_optional(client, staff, outbox):
    body = await create(client, staff, sendEmailNotification=True)
    assert body["emailStatus"] == "sent"
    assert outbox[0]["subject"] == "Courier received for you - POD IN-500"


async def test_dispatch_and_single_use_confirmation(client, staff, outbox):
    rc = await create(client, staff)
    resp = await client.post(f"/api/received-couriers/{rc['id']}/dispatch", headers=auth(staff))
    assert resp.status_code == 200
    assert resp.json()["status"] == "dispatched"
    assert resp.json()["emailStatus"] == "sent"

    token = token_from(outbox[-1]["body"])
    resp = await client.get("/api/received-couriers/confirm-received", params={"token": token})
    assert resp.status_code == 200
    assert resp.json()["receivedCourier"]["status"] == "received"

    resp = await client.get("/api/received-couriers/confirm-received", params={"token": token})
    assert resp.status_code == 409
    assert resp.json()["error_type"] == "ConfirmationAlreadyProcessed"


async def test_redispatch_replaces_the_token(client, staff, outbox):
    rc = await create(client, staff)
    await client.post(f"/api/received-couriers/{rc['id']}/dispatch", headers=auth(staff))
    first = token_from(outbox[-1]["body"])
    await client.post(f"/api/received-couriers/{rc['id']}/dispatch", headers=auth(staff))
    second = token_from(outbox[-1]["body"])
    assert first != second

    resp = await client.get("/api/received-couriers/confirm-received", params={"token": first})
    assert resp.status_code == 404


async def test_dispatch_needs_an_email(client, staff):
    rc = await create(client, staff, emailId="")
    resp = await client.post(f"/api/received-couriers/{rc['id']}/dispatch", headers=auth(staff))
    assert resp.status_code == 400


async def test_cannot_dispatch_after_receipt(client, staff, outbox):
    rc = await create(client, staff)
    await client.post(f"/api/received-couriers/{rc['id']}/dispatch", headers=auth(staff))
    await client.get("/api/received-couriers/confirm-received", params={"token": token_from(outbox[-1]["body"])})
    resp = await client.post(f"/api/received-couriers/{rc['id']}/dispatch", headers=auth(staff))
    assert resp.status_code == 409


async def test_confirmation_page_for_browsers(client, staff, outbox):
    rc = await create(client, staff)
    await client.post(f"/api/received-couriers/{rc['id']}/dispatch", headers=auth(staff))
    token = token_from(outbox[-1]["body"])
    resp = await client.get(
        "/api/received-couriers/confirm-received",
        params={"token": token},
        headers={"Accept": "text/html"},
    )
    assert resp.status_code == 200
    assert "Thank you" in resp.text


async def test_update_and_delete(client, staff):
    rc = await create(client, staff)
    resp = await client.put(
        f"/api/received-couriers/{rc['id']}",
        json={"remarks": "Left at reception", "version": rc["version"]},
        headers=auth(staff),
    )
    assert resp.status_code == 200
    assert resp.json()["remarks"] == "Left at reception"

    resp = await client.delete(f"/api/received-couriers/{rc['id']}", headers=auth(staff))
    assert resp.status_code == 200
    resp = await client.get("/api/received-couriers", headers=auth(staff))
    assert resp.json()["total"] == 0
