from __future__ import annotations

import csv
import io

from conftest import auth, token_from


def courier_payload(**overrides):
    data = {
        "toBranch": "Main Branch",
        "email": "branch@example.com",
        "vendor": "Blue Dart",
        "podNo": "POD-100",
        "details": "Loan files",
        "courierDate": "2024-05-10",
        "sendEmail": False,
    }
    data.update(overrides)
    return data


async def create(client, user, **overrides):
    resp = await client.post("/api/couriers", json=courier_payload(**overrides), headers=auth(user))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_create_defaults_to_on_the_way(client, staff, department):
    body = await create(client, staff)
    assert body["status"] == "on_the_way"
    assert body["departmentId"] == department.id
    assert body["emailStatus"] == "skipped"
    assert body["version"] == 1


async def test_duplicate_pod_number_is_a_field_conflict(client, staff):
    await create(client, staff)
    resp = await client.post("/api/couriers", json=courier_payload(podNo="pod-100"), headers=auth(staff))
    assert resp.status_code == 409
    body = resp.json()
    assert body["error_type"] == "FieldConflict"
    assert body["errors"][0]["field"] == "podNo"


async def test_deleted_courier_frees_its_pod_number(client, manager):
    first = await create(client, manager)
    resp = await client.delete(f"/api/couriers/{first['id']}", headers=auth(manager))
    assert resp.status_code == 200
    assert resp.json()["courier"]["status"] == "deleted"
    await create(client, manager)


async def test_status_walks_forward_and_completion_records_pod(client, staff):
    courier = await create(client, staff)
    url = f"/api/couriers/{courier['id']}"

    resp = await client.patch(url, json={"status": "received", "receivedRemarks": "At desk"}, headers=auth(staff))
    assert resp.status_code == 200
    assert resp.json()["receivedDate"] is not None

    resp = await client.patch(url, json={"status": "completed"}, headers=auth(staff))
    assert resp.status_code == 200
    assert resp.json()["details"].endswith("POD Number: POD-100")


async def test_illegal_jump_is_rejected(client, staff):
    courier = await create(client, staff)
    resp = await client.patch(f"/api/couriers/{courier['id']}", json={"status": "completed"}, headers=auth(staff))
    assert resp.status_code == 409
    body = resp.json()
    assert body["error_type"] == "TransitionNotAllowed"
    assert body["from_status"] == "on_the_way"


async def test_unknown_status_is_a_bad_request(client, staff):
    courier = await create(client, staff)
    resp = await client.patch(f"/api/couriers/{courier['id']}", json={"status": "lost"}, headers=auth(staff))
    assert resp.status_code == 400


async def test_plain_user_cannot_delete(client, staff):
    courier = await create(client, staff)
    resp = await client.patch(f"/api/couriers/{courier['id']}", json={"status": "deleted"}, headers=auth(staff))
    assert resp.status_code == 403


async def test_restore_only_from_deleted(client, manager):
    courier = await create(client, manager)
    url = f"/api/couriers/{courier['id']}"
    resp = await client.post(f"{url}/restore", headers=auth(manager))
    assert resp.status_code == 409

    await client.delete(url, headers=auth(manager))
    resp = await client.post(f"{url}/restore", headers=auth(manager))
    assert resp.status_code == 200
    assert resp.json()["courier"]["status"] == "on_the_way"


async def test_rejected_status_change_keeps_field_edits_out(client, staff):
    courier = await create(client, staff)
    url = f"/api/couriers/{courier['id']}"
    resp = await client.patch(url, json={"remarks": "CHANGED", "status": "completed"}, headers=auth(staff))
    assert resp.status_code == 409

    body = (await client.get(url, headers=auth(staff))).json()
    assert body["remarks"] != "CHANGED"
    assert body["version"] == 1


async def test_restore_refuses_a_reused_pod_number(client, manager):
    first = await create(client, manager)
    url = f"/api/couriers/{first['id']}"
    await client.delete(url, headers=auth(manager))
    await create(client, manager)

    resp = await client.post(f"{url}/restore", headers=auth(manager))
    assert resp.status_code == 409
    assert resp.json()["errors"][0]["field"] == "podNo"

    resp = await client.patch(url, json={"status": "on_the_way"}, headers=auth(manager))
    assert resp.status_code == 409

    resp = await client.get("/api/couriers", headers=auth(manager))
    active = [c["podNo"] for c in resp.json()["couriers"] if c["status"] != "deleted"]
    assert active == ["POD-100"]


async def test_restored_courier_gets_a_fresh_confirmation_link(client, manager, outbox):
    courier = await create(client, manager, sendEmail=True)
    token = token_from(outbox[0]["body"])
    resp = await client.get("/api/couriers/confirm-received", params={"token": token})
    assert resp.status_code == 200

    url = f"/api/couriers/{courier['id']}"
    await client.delete(url, headers=auth(manager))
    resp = await client.post(f"{url}/restore", headers=auth(manager))
    assert resp.status_code == 200

    resp = await client.get("/api/couriers/confirm-received", params={"token": token})
    assert resp.status_code == 404


async def test_stale_version_is_rejected(client, staff):
    courier = await create(client, staff)
    url = f"/api/couriers/{courier['id']}"
    resp = await client.patch(url, json={"remarks": "first", "version": 1}, headers=auth(staff))
    assert resp.status_code == 200
    assert resp.json()["version"] == 2
    resp = await client.patch(url, json={"remarks": "second", "version": 1}, headers=auth(staff))
    assert resp.status_code == 409
    assert resp.json()["error_type"] == "StaleRecord"


async def test_users_only_see_their_own_couriers(client, staff, manager, make_user, department):
    await create(client, staff, podNo="POD-1")
    await create(client, manager, podNo="POD-2")
    other = await make_user("other@example.com", department_id=department.id)

    resp = await client.get("/api/couriers", headers=auth(staff))
    assert [c["podNo"] for c in resp.json()["couriers"]] == ["POD-1"]

    resp = await client.get("/api/couriers", headers=auth(manager))
    assert resp.json()["total"] == 2

    resp = await client.get("/api/couriers", headers=auth(other))
    assert resp.json()["total"] == 0


async def test_other_users_courier_is_forbidden(client, staff, make_user, department):
    courier = await create(client, staff)
    other = await make_user("other@example.com", department_id=department.id)
    resp = await client.get(f"/api/couriers/{courier['id']}", headers=auth(other))
    assert resp.status_code == 403


async def test_dispatch_email_and_confirmation_link(client, staff, outbox):
    body = await create(client, staff, sendEmail=True, ccEmails="a@example.com; b@example.com")
    assert body["emailStatus"] == "sent"
    assert body["lastEmailStatus"] == "sent"

    mail = outbox[0]
    assert mail["to"] == "branch@example.com"
    assert mail["cc"] == ["a@example.com", "b@example.com"]
    assert mail["reply_to"] == "staff@example.com"
    token = token_from(mail["body"])

    resp = await client.get("/api/couriers/confirm-received", params={"token": token})
    assert resp.status_code == 200
    assert resp.json()["courier"]["status"] == "received"

    resp = await client.get("/api/couriers/confirm-received", params={"token": token})
    assert resp.status_code == 409

    resp = await client.get(
        "/api/couriers/confirm-received",
        params={"token": "nope"},
        headers={"Accept": "text/html"},
    )
    assert resp.status_code == 404
    assert "text/html" in resp.headers["content-type"]


async def test_failed_email_does_not_fail_the_create(client, staff, smtp, monkeypatch):
    from src.backend.utils import email_notifier

    def _boom(*args, **kwargs):
        raise email_notifier.EmailDeliveryError("connection refused")

    monkeypatch.setattr(email_notifier, "send_email", _boom)
    body = await create(client, staff, sendEmail=True)
    assert body["emailStatus"] == "failed"
    assert "connection refused" in body["emailMessage"]


async def test_pod_copy_upload_is_attached(client, staff, outbox):
    resp = await client.post(
        "/api/couriers",
        data={"toBranch": "Main Branch", "email": "branch@example.com", "podNo": "POD-7", "sendEmail": "true"},
        files={"podCopy": ("pod.pdf", b"%PDF-1.4 test", "application/pdf")},
        headers=auth(staff),
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["podCopyPath"].startswith("/uploads/pod-copies/")
    assert outbox[0]["attachments"][0][0] == "POD_POD-7.pdf"


async def test_export_combines_sent_and_received(client, admin):
    await create(client, admin)
    resp = await client.post(
        "/api/received-couriers",
        json={"podNumber": "IN-1", "receivedDate": "2024-05-11", "fromLocation": "Head Office"},
        headers=auth(admin),
    )
    assert resp.status_code == 201

    resp = await client.get(
        "/api/couriers/export",
        params={"startDate": "2024-05-01", "endDate": "2024-05-31"},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    assert "couriers-export_2024-05-01_to_2024-05-31.csv" in resp.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0][0] == "Type"
    assert sorted(r[0] for r in rows[1:]) == ["Received Courier", "Sent Courier"]


async def test_export_rejects_inverted_range(client, admin):
    resp = await client.get(
        "/api/couriers/export",
        params={"startDate": "2024-06-01", "endDate": "2024-05-01"},
        headers=auth(admin),
    )
    assert resp.status_code == 400


async def test_export_range_is_inclusive_on_courier_date(client, admin):
    await create(client, admin, podNo="JAN-START", courierDate="2025-01-01")
    await create(client, admin, podNo="JAN-END", courierDate="2025-01-31")
    await create(client, admin, podNo="FEB-START", courierDate="2025-02-01")
    await create(client, admin, podNo="DEC-END", courierDate="2024-12-31")

    resp = await client.get(
        "/api/couriers/export",
        params={"startDate": "2025-01-01", "endDate": "2025-01-31"},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    rows = list(csv.reader(io.StringIO(resp.text)))
    assert sorted(r[1] for r in rows[1:]) == ["JAN-END", "JAN-START"]
