from __future__ import annotations

import csv
import io

from conftest import auth


# users


async def test_admin_creates_user_and_rejects_duplicate_email(client, admin, department):
    payload = {
        "name": "Asha Rao",
        "email": "asha@example.com",
        "password": "Welcome123",
        "role": "manager",
        "departmentId": department.id,
    }
    resp = await client.post("/api/users", json=payload, headers=auth(admin))
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["role"] == "manager"
    assert "password" not in body

    resp = await client.post("/api/users", json=dict(payload, email="ASHA@example.com"), headers=auth(admin))
    assert resp.status_code == 409
    assert resp.json()["errors"][0]["field"] == "email"


async def test_sub_admin_cannot_create_admins(client, make_user, department):
    sub = await make_user("sub@example.com", role="sub_admin", department_id=department.id)
    payload = {"name": "Root", "email": "root@example.com", "password": "Welcome123", "role": "admin"}
    resp = await client.post("/api/users", json=payload, headers=auth(sub))
    assert resp.status_code == 403

    resp = await client.post("/api/users", json=dict(payload, role="user"), headers=auth(sub))
    assert resp.status_code == 201


async def test_plain_user_cannot_list_users(client, staff):
    resp = await client.get("/api/users", headers=auth(staff))
    assert resp.status_code == 403


async def test_admin_cannot_delete_own_account(client, admin):
    resp = await client.delete(f"/api/users/{admin.id}", headers=auth(admin))
    assert resp.status_code == 400


async def test_user_department_memberships(client, admin, staff, other_department):
    resp = await client.post(
        f"/api/users/{staff.id}/departments",
        json={"departmentIds": [other_department.id]},
        headers=auth(admin),
    )
    assert resp.status_code == 200, resp.text

    resp = await client.get(f"/api/users/{staff.id}/departments", headers=auth(staff))
    assert other_department.id in resp.json()["departmentIds"]


# departments


async def test_only_admin_creates_departments(client, admin, manager):
    resp = await client.post("/api/departments", json={"name": "Credit"}, headers=auth(manager))
    assert resp.status_code == 403

    resp = await client.post("/api/departments", json={"name": "Credit"}, headers=auth(admin))
    assert resp.status_code == 201
    assert resp.json()["name"] == "Credit"


async def test_duplicate_department_name(client, admin, department):
    resp = await client.post("/api/departments", json={"name": department.name}, headers=auth(admin))
    assert resp.status_code == 409
    assert resp.json()["errors"][0]["field"] == "name"


# vendors


async def test_vendor_lifecycle(client, manager, staff):
    resp = await client.post(
        "/api/vendors",
        json={"vendorName": "Blue Dart", "mobileNumber": "9876543210"},
        headers=auth(manager),
    )
    assert resp.status_code == 201, resp.text
    vendor = resp.json()
    assert vendor["isActive"] is True

    resp = await client.post("/api/vendors", json={"vendorName": "Blue Dart"}, headers=auth(manager))
    assert resp.status_code == 409
    assert resp.json()["errors"][0]["field"] == "vendorName"

    resp = await client.patch(
        f"/api/vendors/{vendor['id']}/status", json={"isActive": False}, headers=auth(manager)
    )
    assert resp.json()["isActive"] is False

    resp = await client.get("/api/vendors?active=true", headers=auth(staff))
    assert resp.json() == []

    resp = await client.delete(f"/api/vendors/{vendor['id']}", headers=auth(staff))
    assert resp.status_code == 403
    resp = await client.delete(f"/api/vendors/{vendor['id']}", headers=auth(manager))
    assert resp.status_code == 200


async def test_vendor_rejects_bad_mobile(client, manager):
    resp = await client.post(
        "/api/vendors", json={"vendorName": "DTDC", "mobileNumber": "phone"}, headers=auth(manager)
    )
    assert resp.status_code == 422


# settings


async def test_smtp_settings_hide_password(client, admin):
    resp = await client.get("/api/smtp-settings", headers=auth(admin))
    assert resp.json() is None

    payload = {
        "host": "smtp.example.com",
        "port": 587,
        "username": "mailer",
        "password": "s3cret",
        "fromEmail": "desk@example.com",
    }
    resp = await client.put("/api/smtp-settings", json=payload, headers=auth(admin))
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["hasPassword"] is True
    assert "password" not in body

    # an omitted password keeps the stored one
    del payload["password"]
    resp = await client.put("/api/smtp-settings", json=payload, headers=auth(admin))
    assert resp.json()["hasPassword"] is True


async def test_smtp_settings_are_admin_only(client, manager):
    resp = await client.get("/api/smtp-settings", headers=auth(manager))
    assert resp.status_code == 403


async def test_saml_needs_entity_and_sso_url_to_enable(client, admin):
    resp = await client.post("/api/saml-settings", json={"enabled": True}, headers=auth(admin))
    assert resp.status_code == 400

    resp = await client.post(
        "/api/saml-settings",
        json={"enabled": True, "entityId": "urn:desk", "ssoUrl": "https://idp.example.com/sso"},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    resp = await client.get("/api/saml-settings-public")
    assert resp.json() == {"enabled": True}


async def test_user_policies_and_permissions(client, admin, staff, department):
    resp = await client.post(
        "/api/user-policies",
        json={"departmentId": department.id, "policies": {"teleport": True}},
        headers=auth(admin),
    )
    assert resp.status_code == 400

    resp = await client.post(
        "/api/user-policies",
        json={"departmentId": department.id, "policies": {"couriers": False}},
        headers=auth(admin),
    )
    assert resp.status_code == 200, resp.text

    resp = await client.get("/api/user-permissions", headers=auth(staff))
    body = resp.json()
    assert body["role"] == "user"
    assert body["tabs"]["couriers"] is False
    assert body["tabs"]["dashboard"] is True

    resp = await client.get("/api/user-permissions", headers=auth(admin))
    assert resp.json()["tabs"]["couriers"] is True


# audit logs


async def test_audit_log_records_actions(client, admin, manager):
    await client.post("/api/vendors", json={"vendorName": "Gati"}, headers=auth(manager))

    resp = await client.get("/api/audit-logs?entityType=vendor", headers=auth(admin))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    item = body["items"][0]
    assert item["action"] == "CREATE"
    assert item["userEmail"] == "manager@example.com"

    resp = await client.get("/api/audit-logs", headers=auth(manager))
    assert resp.status_code == 403


async def test_audit_log_export(client, admin, manager):
    await client.post("/api/vendors", json={"vendorName": "Gati"}, headers=auth(manager))

    resp = await client.get("/api/audit-logs/export", headers=auth(admin))
    assert resp.status_code == 200
    assert "audit-logs_all.csv" in resp.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(resp.text.lstrip("\ufeff"))))
    assert rows[0][0] == "Action"
    assert rows[0][4] == "User Name"
    assert any(r[0] == "CREATE" and r[1] == "vendor" for r in rows[1:])


async def test_audit_log_rejects_inverted_range(client, admin):
    resp = await client.get(
        "/api/audit-logs?startDate=2024-06-01&endDate=2024-05-01", headers=auth(admin)
    )
    assert resp.status_code == 400


# stats


async def test_stats_counts_scoped_couriers(client, staff, manager):
    payload = {
        "toBranch": "Main Branch",
        "vendor": "Blue Dart",
        "podNo": "POD-900",
        "courierDate": "2024-05-10",
        "sendEmail": False,
    }
    resp = await client.post("/api/couriers", json=payload, headers=auth(staff))
    assert resp.status_code == 201, resp.text

    resp = await client.get("/api/stats", headers=auth(manager))
    body = resp.json()
    assert body["sent"] == 1
    assert body["onTheWay"] == 1
    assert body["received"] == 0
    assert body["total"] == 1


async def test_monthly_stats_window(client, staff):
    resp = await client.get("/api/stats/monthly?months=3", headers=auth(staff))
    assert resp.status_code == 200
    assert len(resp.json()) == 3

    resp = await client.get("/api/stats/monthly?months=30", headers=auth(staff))
    assert resp.status_code == 422


async def test_states_list(client, staff):
    resp = await client.get("/api/states", headers=auth(staff))
    states = resp.json()
    assert "Karnataka" in states
    assert "Delhi" in states
