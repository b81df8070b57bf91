from __future__ import annotations

from conftest import auth

HEADER = "srNo,branchName,branchCode,branchAddress,pincode,state,email,latitude,longitude,status\n"


def csv_file(*lines):
    return {"file": ("branches.csv", (HEADER + "".join(lines)).encode("utf-8"), "text/csv")}


BRANCH = {
    "branchName": "Main Branch",
    "branchCode": "BR001",
    "branchAddress": "12 MG Road",
    "pincode": "411001",
    "state": "Maharashtra",
}


async def test_create_and_duplicate_code(client, manager):
    resp = await client.post("/api/branches", json=BRANCH, headers=auth(manager))
    assert resp.status_code == 201
    assert resp.json()["status"] == "active"

    resp = await client.post("/api/branches", json={**BRANCH, "branchCode": "br001"}, headers=auth(manager))
    assert resp.status_code == 409
    assert resp.json()["errors"][0]["field"] == "branchCode"


async def test_plain_user_cannot_create(client, staff):
    resp = await client.post("/api/branches", json=BRANCH, headers=auth(staff))
    assert resp.status_code == 403


async def test_clean_upload_inserts_everything(client, admin):
    resp = await client.post(
        "/api/branches/bulk-upload",
        files=csv_file(
            "1,Main,BR1,Addr 1,411001,Maharashtra,,,,active\n",
            "2,City,BR2,Addr 2,700016,West Bengal,city@example.com,22.5,88.3,closed\n",
        ),
        headers=auth(admin),
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["inserted"] == 2


async def test_problem_upload_needs_approval(client, admin):
    await client.post("/api/branches", json={**BRANCH, "branchCode": "BR1"}, headers=auth(admin))
    files = csv_file(
        "1,Main,BR1,Addr 1,411001,Maharashtra,,,,active\n",
        "2,City,BR2,Addr 2,7000,West Bengal,,,,active\n",
        "3,Town,BR3,Addr 3,560001,Karnataka,,,,active\n",
    )
    resp = await client.post("/api/branches/bulk-upload", files=files, headers=auth(admin))
    assert resp.status_code == 409
    body = resp.json()
    assert body["requiresApproval"] is True
    assert body["duplicates"][0]["row"] == 1
    assert body["validationErrors"][0]["field"] == "pincode"

    resp = await client.post(
        "/api/branches/bulk-upload",
        files=files,
        data={"adminApproval": "true"},
        headers=auth(admin),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["inserted"] == 1
    assert body["skippedDuplicates"] == 1
    assert body["skippedInvalid"] == 1


async def test_validate_then_commit_once(client, admin):
    resp = await client.post(
        "/api/branches/bulk-upload/validate",
        files=csv_file("1,Main,BR9,Addr,411001,Maharashtra,,,,active\n"),
        headers=auth(admin),
    )
    assert resp.status_code == 200
    report_id = resp.json()["reportId"]
    assert resp.json()["requiresApproval"] is False

    resp = await client.post("/api/branches/bulk-upload/commit", json={"reportId": report_id}, headers=auth(admin))
    assert resp.status_code == 201
    assert resp.json()["inserted"] == 1

    resp = await client.post("/api/branches/bulk-upload/commit", json={"reportId": report_id}, headers=auth(admin))
    assert resp.status_code == 409


async def test_only_the_validating_user_or_admin_commits(client, admin, manager, make_user, department):
    resp = await client.post(
        "/api/branches/bulk-upload/validate",
        files=csv_file("1,Main,BR7,Addr,411001,Maharashtra,,,,active\n"),
        headers=auth(manager),
    )
    report_id = resp.json()["reportId"]

    other = await make_user("other-manager@example.com", role="manager", department_id=department.id)
    resp = await client.post("/api/branches/bulk-upload/commit", json={"reportId": report_id}, headers=auth(other))
    assert resp.status_code == 403

    resp = await client.post("/api/branches/bulk-upload/commit", json={"reportId": report_id}, headers=auth(admin))
    assert resp.status_code == 201


async def test_unrecognised_header(client, admin):
    resp = await client.post(
        "/api/branches/bulk-upload",
        files={"file": ("b.csv", b"foo,bar\n1,2\n", "text/csv")},
        headers=auth(admin),
    )
    assert resp.status_code == 400


async def test_row_limit(client, admin, monkeypatch):
    from src.backend.config import settings

    monkeypatch.setattr(settings, "BULK_MAX_ROWS", 1)
    resp = await client.post(
        "/api/branches/bulk-upload",
        files=csv_file(
            "1,Main,BR1,Addr 1,411001,Maharashtra,,,,active\n",
            "2,City,BR2,Addr 2,700016,West Bengal,,,,active\n",
        ),
        headers=auth(admin),
    )
    assert resp.status_code == 413
    assert resp.json()["limit"] == 1


async def test_export_by_status_and_bulk_delete(client, admin):
    ids = []
    for code, status in (("BR1", "active"), ("BR2", "closed")):
        resp = await client.post("/api/branches", json={**BRANCH, "branchCode": code, "status": status}, headers=auth(admin))
        ids.append(resp.json()["id"])

    resp = await client.get("/api/branches/export", params={"status": "closed"}, headers=auth(admin))
    assert resp.status_code == 200
    assert 'filename="closed_branches.csv"' in resp.headers["content-disposition"]
    lines = resp.text.splitlines()
    assert len(lines) == 2
    assert '"BR2"' in lines[1]

    resp = await client.post("/api/branches/bulk-delete", json={"branchIds": ids}, headers=auth(admin))
    assert resp.json()["deleted"] == 2
    resp = await client.get("/api/branches", headers=auth(admin))
    assert resp.json()["total"] == 0


async def test_status_toggle(client, admin):
    resp = await client.post("/api/branches", json=BRANCH, headers=auth(admin))
    branch_id = resp.json()["id"]
    resp = await client.patch(f"/api/branches/{branch_id}/status", json={"status": "closed"}, headers=auth(admin))
    assert resp.json()["status"] == "closed"
