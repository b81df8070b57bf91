from __future__ import annotations

import io
import json
import zipfile

from conftest import auth
from test_word_render import make_docx

from src.backend.routes.authority_letter_api import archive_name

CONTENT = (
    "<p>Date: ##currentDate##</p>"
    "<p>We authorise <b>##holder##</b> to collect Rs ##amount##.</p>"
    "<p>##footer##</p>"
)


async def make_template(client, user, department, content=CONTENT):
    resp = await client.post(
        "/api/authority-templates",
        json={"departmentId": department.id, "templateName": "Collection", "templateContent": content},
        headers=auth(user),
    )
    assert resp.status_code == 201, resp.text
    template = resp.json()
    for field in (
        {"fieldName": "holder", "fieldLabel": "Holder", "textTransform": "uppercase", "isRequired": True},
        {"fieldName": "amount", "fieldLabel": "Amount", "fieldType": "number", "numberFormat": "with_commas"},
    ):
        resp = await client.post(
            "/api/authority-letter-fields",
            json={"templateId": template["id"], **field},
            headers=auth(user),
        )
        assert resp.status_code == 201, resp.text
    return template


async def test_both_template_paths_list_the_same_rows(client, admin, department):
    template = await make_template(client, admin, department)
    for path in ("/api/authority-templates", "/api/authority-letter-templates"):
        resp = await client.get(path, headers=auth(admin))
        assert [t["id"] for t in resp.json()] == [template["id"]]


async def test_preview_substitutes_and_reports_unknown(client, admin, department):
    template = await make_template(client, admin, department)
    resp = await client.post(
        "/api/authority-letter/preview",
        json={"templateId": template["id"], "fieldValues": {"holder": "ravi", "amount": "250000"}},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert "<b>RAVI</b>" in body["htmlContent"]
    assert "250,000" in body["htmlContent"]
    assert "##footer##" in body["htmlContent"]
    assert body["unknownPlaceholders"] == ["footer"]


async def test_strict_mode_rejects_unknown_placeholders(client, admin, department):
    template = await make_template(client, admin, department)
    resp = await client.post(
        "/api/authority-letter/preview",
        json={"templateId": template["id"], "fieldValues": {"holder": "ravi"}, "strict": True},
        headers=auth(admin),
    )
    assert resp.status_code == 422
    assert resp.json()["unknown_placeholders"] == ["footer"]


async def test_missing_required_value(client, admin, department):
    template = await make_template(client, admin, department)
    resp = await client.post(
        "/api/authority-letter/generate-pdf",
        json={"templateId": template["id"], "fieldValues": {"amount": "5"}},
        headers=auth(admin),
    )
    assert resp.status_code == 422
    assert resp.json()["errors"][0]["field"] == "holder"


async def test_generate_pdf(client, admin, department):
    template = await make_template(client, admin, department)
    resp = await client.post(
        "/api/authority-letter/generate-pdf",
        json={"templateId": template["id"], "fieldValues": {"holder": "ravi", "amount": "10"}},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")
    assert json.loads(resp.headers["x-template-warnings"]) == ["Unknown placeholder ##footer##"]


async def test_generate_docx_without_word_file(client, admin, department):
    template = await make_template(client, admin, department)
    resp = await client.post(
        "/api/authority-letter/generate",
        json={"templateId": template["id"], "fieldValues": {"holder": "ravi", "amount": "10"}},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
        assert "RAVI" in zf.read("word/document.xml").decode("utf-8")


async def test_word_template_is_used_when_uploaded(client, admin, department):
    template = await make_template(client, admin, department)
    docx = make_docx("<w:p><w:r><w:t>Bearer: ##hol</w:t></w:r><w:r><w:t>der##</w:t></w:r></w:p>")
    resp = await client.post(
        f"/api/authority-letter-templates/{template['id']}/upload-word",
        files={"file": ("letter.docx", docx, "application/vnd.openxmlformats-officedocument.wordprocessingml.document")},
        headers=auth(admin),
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["placeholders"] == ["holder"]

    resp = await client.post(
        "/api/authority-letter/generate-template",
        json={"templateId": template["id"], "fieldValues": {"holder": "meena"}},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    assert resp.headers["content-disposition"].endswith('.docx"')
    with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
        assert "Bearer: MEENA" in zf.read("word/document.xml").decode("utf-8")


async def test_bulk_generate_reports_each_row(client, admin, department):
    template = await make_template(client, admin, department)
    csv_text = "row_id,holder,amount\nA1,ravi,100\nA2,,200\nA3,sita,300\n"
    resp = await client.post(
        "/api/authority-letter/bulk-generate",
        data={"templateId": str(template["id"]), "format": "pdf"},
        files={"file": ("rows.csv", csv_text.encode("utf-8"), "text/csv")},
        headers=auth(admin),
    )
    assert resp.status_code == 200, resp.text
    assert resp.headers["x-bulk-generated"] == "2"
    assert resp.headers["x-bulk-failed"] == "1"

    with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
        names = set(zf.namelist())
        manifest = json.loads(zf.read("manifest.json"))
    assert {"authority_letter_A1.pdf", "authority_letter_A3.pdf", "manifest.json", "manifest.csv"} <= names
    failed = [m for m in manifest if m["status"] == "failed"]
    assert [m["rowId"] for m in failed] == ["A2"]
    assert failed[0]["errors"] == ["Holder is required"]


async def test_bulk_generate_with_no_good_rows(client, admin, department):
    template = await make_template(client, admin, department)
    resp = await client.post(
        "/api/authority-letter/bulk-generate",
        data={"templateId": str(template["id"])},
        files={"file": ("rows.csv", b"row_id,holder\n1,\n", "text/csv")},
        headers=auth(admin),
    )
    assert resp.status_code == 422
    assert resp.json()["manifest"][0]["status"] == "failed"


async def test_sample_csv_lists_template_fields(client, admin, department):
    template = await make_template(client, admin, department)
    resp = await client.get(
        f"/api/authority-letter/sample-csv/{department.id}",
        params={"templateId": template["id"]},
        headers=auth(admin),
    )
    assert resp.status_code == 200
    lines = resp.text.splitlines()
    assert lines[0] == '"row_id","holder","amount","notes"'
    assert len(lines) == 4


async def test_other_department_template_is_forbidden(client, make_user, admin, department, other_department):
    template = await make_template(client, admin, department)
    outsider = await make_user("outsider@example.com", role="manager", department_id=other_department.id)
    resp = await client.post(
        "/api/authority-letter/preview",
        json={"templateId": template["id"], "fieldValues": {"holder": "x"}},
        headers=auth(outsider),
    )
    assert resp.status_code == 403


async def test_bulk_entry_names_stay_flat_and_unique(client, admin, department):
    template = await make_template(client, admin, department)
    csv_text = "row_id,holder,amount\nX,ravi,100\nX,sita,200\n../../evil,meena,300\n"
    resp = await client.post(
        "/api/authority-letter/bulk-generate",
        data={"templateId": str(template["id"]), "format": "pdf"},
        files={"file": ("rows.csv", csv_text.encode("utf-8"), "text/csv")},
        headers=auth(admin),
    )
    assert resp.status_code == 200, resp.text

    with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
        names = zf.namelist()
    letters = [n for n in names if n.startswith("authority_letter_")]
    assert len(letters) == 3
    assert len(set(names)) == len(names)
    assert all("/" not in n and ".." not in n for n in names)
    assert "authority_letter_X.pdf" in letters


def test_archive_name_falls_back_to_row_number():
    used = set()
    assert archive_name("A1", 1, "pdf", used) == "authority_letter_A1.pdf"
    assert archive_name("A1", 2, "pdf", used) == "authority_letter_2_A1.pdf"
    assert archive_name("../..", 3, "docx", used) == "authority_letter_3.docx"
    assert archive_name("a b/c", 4, "pdf", used) == "authority_letter_a_b_c.pdf"
