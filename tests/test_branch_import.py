from __future__ import annotations

from src.backend.utils.branch_import import analyze_rows, map_row, unknown_headers
from src.backend.utils.csv_export import read_csv_rows, rows_to_csv


def row(code, **overrides):
    base = {
        "branchName": f"Branch {code}",
        "branchCode": code,
        "branchAddress": "1 Station Road",
        "pincode": "411001",
        "state": "Maharashtra",
        "status": "active",
    }
    base.update(overrides)
    return base


def test_export_headers_map_to_the_same_fields():
    assert map_row({"Branch Code": "X1", "branchName": "Y", "Ignored": "z"}) == {
        "branch_code": "X1",
        "branch_name": "Y",
    }
    assert unknown_headers(["Branch Code", "Created Date", "Colour"]) == ["Colour"]


def test_valid_rows_are_kept():
    result = analyze_rows([row("BR1"), row("BR2", email="")], existing_codes=[])
    assert result.total_rows == 2
    assert [r["branch_code"] for r in result.valid] == ["BR1", "BR2"]
    assert not result.has_issues


def test_duplicates_against_table_are_case_insensitive():
    result = analyze_rows([row("br1"), row("BR3")], existing_codes=["BR1"])
    assert [r["branch_code"] for r in result.valid] == ["BR3"]
    assert result.duplicates[0]["row"] == 1
    assert result.duplicates[0]["field"] == "branchCode"


def test_first_occurrence_in_file_wins():
    result = analyze_rows([row("BR5"), row("br5")], existing_codes=[])
    assert len(result.valid) == 1
    assert result.valid[0]["row"] == 1
    assert "first seen on row 1" in result.duplicates[0]["message"]


def test_invalid_rows_are_reported_per_field():
    result = analyze_rows(
        [row("BR6", pincode="12"), row("BR7", branchName=""), row("BR8", latitude="north")],
        existing_codes=[],
    )
    assert result.valid == []
    fields = {(e["row"], e["field"]) for e in result.validation_errors}
    assert (1, "pincode") in fields
    assert (2, "branchName") in fields
    assert (3, "latitude") in fields
    required = [e for e in result.validation_errors if e["field"] == "branchName"][0]
    assert required["message"] == "branchName is required"


def test_csv_reader_handles_bom_and_blank_lines():
    data = "\ufeffbranchCode,branchName\nBR1,Main\n,\nBR2,City\n".encode("utf-8")
    headers, rows = read_csv_rows(data)
    assert headers == ["branchCode", "branchName"]
    assert rows == [{"branchCode": "BR1", "branchName": "Main"}, {"branchCode": "BR2", "branchName": "City"}]


def test_csv_writer_quotes_free_text():
    text = rows_to_csv(["A", "B"], [["x, y", None], ['say "hi"', 2]])
    assert text.splitlines() == ['"A","B"', '"x, y",""', '"say ""hi""","2"']
