from __future__ import annotations

from datetime import date

import pytest

from src.backend.utils.exceptions import FieldValidationError, TemplateRenderError
from src.backend.utils.placeholders import (
    FieldSpec,
    compile_template,
    prepare,
    render_html,
    render_text,
    resolve_policy,
)

TODAY = date(2024, 6, 1)

FIELDS = [
    FieldSpec(name="name", label="Name", text_transform="uppercase", required=True),
    FieldSpec(name="amount", type="number", number_format="with_commas"),
    FieldSpec(name="issued", type="date", date_format="DD Month YYYY"),
]


def test_compile_keeps_order_and_dedupes_names():
    compiled = compile_template("##a## and ##b## then ##a##")
    assert compiled.names == ("a", "b")
    assert len([t for t in compiled.tokens if not isinstance(t, str)]) == 3


def test_render_text_formats_values():
    result = render_text(
        "To ##name##: Rs ##amount## on ##issued##",
        FIELDS,
        {"name": "asha", "amount": "150000", "issued": "2024-05-20"},
        today=TODAY,
    )
    assert result.content == "To ASHA: Rs 150,000 on 20 May 2024"
    assert result.report.unknown_placeholders == []


def test_current_date_builtin_defaults_to_today():
    result = render_text("Date: ##currentDate##", [], {}, today=TODAY)
    assert result.content == "Date: 01/06/2024"


def test_missing_required_raises_before_rendering():
    with pytest.raises(FieldValidationError) as info:
        render_text("##name##", FIELDS, {"name": "  "}, today=TODAY)
    assert info.value.status_code == 422
    assert info.value.errors[0]["field"] == "name"


def test_unknown_placeholder_kept_by_default():
    result = render_text("Hi ##nickname##", FIELDS, {"name": "x"}, today=TODAY)
    assert result.content == "Hi ##nickname##"
    assert result.report.unknown_placeholders == ["nickname"]
    assert "Unknown placeholder ##nickname##" in result.report.warnings


def test_blank_policy_removes_unknown_placeholder():
    result = render_text("Hi ##nickname##!", FIELDS, {"name": "x"}, today=TODAY, policy="blank")
    assert result.content == "Hi !"


def test_error_policy_rejects_unknown_placeholder():
    with pytest.raises(TemplateRenderError) as info:
        render_text("Hi ##nickname##", FIELDS, {"name": "x"}, today=TODAY, policy="error")
    assert info.value.extra["unknown_placeholders"] == ["nickname"]


def test_html_values_are_escaped():
    result = render_html("<p>##name##</p>", [FieldSpec(name="name")], {"name": "A & B\nC"}, today=TODAY)
    assert result.content == "<p>A &amp; B<br/>C</p>"


def test_substituted_value_is_not_rescanned():
    result = render_text("##a##", [FieldSpec(name="a"), FieldSpec(name="b")], {"a": "##b##", "b": "no"}, today=TODAY)
    assert result.content == "##b##"


def test_extra_names_are_reported():
    _, values, report = prepare("", FIELDS, {"name": "x"}, today=TODAY, extra_names=["name", "branch"])
    assert report.unknown_placeholders == ["branch"]
    assert values["name"] == "X"


def test_resolve_policy():
    assert resolve_policy(True, "keep") == "error"
    assert resolve_policy(False, "blank") == "blank"
    assert resolve_policy(False, "bogus") == "keep"
