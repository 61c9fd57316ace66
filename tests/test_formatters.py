"""Tests for iamcompose.formatters."""

import json

from rich.console import Console

from iamcompose.formatters import JsonFormatter, TextFormatter, get_formatter
from iamcompose.loader import parse_document
from iamcompose.models import Diagnostic, Severity
from iamcompose.report import DocumentReport, build_report

_DOC = parse_document({
    "Version": "2012-10-17",
    "Statement": [
        {"Sid": "Describe", "Effect": "Allow", "Action": "ec2:DescribeVpcs", "Resource": "*"}
    ],
})

_WARNING = Diagnostic(
    severity=Severity.WARNING,
    code="broad-resource",
    message='unconditional broad access: Resource "*" without a Condition',
    path="/Statement/0/Resource",
    suggestion="scope Resource to specific ARNs or add a Condition",
)

_ERROR = Diagnostic(
    severity=Severity.ERROR,
    code="malformed",
    message="document has no Statement element",
    path="/Statement",
    source="overrides[1].json",
)


def _record_console() -> Console:
    """Return a Console that records output for later inspection."""
    return Console(record=True, highlight=False, width=160)


# ---------------------------------------------------------------------------
# TextFormatter
# ---------------------------------------------------------------------------


def test_text_formatter_passed_report():
    console = _record_console()
    report = build_report([DocumentReport("vpc", _DOC, ())])
    TextFormatter(console=console).render(report)
    output = console.export_text()
    assert "vpc" in output
    assert "PASSED" in output
    assert "(no diagnostics)" in output
    assert "0 error(s)" in output


def test_text_formatter_lists_diagnostics():
    console = _record_console()
    report = build_report([DocumentReport("vpc", _DOC, (_WARNING,))])
    TextFormatter(console=console).render(report)
    output = console.export_text()
    assert "WARNING" in output
    assert "broad-resource" in output
    assert "/Statement/0/Resource" in output
    assert "fix: scope Resource" in output
    assert "PASSED" in output
    assert "1 warning(s)" in output


def test_text_formatter_failed_and_rejected_document():
    console = _record_console()
    report = build_report([DocumentReport("rds", None, (_ERROR,))])
    TextFormatter(console=console).render(report)
    output = console.export_text()
    assert "FAILED" in output
    assert "document rejected" in output
    # Square brackets in user content are printed, not parsed as markup.
    assert "overrides[1].json:/Statement" in output


def test_text_formatter_show_policy():
    console = _record_console()
    report = build_report([DocumentReport("vpc", _DOC, ())])
    TextFormatter(console=console, show_policy=True).render(report)
    output = console.export_text()
    assert "merged policy" in output
    assert '"Sid": "Describe"' in output


def test_text_formatter_hides_policy_by_default():
    console = _record_console()
    report = build_report([DocumentReport("vpc", _DOC, ())])
    TextFormatter(console=console).render(report)
    assert '"Sid"' not in console.export_text()


# ---------------------------------------------------------------------------
# JsonFormatter
# ---------------------------------------------------------------------------


def test_json_formatter_outputs_report(capsys):
    report = build_report([
        DocumentReport("vpc", _DOC, (_WARNING,)),
        DocumentReport("rds", None, (_ERROR,)),
    ])
    JsonFormatter().render(report)
    data = json.loads(capsys.readouterr().out)
    assert data["failed"] is True
    assert [d["name"] for d in data["documents"]] == ["vpc", "rds"]
    assert data["documents"][0]["document"]["Statement"][0]["Sid"] == "Describe"
    assert data["documents"][1]["diagnostics"][0]["source"] == "overrides[1].json"


def test_json_formatter_indent(capsys):
    JsonFormatter(indent=4).render(build_report([]))
    out = capsys.readouterr().out
    assert '\n    "failed"' in out


# ---------------------------------------------------------------------------
# get_formatter
# ---------------------------------------------------------------------------


def test_get_formatter_text():
    assert isinstance(get_formatter("text"), TextFormatter)


def test_get_formatter_json():
    assert isinstance(get_formatter("json"), JsonFormatter)


def test_get_formatter_passes_options():
    console = _record_console()
    formatter = get_formatter("text", console=console, show_policy=True)
    assert formatter.console is console
    assert formatter.show_policy is True
