"""Tests for iamcompose.composer."""
import json

from iamcompose.composer import compose, statement_key
from iamcompose.loader import dumps_document, parse_document
from iamcompose.models import (
    ConditionClause,
    ModuleRequirement,
    Severity,
    TrustPolicy,
)

ACCOUNT = "123456789012"


def _doc(*statements):
    return parse_document({"Version": "2012-10-17", "Statement": list(statements)})


_READ = {
    "Sid": "ReadState",
    "Effect": "Allow",
    "Action": ["s3:GetObject", "s3:ListBucket"],
    "Resource": "arn:aws:s3:::tf-state/*",
}
_LOCK = {
    "Sid": "Lock",
    "Effect": "Allow",
    "Action": ["dynamodb:GetItem", "dynamodb:PutItem"],
    "Resource": f"arn:aws:dynamodb:us-east-1:{ACCOUNT}:table/tf-lock",
}
_KMS = {
    "Effect": "Allow",
    "Action": "kms:Decrypt",
    "Resource": f"arn:aws:kms:us-east-1:{ACCOUNT}:key/abc",
}
_LOGS = {
    "Effect": "Allow",
    "Action": "logs:PutLogEvents",
    "Resource": f"arn:aws:logs:us-east-1:{ACCOUNT}:log-group:app:*",
}


# ---------------------------------------------------------------------------
# Laws
# ---------------------------------------------------------------------------

def test_compose_with_no_overrides_is_identity():
    base = _doc(_READ, _LOCK)
    result = compose(base, [])
    assert result.document == base
    assert result.diagnostics == ()


def test_compose_identity_keeps_duplicate_base_statements():
    base = _doc(_KMS, _KMS)
    assert compose(base).document == base


def test_compose_associative_for_disjoint_keys():
    base = _doc(_READ)
    first, second = _doc(_KMS), _doc(_LOGS)
    stepwise = compose(compose(base, [first]).document, [second]).document
    at_once = compose(base, [first, second]).document
    assert stepwise == at_once


def test_compose_accepts_module_requirement():
    base = _doc(_READ)
    requirement = ModuleRequirement(module="state", document=base)
    assert compose(requirement, [_doc(_KMS)]).document == compose(base, [_doc(_KMS)]).document


# ---------------------------------------------------------------------------
# Ordering and collapsing
# ---------------------------------------------------------------------------

def test_override_only_statements_appended_after_base():
    base = _doc(_READ, _LOCK)
    result = compose(base, [_doc(_LOGS, _KMS)])
    actions = [s.actions for s in result.document.statements]
    assert actions == [
        ("s3:GetObject", "s3:ListBucket"),
        ("dynamodb:GetItem", "dynamodb:PutItem"),
        ("logs:PutLogEvents",),
        ("kms:Decrypt",),
    ]


def test_identical_key_collapses_regardless_of_order():
    override = dict(_READ, Sid="Other", Action=["s3:ListBucket", "s3:GetObject"])
    result = compose(_doc(_READ), [_doc(override)])
    assert len(result.document.statements) == 1
    assert result.document.statements[0].sid == "ReadState"
    assert result.diagnostics == ()


def test_different_effect_does_not_collapse():
    deny = dict(_KMS, Effect="Deny")
    result = compose(_doc(_KMS), [_doc(deny)])
    assert len(result.document.statements) == 2


def test_override_adds_condition_without_warning():
    override = dict(_KMS, Condition={"Bool": {"aws:SecureTransport": "true"}})
    result = compose(_doc(_KMS), [_doc(override)])
    stmt = result.document.statements[0]
    assert stmt.conditions == (ConditionClause("Bool", "aws:SecureTransport", ("true",)),)
    assert result.diagnostics == ()


def test_overrides_collapse_with_each_other():
    result = compose(_doc(_READ), [_doc(_KMS), _doc(_KMS)])
    assert len(result.document.statements) == 2


def test_distinct_trust_principals_do_not_collapse():
    def trust(account):
        return {
            "Effect": "Allow",
            "Principal": {"AWS": f"arn:aws:iam::{account}:root"},
            "Action": "sts:AssumeRole",
        }

    base = parse_document({"Version": "2012-10-17", "Statement": [trust("111111111111")]})
    result = compose(base, [parse_document({"Version": "2012-10-17", "Statement": [trust("222222222222")]})])
    assert isinstance(result.document, TrustPolicy)
    assert len(result.document.statements) == 2


# ---------------------------------------------------------------------------
# Condition merging
# ---------------------------------------------------------------------------

def test_ip_address_conditions_union_with_warning():
    base = dict(_KMS, Condition={"IpAddress": {"aws:SourceIp": "10.0.0.0/8"}})
    override = dict(_KMS, Condition={"IpAddress": {"aws:VpcSourceIp": "172.16.0.0/12"}})
    result = compose(_doc(base), [_doc(override)], names=["overrides/net.json"])

    assert len(result.document.statements) == 1
    stmt = result.document.statements[0]
    assert stmt.conditions == (
        ConditionClause("IpAddress", "aws:SourceIp", ("10.0.0.0/8",)),
        ConditionClause("IpAddress", "aws:VpcSourceIp", ("172.16.0.0/12",)),
    )
    (diag,) = result.diagnostics
    assert diag.severity == Severity.WARNING
    assert diag.code == "condition-merge"
    assert diag.path == "/Statement/0/Condition"
    assert diag.source == "overrides/net.json"


def test_conflicting_condition_override_wins():
    base = dict(_KMS, Condition={"IpAddress": {"aws:SourceIp": "10.0.0.0/8"}})
    override = dict(_KMS, Condition={"IpAddress": {"aws:SourceIp": "192.168.0.0/16"}})
    result = compose(_doc(base), [_doc(override)])

    stmt = result.document.statements[0]
    assert stmt.conditions == (ConditionClause("IpAddress", "aws:SourceIp", ("192.168.0.0/16",)),)
    (diag,) = result.diagnostics
    assert diag.code == "condition-merge"
    assert "IpAddress.aws:SourceIp" in diag.message
    assert diag.source == "override[0]"


def test_equal_conditions_merge_silently():
    stmt = dict(_KMS, Condition={"Bool": {"aws:SecureTransport": "true"}})
    result = compose(_doc(stmt), [_doc(stmt)])
    assert result.diagnostics == ()
    assert result.document == _doc(stmt)


# ---------------------------------------------------------------------------
# Sid handling
# ---------------------------------------------------------------------------

def test_colliding_sid_on_new_statement_is_dropped():
    override = dict(_KMS, Sid="ReadState")
    result = compose(_doc(_READ), [_doc(override)])
    assert result.document.statements[1].sid is None
    (diag,) = result.diagnostics
    assert diag.code == "sid-collision"
    assert diag.path == "/Statement/1/Sid"


# ---------------------------------------------------------------------------
# Keys and serialization
# ---------------------------------------------------------------------------

def test_statement_key_ignores_sid_and_order():
    a = _doc(_READ).statements[0]
    b = _doc(dict(_READ, Sid="X", Action=["s3:ListBucket", "s3:GetObject"])).statements[0]
    assert statement_key(a) == statement_key(b)


def test_composed_document_round_trips():
    base = dict(_KMS, Condition={"IpAddress": {"aws:SourceIp": "10.0.0.0/8"}})
    override = dict(_KMS, Condition={"StringEquals": {"aws:PrincipalTag/team": ["a", "b"]}})
    merged = compose(_doc(base, _READ), [_doc(override, _LOGS)]).document
    assert parse_document(json.loads(dumps_document(merged))) == merged
