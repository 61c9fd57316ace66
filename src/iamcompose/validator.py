"""Check a PolicyDocument against the IAM policy grammar."""
from __future__ import annotations

import re

from .loader import pointer_token
from .models import (
    SUPPORTED_VERSION,
    Diagnostic,
    PolicyDocument,
    Severity,
    Statement,
    TrustPolicy,
    parse_operator,
)

# s3:GetObject, ec2:Describe*, kms:?ncrypt
_ACTION_RE = re.compile(r"^[a-z0-9][a-z0-9-]*:[A-Za-z0-9*?]+$")

# arn:partition:service:region:account:resource
_ARN_RE = re.compile(
    r"^arn:(?P<partition>[^:]+):(?P<service>[^:]+):(?P<region>[^:]*):"
    r"(?P<account>[^:]*):(?P<resource>.+)$"
)
_ACCOUNT_RE = re.compile(r"^(\d{12}|aws|[0-9*?]*\*[0-9*?]*)?$")
_SID_RE = re.compile(r"^[A-Za-z0-9]+$")


def validate(doc: PolicyDocument) -> tuple[Diagnostic, ...]:
    """
    Return every grammar diagnostic for *doc*, in document order.

    Never raises for a constructed document: problems are reported as
    Error diagnostics and callers reject the document with ``has_errors``.
    """
    diags: list[Diagnostic] = []

    if not doc.version:
        diags.append(_error(
            "missing-version",
            "document has no Version element",
            "/Version",
            suggestion=f'add "Version": "{SUPPORTED_VERSION}"',
        ))
    elif doc.version != SUPPORTED_VERSION:
        diags.append(_error(
            "unsupported-version",
            f"unsupported policy version {doc.version!r}",
            "/Version",
            suggestion=f'use "Version": "{SUPPORTED_VERSION}"',
        ))

    if not doc.statements:
        diags.append(_error("empty-statement", "document has no statements", "/Statement"))

    in_trust = isinstance(doc, TrustPolicy)
    seen_sids: set[str] = set()
    for i, stmt in enumerate(doc.statements):
        path = f"/Statement/{i}"
        if stmt.sid is not None:
            if not _SID_RE.match(stmt.sid):
                diags.append(_error(
                    "invalid-sid",
                    f"Sid {stmt.sid!r} must contain only letters and digits",
                    f"{path}/Sid",
                ))
            if stmt.sid in seen_sids:
                diags.append(_error(
                    "duplicate-sid", f"Sid {stmt.sid!r} is used more than once", f"{path}/Sid"
                ))
            seen_sids.add(stmt.sid)
        diags.extend(_check_actions(stmt, path))
        diags.extend(_check_resources(stmt, path, in_trust))
        diags.extend(_check_conditions(stmt, path))
        diags.extend(_check_principal(stmt, path, in_trust))

    return tuple(diags)


def has_errors(diagnostics) -> bool:
    return any(d.severity == Severity.ERROR for d in diagnostics)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _error(code: str, message: str, path: str, suggestion: str | None = None) -> Diagnostic:
    return Diagnostic(
        severity=Severity.ERROR, code=code, message=message, path=path, suggestion=suggestion
    )


def _check_actions(stmt: Statement, path: str) -> list[Diagnostic]:
    if not stmt.actions:
        return [_error("empty-actions", "statement grants no actions", f"{path}/Action")]
    return [
        _error(
            "invalid-action",
            f"action {action!r} is not of the form service:Action",
            f"{path}/Action/{j}",
        )
        for j, action in enumerate(stmt.actions)
        if action != "*" and not _ACTION_RE.match(action)
    ]


def _check_resources(stmt: Statement, path: str, in_trust_policy: bool) -> list[Diagnostic]:
    # Resource-based and trust statements name a principal; the resource is implicit.
    if not stmt.resources:
        if stmt.principal is not None or in_trust_policy:
            return []
        return [_error("empty-resources", "statement names no resources", f"{path}/Resource")]
    diags = []
    for j, resource in enumerate(stmt.resources):
        if resource == "*":
            continue
        m = _ARN_RE.match(resource)
        if m is None or not _valid_account(m.group("account")):
            diags.append(_error(
                "invalid-resource-arn",
                f"resource {resource!r} is not '*' or an "
                "arn:partition:service:region:account:resource ARN",
                f"{path}/Resource/{j}",
            ))
    return diags


def _valid_account(account: str) -> bool:
    return "${" in account or bool(_ACCOUNT_RE.match(account))


def _check_conditions(stmt: Statement, path: str) -> list[Diagnostic]:
    diags = []
    reported: set[str] = set()
    for clause in stmt.conditions:
        if clause.operator in reported:
            continue
        try:
            parse_operator(clause.operator)
        except ValueError as exc:
            reported.add(clause.operator)
            diags.append(_error(
                "unknown-condition-operator",
                f"condition operator {clause.operator!r}: {exc}",
                f"{path}/Condition/{pointer_token(clause.operator)}",
            ))
    return diags


def _check_principal(stmt: Statement, path: str, in_trust_policy: bool) -> list[Diagnostic]:
    diags = []
    principal = stmt.principal
    if in_trust_policy:
        if not stmt.grants_assume_role:
            diags.append(_error(
                "non-trust-statement",
                "trust policy statements must allow an sts:AssumeRole action",
                f"{path}/Action",
            ))
        if principal is None:
            diags.append(_error(
                "missing-principal",
                "trust statement has no Principal",
                f"{path}/Principal",
                suggestion='add a Principal with an "AWS", "Service" or "Federated" key',
            ))
    if principal is None or not stmt.grants_assume_role:
        return diags

    if not principal.wildcard and not (
        principal.aws or principal.service or principal.federated
    ):
        diags.append(_error(
            "invalid-principal",
            "trust statement Principal needs an AWS, Service or Federated key",
            f"{path}/Principal",
        ))
    return diags
