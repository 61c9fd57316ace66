"""Least-privilege checks over a validated PolicyDocument."""
from __future__ import annotations

import dataclasses
import logging
import re
from typing import Optional

from .config import AnalyzerConfig
from .models import (
    ConditionOperator,
    Diagnostic,
    Effect,
    PolicyDocument,
    Severity,
    Statement,
    parse_operator,
)

logger = logging.getLogger(__name__)

# arn:aws:iam::123456789012:root, arn:aws:sts::123456789012:assumed-role/R/s
_PRINCIPAL_ARN_RE = re.compile(r"^arn:[^:]+:(?:iam|sts)::(?P<account>\d{12}):")
_ACCOUNT_ID_RE = re.compile(r"^\d{12}$")

_EXTERNAL_ID_KEY = "sts:externalid"
# Operators that only match when the key is present with a given value.
_REQUIRING_OPERATORS = {
    ConditionOperator.STRING_EQUALS,
    ConditionOperator.STRING_EQUALS_IGNORE_CASE,
    ConditionOperator.STRING_LIKE,
}


def analyze(doc: PolicyDocument, config: AnalyzerConfig) -> tuple[Diagnostic, ...]:
    """
    Return least-privilege diagnostics for *doc*, in statement order.

    Broad-access findings are Warnings unless ``config.strict`` is set, in
    which case they are escalated to Errors. Cross-account trust without an
    external id is always an Error.
    """
    diags: list[Diagnostic] = []
    for i, stmt in enumerate(doc.statements):
        path = f"/Statement/{i}"
        diags.extend(_check_broad_access(stmt, path))
        diags.extend(_check_principal(stmt, path))
        diags.extend(_check_cross_account(stmt, path, config.home_account))

    if config.strict:
        diags = [_escalate(d) for d in diags]
    return tuple(diags)


def principal_account(value: str) -> Optional[str]:
    """Account id referenced by an AWS principal value, or None."""
    if _ACCOUNT_ID_RE.match(value):
        return value
    m = _PRINCIPAL_ARN_RE.match(value)
    return m.group("account") if m else None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _check_broad_access(stmt: Statement, path: str) -> list[Diagnostic]:
    if stmt.effect != Effect.ALLOW:
        return []

    broad_actions = [a for a in stmt.actions if a == "*" or a.endswith(":*")]
    broad_resource = "*" in stmt.resources and not stmt.conditions

    # One finding per statement when both apply.
    if broad_actions and broad_resource:
        return [Diagnostic(
            severity=Severity.WARNING,
            code="broad-action-and-resource",
            message=(
                f"overly broad action ({', '.join(broad_actions)}) with "
                "unconditional broad access to all resources"
            ),
            path=path,
            suggestion="list the specific actions and resource ARNs the module needs",
        )]
    if broad_actions:
        return [Diagnostic(
            severity=Severity.WARNING,
            code="broad-action",
            message=f"overly broad action: {', '.join(broad_actions)}",
            path=f"{path}/Action",
            suggestion="replace wildcards with the specific actions required",
        )]
    if broad_resource:
        return [Diagnostic(
            severity=Severity.WARNING,
            code="broad-resource",
            message='unconditional broad access: Resource "*" without a Condition',
            path=f"{path}/Resource",
            suggestion="scope Resource to specific ARNs or add a Condition",
        )]
    return []


def _check_principal(stmt: Statement, path: str) -> list[Diagnostic]:
    if stmt.effect != Effect.ALLOW or stmt.principal is None or not stmt.principal.is_public:
        return []
    if stmt.conditions:
        return [Diagnostic(
            severity=Severity.WARNING,
            code="wildcard-principal",
            message='Principal "*" is only restricted by its Condition block',
            path=f"{path}/Principal",
        )]
    return [Diagnostic(
        severity=Severity.ERROR,
        code="wildcard-principal",
        message='Principal "*" grants access to anyone',
        path=f"{path}/Principal",
        suggestion="name the trusted accounts, services or identity providers",
    )]


def _check_cross_account(
    stmt: Statement, path: str, home_account: Optional[str]
) -> list[Diagnostic]:
    if not stmt.is_trust or stmt.principal is None:
        return []

    accounts = []
    for value in stmt.principal.aws:
        account = principal_account(value)
        if account is not None and account not in accounts:
            accounts.append(account)
    if not accounts:
        return []

    if home_account is None:
        return [Diagnostic(
            severity=Severity.INFO,
            code="cross-account-check-skipped",
            message="home account not configured; cross-account trust check skipped",
            path=f"{path}/Principal/AWS",
        )]

    foreign = [a for a in accounts if a != home_account]
    if not foreign or _requires_external_id(stmt):
        return []
    logger.debug("statement %s trusts foreign accounts %s", path, foreign)
    return [Diagnostic(
        severity=Severity.ERROR,
        code="cross-account-trust-without-external-id",
        message=(
            f"missing external id on cross-account trust: account(s) "
            f"{', '.join(foreign)} differ from home account {home_account}"
        ),
        path=f"{path}/Principal/AWS",
        suggestion='add "Condition": {"StringEquals": {"sts:ExternalId": "<shared secret>"}}',
    )]


def _requires_external_id(stmt: Statement) -> bool:
    """
    True when a condition clause only matches requests carrying
    ``sts:ExternalId``. ``IfExists`` and ``ForAllValues`` forms also match
    when the key is missing, and Null or negated operators never enforce it.
    """
    for clause in stmt.conditions:
        if clause.key.lower() != _EXTERNAL_ID_KEY or not clause.values:
            continue
        try:
            op = parse_operator(clause.operator)
        except ValueError:
            continue
        if op.if_exists or op.qualifier == "ForAllValues":
            continue
        if op.base in _REQUIRING_OPERATORS:
            return True
    return False


def _escalate(diag: Diagnostic) -> Diagnostic:
    if diag.severity != Severity.WARNING:
        return diag
    return dataclasses.replace(diag, severity=Severity.ERROR)
