"""Convert IAM policy JSON to and from the iamcompose model."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from .models import (
    ConditionClause,
    Effect,
    PolicyDocument,
    Principal,
    Statement,
    TrustPolicy,
)

logger = logging.getLogger(__name__)

_STATEMENT_KEYS = {"Sid", "Effect", "Action", "Resource", "Principal", "Condition"}
_UNSUPPORTED_KEYS = {"NotAction", "NotResource", "NotPrincipal"}
_PRINCIPAL_KEYS = {
    "AWS": "aws",
    "Service": "service",
    "Federated": "federated",
    "CanonicalUser": "canonical_user",
}


class MalformedPolicyError(ValueError):
    """Raised when input cannot be read as an IAM policy document."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


def parse_document(data: Any, *, trust: Optional[bool] = None) -> PolicyDocument:
    """
    Build a PolicyDocument (or TrustPolicy) from a decoded JSON value.

    *trust* forces the document kind; ``None`` detects a trust policy when
    every statement allows ``sts:AssumeRole*`` to a principal.

    Raises:
        MalformedPolicyError: the value does not have the IAM policy shape.
    """
    if not isinstance(data, dict):
        raise MalformedPolicyError("policy document must be a JSON object")

    version = data.get("Version", "")
    if not isinstance(version, str):
        raise MalformedPolicyError("Version must be a string", "/Version")

    policy_id = data.get("Id")
    if policy_id is not None and not isinstance(policy_id, str):
        raise MalformedPolicyError("Id must be a string", "/Id")

    if "Statement" not in data:
        raise MalformedPolicyError("document has no Statement element", "/Statement")
    raw_statements = data["Statement"]
    if isinstance(raw_statements, dict):
        raw_statements = [raw_statements]
    if not isinstance(raw_statements, list):
        raise MalformedPolicyError(
            "Statement must be an object or a list of objects", "/Statement"
        )

    statements = tuple(
        _parse_statement(raw, f"/Statement/{i}") for i, raw in enumerate(raw_statements)
    )

    if trust is None:
        trust = bool(statements) and all(
            s.is_trust and s.principal is not None for s in statements
        )
    cls = TrustPolicy if trust else PolicyDocument
    return cls(version=version, statements=statements, policy_id=policy_id)


def document_to_dict(doc: PolicyDocument) -> dict:
    """Serialize *doc* back to the AWS ``Version``/``Statement`` shape."""
    out: dict[str, Any] = {}
    if doc.version:
        out["Version"] = doc.version
    if doc.policy_id is not None:
        out["Id"] = doc.policy_id
    out["Statement"] = [_statement_to_dict(s) for s in doc.statements]
    return out


def dumps_document(doc: PolicyDocument, indent: int = 2) -> str:
    return json.dumps(document_to_dict(doc), indent=indent)


def load_document(path: str | Path, *, trust: Optional[bool] = None) -> PolicyDocument:
    """
    Read and parse a policy file.

    Raises:
        OSError: the file cannot be read.
        MalformedPolicyError: invalid JSON or not a policy document.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedPolicyError(f"file is not UTF-8 text: {exc.reason}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedPolicyError(
            f"invalid JSON at line {exc.lineno} column {exc.colno}: {exc.msg}"
        ) from exc
    except RecursionError as exc:
        raise MalformedPolicyError("JSON is nested too deeply") from exc
    doc = parse_document(data, trust=trust)
    logger.debug("loaded %s (%d statements)", path, len(doc.statements))
    return doc


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _parse_statement(raw: Any, path: str) -> Statement:
    if not isinstance(raw, dict):
        raise MalformedPolicyError("statement must be a JSON object", path)

    unsupported = sorted(_UNSUPPORTED_KEYS & raw.keys())
    if unsupported:
        raise MalformedPolicyError(
            f"{unsupported[0]} is not supported; list the elements explicitly",
            f"{path}/{unsupported[0]}",
        )
    unknown = sorted(raw.keys() - _STATEMENT_KEYS)
    if unknown:
        raise MalformedPolicyError(
            f"unknown statement element {unknown[0]!r}",
            f"{path}/{pointer_token(unknown[0])}",
        )

    try:
        effect = Effect(raw.get("Effect"))
    except ValueError:
        raise MalformedPolicyError(
            f"Effect must be 'Allow' or 'Deny', got {raw.get('Effect')!r}",
            f"{path}/Effect",
        ) from None

    sid = raw.get("Sid")
    if sid is not None and not isinstance(sid, str):
        raise MalformedPolicyError("Sid must be a string", f"{path}/Sid")

    principal = None
    if "Principal" in raw:
        principal = _parse_principal(raw["Principal"], f"{path}/Principal")

    return Statement(
        effect=effect,
        actions=_string_list(raw.get("Action", []), f"{path}/Action"),
        resources=_string_list(raw.get("Resource", []), f"{path}/Resource"),
        principal=principal,
        conditions=_parse_conditions(raw.get("Condition", {}), f"{path}/Condition"),
        sid=sid,
    )


def _parse_principal(raw: Any, path: str) -> Principal:
    if raw == "*":
        return Principal(wildcard=True)
    if not isinstance(raw, dict) or not raw:
        raise MalformedPolicyError(
            "Principal must be \"*\" or a non-empty object", path
        )
    fields: dict[str, tuple[str, ...]] = {}
    for key, value in raw.items():
        if key not in _PRINCIPAL_KEYS:
            raise MalformedPolicyError(
                f"unknown principal type {key!r}", f"{path}/{pointer_token(key)}"
            )
        values = _string_list(value, f"{path}/{key}")
        if not values:
            raise MalformedPolicyError(
                f"principal type {key!r} lists no principals", f"{path}/{key}"
            )
        fields[_PRINCIPAL_KEYS[key]] = values
    return Principal(**fields)


def _parse_conditions(raw: Any, path: str) -> tuple[ConditionClause, ...]:
    if not isinstance(raw, dict):
        raise MalformedPolicyError("Condition must be a JSON object", path)
    clauses: list[ConditionClause] = []
    for operator, block in raw.items():
        op_path = f"{path}/{pointer_token(operator)}"
        if not isinstance(block, dict):
            raise MalformedPolicyError(
                f"condition operator {operator!r} must map keys to values", op_path
            )
        for key, value in block.items():
            values = value if isinstance(value, list) else [value]
            for i, v in enumerate(values):
                if v is None or isinstance(v, (dict, list)):
                    raise MalformedPolicyError(
                        "condition values must be strings, numbers or booleans",
                        f"{op_path}/{pointer_token(key)}/{i}",
                    )
            clauses.append(ConditionClause(operator=operator, key=key, values=tuple(values)))
    return tuple(clauses)


def pointer_token(name: str) -> str:
    # RFC 6901: "~" and "/" inside a member name.
    return name.replace("~", "~0").replace("/", "~1")


def _string_list(value: Any, path: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise MalformedPolicyError("expected a string or a list of strings", path)


def _statement_to_dict(stmt: Statement) -> dict:
    out: dict[str, Any] = {}
    if stmt.sid is not None:
        out["Sid"] = stmt.sid
    out["Effect"] = stmt.effect.value
    if stmt.principal is not None:
        out["Principal"] = _principal_to_dict(stmt.principal)
    out["Action"] = _collapse(stmt.actions)
    if stmt.resources:
        out["Resource"] = _collapse(stmt.resources)
    if stmt.conditions:
        out["Condition"] = conditions_to_dict(stmt.conditions)
    return out


def _principal_to_dict(principal: Principal) -> Any:
    if principal.wildcard:
        return "*"
    out: dict[str, Any] = {}
    for json_key, attr in _PRINCIPAL_KEYS.items():
        values = getattr(principal, attr)
        if values:
            out[json_key] = _collapse(values)
    return out


def conditions_to_dict(conditions: tuple[ConditionClause, ...]) -> dict:
    """Group clauses back into an ``operator -> key -> value(s)`` mapping."""
    out: dict[str, dict[str, Any]] = {}
    for clause in conditions:
        out.setdefault(clause.operator, {})[clause.key] = _collapse(clause.values)
    return out


def _collapse(values: tuple) -> Any:
    return values[0] if len(values) == 1 else list(values)
