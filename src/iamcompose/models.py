"""Pure data models for iamcompose. No I/O, no AWS calls."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

SUPPORTED_VERSION = "2012-10-17"

# Actions that make a statement a role trust statement.
ASSUME_ROLE_ACTIONS = (
    "sts:AssumeRole",
    "sts:AssumeRoleWithSAML",
    "sts:AssumeRoleWithWebIdentity",
)
_ASSUME_ROLE_LOWER = frozenset(a.lower() for a in ASSUME_ROLE_ACTIONS)

Scalar = Union[str, bool, int, float]


class Effect(Enum):
    ALLOW = "Allow"
    DENY = "Deny"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return {Severity.INFO: 1, Severity.WARNING: 2, Severity.ERROR: 3}[self]


class ConditionOperator(Enum):
    """Base IAM condition operators, without set qualifier or IfExists suffix."""

    STRING_EQUALS = "StringEquals"
    STRING_NOT_EQUALS = "StringNotEquals"
    STRING_EQUALS_IGNORE_CASE = "StringEqualsIgnoreCase"
    STRING_NOT_EQUALS_IGNORE_CASE = "StringNotEqualsIgnoreCase"
    STRING_LIKE = "StringLike"
    STRING_NOT_LIKE = "StringNotLike"
    NUMERIC_EQUALS = "NumericEquals"
    NUMERIC_NOT_EQUALS = "NumericNotEquals"
    NUMERIC_LESS_THAN = "NumericLessThan"
    NUMERIC_LESS_THAN_EQUALS = "NumericLessThanEquals"
    NUMERIC_GREATER_THAN = "NumericGreaterThan"
    NUMERIC_GREATER_THAN_EQUALS = "NumericGreaterThanEquals"
    DATE_EQUALS = "DateEquals"
    DATE_NOT_EQUALS = "DateNotEquals"
    DATE_LESS_THAN = "DateLessThan"
    DATE_LESS_THAN_EQUALS = "DateLessThanEquals"
    DATE_GREATER_THAN = "DateGreaterThan"
    DATE_GREATER_THAN_EQUALS = "DateGreaterThanEquals"
    BOOL = "Bool"
    BINARY_EQUALS = "BinaryEquals"
    IP_ADDRESS = "IpAddress"
    NOT_IP_ADDRESS = "NotIpAddress"
    ARN_EQUALS = "ArnEquals"
    ARN_LIKE = "ArnLike"
    ARN_NOT_EQUALS = "ArnNotEquals"
    ARN_NOT_LIKE = "ArnNotLike"
    NULL = "Null"


@dataclass(frozen=True)
class ParsedOperator:
    """A raw operator string split into its qualifier, base and suffix."""

    qualifier: Optional[str]
    base: ConditionOperator
    if_exists: bool


def parse_operator(raw: str) -> ParsedOperator:
    """
    Split *raw* (e.g. ``ForAnyValue:StringLikeIfExists``) into its parts.

    Raises:
        ValueError: the base operator is not recognized or the qualifier /
            suffix combination is invalid.
    """
    qualifier: Optional[str] = None
    rest = raw
    if ":" in rest:
        qualifier, rest = rest.split(":", 1)
        if qualifier not in ("ForAnyValue", "ForAllValues"):
            raise ValueError(f"unknown set qualifier {qualifier!r}")
    if_exists = rest.endswith("IfExists")
    if if_exists:
        rest = rest[: -len("IfExists")]
    try:
        base = ConditionOperator(rest)
    except ValueError:
        raise ValueError(f"unknown condition operator {rest!r}") from None
    if base == ConditionOperator.NULL and (if_exists or qualifier):
        raise ValueError("Null cannot take a set qualifier or IfExists")
    return ParsedOperator(qualifier=qualifier, base=base, if_exists=if_exists)


@dataclass(frozen=True)
class ConditionClause:
    """One ``operator -> key -> values`` entry of a Condition block."""

    operator: str
    key: str
    values: tuple[Scalar, ...]


@dataclass(frozen=True)
class Principal:
    """Closed set of IAM principal kinds. ``wildcard`` is the bare ``"*"``."""

    wildcard: bool = False
    aws: tuple[str, ...] = ()
    service: tuple[str, ...] = ()
    federated: tuple[str, ...] = ()
    canonical_user: tuple[str, ...] = ()

    @property
    def is_public(self) -> bool:
        return self.wildcard or "*" in self.aws

    def canonical(self) -> tuple:
        """Order-independent key used when comparing principals."""
        return (
            self.wildcard,
            tuple(sorted(self.aws)),
            tuple(sorted(self.service)),
            tuple(sorted(self.federated)),
            tuple(sorted(self.canonical_user)),
        )


@dataclass(frozen=True)
class Statement:
    effect: Effect
    actions: tuple[str, ...]
    resources: tuple[str, ...] = ()
    principal: Optional[Principal] = None
    conditions: tuple[ConditionClause, ...] = ()
    sid: Optional[str] = None

    @property
    def grants_assume_role(self) -> bool:
        # IAM action names are case-insensitive.
        return self.effect == Effect.ALLOW and any(
            a.lower() in _ASSUME_ROLE_LOWER for a in self.actions
        )

    @property
    def is_trust(self) -> bool:
        """True when this statement allows a principal to assume a role."""
        return self.grants_assume_role and self.principal is not None


@dataclass(frozen=True)
class PolicyDocument:
    """An IAM policy: version plus an ordered sequence of statements."""

    version: str
    statements: tuple[Statement, ...]
    policy_id: Optional[str] = None


@dataclass(frozen=True)
class TrustPolicy(PolicyDocument):
    """A role trust policy. Every statement must name a principal."""


@dataclass(frozen=True)
class ModuleRequirement:
    """The minimal permission set an infrastructure module declares."""

    module: str
    document: PolicyDocument


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    code: str
    message: str
    path: str = ""
    suggestion: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class CompositionResult:
    document: PolicyDocument
    diagnostics: tuple[Diagnostic, ...] = field(default=())
