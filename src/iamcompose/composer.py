"""Merge a module's required policy with user-supplied overrides."""
from __future__ import annotations

import dataclasses
import logging
from typing import Optional, Sequence, Union

from .models import (
    CompositionResult,
    ConditionClause,
    Diagnostic,
    ModuleRequirement,
    PolicyDocument,
    Severity,
    Statement,
)

logger = logging.getLogger(__name__)


def statement_key(stmt: Statement) -> tuple:
    """
    Identity of a statement for merging: effect, sorted actions and sorted
    resources, plus the principal so distinct trusted parties never collapse.
    """
    return (
        stmt.effect,
        tuple(sorted(set(stmt.actions))),
        tuple(sorted(set(stmt.resources))),
        stmt.principal.canonical() if stmt.principal is not None else None,
    )


def compose(
    base: Union[PolicyDocument, ModuleRequirement],
    overrides: Sequence[PolicyDocument] = (),
    names: Optional[Sequence[str]] = None,
) -> CompositionResult:
    """
    Fold *overrides* into *base*, in order, and return a new document.

    Base statements keep their original order; statements from overrides
    whose key matches an accumulated statement collapse into it with unioned
    conditions (the override's value wins for a shared operator and key).
    Override-only statements are appended in encounter order. *names* label
    each override in the returned diagnostics.
    """
    if isinstance(base, ModuleRequirement):
        base = base.document

    statements: list[Statement] = list(base.statements)
    index: dict[tuple, int] = {}
    for i, stmt in enumerate(statements):
        index.setdefault(statement_key(stmt), i)
    sids = {s.sid for s in statements if s.sid is not None}
    diags: list[Diagnostic] = []

    for n, override in enumerate(overrides):
        source = names[n] if names is not None else f"override[{n}]"
        for stmt in override.statements:
            key = statement_key(stmt)
            if key in index:
                pos = index[key]
                merged, diag = _merge_statements(statements[pos], stmt, pos)
                statements[pos] = merged
                if diag is not None:
                    diags.append(dataclasses.replace(diag, source=source))
                continue

            if stmt.sid is not None and stmt.sid in sids:
                diags.append(Diagnostic(
                    severity=Severity.WARNING,
                    code="sid-collision",
                    message=f"Sid {stmt.sid!r} already names another statement; dropped",
                    path=f"/Statement/{len(statements)}/Sid",
                    source=source,
                ))
                stmt = dataclasses.replace(stmt, sid=None)
            elif stmt.sid is not None:
                sids.add(stmt.sid)
            index[key] = len(statements)
            statements.append(stmt)

    logger.debug(
        "composed %d override(s) into %d statement(s)", len(overrides), len(statements)
    )
    document = dataclasses.replace(base, statements=tuple(statements))
    return CompositionResult(document=document, diagnostics=tuple(diags))


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _merge_statements(
    base: Statement, override: Statement, pos: int
) -> tuple[Statement, Optional[Diagnostic]]:
    base_cond = _condition_map(base.conditions)
    over_cond = _condition_map(override.conditions)

    merged_cond: dict[str, dict[str, tuple]] = {op: dict(block) for op, block in base_cond.items()}
    replaced: list[str] = []
    for op, block in over_cond.items():
        target = merged_cond.setdefault(op, {})
        for key, values in block.items():
            if key in target and target[key] != values:
                replaced.append(f"{op}.{key}")
            target[key] = values

    merged = dataclasses.replace(
        base,
        conditions=tuple(
            ConditionClause(operator=op, key=key, values=values)
            for op, block in merged_cond.items()
            for key, values in block.items()
        ),
    )

    diag = None
    if base_cond and over_cond and base_cond != over_cond:
        if replaced:
            message = (
                "merged conflicting conditions for the same statement; override "
                f"replaced {', '.join(replaced)}"
            )
        else:
            message = "merged condition blocks of two statements with the same key"
        diag = Diagnostic(
            severity=Severity.WARNING,
            code="condition-merge",
            message=message,
            path=f"/Statement/{pos}/Condition",
        )
    return merged, diag


def _condition_map(clauses: tuple[ConditionClause, ...]) -> dict[str, dict[str, tuple]]:
    out: dict[str, dict[str, tuple]] = {}
    for c in clauses:
        out.setdefault(c.operator, {})[c.key] = c.values
    return out
