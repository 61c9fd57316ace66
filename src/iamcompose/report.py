"""Collect diagnostics into a per-document, per-severity report."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from .loader import document_to_dict
from .models import Diagnostic, PolicyDocument, Severity


@dataclass(frozen=True)
class DocumentReport:
    """Outcome for one input module or document."""

    name: str
    document: Optional[PolicyDocument]
    diagnostics: tuple[Diagnostic, ...] = field(default=())

    @property
    def failed(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    def by_severity(self) -> dict[Severity, tuple[Diagnostic, ...]]:
        return _group(self.diagnostics)


@dataclass(frozen=True)
class Report:
    documents: tuple[DocumentReport, ...]

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return tuple(d for doc in self.documents for d in doc.diagnostics)

    @property
    def counts(self) -> dict[Severity, int]:
        return {sev: len(diags) for sev, diags in _group(self.diagnostics).items()}

    @property
    def failed(self) -> bool:
        """Any Error fails the run; warnings are surfaced only."""
        return any(doc.failed for doc in self.documents)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


def build_report(documents: Iterable[DocumentReport]) -> Report:
    return Report(documents=tuple(documents))


def diagnostic_to_dict(diag: Diagnostic) -> dict:
    return {
        "severity": diag.severity.value,
        "code": diag.code,
        "message": diag.message,
        "path": diag.path,
        "source": diag.source,
        "suggestion": diag.suggestion,
    }


def report_to_dict(report: Report) -> dict:
    counts = report.counts
    return {
        "failed": report.failed,
        "counts": {sev.value: counts[sev] for sev in Severity},
        "documents": [
            {
                "name": doc.name,
                "failed": doc.failed,
                "document": (
                    document_to_dict(doc.document) if doc.document is not None else None
                ),
                "diagnostics": [diagnostic_to_dict(d) for d in doc.diagnostics],
            }
            for doc in report.documents
        ],
    }


def _group(diagnostics: Iterable[Diagnostic]) -> dict[Severity, tuple[Diagnostic, ...]]:
    # Most severe first; every severity present even when empty.
    groups: dict[Severity, list[Diagnostic]] = {
        sev: [] for sev in sorted(Severity, key=lambda s: s.rank, reverse=True)
    }
    for diag in diagnostics:
        groups[diag.severity].append(diag)
    return {sev: tuple(diags) for sev, diags in groups.items()}
