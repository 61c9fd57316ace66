"""Validate, compose and analyze a batch of module policy documents."""
from __future__ import annotations

import dataclasses
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .analyzer import analyze
from .composer import compose
from .config import AnalyzerConfig
from .loader import MalformedPolicyError, load_document
from .models import Diagnostic, ModuleRequirement, PolicyDocument, Severity
from .report import DocumentReport, Report, build_report
from .validator import has_errors, validate

logger = logging.getLogger(__name__)

REQUIREMENT_FILE = "required.json"
TRUST_FILE = "trust.json"
OVERRIDES_DIR = "overrides"


@dataclass(frozen=True)
class ModuleJob:
    """One independent unit of work: a base document and its overrides."""

    name: str
    base: Path
    overrides: tuple[Path, ...] = field(default=())
    trust: Optional[bool] = None


def discover_jobs(paths: Iterable[str | Path]) -> list[ModuleJob]:
    """
    Turn CLI paths into ModuleJobs.

    - A JSON file is a standalone document with no overrides.
    - A module directory holds ``required.json``, optional
      ``overrides/*.json`` (applied in name order) and an optional
      ``trust.json`` reported as its own document.
    - Any other directory is searched one level down for module directories.

    Raises:
        ValueError: a path does not exist or a directory holds no modules.
    """
    jobs: list[ModuleJob] = []
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            jobs.append(ModuleJob(name=path.stem, base=path))
            continue
        if not path.is_dir():
            raise ValueError(f"No such file or directory: {str(path)!r}")
        if _is_module_dir(path):
            jobs.extend(_module_jobs(path))
            continue
        children = sorted(p for p in path.iterdir() if p.is_dir() and _is_module_dir(p))
        if not children:
            raise ValueError(
                f"No modules found under {str(path)!r}: expected {REQUIREMENT_FILE} "
                f"or {TRUST_FILE} in the directory or its subdirectories."
            )
        for child in children:
            jobs.extend(_module_jobs(child))
    return jobs


def process_module(job: ModuleJob, config: AnalyzerConfig) -> DocumentReport:
    """
    Run load → validate → compose → validate → analyze for one job.

    Every failure is reported as a Diagnostic local to this job. A base
    document with errors yields no merged document; an override with errors
    is left out of the composition. The merged document is validated again,
    so rules the composition breaks are reported against it.
    """
    diags: list[Diagnostic] = []

    base = _load_checked(job.base, _label(job, job.base), diags, trust=job.trust)
    if base is None:
        logger.info("%s: base document rejected", job.name)
        return DocumentReport(name=job.name, document=None, diagnostics=tuple(diags))
    requirement = ModuleRequirement(module=job.name, document=base)

    overrides: list[PolicyDocument] = []
    names: list[str] = []
    for path in job.overrides:
        label = _label(job, path)
        doc = _load_checked(path, label, diags)
        if doc is None:
            logger.info("%s: override %s rejected", job.name, label)
            continue
        overrides.append(doc)
        names.append(label)

    result = compose(requirement, overrides, names=names)
    diags.extend(result.diagnostics)
    # Overrides can break document-level rules, e.g. identity statements
    # merged into a trust policy.
    diags.extend(validate(result.document))
    diags.extend(analyze(result.document, config))
    return DocumentReport(name=job.name, document=result.document, diagnostics=tuple(diags))


def run_batch(
    jobs: Iterable[ModuleJob],
    config: AnalyzerConfig,
    max_workers: Optional[int] = None,
) -> Report:
    """Process *jobs* in parallel; results keep the order of *jobs*."""
    jobs = list(jobs)
    logger.info("processing %d module(s)", len(jobs))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        reports = list(pool.map(functools.partial(process_module, config=config), jobs))
    return build_report(reports)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _is_module_dir(path: Path) -> bool:
    return (path / REQUIREMENT_FILE).is_file() or (path / TRUST_FILE).is_file()


def _module_jobs(path: Path) -> list[ModuleJob]:
    jobs: list[ModuleJob] = []
    requirement = path / REQUIREMENT_FILE
    if requirement.is_file():
        overrides_dir = path / OVERRIDES_DIR
        overrides = (
            tuple(sorted(overrides_dir.glob("*.json"))) if overrides_dir.is_dir() else ()
        )
        jobs.append(ModuleJob(name=path.name, base=requirement, overrides=overrides))
    trust = path / TRUST_FILE
    if trust.is_file():
        jobs.append(ModuleJob(name=f"{path.name}/trust", base=trust, trust=True))
    return jobs


def _label(job: ModuleJob, path: Path) -> str:
    try:
        return path.relative_to(job.base.parent).as_posix()
    except ValueError:
        return str(path)


def _load_checked(
    path: Path,
    label: str,
    diags: list[Diagnostic],
    trust: Optional[bool] = None,
) -> Optional[PolicyDocument]:
    """Load and validate *path*, appending diagnostics; None when rejected."""
    try:
        doc = load_document(path, trust=trust)
    except OSError as exc:
        diags.append(Diagnostic(
            severity=Severity.ERROR,
            code="file-unreadable",
            message=f"cannot read {label}: {exc.strerror or exc}",
            source=label,
        ))
        return None
    except MalformedPolicyError as exc:
        diags.append(Diagnostic(
            severity=Severity.ERROR,
            code="malformed",
            message=str(exc),
            path=exc.path,
            source=label,
        ))
        return None

    found = validate(doc)
    diags.extend(dataclasses.replace(d, source=label) for d in found)
    if has_errors(found):
        return None
    return doc
