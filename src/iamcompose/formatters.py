"""Render a Report to the terminal (Rich) or as JSON."""
from __future__ import annotations

import json
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .loader import dumps_document
from .models import Severity
from .report import DocumentReport, Report, report_to_dict


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

class TextFormatter:
    """Renders a Report using Rich for human-readable terminal output."""

    def __init__(self, console: Optional[Console] = None, show_policy: bool = False) -> None:
        self.console = console or Console(highlight=False)
        self.show_policy = show_policy

    def render(self, report: Report) -> None:
        c = self.console

        for doc in report.documents:
            self._render_document(doc)
            c.print()

        # Summary line
        counts = report.counts
        label, style = _status_label(report.failed)
        summary = Text()
        summary.append("Result: ", style="bold")
        summary.append(label, style=style)
        summary.append(
            f"  ({len(report.documents)} document(s), "
            f"{counts[Severity.ERROR]} error(s), "
            f"{counts[Severity.WARNING]} warning(s), "
            f"{counts[Severity.INFO]} info)"
        )
        c.print(summary)

    def _render_document(self, doc: DocumentReport) -> None:
        c = self.console

        header = Text()
        header.append(f"{doc.name}: ", style="bold")
        label, style = _status_label(doc.failed)
        header.append(label, style=style)
        c.print(header)

        if doc.document is None:
            c.print("[dim](document rejected; no merged policy produced)[/dim]")

        if doc.diagnostics:
            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Severity")
            table.add_column("Code")
            table.add_column("Location", style="dim")
            table.add_column("Message")
            for d in doc.diagnostics:
                location = f"{d.source}:{d.path}" if d.source else d.path or "-"
                message = Text(d.message)
                if d.suggestion:
                    message.append(f"\nfix: {d.suggestion}", style="dim")
                table.add_row(
                    Text(d.severity.value.upper(), style=_severity_style(d.severity)),
                    d.code,
                    Text(location),
                    message,
                )
            c.print(table)
        else:
            c.print("[dim](no diagnostics)[/dim]")

        if self.show_policy and doc.document is not None:
            c.print(
                Panel(
                    Text(dumps_document(doc.document)),
                    title=f"[bold]{doc.name}[/bold] [dim](merged policy)[/dim]",
                    expand=False,
                )
            )


class JsonFormatter:
    """Renders a Report as a JSON document to stdout."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def render(self, report: Report) -> None:
        print(json.dumps(report_to_dict(report), indent=self.indent, default=str))


def get_formatter(
    output: str, console: Optional[Console] = None, show_policy: bool = False
) -> TextFormatter | JsonFormatter:
    """Factory: ``'text'`` → TextFormatter, ``'json'`` → JsonFormatter."""
    if output == "json":
        return JsonFormatter()
    return TextFormatter(console=console, show_policy=show_policy)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _status_label(failed: bool) -> tuple[str, str]:
    if failed:
        return "FAILED", "bold red"
    return "PASSED", "bold green"


def _severity_style(severity: Severity) -> str:
    if severity == Severity.ERROR:
        return "red"
    if severity == Severity.WARNING:
        return "yellow"
    return "cyan"
