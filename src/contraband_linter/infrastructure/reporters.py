"""Terminal and JSON reporters - live in infrastructure (write to stdout)."""

import json
from collections import Counter
from typing import TYPE_CHECKING, TypedDict

import typer

from contraband_linter.domain.protocols import ReporterProtocol
from contraband_linter.domain.rules import Severity

if TYPE_CHECKING:
    from contraband_linter.domain.entities import AnalysisReport, FixResult
    from contraband_linter.domain.registry import RuleRegistry
    from contraband_linter.domain.rules import Diagnostic

_SEVERITY_COLORS = {
    Severity.INFO: typer.colors.CYAN,
    Severity.WARN: typer.colors.YELLOW,
    Severity.ERROR: typer.colors.RED,
}


class DiagnosticRow(TypedDict):
    """One diagnostic as written by the JSON reporter."""

    path: str
    line: int
    column: int
    end_line: int
    end_column: int
    rule_id: str
    symbol: str
    severity: str
    message: str
    fixable: bool


def diagnostic_row(diagnostic: "Diagnostic") -> DiagnosticRow:
    location = diagnostic.location
    return DiagnosticRow(
        path=location.path,
        line=location.line,
        column=location.column,
        end_line=location.end_line,
        end_column=location.end_column,
        rule_id=diagnostic.rule_id,
        symbol=diagnostic.symbol,
        severity=diagnostic.severity.value,
        message=diagnostic.message,
        fixable=diagnostic.fixable,
    )


class TerminalReporter(ReporterProtocol):
    """`path:line:col: ID [severity] message` lines followed by per-rule counts."""

    def report(self, reports: list["AnalysisReport"]) -> None:
        counts: Counter[str] = Counter()
        for analysis in reports:
            for diagnostic in analysis.diagnostics:
                counts[f"{diagnostic.rule_id} {diagnostic.symbol}"] += 1
                typer.echo(
                    f"{diagnostic.location}: {diagnostic.rule_id} "
                    + typer.style(f"[{diagnostic.severity.value}]", fg=_SEVERITY_COLORS[diagnostic.severity])
                    + f" {diagnostic.message}"
                )
            for symbol in analysis.failed_rules:
                typer.secho(f"{analysis.path}: rule '{symbol}' failed and was skipped", fg=typer.colors.RED, err=True)
        if not counts:
            typer.secho(f"No issues found in {len(reports)} unit(s).", fg=typer.colors.GREEN)
            return
        typer.echo("")
        for rule, count in sorted(counts.items()):
            typer.echo(f"{count:>5}  {rule}")
        typer.echo(f"{sum(counts.values()):>5}  total in {len(reports)} unit(s)")

    def report_fix(self, result: "FixResult", output: str | None = None) -> None:
        if output is None:
            typer.echo(result.tree.source)
        typer.secho(
            f"Applied {len(result.applied)} fix(es) in {result.passes} pass(es); {len(result.deferred)} deferred.",
            fg=typer.colors.GREEN if result.changed else typer.colors.YELLOW,
            err=True,
        )
        for diagnostic in result.deferred:
            typer.echo(f"  deferred: {diagnostic.location}: {diagnostic.rule_id} {diagnostic.message}", err=True)

    def report_rules(self, registry: "RuleRegistry") -> None:
        for registration in registry:
            fix = "fix" if registration.fixable else "   "
            typer.echo(
                f"{registration.rule_id}  {registration.symbol:<34} {registration.severity.value:<5} {fix}  "
                f"{registration.description}"
            )


class JsonReporter(ReporterProtocol):
    """Machine-readable output; one JSON document per command."""

    def report(self, reports: list["AnalysisReport"]) -> None:
        document = {
            "units": [
                {
                    "path": analysis.path,
                    "diagnostics": [diagnostic_row(diagnostic) for diagnostic in analysis.diagnostics],
                    "failed_rules": list(analysis.failed_rules),
                }
                for analysis in reports
            ],
            "total": sum(len(analysis.diagnostics) for analysis in reports),
        }
        typer.echo(json.dumps(document, indent=2))

    def report_fix(self, result: "FixResult", output: str | None = None) -> None:
        document = {
            "path": result.tree.path,
            "passes": result.passes,
            "applied": [diagnostic_row(diagnostic) for diagnostic in result.applied],
            "deferred": [diagnostic_row(diagnostic) for diagnostic in result.deferred],
            "source": None if output is not None else result.tree.source,
            "output": output,
        }
        typer.echo(json.dumps(document, indent=2))

    def report_rules(self, registry: "RuleRegistry") -> None:
        rules = [
            {
                "rule_id": registration.rule_id,
                "symbol": registration.symbol,
                "severity": registration.severity.value,
                "fixable": registration.fixable,
                "description": registration.description,
            }
            for registration in registry
        ]
        typer.echo(json.dumps(rules, indent=2))
