"""CLI entry points for Contraband - Thin Controller using Typer."""

import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import typer

from contraband_linter.domain.config import ConfigurationLoader
from contraband_linter.domain.errors import ContrabandError
from contraband_linter.domain.protocols import ReporterProtocol, RewriteGatewayProtocol, TreeSourceProtocol
from contraband_linter.domain.registry import RuleRegistry
from contraband_linter.use_cases.apply_fixes import ApplyFixesUseCase
from contraband_linter.use_cases.check_units import CheckUnitsUseCase

EXIT_CLEAN = 0
EXIT_DIAGNOSTICS = 1
EXIT_ERROR = 2


@dataclass(frozen=True)
class CLIDependencies:
    """Explicit dependencies for the CLI. All dependencies injected at composition root."""

    config_loader: ConfigurationLoader
    registry: RuleRegistry
    tree_source: TreeSourceProtocol
    rewrite_gateway: RewriteGatewayProtocol
    reporters: Mapping[str, ReporterProtocol]


class CLIAppFactory:
    """Creates the Typer app."""

    @staticmethod
    def configure_logging(verbose: bool) -> None:
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
            force=True,
        )

    @staticmethod
    def create_app(deps: CLIDependencies) -> typer.Typer:
        """Create the Typer app with explicitly injected dependencies. No Service Locator."""
        app = typer.Typer(
            name="contraband",
            help="Contraband: data-access anti-pattern linter. Run 'contraband check' to diagnose; "
            "'contraband fix' to apply fixes.",
            add_completion=False,
        )

        def _reporter(output_format: str | None) -> ReporterProtocol:
            chosen = output_format or deps.config_loader.output_format
            if chosen not in deps.reporters:
                typer.secho(f"Unknown format '{chosen}'. Choose from: {', '.join(deps.reporters)}", fg="red", err=True)
                sys.exit(EXIT_ERROR)
            return deps.reporters[chosen]

        @app.callback()
        def main(
            verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
        ) -> None:
            CLIAppFactory.configure_logging(verbose)

        @app.command()
        def check(
            paths: list[Path] = typer.Argument(..., help="Tree dump files or directories"),  # noqa: B008
            rule: str | None = typer.Option(None, "--rule", "-r", help="Only run this rule id or symbol"),
            output_format: str | None = typer.Option(None, "--format", "-f", help="text or json"),
        ) -> None:
            """Diagnose every unit under PATHS."""
            reporter = _reporter(output_format)
            use_case = CheckUnitsUseCase(
                tree_source=deps.tree_source,
                registry=deps.registry,
                max_workers=deps.config_loader.max_workers,
            )
            try:
                reports = use_case.execute([str(path) for path in paths], rule=rule)
            except ContrabandError as exc:
                typer.secho(str(exc), fg="red", err=True)
                sys.exit(EXIT_ERROR)
            reporter.report(reports)
            if any(report.has_diagnostics() for report in reports):
                sys.exit(EXIT_DIAGNOSTICS)
            sys.exit(EXIT_CLEAN)

        @app.command()
        def fix(
            path: Path = typer.Argument(..., help="Tree dump of the unit to fix"),  # noqa: B008
            rule: str = typer.Option(..., "--rule", "-r", help="Rule id or symbol whose diagnostics to fix"),
            iterative: bool = typer.Option(False, "--iterative", help="Re-diagnose and fix until stable"),
            output: Path | None = typer.Option(None, "--output", "-o", help="Write the rewritten source here"),  # noqa: B008
            output_format: str | None = typer.Option(None, "--format", "-f", help="text or json"),
        ) -> None:
            """Apply every fix for RULE in one unit and print or write the rewritten source."""
            reporter = _reporter(output_format)
            use_case = ApplyFixesUseCase(registry=deps.registry, rewrite_gateway=deps.rewrite_gateway)
            try:
                tree = deps.tree_source.load(str(path))
                result = use_case.execute(tree, rule, iterative=iterative)
            except ContrabandError as exc:
                typer.secho(str(exc), fg="red", err=True)
                sys.exit(EXIT_ERROR)
            if output is not None:
                output.write_text(result.tree.source, encoding="utf-8")
            reporter.report_fix(result, str(output) if output is not None else None)
            sys.exit(EXIT_CLEAN)

        @app.command()
        def rules(
            output_format: str | None = typer.Option(None, "--format", "-f", help="text or json"),
        ) -> None:
            """List the registered rules."""
            _reporter(output_format).report_rules(deps.registry)

        return app
