from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from contraband_linter.domain.entities import AnalysisReport, FixResult, RewriteEdit
    from contraband_linter.domain.registry import RuleRegistry
    from contraband_linter.domain.tree import Tree


class RewriteGatewayProtocol(Protocol):
    """Protocol for applying a batch of structural edits to one tree."""

    def apply(self, edits: list["RewriteEdit"], tree: "Tree") -> "Tree":
        """Apply all edits atomically. Raises RewriteConflict when two targets overlap."""
        ...

    def find_conflict(
        self, edits: list["RewriteEdit"], tree: "Tree"
    ) -> tuple["RewriteEdit", "RewriteEdit"] | None:
        """First overlapping pair in edits, or None."""
        ...


class TreeSourceProtocol(Protocol):
    """Protocol for loading analyzed units (tree dumps) from disk."""

    def discover(self, paths: list[str]) -> list[str]:
        """Expand files and directories into dump file paths."""
        ...

    def load(self, path: str) -> "Tree":
        """Load one unit. Raises TreeLoadError on malformed input."""
        ...


class ReporterProtocol(Protocol):
    """Protocol for presenting analysis results."""

    def report(self, reports: list["AnalysisReport"]) -> None: ...
    def report_fix(self, result: "FixResult", output: str | None = None) -> None: ...
    def report_rules(self, registry: "RuleRegistry") -> None: ...
