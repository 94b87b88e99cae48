"""One-pass dispatch of rule callbacks over a tree."""

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from contraband_linter.domain.entities import AnalysisReport
from contraband_linter.domain.registry import RuleRegistry
from contraband_linter.domain.rules import Diagnostic
from contraband_linter.domain.tree import Tree

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Walks each tree once and hands every node to the rules subscribed to its kind.

    Callbacks for one node run synchronously in registration order. A callback
    that raises is logged and skipped; the remaining callbacks still run. Units
    share nothing mutable, so run_units can analyze them on separate threads.
    """

    def __init__(self, registry: RuleRegistry) -> None:
        self.registry = registry

    def run(self, tree: Tree) -> list[Diagnostic]:
        return list(self.analyze(tree).diagnostics)

    def analyze(self, tree: Tree) -> AnalysisReport:
        diagnostics: list[Diagnostic] = []
        failed: list[str] = []
        for node in tree.walk():
            for registration in self.registry.for_kind(node.kind):
                try:
                    found = registration.check(node, tree)
                except Exception:
                    logger.warning(
                        "Rule %s (%s) failed on %s node %d in %s",
                        registration.rule_id,
                        registration.symbol,
                        node.kind.value,
                        node.index,
                        tree.path,
                        exc_info=True,
                    )
                    if registration.symbol not in failed:
                        failed.append(registration.symbol)
                    continue
                diagnostics.extend(registration.adjust(diagnostic) for diagnostic in found)
        diagnostics.sort(key=Diagnostic.sort_key)
        logger.debug("%s: %d diagnostics", tree.path, len(diagnostics))
        return AnalysisReport(path=tree.path, diagnostics=tuple(diagnostics), failed_rules=tuple(failed))

    def run_units(self, trees: Sequence[Tree], max_workers: int = 4) -> list[AnalysisReport]:
        """Analyze independent units in parallel; reports come back in input order."""
        if len(trees) <= 1 or max_workers <= 1:
            return [self.analyze(tree) for tree in trees]
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(self.analyze, trees))
