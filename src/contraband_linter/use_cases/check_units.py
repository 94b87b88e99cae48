"""Use Case: Diagnose tree dumps."""

import logging

from contraband_linter.domain.dispatcher import Dispatcher
from contraband_linter.domain.entities import AnalysisReport
from contraband_linter.domain.protocols import TreeSourceProtocol
from contraband_linter.domain.registry import RuleRegistry

logger = logging.getLogger(__name__)


class CheckUnitsUseCase:
    """Load every unit under the given paths and run the registry over them."""

    def __init__(self, tree_source: TreeSourceProtocol, registry: RuleRegistry, max_workers: int = 4) -> None:
        self.tree_source = tree_source
        self.registry = registry
        self.max_workers = max_workers

    def execute(self, paths: list[str], rule: str | None = None) -> list[AnalysisReport]:
        """Diagnose all units; rule restricts the run to one id or symbol."""
        registry = self.registry.only(rule) if rule else self.registry
        files = self.tree_source.discover(paths)
        logger.info("Checking %d unit(s) with %d rule(s)", len(files), len(registry))
        trees = [self.tree_source.load(path) for path in files]
        return Dispatcher(registry).run_units(trees, max_workers=self.max_workers)
