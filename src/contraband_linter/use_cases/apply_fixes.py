"""Use Case: Apply fixes for one rule across a unit."""

import logging

from contraband_linter.domain.dispatcher import Dispatcher
from contraband_linter.domain.entities import FixResult, RewriteEdit
from contraband_linter.domain.protocols import RewriteGatewayProtocol
from contraband_linter.domain.registry import RuleRegistry
from contraband_linter.domain.rules import Diagnostic
from contraband_linter.domain.tree import Tree

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 10


class ApplyFixesUseCase:
    """
    Batch-fix every diagnostic of one rule in a unit.

    Each diagnostic's edits are accepted all-or-nothing. A diagnostic whose
    edits conflict with edits already accepted in the pass is deferred; the
    accepted set is applied in one gateway call. In iterative mode detection
    re-runs on the new tree until a pass applies nothing or max_passes is hit.
    """

    def __init__(
        self,
        registry: RuleRegistry,
        rewrite_gateway: RewriteGatewayProtocol,
        max_passes: int = DEFAULT_MAX_PASSES,
    ) -> None:
        self.registry = registry
        self.rewrite_gateway = rewrite_gateway
        self.max_passes = max_passes

    def execute(self, tree: Tree, rule: str, iterative: bool = False) -> FixResult:
        registry = self.registry.only(rule)
        dispatcher = Dispatcher(registry)
        applied: list[Diagnostic] = []
        deferred: list[Diagnostic] = []
        passes = 0
        current = tree
        while True:
            passes += 1
            edits, fixed, deferred = self._plan(registry, dispatcher.run(current), current)
            if fixed:
                current = self.rewrite_gateway.apply(edits, current)
                applied.extend(fixed)
            logger.info("Pass %d: %d fixed, %d deferred", passes, len(fixed), len(deferred))
            if not iterative or not fixed or passes >= self.max_passes:
                break
        return FixResult(tree=current, applied=tuple(applied), deferred=tuple(deferred), passes=passes)

    def _plan(
        self, registry: RuleRegistry, diagnostics: list[Diagnostic], tree: Tree
    ) -> tuple[list[RewriteEdit], list[Diagnostic], list[Diagnostic]]:
        """Accepted edits, the diagnostics they fix, and the deferred remainder."""
        accepted: list[RewriteEdit] = []
        fixed: list[Diagnostic] = []
        deferred: list[Diagnostic] = []
        for diagnostic in diagnostics:
            registration = registry.find(diagnostic)
            if registration is None or registration.fix is None:
                continue
            try:
                edits = registration.fix(diagnostic, tree)
            except Exception:
                logger.warning("Fix for %s at %s failed", diagnostic.symbol, diagnostic.location, exc_info=True)
                continue
            if not edits:
                logger.debug("No deterministic fix for %s at %s", diagnostic.symbol, diagnostic.location)
                continue
            if self.rewrite_gateway.find_conflict([*accepted, *edits], tree) is not None:
                deferred.append(diagnostic)
                continue
            accepted.extend(edits)
            fixed.append(diagnostic)
        return accepted, fixed, deferred
