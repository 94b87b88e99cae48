"""Domain models for rules and diagnostics."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

__all__ = [
    "BaseRule",
    "Checkable",
    "Diagnostic",
    "Fixable",
    "Severity",
]

from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Location, Node, Tree

if TYPE_CHECKING:
    from contraband_linter.domain.entities import RewriteEdit


class Severity(Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def parse(cls, value: str) -> "Severity":
        aliases = {"warning": "warn", "information": "info", "hidden": "info"}
        normalized = aliases.get(value.strip().lower(), value.strip().lower())
        return cls(normalized)


@dataclass(frozen=True)
class Diagnostic:
    """A finding with rule id, severity, formatted message and location."""

    rule_id: str
    symbol: str
    """Unique rule name; distinguishes rules that share an id (e.g. LC022)."""
    severity: Severity
    message: str
    location: Location
    node: int
    message_args: tuple[str, ...] = ()
    secondary_locations: tuple[Location, ...] = ()
    fixable: bool = False

    @classmethod
    def from_node(
        cls,
        *,
        rule: "Checkable",
        node: Node,
        tree: Tree,
        message_args: tuple[str, ...] = (),
        secondary: tuple[Node, ...] = (),
        template: str | None = None,
    ) -> "Diagnostic":
        """Build a Diagnostic located at node. template overrides the rule's message for variants."""
        return cls(
            rule_id=rule.code,
            symbol=rule.symbol,
            severity=rule.severity,
            message=(template or rule.message).format(*message_args),
            location=tree.location(node),
            node=node.index,
            message_args=message_args,
            secondary_locations=tuple(tree.location(other) for other in secondary),
            fixable=callable(getattr(rule, "fix", None)),
        )

    def sort_key(self) -> tuple[int, int, str, str]:
        return (self.location.line, self.location.column, self.rule_id, self.symbol)


# -----------------------------------------------------------------------------
# Rule protocols: Checkable (detection only) and Fixable (optional rewrite).
# BaseRule = Checkable + Fixable for rules that ship an automatic fix.
# -----------------------------------------------------------------------------


class Checkable(Protocol):
    """Pure detection over one node kind set. Must not raise on unexpected shapes."""

    code: str
    symbol: str
    description: str
    message: str
    severity: Severity
    kinds: frozenset[Kind]

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        """Return diagnostics for node; [] when the trigger shape does not match."""
        ...


class Fixable(Protocol):
    """Optional capability: a rewrite for the rule's own diagnostics."""

    fix_title: str

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> "list[RewriteEdit]":
        """
        Return the edits that resolve diagnostic.

        Returns [] when no deterministic fix exists for this occurrence
        (e.g. no token in scope, declaration not in this unit).
        """
        ...


class BaseRule(Checkable, Fixable, Protocol):
    """Detection plus rewrite."""

    code: str
    symbol: str
    description: str
    message: str
    severity: Severity
    kinds: frozenset[Kind]
    fix_title: str

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        ...

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> "list[RewriteEdit]":
        ...
