"""Domain entities for rewrites and analysis results."""

from collections.abc import Callable
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from contraband_linter.domain.symbols import Symbol
from contraband_linter.domain.syntax import Syntax

if TYPE_CHECKING:
    from contraband_linter.domain.rules import Diagnostic
    from contraband_linter.domain.tree import Tree

Builder = Callable[[Syntax, str | None], Syntax]
"""(original syntax at the target, synthesized name or None) -> new syntax."""


class EditType(Enum):
    """Ways an edit can touch its target node."""

    REPLACE = "replace"
    REMOVE = "remove"
    INSERT_BEFORE = "insert_before"
    INSERT_AFTER = "insert_after"


@dataclass(frozen=True)
class NameRequest:
    """Ask the engine for a fresh identifier.

    Requests sharing a key within one batch receive the same name, which lets
    several edits agree on a synthesized local.
    """

    base: str
    scope: int
    reserved: tuple[str, ...] = ()
    key: str = ""

    @property
    def resolved_key(self) -> str:
        return self.key or f"{self.scope}:{self.base}"


def _keep(original: Syntax, name: str | None) -> Syntax:
    return original


@dataclass(frozen=True)
class RewriteEdit:
    """
    Pure description of one structural change.

    Rules return these instead of touching the tree; the rewrite gateway
    interprets a batch of them and produces a new tree in one step.
    """

    edit_type: EditType
    target: int
    build: Builder = _keep
    title: str = ""
    name_request: NameRequest | None = None
    declares: tuple[Symbol, ...] = ()
    merge_key: str = ""
    """Edits sharing a non-empty merge key are applied once per batch (e.g. a using directive)."""

    @classmethod
    def replace(
        cls,
        target: int,
        build: Builder,
        title: str,
        name_request: NameRequest | None = None,
        declares: tuple[Symbol, ...] = (),
    ) -> "RewriteEdit":
        """Replace the target node; the result keeps the target's trivia."""
        return cls(EditType.REPLACE, target, build, title, name_request, declares)

    @classmethod
    def replace_with(cls, target: int, syntax: Syntax, title: str, declares: tuple[Symbol, ...] = ()) -> "RewriteEdit":
        """Replace the target with a fixed node."""
        return cls(EditType.REPLACE, target, lambda original, name: syntax, title, None, declares)

    @classmethod
    def remove(cls, target: int, title: str) -> "RewriteEdit":
        return cls(EditType.REMOVE, target, _keep, title)

    @classmethod
    def insert_before(
        cls,
        anchor: int,
        build: Builder,
        title: str,
        name_request: NameRequest | None = None,
        declares: tuple[Symbol, ...] = (),
    ) -> "RewriteEdit":
        """Insert a sibling before anchor. build receives the anchor's syntax."""
        return cls(EditType.INSERT_BEFORE, anchor, build, title, name_request, declares)

    @classmethod
    def insert_after(
        cls,
        anchor: int,
        build: Builder,
        title: str,
        name_request: NameRequest | None = None,
        declares: tuple[Symbol, ...] = (),
    ) -> "RewriteEdit":
        return cls(EditType.INSERT_AFTER, anchor, build, title, name_request, declares)

    def merged_as(self, key: str) -> "RewriteEdit":
        return dataclasses.replace(self, merge_key=key)

    @property
    def is_insertion(self) -> bool:
        return self.edit_type in (EditType.INSERT_BEFORE, EditType.INSERT_AFTER)


@dataclass(frozen=True)
class FixResult:
    """Outcome of a batch fix over one unit."""

    tree: "Tree"
    applied: tuple["Diagnostic", ...] = ()
    deferred: tuple["Diagnostic", ...] = ()
    passes: int = 1

    @property
    def changed(self) -> bool:
        return bool(self.applied)


@dataclass(frozen=True)
class AnalysisReport:
    """Diagnostics for one analyzed unit, in position order."""

    path: str
    diagnostics: tuple["Diagnostic", ...] = ()
    failed_rules: tuple[str, ...] = field(default=())

    def has_diagnostics(self) -> bool:
        return bool(self.diagnostics)
