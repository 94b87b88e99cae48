"""Domain exceptions."""


class ContrabandError(Exception):
    """Base for errors the CLI reports instead of crashing."""


class RewriteConflict(ContrabandError):
    """Two edits in one batch target overlapping ranges. Nothing was applied."""

    def __init__(self, first: object, second: object) -> None:
        super().__init__(f"Conflicting edits: {first!r} overlaps {second!r}")
        self.first = first
        self.second = second


class TreeLoadError(ContrabandError):
    """A tree dump could not be read or is malformed."""


class UnknownRuleError(ContrabandError):
    """A rule id or symbol matches nothing in the registry."""
