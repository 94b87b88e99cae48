"""Static rule catalog and the kind-indexed registry built from it."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from contraband_linter.domain.errors import UnknownRuleError
from contraband_linter.domain.rules import Checkable, Diagnostic, Severity
from contraband_linter.domain.rules.async_rules import MissingCancellationTokenRule, SyncBlockerRule
from contraband_linter.domain.rules.lifetime import (
    DEFAULT_SCOPED_HOST_SUFFIXES,
    DbContextInSingletonRule,
    DisposedContextQueryRule,
)
from contraband_linter.domain.rules.loops import (
    ExplicitLoadingInLoopRule,
    NPlusOneLooperRule,
    SaveChangesInLoopRule,
)
from contraband_linter.domain.rules.materialization import (
    OptimizeRemoveRangeRule,
    PrematureMaterializationRule,
    QueryableLeakRule,
    RedundantMaterializationRule,
    ToListInSelectRule,
    UnboundedQueryMaterializationRule,
)
from contraband_linter.domain.rules.model_rules import EntityMissingPrimaryKeyRule, MissingExplicitForeignKeyRule
from contraband_linter.domain.rules.ordering import (
    MissingOrderByRule,
    MultipleOrderByRule,
    OrderByAfterPaginationRule,
)
from contraband_linter.domain.rules.query_shape import (
    DEFAULT_THEN_INCLUDE_MAX_DEPTH,
    AnyOverCountRule,
    CartesianExplosionRule,
    DeepThenIncludeRule,
    FindInsteadOfFirstRule,
    FromSqlRawInterpolationRule,
    RedundantIdentitySelectRule,
)
from contraband_linter.domain.rules.query_translation import (
    ConditionalIncludeRule,
    DateTimeNowInQueryRule,
    GroupByNonTranslatableRule,
    LocalMethodInQueryRule,
    StringCaseConversionRule,
    StringComparisonOverloadRule,
)
from contraband_linter.domain.rules.tracking import (
    AsNoTrackingWithUpdateRule,
    IgnoreQueryFiltersRule,
    MissingAsNoTrackingRule,
)
from contraband_linter.domain.syntax import Kind

if TYPE_CHECKING:
    from contraband_linter.domain.config import ConfigurationLoader
    from contraband_linter.domain.entities import RewriteEdit
    from contraband_linter.domain.tree import Node, Tree

logger = logging.getLogger(__name__)


def default_rules(
    then_include_max_depth: int = DEFAULT_THEN_INCLUDE_MAX_DEPTH,
    scoped_host_suffixes: tuple[str, ...] = DEFAULT_SCOPED_HOST_SUFFIXES,
) -> list[Checkable]:
    """Every rule, in id order. The order is also the callback order per node."""
    return [
        LocalMethodInQueryRule(),
        PrematureMaterializationRule(),
        AnyOverCountRule(),
        QueryableLeakRule(),
        MultipleOrderByRule(),
        CartesianExplosionRule(),
        NPlusOneLooperRule(),
        SyncBlockerRule(),
        MissingAsNoTrackingRule(),
        SaveChangesInLoopRule(),
        EntityMissingPrimaryKeyRule(),
        OptimizeRemoveRangeRule(),
        DisposedContextQueryRule(),
        StringCaseConversionRule(),
        MissingOrderByRule(),
        DateTimeNowInQueryRule(),
        FromSqlRawInterpolationRule(),
        ConditionalIncludeRule(),
        StringComparisonOverloadRule(),
        IgnoreQueryFiltersRule(),
        ExplicitLoadingInLoopRule(),
        ToListInSelectRule(),
        FindInsteadOfFirstRule(),
        GroupByNonTranslatableRule(),
        AsNoTrackingWithUpdateRule(),
        MissingCancellationTokenRule(),
        MissingExplicitForeignKeyRule(),
        OrderByAfterPaginationRule(),
        RedundantMaterializationRule(),
        DeepThenIncludeRule(then_include_max_depth),
        RedundantIdentitySelectRule(),
        DbContextInSingletonRule(scoped_host_suffixes),
        UnboundedQueryMaterializationRule(),
    ]


@dataclass(frozen=True)
class RuleRegistration:
    """One rule's subscription: the kinds it listens to and its callbacks."""

    rule_id: str
    symbol: str
    kinds: frozenset[Kind]
    severity: Severity
    check: Callable[["Node", "Tree"], list[Diagnostic]]
    fix: Callable[[Diagnostic, "Tree"], list["RewriteEdit"]] | None = None
    fix_title: str = ""
    description: str = ""

    @classmethod
    def of(cls, rule: Checkable, severity: Severity | None = None) -> "RuleRegistration":
        fix = getattr(rule, "fix", None)
        return cls(
            rule_id=rule.code,
            symbol=rule.symbol,
            kinds=frozenset(rule.kinds),
            severity=severity or rule.severity,
            check=rule.check,
            fix=fix if callable(fix) else None,
            fix_title=getattr(rule, "fix_title", ""),
            description=rule.description,
        )

    @property
    def fixable(self) -> bool:
        return self.fix is not None

    def matches(self, key: str) -> bool:
        """key is this rule's id or symbol (ids are shared by some rules)."""
        return key in (self.rule_id, self.symbol)

    def adjust(self, diagnostic: Diagnostic) -> Diagnostic:
        """Apply the configured severity to a diagnostic this rule produced."""
        if diagnostic.severity is self.severity:
            return diagnostic
        return dataclasses.replace(diagnostic, severity=self.severity)


@dataclass(frozen=True)
class RuleRegistry:
    """Registrations in order, with a bucket per node kind. Built once, read-only."""

    registrations: tuple[RuleRegistration, ...] = ()
    _buckets: dict[Kind, tuple[RuleRegistration, ...]] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        buckets: dict[Kind, list[RuleRegistration]] = {}
        for registration in self.registrations:
            for kind in registration.kinds:
                buckets.setdefault(kind, []).append(registration)
        self._buckets.update({kind: tuple(items) for kind, items in buckets.items()})

    @classmethod
    def from_rules(cls, rules: Iterable[Checkable], config: "ConfigurationLoader | None" = None) -> "RuleRegistry":
        """Register rules, dropping disabled ones and applying severity overrides."""
        rules = list(rules)
        disabled = config.disabled_rules if config is not None else set()
        overrides = config.severity_overrides if config is not None else {}
        known = {rule.code for rule in rules} | {rule.symbol for rule in rules}
        for key in (disabled | set(overrides)) - known:
            logger.warning("Configuration names unknown rule '%s'; ignoring it.", key)
        registrations: list[RuleRegistration] = []
        for rule in rules:
            if rule.code in disabled or rule.symbol in disabled:
                logger.debug("Rule %s (%s) disabled by configuration", rule.code, rule.symbol)
                continue
            severity = overrides.get(rule.symbol) or overrides.get(rule.code)
            registrations.append(RuleRegistration.of(rule, severity))
        return cls(tuple(registrations))

    @classmethod
    def default(cls, config: "ConfigurationLoader | None" = None) -> "RuleRegistry":
        if config is None:
            return cls.from_rules(default_rules())
        rules = default_rules(config.then_include_max_depth, config.scoped_host_suffixes)
        return cls.from_rules(rules, config)

    def __iter__(self) -> Iterator[RuleRegistration]:
        return iter(self.registrations)

    def __len__(self) -> int:
        return len(self.registrations)

    def for_kind(self, kind: Kind) -> tuple[RuleRegistration, ...]:
        return self._buckets.get(kind, ())

    def only(self, key: str) -> "RuleRegistry":
        """Registry restricted to the rules matching an id or symbol."""
        selected = tuple(registration for registration in self.registrations if registration.matches(key))
        if not selected:
            raise UnknownRuleError(f"No rule with id or symbol '{key}'.")
        return RuleRegistry(selected)

    def find(self, diagnostic: Diagnostic) -> RuleRegistration | None:
        """The registration that produced diagnostic."""
        for registration in self.registrations:
            if registration.symbol == diagnostic.symbol:
                return registration
        return None
