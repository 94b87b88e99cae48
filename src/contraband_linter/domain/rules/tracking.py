"""Change-tracking mistakes.

LC009 missing-as-no-tracking, LC021 ignore-query-filters,
LC025 as-no-tracking-with-update.
"""

from contraband_linter.domain.chain import (
    enclosing_function,
    enclosing_member,
    explicit_arguments,
    method_name,
    target_method,
    unwrap_conversions,
    upstream_calls,
)
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.operators import COLLECTION_MATERIALIZERS, NO_TRACKING, PERSIST, TRACKED_MUTATIONS
from contraband_linter.domain.query import calls_named, has_queryable_receiver, is_ef_method
from contraband_linter.domain.rules import BaseRule, Checkable, Diagnostic, Severity
from contraband_linter.domain.rules.edits import replace_with_receiver
from contraband_linter.domain.symbols import SymbolKind
from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import DB_SET, is_db_context

PROJECTIONS = frozenset({"Select", "SelectMany", "GroupBy"})


def _unwrap_value(tree: Tree, node: Node | None) -> Node | None:
    node = unwrap_conversions(tree, node)
    while node is not None and node.kind is Kind.AWAIT:
        node = unwrap_conversions(tree, tree.child(node, 0))
    return node


def _no_tracking_call(tree: Tree, expression: Node | None) -> Node | None:
    """The AsNoTracking call in expression's chain, if any."""
    expression = _unwrap_value(tree, expression)
    if expression is None:
        return None
    if expression.kind is Kind.CALL and method_name(tree, expression) in NO_TRACKING:
        return expression
    for upstream in upstream_calls(tree, expression):
        if method_name(tree, upstream) in NO_TRACKING:
            return upstream
    return None


class MissingAsNoTrackingRule(Checkable):
    """LC009: a read-only method that returns tracked entities.

    Read-only intent is inferred from the absence of SaveChanges in the same
    method. A save in a helper method is not seen.
    """

    code: str = "LC009"
    symbol: str = "missing-as-no-tracking"
    description: str = "Read-only queries should skip change tracking."
    message: str = (
        "The method '{0}' returns entities from a query without 'AsNoTracking()' and never saves changes. "
        "Add 'AsNoTracking()' to avoid change-tracking overhead."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.RETURN, Kind.METHOD})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        if node.kind is Kind.METHOD:
            body = tree.child(node, -1)
            if body is None or body.kind is Kind.BLOCK:
                return []
            returned, member = body, node
        else:
            returned, member = tree.child(node, 0), enclosing_function(tree, node)
        if member is None or member.kind is not Kind.METHOD:
            return []
        call = _unwrap_value(tree, returned)
        if call is None or call.kind is not Kind.CALL or method_name(tree, call) not in COLLECTION_MATERIALIZERS:
            return []
        if target_method(tree, call) is None or not has_queryable_receiver(tree, call):
            return []
        names = {method_name(tree, upstream) for upstream in upstream_calls(tree, call)}
        if names & NO_TRACKING or names & PROJECTIONS:
            return []
        if calls_named(tree, member, PERSIST):
            return []
        return [Diagnostic.from_node(rule=self, node=call, tree=tree, message_args=(member.name,))]


class IgnoreQueryFiltersRule(BaseRule):
    """LC021: global query filters switched off."""

    code: str = "LC021"
    symbol: str = "ignore-query-filters"
    description: str = "IgnoreQueryFilters bypasses tenant and soft-delete filters."
    message: str = (
        "Usage of 'IgnoreQueryFilters' can bypass critical global filters like multi-tenancy or soft-delete. "
        "Ensure this is intentional."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Remove IgnoreQueryFilters()"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name != "IgnoreQueryFilters" or not is_ef_method(method):
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree)]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        return replace_with_receiver(tree, tree.node(diagnostic.node), self.fix_title)


class AsNoTrackingWithUpdateRule(BaseRule):
    """LC025: an entity read with AsNoTracking handed to Update/Remove."""

    code: str = "LC025"
    symbol: str = "as-no-tracking-with-update"
    description: str = "Entities that will be modified should be read with tracking."
    message: str = (
        "Entity from an 'AsNoTracking' query is passed to '{0}'. "
        "This can lead to inefficient updates or tracking issues."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Remove AsNoTracking from query"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in TRACKED_MUTATIONS or method.containing_type is None:
            return []
        if method.containing_type != DB_SET and not is_db_context(tree.symbols, method.containing_type):
            return []
        scope = enclosing_member(tree, node) or tree.root
        diagnostics: list[Diagnostic] = []
        for argument in explicit_arguments(tree, node):
            if self._origin(tree, scope, argument) is not None:
                diagnostics.append(
                    Diagnostic.from_node(rule=self, node=argument, tree=tree, message_args=(method.name,))
                )
        return diagnostics

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        argument = tree.node(diagnostic.node)
        scope = enclosing_member(tree, argument) or tree.root
        origin = self._origin(tree, scope, argument)
        if origin is None:
            return []
        return replace_with_receiver(tree, origin, self.fix_title, merge_key=f"{self.code}:{origin.index}")

    def _origin(self, tree: Tree, scope: Node, value: Node | None, seen: frozenset[str] = frozenset()) -> Node | None:
        """The AsNoTracking call a local's value came from, traced through assignments and foreach."""
        value = unwrap_conversions(tree, value)
        if value is None or value.kind is not Kind.IDENTIFIER:
            return None
        local = tree.symbol_of(value)
        if local is None or local.kind is not SymbolKind.LOCAL or local.id in seen:
            return None
        seen = seen | {local.id}
        for candidate in tree.descendants(scope):
            source: Node | None = None
            if candidate.kind is Kind.DECLARATOR and candidate.symbol == local.id:
                source = tree.child(candidate, 0)
            elif candidate.kind is Kind.ASSIGNMENT:
                target = tree.child(candidate, 0)
                if target is not None and target.kind is Kind.IDENTIFIER and target.symbol == local.id:
                    source = tree.child(candidate, 1)
            elif candidate.kind in (Kind.FOREACH, Kind.FOREACH_ASYNC) and candidate.symbol == local.id:
                collection = tree.child(candidate, 0)
                found = _no_tracking_call(tree, collection) or self._origin(tree, scope, collection, seen)
                if found is not None:
                    return found
                continue
            found = _no_tracking_call(tree, source)
            if found is not None:
                return found
        return None
