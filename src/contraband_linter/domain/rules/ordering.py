"""Sort placement in query chains.

LC005 multiple-order-by, LC015 missing-order-by,
LC027 order-by-after-pagination.
"""

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.chain import (
    consumer_call,
    invocation_receiver,
    method_name,
    name_node,
    target_method,
    unwrap_conversions,
    upstream_calls,
)
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.operators import (
    MATERIALIZERS,
    PAGINATION,
    PRIMARY_SORTS,
    SKIP_TAKE,
    SORTS,
)
from contraband_linter.domain.query import has_queryable_receiver, receiver_type
from contraband_linter.domain.rules import BaseRule, Checkable, Diagnostic, Severity
from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import is_ordered_queryable, is_queryable

REFINEMENT = {"OrderBy": "ThenBy", "OrderByDescending": "ThenByDescending"}


def _paginated_upstream(tree: Tree, call: Node) -> bool:
    """True if a Skip/Take is reached walking the call chain above call."""
    for upstream in upstream_calls(tree, call):
        if method_name(tree, upstream) in SKIP_TAKE:
            return True
    return False


def _ordered_upstream(tree: Tree, call: Node) -> bool:
    """A sort producing IQueryable upstream, or a root already typed IOrderedQueryable."""
    current = unwrap_conversions(tree, invocation_receiver(tree, call))
    while current is not None:
        if current.kind is not Kind.CALL:
            return is_ordered_queryable(tree.symbols, tree.type_of(current))
        if method_name(tree, current) in SORTS and is_queryable(tree.symbols, tree.type_of(current)):
            return True
        current = unwrap_conversions(tree, invocation_receiver(tree, current))
    return False


def _sorted_downstream(tree: Tree, call: Node) -> bool:
    consumer = consumer_call(tree, call)
    while consumer is not None:
        if method_name(tree, consumer) in SORTS:
            return True
        consumer = consumer_call(tree, consumer)
    return False


class MultipleOrderByRule(BaseRule):
    """LC005: a second OrderBy that throws away the first sort."""

    code: str = "LC005"
    symbol: str = "multiple-order-by"
    description: str = "Chain secondary sort keys with ThenBy."
    message: str = (
        "The method '{0}' discards the ordering established by the earlier '{1}'. "
        "Use '{2}' to add a secondary sort key."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Use ThenBy"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in PRIMARY_SORTS or not has_queryable_receiver(tree, node):
            return []
        earlier = self._previous_sort(tree, node)
        if earlier is None or method_name(tree, earlier) not in PRIMARY_SORTS:
            return []
        return [
            Diagnostic.from_node(
                rule=self,
                node=name_node(tree, node),
                tree=tree,
                message_args=(method.name, method_name(tree, earlier), REFINEMENT[method.name]),
                secondary=(name_node(tree, earlier),),
            )
        ]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        access = tree.parent(tree.node(diagnostic.node))
        call = tree.parent(access) if access is not None else None
        if call is None or call.kind is not Kind.CALL:
            return []
        method = target_method(tree, call)
        if method is None or method.name not in REFINEMENT:
            return []
        if not is_ordered_queryable(tree.symbols, receiver_type(tree, call)):
            return []
        refined = REFINEMENT[method.name]
        bound = tree.symbols.get(f"{method.containing_type}.{refined}")
        replacement = sx.rename_call(call.syntax, refined, bound.id if bound is not None else None)
        return [RewriteEdit.replace_with(call.index, replacement, self.fix_title)]

    def _previous_sort(self, tree: Tree, call: Node) -> Node | None:
        """Nearest sort call upstream, stopping at a materializer."""
        for upstream in upstream_calls(tree, call):
            name = method_name(tree, upstream)
            if name in MATERIALIZERS:
                return None
            if name in SORTS:
                return upstream
        return None


class MissingOrderByRule(Checkable):
    """LC015: paging or Last on an unordered query; also a sort placed after Skip/Take."""

    code: str = "LC015"
    symbol: str = "missing-order-by"
    description: str = "Pagination needs a deterministic order established first."
    message: str = (
        "The method '{0}' is called on an unordered IQueryable. "
        "Call 'OrderBy' or 'OrderByDescending' first to ensure deterministic results."
    )
    misplaced_message: str = (
        "The method '{0}' is called after 'Skip' or 'Take'. "
        "This results in sorting a subset of the data rather than the full set."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or not has_queryable_receiver(tree, node):
            return []
        if method.name in SORTS:
            if _paginated_upstream(tree, node):
                return [
                    Diagnostic.from_node(
                        rule=self,
                        node=name_node(tree, node),
                        tree=tree,
                        message_args=(method.name,),
                        template=self.misplaced_message,
                    )
                ]
            return []
        if method.name not in PAGINATION:
            return []
        if _ordered_upstream(tree, node) or _sorted_downstream(tree, node):
            return []
        return [Diagnostic.from_node(rule=self, node=name_node(tree, node), tree=tree, message_args=(method.name,))]


class OrderByAfterPaginationRule(Checkable):
    """LC027: sorting a page instead of the whole set."""

    code: str = "LC027"
    symbol: str = "order-by-after-pagination"
    description: str = "Sort before Skip/Take, not after."
    message: str = (
        "The method '{0}' is called after 'Skip' or 'Take'. "
        "This results in sorting a subset of the data rather than the full set."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in SORTS or not has_queryable_receiver(tree, node):
            return []
        if not _paginated_upstream(tree, node):
            return []
        return [Diagnostic.from_node(rule=self, node=name_node(tree, node), tree=tree, message_args=(method.name,))]
