"""Query-shaped questions built on the chain walker and the type helpers."""

from contraband_linter.domain.chain import (
    enclosing_lambda,
    invocation_receiver,
    lambda_invocation,
    method_name,
    unwrap_conversions,
)
from contraband_linter.domain.symbols import Symbol, TypeRef
from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import EF_NAMESPACE, in_namespace, is_queryable


def receiver_type(tree: Tree, call: Node) -> TypeRef | None:
    """Static type of the call's receiver, or None."""
    return tree.type_of(unwrap_conversions(tree, invocation_receiver(tree, call)))


def has_queryable_receiver(tree: Tree, call: Node) -> bool:
    return is_queryable(tree.symbols, receiver_type(tree, call))


def is_query_building_call(tree: Tree, call: Node) -> bool:
    """A call on an IQueryable receiver, or one that returns IQueryable."""
    return has_queryable_receiver(tree, call) or is_queryable(tree.symbols, tree.type_of(call))


def is_enumerable_operator(method: Symbol | None) -> bool:
    return method is not None and method.containing_type == "System.Linq.Enumerable"


def is_ef_method(method: Symbol | None) -> bool:
    return in_namespace(method, EF_NAMESPACE)


def query_call_for(tree: Tree, node: Node) -> Node | None:
    """The query-building call whose lambda contains node, at any lambda depth.

    Nested lambdas (u => u.Orders.Any(o => ...)) still live inside the outer
    expression tree, so the walk continues outward until a method boundary.
    """
    lambda_node = enclosing_lambda(tree, node)
    while lambda_node is not None:
        invocation = lambda_invocation(tree, lambda_node)
        if invocation is not None and is_query_building_call(tree, invocation):
            return invocation
        lambda_node = enclosing_lambda(tree, lambda_node)
    return None


def nearest_query_lambda_call(tree: Tree, node: Node) -> Node | None:
    """Like query_call_for but only the nearest enclosing lambda is considered."""
    lambda_node = enclosing_lambda(tree, node)
    if lambda_node is None:
        return None
    invocation = lambda_invocation(tree, lambda_node)
    if invocation is not None and is_query_building_call(tree, invocation):
        return invocation
    return None


def calls_named(tree: Tree, scope: Node, names: frozenset[str] | set[str]) -> list[Node]:
    return [node for node in tree.descendants(scope) if node.kind is Kind.CALL and method_name(tree, node) in names]
