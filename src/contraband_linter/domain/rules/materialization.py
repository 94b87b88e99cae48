"""Where and how often a query is pulled into memory.

LC002 premature-materialization, LC004 queryable-leak,
LC012 optimize-remove-range, LC022 to-list-in-select,
LC028 redundant-materialization, LC031 unbounded-query-materialization.
"""

import dataclasses

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.chain import (
    bind_arguments,
    enclosing_lambda,
    explicit_arguments,
    invocation_receiver,
    lambda_invocation,
    method_name,
    receiver_call,
    target_method,
    unwrap_conversions,
    walk_upstream,
)
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.operators import (
    BACK_TO_BACK_MATERIALIZERS,
    BOUNDING,
    COLLECTION_MATERIALIZERS,
    MATERIALIZERS,
    SERVER_AGGREGATES,
)
from contraband_linter.domain.query import has_queryable_receiver, is_enumerable_operator
from contraband_linter.domain.rules import BaseRule, Checkable, Diagnostic, Severity
from contraband_linter.domain.rules.edits import bare, replace_with_receiver
from contraband_linter.domain.symbols import SymbolKind, TypeRef
from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import (
    DB_CONTEXT,
    DB_SET,
    ENUMERABLE,
    MATERIALIZING_COLLECTIONS,
    is_db_set,
    is_deferred,
    is_queryable,
)

EXECUTE_DELETE = "Microsoft.EntityFrameworkCore.EntityFrameworkQueryableExtensions.ExecuteDelete"
EXECUTE_DELETE_WARNING = "// Warning: ExecuteDelete bypasses change tracking and cascades.\n"


def _materialized_from_query(tree: Tree, call: Node) -> bool:
    """True if call is a materializer applied directly to a deferred query."""
    if method_name(tree, call) not in MATERIALIZERS:
        return False
    receiver = unwrap_conversions(tree, invocation_receiver(tree, call))
    return is_deferred(tree.symbols, tree.type_of(receiver))


class PrematureMaterializationRule(Checkable):
    """LC002: in-memory operators applied after a query was materialized."""

    code: str = "LC002"
    symbol: str = "premature-materialization"
    description: str = "Filter, sort and project before materializing a query."
    message: str = (
        "Calling '{0}' on materialized collection but source was IQueryable. "
        "This fetches all data before filtering."
    )
    redundant_message: str = "The call to '{0}' is redundant because the sequence was already materialized by '{1}'"
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None:
            return []
        receiver = unwrap_conversions(tree, invocation_receiver(tree, node))
        if receiver is None:
            return []
        previous = receiver if receiver.kind is Kind.CALL else None
        if method.name in MATERIALIZERS and previous is not None:
            previous_name = method_name(tree, previous)
            if previous_name in COLLECTION_MATERIALIZERS and _materialized_from_query(tree, previous):
                return [
                    Diagnostic.from_node(
                        rule=self,
                        node=node,
                        tree=tree,
                        message_args=(method.name, previous_name),
                        template=self.redundant_message,
                    )
                ]
            return []
        if not is_enumerable_operator(method) or is_queryable(tree.symbols, tree.type_of(receiver)):
            return []
        if previous is not None and _materialized_from_query(tree, previous):
            return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]
        if receiver.kind is Kind.OBJECT_CREATION and self._copies_query(tree, receiver):
            return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]
        return []

    def _copies_query(self, tree: Tree, creation: Node) -> bool:
        """new List<T>(query) and friends."""
        if creation.type is None or creation.type.name not in MATERIALIZING_COLLECTIONS:
            return False
        arguments = explicit_arguments(tree, creation)
        if not arguments:
            return False
        return is_queryable(tree.symbols, tree.type_of(unwrap_conversions(tree, arguments[0])))


class QueryableLeakRule(Checkable):
    """LC004: an IQueryable handed to a method that only asks for IEnumerable."""

    code: str = "LC004"
    symbol: str = "queryable-leak"
    description: str = "Passing IQueryable as IEnumerable silently switches to in-memory evaluation."
    message: str = (
        "IQueryable is passed to parameter '{0}' of '{1}', which only accepts IEnumerable. "
        "Operators applied inside '{1}' will run in memory instead of in the database."
    )
    severity: Severity = Severity.INFO
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or not method.is_source:
            return []
        diagnostics: list[Diagnostic] = []
        bound = bind_arguments(tree, node)
        for parameter in method.parameters:
            argument = bound.get(parameter.name)
            if argument is None or parameter.type.name != ENUMERABLE:
                continue
            if is_queryable(tree.symbols, tree.type_of(unwrap_conversions(tree, argument))):
                diagnostics.append(
                    Diagnostic.from_node(
                        rule=self,
                        node=argument,
                        tree=tree,
                        message_args=(parameter.name, method.name),
                    )
                )
        return diagnostics


class OptimizeRemoveRangeRule(BaseRule):
    """LC012: RemoveRange fed by a query instead of a server-side delete."""

    code: str = "LC012"
    symbol: str = "optimize-remove-range"
    description: str = "Delete query results on the server with ExecuteDelete."
    message: str = (
        "'RemoveRange' is called with a query, which loads every entity before deleting it. "
        "Use 'ExecuteDelete()' on the query to delete in a single statement."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Use ExecuteDelete()"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        if self._query_argument(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree)]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        call = tree.node(diagnostic.node)
        query = self._query_argument(tree, call)
        if query is None:
            return []
        delete = sx.call(
            sx.member_access(
                bare(query.syntax),
                "ExecuteDelete",
                symbol=EXECUTE_DELETE,
            ),
            symbol=EXECUTE_DELETE,
            type=TypeRef("int"),
        )
        statement = tree.parent(call)
        if statement is not None and statement.kind is Kind.EXPRESSION_STATEMENT:
            replacement = dataclasses.replace(sx.expression_statement(delete), leading=EXECUTE_DELETE_WARNING)
            return [RewriteEdit.replace_with(statement.index, replacement, self.fix_title)]
        return [RewriteEdit.replace_with(call.index, delete, self.fix_title)]

    def _query_argument(self, tree: Tree, call: Node) -> Node | None:
        method = target_method(tree, call)
        if method is None or method.name != "RemoveRange":
            return None
        if method.containing_type not in (DB_CONTEXT, DB_SET):
            return None
        arguments = explicit_arguments(tree, call)
        if len(arguments) != 1:
            return None
        argument = unwrap_conversions(tree, arguments[0])
        if argument is None or not is_queryable(tree.symbols, tree.type_of(argument)):
            return None
        return argument


class ToListInSelectRule(BaseRule):
    """LC022: a collection materializer inside a Select projection over a query."""

    code: str = "LC022"
    symbol: str = "to-list-in-select"
    description: str = "Nested collections in a projection need no materializer."
    message: str = (
        "'{0}' inside a Select projection forces client-side evaluation. "
        "Remove it, EF Core handles collection projection natively."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Remove the materializing call"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in COLLECTION_MATERIALIZERS:
            return []
        lambda_node = enclosing_lambda(tree, node)
        if lambda_node is None:
            return []
        projection = lambda_invocation(tree, lambda_node)
        if projection is None or method_name(tree, projection) != "Select":
            return []
        if not has_queryable_receiver(tree, projection):
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        return replace_with_receiver(tree, tree.node(diagnostic.node), self.fix_title)


class RedundantMaterializationRule(BaseRule):
    """LC028: two materializers back to back, e.g. ToList().ToArray() on a list.

    Back-to-back materializers whose first call reads a query are reported by
    LC002 instead.
    """

    code: str = "LC028"
    symbol: str = "redundant-materialization"
    description: str = "Materializing an already materialized sequence copies it again."
    message: str = (
        "The method '{0}' is redundant because the sequence is already materialized "
        "or will be materialized immediately by '{1}'"
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Remove the redundant call"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        pair = self._pair(tree, node)
        if pair is None:
            return []
        current_name, previous, previous_name = pair
        if previous_name == "AsEnumerable":
            return [
                Diagnostic.from_node(
                    rule=self,
                    node=previous,
                    tree=tree,
                    message_args=(previous_name, current_name),
                )
            ]
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(current_name, previous_name))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        return replace_with_receiver(tree, tree.node(diagnostic.node), self.fix_title)

    def _pair(self, tree: Tree, node: Node) -> tuple[str, Node, str] | None:
        method = target_method(tree, node)
        if method is None or method.name not in BACK_TO_BACK_MATERIALIZERS:
            return None
        previous = receiver_call(tree, node)
        if previous is None:
            return None
        previous_name = method_name(tree, previous)
        if previous_name not in BACK_TO_BACK_MATERIALIZERS:
            return None
        if previous_name != "AsEnumerable" and _materialized_from_query(tree, previous):
            return None
        return method.name, previous, previous_name


class UnboundedQueryMaterializationRule(Checkable):
    """LC031: a whole DbSet pulled into memory with no Take/First or aggregate."""

    code: str = "LC031"
    symbol: str = "unbounded-query-materialization"
    description: str = "Bound queries over mapped sets before materializing them."
    message: str = (
        "Query materializes from '{0}' without Take, First, or similar bounding. "
        "Consider adding Take(n) to prevent loading unbounded data."
    )
    severity: Severity = Severity.INFO
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in COLLECTION_MATERIALIZERS:
            return []
        steps = walk_upstream(tree, node)
        next(steps)
        for step in steps:
            if step.kind is Kind.CALL:
                name = method_name(tree, step)
                if name in BOUNDING or name in SERVER_AGGREGATES or name in MATERIALIZERS:
                    return []
                continue
            if step.kind not in (Kind.MEMBER_ACCESS, Kind.IDENTIFIER):
                continue
            symbol = tree.symbol_of(step)
            if symbol is None or symbol.kind not in (SymbolKind.PROPERTY, SymbolKind.FIELD):
                continue
            if is_db_set(tree.symbols, symbol.declared_type):
                return [
                    Diagnostic.from_node(
                        rule=self,
                        node=node,
                        tree=tree,
                        message_args=(symbol.name,),
                        secondary=(step,),
                    )
                ]
        return []