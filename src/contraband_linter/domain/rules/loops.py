"""Database round trips repeated by loops.

LC007 n-plus-one-looper, LC010 save-changes-in-loop,
LC022 explicit-loading-in-loop.
"""

import dataclasses

from contraband_linter.domain.chain import method_name, receiver_call, target_method
from contraband_linter.domain.containment import enclosing_iteration, enclosing_loop
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.operators import EXECUTING, PERSIST
from contraband_linter.domain.query import has_queryable_receiver
from contraband_linter.domain.rules import BaseRule, Checkable, Diagnostic, Severity
from contraband_linter.domain.syntax import Kind, render
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import CHANGE_TRACKING_NAMESPACE, DB_SET, is_db_context

LOADERS = frozenset({"Load", "LoadAsync"})
ENTRY_NAVIGATIONS = frozenset({"Reference", "Collection"})


class NPlusOneLooperRule(Checkable):
    """LC007: a query executed once per loop iteration."""

    code: str = "LC007"
    symbol: str = "n-plus-one-looper"
    description: str = "Fetch data in bulk instead of querying inside a loop."
    message: str = "Executing '{0}' inside a loop causes N+1 queries. Fetch data in bulk outside the loop."
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None:
            return []
        executes = method.name in EXECUTING and has_queryable_receiver(tree, node)
        finds = method.name.startswith("Find") and method.containing_type == DB_SET
        if not (executes or finds):
            return []
        if enclosing_iteration(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]


class SaveChangesInLoopRule(BaseRule):
    """LC010: SaveChanges per iteration instead of one batch after the loop."""

    code: str = "LC010"
    symbol: str = "save-changes-in-loop"
    description: str = "Persist once after the loop."
    message: str = (
        "'{0}' is called inside a loop, which costs one database round trip per iteration. "
        "Call it once after the loop."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Move SaveChanges after loop"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in PERSIST:
            return []
        if method.containing_type is None or not is_db_context(tree.symbols, method.containing_type):
            return []
        if enclosing_iteration(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        statement = self._statement(tree, tree.node(diagnostic.node))
        if statement is None:
            return []
        body = tree.parent(statement)
        loop = enclosing_loop(tree, statement)
        if body is None or body.kind is not Kind.BLOCK or loop is None:
            return []
        holder = tree.parent(loop)
        if holder is None or holder.kind is not Kind.BLOCK:
            return []
        moved = dataclasses.replace(statement.syntax, leading="", trailing="")
        hoist = RewriteEdit.insert_after(loop.index, lambda anchor, name: moved, self.fix_title)
        return [
            RewriteEdit.remove(statement.index, self.fix_title),
            hoist.merged_as(f"{self.code}:{loop.index}:{render(moved)}"),
        ]

    def _statement(self, tree: Tree, call: Node) -> Node | None:
        """The expression statement holding call, directly or under await."""
        parent = tree.parent(call)
        if parent is not None and parent.kind is Kind.AWAIT:
            parent = tree.parent(parent)
        if parent is None or parent.kind is not Kind.EXPRESSION_STATEMENT:
            return None
        return parent


class ExplicitLoadingInLoopRule(Checkable):
    """LC022: Entry(x).Reference(...).Load() per iteration."""

    code: str = "LC022"
    symbol: str = "explicit-loading-in-loop"
    description: str = "Eager-load navigations instead of loading them one entity at a time."
    message: str = (
        "Method '{0}' is called inside a loop. This can cause N+1 database queries. "
        "Use eager loading with '.Include()' instead."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in LOADERS or method.namespace != CHANGE_TRACKING_NAMESPACE:
            return []
        if enclosing_iteration(tree, node) is None:
            return []
        entry = receiver_call(tree, node)
        label = method_name(tree, entry) if entry is not None else ""
        if label not in ENTRY_NAVIGATIONS:
            label = method.name
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(label,))]
