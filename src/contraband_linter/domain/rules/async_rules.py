"""Async hygiene for database calls.

LC008 sync-blocker, LC026 missing-cancellation-token.
"""

import dataclasses

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.chain import bind_arguments, target_method, unwrap_conversions
from contraband_linter.domain.containment import is_in_async_context
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.operators import SYNC_TO_ASYNC
from contraband_linter.domain.query import has_queryable_receiver
from contraband_linter.domain.rules import BaseRule, Diagnostic, Severity
from contraband_linter.domain.symbols import Symbol, TypeRef
from contraband_linter.domain.syntax import FUNCTION_KINDS, Kind, Syntax
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import (
    CANCELLATION_TOKEN,
    DB_SET,
    EF_NAMESPACE,
    TASK,
    in_namespace,
    is_cancellation_token,
    is_db_context,
)

EF_EXTENSIONS = f"{EF_NAMESPACE}.EntityFrameworkQueryableExtensions"
TOKEN_NONE = f"{CANCELLATION_TOKEN}.None"
PREFERRED_TOKEN_NAMES = ("cancellationToken", "ct")


class SyncBlockerRule(BaseRule):
    """LC008: a blocking EF call where an awaitable one exists."""

    code: str = "LC008"
    symbol: str = "sync-blocker"
    description: str = "Use the async EF Core API inside async code."
    message: str = "Calling synchronous '{0}' inside an async method blocks the thread. Use '{1}' and await it."
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Use the async method and await it"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in SYNC_TO_ASYNC:
            return []
        if not self._touches_database(tree, node, method):
            return []
        if not is_in_async_context(tree, node):
            return []
        return [
            Diagnostic.from_node(
                rule=self,
                node=node,
                tree=tree,
                message_args=(method.name, SYNC_TO_ASYNC[method.name]),
            )
        ]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        call = tree.node(diagnostic.node)
        method = target_method(tree, call)
        if method is None or method.name not in SYNC_TO_ASYNC:
            return []
        async_name = SYNC_TO_ASYNC[method.name]
        async_method = self._async_counterpart(tree, method, async_name)
        renamed = sx.rename_call(
            dataclasses.replace(call.syntax, leading="", trailing=""),
            async_name,
            async_method.id if async_method is not None else None,
        )
        renamed = dataclasses.replace(renamed, type=TypeRef(TASK, (call.type,)) if call.type else None)
        awaited: Syntax = sx.await_(renamed, type=call.type)
        parent = tree.parent(call)
        if parent is not None and parent.kind is Kind.MEMBER_ACCESS and parent.children[0] == call.index:
            awaited = Syntax(Kind.PARENTHESIZED, children=(awaited,), type=call.type)
        return [RewriteEdit.replace_with(call.index, awaited, self.fix_title)]

    def _touches_database(self, tree: Tree, call: Node, method: Symbol) -> bool:
        if method.name == "SaveChanges":
            return method.containing_type is not None and is_db_context(tree.symbols, method.containing_type)
        if method.name == "Find":
            return method.containing_type == DB_SET
        return has_queryable_receiver(tree, call)

    def _async_counterpart(self, tree: Tree, method: Symbol, async_name: str) -> Symbol | None:
        for container in (method.containing_type, EF_EXTENSIONS):
            found = tree.symbols.get(f"{container}.{async_name}")
            if found is not None:
                return found
        return None


class MissingCancellationTokenRule(BaseRule):
    """LC026: an EF async call that accepts a token but is not given one."""

    code: str = "LC026"
    symbol: str = "missing-cancellation-token"
    description: str = "Propagate the caller's CancellationToken into EF Core async calls."
    message: str = (
        "The async method '{0}' is called without a CancellationToken. "
        "Pass a token to ensure the query can be cancelled."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Pass the CancellationToken in scope"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or not method.name.endswith("Async") or not in_namespace(method, EF_NAMESPACE):
            return []
        parameter = self._token_parameter(method)
        if parameter is None:
            return []
        argument = bind_arguments(tree, node).get(parameter)
        if argument is not None and not self._is_default(tree, argument):
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        call = tree.node(diagnostic.node)
        method = target_method(tree, call)
        parameter = self._token_parameter(method) if method is not None else None
        if method is None or parameter is None:
            return []
        token = self._token_in_scope(tree, call)
        if token is None:
            return []
        reference = sx.identifier(token.name, symbol=token.symbol, type=TypeRef(CANCELLATION_TOKEN))
        bound = bind_arguments(tree, call)
        existing = bound.get(parameter)
        if existing is not None:
            return [RewriteEdit.replace_with(existing.index, reference, self.fix_title)]
        names = [p.name for p in method.parameters]
        if all(name in bound for name in names[: names.index(parameter)]):
            argument = reference
        else:
            argument = Syntax(Kind.ARGUMENT, children=(reference,), name=parameter)
        return [
            RewriteEdit.replace(
                call.index,
                lambda original, name: original.with_children((*original.children, argument)),
                self.fix_title,
            )
        ]

    def _token_parameter(self, method: Symbol) -> str | None:
        for parameter in method.parameters:
            if is_cancellation_token(parameter.type):
                return parameter.name
        return None

    def _is_default(self, tree: Tree, argument: Node) -> bool:
        value = unwrap_conversions(tree, argument)
        if value is None:
            return True
        if value.kind is Kind.DEFAULT_LITERAL:
            return True
        return value.kind is Kind.MEMBER_ACCESS and value.symbol == TOKEN_NONE

    def _token_in_scope(self, tree: Tree, call: Node) -> Node | None:
        """Preferred CancellationToken parameter or earlier local visible at call."""
        candidates: list[Node] = []
        for ancestor in tree.ancestors(call):
            if ancestor.kind is Kind.BLOCK:
                for statement in tree.children(ancestor):
                    if statement.span.start >= call.span.start:
                        break
                    if statement.kind is Kind.VARIABLE_DECL:
                        candidates.extend(tree.children(statement))
            elif ancestor.kind in FUNCTION_KINDS:
                candidates.extend(tree.children(ancestor)[:-1])
            if ancestor.kind in (Kind.METHOD, Kind.CONSTRUCTOR):
                break
        tokens = [node for node in candidates if is_cancellation_token(tree.type_of(node))]
        for preferred in PREFERRED_TOKEN_NAMES:
            for node in tokens:
                if node.name == preferred:
                    return node
        return tokens[0] if tokens else None
