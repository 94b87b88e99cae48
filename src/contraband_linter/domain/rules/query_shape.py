"""Query shapes with a cheaper or safer equivalent.

LC003 any-over-count, LC006 cartesian-explosion, LC018 from-sql-raw-interpolation,
LC023 find-instead-of-first, LC028 deep-then-include, LC029 redundant-identity-select.
"""

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.chain import (
    bind_arguments,
    downstream_calls,
    invocation_receiver,
    lambda_arguments,
    lambda_body,
    lambda_parameters,
    method_name,
    name_node,
    receiver_call,
    target_method,
    unwrap_conversions,
    upstream_calls,
)
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.operators import KEY_LOOKUP_SCANS
from contraband_linter.domain.query import has_queryable_receiver, is_ef_method, receiver_type
from contraband_linter.domain.rules import BaseRule, Checkable, Diagnostic, Severity
from contraband_linter.domain.rules.edits import bare, replace_with_receiver
from contraband_linter.domain.symbols import TypeRef
from contraband_linter.domain.syntax import Kind, Syntax
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import (
    DB_SET,
    EF_NAMESPACE,
    VALUE_TASK,
    is_collection,
    is_db_set,
    is_enumerable,
    key_property,
    unwrap_task,
)

COUNTS = {"Count": "Any", "LongCount": "Any", "CountAsync": "AnyAsync", "LongCountAsync": "AnyAsync"}
# (operator, literal) pairs meaning "not empty", written with the count on the left.
_EXISTENCE_CHECKS = frozenset({(">", "0"), (">=", "1"), ("!=", "0")})
_MIRRORED = {">": "<", ">=": "<=", "!=": "!="}
RELATIONAL_EXTENSIONS = f"{EF_NAMESPACE}.RelationalQueryableExtensions"
DEFAULT_THEN_INCLUDE_MAX_DEPTH = 3


def _literal_text(node: Node | None) -> str:
    if node is None or node.kind is not Kind.LITERAL:
        return ""
    return node.syntax.value.rstrip("lLuU")


class AnyOverCountRule(BaseRule):
    """LC003: Count() compared against 0 or 1 just to test for rows."""

    code: str = "LC003"
    symbol: str = "any-over-count"
    description: str = "Use Any() to check for existence."
    message: str = (
        "Use '{1}()' instead of comparing '{0}()' to check for existence. "
        "'{1}' stops at the first row while '{0}' reads them all."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.BINARY})
    fix_title: str = "Replace with Any()"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        found = self._count_operand(tree, node)
        if found is None:
            return []
        _, call = found
        name = method_name(tree, call)
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(name, COUNTS[name]))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        comparison = tree.node(diagnostic.node)
        found = self._count_operand(tree, comparison)
        if found is None:
            return []
        operand, call = found
        method = target_method(tree, call)
        any_name = COUNTS[method_name(tree, call)]
        any_method = tree.symbols.get(f"{method.containing_type}.{any_name}") if method is not None else None
        bound = any_method.id if any_method is not None else None
        replacement: Syntax = sx.rename_call(bare(call.syntax), any_name, bound)
        if operand.kind is Kind.AWAIT:
            replacement = sx.await_(replacement, type=TypeRef("bool"))
        return [RewriteEdit.replace_with(comparison.index, replacement, self.fix_title)]

    def _count_operand(self, tree: Tree, comparison: Node) -> tuple[Node, Node] | None:
        """(operand as written, Count call) when comparison is an existence test."""
        children = tree.children(comparison)
        if len(children) != 2:
            return None
        left, right = (unwrap_conversions(tree, child) for child in children)
        operator = comparison.syntax.operator
        for operand, other, checks in (
            (left, right, _EXISTENCE_CHECKS),
            (right, left, {(_MIRRORED[op], value) for op, value in _EXISTENCE_CHECKS}),
        ):
            if (operator, _literal_text(other)) not in checks or operand is None:
                continue
            call = operand
            if call.kind is Kind.AWAIT:
                call = unwrap_conversions(tree, tree.child(call, 0))
            if call is None or call.kind is not Kind.CALL or method_name(tree, call) not in COUNTS:
                continue
            if target_method(tree, call) is None or not has_queryable_receiver(tree, call):
                continue
            return operand, call
        return None


def _navigation(tree: Tree, include: Node) -> Node | None:
    """The member access an Include lambda returns."""
    for lambda_node in lambda_arguments(tree, include):
        body = unwrap_conversions(tree, lambda_body(tree, lambda_node))
        if body is not None and body.kind is Kind.MEMBER_ACCESS:
            return body
    return None


class CartesianExplosionRule(Checkable):
    """LC006: two collection Includes on one query without AsSplitQuery.

    Reported once per chain, at the second collection Include.
    """

    code: str = "LC006"
    symbol: str = "cartesian-explosion"
    description: str = "Split queries that eagerly load several collections."
    message: str = (
        "Including collections '{0}' and '{1}' in one query multiplies the joined rows. "
        "Use 'AsSplitQuery()' or load the collections separately."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        navigation = self._collection_include(tree, node)
        if navigation is None:
            return []
        earlier = [
            found
            for found in (self._collection_include(tree, call) for call in upstream_calls(tree, node))
            if found is not None
        ]
        if len(earlier) != 1:
            return []
        chain = [*upstream_calls(tree, node), *downstream_calls(tree, node)]
        if any(method_name(tree, call) == "AsSplitQuery" for call in chain):
            return []
        first = earlier[0]
        return [
            Diagnostic.from_node(
                rule=self,
                node=name_node(tree, node),
                tree=tree,
                message_args=(first.name or tree.text(first), navigation.name or tree.text(navigation)),
                secondary=(first,),
            )
        ]

    def _collection_include(self, tree: Tree, call: Node) -> Node | None:
        """The navigation name node of an Include that loads a collection."""
        method = target_method(tree, call)
        if method is None or method.name != "Include" or not is_ef_method(method):
            return None
        navigation = _navigation(tree, call)
        if navigation is None or not is_collection(tree.symbols, tree.type_of(navigation)):
            return None
        return tree.child(navigation, 1)


class FromSqlRawInterpolationRule(BaseRule):
    """LC018: FromSqlRaw fed an interpolated string or a non-constant concatenation."""

    code: str = "LC018"
    symbol: str = "from-sql-raw-interpolation"
    description: str = "Raw SQL built from values is open to injection."
    message: str = (
        "Use 'FromSqlInterpolated' instead of 'FromSqlRaw' when using interpolated strings "
        "or non-constant concatenations to prevent SQL injection"
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Replace with FromSqlInterpolated"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        sql = self._sql_argument(tree, node)
        if sql is None or not self._is_unsafe(tree, sql):
            return []
        return [Diagnostic.from_node(rule=self, node=sql, tree=tree)]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        sql = tree.node(diagnostic.node)
        if unwrap_conversions(tree, sql).kind is not Kind.INTERPOLATED_STRING:
            return []
        call = next((a for a in tree.ancestors(sql) if a.kind is Kind.CALL), None)
        if call is None or self._sql_argument(tree, call) != sql:
            return []
        interpolated = tree.symbols.get(f"{RELATIONAL_EXTENSIONS}.FromSqlInterpolated")
        renamed = sx.rename_call(bare(call.syntax), "FromSqlInterpolated", interpolated.id if interpolated else None)
        return [RewriteEdit.replace_with(call.index, renamed, self.fix_title)]

    def _sql_argument(self, tree: Tree, call: Node) -> Node | None:
        method = target_method(tree, call)
        if method is None or method.name != "FromSqlRaw" or not is_ef_method(method):
            return None
        return bind_arguments(tree, call).get("sql")

    def _is_unsafe(self, tree: Tree, sql: Node) -> bool:
        value = unwrap_conversions(tree, sql)
        if value is None:
            return False
        if value.kind is Kind.INTERPOLATED_STRING:
            return True
        return value.kind is Kind.BINARY and value.syntax.operator == "+" and self._concatenates_values(tree, value)

    def _concatenates_values(self, tree: Tree, concatenation: Node) -> bool:
        for side in tree.children(concatenation):
            side = unwrap_conversions(tree, side)
            if side is None:
                continue
            if side.kind is Kind.BINARY and side.syntax.operator == "+":
                if self._concatenates_values(tree, side):
                    return True
            elif not self._is_constant(tree, side):
                return True
        return False

    def _is_constant(self, tree: Tree, node: Node) -> bool:
        if node.kind is Kind.LITERAL:
            return True
        if node.kind in (Kind.IDENTIFIER, Kind.MEMBER_ACCESS):
            declaration = tree.declaration_of(node.symbol)
            return declaration is not None and declaration.syntax.has_modifier("const")
        return False


class FindInsteadOfFirstRule(BaseRule):
    """LC023: First/Single by primary key straight off a DbSet."""

    code: str = "LC023"
    symbol: str = "find-instead-of-first"
    description: str = "Find checks the change tracker before querying."
    message: str = (
        "Use 'Find' or 'FindAsync' instead of '{0}' when querying by primary key "
        "to leverage the change tracker cache"
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Use Find/FindAsync"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        if self._key_value(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method_name(tree, node),))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        call = tree.node(diagnostic.node)
        value = self._key_value(tree, call)
        receiver = invocation_receiver(tree, call)
        if value is None or receiver is None:
            return []
        is_async = method_name(tree, call).endswith("Async")
        find_name = "FindAsync" if is_async else "Find"
        find = tree.symbols.get(f"{DB_SET}.{find_name}")
        entity = unwrap_task(call.type)
        result_type = TypeRef(VALUE_TASK, (entity,)) if is_async and entity is not None else call.type
        replacement = sx.call(
            sx.member_access(bare(receiver.syntax), find_name, symbol=find.id if find else None),
            bare(value.syntax),
            symbol=find.id if find else None,
            type=result_type,
        )
        return [RewriteEdit.replace_with(call.index, replacement, self.fix_title)]

    def _key_value(self, tree: Tree, call: Node) -> Node | None:
        """The compared value in `x => x.Key == value` (either side)."""
        method = target_method(tree, call)
        if method is None or method.name not in KEY_LOOKUP_SCANS:
            return None
        if not is_db_set(tree.symbols, receiver_type(tree, call)):
            return None
        lambdas = lambda_arguments(tree, call)
        if not lambdas:
            return None
        parameters = lambda_parameters(tree, lambdas[0])
        body = unwrap_conversions(tree, lambda_body(tree, lambdas[0]))
        if not parameters or body is None or body.kind is not Kind.BINARY or body.syntax.operator != "==":
            return None
        left, right = tree.children(body)
        if self._is_key_access(tree, left, parameters[0]):
            return right
        if self._is_key_access(tree, right, parameters[0]):
            return left
        return None

    def _is_key_access(self, tree: Tree, node: Node, parameter: Node) -> bool:
        access = unwrap_conversions(tree, node)
        if access is None or access.kind is not Kind.MEMBER_ACCESS:
            return False
        instance = unwrap_conversions(tree, tree.child(access, 0))
        if instance is None or instance.kind is not Kind.IDENTIFIER or instance.symbol != parameter.symbol:
            return False
        member = tree.symbol_of(access)
        if member is None or member.containing_type is None:
            return False
        key = key_property(tree.symbols, member.containing_type)
        return key is not None and key.id == member.id


class DeepThenIncludeRule(Checkable):
    """LC028: a ThenInclude chain nested past the configured depth."""

    code: str = "LC028"
    symbol: str = "deep-then-include"
    description: str = "Deep ThenInclude chains produce many joins."
    message: str = (
        "ThenInclude chain is {0} levels deep (threshold: {1}). "
        "Consider using Select projection for deeply nested data."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def __init__(self, max_depth: int = DEFAULT_THEN_INCLUDE_MAX_DEPTH) -> None:
        self.max_depth = max_depth

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        if not self._is_then_include(tree, node):
            return []
        depth = 1
        previous = receiver_call(tree, node)
        while previous is not None and self._is_then_include(tree, previous):
            depth += 1
            previous = receiver_call(tree, previous)
        if depth <= self.max_depth:
            return []
        return [
            Diagnostic.from_node(
                rule=self,
                node=name_node(tree, node),
                tree=tree,
                message_args=(str(depth), str(self.max_depth)),
            )
        ]

    def _is_then_include(self, tree: Tree, call: Node) -> bool:
        method = target_method(tree, call)
        return method is not None and method.name == "ThenInclude" and is_ef_method(method)


class RedundantIdentitySelectRule(BaseRule):
    """LC029: Select(x => x)."""

    code: str = "LC029"
    symbol: str = "redundant-identity-select"
    description: str = "An identity projection does nothing."
    message: str = "The call to 'Select' is redundant because it uses an identity projection (x => x)"
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Remove redundant Select"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name != "Select":
            return []
        if not is_enumerable(tree.symbols, receiver_type(tree, node)):
            return []
        lambdas = lambda_arguments(tree, node)
        if not lambdas:
            return []
        parameters = lambda_parameters(tree, lambdas[0])
        body = unwrap_conversions(tree, lambda_body(tree, lambdas[0]))
        if not parameters or body is None or body.kind is not Kind.IDENTIFIER:
            return []
        if parameters[0].symbol is None or body.symbol != parameters[0].symbol:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree)]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        return replace_with_receiver(tree, tree.node(diagnostic.node), self.fix_title)
