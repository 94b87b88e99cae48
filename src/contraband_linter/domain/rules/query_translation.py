"""Constructs inside query lambdas that the database provider cannot translate.

LC001 local-method-in-query, LC014 string-case-conversion,
LC016 date-time-now-in-query, LC019 conditional-include,
LC020 string-comparison-overload, LC024 group-by-non-translatable.
"""

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.chain import (
    enclosing_member,
    enclosing_statement,
    explicit_arguments,
    invocation_receiver,
    lambda_arguments,
    lambda_body,
    lambda_parameters,
    method_name,
    name_node,
    target_method,
    unwrap_argument,
    unwrap_conversions,
)
from contraband_linter.domain.entities import NameRequest, RewriteEdit
from contraband_linter.domain.operators import CASE_CONVERSIONS, GROUP_AGGREGATES, STRING_MATCHERS
from contraband_linter.domain.query import (
    is_ef_method,
    nearest_query_lambda_call,
    query_call_for,
    receiver_type,
)
from contraband_linter.domain.rules import BaseRule, Checkable, Diagnostic, Severity
from contraband_linter.domain.rules.edits import bare
from contraband_linter.domain.symbols import TypeRef
from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import STRING, is_grouping, queryable_element_type

STRING_COMPARISON = "System.StringComparison"
CLOCK_MEMBERS = frozenset(
    {
        "System.DateTime.Now",
        "System.DateTime.UtcNow",
        "System.DateTime.Today",
        "System.DateTimeOffset.Now",
        "System.DateTimeOffset.UtcNow",
    }
)


class LocalMethodInQueryRule(Checkable):
    """LC001: a user-defined method invoked inside an IQueryable lambda."""

    code: str = "LC001"
    symbol: str = "local-method-in-query"
    description: str = "Local methods cannot be translated by the query provider."
    message: str = (
        "The method '{0}' cannot be translated to SQL. Calling it inside an IQueryable "
        "expression causes client-side evaluation or a runtime exception."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or not method.is_source:
            return []
        if query_call_for(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]


class StringCaseConversionRule(BaseRule):
    """LC014: ToLower/ToUpper inside a query defeats index usage."""

    code: str = "LC014"
    symbol: str = "string-case-conversion"
    description: str = "Avoid ToLower/ToUpper for comparisons inside queries."
    message: str = (
        "Avoid calling '{0}' inside a LINQ query; it prevents index usage. "
        "Use string.Equals with StringComparison.OrdinalIgnoreCase or a case-insensitive collation."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Use string.Equals with StringComparison.OrdinalIgnoreCase"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in CASE_CONVERSIONS or method.containing_type != STRING:
            return []
        if query_call_for(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        conversion = tree.node(diagnostic.node)
        subject = invocation_receiver(tree, conversion)
        if subject is None:
            return []
        comparison = self._comparison_site(tree, conversion)
        if comparison is None:
            return []
        target, other, negate = comparison
        replacement = self._string_equals(tree, subject, other)
        if negate:
            replacement = sx.unary("!", replacement, type=TypeRef("bool"))
        return [RewriteEdit.replace_with(target.index, replacement, self.fix_title)]

    def _comparison_site(self, tree: Tree, conversion: Node) -> tuple[Node, Node, bool] | None:
        """(node to replace, other operand, negated) for `x.ToLower() == y` or `x.ToLower().Equals(y)`."""
        parent = tree.parent(conversion)
        if parent is not None and parent.kind is Kind.BINARY and parent.syntax.operator in ("==", "!="):
            left, right = tree.children(parent)
            other = right if left.index == conversion.index else left
            return parent, other, parent.syntax.operator == "!="
        if parent is not None and parent.kind is Kind.MEMBER_ACCESS and parent.children[0] == conversion.index:
            outer = tree.parent(parent)
            name = tree.child(parent, 1)
            if outer is not None and outer.kind is Kind.CALL and name is not None and name.name == "Equals":
                arguments = explicit_arguments(tree, outer)
                if len(arguments) == 1:
                    return outer, arguments[0], False
        return None

    def _string_equals(self, tree: Tree, subject: Node, other: Node) -> sx.Syntax:
        """Build string.Equals(subject, other, StringComparison.OrdinalIgnoreCase)."""
        other_call = unwrap_conversions(tree, other)
        if other_call is not None and other_call.kind is Kind.CALL and method_name(tree, other_call) in CASE_CONVERSIONS:
            other = invocation_receiver(tree, other_call) or other
        equals = tree.symbols.get("string.Equals#2")
        bound = equals.id if equals is not None else None
        mode = sx.member_access(
            sx.identifier("StringComparison", symbol=STRING_COMPARISON),
            "OrdinalIgnoreCase",
            symbol=f"{STRING_COMPARISON}.OrdinalIgnoreCase",
            type=TypeRef(STRING_COMPARISON),
        )
        return sx.call(
            sx.member_access(sx.identifier("string", symbol=STRING), "Equals", symbol=bound),
            bare(subject.syntax),
            bare(other.syntax),
            mode,
            symbol=bound,
            type=TypeRef("bool"),
        )


class DateTimeNowInQueryRule(BaseRule):
    """LC016: the clock read inside a query lambda defeats plan caching."""

    code: str = "LC016"
    symbol: str = "date-time-now-in-query"
    description: str = "Read DateTime.Now into a local before building the query."
    message: str = (
        "Avoid using '{0}' inside a LINQ query. Store it in a local variable first "
        "to enable query plan caching and improve testability."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.MEMBER_ACCESS})
    fix_title: str = "Extract to a local variable"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        if node.symbol not in CLOCK_MEMBERS:
            return []
        if query_call_for(tree, node) is None:
            return []
        owner, _, member = node.symbol.rpartition(".")
        label = f"{owner.rsplit('.', 1)[-1]}.{member}"
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(label,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        clock = tree.node(diagnostic.node)
        query = query_call_for(tree, clock)
        outer = query_call_for(tree, query) if query is not None else None
        while outer is not None:
            query, outer = outer, query_call_for(tree, outer)
        statement = enclosing_statement(tree, query) if query is not None else None
        if statement is None:
            return []
        scope = enclosing_member(tree, clock) or tree.parent(statement)
        member = tree.child(clock, 1)
        base = member.name[0].lower() + member.name[1:] if member is not None and member.name else "now"
        request = NameRequest(base=base, scope=scope.index, key=f"{self.code}:{clock.index}")
        initializer = bare(clock.syntax)
        return [
            RewriteEdit.insert_before(
                statement.index,
                lambda anchor, name: sx.variable_declaration(name or base, initializer),
                self.fix_title,
                name_request=request,
            ),
            RewriteEdit.replace(
                clock.index,
                lambda original, name: sx.identifier(name or base, type=clock.type),
                self.fix_title,
                name_request=request,
            ),
        ]


class ConditionalIncludeRule(Checkable):
    """LC019: Include/ThenInclude whose navigation lambda returns ?: or ??."""

    code: str = "LC019"
    symbol: str = "conditional-include"
    description: str = "Include paths must be plain member accesses."
    message: str = "Conditional expressions in Include/ThenInclude are not supported by EF Core and will throw at runtime"
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in ("Include", "ThenInclude") or not is_ef_method(method):
            return []
        for lambda_node in lambda_arguments(tree, node):
            body = unwrap_conversions(tree, lambda_body(tree, lambda_node))
            if body is not None and body.kind in (Kind.CONDITIONAL, Kind.COALESCE):
                return [Diagnostic.from_node(rule=self, node=name_node(tree, node), tree=tree)]
        return []


class StringComparisonOverloadRule(BaseRule):
    """LC020: Contains/StartsWith/EndsWith with a StringComparison inside a query lambda."""

    code: str = "LC020"
    symbol: str = "string-comparison-overload"
    description: str = "StringComparison overloads are not translated to SQL."
    message: str = (
        "The method '{0}' with a StringComparison argument is used in a LINQ query. "
        "This often cannot be translated to SQL and may cause client-side evaluation."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})
    fix_title: str = "Remove the StringComparison argument"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name not in STRING_MATCHERS or method.containing_type != STRING:
            return []
        if self._comparison_argument(tree, node) is None:
            return []
        if nearest_query_lambda_call(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(method.name,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        argument = self._comparison_argument(tree, tree.node(diagnostic.node))
        if argument is None:
            return []
        return [RewriteEdit.remove(argument.index, self.fix_title)]

    def _comparison_argument(self, tree: Tree, call: Node) -> Node | None:
        """The raw argument node (named or positional) carrying the StringComparison."""
        for raw in tree.children(call)[2:]:
            value = unwrap_argument(tree, raw)
            value_type = tree.type_of(value)
            if value_type is not None and value_type.name == STRING_COMPARISON:
                return raw
        return None


class GroupByNonTranslatableRule(Checkable):
    """LC024: a grouping projection that reaches into group elements."""

    code: str = "LC024"
    symbol: str = "group-by-non-translatable"
    description: str = "Only Key and aggregates of a group translate to SQL."
    message: str = (
        "Accessing group elements with '{0}' cannot be translated to SQL. "
        "Use only Key and aggregate functions (Count, Sum, Average, Min, Max)."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.CALL})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        method = target_method(tree, node)
        if method is None or method.name != "Select":
            return []
        if not is_grouping(queryable_element_type(tree.symbols, receiver_type(tree, node))):
            return []
        for lambda_node in lambda_arguments(tree, node):
            parameters = lambda_parameters(tree, lambda_node)
            if not parameters or parameters[0].symbol is None:
                continue
            found = self._first_violation(tree, lambda_node, parameters[0].symbol)
            if found is not None:
                where, label = found
                return [Diagnostic.from_node(rule=self, node=where, tree=tree, message_args=(label,))]
        return []

    def _first_violation(self, tree: Tree, lambda_node: Node, group: str) -> tuple[Node, str] | None:
        body = tree.child(lambda_node, -1)
        if body is None:
            return None
        references = [body] if body.kind is Kind.IDENTIFIER and body.symbol == group else []
        references += [
            candidate
            for candidate in tree.descendants(body)
            if candidate.kind is Kind.IDENTIFIER and candidate.symbol == group
        ]
        for reference in references:
            verdict = self._classify(tree, reference)
            if verdict is not None:
                return verdict
        return None

    def _classify(self, tree: Tree, reference: Node) -> tuple[Node, str] | None:
        """None when the use is Key or an aggregate; else (location, label)."""
        parent = tree.parent(reference)
        while parent is not None and parent.kind in (Kind.CONVERSION, Kind.PARENTHESIZED, Kind.ARGUMENT):
            reference, parent = parent, tree.parent(parent)
        if parent is not None and parent.kind is Kind.MEMBER_ACCESS and parent.children[0] == reference.index:
            member = tree.child(parent, 1)
            member_name = member.name if member is not None else ""
            if member_name == "Key":
                return None
            outer = tree.parent(parent)
            if outer is not None and outer.kind is Kind.CALL and outer.children[0] == parent.index:
                if member_name in GROUP_AGGREGATES:
                    return None
                return outer, member_name
            return parent, member_name
        if parent is not None and parent.kind is Kind.CALL and parent.children[0] != reference.index:
            called = method_name(tree, parent)
            if called in GROUP_AGGREGATES:
                return None
            return parent, called
        return reference, "direct access"

