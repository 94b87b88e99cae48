"""Immutable syntax nodes and their C#-shaped rendering.

A Syntax value is the lossless description of one node: its kind, ordered
children, the few scalar slots each kind needs (name, operator, literal text,
modifiers, declared type text, attributes) and the bindings the front end
resolved (symbol id, static type). Formatting lives in two places: structural
layout (keywords, punctuation, line breaks, indentation) is produced by the
printer from the kind, while comments and extra spacing travel with the node as
leading/trailing trivia so that rewrites can carry them over.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from enum import Enum

from contraband_linter.domain.symbols import TypeRef


class Kind(Enum):
    """Node kinds understood by the walkers and rules."""

    # Expressions
    IDENTIFIER = "identifier"
    THIS = "this"
    LITERAL = "literal"
    DEFAULT_LITERAL = "default_literal"
    MEMBER_ACCESS = "member_access"
    CALL = "call"
    ARGUMENT = "argument"
    OBJECT_CREATION = "object_creation"
    LAMBDA = "lambda"
    PARAMETER = "parameter"
    BINARY = "binary"
    UNARY = "unary"
    CONDITIONAL = "conditional"
    COALESCE = "coalesce"
    CONVERSION = "conversion"
    DELEGATE_CREATION = "delegate_creation"
    PARENTHESIZED = "parenthesized"
    INTERPOLATED_STRING = "interpolated_string"
    INTERPOLATION = "interpolation"
    INTERPOLATION_TEXT = "interpolation_text"
    AWAIT = "await"
    ASSIGNMENT = "assignment"
    # Statements
    EXPRESSION_STATEMENT = "expression_statement"
    RETURN = "return"
    DECLARATOR = "declarator"
    VARIABLE_DECL = "variable_decl"
    USING_STATEMENT = "using_statement"
    BLOCK = "block"
    IF = "if"
    FOR = "for"
    FOREACH = "foreach"
    FOREACH_ASYNC = "foreach_async"
    WHILE = "while"
    DO_WHILE = "do_while"
    TRY = "try"
    CATCH = "catch"
    FINALLY = "finally"
    # Declarations
    COMPILATION_UNIT = "compilation_unit"
    USING_DIRECTIVE = "using_directive"
    CLASS = "class"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    LOCAL_FUNCTION = "local_function"
    PROPERTY = "property"
    FIELD = "field"


LOOP_KINDS = frozenset({Kind.FOR, Kind.FOREACH, Kind.FOREACH_ASYNC, Kind.WHILE, Kind.DO_WHILE})
FUNCTION_KINDS = frozenset({Kind.METHOD, Kind.CONSTRUCTOR, Kind.LOCAL_FUNCTION, Kind.LAMBDA})


@dataclass(frozen=True)
class Syntax:
    """One node of the green tree. Equality is structural."""

    kind: Kind
    children: tuple["Syntax", ...] = ()
    name: str = ""
    operator: str = ""
    value: str = ""
    modifiers: tuple[str, ...] = ()
    type_name: str = ""
    attributes: tuple[str, ...] = ()
    symbol: str | None = None
    type: TypeRef | None = None
    leading: str = ""
    trailing: str = ""

    def with_children(self, children: Iterable["Syntax"]) -> "Syntax":
        return replace(self, children=tuple(children))

    def with_trivia(self, leading: str, trailing: str) -> "Syntax":
        return replace(self, leading=leading, trailing=trailing)

    def has_modifier(self, modifier: str) -> bool:
        return modifier in self.modifiers


# -----------------------------------------------------------------------------
# Layout: each kind maps to a flat list of pieces. A piece is literal text, a
# child Syntax, or one of the structural markers below.
# -----------------------------------------------------------------------------


class _Marker(Enum):
    NEWLINE = "newline"
    INDENT = "indent"
    DEDENT = "dedent"


NEWLINE = _Marker.NEWLINE
INDENT = _Marker.INDENT
DEDENT = _Marker.DEDENT

Piece = str | Syntax | _Marker


def _joined(items: Iterable[Syntax], separator: str = ", ") -> list[Piece]:
    pieces: list[Piece] = []
    for position, item in enumerate(items):
        if position:
            pieces.append(separator)
        pieces.append(item)
    return pieces


def _lines(items: Iterable[Syntax]) -> list[Piece]:
    pieces: list[Piece] = []
    for item in items:
        pieces.extend((NEWLINE, item))
    return pieces


def _attribute_lines(node: Syntax) -> list[Piece]:
    pieces: list[Piece] = []
    for attribute in node.attributes:
        pieces.extend((f"[{attribute}]", NEWLINE))
    return pieces


def _modifier_prefix(node: Syntax) -> str:
    return "".join(f"{modifier} " for modifier in node.modifiers)


def _function_pieces(node: Syntax, header: str) -> list[Piece]:
    *parameters, body = node.children
    pieces: list[Piece] = [*_attribute_lines(node), header, "("]
    pieces.extend(_joined(parameters))
    pieces.append(")")
    if body.kind is Kind.BLOCK:
        pieces.extend((NEWLINE, body))
    else:
        pieces.extend((" => ", body, ";"))
    return pieces


def layout(node: Syntax) -> list[Piece]:
    """Return the rendering pieces of a single node."""
    kind = node.kind
    children = node.children
    if kind is Kind.IDENTIFIER:
        return [node.name]
    if kind is Kind.THIS:
        return ["this"]
    if kind is Kind.LITERAL:
        return [node.value]
    if kind is Kind.DEFAULT_LITERAL:
        return [f"default({node.type_name})" if node.type_name else "default"]
    if kind is Kind.MEMBER_ACCESS:
        return [children[0], ".", children[1]]
    if kind is Kind.CALL:
        return [children[0], "(", *_joined(children[1:]), ")"]
    if kind is Kind.ARGUMENT:
        return [f"{node.name}: ", children[0]]
    if kind is Kind.OBJECT_CREATION:
        return [f"new {node.type_name}(", *_joined(children), ")"]
    if kind is Kind.LAMBDA:
        *parameters, body = children
        prefix = _modifier_prefix(node)
        if len(parameters) == 1 and not parameters[0].type_name:
            head: list[Piece] = [prefix, parameters[0]]
        else:
            head = [prefix, "(", *_joined(parameters), ")"]
        return [*head, " => ", body]
    if kind is Kind.PARAMETER:
        pieces: list[Piece] = [_modifier_prefix(node)]
        if node.type_name:
            pieces.append(f"{node.type_name} ")
        pieces.append(node.name)
        if children:
            pieces.extend((" = ", children[0]))
        return pieces
    if kind in (Kind.BINARY, Kind.ASSIGNMENT):
        return [children[0], f" {node.operator or '='} ", children[1]]
    if kind is Kind.UNARY:
        return [node.operator, children[0]]
    if kind is Kind.CONDITIONAL:
        return [children[0], " ? ", children[1], " : ", children[2]]
    if kind is Kind.COALESCE:
        return [children[0], " ?? ", children[1]]
    if kind is Kind.CONVERSION:
        if node.has_modifier("explicit"):
            return [f"({node.type_name})", children[0]]
        return [children[0]]
    if kind is Kind.DELEGATE_CREATION:
        return [children[0]]
    if kind is Kind.PARENTHESIZED:
        return ["(", children[0], ")"]
    if kind is Kind.INTERPOLATED_STRING:
        return ['$"', *children, '"']
    if kind is Kind.INTERPOLATION:
        return ["{", children[0], "}"]
    if kind is Kind.INTERPOLATION_TEXT:
        return [node.value]
    if kind is Kind.AWAIT:
        return ["await ", children[0]]
    if kind is Kind.EXPRESSION_STATEMENT:
        return [children[0], ";"]
    if kind is Kind.RETURN:
        return ["return ", children[0], ";"] if children else ["return;"]
    if kind is Kind.DECLARATOR:
        pieces = [f"{node.type_name or 'var'} {node.name}"]
        if children:
            pieces.extend((" = ", children[0]))
        return pieces
    if kind is Kind.VARIABLE_DECL:
        return [_modifier_prefix(node), children[0], ";"]
    if kind is Kind.USING_STATEMENT:
        return ["using (", children[0], ")", NEWLINE, children[1]]
    if kind is Kind.BLOCK:
        return ["{", INDENT, *_lines(children), DEDENT, NEWLINE, "}"]
    if kind is Kind.IF:
        pieces = ["if (", children[0], ")", NEWLINE, children[1]]
        if len(children) > 2:
            pieces.extend((NEWLINE, "else", NEWLINE, children[2]))
        return pieces
    if kind is Kind.FOR:
        return ["for (", children[0], "; ", children[1], "; ", children[2], ")", NEWLINE, children[3]]
    if kind in (Kind.FOREACH, Kind.FOREACH_ASYNC):
        keyword = "await foreach" if kind is Kind.FOREACH_ASYNC else "foreach"
        return [
            f"{keyword} ({node.type_name or 'var'} {node.name} in ",
            children[0],
            ")",
            NEWLINE,
            children[1],
        ]
    if kind is Kind.WHILE:
        return ["while (", children[0], ")", NEWLINE, children[1]]
    if kind is Kind.DO_WHILE:
        return ["do", NEWLINE, children[0], NEWLINE, "while (", children[1], ");"]
    if kind is Kind.TRY:
        return ["try", NEWLINE, children[0], *_lines(children[1:])]
    if kind is Kind.CATCH:
        declaration = " ".join(part for part in (node.type_name, node.name) if part)
        header = f"catch ({declaration})" if declaration else "catch"
        return [header, NEWLINE, children[0]]
    if kind is Kind.FINALLY:
        return ["finally", NEWLINE, children[0]]
    if kind is Kind.COMPILATION_UNIT:
        pieces = []
        for position, child in enumerate(children):
            if position:
                pieces.append(NEWLINE)
                if child.kind is not Kind.USING_DIRECTIVE:
                    pieces.append(NEWLINE)
            pieces.append(child)
        return pieces
    if kind is Kind.USING_DIRECTIVE:
        return [f"using {node.name};"]
    if kind is Kind.CLASS:
        bases = f" : {node.type_name}" if node.type_name else ""
        return [
            *_attribute_lines(node),
            f"{_modifier_prefix(node)}class {node.name}{bases}",
            NEWLINE,
            "{",
            INDENT,
            *_lines(children),
            DEDENT,
            NEWLINE,
            "}",
        ]
    if kind in (Kind.METHOD, Kind.LOCAL_FUNCTION):
        return _function_pieces(node, f"{_modifier_prefix(node)}{node.type_name or 'void'} {node.name}")
    if kind is Kind.CONSTRUCTOR:
        return _function_pieces(node, f"{_modifier_prefix(node)}{node.name}")
    if kind is Kind.PROPERTY:
        return [
            *_attribute_lines(node),
            f"{_modifier_prefix(node)}{node.type_name} {node.name} {{ get; set; }}",
        ]
    if kind is Kind.FIELD:
        pieces = [*_attribute_lines(node), f"{_modifier_prefix(node)}{node.type_name} {node.name}"]
        if children:
            pieces.extend((" = ", children[0]))
        pieces.append(";")
        return pieces
    raise ValueError(f"No layout for kind: {kind}")


class Printer:
    """Render a Syntax tree to text, optionally reporting node spans.

    ``on_enter(node, offset)`` fires after a node's leading trivia has been
    written and ``on_exit(node, offset)`` before its trailing trivia, so the
    reported span covers the node's own text only.
    """

    indent_unit = "    "

    def __init__(
        self,
        on_enter: Callable[[Syntax, int], None] | None = None,
        on_exit: Callable[[Syntax, int], None] | None = None,
    ) -> None:
        self._on_enter = on_enter
        self._on_exit = on_exit
        self._parts: list[str] = []
        self._offset = 0
        self._depth = 0

    def render(self, node: Syntax) -> str:
        self._emit(node)
        return "".join(self._parts)

    def _write(self, text: str) -> None:
        if text:
            self._parts.append(text)
            self._offset += len(text)

    def _write_trivia(self, text: str) -> None:
        # Line breaks inside trivia keep the current indentation.
        self._write(text.replace("\n", "\n" + self.indent_unit * self._depth))

    def _emit(self, node: Syntax) -> None:
        self._write_trivia(node.leading)
        if self._on_enter is not None:
            self._on_enter(node, self._offset)
        for piece in layout(node):
            if isinstance(piece, Syntax):
                self._emit(piece)
            elif piece is NEWLINE:
                self._write("\n" + self.indent_unit * self._depth)
            elif piece is INDENT:
                self._depth += 1
            elif piece is DEDENT:
                self._depth -= 1
            else:
                self._write(piece)
        if self._on_exit is not None:
            self._on_exit(node, self._offset)
        self._write_trivia(node.trailing)


def render(node: Syntax) -> str:
    """Render a Syntax tree to source text."""
    return Printer().render(node)


# -----------------------------------------------------------------------------
# Factories used by rewriters to synthesize replacement nodes.
# -----------------------------------------------------------------------------


def identifier(name: str, symbol: str | None = None, type: TypeRef | None = None) -> Syntax:
    return Syntax(Kind.IDENTIFIER, name=name, symbol=symbol, type=type)


def member_access(
    expression: Syntax, name: str, symbol: str | None = None, type: TypeRef | None = None
) -> Syntax:
    return Syntax(
        Kind.MEMBER_ACCESS,
        children=(expression, identifier(name, symbol)),
        symbol=symbol,
        type=type,
    )


def call(
    callee: Syntax, *arguments: Syntax, symbol: str | None = None, type: TypeRef | None = None
) -> Syntax:
    return Syntax(Kind.CALL, children=(callee, *arguments), symbol=symbol, type=type)


def literal(text: str, type: TypeRef | None = None) -> Syntax:
    return Syntax(Kind.LITERAL, value=text, type=type)


def unary(operator: str, operand: Syntax, type: TypeRef | None = None) -> Syntax:
    return Syntax(Kind.UNARY, children=(operand,), operator=operator, type=type)


def await_(expression: Syntax, type: TypeRef | None = None) -> Syntax:
    return Syntax(Kind.AWAIT, children=(expression,), type=type)


def expression_statement(expression: Syntax) -> Syntax:
    return Syntax(Kind.EXPRESSION_STATEMENT, children=(expression,))


def return_statement(expression: Syntax | None = None) -> Syntax:
    return Syntax(Kind.RETURN, children=(expression,) if expression is not None else ())


def declarator(
    name: str,
    initializer: Syntax | None = None,
    type_name: str = "var",
    symbol: str | None = None,
) -> Syntax:
    return Syntax(
        Kind.DECLARATOR,
        children=(initializer,) if initializer is not None else (),
        name=name,
        type_name=type_name,
        symbol=symbol,
        type=initializer.type if initializer is not None else None,
    )


def variable_declaration(
    name: str,
    initializer: Syntax | None = None,
    type_name: str = "var",
    symbol: str | None = None,
    using: bool = False,
) -> Syntax:
    return Syntax(
        Kind.VARIABLE_DECL,
        children=(declarator(name, initializer, type_name, symbol),),
        modifiers=("using",) if using else (),
    )


def block(*statements: Syntax) -> Syntax:
    return Syntax(Kind.BLOCK, children=tuple(statements))


def property_declaration(
    name: str,
    type_name: str,
    symbol: str | None = None,
    modifiers: tuple[str, ...] = ("public",),
    attributes: tuple[str, ...] = (),
) -> Syntax:
    return Syntax(
        Kind.PROPERTY,
        name=name,
        type_name=type_name,
        symbol=symbol,
        modifiers=modifiers,
        attributes=attributes,
    )


def using_directive(namespace: str) -> Syntax:
    return Syntax(Kind.USING_DIRECTIVE, name=namespace)


def with_name(node: Syntax, name: str) -> Syntax:
    """Return node renamed, keeping its bindings and trivia."""
    return replace(node, name=name)


def rename_call(node: Syntax, name: str, symbol: str | None = None) -> Syntax:
    """Rename the method a call invokes, keeping receiver and arguments."""
    callee = node.children[0]
    bound = symbol if symbol is not None else node.symbol
    if callee.kind is Kind.MEMBER_ACCESS:
        target, old_name = callee.children
        renamed = replace(callee, children=(target, replace(old_name, name=name, symbol=bound)), symbol=bound)
    else:
        renamed = replace(callee, name=name, symbol=bound)
    return replace(node, children=(renamed, *node.children[1:]), symbol=bound)
