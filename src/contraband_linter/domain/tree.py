"""Arena-backed syntax tree: indexed nodes, spans and weak parent links."""

from bisect import bisect_right
from collections.abc import Iterator
from dataclasses import dataclass

from contraband_linter.domain.symbols import Symbol, SymbolTable, TypeRef
from contraband_linter.domain.syntax import Kind, Printer, Syntax

DECLARING_KINDS = frozenset(
    {
        Kind.CLASS,
        Kind.METHOD,
        Kind.CONSTRUCTOR,
        Kind.LOCAL_FUNCTION,
        Kind.PROPERTY,
        Kind.FIELD,
        Kind.PARAMETER,
        Kind.DECLARATOR,
        Kind.FOREACH,
        Kind.FOREACH_ASYNC,
    }
)


@dataclass(frozen=True)
class Span:
    start: int
    end: int


@dataclass(frozen=True)
class Location:
    """File path plus a 1-based line/column span."""

    path: str
    line: int
    column: int
    end_line: int
    end_column: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Node:
    """A position in the tree. Parent is an index into the arena, never an owner."""

    index: int
    syntax: Syntax
    parent: int | None
    children: tuple[int, ...]
    span: Span

    @property
    def kind(self) -> Kind:
        return self.syntax.kind

    @property
    def name(self) -> str:
        return self.syntax.name

    @property
    def symbol(self) -> str | None:
        return self.syntax.symbol

    @property
    def type(self) -> TypeRef | None:
        return self.syntax.type


class Tree:
    """One analyzed unit: rendered source, node arena and symbol table.

    Nodes are numbered in pre-order, so a node's descendants occupy the index
    range right after it and every child index is greater than its parent's.
    """

    def __init__(self, root: Syntax, symbols: SymbolTable, path: str = "<memory>") -> None:
        self.path = path
        self.symbols = symbols
        self.root_syntax = root
        syntaxes: list[Syntax] = []
        parents: list[int | None] = []
        starts: list[int] = []
        ends: list[int] = []
        children: list[list[int]] = []
        stack: list[int] = []

        def enter(node: Syntax, offset: int) -> None:
            index = len(syntaxes)
            parent = stack[-1] if stack else None
            syntaxes.append(node)
            parents.append(parent)
            starts.append(offset)
            ends.append(offset)
            children.append([])
            if parent is not None:
                children[parent].append(index)
            stack.append(index)

        def exit_(node: Syntax, offset: int) -> None:
            ends[stack.pop()] = offset

        self.source = Printer(enter, exit_).render(root)
        self._nodes = tuple(
            Node(
                index=index,
                syntax=syntaxes[index],
                parent=parents[index],
                children=tuple(children[index]),
                span=Span(starts[index], ends[index]),
            )
            for index in range(len(syntaxes))
        )
        self._line_starts = [0] + [position + 1 for position, char in enumerate(self.source) if char == "\n"]
        self._declarations: dict[str, int] = {}
        for node in self._nodes:
            if node.kind in DECLARING_KINDS and node.symbol is not None:
                self._declarations.setdefault(node.symbol, node.index)

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def root(self) -> Node:
        return self._nodes[0]

    def node(self, index: int) -> Node:
        return self._nodes[index]

    def walk(self) -> Iterator[Node]:
        """All nodes in pre-order."""
        return iter(self._nodes)

    def parent(self, node: Node) -> Node | None:
        return self._nodes[node.parent] if node.parent is not None else None

    def children(self, node: Node) -> list[Node]:
        return [self._nodes[index] for index in node.children]

    def child(self, node: Node, position: int) -> Node | None:
        if -len(node.children) <= position < len(node.children):
            return self._nodes[node.children[position]]
        return None

    def ancestors(self, node: Node) -> Iterator[Node]:
        current = self.parent(node)
        while current is not None:
            yield current
            current = self.parent(current)

    def descendants(self, node: Node) -> Iterator[Node]:
        """Strict descendants in pre-order."""
        index = node.index + 1
        while index < len(self._nodes) and self.is_ancestor(node, self._nodes[index]):
            yield self._nodes[index]
            index += 1

    def is_ancestor(self, ancestor: Node, node: Node) -> bool:
        """True if ancestor strictly encloses node."""
        current = node.parent
        while current is not None:
            if current == ancestor.index:
                return True
            if current < ancestor.index:
                return False
            current = self._nodes[current].parent
        return False

    def text(self, node: Node) -> str:
        return self.source[node.span.start:node.span.end]

    def _line_column(self, offset: int) -> tuple[int, int]:
        line = bisect_right(self._line_starts, offset) - 1
        return line + 1, offset - self._line_starts[line] + 1

    def location(self, node: Node) -> Location:
        line, column = self._line_column(node.span.start)
        end_line, end_column = self._line_column(node.span.end)
        return Location(self.path, line, column, end_line, end_column)

    def symbol_of(self, node: Node | None) -> Symbol | None:
        if node is None:
            return None
        return self.symbols.get(node.symbol)

    def type_of(self, node: Node | None) -> TypeRef | None:
        if node is None:
            return None
        if node.type is not None:
            return node.type
        symbol = self.symbols.get(node.symbol)
        return symbol.type if symbol is not None else None

    def declaration_of(self, symbol_id: str | None) -> Node | None:
        """The node that declares symbol_id in this unit, if any."""
        if symbol_id is None or symbol_id not in self._declarations:
            return None
        return self._nodes[self._declarations[symbol_id]]

    def nodes_of_kind(self, *kinds: Kind) -> Iterator[Node]:
        return (node for node in self._nodes if node.kind in kinds)
