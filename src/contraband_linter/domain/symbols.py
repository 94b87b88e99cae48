"""Resolved symbols and the immutable table that indexes them."""

from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

ARRAY_TYPE = "System.Array"


@dataclass(frozen=True)
class TypeRef:
    """A constructed type: a type symbol id (or type parameter name) plus type arguments."""

    name: str
    args: tuple["TypeRef", ...] = ()

    @property
    def short_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    def display(self) -> str:
        if self.name == ARRAY_TYPE and len(self.args) == 1:
            return f"{self.args[0].display()}[]"
        if not self.args:
            return self.short_name
        return f"{self.short_name}<{', '.join(arg.display() for arg in self.args)}>"

    def __str__(self) -> str:
        return self.display()

    def substitute(self, mapping: dict[str, "TypeRef"]) -> "TypeRef":
        """Replace type parameter references using mapping."""
        if not self.args and self.name in mapping:
            return mapping[self.name]
        if not self.args:
            return self
        return TypeRef(self.name, tuple(arg.substitute(mapping) for arg in self.args))

    @classmethod
    def parse(cls, text: str, resolve: Callable[[str], str] | None = None) -> "TypeRef":
        """Parse 'IQueryable<User>', 'Dictionary<int, List<User>>' or 'User[]'."""
        parser = _TypeParser(text, resolve or (lambda name: name))
        result = parser.parse_type()
        parser.expect_end()
        return result


class _TypeParser:
    def __init__(self, text: str, resolve: Callable[[str], str]) -> None:
        self._text = text
        self._pos = 0
        self._resolve = resolve

    def _skip_spaces(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos].isspace():
            self._pos += 1

    def _peek(self) -> str:
        self._skip_spaces()
        return self._text[self._pos] if self._pos < len(self._text) else ""

    def expect_end(self) -> None:
        if self._peek():
            raise ValueError(f"Unexpected text in type name: {self._text!r}")

    def parse_type(self) -> TypeRef:
        self._skip_spaces()
        start = self._pos
        while self._pos < len(self._text) and (self._text[self._pos].isalnum() or self._text[self._pos] in "_."):
            self._pos += 1
        name = self._text[start:self._pos]
        if not name:
            raise ValueError(f"Malformed type name: {self._text!r}")
        args: list[TypeRef] = []
        if self._peek() == "<":
            self._pos += 1
            args.append(self.parse_type())
            while self._peek() == ",":
                self._pos += 1
                args.append(self.parse_type())
            if self._peek() != ">":
                raise ValueError(f"Unclosed type argument list: {self._text!r}")
            self._pos += 1
        result = TypeRef(self._resolve(name), tuple(args))
        while True:
            if self._peek() == "?":
                self._pos += 1
            elif self._text.startswith("[]", self._pos):
                self._pos += 2
                result = TypeRef(ARRAY_TYPE, (result,))
            else:
                return result


class SymbolKind(Enum):
    TYPE = "type"
    METHOD = "method"
    PROPERTY = "property"
    FIELD = "field"
    PARAMETER = "parameter"
    LOCAL = "local"
    NAMESPACE = "namespace"


class Accessibility(Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    INTERNAL = "internal"
    PRIVATE = "private"


@dataclass(frozen=True)
class Attribute:
    """An annotation with optional constructor arguments, e.g. ForeignKey("Owner")."""

    name: str
    args: tuple[str, ...] = ()

    def matches(self, *names: str) -> bool:
        short = self.name.rsplit(".", 1)[-1]
        if short.endswith("Attribute"):
            short = short[: -len("Attribute")]
        return short in names


@dataclass(frozen=True)
class Parameter:
    name: str
    type: TypeRef
    is_extension_receiver: bool = False
    has_default: bool = False


@dataclass(frozen=True)
class Symbol:
    """A named entity resolved by the front end. Immutable."""

    id: str
    kind: SymbolKind
    name: str
    namespace: str = ""
    declared_type: TypeRef | None = None
    containing_type: str | None = None
    attributes: tuple[Attribute, ...] = ()
    accessibility: Accessibility = Accessibility.PUBLIC
    parameters: tuple[Parameter, ...] = ()
    return_type: TypeRef | None = None
    is_async: bool = False
    is_static: bool = False
    is_extension: bool = False
    base_type: TypeRef | None = None
    interfaces: tuple[TypeRef, ...] = ()
    type_parameters: tuple[str, ...] = ()
    members: tuple[str, ...] = ()
    type_kind: str = "class"
    is_source: bool = False
    """True for symbols declared in the analyzed code rather than a referenced library."""

    def has_attribute(self, *names: str) -> bool:
        return any(attribute.matches(*names) for attribute in self.attributes)

    def attribute(self, *names: str) -> Attribute | None:
        for attribute in self.attributes:
            if attribute.matches(*names):
                return attribute
        return None

    def parameter(self, name: str) -> Parameter | None:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    @property
    def type(self) -> TypeRef | None:
        """Declared type for values, return type for methods."""
        return self.return_type if self.kind is SymbolKind.METHOD else self.declared_type


@dataclass(frozen=True)
class _Index:
    by_id: dict[str, Symbol] = field(default_factory=dict)
    types_by_name: dict[str, str] = field(default_factory=dict)
    extensions: dict[str, tuple[str, ...]] = field(default_factory=dict)


class SymbolTable:
    """Immutable id -> Symbol mapping with type-hierarchy queries."""

    def __init__(self, symbols: Iterable[Symbol] = ()) -> None:
        by_id: dict[str, Symbol] = {}
        for symbol in symbols:
            by_id[symbol.id] = symbol
        types_by_name: dict[str, str] = {}
        extensions: dict[str, list[str]] = {}
        for symbol in by_id.values():
            if symbol.kind is SymbolKind.TYPE:
                # Source types shadow library types with the same short name.
                if symbol.name not in types_by_name or symbol.is_source:
                    types_by_name[symbol.name] = symbol.id
            elif symbol.kind is SymbolKind.METHOD and symbol.is_extension:
                extensions.setdefault(symbol.name, []).append(symbol.id)
        self._index = _Index(
            by_id=by_id,
            types_by_name=types_by_name,
            extensions={name: tuple(ids) for name, ids in extensions.items()},
        )

    def __contains__(self, symbol_id: object) -> bool:
        return symbol_id in self._index.by_id

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self._index.by_id.values())

    def __len__(self) -> int:
        return len(self._index.by_id)

    def get(self, symbol_id: str | None) -> Symbol | None:
        if symbol_id is None:
            return None
        return self._index.by_id.get(symbol_id)

    def with_symbols(self, symbols: Iterable[Symbol]) -> "SymbolTable":
        """Return a new table with symbols added or replaced by id."""
        merged = dict(self._index.by_id)
        for symbol in symbols:
            merged[symbol.id] = symbol
        return SymbolTable(merged.values())

    # -- types -----------------------------------------------------------------

    def resolve_type_name(self, name: str) -> str:
        if name in self._index.by_id:
            return name
        return self._index.types_by_name.get(name, name)

    def parse_type(self, text: str) -> TypeRef:
        return TypeRef.parse(text, self.resolve_type_name)

    def type_symbol(self, ref: TypeRef | str | None) -> Symbol | None:
        if ref is None:
            return None
        symbol = self.get(ref.name if isinstance(ref, TypeRef) else ref)
        if symbol is None or symbol.kind is not SymbolKind.TYPE:
            return None
        return symbol

    def _direct_supertypes(self, ref: TypeRef) -> list[TypeRef]:
        symbol = self.type_symbol(ref)
        if symbol is None:
            return []
        mapping = dict(zip(symbol.type_parameters, ref.args))
        bases = [symbol.base_type] if symbol.base_type is not None else []
        return [base.substitute(mapping) for base in (*bases, *symbol.interfaces)]

    def supertypes(self, ref: TypeRef | None) -> Iterator[TypeRef]:
        """Yield ref, then every base type and interface, breadth first."""
        if ref is None:
            return
        seen: set[TypeRef] = set()
        queue = deque([ref])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            yield current
            queue.extend(self._direct_supertypes(current))

    def find_supertype(self, ref: TypeRef | None, type_id: str) -> TypeRef | None:
        for candidate in self.supertypes(ref):
            if candidate.name == type_id:
                return candidate
        return None

    def derives_from(self, ref: TypeRef | str | None, type_id: str) -> bool:
        if isinstance(ref, str):
            ref = TypeRef(ref)
        return self.find_supertype(ref, type_id) is not None

    def base_chain(self, type_id: str) -> list[Symbol]:
        """The type and its base classes, most derived first."""
        chain: list[Symbol] = []
        symbol = self.type_symbol(type_id)
        while symbol is not None and symbol not in chain:
            chain.append(symbol)
            symbol = self.type_symbol(symbol.base_type)
        return chain

    def members_of(self, type_id: str, inherited: bool = True) -> list[Symbol]:
        types = self.base_chain(type_id) if inherited else self.base_chain(type_id)[:1]
        members: list[Symbol] = []
        for owner in types:
            for member_id in owner.members:
                member = self.get(member_id)
                if member is not None:
                    members.append(member)
        return members

    def find_member(self, ref: TypeRef | None, name: str) -> tuple[Symbol, TypeRef] | None:
        """Find a member by name on ref or its supertypes; also return the owning constructed type."""
        for owner in self.supertypes(ref):
            symbol = self.type_symbol(owner)
            if symbol is None:
                continue
            for member_id in symbol.members:
                member = self.get(member_id)
                if member is not None and member.name == name:
                    return member, owner
        return None

    def extension_methods(self, name: str) -> list[Symbol]:
        return [self._index.by_id[symbol_id] for symbol_id in self._index.extensions.get(name, ())]
