"""Type classification over the SymbolTable: queryables, EF sets, contexts."""

from contraband_linter.domain.symbols import ARRAY_TYPE, Symbol, SymbolKind, SymbolTable, TypeRef

ENUMERABLE = "System.Collections.Generic.IEnumerable"
ASYNC_ENUMERABLE = "System.Collections.Generic.IAsyncEnumerable"
QUERYABLE = "System.Linq.IQueryable"
ORDERED_QUERYABLE = "System.Linq.IOrderedQueryable"
GROUPING = "System.Linq.IGrouping"
DB_CONTEXT = "Microsoft.EntityFrameworkCore.DbContext"
DB_SET = "Microsoft.EntityFrameworkCore.DbSet"
DB_CONTEXT_FACTORY = "Microsoft.EntityFrameworkCore.IDbContextFactory"
CANCELLATION_TOKEN = "System.Threading.CancellationToken"
TASK = "System.Threading.Tasks.Task"
VALUE_TASK = "System.Threading.Tasks.ValueTask"
STRING = "string"
EF_NAMESPACE = "Microsoft.EntityFrameworkCore"
CHANGE_TRACKING_NAMESPACE = "Microsoft.EntityFrameworkCore.ChangeTracking"

DEFERRED_TYPES = (QUERYABLE, ASYNC_ENUMERABLE, ORDERED_QUERYABLE)

# Constructors that copy an existing sequence into memory.
MATERIALIZING_COLLECTIONS = frozenset(
    f"System.Collections.Generic.{name}"
    for name in ("List", "HashSet", "Dictionary", "SortedDictionary", "SortedList", "LinkedList", "Queue", "Stack")
)


def is_queryable(symbols: SymbolTable, ref: TypeRef | None) -> bool:
    return symbols.find_supertype(ref, QUERYABLE) is not None


def is_ordered_queryable(symbols: SymbolTable, ref: TypeRef | None) -> bool:
    return symbols.find_supertype(ref, ORDERED_QUERYABLE) is not None


def is_enumerable(symbols: SymbolTable, ref: TypeRef | None) -> bool:
    return symbols.find_supertype(ref, ENUMERABLE) is not None


def is_deferred(symbols: SymbolTable, ref: TypeRef | None) -> bool:
    return any(symbols.find_supertype(ref, type_id) is not None for type_id in DEFERRED_TYPES)


def is_db_set(symbols: SymbolTable, ref: TypeRef | None) -> bool:
    return ref is not None and ref.name == DB_SET


def is_db_context(symbols: SymbolTable, ref: TypeRef | str | None) -> bool:
    return symbols.derives_from(ref, DB_CONTEXT)


def is_string(ref: TypeRef | None) -> bool:
    return ref is not None and ref.name == STRING


def is_cancellation_token(ref: TypeRef | None) -> bool:
    return ref is not None and ref.name == CANCELLATION_TOKEN


def element_type(symbols: SymbolTable, ref: TypeRef | None) -> TypeRef | None:
    """T for any IEnumerable<T>; None for scalars and strings."""
    if ref is None or is_string(ref):
        return None
    found = symbols.find_supertype(ref, ENUMERABLE)
    if found is None or not found.args:
        return None
    return found.args[0]


def queryable_element_type(symbols: SymbolTable, ref: TypeRef | None) -> TypeRef | None:
    found = symbols.find_supertype(ref, QUERYABLE)
    if found is None or not found.args:
        return None
    return found.args[0]


def is_grouping(ref: TypeRef | None) -> bool:
    return ref is not None and ref.name == GROUPING


def is_collection(symbols: SymbolTable, ref: TypeRef | None) -> bool:
    """True for sequence-typed values other than strings."""
    return element_type(symbols, ref) is not None


def unwrap_task(ref: TypeRef | None) -> TypeRef | None:
    if ref is not None and ref.name in (TASK, VALUE_TASK) and ref.args:
        return ref.args[0]
    return ref


def is_array(ref: TypeRef | None) -> bool:
    return ref is not None and ref.name == ARRAY_TYPE


def entity_types_of_context(symbols: SymbolTable, context_id: str) -> list[tuple[Symbol, TypeRef]]:
    """(DbSet property, entity type) pairs declared on a context and its bases."""
    pairs: list[tuple[Symbol, TypeRef]] = []
    for member in symbols.members_of(context_id):
        declared = member.declared_type
        if is_db_set(symbols, declared) and declared is not None and declared.args:
            pairs.append((member, declared.args[0]))
    return pairs


def in_namespace(symbol: Symbol | None, *namespaces: str) -> bool:
    """True if the symbol's namespace equals or nests under one of namespaces."""
    if symbol is None:
        return False
    return any(symbol.namespace == ns or symbol.namespace.startswith(ns + ".") for ns in namespaces)


def key_property(symbols: SymbolTable, type_id: str) -> Symbol | None:
    """The identity member of an entity type: [Key], then Id, then {Type}Id, across base classes."""
    properties = [member for member in symbols.members_of(type_id) if member.kind is SymbolKind.PROPERTY]
    for member in properties:
        if member.has_attribute("Key"):
            return member
    entity = symbols.type_symbol(type_id)
    conventional = ["id", f"{entity.name}id".lower()] if entity is not None else ["id"]
    for name in conventional:
        for member in properties:
            if member.name.lower() == name:
                return member
    return None


def mapped_entity_types(symbols: SymbolTable) -> set[str]:
    """Ids of every entity type exposed through a DbSet on a source DbContext."""
    entities: set[str] = set()
    for symbol in symbols:
        if symbol.kind is SymbolKind.TYPE and symbol.is_source and is_db_context(symbols, symbol.id):
            entities.update(entity.name for _, entity in entity_types_of_context(symbols, symbol.id))
    return entities
