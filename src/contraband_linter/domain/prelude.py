"""Library surface the rules reason about: BCL collections, LINQ and EF Core.

Declarations are written as C#-like signature strings and compiled into
Symbols once. Single upper-case letters (T, R, K, V, P, E) are type
parameters. Lambda parameters of IQueryable operators are wrapped in
Expression<...> the way the real Queryable surface declares them.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from contraband_linter.domain.symbols import (
    Parameter,
    Symbol,
    SymbolKind,
    SymbolTable,
    TypeRef,
)

_TYPE_PARAMETER = re.compile(r"^[A-Z]$")

# (namespace, header, supertypes, type kind)
_TYPES: tuple[tuple[str, str, tuple[str, ...], str], ...] = (
    ("", "object", (), "class"),
    ("", "void", (), "struct"),
    ("", "bool", (), "struct"),
    ("", "char", (), "struct"),
    ("", "int", (), "struct"),
    ("", "long", (), "struct"),
    ("", "double", (), "struct"),
    ("", "decimal", (), "struct"),
    ("", "string", ("IEnumerable<char>",), "class"),
    ("System", "Type", (), "class"),
    ("System", "FormattableString", (), "class"),
    ("System", "DateTime", (), "struct"),
    ("System", "DateTimeOffset", (), "struct"),
    ("System", "StringComparison", (), "enum"),
    ("System", "Func", (), "delegate"),
    ("System", "Action", (), "delegate"),
    ("System", "Array<T>", ("IList<T>",), "class"),
    ("System.Linq.Expressions", "Expression<T>", (), "class"),
    ("System.Threading", "CancellationToken", (), "struct"),
    ("System.Threading.Tasks", "Task<T>", (), "class"),
    ("System.Threading.Tasks", "ValueTask<T>", (), "struct"),
    ("System.Collections.Generic", "IEnumerable<T>", (), "interface"),
    ("System.Collections.Generic", "IAsyncEnumerable<T>", (), "interface"),
    ("System.Collections.Generic", "ICollection<T>", ("IEnumerable<T>",), "interface"),
    ("System.Collections.Generic", "IList<T>", ("ICollection<T>",), "interface"),
    ("System.Collections.Generic", "IReadOnlyList<T>", ("IEnumerable<T>",), "interface"),
    ("System.Collections.Generic", "KeyValuePair<K, V>", (), "struct"),
    ("System.Collections.Generic", "List<T>", ("IList<T>", "IReadOnlyList<T>"), "class"),
    ("System.Collections.Generic", "HashSet<T>", ("ICollection<T>",), "class"),
    ("System.Collections.Generic", "LinkedList<T>", ("ICollection<T>",), "class"),
    ("System.Collections.Generic", "Queue<T>", ("IEnumerable<T>",), "class"),
    ("System.Collections.Generic", "Stack<T>", ("IEnumerable<T>",), "class"),
    ("System.Collections.Generic", "Dictionary<K, V>", ("ICollection<KeyValuePair<K, V>>",), "class"),
    ("System.Collections.Generic", "SortedDictionary<K, V>", ("ICollection<KeyValuePair<K, V>>",), "class"),
    ("System.Collections.Generic", "SortedList<K, V>", ("ICollection<KeyValuePair<K, V>>",), "class"),
    ("System.Linq", "IQueryable<T>", ("IEnumerable<T>",), "interface"),
    ("System.Linq", "IOrderedQueryable<T>", ("IQueryable<T>",), "interface"),
    ("System.Linq", "IOrderedEnumerable<T>", ("IEnumerable<T>",), "interface"),
    ("System.Linq", "IGrouping<K, T>", ("IEnumerable<T>",), "interface"),
    ("System.Linq", "ILookup<K, T>", ("IEnumerable<IGrouping<K, T>>",), "interface"),
    ("System.Linq", "Queryable", (), "static class"),
    ("System.Linq", "Enumerable", (), "static class"),
    ("Microsoft.EntityFrameworkCore", "DbContext", (), "class"),
    ("Microsoft.EntityFrameworkCore", "DbSet<T>", ("IQueryable<T>", "IAsyncEnumerable<T>"), "class"),
    ("Microsoft.EntityFrameworkCore", "IDbContextFactory<C>", (), "interface"),
    ("Microsoft.EntityFrameworkCore", "EntityFrameworkQueryableExtensions", (), "static class"),
    ("Microsoft.EntityFrameworkCore", "RelationalQueryableExtensions", (), "static class"),
    ("Microsoft.EntityFrameworkCore.Query", "IIncludableQueryable<T, P>", ("IQueryable<T>",), "interface"),
    ("Microsoft.EntityFrameworkCore.ChangeTracking", "EntityEntry<E>", (), "class"),
    ("Microsoft.EntityFrameworkCore.ChangeTracking", "ReferenceEntry", (), "class"),
    ("Microsoft.EntityFrameworkCore.ChangeTracking", "CollectionEntry", (), "class"),
)

_LINQ_OPERATORS: tuple[str, ...] = (
    "S<T> Where(this S<T> source, Func<T, bool> predicate)",
    "S<R> Select(this S<T> source, Func<T, R> selector)",
    "S<R> SelectMany(this S<T> source, Func<T, IEnumerable<R>> selector)",
    "O<T> OrderBy(this S<T> source, Func<T, K> keySelector)",
    "O<T> OrderByDescending(this S<T> source, Func<T, K> keySelector)",
    "O<T> ThenBy(this O<T> source, Func<T, K> keySelector)",
    "O<T> ThenByDescending(this O<T> source, Func<T, K> keySelector)",
    "S<IGrouping<K, T>> GroupBy(this S<T> source, Func<T, K> keySelector)",
    "S<T> Skip(this S<T> source, int count)",
    "S<T> Take(this S<T> source, int count)",
    "S<T> SkipWhile(this S<T> source, Func<T, bool> predicate)",
    "S<T> TakeWhile(this S<T> source, Func<T, bool> predicate)",
    "S<T> Distinct(this S<T> source)",
    "S<T[]> Chunk(this S<T> source, int size)",
    "S<T> Concat(this S<T> source, IEnumerable<T> second)",
    "S<T> Union(this S<T> source, IEnumerable<T> second)",
    "T First(this S<T> source, Func<T, bool> predicate = default)",
    "T FirstOrDefault(this S<T> source, Func<T, bool> predicate = default)",
    "T Single(this S<T> source, Func<T, bool> predicate = default)",
    "T SingleOrDefault(this S<T> source, Func<T, bool> predicate = default)",
    "T Last(this S<T> source, Func<T, bool> predicate = default)",
    "T LastOrDefault(this S<T> source, Func<T, bool> predicate = default)",
    "T ElementAt(this S<T> source, int index)",
    "int Count(this S<T> source, Func<T, bool> predicate = default)",
    "long LongCount(this S<T> source, Func<T, bool> predicate = default)",
    "bool Any(this S<T> source, Func<T, bool> predicate = default)",
    "bool All(this S<T> source, Func<T, bool> predicate)",
    "bool Contains(this S<T> source, T item)",
    "R Sum(this S<T> source, Func<T, R> selector = default)",
    "R Average(this S<T> source, Func<T, R> selector = default)",
    "R Min(this S<T> source, Func<T, R> selector = default)",
    "R Max(this S<T> source, Func<T, R> selector = default)",
)

_MEMBERS: dict[str, tuple[str, ...]] = {
    "string": (
        "string ToLower()",
        "string ToUpper()",
        "string ToLowerInvariant()",
        "string ToUpperInvariant()",
        "string Trim()",
        "int Length",
        "bool Contains(string value, StringComparison comparisonType = default)",
        "bool StartsWith(string value, StringComparison comparisonType = default)",
        "bool EndsWith(string value, StringComparison comparisonType = default)",
        "bool Equals(string value, StringComparison comparisonType = default)",
        "static bool Equals(string a, string b, StringComparison comparisonType = default)",
    ),
    "System.DateTime": (
        "static DateTime Now",
        "static DateTime UtcNow",
        "static DateTime Today",
    ),
    "System.DateTimeOffset": (
        "static DateTimeOffset Now",
        "static DateTimeOffset UtcNow",
    ),
    "System.StringComparison": (
        "const StringComparison Ordinal",
        "const StringComparison OrdinalIgnoreCase",
        "const StringComparison CurrentCulture",
        "const StringComparison CurrentCultureIgnoreCase",
        "const StringComparison InvariantCulture",
        "const StringComparison InvariantCultureIgnoreCase",
    ),
    "System.Threading.CancellationToken": (
        "static CancellationToken None",
        "bool IsCancellationRequested",
    ),
    "System.Collections.Generic.List": (
        "int Count",
        "void Add(T item)",
        "bool Contains(T item)",
    ),
    "System.Collections.Generic.HashSet": ("int Count", "bool Contains(T item)"),
    "System.Linq.IGrouping": ("K Key",),
    "System.Linq.Queryable": ("IQueryable<T> AsQueryable(this IEnumerable<T> source)",),
    "System.Linq.Enumerable": (
        "List<T> ToList(this IEnumerable<T> source)",
        "T[] ToArray(this IEnumerable<T> source)",
        "Dictionary<K, T> ToDictionary(this IEnumerable<T> source, Func<T, K> keySelector)",
        "HashSet<T> ToHashSet(this IEnumerable<T> source)",
        "ILookup<K, T> ToLookup(this IEnumerable<T> source, Func<T, K> keySelector)",
        "IEnumerable<T> AsEnumerable(this IEnumerable<T> source)",
    ),
    "Microsoft.EntityFrameworkCore.DbContext": (
        "int SaveChanges()",
        "Task<int> SaveChangesAsync(CancellationToken cancellationToken = default)",
        "EntityEntry<E> Entry(E entity)",
        "EntityEntry<E> Add(E entity)",
        "EntityEntry<E> Attach(E entity)",
        "EntityEntry<E> Update(E entity)",
        "EntityEntry<E> Remove(E entity)",
        "void AddRange(params object[] entities)",
        "void UpdateRange(params object[] entities)",
        "void RemoveRange(params object[] entities)",
        "void Dispose()",
    ),
    "Microsoft.EntityFrameworkCore.DbSet": (
        "T Find(params object[] keyValues)",
        "ValueTask<T> FindAsync(params object[] keyValues)",
        "EntityEntry<T> Add(T entity)",
        "EntityEntry<T> Attach(T entity)",
        "EntityEntry<T> Update(T entity)",
        "EntityEntry<T> Remove(T entity)",
        "void AddRange(params T[] entities)",
        "void UpdateRange(params T[] entities)",
        "void RemoveRange(params T[] entities)",
    ),
    "Microsoft.EntityFrameworkCore.IDbContextFactory": (
        "C CreateDbContext()",
        "Task<C> CreateDbContextAsync(CancellationToken cancellationToken = default)",
    ),
    "Microsoft.EntityFrameworkCore.EntityFrameworkQueryableExtensions": (
        "IQueryable<T> AsNoTracking(this IQueryable<T> source)",
        "IQueryable<T> AsNoTrackingWithIdentityResolution(this IQueryable<T> source)",
        "IQueryable<T> AsTracking(this IQueryable<T> source)",
        "IQueryable<T> AsSplitQuery(this IQueryable<T> source)",
        "IQueryable<T> AsSingleQuery(this IQueryable<T> source)",
        "IQueryable<T> IgnoreQueryFilters(this IQueryable<T> source)",
        "IQueryable<T> TagWith(this IQueryable<T> source, string tag)",
        "IIncludableQueryable<T, P> Include(this IQueryable<T> source, Func<T, P> navigationPropertyPath)",
        "IIncludableQueryable<T, R> ThenInclude(this IIncludableQueryable<T, P> source, Func<P, R> navigationPropertyPath)",
        "Task<List<T>> ToListAsync(this IQueryable<T> source, CancellationToken cancellationToken = default)",
        "Task<T[]> ToArrayAsync(this IQueryable<T> source, CancellationToken cancellationToken = default)",
        "Task<Dictionary<K, T>> ToDictionaryAsync(this IQueryable<T> source, Func<T, K> keySelector, CancellationToken cancellationToken = default)",
        "Task<HashSet<T>> ToHashSetAsync(this IQueryable<T> source, CancellationToken cancellationToken = default)",
        "Task<T> FirstAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<T> FirstOrDefaultAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<T> SingleAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<T> SingleOrDefaultAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<T> LastAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<T> LastOrDefaultAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<int> CountAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<long> LongCountAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<bool> AnyAsync(this IQueryable<T> source, Func<T, bool> predicate = default, CancellationToken cancellationToken = default)",
        "Task<bool> AllAsync(this IQueryable<T> source, Func<T, bool> predicate, CancellationToken cancellationToken = default)",
        "Task<R> SumAsync(this IQueryable<T> source, Func<T, R> selector = default, CancellationToken cancellationToken = default)",
        "Task<R> AverageAsync(this IQueryable<T> source, Func<T, R> selector = default, CancellationToken cancellationToken = default)",
        "Task<R> MinAsync(this IQueryable<T> source, Func<T, R> selector = default, CancellationToken cancellationToken = default)",
        "Task<R> MaxAsync(this IQueryable<T> source, Func<T, R> selector = default, CancellationToken cancellationToken = default)",
        "Task<bool> ContainsAsync(this IQueryable<T> source, T item, CancellationToken cancellationToken = default)",
        "Task ForEachAsync(this IQueryable<T> source, Action<T> action, CancellationToken cancellationToken = default)",
        "IAsyncEnumerable<T> AsAsyncEnumerable(this IQueryable<T> source)",
        "void Load(this IQueryable<T> source)",
        "Task LoadAsync(this IQueryable<T> source, CancellationToken cancellationToken = default)",
        "int ExecuteDelete(this IQueryable<T> source)",
        "Task<int> ExecuteDeleteAsync(this IQueryable<T> source, CancellationToken cancellationToken = default)",
        "int ExecuteUpdate(this IQueryable<T> source, object setPropertyCalls)",
        "Task<int> ExecuteUpdateAsync(this IQueryable<T> source, object setPropertyCalls, CancellationToken cancellationToken = default)",
    ),
    "Microsoft.EntityFrameworkCore.RelationalQueryableExtensions": (
        "IQueryable<T> FromSqlRaw(this DbSet<T> source, string sql, params object[] parameters)",
        "IQueryable<T> FromSqlInterpolated(this DbSet<T> source, FormattableString sql)",
        "IQueryable<T> FromSql(this DbSet<T> source, FormattableString sql)",
    ),
    "Microsoft.EntityFrameworkCore.ChangeTracking.EntityEntry": (
        "ReferenceEntry Reference(string propertyName)",
        "CollectionEntry Collection(string propertyName)",
        "void Reload()",
    ),
    "Microsoft.EntityFrameworkCore.ChangeTracking.ReferenceEntry": (
        "void Load()",
        "Task LoadAsync(CancellationToken cancellationToken = default)",
        "IQueryable<object> Query()",
    ),
    "Microsoft.EntityFrameworkCore.ChangeTracking.CollectionEntry": (
        "void Load()",
        "Task LoadAsync(CancellationToken cancellationToken = default)",
        "IQueryable<object> Query()",
    ),
}

_QUOTED_CONTAINERS = frozenset(
    {
        "System.Linq.Queryable",
        "Microsoft.EntityFrameworkCore.EntityFrameworkQueryableExtensions",
    }
)


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested inside angle brackets."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts


def _leaf_names(ref: TypeRef) -> set[str]:
    names = {ref.name}
    for arg in ref.args:
        names |= _leaf_names(arg)
    return names


def _quote(ref: TypeRef) -> TypeRef:
    if ref.name == "System.Func":
        return TypeRef("System.Linq.Expressions.Expression", (ref,))
    return ref


@dataclass(frozen=True)
class _Signature:
    modifiers: tuple[str, ...]
    type_text: str
    name: str
    parameters: str | None


_SIGNATURE = re.compile(r"^(?P<mods>(?:(?:static|const)\s+)*)(?P<type>.+?)\s+(?P<name>\w+)(?:\((?P<params>.*)\))?$")


def _parse_signature(text: str) -> _Signature:
    match = _SIGNATURE.match(text.strip())
    if match is None:
        raise ValueError(f"Malformed signature: {text!r}")
    return _Signature(
        modifiers=tuple(match.group("mods").split()),
        type_text=match.group("type"),
        name=match.group("name"),
        parameters=match.group("params"),
    )


class StandardLibrary:
    """Builds the library symbols. Compiled once per process and shared read-only."""

    @staticmethod
    def symbols() -> tuple[Symbol, ...]:
        return _compile()

    @staticmethod
    def table(extra: tuple[Symbol, ...] | list[Symbol] = ()) -> SymbolTable:
        """Library symbols plus the analyzed unit's own symbols."""
        return SymbolTable((*_compile(), *extra))


@lru_cache(maxsize=1)
def _compile() -> tuple[Symbol, ...]:
    headers: list[tuple[str, str, tuple[str, ...], tuple[str, ...], str]] = []
    short_names: dict[str, str] = {}
    for namespace, header, supertypes, type_kind in _TYPES:
        name, _, params = header.partition("<")
        type_parameters = tuple(p.strip() for p in params.rstrip(">").split(",")) if params else ()
        type_id = f"{namespace}.{name}" if namespace else name
        short_names[name] = type_id
        headers.append((type_id, namespace, type_parameters, supertypes, type_kind))

    def resolve(name: str) -> str:
        return short_names.get(name, name)

    def parse(text: str) -> TypeRef:
        return TypeRef.parse(text, resolve)

    symbols: list[Symbol] = []
    for type_id, namespace, type_parameters, supertypes, type_kind in headers:
        members = _compile_members(type_id, namespace, parse)
        symbols.extend(members)
        parsed = [parse(text) for text in supertypes]
        symbols.append(
            Symbol(
                id=type_id,
                kind=SymbolKind.TYPE,
                name=type_id.rsplit(".", 1)[-1],
                namespace=namespace,
                interfaces=tuple(parsed),
                type_parameters=type_parameters,
                members=tuple(member.id for member in members),
                type_kind=type_kind,
                is_static=type_kind == "static class",
            )
        )
    return tuple(symbols)


def _compile_members(type_id: str, namespace: str, parse: Callable[[str], TypeRef]) -> list[Symbol]:
    texts = list(_MEMBERS.get(type_id, ()))
    if type_id in ("System.Linq.Queryable", "System.Linq.Enumerable"):
        sequence, ordered = (
            ("IQueryable", "IOrderedQueryable") if type_id == "System.Linq.Queryable" else ("IEnumerable", "IOrderedEnumerable")
        )
        texts = [
            re.sub(r"\bO<", f"{ordered}<", re.sub(r"\bS<", f"{sequence}<", text)) for text in _LINQ_OPERATORS
        ] + texts
    container_static = type_id in (
        "System.Linq.Queryable",
        "System.Linq.Enumerable",
        "Microsoft.EntityFrameworkCore.EntityFrameworkQueryableExtensions",
        "Microsoft.EntityFrameworkCore.RelationalQueryableExtensions",
    )
    members: list[Symbol] = []
    seen: dict[str, int] = {}
    for text in texts:
        signature = _parse_signature(text)
        seen[signature.name] = seen.get(signature.name, 0) + 1
        suffix = f"#{seen[signature.name]}" if seen[signature.name] > 1 else ""
        member_id = f"{type_id}.{signature.name}{suffix}"
        member_type = parse(signature.type_text)
        is_static = container_static or "static" in signature.modifiers or "const" in signature.modifiers
        if signature.parameters is None:
            members.append(
                Symbol(
                    id=member_id,
                    kind=SymbolKind.FIELD if "const" in signature.modifiers else SymbolKind.PROPERTY,
                    name=signature.name,
                    namespace=namespace,
                    declared_type=member_type,
                    containing_type=type_id,
                    is_static=is_static,
                )
            )
            continue
        parameters: list[Parameter] = []
        for raw in _split_top_level(signature.parameters):
            has_default = raw.endswith("= default") or raw.startswith("params ")
            raw = raw.removesuffix("= default").strip()
            receiver = raw.startswith("this ")
            raw = raw.removeprefix("this ").removeprefix("params ")
            type_text, _, param_name = raw.rpartition(" ")
            param_type = parse(type_text)
            if type_id in _QUOTED_CONTAINERS:
                param_type = _quote(param_type)
            parameters.append(Parameter(param_name, param_type, receiver, has_default))
        leaves: set[str] = set(_leaf_names(member_type))
        for parameter in parameters:
            leaves |= _leaf_names(parameter.type)
        members.append(
            Symbol(
                id=member_id,
                kind=SymbolKind.METHOD,
                name=signature.name,
                namespace=namespace,
                containing_type=type_id,
                parameters=tuple(parameters),
                return_type=member_type,
                is_static=is_static,
                is_extension=bool(parameters) and parameters[0].is_extension_receiver,
                type_parameters=tuple(sorted(name for name in leaves if _TYPE_PARAMETER.match(name))),
            )
        )
    return members
