"""Operator name tables shared by the rules."""


def _with_async(*names: str) -> frozenset[str]:
    return frozenset(names) | frozenset(f"{name}Async" for name in names)


MATERIALIZERS = frozenset(
    {
        "AsEnumerable",
        "ToLookup",
        "ToImmutableArray",
        "ToImmutableList",
        "ToImmutableDictionary",
        "ToImmutableHashSet",
        "ToImmutableSortedSet",
        "ToImmutableSortedDictionary",
    }
) | _with_async("ToList", "ToArray", "ToDictionary", "ToHashSet")

COLLECTION_MATERIALIZERS = _with_async("ToList", "ToArray", "ToDictionary", "ToHashSet")
"""Materializers producing an in-memory collection (not AsEnumerable)."""

BACK_TO_BACK_MATERIALIZERS = COLLECTION_MATERIALIZERS | {"AsEnumerable"}

ELEMENT_OPERATORS = _with_async("First", "FirstOrDefault", "Single", "SingleOrDefault", "Last", "LastOrDefault")

AGGREGATES = _with_async("Count", "LongCount", "Any", "All", "Sum", "Average", "Min", "Max")

EXECUTING = MATERIALIZERS | ELEMENT_OPERATORS | AGGREGATES | _with_async("ElementAt", "Contains")
"""Calls that run a query when invoked on an IQueryable."""

BOUNDING = _with_async("Take", "TakeWhile", "Find") | ELEMENT_OPERATORS

SERVER_AGGREGATES = AGGREGATES | _with_async("ExecuteDelete", "ExecuteUpdate")

PRIMARY_SORTS = frozenset({"OrderBy", "OrderByDescending"})
REFINING_SORTS = frozenset({"ThenBy", "ThenByDescending"})
SORTS = PRIMARY_SORTS | REFINING_SORTS

PAGINATION = frozenset({"Skip", "Take", "Last", "LastOrDefault", "Chunk"})
SKIP_TAKE = frozenset({"Skip", "Take"})

KEY_LOOKUP_SCANS = ELEMENT_OPERATORS - _with_async("Last", "LastOrDefault")

GROUP_AGGREGATES = AGGREGATES - _with_async("Any", "All")
"""Aggregates a grouping projection may apply to the group (Count, Sum, Average, Min, Max)."""

NO_TRACKING = frozenset({"AsNoTracking", "AsNoTrackingWithIdentityResolution"})

PERSIST = _with_async("SaveChanges")

TRACKED_MUTATIONS = frozenset({"Update", "UpdateRange", "Remove", "RemoveRange"})

CASE_CONVERSIONS = frozenset({"ToLower", "ToUpper", "ToLowerInvariant", "ToUpperInvariant"})

STRING_MATCHERS = frozenset({"Contains", "StartsWith", "EndsWith"})

SYNC_TO_ASYNC: dict[str, str] = {
    "ToList": "ToListAsync",
    "ToArray": "ToArrayAsync",
    "ToDictionary": "ToDictionaryAsync",
    "ToHashSet": "ToHashSetAsync",
    "First": "FirstAsync",
    "FirstOrDefault": "FirstOrDefaultAsync",
    "Single": "SingleAsync",
    "SingleOrDefault": "SingleOrDefaultAsync",
    "Last": "LastAsync",
    "LastOrDefault": "LastOrDefaultAsync",
    "Count": "CountAsync",
    "LongCount": "LongCountAsync",
    "Any": "AnyAsync",
    "All": "AllAsync",
    "Min": "MinAsync",
    "Max": "MaxAsync",
    "Sum": "SumAsync",
    "Average": "AverageAsync",
    "SaveChanges": "SaveChangesAsync",
    "Find": "FindAsync",
    "ExecuteUpdate": "ExecuteUpdateAsync",
    "ExecuteDelete": "ExecuteDeleteAsync",
}
