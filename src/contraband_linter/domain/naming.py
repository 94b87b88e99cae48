"""Fresh identifier synthesis for rewrites that introduce bindings."""

from collections.abc import Iterable

from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree

_NAMING_KINDS = frozenset(
    {
        Kind.IDENTIFIER,
        Kind.DECLARATOR,
        Kind.PARAMETER,
        Kind.FOREACH,
        Kind.FOREACH_ASYNC,
        Kind.LOCAL_FUNCTION,
        Kind.CATCH,
    }
)


def unique_name(base: str, used: Iterable[str]) -> str:
    """First of base, base1, base2, ... that is not in used."""
    taken = set(used)
    if base not in taken:
        return base
    suffix = 1
    while f"{base}{suffix}" in taken:
        suffix += 1
    return f"{base}{suffix}"


def names_in_scope(tree: Tree, scope: Node) -> set[str]:
    """Identifiers declared or referenced anywhere inside scope."""
    names = {scope.name} if scope.kind in _NAMING_KINDS and scope.name else set()
    for node in tree.descendants(scope):
        if node.kind in _NAMING_KINDS and node.name:
            names.add(node.name)
    return names


def local_name_base(member_name: str, suffix: str = "Factory", default: str = "db") -> str:
    """Derive a local name from a member: '_dbFactory' -> 'db', 'ContextFactory' -> 'context'."""
    base = member_name.lstrip("_")
    if base.endswith(suffix) and len(base) > len(suffix):
        base = base[: -len(suffix)]
    if not base:
        return default
    return base[0].lower() + base[1:]
