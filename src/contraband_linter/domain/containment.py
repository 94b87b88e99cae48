"""Lexical containment: loops and async contexts around a node."""

from contraband_linter.domain.syntax import FUNCTION_KINDS, LOOP_KINDS, Kind
from contraband_linter.domain.tree import Node, Tree


def enclosing_loop(tree: Tree, node: Node) -> Node | None:
    """Nearest loop ancestor, or None once a function boundary is reached."""
    for ancestor in tree.ancestors(node):
        if ancestor.kind in LOOP_KINDS:
            return ancestor
        if ancestor.kind in FUNCTION_KINDS:
            return None
    return None


def is_inside_loop(tree: Tree, node: Node) -> bool:
    return enclosing_loop(tree, node) is not None


def repeats_within(tree: Tree, loop: Node, node: Node) -> bool:
    """False when node sits in a part of loop evaluated only once.

    A foreach collection and a for initializer run before the first iteration.
    """
    if loop.kind in (Kind.FOREACH, Kind.FOREACH_ASYNC, Kind.FOR):
        once = tree.child(loop, 0)
        if once is not None and (once.index == node.index or tree.is_ancestor(once, node)):
            return False
    return True


def enclosing_iteration(tree: Tree, node: Node) -> Node | None:
    """Nearest loop whose body re-evaluates node on every iteration."""
    loop = enclosing_loop(tree, node)
    while loop is not None and not repeats_within(tree, loop, node):
        loop = enclosing_loop(tree, loop)
    return loop


def is_in_async_context(tree: Tree, node: Node) -> bool:
    """True if the nearest enclosing function, lambda or local function is async.

    An ordinary lambda inside an async method is a synchronous context.
    """
    for ancestor in tree.ancestors(node):
        if ancestor.kind in FUNCTION_KINDS:
            return ancestor.syntax.has_modifier("async")
    return False
