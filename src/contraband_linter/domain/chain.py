"""Receiver-chain walking: from a call back to the expression it was invoked on.

``walk_upstream(tree, node)`` yields the start node and then each receiver in
turn. Every step moves to a strict descendant of the current node, so the
walk is bounded by the tree depth and never revisits a node.
"""

from collections.abc import Iterator

from contraband_linter.domain.symbols import Symbol, SymbolKind
from contraband_linter.domain.syntax import FUNCTION_KINDS, Kind
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import MATERIALIZING_COLLECTIONS, is_enumerable

WRAPPER_KINDS = frozenset({Kind.CONVERSION, Kind.PARENTHESIZED, Kind.DELEGATE_CREATION})


def unwrap_conversions(tree: Tree, node: Node | None) -> Node | None:
    """Strip conversion, parenthesis and delegate-creation wrappers."""
    while node is not None and node.kind in WRAPPER_KINDS:
        node = tree.child(node, 0)
    return node


def unwrap_argument(tree: Tree, node: Node | None) -> Node | None:
    if node is not None and node.kind is Kind.ARGUMENT:
        return tree.child(node, 0)
    return node


def is_type_reference(tree: Tree, node: Node | None) -> bool:
    """True for identifiers naming a type or namespace, as in DateTime.Now."""
    symbol = tree.symbol_of(node)
    return symbol is not None and symbol.kind in (SymbolKind.TYPE, SymbolKind.NAMESPACE)


def target_method(tree: Tree, call: Node) -> Symbol | None:
    symbol = tree.symbol_of(call)
    if symbol is None or symbol.kind is not SymbolKind.METHOD:
        return None
    return symbol


def method_name(tree: Tree, call: Node) -> str:
    """The invoked name as written, whether or not it resolved."""
    if call.kind is not Kind.CALL:
        return ""
    callee = tree.child(call, 0)
    if callee is None:
        return ""
    if callee.kind is Kind.MEMBER_ACCESS:
        name = tree.child(callee, 1)
        return name.name if name is not None else ""
    return callee.name


def name_node(tree: Tree, call: Node) -> Node:
    """The node holding the method name; diagnostics about the name point here."""
    callee = tree.child(call, 0)
    if callee is not None and callee.kind is Kind.MEMBER_ACCESS:
        name = tree.child(callee, 1)
        if name is not None:
            return name
    return callee if callee is not None else call


def _syntactic_instance(tree: Tree, call: Node) -> Node | None:
    callee = tree.child(call, 0)
    if callee is None or callee.kind is not Kind.MEMBER_ACCESS:
        return None
    instance = tree.child(callee, 0)
    if is_type_reference(tree, instance):
        return None
    return instance


def explicit_arguments(tree: Tree, call: Node) -> list[Node]:
    """Arguments as written between the parentheses (named arguments unwrapped)."""
    if call.kind is Kind.OBJECT_CREATION:
        nodes = tree.children(call)
    else:
        nodes = tree.children(call)[1:]
    return [unwrap_argument(tree, node) for node in nodes]


def semantic_arguments(tree: Tree, call: Node) -> list[Node]:
    """Arguments in parameter order: a reduced extension call's receiver comes first."""
    arguments = explicit_arguments(tree, call)
    method = target_method(tree, call)
    if method is not None and method.is_extension:
        instance = _syntactic_instance(tree, call)
        if instance is not None:
            return [instance, *arguments]
    return arguments


def bind_arguments(tree: Tree, call: Node) -> dict[str, Node]:
    """Map parameter names to argument nodes; omitted optional parameters are absent."""
    method = target_method(tree, call)
    if method is None:
        return {}
    bound: dict[str, Node] = {}
    positional: list[Node] = []
    raw = tree.children(call)[1:]
    instance = _syntactic_instance(tree, call) if method.is_extension else None
    if instance is not None:
        positional.append(instance)
    for node in raw:
        if node.kind is Kind.ARGUMENT:
            value = tree.child(node, 0)
            if value is not None:
                bound[node.name] = value
        else:
            positional.append(node)
    for parameter, node in zip(method.parameters, positional):
        bound.setdefault(parameter.name, node)
    return bound


def invocation_receiver(tree: Tree, call: Node) -> Node | None:
    """The receiver of a call: first argument for extensions, else the bound instance."""
    method = target_method(tree, call)
    if method is not None and method.is_extension:
        arguments = semantic_arguments(tree, call)
        return arguments[0] if arguments else None
    if method is not None and method.is_static:
        return None
    return _syntactic_instance(tree, call)


def _materializing_constructor_source(tree: Tree, node: Node) -> Node | None:
    if node.type is None or node.type.name not in MATERIALIZING_COLLECTIONS:
        return None
    arguments = explicit_arguments(tree, node)
    if not arguments:
        return None
    if not is_enumerable(tree.symbols, tree.type_of(unwrap_conversions(tree, arguments[0]))):
        return None
    return arguments[0]


def upstream_step(tree: Tree, node: Node) -> Node | None:
    """One receiver step, or None when node is the root of its chain."""
    if node.kind in WRAPPER_KINDS:
        return tree.child(node, 0)
    if node.kind is Kind.CALL:
        return invocation_receiver(tree, node)
    if node.kind is Kind.MEMBER_ACCESS:
        instance = tree.child(node, 0)
        symbol = tree.symbol_of(node)
        if is_type_reference(tree, instance) or (symbol is not None and symbol.is_static):
            return None
        return instance
    if node.kind is Kind.OBJECT_CREATION:
        return _materializing_constructor_source(tree, node)
    return None


def walk_upstream(tree: Tree, node: Node) -> Iterator[Node]:
    """Yield node, then each receiver until the chain root."""
    current: Node | None = node
    while current is not None:
        yield current
        current = upstream_step(tree, current)


def chain_root(tree: Tree, node: Node) -> Node:
    root = node
    for root in walk_upstream(tree, node):
        pass
    return root


def upstream_calls(tree: Tree, node: Node) -> Iterator[Node]:
    """Calls strictly upstream of node, nearest first."""
    walk = walk_upstream(tree, node)
    next(walk)
    return (step for step in walk if step.kind is Kind.CALL)


def receiver_call(tree: Tree, call: Node) -> Node | None:
    """The call this call was invoked on, looking through conversions."""
    receiver = unwrap_conversions(tree, invocation_receiver(tree, call))
    if receiver is not None and receiver.kind is Kind.CALL:
        return receiver
    return None


def enclosing_lambda(tree: Tree, node: Node) -> Node | None:
    """Nearest lambda around node, without crossing a method or local function."""
    for ancestor in tree.ancestors(node):
        if ancestor.kind is Kind.LAMBDA:
            return ancestor
        if ancestor.kind in FUNCTION_KINDS:
            return None
    return None


def lambda_invocation(tree: Tree, lambda_node: Node) -> Node | None:
    """The call a lambda is passed to as an argument."""
    current = lambda_node
    parent = tree.parent(current)
    while parent is not None and (parent.kind in WRAPPER_KINDS or parent.kind is Kind.ARGUMENT):
        current = parent
        parent = tree.parent(current)
    if parent is None or parent.kind is not Kind.CALL or parent.children[0] == current.index:
        return None
    return parent


def lambda_arguments(tree: Tree, call: Node) -> list[Node]:
    """Lambda nodes passed to call, wrappers removed."""
    lambdas: list[Node] = []
    for argument in explicit_arguments(tree, call):
        unwrapped = unwrap_conversions(tree, argument)
        if unwrapped is not None and unwrapped.kind is Kind.LAMBDA:
            lambdas.append(unwrapped)
    return lambdas


def lambda_body(tree: Tree, lambda_node: Node) -> Node | None:
    """The returned expression: the body itself, or a block's single return value."""
    body = tree.child(lambda_node, -1)
    if body is not None and body.kind is Kind.BLOCK:
        statements = tree.children(body)
        if len(statements) == 1 and statements[0].kind is Kind.RETURN:
            return tree.child(statements[0], 0)
        return None
    return body


def lambda_parameters(tree: Tree, lambda_node: Node) -> list[Node]:
    return tree.children(lambda_node)[:-1]


def query_lambda_call(tree: Tree, node: Node) -> Node | None:
    """The call whose lambda argument lexically contains node."""
    lambda_node = enclosing_lambda(tree, node)
    if lambda_node is None:
        return None
    return lambda_invocation(tree, lambda_node)


def enclosing_function(tree: Tree, node: Node) -> Node | None:
    for ancestor in tree.ancestors(node):
        if ancestor.kind in FUNCTION_KINDS:
            return ancestor
    return None


def enclosing_member(tree: Tree, node: Node) -> Node | None:
    """Nearest method or constructor (lambdas and local functions are crossed)."""
    for ancestor in tree.ancestors(node):
        if ancestor.kind in (Kind.METHOD, Kind.CONSTRUCTOR):
            return ancestor
    return None


def enclosing_statement(tree: Tree, node: Node) -> Node | None:
    """Nearest ancestor-or-self whose parent is a block."""
    current: Node | None = node
    while current is not None:
        parent = tree.parent(current)
        if parent is not None and parent.kind is Kind.BLOCK:
            return current
        current = parent
    return None


def references_to(tree: Tree, scope: Node, symbol_id: str) -> list[Node]:
    """Identifiers bound to symbol_id inside scope."""
    return [
        node
        for node in tree.descendants(scope)
        if node.kind is Kind.IDENTIFIER and node.symbol == symbol_id
    ]


def consumer_call(tree: Tree, node: Node) -> Node | None:
    """The call that takes node as its receiver, if any."""
    current = node
    parent = tree.parent(current)
    while parent is not None and parent.kind in WRAPPER_KINDS:
        current = parent
        parent = tree.parent(current)
    if parent is None:
        return None
    if parent.kind is Kind.MEMBER_ACCESS and parent.children[0] == current.index:
        parent = tree.parent(parent)
    elif parent.kind is Kind.ARGUMENT:
        parent = tree.parent(parent)
    if parent is None or parent.kind is not Kind.CALL:
        return None
    receiver = unwrap_conversions(tree, invocation_receiver(tree, parent))
    if receiver is None or receiver.index != node.index:
        return None
    return parent


def downstream_calls(tree: Tree, node: Node) -> Iterator[Node]:
    """Calls chained onto node, nearest first."""
    consumer = consumer_call(tree, node)
    while consumer is not None:
        yield consumer
        consumer = consumer_call(tree, consumer)
