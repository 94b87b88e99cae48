"""DbContext lifetime mistakes.

LC013 disposed-context-query, LC030 db-context-in-singleton.
"""

import dataclasses

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.chain import chain_root, references_to, unwrap_conversions
from contraband_linter.domain.entities import NameRequest, RewriteEdit
from contraband_linter.domain.naming import local_name_base
from contraband_linter.domain.rules import BaseRule, Checkable, Diagnostic, Severity
from contraband_linter.domain.rules.edits import bare
from contraband_linter.domain.symbols import Symbol, SymbolKind, TypeRef
from contraband_linter.domain.syntax import Kind, Syntax
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import DB_CONTEXT_FACTORY, EF_NAMESPACE, is_db_context, is_deferred

DEFAULT_SCOPED_HOST_SUFFIXES = ("Controller", "ViewComponent", "PageModel")
CREATE_DB_CONTEXT = f"{DB_CONTEXT_FACTORY}.CreateDbContext"


def _is_scope_bound(tree: Tree, declaration: Node | None) -> bool:
    """True for `using var x = ...;` and `using (var x = ...)` declarators."""
    if declaration is None or declaration.kind is not Kind.DECLARATOR:
        return False
    holder = tree.parent(declaration)
    if holder is None:
        return False
    if holder.kind is Kind.VARIABLE_DECL:
        return holder.syntax.has_modifier("using")
    return holder.kind is Kind.USING_STATEMENT and holder.children[0] == declaration.index


class DisposedContextQueryRule(Checkable):
    """LC013: returning a deferred query over a context the method disposes."""

    code: str = "LC013"
    symbol: str = "disposed-context-query"
    description: str = "Materialize queries before their DbContext is disposed."
    message: str = (
        "The query is built from DbContext '{0}' which is disposed before enumeration. "
        "Materialize before returning."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.RETURN})

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        returned = tree.child(node, 0)
        if returned is None or not is_deferred(tree.symbols, tree.type_of(returned)):
            return []
        root = unwrap_conversions(tree, chain_root(tree, returned))
        if root is None or root.kind is not Kind.IDENTIFIER:
            return []
        local = tree.symbol_of(root)
        if local is None or local.kind is not SymbolKind.LOCAL:
            return []
        declaration = tree.declaration_of(local.id)
        if not _is_scope_bound(tree, declaration):
            return []
        return [
            Diagnostic.from_node(
                rule=self,
                node=returned,
                tree=tree,
                message_args=(local.name,),
                secondary=(declaration,) if declaration is not None else (),
            )
        ]


def _factory_name(name: str) -> str:
    return name if name.endswith("Factory") else f"{name}Factory"


def _rebuild(tree: Tree, node: Node, replacements: dict[int, Syntax]) -> Syntax:
    """node's syntax with the given descendants swapped out."""
    if node.index in replacements:
        return replacements[node.index].with_trivia(node.syntax.leading, node.syntax.trailing)
    children = [_rebuild(tree, child, replacements) for child in tree.children(node)]
    return node.syntax.with_children(children)


class DbContextInSingletonRule(BaseRule):
    """LC030: a long-lived service holding a DbContext instead of a factory.

    The fix is a two-phase rename: every reference to the member, the matching
    constructor parameters and their uses are collected from symbol bindings
    first, then emitted as one batch of edits.
    """

    code: str = "LC030"
    symbol: str = "db-context-in-singleton"
    description: str = "Hold IDbContextFactory<T> instead of a DbContext in long-lived services."
    message: str = (
        "The class '{0}' holds a 'DbContext' in field '{1}'. Ensure this class is registered with a Scoped "
        "lifetime, not Singleton, to avoid threading and memory issues."
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.FIELD, Kind.PROPERTY})
    fix_title: str = "Change to IDbContextFactory<T>"

    def __init__(self, scoped_host_suffixes: tuple[str, ...] = DEFAULT_SCOPED_HOST_SUFFIXES) -> None:
        self.scoped_host_suffixes = tuple(scoped_host_suffixes)

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        owner = self._owner(tree, node)
        if owner is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(owner.name, node.name))]

    def _owner(self, tree: Tree, member: Node) -> Symbol | None:
        """The declaring class symbol when the member is a flaggable context holder."""
        if member.syntax.has_modifier("static") or member.syntax.has_modifier("const"):
            return None
        context_type = tree.type_of(member)
        if context_type is None or not is_db_context(tree.symbols, context_type):
            return None
        holder = tree.parent(member)
        owner = tree.symbol_of(holder)
        if holder is None or holder.kind is not Kind.CLASS or owner is None:
            return None
        if is_db_context(tree.symbols, owner.id):
            return None
        for base in tree.symbols.base_chain(owner.id):
            if base.name.endswith(self.scoped_host_suffixes):
                return None
        return owner

    # -- fix -------------------------------------------------------------------

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        member = tree.node(diagnostic.node)
        member_symbol = tree.symbol_of(member)
        context_type = tree.type_of(member)
        holder = tree.parent(member)
        if member_symbol is None or context_type is None or holder is None or holder.kind is not Kind.CLASS:
            return []
        factory_type = TypeRef(DB_CONTEXT_FACTORY, (context_type,))
        factory_text = f"IDbContextFactory<{member.syntax.type_name or context_type.display()}>"
        new_name = _factory_name(member.name) if member.kind is Kind.FIELD else member.name

        edits = [
            RewriteEdit.replace_with(
                member.index,
                dataclasses.replace(bare(member.syntax), type_name=factory_text, name=new_name),
                self.fix_title,
                declares=(dataclasses.replace(member_symbol, name=new_name, declared_type=factory_type),),
            )
        ]
        for constructor in tree.children(holder):
            if constructor.kind is Kind.CONSTRUCTOR:
                edits.extend(
                    self._constructor_edits(tree, constructor, member_symbol, context_type, factory_text, new_name)
                )
        for method in tree.children(holder):
            if method.kind is Kind.METHOD:
                edits.extend(self._method_edits(tree, method, member_symbol, context_type, new_name))
        edits.extend(self._using_directive(tree))
        return edits

    def _constructor_edits(
        self,
        tree: Tree,
        constructor: Node,
        member: Symbol,
        context_type: TypeRef,
        factory_text: str,
        new_name: str,
    ) -> list[RewriteEdit]:
        edits: list[RewriteEdit] = []
        if new_name != member.name:
            for reference in references_to(tree, constructor, member.id):
                edits.append(RewriteEdit.replace_with(reference.index, sx.with_name(bare(reference.syntax), new_name), self.fix_title))
        assigned = self._assigned_parameters(tree, constructor, member.id)
        for parameter in tree.children(constructor)[:-1]:
            symbol = tree.symbol_of(parameter)
            if parameter.kind is not Kind.PARAMETER or symbol is None or symbol.id not in assigned:
                continue
            if tree.type_of(parameter) != context_type:
                continue
            renamed = _factory_name(parameter.name)
            edits.append(
                RewriteEdit.replace_with(
                    parameter.index,
                    dataclasses.replace(bare(parameter.syntax), type_name=factory_text, name=renamed),
                    self.fix_title,
                    declares=(
                        dataclasses.replace(
                            symbol, name=renamed, declared_type=TypeRef(DB_CONTEXT_FACTORY, (context_type,))
                        ),
                    ),
                )
            )
            if renamed != parameter.name:
                for reference in references_to(tree, constructor, symbol.id):
                    edits.append(
                        RewriteEdit.replace_with(reference.index, sx.with_name(bare(reference.syntax), renamed), self.fix_title)
                    )
        return edits

    def _assigned_parameters(self, tree: Tree, constructor: Node, member_id: str) -> set[str]:
        """Ids of constructor parameters stored into the member by `_db = db` or `this._db = db`."""
        assigned: set[str] = set()
        for assignment in tree.descendants(constructor):
            if assignment.kind is not Kind.ASSIGNMENT:
                continue
            target, value = tree.child(assignment, 0), unwrap_conversions(tree, tree.child(assignment, 1))
            if target is not None and target.kind is Kind.MEMBER_ACCESS:
                instance = tree.child(target, 0)
                target = tree.child(target, 1) if instance is not None and instance.kind is Kind.THIS else None
            if target is None or target.symbol != member_id or value is None or value.kind is not Kind.IDENTIFIER:
                continue
            if value.symbol is not None:
                assigned.add(value.symbol)
        return assigned

    def _method_edits(
        self, tree: Tree, method: Node, member: Symbol, context_type: TypeRef, factory_name: str
    ) -> list[RewriteEdit]:
        targets = self._member_uses(tree, method, member.id)
        if not targets:
            return []
        parameters = tuple(node.name for node in tree.children(method)[:-1])
        base = local_name_base(member.name)
        request = NameRequest(base=base, scope=method.index, reserved=parameters, key=f"{self.code}:{member.id}:{method.index}")
        create = sx.call(
            sx.member_access(sx.identifier(factory_name, symbol=member.id), "CreateDbContext", symbol=CREATE_DB_CONTEXT),
            symbol=CREATE_DB_CONTEXT,
            type=context_type,
        )

        def local(name: str | None) -> Syntax:
            return sx.identifier(name or base, type=context_type)

        body = tree.child(method, -1)
        if body is None:
            return []
        if body.kind is Kind.BLOCK:
            first = tree.child(body, 0)
            if first is None:
                return []
            edits = [
                RewriteEdit.insert_before(
                    first.index,
                    lambda anchor, name: sx.variable_declaration(name or base, create, using=True),
                    self.fix_title,
                    name_request=request,
                )
            ]
            for target in targets:
                edits.append(
                    RewriteEdit.replace(target.index, lambda original, name: local(name), self.fix_title, name_request=request)
                )
            return edits

        returns_value = method.syntax.type_name not in ("", "void")

        def expand(original: Syntax, name: str | None) -> Syntax:
            rewritten = _rebuild(tree, body, {target.index: local(name) for target in targets}).with_trivia("", "")
            terminal = sx.return_statement(rewritten) if returns_value else sx.expression_statement(rewritten)
            return sx.block(sx.variable_declaration(name or base, create, using=True), terminal)

        return [RewriteEdit.replace(body.index, expand, self.fix_title, name_request=request)]

    def _member_uses(self, tree: Tree, scope: Node, member_id: str) -> list[Node]:
        """`_db` and `this._db` occurrences; `other._db` is left alone."""
        uses: list[Node] = []
        for reference in references_to(tree, scope, member_id):
            parent = tree.parent(reference)
            if parent is not None and parent.kind is Kind.MEMBER_ACCESS and parent.children[1] == reference.index:
                instance = tree.child(parent, 0)
                if instance is not None and instance.kind is Kind.THIS:
                    uses.append(parent)
                continue
            uses.append(reference)
        return uses

    def _using_directive(self, tree: Tree) -> list[RewriteEdit]:
        root = tree.root
        if root.kind is not Kind.COMPILATION_UNIT:
            return []
        members = tree.children(root)
        directives = [node for node in members if node.kind is Kind.USING_DIRECTIVE]
        if any(node.name == EF_NAMESPACE for node in directives):
            return []
        directive = sx.using_directive(EF_NAMESPACE)
        if directives:
            edit = RewriteEdit.insert_after(directives[-1].index, lambda anchor, name: directive, self.fix_title)
        elif members:
            edit = RewriteEdit.insert_before(members[0].index, lambda anchor, name: directive, self.fix_title)
        else:
            return []
        return [edit.merged_as(f"using:{EF_NAMESPACE}")]
