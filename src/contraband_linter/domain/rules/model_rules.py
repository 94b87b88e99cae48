"""Entity model checks driven by the DbSet properties of a context.

LC011 entity-missing-primary-key, LC027 missing-explicit-foreign-key.
"""

import dataclasses
import re

from contraband_linter.domain import syntax as sx
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.rules import BaseRule, Diagnostic, Severity
from contraband_linter.domain.symbols import Accessibility, Symbol, SymbolKind, TypeRef
from contraband_linter.domain.syntax import Kind
from contraband_linter.domain.tree import Node, Tree
from contraband_linter.domain.types import (
    is_array,
    is_collection,
    is_db_context,
    is_db_set,
    key_property,
    mapped_entity_types,
)

MODEL_CONFIGURATION_METHOD = "OnModelCreating"
_NAMEOF = re.compile(r"^nameof\((?:\w+\.)*(\w+)\)$")


def _declare_property(tree: Tree, owner: Symbol, name: str, type_name: str) -> tuple[sx.Syntax, tuple[Symbol, ...]]:
    """Syntax for `public {type_name} {name} { get; set; }` plus the symbols it adds."""
    member = Symbol(
        id=f"{owner.id}.{name}",
        kind=SymbolKind.PROPERTY,
        name=name,
        namespace=owner.namespace,
        declared_type=tree.symbols.parse_type(type_name),
        containing_type=owner.id,
        is_source=True,
    )
    updated_owner = dataclasses.replace(owner, members=(member.id, *owner.members))
    return sx.property_declaration(name, type_name, symbol=member.id), (member, updated_owner)


class EntityMissingPrimaryKeyRule(BaseRule):
    """LC011: an entity mapped by a DbSet with no discoverable primary key.

    Keys are found by convention (Id, {Type}Id), by [Key] / [PrimaryKey], by
    the [Keyless] opt-out, and by a textual scan of OnModelCreating for
    `Entity<T>()` together with `HasKey`. The scan is a heuristic: it reads
    comments too and misses configuration kept outside the context.
    """

    code: str = "LC011"
    symbol: str = "entity-missing-primary-key"
    description: str = "Entities need a primary key unless marked [Keyless]."
    message: str = (
        "Entity '{0}' does not have a primary key defined by convention (Id, {0}Id), "
        "attributes ([Key], [PrimaryKey]), or [Keyless] opt-out"
    )
    severity: Severity = Severity.WARN
    kinds: frozenset[Kind] = frozenset({Kind.PROPERTY})
    fix_title: str = "Add 'Id' property to entity"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        entity = self._keyless_entity(tree, node)
        if entity is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(entity.name,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        entity = self._keyless_entity(tree, tree.node(diagnostic.node))
        if entity is None:
            return []
        declaration = tree.declaration_of(entity.id)
        if declaration is None or declaration.kind is not Kind.CLASS:
            return []
        identity, declares = _declare_property(tree, entity, "Id", "int")
        members = tree.children(declaration)
        if members:
            edit = RewriteEdit.insert_before(
                members[0].index, lambda anchor, name: identity, self.fix_title, declares=declares
            )
        else:
            edit = RewriteEdit.replace(
                declaration.index,
                lambda original, name: original.with_children((identity,)),
                self.fix_title,
                declares=declares,
            )
        return [edit.merged_as(f"{self.code}:{entity.id}")]

    def _keyless_entity(self, tree: Tree, node: Node) -> Symbol | None:
        """The entity type behind a context's DbSet property, when it has no key."""
        declared = tree.type_of(node)
        if not is_db_set(tree.symbols, declared) or declared is None or not declared.args:
            return None
        holder = tree.parent(node)
        if holder is None or holder.kind is not Kind.CLASS or not is_db_context(tree.symbols, holder.symbol):
            return None
        entity = tree.symbols.type_symbol(declared.args[0])
        if entity is None:
            return None
        if entity.has_attribute("Keyless", "PrimaryKey"):
            return None
        if key_property(tree.symbols, entity.id) is not None:
            return None
        if self._configures_key(tree, holder, entity.name):
            return None
        return entity

    def _configures_key(self, tree: Tree, context: Node, entity_name: str) -> bool:
        pattern = re.compile(rf"\bEntity\s*<\s*{re.escape(entity_name)}\s*>")
        for member in tree.children(context):
            if member.kind is Kind.METHOD and member.name == MODEL_CONFIGURATION_METHOD:
                text = tree.text(member)
                if pattern.search(text) and "HasKey" in text:
                    return True
        return False


def _attribute_target(raw: str) -> str:
    """'"Owner"' or 'nameof(Order.Owner)' -> 'Owner'."""
    raw = raw.strip()
    found = _NAMEOF.match(raw)
    if found is not None:
        return found.group(1)
    return raw.strip('"')


class MissingExplicitForeignKeyRule(BaseRule):
    """LC027: a reference navigation with no foreign key property beside it."""

    code: str = "LC027"
    symbol: str = "missing-explicit-foreign-key"
    description: str = "Declare foreign key properties next to reference navigations."
    message: str = (
        "Navigation property '{0}' has no explicit foreign key property. "
        "Consider adding '{0}Id' for better performance and API ergonomics."
    )
    severity: Severity = Severity.INFO
    kinds: frozenset[Kind] = frozenset({Kind.PROPERTY})
    fix_title: str = "Add foreign key property"

    def check(self, node: Node, tree: Tree) -> list[Diagnostic]:
        if self._navigation(tree, node) is None:
            return []
        return [Diagnostic.from_node(rule=self, node=node, tree=tree, message_args=(node.name,))]

    def fix(self, diagnostic: Diagnostic, tree: Tree) -> list[RewriteEdit]:
        navigation = tree.node(diagnostic.node)
        found = self._navigation(tree, navigation)
        if found is None:
            return []
        owner, target = found
        key = key_property(tree.symbols, target.name)
        key_type = key.declared_type.display() if key is not None and key.declared_type is not None else "int"
        foreign_key, declares = _declare_property(tree, owner, f"{navigation.name}Id", key_type)
        return [
            RewriteEdit.insert_before(
                navigation.index, lambda anchor, name: foreign_key, self.fix_title, declares=declares
            )
        ]

    def _navigation(self, tree: Tree, node: Node) -> tuple[Symbol, TypeRef] | None:
        """(declaring entity, navigation target) for an unpaired reference navigation."""
        prop = tree.symbol_of(node)
        holder = tree.parent(node)
        owner = tree.symbol_of(holder)
        if prop is None or owner is None or prop.accessibility is not Accessibility.PUBLIC:
            return None
        target = prop.declared_type
        if target is None or is_array(target) or is_collection(tree.symbols, target):
            return None
        entities = mapped_entity_types(tree.symbols)
        if owner.id not in entities or target.name not in entities:
            return None
        if prop.has_attribute("ForeignKey"):
            return None
        candidates = {f"{prop.name}Id".lower(), f"{target.short_name}Id".lower()}
        for member in tree.symbols.members_of(owner.id):
            if member.kind is not SymbolKind.PROPERTY:
                continue
            if member.name.lower() in candidates:
                return None
            pointer = member.attribute("ForeignKey")
            if pointer is not None and pointer.args and _attribute_target(pointer.args[0]) == prop.name:
                return None
        return owner, target
