"""Structural rewrite engine: applies a batch of RewriteEdits to a Tree."""

import dataclasses
import logging
from collections import defaultdict

from contraband_linter.domain.entities import EditType, NameRequest, RewriteEdit
from contraband_linter.domain.errors import RewriteConflict
from contraband_linter.domain.naming import names_in_scope, unique_name
from contraband_linter.domain.protocols import RewriteGatewayProtocol
from contraband_linter.domain.symbols import Symbol, SymbolKind
from contraband_linter.domain.syntax import Syntax
from contraband_linter.domain.tree import Node, Tree

logger = logging.getLogger(__name__)


class TreeRewriteGateway(RewriteGatewayProtocol):
    """
    Gateway for applying edits as one atomic tree transformation.

    A replace or remove occupies its target's whole subtree. An insertion
    occupies the zero-width point before or after its anchor and only
    conflicts with an edit whose subtree strictly contains that point. When
    any two edits conflict nothing is applied and RewriteConflict is raised;
    callers re-diagnose after applying a non-conflicting subset.
    """

    def apply(self, edits: list[RewriteEdit], tree: Tree) -> Tree:
        batch = self._deduplicate(edits)
        if not batch:
            return tree
        for edit in batch:
            self._validate(edit, tree)
        conflict = self.find_conflict(batch, tree)
        if conflict is not None:
            raise RewriteConflict(*conflict)
        names = self._resolve_names(batch, tree)
        replacements: dict[int, RewriteEdit] = {}
        before: dict[int, list[RewriteEdit]] = defaultdict(list)
        after: dict[int, list[RewriteEdit]] = defaultdict(list)
        for edit in batch:
            if edit.edit_type is EditType.INSERT_BEFORE:
                before[edit.target].append(edit)
            elif edit.edit_type is EditType.INSERT_AFTER:
                after[edit.target].append(edit)
            else:
                replacements[edit.target] = edit
        touched: set[int] = set()
        for target in {edit.target for edit in batch}:
            node = tree.node(target)
            touched.add(target)
            touched.update(ancestor.index for ancestor in tree.ancestors(node))

        def name_for(edit: RewriteEdit) -> str | None:
            return names.get(edit.name_request.resolved_key) if edit.name_request is not None else None

        def rebuild(node: Node) -> list[Syntax]:
            """The syntax sequence that takes node's place in its parent."""
            if node.index not in touched:
                return [node.syntax]
            core: list[Syntax]
            edit = replacements.get(node.index)
            if edit is None:
                children: list[Syntax] = []
                for child in tree.children(node):
                    children.extend(rebuild(child))
                core = [node.syntax.with_children(children)]
            elif edit.edit_type is EditType.REMOVE:
                core = []
            else:
                original = node.syntax
                built = edit.build(dataclasses.replace(original, leading="", trailing=""), name_for(edit))
                core = [built.with_trivia(original.leading + built.leading, built.trailing + original.trailing)]
            inserted_before = [insert.build(node.syntax, name_for(insert)) for insert in before.get(node.index, ())]
            inserted_after = [insert.build(node.syntax, name_for(insert)) for insert in after.get(node.index, ())]
            return [*inserted_before, *core, *inserted_after]

        new_root = rebuild(tree.root)
        if len(new_root) != 1:
            raise ValueError("An edit removed or duplicated the root node.")
        symbols = tree.symbols.with_symbols(self._declared_symbols(batch)) if any(e.declares for e in batch) else tree.symbols
        logger.debug("Applied %d edits to %s", len(batch), tree.path)
        return Tree(new_root[0], symbols, tree.path)

    def find_conflict(self, edits: list[RewriteEdit], tree: Tree) -> tuple[RewriteEdit, RewriteEdit] | None:
        batch = self._deduplicate(edits)
        ranges = [edit for edit in batch if not edit.is_insertion]
        points = [edit for edit in batch if edit.is_insertion]
        for position, first in enumerate(ranges):
            first_node = tree.node(first.target)
            for second in ranges[position + 1:]:
                second_node = tree.node(second.target)
                if (
                    first.target == second.target
                    or tree.is_ancestor(first_node, second_node)
                    or tree.is_ancestor(second_node, first_node)
                ):
                    return first, second
        for point in points:
            anchor = tree.node(point.target)
            for edit in ranges:
                if tree.is_ancestor(tree.node(edit.target), anchor):
                    return edit, point
        return None

    # -- helpers ---------------------------------------------------------------

    def _deduplicate(self, edits: list[RewriteEdit]) -> list[RewriteEdit]:
        """Drop repeats of a merge key and exact duplicates, keeping first occurrence order."""
        seen_keys: set[str] = set()
        batch: list[RewriteEdit] = []
        for edit in edits:
            if edit.merge_key:
                if edit.merge_key in seen_keys:
                    continue
                seen_keys.add(edit.merge_key)
            if edit in batch:
                continue
            batch.append(edit)
        return batch

    def _validate(self, edit: RewriteEdit, tree: Tree) -> None:
        if not 0 <= edit.target < len(tree):
            raise ValueError(f"Edit '{edit.title}' targets unknown node {edit.target}.")
        if edit.target == tree.root.index and edit.edit_type is not EditType.REPLACE:
            raise ValueError(f"Edit '{edit.title}' cannot {edit.edit_type.value} the root node.")

    def _resolve_names(self, batch: list[RewriteEdit], tree: Tree) -> dict[str, str]:
        """One fresh name per request key, unique in its scope and across the batch."""
        names: dict[str, str] = {}
        handed_out: dict[int, set[str]] = defaultdict(set)
        for edit in batch:
            request: NameRequest | None = edit.name_request
            if request is None or request.resolved_key in names:
                continue
            used = names_in_scope(tree, tree.node(request.scope)) | set(request.reserved) | handed_out[request.scope]
            name = unique_name(request.base, used)
            names[request.resolved_key] = name
            handed_out[request.scope].add(name)
        return names

    def _declared_symbols(self, batch: list[RewriteEdit]) -> list[Symbol]:
        """Symbols added by the batch; type symbols declared twice keep every member."""
        merged: dict[str, Symbol] = {}
        for edit in batch:
            for symbol in edit.declares:
                previous = merged.get(symbol.id)
                if previous is not None and symbol.kind is SymbolKind.TYPE:
                    members = tuple(dict.fromkeys((*previous.members, *symbol.members)))
                    symbol = dataclasses.replace(symbol, members=members)
                merged[symbol.id] = symbol
        return list(merged.values())
