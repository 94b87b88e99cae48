"""Edit shapes shared by several fixers."""

import dataclasses

from contraband_linter.domain.chain import invocation_receiver
from contraband_linter.domain.entities import RewriteEdit
from contraband_linter.domain.syntax import Syntax
from contraband_linter.domain.tree import Node, Tree


def bare(syntax: Syntax) -> Syntax:
    """Copy of syntax without its own trivia, for reuse inside a new node."""
    return dataclasses.replace(syntax, leading="", trailing="")


def replace_with_receiver(tree: Tree, call: Node, title: str, merge_key: str = "") -> list[RewriteEdit]:
    """Drop call from its chain: `a.B().C()` with B removed becomes `a.C()`."""
    receiver = invocation_receiver(tree, call)
    if receiver is None:
        return []
    edit = RewriteEdit.replace_with(call.index, bare(receiver.syntax), title)
    return [edit.merged_as(merge_key) if merge_key else edit]
