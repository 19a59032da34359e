"""Tree walker: visits every command and collects the selected ones."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from clickmcp.bridge.selection import SelectionRule, flag_exposed, select
from clickmcp.bridge.tree import CommandNode, FlagSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectedNode:
    """A command chosen for exposure, with the flags its tool carries."""

    node: CommandNode
    flags: Tuple[FlagSpec, ...]
    rule_index: Optional[int] = None


def iter_tree(root: CommandNode) -> Iterator[CommandNode]:
    """Pre-order traversal, children in declaration order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children()))


def walk(root: CommandNode, rules: Sequence[SelectionRule]) -> List[SelectedNode]:
    """
    Evaluate ``rules`` against every node under ``root``.

    A node that is excluded does not prune its subtree: a denied or
    non-runnable group can still have selected descendants. Each selected
    node keeps all of its exposed local flags followed by the inherited
    flags its matching rule retains.
    """
    selected: List[SelectedNode] = []
    for node in iter_tree(root):
        selection = select(node, rules)
        if not selection.included:
            logger.debug("Skipping %r: %s", node.path, selection.reason)
            continue
        local = [f for f in node.local_flags() if flag_exposed(f)]
        inherited = [
            f for f in node.inherited_flags()
            if flag_exposed(f) and f.name in selection.allowed_inherited
        ]
        selected.append(SelectedNode(node, tuple(local + inherited), selection.rule_index))
    logger.debug("Selected %d commands under %r", len(selected), root.path)
    return selected
