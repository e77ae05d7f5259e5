"""
Reducer: pure node set transitions.

Both functions return a new NodeSet and never mutate their input, so the same
(previous, payload) pair always produces the same result.
"""

from typing import Any, Dict, Iterable

from .nodes import NodeRecord, NodeSet
from .records import CommitChanges


def apply_full(previous: NodeSet, nodes: Iterable[Dict[str, Any]]) -> NodeSet:
    """
    Replace the node set with a full snapshot.

    previous is discarded entirely. Later duplicates of a path overwrite
    earlier ones; updated is cleared on every node.

    Args:
        previous: Prior node set (ignored)
        nodes: Node attribute mappings, each carrying a path

    Returns:
        New NodeSet in snapshot order
    """
    return NodeSet(NodeRecord.from_attrs(attrs, updated=False) for attrs in nodes)


def apply_diff(previous: NodeSet, diff: CommitChanges) -> NodeSet:
    """
    Apply an incremental diff.

    Order matters:
    1. drop removed paths (unknown paths are ignored)
    2. mark nodes in diff.changed as updated, clear the flag elsewhere
    3. upsert added nodes with updated set; a path also listed in
       diff.removed stays removed
    4. sort by path, case-insensitive

    Args:
        previous: Prior node set
        diff: Decoded commit changes

    Returns:
        New NodeSet
    """
    nodes = previous.copy()
    removed = set(diff.removed)

    for path in removed:
        nodes.remove(path)

    nodes.mark_updated(diff.changed)

    for attrs in diff.added.values():
        if attrs["path"] in removed:
            continue
        nodes.upsert(NodeRecord.from_attrs(attrs, updated=True))

    nodes.sort_by_path()
    return nodes
