"""
Node set model.

A NodeSet is the materialized graph state: an ordered mapping of path to
NodeRecord. Node attributes other than the path are opaque and passed through
unchanged.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional


@dataclass(frozen=True)
class NodeRecord:
    """
    One file node.

    Fields:
        path: Stable key used for diffing
        attrs: Opaque display/position fields
        updated: True if touched by the most recent diff
    """
    path: str
    attrs: Dict[str, Any] = field(default_factory=dict)
    updated: bool = False

    @classmethod
    def from_attrs(cls, attrs: Dict[str, Any], updated: bool = False) -> "NodeRecord":
        data = {k: v for k, v in attrs.items() if k not in ("path", "updated")}
        return cls(path=attrs["path"], attrs=data, updated=updated)

    def with_updated(self, updated: bool) -> "NodeRecord":
        if self.updated == updated:
            return self
        return replace(self, updated=updated)

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.attrs)
        out["path"] = self.path
        out["updated"] = self.updated
        return out


class NodeSet:
    """
    Ordered path -> NodeRecord mapping.

    Mutating operations are used by the reducer on a private copy; callers
    holding a NodeSet handed out by the engine should treat it as read-only.
    """

    def __init__(self, nodes: Optional[Iterable[NodeRecord]] = None) -> None:
        self._nodes: Dict[str, NodeRecord] = {}
        for node in nodes or ():
            self._nodes[node.path] = node

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[NodeRecord]:
        return iter(list(self._nodes.values()))

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeSet):
            return NotImplemented
        return list(self._nodes.items()) == list(other._nodes.items())

    def __repr__(self) -> str:
        return f"NodeSet({list(self._nodes.values())!r})"

    def get(self, path: str) -> Optional[NodeRecord]:
        return self._nodes.get(path)

    def paths(self) -> List[str]:
        return list(self._nodes.keys())

    def copy(self) -> "NodeSet":
        return NodeSet(self._nodes.values())

    def remove(self, path: str) -> bool:
        """Remove a node; returns False if the path was not present."""
        return self._nodes.pop(path, None) is not None

    def upsert(self, node: NodeRecord) -> None:
        """Insert or overwrite the node stored under node.path."""
        self._nodes[node.path] = node

    def mark_updated(self, paths: Iterable[str]) -> None:
        """Set updated on nodes in paths and clear it on every other node."""
        marked = set(paths)
        for path, node in list(self._nodes.items()):
            self._nodes[path] = node.with_updated(path in marked)

    def sort_by_path(self) -> None:
        """Reorder nodes by path, case-insensitive ascending."""
        ordered = sorted(self._nodes.values(), key=lambda n: (n.path.lower(), n.path))
        self._nodes = {n.path: n for n in ordered}

    def to_list(self) -> List[Dict[str, Any]]:
        return [n.to_dict() for n in self._nodes.values()]
