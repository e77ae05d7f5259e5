"""
Commit record model.

A CommitRecord is one unit of history read from a commit store. Its graph
payload (edges, full node list, diff) is kept raw and decoded lazily by
payload(), so a corrupt field only affects the commit that carries it.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import MalformedPayload


@dataclass(frozen=True)
class CommitChanges:
    """
    Incremental diff against the previous node set.

    Fields:
        added: node id -> node attributes for new nodes
        changed: paths of nodes modified by the commit
        removed: paths of nodes deleted by the commit
    """
    added: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    changed: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CommitPayload:
    """Decoded graph payload of a commit."""
    edges: List[Any]
    nodes_full: Optional[List[Dict[str, Any]]] = None
    changes: Optional[CommitChanges] = None

    @property
    def has_snapshot(self) -> bool:
        return self.nodes_full is not None


@dataclass(frozen=True)
class CommitRecord:
    """
    Immutable commit record.

    Fields:
        sha: Commit hash (unique per repository)
        date: Commit time in epoch milliseconds (ordering key)
        author, email, message: Commit metadata
        node_count: Expected node total after the commit (advisory)
        raw_nodes: Full node list as stored (JSON string or structure), or None
        raw_edges: Edge list as stored
        raw_changes: Diff descriptor as stored, or None
    """
    sha: str
    date: int
    author: str = ""
    email: str = ""
    message: str = ""
    node_count: int = 0
    raw_nodes: Any = None
    raw_edges: Any = None
    raw_changes: Any = None

    @classmethod
    def from_document(cls, sha: str, doc: Dict[str, Any]) -> "CommitRecord":
        """
        Build a record from a stored document.

        Accepts both the camelCase field names (nodesFull, nodeCount) and the
        short names written by the history exporter (nodes, count, msg).
        """
        nodes = doc.get("nodesFull")
        if nodes is None:
            nodes = doc.get("nodes")
        count = doc.get("nodeCount", doc.get("count", 0))
        try:
            date = int(doc["date"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedPayload(sha, "date", f"missing or non-integer date: {e}") from e
        return cls(
            sha=str(doc.get("sha") or sha),
            date=date,
            author=doc.get("author", "") or "",
            email=doc.get("email", "") or "",
            message=doc.get("message", doc.get("msg", "")) or "",
            node_count=int(count or 0),
            raw_nodes=nodes,
            raw_edges=doc.get("edges"),
            raw_changes=doc.get("changes"),
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "sha": self.sha,
            "date": self.date,
            "author": self.author,
            "email": self.email,
            "message": self.message,
            "nodeCount": self.node_count,
            "edges": self.raw_edges if self.raw_edges is not None else [],
        }
        if self.raw_nodes is not None:
            doc["nodesFull"] = self.raw_nodes
        if self.raw_changes is not None:
            doc["changes"] = self.raw_changes
        return doc

    @property
    def formatted_date(self) -> str:
        """Commit date as shown in the viewer (UTC, MM/DD/YYYY HH:MM:SS)."""
        dt = datetime.fromtimestamp(self.date / 1000, tz=timezone.utc)
        return dt.strftime("%m/%d/%Y %H:%M:%S")

    def payload(self) -> CommitPayload:
        """
        Decode the graph payload.

        Raises:
            MalformedPayload: If edges, nodes or changes cannot be decoded
        """
        return CommitPayload(
            edges=self._decode_edges(),
            nodes_full=self._decode_nodes(),
            changes=self._decode_changes(),
        )

    def _decode(self, value: Any, field_name: str) -> Any:
        if isinstance(value, (str, bytes)):
            try:
                return json.loads(value)
            except ValueError as e:
                raise MalformedPayload(self.sha, field_name, str(e)) from e
        return value

    def _decode_edges(self) -> List[Any]:
        if self.raw_edges is None:
            return []
        edges = self._decode(self.raw_edges, "edges")
        if not isinstance(edges, list):
            raise MalformedPayload(self.sha, "edges", f"expected list, got {type(edges).__name__}")
        return edges

    def _decode_nodes(self) -> Optional[List[Dict[str, Any]]]:
        if self.raw_nodes is None:
            return None
        nodes = self._decode(self.raw_nodes, "nodes")

        # Exported snapshots wrap the node collection in a one-element list
        if isinstance(nodes, list) and len(nodes) == 1:
            inner = nodes[0]
            if isinstance(inner, list) or (isinstance(inner, dict) and "path" not in inner):
                nodes = inner

        if isinstance(nodes, dict):
            return [self._node_attrs(key, attrs, "nodes") for key, attrs in nodes.items()]
        if isinstance(nodes, list):
            return [self._node_attrs(None, attrs, "nodes") for attrs in nodes]
        raise MalformedPayload(self.sha, "nodes", f"expected list or mapping, got {type(nodes).__name__}")

    def _decode_changes(self) -> Optional[CommitChanges]:
        if self.raw_changes is None:
            return None
        changes = self._decode(self.raw_changes, "changes")
        if not isinstance(changes, dict):
            raise MalformedPayload(self.sha, "changes", f"expected mapping, got {type(changes).__name__}")

        added = changes.get("added") or {}
        if not isinstance(added, dict):
            raise MalformedPayload(self.sha, "changes", "'added' must be a mapping")

        return CommitChanges(
            added={key: self._node_attrs(key, attrs, "changes") for key, attrs in added.items()},
            changed=self._path_list(changes.get("changed"), "changed"),
            removed=self._path_list(changes.get("removed"), "removed"),
        )

    def _node_attrs(self, key: Optional[str], attrs: Any, field_name: str) -> Dict[str, Any]:
        if not isinstance(attrs, dict):
            raise MalformedPayload(self.sha, field_name, f"node entry must be a mapping: {attrs!r}")
        path = attrs.get("path", key)
        if not isinstance(path, str) or not path:
            raise MalformedPayload(self.sha, field_name, f"node entry has no path: {attrs!r}")
        out = dict(attrs)
        out["path"] = path
        return out

    def _path_list(self, value: Any, name: str) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
            raise MalformedPayload(self.sha, "changes", f"'{name}' must be a list of paths")
        return list(value)
