"""
Graph consumer interface.

The consumer receives a full graph snapshot for every delivered commit and
rebuilds its own structures each time; nothing flows back into the engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Tuple

from ..core.nodes import NodeRecord
from ..core.records import CommitRecord


@dataclass(frozen=True)
class GraphSnapshot:
    """
    What the consumer gets per delivered commit.

    Fields:
        commit: The delivered commit (hash, date, author, message)
        nodes: Node records in delivery order
        edges: Decoded edge list
        node_count: Advisory node total exactly as stored on the commit
            (nodeCount); it does not include a root node, so a consumer that
            draws one adds it itself
        first_run: True for the very first delivery of the session
        discontinuity: True for random-access loads; derived animation
            state should be reset
    """
    commit: CommitRecord
    nodes: Tuple[NodeRecord, ...] = ()
    edges: List[Any] = field(default_factory=list)
    node_count: int = 0
    first_run: bool = False
    discontinuity: bool = False

    @property
    def updated_paths(self) -> List[str]:
        return [n.path for n in self.nodes if n.updated]


class GraphConsumer(ABC):
    """Receiver of graph lifecycle calls."""

    @abstractmethod
    def initialize_graph(self, snapshot: GraphSnapshot) -> None:
        """Build the graph from snapshot."""
        ...

    @abstractmethod
    def refresh_graph(self) -> None:
        """Tear down the current graph before the next initialize_graph."""
        ...


class RecordingConsumer(GraphConsumer):
    """
    Consumer that keeps every call, in order.

    calls holds ("refresh", None) and ("initialize", snapshot) tuples.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.snapshots: List[GraphSnapshot] = []

    def initialize_graph(self, snapshot: GraphSnapshot) -> None:
        self.calls.append(("initialize", snapshot))
        self.snapshots.append(snapshot)

    def refresh_graph(self) -> None:
        self.calls.append(("refresh", None))

    @property
    def delivered_shas(self) -> List[str]:
        return [s.commit.sha for s in self.snapshots]
