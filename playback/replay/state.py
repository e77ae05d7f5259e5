"""
Mutable engine state.

Everything that changes while playing lives here and is passed explicitly to
the scheduler; PlaybackConfig stays immutable.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Set

from ..config import PlaybackConfig
from ..core.nodes import NodeSet
from .cursor import PlaybackCursor


@dataclass
class EngineState:
    """
    Fields:
        cursor: Next query position
        nodes: Materialized node set (only the scheduler replaces it)
        edges: Edges of the last delivered commit
        first_run: No commit delivered to the consumer yet
        needs_full: Next delivery must come from a full snapshot
        paused: Pause requested (new batch fetches suspended)
        seeded: The newest-commit seed lookup has been used
        authorized: Hashes of the current batch still allowed to be delivered
        last_delivered_date: Date of the last continuous delivery
        current_sha / current_date: Last delivered commit (any mode)
        delivered / skipped: Counters
    """
    cursor: PlaybackCursor
    nodes: NodeSet = field(default_factory=NodeSet)
    edges: List[Any] = field(default_factory=list)
    first_run: bool = True
    needs_full: bool = True
    paused: bool = False
    seeded: bool = False
    authorized: Set[str] = field(default_factory=set)
    last_delivered_date: Optional[int] = None
    current_sha: Optional[str] = None
    current_date: Optional[int] = None
    delivered: int = 0
    skipped: int = 0

    @staticmethod
    def initial(config: PlaybackConfig) -> "EngineState":
        return EngineState(
            cursor=PlaybackCursor(latest_time=config.start_time, batch_size=config.batch_size),
            paused=not config.auto_play,
        )
