"""
Playback runtime.

- PlaybackCursor: Next query position and one-shot single-commit lookups
- PlaybackScheduler: Paced delivery state machine
- GraphConsumer: Receiver of graph snapshots
- reconstruct: Non-paced node set reconstruction
"""

from .cursor import PlaybackCursor, PlaybackMode, RangeQuery, CommitLookup
from .state import EngineState
from .consumer import GraphConsumer, GraphSnapshot, RecordingConsumer
from .scheduler import PlaybackScheduler, SchedulerState
from .runner import ReplayResult, reconstruct, collect_range

__all__ = [
    "PlaybackCursor",
    "PlaybackMode",
    "RangeQuery",
    "CommitLookup",
    "EngineState",
    "GraphConsumer",
    "GraphSnapshot",
    "RecordingConsumer",
    "PlaybackScheduler",
    "SchedulerState",
    "ReplayResult",
    "reconstruct",
    "collect_range",
]
