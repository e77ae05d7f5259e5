"""
Playback cursor: where the next query starts.

The cursor is either continuous (range queries from latest_time) or holds a
one-shot single-commit lookup that takes priority over the next range query.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class PlaybackMode(str, Enum):
    CONTINUOUS = "continuous"
    SINGLE_COMMIT = "single_commit"


@dataclass(frozen=True)
class RangeQuery:
    """Ascending range query: up to limit records with date >= from_time."""
    from_time: int
    limit: int
    ascending: bool = True


@dataclass(frozen=True)
class CommitLookup:
    """Random-access lookup of one commit by hash."""
    sha: str


Query = Union[RangeQuery, CommitLookup]


class PlaybackCursor:
    """
    Tracks the lower-bound timestamp of the next range query.

    Usage:
        cursor = PlaybackCursor(latest_time=0, batch_size=20)
        query = cursor.next_query()      # RangeQuery(from_time=0, limit=20)
        cursor.advance(commit.date)      # latest_time = commit.date + 1
    """

    def __init__(self, latest_time: int = 0, batch_size: int = 20) -> None:
        self.latest_time = latest_time
        self.batch_size = batch_size
        self.mode = PlaybackMode.CONTINUOUS
        self.pending_hash: Optional[str] = None

    def request_commit(self, sha: str) -> None:
        """Switch to single-commit mode for exactly one query."""
        self.mode = PlaybackMode.SINGLE_COMMIT
        self.pending_hash = sha

    def next_query(self) -> Query:
        """
        Return the next query to run.

        A pending single-commit lookup is consumed by this call and the cursor
        reverts to continuous mode.
        """
        if self.mode is PlaybackMode.SINGLE_COMMIT and self.pending_hash:
            sha = self.pending_hash
            self.mode = PlaybackMode.CONTINUOUS
            self.pending_hash = None
            return CommitLookup(sha=sha)
        return RangeQuery(from_time=self.latest_time, limit=self.batch_size)

    def advance(self, committed_date: int) -> bool:
        """
        Move latest_time past a delivered commit.

        Never moves backwards, so late or out-of-order calls are harmless.

        Returns:
            True if latest_time changed
        """
        candidate = committed_date + 1
        if candidate > self.latest_time:
            self.latest_time = candidate
            return True
        return False
