"""
Replay runner: reconstruct a node set without pacing.

Used to materialize the graph at a given commit (CLI show --rebuild) by
folding every earlier commit through the reducer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from ..core.errors import MalformedPayload
from ..core.nodes import NodeSet
from ..core.records import CommitChanges, CommitRecord
from ..core.reducer import apply_diff, apply_full
from ..store.base import CommitStore, Projection

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """
    Result of a replay.

    Fields:
        nodes: Final node set
        edges: Edges of the last applied commit
        applied: Number of commits applied
        skipped: Hashes of commits that could not be decoded
        last: Last applied commit
    """
    nodes: NodeSet = field(default_factory=NodeSet)
    edges: List[Any] = field(default_factory=list)
    applied: int = 0
    skipped: List[str] = field(default_factory=list)
    last: Optional[CommitRecord] = None


def reconstruct(
    records: Iterable[CommitRecord],
    until_sha: Optional[str] = None,
    until_time: Optional[int] = None,
) -> ReplayResult:
    """
    Fold commits (ascending by date) into a node set.

    Snapshots replace the set, diffs are applied on top of it. Undecodable
    commits are skipped and reported in the result.

    Args:
        records: Commits in ascending date order
        until_sha: Stop after applying this commit (inclusive)
        until_time: Stop before the first commit later than this (inclusive)

    Returns:
        ReplayResult with final node set and count
    """
    result = ReplayResult()

    for record in records:
        if until_time is not None and record.date > until_time:
            break
        try:
            payload = record.payload()
        except MalformedPayload as e:
            logger.error(f"Skipping commit {record.sha}: {e}")
            result.skipped.append(record.sha)
        else:
            if payload.has_snapshot:
                result.nodes = apply_full(result.nodes, payload.nodes_full)
            else:
                result.nodes = apply_diff(result.nodes, payload.changes or CommitChanges())
            result.edges = payload.edges
            result.applied += 1
            result.last = record
        if until_sha is not None and record.sha == until_sha:
            break

    return result


async def collect_range(
    store: CommitStore,
    from_time: int = 0,
    until_time: Optional[int] = None,
    projection: Projection = Projection.FULL,
    batch_size: int = 100,
) -> List[CommitRecord]:
    """
    Page through a store collection with ascending range queries.

    Pages advance to last.date + 1, the same boundary the scheduler uses.
    """
    records: List[CommitRecord] = []
    cursor = from_time
    while True:
        batch = await store.query_range(cursor, batch_size, projection)
        for record in batch:
            if until_time is not None and record.date > until_time:
                return records
            records.append(record)
        if len(batch) < batch_size:
            return records
        cursor = batch[-1].date + 1
