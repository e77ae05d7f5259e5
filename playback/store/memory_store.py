"""
In-memory commit store.

Holds documents in plain lists; used by tests and for replaying exported
history without a backing service.
"""

from typing import Any, Dict, List, Optional

from ..core.errors import RecordNotFound
from ..core.records import CommitRecord
from .base import CommitStore, Projection


class InMemoryCommitStore(CommitStore):
    """Commit store backed by per-collection lists of documents."""

    def __init__(self, repo: str = "repo") -> None:
        super().__init__(repo)
        self._docs: Dict[Projection, List[Dict[str, Any]]] = {p: [] for p in Projection}

    def put(self, document: Dict[str, Any], projection: Projection = Projection.FULL) -> CommitRecord:
        """
        Add a commit document. Documents must carry sha and date.

        Returns:
            The record as it will be read back
        """
        record = CommitRecord.from_document(document["sha"], document)
        self._docs[projection].append(dict(document))
        return record

    def _records(self, projection: Projection) -> List[CommitRecord]:
        records = [CommitRecord.from_document(d["sha"], d) for d in self._docs[projection]]
        records.sort(key=lambda r: r.date)
        return records

    async def query_range(
        self, from_time: int, limit: int, projection: Projection = Projection.FULL
    ) -> List[CommitRecord]:
        matching = [r for r in self._records(projection) if r.date >= from_time]
        return matching[:limit]

    async def query_latest(self, projection: Projection = Projection.FULL) -> Optional[CommitRecord]:
        records = self._records(projection)
        return records[-1] if records else None

    async def get_by_hash(self, sha: str, projection: Projection = Projection.FULL) -> CommitRecord:
        for record in self._records(projection):
            if record.sha == sha:
                return record
        raise RecordNotFound(sha)
