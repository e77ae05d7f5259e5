"""
File-based commit store using JSONL, one file per collection.

Layout: <root>/<collection>.jsonl, one commit document per line. Lines may be
in any order; reads sort by date.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional

from ..core.canonical import canonical_json_str
from ..core.errors import MalformedPayload, RecordNotFound, StoreUnavailable
from ..core.records import CommitRecord
from .base import CommitStore, Projection

try:
    import fcntl
except ImportError:  # Windows or unsupported platform
    fcntl = None

logger = logging.getLogger(__name__)

class FileCommitStore(CommitStore):
    """
    JSONL commit store.

    Guarantees:
    - Append-only writes with fsync after each document
    - Reads never block the event loop (run in a worker thread)
    """

    def __init__(self, root: str, repo: str) -> None:
        """
        Args:
            root: Directory holding the collection files
            repo: Repository (collection) name
        """
        super().__init__(repo)
        self.root = root
        os.makedirs(root, exist_ok=True)

    def path_for(self, projection: Projection) -> str:
        return os.path.join(self.root, f"{self.collection(projection)}.jsonl")

    def append(self, document: Dict[str, Any], projection: Projection = Projection.FULL) -> CommitRecord:
        """
        Append one commit document.

        Raises:
            StoreUnavailable: If the write fails
        """
        record = CommitRecord.from_document(document["sha"], document)
        line = canonical_json_str(document) + "\n"
        try:
            with open(self.path_for(projection), "ab") as f:
                if fcntl:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                f.write(line.encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
                if fcntl:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except OSError as ex:
            raise StoreUnavailable(str(ex)) from ex
        return record

    def _load(self, projection: Projection) -> List[CommitRecord]:
        path = self.path_for(projection)
        if not os.path.exists(path):
            return []
        records = []
        try:
            with open(path, "rb") as f:
                for lineno, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        doc = json.loads(line)
                        if not isinstance(doc, dict):
                            raise ValueError(f"expected object, got {type(doc).__name__}")
                        records.append(CommitRecord.from_document(doc.get("sha", ""), doc))
                    except (ValueError, MalformedPayload) as ex:
                        # Unreadable or undated lines cannot be ordered
                        logger.error(f"Skipping line {lineno} of {path}: {ex}")
        except OSError as ex:
            raise StoreUnavailable(str(ex)) from ex
        records.sort(key=lambda r: r.date)
        return records

    def _range(self, from_time: int, limit: int, projection: Projection) -> List[CommitRecord]:
        return [r for r in self._load(projection) if r.date >= from_time][:limit]

    def _latest(self, projection: Projection) -> Optional[CommitRecord]:
        records = self._load(projection)
        return records[-1] if records else None

    def _by_hash(self, sha: str, projection: Projection) -> CommitRecord:
        for record in self._load(projection):
            if record.sha == sha:
                return record
        raise RecordNotFound(sha)

    async def query_range(
        self, from_time: int, limit: int, projection: Projection = Projection.FULL
    ) -> List[CommitRecord]:
        return await asyncio.to_thread(self._range, from_time, limit, projection)

    async def query_latest(self, projection: Projection = Projection.FULL) -> Optional[CommitRecord]:
        return await asyncio.to_thread(self._latest, projection)

    async def get_by_hash(self, sha: str, projection: Projection = Projection.FULL) -> CommitRecord:
        return await asyncio.to_thread(self._by_hash, sha, projection)
