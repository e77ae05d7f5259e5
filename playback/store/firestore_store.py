"""
Firestore-backed commit store.

Uses the history exporter's layout: one collection per repository (plus
"<repo>_changes"), document id = commit hash, integer "date" field in epoch
milliseconds.
"""

import asyncio
import logging
from typing import Any, List, Optional

from ..core.errors import MalformedPayload, RecordNotFound, StoreUnavailable
from ..core.records import CommitRecord
from .base import CommitStore, Projection

logger = logging.getLogger(__name__)


class FirestoreCommitStore(CommitStore):
    """Commit store reading from Cloud Firestore."""

    def __init__(self, repo: str, project: Optional[str] = None, client: Optional[Any] = None) -> None:
        """
        Args:
            repo: Repository (collection) name
            project: GCP project; required when no client is given
            client: Pre-built firestore.Client (or compatible object)

        Raises:
            StoreUnavailable: If google-cloud-firestore is missing or no project is set
        """
        super().__init__(repo)
        if client is None:
            try:
                from google.cloud import firestore
            except ImportError as exc:
                raise StoreUnavailable(
                    "google-cloud-firestore is required for the Firestore commit store"
                ) from exc
            if not project:
                raise StoreUnavailable("GCP project is required for the Firestore commit store")
            client = firestore.Client(project=project)
        self._client = client

    def _to_record(self, snapshot: Any) -> CommitRecord:
        return CommitRecord.from_document(snapshot.id, snapshot.to_dict() or {})

    def _to_records(self, snapshots: List[Any]) -> List[CommitRecord]:
        records = []
        for snapshot in snapshots:
            try:
                records.append(self._to_record(snapshot))
            except MalformedPayload as exc:
                logger.error(f"Skipping Firestore document {snapshot.id}: {exc}")
        return records

    def _range(self, from_time: int, limit: int, projection: Projection) -> List[CommitRecord]:
        query = (
            self._client.collection(self.collection(projection))
            .order_by("date", direction="ASCENDING")
            .where("date", ">=", from_time)
            .limit(limit)
        )
        try:
            snapshots = list(query.stream())
        except Exception as exc:
            logger.error(f"Firestore range query failed: {exc}")
            raise StoreUnavailable(f"Firestore range query failed: {exc}") from exc
        return self._to_records(snapshots)

    def _latest(self, projection: Projection) -> Optional[CommitRecord]:
        query = (
            self._client.collection(self.collection(projection))
            .order_by("date", direction="DESCENDING")
            .limit(1)
        )
        try:
            snapshots = list(query.stream())
        except Exception as exc:
            logger.error(f"Firestore latest query failed: {exc}")
            raise StoreUnavailable(f"Firestore latest query failed: {exc}") from exc
        records = self._to_records(snapshots)
        return records[0] if records else None

    def _by_hash(self, sha: str, projection: Projection) -> CommitRecord:
        try:
            doc = self._client.collection(self.collection(projection)).document(sha).get()
        except Exception as exc:
            logger.error(f"Firestore lookup of {sha} failed: {exc}")
            raise StoreUnavailable(f"Firestore lookup failed: {exc}") from exc
        if not doc.exists:
            raise RecordNotFound(sha)
        return self._to_record(doc)

    async def query_range(
        self, from_time: int, limit: int, projection: Projection = Projection.FULL
    ) -> List[CommitRecord]:
        return await asyncio.to_thread(self._range, from_time, limit, projection)

    async def query_latest(self, projection: Projection = Projection.FULL) -> Optional[CommitRecord]:
        return await asyncio.to_thread(self._latest, projection)

    async def get_by_hash(self, sha: str, projection: Projection = Projection.FULL) -> CommitRecord:
        return await asyncio.to_thread(self._by_hash, sha, projection)
