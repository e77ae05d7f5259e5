"""
CommitStore abstract interface.

A commit store is an ordered, paginated collection of commit records per
repository. Each repository has two collections: the full-record collection
and the "_changes" collection holding diff-only records.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from ..core.records import CommitRecord


class Projection(str, Enum):
    """Which collection of a repository a query reads from."""

    FULL = "full"
    CHANGES = "changes"

    def collection(self, repo: str) -> str:
        if self is Projection.CHANGES:
            return f"{repo}_changes"
        return repo


class CommitStore(ABC):
    """
    Abstract commit store.

    All implementations must guarantee:
    - query_range returns records ascending by date, date >= from_time
    - transport failures surface as StoreUnavailable
    - get_by_hash raises RecordNotFound for unknown hashes

    Stores make no caching guarantees.
    """

    def __init__(self, repo: str) -> None:
        self.repo = repo

    def collection(self, projection: Projection) -> str:
        return projection.collection(self.repo)

    @abstractmethod
    async def query_range(
        self, from_time: int, limit: int, projection: Projection = Projection.FULL
    ) -> List[CommitRecord]:
        """
        Read up to limit records with date >= from_time, ascending by date.

        Raises:
            StoreUnavailable: If the query fails
        """
        ...

    @abstractmethod
    async def query_latest(self, projection: Projection = Projection.FULL) -> Optional[CommitRecord]:
        """
        Return the record with the greatest date, or None for an empty collection.

        Raises:
            StoreUnavailable: If the query fails
        """
        ...

    @abstractmethod
    async def get_by_hash(self, sha: str, projection: Projection = Projection.FULL) -> CommitRecord:
        """
        Look up one record by commit hash.

        Raises:
            RecordNotFound: If no record has this hash
            StoreUnavailable: If the query fails
        """
        ...
