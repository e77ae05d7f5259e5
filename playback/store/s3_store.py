"""
S3-based commit store using one-object-per-commit.

Object key: {prefix}/{collection}/{date:013d}-{sha}.json
Body: the commit document as canonical JSON.

Zero-padding the date makes lexicographic key order equal date order, so a
range query is a single listing starting after the lower bound.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.canonical import canonical_json_str
from ..core.errors import MalformedPayload, RecordNotFound, StoreUnavailable
from ..core.records import CommitRecord
from .base import CommitStore, Projection

logger = logging.getLogger(__name__)


class S3CommitStore(CommitStore):
    """
    S3 commit store.

    Paginator: list_objects_v2 returns max 1000 keys per call, so every
    listing goes through a paginator.
    """

    def __init__(
        self,
        bucket: str,
        repo: str,
        prefix: str = "commits",
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
    ) -> None:
        """
        Initialize S3 commit store.

        Args:
            bucket: S3 bucket name
            repo: Repository (collection) name
            prefix: Key prefix (default: "commits")
            endpoint_url: S3 endpoint URL (for MinIO, localstack, etc.)
            region: AWS region (default: us-east-1)

        Raises:
            StoreUnavailable: If the client cannot be created or the bucket is not accessible
        """
        super().__init__(repo)
        self.bucket = bucket
        self.prefix = prefix.rstrip("/")

        try:
            self.s3_client = boto3.client("s3", endpoint_url=endpoint_url, region_name=region)
        except (BotoCoreError, ValueError) as e:
            raise StoreUnavailable(f"Failed to create S3 client: {e}") from e

        if os.getenv("PLAYBACK_S3_SKIP_BUCKET_CHECK", "").lower() != "true":
            try:
                self.s3_client.head_bucket(Bucket=bucket)
            except (BotoCoreError, ClientError) as e:
                raise StoreUnavailable(f"Bucket '{bucket}' not accessible: {e}") from e

    def _collection_prefix(self, projection: Projection) -> str:
        return f"{self.prefix}/{self.collection(projection)}/"

    def key_for(self, record: CommitRecord, projection: Projection) -> str:
        return f"{self._collection_prefix(projection)}{record.date:013d}-{record.sha}.json"

    def _parse_key(self, key: str, projection: Projection) -> Optional[Tuple[int, str]]:
        """Extract (date, sha) from an object key."""
        base = key[len(self._collection_prefix(projection)) :]
        if not base.endswith(".json") or "-" not in base:
            return None
        date_str, sha = base[:-5].split("-", 1)
        try:
            return int(date_str), sha
        except ValueError:
            return None

    def _list_raw_keys(
        self, projection: Projection, start_after: Optional[str] = None, max_items: Optional[int] = None
    ) -> List[str]:
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": self._collection_prefix(projection)}
        if start_after:
            kwargs["StartAfter"] = start_after
        if max_items:
            kwargs["PaginationConfig"] = {"MaxItems": max_items}

        paginator = self.s3_client.get_paginator("list_objects_v2")
        keys = []
        for page in paginator.paginate(**kwargs):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        return keys

    def _list_keys(self, projection: Projection) -> List[str]:
        return [k for k in self._list_raw_keys(projection) if self._parse_key(k, projection) is not None]

    def _get(self, key: str, projection: Projection) -> CommitRecord:
        """
        Fetch and parse one object.

        Raises:
            MalformedPayload: If the body is not a JSON object or has no usable date
        """
        parsed = self._parse_key(key, projection)
        sha = parsed[1] if parsed else key
        response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
        try:
            doc = json.loads(response["Body"].read().decode("utf-8"))
        except ValueError as e:
            raise MalformedPayload(sha, "document", str(e)) from e
        if not isinstance(doc, dict):
            raise MalformedPayload(sha, "document", f"expected object, got {type(doc).__name__}")
        return CommitRecord.from_document(doc.get("sha") or sha, doc)

    def _get_or_skip(self, key: str, projection: Projection) -> Optional[CommitRecord]:
        try:
            return self._get(key, projection)
        except MalformedPayload as e:
            logger.error(f"Skipping object {key}: {e}")
            return None

    def put(self, document: Dict[str, Any], projection: Projection = Projection.FULL) -> CommitRecord:
        """
        Write one commit document.

        Raises:
            StoreUnavailable: If the write fails
        """
        record = CommitRecord.from_document(document["sha"], document)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=self.key_for(record, projection),
                Body=canonical_json_str(document).encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable(f"Failed to write commit {record.sha} to S3: {e}") from e
        return record

    def _range(self, from_time: int, limit: int, projection: Projection) -> List[CommitRecord]:
        # Keys for date == from_time sort after the bare padded date
        start_after = f"{self._collection_prefix(projection)}{from_time:013d}" if from_time > 0 else None
        records: List[CommitRecord] = []
        try:
            # Unreadable objects are skipped, so keep listing until the page is full
            while len(records) < limit:
                wanted = limit - len(records)
                keys = self._list_raw_keys(projection, start_after=start_after, max_items=wanted)
                for key in keys[:wanted]:
                    if self._parse_key(key, projection) is None:
                        continue
                    record = self._get_or_skip(key, projection)
                    if record is not None:
                        records.append(record)
                if len(keys) < wanted:
                    break
                start_after = keys[wanted - 1]
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable(f"Failed to query commits from S3: {e}") from e
        logger.debug(f"S3 range query from={from_time} returned {len(records)} commits")
        return records

    def _latest(self, projection: Projection) -> Optional[CommitRecord]:
        try:
            for key in reversed(self._list_keys(projection)):
                record = self._get_or_skip(key, projection)
                if record is not None:
                    return record
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable(f"Failed to query latest commit from S3: {e}") from e
        return None

    def _by_hash(self, sha: str, projection: Projection) -> CommitRecord:
        try:
            for key in self._list_keys(projection):
                parsed = self._parse_key(key, projection)
                if parsed is not None and parsed[1] == sha:
                    return self._get(key, projection)
        except (BotoCoreError, ClientError) as e:
            raise StoreUnavailable(f"Failed to look up commit {sha} in S3: {e}") from e
        raise RecordNotFound(sha)

    async def query_range(
        self, from_time: int, limit: int, projection: Projection = Projection.FULL
    ) -> List[CommitRecord]:
        return await asyncio.to_thread(self._range, from_time, limit, projection)

    async def query_latest(self, projection: Projection = Projection.FULL) -> Optional[CommitRecord]:
        return await asyncio.to_thread(self._latest, projection)

    async def get_by_hash(self, sha: str, projection: Projection = Projection.FULL) -> CommitRecord:
        return await asyncio.to_thread(self._by_hash, sha, projection)
