"""
Commit storage.

This module provides:
- CommitStore: Abstract interface for commit collections
- InMemoryCommitStore: List-backed store for tests and demos
- FileCommitStore: JSONL files, one per collection
- S3CommitStore: One S3 object per commit
- FirestoreCommitStore: Cloud Firestore collections
"""

from ..config import StoreConfig
from ..core.errors import ConfigError
from .base import CommitStore, Projection
from .memory_store import InMemoryCommitStore
from .file_store import FileCommitStore
from .s3_store import S3CommitStore
from .firestore_store import FirestoreCommitStore


def build_store(config: StoreConfig, repo: str) -> CommitStore:
    """
    Create the commit store selected by config.store_type.

    Raises:
        ConfigError: For an unknown store type
    """
    if config.store_type == "file":
        return FileCommitStore(config.path, repo)
    if config.store_type == "s3":
        return S3CommitStore(
            bucket=config.s3_bucket,
            repo=repo,
            prefix=config.s3_prefix,
            endpoint_url=config.s3_endpoint,
            region=config.s3_region,
        )
    if config.store_type == "firestore":
        return FirestoreCommitStore(repo, project=config.firestore_project)
    raise ConfigError(f"Unknown store type: {config.store_type}")


def build_store_from_env(repo: str) -> CommitStore:
    return build_store(StoreConfig.from_env(), repo)


__all__ = [
    "CommitStore",
    "Projection",
    "InMemoryCommitStore",
    "FileCommitStore",
    "S3CommitStore",
    "FirestoreCommitStore",
    "build_store",
    "build_store_from_env",
]
