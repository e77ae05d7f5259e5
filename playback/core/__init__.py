"""
Core playback primitives.

- CommitRecord: Immutable commit read from a store, with lazily decoded payload
- NodeRecord / NodeSet: Materialized graph state
- apply_full / apply_diff: Pure node set transitions
- Canonical: Deterministic serialization and node set digests
"""

from .records import CommitRecord, CommitChanges, CommitPayload
from .nodes import NodeRecord, NodeSet
from .reducer import apply_full, apply_diff
from .canonical import canonicalize, canonical_json_str, node_set_digest
from .errors import (
    PlaybackError,
    StoreUnavailable,
    RecordNotFound,
    MalformedPayload,
    InvalidDiffBase,
    ConfigError,
)

__all__ = [
    "CommitRecord",
    "CommitChanges",
    "CommitPayload",
    "NodeRecord",
    "NodeSet",
    "apply_full",
    "apply_diff",
    "canonicalize",
    "canonical_json_str",
    "node_set_digest",
    "PlaybackError",
    "StoreUnavailable",
    "RecordNotFound",
    "MalformedPayload",
    "InvalidDiffBase",
    "ConfigError",
]
