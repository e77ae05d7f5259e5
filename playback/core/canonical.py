"""
Canonical serialization for node set comparison.

Used to fingerprint materialized graph states so two reconstructions can be
compared without walking the node records.
"""

import hashlib
import json
from typing import Any

from .nodes import NodeSet


def canonicalize(obj: Any) -> Any:
    """
    Convert nested dict/list to canonical form.

    dict keys are sorted and tuples become lists, recursively.
    """
    if isinstance(obj, dict):
        return {k: canonicalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    return obj


def canonical_json_bytes(obj: Any) -> bytes:
    canon = canonicalize(obj)
    s = json.dumps(canon, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return s.encode("utf-8")


def canonical_json_str(obj: Any) -> str:
    return canonical_json_bytes(obj).decode("utf-8")


def node_set_digest(nodes: NodeSet, include_updated: bool = True) -> str:
    """
    SHA-256 of a node set in its current order.

    Args:
        nodes: Node set to fingerprint
        include_updated: Whether the transient updated flag takes part

    Returns:
        Hex digest (64 characters)
    """
    rows = []
    for node in nodes:
        row = node.to_dict()
        if not include_updated:
            row.pop("updated", None)
        rows.append(row)
    return hashlib.sha256(canonical_json_bytes(rows)).hexdigest()
