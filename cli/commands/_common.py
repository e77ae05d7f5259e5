"""
Option handling shared by the commands.
"""

from dataclasses import replace
from typing import Optional

from playback.config import StoreConfig
from playback.store import CommitStore, Projection, build_store


def open_store(repo: str, store_type: Optional[str], path: Optional[str]) -> CommitStore:
    """Build a store from PLAYBACK_* environment, overridden by CLI options."""
    config = StoreConfig.from_env()
    if store_type:
        config = replace(config, store_type=store_type.lower())
    if path:
        config = replace(config, path=path)
    return build_store(config, repo)


def projection_for(changes: bool) -> Projection:
    return Projection.CHANGES if changes else Projection.FULL
