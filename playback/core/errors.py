"""
Exception types for the playback engine.
"""


class PlaybackError(Exception):
    """Base class for playback engine errors."""
    pass


class StoreUnavailable(PlaybackError):
    """Raised when a commit store query fails at the transport level."""
    pass


class RecordNotFound(PlaybackError):
    """Raised when a commit looked up by hash does not exist."""

    def __init__(self, sha: str) -> None:
        super().__init__(f"Commit not found: {sha}")
        self.sha = sha


class MalformedPayload(PlaybackError):
    """Raised when a commit's edges/nodes/changes cannot be decoded."""

    def __init__(self, sha: str, field_name: str, reason: str) -> None:
        super().__init__(f"Malformed {field_name} in commit {sha}: {reason}")
        self.sha = sha
        self.field_name = field_name


class InvalidDiffBase(PlaybackError):
    """Raised when a full snapshot is required but the commit only carries a diff."""

    def __init__(self, sha: str) -> None:
        super().__init__(f"Commit {sha} has no full snapshot to load from")
        self.sha = sha


class ConfigError(PlaybackError):
    """Raised when playback configuration is invalid."""
    pass
