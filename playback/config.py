"""
Playback configuration.

Configuration is immutable after construction. Runtime values that change
while playing (cursor position, node set, pause state) live in EngineState.

Environment Variables:
    PLAYBACK_REPO: Repository / collection name - default: repo
    PLAYBACK_START_DATE: Start date (ISO-8601 or epoch ms) - default: beginning
    PLAYBACK_START_COMMIT: Commit hash to load first - default: none
    PLAYBACK_DELAY_MS: Delay between deliveries - default: 1000
    PLAYBACK_AUTOPLAY: Start playing immediately (true/false) - default: true
    PLAYBACK_BATCH_SIZE: Commits per range query - default: 20
    PLAYBACK_BACKOFF_MS: Wait before re-querying after an empty batch - default: 5000
    PLAYBACK_USE_CHANGES: Read diffs from the _changes collection while playing - default: true
    PLAYBACK_SEED_FROM_LATEST: Jump to the newest commit if history from the start is empty - default: true

    PLAYBACK_STORE_TYPE: file, s3 or firestore - default: file
    PLAYBACK_STORE_PATH: Directory for the file store - default: /var/lib/playback
    PLAYBACK_S3_BUCKET / PLAYBACK_S3_PREFIX / PLAYBACK_S3_ENDPOINT / PLAYBACK_S3_REGION
    PLAYBACK_FIRESTORE_PROJECT: GCP project for the Firestore store
"""

import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import parse_qs

from .core.errors import ConfigError

DEFAULT_DELAY_MS = 1000
DEFAULT_BATCH_SIZE = 20
DEFAULT_BACKOFF_MS = 5000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {val!r}") from e


def parse_timestamp(value: str) -> int:
    """
    Parse a start date into epoch milliseconds.

    Accepts integer epoch milliseconds or an ISO-8601 date/datetime; naive
    values are taken as UTC.

    Raises:
        ConfigError: If the value cannot be parsed
    """
    value = value.strip()
    if value.lstrip("-").isdigit():
        return int(value)
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ConfigError(f"Unparseable date: {value!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


@dataclass(frozen=True)
class PlaybackConfig:
    """
    Engine inputs.

    Fields:
        repo: Repository / collection name
        start_time: Initial cursor lower bound (epoch ms, 0 = beginning)
        start_hash: Commit to load by hash before playing
        delay_ms: Pacing delay between successive deliveries
        auto_play: Start fetching immediately (False = start paused)
        batch_size: Records per range query
        backoff_ms: Wait before re-running a query that returned nothing
        use_changes_projection: Read diff-only records while playing
        seed_from_latest: When nothing is found from the start and no start
            date/commit was given, load the newest commit once
    """
    repo: str = "repo"
    start_time: int = 0
    start_hash: Optional[str] = None
    delay_ms: int = DEFAULT_DELAY_MS
    auto_play: bool = True
    batch_size: int = DEFAULT_BATCH_SIZE
    backoff_ms: int = DEFAULT_BACKOFF_MS
    use_changes_projection: bool = True
    seed_from_latest: bool = True

    def __post_init__(self) -> None:
        if self.delay_ms < 0:
            raise ConfigError("delay_ms must be >= 0")
        if self.backoff_ms < 0:
            raise ConfigError("backoff_ms must be >= 0")
        if self.batch_size < 1:
            raise ConfigError("batch_size must be >= 1")

    @property
    def has_start_condition(self) -> bool:
        return self.start_time > 0 or bool(self.start_hash)

    @staticmethod
    def from_env() -> "PlaybackConfig":
        start_date = os.getenv("PLAYBACK_START_DATE")
        return PlaybackConfig(
            repo=os.getenv("PLAYBACK_REPO", "repo"),
            start_time=parse_timestamp(start_date) if start_date else 0,
            start_hash=os.getenv("PLAYBACK_START_COMMIT") or None,
            delay_ms=_env_int("PLAYBACK_DELAY_MS", DEFAULT_DELAY_MS),
            auto_play=_env_bool("PLAYBACK_AUTOPLAY", True),
            batch_size=_env_int("PLAYBACK_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            backoff_ms=_env_int("PLAYBACK_BACKOFF_MS", DEFAULT_BACKOFF_MS),
            use_changes_projection=_env_bool("PLAYBACK_USE_CHANGES", True),
            seed_from_latest=_env_bool("PLAYBACK_SEED_FROM_LATEST", True),
        )

    def with_deep_link(self, query: str) -> "PlaybackConfig":
        """
        Apply deep-link parameters from a URL query string.

        Recognized parameters: date (start timestamp), commit (start hash).

        Example:
            config.with_deep_link("?date=2018-03-01&commit=deadbeef")
        """
        params = parse_qs(query.lstrip("?"))
        changes = {}
        if params.get("date"):
            changes["start_time"] = parse_timestamp(params["date"][0])
        if params.get("commit"):
            changes["start_hash"] = params["commit"][0]
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class StoreConfig:
    """Commit store selection."""
    store_type: str = "file"
    path: str = "/var/lib/playback"
    s3_bucket: str = "playback-commits"
    s3_prefix: str = "commits"
    s3_endpoint: Optional[str] = None
    s3_region: str = "us-east-1"
    firestore_project: Optional[str] = None

    @staticmethod
    def from_env() -> "StoreConfig":
        return StoreConfig(
            store_type=os.getenv("PLAYBACK_STORE_TYPE", "file").lower(),
            path=os.getenv("PLAYBACK_STORE_PATH", "/var/lib/playback"),
            s3_bucket=os.getenv("PLAYBACK_S3_BUCKET", "playback-commits"),
            s3_prefix=os.getenv("PLAYBACK_S3_PREFIX", "commits"),
            s3_endpoint=os.getenv("PLAYBACK_S3_ENDPOINT") or None,
            s3_region=os.getenv("PLAYBACK_S3_REGION", "us-east-1"),
            firestore_project=os.getenv("PLAYBACK_FIRESTORE_PROJECT") or None,
        )
