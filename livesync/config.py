"""
Sync configuration.

Configuration can be provided directly, read from a YAML settings file,
or taken from environment variables.

Environment Variables:
    LIVESYNC_STATE_URI: State tree to publish into (required)
    LIVESYNC_WATCH_DIR: Directory holding the live segments (required)
    LIVESYNC_PEER_URL: Replication peer endpoint (default: http://localhost:8080)
    LIVESYNC_INDEX_FILENAME: Mutable playlist name (default: index.m3u8)
    LIVESYNC_DEBOUNCE_SECONDS: Quiescence window (default: 0.5)
    LIVESYNC_POLL_INTERVAL: Directory poll interval (default: 0.25)
    LIVESYNC_REQUEST_TIMEOUT: Seconds per upload/commit (default: 30)
    LIVESYNC_STATE_DIR: Where sessions are persisted (default: ~/.livesync/state)
    LIVESYNC_PERSIST_STATE: "false" keeps Frontier and UploadedSet in memory
    LIVESYNC_IGNORE_PATTERNS: Comma-separated glob patterns to skip
"""

from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

DEFAULT_STATE_DIR = Path.home() / ".livesync" / "state"


@dataclass
class SyncConfig:
    """Configuration for one watched directory / stateURI.

    Attributes:
        state_uri: State tree transactions are submitted to
        watch_dir: Directory whose files are published
        peer_url: Replication peer endpoint
        index_filename: Mutable live index, uploaded every cycle and never finalized
        debounce_seconds: Quiescence window collapsing bursts of events
        poll_interval: Seconds between directory polls
        request_timeout: Seconds allowed for each upload or commit
        shutdown_timeout: Seconds to wait for an active cycle on shutdown
        state_dir: Directory for persisted sessions
        persist_state: Persist Frontier and UploadedSet across restarts
        ignore_patterns: Glob patterns for files never published
        patch_root: Top-level key streams are published under
        ingest_port: Port the media server ingests on (informational)
        serving_port: Port the media server serves segments on (informational)
    """

    state_uri: str
    watch_dir: Path
    peer_url: str = "http://localhost:8080"
    index_filename: str = "index.m3u8"
    debounce_seconds: float = 0.5
    poll_interval: float = 0.25
    request_timeout: float | None = 30.0
    shutdown_timeout: float = 10.0
    state_dir: Path | None = field(default_factory=lambda: DEFAULT_STATE_DIR)
    persist_state: bool = True
    ignore_patterns: list[str] = field(default_factory=lambda: [".*", "*.tmp"])
    patch_root: str = "streams"
    ingest_port: int | None = None
    serving_port: int | None = None

    def __post_init__(self) -> None:
        self.watch_dir = Path(self.watch_dir).expanduser()
        if self.state_dir is not None:
            self.state_dir = Path(self.state_dir).expanduser()
        if not self.state_uri:
            raise ConfigurationError("state_uri", "must not be empty")
        if self.debounce_seconds < 0:
            raise ConfigurationError("debounce_seconds", "must be >= 0")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval", "must be > 0")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError("request_timeout", "must be > 0")

    @property
    def effective_state_dir(self) -> Path | None:
        """State directory, or None when persistence is disabled."""
        return self.state_dir if self.persist_state else None

    def is_ignored(self, filename: str) -> bool:
        """Check if a file matches any ignore pattern."""
        return any(fnmatch.fnmatch(filename, pattern) for pattern in self.ignore_patterns)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Create configuration from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for required in ("state_uri", "watch_dir"):
            if not values.get(required):
                raise ConfigurationError(required, "is required")
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> SyncConfig:
        """Load the ``sync:`` section of a YAML settings file.

        Args:
            path: Settings file

        Returns:
            SyncConfig populated from the file
        """
        try:
            content = yaml.safe_load(Path(path).read_text()) or {}
        except OSError as e:
            raise ConfigurationError(str(path), f"cannot read: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(str(path), f"invalid YAML: {e}") from e
        section = content.get("sync")
        if not isinstance(section, dict):
            raise ConfigurationError("sync", f"missing 'sync' section in {path}")
        return cls.from_dict(section)

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables."""
        env = os.environ
        data: dict[str, Any] = {
            "state_uri": env.get("LIVESYNC_STATE_URI", ""),
            "watch_dir": env.get("LIVESYNC_WATCH_DIR", ""),
        }
        if "LIVESYNC_PEER_URL" in env:
            data["peer_url"] = env["LIVESYNC_PEER_URL"]
        if "LIVESYNC_INDEX_FILENAME" in env:
            data["index_filename"] = env["LIVESYNC_INDEX_FILENAME"]
        if "LIVESYNC_STATE_DIR" in env:
            data["state_dir"] = env["LIVESYNC_STATE_DIR"]
        if "LIVESYNC_PERSIST_STATE" in env:
            flag = env["LIVESYNC_PERSIST_STATE"].lower()
            data["persist_state"] = flag not in ("0", "false", "no")
        if "LIVESYNC_IGNORE_PATTERNS" in env:
            data["ignore_patterns"] = [
                p.strip() for p in env["LIVESYNC_IGNORE_PATTERNS"].split(",") if p.strip()
            ]
        for key, name in (
            ("debounce_seconds", "LIVESYNC_DEBOUNCE_SECONDS"),
            ("poll_interval", "LIVESYNC_POLL_INTERVAL"),
            ("request_timeout", "LIVESYNC_REQUEST_TIMEOUT"),
        ):
            if name in env:
                try:
                    data[key] = float(env[name])
                except ValueError as e:
                    raise ConfigurationError(key, f"not a number: {env[name]!r}") from e
        return cls.from_dict(data)
