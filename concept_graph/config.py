"""Engine and server configuration."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .constants import (
    CHANNEL,
    DEBOUNCE_MS,
    EVENT_LOG_SIZE,
    INFLIGHT_TIMEOUT_MS,
    MAX_CONTEXT_TURNS,
    MILESTONE_EVERY,
)

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}; using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    """Concept graph engine configuration."""
    debounce_ms: int = DEBOUNCE_MS
    inflight_timeout_ms: int = INFLIGHT_TIMEOUT_MS
    max_context_turns: int = MAX_CONTEXT_TURNS
    channel: str = CHANNEL
    milestone_every: int = MILESTONE_EVERY
    strict_error_correlation: bool = False
    autosave: bool = False
    event_log_size: int = EVENT_LOG_SIZE

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            debounce_ms=_env_int("CG_DEBOUNCE_MS", DEBOUNCE_MS),
            inflight_timeout_ms=_env_int("CG_INFLIGHT_TIMEOUT_MS", INFLIGHT_TIMEOUT_MS),
            max_context_turns=_env_int("CG_MAX_CONTEXT_TURNS", MAX_CONTEXT_TURNS),
            milestone_every=_env_int("CG_MILESTONE_EVERY", MILESTONE_EVERY),
            strict_error_correlation=_env_bool("CG_STRICT_ERROR_CORRELATION", False),
            autosave=_env_bool("CG_AUTOSAVE", False),
            event_log_size=_env_int("CG_EVENT_LOG_SIZE", EVENT_LOG_SIZE),
        )


@dataclass
class SnapshotServerConfig:
    """Configuration for the snapshot HTTP server."""
    snapshot_dir: Path = field(default_factory=lambda: Path.home() / ".concept-graph/snapshots")
    host: str = "127.0.0.1"
    port: int = 8766
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "SnapshotServerConfig":
        default = cls()
        return cls(
            snapshot_dir=Path(os.getenv("CG_SNAPSHOT_DIR", str(default.snapshot_dir))),
            host=os.getenv("CG_HTTP_HOST", default.host),
            port=_env_int("CG_HTTP_PORT", default.port),
            log_level=os.getenv("CG_LOG_LEVEL", default.log_level).upper(),
        )
