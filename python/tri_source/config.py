"""
Source Configuration - Centralized settings for a gather run.

Uses environment variables with sensible defaults. Values are validated
once at construction so the aggregation core never re-checks them.
"""

import os
from dataclasses import dataclass, field
from typing import Set

from .errors import ConfigError


MR_KINDS = ("mru", "mrw", "mrr", "mrd")
BUFFER_ORDERS = ("asc", "desc")

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class SourceConfig:
    """
    Configuration for the three-source aggregation.

    Defaults match the plugin's documented parameters.
    """

    # --- Sources ---
    enable_buffer: bool = True
    enable_mr: bool = True
    enable_file_rec: bool = True

    # --- Walker ---
    ignored_directories: Set[str] = field(default_factory=lambda: {".git"})
    expand_symbolic_link: bool = False

    # --- Chunking ---
    chunk_size: int = 1000       # First emission threshold
    chunk_growth: int = 10       # Threshold multiplier after the first emission
    stream_buffer: int = 1       # Batches the push channel holds before blocking

    # --- MRU ---
    mr_kind: str = "mru"
    mr_timeout_ms: int = 1000

    # --- Presentation ---
    buffer_orderby: str = "desc"
    dedup: bool = True
    show_source_prefix: bool = True

    def __post_init__(self):
        """Normalize collections and reject values the core cannot honor."""
        self.ignored_directories = set(self.ignored_directories)

        if self.chunk_size < 1:
            raise ConfigError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.chunk_growth < 1:
            raise ConfigError(f"chunk_growth must be >= 1, got {self.chunk_growth}")
        if self.stream_buffer < 1:
            raise ConfigError(f"stream_buffer must be positive, got {self.stream_buffer}")
        if self.mr_kind not in MR_KINDS:
            raise ConfigError(
                f"mr_kind must be one of {', '.join(MR_KINDS)}, got {self.mr_kind!r}"
            )
        if self.buffer_orderby not in BUFFER_ORDERS:
            raise ConfigError(
                f"buffer_orderby must be 'asc' or 'desc', got {self.buffer_orderby!r}"
            )
        if self.mr_timeout_ms <= 0:
            raise ConfigError(f"mr_timeout_ms must be positive, got {self.mr_timeout_ms}")

    @property
    def mr_timeout(self) -> float:
        """MRU dispatch deadline in seconds."""
        return self.mr_timeout_ms / 1000.0

    @classmethod
    def from_env(cls) -> "SourceConfig":
        """
        Create config from environment variables.

        Supported env vars:
            TRI_SOURCE_ENABLE_BUFFER / _ENABLE_MR / _ENABLE_FILE_REC: booleans
            TRI_SOURCE_IGNORED_DIRECTORIES: Comma-separated directory names
            TRI_SOURCE_CHUNK_SIZE: Base batch size for the walker
            TRI_SOURCE_EXPAND_SYMBOLIC_LINK: Follow symlinks while walking
            TRI_SOURCE_MR_KIND: One of mru, mrw, mrr, mrd
            TRI_SOURCE_MR_TIMEOUT_MS: MRU dispatch deadline
            TRI_SOURCE_BUFFER_ORDERBY: asc or desc
            TRI_SOURCE_DEDUP: Deduplicate across sources
            TRI_SOURCE_SHOW_SOURCE_PREFIX: Prefix items with their source tag
        """
        kwargs = {}

        for name in (
            "enable_buffer",
            "enable_mr",
            "enable_file_rec",
            "expand_symbolic_link",
            "dedup",
            "show_source_prefix",
        ):
            if (value := os.environ.get(f"TRI_SOURCE_{name.upper()}")) is not None:
                kwargs[name] = value.strip().lower() in _TRUE_VALUES

        if ignored := os.environ.get("TRI_SOURCE_IGNORED_DIRECTORIES"):
            kwargs["ignored_directories"] = {
                d.strip() for d in ignored.split(",") if d.strip()
            }

        for name in ("chunk_size", "chunk_growth", "mr_timeout_ms"):
            if value := os.environ.get(f"TRI_SOURCE_{name.upper()}"):
                try:
                    kwargs[name] = int(value)
                except ValueError as e:
                    raise ConfigError(f"TRI_SOURCE_{name.upper()} is not an integer: {value!r}") from e

        if mr_kind := os.environ.get("TRI_SOURCE_MR_KIND"):
            kwargs["mr_kind"] = mr_kind.strip()

        if orderby := os.environ.get("TRI_SOURCE_BUFFER_ORDERBY"):
            kwargs["buffer_orderby"] = orderby.strip().lower()

        return cls(**kwargs)


# Singleton default config
_default_config: SourceConfig | None = None


def get_config() -> SourceConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = SourceConfig.from_env()
    return _default_config


def set_config(config: SourceConfig | None) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
