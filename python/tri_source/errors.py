"""
Error Handling - Centralized error policies and custom exceptions.

This module defines how different failures are treated while gathering:
which ones only drop an entry, a subtree or a source's result, and which
ones end the stream. Every decision is logged through one place.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class ErrorAction(Enum):
    """What to do when an error occurs."""
    SKIP = auto()    # Drop this entry / subtree / source result, keep going
    ABORT = auto()   # Stop the remaining stream


class TriSourceError(Exception):
    """Base exception for aggregation errors."""
    pass


class ConfigError(TriSourceError, ValueError):
    """Invalid configuration value."""
    pass


class SourceError(TriSourceError):
    """A source adapter could not produce its items."""
    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"[{source}] {message}")


class SourceTimeoutError(SourceError):
    """An external collaborator did not answer before its deadline."""
    def __init__(self, source: str, timeout: float):
        self.timeout = timeout
        super().__init__(source, f"no response within {timeout:.1f}s")


class SourceUnavailableError(SourceError):
    """The external collaborator could not be reached."""
    pass


class MalformedResponseError(SourceError):
    """The external collaborator answered with data of the wrong shape."""
    pass


class WalkError(TriSourceError):
    """Fatal filesystem failure while walking a directory."""
    def __init__(self, path: Path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot read directory {path}: {cause}")


@dataclass
class ErrorPolicy:
    """Policy for handling a specific error type."""
    action: ErrorAction
    log_level: int
    message_template: str = "{file}: {error}"


# Error type to policy mapping (first isinstance match wins)
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    PermissionError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Permission denied: {file}"
    ),
    FileNotFoundError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Entry vanished during walk: {file}"
    ),
    SourceTimeoutError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="{error}. Check that the MRU plugin is installed and loaded."
    ),
    MalformedResponseError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Malformed response: {error}"
    ),
    SourceError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Source failed: {error}"
    ),
    WalkError: ErrorPolicy(
        action=ErrorAction.ABORT,
        log_level=logging.ERROR,
        message_template="Walk aborted: {error}"
    ),
    OSError: ErrorPolicy(
        action=ErrorAction.ABORT,
        log_level=logging.ERROR,
        message_template="OS error: {file} - {error}"
    ),
}


def handle_error(
    error: Exception,
    file_path: Optional[Path] = None,
    context: str = ""
) -> ErrorAction:
    """
    Handle an error according to the defined policies.

    Args:
        error: The exception that occurred
        file_path: Path being processed (if applicable)
        context: Additional context for logging

    Returns:
        The action to take (SKIP or ABORT)
    """
    policy = None
    for error_type, p in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = p
            break

    # Unknown errors only cost the current source
    if policy is None:
        policy = ErrorPolicy(
            action=ErrorAction.SKIP,
            log_level=logging.ERROR,
            message_template="Unexpected error: {file} - {error}"
        )

    file_str = str(file_path) if file_path else "<unknown>"
    message = policy.message_template.format(file=file_str, error=str(error))
    if context:
        message = f"[{context}] {message}"

    logger.log(policy.log_level, message)

    return policy.action


@dataclass
class Diagnostic:
    """A failure surfaced to the consumer alongside the delivered batches."""
    source: str
    message: str
    fatal: bool = False

    @classmethod
    def from_error(cls, source: str, error: Exception, action: ErrorAction) -> "Diagnostic":
        return cls(source=source, message=str(error), fatal=action is ErrorAction.ABORT)

    def __str__(self) -> str:
        prefix = "fatal" if self.fatal else "warning"
        return f"[tri_source:{self.source}] {prefix}: {self.message}"
