"""Exception hierarchy for the download cache.

Every error carries an optional ``context`` mapping that is rendered into
``str()`` so log lines stay self-describing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional


class DownloadCacheError(Exception):
    """Base class for all download cache errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message


class FetchError(DownloadCacheError):
    """Origin fetch failed, either with a non-200 status or at the transport level."""

    def __init__(self, identifier: str, status: Optional[int] = None, reason: Optional[str] = None) -> None:
        if status is not None:
            message = f"Response status code is {status}"
        else:
            message = f"Transport failure: {reason or 'unknown error'}"
        context: dict[str, Any] = {"identifier": identifier}
        if status is not None:
            context["status"] = status
        super().__init__(message, context)
        self.identifier = identifier
        self.status = status
        self.reason = reason

    @property
    def kind(self) -> str:
        return "status" if self.status is not None else "transport"


class StoreError(DownloadCacheError):
    """A local storage operation failed for a reason other than a missing entry."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message, {"path": str(path)} if path is not None else None)
        self.path = path


class EntryNotFound(DownloadCacheError):
    """Internal cache-miss signal; never surfaces from ``DownloadCache.fetch``."""

    def __init__(self, key: str) -> None:
        super().__init__("No cache entry", {"key": key})
        self.key = key


class StreamCancelledError(DownloadCacheError):
    """Delivered to tee branches when the caller closes its branch early."""


class ConfigurationError(DownloadCacheError):
    """Settings failed validation."""
