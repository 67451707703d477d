from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True, slots=True)
class StagingEntry:
    name: str
    path: Path


@dataclass(slots=True)
class DownloadSummary:
    identifier: str
    key: str
    path: Path
    bytes_written: int
    content_length: Optional[int] = None
    from_cache: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "identifier": self.identifier,
            "key": self.key,
            "path": str(self.path),
            "bytes_written": self.bytes_written,
            "content_length": self.content_length,
            "from_cache": self.from_cache,
        }
