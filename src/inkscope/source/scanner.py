"""Source-text scanning of ink scripts.

Finds knot and variable declarations directly in ``.ink`` source, so
files that have not been compiled yet still contribute knot names.
Line-anchored regular expressions only; no parsing.
"""

from __future__ import annotations

import hashlib
import re
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from inkscope.observability.logging import get_logger

log = get_logger(__name__)

DEFAULT_SOURCE_CACHE_TTL = 5 * 60.0

# === knot_name ===   /   == knot_name(param) ==   (functions excluded)
KNOT_DECLARATION = re.compile(
    r"^[ \t]*={2,}[ \t]*(?!function\b)([A-Za-z_]\w*)[ \t]*(?:\([^)\n]*\))?[ \t]*(?:={2,})?[ \t]*(?://.*)?\r?$",
    re.MULTILINE,
)
VARIABLE_DECLARATION = re.compile(r"^[ \t]*VAR[ \t]+([A-Za-z_]\w*)", re.MULTILINE)


def extract_knots(content: str) -> list[str]:
    """Knot names declared in ``content``, in file order."""
    return KNOT_DECLARATION.findall(content)


def extract_variables(content: str) -> list[str]:
    """Global variable names declared with ``VAR``, in file order."""
    return VARIABLE_DECLARATION.findall(content)


def find_knot_line(content: str, knot: str) -> int | None:
    """1-based line number of ``knot``'s declaration, or None."""
    for number, line in enumerate(content.splitlines(), start=1):
        match = KNOT_DECLARATION.match(line)
        if match and match.group(1) == knot:
            return number
    return None


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class SourceFileInfo:
    """Scan result for one source file.

    Attributes:
        file_path: Path the content was registered under.
        content: Full source text.
        knots: Declared knot names.
        variables: Declared variable names.
        content_hash: SHA-256 of the content.
        scanned_at: Clock reading when the file was (re)registered.
    """

    file_path: str
    content: str
    knots: list[str]
    variables: list[str]
    content_hash: str
    scanned_at: float = 0.0

    @classmethod
    def scan(cls, file_path: str, content: str, scanned_at: float = 0.0) -> SourceFileInfo:
        return cls(
            file_path=file_path,
            content=content,
            knots=extract_knots(content),
            variables=extract_variables(content),
            content_hash=content_hash(content),
            scanned_at=scanned_at,
        )


class SourceCache:
    """Per-file scan results, each valid for a fixed time.

    Args:
        ttl: Seconds an entry stays fresh.
        enabled: When False nothing is stored.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_SOURCE_CACHE_TTL,
        *,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[str, SourceFileInfo] = {}

    def add(self, file_path: str, content: str) -> SourceFileInfo:
        """Scan and store ``content`` under ``file_path``.

        Unchanged content reuses the previous scan and only refreshes its
        timestamp.
        """
        now = self._clock()
        previous = self._entries.get(file_path)
        if previous is not None and previous.content_hash == content_hash(content):
            previous.scanned_at = now
            return previous

        info = SourceFileInfo.scan(file_path, content, scanned_at=now)
        if self.enabled:
            self._entries[file_path] = info
        log.debug(
            "source_file_scanned",
            file=file_path,
            knots=len(info.knots),
            variables=len(info.variables),
        )
        return info

    def is_fresh(self, file_path: str) -> bool:
        if not self.enabled:
            return False
        entry = self._entries.get(file_path)
        if entry is None:
            return False
        return (self._clock() - entry.scanned_at) < self.ttl

    def get(self, file_path: str) -> SourceFileInfo | None:
        """Fresh entry for ``file_path``, or None."""
        return self._entries[file_path] if self.is_fresh(file_path) else None

    def remove(self, file_path: str) -> bool:
        return self._entries.pop(file_path, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __iter__(self) -> Iterator[SourceFileInfo]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def total_size(self) -> int:
        """Characters of source held in the cache."""
        return sum(len(entry.content) for entry in self._entries.values())
