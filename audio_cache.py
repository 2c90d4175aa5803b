"""
audio_cache.py — On-disk cache of downloaded music tracks.

Each cached track lives at  <cache_dir>/<key>.mp3 .  There is no index file;
existence on disk is the only bookkeeping.  The key is the 11-character
YouTube video id when one can be extracted from the URL, otherwise the first
11 hex characters of the SHA-256 of the raw URL string.
"""

import hashlib
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "create-slideshow" / "audio"
CACHE_SUFFIX = ".mp3"
KEY_LENGTH = 11

VIDEO_ID_PATTERNS = [
    re.compile(r"youtube\.com/watch\?(?:.*&)?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/(?:shorts|embed)/([A-Za-z0-9_-]{11})"),
    re.compile(r"^([A-Za-z0-9_-]{11})$"),
]


def cache_key_for(url: str) -> str:
    """Derive the cache key for a track URL (or bare video id)."""
    for pattern in VIDEO_ID_PATTERNS:
        m = pattern.search(url)
        if m:
            return m.group(1)
    # Unrelated URLs may collide once truncated; accepted.
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:KEY_LENGTH]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------
@dataclass
class CacheEntry:
    key: str
    path: Path
    size: int
    modified: float


@dataclass
class CacheStats:
    directory: Path
    count: int = 0
    total_size: int = 0
    recent_entries: List[CacheEntry] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Cache store
# ---------------------------------------------------------------------------
class AudioCache:
    """Maps a track key to a cached audio file under ``cache_dir``."""

    def __init__(self, cache_dir: Path = DEFAULT_CACHE_DIR):
        self.cache_dir = Path(cache_dir)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}{CACHE_SUFFIX}"

    def lookup(self, key: str) -> Optional[Path]:
        path = self.path_for(key)
        return path if path.is_file() else None

    def store(self, key: str, data: bytes) -> Path:
        """
        Write (or overwrite) the entry for ``key``.  The bytes land in a
        sibling temp file first and are renamed into place, so a reader never
        sees a half-written track.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".part",
                                        dir=self.cache_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Cached %d bytes under %s", len(data), path.name)
        return path

    def entries(self) -> List[CacheEntry]:
        if not self.cache_dir.is_dir():
            return []
        result = []
        for f in self.cache_dir.glob(f"*{CACHE_SUFFIX}"):
            if not f.is_file():
                continue
            st = f.stat()
            result.append(CacheEntry(key=f.stem, path=f, size=st.st_size,
                                     modified=st.st_mtime))
        return result

    def clear(self) -> int:
        """Delete every cached track.  Returns the number of files removed."""
        removed = 0
        for entry in self.entries():
            entry.path.unlink()
            removed += 1
        if removed:
            logger.info("Cleared %d cached audio files from %s", removed, self.cache_dir)
        return removed

    def stats(self, recent: int = 5) -> CacheStats:
        entries = self.entries()
        entries.sort(key=lambda e: e.modified, reverse=True)
        return CacheStats(
            directory=self.cache_dir,
            count=len(entries),
            total_size=sum(e.size for e in entries),
            recent_entries=entries[:recent],
        )
