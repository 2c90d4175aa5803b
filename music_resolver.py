"""
music_resolver.py — Turn a --music argument into local audio files.

Accepted inputs:
    background.mp3                          local audio file
    playlist.txt                            one URL or video id per line
    "https://youtube.com/watch?v=..."       single URL
    dQw4w9WgXcQ                             bare 11-character video id
    "URL1,URL2,ID3"                         comma-separated list

Remote tracks go through the audio cache; on a miss they are fetched with
yt-dlp (best available audio, extracted to mp3).
"""

import logging
import os
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from audio_cache import AudioCache, cache_key_for
from ffmpeg_builder import get_ffmpeg_bin
from slideshow_errors import DependencyMissing, DownloadFailure, MusicResolutionError

try:
    import yt_dlp
except ImportError:  # installed with the "music" extra
    yt_dlp = None

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac"}
VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
URL_RE = re.compile(r"^https?://", re.IGNORECASE)
TRAILING_COMMENT_RE = re.compile(r"\s+#.*$")
CANONICAL_URL = "https://youtube.com/watch?v={}"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
class MusicSpecKind(Enum):
    SINGLE_TRACK = "single"
    TRACK_LIST = "list"
    PLAYLIST_FILE = "playlist"
    LOCAL_FILE = "local"


@dataclass(frozen=True)
class MusicSpec:
    kind: MusicSpecKind
    raw: str
    entries: Tuple[str, ...] = ()

    @property
    def needs_download(self) -> bool:
        return self.kind is not MusicSpecKind.LOCAL_FILE


def _is_track_reference(item: str) -> bool:
    return bool(URL_RE.match(item) or VIDEO_ID_RE.match(item))


def classify_music_spec(raw: str) -> MusicSpec:
    """Decide once what kind of music input ``raw`` is."""
    value = raw.strip()
    path = Path(value).expanduser()
    if value and path.is_file():
        if path.suffix.lower() in AUDIO_EXTENSIONS:
            return MusicSpec(MusicSpecKind.LOCAL_FILE, raw, (str(path),))
        return MusicSpec(MusicSpecKind.PLAYLIST_FILE, raw, tuple(read_playlist(path)))

    items = [item.strip() for item in value.split(",") if item.strip()]
    if not items or not all(_is_track_reference(item) for item in items):
        raise MusicResolutionError(f"Invalid music input: {raw}")
    kind = MusicSpecKind.SINGLE_TRACK if len(items) == 1 else MusicSpecKind.TRACK_LIST
    return MusicSpec(kind, raw, tuple(items))


def read_playlist(path: Path) -> List[str]:
    """Read a playlist file: one entry per line, '#' comments and blanks ignored."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MusicResolutionError(f"Playlist '{path}' is not UTF-8 text") from exc

    entries = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        line = TRAILING_COMMENT_RE.sub("", line).strip()
        if line:
            entries.append(line)
    if not entries:
        raise MusicResolutionError(f"No valid URLs found in '{path}'")
    return entries


def normalize_track_url(entry: str) -> str:
    """Expand a bare video id to a full URL; anything else passes through."""
    entry = entry.strip()
    if VIDEO_ID_RE.match(entry):
        return CANONICAL_URL.format(entry)
    return entry


# ---------------------------------------------------------------------------
# Downloader
# ---------------------------------------------------------------------------
def _ffmpeg_location() -> Optional[str]:
    """Absolute path of the ffmpeg binary, or None to let yt-dlp search PATH."""
    exe = get_ffmpeg_bin()
    if os.path.isabs(exe):
        return exe
    return shutil.which(exe)


class YtDlpDownloader:
    """Fetches the best-quality audio of a URL as mp3 using yt-dlp."""

    def available(self) -> bool:
        return yt_dlp is not None

    def download(self, url: str, work_dir: Path) -> Path:
        if yt_dlp is None:
            raise DependencyMissing("yt-dlp is not installed (pip install yt-dlp)")

        stem = f"download_{cache_key_for(url)}"
        ydl_config = {
            "format": "bestaudio/best",
            "outtmpl": str(work_dir / f"{stem}.%(ext)s"),
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
            "postprocessors": [{
                "key": "FFmpegExtractAudio",
                "preferredcodec": "mp3",
                "preferredquality": "0",
            }],
        }
        ffmpeg_location = _ffmpeg_location()
        if ffmpeg_location:
            ydl_config["ffmpeg_location"] = ffmpeg_location
        try:
            with yt_dlp.YoutubeDL(ydl_config) as ydl:
                ydl.download([url])
        except yt_dlp.utils.DownloadError as exc:
            raise DownloadFailure(f"Failed to download audio from {url}: {exc}") from exc

        output = work_dir / f"{stem}.mp3"
        if not output.is_file():
            raise DownloadFailure(f"yt-dlp produced no mp3 for {url}")
        return output


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def fetch_track(url: str, dest: Path, cache: AudioCache, downloader) -> Path:
    """Copy the track for ``url`` to ``dest``, downloading only on a cache miss."""
    key = cache_key_for(url)
    cached = cache.lookup(key)
    if cached is not None:
        logger.info("Using cached audio: %s", cached.name)
        shutil.copyfile(cached, dest)
        return dest

    logger.info("Downloading audio from: %s", url)
    downloaded = downloader.download(url, dest.parent)
    stored = cache.store(key, downloaded.read_bytes())
    if downloaded != dest:
        downloaded.unlink(missing_ok=True)
    shutil.copyfile(stored, dest)
    logger.info("Downloaded successfully")
    return dest


def resolve_music(spec: MusicSpec, dest_dir: Path, cache: AudioCache,
                  downloader: Optional[object] = None) -> List[Path]:
    """
    Materialise every track of ``spec`` in ``dest_dir`` as audio_001.*,
    audio_002.*, ... in request order.  Tracks that fail are skipped; if none
    succeed MusicResolutionError is raised.
    """
    if spec.kind is MusicSpecKind.LOCAL_FILE:
        src = Path(spec.entries[0])
        logger.info("Using local audio file: %s", src)
        dest = dest_dir / f"audio_001{src.suffix.lower()}"
        shutil.copyfile(src, dest)
        return [dest]

    if spec.kind is MusicSpecKind.PLAYLIST_FILE:
        logger.info("Reading playlist from: %s", spec.raw)

    downloader = downloader or YtDlpDownloader()
    resolved: List[Path] = []
    for entry in spec.entries:
        url = normalize_track_url(entry)
        dest = dest_dir / f"audio_{len(resolved) + 1:03d}.mp3"
        try:
            resolved.append(fetch_track(url, dest, cache, downloader))
        except (DownloadFailure, DependencyMissing, OSError) as exc:
            logger.warning("Skipping track %s: %s", url, exc)

    if not resolved:
        raise MusicResolutionError("No audio files were successfully downloaded")
    return resolved
