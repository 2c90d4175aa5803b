"""
FFmpeg helpers and the final slideshow encode.

The slideshow is produced with the concat demuxer: a manifest lists every
staged image with a `duration` directive, and a single ffmpeg pass scales,
pads, muxes the (optional) soundtrack and trims the result to the timeline
length.

Binary discovery checks, in order:
  1. System PATH
  2. imageio_ffmpeg bundled binary
"""

import functools
import logging
import os
import re
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from slideshow_errors import DependencyMissing, EncodeFailure

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
OUTPUT_WIDTH = 1920
OUTPUT_HEIGHT = 1080
VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"

MANIFEST_NAME = "input.txt"


# ---------------------------------------------------------------------------
# FFmpeg binary detection
# ---------------------------------------------------------------------------
def _find_ffmpeg() -> str:
    """
    Locate the ffmpeg binary.  Returns the command name or the full path of
    the imageio_ffmpeg bundle, or raises DependencyMissing.
    """
    if shutil.which("ffmpeg"):
        return "ffmpeg"

    try:
        import imageio_ffmpeg
        exe = imageio_ffmpeg.get_ffmpeg_exe()
        if exe and os.path.isfile(exe):
            return exe
    except (ImportError, RuntimeError):
        pass

    raise DependencyMissing(
        "ffmpeg not found.  Either install FFmpeg and add it to PATH, "
        "or install the imageio-ffmpeg package (pip install imageio-ffmpeg)."
    )


@functools.lru_cache(maxsize=1)
def get_ffmpeg_bin() -> str:
    return _find_ffmpeg()


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------
class FFmpegRunner:
    """Runs ffmpeg synchronously; a non-zero exit raises EncodeFailure."""

    def __init__(self, binary: Optional[str] = None):
        self._binary = binary

    @property
    def binary(self) -> str:
        if self._binary is None:
            self._binary = get_ffmpeg_bin()
        return self._binary

    def run(self, args: List[str], desc: str = "ffmpeg") -> subprocess.CompletedProcess:
        cmd = [self.binary, "-hide_banner", "-y"] + list(args)
        logger.debug("  %s: %s", desc, " ".join(cmd))
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            logger.error("  %s FAILED (rc=%d):\n%s", desc, result.returncode,
                         result.stderr[-2000:])
            raise EncodeFailure(f"{desc} failed: {result.stderr[-500:]}",
                                returncode=result.returncode,
                                stderr=result.stderr)
        return result


def get_duration(path: Path, binary: Optional[str] = None) -> float:
    """
    Get the duration of a media file in seconds by parsing the
    'Duration: HH:MM:SS.ss' line ffmpeg prints to stderr.  imageio_ffmpeg
    does not bundle ffprobe, so ffmpeg itself is used.
    """
    cmd = [binary or get_ffmpeg_bin(), "-hide_banner", "-i", str(path), "-f", "null", "-"]
    result = subprocess.run(cmd, capture_output=True, text=True)
    for line in result.stderr.splitlines():
        m = re.search(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)", line)
        if m:
            h, mins, s = float(m.group(1)), float(m.group(2)), float(m.group(3))
            return h * 3600 + mins * 60 + s
    raise RuntimeError(f"Could not determine duration of {path}")


# ---------------------------------------------------------------------------
# Concat demuxer files
# ---------------------------------------------------------------------------
def _quote_concat_path(path: Path) -> str:
    # concat demuxer: close the quote, emit an escaped quote, reopen.
    return "'" + str(path).replace("'", "'\\''") + "'"


def write_concat_list(paths: Iterable[Path], list_path: Path) -> Path:
    """Write a plain concat list (no durations), e.g. for audio stream copy."""
    lines = [f"file {_quote_concat_path(p)}" for p in paths]
    list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_path


def write_concat_manifest(images: Sequence[Path], per_image_duration: int,
                          manifest_path: Path) -> Path:
    """
    Write the slideshow manifest.  The concat demuxer ignores the duration of
    the final entry unless the file is listed once more, so the last image is
    repeated without a duration.
    """
    if not images:
        raise ValueError("No images to write into the manifest")
    lines = []
    for img in images:
        lines.append(f"file {_quote_concat_path(img)}")
        lines.append(f"duration {per_image_duration}")
    lines.append(f"file {_quote_concat_path(images[-1])}")
    manifest_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return manifest_path


# ---------------------------------------------------------------------------
# Encode parameters
# ---------------------------------------------------------------------------
def build_video_filter(width: int = OUTPUT_WIDTH, height: int = OUTPUT_HEIGHT) -> str:
    """Scale to fit preserving aspect ratio, pad with black, normalise pix_fmt."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease:eval=frame,"
        f"pad={width}:{height}:-1:-1:color=black,"
        f"format=yuv420p"
    )


def build_encode_args(manifest_path: Path, timeline, output_path: Path,
                      audio_path: Optional[Path] = None,
                      width: int = OUTPUT_WIDTH,
                      height: int = OUTPUT_HEIGHT) -> List[str]:
    """Build the ffmpeg argument list (without the binary) for the final encode."""
    args = ["-f", "concat", "-safe", "0", "-i", str(manifest_path)]
    if audio_path is not None:
        args += ["-i", str(audio_path)]

    args += ["-vf", build_video_filter(width, height)]

    audio_filter = timeline.audio_filter if audio_path is not None else None
    if audio_filter:
        args += ["-af", audio_filter]

    args += ["-c:v", VIDEO_CODEC, "-pix_fmt", "yuv420p"]

    if audio_path is not None:
        args += ["-map", "0:v:0", "-map", "1:a:0",
                 "-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE]
    else:
        args += ["-an"]

    args += ["-movflags", "+faststart"]
    args += ["-t", str(timeline.video_duration)]
    args.append(str(output_path))
    return args


# ---------------------------------------------------------------------------
# Final encode
# ---------------------------------------------------------------------------
def render_slideshow(images: Sequence[Path], timeline, output_path: Path,
                     work_dir: Path, audio_path: Optional[Path] = None,
                     runner: Optional[FFmpegRunner] = None) -> Path:
    """
    Write the manifest into ``work_dir`` and run the single encode pass.
    Raises EncodeFailure if ffmpeg exits non-zero.
    """
    runner = runner or FFmpegRunner()
    manifest = write_concat_manifest(images, timeline.per_image_duration,
                                     work_dir / MANIFEST_NAME)
    if audio_path is not None:
        logger.info("Adding background music to slideshow")
    args = build_encode_args(manifest, timeline, output_path, audio_path)
    runner.run(args, desc=f"slideshow encode ({len(images)} images)")
    return output_path
