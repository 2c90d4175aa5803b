"""
Join the resolved music tracks into one soundtrack and measure it.

One track is adopted as-is (renamed, never re-encoded).  Several tracks are
stream-copied end to end with the ffmpeg concat demuxer.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from mutagen import File as MutagenFile
from mutagen import MutagenError

from ffmpeg_builder import FFmpegRunner, get_duration, write_concat_list
from slideshow_timeline import DEFAULT_SAMPLE_RATE

logger = logging.getLogger(__name__)

COMBINED_STEM = "combined_audio"
CONCAT_LIST_NAME = "concat_list.txt"


@dataclass
class AudioTrack:
    path: Path
    duration: int = 0          # whole seconds, 0 when unknown
    sample_rate: int = DEFAULT_SAMPLE_RATE


def _mutagen_info(path: Path) -> Tuple[Optional[float], Optional[int]]:
    try:
        f = MutagenFile(str(path))
    except (MutagenError, OSError) as exc:
        logger.debug("mutagen could not read %s: %s", path.name, exc)
        return None, None
    if f is None or not hasattr(f, "info"):
        return None, None
    length = getattr(f.info, "length", None)
    rate = getattr(f.info, "sample_rate", None)
    return length, rate


def probe_audio(path: Path) -> Tuple[int, int]:
    """
    Return (duration in whole seconds, sample rate).  Tries mutagen, then the
    ffmpeg banner.  When both fail the duration is 0 and callers skip every
    duration-dependent feature.
    """
    length, rate = _mutagen_info(path)
    if not length:
        try:
            length = get_duration(path)
        except (RuntimeError, OSError) as exc:
            logger.warning("Could not determine audio duration of %s: %s", path.name, exc)
            length = 0
    return int(length or 0), int(rate or DEFAULT_SAMPLE_RATE)


def assemble_audio(tracks: Sequence[Path], work_dir: Path,
                   runner: Optional[FFmpegRunner] = None) -> AudioTrack:
    """
    Produce a single soundtrack in ``work_dir`` from ``tracks`` (in order).
    Per-track files are removed once the concatenation succeeds.
    """
    if not tracks:
        raise ValueError("No audio tracks to assemble")

    if len(tracks) == 1:
        src = Path(tracks[0])
        output = work_dir / f"{COMBINED_STEM}{src.suffix.lower() or '.mp3'}"
        src.rename(output)
    else:
        logger.info("Combining %d audio tracks...", len(tracks))
        runner = runner or FFmpegRunner()
        list_path = write_concat_list(tracks, work_dir / CONCAT_LIST_NAME)
        output = work_dir / f"{COMBINED_STEM}.mp3"
        runner.run(["-f", "concat", "-safe", "0", "-i", str(list_path),
                    "-c", "copy", str(output)], desc="audio concat")
        for t in tracks:
            Path(t).unlink(missing_ok=True)
        list_path.unlink(missing_ok=True)
        logger.info("Audio tracks combined successfully")

    duration, sample_rate = probe_audio(output)
    logger.info("Audio duration: %ds", duration)
    return AudioTrack(path=output, duration=duration, sample_rate=sample_rate)
