#!/usr/bin/env python3
"""
create_slideshow.py — Turn a directory of photos into an MP4 slideshow,
optionally with background music.

Usage:
    create-slideshow ~/Pictures
    create-slideshow ~/Pictures -m playlist.txt
    create-slideshow ~/Pictures -m "https://youtube.com/watch?v=dQw4w9WgXcQ"
    create-slideshow ~/Pictures -m background.mp3 --loop-audio
    create-slideshow ~/Pictures -m dQw4w9WgXcQ --extend-to-audio --fade-duration 5
    create-slideshow --show-cache
    create-slideshow --clear-cache

The source directory is never modified.  All intermediate files live in a
temporary working directory that is removed when the run ends, whether it
succeeded or not.
"""

import argparse
import contextlib
import logging
import shutil
import sys
import tempfile
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from audio_assembler import AudioTrack, assemble_audio
from audio_cache import DEFAULT_CACHE_DIR, AudioCache
from ffmpeg_builder import FFmpegRunner, render_slideshow
from music_resolver import YtDlpDownloader, classify_music_spec, resolve_music
from randomize_photos import stage_images
from slideshow_errors import (
    DependencyMissing,
    EncodeFailure,
    MusicResolutionError,
    UsageError,
    ValidationError,
)
from slideshow_timeline import (
    DEFAULT_FADE_DURATION,
    DEFAULT_IMAGE_DURATION,
    DEFAULT_SAMPLE_RATE,
    Timeline,
    reconcile_timeline,
)

logger = logging.getLogger("create_slideshow")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
WORK_DIR_PREFIX = "slideshow_temp_"
RENDER_NAME = "slideshow.mp4"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-5s  %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@dataclass
class SlideshowSettings:
    music: Optional[str] = None
    image_duration: int = DEFAULT_IMAGE_DURATION
    fade_duration: float = DEFAULT_FADE_DURATION
    loop_audio: bool = False
    extend_to_audio: bool = False
    output_dir: Path = Path.home()
    seed: Optional[int] = None
    dry_run: bool = False
    assume_yes: bool = False


def output_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"slideshow_{now:%Y%m%d_%H%M%S}.mp4"


def format_duration(seconds: int) -> str:
    m, s = divmod(int(seconds), 60)
    return f"{m:02d}:{s:02d}"


def _human_size(num: int) -> str:
    if num < 1024:
        return f"{num}B"
    size = num / 1024
    for unit in ("K", "M"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}G"


# ---------------------------------------------------------------------------
# Work area
# ---------------------------------------------------------------------------
@contextlib.contextmanager
def work_area(parent: Optional[Path] = None) -> Iterator[Path]:
    """Temporary working directory, removed on every exit path."""
    path = Path(tempfile.mkdtemp(prefix=WORK_DIR_PREFIX, dir=parent))
    try:
        yield path
    finally:
        logger.info("Cleaning up temporary files...")
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("Could not clean temp dir %s: %s", path, exc)


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------
def prepare_music(settings: SlideshowSettings, work_dir: Path, cache: AudioCache,
                  downloader, runner: FFmpegRunner) -> Optional[AudioTrack]:
    """
    Resolve and assemble the soundtrack.  Every failure here is non-fatal:
    the run carries on without music.
    """
    logger.info("Processing music...")
    try:
        spec = classify_music_spec(settings.music)
    except MusicResolutionError as exc:
        logger.error("%s", exc)
        return None

    if spec.needs_download and not downloader.available():
        logger.warning("yt-dlp is not installed. Music features require yt-dlp.")
        logger.warning("   Install with: pip install yt-dlp")
        logger.warning("   Continuing without music...")
        return None

    try:
        tracks = resolve_music(spec, work_dir, cache, downloader)
    except MusicResolutionError as exc:
        logger.error("%s", exc)
        return None

    try:
        return assemble_audio(tracks, work_dir, runner)
    except (EncodeFailure, DependencyMissing) as exc:
        logger.error("Failed to combine audio tracks: %s", exc)
        return None


def log_timeline(timeline: Timeline, base_duration: int):
    logger.info("Video duration: %ds", timeline.image_count * base_duration)
    if timeline.extended:
        logger.info("Extending slideshow to match audio duration: %ds",
                    timeline.audio_duration)
        logger.info("Adjusted duration per image: %d seconds",
                    timeline.per_image_duration)
    if timeline.loop_count > 1:
        logger.info("Looping audio %d times to match video duration", timeline.loop_count)
    if timeline.fade_start is not None:
        logger.info("Adding %gs fade out to audio", timeline.fade_length)
    logger.info("Each image will display for %d seconds", timeline.per_image_duration)


def build_slideshow(source_dir: Path, settings: SlideshowSettings,
                    cache: AudioCache, downloader=None,
                    runner: Optional[FFmpegRunner] = None,
                    rotator=None) -> Optional[Path]:
    """
    Full pipeline: music → audio assembly → image staging → timeline →
    encode.  Returns the output path, or None for a dry run.
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise ValidationError(f"Directory '{source_dir}' does not exist")

    runner = runner or FFmpegRunner()
    downloader = downloader or YtDlpDownloader()
    output_path = Path(settings.output_dir) / output_filename()
    t0 = time.time()

    with work_area() as work_dir:
        logger.info("Source: %s (read-only)", source_dir)
        logger.info("Working in: %s (temporary)", work_dir)
        logger.info("Output to: %s", output_path)

        audio: Optional[AudioTrack] = None
        if settings.music:
            logger.info("=" * 60)
            logger.info("MUSIC")
            logger.info("=" * 60)
            audio = prepare_music(settings, work_dir, cache, downloader, runner)

        logger.info("=" * 60)
        logger.info("STAGING IMAGES")
        logger.info("=" * 60)
        images = stage_images(source_dir, work_dir / "images", rotator=rotator,
                              seed=settings.seed)

        timeline = reconcile_timeline(
            image_count=len(images),
            base_duration=settings.image_duration,
            audio_duration=audio.duration if audio else 0,
            has_audio=audio is not None,
            loop_audio=settings.loop_audio,
            extend_to_audio=settings.extend_to_audio,
            fade_duration=settings.fade_duration,
            sample_rate=audio.sample_rate if audio else DEFAULT_SAMPLE_RATE,
        )
        log_timeline(timeline, settings.image_duration)

        if settings.dry_run:
            logger.info("Dry run: %d images, %s total, no video rendered.",
                        timeline.image_count, format_duration(timeline.video_duration))
            return None

        logger.info("=" * 60)
        logger.info("ENCODING")
        logger.info("=" * 60)
        rendered = render_slideshow(images, timeline, work_dir / RENDER_NAME, work_dir,
                                    audio_path=audio.path if audio else None,
                                    runner=runner)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(rendered), str(output_path))

    logger.info("=" * 60)
    logger.info("COMPLETE")
    logger.info("=" * 60)
    logger.info("Slideshow saved as: %s", output_path)
    logger.info("Original images in %s are untouched", source_dir)
    logger.info("Duration    : %s (%d seconds)", format_duration(timeline.video_duration),
                timeline.video_duration)
    logger.info("Render time : %.1fs", time.time() - t0)
    if audio is not None:
        logger.info("Background music added successfully")
    return output_path


# ---------------------------------------------------------------------------
# Cache commands
# ---------------------------------------------------------------------------
def show_cache_status(cache: AudioCache):
    if not cache.cache_dir.is_dir():
        print(f"Audio cache directory does not exist: {cache.cache_dir}")
        return
    stats = cache.stats()
    print(f"Audio cache location: {stats.directory}")
    print(f"Cached files: {stats.count}")
    print(f"Total size: {_human_size(stats.total_size)}")
    if stats.recent_entries:
        print()
        print("Recent files:")
        for entry in stats.recent_entries:
            stamp = datetime.fromtimestamp(entry.modified).strftime("%Y-%m-%d %H:%M")
            print(f"  {stamp}  {_human_size(entry.size):>7}  {entry.path.name}")


def clear_cache(cache: AudioCache):
    if not cache.cache_dir.is_dir():
        print("Cache directory does not exist.")
        return
    removed = cache.clear()
    if removed:
        print(f"Cleared {removed} cached audio files from {cache.cache_dir}")
        print("Cache cleared.")
    else:
        print("Cache is already empty.")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="create-slideshow",
        description="Create an MP4 slideshow from a directory of photos, "
                    "with optional background music."
    )
    parser.add_argument(
        "directory", nargs="?",
        help="Directory containing the photos (.jpg, .jpeg, .png)"
    )
    parser.add_argument(
        "-m", "--music", default=None, metavar="INPUT",
        help="YouTube URL(s), video ID(s), playlist file, or local audio file"
    )
    parser.add_argument(
        "--loop-audio", action="store_true",
        help="Loop audio if shorter than video"
    )
    parser.add_argument(
        "--extend-to-audio", action="store_true",
        help="Extend slideshow to match audio duration"
    )
    parser.add_argument(
        "--fade-duration", type=float, default=DEFAULT_FADE_DURATION, metavar="SEC",
        help="Audio fade duration in seconds (default: 3)"
    )
    parser.add_argument(
        "-d", "--duration", type=int, default=DEFAULT_IMAGE_DURATION, metavar="SEC",
        help="Seconds each image is shown (default: 5)"
    )
    parser.add_argument(
        "-o", "--output-dir", default=str(Path.home()), metavar="DIR",
        help="Directory the finished slideshow is written to (default: home)"
    )
    parser.add_argument(
        "--cache-dir", default=str(DEFAULT_CACHE_DIR), metavar="DIR",
        help="Audio cache directory (default: ~/.cache/create-slideshow/audio)"
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Random seed for reproducible image ordering"
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Resolve music and stage images, then print the timing without encoding"
    )
    parser.add_argument(
        "-y", "--yes", action="store_true",
        help="Do not ask for confirmation before starting"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log every external command"
    )
    parser.add_argument(
        "--clear-cache", action="store_true",
        help="Clear audio cache and exit"
    )
    parser.add_argument(
        "--show-cache", action="store_true",
        help="Show cache status and exit"
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> SlideshowSettings:
    if args.duration < 1:
        raise UsageError("--duration must be at least 1 second")
    if args.fade_duration < 0:
        raise UsageError("--fade-duration cannot be negative")
    return SlideshowSettings(
        music=args.music,
        image_duration=args.duration,
        fade_duration=args.fade_duration,
        loop_audio=args.loop_audio,
        extend_to_audio=args.extend_to_audio,
        output_dir=Path(args.output_dir).expanduser(),
        seed=args.seed,
        dry_run=args.dry_run,
        assume_yes=args.yes,
    )


def _confirm(settings: SlideshowSettings) -> bool:
    if settings.assume_yes or settings.dry_run or not sys.stdin.isatty():
        return True
    print("This run is NON-DESTRUCTIVE: the source directory is only read.")
    try:
        input("Press Enter to continue or Ctrl+C to cancel...")
    except EOFError:
        return False
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    cache = AudioCache(Path(args.cache_dir).expanduser())
    if args.clear_cache:
        clear_cache(cache)
        return 0
    if args.show_cache:
        show_cache_status(cache)
        return 0

    try:
        if not args.directory:
            raise UsageError("No directory specified")
        settings = settings_from_args(args)
    except UsageError as exc:
        parser.print_usage(sys.stderr)
        logger.error("%s", exc)
        return 1

    source_dir = Path(args.directory).expanduser().resolve()
    if not source_dir.is_dir():
        logger.error("Directory '%s' does not exist", args.directory)
        return 1

    try:
        if not _confirm(settings):
            logger.error("Cancelled.")
            return 1
        build_slideshow(source_dir, settings, cache)
    except (ValidationError, EncodeFailure, DependencyMissing) as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
