"""
randomize_photos.py — Randomize, rename and auto-rotate photos for the slideshow.

Reads the immediate children of a source directory (.jpg / .jpeg / .png,
any case) and writes shuffled, sequentially numbered JPEG copies into a
working directory:
    0001.jpg, 0002.jpg, 0003.jpg, ...

EXIF orientation is handled by the first tool found on PATH:
    exiftool  →  magick (ImageMagick 7)  →  convert (ImageMagick 6)
Without any of them the copies are left unrotated.  PNG sources are
re-encoded to JPEG with Pillow whenever a plain copy is made.

The source files are never modified.
"""

import logging
import random
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from PIL import Image, UnidentifiedImageError

from slideshow_errors import ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}
JPEG_EXTENSIONS = {".jpg", ".jpeg"}
NUM_WIDTH = 4
STAGED_SUFFIX = ".jpg"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def discover_photos(directory: Path) -> List[Path]:
    """Return sorted list of image files directly inside a directory."""
    photos = [
        f for f in directory.iterdir()
        if f.is_file() and f.suffix.lower() in IMAGE_EXTENSIONS
    ]
    photos.sort(key=lambda p: p.name.lower())
    return photos


def staged_name(index: int) -> str:
    """1-indexed, zero-padded name so lexical order equals numeric order."""
    return f"{index:0{NUM_WIDTH}d}{STAGED_SUFFIX}"


def copy_as_jpeg(source: Path, dest: Path) -> Path:
    """Copy a JPEG byte-for-byte; re-encode anything else to JPEG."""
    if source.suffix.lower() in JPEG_EXTENSIONS:
        shutil.copy2(source, dest)
    else:
        with Image.open(source) as img:
            img.convert("RGB").save(dest, "JPEG", quality=95)
    return dest


# ---------------------------------------------------------------------------
# Rotation tools
# ---------------------------------------------------------------------------
class PlainCopy:
    """No rotation tool available: copies are left as shot."""

    name = "none"

    def apply(self, source: Path, dest: Path) -> Path:
        return copy_as_jpeg(source, dest)


class ExiftoolRotator:
    name = "exiftool"

    def __init__(self, binary: str = "exiftool"):
        self.binary = binary

    def apply(self, source: Path, dest: Path) -> Path:
        copy_as_jpeg(source, dest)
        subprocess.run(
            [self.binary, "-overwrite_original", "-Orientation=", "-n", "-q", str(dest)],
            check=True, capture_output=True,
        )
        return dest


class ImageMagickRotator:
    def __init__(self, binary: str, name: str):
        self.binary = binary
        self.name = name

    def apply(self, source: Path, dest: Path) -> Path:
        subprocess.run(
            [self.binary, str(source), "-auto-orient", str(dest)],
            check=True, capture_output=True,
        )
        return dest


def select_rotator(which: Callable[[str], Optional[str]] = shutil.which):
    """Pick the orientation tool by fixed preference order."""
    if which("exiftool"):
        logger.info("Using exiftool for EXIF-based rotation")
        return ExiftoolRotator()
    if which("magick"):
        logger.info("Using ImageMagick v7 for EXIF-based rotation")
        return ImageMagickRotator("magick", "ImageMagick v7")
    if which("convert"):
        logger.info("Using ImageMagick v6 for EXIF-based rotation")
        return ImageMagickRotator("convert", "ImageMagick v6")
    logger.warning("Neither exiftool nor ImageMagick found. Installing one is recommended.")
    logger.warning("   Install with: sudo apt install exiftool  OR  sudo apt install imagemagick")
    logger.warning("   Continuing without auto-rotation...")
    return PlainCopy()


# ---------------------------------------------------------------------------
# Main Logic
# ---------------------------------------------------------------------------
def stage_images(source_dir: Path, work_dir: Path, rotator=None,
                 seed: Optional[int] = None) -> List[Path]:
    """
    Shuffle the photos of ``source_dir`` and write numbered copies into
    ``work_dir``.  Returns the staged paths in display order.  Files Pillow
    cannot read are skipped with a warning.
    """
    if not source_dir.is_dir():
        raise ValidationError(f"Directory '{source_dir}' does not exist")

    all_photos = discover_photos(source_dir)
    if not all_photos:
        raise ValidationError(f"No images found in {source_dir}")

    logger.info("Found %d images", len(all_photos))

    ordered = list(all_photos)
    random.Random(seed).shuffle(ordered)

    rotator = rotator or select_rotator()
    fallback = PlainCopy()
    work_dir.mkdir(parents=True, exist_ok=True)

    staged: List[Path] = []
    total = len(ordered)
    for i, photo in enumerate(ordered, start=1):
        dest = work_dir / staged_name(len(staged) + 1)
        logger.debug("Processing %d/%d: %s -> %s", i, total, photo.name, dest.name)
        try:
            try:
                rotator.apply(photo, dest)
            except (subprocess.CalledProcessError, OSError) as exc:
                logger.warning("%s failed on %s (%s); copying unrotated",
                               rotator.name, photo.name, exc)
                fallback.apply(photo, dest)
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("Skipping unreadable image %s: %s", photo.name, exc)
            dest.unlink(missing_ok=True)
            continue
        staged.append(dest)

    if not staged:
        raise ValidationError(f"No readable images found in {source_dir}")

    logger.info("Staged %d images in %s", len(staged), work_dir)
    return staged

