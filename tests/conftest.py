import shutil
from pathlib import Path
from types import SimpleNamespace

import pytest
from PIL import Image

from audio_cache import AudioCache
from slideshow_errors import DownloadFailure, EncodeFailure


class FakeRunner:
    """Stand-in for FFmpegRunner: records arguments, writes the output file."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []
        self.concat_inputs = []

    def run(self, args, desc="ffmpeg"):
        args = list(args)
        self.calls.append(args)
        if "concat" in args:
            listing = Path(args[args.index("-i") + 1])
            self.concat_inputs.append((listing, listing.read_text(encoding="utf-8")))
        if self.fail:
            raise EncodeFailure(f"{desc} failed", returncode=1, stderr="boom")
        Path(args[-1]).write_bytes(b"fake media")
        return SimpleNamespace(returncode=0, stdout="", stderr="")


class FakeDownloader:
    def __init__(self, failing=(), available=True):
        self.failing = set(failing)
        self._available = available
        self.calls = []

    def available(self):
        return self._available

    def download(self, url, work_dir):
        self.calls.append(url)
        if url in self.failing:
            raise DownloadFailure(f"Failed to download audio from {url}")
        out = Path(work_dir) / f"download_{len(self.calls)}.mp3"
        out.write_bytes(f"audio:{url}".encode())
        return out


class FakeRotator:
    name = "fake"

    def __init__(self):
        self.calls = []

    def apply(self, source, dest):
        self.calls.append((source, dest))
        shutil.copyfile(source, dest)
        return dest


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def cache(tmp_path):
    return AudioCache(tmp_path / "cache")


@pytest.fixture
def make_images(tmp_path):
    """Factory writing small distinct images into a directory."""

    def _make(names, directory=None):
        directory = Path(directory or tmp_path / "photos")
        directory.mkdir(parents=True, exist_ok=True)
        paths = []
        for i, name in enumerate(names):
            path = directory / name
            fmt = "PNG" if path.suffix.lower() == ".png" else "JPEG"
            Image.new("RGB", (8, 6), (i * 40 % 256, 80, 160)).save(path, fmt)
            paths.append(path)
        return paths

    return _make
