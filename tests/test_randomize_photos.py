import subprocess

import pytest
from PIL import Image

import randomize_photos
from conftest import FakeRotator
from randomize_photos import (
    ExiftoolRotator,
    ImageMagickRotator,
    PlainCopy,
    discover_photos,
    select_rotator,
    stage_images,
    staged_name,
)
from slideshow_errors import ValidationError


def test_staged_name_is_four_digit_one_indexed():
    assert staged_name(1) == "0001.jpg"
    assert staged_name(42) == "0042.jpg"
    assert sorted(staged_name(i) for i in (10, 9, 100, 1)) == [
        "0001.jpg", "0009.jpg", "0010.jpg", "0100.jpg",
    ]


def test_discover_photos_immediate_children_only(tmp_path, make_images):
    src = tmp_path / "photos"
    make_images(["a.jpg", "B.JPEG", "c.png", "d.PNG"], src)
    make_images(["nested.jpg"], src / "sub")
    (src / "notes.txt").write_text("not a photo")
    (src / "movie.gif").write_bytes(b"GIF89a")

    names = [p.name for p in discover_photos(src)]
    assert names == ["a.jpg", "B.JPEG", "c.png", "d.PNG"]


def test_no_images_is_a_validation_error(tmp_path, make_images):
    src = tmp_path / "photos"
    make_images(["nested.jpg"], src / "sub")
    with pytest.raises(ValidationError):
        stage_images(src, tmp_path / "work", rotator=FakeRotator())


def test_missing_directory_is_a_validation_error(tmp_path):
    with pytest.raises(ValidationError):
        stage_images(tmp_path / "missing", tmp_path / "work", rotator=FakeRotator())


def test_stage_images_is_a_permutation_and_sources_untouched(tmp_path, make_images):
    sources = make_images([f"img_{i}.jpg" for i in range(6)])
    before = {p.name: p.read_bytes() for p in sources}
    work = tmp_path / "work"

    staged = stage_images(sources[0].parent, work, rotator=PlainCopy(), seed=7)

    assert [p.name for p in staged] == [staged_name(i) for i in range(1, 7)]
    assert sorted(p.read_bytes() for p in staged) == sorted(before.values())
    assert {p.name: p.read_bytes() for p in sources} == before


def test_seed_fixes_the_order(tmp_path, make_images):
    sources = make_images([f"img_{i}.jpg" for i in range(8)])
    first = stage_images(sources[0].parent, tmp_path / "w1", rotator=PlainCopy(), seed=3)
    second = stage_images(sources[0].parent, tmp_path / "w2", rotator=PlainCopy(), seed=3)
    assert [p.read_bytes() for p in first] == [p.read_bytes() for p in second]


def test_png_sources_become_real_jpegs(tmp_path, make_images):
    src = make_images(["shot.png"])[0]
    staged = stage_images(src.parent, tmp_path / "work", rotator=PlainCopy())
    with Image.open(staged[0]) as img:
        assert img.format == "JPEG"
    assert staged[0].name == "0001.jpg"


def test_rotator_receives_every_image(tmp_path, make_images):
    sources = make_images(["a.jpg", "b.jpg", "c.jpg"])
    rotator = FakeRotator()
    stage_images(sources[0].parent, tmp_path / "work", rotator=rotator)
    assert sorted(s.name for s, _ in rotator.calls) == ["a.jpg", "b.jpg", "c.jpg"]
    assert sorted(d.name for _, d in rotator.calls) == ["0001.jpg", "0002.jpg", "0003.jpg"]


def test_rotation_failure_falls_back_to_plain_copy(tmp_path, make_images):
    sources = make_images(["a.jpg"])

    class Broken:
        name = "broken"

        def apply(self, source, dest):
            raise subprocess.CalledProcessError(1, ["exiftool"])

    staged = stage_images(sources[0].parent, tmp_path / "work", rotator=Broken())
    assert staged[0].read_bytes() == sources[0].read_bytes()


@pytest.mark.parametrize("installed,expected", [
    ({"exiftool", "magick", "convert"}, "exiftool"),
    ({"magick", "convert"}, "ImageMagick v7"),
    ({"convert"}, "ImageMagick v6"),
    (set(), "none"),
])
def test_select_rotator_preference(installed, expected):
    rotator = select_rotator(lambda tool: f"/usr/bin/{tool}" if tool in installed else None)
    assert rotator.name == expected


def test_exiftool_rotator_strips_orientation_on_the_copy(tmp_path, make_images, monkeypatch):
    src = make_images(["a.jpg"])[0]
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(randomize_photos.subprocess, "run", fake_run)
    dest = tmp_path / "0001.jpg"
    ExiftoolRotator().apply(src, dest)

    assert dest.read_bytes() == src.read_bytes()
    assert calls == [["exiftool", "-overwrite_original", "-Orientation=", "-n", "-q", str(dest)]]


def test_imagemagick_rotator_auto_orients(tmp_path, monkeypatch):
    calls = []
    monkeypatch.setattr(randomize_photos.subprocess, "run",
                        lambda cmd, **kw: calls.append(cmd))
    ImageMagickRotator("magick", "ImageMagick v7").apply(tmp_path / "in.png", tmp_path / "0001.jpg")
    assert calls == [["magick", str(tmp_path / "in.png"), "-auto-orient",
                      str(tmp_path / "0001.jpg")]]


def test_unreadable_png_is_skipped(tmp_path, make_images):
    sources = make_images(["a.jpg", "b.jpg"])
    (sources[0].parent / "broken.png").write_bytes(b"")

    staged = stage_images(sources[0].parent, tmp_path / "work", rotator=PlainCopy(), seed=5)

    assert [p.name for p in staged] == ["0001.jpg", "0002.jpg"]
    assert sorted(p.read_bytes() for p in staged) == sorted(p.read_bytes() for p in sources)
    assert sorted(p.name for p in (tmp_path / "work").iterdir()) == ["0001.jpg", "0002.jpg"]


def test_only_unreadable_images_is_a_validation_error(tmp_path):
    src = tmp_path / "photos"
    src.mkdir()
    (src / "empty.png").write_bytes(b"")
    (src / "garbage.png").write_bytes(b"not an image")
    with pytest.raises(ValidationError):
        stage_images(src, tmp_path / "work", rotator=PlainCopy())
