import math

import pytest

from slideshow_timeline import reconcile_timeline


@pytest.mark.parametrize("count,duration", [(1, 5), (3, 5), (17, 2), (250, 7)])
def test_no_audio_video_is_count_times_duration(count, duration):
    t = reconcile_timeline(count, base_duration=duration)
    assert t.per_image_duration == duration
    assert t.video_duration == count * duration
    assert t.audio_filter is None


@pytest.mark.parametrize("count,audio", [(3, 40), (1, 16), (7, 100), (4, 21)])
def test_extend_to_audio(count, audio):
    t = reconcile_timeline(count, base_duration=5, audio_duration=audio,
                           has_audio=True, extend_to_audio=True)
    assert t.per_image_duration == math.ceil(audio / count)
    assert t.video_duration == count * t.per_image_duration
    assert t.video_duration >= audio
    assert t.extended


def test_extend_ignored_when_audio_already_fits():
    t = reconcile_timeline(10, base_duration=5, audio_duration=30,
                           has_audio=True, extend_to_audio=True)
    assert t.per_image_duration == 5
    assert t.video_duration == 50
    assert not t.extended


def test_three_images_forty_seconds_extended():
    t = reconcile_timeline(3, base_duration=5, audio_duration=40,
                           has_audio=True, extend_to_audio=True)
    assert t.per_image_duration == 14
    assert t.video_duration == 42


@pytest.mark.parametrize("audio,video_images", [(7, 3), (4, 10), (14, 3)])
def test_loop_audio_count_covers_video(audio, video_images):
    t = reconcile_timeline(video_images, base_duration=5, audio_duration=audio,
                           has_audio=True, loop_audio=True)
    assert t.loop_count == math.ceil(t.video_duration / audio)
    assert t.loop_count * audio >= t.video_duration


def test_loop_filter_sized_to_sample_count():
    t = reconcile_timeline(3, base_duration=5, audio_duration=7,
                           has_audio=True, loop_audio=True)
    assert t.loop_count == 3
    assert t.audio_filter == "aloop=loop=2:size=308700"


def test_loop_filter_uses_probed_sample_rate():
    t = reconcile_timeline(3, base_duration=5, audio_duration=7, has_audio=True,
                           loop_audio=True, sample_rate=48000)
    assert t.audio_filter == "aloop=loop=2:size=336000"


def test_no_loop_without_flag():
    t = reconcile_timeline(3, base_duration=5, audio_duration=7, has_audio=True)
    assert t.loop_count == 1
    assert t.audio_filter is None


def test_fade_out_when_audio_longer_than_video():
    t = reconcile_timeline(3, base_duration=5, audio_duration=100, has_audio=True)
    assert t.video_duration == 15
    assert t.fade_start == 12
    assert t.audio_filter == "afade=t=out:st=12:d=3"


def test_fractional_fade():
    t = reconcile_timeline(3, base_duration=5, audio_duration=100, has_audio=True,
                           fade_duration=2.5)
    assert t.audio_filter == "afade=t=out:st=12.5:d=2.5"


def test_fade_longer_than_video_is_clamped():
    t = reconcile_timeline(2, base_duration=5, audio_duration=100, has_audio=True,
                           fade_duration=20)
    assert t.fade_start == 0
    assert t.fade_length == 10
    assert t.audio_filter == "afade=t=out:st=0:d=10"


def test_zero_fade_disables_fade():
    t = reconcile_timeline(3, base_duration=5, audio_duration=100, has_audio=True,
                           fade_duration=0)
    assert t.audio_filter is None


def test_unknown_audio_duration_disables_audio_adjustments():
    t = reconcile_timeline(3, base_duration=5, audio_duration=0, has_audio=True,
                           loop_audio=True, extend_to_audio=True)
    assert t.video_duration == 15
    assert t.loop_count == 1
    assert t.fade_start is None
    assert t.audio_filter is None


def test_audio_duration_ignored_without_audio():
    t = reconcile_timeline(3, base_duration=5, audio_duration=40,
                           extend_to_audio=True, loop_audio=True)
    assert t.video_duration == 15
    assert t.audio_duration == 0
    assert t.audio_filter is None


@pytest.mark.parametrize("kwargs", [
    {"image_count": 0},
    {"image_count": 3, "base_duration": 0},
    {"image_count": 3, "fade_duration": -1},
])
def test_invalid_inputs_rejected(kwargs):
    with pytest.raises(ValueError):
        reconcile_timeline(**kwargs)
