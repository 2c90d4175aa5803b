"""
Timing arithmetic for the slideshow: per-image duration, total length, and
the audio loop / fade-out chain that fits the soundtrack to the video.

All durations are whole seconds except the fade, which may be fractional.
"""

import math
from dataclasses import dataclass
from typing import Optional

DEFAULT_IMAGE_DURATION = 5
DEFAULT_FADE_DURATION = 3.0
DEFAULT_SAMPLE_RATE = 44100


@dataclass
class Timeline:
    image_count: int
    per_image_duration: int
    video_duration: int
    audio_duration: int = 0
    has_audio: bool = False
    loop_audio: bool = False
    extend_to_audio: bool = False
    fade_duration: float = DEFAULT_FADE_DURATION
    sample_rate: int = DEFAULT_SAMPLE_RATE
    loop_count: int = 1
    fade_start: Optional[float] = None
    fade_length: float = 0.0
    extended: bool = False

    @property
    def audio_filter(self) -> Optional[str]:
        """The -af chain, or None when the audio is used as-is."""
        parts = []
        if self.loop_count > 1:
            size = self.audio_duration * self.sample_rate
            parts.append(f"aloop=loop={self.loop_count - 1}:size={size}")
        if self.fade_start is not None:
            parts.append(f"afade=t=out:st={_fmt(self.fade_start)}:d={_fmt(self.fade_length)}")
        return ",".join(parts) if parts else None


def _fmt(value: float) -> str:
    return f"{value:g}"


def reconcile_timeline(image_count: int,
                       base_duration: int = DEFAULT_IMAGE_DURATION,
                       audio_duration: int = 0,
                       has_audio: bool = False,
                       loop_audio: bool = False,
                       extend_to_audio: bool = False,
                       fade_duration: float = DEFAULT_FADE_DURATION,
                       sample_rate: int = DEFAULT_SAMPLE_RATE) -> Timeline:
    """
    Resolve per-image and total duration against the soundtrack.

    An audio_duration of 0 means the length could not be measured; loop,
    extend and fade are then skipped and the track is simply trimmed.
    """
    if image_count < 1:
        raise ValueError(f"image_count must be >= 1, got {image_count}")
    if base_duration < 1:
        raise ValueError(f"base_duration must be >= 1, got {base_duration}")
    if fade_duration < 0:
        raise ValueError(f"fade_duration must be >= 0, got {fade_duration}")

    audio_known = has_audio and audio_duration > 0
    per_image = base_duration
    video_duration = image_count * base_duration
    extended = False

    if audio_known and extend_to_audio and audio_duration > video_duration:
        per_image = math.ceil(audio_duration / image_count)
        video_duration = image_count * per_image
        extended = True

    timeline = Timeline(
        image_count=image_count,
        per_image_duration=per_image,
        video_duration=video_duration,
        audio_duration=audio_duration if has_audio else 0,
        has_audio=has_audio,
        loop_audio=loop_audio,
        extend_to_audio=extend_to_audio,
        fade_duration=fade_duration,
        sample_rate=sample_rate,
        extended=extended,
    )

    if audio_known and loop_audio and audio_duration < video_duration:
        timeline.loop_count = math.ceil(video_duration / audio_duration)

    if audio_known and audio_duration > video_duration and fade_duration > 0:
        # Clamp so a fade longer than the video starts at 0 instead of going negative.
        timeline.fade_length = min(fade_duration, video_duration)
        timeline.fade_start = max(video_duration - fade_duration, 0)

    return timeline
