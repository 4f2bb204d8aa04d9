"""
Pytest configuration and fixtures for osurate tests.
"""

from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
import soundfile

from osurate.settings import BatchSettings, Settings


SAMPLE_OSU_LINES = [
    "osu file format v14",
    "",
    "[General]",
    "AudioFilename: audio.wav",
    "AudioLeadIn: 0",
    "PreviewTime: -1",
    "Countdown: 0",
    "SampleSet: Soft",
    "Mode: 0",
    "",
    "[Editor]",
    "Bookmarks: 1000,2000",
    "DistanceSpacing: 1.2",
    "",
    "[Metadata]",
    "Title:Song",
    "Artist:Artist",
    "Creator:Mapper",
    "Version:Easy",
    "BeatmapID:123",
    "BeatmapSetID:45",
    "",
    "[Difficulty]",
    "HPDrainRate:5",
    "CircleSize:4",
    "OverallDifficulty:5",
    "ApproachRate:5",
    "SliderMultiplier:1.4",
    "SliderTickRate:1",
    "",
    "[Events]",
    "//Background and Video events",
    '0,0,"bg.jpg",0,0',
    "//Break Periods",
    "2,3000,4500",
    "",
    "[TimingPoints]",
    "0,500,4,2,0,100,1,0",
    "1000,-50,4,2,0,100,0,0",
    "2500,333.333333333333,4,2,0,100,1,0",
    "",
    "[Colours]",
    "Combo1 : 255,128,0",
    "",
    "[HitObjects]",
    "256,192,1000,5,0,0:0:0:0:",
    "100,100,1500,2,0,B|200:100,1,100",
    "256,192,2000,12,0,2750,0:0:0:0:",
    "64,192,2500,128,0,2800:0:0:0:0:",
    "",
]


def make_osu(version: str = "Easy", audio_filename: str = "audio.wav") -> str:
    """Sample beatmap text with CRLF line endings, as written by the editor."""
    lines = [
        f"Version:{version}" if l.startswith("Version:") else
        f"AudioFilename: {audio_filename}" if l.startswith("AudioFilename:") else
        l
        for l in SAMPLE_OSU_LINES
    ]
    return "\r\n".join(lines)


def make_wav(frames: int = 4410, sample_rate: int = 44100, channels: int = 2, amplitude: float = 0.5) -> bytes:
    """Sine test signal as 16 bit WAV."""
    t = np.arange(frames) / sample_rate
    signal = amplitude * np.sin(2 * np.pi * 440 * t)
    samples = np.repeat(signal[:, np.newaxis], channels, axis=1)
    bio = BytesIO()
    soundfile.write(bio, samples, sample_rate, format="WAV", subtype="PCM_16")
    return bio.getvalue()


@pytest.fixture
def osu_text() -> str:
    return make_osu()


@pytest.fixture
def wav_bytes() -> bytes:
    return make_wav()


@pytest.fixture
def settings() -> Settings:
    """Settings running jobs inline, so monkeypatching works."""
    return Settings(batch=BatchSettings(workers=1))


@pytest.fixture
def mapset_dir(tmp_path: Path) -> Path:
    """Folder with two difficulties sharing one audio file."""
    (tmp_path / "audio.wav").write_bytes(make_wav())
    (tmp_path / "Artist - Song (Mapper) [Easy].osu").write_text(make_osu("Easy"), encoding="utf-8", newline="")
    (tmp_path / "Artist - Song (Mapper) [Hard].osu").write_text(make_osu("Hard"), encoding="utf-8", newline="")
    return tmp_path
