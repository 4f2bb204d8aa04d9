import dataclasses
from io import BytesIO
from typing import Optional

import librosa
import numpy as np
import soundfile

from osurate.utils import EngineError, validate_rate, logger

WRITE_CHUNK_SIZE = 0x10000
RESAMPLERS = ("linear", "sinc")
FORMAT_EXTENSIONS = {
    "MP3": ".mp3",
    "OGG": ".ogg",
    "WAV": ".wav",
    "FLAC": ".flac",
}

class AudioDecodeError(EngineError):
    pass

class AudioEncodeError(EngineError):
    pass

@dataclasses.dataclass
class AudioData:
    samples: "numpy array (f, c)"  # float64 in [-1, 1]
    sample_rate: int
    format: str = "WAV"
    subtype: Optional[str] = None

    @property
    def frames(self) -> int:
        return self.samples.shape[0]

    @property
    def channels(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        return float(librosa.samples_to_time(self.frames, sr=self.sample_rate))

    @staticmethod
    def from_raw(raw_data: bytes) -> "AudioData":
        try:
            with soundfile.SoundFile(BytesIO(raw_data)) as f:
                fmt, subtype, sr = f.format, f.subtype, f.samplerate
                samples = f.read(dtype="float64", always_2d=True)
        except (soundfile.SoundFileError, RuntimeError, TypeError) as exc:
            raise AudioDecodeError("Could not decode audio", context=repr(exc)) from exc
        if not samples.shape[0]:
            raise AudioDecodeError("Audio contains no frames", context=fmt)
        return AudioData(samples=samples, sample_rate=sr, format=fmt, subtype=subtype)

    def with_rate(self, rate: float, method: str = "linear") -> "AudioData":
        return dataclasses.replace(self, samples=resample(self.samples, rate, method=method, sample_rate=self.sample_rate))

def output_frame_count(frames: int, rate: float) -> int:
    return round(frames / rate)

def resample_linear(samples: "numpy array (f, c)", rate: float) -> "numpy array (f', c)":
    """interpolate against a fractional read cursor that advances by `rate` input frames per output frame"""
    n_in = samples.shape[0]
    n_out = output_frame_count(n_in, rate)
    if not n_in or not n_out:
        return np.zeros((n_out, samples.shape[1]))
    # the last cursor positions may point past the end, clamp them to the last frame
    cursor = np.minimum(np.arange(n_out) * rate, n_in - 1)
    index = np.floor(cursor).astype(np.int64)
    frac = (cursor - index)[:, np.newaxis]
    following = np.minimum(index + 1, n_in - 1)
    # convex combination of two neighbours, cannot leave the input range
    return samples[index] * (1 - frac) + samples[following] * frac

def resample_sinc(samples: "numpy array (f, c)", rate: float, sample_rate: int) -> "numpy array (f', c)":
    """band-limited resampling, treating the input as if it was recorded at rate*sample_rate"""
    n_out = output_frame_count(samples.shape[0], rate)
    # librosa uses channels x samples instead of samples x channels, so transpose
    out = librosa.resample(np.ascontiguousarray(samples.T), orig_sr=sample_rate * rate, target_sr=sample_rate, res_type="soxr_hq", axis=-1)
    return librosa.util.fix_length(out, size=n_out, axis=-1).T

def resample(samples: "numpy array (f, c)", rate: float, method: str = "linear", sample_rate: Optional[int] = None) -> "numpy array (f', c)":
    """Change the number of frames by 1/rate, keeping the nominal sample rate (so pitch shifts along with speed)"""
    rate = validate_rate(rate)
    if rate == 1:
        return samples
    samples = np.asarray(samples, dtype=np.float64)
    if method == "linear":
        out = resample_linear(samples, rate)
    elif method == "sinc":
        if sample_rate is None:
            raise ValueError("sinc resampling needs the sample rate")
        out = resample_sinc(samples, rate, sample_rate)
    else:
        raise ValueError(f"Unknown resampler {method!r}, expected one of {RESAMPLERS}")
    # band-limited filters can overshoot, clip before the codec quantizes (which would wrap instead)
    return np.clip(out, -1.0, 1.0)

def encode(
    audio: AudioData,
    format: Optional[str] = None,
    compression_level: Optional[float] = None,
    bitrate_mode: Optional[str] = None,
) -> bytes:
    fmt = (format or audio.format).upper()
    # keep the source subtype when we keep the container, otherwise use the default of the new container
    subtype = audio.subtype if fmt == audio.format else None
    if not soundfile.check_format(fmt, subtype):
        raise AudioEncodeError(f"Cannot write {fmt} audio", context=subtype)
    extra = {}
    if compression_level is not None:
        extra["compression_level"] = compression_level
    if bitrate_mode is not None:
        extra["bitrate_mode"] = bitrate_mode
    data = np.clip(audio.samples, -1.0, 1.0)
    bio = BytesIO()
    try:
        with soundfile.SoundFile(bio, "w", samplerate=audio.sample_rate, channels=audio.channels, format=fmt, subtype=subtype, **extra) as f:
            # lossy encoders are known to crash on huge writes, so chunk them
            num_chunks = max(1, (len(data) + WRITE_CHUNK_SIZE - 1) // WRITE_CHUNK_SIZE)
            for chunk in np.array_split(data, num_chunks, axis=0):
                f.write(chunk)
    except (soundfile.SoundFileError, RuntimeError, TypeError, ValueError) as exc:
        raise AudioEncodeError(f"Could not encode {fmt} audio", context=repr(exc)) from exc
    return bio.getvalue()

def stretch(
    raw_data: bytes,
    rate: float,
    method: str = "linear",
    format: Optional[str] = None,
    compression_level: Optional[float] = None,
    bitrate_mode: Optional[str] = None,
) -> bytes:
    """Decode, speed up (or slow down) by `rate` and encode again"""
    audio = AudioData.from_raw(raw_data)
    logger.debug(f"Decoded {audio.format} audio: {audio.duration:.1f}s, {audio.sample_rate} Hz, {audio.channels} channel(s)")
    stretched = audio.with_rate(rate, method=method)
    logger.debug(f"Resampled {audio.frames} -> {stretched.frames} frames ({method})")
    return encode(stretched, format=format, compression_level=compression_level, bitrate_mode=bitrate_mode)
