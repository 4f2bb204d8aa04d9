from concurrent.futures import ProcessPoolExecutor, as_completed
import dataclasses
import os
from pathlib import Path, PurePosixPath
import tempfile
import time
from typing import Callable, Iterable, Optional

from . import audio_format, osu_format
from .rescale import rescale
from .settings import Settings
from .utils import EngineError, logger, pretty_rate, pretty_time_delta, safe_filename, validate_rate

class OutputCollision(EngineError):
    pass

@dataclasses.dataclass
class RateJob:
    source_beatmap: Path
    rate: float
    source_audio: Optional[Path] = None  # None: resolved from AudioFilename when the job runs
    output_dir: Optional[Path] = None  # None: next to the source beatmap

    def __str__(self) -> str:
        return f"{self.source_beatmap.name} @ {pretty_rate(self.rate, 3)}x"

@dataclasses.dataclass
class RateOutput:
    rate: float
    beatmap_name: str
    beatmap_data: bytes
    audio_name: str
    audio_data: bytes

@dataclasses.dataclass
class JobResult:
    job: RateJob
    beatmap_path: Optional[Path] = None
    audio_path: Optional[Path] = None
    # errors are stored as text, exceptions with custom constructors do not survive the trip back from a worker process
    error: Optional[str] = None
    error_type: Optional[str] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def __str__(self) -> str:
        if self.ok:
            return f"{self.job}: wrote {self.beatmap_path.name} ({pretty_time_delta(self.elapsed)})"
        return f"{self.job}: {self.error_type}: {self.error}"

# naming

def rate_label(rate: float, settings: Settings) -> str:
    return pretty_rate(rate, settings.naming.rate_decimals)

def version_label(version: str, rate: float, settings: Settings) -> str:
    return settings.naming.version_format.format(version=version, rate=rate_label(rate, settings)).strip()

def audio_name(audio_filename: str, rate: float, settings: Settings) -> str:
    # AudioFilename is relative to the beatmap folder and may contain a subdirectory
    source = PurePosixPath(audio_filename.replace("\\", "/"))
    suffix = source.suffix
    if settings.audio.output_format:
        fmt = settings.audio.output_format.upper()
        suffix = audio_format.FORMAT_EXTENSIONS.get(fmt, "." + fmt.lower())
    name = safe_filename(settings.naming.audio_format.format(stem=source.stem, rate=rate_label(rate, settings), suffix=suffix))
    return str(source.with_name(name))

def beatmap_name(source_name: str, version: str, new_version: str, rate: float, settings: Settings) -> str:
    # editor convention: "Artist - Title (Creator) [Version].osu"
    stem = Path(source_name).stem
    marker = f"[{version}]"
    if version and stem.endswith(marker):
        new_stem = f"{stem[:-len(marker)]}[{new_version}]"
    else:
        new_stem = f"{stem} {rate_label(rate, settings)}x"
    return safe_filename(new_stem) + ".osu"

# engine entry point: bytes in, bytes out

def generate_rate(beatmap_data: bytes, audio_data: bytes, rate: float, settings: Settings, source_name: str = "beatmap.osu") -> RateOutput:
    rate = validate_rate(rate)
    document = osu_format.BeatmapDocument.from_osu(beatmap_data)
    output = rescale(document, rate)

    new_version = version_label(document.version, rate, settings)
    new_audio_name = audio_name(document.audio_filename, rate, settings)
    output = output.with_value(osu_format.METADATA, "Version", new_version)
    output = output.with_value(osu_format.GENERAL, "AudioFilename", new_audio_name)
    if settings.naming.reset_beatmap_id and output.get_value(osu_format.METADATA, "BeatmapID") is not None:
        # a variant must not share the id of the ranked difficulty
        output = output.with_value(osu_format.METADATA, "BeatmapID", "0")

    stretched = audio_format.stretch(
        audio_data,
        rate,
        method=settings.audio.resampler,
        format=settings.audio.output_format,
        compression_level=settings.audio.compression_level,
        bitrate_mode=settings.audio.bitrate_mode,
    )
    return RateOutput(
        rate=rate,
        beatmap_name=beatmap_name(source_name, document.version, new_version, rate, settings),
        beatmap_data=output.to_bytes(),
        audio_name=new_audio_name,
        audio_data=stretched,
    )

# filesystem side

def _write_atomic(path: Path, data: bytes) -> None:
    # difficulties of one mapset write the same audio file, possibly at the same time
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise

def resolve_audio(beatmap_path: Path) -> Path:
    document = osu_format.import_file(beatmap_path)
    return beatmap_path.parent / document.audio_filename.replace("\\", "/")

def run_job(job: RateJob, settings: Settings) -> JobResult:
    """Run a single job. Engine and I/O errors become the result instead of being raised."""
    start = time.perf_counter()
    try:
        source_audio = job.source_audio or resolve_audio(job.source_beatmap)
        output = generate_rate(
            job.source_beatmap.read_bytes(),
            source_audio.read_bytes(),
            job.rate,
            settings,
            source_name=job.source_beatmap.name,
        )
        out_dir = job.output_dir or job.source_beatmap.parent
        beatmap_path = out_dir / output.beatmap_name
        audio_path = out_dir / output.audio_name
        for target, source in ((beatmap_path, job.source_beatmap), (audio_path, source_audio)):
            if target.resolve() == source.resolve():
                raise OutputCollision("Output would overwrite its source", context=str(target))
        # nothing is written unless both sides succeeded
        _write_atomic(audio_path, output.audio_data)
        _write_atomic(beatmap_path, output.beatmap_data)
    except (EngineError, OSError) as exc:
        logger.debug(f"Job {job} failed", exc_info=exc)
        return JobResult(job=job, error=str(exc), error_type=type(exc).__name__, elapsed=time.perf_counter() - start)
    return JobResult(job=job, beatmap_path=beatmap_path, audio_path=audio_path, elapsed=time.perf_counter() - start)

# batch

def find_beatmaps(paths: Iterable[Path]) -> list[Path]:
    found = []
    for p in map(Path, paths):
        if p.is_dir():
            found.extend(sorted(p.glob("*.osu")))
        elif p.is_file():
            found.append(p)
        else:
            raise FileNotFoundError(f"No such file or directory: {p}")
    return found

def plan_jobs(beatmaps: Iterable[Path], rates: Iterable[float], settings: Settings) -> list[RateJob]:
    rates = [validate_rate(r) for r in rates]
    output_dir = Path(settings.batch.output_dir) if settings.batch.output_dir else None
    jobs = []
    for beatmap in beatmaps:
        try:
            source_audio: Optional[Path] = resolve_audio(beatmap)
        except (EngineError, OSError):
            # let the job itself report the problem, so it fails on its own
            source_audio = None
        for rate in rates:
            if rate == 1 and settings.batch.skip_unity_rate:
                logger.info(f"Skipping rate 1x for {beatmap.name}")
                continue
            jobs.append(RateJob(source_beatmap=beatmap, rate=rate, source_audio=source_audio, output_dir=output_dir))
    return jobs

def run_batch(jobs: Iterable[RateJob], settings: Settings, on_result: Optional[Callable[[JobResult], None]] = None) -> list[JobResult]:
    """Run all jobs, in parallel when there is more than one worker. Returns results in job order."""
    jobs = list(jobs)
    if not jobs:
        return []
    workers = min(settings.batch.workers or os.cpu_count() or 1, len(jobs))
    results: dict[int, JobResult] = {}

    def _done(i: int, result: JobResult) -> None:
        results[i] = result
        if result.ok:
            logger.info(f"[{len(results)}/{len(jobs)}] {result}")
        else:
            logger.error(f"[{len(results)}/{len(jobs)}] {result}")
        if on_result is not None:
            on_result(result)

    logger.info(f"Running {len(jobs)} job(s) with {workers} worker(s)")
    if workers == 1:
        for i, job in enumerate(jobs):
            try:
                result = run_job(job, settings)
            except Exception as exc:
                # unexpected error, handled like a crashed worker so the remaining jobs still run
                logger.debug(f"Job {job} failed", exc_info=exc)
                result = JobResult(job=job, error=repr(exc), error_type=type(exc).__name__)
            _done(i, result)
    else:
        with ProcessPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(run_job, job, settings): i for i, job in enumerate(jobs)}
            for future in as_completed(futures):
                i = futures[future]
                try:
                    result = future.result()
                except Exception as exc:
                    # crashed worker (eg. BrokenProcessPool), only affects the jobs that were running there
                    result = JobResult(job=jobs[i], error=repr(exc), error_type=type(exc).__name__)
                _done(i, result)
    return [results[i] for i in range(len(jobs))]
