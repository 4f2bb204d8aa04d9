"""
Configuration for rate generation.

Settings can be loaded from a YAML file, overridden from ``OSURATE_*`` environment
variables and finally from command line flags.
"""

import dataclasses
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .audio_format import RESAMPLERS


class ConfigurationError(ValueError):
    """Error in configuration or settings."""
    pass


# accepted value types per setting, checked before any range checks
FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "rate_decimals": (int,),
    "version_format": (str,),
    "audio_format": (str,),
    "reset_beatmap_id": (bool,),
    "resampler": (str,),
    "output_format": (str, type(None)),
    "compression_level": (int, float, type(None)),
    "bitrate_mode": (str, type(None)),
    "workers": (int, type(None)),
    "skip_unity_rate": (bool,),
    "output_dir": (str, type(None)),
}


@dataclasses.dataclass
class NamingSettings:
    """How rate variants are labelled and named."""
    rate_decimals: int = 2
    version_format: str = "{version} ({rate}x)"
    audio_format: str = "{stem} {rate}x{suffix}"
    reset_beatmap_id: bool = True


@dataclasses.dataclass
class AudioSettings:
    """Resampling and encoding settings."""
    resampler: str = "linear"
    output_format: Optional[str] = None  # None: same container as the source
    compression_level: Optional[float] = None  # 0 (best quality) to 1 (smallest)
    bitrate_mode: Optional[str] = None  # CONSTANT, AVERAGE or VARIABLE


@dataclasses.dataclass
class BatchSettings:
    """Job scheduling settings."""
    workers: Optional[int] = None  # None: one per CPU
    skip_unity_rate: bool = True
    output_dir: Optional[str] = None  # None: next to the source beatmap


@dataclasses.dataclass
class Settings:
    """Main settings container."""
    naming: NamingSettings = dataclasses.field(default_factory=NamingSettings)
    audio: AudioSettings = dataclasses.field(default_factory=AudioSettings)
    batch: BatchSettings = dataclasses.field(default_factory=BatchSettings)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """
        Check values that would otherwise only fail once jobs are running.

        Raises:
            ConfigurationError: If a value has the wrong type or is out of range
        """
        for group_name, group in (("naming", self.naming), ("audio", self.audio), ("batch", self.batch)):
            for field in dataclasses.fields(group):
                value = getattr(group, field.name)
                # bool is an int subclass, but never a valid count
                wrong_bool = isinstance(value, bool) and bool not in FIELD_TYPES[field.name]
                if wrong_bool or not isinstance(value, FIELD_TYPES[field.name]):
                    expected = " or ".join("null" if t is type(None) else t.__name__ for t in FIELD_TYPES[field.name])
                    raise ConfigurationError(f"{group_name}.{field.name} must be {expected}, got {value!r}")
        if self.audio.resampler not in RESAMPLERS:
            raise ConfigurationError(f"Unknown resampler {self.audio.resampler!r}, expected one of {RESAMPLERS}")
        if self.audio.compression_level is not None and not 0 <= self.audio.compression_level <= 1:
            raise ConfigurationError(f"compression_level must be between 0 and 1, got {self.audio.compression_level}")
        if self.batch.workers is not None and self.batch.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.batch.workers}")
        if self.naming.rate_decimals < 0:
            raise ConfigurationError(f"rate_decimals must not be negative, got {self.naming.rate_decimals}")
        for name in ("version_format", "audio_format"):
            template = getattr(self.naming, name)
            try:
                template.format(version="", rate="", stem="", suffix="")
            except (KeyError, IndexError, ValueError) as e:
                raise ConfigurationError(f"Invalid {name} template {template!r}: {e!r}")

    @classmethod
    def from_dict(cls, config_data: dict[str, Any]) -> "Settings":
        """
        Create settings from a dictionary.

        Args:
            config_data: Configuration data, with optional "naming", "audio" and "batch" groups

        Returns:
            Settings instance

        Raises:
            ConfigurationError: On unknown groups or keys
        """
        groups = {"naming": NamingSettings, "audio": AudioSettings, "batch": BatchSettings}
        unknown = set(config_data) - set(groups)
        if unknown:
            raise ConfigurationError(f"Unknown configuration groups: {sorted(unknown)}")
        kwargs = {}
        for name, group_cls in groups.items():
            try:
                kwargs[name] = group_cls(**(config_data.get(name) or {}))
            except TypeError as e:
                raise ConfigurationError(f"Invalid '{name}' settings: {e}")
        return cls(**kwargs)

    @classmethod
    def load_from_file(cls, config_path: Union[str, Path]) -> "Settings":
        """
        Load settings from a YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        if config_data is not None and not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")
        return cls.from_dict(config_data or {})

    def with_environment(self) -> "Settings":
        """Apply OSURATE_* environment overrides on top of these settings."""
        audio = self.audio
        batch = self.batch
        if "OSURATE_RESAMPLER" in os.environ:
            audio = dataclasses.replace(audio, resampler=os.environ["OSURATE_RESAMPLER"])
        if "OSURATE_WORKERS" in os.environ:
            try:
                batch = dataclasses.replace(batch, workers=int(os.environ["OSURATE_WORKERS"]))
            except ValueError:
                raise ConfigurationError(f"OSURATE_WORKERS must be an integer, got {os.environ['OSURATE_WORKERS']!r}")
        return dataclasses.replace(self, audio=audio, batch=batch)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def save_to_file(self, config_path: Union[str, Path]) -> None:
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=True)


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from file (if given) and apply environment overrides.
    """
    settings = Settings.load_from_file(config_path) if config_path else Settings()
    return settings.with_environment()
