import dataclasses
import math
from pathlib import Path
import re
from typing import Any, Optional, Union

from osurate.utils import EngineError, format_float, logger

# Records keep their raw field tokens, so everything we do not rewrite is emitted byte-identical.
# Typed attributes (time, beat_length, ...) are parsed from those tokens and kept in sync by the with_* methods.

FILE_HEADER = "osu file format v"
CURRENT_FORMAT_VERSION = 14

GENERAL = "General"
EDITOR = "Editor"
METADATA = "Metadata"
DIFFICULTY = "Difficulty"
EVENTS = "Events"
TIMING_POINTS = "TimingPoints"
COLOURS = "Colours"
HIT_OBJECTS = "HitObjects"
KNOWN_SECTIONS = (GENERAL, EDITOR, METADATA, DIFFICULTY, EVENTS, TIMING_POINTS, COLOURS, HIT_OBJECTS)
KEY_VALUE_SECTIONS = (GENERAL, EDITOR, METADATA, DIFFICULTY, COLOURS)
# separator used when adding a key that was not in the file, matching what the editor writes
DEFAULT_SEPARATORS = {
    GENERAL: ": ",
    EDITOR: ": ",
    METADATA: ":",
    DIFFICULTY: ":",
    COLOURS: " : ",
}
# keys that must hold numbers, so we can rely on them when rescaling
INTEGER_KEYS = {
    GENERAL: ("AudioLeadIn", "PreviewTime"),
}

# hit object type bits
HIT_CIRCLE = 1
SLIDER = 2
NEW_COMBO = 4
SPINNER = 8
HOLD_NOTE = 128

# event type -> indices of fields holding a time in ms
EVENT_TIME_FIELDS: dict[str, tuple[int, ...]] = {
    "0": (1,),  # background: 0,startTime,filename,x,y
    "Background": (1,),
    "1": (1,),  # video: 1,startTime,filename,x,y
    "Video": (1,),
    "2": (1, 2),  # break: 2,startTime,endTime
    "Break": (1, 2),
    "3": (1,),  # background colour (legacy): 3,time,r,g,b
    "5": (1,),  # storyboard sound: 5,time,layer,filename,volume
    "Sample": (1,),
}

SECTION_HEADER_RE = re.compile(r"\[(\w+)\]")
FILE_HEADER_RE = re.compile(re.escape(FILE_HEADER) + r"(\d+)")
# only CRLF and LF end a line, other unicode line separators may appear in values
LINE_BREAK_RE = re.compile(r"\r?\n")

class MalformedDocument(EngineError, ValueError):
    def __init__(self, reason: str, section: Optional[str] = None, line_number: Optional[int] = None, line: Optional[str] = None) -> None:
        location = []
        if section is not None:
            location.append(f"[{section}]")
        if line_number is not None:
            location.append(f"line {line_number}")
        if line is not None:
            location.append(repr(line))
        super().__init__(f"Malformed beatmap: {reason}", context=" ".join(location) or None)
        self.reason = reason
        self.section = section
        self.line_number = line_number
        self.line = line

class OrderingViolation(EngineError):
    def __init__(self, section: str, index: int, previous_time: float, time: float) -> None:
        super().__init__(
            f"{section} out of order after rescaling",
            context=f"entry #{index} at {time} precedes entry #{index-1} at {previous_time}",
        )
        self.section = section
        self.index = index

def _number(token: str, name: str) -> float:
    try:
        value = float(token)
    except ValueError as ve:
        raise ValueError(f"{name} is not a number: {token!r}") from ve
    if not math.isfinite(value):
        # nan, inf and overflowing literals like 1e400
        raise ValueError(f"{name} is not a finite number: {token!r}")
    return value

def _integer(token: str, name: str) -> int:
    try:
        return int(token)
    except ValueError as ve:
        raise ValueError(f"{name} is not an integer: {token!r}") from ve

def _with_field(fields: tuple[str, ...], index: int, value: str) -> tuple[str, ...]:
    return fields[:index] + (value,) + fields[index+1:]

@dataclasses.dataclass
class RawLine:
    """comment or line of a section we do not understand, kept as-is"""
    text: str

    def to_line(self) -> str:
        return self.text

@dataclasses.dataclass
class KeyValue:
    key: str
    value: str
    separator: str = ":"

    @staticmethod
    def from_line(line: str) -> "KeyValue":
        if ":" not in line:
            raise ValueError("Expected 'key:value'")
        left, right = line.split(":", 1)
        key = left.rstrip()
        value = right.lstrip()
        # keep exact whitespace around the colon, since sections differ ("Key: Value" vs "Key:Value")
        separator = left[len(key):] + ":" + right[:len(right)-len(value)]
        return KeyValue(key=key, value=value, separator=separator)

    def to_line(self) -> str:
        return f"{self.key}{self.separator}{self.value}"

@dataclasses.dataclass
class Event:
    fields: tuple[str, ...]

    @property
    def kind(self) -> str:
        return self.fields[0]

    @property
    def time_indices(self) -> tuple[int, ...]:
        return EVENT_TIME_FIELDS.get(self.kind, ())

    @property
    def times(self) -> tuple[float, ...]:
        return tuple(float(self.fields[i]) for i in self.time_indices)

    @staticmethod
    def from_line(line: str) -> "Event":
        # note: leading whitespace is significant for storyboard commands, so do not strip
        event = Event(fields=tuple(line.split(",")))
        for i in event.time_indices:
            if i >= len(event.fields):
                raise ValueError(f"{event.kind} event is missing field #{i+1}")
            _number(event.fields[i], f"{event.kind} event time")
        return event

    def with_times(self, times: tuple[int, ...]) -> "Event":
        fields = self.fields
        for i, t in zip(self.time_indices, times):
            fields = _with_field(fields, i, format_float(t))
        return Event(fields=fields)

    def to_line(self) -> str:
        return ",".join(self.fields)

@dataclasses.dataclass
class TimingPoint:
    time: float
    beat_length: float
    uninherited: bool
    fields: tuple[str, ...]

    @property
    def inherited(self) -> bool:
        return not self.uninherited

    @staticmethod
    def from_line(line: str) -> "TimingPoint":
        fields = tuple(f.strip() for f in line.split(","))
        if len(fields) < 2:
            raise ValueError("Timing point requires at least time and beatLength")
        time = _number(fields[0], "time")
        beat_length = _number(fields[1], "beatLength")
        for i, name in enumerate(("meter", "sampleSet", "sampleIndex", "volume", "uninherited", "effects"), start=2):
            if i < len(fields):
                _integer(fields[i], name)
        if len(fields) > 6:
            uninherited = int(fields[6]) != 0
        else:
            # old format without the flag: negative beat lengths are velocity multipliers
            uninherited = beat_length >= 0
        return TimingPoint(time=time, beat_length=beat_length, uninherited=uninherited, fields=fields)

    def with_time(self, time: float) -> "TimingPoint":
        return dataclasses.replace(self, time=time, fields=_with_field(self.fields, 0, format_float(time)))

    def with_beat_length(self, beat_length: float) -> "TimingPoint":
        return dataclasses.replace(self, beat_length=beat_length, fields=_with_field(self.fields, 1, format_float(beat_length)))

    def to_line(self) -> str:
        return ",".join(self.fields)

@dataclasses.dataclass
class HitObject:
    x: float
    y: float
    time: float
    type: int
    hit_sound: int
    fields: tuple[str, ...]

    @property
    def new_combo(self) -> bool:
        return bool(self.type & NEW_COMBO)

    def with_time(self, time: float) -> "HitObject":
        return dataclasses.replace(self, time=time, fields=_with_field(self.fields, 2, format_float(time)))

    def to_line(self) -> str:
        return ",".join(self.fields)

@dataclasses.dataclass
class HitCircle(HitObject):
    pass

@dataclasses.dataclass
class Slider(HitObject):
    # curve, repeats and pixel length only depend on slider velocity, never on time directly
    @property
    def curve(self) -> str:
        return self.fields[5]

    @property
    def slides(self) -> int:
        return int(self.fields[6])

    @property
    def length(self) -> Optional[float]:
        return float(self.fields[7]) if len(self.fields) > 7 else None

@dataclasses.dataclass
class Spinner(HitObject):
    end_time: float

    def with_end_time(self, end_time: float) -> "Spinner":
        return dataclasses.replace(self, end_time=end_time, fields=_with_field(self.fields, 5, format_float(end_time)))

@dataclasses.dataclass
class HoldNote(HitObject):
    # mania hold: end time shares a field with the hit sample ("endTime:0:0:0:0:")
    end_time: float

    def with_end_time(self, end_time: float) -> "HoldNote":
        _, sep, hit_sample = self.fields[5].partition(":")
        return dataclasses.replace(self, end_time=end_time, fields=_with_field(self.fields, 5, format_float(end_time) + sep + hit_sample))

def parse_hit_object(line: str) -> HitObject:
    fields = tuple(f.strip() for f in line.split(","))
    if len(fields) < 5:
        raise ValueError("Hit object requires at least x, y, time, type and hitSound")
    common: dict[str, Any] = dict(
        x=_number(fields[0], "x"),
        y=_number(fields[1], "y"),
        time=_number(fields[2], "time"),
        type=_integer(fields[3], "type"),
        hit_sound=_integer(fields[4], "hitSound"),
        fields=fields,
    )
    obj_type = common["type"]
    if obj_type & HIT_CIRCLE:
        return HitCircle(**common)
    if obj_type & SLIDER:
        if len(fields) < 7:
            raise ValueError("Slider requires curve and slides")
        _integer(fields[6], "slides")
        if len(fields) > 7:
            _number(fields[7], "length")
        return Slider(**common)
    if obj_type & SPINNER:
        if len(fields) < 6:
            raise ValueError("Spinner requires endTime")
        return Spinner(**common, end_time=_number(fields[5], "endTime"))
    if obj_type & HOLD_NOTE:
        if len(fields) < 6:
            raise ValueError("Hold note requires endTime")
        return HoldNote(**common, end_time=_number(fields[5].partition(":")[0], "endTime"))
    raise ValueError(f"Unknown hit object type ({obj_type})")

Entry = Union[RawLine, KeyValue, Event, TimingPoint, HitObject]

def _parse_entry(section: str, line: str) -> Entry:
    if section == TIMING_POINTS:
        return TimingPoint.from_line(line.strip())
    if section == HIT_OBJECTS:
        return parse_hit_object(line.strip())
    if section == EVENTS:
        return Event.from_line(line)
    if section in KEY_VALUE_SECTIONS:
        kv = KeyValue.from_line(line.strip())
        if kv.key in INTEGER_KEYS.get(section, ()):
            _number(kv.value, kv.key)
        if section == EDITOR and kv.key == "Bookmarks":
            for b in kv.value.split(","):
                if b.strip():
                    _number(b, "bookmark")
        return kv
    return RawLine(line)

@dataclasses.dataclass
class BeatmapDocument:
    format_version: int = CURRENT_FORMAT_VERSION
    # section name -> entries, both in file order
    sections: dict[str, list[Entry]] = dataclasses.field(default_factory=dict)
    newline: str = "\r\n"

    # Note: None of the with_* functions modify the document, they return a new one sharing unchanged entries

    @staticmethod
    def from_osu(data: Union[str, bytes]) -> "BeatmapDocument":
        if isinstance(data, bytes):
            try:
                text = data.decode("utf-8-sig")
            except UnicodeDecodeError as ude:
                raise MalformedDocument(f"Not valid UTF-8 at byte {ude.start}") from ude
        else:
            text = data.removeprefix("\ufeff")
        newline = "\r\n" if "\r\n" in text else "\n"

        format_version: Optional[int] = None
        section: Optional[str] = None
        sections: dict[str, list[Entry]] = {}
        for line_number, raw in enumerate(LINE_BREAK_RE.split(text), start=1):
            line = raw.rstrip()
            if not line.strip():
                continue
            if format_version is None:
                m = FILE_HEADER_RE.fullmatch(line.strip())
                if not m:
                    raise MalformedDocument(f"Expected '{FILE_HEADER}<version>' header", line_number=line_number, line=raw)
                format_version = int(m[1])
                if format_version != CURRENT_FORMAT_VERSION:
                    logger.debug(f"Beatmap uses format v{format_version}, output keeps that version")
                continue
            if line.startswith("["):
                m = SECTION_HEADER_RE.fullmatch(line.strip())
                if not m:
                    raise MalformedDocument("Malformed section header", section=section, line_number=line_number, line=raw)
                section = m[1]
                if section in sections:
                    raise MalformedDocument("Duplicate section", section=section, line_number=line_number, line=raw)
                if section not in KNOWN_SECTIONS:
                    logger.warning(f"Unknown section [{section}], copying it unchanged")
                sections[section] = []
                continue
            if section is None:
                raise MalformedDocument("Content before first section header", line_number=line_number, line=raw)
            if line.lstrip().startswith("//"):
                sections[section].append(RawLine(line))
                continue
            try:
                sections[section].append(_parse_entry(section, line))
            except ValueError as ve:
                raise MalformedDocument(str(ve), section=section, line_number=line_number, line=raw) from ve

        if format_version is None:
            raise MalformedDocument("Empty document")
        doc = BeatmapDocument(format_version=format_version, sections=sections, newline=newline)
        if not doc.audio_filename:
            raise MalformedDocument("Missing AudioFilename", section=GENERAL)
        return doc

    def to_osu(self) -> str:
        out = [f"{FILE_HEADER}{self.format_version}", ""]
        for name, entries in self.sections.items():
            out.append(f"[{name}]")
            out.extend(e.to_line() for e in entries)
            out.append("")
        return self.newline.join(out)

    def to_bytes(self) -> bytes:
        return self.to_osu().encode("utf-8")

    def save_as(self, output_file: Path) -> None:
        output_file.write_bytes(self.to_bytes())

    # key/value access

    def get_value(self, section: str, key: str) -> Optional[str]:
        for e in self.sections.get(section, ()):
            if isinstance(e, KeyValue) and e.key == key:
                return e.value
        return None

    def with_value(self, section: str, key: str, value: str) -> "BeatmapDocument":
        entries = list(self.sections.get(section, ()))
        for i, e in enumerate(entries):
            if isinstance(e, KeyValue) and e.key == key:
                entries[i] = dataclasses.replace(e, value=value)
                break
        else:
            entries.append(KeyValue(key=key, value=value, separator=DEFAULT_SEPARATORS.get(section, ":")))
        return self.with_entries(section, entries)

    def with_entries(self, section: str, entries: list[Entry]) -> "BeatmapDocument":
        return dataclasses.replace(self, sections=self.sections | {section: entries})

    @property
    def audio_filename(self) -> str:
        return self.get_value(GENERAL, "AudioFilename") or ""

    @property
    def audio_lead_in(self) -> int:
        return round(float(self.get_value(GENERAL, "AudioLeadIn") or 0))

    @property
    def preview_time(self) -> int:
        v = self.get_value(GENERAL, "PreviewTime")
        return -1 if v is None else round(float(v))

    @property
    def version(self) -> str:
        return self.get_value(METADATA, "Version") or ""

    @property
    def bookmarks(self) -> list[int]:
        v = self.get_value(EDITOR, "Bookmarks") or ""
        return [round(float(b)) for b in v.split(",") if b.strip()]

    @property
    def metadata(self) -> dict[str, list[KeyValue]]:
        return {
            name: [e for e in entries if isinstance(e, KeyValue)]
            for name, entries in self.sections.items()
            if name in KEY_VALUE_SECTIONS
        }

    @property
    def events(self) -> list[Event]:
        return [e for e in self.sections.get(EVENTS, ()) if isinstance(e, Event)]

    @property
    def timing_points(self) -> list[TimingPoint]:
        return [e for e in self.sections.get(TIMING_POINTS, ()) if isinstance(e, TimingPoint)]

    @property
    def hit_objects(self) -> list[HitObject]:
        return [e for e in self.sections.get(HIT_OBJECTS, ()) if isinstance(e, HitObject)]

# convenience wrappers

def import_file(file_path: Path) -> BeatmapDocument:
    return BeatmapDocument.from_osu(Path(file_path).read_bytes())

def export_file(document: BeatmapDocument, file_path: Path) -> None:
    document.save_as(Path(file_path))
