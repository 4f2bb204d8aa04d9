import dataclasses
from typing import Sequence, Union

from .osu_format import (
    BeatmapDocument, KeyValue, Event, TimingPoint, HitObject, HitCircle, Slider, Spinner, HoldNote,
    OrderingViolation, GENERAL, EDITOR, EVENTS, TIMING_POINTS, HIT_OBJECTS,
)
from .utils import validate_rate

# Note: None of these functions are allowed to *modify* their input. Returning the same object (if nothing needed to be changed) is allowed.
# A higher rate compresses the timeline, so every time-denominated value is divided by the rate.

def scale_instant(value: float, rate: float) -> int:
    """absolute point in time, rounded once when emitted"""
    return round(value / rate)

def scale_duration(value: float, rate: float) -> float:
    """length of time that is used in further computation, so it stays unrounded"""
    return value / rate

def rescale_timing_point(point: TimingPoint, rate: float) -> TimingPoint:
    out = point.with_time(scale_instant(point.time, rate))
    if point.uninherited:
        out = out.with_beat_length(scale_duration(point.beat_length, rate))
    # inherited points store a (negative) velocity multiplier, not a duration
    return out

def rescale_hit_object(obj: HitObject, rate: float) -> HitObject:
    out = obj.with_time(scale_instant(obj.time, rate))
    if isinstance(out, (Spinner, HoldNote)):
        return out.with_end_time(scale_instant(obj.end_time, rate))
    if isinstance(out, (HitCircle, Slider)):
        # slider duration follows from the timing points, nothing else to do
        return out
    raise TypeError(f"Unexpected hit object variant: {type(obj).__name__}")

def rescale_event(event: Event, rate: float) -> Event:
    if not event.time_indices:
        return event
    return event.with_times(tuple(scale_instant(t, rate) for t in event.times))

def _rescale_general(entry: KeyValue, rate: float) -> KeyValue:
    if entry.key == "AudioLeadIn":
        return dataclasses.replace(entry, value=str(scale_instant(float(entry.value), rate)))
    if entry.key == "PreviewTime" and float(entry.value) >= 0:
        # -1 means "no preview point", which must stay -1
        return dataclasses.replace(entry, value=str(scale_instant(float(entry.value), rate)))
    return entry

def _rescale_editor(entry: KeyValue, rate: float) -> KeyValue:
    if entry.key == "Bookmarks":
        return dataclasses.replace(entry, value=",".join(
            str(scale_instant(float(b), rate))
            for b in entry.value.split(",")
            if b.strip()
        ))
    return entry

def check_ordering(before: Sequence[Union[TimingPoint, HitObject]], after: Sequence[Union[TimingPoint, HitObject]], section: str) -> None:
    # only pairs that were ordered in the input are checked, we never re-sort
    if len(before) != len(after):
        raise OrderingViolation(section, len(after), len(before), len(after))
    for i in range(1, len(after)):
        if before[i-1].time <= before[i].time and after[i-1].time > after[i].time:
            raise OrderingViolation(section, i, after[i-1].time, after[i].time)

def rescale(document: BeatmapDocument, rate: float) -> BeatmapDocument:
    rate = validate_rate(rate)
    sections = {}
    for name, entries in document.sections.items():
        if name == TIMING_POINTS:
            sections[name] = [rescale_timing_point(e, rate) if isinstance(e, TimingPoint) else e for e in entries]
        elif name == HIT_OBJECTS:
            sections[name] = [rescale_hit_object(e, rate) if isinstance(e, HitObject) else e for e in entries]
        elif name == EVENTS:
            sections[name] = [rescale_event(e, rate) if isinstance(e, Event) else e for e in entries]
        elif name == GENERAL:
            sections[name] = [_rescale_general(e, rate) if isinstance(e, KeyValue) else e for e in entries]
        elif name == EDITOR:
            sections[name] = [_rescale_editor(e, rate) if isinstance(e, KeyValue) else e for e in entries]
        else:
            sections[name] = list(entries)
    output = dataclasses.replace(document, sections=sections)
    check_ordering(document.timing_points, output.timing_points, TIMING_POINTS)
    check_ordering(document.hit_objects, output.hit_objects, HIT_OBJECTS)
    return output
