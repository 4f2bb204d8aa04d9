"""
Unit tests for time rescaling.
"""

import pytest

from osurate import osu_format
from osurate.osu_format import BeatmapDocument, OrderingViolation, parse_hit_object
from osurate.rescale import check_ordering, rescale, scale_instant
from osurate.utils import InvalidRate


def _fields(doc: BeatmapDocument, section: str) -> list[list[str]]:
    return [e.to_line().split(",") for e in doc.sections[section]]


class TestRescale:
    """Test cases for rescale."""

    def test_identity_at_rate_one(self, osu_text):
        doc = BeatmapDocument.from_osu(osu_text)
        assert rescale(doc, 1.0).to_osu() == osu_text

    def test_reference_scenario(self):
        """beatLength 500 at 1.25x becomes 400, object at 1000 moves to 800."""
        text = "\r\n".join([
            "osu file format v14", "",
            "[General]", "AudioFilename: a.mp3", "",
            "[TimingPoints]", "0,500,4,2,0,100,1,0", "",
            "[HitObjects]", "256,192,1000,1,0,0:0:0:0:", "",
        ])
        out = rescale(BeatmapDocument.from_osu(text), 1.25)
        assert out.timing_points[0].beat_length == 400
        assert out.timing_points[0].to_line() == "0,400,4,2,0,100,1,0"
        assert out.hit_objects[0].to_line() == "256,192,800,1,0,0:0:0:0:"

    @pytest.mark.parametrize("rate", [0.75, 1.1, 1.25, 1.5, 2.0])
    def test_linearity(self, osu_text, rate):
        """Times become round(t / rate), every other field stays byte-identical."""
        doc = BeatmapDocument.from_osu(osu_text)
        out = rescale(doc, rate)
        for before, after in zip(doc.hit_objects, out.hit_objects):
            assert after.time == round(before.time / rate)
            b_fields, a_fields = before.to_line().split(","), after.to_line().split(",")
            assert a_fields[2] == str(round(before.time / rate))
            assert a_fields[:2] == b_fields[:2]
            assert a_fields[3:5] == b_fields[3:5]
        for before, after in zip(doc.timing_points, out.timing_points):
            assert after.time == round(before.time / rate)
            assert after.fields[2:] == before.fields[2:]

    def test_beat_lengths(self, osu_text):
        doc = BeatmapDocument.from_osu(osu_text)
        out = rescale(doc, 1.5)
        uninherited, inherited, second = out.timing_points
        assert uninherited.beat_length == pytest.approx(500 / 1.5)
        # inherited points hold a velocity multiplier, not a duration
        assert inherited.beat_length == -50
        assert inherited.fields[1] == "-50"
        assert second.beat_length == pytest.approx(333.333333333333 / 1.5)

    def test_end_times(self, osu_text):
        out = rescale(BeatmapDocument.from_osu(osu_text), 1.25)
        circle, slider, spinner, hold = out.hit_objects
        assert spinner.time == 1600 and spinner.end_time == 2200
        assert spinner.to_line() == "256,192,1600,12,0,2200,0:0:0:0:"
        assert hold.time == 2000 and hold.end_time == 2240
        assert hold.to_line() == "64,192,2000,128,0,2240:0:0:0:0:"
        # slider shape and length are independent of time
        assert slider.to_line() == "100,100,1200,2,0,B|200:100,1,100"

    def test_events_and_editor(self, osu_text):
        out = rescale(BeatmapDocument.from_osu(osu_text), 1.25)
        assert [e.to_line() for e in out.events] == ['0,0,"bg.jpg",0,0', "2,2400,3600"]
        assert out.bookmarks == [800, 1600]

    def test_storyboard_sounds(self, osu_text):
        text = osu_text.replace(
            "2,3000,4500",
            "2,3000,4500\r\n//Storyboard Sound Samples\r\nSample,2000,0,\"clap.wav\",100\r\n5,3001,0,\"drum.wav\",70\r\n3,100,163,162,255",
        )
        out = rescale(BeatmapDocument.from_osu(text), 2.0)
        assert [e.to_line() for e in out.events][2:] == [
            'Sample,1000,0,"clap.wav",100',
            '5,1500,0,"drum.wav",70',
            "3,50,163,162,255",
        ]

    def test_preview_time(self, osu_text):
        unset = rescale(BeatmapDocument.from_osu(osu_text), 1.5)
        assert unset.preview_time == -1
        text = osu_text.replace("PreviewTime: -1", "PreviewTime: 3000").replace("AudioLeadIn: 0", "AudioLeadIn: 1500")
        out = rescale(BeatmapDocument.from_osu(text), 1.5)
        assert out.preview_time == 2000
        assert out.audio_lead_in == 1000

    def test_metadata_untouched(self, osu_text):
        doc = BeatmapDocument.from_osu(osu_text)
        out = rescale(doc, 1.3)
        for name in (osu_format.METADATA, osu_format.DIFFICULTY, osu_format.COLOURS):
            assert out.sections[name] == doc.sections[name]

    def test_input_not_modified(self, osu_text):
        doc = BeatmapDocument.from_osu(osu_text)
        rescale(doc, 2.0)
        assert doc.to_osu() == osu_text

    def test_unsorted_input_is_tolerated(self, osu_text):
        # only pairs that were ordered before have to stay ordered
        text = osu_text.replace("100,100,1500,2,0", "100,100,900,2,0")
        out = rescale(BeatmapDocument.from_osu(text), 1.2)
        assert [o.time for o in out.hit_objects] == [833, 750, 1667, 2083]

    @pytest.mark.parametrize("rate", [0.5, 2/3, 0.75, 0.9, 1.05, 1.1, 1.15, 1.2, 1.3, 1.45, 1.5, 2.0, 2.5, 3.0, 1/3])
    def test_order_is_preserved(self, rate):
        """Tightly spaced (and tied) entries stay non-decreasing after rounding."""
        times = [t for t in range(0, 120) for _ in range(1 + t % 2)] + [1000, 1000, 1001, 1003, 1004]
        text = "\r\n".join(
            ["osu file format v14", "", "[General]", "AudioFilename: a.mp3", "", "[TimingPoints]"]
            + [f"{t},{-100 if t % 3 else 500},4,2,0,100,{0 if t % 3 else 1},0" for t in times]
            + ["", "[HitObjects]"]
            + [f"256,192,{t},1,0,0:0:0:0:" for t in times]
            + [""]
        )
        out = rescale(BeatmapDocument.from_osu(text), rate)
        for entries in (out.timing_points, out.hit_objects):
            assert len(entries) == len(times)
            assert all(a.time <= b.time for a, b in zip(entries, entries[1:]))

    @pytest.mark.parametrize("rate", [0, -1.0, float("nan"), float("inf"), "fast"])
    def test_invalid_rate(self, osu_text, rate):
        with pytest.raises(InvalidRate):
            rescale(BeatmapDocument.from_osu(osu_text), rate)


class TestHelpers:
    """Test cases for the building blocks."""

    def test_rounding_is_half_to_even(self):
        assert scale_instant(1, 2) == 0
        assert scale_instant(3, 2) == 2
        assert scale_instant(5, 2) == 2

    def test_check_ordering_accepts_ties(self):
        objs = [parse_hit_object("0,0,100,1,0"), parse_hit_object("0,0,101,1,0")]
        tied = [o.with_time(50) for o in objs]
        check_ordering(objs, tied, osu_format.HIT_OBJECTS)

    def test_check_ordering_detects_swap(self):
        objs = [parse_hit_object("0,0,100,1,0"), parse_hit_object("0,0,200,1,0")]
        swapped = [objs[0].with_time(150), objs[1].with_time(140)]
        with pytest.raises(OrderingViolation) as exc_info:
            check_ordering(objs, swapped, osu_format.HIT_OBJECTS)
        assert exc_info.value.index == 1
        assert exc_info.value.section == osu_format.HIT_OBJECTS
