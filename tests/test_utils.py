"""
Unit tests for parsing and formatting helpers.
"""

import pytest

from osurate import utils
from osurate.utils import EngineError, InvalidRate


class TestParsing:
    """Test cases for number and rate parsing."""

    @pytest.mark.parametrize("text, expected", [
        ("1.25", 1.25),
        ("125%", 1.25),
        ("5/4", 1.25),
        ("1 1/4", 1.25),
        ("1.25x", 1.25),
    ])
    def test_parse_number(self, text, expected):
        assert utils.parse_number(text) == pytest.approx(expected)

    def test_parse_number_empty(self):
        with pytest.raises(ValueError):
            utils.parse_number("")

    def test_parse_rates(self):
        assert utils.parse_rates("1.1, 1.2,130%") == pytest.approx([1.1, 1.2, 1.3])

    def test_parse_rates_names_bad_entry(self):
        with pytest.raises(ValueError, match="#2"):
            utils.parse_rates("1.1,fast")

    def test_parse_rates_rejects_zero(self):
        with pytest.raises(InvalidRate):
            utils.parse_rates("1.1,0")

    @pytest.mark.parametrize("rate", [0, -0.5, float("nan"), float("inf"), None])
    def test_validate_rate(self, rate):
        with pytest.raises(InvalidRate):
            utils.validate_rate(rate)


class TestFormatting:
    """Test cases for formatting helpers."""

    @pytest.mark.parametrize("rate, expected", [
        (1.2, "1.2"),
        (1.25, "1.25"),
        (1.0, "1"),
        (0.75, "0.75"),
        (1.333333, "1.33"),
    ])
    def test_pretty_rate(self, rate, expected):
        assert utils.pretty_rate(rate) == expected

    def test_pretty_rate_no_decimals(self):
        assert utils.pretty_rate(2.0, decimals=0) == "2"

    @pytest.mark.parametrize("value, expected", [
        (800, "800"),
        (800.0, "800"),
        (-50.0, "-50"),
        (333.25, "333.25"),
    ])
    def test_format_float(self, value, expected):
        assert utils.format_float(value) == expected

    def test_safe_filename(self):
        assert utils.safe_filename('a/b\\c:d*e?"f"<g>|h') == "a_b_c_d_e__f__g__h"
        assert utils.safe_filename(" Hard (1.2x) ") == "Hard (1.2x)"

    def test_pretty_list(self):
        assert utils.pretty_list([]) == ""
        assert utils.pretty_list(["a"]) == "a"
        assert utils.pretty_list(["a", "b", "c"]) == "a, b and c"

    def test_pretty_time_delta(self):
        assert utils.pretty_time_delta(0.25) == "250 ms"
        assert utils.pretty_time_delta(30) == "30 seconds"
        assert utils.pretty_time_delta(120) == "2 minutes"


class TestErrors:
    """Test cases for EngineError."""

    def test_str_with_context(self):
        assert str(EngineError("Broken", context="somewhere")) == "Broken (somewhere)"
        assert str(EngineError("Broken")) == "Broken"

    def test_repr(self):
        assert repr(EngineError("Broken")) == "EngineError(Broken)"

    def test_invalid_rate_is_value_error(self):
        err = InvalidRate(-1)
        assert isinstance(err, ValueError)
        assert err.rate == -1
