"""
Unit tests for the command line interface.
"""

import pytest

from osurate import cli

EASY = "Artist - Song (Mapper) [Easy].osu"


@pytest.fixture(autouse=True)
def no_env(monkeypatch):
    monkeypatch.delenv("OSURATE_RESAMPLER", raising=False)
    monkeypatch.delenv("OSURATE_WORKERS", raising=False)


def _run(*argv: str) -> int:
    parser = cli.get_parser()
    return cli.main(parser.parse_args(list(argv)), parser)


class TestCLI:
    """Test cases for main."""

    def test_generates_all(self, mapset_dir):
        assert _run(str(mapset_dir), "-r", "1.1,1.2", "-j", "1") == 0
        assert (mapset_dir / "Artist - Song (Mapper) [Easy (1.1x)].osu").is_file()
        assert (mapset_dir / "Artist - Song (Mapper) [Hard (1.2x)].osu").is_file()
        assert (mapset_dir / "audio 1.2x.wav").is_file()

    def test_output_dir(self, mapset_dir, tmp_path):
        out = tmp_path / "rates"
        assert _run(str(mapset_dir / EASY), "-r", "150%", "-j", "1", "-o", str(out)) == 0
        assert (out / "audio 1.5x.wav").is_file()

    def test_failed_job_exit_code(self, mapset_dir):
        (mapset_dir / "audio.wav").write_bytes(b"broken")
        assert _run(str(mapset_dir / EASY), "-r", "1.2", "-j", "1") == 1

    def test_config_file(self, mapset_dir, tmp_path):
        config = tmp_path / "osurate.yaml"
        config.write_text("naming:\n  version_format: '{version} x{rate}'\n", encoding="utf-8")
        assert _run(str(mapset_dir / EASY), "-r", "1.2", "-j", "1", "-c", str(config)) == 0
        assert (mapset_dir / "Artist - Song (Mapper) [Easy x1.2].osu").is_file()

    def test_only_unity_rate(self, mapset_dir):
        assert _run(str(mapset_dir), "-r", "1") == 0

    @pytest.mark.parametrize("argv", [
        ("-r", "1.2"),
        ("missing.osu", "-r", "1.2"),
        ("map.osu",),
    ])
    def test_usage_errors(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            _run(*argv)
        assert exc_info.value.code == 2

    def test_bad_rate(self, mapset_dir):
        with pytest.raises(SystemExit) as exc_info:
            _run(str(mapset_dir), "-r", "1.2,-1")
        assert exc_info.value.code == 2

    def test_bad_config(self, mapset_dir, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            _run(str(mapset_dir), "-r", "1.2", "-c", str(tmp_path / "missing.yaml"))
        assert exc_info.value.code == 2

    def test_wrongly_typed_config(self, mapset_dir, tmp_path):
        config = tmp_path / "osurate.yaml"
        config.write_text("naming:\n  rate_decimals: '2'\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            _run(str(mapset_dir), "-r", "1.2", "-c", str(config))
        assert exc_info.value.code == 2


class TestGuiArguments:
    """Test cases for the flags passed on by --gui."""

    def test_log_level_only(self):
        options = cli.get_parser().parse_args(["--gui", "-l", "DEBUG"])
        assert cli.gui_arguments(options) == ["--log-level=DEBUG"]

    def test_config_is_passed_on(self, tmp_path):
        config = tmp_path / "osurate.yaml"
        options = cli.get_parser().parse_args(["--gui", "-c", str(config)])
        assert cli.gui_arguments(options) == ["--log-level=INFO", f"--config={config}"]
