from argparse import ArgumentParser, RawDescriptionHelpFormatter
import dataclasses
import logging
from pathlib import Path
import sys

from . import jobs, settings as settings_module, utils, __version__
from .audio_format import RESAMPLERS

def get_parser():
    parser = ArgumentParser(
        formatter_class=RawDescriptionHelpFormatter,
        prog="osurate",
        description='\n'.join([
            f"osurate v{__version__}: create faster or slower copies ('rates') of osu! beatmaps",
            "",
            "Rates accept decimals, percentages, fractions or an 'x' suffix (ie '1.25', '125%', '5/4' or '1.25x')",
            "Multiple rates are separated by commas, ie '-r 1.1,1.2,1.3'",
            "",
            "Output goes next to each beatmap (or into --output-dir), existing rate files are replaced",
        ]),
    )
    parser.add_argument("beatmaps", nargs="*", type=Path, metavar="BEATMAP_OR_DIR", help="Beatmap files (.osu) or directories containing them")
    parser.add_argument("-r", "--rates", type=utils.parse_rates, help="Comma separated list of rates to generate")
    parser.add_argument("-o", "--output-dir", type=Path, help="Write all outputs to this directory instead of next to the beatmap")
    parser.add_argument("-j", "--workers", type=int, help="Number of parallel jobs. Defaults to the number of CPUs, 1 disables the process pool")
    parser.add_argument("--resampler", choices=RESAMPLERS, help="Audio resampler: linear (fast) or sinc (band-limited, slower)")
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")
    parser.add_argument("-l", "--log-level", type=str, default="INFO", help="Set log level")
    parser.add_argument("--gui", action="store_true", help="Open the interactive mode in the browser instead")
    return parser

def abort(parser: ArgumentParser, reason: str):
    # exits with status 2, same as argparse usage errors
    parser.error(reason)

def apply_options(settings: settings_module.Settings, options) -> settings_module.Settings:
    """flags override file and environment values"""
    audio = settings.audio
    batch = settings.batch
    if options.resampler is not None:
        audio = dataclasses.replace(audio, resampler=options.resampler)
    if options.workers is not None:
        batch = dataclasses.replace(batch, workers=options.workers)
    if options.output_dir is not None:
        batch = dataclasses.replace(batch, output_dir=str(options.output_dir))
    return dataclasses.replace(settings, audio=audio, batch=batch)

def main(options, parser: ArgumentParser) -> int:
    try:
        settings = apply_options(settings_module.load_settings(options.config), options)
    except settings_module.ConfigurationError as ce:
        abort(parser, str(ce))
    if not options.rates:
        abort(parser, "no rates given, use eg. '-r 1.1,1.2'")
    if not options.beatmaps:
        abort(parser, "no beatmaps given")
    try:
        beatmaps = jobs.find_beatmaps(options.beatmaps)
    except FileNotFoundError as fnfe:
        abort(parser, str(fnfe))
    if not beatmaps:
        abort(parser, "no .osu files found")

    job_list = jobs.plan_jobs(beatmaps, options.rates, settings)
    if not job_list:
        utils.logger.warning("Nothing to do")
        return 0
    results = jobs.run_batch(job_list, settings)

    failed = [r for r in results if not r.ok]
    if failed:
        utils.logger.error(f"{len(failed)} of {len(results)} job(s) failed:")
        for r in failed:
            utils.logger.error(f"    {r}")
        return 1
    utils.logger.info(f"Generated {len(results)} rate(s) for {utils.pretty_list([b.name for b in beatmaps])}")
    return 0

def gui_arguments(options) -> list[str]:
    """Flags of this command that the interactive mode understands as well"""
    argv = [f"--log-level={options.log_level}"]
    if options.config is not None:
        argv.append(f"--config={options.config}")
    return argv

def entrypoint():
    parser = get_parser()
    options = parser.parse_args()
    if options.gui:
        from . import gui
        gui.entrypoint(gui_arguments(options))
        return
    logging.basicConfig(
        format='%(asctime)s %(levelname)-8s [%(name)s] %(message)s',
        level=options.log_level.upper(),
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    # hide some spammy logs
    for ln in ("numba", "soundfile"):
        logging.getLogger(ln).setLevel(logging.WARN)
    sys.exit(main(options, parser))

if __name__ == "__main__":
    entrypoint()
