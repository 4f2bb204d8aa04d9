from multiprocessing import current_process, freeze_support
freeze_support()

from argparse import ArgumentParser
import dataclasses
import logging
from pathlib import Path
import sys
from typing import Optional

from nicegui import app, run, ui
import requests

from osurate import __version__, jobs, utils
from osurate.audio_format import RESAMPLERS
from osurate.local_file_picker import local_file_picker
from osurate.settings import ConfigurationError, Settings, load_settings

logger = logging.getLogger("osurate.gui")

version = f"osurate-GUI v{__version__}"
# set by entrypoint
base_settings = Settings()

@app.get("/version")
def get_version():
    return version

def error(msg: str, exc: Optional[Exception] = None) -> None:
    logger.error(msg + (" " + repr(exc) if exc is not None else ""))
    if exc is not None:
        logger.debug("Stacktrace:", exc_info=exc)
    ui.notify(msg, type="negative", progress=True, group=False, caption=str(exc) if exc is not None else None)

def info(msg: str, caption: Optional[str] = None) -> None:
    logger.info(msg)
    ui.notify(msg, type="positive", progress=True, caption=caption)

async def stop():
    logger.info("Stopping...")
    await ui.run_javascript("setTimeout(window.close, 100);")
    app.shutdown()

def rate_tab():
    storage = app.storage.user
    storage.setdefault("beatmaps", [])
    storage.setdefault("rates", "1.1,1.2,1.3")
    storage.setdefault("resampler", base_settings.audio.resampler)
    # filled from worker threads, drained by the timer below
    pending_lines: list[str] = []

    @ui.refreshable
    def beatmap_list():
        if not storage["beatmaps"]:
            ui.label("No beatmaps selected").classes("text-grey")
            return
        for b in storage["beatmaps"]:
            with ui.row().classes("items-center"):
                ui.icon("music_note", color="primary")
                ui.label(Path(b).name).tooltip(b)

    async def select_beatmaps():
        start = str(Path(storage["beatmaps"][-1]).parent) if storage["beatmaps"] else storage.get("last_dir", "~")
        result = await local_file_picker(start)
        if not result:
            return
        storage["last_dir"] = str(Path(result[-1]).parent)
        storage["beatmaps"] = storage["beatmaps"] + [r for r in result if r not in storage["beatmaps"]]
        beatmap_list.refresh()

    def remove_last():
        if storage["beatmaps"]:
            storage["beatmaps"] = storage["beatmaps"][:-1]
            beatmap_list.refresh()

    def clear():
        storage["beatmaps"] = []
        beatmap_list.refresh()

    async def generate():
        try:
            rates = utils.parse_rates(rates_input.value)
        except ValueError as ve:
            error("Invalid rates", ve)
            return
        if not storage["beatmaps"]:
            error("Select at least one beatmap first")
            return
        try:
            settings = dataclasses.replace(
                base_settings,
                audio=dataclasses.replace(base_settings.audio, resampler=resampler_select.value),
            )
        except ConfigurationError as ce:
            error("Invalid settings", ce)
            return
        job_list = jobs.plan_jobs([Path(b) for b in storage["beatmaps"]], rates, settings)
        if not job_list:
            info("Nothing to do")
            return
        generate_button.disable()
        pending_lines.append(f"Generating {len(job_list)} rate(s)...")
        try:
            results = await run.io_bound(jobs.run_batch, job_list, settings, on_result=lambda r: pending_lines.append(("OK    " if r.ok else "FAIL  ") + str(r)))
        except Exception as exc:
            error("Generating rates failed", exc)
            return
        finally:
            generate_button.enable()
        failed = sum(1 for r in results if not r.ok)
        if failed:
            error(f"{failed} of {len(results)} rate(s) failed, see log for details")
        else:
            info(f"Generated {len(results)} rate(s)")

    def drain_log():
        while pending_lines:
            log.push(pending_lines.pop(0))

    with ui.card().classes("w-full"):
        with ui.row().classes("items-center"):
            rates_input = ui.input(
                "Rates", value=storage["rates"],
                validation={"Invalid rates": _valid_rates},
            ).props("dense").classes("w-64").bind_value(storage, "rates")
            rates_input.tooltip("Comma separated, ie '1.1,1.2' or '110%,120%'")
            resampler_select = ui.select(list(RESAMPLERS), label="Resampler", value=storage["resampler"]).props("dense").classes("w-32").bind_value(storage, "resampler")
            resampler_select.tooltip("linear is fast, sinc is band-limited but slower")
        with ui.row():
            ui.button("Select Beatmap", icon="file_open", on_click=select_beatmaps)
            ui.button("Remove Last", icon="backspace", on_click=remove_last, color="warning")
            ui.button("Clear", icon="clear_all", on_click=clear, color="negative")
            generate_button = ui.button("Generate", icon="speed", on_click=generate, color="positive")
        beatmap_list()

    log = ui.log(max_lines=500).classes("w-full h-64")
    ui.timer(0.2, drain_log)

def _valid_rates(value: str) -> bool:
    try:
        return bool(utils.parse_rates(value))
    except ValueError:
        return False

def entrypoint(argv: Optional[list[str]] = None):
    global base_settings
    parser = ArgumentParser(description=version)
    parser.add_argument("-l", "--log-level", type=str, help="Set log level")
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")
    parser.add_argument("--host", type=str, default="127.0.0.1",
        help="""Host for the webserver. Defaults to 127.0.0.1 (localhost).
            Note that there is NO PASSWORD CHECK, so only use another address if you trust ALL devices on that network to have access to your files.""")
    parser.add_argument("--port", type=int, default=8080, help="Port for the webserver")
    parser.add_argument("--background", action="store_true", help="Open in background (does not open browser)")
    parser.add_argument("--dev-mode", action="store_true", help="Open in dev mode (reloads when editing python files)")

    args = parser.parse_args(argv)
    if args.log_level is None:
        args.log_level = "DEBUG" if args.dev_mode else "INFO"

    try:
        base_settings = load_settings(args.config)
    except ConfigurationError as ce:
        parser.error(str(ce))

    # don't check in dev mode or in spawned worker processes
    if not args.dev_mode and current_process().name == "MainProcess":
        try:
            resp = requests.get(f"http://{args.host}:{args.port}/version", timeout=1)
            resp.raise_for_status()
            print(f"ERROR: {resp.json()} is already running on http://{args.host}:{args.port}")
            sys.exit(-1)
        except requests.ConnectionError:
            # we want an connection error to occur, else there is another instance (or something else) running
            pass
        except requests.RequestException as e:
            print(f"ERROR: Could not check if there is another instance already running on http://{args.host}:{args.port}")
            print(f"           {e!r}")
            print("       If this persists after a restart, something else may be using that port and you could add e.g. --port=8181")
            sys.exit(-1)

    @ui.page("/")
    def index():
        with ui.header(elevated=True):
            ui.label(version).classes("text-h6")
            with ui.element().classes("ml-auto"):
                ui.tooltip("Switch dark mode")
                dark = ui.dark_mode(True)
                ui.button(icon="dark_mode", on_click=dark.enable).bind_visibility_from(dark, "value", backward=lambda v: v is not True).props('text-color=white')
                ui.button(icon="light_mode", on_click=dark.disable).bind_visibility_from(dark, "value", backward=lambda v: v is not False).props('text-color=white')
            with ui.button(icon="close", color="red", on_click=stop):
                ui.tooltip("Quit")
        rate_tab()

    logging.basicConfig(
        format='%(asctime)s %(levelname)-8s [%(name)s] %(message)s',
        level=args.log_level.upper(),
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.FileHandler("osurate_gui.log"),
            logging.StreamHandler()
        ]
    )
    # hide some spammy logs
    for ln in ("watchfiles", "multipart", "numba"):
        logging.getLogger(ln).setLevel(logging.WARN)

    logger.info(f"Starting {version}{' in background' if args.background else ''}. Working directory: {Path().absolute()}")
    ui.run(
        host=args.host,
        port=args.port,
        title=version,
        reload=args.dev_mode,
        storage_secret="osurate_gui",
        show=not args.background,
    )

if __name__ in {"__main__", "__mp_main__"}:
    entrypoint()
