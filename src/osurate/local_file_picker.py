# based on: https://github.com/zauberzeug/nicegui/blob/main/examples/local_file_picker/local_file_picker.py
import platform
from pathlib import Path

from nicegui import events, ui

class local_file_picker(ui.dialog):

    def __init__(self, directory: str, suffix: str = ".osu", multiple: bool = True) -> None:
        """Local File Picker

        A simple file picker that allows you to select files from the local filesystem where NiceGUI is running.
        Only directories and files ending with `suffix` are listed. Double click enters a directory or picks a single file.

        :param directory: The directory to start in.
        :param suffix: File extension to show (including the dot).
        :param multiple: Allow selecting multiple files.
        """
        super().__init__()
        self.suffix = suffix.lower()
        with self, ui.card():
            self.add_drives_toggle()
            self.path_input = ui.input(
                "Directory",
                on_change=lambda e: self.set_path(e.value),
                validation={"Not a directory": lambda v: v and Path(v).is_dir()}
            ).props("no-error-icon").classes("w-full")
            self.grid = ui.aggrid({
                'columnDefs': [{'field': 'name', 'headerName': 'File'}],
                'rowSelection': 'multiple' if multiple else 'single',
            }, html_columns=[0]).classes('w-96').on('cellDoubleClicked', self.handle_double_click)
            with ui.row().classes('w-full justify-end'):
                ui.button('Cancel', on_click=self.close).props('outline')
                ui.button('Ok', on_click=self._handle_ok)
        self.set_path(directory)

    def add_drives_toggle(self):
        with ui.row():
            with ui.button(icon="home", on_click=lambda _: self.set_path("~")):
                ui.tooltip(f"User home: {Path('~').expanduser()}")
            with ui.button(icon="terminal", on_click=lambda _: self.set_path(str(Path().absolute()))):
                ui.tooltip(f"Current directory: {Path().absolute()}")
            if platform.system() == 'Windows':
                # drive letters, without pywin32
                drives = [f"{d}:\\" for d in "ABCDEFGHIJKLMNOPQRSTUVWXYZ" if Path(f"{d}:\\").exists()]
                if drives:
                    ui.toggle(drives, value=drives[0], on_change=lambda e: self.set_path(e.value))
            else:
                with ui.button("/", on_click=lambda _: self.set_path("/")):
                    ui.tooltip("Filesystem root")

    def set_path(self, p: str):
        pp = Path(p).expanduser().absolute()
        if p and pp.is_dir():
            self.path = pp
            self.path_input.value = str(pp)
            self._update_grid()

    def _update_grid(self) -> None:
        try:
            entries = [p for p in self.path.iterdir() if p.is_dir() or p.suffix.lower() == self.suffix]
        except OSError:
            # unreadable directory, show it as empty
            entries = []
        # directories first
        entries.sort(key=lambda p: (not p.is_dir(), p.name.lower()))

        self.grid.options['rowData'] = [
            {
                'name': f'📁 <strong>{p.name}</strong>' if p.is_dir() else p.name,
                'path': str(p),
            }
            for p in entries
        ]
        if self.path != self.path.parent:
            self.grid.options['rowData'].insert(0, {
                'name': '↖️ <strong>..</strong>',
                'path': str(self.path.parent),
            })
        self.grid.update()

    def handle_double_click(self, e: events.GenericEventArguments) -> None:
        path = Path(e.args['data']['path'])
        if path.is_dir():
            self.set_path(str(path))
        else:
            self.submit([str(path)])

    async def _handle_ok(self):
        rows = await self.grid.get_selected_rows()
        self.submit([r['path'] for r in rows if not Path(r['path']).is_dir()])
