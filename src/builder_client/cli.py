"""
Terminal front end.

Lines typed at the prompt go through the command dispatcher exactly like the
editor's command bar. Lines starting with ``:`` drive the panels instead
(point table, materials, timeline, project actions).
"""

import argparse
import asyncio
import dataclasses
import inspect
import shlex
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import logger as client_log
from .commands import HELP_COMMANDS, filter_help, point_ref
from .config import ClientConfig, load_config
from .errors import ConfigError
from .server_client import ServerClient
from .session import DELETE_POINT_PROMPT, NEW_PROJECT_PROMPT, EditorSession
from .timeline import DELETE_CLIP_PROMPT

PROMPT = "> "


async def ask_yes_no(message: str) -> bool:
    """Read a yes/no answer without blocking the event loop."""
    loop = asyncio.get_running_loop()
    try:
        answer = await loop.run_in_executor(None, input, f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class Repl:
    """Maps ``:`` panel commands onto an editor session."""

    def __init__(
        self,
        session: EditorSession,
        out: Callable[[str], None] = print,
        ask: Callable[[str], Awaitable[bool]] = ask_yes_no,
    ):
        self.session = session
        self.out = out
        self.ask = ask
        self._panel: Dict[str, Callable[[List[str]], Any]] = {
            "help": self._help,
            "points": self._points,
            "edit": self._edit,
            "color": self._color,
            "rm": self._remove_point,
            "materials": self._materials,
            "addmat": self._add_material,
            "mat": self._update_material,
            "build": self._build,
            "click": self._click,
            "bom": self._bom,
            "clips": self._clips,
            "rmclip": self._remove_clip,
            "play": lambda args: self.session.timeline.toggle_play(),
            "stop": lambda args: self.session.timeline.stop(),
            "seek": self._seek,
            "undo": lambda args: self.session.handle_key("z", ctrl=True),
            "redo": lambda args: self.session.handle_key("y", ctrl=True),
            "new": self._new_project,
            "save": self._save,
            "load": self._load,
        }

    async def handle(self, line: str) -> bool:
        """Process one input line. Returns False when the user quits."""
        line = line.strip()
        if not line:
            return True
        if not line.startswith(":"):
            self.session.command_line.type(line)
            self.session.command_line.submit()
            return True

        try:
            name, *args = shlex.split(line[1:])
        except ValueError as e:
            self.out(f"error: {e}")
            return True
        if name in ("q", "quit", "exit"):
            return False

        handler = self._panel.get(name)
        if handler is None:
            self.out(f"unknown panel command :{name} (try :help)")
            return True
        try:
            result = handler(args)
            if inspect.isawaitable(result):
                await result
        except (IndexError, ValueError) as e:
            self.out(f"error: {e}")
        return True

    def _help(self, args: List[str]) -> None:
        entries = filter_help(" ".join(args)) if args else HELP_COMMANDS
        for entry in entries:
            example = f"   e.g. {entry.example}" if entry.example else ""
            self.out(f"{entry.syntax:<45} {entry.description}{example}")

    def _points(self, args: List[str]) -> None:
        labels = self.session.labels()
        for p in self.session.world.points:
            label = labels.get(p.id) or f"p{p.id}"
            self.out(f"{label:<24} x={p.x:g} y={p.y:g} z={p.z:g} {p.color}")

    def _edit(self, args: List[str]) -> None:
        point_id, x, y, z = int(args[0].lstrip("p")), args[1], args[2], args[3]
        if self.session.edit_point(point_id, x, y, z) is None:
            self.out("no change")

    def _color(self, args: List[str]) -> None:
        if self.session.edit_point_color(int(args[0].lstrip("p")), args[1]) is None:
            self.out("no change")

    async def _remove_point(self, args: List[str]) -> None:
        point_id = int(args[0].lstrip("p"))
        answer = await self.ask(DELETE_POINT_PROMPT.format(ref=point_ref(point_id)))
        self.session.delete_point(point_id, confirm=lambda message: answer)

    def _materials(self, args: List[str]) -> None:
        active = self.session.build_mode.active_material()
        for m in self.session.catalog.materials:
            flags = []
            if self.session.catalog.is_duplicate(m):
                flags.append("DUPLICATE")
            if active is not None and active.id == m.id:
                flags.append("BUILDING")
            self.out(f"{m.id}  {m.name:<16} {m.color:<10} {m.thickness:g}  {m.price:g}/m  {' '.join(flags)}")

    def _add_material(self, args: List[str]) -> None:
        material = self.session.add_material()
        self.out(f"added {material.name} ({material.id})")

    def _update_material(self, args: List[str]) -> None:
        material_id, field, value = args[0], args[1], " ".join(args[2:])
        if not self.session.update_material(material_id, field, value):
            self.out("no change")

    def _build(self, args: List[str]) -> None:
        armed = self.session.select_build_material(args[0])
        active = self.session.build_mode.active_material()
        self.out(f"Building with: {active.name}" if armed and active else "build mode off")

    def _click(self, args: List[str]) -> None:
        command = self.session.click_point(int(args[0].lstrip("p")))
        if command is not None:
            self.out(command.to_wire())
        elif self.session.build_mode.pending_start_id is not None:
            self.out(f"start: p{self.session.build_mode.pending_start_id}")

    def _bom(self, args: List[str]) -> None:
        report = self.session.bom()
        for row in report.rows:
            mark = " (duplicate)" if row.is_duplicate else ""
            self.out(f"{row.material.name:<16} {row.total_length:10.2f} m {row.cost:10.2f}{mark}")
        self.out(f"{'TOTAL':<16} {'':>12} {report.grand_total:10.2f}")

    def _clips(self, args: List[str]) -> None:
        timeline = self.session.timeline
        self.out(f"time {timeline.time_display()} {'playing' if self.session.world.is_playing else 'paused'}")
        if timeline.is_empty:
            self.out("No clips yet. Use AddClip(...)")
        for row in timeline.rows():
            for editor in row.editors:
                clip = editor.clip
                self.out(f"{row.label:<6} {clip.id}  {clip.name:<16} {clip.start_time:.2f}s - {clip.end_time:.2f}s")

    async def _remove_clip(self, args: List[str]) -> None:
        editor = self.session.timeline.editor(args[0])
        if editor is None:
            self.out(f"no clip {args[0]}")
            return
        answer = await self.ask(DELETE_CLIP_PROMPT.format(name=editor.clip.name))
        editor.delete(confirm=lambda message: answer)

    def _seek(self, args: List[str]) -> None:
        self.session.timeline.seek(float(args[0]))

    async def _new_project(self, args: List[str]) -> None:
        answer = await self.ask(NEW_PROJECT_PROMPT)
        self.session.new_project(confirm=lambda message: answer)

    def _save(self, args: List[str]) -> None:
        if args:
            self.session.save_as(" ".join(args), adopt=self.session.project_name is None)
        elif self.session.save() is None:
            self.out("project has no name yet: use :save <name>")

    def _load(self, args: List[str]) -> None:
        self.session.load_project(args[0], " ".join(args[1:]) or None)


async def run_client(config: ClientConfig, ask: Callable[[str], Awaitable[bool]] = ask_yes_no):
    """Connect to the server and run the prompt until EOF or :quit."""
    client = ServerClient(config.server)
    session = EditorSession(client.publish, config=config)
    client.on_snapshot = session.handle_snapshot
    repl = Repl(session, ask=ask)

    client_task = asyncio.create_task(client.run())
    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                line = await loop.run_in_executor(None, input, PROMPT)
            except EOFError:
                break
            if not await repl.handle(line):
                break
    finally:
        await client.disconnect()
        client_task.cancel()
        await asyncio.gather(client_task, return_exceptions=True)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Terminal client for the 3D scene builder")
    parser.add_argument(
        "--config",
        help="YAML config file (default: $BUILDER_CLIENT_CONFIG)",
    )
    parser.add_argument(
        "--server-url",
        help="World server websocket URL",
    )
    parser.add_argument(
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--console-log",
        action="store_true",
        help="Also log to stderr",
    )

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2

    if args.server_url:
        config = dataclasses.replace(config, server=dataclasses.replace(config.server, url=args.server_url))

    client_log.init_logging(
        level=args.log_level or config.logging.level,
        log_dir=config.logging.dir,
        console=args.console_log or config.logging.console,
    )
    client_log.log_startup(config.server.url)
    try:
        asyncio.run(run_client(config))
    except KeyboardInterrupt:
        pass
    finally:
        client_log.log_shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
