"""
Editor session.

Wires the preprocessor, synchronizer, timeline and material engine together
and hosts the smaller panels that only emit commands: the point table, the
collection panel, project actions and the global keyboard shortcuts.

Commands typed in the terminal, collection-panel actions and project actions
go through the text dispatcher (and so into the history). Direct
manipulations (point table edits, clip edits, build-mode connects, playback
and undo/redo shortcuts) are sent as typed commands without touching it.
"""

import logging
import math
from typing import Any, Callable, Dict, Optional

from .commands import (
    AddCollection,
    AddToCollection,
    Clear,
    Color,
    Connect,
    Delete,
    LoadProject,
    Move,
    Redo,
    RemoveFromCollection,
    RenameCollection,
    SaveProject,
    Undo,
    point_ref,
)
from .config import ClientConfig
from .errors import DuplicateMaterialError
from .materials import BomReport, BuildMode, Material, MaterialCatalog, compute_bom
from .preprocessor import CommandDispatcher, CommandLine, DispatchResult, expand_id_range, format_label
from .shared.colors import normalize_color
from .timeline import Confirm, TimelineEditor
from .world import WorldState, WorldSynchronizer

logger = logging.getLogger(__name__)

DELETE_POINT_PROMPT = "Delete point {ref}?"
NEW_PROJECT_PROMPT = "Start new project? Unsaved changes will be lost."


def _decline(message: str) -> bool:
    return False


def _parse_coordinate(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class EditorSession:
    """
    One editing session against the world server.

    Args:
        publish: Puts command text on the outbound channel
        confirm: Asks the user a yes/no question; destructive actions are
            declined when not given
        config: Client configuration
    """

    def __init__(
        self,
        publish: Callable[[str], Any],
        confirm: Optional[Confirm] = None,
        config: Optional[ClientConfig] = None,
    ):
        self.config = config or ClientConfig()
        self._confirm = confirm or _decline

        self.catalog = MaterialCatalog()
        self.dispatcher = CommandDispatcher(publish, self.catalog)
        self.command_line = CommandLine(self.dispatcher)
        self.synchronizer = WorldSynchronizer()
        self.synchronizer.on_connections_changed(self.catalog.sync_from_connections)
        self.timeline = TimelineEditor(self.synchronizer, self.dispatcher.send, self._confirm, settings=self.config.timeline)
        self.build_mode = BuildMode(self.catalog)
        self.project_name: Optional[str] = None

    @property
    def world(self) -> WorldState:
        return self.synchronizer.state

    def handle_snapshot(self, raw: str) -> bool:
        """Inbound world update from the server."""
        return self.synchronizer.apply_message(raw)

    def run_command(self, text: str) -> Optional[DispatchResult]:
        return self.dispatcher.dispatch(text)

    def labels(self) -> Dict[int, str]:
        """Point labels under the current label mode."""
        mode = self.dispatcher.label_mode
        return {p.id: format_label(p.id, p.x, p.y, p.z, mode) for p in self.world.points}

    # =========================================================================
    # POINT TABLE
    # =========================================================================

    def edit_point(self, point_id: int, x: Any, y: Any, z: Any) -> Optional[Move]:
        """Commit coordinates typed in the point table.

        Any non-numeric value rolls the whole row back (nothing is sent).
        Unchanged coordinates send nothing either.
        """
        point = self.world.point(point_id)
        if point is None:
            return None

        coords = [_parse_coordinate(v) for v in (x, y, z)]
        if any(c is None for c in coords):
            logger.debug(f"Rolling back invalid coordinates for {point_ref(point_id)}: {(x, y, z)}")
            return None

        nx, ny, nz = coords
        if (nx, ny, nz) == (point.x, point.y, point.z):
            return None

        command = Move(point_id, nx, ny, nz)
        self.dispatcher.send(command)
        return command

    def edit_point_color(self, point_id: int, color: str) -> Optional[Color]:
        point = self.world.point(point_id)
        if point is None or normalize_color(color) == normalize_color(point.color):
            return None
        command = Color(point_id, color)
        self.dispatcher.send(command)
        return command

    def delete_point(self, point_id: int, confirm: Optional[Confirm] = None) -> bool:
        if not (confirm or self._confirm)(DELETE_POINT_PROMPT.format(ref=point_ref(point_id))):
            return False
        self.dispatcher.send(Delete(point_ref(point_id)))
        return True

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def add_to_collection(self, name: str, ids_input: str) -> Optional[DispatchResult]:
        """Add a single id or an ``a..b`` range typed in the collection panel."""
        ids = expand_id_range(ids_input)
        if ids is None:
            logger.debug(f"Ignoring invalid id input for collection {name}: {ids_input!r}")
            return None
        return self.dispatcher.dispatch(AddToCollection(name, ids).to_wire())

    def remove_from_collection(self, name: str, point_id: int) -> Optional[DispatchResult]:
        return self.dispatcher.dispatch(RemoveFromCollection(name, [point_id]).to_wire())

    def create_collection(self, name: str) -> Optional[DispatchResult]:
        if not name.strip():
            return None
        return self.dispatcher.dispatch(AddCollection(name.strip()).to_wire())

    def rename_collection(self, old_name: str, new_name: str) -> Optional[DispatchResult]:
        if not new_name.strip() or new_name == old_name:
            return None
        return self.dispatcher.dispatch(RenameCollection(old_name, new_name).to_wire())

    # =========================================================================
    # PROJECT
    # =========================================================================

    def new_project(self, confirm: Optional[Confirm] = None) -> bool:
        if not (confirm or self._confirm)(NEW_PROJECT_PROMPT):
            return False
        self.dispatcher.dispatch(Clear().to_wire())
        self.project_name = None
        return True

    def save(self) -> Optional[DispatchResult]:
        """Save under the current project name.

        Returns None when the project has no name yet; the caller should ask
        for one and use ``save_as(name, adopt=True)``.
        """
        if not self.project_name:
            return None
        return self.dispatcher.dispatch(SaveProject(self.project_name).to_wire())

    def save_as(self, name: str, adopt: bool = False) -> Optional[DispatchResult]:
        """Save a copy under ``name``; ``adopt`` makes it the current project."""
        if not name.strip():
            return None
        result = self.dispatcher.dispatch(SaveProject(name).to_wire())
        if adopt:
            self.project_name = name
        return result

    def load_project(self, project_id: str, name: Optional[str] = None) -> Optional[DispatchResult]:
        result = self.dispatcher.dispatch(LoadProject(project_id).to_wire())
        self.project_name = name
        return result

    # =========================================================================
    # MATERIALS
    # =========================================================================

    def add_material(self) -> Material:
        return self.catalog.add_material()

    def update_material(self, material_id: str, field: str, value: Any) -> bool:
        return self.catalog.update(material_id, field, value)

    def bom(self) -> BomReport:
        return compute_bom(self.catalog, self.world.connections, self.world.points)

    def select_build_material(self, material_id: str) -> bool:
        """Arm (or disarm) build mode with a material.

        Returns:
            True if build mode is armed afterwards
        """
        material = self.catalog.get(material_id)
        if material is None:
            return False
        try:
            return self.build_mode.toggle(material)
        except DuplicateMaterialError as e:
            logger.warning(f"Cannot build with duplicate material: {e}")
            return False

    def click_point(self, point_id: int) -> Optional[Connect]:
        command = self.build_mode.click_point(point_id)
        if command is not None:
            self.dispatcher.send(command)
        return command

    # =========================================================================
    # SHORTCUTS
    # =========================================================================

    def handle_key(self, key: str, ctrl: bool = False, input_focused: bool = False) -> Optional[str]:
        """Global keyboard shortcuts.

        Returns:
            Name of the action taken, or None. ``"save_as"`` means the project
            has no name yet and the caller should ask for one.
        """
        key = key.lower()
        if ctrl and key == "z":
            self.dispatcher.send(Undo())
            return "undo"
        if ctrl and key == "y":
            self.dispatcher.send(Redo())
            return "redo"
        if ctrl and key == "s":
            return "save" if self.save() is not None else "save_as"
        if key == "escape":
            self.build_mode.cancel_pending()
            return "cancel"
        if key in (" ", "space") and not input_focused:
            self.timeline.toggle_play()
            return "toggle_play"
        return None
