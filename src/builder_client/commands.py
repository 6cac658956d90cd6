"""
Typed commands for the world server.

Every command the client can emit is modelled as a small frozen dataclass and
turned into the server's text syntax only at dispatch time, via ``to_wire()``.
Text typed by the user that the client does not understand travels as a
``RawCommand`` and is forwarded untouched.

Wire syntax:
- Call form: ``Name(arg, arg, ...)`` e.g. ``Connect(p0, p1, #ffffff, 2)``
- Bare words: ``Play``, ``Pause``, ``Stop``, ``Undo``, ``Redo``, ``Clear``
- Point references are written ``p<id>``; id lists as ``[p1, p2, p3]``
"""

from dataclasses import dataclass
from typing import ClassVar, List, Optional, Sequence, Union

Number = Union[int, float]


def format_number(value: Number) -> str:
    """Render a number the way the server expects (``2`` not ``2.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def point_ref(point_id: int) -> str:
    return f"p{point_id}"


def format_id_list(ids: Sequence[int]) -> str:
    return "[" + ", ".join(point_ref(i) for i in ids) + "]"


@dataclass(frozen=True)
class Command:
    """Base class for typed commands."""

    name: ClassVar[str] = ""
    bare: ClassVar[bool] = False

    def args(self) -> List[str]:
        return []

    def to_wire(self) -> str:
        """Serialize to the single-line text the server parses."""
        if self.bare:
            return self.name
        return f"{self.name}({', '.join(self.args())})"


@dataclass(frozen=True)
class RawCommand(Command):
    """Unparsed user text, forwarded verbatim."""

    text: str

    def to_wire(self) -> str:
        return self.text


# Build commands


@dataclass(frozen=True)
class AddPoint(Command):
    name: ClassVar[str] = "AddPoint"

    x: Number
    y: Number
    z: Number
    color: str = "#ffffff"

    def args(self) -> List[str]:
        return [format_number(self.x), format_number(self.y), format_number(self.z), self.color]


@dataclass(frozen=True)
class Connect(Command):
    """Connect a source point to a target point (or collection name)."""

    name: ClassVar[str] = "Connect"

    source: str
    target: str
    color: str
    thickness: Number

    def args(self) -> List[str]:
        return [self.source, self.target, self.color, format_number(self.thickness)]


@dataclass(frozen=True)
class AddFace(Command):
    name: ClassVar[str] = "AddFace"

    point_ids: Sequence[int]
    color: str = "#888888"

    def args(self) -> List[str]:
        return [format_id_list(self.point_ids), self.color]


@dataclass(frozen=True)
class Color(Command):
    name: ClassVar[str] = "Color"

    point_id: int
    color: str

    def args(self) -> List[str]:
        return [point_ref(self.point_id), self.color]


@dataclass(frozen=True)
class Move(Command):
    """Absolute move of a single point."""

    name: ClassVar[str] = "Move"

    point_id: int
    x: Number
    y: Number
    z: Number

    def args(self) -> List[str]:
        return [point_ref(self.point_id), format_number(self.x), format_number(self.y), format_number(self.z)]


@dataclass(frozen=True)
class Delete(Command):
    name: ClassVar[str] = "Delete"

    target: str

    def args(self) -> List[str]:
        return [self.target]


# Collections


@dataclass(frozen=True)
class AddCollection(Command):
    name: ClassVar[str] = "AddCollection"

    collection: str
    point_ids: Sequence[int] = ()

    def args(self) -> List[str]:
        return [self.collection, format_id_list(self.point_ids)]


@dataclass(frozen=True)
class AddToCollection(AddCollection):
    name: ClassVar[str] = "AddToCollection"


@dataclass(frozen=True)
class RemoveFromCollection(AddCollection):
    name: ClassVar[str] = "RemoveFromCollection"


@dataclass(frozen=True)
class RenameCollection(Command):
    name: ClassVar[str] = "RenameCollection"

    old_name: str
    new_name: str

    def args(self) -> List[str]:
        return [self.old_name, self.new_name]


# Timeline


@dataclass(frozen=True)
class AddClip(Command):
    """Axis-mode clip: move ``target`` by ``value`` along ``axis``."""

    name: ClassVar[str] = "AddClip"

    target: str
    clip_type: str
    start_time: Number
    end_time: Number
    axis: str
    value: Number
    clip_name: Optional[str] = None

    def args(self) -> List[str]:
        args = [
            self.target,
            self.clip_type,
            format_number(self.start_time),
            format_number(self.end_time),
            self.axis,
            format_number(self.value),
        ]
        if self.clip_name:
            args.append(f'"{self.clip_name}"')
        return args


@dataclass(frozen=True)
class UpdateClip(Command):
    """Rename/retime a clip. Times always carry two decimals."""

    name: ClassVar[str] = "UpdateClip"

    clip_id: str
    clip_name: str
    start_time: float
    end_time: float

    def args(self) -> List[str]:
        return [str(self.clip_id), self.clip_name, f"{self.start_time:.2f}", f"{self.end_time:.2f}"]


@dataclass(frozen=True)
class DeleteClip(Command):
    name: ClassVar[str] = "DeleteClip"

    clip_name: str

    def args(self) -> List[str]:
        return [self.clip_name]


@dataclass(frozen=True)
class DeleteClipById(Command):
    name: ClassVar[str] = "DeleteClipById"

    clip_id: str

    def args(self) -> List[str]:
        return [str(self.clip_id)]


@dataclass(frozen=True)
class Play(Command):
    name: ClassVar[str] = "Play"
    bare: ClassVar[bool] = True


@dataclass(frozen=True)
class Pause(Command):
    name: ClassVar[str] = "Pause"
    bare: ClassVar[bool] = True


@dataclass(frozen=True)
class Stop(Command):
    name: ClassVar[str] = "Stop"
    bare: ClassVar[bool] = True


@dataclass(frozen=True)
class Seek(Command):
    name: ClassVar[str] = "Seek"

    time: Number

    def args(self) -> List[str]:
        return [format_number(self.time)]


# History / project


@dataclass(frozen=True)
class Undo(Command):
    name: ClassVar[str] = "Undo"
    bare: ClassVar[bool] = True


@dataclass(frozen=True)
class Redo(Command):
    name: ClassVar[str] = "Redo"
    bare: ClassVar[bool] = True


@dataclass(frozen=True)
class Clear(Command):
    name: ClassVar[str] = "Clear"
    bare: ClassVar[bool] = True


@dataclass(frozen=True)
class SaveProject(Command):
    name: ClassVar[str] = "SaveProject"

    project_name: str

    def args(self) -> List[str]:
        return [self.project_name]


@dataclass(frozen=True)
class LoadProject(Command):
    name: ClassVar[str] = "LoadProject"

    project_id: str

    def args(self) -> List[str]:
        return [self.project_id]


# =============================================================================
# HELP REGISTRY - drives autocomplete and the help search
# =============================================================================


@dataclass(frozen=True)
class CommandHelp:
    """Help entry for one command."""

    name: str
    syntax: str
    description: str
    example: str = ""


HELP_COMMANDS: List[CommandHelp] = [
    CommandHelp("addpoint", "AddPoint(x, y, z, color)", "Adds a point.", AddPoint(0, 0, 0).to_wire()),
    CommandHelp("connect", "Connect(from, to, color, size)", "Connects points (p1 to p2 or list).", Connect("p0", "p1", "#ffffff", 3).to_wire()),
    CommandHelp("addface", "AddFace([ids], color)", "Creates a polygon.", AddFace([0, 1, 2]).to_wire()),
    CommandHelp("color", "Color(pID, color)", "Updates color.", Color(0, "#ff0000").to_wire()),
    CommandHelp("move", "Move(pID, x, y, z)", "Absolute move.", Move(0, 5, 5, 5).to_wire()),
    CommandHelp("delete", "Delete(target)", "Removes point/face/link.", Delete("p0").to_wire()),
    CommandHelp("addcollection", "AddCollection(name, [ids])", "Creates group.", AddCollection("fal", [0, 1]).to_wire()),
    CommandHelp("addtocollection", "AddToCollection(name, [ids])", "Adds to group.", AddToCollection("fal", [2]).to_wire()),
    CommandHelp("removefromcollection", "RemoveFromCollection(name, [ids])", "Removes from group.", RemoveFromCollection("fal", [0]).to_wire()),
    CommandHelp("addclip", "AddClip(target, type, start, end, axis, val)", "Anim: Move p0 on Y by 5.", AddClip("p0", "Move", 0, 5, "y", 5, "Name").to_wire()),
    CommandHelp("updateclip", "UpdateClip(id, name, start, end)", "Updates a clip."),
    CommandHelp("deleteclip", "DeleteClip(name)", "Removes clip by name.", DeleteClip("Move1").to_wire()),
    CommandHelp("deleteclipbyid", "DeleteClipById(id)", "Removes clip by ID."),
    CommandHelp("play", "Play", "Starts timeline.", Play().to_wire()),
    CommandHelp("pause", "Pause", "Pauses timeline.", Pause().to_wire()),
    CommandHelp("seek", "Seek(seconds)", "Jumps to time.", Seek(2.5).to_wire()),
    CommandHelp("stop", "Stop", "Stops/Resets everything.", Stop().to_wire()),
    CommandHelp("showindexes", "ShowIndexes(mode)", "0: ID, 1: Coords.", "ShowIndexes(1)"),
    CommandHelp("hideindexes", "HideIndexes", "Hides labels.", "HideIndexes"),
    CommandHelp("clear", "Clear", "Wipes world.", Clear().to_wire()),
    CommandHelp("renamecollection", "RenameCollection(old, new)", "Renames group.", RenameCollection("fal", "wall").to_wire()),
    CommandHelp("undo", "Undo", "Reverts the last change.", Undo().to_wire()),
    CommandHelp("redo", "Redo", "Reapplies an undone change.", Redo().to_wire()),
    CommandHelp("saveproject", "SaveProject(name)", "Saves the world on the server.", SaveProject("house").to_wire()),
    CommandHelp("loadproject", "LoadProject(id)", "Loads a saved project.", ""),
    CommandHelp("clearhistory", "ClearHistory", "Empties the local command history.", "ClearHistory"),
]


def find_help(prefix: str) -> Optional[CommandHelp]:
    """First registered command whose name starts with ``prefix`` (lowercased)."""
    lowered = prefix.lower()
    for entry in HELP_COMMANDS:
        if entry.name.startswith(lowered):
            return entry
    return None


def filter_help(term: str) -> List[CommandHelp]:
    """Help entries whose syntax or description contains ``term``."""
    lowered = term.lower()
    return [c for c in HELP_COMMANDS if lowered in c.syntax.lower() or lowered in c.description.lower()]
