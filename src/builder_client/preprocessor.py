"""
Command Preprocessor & Dispatcher

Turns a line typed by the user into the text that goes on the wire:

1. ``Connect(a, b, <material name>)`` is rewritten to the material's
   ``color, thickness`` when the name is in the local catalog.
2. Point ranges inside collection id lists (``[p3...p6]``) are expanded to
   explicit ids.
3. The result is appended to the command history.
4. Local pseudo-commands (``showindexes``, ``hideindexes``, ``clearhistory``)
   are handled here; everything else is published unchanged.

The client performs no grammar validation beyond these rewrites. Text it does
not understand is still forwarded; the server decides.
"""

import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, List, Optional, Tuple

from . import logger as client_log
from .commands import Command, Connect, RawCommand, find_help, format_id_list
from .materials import MaterialCatalog

logger = logging.getLogger(__name__)

_RANGE_SPLIT = re.compile(r"\.{2,3}")
_CONNECT_RE = re.compile(r"^Connect\s*\(([^,]+),\s*([^,]+),\s*(.+)\)$", re.IGNORECASE)
_COLLECTION_LIST_RE = re.compile(
    r"^(AddCollection|AddToCollection|RemoveFromCollection)\s*\(\s*([^,\[\]]+?)\s*,\s*\[([^\]]*)\]\s*\)$",
    re.IGNORECASE,
)
_LABEL_MODE_ARG = re.compile(r"\((\d)\)")


# =============================================================================
# RANGE EXPANSION
# =============================================================================


def _parse_point_id(token: str) -> Optional[int]:
    token = token.strip().lower()
    if token.startswith("p"):
        token = token[1:].strip()
    try:
        return int(token)
    except ValueError:
        return None


def expand_id_range(text: str) -> Optional[List[int]]:
    """Expand ``a..b`` / ``a...b`` (optional ``p`` prefixes) or a single id.

    Returns the inclusive ascending id list, or None when the text is not a
    valid range or id. ``p6..p3`` and ``p3..p6`` both give ``[3, 4, 5, 6]``.
    """
    raw = text.strip().lower()
    if not raw:
        return None

    if ".." in raw:
        parts = _RANGE_SPLIT.split(raw)
        if len(parts) != 2:
            return None
        start = _parse_point_id(parts[0])
        end = _parse_point_id(parts[1])
        if start is None or end is None:
            return None
        return list(range(min(start, end), max(start, end) + 1))

    point_id = _parse_point_id(raw)
    if point_id is None:
        return None
    return [point_id]


def expand_id_list(body: str) -> Optional[List[int]]:
    """Expand the inside of a bracketed list such as ``p1, p3...p6, p8``.

    Returns None if any token is malformed.
    """
    if not body.strip():
        return []
    ids: List[int] = []
    for token in body.split(","):
        expanded = expand_id_range(token)
        if expanded is None:
            return None
        ids.extend(expanded)
    return ids


def expand_collection_ranges(text: str) -> str:
    """Rewrite range shorthand in collection commands to explicit id lists.

    ``AddToCollection(fal, [p3...p5])`` -> ``AddToCollection(fal, [p3, p4, p5])``.
    Text without ranges, or with a malformed list, is returned unchanged.
    """
    match = _COLLECTION_LIST_RE.match(text.strip())
    if not match:
        return text
    command_name, collection, body = match.groups()
    if ".." not in body:
        return text

    ids = expand_id_list(body)
    if ids is None:
        logger.debug(f"Leaving malformed id list untouched: {body}")
        return text
    return f"{command_name}({collection}, {format_id_list(ids)})"


# =============================================================================
# MATERIAL RESOLUTION
# =============================================================================


def resolve_material(text: str, catalog: Optional[MaterialCatalog]) -> str:
    """Rewrite ``Connect(from, to, <name>)`` using a catalog material.

    The third argument counts as a material name when it has no comma or is
    quoted. Lookup is case-insensitive; a miss returns the text unchanged.
    """
    if catalog is None:
        return text
    match = _CONNECT_RE.match(text.strip())
    if not match:
        return text

    source = match.group(1).strip()
    target = match.group(2).strip()
    raw_material = match.group(3).strip()

    is_name = "," not in raw_material or raw_material.startswith(('"', "'"))
    if not is_name:
        return text

    search_name = raw_material.replace('"', "").replace("'", "")
    material = catalog.find_by_name(search_name)
    if material is None:
        return text

    return Connect(source, target, material.color, material.thickness).to_wire()


# =============================================================================
# HISTORY / AUTOCOMPLETE
# =============================================================================


class CommandHistory:
    """Append-only log of dispatched commands with an ArrowUp/ArrowDown cursor.

    The cursor is -1 when not browsing. Navigation never changes the log.
    """

    def __init__(self):
        self._entries: List[str] = []
        self._cursor = -1

    @property
    def entries(self) -> Tuple[str, ...]:
        return tuple(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, text: str) -> None:
        self._entries.append(text)
        self._cursor = -1

    def clear(self) -> None:
        self._entries = []
        self._cursor = -1

    def previous(self) -> Optional[str]:
        """Step towards older entries. Returns None if the log is empty."""
        if not self._entries:
            return None
        if self._cursor == -1:
            self._cursor = len(self._entries) - 1
        else:
            self._cursor = max(0, self._cursor - 1)
        return self._entries[self._cursor]

    def next(self) -> Optional[str]:
        """Step towards newer entries; past the newest returns an empty input.

        Returns None when not browsing.
        """
        if self._cursor == -1:
            return None
        if self._cursor >= len(self._entries) - 1:
            self._cursor = -1
            return ""
        self._cursor += 1
        return self._entries[self._cursor]


def suggest(text: str) -> str:
    """Ghost suggestion for partial input, or "" when there is none."""
    if not text:
        return ""
    lowered = text.lower()
    match = find_help(lowered)
    if match and match.name != lowered:
        return match.syntax
    return ""


# =============================================================================
# LABELS
# =============================================================================


class LabelMode(IntEnum):
    HIDDEN = -1
    IDS = 0
    COORDINATES = 1


def _short_coord(value: float) -> str:
    return f"{float(value):.1f}".replace(".0", "", 1)


def format_label(point_id: int, x: float, y: float, z: float, mode: LabelMode) -> str:
    """Label text for a point under the given mode ("" when hidden)."""
    if mode == LabelMode.IDS:
        return f"p{point_id}"
    if mode == LabelMode.COORDINATES:
        return f"p{point_id} ({_short_coord(x)}, {_short_coord(y)}, {_short_coord(z)})"
    return ""


# =============================================================================
# DISPATCHER
# =============================================================================


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of dispatching one line."""

    text: str
    original: str
    sent: bool
    local_action: Optional[str] = None


class CommandDispatcher:
    """
    Preprocesses user text and hands it to the outbound channel.

    Args:
        publish: Callable that puts a command string on the outbound channel
        catalog: Material catalog used to resolve names in Connect commands
    """

    def __init__(self, publish: Callable[[str], None], catalog: Optional[MaterialCatalog] = None):
        self._publish = publish
        self.catalog = catalog
        self.history = CommandHistory()
        self.label_mode = LabelMode.IDS

    def preprocess(self, text: str) -> str:
        """Apply all rewrites without dispatching."""
        rewritten = resolve_material(text.strip(), self.catalog)
        return expand_collection_ranges(rewritten)

    def dispatch(self, text: str) -> Optional[DispatchResult]:
        """Preprocess, record and dispatch a line of user input.

        Returns None for blank input.
        """
        if not text or not text.strip():
            return None

        original = text.strip()
        rewritten = self.preprocess(original)
        self.history.append(rewritten)

        local_action = self._handle_local(rewritten)
        if local_action is not None:
            client_log.log_command(rewritten, sent=False, original=original)
            return DispatchResult(rewritten, original, sent=False, local_action=local_action)

        self._publish(RawCommand(rewritten).to_wire())
        client_log.log_command(rewritten, sent=True, original=original)
        return DispatchResult(rewritten, original, sent=True)

    def send(self, command: Command) -> str:
        """Publish a typed command from a UI interaction, bypassing the history."""
        wire = command.to_wire()
        self._publish(wire)
        client_log.log_command(wire, sent=True)
        return wire

    def _handle_local(self, text: str) -> Optional[str]:
        lowered = text.strip().lower()
        if lowered.startswith("showindexes"):
            match = _LABEL_MODE_ARG.search(lowered)
            if match and int(match.group(1)) == 1:
                self.label_mode = LabelMode.COORDINATES
            else:
                self.label_mode = LabelMode.IDS
            return "showindexes"
        if lowered == "hideindexes":
            self.label_mode = LabelMode.HIDDEN
            return "hideindexes"
        if lowered == "clearhistory":
            self.history.clear()
            return "clearhistory"
        return None


class CommandLine:
    """
    State of the terminal input box: current text, ghost suggestion and
    history browsing.
    """

    def __init__(self, dispatcher: CommandDispatcher):
        self.dispatcher = dispatcher
        self.text = ""
        self.suggestion = ""

    def type(self, text: str) -> None:
        self.text = text
        self.suggestion = suggest(text)

    def accept_suggestion(self) -> bool:
        """Tab: replace the input with the suggestion outright."""
        if not self.suggestion:
            return False
        self.text = self.suggestion
        self.suggestion = ""
        return True

    def history_up(self) -> None:
        entry = self.dispatcher.history.previous()
        if entry is not None:
            self.text = entry
            self.suggestion = ""

    def history_down(self) -> None:
        entry = self.dispatcher.history.next()
        if entry is not None:
            self.text = entry
            self.suggestion = ""

    def submit(self) -> Optional[DispatchResult]:
        """Enter: dispatch the current text and clear the input."""
        result = self.dispatcher.dispatch(self.text)
        if result is not None:
            self.text = ""
            self.suggestion = ""
        return result
