"""
Timeline/Clip Editor

Clips are edited by dragging their body (move) or edges (resize) along a
track that spans ``max_time`` seconds. Pixel deltas become time deltas with

    time = (pixel_delta / track_width) * max_time

where ``track_width`` is measured once when the gesture starts, minus the
label gutter. Every pointer move emits an ``UpdateClip``; clip records are
never changed locally, the next snapshot brings the confirmed values. While a
gesture is running the editor renders from its own preview.

Gestures capture global pointer-move/pointer-up listeners on the
``PointerEventHub`` and release them on pointer-up, whatever the handlers do.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .commands import Command, DeleteClipById, Pause, Play, Seek, Stop, UpdateClip
from .config import TimelineSettings
from .world import Clip, WorldSynchronizer

logger = logging.getLogger(__name__)

Publish = Callable[[Command], Any]
Confirm = Callable[[str], bool]

DELETE_CLIP_PROMPT = 'Delete clip "{name}"?'


# =============================================================================
# GEOMETRY
# =============================================================================


def measure_track_width(element_width: float, gutter: float = 65.0) -> float:
    """Usable track width: the tracks area minus the label gutter."""
    return element_width - gutter


def pixels_to_time(pixel_delta: float, track_width: float, max_time: float) -> float:
    if track_width <= 0:
        return 0.0
    return (pixel_delta / track_width) * max_time


def resize_left(start: float, end: float, delta: float, min_duration: float = 0.1) -> Tuple[float, float]:
    """Move the start edge; keeps ``0 <= start <= end - min_duration``."""
    new_start = max(start + delta, 0.0)
    new_start = min(new_start, end - min_duration)
    return max(new_start, 0.0), end


def resize_right(start: float, end: float, delta: float, min_duration: float = 0.1) -> Tuple[float, float]:
    """Move the end edge; keeps ``end >= start + min_duration``."""
    return start, max(end + delta, start + min_duration)


def move_clip(start: float, end: float, delta: float) -> Tuple[float, float]:
    """Shift the whole clip, keeping its duration. Only ``start >= 0`` is enforced."""
    duration = end - start
    new_start = max(start + delta, 0.0)
    return new_start, new_start + duration


def time_to_percent(time: float, max_time: float) -> float:
    if max_time <= 0:
        return 0.0
    return time / max_time * 100.0


def format_seconds(time: float) -> str:
    return f"{time:.2f}s"


# =============================================================================
# POINTER CAPTURE
# =============================================================================


class PointerEventHub:
    """Window-level pointer listeners.

    The host feeds raw pointer positions in through ``pointer_move`` and
    ``pointer_up``, including releases that happen outside the clip element.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable[[float], Any]]] = {"move": [], "up": []}

    def add_listener(self, kind: str, listener: Callable[[float], Any]) -> None:
        self._listeners[kind].append(listener)

    def remove_listener(self, kind: str, listener: Callable[[float], Any]) -> None:
        if listener in self._listeners[kind]:
            self._listeners[kind].remove(listener)

    def listener_count(self) -> int:
        return sum(len(v) for v in self._listeners.values())

    def pointer_move(self, x: float) -> None:
        for listener in list(self._listeners["move"]):
            listener(x)

    def pointer_up(self, x: float) -> None:
        for listener in list(self._listeners["up"]):
            listener(x)


class Gesture:
    """
    One drag/resize gesture holding the hub's move/up listeners.

    Args:
        hub: Pointer hub to listen on
        start_x: Pointer x at gesture start
        track_width: Track width measured at gesture start
        max_time: Seconds spanned by the track
        on_move: Called with the time delta on every move
        on_end: Called once on release
    """

    def __init__(
        self,
        hub: PointerEventHub,
        start_x: float,
        track_width: float,
        max_time: float,
        on_move: Callable[[float], Any],
        on_end: Optional[Callable[[], Any]] = None,
    ):
        self.hub = hub
        self.start_x = start_x
        self.track_width = track_width
        self.max_time = max_time
        self._on_move = on_move
        self._on_end = on_end
        self.active = False

    def start(self) -> "Gesture":
        self.hub.add_listener("move", self._handle_move)
        self.hub.add_listener("up", self._handle_up)
        self.active = True
        return self

    def release(self) -> None:
        self.hub.remove_listener("move", self._handle_move)
        self.hub.remove_listener("up", self._handle_up)
        self.active = False

    def _handle_move(self, x: float) -> None:
        self._on_move(pixels_to_time(x - self.start_x, self.track_width, self.max_time))

    def _handle_up(self, x: float) -> None:
        try:
            if self._on_end is not None:
                self._on_end()
        finally:
            self.release()

    def __enter__(self) -> "Gesture":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


# =============================================================================
# CLIP ITEM
# =============================================================================


class ClipState(str, Enum):
    IDLE = "idle"
    RENAMING = "renaming"
    DRAGGING = "dragging"
    RESIZING_LEFT = "resizing_left"
    RESIZING_RIGHT = "resizing_right"


class ClipItemEditor:
    """
    Interaction state of one clip block.

    Renaming and dragging/resizing exclude each other: a gesture cannot start
    while the name is being edited, and rename cannot start mid-gesture.
    """

    def __init__(
        self,
        clip: Clip,
        publish: Publish,
        hub: PointerEventHub,
        confirm: Confirm,
        settings: Optional[TimelineSettings] = None,
    ):
        self.clip = clip
        self._publish = publish
        self._hub = hub
        self._confirm = confirm
        self.settings = settings or TimelineSettings()

        self.state = ClipState.IDLE
        self.temp_name = clip.name
        self.hovered = False
        self.preview: Optional[Tuple[float, float]] = None
        self._gesture: Optional[Gesture] = None

    def sync(self, clip: Clip) -> None:
        """Take the latest clip record from a snapshot."""
        self.clip = clip
        if self.state != ClipState.RENAMING:
            self.temp_name = clip.name

    # Rename

    def begin_rename(self) -> bool:
        if self.state != ClipState.IDLE:
            return False
        self.state = ClipState.RENAMING
        self.temp_name = self.clip.name
        return True

    def set_name(self, text: str) -> None:
        if self.state == ClipState.RENAMING:
            self.temp_name = text

    def commit_rename(self) -> Optional[UpdateClip]:
        """Enter or blur. Emits an update only if the name changed."""
        if self.state != ClipState.RENAMING:
            return None
        self.state = ClipState.IDLE
        if self.temp_name == self.clip.name:
            return None
        return self._emit(self.clip.start_time, self.clip.end_time, track_preview=False)

    def cancel_rename(self) -> None:
        """Escape: restore the current name."""
        if self.state == ClipState.RENAMING:
            self.temp_name = self.clip.name
            self.state = ClipState.IDLE

    # Drag / resize

    def begin_drag(self, x: float, area_width: float) -> Optional[Gesture]:
        return self._begin(ClipState.DRAGGING, x, area_width)

    def begin_resize(self, edge: str, x: float, area_width: float) -> Optional[Gesture]:
        if edge not in ("left", "right"):
            raise ValueError(f"Unknown clip edge: {edge}")
        state = ClipState.RESIZING_LEFT if edge == "left" else ClipState.RESIZING_RIGHT
        return self._begin(state, x, area_width)

    def _begin(self, state: ClipState, x: float, area_width: float) -> Optional[Gesture]:
        if self.state != ClipState.IDLE:
            logger.debug(f"Ignoring {state.value} on clip {self.clip.id} while {self.state.value}")
            return None

        self.state = state
        origin = (self.clip.start_time, self.clip.end_time)
        track_width = measure_track_width(area_width, self.settings.label_gutter_px)

        def on_move(delta: float) -> None:
            start, end = origin
            if state == ClipState.DRAGGING:
                start, end = move_clip(start, end, delta)
            elif state == ClipState.RESIZING_LEFT:
                start, end = resize_left(start, end, delta, self.settings.min_clip_duration)
            else:
                start, end = resize_right(start, end, delta, self.settings.min_clip_duration)
            self._emit(start, end)

        self._gesture = Gesture(self._hub, x, track_width, self.settings.max_time, on_move, self._end_gesture)
        return self._gesture.start()

    def _end_gesture(self) -> None:
        self.state = ClipState.IDLE
        self.preview = None
        self._gesture = None

    def _emit(self, start: float, end: float, track_preview: bool = True) -> UpdateClip:
        if track_preview:
            self.preview = (start, end)
        command = UpdateClip(self.clip.id, self.temp_name, start, end)
        self._publish(command)
        return command

    # Delete

    def delete(self, confirm: Optional[Confirm] = None) -> bool:
        """Ask for confirmation, then emit DeleteClipById.

        ``confirm`` overrides the editor's prompt for this one call.
        """
        if not (confirm or self._confirm)(DELETE_CLIP_PROMPT.format(name=self.clip.name)):
            return False
        self._publish(DeleteClipById(self.clip.id))
        return True

    # Rendering

    @property
    def is_gesturing(self) -> bool:
        return self.state in (ClipState.DRAGGING, ClipState.RESIZING_LEFT, ClipState.RESIZING_RIGHT)

    @property
    def times(self) -> Tuple[float, float]:
        """Displayed start/end: the drag preview if any, else the clip record."""
        if self.preview is not None:
            return self.preview
        return self.clip.start_time, self.clip.end_time

    def geometry(self) -> Tuple[float, float]:
        """Left offset and width as percentages of the track."""
        start, end = self.times
        max_time = self.settings.max_time
        return time_to_percent(start, max_time), time_to_percent(end - start, max_time)

    def tooltips(self) -> Optional[Tuple[str, str]]:
        if self.state == ClipState.RENAMING or not (self.hovered or self.is_gesturing):
            return None
        start, end = self.times
        return format_seconds(start), format_seconds(end)


# =============================================================================
# TIMELINE
# =============================================================================


def group_clips_by_target(clips: Sequence[Clip]) -> List[Tuple[int, List[Clip]]]:
    """Partition clips into per-target rows in first-seen order."""
    rows: Dict[int, List[Clip]] = {}
    for clip in clips:
        rows.setdefault(clip.target_id, []).append(clip)
    return list(rows.items())


@dataclass
class TrackRow:
    target_id: int
    editors: List[ClipItemEditor]

    @property
    def label(self) -> str:
        return f"p{self.target_id}"


class TimelineEditor:
    """
    Timeline panel: playback controls, playhead and one editor per clip.

    Args:
        synchronizer: World synchronizer providing clips and playback state
        publish: Sends a typed command on the outbound channel
        confirm: Asks the user a yes/no question
        hub: Pointer hub shared by all clip gestures
        settings: Track geometry
    """

    def __init__(
        self,
        synchronizer: WorldSynchronizer,
        publish: Publish,
        confirm: Confirm,
        hub: Optional[PointerEventHub] = None,
        settings: Optional[TimelineSettings] = None,
    ):
        self.synchronizer = synchronizer
        self._publish = publish
        self._confirm = confirm
        self.hub = hub or PointerEventHub()
        self.settings = settings or TimelineSettings()
        self._editors: Dict[str, ClipItemEditor] = {}

    def editor(self, clip_id: str) -> Optional[ClipItemEditor]:
        self.refresh()
        return self._editors.get(clip_id)

    def refresh(self) -> None:
        """Bring clip editors in line with the current clip list."""
        clips = self.synchronizer.state.clips
        live_ids = {clip.id for clip in clips}
        for clip_id in list(self._editors):
            if clip_id not in live_ids:
                del self._editors[clip_id]
        for clip in clips:
            editor = self._editors.get(clip.id)
            if editor is None:
                self._editors[clip.id] = ClipItemEditor(clip, self._publish, self.hub, self._confirm, self.settings)
            else:
                editor.sync(clip)

    def rows(self) -> List[TrackRow]:
        self.refresh()
        return [
            TrackRow(target_id, [self._editors[clip.id] for clip in clips])
            for target_id, clips in group_clips_by_target(self.synchronizer.state.clips)
        ]

    @property
    def is_empty(self) -> bool:
        return not self.synchronizer.state.clips

    # Playback

    def toggle_play(self) -> Command:
        command = Pause() if self.synchronizer.state.is_playing else Play()
        self._publish(command)
        return command

    def stop(self) -> Command:
        command = Stop()
        self._publish(command)
        return command

    def seek(self, time: float) -> Command:
        """Scrub to ``time``: shown immediately, confirmed by the next snapshot."""
        time = min(max(float(time), 0.0), self.settings.max_time)
        self.synchronizer.seek_optimistic(time)
        command = Seek(time)
        self._publish(command)
        return command

    def playhead_percent(self) -> float:
        return time_to_percent(self.synchronizer.state.current_time, self.settings.max_time)

    def time_display(self) -> str:
        return format_seconds(self.synchronizer.state.current_time)
