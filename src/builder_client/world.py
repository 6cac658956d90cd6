"""
World Snapshot Synchronizer

Keeps the local mirror of the authoritative world. The engine broadcasts
JSON snapshots that may carry any subset of the world fields; they are merged
field by field into an immutable ``WorldState``:

- A field present in the snapshot replaces the local value (last write wins,
  in arrival order).
- A field absent from the snapshot (or sent as null) keeps its local value,
  except the fields in ``RESET_ON_OMISSION`` which fall back to empty.
- A snapshot is parsed completely before anything is applied; a malformed
  message is logged and dropped as a whole.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from . import logger as client_log
from .errors import SnapshotError

logger = logging.getLogger(__name__)

# Fields that become empty when a snapshot omits them instead of keeping the
# previous value. Matches the remote engine, which always sends full state.
RESET_ON_OMISSION = frozenset({"collections", "clips"})


def _require(data: Mapping[str, Any], key: str, kind: str) -> Any:
    if key not in data or data[key] is None:
        raise SnapshotError(f"{kind} is missing '{key}'")
    return data[key]


def _number(data: Mapping[str, Any], key: str, kind: str) -> float:
    value = _require(data, key, kind)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotError(f"{kind}.{key} must be a number, got {value!r}")
    try:
        return float(value)
    except OverflowError:
        raise SnapshotError(f"{kind}.{key} is out of range")


def _optional_number(data: Mapping[str, Any], key: str, kind: str) -> Optional[float]:
    if data.get(key) is None:
        return None
    return _number(data, key, kind)


def _integer(data: Mapping[str, Any], key: str, kind: str) -> int:
    value = _require(data, key, kind)
    if isinstance(value, bool) or not isinstance(value, int):
        raise SnapshotError(f"{kind}.{key} must be an integer, got {value!r}")
    return value


def _mapping(data: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(data, dict):
        raise SnapshotError(f"{kind} must be an object, got {type(data).__name__}")
    return data


# =============================================================================
# RECORDS
# =============================================================================


@dataclass(frozen=True)
class Point:
    id: int
    x: float
    y: float
    z: float
    color: str = "#ffffff"

    @classmethod
    def from_dict(cls, data: Any) -> "Point":
        data = _mapping(data, "point")
        return cls(
            id=_integer(data, "id", "point"),
            x=_number(data, "x", "point"),
            y=_number(data, "y", "point"),
            z=_number(data, "z", "point"),
            color=str(data.get("color") or "#ffffff"),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "x": self.x, "y": self.y, "z": self.z, "color": self.color}


@dataclass(frozen=True)
class Connection:
    from_id: int
    to_id: int
    color: str
    thickness: float

    @classmethod
    def from_dict(cls, data: Any) -> "Connection":
        data = _mapping(data, "connection")
        return cls(
            from_id=_integer(data, "fromId", "connection"),
            to_id=_integer(data, "toId", "connection"),
            color=str(_require(data, "color", "connection")),
            thickness=_number(data, "thickness", "connection"),
        )

    def to_dict(self) -> dict:
        return {"fromId": self.from_id, "toId": self.to_id, "color": self.color, "thickness": self.thickness}


@dataclass(frozen=True)
class Face:
    point_ids: Tuple[int, ...]
    color: str = "#888888"

    @classmethod
    def from_dict(cls, data: Any) -> "Face":
        data = _mapping(data, "face")
        ids = _require(data, "pointIds", "face")
        if not isinstance(ids, list) or any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
            raise SnapshotError(f"face.pointIds must be a list of integers, got {ids!r}")
        return cls(point_ids=tuple(ids), color=str(data.get("color") or "#888888"))

    def to_dict(self) -> dict:
        return {"pointIds": list(self.point_ids), "color": self.color}


@dataclass(frozen=True)
class Clip:
    """Timeline clip as broadcast by the engine.

    ``start_pos``/``end_pos`` carry the engine's resolved start and end
    positions (``sx..ez`` on the wire) when present.
    """

    id: str
    name: str
    target_id: int
    type: str
    start_time: float
    end_time: float
    axis: Optional[str] = None
    value: Optional[float] = None
    start_pos: Optional[Tuple[float, float, float]] = None
    end_pos: Optional[Tuple[float, float, float]] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @classmethod
    def from_dict(cls, data: Any) -> "Clip":
        data = _mapping(data, "clip")
        clip_id = _require(data, "id", "clip")
        clip_type = str(data.get("type") or "Move")
        target_id = _integer(data, "targetId", "clip")
        name = data.get("name") or f"{clip_type} p{target_id}"

        start_pos = end_pos = None
        if all(data.get(k) is not None for k in ("sx", "sy", "sz")):
            start_pos = tuple(_number(data, k, "clip") for k in ("sx", "sy", "sz"))
        if all(data.get(k) is not None for k in ("ex", "ey", "ez")):
            end_pos = tuple(_number(data, k, "clip") for k in ("ex", "ey", "ez"))

        return cls(
            id=str(clip_id),
            name=str(name),
            target_id=target_id,
            type=clip_type,
            start_time=_number(data, "startTime", "clip"),
            end_time=_number(data, "endTime", "clip"),
            axis=data.get("axis"),
            value=_optional_number(data, "value", "clip"),
            start_pos=start_pos,
            end_pos=end_pos,
        )


@dataclass(frozen=True)
class WorldState:
    """Last known world, replaced wholesale on every merge."""

    points: Tuple[Point, ...] = ()
    connections: Tuple[Connection, ...] = ()
    faces: Tuple[Face, ...] = ()
    collections: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    current_time: float = 0.0
    is_playing: bool = False
    clips: Tuple[Clip, ...] = ()

    def point(self, point_id: int) -> Optional[Point]:
        for p in self.points:
            if p.id == point_id:
                return p
        return None

    def clip(self, clip_id: str) -> Optional[Clip]:
        for c in self.clips:
            if c.id == clip_id:
                return c
        return None


# =============================================================================
# MERGE
# =============================================================================


def _parse_records(parser: Callable[[Any], Any]) -> Callable[[Any], tuple]:
    def parse(value: Any) -> tuple:
        if not isinstance(value, list):
            raise SnapshotError(f"Expected a list, got {type(value).__name__}")
        return tuple(parser(item) for item in value)

    return parse


def _parse_collections(value: Any) -> Dict[str, Tuple[int, ...]]:
    value = _mapping(value, "collections")
    collections = {}
    for name, ids in value.items():
        if not isinstance(ids, list) or any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
            raise SnapshotError(f"collection '{name}' must be a list of integers")
        collections[str(name)] = tuple(ids)
    return collections


def _parse_time(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotError(f"currentTime must be a number, got {value!r}")
    try:
        return float(value)
    except OverflowError:
        raise SnapshotError("currentTime is out of range")


def _parse_flag(value: Any) -> bool:
    if not isinstance(value, bool):
        raise SnapshotError(f"isPlaying must be a boolean, got {value!r}")
    return value


# wire key -> (WorldState attribute, parser)
SNAPSHOT_FIELDS: Dict[str, Tuple[str, Callable[[Any], Any]]] = {
    "points": ("points", _parse_records(Point.from_dict)),
    "connections": ("connections", _parse_records(Connection.from_dict)),
    "faces": ("faces", _parse_records(Face.from_dict)),
    "collections": ("collections", _parse_collections),
    "currentTime": ("current_time", _parse_time),
    "isPlaying": ("is_playing", _parse_flag),
    "clips": ("clips", _parse_records(Clip.from_dict)),
}

# Built fresh on every reset
_EMPTY = {"collections": dict, "clips": tuple}


def merge_snapshot(state: WorldState, payload: Any) -> WorldState:
    """Merge a decoded snapshot into ``state`` and return the new state.

    Raises:
        SnapshotError: If the payload or any record in it is malformed.
            Nothing is applied in that case.
    """
    payload = _mapping(payload, "snapshot")

    updates: Dict[str, Any] = {}
    for wire_key, (attr, parse) in SNAPSHOT_FIELDS.items():
        value = payload.get(wire_key)
        if value is None:
            if attr in RESET_ON_OMISSION:
                updates[attr] = _EMPTY[attr]()
            continue
        try:
            updates[attr] = parse(value)
        except SnapshotError as e:
            raise SnapshotError(f"{wire_key}: {e}") from e

    return replace(state, **updates)


class WorldSynchronizer:
    """
    Applies inbound snapshot messages to the local world.

    Listeners registered with ``on_connections_changed`` receive the new
    connection list whenever a merge changes it; the material catalog hooks
    in here.
    """

    def __init__(self, state: Optional[WorldState] = None):
        self.state = state or WorldState()
        self._connection_listeners: List[Callable[[Tuple[Connection, ...]], Any]] = []
        self.dropped = 0

    def on_connections_changed(self, listener: Callable[[Tuple[Connection, ...]], Any]) -> None:
        self._connection_listeners.append(listener)

    def apply_message(self, raw: Union[str, bytes]) -> bool:
        """Decode and merge one inbound message.

        Returns:
            True if the snapshot was applied, False if it was dropped
        """
        try:
            payload = json.loads(raw)
            self.apply(payload)
        except (ValueError, RecursionError) as e:
            # JSONDecodeError, integers over the digit limit, deep nesting
            self.dropped += 1
            logger.warning(f"Dropping undecodable snapshot: {type(e).__name__}: {e}")
            return False
        except SnapshotError as e:
            self.dropped += 1
            logger.warning(f"Dropping malformed snapshot: {e}")
            return False
        return True

    def apply(self, payload: Any) -> WorldState:
        """Merge an already decoded snapshot.

        Raises:
            SnapshotError: If the snapshot is malformed
        """
        previous = self.state
        merged = merge_snapshot(previous, payload)
        self.state = merged
        client_log.log_snapshot(payload)

        if merged.connections != previous.connections:
            for listener in self._connection_listeners:
                listener(merged.connections)
        return merged

    def seek_optimistic(self, time: float) -> None:
        """Show ``time`` immediately; the next snapshot overrides it."""
        self.state = replace(self.state, current_time=float(time))
