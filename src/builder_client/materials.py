"""
Material catalog and Bill of Materials.

The server only knows raw ``(color, thickness)`` pairs on connections. The
client keeps its own catalog of named, priced materials derived from those
pairs and aggregates connection lengths and costs per material.

- Catalog derivation is additive: every unseen ``(color, thickness)`` on a
  connection appends an auto-named material; nothing is ever removed.
- Colors are always compared in normalized form (``white == #FFFFFF``).
- A material sharing its normalized pair with another entry is a duplicate.
  Duplicates are computed on demand, never cached, and cannot be armed for
  building.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .commands import Connect, point_ref
from .errors import DuplicateMaterialError
from .shared.colors import DEFAULT_COLOR, ColorTable, get_color_table
from .world import Connection, Point

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "color", "thickness", "price")


@dataclass
class Material:
    """Client-side material record."""

    id: str
    name: str
    color: str
    thickness: float
    price: float = 0.0


def _new_material_id() -> str:
    return uuid.uuid4().hex[:8]


def _parse_float(value) -> Optional[float]:
    """Parse a user-entered number; None for non-numeric or NaN."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


class MaterialCatalog:
    """
    Ordered list of materials keyed logically by ``(normalized color, thickness)``.

    Args:
        color_table: Color table used for normalization (global one by default)
    """

    def __init__(self, color_table: Optional[ColorTable] = None):
        self._colors = color_table or get_color_table()
        self._materials: List[Material] = []

    @property
    def materials(self) -> List[Material]:
        return list(self._materials)

    def __len__(self) -> int:
        return len(self._materials)

    def key(self, color: str, thickness: float) -> Tuple[str, float]:
        return (self._colors.normalize(color), thickness)

    def key_of(self, material: Material) -> Tuple[str, float]:
        return self.key(material.color, material.thickness)

    def get(self, material_id: str) -> Optional[Material]:
        for material in self._materials:
            if material.id == material_id:
                return material
        return None

    def find_by_name(self, name: str) -> Optional[Material]:
        """Case-insensitive lookup by name; first match wins."""
        lowered = name.strip().lower()
        for material in self._materials:
            if material.name.lower() == lowered:
                return material
        return None

    def find_by_key(self, color: str, thickness: float) -> Optional[Material]:
        key = self.key(color, thickness)
        for material in self._materials:
            if self.key_of(material) == key:
                return material
        return None

    def sync_from_connections(self, connections: Iterable[Connection]) -> List[Material]:
        """Append a material for every connection pair not yet in the catalog.

        Existing entries are never removed or altered.

        Returns:
            The newly created materials
        """
        created = []
        for conn in connections:
            if self.find_by_key(conn.color, conn.thickness) is not None:
                continue
            material = Material(
                id=_new_material_id(),
                name=f"Material {len(self._materials) + 1}",
                color=conn.color,
                thickness=conn.thickness,
            )
            self._materials.append(material)
            created.append(material)
            logger.info(f"New material '{material.name}' for {material.color} / {material.thickness}")
        return created

    def add_material(self) -> Material:
        """Add a white material with the first free integer thickness from 2 up."""
        thickness = 2
        while self.find_by_key(DEFAULT_COLOR, thickness) is not None:
            thickness += 1

        material = Material(
            id=_new_material_id(),
            name=f"Material {len(self._materials) + 1}",
            color=DEFAULT_COLOR,
            thickness=thickness,
        )
        self._materials.append(material)
        return material

    def update(self, material_id: str, field: str, value) -> bool:
        """Edit one field of a material.

        Invalid thickness (non-numeric, NaN, not positive) is discarded and the
        prior value kept. Invalid price becomes 0.

        Returns:
            True if the material changed
        """
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Unknown material field: {field}")
        material = self.get(material_id)
        if material is None:
            return False

        if field == "thickness":
            thickness = _parse_float(value)
            if thickness is None or thickness <= 0:
                logger.debug(f"Discarding invalid thickness {value!r} for {material.name}")
                return False
            material.thickness = thickness
        elif field == "price":
            price = _parse_float(value)
            material.price = price if price is not None else 0.0
        elif field == "color":
            material.color = str(value)
        else:
            material.name = str(value)
        return True

    def is_duplicate(self, material: Material) -> bool:
        """True if another entry shares this material's normalized pair."""
        key = self.key_of(material)
        return any(other.id != material.id and self.key_of(other) == key for other in self._materials)


# =============================================================================
# BILL OF MATERIALS
# =============================================================================


@dataclass(frozen=True)
class BomRow:
    material: Material
    total_length: float
    cost: float
    is_duplicate: bool


@dataclass(frozen=True)
class BomReport:
    rows: List[BomRow]
    grand_total: float


def connection_length(conn: Connection, points: Dict[int, Point]) -> Optional[float]:
    """Euclidean length of a connection, or None if an endpoint is missing."""
    p1 = points.get(conn.from_id)
    p2 = points.get(conn.to_id)
    if p1 is None or p2 is None:
        return None
    return math.sqrt((p2.x - p1.x) ** 2 + (p2.y - p1.y) ** 2 + (p2.z - p1.z) ** 2)


def compute_bom(catalog: MaterialCatalog, connections: Iterable[Connection], points: Iterable[Point]) -> BomReport:
    """Aggregate length and cost per catalog material.

    Args:
        catalog: Material catalog
        connections: Current connection list
        points: Current point list (coordinates looked up by id)

    Returns:
        One row per material in catalog order plus the grand total
    """
    point_index = {p.id: p for p in points}
    lengths = []
    for conn in connections:
        length = connection_length(conn, point_index)
        if length is not None:
            lengths.append((catalog.key(conn.color, conn.thickness), length))

    rows = []
    grand_total = 0.0
    for material in catalog.materials:
        key = catalog.key_of(material)
        total_length = sum(length for conn_key, length in lengths if conn_key == key)
        cost = total_length * (material.price or 0)
        grand_total += cost
        rows.append(BomRow(material, total_length, cost, catalog.is_duplicate(material)))

    return BomReport(rows=rows, grand_total=grand_total)


# =============================================================================
# BUILD MODE
# =============================================================================


class BuildMode:
    """
    Two-click connect workflow.

    Arming a material makes point clicks build connections: the first click
    records a start point, the second (on a different point) produces a
    Connect command and clears the start. The mode stays armed until
    disarmed or another material is chosen.
    """

    def __init__(self, catalog: MaterialCatalog):
        self.catalog = catalog
        self.armed: Optional[Tuple[str, float]] = None
        self.pending_start_id: Optional[int] = None

    @property
    def is_armed(self) -> bool:
        return self.armed is not None

    def is_active(self, material: Material) -> bool:
        return self.armed == (material.color, material.thickness)

    def toggle(self, material: Material) -> bool:
        """Arm ``material``, or disarm it if it is already armed.

        Returns:
            True if the mode is armed afterwards

        Raises:
            DuplicateMaterialError: If the material is a duplicate
        """
        if self.catalog.is_duplicate(material):
            raise DuplicateMaterialError(material.name)

        if self.is_active(material):
            self.armed = None
        else:
            self.armed = (material.color, material.thickness)
        self.pending_start_id = None
        return self.is_armed

    def disarm(self) -> None:
        self.armed = None
        self.pending_start_id = None

    def cancel_pending(self) -> None:
        self.pending_start_id = None

    def click_point(self, point_id: int) -> Optional[Connect]:
        """Handle a click on a point; returns a Connect on the second click."""
        if self.armed is None:
            return None
        if self.pending_start_id is None:
            self.pending_start_id = point_id
            return None
        if self.pending_start_id == point_id:
            return None

        color, thickness = self.armed
        command = Connect(point_ref(self.pending_start_id), point_ref(point_id), color, thickness)
        self.pending_start_id = None
        return command

    def active_material(self) -> Optional[Material]:
        """Catalog entry matching the armed pair (shown as "Building with: ...")."""
        if self.armed is None:
            return None
        return self.catalog.find_by_key(*self.armed)
