"""
Local color-name library.

Loads the CSS named-color table from the bundled YAML file and canonicalizes
color strings so that "white", "#FFFFFF" and "#fff" compare equal.
"""

import re
from pathlib import Path
from typing import Dict, Optional

import yaml

DEFAULT_COLOR = "#ffffff"

_HEX_RE = re.compile(r"^#([0-9a-f]{3}|[0-9a-f]{6})$")


class ColorTable:
    """
    Named-color lookup backed by bundled YAML data.

    The table is loaded lazily on first use.
    """

    def __init__(self, data_dir: Optional[str] = None):
        if data_dir:
            self.data_dir = Path(data_dir)
        else:
            self.data_dir = Path(__file__).parent / "data"

        self._names: Dict[str, str] = {}
        self._loaded = False

    def load(self, force_reload: bool = False) -> None:
        """Load colors.yaml."""
        if self._loaded and not force_reload:
            return

        filepath = self.data_dir / "colors.yaml"
        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._names = {str(name).lower(): str(value).lower() for name, value in data.get("colors", {}).items()}
        self._loaded = True

    def lookup(self, name: str) -> Optional[str]:
        """Get the #rrggbb value of a named color, or None."""
        self.load()
        return self._names.get(name.strip().lower())

    def normalize(self, color: Optional[str]) -> str:
        """Canonicalize a hex or named color to lowercase #rrggbb.

        Empty input maps to white. Names missing from the table are returned
        lowercased so they still compare consistently with themselves.
        """
        if not color or not color.strip():
            return DEFAULT_COLOR

        text = color.strip().lower()
        if text.startswith("#"):
            match = _HEX_RE.match(text)
            if match and len(match.group(1)) == 3:
                return "#" + "".join(ch * 2 for ch in match.group(1))
            return text

        return self.lookup(text) or text


# Global instance
_color_table: Optional[ColorTable] = None


def get_color_table() -> ColorTable:
    """Get or create the global color table instance."""
    global _color_table
    if _color_table is None:
        _color_table = ColorTable()
    return _color_table


def normalize_color(color: Optional[str]) -> str:
    """Canonicalize a color using the global table."""
    return get_color_table().normalize(color)
