"""
Shared lookup data for the builder client.

Bundled tables that several components need to agree on, such as the
color-name table used for material matching.
"""

from .colors import DEFAULT_COLOR, ColorTable, get_color_table, normalize_color

__all__ = [
    "DEFAULT_COLOR",
    "ColorTable",
    "get_color_table",
    "normalize_color",
]
