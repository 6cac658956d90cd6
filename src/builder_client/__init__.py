"""
3D Scene Builder Client

Terminal client for the interactive 3D scene builder:
1. Interprets the builder's command language and sends commands to the server
2. Mirrors the authoritative world from the server's snapshots
3. Edits timeline clips
4. Derives a material catalog and bill of materials from the connections

The server executes every command. The client only proposes changes.
"""

from .materials import MaterialCatalog, compute_bom
from .preprocessor import CommandDispatcher
from .session import EditorSession
from .world import WorldState, WorldSynchronizer

__version__ = "0.1.0"

__all__ = [
    "CommandDispatcher",
    "EditorSession",
    "MaterialCatalog",
    "WorldState",
    "WorldSynchronizer",
    "compute_bom",
]
