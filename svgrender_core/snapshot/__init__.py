"""Static snapshots of an animated scene at one clock instant."""

from .apply import SVG11_DOCTYPE, XML_DECLARATION, apply_snapshot, serialize_scene, snapshot_matrix, strip_drivers
from .extract import extract_snapshot
from .node import StyleDeclaration, StyleSnapshotNode

__all__ = [
    "SVG11_DOCTYPE",
    "XML_DECLARATION",
    "StyleDeclaration",
    "StyleSnapshotNode",
    "apply_snapshot",
    "extract_snapshot",
    "serialize_scene",
    "snapshot_matrix",
    "strip_drivers",
]
