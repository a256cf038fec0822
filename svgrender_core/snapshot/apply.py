from __future__ import annotations

import copy
from typing import AbstractSet, Optional
import xml.etree.ElementTree as ET

import numpy as np

from svgrender_core.errors import IntegrityFault
from svgrender_core.scene import matrix as mx
from svgrender_core.scene.document import SVG_NS
from svgrender_core.scene.style import StyleValue, format_style_attribute, parse_style_attribute
from svgrender_core.scene.timing import local_name

from .node import StyleSnapshotNode

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="no"?>'
SVG11_DOCTYPE = (
    '<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" '
    '"http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">'
)


def _element_children(element: ET.Element) -> list[ET.Element]:
    return [c for c in element if isinstance(c.tag, str)]


def strip_drivers(element: ET.Element, ignored: AbstractSet[str]) -> int:
    """Remove every child subtree whose tag is in `ignored`; returns how many were removed."""
    removed = 0
    for child in list(element):
        if isinstance(child.tag, str) and local_name(child.tag) in ignored:
            element.remove(child)
            removed += 1
        else:
            removed += strip_drivers(child, ignored)
    return removed


def snapshot_matrix(snapshot: StyleSnapshotNode) -> np.ndarray:
    matrix = mx.identity()
    if snapshot.ctm is not None:
        matrix = matrix @ mx.from_components(*snapshot.ctm)
    elif snapshot.transform_anim is not None:
        # ctm already carries the animated transform; only fall back to it at the root.
        matrix = matrix @ mx.from_components(*snapshot.transform_anim)
    return matrix


def apply_snapshot(element: ET.Element, snapshot: StyleSnapshotNode, _path: str = "0") -> None:
    """Write `snapshot` onto a driver-stripped clone, pairing children by position.

    Raises IntegrityFault when the clone and the snapshot differ in shape.
    """
    children = _element_children(element)
    if len(children) != len(snapshot.children):
        raise IntegrityFault(
            f"snapshot shape mismatch at node {_path} <{local_name(element.tag)}>: "
            f"clone has {len(children)} children, snapshot has {len(snapshot.children)}"
        )

    element.set("transform", mx.format_matrix(snapshot_matrix(snapshot)))

    for index, (child, child_snapshot) in enumerate(zip(children, snapshot.children)):
        apply_snapshot(child, child_snapshot, f"{_path}.{index}")

    declarations = parse_style_attribute(element.get("style"))
    for decl in snapshot.styles:
        declarations[decl.name] = StyleValue(decl.value, decl.priority)
    for name, value in snapshot.attributes:
        element.set(name, value)
        # An authored inline declaration would shadow the attribute.
        declarations.pop(name, None)
    if declarations:
        element.set("style", format_style_attribute(declarations))
    else:
        element.attrib.pop("style", None)


def _with_default_namespace(root: ET.Element) -> ET.Element:
    """Copy of `root` with SVG tags unqualified and the namespace declared on the root."""
    prefix = f"{{{SVG_NS}}}"
    out = copy.deepcopy(root)
    for element in out.iter():
        if isinstance(element.tag, str) and element.tag.startswith(prefix):
            element.tag = element.tag[len(prefix) :]
    out.set("xmlns", SVG_NS)
    return out


def serialize_scene(root: ET.Element, base_url: Optional[str] = None) -> str:
    """Standalone markup for the rasterizer, with same-document URLs reduced to bare fragments."""
    if isinstance(root.tag, str) and root.tag.startswith(f"{{{SVG_NS}}}"):
        root = _with_default_namespace(root)
    markup = ET.tostring(root, encoding="unicode")
    if base_url:
        document_url = base_url.split("#", 1)[0]
        markup = markup.replace(document_url + "#", "#")
    return f"{XML_DECLARATION}\n{SVG11_DOCTYPE}\n{markup}"
