from __future__ import annotations

import re
from typing import AbstractSet
import xml.etree.ElementTree as ET

from svgrender_core.scene import matrix as mx
from svgrender_core.scene.document import AnimatedScene
from svgrender_core.scene.timing import local_name

from .node import StyleDeclaration, StyleSnapshotNode

# Never written as inline style on the clone.
_LAYOUT_ONLY = re.compile(r"^(height$|width$|visibility)")


def extract_snapshot(
    scene: AnimatedScene,
    element: ET.Element,
    ignored: AbstractSet[str],
) -> StyleSnapshotNode:
    """Capture the resolved style and transform of `element` and its subtree.

    Children whose tag is in `ignored` are left out together with their
    subtrees. The live scene is only read.
    """
    node = StyleSnapshotNode()
    for child in element:
        if not isinstance(child.tag, str) or local_name(child.tag) in ignored:
            continue
        node.children.append(extract_snapshot(scene, child, ignored))

    node.transform_anim = mx.to_components(scene.transform_anim(element))

    parent = scene.parent_of(element)
    if parent is not None:
        try:
            local = mx.inverse(scene.get_ctm(parent)) @ scene.get_ctm(element)
        except ValueError:
            # Singular parent transform, nothing under it is visible anyway.
            local = None
        if local is not None:
            node.ctm = mx.to_components(local)

    style = scene.computed_style(element)
    node.styles = tuple(
        StyleDeclaration(name, value.value, value.priority)
        for name, value in style.items()
        if not _LAYOUT_ONLY.match(name)
    )
    attributes = scene.animated_attributes(element)
    # Animated layout properties still travel, as plain attributes.
    for name in scene.animated_attribute_names(element):
        if _LAYOUT_ONLY.match(name) and name in style:
            attributes.append((name, style[name].value))
    node.attributes = tuple(attributes)
    return node
