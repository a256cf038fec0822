from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Iterator, Optional
import xml.etree.ElementTree as ET

import numpy as np

from svgrender_core.errors import PreconditionError

from . import matrix as mx
from .style import ComputedStyle, StyleRule, collect_stylesheet, compute_style, is_style_property, local_tag
from .timing import DRIVER_TAGS, AnimationDriver, build_driver, local_name, resolve_target

LOGGER = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"


class AnimatedScene:
    """A loaded SVG document with a controllable SMIL animation clock.

    Only the clock position is mutable. Everything that depends on it
    (animated attributes, CTMs, computed styles) is evaluated lazily and
    cached until the clock moves.
    """

    def __init__(self, root: ET.Element, base_url: Optional[str] = None) -> None:
        if local_tag(root) != "svg":
            raise ValueError(f"root element must be <svg>, got <{local_tag(root) or root.tag}>")
        self.root = root
        self.base_url = base_url
        self._parents: dict[ET.Element, ET.Element] = {
            child: parent for parent in root.iter() for child in parent
        }
        self._ids: dict[str, ET.Element] = {
            el.get("id", ""): el for el in root.iter() if el.get("id")
        }
        self.stylesheet: list[StyleRule] = collect_stylesheet(root)
        self.drivers: list[AnimationDriver] = []
        self._drivers_by_target: dict[ET.Element, list[AnimationDriver]] = {}
        for order, element in enumerate(el for el in root.iter() if local_name(el.tag) in DRIVER_TAGS):
            target = resolve_target(element, self._parents.get(element), self._ids.get)
            if target is None:
                LOGGER.debug("animation element without target skipped: %s", element.attrib)
                continue
            driver = build_driver(element, target, order, self._ids.get)
            if driver is None:
                continue
            self.drivers.append(driver)
            self._drivers_by_target.setdefault(target, []).append(driver)
        self._current_time = 0.0
        self._paused = False
        self._style_cache: dict[ET.Element, ComputedStyle] = {}
        self._ctm_cache: dict[ET.Element, np.ndarray] = {}

    @classmethod
    def from_markup(cls, svg_markup: str, base_url: Optional[str] = None) -> "AnimatedScene":
        return cls(ET.fromstring(svg_markup), base_url=base_url)

    @classmethod
    def from_file(cls, path: Path) -> "AnimatedScene":
        tree = ET.parse(path)
        return cls(tree.getroot(), base_url=Path(path).resolve().as_uri())

    # Clock control

    def pause_animations(self) -> None:
        self._paused = True

    def unpause_animations(self) -> None:
        self._paused = False

    def animations_paused(self) -> bool:
        return self._paused

    def set_current_time(self, seconds: float) -> None:
        """Seek the clock. Only a paused clock can be seeked."""
        if not self._paused:
            raise PreconditionError("animation clock must be paused before seeking")
        seconds = max(0.0, float(seconds))
        if seconds == self._current_time:
            return
        self._current_time = seconds
        self._style_cache.clear()
        self._ctm_cache.clear()

    def get_current_time(self) -> float:
        return self._current_time

    # Structure

    def parent_of(self, element: ET.Element) -> Optional[ET.Element]:
        return self._parents.get(element)

    def element_by_id(self, element_id: str) -> Optional[ET.Element]:
        return self._ids.get(element_id)

    def iter_elements(self) -> Iterator[ET.Element]:
        return self.root.iter()

    def drivers_for(self, element: ET.Element) -> list[AnimationDriver]:
        return self._drivers_by_target.get(element, [])

    def clone(self) -> ET.Element:
        return copy.deepcopy(self.root)

    # Animated values

    def _active(self, element: ET.Element, kinds: tuple[str, ...]) -> Iterator[tuple[AnimationDriver, tuple[float, int]]]:
        for driver in self.drivers_for(element):
            if driver.kind not in kinds:
                continue
            progress = driver.sample(self._current_time)
            if progress is not None:
                yield driver, progress

    def animated_attribute_names(self, element: ET.Element) -> list[str]:
        names: list[str] = []
        for driver, _ in self._active(element, ("animate", "set", "animateColor")):
            if driver.attribute_name and driver.attribute_name not in names:
                names.append(driver.attribute_name)
        return names

    def animated_value(self, element: ET.Element, name: str, underlying: str) -> str:
        """Run the animation sandwich for one attribute on top of `underlying`."""
        value = underlying
        for driver, progress in self._active(element, ("animate", "set", "animateColor")):
            if driver.attribute_name == name:
                value = driver.attribute_value(progress, value)
        return value

    def animated_attributes(self, element: ET.Element) -> list[tuple[str, str]]:
        """Animated values of targeted attributes that are not style properties."""
        tag = local_tag(element)
        out: list[tuple[str, str]] = []
        for name in self.animated_attribute_names(element):
            if is_style_property(tag, name) or name == "transform":
                continue
            out.append((name, self.animated_value(element, name, element.get(name, ""))))
        return out

    def transform_anim(self, element: ET.Element) -> np.ndarray:
        """Instantaneous value of the element's animated transform list."""
        value = mx.parse_transform(element.get("transform"))
        for driver, progress in self._active(element, ("animateTransform",)):
            if driver.attribute_name not in (None, "transform"):
                continue
            anim = driver.transform_value(progress)
            value = value @ anim if driver.additive else anim
        return value

    def motion_transform(self, element: ET.Element) -> Optional[np.ndarray]:
        motion: Optional[np.ndarray] = None
        for driver, progress in self._active(element, ("animateMotion",)):
            step = driver.motion_value(progress)
            motion = step if motion is None or not driver.additive else motion @ step
        return motion

    def local_transform(self, element: ET.Element) -> np.ndarray:
        local = self.transform_anim(element)
        motion = self.motion_transform(element)
        if motion is not None:
            local = motion @ local
        return local

    def get_ctm(self, element: ET.Element) -> np.ndarray:
        """Transform from the element's user space to the root's user space."""
        cached = self._ctm_cache.get(element)
        if cached is not None:
            return cached
        parent = self._parents.get(element)
        local = self.local_transform(element)
        ctm = local if parent is None else self.get_ctm(parent) @ local
        self._ctm_cache[element] = ctm
        return ctm

    def computed_style(self, element: ET.Element) -> ComputedStyle:
        cached = self._style_cache.get(element)
        if cached is not None:
            return cached
        parent = self._parents.get(element)
        parent_style = self.computed_style(parent) if parent is not None else None
        tag = local_tag(element)
        names = [n for n in self.animated_attribute_names(element) if is_style_property(tag, n)]
        animated: dict[str, str] = {}
        if names:
            base = compute_style(element, parent_style, rules=self.stylesheet)
            for name in names:
                animated[name] = self.animated_value(element, name, base[name].value)
        style = compute_style(element, parent_style, animated, self.stylesheet)
        self._style_cache[element] = style
        return style

    def describe(self) -> dict[str, object]:
        return {
            "root": local_tag(self.root),
            "elements": sum(1 for _ in self.root.iter()),
            "drivers": [
                {
                    "kind": d.kind,
                    "target": d.target.get("id") or local_tag(d.target),
                    "attribute": d.attribute_name,
                    "begins": list(d.timing.begins),
                    "dur": d.timing.dur,
                    "fill": d.timing.fill,
                }
                for d in self.drivers
            ],
        }
