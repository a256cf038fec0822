from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import math
from pathlib import Path
from typing import Optional
import xml.etree.ElementTree as ET

import numpy as np
import torch
from PIL import Image, ImageDraw

from svgrender_core.scene import matrix as mx
from svgrender_core.scene.paths import Subpath, ellipse_outline, parse_path_data, point_list, rect_outline
from svgrender_core.scene.style import ComputedStyle, StyleRule, collect_stylesheet, compute_style, local_tag
from svgrender_core.scene.timing import DRIVER_TAGS, XLINK_HREF
from svgrender_core.scene.values import Color, parse_color, parse_length

from .framebuffer import TRANSPARENT, FrameBuffer

LOGGER = logging.getLogger(__name__)

DEFAULT_WIDTH = 300
DEFAULT_HEIGHT = 150
MAX_USE_DEPTH = 32

_NON_RENDERING = {
    "clipPath",
    "defs",
    "desc",
    "filter",
    "linearGradient",
    "marker",
    "mask",
    "metadata",
    "pattern",
    "radialGradient",
    "script",
    "style",
    "symbol",
    "title",
} | set(DRIVER_TAGS)
_CONTAINERS = {"svg", "g", "a", "switch"}


@dataclass
class SvgDocument:
    """Static SVG ready to rasterize. Animation elements are ignored."""

    root: ET.Element
    width: int
    height: int
    viewbox: Optional[tuple[float, float, float, float]]
    ids: dict[str, ET.Element] = field(default_factory=dict)
    stylesheet: list[StyleRule] = field(default_factory=list)

    @classmethod
    def from_file(cls, path: Path) -> "SvgDocument":
        tree = ET.parse(path)
        root = tree.getroot()
        return cls._from_root(root)

    @classmethod
    def from_markup(cls, svg_markup: str) -> "SvgDocument":
        root = ET.fromstring(svg_markup)
        return cls._from_root(root)

    @classmethod
    def _from_root(cls, root: ET.Element) -> "SvgDocument":
        if local_tag(root) != "svg":
            raise ValueError(f"not an svg document: <{local_tag(root)}>")
        viewbox = _parse_viewbox(root.attrib.get("viewBox"))
        width = parse_length(root.attrib.get("width"))
        height = parse_length(root.attrib.get("height"))
        if width is None:
            width = viewbox[2] if viewbox else float(DEFAULT_WIDTH)
        if height is None:
            height = viewbox[3] if viewbox else float(DEFAULT_HEIGHT)
        return cls(
            root=root,
            width=max(1, int(math.ceil(width))),
            height=max(1, int(math.ceil(height))),
            viewbox=viewbox,
            ids={el.get("id", ""): el for el in root.iter() if el.get("id")},
            stylesheet=collect_stylesheet(root),
        )

    def viewport_transform(self) -> np.ndarray:
        if self.viewbox is None:
            return mx.identity()
        vb_x, vb_y, vb_w, vb_h = self.viewbox
        if vb_w <= 0 or vb_h <= 0:
            return mx.identity()
        sx = self.width / vb_w
        sy = self.height / vb_h
        par = (self.root.get("preserveAspectRatio") or "xMidYMid meet").split()
        align = par[0] if par else "xMidYMid"
        if align == "none":
            return mx.scale(sx, sy) @ mx.translate(-vb_x, -vb_y)
        s = max(sx, sy) if "slice" in par[1:] else min(sx, sy)
        free_x = self.width - vb_w * s
        free_y = self.height - vb_h * s
        tx = {"xMin": 0.0, "xMid": free_x / 2.0, "xMax": free_x}.get(align[:4], free_x / 2.0)
        ty = {"YMin": 0.0, "YMid": free_y / 2.0, "YMax": free_y}.get(align[4:], free_y / 2.0)
        return mx.translate(tx, ty) @ mx.scale(s) @ mx.translate(-vb_x, -vb_y)

    def render(self, background: Color = TRANSPARENT) -> FrameBuffer:
        fb = FrameBuffer(self.width, self.height, background=background)
        self._render_element(fb, self.root, self.viewport_transform(), None, 1.0, 0)
        return fb

    def _render_element(
        self,
        fb: FrameBuffer,
        element: ET.Element,
        ctm: np.ndarray,
        parent_style: Optional[ComputedStyle],
        opacity: float,
        depth: int,
    ) -> None:
        tag = local_tag(element)
        if not tag or tag in _NON_RENDERING:
            return
        style = compute_style(element, parent_style, rules=self.stylesheet)
        if style["display"].value == "none":
            return
        ctm = ctm @ mx.parse_transform(element.get("transform"))
        # Group opacity is folded into descendants instead of an offscreen layer.
        opacity *= _unit_interval(style["opacity"].value)
        if tag in _CONTAINERS:
            if tag == "svg" and element is not self.root:
                ctm = ctm @ mx.translate(_geometry(style, element, "x"), _geometry(style, element, "y"))
            for child in element:
                self._render_element(fb, child, ctm, style, opacity, depth)
            return
        if tag == "use":
            href = element.get("href") or element.get(XLINK_HREF) or ""
            ref = self.ids.get(href[1:]) if href.startswith("#") else None
            if ref is None or depth >= MAX_USE_DEPTH:
                return
            offset = mx.translate(_geometry(style, element, "x"), _geometry(style, element, "y"))
            self._render_element(fb, ref, ctm @ offset, style, opacity, depth + 1)
            return
        if style["visibility"].value != "visible":
            return
        subpaths = _shape_geometry(tag, element, style)
        if not subpaths:
            return
        self._paint(fb, subpaths, ctm, style, opacity)

    def _paint(
        self,
        fb: FrameBuffer,
        subpaths: list[Subpath],
        ctm: np.ndarray,
        style: ComputedStyle,
        opacity: float,
    ) -> None:
        device = [(mx.transform_points(ctm, sp.points), sp.closed) for sp in subpaths]
        fill = self._resolve_paint(style["fill"].value)
        if fill is not None:
            alpha = fill[3] * _unit_interval(style["fill-opacity"].value) * opacity
            mask = _fill_mask(fb.width, fb.height, [pts for pts, _ in device], style["fill-rule"].value)
            fb.blend_mask(mask, (fill[0], fill[1], fill[2], int(round(alpha))))
        stroke = self._resolve_paint(style["stroke"].value)
        if stroke is not None:
            width = (parse_length(style["stroke-width"].value, 1.0) or 0.0) * mx.mean_scale(ctm)
            if width > 0:
                alpha = stroke[3] * _unit_interval(style["stroke-opacity"].value) * opacity
                mask = _stroke_mask(fb.width, fb.height, device, width)
                fb.blend_mask(mask, (stroke[0], stroke[1], stroke[2], int(round(alpha))))

    def _resolve_paint(self, value: str) -> Optional[Color]:
        value = value.strip()
        if value == "none":
            return None
        if value.startswith("url("):
            ref_end = value.find(")")
            ref = value[4:ref_end].strip().strip("'\"")
            target = self.ids.get(ref[1:]) if ref.startswith("#") else None
            if target is not None and local_tag(target) in ("linearGradient", "radialGradient"):
                # Gradients are approximated by their first stop.
                for stop in target:
                    if local_tag(stop) == "stop":
                        stop_style = compute_style(stop, rules=self.stylesheet)
                        color = parse_color(stop_style["stop-color"].value)
                        if color is not None:
                            alpha = color[3] * _unit_interval(stop_style["stop-opacity"].value)
                            return (color[0], color[1], color[2], int(round(alpha)))
            fallback = value[ref_end + 1 :].strip()
            return parse_color(fallback) if fallback else None
        return parse_color(value)


class SvgRasterizer:
    """Decodes snapshot markup and draws it into an RGBA tensor."""

    def __init__(self, background: Color = TRANSPARENT) -> None:
        self.background = background

    def rasterize_sync(self, svg_markup: str) -> torch.Tensor:
        doc = SvgDocument.from_markup(svg_markup)
        return doc.render(self.background).to_tensor()

    async def rasterize(self, svg_markup: str) -> torch.Tensor:
        return await asyncio.to_thread(self.rasterize_sync, svg_markup)


def _geometry(style: ComputedStyle, element: ET.Element, name: str, default: Optional[float] = 0.0) -> Optional[float]:
    if name in style:
        return parse_length(style[name].value, default)
    return parse_length(element.get(name), default)


def _shape_geometry(tag: str, element: ET.Element, style: ComputedStyle) -> list[Subpath]:
    if tag == "rect":
        rx = _geometry(style, element, "rx", None)
        ry = _geometry(style, element, "ry", None)
        if rx is None:
            rx = ry
        if ry is None:
            ry = rx
        return rect_outline(
            _geometry(style, element, "x") or 0.0,
            _geometry(style, element, "y") or 0.0,
            _geometry(style, element, "width") or 0.0,
            _geometry(style, element, "height") or 0.0,
            rx or 0.0,
            ry or 0.0,
        )
    if tag == "circle":
        r = _geometry(style, element, "r") or 0.0
        return ellipse_outline(_geometry(style, element, "cx") or 0.0, _geometry(style, element, "cy") or 0.0, r, r)
    if tag == "ellipse":
        rx = _geometry(style, element, "rx", None)
        ry = _geometry(style, element, "ry", None)
        rx = ry if rx is None else rx
        ry = rx if ry is None else ry
        return ellipse_outline(
            _geometry(style, element, "cx") or 0.0,
            _geometry(style, element, "cy") or 0.0,
            rx or 0.0,
            ry or 0.0,
        )
    if tag == "line":
        points = [
            (parse_length(element.get("x1"), 0.0) or 0.0, parse_length(element.get("y1"), 0.0) or 0.0),
            (parse_length(element.get("x2"), 0.0) or 0.0, parse_length(element.get("y2"), 0.0) or 0.0),
        ]
        return [Subpath(points, closed=False)]
    if tag == "polyline":
        return point_list(element.get("points"), closed=False)
    if tag == "polygon":
        return point_list(element.get("points"), closed=True)
    if tag == "path":
        d = style["d"].value if "d" in style else element.get("d")
        if d == "none":
            d = element.get("d")
        return parse_path_data(d)
    return []


def _fill_mask(width: int, height: int, polygons: list[list[tuple[float, float]]], fill_rule: str) -> np.ndarray:
    if fill_rule == "evenodd":
        acc = np.zeros((height, width), dtype=bool)
        for pts in polygons:
            if len(pts) < 3:
                continue
            layer = Image.new("L", (width, height), 0)
            ImageDraw.Draw(layer).polygon(pts, fill=255)
            acc ^= np.asarray(layer) > 0
        return acc.astype(np.uint8) * 255
    image = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(image)
    for pts in polygons:
        if len(pts) >= 3:
            draw.polygon(pts, fill=255)
    return np.asarray(image, dtype=np.uint8)


def _stroke_mask(
    width: int,
    height: int,
    device: list[tuple[list[tuple[float, float]], bool]],
    stroke_width: float,
) -> np.ndarray:
    image = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(image)
    line_width = max(1, int(round(stroke_width)))
    for pts, closed in device:
        if len(pts) < 2:
            continue
        outline = pts + [pts[0]] if closed else pts
        draw.line(outline, fill=255, width=line_width, joint="curve")
    return np.asarray(image, dtype=np.uint8)


def _unit_interval(value: str) -> float:
    raw = value.strip()
    try:
        number = float(raw[:-1]) / 100.0 if raw.endswith("%") else float(raw)
    except ValueError:
        return 1.0
    return max(0.0, min(1.0, number))


def _parse_viewbox(value: Optional[str]) -> Optional[tuple[float, float, float, float]]:
    if not value:
        return None
    parts = value.replace(",", " ").split()
    if len(parts) != 4:
        return None
    try:
        return tuple(float(p) for p in parts)  # type: ignore[return-value]
    except ValueError:
        return None
