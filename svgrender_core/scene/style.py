from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Mapping, Optional, Sequence
import xml.etree.ElementTree as ET

from .values import format_color, parse_color


@dataclass(frozen=True)
class PropertySpec:
    inherited: bool
    initial: str
    color: bool = False


@dataclass(frozen=True)
class StyleValue:
    value: str
    priority: str = ""


ComputedStyle = dict[str, StyleValue]


@dataclass(frozen=True)
class Selector:
    """A compound selector: optional type plus any number of `.class` and `#id` parts."""

    tag: Optional[str] = None
    ids: tuple[str, ...] = ()
    classes: tuple[str, ...] = ()

    @property
    def specificity(self) -> tuple[int, int, int]:
        return (len(self.ids), len(self.classes), 0 if self.tag is None else 1)

    def matches(self, element: ET.Element) -> bool:
        if self.tag is not None and local_tag(element) != self.tag:
            return False
        if self.ids and any(element.get("id") != ident for ident in self.ids):
            return False
        classes = set((element.get("class") or "").split())
        return all(name in classes for name in self.classes)


@dataclass(frozen=True)
class StyleRule:
    selector: Selector
    declarations: Mapping[str, StyleValue]
    order: int


PROPERTIES: dict[str, PropertySpec] = {
    "clip-path": PropertySpec(False, "none"),
    "clip-rule": PropertySpec(True, "nonzero"),
    "color": PropertySpec(True, "rgb(0, 0, 0)", color=True),
    "color-interpolation": PropertySpec(True, "sRGB"),
    "color-interpolation-filters": PropertySpec(True, "linearRGB"),
    "cursor": PropertySpec(True, "auto"),
    "display": PropertySpec(False, "inline"),
    "dominant-baseline": PropertySpec(True, "auto"),
    "fill": PropertySpec(True, "rgb(0, 0, 0)", color=True),
    "fill-opacity": PropertySpec(True, "1"),
    "fill-rule": PropertySpec(True, "nonzero"),
    "filter": PropertySpec(False, "none"),
    "flood-color": PropertySpec(False, "rgb(0, 0, 0)", color=True),
    "flood-opacity": PropertySpec(False, "1"),
    "font-family": PropertySpec(True, "serif"),
    "font-size": PropertySpec(True, "16px"),
    "font-style": PropertySpec(True, "normal"),
    "font-weight": PropertySpec(True, "400"),
    "letter-spacing": PropertySpec(True, "normal"),
    "lighting-color": PropertySpec(False, "rgb(255, 255, 255)", color=True),
    "marker-end": PropertySpec(True, "none"),
    "marker-mid": PropertySpec(True, "none"),
    "marker-start": PropertySpec(True, "none"),
    "mask": PropertySpec(False, "none"),
    "opacity": PropertySpec(False, "1"),
    "overflow": PropertySpec(False, "visible"),
    "paint-order": PropertySpec(True, "normal"),
    "pointer-events": PropertySpec(True, "auto"),
    "shape-rendering": PropertySpec(True, "auto"),
    "stop-color": PropertySpec(False, "rgb(0, 0, 0)", color=True),
    "stop-opacity": PropertySpec(False, "1"),
    "stroke": PropertySpec(True, "none", color=True),
    "stroke-dasharray": PropertySpec(True, "none"),
    "stroke-dashoffset": PropertySpec(True, "0"),
    "stroke-linecap": PropertySpec(True, "butt"),
    "stroke-linejoin": PropertySpec(True, "miter"),
    "stroke-miterlimit": PropertySpec(True, "4"),
    "stroke-opacity": PropertySpec(True, "1"),
    "stroke-width": PropertySpec(True, "1"),
    "text-anchor": PropertySpec(True, "start"),
    "visibility": PropertySpec(True, "visible"),
}

# Geometry properties only exist on the elements that define them.
GEOMETRY_PROPERTIES: dict[str, dict[str, str]] = {
    "rect": {"x": "0", "y": "0", "width": "auto", "height": "auto", "rx": "auto", "ry": "auto"},
    "circle": {"cx": "0", "cy": "0", "r": "0"},
    "ellipse": {"cx": "0", "cy": "0", "rx": "auto", "ry": "auto"},
    "path": {"d": "none"},
    "image": {"x": "0", "y": "0", "width": "auto", "height": "auto"},
    "use": {"x": "0", "y": "0", "width": "auto", "height": "auto"},
    "svg": {"x": "0", "y": "0", "width": "auto", "height": "auto"},
    "foreignObject": {"x": "0", "y": "0", "width": "auto", "height": "auto"},
}


def local_tag(element: ET.Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return tag.split("}", 1)[1] if "}" in tag else tag


def is_style_property(tag: str, name: str) -> bool:
    return name in PROPERTIES or name in GEOMETRY_PROPERTIES.get(tag, {})


def parse_style_attribute(value: Optional[str]) -> dict[str, StyleValue]:
    """Parse an inline `style` attribute, keeping `!important` as the priority."""
    out: dict[str, StyleValue] = {}
    if not value:
        return out
    for declaration in value.split(";"):
        if ":" not in declaration:
            continue
        name, raw = declaration.split(":", 1)
        name = name.strip().lower()
        raw = raw.strip()
        priority = ""
        if raw.lower().endswith("!important"):
            raw = raw[: -len("!important")].strip()
            priority = "important"
        if name and raw:
            out[name] = StyleValue(raw, priority)
    return out


def format_style_attribute(declarations: Mapping[str, StyleValue]) -> str:
    parts = []
    for name, decl in declarations.items():
        suffix = " !important" if decl.priority == "important" else ""
        parts.append(f"{name}: {decl.value}{suffix}")
    return "; ".join(parts)


_CSS_COMMENT = re.compile(r"/\*.*?\*/", re.S)
_CSS_BLOCK = re.compile(r"([^{}]+)\{([^{}]*)\}")
_COMPOUND_SELECTOR = re.compile(r"(\*|[A-Za-z][\w-]*)?((?:[.#][\w-]+)*)")
_SELECTOR_PART = re.compile(r"([.#])([\w-]+)")


def parse_selector(text: str) -> Optional[Selector]:
    """Parse one compound selector; combinators and pseudo-classes are not supported."""
    text = text.strip()
    match = _COMPOUND_SELECTOR.fullmatch(text)
    if not text or match is None:
        return None
    tag = match.group(1)
    parts = _SELECTOR_PART.findall(match.group(2))
    return Selector(
        tag=None if tag in (None, "*") else tag,
        ids=tuple(name for kind, name in parts if kind == "#"),
        classes=tuple(name for kind, name in parts if kind == "."),
    )


def parse_stylesheet(text: str, first_order: int = 0) -> list[StyleRule]:
    """Rules of a CSS sheet, one per selector, numbered in source order.

    Rules whose selector cannot be parsed are dropped.
    """
    rules: list[StyleRule] = []
    for block in _CSS_BLOCK.finditer(_CSS_COMMENT.sub("", text)):
        declarations = parse_style_attribute(block.group(2))
        if not declarations:
            continue
        for part in block.group(1).split(","):
            selector = parse_selector(part)
            if selector is not None:
                rules.append(StyleRule(selector, declarations, first_order + len(rules)))
    return rules


def collect_stylesheet(root: ET.Element) -> list[StyleRule]:
    """Rules from every CSS `<style>` element under `root`, in document order."""
    rules: list[StyleRule] = []
    for element in root.iter():
        if local_tag(element) != "style" or element.get("type", "text/css") != "text/css":
            continue
        rules.extend(parse_stylesheet("".join(element.itertext()), len(rules)))
    return rules


def matched_declarations(element: ET.Element, rules: Sequence[StyleRule]) -> dict[str, StyleValue]:
    """Winning sheet declaration per property, by specificity then source order."""
    matched = sorted(
        (rule for rule in rules if rule.selector.matches(element)),
        key=lambda rule: (rule.selector.specificity, rule.order),
    )
    out: dict[str, StyleValue] = {}
    for priority in ("", "important"):
        for rule in matched:
            for name, decl in rule.declarations.items():
                if decl.priority == priority:
                    out[name] = decl
    return out


def _normalize(spec_is_color: bool, value: str, current_color: Optional[str]) -> str:
    if value.lower() == "currentcolor" and current_color is not None:
        return current_color
    if spec_is_color:
        color = parse_color(value)
        if color is not None:
            return format_color(color)
    return value


def compute_style(
    element: ET.Element,
    parent_style: Optional[Mapping[str, StyleValue]] = None,
    animated: Optional[Mapping[str, str]] = None,
    rules: Sequence[StyleRule] = (),
) -> ComputedStyle:
    """Resolve every applicable property of `element`.

    Cascade order, lowest first: initial or inherited value, presentation
    attribute, stylesheet rule, inline style, `!important` stylesheet rule,
    `!important` inline style. Animated values sit above normal declarations
    and never override `!important` ones.
    """
    tag = local_tag(element)
    inline = parse_style_attribute(element.get("style"))
    sheet = matched_declarations(element, rules)
    animated = animated or {}
    specs: dict[str, PropertySpec] = dict(PROPERTIES)
    for name, initial in GEOMETRY_PROPERTIES.get(tag, {}).items():
        specs[name] = PropertySpec(False, initial)

    out: ComputedStyle = {}
    # `color` first so currentColor resolves against this element's value.
    ordered = ["color"] + [name for name in specs if name != "color"]
    for name in ordered:
        spec = specs[name]
        declared: Optional[StyleValue] = None
        attr = element.get(name)
        if attr is not None and attr.strip():
            declared = StyleValue(attr.strip())
        for priority in ("", "important"):
            for origin in (sheet, inline):
                decl = origin.get(name)
                if decl is not None and decl.priority == priority:
                    declared = decl
        if name in animated and (declared is None or declared.priority != "important"):
            declared = StyleValue(animated[name])

        inherited = parent_style.get(name) if parent_style is not None else None
        if declared is None or declared.value == "inherit":
            if spec.inherited or (declared is not None and declared.value == "inherit"):
                if inherited is not None:
                    out[name] = StyleValue(inherited.value)
                    continue
            out[name] = StyleValue(spec.initial)
            continue
        if declared.value == "initial":
            out[name] = StyleValue(spec.initial, declared.priority)
            continue
        current = out["color"].value if "color" in out else None
        out[name] = StyleValue(_normalize(spec.color, declared.value, current), declared.priority)
    return out
