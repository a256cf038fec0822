from __future__ import annotations

import math
import re
from typing import Optional

from PIL import ImageColor

from .matrix import format_number


Color = tuple[int, int, int, int]

NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

_RGB_FUNC_RE = re.compile(r"^rgba?\(([^)]*)\)$", re.IGNORECASE)
_NOT_COLORS = {"none", "inherit", "currentcolor", "auto", "normal", ""}


def parse_color(value: Optional[str]) -> Optional[Color]:
    if value is None:
        return None
    raw = value.strip()
    if raw.lower() in _NOT_COLORS or raw.startswith("url("):
        return None
    if raw.lower() == "transparent":
        return (0, 0, 0, 0)
    functional = _RGB_FUNC_RE.match(raw)
    if functional is not None:
        nums = [float(n) for n in NUMBER_RE.findall(functional.group(1))]
        if len(nums) in (3, 4) and "%" not in functional.group(1):
            alpha = 255 if len(nums) == 3 else int(round(max(0.0, min(1.0, nums[3])) * 255))
            r, g, b = (int(round(max(0.0, min(255.0, n)))) for n in nums[:3])
            return (r, g, b, alpha)
    try:
        rgb = ImageColor.getrgb(raw)
    except ValueError:
        return None
    if len(rgb) == 4:
        return (int(rgb[0]), int(rgb[1]), int(rgb[2]), int(rgb[3]))
    return (int(rgb[0]), int(rgb[1]), int(rgb[2]), 255)


def format_color(color: Color) -> str:
    r, g, b, a = color
    if a >= 255:
        return f"rgb({r}, {g}, {b})"
    return f"rgba({r}, {g}, {b}, {format_number(round(a / 255.0, 4))})"


def split_numbers(value: str) -> tuple[tuple[str, ...], list[float]]:
    """Split `value` into its non-numeric skeleton and the numbers between it."""
    parts: list[str] = []
    numbers: list[float] = []
    pos = 0
    for match in NUMBER_RE.finditer(value):
        parts.append(value[pos : match.start()])
        numbers.append(float(match.group(0)))
        pos = match.end()
    parts.append(value[pos:])
    return tuple(parts), numbers


def join_numbers(parts: tuple[str, ...], numbers: list[float]) -> str:
    out: list[str] = []
    for i, num in enumerate(numbers):
        out.append(parts[i])
        out.append(format_number(num))
    out.append(parts[-1])
    return "".join(out)


def _normalized_skeleton(parts: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(" ".join(p.replace(",", " ").split()) for p in parts)


def _compatible(a: str, b: str) -> Optional[tuple[tuple[str, ...], list[float], list[float]]]:
    parts_a, nums_a = split_numbers(a)
    parts_b, nums_b = split_numbers(b)
    if not nums_a or len(nums_a) != len(nums_b):
        return None
    if _normalized_skeleton(parts_a) == _normalized_skeleton(parts_b):
        return parts_b, nums_a, nums_b
    # A bare number against a number with a unit ("10" vs "20px").
    if len(nums_a) == 1 and parts_a[0].strip() == parts_b[0].strip():
        unit_a = parts_a[1].strip()
        unit_b = parts_b[1].strip()
        if not unit_a or not unit_b:
            return (parts_b if unit_b else parts_a), nums_a, nums_b
    return None


def interpolate(a: str, b: str, t: float) -> str:
    """Interpolate two attribute values; non-interpolable pairs switch at t=0.5."""
    color_a = parse_color(a)
    color_b = parse_color(b)
    if color_a is not None and color_b is not None:
        return format_color(
            tuple(int(round(ca + (cb - ca) * t)) for ca, cb in zip(color_a, color_b))  # type: ignore[arg-type]
        )
    match = _compatible(a, b)
    if match is not None:
        parts, nums_a, nums_b = match
        return join_numbers(parts, [na + (nb - na) * t for na, nb in zip(nums_a, nums_b)])
    return a if t < 0.5 else b


def add_values(base: str, delta: str) -> str:
    color_base = parse_color(base)
    color_delta = parse_color(delta)
    if color_base is not None and color_delta is not None:
        summed = [min(255, cb + cd) for cb, cd in zip(color_base[:3], color_delta[:3])]
        return format_color((summed[0], summed[1], summed[2], max(color_base[3], color_delta[3])))
    match = _compatible(base, delta)
    if match is not None:
        parts, nums_base, nums_delta = match
        return join_numbers(parts, [nb + nd for nb, nd in zip(nums_base, nums_delta)])
    return delta


def scale_value(value: str, factor: float) -> str:
    color = parse_color(value)
    if color is not None:
        return format_color(
            (
                min(255, int(round(color[0] * factor))),
                min(255, int(round(color[1] * factor))),
                min(255, int(round(color[2] * factor))),
                color[3],
            )
        )
    parts, nums = split_numbers(value)
    if not nums:
        return value
    return join_numbers(parts, [n * factor for n in nums])


def zero_like(value: str) -> str:
    color = parse_color(value)
    if color is not None:
        return format_color((0, 0, 0, color[3]))
    parts, nums = split_numbers(value)
    return join_numbers(parts, [0.0 for _ in nums])


def distance(a: str, b: str) -> float:
    color_a = parse_color(a)
    color_b = parse_color(b)
    if color_a is not None and color_b is not None:
        return math.sqrt(sum((cb - ca) ** 2 for ca, cb in zip(color_a[:3], color_b[:3])))
    match = _compatible(a, b)
    if match is None:
        return 0.0
    _, nums_a, nums_b = match
    return math.sqrt(sum((nb - na) ** 2 for na, nb in zip(nums_a, nums_b)))


def parse_number_list(value: Optional[str]) -> list[float]:
    if not value:
        return []
    return [float(n) for n in NUMBER_RE.findall(value)]


def parse_length(value: Optional[str], default: Optional[float] = None) -> Optional[float]:
    if value is None:
        return default
    raw = value.strip()
    if not raw or raw.endswith("%") or raw in ("auto", "none"):
        return default
    match = NUMBER_RE.match(raw)
    if match is None:
        return default
    return float(match.group(0))
