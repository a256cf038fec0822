from __future__ import annotations

from dataclasses import dataclass, field
import math
import re
from typing import Callable, Optional, Sequence, TypeVar
import xml.etree.ElementTree as ET

import numpy as np

from . import matrix as mx
from .paths import parse_path_data, point_at_fraction
from .values import add_values, distance, interpolate, parse_number_list, scale_value, zero_like


DRIVER_TAGS = frozenset({"animate", "set", "animateTransform", "animateColor", "animateMotion"})
XLINK_HREF = "{http://www.w3.org/1999/xlink}href"

EPS = 1e-9

_CLOCK_RE = re.compile(r"^([-+]?(?:\d+\.?\d*|\.\d+))(h|min|s|ms)?$")
_FULL_CLOCK_RE = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{2}(?:\.\d+)?)$")
_UNIT_SECONDS = {"h": 3600.0, "min": 60.0, "s": 1.0, "ms": 0.001}

T = TypeVar("T")
Progress = tuple[float, int]


def local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def parse_clock_value(value: Optional[str]) -> Optional[float]:
    """Parse a SMIL clock value into seconds. Returns None for anything else."""
    if value is None:
        return None
    raw = value.strip()
    full = _FULL_CLOCK_RE.match(raw)
    if full is not None:
        hours = int(full.group(1) or 0)
        return hours * 3600.0 + int(full.group(2)) * 60.0 + float(full.group(3))
    match = _CLOCK_RE.match(raw)
    if match is None:
        return None
    return float(match.group(1)) * _UNIT_SECONDS[match.group(2) or "s"]


def parse_offset_list(value: Optional[str], default: Sequence[float]) -> list[float]:
    """Offset values of a begin/end list; event and syncbase values never resolve."""
    if value is None or not value.strip():
        return list(default)
    out: list[float] = []
    for item in value.split(";"):
        offset = parse_clock_value(item.replace(" ", ""))
        if offset is not None:
            out.append(offset)
    return sorted(out)


def _parse_duration(value: Optional[str]) -> float:
    parsed = parse_clock_value(value)
    if parsed is None or parsed <= 0:
        return math.inf
    return parsed


def _parse_repeat_count(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    if value.strip() == "indefinite":
        return math.inf
    try:
        count = float(value)
    except ValueError:
        return None
    return count if count > 0 else None


def _parse_repeat_dur(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    if value.strip() == "indefinite":
        return math.inf
    parsed = parse_clock_value(value)
    return parsed if parsed is not None and parsed > 0 else None


@dataclass(frozen=True)
class AnimationTiming:
    begins: tuple[float, ...]
    dur: float
    repeat_count: Optional[float] = None
    repeat_dur: Optional[float] = None
    ends: tuple[float, ...] = ()
    fill: str = "remove"

    @classmethod
    def from_element(cls, element: ET.Element) -> "AnimationTiming":
        return cls(
            begins=tuple(parse_offset_list(element.get("begin"), default=(0.0,))),
            dur=_parse_duration(element.get("dur")),
            repeat_count=_parse_repeat_count(element.get("repeatCount")),
            repeat_dur=_parse_repeat_dur(element.get("repeatDur")),
            ends=tuple(parse_offset_list(element.get("end"), default=())),
            fill=(element.get("fill") or "remove").strip(),
        )

    @property
    def active_duration(self) -> float:
        if self.repeat_count is None and self.repeat_dur is None:
            return self.dur
        candidates: list[float] = []
        if self.repeat_count is not None:
            candidates.append(self.dur * self.repeat_count)
        if self.repeat_dur is not None:
            candidates.append(self.repeat_dur)
        return min(candidates)

    def interval(self, t: float) -> Optional[tuple[float, float]]:
        started = [b for b in self.begins if b <= t + EPS]
        if not started:
            return None
        begin = started[-1]
        end = begin + self.active_duration
        for e in self.ends:
            if e >= begin:
                end = min(end, e)
                break
        return begin, end

    def sample(self, t: float) -> Optional[Progress]:
        """Simple-duration progress and iteration at document time `t`, or None when not applied."""
        interval = self.interval(t)
        if interval is None:
            return None
        begin, end = interval
        if t < end:
            if math.isinf(self.dur):
                return (0.0, 0)
            q = max(0.0, t - begin) / self.dur
            iteration = int(math.floor(q + EPS))
            return (min(1.0, max(0.0, q - iteration)), iteration)
        if self.fill != "freeze":
            return None
        active = end - begin
        if math.isinf(self.dur) or active <= 0:
            return (0.0, 0)
        q = active / self.dur
        iteration = int(math.floor(q + EPS))
        fraction = q - iteration
        if fraction <= EPS and iteration > 0:
            return (1.0, iteration - 1)
        return (min(1.0, max(0.0, fraction)), iteration)


def _spline_ease(spline: tuple[float, float, float, float], t: float) -> float:
    x1, y1, x2, y2 = spline

    def bezier(p1: float, p2: float, s: float) -> float:
        ms = 1.0 - s
        return 3 * ms * ms * s * p1 + 3 * ms * s * s * p2 + s * s * s

    lo, hi = 0.0, 1.0
    for _ in range(40):
        mid = (lo + hi) / 2.0
        if bezier(x1, x2, mid) < t:
            lo = mid
        else:
            hi = mid
    return bezier(y1, y2, (lo + hi) / 2.0)


def interpolate_keyframes(
    values: Sequence[T],
    fraction: float,
    *,
    calc_mode: str,
    key_times: Optional[Sequence[float]],
    key_splines: Optional[Sequence[tuple[float, float, float, float]]],
    lerp: Callable[[T, T, float], T],
    measure: Callable[[T, T], float],
) -> T:
    n = len(values)
    if n == 1:
        return values[0]
    if key_times is not None and len(key_times) != n:
        key_times = None
    if calc_mode == "discrete":
        times = list(key_times) if key_times is not None else [i / n for i in range(n)]
        if fraction >= 1.0:
            return values[-1]
        idx = 0
        for i, k in enumerate(times):
            if fraction + EPS >= k:
                idx = i
        return values[idx]

    if calc_mode == "paced":
        gaps = [measure(a, b) for a, b in zip(values, values[1:])]
        total = sum(gaps)
        if total > 0:
            acc = 0.0
            times = [0.0]
            for gap in gaps:
                acc += gap
                times.append(acc / total)
        else:
            times = [i / (n - 1) for i in range(n)]
    elif key_times is not None:
        times = list(key_times)
    else:
        times = [i / (n - 1) for i in range(n)]

    if fraction >= times[-1]:
        return values[-1]
    seg = 0
    for i in range(n - 1):
        if times[i] <= fraction:
            seg = i
    span = times[seg + 1] - times[seg]
    local = (fraction - times[seg]) / span if span > 0 else 0.0
    if calc_mode == "spline" and key_splines is not None and seg < len(key_splines):
        local = _spline_ease(key_splines[seg], local)
    return lerp(values[seg], values[seg + 1], local)


def _lerp_list(a: list[float], b: list[float], t: float) -> list[float]:
    return [x + (y - x) * t for x, y in zip(a, b)]


def _list_distance(a: list[float], b: list[float]) -> float:
    return math.sqrt(sum((y - x) ** 2 for x, y in zip(a, b)))


def _parse_key_times(value: Optional[str]) -> Optional[list[float]]:
    if not value:
        return None
    try:
        times = [float(v) for v in value.split(";") if v.strip()]
    except ValueError:
        return None
    if not times or times != sorted(times) or times[0] != 0.0:
        return None
    return times


def _parse_key_splines(value: Optional[str]) -> Optional[list[tuple[float, float, float, float]]]:
    if not value:
        return None
    out: list[tuple[float, float, float, float]] = []
    for item in value.split(";"):
        nums = parse_number_list(item)
        if not item.strip():
            continue
        if len(nums) != 4:
            return None
        out.append((nums[0], nums[1], nums[2], nums[3]))
    return out or None


def _normalize_transform_params(kind: str, params: list[float]) -> list[float]:
    if kind == "translate":
        return [params[0] if params else 0.0, params[1] if len(params) > 1 else 0.0]
    if kind == "scale":
        sx = params[0] if params else 1.0
        return [sx, params[1] if len(params) > 1 else sx]
    if kind == "rotate":
        return [
            params[0] if params else 0.0,
            params[1] if len(params) > 1 else 0.0,
            params[2] if len(params) > 2 else 0.0,
        ]
    return [params[0] if params else 0.0]


def _neutral_transform_params(kind: str, like: list[float]) -> list[float]:
    if kind == "scale":
        return [1.0, 1.0]
    if kind == "rotate":
        return [0.0, like[1], like[2]]
    return [0.0 for _ in like]


def transform_from_params(kind: str, params: list[float]) -> np.ndarray:
    if kind == "translate":
        return mx.translate(params[0], params[1])
    if kind == "scale":
        return mx.scale(params[0], params[1])
    if kind == "rotate":
        return mx.rotate(params[0], params[1], params[2])
    if kind == "skewX":
        return mx.skew_x(params[0])
    if kind == "skewY":
        return mx.skew_y(params[0])
    raise ValueError(f"unsupported animateTransform type: {kind}")


@dataclass
class AnimationDriver:
    """One SMIL animation element bound to its target."""

    element: ET.Element
    kind: str
    target: ET.Element
    order: int
    timing: AnimationTiming
    attribute_name: Optional[str] = None
    values: list[Optional[str]] = field(default_factory=list)
    calc_mode: str = "linear"
    key_times: Optional[list[float]] = None
    key_splines: Optional[list[tuple[float, float, float, float]]] = None
    additive: bool = False
    accumulate: bool = False
    transform_type: str = "translate"
    transform_values: list[list[float]] = field(default_factory=list)
    motion_points: list[tuple[float, float]] = field(default_factory=list)
    motion_values: list[list[float]] = field(default_factory=list)
    key_points: Optional[list[float]] = None
    rotate: str = "0"

    def sample(self, t: float) -> Optional[Progress]:
        return self.timing.sample(t)

    def attribute_value(self, progress: Progress, underlying: str) -> str:
        fraction, iteration = progress
        values = [underlying if v is None else v for v in self.values]
        if not values:
            return underlying
        result = interpolate_keyframes(
            values,
            fraction,
            calc_mode=self.calc_mode,
            key_times=self.key_times,
            key_splines=self.key_splines,
            lerp=interpolate,
            measure=distance,
        )
        if self.accumulate and iteration > 0 and self.values[-1] is not None:
            result = add_values(result, scale_value(values[-1], iteration))
        if self.additive:
            result = add_values(underlying, result)
        return result

    def transform_value(self, progress: Progress) -> np.ndarray:
        if not self.transform_values:
            return mx.identity()
        fraction, iteration = progress
        params = interpolate_keyframes(
            self.transform_values,
            fraction,
            calc_mode=self.calc_mode,
            key_times=self.key_times,
            key_splines=self.key_splines,
            lerp=_lerp_list,
            measure=_list_distance,
        )
        if self.accumulate and iteration > 0:
            last = self.transform_values[-1]
            params = [p + iteration * l for p, l in zip(params, last)]
        return transform_from_params(self.transform_type, params)

    def motion_value(self, progress: Progress) -> np.ndarray:
        fraction, iteration = progress
        end_x = end_y = 0.0
        if self.motion_points:
            along = fraction
            if self.key_points is not None:
                along = interpolate_keyframes(
                    self.key_points,
                    fraction,
                    calc_mode="discrete" if self.calc_mode == "discrete" else "linear",
                    key_times=self.key_times,
                    key_splines=self.key_splines,
                    lerp=lambda a, b, t: a + (b - a) * t,
                    measure=lambda a, b: abs(b - a),
                )
            x, y, angle = point_at_fraction(self.motion_points, along)
            end_x, end_y = self.motion_points[-1]
        elif self.motion_values:
            point = self._motion_point(fraction)
            ahead = self._motion_point(min(1.0, fraction + 1e-3))
            behind = self._motion_point(max(0.0, fraction - 1e-3))
            x, y = point
            angle = math.degrees(math.atan2(ahead[1] - behind[1], ahead[0] - behind[0]))
            end_x, end_y = self.motion_values[-1][0], self.motion_values[-1][1]
        else:
            return mx.identity()
        if self.accumulate and iteration > 0:
            x += iteration * end_x
            y += iteration * end_y
        if self.rotate == "auto":
            rotation = angle
        elif self.rotate == "auto-reverse":
            rotation = angle + 180.0
        else:
            try:
                rotation = float(self.rotate)
            except ValueError:
                rotation = 0.0
        return mx.translate(x, y) @ mx.rotate(rotation)

    def _motion_point(self, fraction: float) -> list[float]:
        return interpolate_keyframes(
            self.motion_values,
            fraction,
            calc_mode=self.calc_mode,
            key_times=self.key_times,
            key_splines=self.key_splines,
            lerp=_lerp_list,
            measure=_list_distance,
        )


def _raw_values(element: ET.Element, kind: str) -> tuple[list[Optional[str]], bool]:
    """Value list of the animation function plus whether it is implicitly additive."""
    values_attr = element.get("values")
    from_ = element.get("from")
    to = element.get("to")
    by = element.get("by")
    if kind == "set":
        return ([to] if to is not None else []), False
    if values_attr is not None:
        return [v.strip() for v in values_attr.split(";") if v.strip()], False
    if from_ is not None and to is not None:
        return [from_, to], False
    if from_ is not None and by is not None:
        return [from_, add_values(from_, by)], False
    if to is not None:
        return [None, to], False
    if by is not None:
        return [zero_like(by), by], True
    return [], False


def build_driver(
    element: ET.Element,
    target: ET.Element,
    order: int,
    lookup: Callable[[str], Optional[ET.Element]],
) -> Optional[AnimationDriver]:
    kind = local_name(element.tag)
    if kind not in DRIVER_TAGS:
        return None
    raw_values, implicit_additive = _raw_values(element, kind)
    default_mode = "paced" if kind == "animateMotion" else "linear"
    driver = AnimationDriver(
        element=element,
        kind=kind,
        target=target,
        order=order,
        timing=AnimationTiming.from_element(element),
        attribute_name=element.get("attributeName"),
        calc_mode="discrete" if kind == "set" else (element.get("calcMode") or default_mode),
        key_times=_parse_key_times(element.get("keyTimes")),
        key_splines=_parse_key_splines(element.get("keySplines")),
        additive=kind != "set" and (implicit_additive or element.get("additive") == "sum"),
        accumulate=kind != "set" and element.get("accumulate") == "sum",
    )
    if kind == "animateTransform":
        driver.transform_type = element.get("type") or "translate"
        params = [
            None if v is None else _normalize_transform_params(driver.transform_type, parse_number_list(v))
            for v in raw_values
        ]
        concrete = [p for p in params if p is not None]
        if concrete:
            neutral = _neutral_transform_params(driver.transform_type, concrete[0])
            driver.transform_values = [neutral if p is None else p for p in params]
        return driver
    if kind == "animateMotion":
        driver.rotate = (element.get("rotate") or "0").strip()
        path_data = element.get("path")
        for child in element:
            if local_name(child.tag) == "mpath":
                href = child.get("href") or child.get(XLINK_HREF) or ""
                ref = lookup(href[1:]) if href.startswith("#") else None
                if ref is not None and ref.get("d"):
                    path_data = ref.get("d")
        if path_data:
            for subpath in parse_path_data(path_data):
                driver.motion_points.extend(subpath.points)
            if element.get("keyPoints"):
                driver.key_points = [float(v) for v in element.get("keyPoints", "").split(";") if v.strip()]
        else:
            points = [None if v is None else parse_number_list(v)[:2] for v in raw_values]
            concrete = [p for p in points if p is not None and len(p) == 2]
            driver.motion_values = [[0.0, 0.0] if p is None else p for p in points if p is None or len(p) == 2]
            if not concrete:
                driver.motion_values = []
        return driver
    if driver.attribute_name is None:
        return None
    driver.values = raw_values
    return driver


def resolve_target(element: ET.Element, parent: Optional[ET.Element], lookup: Callable[[str], Optional[ET.Element]]) -> Optional[ET.Element]:
    href = element.get("href") or element.get(XLINK_HREF)
    if href and href.startswith("#"):
        return lookup(href[1:])
    return parent
