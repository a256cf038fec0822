from __future__ import annotations

from dataclasses import dataclass, field
import math
import re
from typing import Optional

from .values import NUMBER_RE, parse_number_list


CURVE_SEGMENTS = 16
ELLIPSE_SEGMENTS = 64

_PATH_TOKEN_RE = re.compile(r"[MmLlHhVvCcSsQqTtAaZz]|" + NUMBER_RE.pattern)
_ARG_COUNTS = {"M": 2, "L": 2, "H": 1, "V": 1, "C": 6, "S": 4, "Q": 4, "T": 2, "A": 7, "Z": 0}


@dataclass
class Subpath:
    points: list[tuple[float, float]] = field(default_factory=list)
    closed: bool = False


def rect_outline(x: float, y: float, width: float, height: float, rx: float = 0.0, ry: float = 0.0) -> list[Subpath]:
    if width <= 0 or height <= 0:
        return []
    rx = max(0.0, min(rx, width / 2.0))
    ry = max(0.0, min(ry, height / 2.0))
    if rx <= 0 or ry <= 0:
        return [Subpath([(x, y), (x + width, y), (x + width, y + height), (x, y + height)], closed=True)]
    points: list[tuple[float, float]] = []
    corners = (
        (x + width - rx, y + ry, -90.0),
        (x + width - rx, y + height - ry, 0.0),
        (x + rx, y + height - ry, 90.0),
        (x + rx, y + ry, 180.0),
    )
    steps = ELLIPSE_SEGMENTS // 4
    for cx, cy, start in corners:
        for i in range(steps + 1):
            angle = math.radians(start + 90.0 * i / steps)
            points.append((cx + rx * math.cos(angle), cy + ry * math.sin(angle)))
    return [Subpath(points, closed=True)]


def ellipse_outline(cx: float, cy: float, rx: float, ry: float) -> list[Subpath]:
    if rx <= 0 or ry <= 0:
        return []
    points = [
        (
            cx + rx * math.cos(2.0 * math.pi * i / ELLIPSE_SEGMENTS),
            cy + ry * math.sin(2.0 * math.pi * i / ELLIPSE_SEGMENTS),
        )
        for i in range(ELLIPSE_SEGMENTS)
    ]
    return [Subpath(points, closed=True)]


def point_list(value: Optional[str], closed: bool) -> list[Subpath]:
    nums = parse_number_list(value)
    it = iter(nums)
    points = [(px, py) for px, py in zip(it, it)]
    if len(points) < 2:
        return []
    return [Subpath(points, closed=closed)]


def parse_path_data(d: Optional[str]) -> list[Subpath]:
    """Flatten SVG path data into polylines. Stops at the first malformed segment."""
    if not d or d.strip() == "none":
        return []
    tokens = _PATH_TOKEN_RE.findall(d)
    subpaths: list[Subpath] = []
    current: Optional[Subpath] = None
    cx = cy = 0.0
    start_x = start_y = 0.0
    last_ctrl: Optional[tuple[float, float]] = None
    last_cmd = ""
    cmd = ""
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.isalpha():
            cmd = tok
            i += 1
        elif not cmd or cmd in "Zz":
            break
        upper = cmd.upper()
        relative = cmd.islower()
        count = _ARG_COUNTS[upper]
        args: list[float] = []
        if count:
            if i + count > len(tokens) or any(t.isalpha() for t in tokens[i : i + count]):
                break
            args = [float(t) for t in tokens[i : i + count]]
            i += count
        ox, oy = (cx, cy) if relative else (0.0, 0.0)

        if upper == "M":
            cx, cy = ox + args[0], oy + args[1]
            start_x, start_y = cx, cy
            current = Subpath([(cx, cy)])
            subpaths.append(current)
            # Extra coordinate pairs after a moveto are implicit linetos.
            cmd = "l" if relative else "L"
            last_ctrl = None
            last_cmd = "M"
            continue
        if current is None:
            current = Subpath([(cx, cy)])
            subpaths.append(current)
        elif current.closed:
            current = Subpath([(start_x, start_y)])
            subpaths.append(current)
            cx, cy = start_x, start_y

        if upper == "Z":
            current.closed = True
            cx, cy = start_x, start_y
            last_ctrl = None
        elif upper == "L":
            cx, cy = ox + args[0], oy + args[1]
            current.points.append((cx, cy))
            last_ctrl = None
        elif upper == "H":
            cx = (cx if relative else 0.0) + args[0]
            current.points.append((cx, cy))
            last_ctrl = None
        elif upper == "V":
            cy = (cy if relative else 0.0) + args[0]
            current.points.append((cx, cy))
            last_ctrl = None
        elif upper in ("C", "S"):
            if upper == "C":
                c1 = (ox + args[0], oy + args[1])
                c2 = (ox + args[2], oy + args[3])
                end = (ox + args[4], oy + args[5])
            else:
                if last_ctrl is not None and last_cmd in ("C", "S"):
                    c1 = (2 * cx - last_ctrl[0], 2 * cy - last_ctrl[1])
                else:
                    c1 = (cx, cy)
                c2 = (ox + args[0], oy + args[1])
                end = (ox + args[2], oy + args[3])
            current.points.extend(_cubic((cx, cy), c1, c2, end))
            last_ctrl = c2
            cx, cy = end
        elif upper in ("Q", "T"):
            if upper == "Q":
                ctrl = (ox + args[0], oy + args[1])
                end = (ox + args[2], oy + args[3])
            else:
                if last_ctrl is not None and last_cmd in ("Q", "T"):
                    ctrl = (2 * cx - last_ctrl[0], 2 * cy - last_ctrl[1])
                else:
                    ctrl = (cx, cy)
                end = (ox + args[0], oy + args[1])
            current.points.extend(_quadratic((cx, cy), ctrl, end))
            last_ctrl = ctrl
            cx, cy = end
        elif upper == "A":
            end = (ox + args[5], oy + args[6])
            current.points.extend(
                _arc((cx, cy), args[0], args[1], args[2], bool(args[3]), bool(args[4]), end)
            )
            last_ctrl = None
            cx, cy = end
        last_cmd = upper
    return [sp for sp in subpaths if len(sp.points) >= 2 or sp.closed]


def polyline_length(points: list[tuple[float, float]]) -> float:
    return sum(math.dist(a, b) for a, b in zip(points, points[1:]))


def point_at_fraction(points: list[tuple[float, float]], fraction: float) -> tuple[float, float, float]:
    """Return (x, y, tangent angle in degrees) at `fraction` of the polyline length."""
    if not points:
        return (0.0, 0.0, 0.0)
    if len(points) == 1:
        return (points[0][0], points[0][1], 0.0)
    total = polyline_length(points)
    target = max(0.0, min(1.0, fraction)) * total
    walked = 0.0
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        seg = math.dist((x0, y0), (x1, y1))
        if seg == 0.0:
            continue
        angle = math.degrees(math.atan2(y1 - y0, x1 - x0))
        if walked + seg >= target:
            t = (target - walked) / seg
            return (x0 + (x1 - x0) * t, y0 + (y1 - y0) * t, angle)
        walked += seg
    (x0, y0), (x1, y1) = points[-2], points[-1]
    return (x1, y1, math.degrees(math.atan2(y1 - y0, x1 - x0)))


def _cubic(p0, p1, p2, p3) -> list[tuple[float, float]]:
    out = []
    for i in range(1, CURVE_SEGMENTS + 1):
        t = i / CURVE_SEGMENTS
        mt = 1.0 - t
        x = mt**3 * p0[0] + 3 * mt**2 * t * p1[0] + 3 * mt * t**2 * p2[0] + t**3 * p3[0]
        y = mt**3 * p0[1] + 3 * mt**2 * t * p1[1] + 3 * mt * t**2 * p2[1] + t**3 * p3[1]
        out.append((x, y))
    return out


def _quadratic(p0, p1, p2) -> list[tuple[float, float]]:
    out = []
    for i in range(1, CURVE_SEGMENTS + 1):
        t = i / CURVE_SEGMENTS
        mt = 1.0 - t
        out.append(
            (
                mt * mt * p0[0] + 2 * mt * t * p1[0] + t * t * p2[0],
                mt * mt * p0[1] + 2 * mt * t * p1[1] + t * t * p2[1],
            )
        )
    return out


def _arc(start, rx, ry, phi_deg, large_arc, sweep, end) -> list[tuple[float, float]]:
    # Endpoint to center parameterization (SVG 1.1 implementation notes F.6.5).
    x1, y1 = start
    x2, y2 = end
    if (x1, y1) == (x2, y2):
        return []
    rx, ry = abs(rx), abs(ry)
    if rx == 0 or ry == 0:
        return [end]
    phi = math.radians(phi_deg)
    cos_phi, sin_phi = math.cos(phi), math.sin(phi)
    dx, dy = (x1 - x2) / 2.0, (y1 - y2) / 2.0
    x1p = cos_phi * dx + sin_phi * dy
    y1p = -sin_phi * dx + cos_phi * dy
    lam = (x1p * x1p) / (rx * rx) + (y1p * y1p) / (ry * ry)
    if lam > 1:
        rx *= math.sqrt(lam)
        ry *= math.sqrt(lam)
    num = rx * rx * ry * ry - rx * rx * y1p * y1p - ry * ry * x1p * x1p
    den = rx * rx * y1p * y1p + ry * ry * x1p * x1p
    coef = math.sqrt(max(0.0, num / den)) if den else 0.0
    if large_arc == sweep:
        coef = -coef
    cxp = coef * rx * y1p / ry
    cyp = -coef * ry * x1p / rx
    cx = cos_phi * cxp - sin_phi * cyp + (x1 + x2) / 2.0
    cy = sin_phi * cxp + cos_phi * cyp + (y1 + y2) / 2.0
    theta1 = math.atan2((y1p - cyp) / ry, (x1p - cxp) / rx)
    theta2 = math.atan2((-y1p - cyp) / ry, (-x1p - cxp) / rx)
    delta = theta2 - theta1
    if sweep and delta < 0:
        delta += 2 * math.pi
    elif not sweep and delta > 0:
        delta -= 2 * math.pi
    steps = max(2, int(math.ceil(abs(delta) / (2 * math.pi) * ELLIPSE_SEGMENTS)))
    out = []
    for i in range(1, steps + 1):
        theta = theta1 + delta * i / steps
        out.append(
            (
                cx + rx * math.cos(theta) * cos_phi - ry * math.sin(theta) * sin_phi,
                cy + rx * math.cos(theta) * sin_phi + ry * math.sin(theta) * cos_phi,
            )
        )
    return out
