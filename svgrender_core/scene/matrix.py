from __future__ import annotations

import math
import re
from typing import Iterable, Optional

import numpy as np


Components = tuple[float, float, float, float, float, float]

_TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def identity() -> np.ndarray:
    return np.eye(3, dtype=np.float64)


def from_components(a: float, b: float, c: float, d: float, e: float, f: float) -> np.ndarray:
    """Build the 3x3 form of the SVG matrix `[a c e; b d f; 0 0 1]`."""
    return np.array([[a, c, e], [b, d, f], [0.0, 0.0, 1.0]], dtype=np.float64)


def to_components(m: np.ndarray) -> Components:
    return (
        float(m[0, 0]),
        float(m[1, 0]),
        float(m[0, 1]),
        float(m[1, 1]),
        float(m[0, 2]),
        float(m[1, 2]),
    )


def translate(tx: float, ty: float = 0.0) -> np.ndarray:
    return from_components(1.0, 0.0, 0.0, 1.0, tx, ty)


def scale(sx: float, sy: Optional[float] = None) -> np.ndarray:
    return from_components(sx, 0.0, 0.0, sx if sy is None else sy, 0.0, 0.0)


def rotate(angle_deg: float, cx: float = 0.0, cy: float = 0.0) -> np.ndarray:
    rad = math.radians(angle_deg)
    cos_a = math.cos(rad)
    sin_a = math.sin(rad)
    rot = from_components(cos_a, sin_a, -sin_a, cos_a, 0.0, 0.0)
    if cx == 0.0 and cy == 0.0:
        return rot
    return translate(cx, cy) @ rot @ translate(-cx, -cy)


def skew_x(angle_deg: float) -> np.ndarray:
    return from_components(1.0, 0.0, math.tan(math.radians(angle_deg)), 1.0, 0.0, 0.0)


def skew_y(angle_deg: float) -> np.ndarray:
    return from_components(1.0, math.tan(math.radians(angle_deg)), 0.0, 1.0, 0.0, 0.0)


def multiply(*matrices: np.ndarray) -> np.ndarray:
    out = identity()
    for m in matrices:
        out = out @ m
    return out


def inverse(m: np.ndarray) -> np.ndarray:
    a, b, c, d, e, f = to_components(m)
    det = a * d - b * c
    if abs(det) < 1e-12:
        raise ValueError("matrix is not invertible")
    return np.linalg.inv(m)


def mean_scale(m: np.ndarray) -> float:
    a, b, c, d, _, _ = to_components(m)
    return math.sqrt(abs(a * d - b * c))


def transform_points(m: np.ndarray, points: Iterable[tuple[float, float]]) -> list[tuple[float, float]]:
    pts = np.asarray(list(points), dtype=np.float64)
    if pts.size == 0:
        return []
    homo = np.hstack([pts, np.ones((pts.shape[0], 1))])
    out = homo @ m.T
    return [(float(x), float(y)) for x, y in out[:, :2]]


def transform_primitive(kind: str, args: list[float]) -> np.ndarray:
    """Matrix for one transform-list item such as `rotate(45 10 10)`."""
    if kind == "matrix":
        if len(args) != 6:
            raise ValueError(f"matrix() takes 6 arguments, got {len(args)}")
        return from_components(*args)
    if kind == "translate":
        if not args:
            raise ValueError("translate() needs at least 1 argument")
        return translate(args[0], args[1] if len(args) > 1 else 0.0)
    if kind == "scale":
        if not args:
            raise ValueError("scale() needs at least 1 argument")
        return scale(args[0], args[1] if len(args) > 1 else None)
    if kind == "rotate":
        if not args:
            raise ValueError("rotate() needs at least 1 argument")
        if len(args) >= 3:
            return rotate(args[0], args[1], args[2])
        return rotate(args[0])
    if kind == "skewX":
        return skew_x(args[0] if args else 0.0)
    if kind == "skewY":
        return skew_y(args[0] if args else 0.0)
    raise ValueError(f"unknown transform type: {kind}")


def parse_transform(value: Optional[str]) -> np.ndarray:
    """Collapse an SVG transform list into one matrix (identity for empty input)."""
    out = identity()
    if not value:
        return out
    for kind, raw_args in _TRANSFORM_RE.findall(value):
        args = [float(n) for n in _NUMBER_RE.findall(raw_args)]
        try:
            out = out @ transform_primitive(kind, args)
        except ValueError:
            # Browsers drop the whole list on a malformed item.
            return identity()
    return out


def format_number(value: float) -> str:
    if abs(value) < 1e-12:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.10g}"


def format_matrix(m: np.ndarray) -> str:
    return "matrix(" + " ".join(format_number(v) for v in to_components(m)) + ")"


def is_identity(m: np.ndarray, tol: float = 1e-9) -> bool:
    return bool(np.allclose(m, identity(), atol=tol))
