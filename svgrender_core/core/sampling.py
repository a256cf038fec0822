from __future__ import annotations

from dataclasses import dataclass
import math
from pathlib import Path
import tomllib
from typing import Any, Callable

from svgrender_core.errors import ConfigurationError
from svgrender_core.targets.surface import CanvasSurface, RenderSurface

DEFAULT_FPS = 60.0
DEFAULT_DURATION_MS = 1000.0
DEFAULT_BEGIN_MS = 0.0

ProgressSignal = Callable[[int, int], None]


def round_half_up(value: float) -> int:
    """Round .5 towards +inf, the way browsers round frame counts."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class SamplingConfig:
    fps: float
    duration_ms: float
    frame_count: int
    begin_ms: float = DEFAULT_BEGIN_MS

    def __post_init__(self) -> None:
        if not math.isfinite(self.fps) or self.fps <= 0:
            raise ValueError("fps must be > 0")
        if not math.isfinite(self.duration_ms) or self.duration_ms <= 0:
            raise ValueError("duration_ms must be > 0")
        if self.frame_count <= 0:
            raise ValueError("frame_count must be > 0")
        if not math.isfinite(self.begin_ms) or self.begin_ms < 0:
            raise ValueError("begin_ms must be >= 0")
        if self.frame_count != round_half_up(self.fps * self.duration_ms / 1000.0):
            raise ValueError("frame_count must equal round(fps * duration_ms / 1000)")

    def sample_time_ms(self, done_count: int) -> float:
        # Recomputed from the index every step so repeated steps do not drift.
        return self.begin_ms + round_half_up(1000.0 * done_count) / self.fps

    @classmethod
    def reconcile(
        cls,
        fps: float | None = None,
        duration_ms: float | None = None,
        frame_count: int | None = None,
        begin_ms: float | None = None,
    ) -> "SamplingConfig":
        """Derive the missing one of fps / duration / frame count.

        Raises ConfigurationError when all three are given and disagree, or
        when a supplied value is out of range.
        """
        _check_positive("fps", fps)
        _check_positive("duration_ms", duration_ms)
        if frame_count is not None:
            if isinstance(frame_count, bool) or int(frame_count) != frame_count:
                raise ConfigurationError(f"frame_count must be an integer, got {frame_count!r}")
            frame_count = int(frame_count)
            if frame_count <= 0:
                raise ConfigurationError(f"frame_count must be > 0, got {frame_count}")
        if begin_ms is None:
            begin_ms = DEFAULT_BEGIN_MS
        elif not math.isfinite(begin_ms) or begin_ms < 0:
            raise ConfigurationError(f"begin_ms must be >= 0, got {begin_ms}")

        if frame_count is None:
            fps = DEFAULT_FPS if fps is None else fps
            duration_ms = DEFAULT_DURATION_MS if duration_ms is None else duration_ms
            frame_count = round_half_up(fps * duration_ms / 1000.0)
            if frame_count <= 0:
                raise ConfigurationError(
                    f"fps={fps} and duration_ms={duration_ms} yield no frames"
                )
        elif fps is not None and duration_ms is not None:
            expected = round_half_up(fps * duration_ms / 1000.0)
            if expected != frame_count:
                raise ConfigurationError(
                    f"frame_count={frame_count} contradicts fps={fps} and duration_ms={duration_ms} "
                    f"(expected {expected})"
                )
        elif duration_ms is not None:
            fps = frame_count * 1000.0 / duration_ms
        else:
            fps = DEFAULT_FPS if fps is None else fps
            duration_ms = frame_count * 1000.0 / fps
        return cls(fps=float(fps), duration_ms=float(duration_ms), frame_count=frame_count, begin_ms=float(begin_ms))


def _check_positive(name: str, value: float | None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive number, got {value!r}")


@dataclass
class RenderOptions:
    """Caller-supplied, partially defaulted request for one render job."""

    fps: float | None = None
    duration_ms: float | None = None
    frame_count: int | None = None
    begin_ms: float | None = None
    progress_signal: ProgressSignal | None = None
    render_surface: RenderSurface | None = None

    def to_config(self) -> SamplingConfig:
        return SamplingConfig.reconcile(
            fps=self.fps,
            duration_ms=self.duration_ms,
            frame_count=self.frame_count,
            begin_ms=self.begin_ms,
        )


def load_render_options(path: str | Path) -> RenderOptions:
    """Read `[render]` and the optional `[surface]` table from a TOML file."""
    with Path(path).open("rb") as f:
        raw = tomllib.load(f)
    render = raw.get("render", {})
    if not isinstance(render, dict):
        raise ValueError("[render] must be a table")
    unknown = set(render) - {"fps", "duration_ms", "frame_count", "begin_ms"}
    if unknown:
        raise ValueError(f"unknown [render] keys: {sorted(unknown)}")
    surface = raw.get("surface")
    render_surface: RenderSurface | None = None
    if surface is not None:
        if not isinstance(surface, dict):
            raise ValueError("[surface] must be a table")
        render_surface = CanvasSurface(
            width=int(surface.get("width", 500)),
            height=int(surface.get("height", 500)),
            resize_to_image=bool(surface.get("resize_to_image", "width" not in surface and "height" not in surface)),
            preserve_aspect_ratio=bool(surface.get("preserve_aspect_ratio", True)),
        )
    return RenderOptions(
        fps=_optional_number(render, "fps"),
        duration_ms=_optional_number(render, "duration_ms"),
        frame_count=_optional_int(render, "frame_count"),
        begin_ms=_optional_number(render, "begin_ms"),
        render_surface=render_surface,
    )


def _optional_number(table: dict[str, Any], key: str) -> float | None:
    value = table.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(table: dict[str, Any], key: str) -> int | None:
    value = table.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return value
