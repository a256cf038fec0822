from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
import logging
import time
from typing import AbstractSet, Callable, Literal, Protocol

import torch

from svgrender_core.errors import IntegrityFault
from svgrender_core.render.framebuffer import encode_png_base64
from svgrender_core.scene.document import AnimatedScene
from svgrender_core.scene.timing import DRIVER_TAGS
from svgrender_core.snapshot import apply_snapshot, extract_snapshot, serialize_scene, strip_drivers
from svgrender_core.targets.surface import RenderSurface

from .sampling import ProgressSignal, SamplingConfig

LOGGER = logging.getLogger(__name__)

SamplerState = Literal["IDLE", "SAMPLING", "PAUSED", "FINISHED", "FAILED"]
AuditLogger = Callable[[dict[str, object]], None]


@dataclass(frozen=True)
class Frame:
    index: int
    png_base64: str
    width: int
    height: int
    time_ms: float

    def png_bytes(self) -> bytes:
        return base64.b64decode(self.png_base64)


FrameSink = Callable[[Frame], None]
CompletionCallback = Callable[[Exception | None], None]


class Rasterizer(Protocol):
    async def rasterize(self, svg_markup: str) -> torch.Tensor:
        ...


class FrameSampler:
    """Steps the scene clock through a job and turns each step into a Frame.

    Steps run on the event loop one at a time: the next step is scheduled with
    `call_soon` only after the previous frame was delivered. At most one
    rasterization is in flight.
    """

    def __init__(
        self,
        scene: AnimatedScene | None,
        config: SamplingConfig,
        rasterizer: Rasterizer,
        surface: RenderSurface,
        *,
        progress_signal: ProgressSignal | None = None,
        frame_sink: FrameSink | None = None,
        on_complete: CompletionCallback | None = None,
        audit_logger: AuditLogger | None = None,
        job_id: str = "",
        loop: asyncio.AbstractEventLoop | None = None,
        ignored: AbstractSet[str] = DRIVER_TAGS,
    ) -> None:
        self._scene = scene
        self._config = config
        self._rasterizer = rasterizer
        self._surface = surface
        self._progress_signal = progress_signal or (lambda done, total: None)
        self._frame_sink = frame_sink or (lambda frame: None)
        self._on_complete = on_complete or (lambda error: None)
        self._audit_logger = audit_logger or (lambda entry: None)
        self._job_id = job_id
        self._loop = loop
        self._ignored = ignored
        self._state: SamplerState = "IDLE"
        self._done_count = 0
        self._interrupted = False
        self._handle: asyncio.Handle | None = None
        self._task: asyncio.Task[None] | None = None
        self._last_error: Exception | None = None

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def config(self) -> SamplingConfig:
        return self._config

    @property
    def done_count(self) -> int:
        return self._done_count

    @property
    def frame_count(self) -> int:
        return self._config.frame_count

    @property
    def interrupted(self) -> bool:
        return self._interrupted

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    def start(self) -> None:
        if self._state != "IDLE":
            raise IntegrityFault(f"sampler already started (state={self._state})")
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._state = "SAMPLING"
        self._surface.reset()
        self._audit("render_start", fps=self._config.fps, frame_count=self._config.frame_count)
        self._schedule()

    def pause(self) -> None:
        if self._state != "SAMPLING":
            return
        self._interrupted = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._state = "PAUSED"
        self._audit("pause")

    def resume(self) -> None:
        if self._state != "PAUSED" or not self._interrupted:
            return
        self._interrupted = False
        self._state = "SAMPLING"
        self._audit("resume")
        # A frame still rasterizing schedules its successor when it lands.
        if self._handle is None and self._task is None:
            self._schedule()

    def prepare_markup(self, done_count: int) -> tuple[str, float]:
        """Seek the live scene to frame `done_count` and serialize a static copy of it."""
        scene = self._scene
        if scene is None:
            raise IntegrityFault("cannot render: no scene loaded")
        time_ms = self._config.sample_time_ms(done_count)
        scene.pause_animations()
        scene.set_current_time(time_ms / 1000.0)
        clone = scene.clone()
        strip_drivers(clone, self._ignored)
        snapshot = extract_snapshot(scene, scene.root, self._ignored)
        apply_snapshot(clone, snapshot)
        return serialize_scene(clone, scene.base_url), time_ms

    def step(self) -> None:
        if self._state in ("IDLE", "FINISHED", "FAILED"):
            raise IntegrityFault(f"step invoked on a job in state {self._state}")
        self._handle = None
        try:
            if self._interrupted:
                raise IntegrityFault("step invoked while paused; the scheduled step should have been cancelled")
            if self._task is not None:
                raise IntegrityFault("step invoked while a frame is still rasterizing")
            markup, time_ms = self.prepare_markup(self._done_count)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("frame %d could not be prepared: %s", self._done_count, exc)
            self._fail(exc)
            return
        assert self._loop is not None
        self._task = self._loop.create_task(self._rasterize_step(markup, time_ms))

    def _schedule(self) -> None:
        assert self._loop is not None
        self._handle = self._loop.call_soon(self.step)

    async def _rasterize_step(self, markup: str, time_ms: float) -> None:
        index = self._done_count
        try:
            rgba = await self._rasterizer.rasterize(markup)
            self._surface.draw_image(rgba)
            pixels = self._surface.read_rgba()
            png_base64 = await asyncio.to_thread(encode_png_base64, pixels)
            frame = Frame(
                index=index,
                png_base64=png_base64,
                width=int(pixels.shape[1]),
                height=int(pixels.shape[0]),
                time_ms=time_ms,
            )
            self._progress_signal(index, self._config.frame_count)
            self._done_count = index + 1
            self._frame_sink(frame)
            self._audit("frame", index=index, time_ms=time_ms)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("frame %d failed: %s", index, exc)
            self._task = None
            self._fail(exc)
            return
        self._task = None
        self._finish_step()

    def _finish_step(self) -> None:
        if self._state == "FAILED":
            return
        if self._done_count >= self._config.frame_count:
            self._state = "FINISHED"
            self._interrupted = False
            self._audit("finished", frames=self._done_count)
            self._on_complete(None)
            return
        if self._interrupted:
            return
        self._schedule()

    def _fail(self, exc: Exception) -> None:
        if self._state == "FAILED":
            return
        self._state = "FAILED"
        self._interrupted = True
        self._last_error = exc
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._audit("failed", error=str(exc), error_type=type(exc).__name__)
        self._on_complete(exc)

    def _audit(self, action: str, **fields: object) -> None:
        entry: dict[str, object] = {
            "ts_ns": time.time_ns(),
            "action": action,
            "job": self._job_id,
            "done": self._done_count,
        }
        entry.update(fields)
        self._audit_logger(entry)
