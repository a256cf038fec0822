from __future__ import annotations

import asyncio
from dataclasses import dataclass
import itertools
import logging
import mimetypes
from pathlib import Path
import time
from typing import Callable, Literal
import xml.etree.ElementTree as ET

from svgrender_core.errors import ConcurrentJobError, IntegrityFault, LoadError, PreconditionError, SVGRenderError
from svgrender_core.render.svg import SvgRasterizer
from svgrender_core.scene.document import AnimatedScene
from svgrender_core.scene.style import local_tag
from svgrender_core.targets.surface import CanvasSurface

from .frame_sampler import AuditLogger, Frame, FrameSampler, FrameSink, Rasterizer
from .sampling import RenderOptions, SamplingConfig

LOGGER = logging.getLogger(__name__)

JobState = Literal["IDLE", "LOADING", "READY", "RENDERING", "PAUSED", "FINISHED", "FAILED"]
JobCallback = Callable[[Exception | None, "SVGRender"], None]

SVG_MIME_TYPE = "image/svg+xml"
_ACTIVE_STATES = ("RENDERING", "PAUSED")
_job_ids = itertools.count(1)


@dataclass(frozen=True)
class SvgBlob:
    """SVG bytes with a declared media type, as handed over by an upload or file picker."""

    data: bytes
    type: str
    name: str = ""

    @classmethod
    def from_path(cls, path: str | Path) -> "SvgBlob":
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        return cls(data=path.read_bytes(), type=media_type or "application/octet-stream", name=path.name)

    def text(self) -> str:
        return self.data.decode("utf-8-sig")


class SVGRender:
    """Render job controller: loads one animated SVG and samples it into frames.

    All callbacks run on the event loop. Frames are buffered in index order
    and, when a `frame_sink` is given, also handed to it as they arrive.
    """

    def __init__(
        self,
        *,
        rasterizer: Rasterizer | None = None,
        frame_sink: FrameSink | None = None,
        audit_logger: AuditLogger | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._rasterizer: Rasterizer = rasterizer or SvgRasterizer()
        self._frame_sink = frame_sink
        self._audit_logger = audit_logger or (lambda entry: None)
        self._loop = loop
        self._scene: AnimatedScene | None = None
        self._state: JobState = "IDLE"
        self._error: Exception | None = None
        self._frames: list[Frame] = []
        self._sampler: FrameSampler | None = None
        self._callback: JobCallback | None = None
        self._done_event: asyncio.Event | None = None
        self._job_id = ""

    # Loading

    def load(self, source: ET.Element | SvgBlob | str, callback: JobCallback | None = None) -> None:
        """Load a scene from an element, a blob or markup; `callback(error, self)` runs on the next loop turn."""
        loop = self._get_loop()
        callback = callback or (lambda error, controller: None)
        if self._state in _ACTIVE_STATES:
            error: Exception = ConcurrentJobError("cannot load while a render job is active")
            self._error = error
            loop.call_soon(callback, error, self)
            return
        self._state = "LOADING"
        self._scene = None
        self._sampler = None
        try:
            scene = _scene_from_source(source)
        except LoadError as exc:
            LOGGER.warning("load failed: %s", exc)
            self._error = exc
            self._state = "IDLE"
            loop.call_soon(callback, exc, self)
            return
        self._scene = scene
        self._error = None
        self._state = "READY"
        self._audit("load", drivers=len(scene.drivers))
        loop.call_soon(callback, None, self)

    # Rendering

    def render(self, options: RenderOptions | None = None, callback: JobCallback | None = None) -> bool:
        """Start sampling. Returns whether the job was accepted, not whether it finished."""
        options = options or RenderOptions()
        try:
            if self._state in _ACTIVE_STATES:
                raise ConcurrentJobError("a render job is already active")
            if self._scene is None:
                raise PreconditionError("input file not loaded yet")
            config = options.to_config()
        except SVGRenderError as exc:
            LOGGER.warning("render rejected: %s", exc)
            self._error = exc
            return False
        self._start(config, options, callback)
        return True

    def _start(self, config: SamplingConfig, options: RenderOptions, callback: JobCallback | None) -> None:
        self._job_id = f"job-{next(_job_ids)}"
        self._error = None
        self._frames = []
        self._callback = callback
        self._done_event = asyncio.Event()
        self._sampler = FrameSampler(
            self._scene,
            config,
            self._rasterizer,
            options.render_surface or CanvasSurface(),
            progress_signal=options.progress_signal,
            frame_sink=self._deliver,
            on_complete=self._on_complete,
            audit_logger=self._audit_logger,
            job_id=self._job_id,
            loop=self._get_loop(),
        )
        self._state = "RENDERING"
        LOGGER.info(
            "%s: sampling %d frames at %.3f fps from t=%.1fms",
            self._job_id,
            config.frame_count,
            config.fps,
            config.begin_ms,
        )
        self._sampler.start()

    def pause(self) -> None:
        if self._state != "RENDERING" or self._sampler is None:
            return
        self._sampler.pause()
        self._state = "PAUSED"

    def resume(self) -> None:
        if self._state != "PAUSED" or self._sampler is None:
            return
        self._state = "RENDERING"
        self._sampler.resume()

    def is_active(self) -> bool:
        return self._state not in ("FINISHED", "FAILED")

    def get_error_message(self) -> str:
        return "" if self._error is None else str(self._error)

    async def wait(self) -> JobState:
        """Block until the current job finishes or fails."""
        if self._done_event is None:
            raise PreconditionError("no render job started")
        await self._done_event.wait()
        return self._state

    # State

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def loaded(self) -> bool:
        return self._scene is not None

    @property
    def scene(self) -> AnimatedScene | None:
        return self._scene

    @property
    def last_error(self) -> Exception | None:
        return self._error

    @property
    def frames(self) -> list[Frame]:
        return list(self._frames)

    @property
    def images(self) -> list[str]:
        return [frame.png_base64 for frame in self._frames]

    @property
    def done_count(self) -> int:
        return 0 if self._sampler is None else self._sampler.done_count

    @property
    def frame_count(self) -> int:
        return 0 if self._sampler is None else self._sampler.frame_count

    def _deliver(self, frame: Frame) -> None:
        if frame.index != len(self._frames):
            raise IntegrityFault(f"frame {frame.index} delivered out of order (expected {len(self._frames)})")
        self._frames.append(frame)
        if self._frame_sink is not None:
            self._frame_sink(frame)

    def _on_complete(self, error: Exception | None) -> None:
        if error is None:
            self._state = "FINISHED"
            LOGGER.info("%s: finished with %d frames", self._job_id, len(self._frames))
        else:
            self._state = "FAILED"
            self._error = error
            LOGGER.error("%s: failed after %d frames: %s", self._job_id, len(self._frames), error)
        if self._done_event is not None:
            self._done_event.set()
        if self._callback is not None:
            self._callback(error, self)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _audit(self, action: str, **fields: object) -> None:
        entry: dict[str, object] = {"ts_ns": time.time_ns(), "action": action, "job": self._job_id}
        entry.update(fields)
        self._audit_logger(entry)


def _scene_from_source(source: ET.Element | SvgBlob | str) -> AnimatedScene:
    if isinstance(source, SvgBlob):
        media_type = source.type.split(";", 1)[0].strip().lower()
        if media_type != SVG_MIME_TYPE:
            raise LoadError(f"wrong blob type, should be {SVG_MIME_TYPE}, is {source.type or '<empty>'}")
        try:
            markup = source.text()
        except UnicodeDecodeError as exc:
            raise LoadError(f"blob {source.name or '<unnamed>'} is not valid UTF-8") from exc
        return _scene_from_markup(markup)
    if isinstance(source, str):
        return _scene_from_markup(source)
    if isinstance(source, ET.Element):
        if local_tag(source) != "svg":
            raise LoadError(f"element must be <svg>, got <{local_tag(source) or source.tag}>")
        return AnimatedScene(source)
    raise LoadError(f"unknown svg source type: {type(source).__name__}")


def _scene_from_markup(markup: str) -> AnimatedScene:
    try:
        return AnimatedScene.from_markup(markup)
    except ET.ParseError as exc:
        raise LoadError(f"malformed svg markup: {exc}") from exc
    except ValueError as exc:
        raise LoadError(str(exc)) from exc
