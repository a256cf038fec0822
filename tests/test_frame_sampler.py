from __future__ import annotations

import asyncio
from typing import Callable
import unittest

import torch

from svgrender_core.core.frame_sampler import Frame, FrameSampler
from svgrender_core.core.sampling import SamplingConfig
from svgrender_core.errors import IntegrityFault
from svgrender_core.scene.document import AnimatedScene
from svgrender_core.targets.surface import CanvasSurface

SCENE = """<svg xmlns="http://www.w3.org/2000/svg" width="6" height="4">
  <rect width="6" height="4" fill="red">
    <animate attributeName="fill" from="red" to="blue" dur="1s"/>
  </rect>
</svg>"""


class FakeRasterizer:
    def __init__(self, gate: asyncio.Event | None = None, error: Exception | None = None) -> None:
        self.markups: list[str] = []
        self.gate = gate
        self.error = error

    async def rasterize(self, svg_markup: str) -> torch.Tensor:
        self.markups.append(svg_markup)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return torch.zeros((4, 6, 4), dtype=torch.uint8)


async def _until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


class FrameSamplerTests(unittest.IsolatedAsyncioTestCase):
    def _sampler(
        self,
        rasterizer: FakeRasterizer,
        *,
        frame_count: int = 5,
        with_scene: bool = True,
        frame_sink: Callable[[Frame], None] | None = None,
    ) -> FrameSampler:
        self.progress: list[tuple[int, int, int]] = []
        self.frames: list[Frame] = []
        self.audit: list[dict[str, object]] = []
        self.done: asyncio.Future[Exception | None] = asyncio.get_running_loop().create_future()
        scene = AnimatedScene.from_markup(SCENE) if with_scene else None
        sampler: FrameSampler

        def progress(done: int, total: int) -> None:
            self.progress.append((done, total, sampler.done_count))

        def complete(error: Exception | None) -> None:
            if not self.done.done():
                self.done.set_result(error)

        sampler = FrameSampler(
            scene,
            SamplingConfig.reconcile(fps=frame_count, duration_ms=1000),
            rasterizer,
            CanvasSurface(),
            progress_signal=progress,
            frame_sink=frame_sink or self.frames.append,
            on_complete=complete,
            audit_logger=self.audit.append,
            job_id="job-test",
        )
        return sampler

    async def _wait_for_raster(self, rasterizer: FakeRasterizer, count: int) -> None:
        for _ in range(200):
            if len(rasterizer.markups) >= count:
                return
            await asyncio.sleep(0)
        self.fail(f"rasterizer was called {len(rasterizer.markups)} times, expected {count}")

    async def test_progress_precedes_increment_and_frames_are_ordered(self) -> None:
        sampler = self._sampler(FakeRasterizer())
        sampler.start()
        error = await asyncio.wait_for(self.done, 5)

        self.assertIsNone(error)
        self.assertEqual(sampler.state, "FINISHED")
        self.assertEqual(self.progress, [(i, 5, i) for i in range(5)])
        self.assertEqual([f.index for f in self.frames], [0, 1, 2, 3, 4])
        self.assertEqual([f.time_ms for f in self.frames], [0.0, 200.0, 400.0, 600.0, 800.0])
        self.assertEqual((self.frames[0].width, self.frames[0].height), (6, 4))
        self.assertTrue(self.frames[0].png_bytes().startswith(b"\x89PNG"))
        actions = [entry["action"] for entry in self.audit]
        self.assertEqual(actions, ["render_start"] + ["frame"] * 5 + ["finished"])
        self.assertTrue(all(entry["job"] == "job-test" for entry in self.audit))

    async def test_rasterized_markup_is_static(self) -> None:
        rasterizer = FakeRasterizer()
        sampler = self._sampler(rasterizer, frame_count=2)
        sampler.start()
        await asyncio.wait_for(self.done, 5)

        self.assertEqual(len(rasterizer.markups), 2)
        for markup in rasterizer.markups:
            self.assertIn("<!DOCTYPE svg", markup)
            self.assertNotIn("animate", markup)
        self.assertIn("fill: rgb(255, 0, 0)", rasterizer.markups[0])
        self.assertIn("fill: rgb(128, 0, 128)", rasterizer.markups[1])

    async def test_pause_between_steps_then_resume(self) -> None:
        loop = asyncio.get_running_loop()
        delivered: list[Frame] = []

        def sink(frame: Frame) -> None:
            delivered.append(frame)
            if frame.index == 1:
                loop.call_soon(sampler.pause)

        sampler = self._sampler(FakeRasterizer(), frame_sink=sink)
        self.frames = delivered
        sampler.start()
        await _until(lambda: sampler.state == "PAUSED")
        await asyncio.sleep(0.05)

        self.assertEqual(sampler.state, "PAUSED")
        self.assertEqual(sampler.done_count, 2)
        self.assertEqual(len(self.frames), 2)

        sampler.resume()
        await asyncio.wait_for(self.done, 5)
        self.assertEqual([f.index for f in self.frames], [0, 1, 2, 3, 4])
        self.assertEqual([p[0] for p in self.progress], [0, 1, 2, 3, 4])
        self.assertIn("pause", [e["action"] for e in self.audit])
        self.assertIn("resume", [e["action"] for e in self.audit])

    async def test_pause_during_rasterization_delivers_in_flight_frame(self) -> None:
        gate = asyncio.Event()
        rasterizer = FakeRasterizer(gate)
        sampler = self._sampler(rasterizer)
        sampler.start()
        await self._wait_for_raster(rasterizer, 1)

        self.assertTrue(sampler.in_flight)
        sampler.pause()
        gate.set()
        await _until(lambda: len(self.frames) == 1)
        await asyncio.sleep(0.05)

        self.assertEqual(sampler.state, "PAUSED")
        self.assertFalse(sampler.in_flight)
        self.assertEqual([f.index for f in self.frames], [0])
        self.assertEqual(len(rasterizer.markups), 1)

        sampler.resume()
        self.assertIsNone(await asyncio.wait_for(self.done, 5))
        self.assertEqual([f.index for f in self.frames], [0, 1, 2, 3, 4])

    async def test_resume_while_frame_in_flight_does_not_duplicate(self) -> None:
        gate = asyncio.Event()
        rasterizer = FakeRasterizer(gate)
        sampler = self._sampler(rasterizer)
        sampler.start()
        await self._wait_for_raster(rasterizer, 1)

        sampler.pause()
        sampler.resume()
        self.assertEqual(sampler.state, "SAMPLING")
        gate.set()
        await asyncio.wait_for(self.done, 5)

        self.assertEqual([f.index for f in self.frames], [0, 1, 2, 3, 4])
        self.assertEqual(len(rasterizer.markups), 5)

    async def test_resume_is_noop_unless_paused(self) -> None:
        sampler = self._sampler(FakeRasterizer())
        sampler.resume()
        self.assertEqual(sampler.state, "IDLE")
        sampler.start()
        await asyncio.wait_for(self.done, 5)
        sampler.resume()
        sampler.pause()
        self.assertEqual(sampler.state, "FINISHED")

    async def test_step_while_paused_is_fatal(self) -> None:
        sampler = self._sampler(FakeRasterizer())
        sampler.start()
        sampler.pause()
        with self.assertLogs("svgrender_core.core.frame_sampler", "ERROR"):
            sampler.step()

        error = await asyncio.wait_for(self.done, 5)
        self.assertIsInstance(error, IntegrityFault)
        self.assertEqual(sampler.state, "FAILED")
        self.assertEqual(self.frames, [])
        self.assertEqual(self.audit[-1]["action"], "failed")

    async def test_step_outside_a_running_job_raises(self) -> None:
        sampler = self._sampler(FakeRasterizer(), frame_count=1)
        with self.assertRaises(IntegrityFault):
            sampler.step()
        sampler.start()
        await asyncio.wait_for(self.done, 5)
        with self.assertRaises(IntegrityFault):
            sampler.step()
        with self.assertRaises(IntegrityFault):
            sampler.start()

    async def test_missing_scene_fails_the_job(self) -> None:
        sampler = self._sampler(FakeRasterizer(), with_scene=False)
        with self.assertLogs("svgrender_core.core.frame_sampler", "ERROR"):
            sampler.start()
            error = await asyncio.wait_for(self.done, 5)
        self.assertIsInstance(error, IntegrityFault)
        self.assertEqual(sampler.state, "FAILED")

    async def test_rasterizer_error_fails_the_job(self) -> None:
        sampler = self._sampler(FakeRasterizer(error=RuntimeError("decode failed")))
        with self.assertLogs("svgrender_core.core.frame_sampler", "ERROR") as logs:
            sampler.start()
            error = await asyncio.wait_for(self.done, 5)
        self.assertIsInstance(error, RuntimeError)
        self.assertIs(sampler.last_error, error)
        self.assertEqual(sampler.state, "FAILED")
        self.assertEqual(self.progress, [])
        self.assertTrue(any("frame 0 failed" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
