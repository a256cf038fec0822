from __future__ import annotations

import base64
import unittest

import torch

from svgrender_core.render.framebuffer import decode_png
from svgrender_core.targets.surface import DEFAULT_SURFACE_SIZE, CanvasSurface, RenderSurface


class CanvasSurfaceTests(unittest.TestCase):
    def test_defaults(self) -> None:
        surface = CanvasSurface()
        self.assertIsInstance(surface, RenderSurface)
        pixels = surface.read_rgba()
        self.assertEqual(tuple(pixels.shape), (DEFAULT_SURFACE_SIZE, DEFAULT_SURFACE_SIZE, 4))
        self.assertEqual(int(pixels.sum().item()), 0)

    def test_resize_to_image_follows_drawn_size(self) -> None:
        surface = CanvasSurface()
        image = torch.full((4, 6, 4), 200, dtype=torch.uint8)
        surface.draw_image(image)
        self.assertEqual((surface.width, surface.height), (6, 4))
        self.assertTrue(torch.equal(surface.read_rgba(), image))
        self.assertEqual(surface.draw_count, 1)

    def test_fixed_extent_letterboxes_with_background(self) -> None:
        surface = CanvasSurface(width=8, height=8, resize_to_image=False, background=(0, 0, 0, 255))
        image = torch.full((2, 4, 4), 255, dtype=torch.uint8)
        surface.draw_image(image)
        pixels = surface.read_rgba()
        self.assertEqual(tuple(pixels.shape), (8, 8, 4))
        self.assertEqual(pixels[0, 0].tolist(), [0, 0, 0, 255])
        self.assertEqual(pixels[4, 4].tolist(), [255, 255, 255, 255])

    def test_read_returns_copy(self) -> None:
        surface = CanvasSurface(width=2, height=2)
        pixels = surface.read_rgba()
        pixels[:] = 9
        self.assertEqual(int(surface.read_rgba().sum().item()), 0)

    def test_reset_and_png_export(self) -> None:
        surface = CanvasSurface(width=3, height=3)
        surface.draw_image(torch.full((3, 3, 4), 255, dtype=torch.uint8))
        decoded = decode_png(base64.b64decode(surface.to_png_base64()))
        self.assertEqual(decoded[1, 1].tolist(), [255, 255, 255, 255])
        surface.reset()
        self.assertEqual(surface.draw_count, 0)
        self.assertEqual(int(surface.read_rgba().sum().item()), 0)

    def test_invalid_input(self) -> None:
        with self.assertRaises(ValueError):
            CanvasSurface(width=0)
        with self.assertRaises(ValueError):
            CanvasSurface().draw_image(torch.zeros((4, 4, 3), dtype=torch.uint8))


if __name__ == "__main__":
    unittest.main()
