from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import torch

from svgrender_core.platform.frame_pipeline import prepare_frame_for_extent
from svgrender_core.render.framebuffer import TRANSPARENT, encode_png_base64
from svgrender_core.scene.values import Color

DEFAULT_SURFACE_SIZE = 500


class RenderSurface(ABC):
    """Drawable target that receives each rasterized frame before it is encoded."""

    @abstractmethod
    def draw_image(self, rgba: torch.Tensor) -> None:
        raise NotImplementedError

    @abstractmethod
    def read_rgba(self) -> torch.Tensor:
        raise NotImplementedError

    def to_png_base64(self) -> str:
        return encode_png_base64(self.read_rgba())

    def reset(self) -> None:
        """Optional hook called when a new render job starts."""
        return


@dataclass
class CanvasSurface(RenderSurface):
    """In-memory canvas.

    With `resize_to_image` the canvas follows each drawn image's size;
    otherwise images are fitted into the fixed extent.
    """

    width: int = DEFAULT_SURFACE_SIZE
    height: int = DEFAULT_SURFACE_SIZE
    resize_to_image: bool = True
    preserve_aspect_ratio: bool = True
    background: Color = TRANSPARENT
    draw_count: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("surface dimensions must be > 0")
        self._pixels = self._blank(self.width, self.height)

    def _blank(self, width: int, height: int) -> torch.Tensor:
        pixels = torch.empty((height, width, 4), dtype=torch.uint8)
        pixels[:, :] = torch.tensor(self.background, dtype=torch.uint8)
        return pixels

    def draw_image(self, rgba: torch.Tensor) -> None:
        if rgba.ndim != 3 or rgba.shape[2] != 4:
            raise ValueError(f"expected (h, w, 4) rgba tensor, got {tuple(rgba.shape)}")
        src_h, src_w, _ = rgba.shape
        if self.resize_to_image:
            self.width = int(src_w)
            self.height = int(src_h)
            self._pixels = rgba.to(torch.uint8).clone()
        else:
            self._pixels = prepare_frame_for_extent(
                rgba.to(torch.uint8),
                target_w=self.width,
                target_h=self.height,
                preserve_aspect_ratio=self.preserve_aspect_ratio,
                background=self.background,
            ).clone()
        self.draw_count += 1

    def read_rgba(self) -> torch.Tensor:
        return self._pixels.clone()

    def reset(self) -> None:
        self._pixels = self._blank(self.width, self.height)
        self.draw_count = 0
