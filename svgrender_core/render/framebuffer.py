from __future__ import annotations

import base64
from dataclasses import dataclass
import io

import numpy as np
import torch
from PIL import Image

from svgrender_core.scene.values import Color


TRANSPARENT: Color = (0, 0, 0, 0)


@dataclass
class FrameBuffer:
    """Straight-alpha RGBA surface backed by a (height, width, 4) uint8 tensor."""

    width: int
    height: int
    background: Color = TRANSPARENT

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("framebuffer dimensions must be > 0")
        self.rgba = torch.zeros((self.height, self.width, 4), dtype=torch.uint8)
        self.clear(self.background)

    def clear(self, color: Color | None = None) -> None:
        if color is None:
            color = self.background
        self.rgba[:, :] = torch.tensor(color, dtype=torch.uint8)

    def blend_mask(self, mask: np.ndarray, color: Color) -> None:
        """Composite `color` source-over through a coverage mask (uint8 0..255, frame-sized)."""
        if mask.shape != (self.height, self.width):
            raise ValueError(f"mask shape {mask.shape} does not match framebuffer {(self.height, self.width)}")
        src_alpha = (mask.astype(np.float32) / 255.0) * (color[3] / 255.0)
        if not np.any(src_alpha > 0):
            return
        dst_rgb = self.rgba[:, :, :3].to(torch.float32).numpy()
        dst_alpha = self.rgba[:, :, 3].to(torch.float32).numpy() / 255.0
        src_rgb = np.asarray(color[:3], dtype=np.float32).reshape(1, 1, 3)

        out_alpha = src_alpha + dst_alpha * (1.0 - src_alpha)
        out_rgb_num = src_rgb * src_alpha[:, :, None] + dst_rgb * dst_alpha[:, :, None] * (1.0 - src_alpha[:, :, None])
        safe = np.where(out_alpha > 1e-6, out_alpha, 1.0)
        out_rgb = out_rgb_num / safe[:, :, None]

        self.rgba[:, :, :3] = torch.from_numpy(np.clip(np.rint(out_rgb), 0, 255).astype(np.uint8))
        self.rgba[:, :, 3] = torch.from_numpy(np.clip(np.rint(out_alpha * 255.0), 0, 255).astype(np.uint8))

    def to_tensor(self) -> torch.Tensor:
        return self.rgba.clone()


def encode_png(rgba: torch.Tensor) -> bytes:
    if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != torch.uint8:
        raise ValueError(f"expected (h, w, 4) uint8 tensor, got {tuple(rgba.shape)} {rgba.dtype}")
    image = Image.fromarray(rgba.contiguous().numpy())
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def encode_png_base64(rgba: torch.Tensor) -> str:
    return base64.b64encode(encode_png(rgba)).decode("ascii")


def decode_png(data: bytes) -> torch.Tensor:
    image = Image.open(io.BytesIO(data)).convert("RGBA")
    return torch.from_numpy(np.array(image, dtype=np.uint8))
