"""Frame resizing helpers shared by render surfaces."""

from .frame_pipeline import prepare_frame_for_extent, resize_rgba_bilinear

__all__ = [
    "prepare_frame_for_extent",
    "resize_rgba_bilinear",
]
