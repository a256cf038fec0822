from .surface import CanvasSurface, RenderSurface

__all__ = ["CanvasSurface", "RenderSurface"]
