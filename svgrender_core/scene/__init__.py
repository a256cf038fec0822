"""Animated SVG scene model: SMIL clock, style cascade and transforms."""

from .document import SVG_NS, XLINK_NS, AnimatedScene
from .style import ComputedStyle, StyleValue, compute_style

__all__ = ["AnimatedScene", "ComputedStyle", "SVG_NS", "StyleValue", "XLINK_NS", "compute_style"]
