from svgrender_core.errors import (
    ConcurrentJobError,
    ConfigurationError,
    IntegrityFault,
    LoadError,
    PreconditionError,
    SVGRenderError,
)
from .audit import JsonlAuditSink
from .sampling import DEFAULT_DURATION_MS, DEFAULT_FPS, RenderOptions, SamplingConfig, load_render_options
from .frame_sampler import Frame, FrameSampler, Rasterizer, SamplerState
from .job import SVG_MIME_TYPE, JobState, SVGRender, SvgBlob

__all__ = [
    "ConcurrentJobError",
    "ConfigurationError",
    "DEFAULT_DURATION_MS",
    "DEFAULT_FPS",
    "Frame",
    "FrameSampler",
    "IntegrityFault",
    "JobState",
    "JsonlAuditSink",
    "LoadError",
    "PreconditionError",
    "Rasterizer",
    "RenderOptions",
    "SVGRender",
    "SVGRenderError",
    "SVG_MIME_TYPE",
    "SamplerState",
    "SamplingConfig",
    "SvgBlob",
    "load_render_options",
]
