from __future__ import annotations


class SVGRenderError(RuntimeError):
    """Base class for every error reported by a render job."""


class LoadError(SVGRenderError):
    """Input could not be turned into an animated scene (wrong media type, bad markup)."""


class ConfigurationError(SVGRenderError):
    """fps / duration / frame count cannot be reconciled."""


class PreconditionError(SVGRenderError):
    """An operation was requested before the job was ready for it."""


class ConcurrentJobError(SVGRenderError):
    """A second job was requested while one is still rendering or paused."""


class IntegrityFault(SVGRenderError):
    """Internal invariant violation. Fatal for the job that raised it."""
