"""Error taxonomy for the scene assembly pipeline."""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class ProbeError(PipelineError):
    """Raised when a media file's duration cannot be determined."""


class AdjustmentError(PipelineError):
    """Raised when a duration adjustment produces no usable output.

    Never escapes the adjuster: callers receive the unmodified input instead.
    """


class NoAudioProvided(PipelineError):
    """Raised when a scene ends up with neither dialogue nor sound effect."""


class GenerationError(PipelineError):
    """Raised when an external generation API fails after all retries."""


class AssemblyError(PipelineError):
    """Raised when a batch yields no usable scenes."""


class UploadError(PipelineError):
    """Raised when the hosting service rejects or loses an upload."""
