# =============================================================================
# errors.py
# Error taxonomy. Everything derives from RuntimeError so callers that only
# know "str(e) is a user-facing message" keep working.
# =============================================================================


class FroError(RuntimeError):
    """Base class for every recoverable Frô failure."""


# -- Capture layer ------------------------------------------------------------

class CameraError(FroError):
    """A backend could not open or read a camera device."""


class CameraUnavailable(FroError):
    """Permission denied, no camera present, or no camera support at all."""


class CaptureFailed(FroError):
    """A still image could not be produced from the live stream."""


class FileReadError(FroError):
    """A user-selected file could not be read as an image."""


# -- Analysis -----------------------------------------------------------------

class NoImage(FroError):
    """Analysis was requested without an image."""


class AnalysisInProgress(FroError):
    """Another analysis cycle is still running."""


class AnalysisNotFinished(FroError):
    """A follow-up step needs a cycle that has reached DONE."""


class RemoteError(FroError):
    """A remote model call failed or returned a malformed response."""


class AnalysisTimeout(RemoteError):
    """A remote model call exceeded the configured timeout."""


class IdentificationInvalid(RemoteError):
    """The identification came back without a common name."""
