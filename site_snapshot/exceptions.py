"""Exception types raised by the snapshot pipeline."""


class SnapshotError(Exception):
    """Base class for all site-snapshot errors."""


class InputValidationError(SnapshotError):
    """A required input was missing; nothing was attempted."""


class RenderError(SnapshotError):
    """The headless browser could not load the page after retrying."""


class ArchiveError(SnapshotError):
    """The in-memory archive rejected a write or could not be assembled."""


class ExtractionError(SnapshotError):
    """Preview extraction failed."""


class CloneError(SnapshotError):
    """Full static clone failed."""


class ExportError(SnapshotError):
    """Export of an edited page failed."""
