"""Error taxonomy for the triage pipeline.

Only ClassifierInitError (and ScanCancelledError when a caller asks for
cancellation) ever reaches the caller of a scan. Per-application errors
are absorbed into the report by defaulting.
"""


class TriageError(Exception):
    """Base class for all triage errors."""


class ClassifierInitError(TriageError):
    """The classifier could not be loaded; scanning must not start."""


class MetadataUnavailableError(TriageError):
    """Metadata for one application (or one of its fields) is unavailable."""

    def __init__(self, package_name: str, detail: str = ""):
        self.package_name = package_name
        self.detail = detail
        msg = f"Metadata unavailable for {package_name}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class ScoringError(TriageError):
    """The classifier failed to score one feature vector."""


class ScanCancelledError(TriageError):
    """A scan was cancelled between applications."""


class EnumerationError(TriageError):
    """The provider could not list installed applications at all."""
