"""
Exception taxonomy for the crop-and-upload pipeline.

None of these are fatal to the hosting application: the coordinator turns
them into a user-visible message and returns the flow to ``Idle``.
Expected validation failures are normally *returned* as a
``ValidationOutcome``; ``ValidationError`` exists for callers that prefer
to raise one (see ``ValidationOutcome.raise_for_reason``).
"""


class UploadError(Exception):
    """Base class for crop/upload failures."""


class ValidationError(UploadError):
    """The selected file has the wrong type or is too large."""


class EncodingFailed(UploadError):
    """A pixel buffer could not be serialized to an image byte stream."""


class TransportError(UploadError):
    """The backend rejected the upload or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTransition(Exception):
    """An upload flow was driven through a transition its phase does not allow."""
