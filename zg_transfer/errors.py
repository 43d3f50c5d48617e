"""Exception hierarchy for fragment transfers."""

from typing import Optional


class TransferError(Exception):
    """Base class for every error raised by zg_transfer.

    ``phase`` is filled in by the pipeline with the name of the phase
    (split / upload / download) that was running when the error surfaced.
    """

    phase: Optional[str] = None


class TransferIOError(TransferError):
    """Filesystem open/read/write/stat failure."""


class ConfigurationError(TransferError):
    """Bad settings or a backend that could not be constructed."""


class NoNodesAvailable(TransferError):
    """Node selection returned nothing usable."""


class BackendError(TransferError):
    """A storage backend call failed."""


class UploadError(TransferError):
    """A fragment could not be submitted to the backend."""


class ManifestError(TransferError):
    """The manifest is unreadable, malformed or cannot represent a path."""


class MissingHashError(TransferError):
    """A manifest entry has no content hash."""


class DownloadError(TransferError):
    """The backend could not fetch a fragment."""


class ReconstructionError(TransferError):
    """The reconstructed output could not be written."""
