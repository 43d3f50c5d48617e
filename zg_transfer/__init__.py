from .config import TransferConfig
from .errors import (
    BackendError,
    ConfigurationError,
    DownloadError,
    ManifestError,
    MissingHashError,
    NoNodesAvailable,
    ReconstructionError,
    TransferError,
    TransferIOError,
    UploadError,
)
from .fragmenter import Fragment, Fragmenter, split
from .manifest import load_manifest, save_manifest
from .retriever import RetrievalCoordinator, RetrievalResult, retrieve
from .uploader import UploadCoordinator

__version__ = "0.1.0"
