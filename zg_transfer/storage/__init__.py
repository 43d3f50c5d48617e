from .base import (
    Downloader,
    StorageBackend,
    StorageNode,
    StorageSession,
    UploadReceipt,
    Uploader,
)
from .factory import get_storage_backend

__all__ = [
    "Downloader",
    "StorageBackend",
    "StorageNode",
    "StorageSession",
    "UploadReceipt",
    "Uploader",
    "get_storage_backend",
]
