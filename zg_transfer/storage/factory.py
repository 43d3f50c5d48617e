from ..config import TransferConfig
from ..errors import ConfigurationError
from .base import StorageBackend
from .local import LocalStorage
from .zero_g import ZeroGStorage


def get_storage_backend(config: TransferConfig) -> StorageBackend:
    backend = config.backend.lower()

    if backend == "0g" or backend == "zero-g":
        return ZeroGStorage(config)
    elif backend == "local":
        return LocalStorage(config.local_store_dir)
    else:
        raise ConfigurationError(f"Unknown storage backend: {backend}")
