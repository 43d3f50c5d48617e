import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

from .config import DEFAULT_UPLOAD_WORKERS, TransferConfig
from .errors import ConfigurationError, NoNodesAvailable, TransferError, UploadError
from .storage.base import StorageNode, Uploader

logger = logging.getLogger(__name__)


class UploadCoordinator:
    """Uploads fragments through a fixed-size worker pool.

    Uploads succeed or fail as a set: every worker runs to completion, and
    if any of them failed the first error is raised and no hashes are
    returned.
    """

    def __init__(
        self,
        uploader: Uploader,
        nodes: Sequence[StorageNode],
        max_workers: int = DEFAULT_UPLOAD_WORKERS,
    ) -> None:
        if max_workers <= 0:
            raise ConfigurationError(f"upload workers must be positive, got {max_workers}")
        self.uploader = uploader
        self.nodes = list(nodes)
        self.max_workers = max_workers

    @classmethod
    def from_config(cls, uploader: Uploader, nodes: Sequence[StorageNode], config: TransferConfig) -> "UploadCoordinator":
        return cls(uploader, nodes, max_workers=config.max_workers)

    def upload(self, fragment_paths: Sequence[str]) -> Dict[str, str]:
        """Upload every fragment and return fragment_path -> root hash."""
        if not self.nodes:
            raise NoNodesAvailable("No storage nodes available for upload")

        paths: List[str] = list(dict.fromkeys(fragment_paths))
        root_hashes: Dict[str, str] = {}
        lock = threading.Lock()

        def upload_one(index: int, path: str) -> None:
            logger.info("  uploading fragment %d: %s", index, path)
            try:
                receipt = self.uploader.upload_file(path)
            except (TransferError, OSError) as e:
                raise UploadError(f"Upload of fragment {path} failed: {e}") from e

            if not receipt.root_hash:
                raise UploadError(f"Backend returned no root hash for fragment {path}")

            with lock:
                root_hashes[path] = receipt.root_hash

            logger.info(
                "  fragment %d uploaded, root hash: %s, tx hash: %s",
                index,
                receipt.root_hash,
                receipt.tx_hash or "-",
            )

        first_error: Optional[BaseException] = None
        workers = min(self.max_workers, len(paths)) or 1
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fragment-upload") as executor:
            futures = [executor.submit(upload_one, i, path) for i, path in enumerate(paths)]
            for future in as_completed(futures):
                error = future.exception()
                if error is not None:
                    logger.error("%s", error)
                    if first_error is None:
                        first_error = error

        if first_error is not None:
            raise first_error

        missing = [path for path in paths if not root_hashes.get(path)]
        if missing:
            raise UploadError(f"No root hash recorded for {', '.join(missing)}")

        return root_hashes
