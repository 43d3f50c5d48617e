"""Content-addressed directory store.

Blobs live under ``<store>/<h[0:2]>/<h>`` where ``h`` is the hex SHA-256 of
the bytes. Root hashes are handed out ``0x``-prefixed, like 0G roots, so
manifests written against either backend look the same.
"""

import hashlib
import logging
import os
import re
import shutil
import tempfile
from typing import List, Sequence

from ..errors import BackendError, NoNodesAvailable
from .base import Downloader, StorageBackend, StorageNode, StorageSession, UploadReceipt, Uploader

logger = logging.getLogger(__name__)

BLOCK_SIZE = 1024 * 1024
_DIGEST = re.compile(r"[0-9a-f]{64}")


def sha256_file(path: str) -> str:
    m = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(BLOCK_SIZE), b""):
            m.update(block)
    return m.hexdigest()


def hash_digest(root_hash: str) -> str:
    """Bare lowercase SHA-256 hex of a root hash, with or without the 0x prefix."""
    digest = root_hash[2:] if root_hash.startswith("0x") else root_hash
    digest = digest.lower()
    if not _DIGEST.fullmatch(digest):
        raise BackendError(f"Invalid root hash {root_hash!r}")
    return digest


def blob_path(store_dir: str, root_hash: str) -> str:
    digest = hash_digest(root_hash)
    return os.path.join(store_dir, digest[:2], digest)


class LocalSession(StorageSession):
    def __init__(self, store_dir: str) -> None:
        self.store_dir = store_dir

    def select_nodes(self) -> List[StorageNode]:
        try:
            os.makedirs(self.store_dir, exist_ok=True)
        except OSError as e:
            raise NoNodesAvailable(f"Local store {self.store_dir} unavailable: {e}") from e
        return [StorageNode(url=self.store_dir)]


class LocalUploader(Uploader):
    def __init__(self, nodes: Sequence[StorageNode]) -> None:
        self.nodes = list(nodes)

    def upload_file(self, path: str) -> UploadReceipt:
        try:
            digest = sha256_file(path)
        except OSError as e:
            raise BackendError(f"Cannot read {path}: {e}") from e

        root_hash = "0x" + digest
        for node in self.nodes:
            target = blob_path(node.url, root_hash)
            if os.path.exists(target):
                continue
            try:
                os.makedirs(os.path.dirname(target), exist_ok=True)
                fd, tmp = tempfile.mkstemp(dir=os.path.dirname(target), suffix=".part")
                os.close(fd)
                shutil.copyfile(path, tmp)
                os.replace(tmp, target)
            except OSError as e:
                raise BackendError(f"Cannot store {path} in {node.url}: {e}") from e

        logger.debug("stored %s as %s", path, root_hash)
        return UploadReceipt(root_hash=root_hash)


class LocalDownloader(Downloader):
    def __init__(self, nodes: Sequence[StorageNode]) -> None:
        self.nodes = list(nodes)

    def download(self, root_hash: str, dest_path: str, verify_proof: bool = False) -> None:
        for node in self.nodes:
            source = blob_path(node.url, root_hash)
            if os.path.exists(source):
                break
        else:
            raise BackendError(f"{root_hash} not found in any node")

        try:
            shutil.copyfile(source, dest_path)
        except OSError as e:
            raise BackendError(f"Cannot fetch {root_hash}: {e}") from e

        # "proof" for a local blob is just re-hashing what was copied
        if verify_proof and sha256_file(dest_path) != hash_digest(root_hash):
            raise BackendError(f"Content of {root_hash} does not match its hash")


class LocalStorage(StorageBackend):
    name = "local"

    def __init__(self, store_dir: str) -> None:
        self.store_dir = store_dir

    def open_session(self) -> LocalSession:
        return LocalSession(self.store_dir)

    def uploader(self, session: StorageSession, nodes: Sequence[StorageNode]) -> LocalUploader:
        return LocalUploader(nodes)

    def downloader(self, nodes: Sequence[StorageNode]) -> LocalDownloader:
        return LocalDownloader(nodes)
