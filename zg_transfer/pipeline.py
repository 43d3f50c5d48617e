import hashlib
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import TransferConfig
from .errors import NoNodesAvailable, TransferError
from .fragmenter import Fragmenter
from .manifest import save_manifest
from .retriever import RetrievalCoordinator, RetrievalResult
from .storage.base import StorageBackend
from .storage.factory import get_storage_backend
from .uploader import UploadCoordinator

logger = logging.getLogger(__name__)

DIGEST_BLOCK = 4 * 1024 * 1024


@dataclass
class RunReport:
    fragments: List[str]
    root_hashes: Dict[str, str]
    retrieval: RetrievalResult
    verified: bool


@contextmanager
def phase(name: str, title: str):
    """Log a phase banner and tag any TransferError escaping it with the phase name."""
    logger.info(title)
    try:
        yield
    except TransferError as e:
        if e.phase is None:
            e.phase = name
        raise


def file_digest(path: str) -> str:
    m = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(DIGEST_BLOCK), b""):
            m.update(block)
    return m.hexdigest()


def files_match(a: str, b: str) -> bool:
    return file_digest(a) == file_digest(b)


def split_phase(config: TransferConfig) -> List[str]:
    with phase("split", "Step 1: splitting input file..."):
        fragments = Fragmenter.from_config(config).split(config.input_file, config.output_dir)
    logger.info("Split complete, %d fragments", len(fragments))
    return fragments


def upload_phase(
    config: TransferConfig,
    fragments: List[str],
    backend: Optional[StorageBackend] = None,
    manifest_path: Optional[str] = None,
) -> Dict[str, str]:
    """Upload fragments and persist the manifest. Nothing is written unless every upload succeeded."""
    backend = backend or get_storage_backend(config)
    manifest_path = manifest_path or config.manifest_path

    with phase("upload", "Step 2: uploading fragments..."):
        with backend.open_session() as session:
            nodes = session.select_nodes()
            if not nodes:
                raise NoNodesAvailable(f"{backend.name} backend returned no storage nodes")
            logger.info("Selected %d nodes", len(nodes))

            uploader = backend.uploader(session, nodes)
            root_hashes = UploadCoordinator.from_config(uploader, nodes, config).upload(fragments)

        logger.info("Upload complete, %d fragments uploaded", len(root_hashes))
        save_manifest(manifest_path, fragments, root_hashes)

    return root_hashes


def download_phase(
    config: TransferConfig,
    backend: Optional[StorageBackend] = None,
    manifest_path: Optional[str] = None,
    output_path: Optional[str] = None,
) -> RetrievalResult:
    backend = backend or get_storage_backend(config)
    manifest_path = manifest_path or config.manifest_path
    output_path = output_path or config.reconstructed_path

    with phase("download", "Step 3: downloading and merging fragments..."):
        with backend.open_session() as session:
            nodes = session.select_nodes()
            if not nodes:
                raise NoNodesAvailable(f"{backend.name} backend returned no storage nodes")
            downloader = backend.downloader(nodes)
            result = RetrievalCoordinator.from_config(downloader, config).retrieve(manifest_path, output_path)

    logger.info("Download complete, output file: %s (%d bytes)", output_path, result.bytes_written)
    return result


def run_all(
    config: TransferConfig,
    backend: Optional[StorageBackend] = None,
    manifest_path: Optional[str] = None,
    output_path: Optional[str] = None,
) -> RunReport:
    backend = backend or get_storage_backend(config)
    output_path = output_path or config.reconstructed_path

    fragments = split_phase(config)
    root_hashes = upload_phase(config, fragments, backend, manifest_path=manifest_path)
    result = download_phase(config, backend, manifest_path=manifest_path, output_path=output_path)

    verified = files_match(config.input_file, output_path)
    if verified:
        logger.info("Reconstructed file matches %s", config.input_file)
    else:
        logger.warning("Reconstructed file %s differs from %s", output_path, config.input_file)

    return RunReport(fragments=fragments, root_hashes=root_hashes, retrieval=result, verified=verified)
