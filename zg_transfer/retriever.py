import logging
import os
from dataclasses import dataclass
from typing import Optional

from .config import TransferConfig
from .errors import DownloadError, MissingHashError, ReconstructionError, TransferError
from .manifest import load_manifest
from .storage.base import Downloader

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".downloaded"


@dataclass(frozen=True)
class RetrievalResult:
    fragments: int
    bytes_written: int


class RetrievalCoordinator:
    """Rebuilds a file from its manifest, one fragment at a time.

    Fragments are fetched in sorted path order whatever the order of the
    manifest on disk. The first failure stops the run and leaves the
    partially written output in place.
    """

    def __init__(
        self,
        downloader: Downloader,
        verify_proof: bool = False,
        strict_manifest: bool = False,
        temp_dir: Optional[str] = None,
    ) -> None:
        self.downloader = downloader
        self.verify_proof = verify_proof
        self.strict_manifest = strict_manifest
        self.temp_dir = temp_dir

    @classmethod
    def from_config(cls, downloader: Downloader, config: TransferConfig) -> "RetrievalCoordinator":
        return cls(downloader, verify_proof=config.verify_proof, strict_manifest=config.manifest_strict)

    def retrieve(self, manifest_path: str, output_path: str) -> RetrievalResult:
        hash_map = load_manifest(manifest_path, strict=self.strict_manifest)
        ordered = sorted(hash_map)

        temp_dir = self.temp_dir or os.path.dirname(output_path) or "."
        try:
            os.makedirs(temp_dir, exist_ok=True)
            out = open(output_path, "wb")
        except OSError as e:
            raise ReconstructionError(f"Cannot create output file {output_path}: {e}") from e

        written = 0
        with out:
            for index, fragment_path in enumerate(ordered):
                root_hash = hash_map[fragment_path]
                if not root_hash:
                    raise MissingHashError(f"Fragment {fragment_path} has no root hash in {manifest_path}")

                logger.info("  downloading fragment %d: %s (root hash: %s)", index, fragment_path, root_hash)
                temp_path = os.path.join(temp_dir, os.path.basename(fragment_path) + TEMP_SUFFIX)
                try:
                    size = self._fetch_into(root_hash, fragment_path, temp_path, out)
                finally:
                    if os.path.exists(temp_path):
                        os.remove(temp_path)

                written += size
                logger.info("  fragment %d downloaded and merged (%d bytes)", index, size)

        return RetrievalResult(fragments=len(ordered), bytes_written=written)

    def _fetch_into(self, root_hash: str, fragment_path: str, temp_path: str, out) -> int:
        # the 0G client refuses to overwrite an existing file
        if os.path.exists(temp_path):
            os.remove(temp_path)

        try:
            self.downloader.download(root_hash, temp_path, self.verify_proof)
        except (TransferError, OSError) as e:
            raise DownloadError(f"Download of fragment {fragment_path} failed: {e}") from e

        try:
            with open(temp_path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise ReconstructionError(f"Cannot read downloaded fragment {temp_path}: {e}") from e

        try:
            out.write(data)
        except OSError as e:
            raise ReconstructionError(f"Cannot write fragment {fragment_path} to output: {e}") from e

        return len(data)


def retrieve(downloader: Downloader, manifest_path: str, output_path: str, **options) -> RetrievalResult:
    return RetrievalCoordinator(downloader, **options).retrieve(manifest_path, output_path)
