import logging
import re
import subprocess
from typing import List, Optional, Sequence

from web3 import Web3

from ..config import TransferConfig
from ..errors import BackendError, ConfigurationError, NoNodesAvailable
from .base import Downloader, StorageBackend, StorageNode, StorageSession, UploadReceipt, Uploader

logger = logging.getLogger(__name__)

# Example line written by the client once the upload is finalized:
# INFO ... file uploaded, root = 0x09d2ab...
_ROOT_UPLOADED = re.compile(r"file uploaded,?\s*root\s*=\s*(0x[0-9a-fA-F]+)")
_ROOT_ANY = re.compile(r"root\s*=\s*(0x[0-9a-fA-F]+)")
_TX_HASH = re.compile(r"tx[_ ]?hash\s*[=:]\s*(0x[0-9a-fA-F]+)", re.IGNORECASE)


def parse_root_hash(output: str) -> Optional[str]:
    m = _ROOT_UPLOADED.search(output)
    if not m:
        # Fallback: any "root=0x..." in the log
        m = _ROOT_ANY.search(output)
    return m.group(1) if m else None


def parse_tx_hash(output: str) -> str:
    m = _TX_HASH.search(output)
    return m.group(1) if m else ""


def _node_arg(nodes: Sequence[StorageNode]) -> str:
    return ",".join(node.url for node in nodes)


def run_client(cmd: List[str], timeout: Optional[float]) -> subprocess.CompletedProcess:
    """Run a 0g-storage-client command, raising BackendError on any failure."""
    logger.debug("[0g] running %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise ConfigurationError(f"0G storage client not found: {cmd[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise BackendError(f"0G {cmd[1]} timed out after {timeout}s") from e
    except UnicodeDecodeError as e:
        raise BackendError(f"0G {cmd[1]} produced undecodable output: {e}") from e

    logger.debug("[0g stdout] %s", result.stdout)
    logger.debug("[0g stderr] %s", result.stderr)

    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip().splitlines()
        raise BackendError(
            f"0G {cmd[1]} failed with exit code {result.returncode}: {detail[-1] if detail else 'no output'}"
        )
    return result


class ZeroGSession(StorageSession):
    """Web3 connection plus indexer endpoint for one run.

    The private key is only needed to upload; a read-only session for
    downloads can be opened without one.
    """

    def __init__(
        self,
        rpc_url: str,
        indexer_url: str,
        private_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.indexer_url = indexer_url
        self.timeout = timeout
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))

        self.account = None
        self.private_key = None
        if private_key:
            try:
                self.account = self.w3.eth.account.from_key(private_key)
            except Exception as e:
                raise ConfigurationError(f"Invalid 0G private key: {e}") from e
            # the client expects the bare 64 hex characters
            self.private_key = private_key[2:] if private_key.startswith("0x") else private_key
            logger.info("[0g] signing as %s", self.account.address)

    def ensure_connected(self) -> None:
        if not self.w3.is_connected():
            raise ConfigurationError(f"Web3 not connected to {self.rpc_url}")

    def _indexer_provider(self):
        return Web3.HTTPProvider(self.indexer_url)

    def select_nodes(self) -> List[StorageNode]:
        try:
            response = self._indexer_provider().make_request("indexer_getShardedNodes", [])
        except (OSError, ValueError) as e:
            raise BackendError(f"Indexer {self.indexer_url} unreachable: {e}") from e

        if response.get("error"):
            raise BackendError(f"Indexer error: {response['error']}")

        result = response.get("result") or {}
        nodes = [StorageNode(url=n["url"]) for n in result.get("trusted") or [] if n.get("url")]
        if not nodes:
            nodes = [StorageNode(url=n["url"]) for n in result.get("discovered") or [] if n.get("url")]
        if not nodes:
            raise NoNodesAvailable(f"Indexer {self.indexer_url} returned no storage nodes")

        logger.info("[0g] selected %d nodes", len(nodes))
        return nodes


class ZeroGUploader(Uploader):
    def __init__(self, cli: str, session: ZeroGSession, nodes: Sequence[StorageNode]) -> None:
        if not session.private_key:
            raise ConfigurationError("ZEROG_PRIVATE_KEY must be set to upload")
        self.cli = cli
        self.session = session
        self.nodes = list(nodes)

    def upload_file(self, path: str) -> UploadReceipt:
        cmd = [
            self.cli,
            "upload",
            "--url", self.session.rpc_url,
            "--key", self.session.private_key,
            "--node", _node_arg(self.nodes),
            "--file", path,
        ]
        result = run_client(cmd, self.session.timeout)

        output = f"{result.stderr}\n{result.stdout}"
        root_hash = parse_root_hash(output)
        if not root_hash:
            raise BackendError(f"Could not extract 0G root hash for {path}")

        return UploadReceipt(root_hash=root_hash, tx_hash=parse_tx_hash(output))


class ZeroGDownloader(Downloader):
    def __init__(self, cli: str, nodes: Sequence[StorageNode], timeout: Optional[float] = None) -> None:
        self.cli = cli
        self.nodes = list(nodes)
        self.timeout = timeout

    def download(self, root_hash: str, dest_path: str, verify_proof: bool = False) -> None:
        cmd = [
            self.cli,
            "download",
            "--node", _node_arg(self.nodes),
            "--root", root_hash,
            "--file", dest_path,
        ]
        if verify_proof:
            cmd.append("--proof")
        run_client(cmd, self.timeout)


class ZeroGStorage(StorageBackend):
    name = "0g"

    def __init__(self, config: TransferConfig) -> None:
        self.config = config

    def open_session(self) -> ZeroGSession:
        return ZeroGSession(
            self.config.evm_rpc,
            self.config.indexer_rpc,
            private_key=self.config.private_key,
            timeout=self.config.command_timeout,
        )

    def uploader(self, session: ZeroGSession, nodes: Sequence[StorageNode]) -> ZeroGUploader:
        uploader = ZeroGUploader(self.config.cli, session, nodes)
        session.ensure_connected()
        return uploader

    def downloader(self, nodes: Sequence[StorageNode]) -> ZeroGDownloader:
        return ZeroGDownloader(self.config.cli, nodes, timeout=self.config.command_timeout)
