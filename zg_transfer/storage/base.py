from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class StorageNode:
    """An endpoint of the storage network. Treated opaquely by the coordinators."""

    url: str


@dataclass(frozen=True)
class UploadReceipt:
    root_hash: str
    tx_hash: str = ""


class StorageSession(ABC):
    @abstractmethod
    def select_nodes(self) -> List[StorageNode]:
        """Return the nodes to talk to for this run; fail if none is reachable"""
        pass

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Uploader(ABC):
    @abstractmethod
    def upload_file(self, path: str) -> UploadReceipt:
        """Upload a file and return its root hash and transaction id"""
        pass


class Downloader(ABC):
    @abstractmethod
    def download(self, root_hash: str, dest_path: str, verify_proof: bool = False) -> None:
        """Fetch the bytes addressed by root_hash into dest_path"""
        pass


class StorageBackend(ABC):
    name: str = ""

    @abstractmethod
    def open_session(self) -> StorageSession:
        pass

    @abstractmethod
    def uploader(self, session: StorageSession, nodes: Sequence[StorageNode]) -> Uploader:
        pass

    @abstractmethod
    def downloader(self, nodes: Sequence[StorageNode]) -> Downloader:
        pass
