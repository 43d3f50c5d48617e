"""Tests for the 0G storage backend, with the client binary and indexer mocked."""

import subprocess

import pytest

from zg_transfer.config import TransferConfig
from zg_transfer.errors import BackendError, ConfigurationError, NoNodesAvailable
from zg_transfer.storage import zero_g
from zg_transfer.storage.base import StorageNode
from zg_transfer.storage.factory import get_storage_backend
from zg_transfer.storage.zero_g import (
    ZeroGDownloader,
    ZeroGSession,
    ZeroGStorage,
    ZeroGUploader,
    parse_root_hash,
    parse_tx_hash,
)

# Hardhat dev account #0
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
ROOT = "0x09d2ab" + "0" * 58
NODES = [StorageNode(url="http://10.0.0.1:5678"), StorageNode(url="http://10.0.0.2:5678")]

UPLOAD_LOG = (
    "INFO[2024-11-20T10:00:00Z] Data prepared to upload  chunks=1 segments=1 size=100\n"
    "INFO[2024-11-20T10:00:01Z] Succeeded to send transaction to append log entry  "
    "eth_hash=0x55 txHash=0x" + "cd" * 32 + "\n"
    f"INFO[2024-11-20T10:00:05Z] file uploaded, root = {ROOT}\n"
)


class FakeRun:
    def __init__(self, returncode=0, stdout="", stderr="", exc=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.exc = exc
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.exc is not None:
            raise self.exc
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


class FakeProvider:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.requests = []

    def make_request(self, method, params):
        self.requests.append((method, params))
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture
def session():
    return ZeroGSession("http://127.0.0.1:8545", "http://indexer.test/", private_key=PRIVATE_KEY, timeout=30)


def test_parse_root_hash_prefers_uploaded_line():
    output = "INFO root = 0x1111\n" + UPLOAD_LOG
    assert parse_root_hash(output) == ROOT


def test_parse_root_hash_fallback_and_missing():
    assert parse_root_hash("something root=0xabc") == "0xabc"
    assert parse_root_hash("nothing here") is None


def test_parse_tx_hash():
    assert parse_tx_hash(UPLOAD_LOG) == "0x" + "cd" * 32
    assert parse_tx_hash("no tx") == ""


def test_session_derives_account_and_strips_prefix(session):
    assert session.account.address == ADDRESS
    assert session.private_key == PRIVATE_KEY[2:]


def test_session_rejects_bad_key():
    with pytest.raises(ConfigurationError, match="Invalid 0G private key"):
        ZeroGSession("http://127.0.0.1:8545", "http://indexer.test/", private_key="not-a-key")


def test_select_nodes_prefers_trusted(session, monkeypatch):
    provider = FakeProvider(response={
        "jsonrpc": "2.0",
        "id": 1,
        "result": {
            "trusted": [{"url": "http://10.0.0.1:5678"}, {"url": "http://10.0.0.2:5678"}],
            "discovered": [{"url": "http://10.0.0.9:5678"}],
        },
    })
    monkeypatch.setattr(session, "_indexer_provider", lambda: provider)

    assert session.select_nodes() == NODES
    assert provider.requests == [("indexer_getShardedNodes", [])]


def test_select_nodes_falls_back_to_discovered(session, monkeypatch):
    provider = FakeProvider(response={"result": {"trusted": None, "discovered": [{"url": "http://10.0.0.9:5678"}]}})
    monkeypatch.setattr(session, "_indexer_provider", lambda: provider)

    assert session.select_nodes() == [StorageNode(url="http://10.0.0.9:5678")]


def test_select_nodes_empty(session, monkeypatch):
    monkeypatch.setattr(session, "_indexer_provider", lambda: FakeProvider(response={"result": {}}))

    with pytest.raises(NoNodesAvailable):
        session.select_nodes()


def test_select_nodes_rpc_error(session, monkeypatch):
    provider = FakeProvider(response={"error": {"code": -32000, "message": "boom"}})
    monkeypatch.setattr(session, "_indexer_provider", lambda: provider)

    with pytest.raises(BackendError, match="Indexer error"):
        session.select_nodes()


def test_select_nodes_unreachable(session, monkeypatch):
    monkeypatch.setattr(session, "_indexer_provider", lambda: FakeProvider(exc=ConnectionError("refused")))

    with pytest.raises(BackendError, match="unreachable"):
        session.select_nodes()


def test_upload_builds_command_and_returns_receipt(session, monkeypatch):
    run = FakeRun(stderr=UPLOAD_LOG)
    monkeypatch.setattr(zero_g.subprocess, "run", run)

    receipt = ZeroGUploader("0g-storage-client", session, NODES).upload_file("chunks/chunk_000.dat")

    assert receipt.root_hash == ROOT
    assert receipt.tx_hash == "0x" + "cd" * 32
    cmd, kwargs = run.calls[0]
    assert cmd == [
        "0g-storage-client", "upload",
        "--url", "http://127.0.0.1:8545",
        "--key", PRIVATE_KEY[2:],
        "--node", "http://10.0.0.1:5678,http://10.0.0.2:5678",
        "--file", "chunks/chunk_000.dat",
    ]
    assert kwargs["timeout"] == 30


def test_upload_nonzero_exit(session, monkeypatch):
    monkeypatch.setattr(zero_g.subprocess, "run", FakeRun(returncode=1, stderr="ERRO insufficient balance"))

    with pytest.raises(BackendError, match="insufficient balance"):
        ZeroGUploader("0g-storage-client", session, NODES).upload_file("chunk_000.dat")


def test_upload_without_root_in_output(session, monkeypatch):
    monkeypatch.setattr(zero_g.subprocess, "run", FakeRun(stderr="INFO done\n"))

    with pytest.raises(BackendError, match="root hash"):
        ZeroGUploader("0g-storage-client", session, NODES).upload_file("chunk_000.dat")


def test_upload_timeout(session, monkeypatch):
    run = FakeRun(exc=subprocess.TimeoutExpired(cmd="0g-storage-client", timeout=30))
    monkeypatch.setattr(zero_g.subprocess, "run", run)

    with pytest.raises(BackendError, match="timed out"):
        ZeroGUploader("0g-storage-client", session, NODES).upload_file("chunk_000.dat")


def test_undecodable_client_output(session, monkeypatch):
    error = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
    monkeypatch.setattr(zero_g.subprocess, "run", FakeRun(exc=error))

    with pytest.raises(BackendError, match="undecodable output"):
        ZeroGUploader("0g-storage-client", session, NODES).upload_file("chunk_000.dat")


def test_missing_client_binary(session, monkeypatch):
    monkeypatch.setattr(zero_g.subprocess, "run", FakeRun(exc=FileNotFoundError("no such file")))

    with pytest.raises(ConfigurationError, match="not found"):
        ZeroGUploader("/opt/missing-client", session, NODES).upload_file("chunk_000.dat")


def test_uploader_requires_key():
    read_only = ZeroGSession("http://127.0.0.1:8545", "http://indexer.test/")

    with pytest.raises(ConfigurationError, match="ZEROG_PRIVATE_KEY"):
        ZeroGUploader("0g-storage-client", read_only, NODES)


@pytest.mark.parametrize("verify_proof", [False, True])
def test_download_command(monkeypatch, verify_proof):
    run = FakeRun()
    monkeypatch.setattr(zero_g.subprocess, "run", run)

    ZeroGDownloader("0g-storage-client", NODES, timeout=10).download(ROOT, "out/chunk_000.dat.downloaded", verify_proof)

    cmd, kwargs = run.calls[0]
    assert cmd[:2] == ["0g-storage-client", "download"]
    assert cmd[cmd.index("--root") + 1] == ROOT
    assert cmd[cmd.index("--file") + 1] == "out/chunk_000.dat.downloaded"
    assert ("--proof" in cmd) is verify_proof
    assert kwargs["timeout"] == 10


def test_download_failure(monkeypatch):
    monkeypatch.setattr(zero_g.subprocess, "run", FakeRun(returncode=2, stderr="file not found on nodes"))

    with pytest.raises(BackendError, match="download failed"):
        ZeroGDownloader("0g-storage-client", NODES).download(ROOT, "dest")


def test_factory_builds_zero_g_backend():
    config = TransferConfig(backend="zero-g", private_key=PRIVATE_KEY, cli="/usr/local/bin/0g-storage-client")

    backend = get_storage_backend(config)

    assert isinstance(backend, ZeroGStorage)
    assert backend.downloader(NODES).cli == "/usr/local/bin/0g-storage-client"


def test_backend_uploader_checks_connection(session, monkeypatch):
    backend = ZeroGStorage(TransferConfig(private_key=PRIVATE_KEY))
    monkeypatch.setattr(session.w3, "is_connected", lambda: False)

    with pytest.raises(ConfigurationError, match="not connected"):
        backend.uploader(session, NODES)
