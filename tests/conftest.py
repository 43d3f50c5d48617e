"""Shared pytest fixtures for all tests."""

import logging
import os

import pytest

from tests.fakes import FakeBackend
from zg_transfer.storage.local import LocalStorage


@pytest.fixture(autouse=True)
def reset_package_logger():
    """setup_logging() stops propagation; undo it so caplog sees every record."""
    yield
    logger = logging.getLogger("zg_transfer")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "INPUT_FILE", "OUTPUT_DIR", "ZEROG_RPC", "ZEROG_INDEXER", "ZEROG_PRIVATE_KEY",
        "ZEROG_CLI", "ZEROG_TIMEOUT", "ZEROG_VERIFY_PROOF", "FRAGMENT_SIZE", "MAX_FRAGMENTS",
        "UPLOAD_WORKERS", "MANIFEST_STRICT", "STORAGE_BACKEND", "LOCAL_STORE_DIR", "LOG_LEVEL",
    ):
        # set first so monkeypatch also undoes whatever load_dotenv adds
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def make_file(tmp_path):
    """
    Factory writing a file of random bytes.

    Returns:
        Callable (size, name='source.bin') -> path string
    """
    def _make(size, name="source.bin"):
        path = tmp_path / name
        path.write_bytes(os.urandom(size))
        return str(path)
    return _make


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def local_backend(tmp_path):
    return LocalStorage(str(tmp_path / "store"))
