import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .errors import ConfigurationError

# 400 MiB fragments, ten of them: a 4 GiB file in one run.
DEFAULT_FRAGMENT_SIZE = 400 * 1024 * 1024
DEFAULT_MAX_FRAGMENTS = 10
DEFAULT_UPLOAD_WORKERS = 4

MANIFEST_NAME = "hash_map.txt"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class TransferConfig:
    input_file: str = "largefile.dat"
    output_dir: str = "./chunks"

    # 0G endpoints and signing key (64 hex characters, 0x prefix optional)
    evm_rpc: str = "https://evmrpc-testnet.0g.ai/"
    indexer_rpc: str = "https://indexer-storage-testnet-turbo.0g.ai/"
    private_key: Optional[str] = None
    cli: str = "0g-storage-client"
    command_timeout: Optional[float] = None
    verify_proof: bool = False

    fragment_size: int = DEFAULT_FRAGMENT_SIZE
    max_fragments: int = DEFAULT_MAX_FRAGMENTS
    max_workers: int = DEFAULT_UPLOAD_WORKERS
    manifest_strict: bool = False

    backend: str = "0g"
    local_store_dir: str = "./store"

    def __post_init__(self) -> None:
        if self.fragment_size <= 0:
            raise ConfigurationError(f"fragment size must be positive, got {self.fragment_size}")
        if self.max_fragments <= 0:
            raise ConfigurationError(f"max fragments must be positive, got {self.max_fragments}")
        if self.max_workers <= 0:
            raise ConfigurationError(f"upload workers must be positive, got {self.max_workers}")

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.output_dir, MANIFEST_NAME)

    @property
    def reconstructed_path(self) -> str:
        return self.input_file + ".reconstructed"

    def with_overrides(self, **overrides) -> "TransferConfig":
        """Copy with every non-None override applied (used for CLI flags)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_env(cls, env_path: Optional[Union[str, Path]] = None) -> "TransferConfig":
        """Build a config from environment variables, loading a .env file first.

        Without an explicit path the .env in the working directory is used,
        falling back to the one next to the package.
        """
        if env_path is None:
            env_path = Path.cwd() / ".env"
            if not env_path.exists():
                env_path = Path(__file__).parent.parent / ".env"
        load_dotenv(env_path)

        return cls(
            input_file=os.getenv("INPUT_FILE", cls.input_file),
            output_dir=os.getenv("OUTPUT_DIR", cls.output_dir),
            evm_rpc=os.getenv("ZEROG_RPC", cls.evm_rpc),
            indexer_rpc=os.getenv("ZEROG_INDEXER", cls.indexer_rpc),
            private_key=os.getenv("ZEROG_PRIVATE_KEY") or None,
            cli=os.getenv("ZEROG_CLI", cls.cli),
            command_timeout=_env_float("ZEROG_TIMEOUT"),
            verify_proof=_env_bool("ZEROG_VERIFY_PROOF", False),
            fragment_size=_env_int("FRAGMENT_SIZE", DEFAULT_FRAGMENT_SIZE),
            max_fragments=_env_int("MAX_FRAGMENTS", DEFAULT_MAX_FRAGMENTS),
            max_workers=_env_int("UPLOAD_WORKERS", DEFAULT_UPLOAD_WORKERS),
            manifest_strict=_env_bool("MANIFEST_STRICT", False),
            backend=os.getenv("STORAGE_BACKEND", cls.backend).lower(),
            local_store_dir=os.getenv("LOCAL_STORE_DIR", cls.local_store_dir),
        )
