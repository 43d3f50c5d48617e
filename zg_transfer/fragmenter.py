import logging
import os
from dataclasses import dataclass
from typing import List

from .config import DEFAULT_MAX_FRAGMENTS, TransferConfig
from .errors import ConfigurationError, TransferIOError

logger = logging.getLogger(__name__)

FRAGMENT_NAME = "chunk_{index:03d}.dat"


@dataclass(frozen=True)
class Fragment:
    index: int
    path: str
    size: int


def fragment_name(index: int) -> str:
    return FRAGMENT_NAME.format(index=index)


def plan_fragments(total_size: int, fragment_size: int, max_fragments: int) -> List[int]:
    """Sizes of the fragments a file of total_size bytes is cut into.

    Every fragment is fragment_size bytes except the last, which takes the
    remainder. At most max_fragments are produced, so bytes beyond
    max_fragments * fragment_size are not captured.
    """
    sizes = []
    for index in range(max_fragments):
        remaining = total_size - index * fragment_size
        if remaining <= 0:
            break
        sizes.append(min(fragment_size, remaining))
    return sizes


def _read_exactly(f, view: memoryview) -> int:
    filled = 0
    while filled < len(view):
        n = f.readinto(view[filled:])
        if not n:
            break
        filled += n
    return filled


class Fragmenter:
    def __init__(self, fragment_size: int, max_fragments: int = DEFAULT_MAX_FRAGMENTS) -> None:
        if fragment_size <= 0:
            raise ConfigurationError(f"fragment size must be positive, got {fragment_size}")
        if max_fragments <= 0:
            raise ConfigurationError(f"max fragments must be positive, got {max_fragments}")
        self.fragment_size = fragment_size
        self.max_fragments = max_fragments

    @classmethod
    def from_config(cls, config: TransferConfig) -> "Fragmenter":
        return cls(config.fragment_size, config.max_fragments)

    def split(self, source_path: str, output_dir: str) -> List[str]:
        """Cut source_path into fragment files in output_dir, returned in index order."""
        return [fragment.path for fragment in self.split_fragments(source_path, output_dir)]

    def split_fragments(self, source_path: str, output_dir: str) -> List[Fragment]:
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise TransferIOError(f"Cannot create output directory {output_dir}: {e}") from e

        try:
            source = open(source_path, "rb")
        except OSError as e:
            raise TransferIOError(f"Cannot open input file {source_path}: {e}") from e

        with source:
            try:
                total_size = os.fstat(source.fileno()).st_size
            except OSError as e:
                raise TransferIOError(f"Cannot stat input file {source_path}: {e}") from e

            logger.info(
                "Input file %s: %d bytes (%.2f GB)", source_path, total_size, total_size / (1024 ** 3)
            )

            sizes = plan_fragments(total_size, self.fragment_size, self.max_fragments)
            dropped = total_size - sum(sizes)
            if dropped > 0:
                logger.warning(
                    "Input exceeds %d fragments of %d bytes; the last %d bytes are not captured",
                    self.max_fragments,
                    self.fragment_size,
                    dropped,
                )

            # one buffer for the whole run: memory is bounded by a single fragment
            buffer = bytearray(min(self.fragment_size, total_size) or 1)
            view = memoryview(buffer)

            fragments = []
            for index, size in enumerate(sizes):
                path = os.path.join(output_dir, fragment_name(index))
                chunk = view[:size]

                try:
                    read = _read_exactly(source, chunk)
                except OSError as e:
                    raise TransferIOError(f"Cannot read {source_path} for fragment {index}: {e}") from e
                if read != size:
                    raise TransferIOError(
                        f"Short read from {source_path} for fragment {index}: expected {size} bytes, got {read}"
                    )

                self._write_fragment(path, chunk)
                fragments.append(Fragment(index=index, path=path, size=size))
                logger.info("  fragment %d: %s (%d bytes)", index, path, size)

        return fragments

    @staticmethod
    def _write_fragment(path: str, data: memoryview) -> None:
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            # never leave a half-written fragment behind
            try:
                os.remove(path)
            except OSError:
                pass
            raise TransferIOError(f"Cannot write fragment {path}: {e}") from e


def split(
    source_path: str, output_dir: str, fragment_size: int, max_fragments: int = DEFAULT_MAX_FRAGMENTS
) -> List[str]:
    return Fragmenter(fragment_size, max_fragments).split(source_path, output_dir)
