"""Fragment manifest: one ``fragment_path|content_hash`` line per fragment.

The format is a flat text table on purpose, so it can be read and appended
to by hand. There is no header, no checksum and no escaping, which is why
paths containing the delimiter are refused.
"""

import logging
import os
import tempfile
from typing import Dict, Iterable, Mapping

from .errors import ManifestError, TransferIOError

logger = logging.getLogger(__name__)

DELIMITER = "|"


def save_manifest(path: str, fragment_paths: Iterable[str], hash_map: Mapping[str, str]) -> None:
    """Write the manifest sorted by fragment path, replacing any existing file.

    A fragment missing from hash_map gets an empty hash field; retrieval
    rejects such entries later.
    """
    lines = []
    for fragment_path in sorted(fragment_paths):
        if DELIMITER in fragment_path or "\n" in fragment_path:
            raise ManifestError(f"Fragment path {fragment_path!r} cannot be stored in a manifest")
        line = f"{fragment_path}{DELIMITER}{hash_map.get(fragment_path, '')}\n"
        try:
            line.encode("utf-8")
        except UnicodeError as e:
            raise ManifestError(f"Fragment path {fragment_path!r} is not valid UTF-8: {e}") from e
        lines.append(line)

    directory = os.path.dirname(path) or "."
    tmp = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".hash_map.", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.writelines(lines)
        os.replace(tmp, path)
    except (OSError, UnicodeError) as e:
        if tmp is not None and os.path.exists(tmp):
            os.remove(tmp)
        raise TransferIOError(f"Cannot write manifest {path}: {e}") from e

    logger.info("Manifest saved to %s (%d entries)", path, len(lines))


def load_manifest(path: str, strict: bool = False) -> Dict[str, str]:
    """Read a manifest back into a fragment_path -> content_hash dict.

    Lines that are not exactly two delimiter-separated fields are skipped
    with a warning, or rejected when strict is set.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e

    hash_map = {}
    for lineno, line in enumerate(data.split("\n"), start=1):
        line = line.strip()
        if not line:
            continue
        parts = line.split(DELIMITER)
        if len(parts) != 2:
            if strict:
                raise ManifestError(f"Malformed manifest line {lineno} in {path}: {line!r}")
            logger.warning("Skipping malformed manifest line %d in %s: %r", lineno, path, line)
            continue
        hash_map[parts[0]] = parts[1]

    return hash_map
