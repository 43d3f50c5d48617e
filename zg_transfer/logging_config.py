import logging
import os
import re
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class SensitiveDataFilter(logging.Filter):
    """Mask signing keys in log records.

    The 0G backend logs the client command lines it runs, and those carry
    the private key after ``--key``.
    """

    PATTERNS = [
        (re.compile(r"(--key[=\s]+)(\S+)"), r"\1***MASKED***"),
        (re.compile(r"(private[_-]?key[\"']?\s*[:=]\s*[\"']?)([^\"'}\s,]+)", re.IGNORECASE), r"\1***MASKED***"),
        (re.compile(r"(secret[\"']?\s*[:=]\s*[\"']?)([^\"'}\s,]+)", re.IGNORECASE), r"\1***MASKED***"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._mask_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._mask_value(arg) for arg in record.args)

        return True

    def _mask_value(self, value):
        if isinstance(value, str):
            for pattern, replacement in self.PATTERNS:
                value = pattern.sub(replacement, value)
        return value


def setup_logging(component_name: str = "zg_transfer", log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure the stdout handler for a component's logger tree.

    Args:
        component_name: Root logger name, normally the package name
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to LOG_LEVEL env var or INFO

    Returns:
        The configured logger
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(SensitiveDataFilter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger
