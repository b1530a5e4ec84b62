"""Rotating log setup for updater and installer processes.

Both processes log under the "install_protocol" logger tree. Each process
writes its own file, derived from the configured log file and its role, so an
updater and the installer it launched never rotate the same file.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(bundle_identifier)s]: %(message)s"
ISO_8601 = "%Y-%m-%dT%H:%M:%S%z"


class BundleContextFilter(logging.Filter):
    """Stamps every record with the bundle identifier being installed."""

    def __init__(self, bundle_identifier: Optional[str]):
        super().__init__()
        self.bundle_identifier = bundle_identifier or "-"

    def filter(self, record: logging.LogRecord) -> bool:
        record.bundle_identifier = self.bundle_identifier
        return True


def role_log_file(log_file: str, role: str) -> Path:
    """Per-process log path: ./logs/install_protocol.log -> ./logs/install_protocol-installer.log"""
    path = Path(log_file)
    return path.with_name(f"{path.stem}-{role}{path.suffix or '.log'}")


def setup_logger(
    log_file: str,
    role: str,
    bundle_identifier: Optional[str] = None,
    name: str = "install_protocol",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 3,
    level: int = logging.INFO,
) -> logging.Logger:
    """Attach a rotating file handler and a console handler to the protocol logger.

    Args:
        log_file: Configured log file; the role is appended to its stem
        role: "installer" or "updater"
        bundle_identifier: Application being installed, stamped on every line
        name: Root of the logger tree to configure
        max_bytes: Max size before rotation
        backup_count: Number of rotated files to keep
        level: Logging level

    Returns:
        Configured logger
    """
    path = role_log_file(log_file, role)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # A second call in the same process keeps the first configuration
    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=ISO_8601)
    context = BundleContextFilter(bundle_identifier)
    handlers = [
        RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"),
        logging.StreamHandler(),
    ]
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context)
        logger.addHandler(handler)

    return logger
