"""Logging setup shared by the node runner and the CLI.

Records carry the instance id so that logs collected from several nodes can
be told apart. A per-attempt log file is opened on the durable volume once it
is mounted, so every startup attempt leaves its own trace behind.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_DIR_NAME = "LogFiles"


class _InstanceFilter(logging.Filter):
    def __init__(self, instance_id: str) -> None:
        super().__init__()
        self.instance_id = instance_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.instance_id = self.instance_id
        return True


def _format_string(component_name: str) -> str:
    return f"[%(asctime)s] [{component_name.upper()}] %(instance_id)s=> %(levelname)s - %(message)s"


def setup_logging(component_name: str, instance_id: str, level: str | int = logging.INFO) -> logging.Logger:
    """Configure the root logger for a node component.

    Args:
        component_name: Component identifier, e.g. 'rsn'
        instance_id: Node identity prepended to every record
        level: Logging level name or number
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_InstanceFilter(instance_id))
    handler.setFormatter(logging.Formatter(_format_string(component_name), datefmt=DATEFMT))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    logger = logging.getLogger(component_name)
    logger.info("%s logging initialized (level=%s)", component_name.upper(), logging.getLevelName(level))
    return logger


def attempt_log_name(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"Log_{now.strftime('%m_%d_%Y_%H_%M_%S')}.txt"


def open_attempt_log(
    volume_root: str,
    component_name: str,
    instance_id: str,
    now: datetime | None = None,
) -> tuple[str, logging.Handler]:
    """Create this attempt's log file under the volume and attach it to the root logger.

    Returns (log_file_path, handler) so the caller can detach it on shutdown.
    """
    log_dir = os.path.join(volume_root, LOG_DIR_NAME)
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, attempt_log_name(now))

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.addFilter(_InstanceFilter(instance_id))
    handler.setFormatter(logging.Formatter(_format_string(component_name), datefmt=DATEFMT))
    logging.getLogger().addHandler(handler)
    return path, handler
