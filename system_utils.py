"""
System utilities for logging and diagnostics

This module provides the logging setup shared by every component of the
FizzBuzz server, plus a psutil-based resource snapshot logged around startup
and shutdown so leftover listeners or tasks show up in debug logs.
"""

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import psutil

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DETAILED_FORMAT = (
    "%(asctime)s [%(levelname)8s] %(name)s.%(funcName)s:%(lineno)d - %(message)s"
)


class MicrosecondFormatter(logging.Formatter):
    """Timestamps with millisecond precision"""

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created)
        return dt.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def setup_logging(
    level: int = logging.INFO, log_file: Path | None = None
) -> logging.Logger:
    """Configure the root logger once for the whole process

    Console output uses the short format; when a log file is given it gets
    the detailed format with module, function and line number.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Prevent duplicate handlers
    if root.handlers:
        root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(MicrosecondFormatter(CONSOLE_FORMAT))
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(MicrosecondFormatter(DETAILED_FORMAT))
        root.addHandler(file_handler)

    # uvicorn logs through its own loggers; route them through ours
    for name in ("uvicorn", "uvicorn.error"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    root.debug(f"Log level set to: {logging.getLevelName(level)}")
    if log_file is not None:
        root.debug(f"Log file: {log_file}")

    return root


@dataclass
class ResourceSnapshot:
    """Resources held by the server process at one point in time"""

    pid: int
    memory_rss_mb: float
    num_threads: int
    num_fds: int | None
    listening_ports: list[int] = field(default_factory=list)
    open_connections: int = 0
    # None outside a running event loop
    asyncio_tasks: int | None = None


def take_resource_snapshot() -> ResourceSnapshot:
    """Collect a ResourceSnapshot for the current process

    Raises:
        psutil.Error: process information is not accessible
    """
    process = psutil.Process()
    connections = process.net_connections(kind="inet")
    listening = sorted(
        {c.laddr.port for c in connections if c.status == psutil.CONN_LISTEN}
    )

    try:
        asyncio_tasks = len(asyncio.all_tasks())
    except RuntimeError:
        asyncio_tasks = None

    return ResourceSnapshot(
        pid=process.pid,
        memory_rss_mb=process.memory_info().rss / 1024 / 1024,
        num_threads=process.num_threads(),
        num_fds=process.num_fds() if hasattr(process, "num_fds") else None,
        listening_ports=listening,
        open_connections=len(connections) - len(listening),
        asyncio_tasks=asyncio_tasks,
    )


def log_system_state(logger, phase):
    """Log a resource snapshot at DEBUG level, labelled with ``phase``"""
    if not logger.isEnabledFor(logging.DEBUG):
        return

    try:
        snapshot = take_resource_snapshot()
    except (psutil.Error, OSError) as e:
        logger.warning(f"Could not collect resources for {phase}: {e}")
        return

    logger.debug(
        f"[{phase}] pid={snapshot.pid} rss={snapshot.memory_rss_mb:.1f}MB "
        f"threads={snapshot.num_threads} fds={snapshot.num_fds} "
        f"tasks={snapshot.asyncio_tasks}"
    )
    logger.debug(
        f"[{phase}] listening={snapshot.listening_ports or 'none'} "
        f"connections={snapshot.open_connections}"
    )
