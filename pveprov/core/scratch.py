"""Scoped scratch directory for downloaded artifacts.

The directory is removed on every exit path: normal return, exceptions,
Ctrl-C, and SIGTERM/SIGHUP (which are turned into SystemExit while the
scope is active so the cleanup in ``finally`` still runs).
"""
import shutil
import signal
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pveprov.core.logger import get_logger

logger = get_logger(__name__)

_TERMINATING_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if sig
)


def _raise_system_exit(signum, frame):
    raise SystemExit(128 + signum)


@contextmanager
def scratch_directory(prefix: str = "pveprov-", base: Optional[str] = None) -> Iterator[Path]:
    """Create a temporary directory and remove it when the scope ends.

    Args:
        prefix: Directory name prefix
        base: Parent directory (defaults to the system temp dir)

    Yields:
        Path of the scratch directory
    """
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=base))
    logger.debug(f"Created scratch directory {path}")

    previous = {}
    # signal.signal only works from the main thread
    if threading.current_thread() is threading.main_thread():
        for sig in _TERMINATING_SIGNALS:
            previous[sig] = signal.signal(sig, _raise_system_exit)

    try:
        yield path
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning(f"Scratch directory {path} could not be fully removed")
        else:
            logger.debug(f"Removed scratch directory {path}")
