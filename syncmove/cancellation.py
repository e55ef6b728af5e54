"""Cooperative cancellation for a migration run.

A :class:`CancellationToken` is set from outside the pipeline (the CLI wires
Ctrl+C to it) and read by the orchestrator only between files.  Work that has
already started always runs to its terminal outcome.
"""

from __future__ import annotations

import contextlib
import logging
import signal
import threading
from typing import Iterator

logger = logging.getLogger(__name__)


class CancellationToken:
    """Set-once stop request; there is no reset."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request that no further files are started."""
        if not self._event.is_set():
            logger.info("Stop requested — finishing the current file first")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """True once :meth:`cancel` has been called."""
        return self._event.is_set()


@contextlib.contextmanager
def interrupt_cancels(token: CancellationToken) -> Iterator[CancellationToken]:
    """Make Ctrl+C set *token* for the duration of the ``with`` block.

    The first interrupt only sets the token.  A second interrupt while the
    token is already set raises :exc:`KeyboardInterrupt` as usual, so a hung
    copy can still be aborted.  The previous handler is restored on exit.
    Outside the main thread signal handlers cannot be installed and the block
    runs unchanged.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handler(signum, frame) -> None:
        if token.is_cancelled:
            raise KeyboardInterrupt
        token.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
