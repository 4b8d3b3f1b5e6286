"""Single-owner access to the process-wide interrupt signal.

Only one running command may listen for Ctrl+C at a time. The broker
installs its handler when an execution takes ownership and restores the
previous handler when the execution releases it, on every exit path.
"""
from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from ..errors import ClosxError

logger = logging.getLogger(__name__)

InterruptHandler = Callable[[], None]


class InterruptBrokerBusy(ClosxError):
    """Raised when a second execution tries to own the interrupt signal."""
    pass


class InterruptBroker:
    """Scoped owner of the SIGINT handler.

    Example:
        broker = InterruptBroker()
        with broker.owned(on_interrupt):
            ...  # Ctrl+C calls on_interrupt() instead of raising KeyboardInterrupt

    `interrupt()` delivers an interrupt programmatically; the OS signal
    path calls the same method. With no owner it does nothing.
    """

    def __init__(self, signum: int = signal.SIGINT, install_signal_handler: bool = True):
        self._signum = signum
        self._install_signal_handler = install_signal_handler
        self._handler: Optional[InterruptHandler] = None
        self._restore: Optional[Callable[[], None]] = None
        self.delivered = 0

    @property
    def busy(self) -> bool:
        return self._handler is not None

    @property
    def signal_installed(self) -> bool:
        return self._restore is not None

    @contextmanager
    def owned(self, handler: InterruptHandler) -> Iterator[InterruptBroker]:
        if self._handler is not None:
            raise InterruptBrokerBusy("Another command already owns the interrupt handler")
        self._handler = handler
        try:
            if self._install_signal_handler:
                self._install()
            yield self
        finally:
            self._uninstall()
            self._handler = None

    def interrupt(self) -> bool:
        """Deliver an interrupt to the current owner.

        Returns:
            True if an owner received it, False if nobody was listening
        """
        handler = self._handler
        if handler is None:
            logger.debug("Interrupt with no owner ignored")
            return False
        self.delivered += 1
        handler()
        return True

    def _install(self) -> None:
        previous = signal.getsignal(self._signum)
        try:
            loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            try:
                loop.add_signal_handler(self._signum, self.interrupt)
            except (NotImplementedError, RuntimeError, ValueError):
                pass
            else:
                def restore_loop_handler() -> None:
                    loop.remove_signal_handler(self._signum)
                    if previous is not None:
                        signal.signal(self._signum, previous)

                self._restore = restore_loop_handler
                return

        def on_signal(signum: int, frame: Any) -> None:
            if loop is not None:
                loop.call_soon_threadsafe(self.interrupt)
            else:
                self.interrupt()

        try:
            signal.signal(self._signum, on_signal)
        except ValueError:
            # Not on the main thread; only programmatic interrupts reach us.
            logger.debug("Cannot install signal handler outside the main thread")
            return
        self._restore = lambda: signal.signal(
            self._signum, previous if previous is not None else signal.SIG_DFL
        )

    def _uninstall(self) -> None:
        restore = self._restore
        self._restore = None
        if restore is not None:
            restore()


__all__ = ["InterruptBroker", "InterruptBrokerBusy", "InterruptHandler"]
