"""
Cooperative cancellation for bus-touching operations.

A :class:`CancelToken` is passed to every controller call that may write to
the bus.  The controller checks it immediately before each register write
and between the steps of multi-step operations; a write that has already
started is never interrupted.

Typical usage::

    token = CancelToken(timeout=0.5)
    pca.set_multi_pwm({0: (0, 2048), 1: (0, 4095)}, cancel=token)

    # from another thread
    token.cancel()
"""

from __future__ import annotations

import logging
import threading
import time
import weakref

from .exceptions import CancelledError, DeadlineExceeded

logger = logging.getLogger(__name__)


class CancelToken:
    """A cancel signal with an optional deadline.

    Args:
        timeout: Seconds from now after which the token counts as fired.
            ``None`` means no deadline.
        parent: Optional parent token.  The new token fires whenever the
            parent does and never outlives the parent's deadline.
    """

    def __init__(self, timeout: float | None = None, parent: CancelToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[CancelToken] = weakref.WeakSet()

        deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline

        # children hold their parents; parents only hold children weakly
        self._parents: tuple[CancelToken, ...] = ()
        if parent is not None:
            self._parents = (parent,)
            parent._adopt(self)

    @classmethod
    def never(cls) -> CancelToken:
        """Return a token that only fires if :meth:`cancel` is called on it."""
        return cls()

    def child(self, timeout: float | None = None) -> CancelToken:
        """Return a new token bound to this one."""
        return CancelToken(timeout=timeout, parent=self)

    @classmethod
    def linked(cls, *parents: CancelToken | None) -> CancelToken:
        """Return a token that fires when any of *parents* does.

        ``None`` entries are ignored.  The deadline is the earliest of the
        parents' deadlines.
        """
        present = tuple(p for p in parents if p is not None)
        token = cls()
        deadlines = [p.deadline for p in present if p.deadline is not None]
        token._deadline = min(deadlines) if deadlines else None
        token._parents = present
        for p in present:
            p._adopt(token)
        return token

    # -- State --------------------------------------------------------------

    @property
    def deadline(self) -> float | None:
        """Absolute :func:`time.monotonic` deadline, or ``None``."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        """Return ``True`` once the token was cancelled or its deadline passed."""
        return self._error() is not None

    def cancel(self) -> None:
        """Fire the token and every token derived from it."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    def check(self) -> None:
        """Raise if the token has fired.

        Raises:
            CancelledError: If :meth:`cancel` was called.
            DeadlineExceeded: If the deadline has passed.
        """
        err = self._error()
        if err is not None:
            logger.debug("Cancellation check failed: %s", err)
            raise err

    def wait(self, seconds: float) -> bool:
        """Block for up to *seconds*, returning early if the token fires.

        Returns:
            ``True`` if the token has fired when the wait ends.
        """
        end = time.monotonic() + seconds
        if self._deadline is not None:
            end = min(end, self._deadline)
        remaining = end - time.monotonic()
        while remaining > 0 and not self._event.wait(remaining):
            remaining = end - time.monotonic()
        return self.cancelled

    # -- Internal -----------------------------------------------------------

    def _adopt(self, child: CancelToken) -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.add(child)
                return
        child.cancel()

    def _error(self) -> CancelledError | None:
        if self._event.is_set():
            return CancelledError("Operation cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceeded("Operation deadline exceeded")
        return None

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled}, deadline={self._deadline})"
