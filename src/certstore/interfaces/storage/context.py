"""Cancellation and deadline token passed to every storage operation.

A `Context` is created by the caller and handed to storage calls through the
keyword-only ``ctx`` parameter. Backends call `Context.check()` before doing
I/O and use `Context.sleep()` while polling for a lock, so a cancelled context
or an expired deadline makes the call return promptly with `Cancelled`.

Contexts form a tree: `with_timeout()` derives a child whose deadline is never
later than its parent's and which is cancelled together with its parent.

Typical usage:
    ```py
    with Context(timeout=5.0) as ctx:
        storage.lock("certificates/example.com", ctx=ctx)
    ```
"""

from __future__ import annotations

import threading
import time
import weakref
from types import TracebackType

from .errors import Cancelled


class Context:
    """Cancellable deadline shared by a group of storage calls.

    Args:
        timeout: Seconds from now until the deadline; ``None`` means no deadline.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        self._parent: Context | None = None
        self.deadline: float | None = (
            None if timeout is None else time.monotonic() + timeout
        )

    # --- derivation ---

    def with_timeout(self, timeout: float) -> Context:
        """Return a child context expiring after `timeout` seconds (or earlier)."""
        child = Context(timeout)
        if self.deadline is not None and (
            child.deadline is None or self.deadline < child.deadline
        ):
            child.deadline = self.deadline
        with self._lock:
            if self._event.is_set():
                child.cancel()
            else:
                self._children.add(child)
                child._parent = self
        return child

    # --- state ---

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        with self._lock:
            self._event.set()
            children = list(self._children)
            self._children.clear()
            parent, self._parent = self._parent, None
        if parent is not None:
            parent._forget(child=self)
        for child in children:
            child.cancel()

    def _forget(self, child: Context) -> None:
        with self._lock:
            self._children.discard(child)

    @property
    def cancelled(self) -> bool:
        """True once cancelled or past the deadline."""
        return self._event.is_set() or self.remaining() == 0.0

    def remaining(self) -> float | None:
        """Seconds left until the deadline (never negative), or None."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise `Cancelled` if the context is cancelled or expired."""
        if self._event.is_set():
            raise Cancelled("context cancelled")
        if self.remaining() == 0.0:
            raise Cancelled("context deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep up to `seconds`, waking early (and raising) on cancellation.

        Raises:
            Cancelled: If the context is cancelled or expires while sleeping.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(seconds)
        self.check()

    # --- context manager ---

    def __enter__(self) -> Context:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()


def check(ctx: Context | None) -> None:
    """Raise `Cancelled` if `ctx` is given and no longer active."""
    if ctx is not None:
        ctx.check()


def sleep(ctx: Context | None, seconds: float) -> None:
    """Sleep `seconds`, interruptibly when a context is given."""
    if ctx is None:
        time.sleep(seconds)
    else:
        ctx.sleep(seconds)
