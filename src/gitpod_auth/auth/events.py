"""Minimal event primitives and the event-to-future adapter.

Two building blocks live here:

* :class:`EventEmitter` -- a synchronous, in-process publisher. Subscribing
  returns a :class:`Disposable` that removes the listener again.
* :func:`promise_from_event` -- turns an event source into a single
  :class:`asyncio.Future` that settles as decided by an *adapter* callback.

The adapter owns the subscription it creates: whichever way the future
settles (resolved, rejected, cancelled through :meth:`PendingEvent.cancel`,
or cancelled by an outer ``asyncio`` timeout) the listener is removed and
any adapter awaitable still running is cancelled, so repeated login
attempts never pile up listeners on the secret store.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Generic, Optional, TypeVar

from gitpod_auth.exceptions import EventWaitCancelled, GitpodAuthError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

Resolve = Callable[[Any], None]
Reject = Callable[[Any], None]
Adapter = Callable[[Any, Resolve, Reject], Any]
Event = Callable[[Callable[[T], Any]], "Disposable"]


class Disposable:
    """Handle returned by a subscription; :meth:`dispose` is idempotent."""

    def __init__(self, on_dispose: Callable[[], None]) -> None:
        self._on_dispose: Optional[Callable[[], None]] = on_dispose

    @property
    def disposed(self) -> bool:
        return self._on_dispose is None

    def dispose(self) -> None:
        callback, self._on_dispose = self._on_dispose, None
        if callback is not None:
            callback()


class EventEmitter(Generic[T]):
    """Synchronous event publisher.

    Listeners are invoked in subscription order on the thread that calls
    :meth:`fire`. A listener that raises is logged and does not prevent
    the remaining listeners from running.

    Example::

        emitter: EventEmitter[str] = EventEmitter()
        sub = emitter.event(print)
        emitter.fire("hello")
        sub.dispose()
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], Any]] = []
        self._disposed = False

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def event(self, listener: Callable[[T], Any]) -> Disposable:
        """Subscribe *listener* and return a handle that unsubscribes it."""
        if self._disposed:
            return Disposable(lambda: None)
        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return Disposable(_remove)

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Event listener %r failed", listener)

    def dispose(self) -> None:
        """Drop every listener; later subscriptions are ignored."""
        self._listeners.clear()
        self._disposed = True


def passthrough(value: Any, resolve: Resolve, reject: Reject) -> None:
    """Default adapter: resolve with the first emitted value."""
    resolve(value)


def _as_exception(reason: Any) -> BaseException:
    if isinstance(reason, BaseException):
        return reason
    return GitpodAuthError(str(reason) if reason is not None else "Rejected")


class PendingEvent(Generic[U]):
    """A future fed by an event source, plus the means to abandon it.

    Attributes:
        result: The :class:`asyncio.Future` that settles with the adapter's
            outcome. ``await pending`` is shorthand for ``await pending.result``.
    """

    def __init__(self, result: asyncio.Future, reject: Reject) -> None:
        self.result = result
        self._reject = reject
        self._tasks: set[asyncio.Future] = set()

    @property
    def settled(self) -> bool:
        return self.result.done()

    def cancel(self) -> None:
        """Reject with :class:`EventWaitCancelled` and release the subscription.

        Has no effect once the future has settled.
        """
        if self.result.done():
            return
        self._reject(EventWaitCancelled("Event wait was cancelled"))
        # Mark the exception as observed; a later await still raises it.
        self.result.exception()

    def __await__(self):  # type: ignore[no-untyped-def]
        return self.result.__await__()


def promise_from_event(event: Event, adapter: Adapter = passthrough) -> PendingEvent:
    """Return a future that settles with the next event, or a later one as the adapter decides.

    The adapter is called as ``adapter(value, resolve, reject)`` once per
    event until it resolves or rejects. It may also return an awaitable;
    an exception raised synchronously or by that awaitable rejects the
    future. Events that arrive after settlement are not passed to the
    adapter. On settlement the subscription is released and adapter
    awaitables still running are cancelled.

    Must be called with a running event loop.

    Args:
        event: The event source, e.g. ``emitter.event``.
        adapter: Controls resolution of the returned future.

    Returns:
        A :class:`PendingEvent` wrapping the future and its ``cancel()``.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()
    subscriptions: list[Disposable] = []

    def release(_: Any = None) -> None:
        while subscriptions:
            subscriptions.pop().dispose()
        current = asyncio.current_task()
        for task in list(pending._tasks):
            if task is not current and not task.done():
                task.cancel()

    def resolve(value: Any) -> None:
        if not future.done():
            future.set_result(value)
            release()

    def reject(reason: Any) -> None:
        if not future.done():
            future.set_exception(_as_exception(reason))
            release()

    pending: PendingEvent = PendingEvent(future, reject)

    def _on_adapter_task_done(task: asyncio.Future) -> None:
        pending._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            reject(exc)

    def on_event(value: Any) -> None:
        if future.done():
            return
        try:
            outcome = adapter(value, resolve, reject)
        except Exception as exc:
            reject(exc)
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            pending._tasks.add(task)
            task.add_done_callback(_on_adapter_task_done)

    subscriptions.append(event(on_event))
    # Covers cancellation from outside, e.g. an asyncio timeout.
    future.add_done_callback(release)
    return pending
