"""Single-writer streamable values with live observers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

from loguru import logger

from pixelchat.errors import StreamClosedError

type Observer[T] = Callable[[T], None]

_CLOSED = object()


class _Streamable[T]:
    """Value cell with states open and closed; closed is terminal."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._closed = False
        self._observers: list[Observer[T]] = []
        self._queues: list[asyncio.Queue[object]] = []

    @property
    def value(self) -> T:
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, observer: Observer[T]) -> Callable[[], None]:
        """Attach an observer; it receives the current value right away."""
        observer(self._value)
        if self._closed:
            return lambda: None
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def __aiter__(self) -> AsyncIterator[T]:
        # Register before the first item so nothing emitted meanwhile is lost.
        queue: asyncio.Queue[object] = asyncio.Queue()
        queue.put_nowait(self._value)
        if self._closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[object]) -> AsyncIterator[T]:
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item  # type: ignore[misc]
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def _set(self, value: T) -> None:
        if self._closed:
            raise StreamClosedError(f"{type(self).__name__} is already closed")
        self._value = value
        self._notify(value)

    def _close(self) -> None:
        if self._closed:
            raise StreamClosedError(f"{type(self).__name__} is already closed")
        self._closed = True
        self._observers.clear()
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._queues.clear()

    def _notify(self, value: T) -> None:
        for observer in list(self._observers):
            try:
                observer(value)
            except Exception:
                logger.exception("stream.observer.error")
        for queue in self._queues:
            queue.put_nowait(value)


class StreamableValue(_Streamable[str]):
    """Text channel: deltas are appended in emission order."""

    def __init__(self, initial: str = "") -> None:
        super().__init__(initial)

    def update(self, delta: str) -> None:
        self._set(self._value + delta)

    def done(self, final: str | None = None) -> None:
        if final is not None:
            self._set(self._value + final)
        self._close()


class StreamableUI[T](_Streamable[T]):
    """Live display node: each update replaces the rendered value."""

    def update(self, display: T) -> None:
        self._set(display)

    def done(self, display: T | None = None) -> None:
        if display is not None:
            self._set(display)
        self._close()
