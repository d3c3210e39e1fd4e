from typing import Generic, Iterator, Optional, TypeVar
import threading


T = TypeVar("T")


class SingleSlotQueue(Generic[T]):
    """Thread-safe, size=1, latest-wins queue.

    The attack worker publishes a snapshot after every step; the UI only ever
    needs the newest one, so older unread values are overwritten.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._value: Optional[T] = None
        self._has_value = False
        self._closed = False
        self.dropped = 0

    def publish(self, item: T) -> None:
        """Publish an item, replacing any value the consumer has not read yet."""
        with self._condition:
            if self._has_value:
                self.dropped += 1
            self._value = item
            self._has_value = True
            self._condition.notify()

    def close(self) -> None:
        """Close the queue. A pending value can still be read once."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Block until a value is available or the queue is closed. Returns None on close."""
        with self._condition:
            ready = self._condition.wait_for(lambda: self._has_value or self._closed, timeout)
            if not ready:
                raise TimeoutError("queue get() timed out")
            if not self._has_value:
                return None
            value = self._value
            self._value = None
            self._has_value = False
            return value

    def __iter__(self) -> Iterator[T]:
        """Yield values until the queue is closed and drained."""
        while True:
            value = self.get()
            if value is None:
                return
            yield value

    def __enter__(self) -> "SingleSlotQueue[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
