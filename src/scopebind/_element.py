from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Generic, TypeVar

from ._errors import EmptyProducerError


if TYPE_CHECKING:
    from collections.abc import Callable


T = TypeVar("T")


class Element(Generic[T]):
    """A single registration: either a ready value or a lazy producer.

    Lazy elements run their producer on first access of :attr:`value` and keep
    the result for the element's lifetime. The disposal callback only ever sees
    a materialized value, and only once.
    """

    __slots__ = ("_disposed", "_lock", "_producer", "_value", "on_dispose", "tag")

    def __init__(
        self,
        value: T | None,
        producer: Callable[[], T] | None,
        *,
        tag: str | None = None,
        on_dispose: Callable[[T], object] | None = None,
    ) -> None:
        if (value is None) == (producer is None):
            msg = "Provide either `value` or `producer`, not both."
            raise ValueError(msg)

        self._value = value
        self._producer = producer
        self._disposed = False
        self._lock = threading.RLock()
        self.tag = tag
        self.on_dispose = on_dispose

    @classmethod
    def direct(
        cls,
        value: T,
        *,
        tag: str | None = None,
        on_dispose: Callable[[T], object] | None = None,
    ) -> Element[T]:
        return cls(value, None, tag=tag, on_dispose=on_dispose)

    @classmethod
    def lazy(
        cls,
        producer: Callable[[], T],
        *,
        tag: str | None = None,
        on_dispose: Callable[[T], object] | None = None,
    ) -> Element[T]:
        return cls(None, producer, tag=tag, on_dispose=on_dispose)

    @property
    def is_materialized(self) -> bool:
        return self._value is not None

    @property
    def value(self) -> T:
        """Return the held value, running the producer on first access."""
        if self._value is None:
            with self._lock:
                if self._value is None:
                    assert self._producer is not None
                    produced = self._producer()
                    if produced is None:
                        raise EmptyProducerError(self.tag)
                    self._value = produced
        return self._value

    def dispose(self) -> None:
        """Run the disposal callback if the value was ever materialized."""
        if self._disposed:
            return
        self._disposed = True

        value = self._value
        if value is not None and self.on_dispose is not None:
            self.on_dispose(value)

    def __repr__(self) -> str:
        state = repr(self._value) if self._value is not None else "<lazy>"
        return f"Element({state}, tag={self.tag!r})"
