"""
Minimal observable values used to drive recomputation.

Engines accept, wherever a parameter may change over time, any of:

- an ``Observable`` (``.value`` plus ``.subscribe(callback)``),
- a zero-argument callable, polled on every read,
- a plain value.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, List, Optional, Protocol, Sequence, TypeVar, runtime_checkable

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

Unsubscribe = Callable[[], None]

_UNSET = object()


@runtime_checkable
class Observable(Protocol[T_co]):
    """Synchronous current-value read plus change subscription."""

    @property
    def value(self) -> T_co:
        ...

    def subscribe(self, callback: Callable[[Any], None]) -> Unsubscribe:
        ...


class _Subscribers:
    def __init__(self) -> None:
        self._callbacks: List[Callable[[Any], None]] = []

    def add(self, callback: Callable[[Any], None]) -> Unsubscribe:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def notify(self, value: Any) -> None:
        for callback in list(self._callbacks):
            callback(value)

    def __len__(self) -> int:
        return len(self._callbacks)


class Ref(Generic[T]):
    """A settable value that notifies subscribers when it changes."""

    def __init__(self, value: T):
        self._value = value
        self._subscribers = _Subscribers()

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        if new_value == self._value:
            self._value = new_value
            return
        self._value = new_value
        self._subscribers.notify(new_value)

    def subscribe(self, callback: Callable[[Any], None]) -> Unsubscribe:
        return self._subscribers.add(callback)

    def __repr__(self) -> str:
        return f"Ref({self._value!r})"


class Constant(Generic[T]):
    """An observable that never changes."""

    def __init__(self, value: T):
        self._value = value

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[Any], None]) -> Unsubscribe:
        return lambda: None


class Computed(Generic[T]):
    """A derived value, recomputed on every read.

    Subscribers are notified when any source changes and the derived value
    differs from the last one they were told about.
    """

    def __init__(self, compute: Callable[[], T], sources: Sequence[Any] = ()):
        self._compute = compute
        self._sources = [s for s in sources if is_observable(s)]
        self._subscribers = _Subscribers()
        self._source_unsubscribers: List[Unsubscribe] = []
        self._last: Any = _UNSET

    @property
    def value(self) -> T:
        return self._compute()

    def _on_source_change(self, _: Any) -> None:
        new_value = self._compute()
        if self._last is not _UNSET and new_value == self._last:
            return
        self._last = new_value
        self._subscribers.notify(new_value)

    def subscribe(self, callback: Callable[[Any], None]) -> Unsubscribe:
        if not self._source_unsubscribers:
            self._last = self._compute()
            self._source_unsubscribers = [s.subscribe(self._on_source_change) for s in self._sources]
        remove = self._subscribers.add(callback)

        def _unsubscribe() -> None:
            remove()
            if not len(self._subscribers):
                for unsubscribe in self._source_unsubscribers:
                    unsubscribe()
                self._source_unsubscribers = []
                self._last = _UNSET

        return _unsubscribe


def is_observable(value: Any) -> bool:
    return isinstance(value, Observable)


def read(value: Any) -> Any:
    """Current value of an observable, getter or plain value."""
    if is_observable(value):
        return value.value
    if callable(value):
        return value()
    return value


def to_observable(value: Any) -> Observable[Any]:
    """Wrap a getter or plain value so it can be read like an observable."""
    if is_observable(value):
        return value
    if callable(value):
        return Computed(value)
    return Constant(value)
