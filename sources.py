"""
Element sources for pipelines.

A source wraps a backing collection or generator and hands out elements on
demand. Sources are read-only: evaluation never mutates the backing data, and
splitting an indexable source produces index ranges over the same backing
object rather than copies.
"""

import logging
import threading
from collections.abc import Iterable, ItemsView, KeysView, Mapping, Sequence, Set, ValuesView
from itertools import chain
from typing import Any, Callable, Iterator, Optional, Tuple

from errors import AlreadyConsumedError, ExhaustedSource, InvalidArgument, StageEvaluationError

logger = logging.getLogger(__name__)


class SourceCursor:
    """Pull-based supply over a source iterator."""

    def __init__(self, iterator: Iterator[Any]):
        self._it = iterator
        self._done = False

    @property
    def exhausted(self) -> bool:
        return self._done

    def poll(self) -> Any:
        """Return the next element; raise ExhaustedSource once the supply is empty."""
        if self._done:
            raise ExhaustedSource("Source polled after completion")
        try:
            return next(self._it)
        except StopIteration:
            self._done = True
            raise ExhaustedSource("Source exhausted") from None

    def __iter__(self):
        return self

    def __next__(self):
        try:
            return self.poll()
        except ExhaustedSource:
            raise StopIteration from None


class Source:
    """Base source: ordered, not splittable, unknown size."""
    ordered = True
    splittable = False

    def __iter__(self) -> Iterator[Any]:
        raise NotImplementedError

    def cursor(self) -> SourceCursor:
        return SourceCursor(iter(self))

    def size(self) -> Optional[int]:
        return None

    def try_split(self) -> Optional[Tuple["Source", "Source"]]:
        """Split into (left, right) halves in encounter order, or None."""
        return None

    def __repr__(self):
        return f"{type(self).__name__}(ordered={self.ordered})"


class SequenceSource(Source):
    """Indexable collection (list, tuple, range, str), viewed over [start, stop)."""
    splittable = True

    def __init__(self, backing: Sequence, start: int = 0, stop: Optional[int] = None, ordered: bool = True):
        self._backing = backing
        self._start = start
        self._stop = len(backing) if stop is None else stop
        self.ordered = ordered

    def __iter__(self):
        backing = self._backing
        for index in range(self._start, self._stop):
            yield backing[index]

    def size(self) -> int:
        return max(0, self._stop - self._start)

    def try_split(self):
        if self.size() < 2:
            return None
        mid = self._start + self.size() // 2
        return (
            SequenceSource(self._backing, self._start, mid, self.ordered),
            SequenceSource(self._backing, mid, self._stop, self.ordered),
        )

    def __repr__(self):
        return f"SequenceSource({type(self._backing).__name__}[{self._start}:{self._stop}], ordered={self.ordered})"


class CollectionSource(Source):
    """Sized collection without indexing (set, dict, dict views)."""
    splittable = True

    def __init__(self, collection, ordered: bool = False):
        self._collection = collection
        self.ordered = ordered

    def __iter__(self):
        return iter(self._collection)

    def size(self) -> int:
        return len(self._collection)

    def try_split(self):
        if self.size() < 2:
            return None
        # Only splitting takes a snapshot; sequential iteration reads the collection directly.
        return SequenceSource(tuple(self._collection), ordered=self.ordered).try_split()


class IteratorSource(Source):
    """One-shot iterable such as a generator; can be traversed once."""

    def __init__(self, iterable: Iterable):
        self._iterable = iterable
        self._started = False
        self._lock = threading.Lock()

    def __iter__(self):
        with self._lock:
            if self._started:
                raise AlreadyConsumedError("Source iterator has already been pulled by a previous evaluation")
            self._started = True
        return iter(self._iterable)


class IterateSource(Source):
    """Unbounded ordered generator: seed, fn(seed), fn(fn(seed)), ..."""

    def __init__(self, seed: Any, fn: Callable[[Any], Any]):
        self._seed = seed
        self._fn = fn

    def __iter__(self):
        value = self._seed
        while True:
            yield value
            try:
                value = self._fn(value)
            except Exception as exc:
                raise StageEvaluationError("iterate", value, exc) from exc


class ConcatSource(Source):
    """All elements of ``first`` followed by all elements of ``second``.

    Splittable only when both parts are.
    """

    def __init__(self, first: Source, second: Source):
        self._first = first
        self._second = second
        self.ordered = first.ordered and second.ordered
        self.splittable = first.splittable and second.splittable

    def __iter__(self):
        return chain(self._first, self._second)

    def size(self) -> Optional[int]:
        left, right = self._first.size(), self._second.size()
        if left is None or right is None:
            return None
        return left + right

    def try_split(self):
        if not self.splittable:
            return None
        return self._first, self._second


def as_source(data: Any) -> Source:
    """Wrap ``data`` in the matching source type."""
    if isinstance(data, Source):
        return data
    if isinstance(data, Sequence):
        return SequenceSource(data)
    # Dicts and their views follow insertion order; check them before Set,
    # which KeysView and ItemsView also implement.
    if isinstance(data, (Mapping, KeysView, ItemsView, ValuesView)):
        return CollectionSource(data, ordered=True)
    if isinstance(data, Set):
        return CollectionSource(data, ordered=False)
    if isinstance(data, Iterable):
        return IteratorSource(data)
    raise InvalidArgument(f"Cannot build a pipeline source from {type(data).__name__}")


def range_source(start: int, end: int, step: int = 1) -> SequenceSource:
    """Integers from start up to (not including) end."""
    if step == 0:
        raise InvalidArgument("Range step must not be zero")
    return SequenceSource(range(start, end, step))
