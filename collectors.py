"""
Mutable reduction recipes for ``Pipeline.collect``.

A Collector bundles four functions:

- ``supplier()`` creates an empty container,
- ``accumulator(container, element)`` folds one element in and returns the
  container (a new one for immutable containers such as counters),
- ``combiner(left, right)`` merges two partition containers, left holding the
  earlier elements,
- ``finisher(container)`` turns the container into the final result.

Sequential evaluation uses one container; parallel evaluation builds one per
partition and combines them in merge order.
"""

from dataclasses import dataclass
from functools import reduce
from typing import Any, Callable, Iterable, Optional

from errors import DuplicateKeyError, NotComparableError
from models import SummaryStatistics
from stages import guarded, invoke, ordering_key


_MISSING = object()


def _identity(x):
    return x


@dataclass(frozen=True)
class Collector:
    supplier: Callable[[], Any]
    accumulator: Callable[[Any, Any], Any]
    combiner: Callable[[Any, Any], Any]
    finisher: Callable[[Any], Any] = _identity
    name: str = "collect"

    def accumulate(self, iterable: Iterable[Any]) -> Any:
        """Fold every element into a fresh container (no finisher)."""
        container = self.supplier()
        for element in iterable:
            container = self.accumulator(container, element)
        return container

    def merge(self, containers) -> Any:
        """Combine partition containers left to right and finish."""
        containers = list(containers)
        if not containers:
            return self.finisher(self.supplier())
        return self.finisher(reduce(self.combiner, containers))

    def collect(self, iterable: Iterable[Any]) -> Any:
        return self.finisher(self.accumulate(iterable))


# --------- containers ----------

def to_list() -> Collector:
    def add(container, x):
        container.append(x)
        return container

    def combine(left, right):
        left.extend(right)
        return left

    return Collector(list, add, combine, name="to_list")


def to_set() -> Collector:
    def add(container, x):
        container.add(x)
        return container

    def combine(left, right):
        left |= right
        return left

    return Collector(set, add, combine, name="to_set")


def to_dict(key_fn: Callable, value_fn: Optional[Callable] = None,
            merge: Optional[Callable] = None, factory: Callable[[], dict] = dict) -> Collector:
    """Key/value mapping; colliding keys need ``merge`` or raise DuplicateKeyError."""
    key_of = guarded("to_dict", key_fn)
    value_of = guarded("to_dict", value_fn) if value_fn is not None else _identity

    def put(container, key, value):
        if key in container:
            if merge is None:
                raise DuplicateKeyError(key, container[key], value)
            container[key] = invoke("to_dict", merge, container[key], value)
        else:
            container[key] = value

    def add(container, x):
        put(container, key_of(x), value_of(x))
        return container

    def combine(left, right):
        for key, value in right.items():
            put(left, key, value)
        return left

    return Collector(factory, add, combine, name="to_dict")


def joining(separator: str = "", prefix: str = "", suffix: str = "") -> Collector:
    """Concatenate str() of each element."""
    def add(container, x):
        container.append(str(x))
        return container

    def combine(left, right):
        left.extend(right)
        return left

    return Collector(list, add, combine, lambda parts: prefix + separator.join(parts) + suffix, name="joining")


# --------- grouping ----------

def grouping_by(classifier: Callable, downstream: Optional[Collector] = None,
                factory: Callable[[], dict] = dict) -> Collector:
    """Group elements by ``classifier``; each group is reduced by ``downstream``."""
    downstream = downstream or to_list()
    classify = guarded("grouping_by", classifier)

    def add(container, x):
        key = classify(x)
        group = container[key] if key in container else downstream.supplier()
        container[key] = downstream.accumulator(group, x)
        return container

    def combine(left, right):
        for key, group in right.items():
            left[key] = downstream.combiner(left[key], group) if key in left else group
        return left

    def finish(container):
        for key in container:
            container[key] = downstream.finisher(container[key])
        return container

    return Collector(factory, add, combine, finish, name="grouping_by")


def partitioning_by(predicate: Callable, downstream: Optional[Collector] = None) -> Collector:
    """Split into {False: ..., True: ...} by ``predicate``."""
    downstream = downstream or to_list()
    test = guarded("partitioning_by", predicate)

    def supply():
        return {False: downstream.supplier(), True: downstream.supplier()}

    def add(container, x):
        key = bool(test(x))
        container[key] = downstream.accumulator(container[key], x)
        return container

    def combine(left, right):
        for key in (False, True):
            left[key] = downstream.combiner(left[key], right[key])
        return left

    def finish(container):
        return {key: downstream.finisher(value) for key, value in container.items()}

    return Collector(supply, add, combine, finish, name="partitioning_by")


def mapping(fn: Callable, downstream: Collector) -> Collector:
    """Apply ``fn`` before handing elements to ``downstream``."""
    transform = guarded("mapping", fn)
    return Collector(
        downstream.supplier,
        lambda container, x: downstream.accumulator(container, transform(x)),
        downstream.combiner,
        downstream.finisher,
        name="mapping"
    )


# --------- numeric reductions ----------

def counting() -> Collector:
    return Collector(lambda: 0, lambda count, _: count + 1, lambda a, b: a + b, name="counting")


def summing(fn: Optional[Callable] = None) -> Collector:
    value_of = guarded("summing", fn) if fn is not None else _identity
    return Collector(lambda: 0, lambda total, x: total + value_of(x), lambda a, b: a + b, name="summing")


def averaging(fn: Optional[Callable] = None) -> Collector:
    """Arithmetic mean; 0.0 for no elements."""
    value_of = guarded("averaging", fn) if fn is not None else _identity

    def add(state, x):
        return state[0] + 1, state[1] + value_of(x)

    def combine(left, right):
        return left[0] + right[0], left[1] + right[1]

    return Collector(
        lambda: (0, 0),
        add,
        combine,
        lambda state: state[1] / state[0] if state[0] else 0.0,
        name="averaging"
    )


def summarizing(fn: Optional[Callable] = None) -> Collector:
    value_of = guarded("summarizing", fn) if fn is not None else _identity

    def add(stats, x):
        stats.accept(value_of(x))
        return stats

    return Collector(SummaryStatistics, add, lambda a, b: a.combine(b), name="summarizing")


def reducing(op: Callable, initial: Any = _MISSING) -> Collector:
    """Fold with ``op``; None when empty and no ``initial`` is given."""
    def fold(acc, x):
        return x if acc is _MISSING else invoke("reduce", op, acc, x)

    def combine(left, right):
        if right is _MISSING:
            return left
        if left is _MISSING:
            return right
        return invoke("reduce", op, left, right)

    def finish(acc):
        return None if acc is _MISSING else acc

    supply = (lambda: initial) if initial is not _MISSING else (lambda: _MISSING)
    return Collector(supply, fold, combine, finish, name="reducing")


def _extreme(name: str, key: Optional[Callable], comparator: Optional[Callable], largest: bool) -> Collector:
    key_of = ordering_key(name, key, comparator) or _identity

    def better(candidate, best):
        try:
            if largest:
                return key_of(candidate) > key_of(best)
            return key_of(candidate) < key_of(best)
        except TypeError as exc:
            raise NotComparableError(f"{name}() elements have no common ordering: {exc}") from exc

    def pick(best, x):
        if best is _MISSING or better(x, best):
            return x
        return best

    def combine(left, right):
        if right is _MISSING:
            return left
        return pick(left, right)

    return Collector(
        lambda: _MISSING,
        pick,
        combine,
        lambda best: None if best is _MISSING else best,
        name=name
    )


def min_by(key: Optional[Callable] = None, comparator: Optional[Callable] = None) -> Collector:
    """Smallest element (first one on ties); None when empty."""
    return _extreme("min", key, comparator, largest=False)


def max_by(key: Optional[Callable] = None, comparator: Optional[Callable] = None) -> Collector:
    """Largest element (first one on ties); None when empty."""
    return _extreme("max", key, comparator, largest=True)
