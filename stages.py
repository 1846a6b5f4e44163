"""
Intermediate pipeline stages.

A Stage is an immutable descriptor; ``apply_stage`` turns it into a generator
wrapped around the upstream iterator, so nothing runs until a terminal
operation pulls. The local/global helpers at the bottom are the two halves of
each stateful stage when a pipeline is evaluated in parallel partitions.
"""

import heapq
from dataclasses import dataclass
from functools import cmp_to_key
from itertools import chain, islice
from typing import Any, Callable, Iterable, Iterator, List, Optional

from errors import EvaluationError, InvalidArgument, NotComparableError, StageEvaluationError
from models import StageDescriptor, StageKind


def invoke(stage_name: str, fn: Callable, *args):
    """Call a user function, wrapping its failure in StageEvaluationError."""
    try:
        return fn(*args)
    except EvaluationError:
        raise
    except Exception as exc:
        element = args[0] if len(args) == 1 else args
        raise StageEvaluationError(stage_name, element, exc) from exc


def guarded(stage_name: str, fn: Callable) -> Callable:
    def call(*args):
        return invoke(stage_name, fn, *args)
    return call


def ordering_key(stage_name: str, key: Optional[Callable] = None,
                 comparator: Optional[Callable] = None) -> Optional[Callable]:
    """Key function for sorting/min/max; None means natural ordering."""
    if comparator is not None:
        return cmp_to_key(guarded(stage_name, comparator))
    if key is not None:
        return guarded(stage_name, key)
    return None


def require_count(name: str, n: Any, minimum: int = 0) -> int:
    if isinstance(n, bool) or not isinstance(n, int):
        raise InvalidArgument(f"{name}() expects an integer, got {type(n).__name__}")
    if n < minimum:
        raise InvalidArgument(f"{name}() expects a value >= {minimum}, got {n}")
    return n


@dataclass(frozen=True)
class Stage:
    """One intermediate operation: kind, user function, and kind-specific parameter."""
    kind: StageKind
    fn: Optional[Callable] = None
    param: Any = None
    reverse: bool = False

    @property
    def natural_order(self) -> bool:
        return self.kind is StageKind.SORTED and self.fn is None

    def describe(self) -> StageDescriptor:
        return StageDescriptor(kind=self.kind, param=self.param, has_function=self.fn is not None)


def apply_stage(stage: Stage, it: Iterator[Any]) -> Iterator[Any]:
    kind = stage.kind
    if kind is StageKind.FILTER:
        return _filter(it, stage.fn)
    elif kind is StageKind.MAP:
        return _map(it, stage.fn)
    elif kind is StageKind.FLAT_MAP:
        return _flat_map(it, stage.fn)
    elif kind is StageKind.SORTED:
        return _sorted(it, stage)
    elif kind is StageKind.DISTINCT:
        return _distinct(it)
    elif kind is StageKind.LIMIT:
        return _limit(it, stage.param)
    elif kind is StageKind.SKIP:
        return islice(it, stage.param, None)
    elif kind is StageKind.PEEK:
        return _peek(it, stage.fn)
    elif kind is StageKind.BATCH:
        return _batch(it, stage.param)
    elif kind is StageKind.UNORDERED:
        return it
    raise ValueError(f"Unknown stage kind: {kind}")


def build_chain(it: Iterable[Any], stages: Iterable[Stage]) -> Iterator[Any]:
    """Wrap ``it`` in every stage, source side first."""
    it = iter(it)
    for stage in stages:
        it = apply_stage(stage, it)
    return it


def _filter(it, pred):
    for x in it:
        if invoke("filter", pred, x):
            yield x


def _map(it, fn):
    for x in it:
        yield invoke("map", fn, x)


def _flat_map(it, fn):
    for x in it:
        sub = invoke("flat_map", fn, x)
        if sub is not None:
            yield from sub


def _sorted(it, stage):
    # Stateful: nothing is yielded until upstream is exhausted.
    yield from sort_elements(list(it), stage)


def _distinct(it):
    seen = set()
    seen_unhashable = []
    for x in it:
        try:
            if x in seen:
                continue
            seen.add(x)
        except TypeError:
            if x in seen_unhashable:
                continue
            seen_unhashable.append(x)
        yield x


def _limit(it, n):
    if n <= 0:
        return
    taken = 0
    for x in it:
        yield x
        taken += 1
        if taken >= n:
            return


def _peek(it, fn):
    for x in it:
        invoke("peek", fn, x)
        yield x


def _batch(it, size):
    bucket = []
    for x in it:
        bucket.append(x)
        if len(bucket) == size:
            yield tuple(bucket)
            bucket = []
    if bucket:
        yield tuple(bucket)


def sort_elements(items: List[Any], stage: Stage) -> List[Any]:
    try:
        return sorted(items, key=stage.fn, reverse=stage.reverse)
    except TypeError as exc:
        raise NotComparableError(f"sorted() elements have no common ordering: {exc}") from exc


# --------- parallel barrier halves ----------

def local_barrier(stage: Stage, it: Iterator[Any]) -> List[Any]:
    """Per-partition part of a stateful stage."""
    if stage.kind is StageKind.SORTED:
        return sort_elements(list(it), stage)
    elif stage.kind is StageKind.DISTINCT:
        return list(_distinct(it))
    elif stage.kind is StageKind.LIMIT:
        return list(_limit(it, stage.param))
    # skip and batch depend on global positions only
    return list(it)


def global_barrier(stage: Stage, partials: List[List[Any]]) -> List[Any]:
    """Merge per-partition outputs (already in merge order) for a stateful stage."""
    if stage.kind is StageKind.SORTED:
        try:
            return list(heapq.merge(*partials, key=stage.fn, reverse=stage.reverse))
        except TypeError as exc:
            raise NotComparableError(f"sorted() elements have no common ordering: {exc}") from exc
    merged = chain.from_iterable(partials)
    if stage.kind is StageKind.DISTINCT:
        return list(_distinct(merged))
    elif stage.kind is StageKind.LIMIT:
        return list(islice(merged, stage.param))
    elif stage.kind is StageKind.SKIP:
        return list(islice(merged, stage.param, None))
    elif stage.kind is StageKind.BATCH:
        return list(_batch(merged, stage.param))
    raise ValueError(f"{stage.kind} is not a barrier stage")
