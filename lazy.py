import logging
import operator
import threading
from typing import Any, Callable, Iterable, Optional

import collectors
from errors import AlreadyConsumedError
from execution import ExecutionRequest, element_iterator, execute
from models import EngineSettings, ExecutionMode, OrderingTag, PipelineDescriptor, StageKind, SummaryStatistics
from sources import ConcatSource, IterateSource, Source, as_source, range_source
from stages import Stage, ordering_key, require_count
from terminals import CollectTerminal, FindTerminal, ForEachOrderedTerminal, ForEachTerminal, MatchTerminal, Terminal

logger = logging.getLogger(__name__)

_MISSING = object()


class Pipeline:
    """
    An immutable, lazy chain of stages over a source. Each stage method
    returns a new Pipeline that points back at its receiver, so a prefix can
    seed several downstream pipelines. Nothing runs until a terminal
    operation, and each Pipeline object can be evaluated only once.
    """
    def __init__(self, source: Source, stage: Optional[Stage] = None, upstream: Optional["Pipeline"] = None,
                 mode: ExecutionMode = ExecutionMode.SEQUENTIAL, settings: Optional[EngineSettings] = None):
        self._source = source
        self._stage = stage
        self._upstream = upstream
        self._mode = mode
        self._settings = settings or EngineSettings()
        self._consumed = False
        self._lock = threading.Lock()

    # --------- intermediate stages (lazy) ----------
    def filter(self, predicate: Callable[[Any], bool]) -> "Pipeline":
        return self._with_stage(Stage(StageKind.FILTER, predicate))

    def map(self, fn: Callable[[Any], Any]) -> "Pipeline":
        return self._with_stage(Stage(StageKind.MAP, fn))

    def flat_map(self, fn: Callable[[Any], Iterable[Any]]) -> "Pipeline":
        """Replace each element with the elements of ``fn(element)``, in order."""
        return self._with_stage(Stage(StageKind.FLAT_MAP, fn))

    def sorted(self, key: Optional[Callable] = None, reverse: bool = False,
               comparator: Optional[Callable[[Any, Any], int]] = None) -> "Pipeline":
        """Stable sort by natural order, ``key``, or a cmp-style ``comparator``."""
        return self._with_stage(Stage(StageKind.SORTED, ordering_key("sorted", key, comparator), reverse=reverse))

    def distinct(self) -> "Pipeline":
        return self._with_stage(Stage(StageKind.DISTINCT))

    def limit(self, n: int) -> "Pipeline":
        return self._with_stage(Stage(StageKind.LIMIT, param=require_count("limit", n)))

    def skip(self, n: int) -> "Pipeline":
        return self._with_stage(Stage(StageKind.SKIP, param=require_count("skip", n)))

    def peek(self, fn: Callable[[Any], Any]) -> "Pipeline":
        return self._with_stage(Stage(StageKind.PEEK, fn))

    def unordered(self) -> "Pipeline":
        return self._with_stage(Stage(StageKind.UNORDERED))

    def batch(self, size: int) -> "Pipeline":
        """Group elements into tuples of ``size``; the last one may be shorter."""
        return self._with_stage(Stage(StageKind.BATCH, param=require_count("batch", size, minimum=1)))

    # --------- execution strategy ----------
    def parallel(self) -> "Pipeline":
        return self._with_mode(ExecutionMode.PARALLEL)

    def sequential(self) -> "Pipeline":
        return self._with_mode(ExecutionMode.SEQUENTIAL)

    def is_parallel(self) -> bool:
        return self._mode is ExecutionMode.PARALLEL

    @property
    def ordering(self) -> OrderingTag:
        if not self._source.ordered:
            return OrderingTag.UNORDERED
        if any(stage.kind is StageKind.UNORDERED for stage in self._stages()):
            return OrderingTag.UNORDERED
        return OrderingTag.ORDERED

    @property
    def consumed(self) -> bool:
        return self._consumed

    def describe(self) -> PipelineDescriptor:
        return PipelineDescriptor(
            source=type(self._source).__name__,
            stages=[stage.describe() for stage in self._stages()],
            ordering=self.ordering,
            mode=self._mode,
            consumed=self._consumed
        )

    # --------- collecting ----------
    def collect(self, collector: Optional[collectors.Collector] = None) -> Any:
        return self._evaluate(CollectTerminal(collector or collectors.to_list()))

    def to_list(self) -> list:
        return self.collect(collectors.to_list())

    def to_set(self) -> set:
        return self.collect(collectors.to_set())

    def to_dict(self, key_fn: Callable, value_fn: Optional[Callable] = None,
                merge: Optional[Callable] = None, factory: Callable[[], dict] = dict) -> dict:
        return self.collect(collectors.to_dict(key_fn, value_fn, merge, factory))

    def group_by(self, key_fn: Callable, downstream: Optional[collectors.Collector] = None) -> dict:
        """Group elements by the result of key_fn"""
        return self.collect(collectors.grouping_by(key_fn, downstream))

    def partition_by(self, predicate: Callable, downstream: Optional[collectors.Collector] = None) -> dict:
        return self.collect(collectors.partitioning_by(predicate, downstream))

    def joining(self, separator: str = "", prefix: str = "", suffix: str = "") -> str:
        return self.collect(collectors.joining(separator, prefix, suffix))

    # --------- reducing operations ----------
    def reduce(self, op: Callable[[Any, Any], Any], initial: Any = _MISSING) -> Any:
        """Fold elements with ``op``.

        ``op`` should be associative: parallel evaluation folds each partition
        separately and then folds the partial results. Without ``initial`` an
        empty pipeline reduces to None.
        """
        if initial is _MISSING:
            return self.collect(collectors.reducing(op))
        return self.collect(collectors.reducing(op, initial))

    def count(self) -> int:
        return self.collect(collectors.counting())

    def sum(self, start: Any = 0) -> Any:
        """Return start plus the sum of all elements"""
        total = self.collect(collectors.reducing(operator.add))
        return start if total is None else start + total

    def average(self) -> Optional[float]:
        """Arithmetic mean, or None for an empty pipeline."""
        stats = self.summary_statistics()
        return stats.average if stats.count else None

    def summary_statistics(self, fn: Optional[Callable] = None) -> SummaryStatistics:
        return self.collect(collectors.summarizing(fn))

    def min(self, key: Optional[Callable] = None, comparator: Optional[Callable] = None, default: Any = None) -> Any:
        """Return the minimum element, or default if empty"""
        return self._or_default(self.collect(collectors.min_by(key, comparator)), default)

    def max(self, key: Optional[Callable] = None, comparator: Optional[Callable] = None, default: Any = None) -> Any:
        """Return the maximum element, or default if empty"""
        return self._or_default(self.collect(collectors.max_by(key, comparator)), default)

    # --------- short-circuiting operations ----------
    def any_match(self, predicate: Callable[[Any], bool]) -> bool:
        return self._evaluate(MatchTerminal(predicate, "any"))

    def all_match(self, predicate: Callable[[Any], bool]) -> bool:
        return self._evaluate(MatchTerminal(predicate, "all"))

    def none_match(self, predicate: Callable[[Any], bool]) -> bool:
        return self._evaluate(MatchTerminal(predicate, "none"))

    def find_first(self, default: Any = None) -> Any:
        """First element in encounter order, or default if empty"""
        return self._evaluate(FindTerminal(first=True, default=default))

    def find_any(self, default: Any = None) -> Any:
        """Some element; may differ between parallel runs"""
        return self._evaluate(FindTerminal(first=False, default=default))

    # --------- side effects ----------
    def for_each(self, action: Callable[[Any], Any]) -> None:
        self._evaluate(ForEachTerminal(action))

    def for_each_ordered(self, action: Callable[[Any], Any]) -> None:
        self._evaluate(ForEachOrderedTerminal(action))

    # --------- iterator protocol ----------
    def __iter__(self):
        request = self._request()
        if request.mode is ExecutionMode.PARALLEL:
            return iter(execute(request, CollectTerminal(collectors.to_list())))
        return element_iterator(request)

    def __repr__(self):
        kinds = " -> ".join(stage.kind.value for stage in self._stages()) or "source"
        return f"Pipeline({kinds}, {self._mode.value}, {self.ordering.value})"

    # --------- helpers ----------
    def _with_stage(self, stage: Stage) -> "Pipeline":
        return Pipeline(self._source, stage, self, self._mode, self._settings)

    def _with_mode(self, mode: ExecutionMode) -> "Pipeline":
        # Same position in the chain, different strategy.
        return Pipeline(self._source, self._stage, self._upstream, mode, self._settings)

    def _stages(self):
        stages = []
        node = self
        while node is not None:
            if node._stage is not None:
                stages.append(node._stage)
            node = node._upstream
        stages.reverse()
        return tuple(stages)

    def _request(self) -> ExecutionRequest:
        with self._lock:
            if self._consumed:
                raise AlreadyConsumedError()
            self._consumed = True
        return ExecutionRequest(self._source, self._stages(), self._mode, self.ordering, self._settings)

    def _evaluate(self, terminal: Terminal) -> Any:
        request = self._request()
        logger.debug(f"Evaluating {terminal.name} over {self!r}")
        return execute(request, terminal)

    @staticmethod
    def _or_default(value: Any, default: Any) -> Any:
        return default if value is None else value


# --------- sources ----------

def source(data: Any, settings: Optional[EngineSettings] = None) -> Pipeline:
    """Start a pipeline over a collection, iterable, or Source."""
    return Pipeline(as_source(data), settings=settings or EngineSettings.from_env())


def of(*values: Any, settings: Optional[EngineSettings] = None) -> Pipeline:
    return source(values, settings)


def empty(settings: Optional[EngineSettings] = None) -> Pipeline:
    return source((), settings)


def range_of(start: int, end: int, step: int = 1, settings: Optional[EngineSettings] = None) -> Pipeline:
    """Integers in [start, end); empty when start >= end."""
    return Pipeline(range_source(start, end, step), settings=settings or EngineSettings.from_env())


def range_closed(start: int, end: int, settings: Optional[EngineSettings] = None) -> Pipeline:
    """Integers in [start, end]."""
    return range_of(start, end + 1, settings=settings)


def iterate(seed: Any, fn: Callable[[Any], Any], settings: Optional[EngineSettings] = None) -> Pipeline:
    """Unbounded pipeline seed, fn(seed), fn(fn(seed)), ...; bound it with limit()."""
    return Pipeline(IterateSource(seed, fn), settings=settings or EngineSettings.from_env())


def concat(first: Any, second: Any, settings: Optional[EngineSettings] = None) -> Pipeline:
    """Elements of ``first`` followed by elements of ``second``."""
    return Pipeline(ConcatSource(_as_concat_part(first), _as_concat_part(second)),
                    settings=settings or EngineSettings.from_env())


def _as_concat_part(data: Any) -> Source:
    if isinstance(data, Pipeline) and not data._stages():
        with data._lock:
            if data._consumed:
                raise AlreadyConsumedError()
            data._consumed = True
        return data._source
    return as_source(data)
