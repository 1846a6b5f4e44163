"""
Sequential and parallel evaluation of a pipeline chain.

Parallel evaluation splits the source into partitions, runs the stage chain
for each partition on a thread pool and merges the partial results: by
partition index for ORDERED pipelines, by completion order otherwise.
Stateful stages act as barriers where partitions are merged before the rest
of the chain runs over the merged elements.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from models import BARRIER_STAGES, EngineSettings, ExecutionMode, OrderingTag, StageKind
from sources import SequenceSource, Source
from stages import Stage, build_chain, global_barrier, local_barrier
from terminals import Terminal
from utils import available_parallelism

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionRequest:
    """One terminal invocation: what to evaluate and how."""
    source: Source
    stages: Tuple[Stage, ...]
    mode: ExecutionMode
    ordering: OrderingTag
    settings: EngineSettings

    @property
    def ordered(self) -> bool:
        return self.ordering is OrderingTag.ORDERED


@dataclass
class PartialResult:
    """Output of one partition, owned by its worker until returned."""
    index: int
    value: Any


def resolve_worker_count(settings: EngineSettings) -> int:
    return settings.max_workers or available_parallelism()


def split(source: Source, target: int, min_partition_size: int = 1) -> List[Source]:
    """Halve partitions breadth-first until ``target`` is reached or none can split."""
    partitions = [source]
    while len(partitions) < target:
        next_round = []
        for part in partitions:
            halves = None
            size = part.size()
            if part.splittable and (size is None or size >= 2 * min_partition_size):
                halves = part.try_split()
            next_round.extend(halves if halves else (part,))
        if len(next_round) == len(partitions):
            break
        partitions = next_round
    return partitions


def cancellable(it: Iterator[Any], cancel: threading.Event) -> Iterator[Any]:
    """Stop pulling new elements once ``cancel`` is set."""
    while not cancel.is_set():
        try:
            element = next(it)
        except StopIteration:
            return
        yield element


class WorkerPool:
    """Bounded thread pool for one evaluation."""

    def __init__(self, max_workers: int):
        self.max_workers = max_workers
        self.executor: Optional[ThreadPoolExecutor] = None

    def start(self):
        self.executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="pipeline-worker")
        logger.debug(f"Started worker pool with {self.max_workers} workers")

    def stop(self):
        if self.executor:
            self.executor.shutdown(wait=True, cancel_futures=True)
            self.executor = None
            logger.debug("Worker pool stopped")

    def submit(self, fn: Callable, *args) -> Future:
        if self.executor is None:
            raise RuntimeError("Worker pool not started")
        return self.executor.submit(fn, *args)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


class ParallelEvaluator:
    """Split / evaluate / merge for one ExecutionRequest."""

    def __init__(self, request: ExecutionRequest):
        self.request = request
        self.ordered = request.ordered
        self.workers = resolve_worker_count(request.settings)
        self.target_partitions = self.workers * request.settings.partitions_per_worker

    def run(self, terminal: Terminal) -> Any:
        source = self.request.source
        stages = list(self.request.stages)
        with WorkerPool(self.workers) as pool:
            while True:
                barrier_at = next((i for i, s in enumerate(stages) if s.kind in BARRIER_STAGES), None)
                if barrier_at is None:
                    return self._run_terminal(pool, source, stages, terminal)
                prefix, barrier, stages = stages[:barrier_at], stages[barrier_at], stages[barrier_at + 1:]
                merged = self._run_barrier(pool, source, prefix, barrier)
                source = SequenceSource(merged, ordered=self.ordered)

    def _partitions(self, source: Source) -> List[Source]:
        partitions = split(source, self.target_partitions, self.request.settings.min_partition_size)
        logger.debug(f"Evaluating {len(partitions)} partitions on {self.workers} workers (ordered={self.ordered})")
        return partitions

    def _run_terminal(self, pool: WorkerPool, source: Source, stages: List[Stage], terminal: Terminal) -> Any:
        stop_when = None
        if terminal.short_circuit:
            if terminal.positional and self.ordered:
                stop_when = lambda done: _prefix_found(done, terminal)
            else:
                stop_when = lambda done: terminal.decided(done[-1].value)

        completed = self._map_partitions(
            pool,
            self._partitions(source),
            lambda it: terminal.partial(build_chain(it, stages)),
            stop_when
        )
        return terminal.combine(self._merge_order(completed))

    def _run_barrier(self, pool: WorkerPool, source: Source, prefix: List[Stage], barrier: Stage) -> List[Any]:
        stop_when = None
        if barrier.kind is StageKind.LIMIT:
            n = barrier.param
            if self.ordered:
                stop_when = lambda done: _prefix_count(done) >= n
            else:
                stop_when = lambda done: sum(len(p.value) for p in done) >= n

        completed = self._map_partitions(
            pool,
            self._partitions(source),
            lambda it: local_barrier(barrier, build_chain(it, prefix)),
            stop_when
        )
        partials = self._merge_order(completed)
        if barrier.kind is StageKind.LIMIT and self.ordered:
            partials = _contiguous_prefix(completed)
        return global_barrier(barrier, partials)

    def _map_partitions(self, pool: WorkerPool, partitions: Sequence[Source],
                        work: Callable[[Iterator[Any]], Any],
                        stop_when: Optional[Callable[[List[PartialResult]], bool]] = None) -> List[PartialResult]:
        """Run ``work`` per partition; returns partials in completion order."""
        cancel = threading.Event()
        futures: Dict[Future, int] = {
            pool.submit(self._run_partition, index, part, work, cancel): index
            for index, part in enumerate(partitions)
        }
        completed: List[PartialResult] = []
        try:
            for future in as_completed(futures):
                try:
                    completed.append(future.result())
                except Exception as e:
                    logger.error(f"Partition {futures[future]} failed, cancelling siblings: {e}")
                    raise
                if stop_when is not None and stop_when(completed):
                    logger.debug(f"Answer decided after {len(completed)}/{len(partitions)} partitions")
                    break
        finally:
            cancel.set()
            for future in futures:
                future.cancel()
        return completed

    @staticmethod
    def _run_partition(index: int, partition: Source, work: Callable, cancel: threading.Event) -> PartialResult:
        return PartialResult(index, work(cancellable(iter(partition.cursor()), cancel)))

    def _merge_order(self, completed: List[PartialResult]) -> List[Any]:
        if self.ordered:
            completed = sorted(completed, key=lambda p: p.index)
        return [p.value for p in completed]


def _contiguous_prefix(completed: List[PartialResult]) -> List[Any]:
    """Values of partitions 0..k that all completed, in index order."""
    by_index = {p.index: p.value for p in completed}
    values = []
    index = 0
    while index in by_index:
        values.append(by_index[index])
        index += 1
    return values


def _prefix_count(completed: List[PartialResult]) -> int:
    return sum(len(value) for value in _contiguous_prefix(completed))


def _prefix_found(completed: List[PartialResult], terminal: Terminal) -> bool:
    """True once the earliest partition holding an answer is known."""
    return any(terminal.found(value) for value in _contiguous_prefix(completed))


def execute(request: ExecutionRequest, terminal: Terminal) -> Any:
    """Evaluate ``request`` with ``terminal`` using the requested strategy."""
    if request.mode is ExecutionMode.PARALLEL:
        if request.source.splittable:
            return ParallelEvaluator(request).run(terminal)
        logger.debug(f"{request.source!r} cannot be split; evaluating {terminal.name} sequentially")
    return terminal.evaluate(build_chain(request.source.cursor(), request.stages))


def element_iterator(request: ExecutionRequest) -> Iterator[Any]:
    """Lazy element iterator for sequential requests."""
    return build_chain(request.source.cursor(), request.stages)
