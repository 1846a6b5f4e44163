"""
Terminal operations.

Each terminal knows how to consume a whole element iterator (sequential
evaluation), how to produce a partial result for one partition, and how to
combine partials. Short-circuiting terminals also report when a single
partial already decides the answer so sibling partitions can be cancelled.
"""

from itertools import chain
from typing import Any, Callable, Iterator, List

from collectors import Collector
from stages import invoke


_ABSENT = object()


class Terminal:
    name = "terminal"
    short_circuit = False
    # The answer depends on which partition comes first in encounter order
    positional = False

    def evaluate(self, it: Iterator[Any]) -> Any:
        return self.combine([self.partial(it)])

    def partial(self, it: Iterator[Any]) -> Any:
        raise NotImplementedError

    def combine(self, partials: List[Any]) -> Any:
        raise NotImplementedError

    def decided(self, partial: Any) -> bool:
        return False

    def found(self, partial: Any) -> bool:
        """For positional terminals: whether the partition produced the answer."""
        return False


class CollectTerminal(Terminal):
    """Mutable reduction through a Collector."""

    def __init__(self, collector: Collector):
        self.collector = collector
        self.name = collector.name

    def evaluate(self, it):
        return self.collector.collect(it)

    def partial(self, it):
        return self.collector.accumulate(it)

    def combine(self, partials):
        return self.collector.merge(partials)


class MatchTerminal(Terminal):
    """any_match / all_match / none_match."""
    short_circuit = True

    def __init__(self, predicate: Callable, kind: str):
        if kind not in ("any", "all", "none"):
            raise ValueError(f"Unknown match kind: {kind}")
        self.predicate = predicate
        self.kind = kind
        self.name = f"{kind}_match"

    def partial(self, it):
        hits = (bool(invoke(self.name, self.predicate, x)) for x in it)
        if self.kind == "any":
            return any(hits)
        elif self.kind == "all":
            return all(hits)
        return not any(hits)

    def combine(self, partials):
        if self.kind == "any":
            return any(partials)
        return all(partials)

    def decided(self, partial):
        return partial if self.kind == "any" else not partial


class FindTerminal(Terminal):
    """find_first (positional) and find_any."""
    short_circuit = True

    def __init__(self, first: bool, default: Any = None):
        self.positional = first
        self.default = default
        self.name = "find_first" if first else "find_any"

    def partial(self, it):
        return next(it, _ABSENT)

    def combine(self, partials):
        for partial in partials:
            if partial is not _ABSENT:
                return partial
        return self.default

    def decided(self, partial):
        return partial is not _ABSENT

    def found(self, partial):
        return partial is not _ABSENT


class ForEachTerminal(Terminal):
    """Side effect per element; partitions run the action concurrently."""
    name = "for_each"

    def __init__(self, action: Callable):
        self.action = action

    def partial(self, it):
        for x in it:
            invoke(self.name, self.action, x)
        return None

    def combine(self, partials):
        return None


class ForEachOrderedTerminal(Terminal):
    """Side effect per element in encounter order, whatever the execution mode."""
    name = "for_each_ordered"

    def __init__(self, action: Callable):
        self.action = action

    def evaluate(self, it):
        for x in it:
            invoke(self.name, self.action, x)

    def partial(self, it):
        return list(it)

    def combine(self, partials):
        self.evaluate(chain.from_iterable(partials))
