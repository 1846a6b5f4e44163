import operator
import threading
import time

import pytest

from errors import DuplicateKeyError, StageEvaluationError
from lazy import concat, iterate, of, range_closed, range_of, source


class TestParallelEquivalence:
    """Parallel evaluation returns what sequential evaluation returns"""

    @pytest.mark.parametrize("size", [0, 1, 7, 100, 1000])
    def test_map_filter_collect(self, settings, size):
        def build():
            return range_of(0, size, settings=settings).map(lambda x: x * 3).filter(lambda x: x % 2 == 0)

        assert build().parallel().to_list() == build().to_list()

    def test_reductions(self, settings):
        def build():
            return range_closed(1, 500, settings=settings).map(lambda x: x * x)

        assert build().parallel().sum() == build().sum()
        assert build().parallel().count() == 500
        assert build().parallel().reduce(operator.add, 0) == build().reduce(operator.add, 0)
        assert build().parallel().min() == 1
        assert build().parallel().max() == 250000

        stats = build().parallel().summary_statistics()
        assert stats.count == 500
        assert stats.sum == build().sum()

    def test_min_max_ties_keep_first(self, settings):
        pairs = [(i, i % 3) for i in range(30)]
        assert source(pairs, settings).parallel().max(key=lambda p: p[1]) == (2, 2)
        assert source(pairs, settings).parallel().min(key=lambda p: p[1]) == (0, 0)

    def test_flat_map_order(self, settings):
        result = range_of(0, 20, settings=settings).parallel().flat_map(lambda x: [x, -x]).to_list()
        assert result == [v for x in range(20) for v in (x, -x)]

    def test_grouping(self, settings, employees):
        groups = source(employees, settings).parallel().group_by(lambda e: e["department"])
        assert [e["name"] for e in groups["IT"]] == ["John Doe", "Bob Johnson", "Emily Clark"]

    def test_joining_order(self, settings):
        assert range_of(0, 10, settings=settings).parallel().joining(",") == "0,1,2,3,4,5,6,7,8,9"

    def test_unordered_results_compare_as_sets(self, settings):
        result = source(set(range(100)), settings).parallel().map(lambda x: x + 1).to_list()
        assert sorted(result) == list(range(1, 101))

        relaxed = range_of(0, 100, settings=settings).parallel().unordered().filter(lambda x: x % 10 == 0).to_list()
        assert sorted(relaxed) == list(range(0, 100, 10))

    def test_iteration_in_parallel_mode(self, settings):
        assert list(range_of(0, 50, settings=settings).parallel().map(lambda x: x + 1)) == list(range(1, 51))


class TestParallelBarriers:
    """Stateful stages behave the same after partitions are merged"""

    def test_sorted(self, settings):
        data = [(i * 37) % 101 for i in range(101)]
        assert source(data, settings).parallel().sorted().to_list() == sorted(data)
        assert source(data, settings).parallel().sorted(reverse=True).to_list() == sorted(data, reverse=True)

    def test_sorted_is_stable(self, settings):
        records = [(i % 4, i) for i in range(40)]
        result = source(records, settings).parallel().sorted(key=lambda r: r[0]).to_list()
        assert result == sorted(records, key=lambda r: r[0])

    def test_sorted_then_limit(self, settings):
        result = range_closed(1, 100, settings=settings).parallel().sorted(reverse=True).map(lambda x: x).limit(3).to_list()
        assert result == [100, 99, 98]

    def test_distinct_keeps_first_occurrence(self, settings, fruits):
        assert source(fruits, settings).parallel().distinct().to_list() == [
            "Apple", "Banana", "Orange", "Grapes", "Mango", "Peach"
        ]

    def test_limit_ordered(self, settings):
        assert range_of(0, 1000, settings=settings).parallel().filter(lambda x: x % 7 == 0).limit(5).to_list() == [
            0, 7, 14, 21, 28
        ]

    def test_limit_unordered(self, settings):
        result = source(set(range(100)), settings).parallel().limit(10).to_list()
        assert len(result) == 10
        assert set(result) <= set(range(100))

    def test_skip(self, settings):
        assert range_of(0, 100, settings=settings).parallel().skip(95).to_list() == [95, 96, 97, 98, 99]

    def test_batch(self, settings):
        assert range_of(0, 10, settings=settings).parallel().batch(3).to_list() == [
            (0, 1, 2), (3, 4, 5), (6, 7, 8), (9,)
        ]

    def test_several_barriers(self, settings):
        result = (
            source([5, 3, 5, 1, 3, 9, 7, 1], settings)
            .parallel()
            .distinct()
            .sorted()
            .skip(1)
            .limit(3)
            .to_list()
        )
        assert result == [3, 5, 7]


class TestParallelShortCircuit:
    """Short-circuit terminals cancel sibling partitions"""

    def test_find_first_is_encounter_order(self, settings):
        assert range_of(0, 1000, settings=settings).parallel().filter(lambda x: x > 500).find_first() == 501

    def test_find_first_absent(self, settings):
        assert range_of(0, 100, settings=settings).parallel().filter(lambda x: x > 500).find_first() is None

    def test_find_any(self, settings):
        assert range_of(0, 1000, settings=settings).parallel().filter(lambda x: x % 100 == 99).find_any() % 100 == 99

    def test_matches(self, settings):
        assert range_of(0, 1000, settings=settings).parallel().any_match(lambda x: x == 999) is True
        assert range_of(0, 1000, settings=settings).parallel().all_match(lambda x: x < 1000) is True
        assert range_of(0, 1000, settings=settings).parallel().none_match(lambda x: x == 3) is False
        assert range_of(0, 0, settings=settings).parallel().all_match(lambda x: False) is True

    def test_cancellation_stops_siblings(self, settings):
        seen = []
        lock = threading.Lock()

        def slow(x):
            with lock:
                seen.append(x)
            time.sleep(0.002)

        found = range_of(0, 1000, settings=settings).parallel().peek(slow).any_match(lambda x: x == 0)

        assert found is True
        assert len(seen) < 1000


class TestParallelErrors:
    """Worker failures surface to the caller"""

    def test_stage_error_surfaces(self, settings):
        with pytest.raises(StageEvaluationError) as exc_info:
            range_of(0, 100, settings=settings).parallel().map(lambda x: 1 // (x - 50)).to_list()

        assert exc_info.value.stage == "map"
        assert exc_info.value.element == 50
        assert isinstance(exc_info.value.cause, ZeroDivisionError)

    def test_to_dict_duplicate_key(self, settings):
        with pytest.raises(DuplicateKeyError):
            range_of(0, 20, settings=settings).parallel().to_dict(lambda x: x % 3)

    def test_to_dict_merge(self, settings):
        result = range_of(0, 100, settings=settings).parallel().to_dict(lambda x: x % 2, merge=operator.add)
        assert result == {0: 2450, 1: 2500}


class TestParallelSideEffects:
    """for_each and for_each_ordered under parallel evaluation"""

    def test_for_each_visits_every_element(self, settings):
        seen = []
        lock = threading.Lock()

        def record(x):
            with lock:
                seen.append(x)

        range_of(0, 200, settings=settings).parallel().for_each(record)
        assert sorted(seen) == list(range(200))

    def test_for_each_ordered(self, settings):
        seen = []
        range_of(0, 200, settings=settings).parallel().map(lambda x: x * 2).for_each_ordered(seen.append)
        assert seen == [x * 2 for x in range(200)]


class TestParallelFallback:
    """Sources that cannot be split run sequentially"""

    def test_iterator_source(self, settings):
        result = source((x for x in range(10)), settings).parallel().map(lambda x: x * 2).to_list()
        assert result == [x * 2 for x in range(10)]

    def test_iterate_source(self, settings):
        assert iterate(1, lambda x: x * 2, settings=settings).parallel().limit(5).to_list() == [1, 2, 4, 8, 16]

    def test_concat(self, settings):
        result = concat(range_of(0, 5), of(5, 6, 7), settings=settings).parallel().map(lambda x: x * 2).to_list()
        assert result == [x * 2 for x in range(8)]

    def test_concat_with_unbounded_part(self, settings):
        pipeline = concat(iterate(0, lambda x: x + 1), [100, 101], settings=settings)
        assert not pipeline._source.splittable

        assert pipeline.parallel().skip(1).limit(3).to_list() == [1, 2, 3]

    def test_concat_with_one_shot_part(self, settings):
        result = concat(of(1, 2), (x for x in (3, 4)), settings=settings).parallel().sorted(reverse=True).to_list()
        assert result == [4, 3, 2, 1]

    def test_dict_items_keep_order(self, settings):
        big = {f"k{i}": i for i in range(64)}
        result = source(big.items(), settings).parallel().map(lambda kv: kv[1]).to_list()
        assert result == list(range(64))
        assert source(big.keys(), settings).parallel().find_first() == "k0"
        assert source(big.items(), settings).parallel().limit(3).to_list() == [("k0", 0), ("k1", 1), ("k2", 2)]
