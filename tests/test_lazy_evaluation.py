import pytest

from errors import AlreadyConsumedError
from lazy import Pipeline, source


class TestLazyEvaluation:
    """Test deferred execution and pipeline reuse rules"""

    def test_deferred_execution(self):
        """Test that stages do not run until a terminal operation"""
        calls = []

        def track_calls(x):
            calls.append(x)
            return x * 2

        pipeline = source(range(10)).map(track_calls).filter(lambda x: x > 2)
        assert calls == [], "Stages should not execute during definition"

        assert pipeline.to_list() == [4, 6, 8, 10, 12, 14, 16, 18]
        assert calls == list(range(10))

    def test_limit_pulls_exactly_n(self):
        """limit(n) never pulls element n + 1 from upstream"""
        calls = []
        result = source(range(100)).map(lambda x: calls.append(x) or x * 2).limit(3).to_list()

        assert result == [0, 2, 4]
        assert calls == [0, 1, 2]

    def test_limit_zero_pulls_nothing(self):
        calls = []
        result = source(range(100)).peek(calls.append).limit(0).to_list()

        assert result == []
        assert calls == []

    def test_sorted_pulls_everything_first(self):
        """sorted() is stateful: the whole upstream is read before the first element"""
        seen = []
        first = source([3, 1, 2]).peek(seen.append).sorted().find_first()

        assert first == 1
        assert seen == [3, 1, 2]

    def test_peek_runs_before_downstream(self):
        events = []
        (
            source([1, 2, 3])
            .peek(lambda x: events.append(("peek", x)))
            .map(lambda x: events.append(("map", x)) or x)
            .to_list()
        )
        assert events == [("peek", 1), ("map", 1), ("peek", 2), ("map", 2), ("peek", 3), ("map", 3)]

    def test_short_circuit_stops_pulling(self):
        calls = []
        found = source(range(1000)).peek(calls.append).any_match(lambda x: x == 4)

        assert found is True
        assert calls == [0, 1, 2, 3, 4]

    def test_iteration_is_lazy(self):
        calls = []
        it = iter(source(range(10)).peek(calls.append))
        assert next(it) == 0
        assert calls == [0]

    def test_infinite_source_with_limit(self):
        counter = iter(range(10**9))
        assert source(counter).map(lambda x: x * x).limit(4).to_list() == [0, 1, 4, 9]


class TestPipelineReuse:
    """Test structural sharing and single-use terminals"""

    def test_stage_returns_new_pipeline(self):
        base = source([1, 2, 3])
        derived = base.map(lambda x: x + 1)

        assert derived is not base
        assert isinstance(derived, Pipeline)
        assert len(base.describe().stages) == 0
        assert len(derived.describe().stages) == 1

    def test_prefix_seeds_several_pipelines(self):
        base = source([1, 2, 3, 4]).map(lambda x: x * 10)
        evens = base.filter(lambda x: x % 20 == 0)
        shifted = base.map(lambda x: x + 1)

        assert evens.to_list() == [20, 40]
        assert shifted.to_list() == [11, 21, 31, 41]
        assert base.to_list() == [10, 20, 30, 40]

    def test_second_terminal_fails(self):
        pipeline = source([1, 2, 3]).map(lambda x: x * 2)
        assert pipeline.sum() == 12

        with pytest.raises(AlreadyConsumedError):
            pipeline.count()
        with pytest.raises(AlreadyConsumedError):
            iter(pipeline)
        assert pipeline.consumed

    def test_one_shot_source_cannot_be_pulled_twice(self):
        base = source(x for x in range(5))
        assert base.filter(lambda x: x % 2 == 0).to_list() == [0, 2, 4]

        with pytest.raises(AlreadyConsumedError):
            base.map(lambda x: x).to_list()

    def test_switching_mode_keeps_chain(self, settings):
        pipeline = source(range(6), settings).filter(lambda x: x % 2 == 1)
        parallel = pipeline.parallel()

        assert parallel.is_parallel()
        assert not pipeline.is_parallel()
        assert parallel.describe().stages == pipeline.describe().stages
        assert parallel.to_list() == [1, 3, 5]
        assert pipeline.to_list() == [1, 3, 5]

    def test_last_mode_call_wins(self, settings):
        pipeline = source(range(4), settings).parallel().map(lambda x: x + 1).sequential()
        assert not pipeline.is_parallel()
        assert pipeline.parallel().sequential().parallel().is_parallel()
