"""
Utility functions for the pipeline engine

Hardware parallelism lookup plus helpers for timing and memory measurement
of pipeline evaluations, including sequential vs parallel comparisons.
"""

import gc
import logging
import time
import tracemalloc
from typing import Any, Callable, Dict, List

import psutil

from models import ModeComparison, PerformanceInfo

logger = logging.getLogger(__name__)


# Measurements recorded by measure_performance, oldest first
_performance_metrics: Dict[str, Any] = {
    "operations": [],
    "total_time_ms": 0.0,
    "operation_count": 0
}


def available_parallelism() -> int:
    """Logical CPU count, falling back to 1 when it cannot be determined."""
    count = psutil.cpu_count(logical=True)
    return count if count and count > 0 else 1


def measure_performance(operation_name: str, func: Callable, *args, **kwargs) -> PerformanceInfo:
    """Run ``func`` and record its wall time and peak traced memory.

    Errors are recorded and re-raised.
    """
    tracemalloc.start()
    gc.collect()
    start_time = time.perf_counter()
    result = None
    error = None

    try:
        result = func(*args, **kwargs)
    except Exception as e:
        error = e
        raise
    finally:
        execution_time_ms = (time.perf_counter() - start_time) * 1000
        _, peak = tracemalloc.get_traced_memory()
        tracemalloc.stop()

        info = PerformanceInfo(
            operation=operation_name,
            execution_time_ms=execution_time_ms,
            memory_usage_mb=peak / 1024 / 1024,
            success=error is None,
            result_size=len(result) if hasattr(result, "__len__") else None,
            error=str(error) if error is not None else None,
            timestamp=time.time()
        )
        _performance_metrics["operations"].append(info)
        _performance_metrics["total_time_ms"] += execution_time_ms
        _performance_metrics["operation_count"] += 1
        logger.debug(f"{operation_name}: {execution_time_ms:.2f} ms, peak {info.memory_usage_mb:.2f} MB")

    return info


def last_measurement() -> PerformanceInfo:
    return _performance_metrics["operations"][-1]


def get_performance_summary() -> Dict[str, Any]:
    """Totals and averages over every recorded measurement."""
    count = _performance_metrics["operation_count"]
    total = _performance_metrics["total_time_ms"]
    return {
        "total_operations": count,
        "total_time_ms": total,
        "avg_time_ms": total / count if count else 0.0
    }


def get_recorded_operations() -> List[PerformanceInfo]:
    return list(_performance_metrics["operations"])


def clear_performance_metrics():
    """Clear all recorded measurements"""
    global _performance_metrics
    _performance_metrics = {
        "operations": [],
        "total_time_ms": 0.0,
        "operation_count": 0
    }


def compare_modes(pipeline_factory: Callable[[], Any], terminal: Callable[[Any], Any],
                  operation: str = "collect") -> ModeComparison:
    """Evaluate a freshly built pipeline sequentially, then in parallel.

    ``pipeline_factory`` must return a new pipeline on each call, since a
    pipeline can only be evaluated once.
    """
    outcomes = {}

    def run(mode: str):
        pipeline = pipeline_factory()
        pipeline = pipeline.parallel() if mode == "parallel" else pipeline.sequential()
        outcomes[mode] = terminal(pipeline)
        return outcomes[mode]

    sequential = measure_performance(f"{operation}[sequential]", run, "sequential")
    parallel = measure_performance(f"{operation}[parallel]", run, "parallel")
    comparison = ModeComparison(
        operation=operation,
        sequential=sequential,
        parallel=parallel,
        results_match=outcomes["sequential"] == outcomes["parallel"]
    )
    logger.info(
        f"{operation}: sequential {sequential.execution_time_ms:.2f} ms, "
        f"parallel {parallel.execution_time_ms:.2f} ms"
    )
    return comparison
