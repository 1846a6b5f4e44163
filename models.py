"""Models for the pipeline engine (settings, descriptors, statistics)."""

import logging
import os
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


Number = Union[int, float]


class StageKind(str, Enum):
    """Intermediate operation kinds."""
    FILTER = "filter"
    MAP = "map"
    FLAT_MAP = "flat_map"
    SORTED = "sorted"
    DISTINCT = "distinct"
    LIMIT = "limit"
    SKIP = "skip"
    PEEK = "peek"
    UNORDERED = "unordered"
    BATCH = "batch"


# Stages that need every upstream element (or global positions) before the
# next stage can run; parallel evaluation merges partitions at each of them.
BARRIER_STAGES = frozenset({
    StageKind.SORTED,
    StageKind.DISTINCT,
    StageKind.LIMIT,
    StageKind.SKIP,
    StageKind.BATCH,
})


class ExecutionMode(str, Enum):
    """How a terminal operation drives the pipeline."""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class OrderingTag(str, Enum):
    """Whether encounter order must survive evaluation and merge."""
    ORDERED = "ordered"
    UNORDERED = "unordered"


class EngineSettings(BaseModel):
    """Worker pool and partitioning configuration."""
    model_config = ConfigDict(frozen=True)

    max_workers: Optional[int] = Field(
        None,
        ge=1,
        description="Worker threads for parallel evaluation (default: hardware parallelism)"
    )
    min_partition_size: int = Field(
        default=1,
        ge=1,
        description="Partitions are not split below this many elements"
    )
    partitions_per_worker: int = Field(
        default=4,
        ge=1,
        description="Target number of partitions per worker thread"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level used by the demo entry point"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Accept standard logging level names only."""
        level = str(v).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineSettings":
        """Build settings from PIPELINE_* environment variables."""
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for field_name in ("max_workers", "min_partition_size", "partitions_per_worker", "log_level"):
            raw = env.get(f"PIPELINE_{field_name.upper()}")
            if raw not in (None, ""):
                values[field_name] = raw
        return cls(**values)


class StageDescriptor(BaseModel):
    """Read-only view of one stage."""
    kind: StageKind = Field(..., description="Stage kind")
    param: Optional[Any] = Field(None, description="Count or size parameter, if any")
    has_function: bool = Field(default=False, description="Whether the stage carries a user function")


class PipelineDescriptor(BaseModel):
    """Read-only view of a pipeline chain."""
    source: str = Field(..., description="Source type name")
    stages: List[StageDescriptor] = Field(default_factory=list, description="Stages from source to tail")
    ordering: OrderingTag = Field(..., description="Pipeline ordering tag")
    mode: ExecutionMode = Field(..., description="Execution mode for the next terminal operation")
    consumed: bool = Field(default=False, description="Whether a terminal operation already ran")


class SummaryStatistics(BaseModel):
    """Running count, sum, min, max and average over numbers."""
    count: int = Field(default=0, ge=0, description="Number of values seen")
    sum: Number = Field(default=0, description="Sum of values seen")
    min: Optional[Number] = Field(None, description="Smallest value, None when empty")
    max: Optional[Number] = Field(None, description="Largest value, None when empty")

    @property
    def average(self) -> float:
        return self.sum / self.count if self.count else 0.0

    def accept(self, value: Number) -> None:
        self.count += 1
        self.sum += value
        if self.min is None or value < self.min:
            self.min = value
        if self.max is None or value > self.max:
            self.max = value

    def combine(self, other: "SummaryStatistics") -> "SummaryStatistics":
        if other.count:
            self.count += other.count
            self.sum += other.sum
            if self.min is None or other.min < self.min:
                self.min = other.min
            if self.max is None or other.max > self.max:
                self.max = other.max
        return self


class PerformanceInfo(BaseModel):
    """Timing and memory for one measured call."""
    operation: str = Field(..., description="Operation name")
    execution_time_ms: float = Field(..., description="Wall time in milliseconds")
    memory_usage_mb: float = Field(..., description="Peak traced memory in MB")
    success: bool = Field(..., description="Whether the call returned normally")
    result_size: Optional[int] = Field(None, description="len() of the result, when it has one")
    error: Optional[str] = Field(None, description="Error message if the call raised")
    timestamp: float = Field(..., description="Unix time when the measurement finished")


class ModeComparison(BaseModel):
    """Sequential vs parallel timing for the same pipeline."""
    operation: str = Field(..., description="Terminal operation name")
    sequential: PerformanceInfo = Field(..., description="Sequential run")
    parallel: PerformanceInfo = Field(..., description="Parallel run")
    results_match: bool = Field(..., description="Whether both modes returned equal results")

    @property
    def speedup(self) -> float:
        if self.parallel.execution_time_ms <= 0:
            return 0.0
        return self.sequential.execution_time_ms / self.parallel.execution_time_ms
