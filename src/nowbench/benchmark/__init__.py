from nowbench.benchmark.executor import DualStyleExecutor, UnitResult
from nowbench.benchmark.expander import CategoryConfig, TestUnit, expand
from nowbench.benchmark.progress import (
    AggregateEvent,
    LoggingReporter,
    NullReporter,
    ProgressReporter,
    QueueReporter,
    RecordingReporter,
    UnitStatus,
    UnitStatusEvent,
)
from nowbench.benchmark.runner import BenchmarkRunner, FailedUnit, RunReport
from nowbench.benchmark.trials import TrialMeasurement, TrialRunner, median_duration
from nowbench.benchmark.verdict import RunningTotals, Winner, decide_winner, fold

__all__ = [
    "AggregateEvent",
    "BenchmarkRunner",
    "CategoryConfig",
    "DualStyleExecutor",
    "FailedUnit",
    "LoggingReporter",
    "NullReporter",
    "ProgressReporter",
    "QueueReporter",
    "RecordingReporter",
    "RunReport",
    "RunningTotals",
    "TestUnit",
    "TrialMeasurement",
    "TrialRunner",
    "UnitResult",
    "UnitStatus",
    "UnitStatusEvent",
    "Winner",
    "decide_winner",
    "expand",
    "fold",
    "median_duration",
]
