from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from nowbench.benchmark.trials import TrialMeasurement

if TYPE_CHECKING:
    from nowbench.benchmark.executor import UnitResult


class Winner(str, enum.Enum):
    REST = "rest"
    GRAPHQL = "graphql"
    TIE = "tie"


def decide_winner(rest: TrialMeasurement, graphql: TrialMeasurement) -> Winner:
    if rest.success and (not graphql.success or rest.duration_ms < graphql.duration_ms):
        return Winner.REST
    if graphql.success and (not rest.success or graphql.duration_ms < rest.duration_ms):
        return Winner.GRAPHQL
    return Winner.TIE


def _ratio(total: float, count: int) -> float:
    if count <= 0:
        return 0.0
    return total / count


@dataclass(frozen=True)
class RunningTotals:
    """
    Aggregate over completed units. Averages and the success rate are derived
    on read and are ``0`` until a unit has been folded in.
    """

    units_completed: int = 0
    rest_wins: int = 0
    graphql_wins: int = 0
    sum_duration_rest_ms: float = 0.0
    sum_duration_graphql_ms: float = 0.0
    sum_payload_rest_bytes: int = 0
    sum_payload_graphql_bytes: int = 0

    @property
    def ties(self) -> int:
        return self.units_completed - self.rest_wins - self.graphql_wins

    @property
    def average_duration_rest_ms(self) -> float:
        return _ratio(self.sum_duration_rest_ms, self.units_completed)

    @property
    def average_duration_graphql_ms(self) -> float:
        return _ratio(self.sum_duration_graphql_ms, self.units_completed)

    @property
    def average_payload_rest_bytes(self) -> float:
        return _ratio(self.sum_payload_rest_bytes, self.units_completed)

    @property
    def average_payload_graphql_bytes(self) -> float:
        return _ratio(self.sum_payload_graphql_bytes, self.units_completed)

    @property
    def success_rate(self) -> float:
        # Share of units that produced a decisive verdict.
        return _ratio((self.rest_wins + self.graphql_wins) * 100.0, self.units_completed)

    def as_dict(self) -> dict[str, float | int]:
        return {
            "units_completed": self.units_completed,
            "rest_wins": self.rest_wins,
            "graphql_wins": self.graphql_wins,
            "ties": self.ties,
            "sum_duration_rest_ms": self.sum_duration_rest_ms,
            "sum_duration_graphql_ms": self.sum_duration_graphql_ms,
            "sum_payload_rest_bytes": self.sum_payload_rest_bytes,
            "sum_payload_graphql_bytes": self.sum_payload_graphql_bytes,
            "average_duration_rest_ms": self.average_duration_rest_ms,
            "average_duration_graphql_ms": self.average_duration_graphql_ms,
            "average_payload_rest_bytes": self.average_payload_rest_bytes,
            "average_payload_graphql_bytes": self.average_payload_graphql_bytes,
            "success_rate": self.success_rate,
        }


def fold(result: "UnitResult", totals: RunningTotals) -> RunningTotals:
    """Add one unit result. Not idempotent: folding a result twice counts it twice."""
    return replace(
        totals,
        units_completed=totals.units_completed + 1,
        rest_wins=totals.rest_wins + (1 if result.winner is Winner.REST else 0),
        graphql_wins=totals.graphql_wins + (1 if result.winner is Winner.GRAPHQL else 0),
        sum_duration_rest_ms=totals.sum_duration_rest_ms + result.rest.duration_ms,
        sum_duration_graphql_ms=totals.sum_duration_graphql_ms + result.graphql.duration_ms,
        sum_payload_rest_bytes=totals.sum_payload_rest_bytes + result.rest.payload_size_bytes,
        sum_payload_graphql_bytes=totals.sum_payload_graphql_bytes + result.graphql.payload_size_bytes,
    )
