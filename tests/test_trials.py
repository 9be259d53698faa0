import pytest

from nowbench.benchmark import trials as trials_mod
from nowbench.benchmark.trials import TrialRunner, median_duration, require_iterations
from nowbench.errors import ConfigurationError, NetworkError
from nowbench.query.builder import build_graphql_request, build_table_request
from nowbench.service.auth import AuthSession
from tests.fakes import FakeClock, ScriptedGateway, rest_body

SESSION = AuthSession.from_credentials("https://dev.example.com", "admin", "pw")


def _runner(gateway, clock, sleeps=None):
    sleeper = sleeps.append if sleeps is not None else (lambda seconds: None)
    return TrialRunner(gateway, settle_delay_seconds=0.1, sleep=sleeper, clock=clock)


def test_median_duration_picks_middle_of_sorted_values():
    assert median_duration([30, 10, 20]) == 20
    assert median_duration([0, 0, 50]) == 0
    assert median_duration([5]) == 5


def test_median_duration_uses_upper_middle_for_even_counts():
    assert median_duration([10, 20]) == 20
    assert median_duration([40, 10, 30, 20]) == 30


def test_median_duration_of_nothing_is_zero():
    assert median_duration([]) == 0.0


@pytest.mark.parametrize("value", [0, -1, 1.5, True, "3", None])
def test_require_iterations_rejects_non_positive_integers(value):
    with pytest.raises(ConfigurationError):
        require_iterations(value)


def test_run_rejects_zero_iterations_before_any_request():
    clock = FakeClock()
    gateway = ScriptedGateway(clock, {"rest": [10]})

    with pytest.raises(ConfigurationError):
        _runner(gateway, clock).run(build_table_request("incident", ["number"], limit=10), 0, session=SESSION)

    assert gateway.calls == []


def test_run_records_each_attempt_and_reports_median():
    clock = FakeClock()
    body = rest_body({"number": "INC001", "sys_id": "a1"})
    gateway = ScriptedGateway(clock, {"rest": [30, 10, 20]}, {"rest": body})
    sleeps = []

    measurement, session = _runner(gateway, clock, sleeps).run(
        build_table_request("incident", ["number"], limit=10),
        3,
        session=SESSION,
    )

    assert measurement.success is True
    assert measurement.all_durations_ms == pytest.approx((30, 10, 20))
    assert measurement.duration_ms == pytest.approx(20)
    assert measurement.response_body == body
    assert measurement.payload_size_bytes > 0
    assert measurement.errors == ()
    assert measurement.request_count == 1
    assert len(gateway.calls) == 3
    assert sleeps == [0.1, 0.1]
    assert session is SESSION


def test_run_single_iteration_never_sleeps():
    clock = FakeClock()
    gateway = ScriptedGateway(clock, {"graphql": [12]})
    sleeps = []

    measurement, _ = _runner(gateway, clock, sleeps).run(
        build_graphql_request("incident", ["number"], limit=5),
        1,
        session=SESSION,
    )

    assert measurement.all_durations_ms == pytest.approx((12,))
    assert sleeps == []


def test_failed_attempt_counts_as_zero_and_marks_failure():
    clock = FakeClock()
    gateway = ScriptedGateway(clock, {"rest": [10, NetworkError("connection reset"), 30]})

    measurement, _ = _runner(gateway, clock).run(
        build_table_request("incident", ["number"], limit=10),
        3,
        session=SESSION,
    )

    assert measurement.success is False
    assert measurement.all_durations_ms == pytest.approx((10, 0, 30))
    assert measurement.duration_ms == pytest.approx(10)
    assert measurement.errors == ("connection reset",)


def test_failed_last_attempt_leaves_no_body():
    clock = FakeClock()
    gateway = ScriptedGateway(clock, {"rest": [10, NetworkError("timed out")]}, {"rest": rest_body()})

    measurement, _ = _runner(gateway, clock).run(
        build_table_request("incident", ["number"], limit=10),
        2,
        session=SESSION,
    )

    assert measurement.response_body is None
    assert measurement.payload_size_bytes == 0


def test_progress_callback_sees_every_attempt_before_it_runs():
    clock = FakeClock()
    gateway = ScriptedGateway(clock, {"rest": [1]})
    seen = []

    def on_progress(attempt, total):
        seen.append((attempt, total, len(gateway.calls)))

    _runner(gateway, clock).run(build_table_request("incident", limit=1), 3, on_progress, session=SESSION)

    assert seen == [(1, 3, 0), (2, 3, 1), (3, 3, 2)]


def test_payload_sizing_is_not_part_of_the_measured_duration(monkeypatch):
    clock = FakeClock()
    body = rest_body({"number": "INC001", "sys_id": "a1"})
    gateway = ScriptedGateway(clock, {"rest": [0]}, {"rest": body})

    def slow_size(payload):
        clock.advance(0.05)
        return 42

    monkeypatch.setattr(trials_mod, "serialized_size", slow_size)

    measurement, _ = _runner(gateway, clock).run(build_table_request("incident", ["number"], limit=10), 1, session=SESSION)

    assert measurement.duration_ms == 0.0
    assert measurement.payload_size_bytes == 42


def test_payload_size_is_the_compact_json_length_of_the_last_body():
    clock = FakeClock()
    body = rest_body({"number": "INC001", "sys_id": "a1"})
    gateway = ScriptedGateway(clock, {"rest": [5]}, {"rest": body})

    measurement, _ = _runner(gateway, clock).run(build_table_request("incident", ["number"], limit=10), 1, session=SESSION)

    assert measurement.payload_size_bytes == len(b'{"result":[{"number":"INC001","sys_id":"a1"}]}')
