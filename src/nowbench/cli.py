"""Command line entry point: run a Table API vs GraphQL benchmark or list scenarios."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from dataclasses import replace

from nowbench._version import VERSION
from nowbench.benchmark.executor import DualStyleExecutor
from nowbench.benchmark.expander import CategoryConfig
from nowbench.benchmark.progress import LoggingReporter
from nowbench.benchmark.runner import BenchmarkRunner, RunReport
from nowbench.benchmark.trials import TrialRunner
from nowbench.config.runtime_defaults import RuntimeDefaults, get_runtime_defaults
from nowbench.errors import BenchmarkError, ConfigurationError
from nowbench.export.report import write_report_json, write_results_parquet
from nowbench.scenarios import ScenarioLibrary, check_library, load_scenario_library
from nowbench.service.auth import AuthSession, SessionTokenManager, StaticTokenProvider
from nowbench.service.gateway import AuthGateway
from nowbench.service.transport import build_session, resolve_timeout
from nowbench.util.deps import require_polars
from nowbench.util.json import json_backend
from nowbench.util.logging import configure_cli_logging

PASSWORD_ENV_VAR = "NOWBENCH_PASSWORD"
TOKEN_ENV_VAR = "NOWBENCH_TOKEN"
_CLI_LOG = logging.getLogger("nowbench.cli")


def parse_name_list(text: str | None) -> tuple[str, ...] | None:
    if text is None:
        return None
    values = tuple(chunk.strip() for chunk in text.split(",") if chunk.strip())
    return values or None


def parse_limits(text: str | None) -> tuple[int, ...] | None:
    if text is None:
        return None
    values: list[int] = []
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            value = int(chunk)
        except ValueError:
            raise ConfigurationError(f"Invalid record limit: {chunk!r}") from None
        if value <= 0:
            raise ConfigurationError(f"Invalid record limit: {value}")
        values.append(value)
    return tuple(values) or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nowbench", description=__doc__)
    parser.add_argument(
        "--version", action="version", version=f"nowbench {VERSION} (json backend: {json_backend()})"
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity.")
    parser.add_argument("--scenarios", default=None, help="Scenario library TOML (defaults to the packaged one).")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Benchmark both API styles against an instance.")
    run.add_argument("--instance-url", required=True, help="Base URL, e.g. https://dev12345.service-now.com")
    run.add_argument("--username", default=None)
    run.add_argument("--password", default=None, help=f"Basic auth password (or set {PASSWORD_ENV_VAR}).")
    run.add_argument("--token", default=None, help=f"Fixed session token (or set {TOKEN_ENV_VAR}).")
    run.add_argument(
        "--token-endpoint",
        default=None,
        help="Fetch session tokens from this path on the instance instead of using basic auth.",
    )
    run.add_argument(
        "--category",
        action="append",
        default=None,
        help="Category key to run; repeat for several. Defaults to every category.",
    )
    run.add_argument("--variants", default=None, help="Comma-separated variant names for every category.")
    run.add_argument("--limits", default=None, help="Comma-separated record limits, e.g. 10,50,100.")
    run.add_argument("--record-limit", type=int, default=None, help="Single record limit when --limits is unset.")
    run.add_argument("--iterations", type=int, default=None, help="Trials per style for single-table units.")
    run.add_argument("--composite-iterations", type=int, default=None, help="Trials per call for multi-table units.")
    run.add_argument("--settle-delay-ms", type=int, default=None, help="Pause between trials.")
    run.add_argument("--connect-timeout", type=float, default=None, help="Seconds to wait for a connection.")
    run.add_argument("--read-timeout", type=float, default=None, help="Seconds to wait for a response.")
    run.add_argument("--proxy-url", default=None, help="HTTP(S) proxy (or set NOWBENCH_PROXY_URL).")
    run.add_argument("--json", dest="json_path", default=None, help="Write the full report as JSON.")
    run.add_argument("--parquet", dest="parquet_path", default=None, help="Write per-unit rows as Parquet (polars).")
    run.add_argument("--include-bodies", action="store_true", help="Keep response bodies in the JSON report.")

    sub.add_parser("scenarios", help="List categories and variants in the scenario library.")
    sub.add_parser("check", help="Validate every scenario in the library without sending requests.")
    return parser


def resolve_runtime_defaults(args: argparse.Namespace, base: RuntimeDefaults | None = None) -> RuntimeDefaults:
    defaults = base or get_runtime_defaults()
    trial = defaults.trial_defaults
    if args.iterations is not None:
        trial = replace(trial, single_resource_iterations=args.iterations)
    if args.composite_iterations is not None:
        trial = replace(trial, composite_iterations=args.composite_iterations)
    if args.settle_delay_ms is not None:
        if args.settle_delay_ms < 0:
            raise ConfigurationError("--settle-delay-ms must be >= 0")
        trial = replace(trial, settle_delay_ms=args.settle_delay_ms)
    service = defaults.service_defaults
    if args.connect_timeout is not None:
        service = replace(service, default_connect_timeout_seconds=args.connect_timeout)
    if args.read_timeout is not None:
        service = replace(service, default_request_timeout_seconds=args.read_timeout)
    return replace(defaults, trial_defaults=trial, service_defaults=service)


def build_category_config(args: argparse.Namespace, categories) -> dict[str, CategoryConfig]:
    variants = parse_name_list(args.variants)
    limits = parse_limits(args.limits)
    record_limit = args.record_limit if args.record_limit is not None else CategoryConfig().record_limit
    return {
        key: CategoryConfig(record_limit=record_limit, selected_variants=variants, selected_limits=limits)
        for key in categories
    }


def build_runner(args: argparse.Namespace, library: ScenarioLibrary, defaults: RuntimeDefaults) -> BenchmarkRunner:
    service = defaults.service_defaults
    auth = defaults.auth_defaults
    try:
        timeout = resolve_timeout(service.default_connect_timeout_seconds, service.default_request_timeout_seconds)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    http_session = build_session(proxy_url=args.proxy_url, retry_total=service.default_http_retry_total)
    base_url = args.instance_url.rstrip("/")

    token = args.token or os.getenv(TOKEN_ENV_VAR, "").strip() or None
    token_provider = None
    if args.token_endpoint or (token is None and args.username is None):
        endpoint = args.token_endpoint or auth.token_endpoint
        token_provider = SessionTokenManager(
            http_session,
            f"{base_url}/{endpoint.lstrip('/')}",
            cache_seconds=auth.token_cache_seconds,
            refresh_threshold_seconds=auth.token_refresh_threshold_seconds,
            timeout=timeout,
        )
        session = AuthSession.from_token(base_url, "")
    elif token is not None:
        token_provider = StaticTokenProvider(token)
        session = AuthSession.from_token(base_url, token)
    else:
        password = args.password or os.getenv(PASSWORD_ENV_VAR)
        if not password:
            raise ConfigurationError(f"A password is required with --username (use --password or {PASSWORD_ENV_VAR})")
        session = AuthSession.from_credentials(base_url, args.username, password)

    gateway = AuthGateway(
        http_session,
        token_provider,
        max_auth_retries=auth.max_auth_retries,
        timeout=timeout,
    )
    trials = TrialRunner(gateway, settle_delay_seconds=defaults.trial_defaults.settle_delay_ms / 1000.0)
    executor = DualStyleExecutor(
        trials,
        session,
        trial_defaults=defaults.trial_defaults,
        builder_defaults=defaults.builder_defaults,
        service_defaults=service,
    )
    return BenchmarkRunner(executor, library, reporter=LoggingReporter())


def format_summary(report: RunReport) -> str:
    totals = report.totals
    lines = [f"job {report.job_id}: {totals.units_completed} units completed, {len(report.failed_units)} failed"]
    if report.cancelled:
        lines.append("run was cancelled before all units finished")
    for result in report.results:
        lines.append(
            f"  {result.display_name}: winner={result.winner.value} "
            f"rest={result.rest.duration_ms:.1f}ms graphql={result.graphql.duration_ms:.1f}ms "
            f"equivalent={result.comparison.is_equivalent}"
        )
    for failure in report.failed_units:
        lines.append(f"  {failure.display_name}: FAILED ({failure.code}) {failure.message}")
    lines.append(
        f"REST wins {totals.rest_wins}, GraphQL wins {totals.graphql_wins}, ties {totals.ties}; "
        f"avg REST {totals.average_duration_rest_ms:.1f}ms, avg GraphQL {totals.average_duration_graphql_ms:.1f}ms; "
        f"success rate {totals.success_rate:.0f}%"
    )
    return "\n".join(lines)


def format_library(library: ScenarioLibrary) -> str:
    lines = []
    for category in library:
        lines.append(f"{category.key}: {category.title}")
        for name, scenario in category.variants.items():
            limits = ",".join(str(limit) for limit in scenario.suggested_limits) or "-"
            lines.append(f"  {name} [{scenario.kind}] limits={limits} {scenario.description}".rstrip())
    return "\n".join(lines)


def format_checks(checks) -> str:
    lines = []
    for check in checks:
        status = "ok" if check.valid else "INVALID"
        lines.append(f"{check.category}.{check.variant} [{check.kind}] {status} complexity={check.complexity_score}")
        for field_name, message in check.errors:
            lines.append(f"  error {field_name}: {message}")
        for warning in check.warnings:
            lines.append(f"  warning {warning}")
    valid = sum(1 for check in checks if check.valid)
    lines.append(f"{valid}/{len(checks)} scenarios valid")
    return "\n".join(lines)


def _run_command(args: argparse.Namespace, library: ScenarioLibrary) -> int:
    if args.parquet_path:
        try:
            require_polars("--parquet")
        except ImportError as exc:
            raise ConfigurationError(str(exc)) from exc
    defaults = resolve_runtime_defaults(args)
    categories = args.category or library.category_keys()
    config = build_category_config(args, categories)
    runner = build_runner(args, library, defaults)

    def _request_stop(signum, frame):
        _CLI_LOG.warning("stop requested; finishing the current unit")
        runner.stop()

    previous = signal.signal(signal.SIGINT, _request_stop)
    try:
        report = runner.run(categories, config)
    finally:
        signal.signal(signal.SIGINT, previous)

    print(format_summary(report))
    if args.json_path:
        write_report_json(report, args.json_path, include_bodies=args.include_bodies)
    if args.parquet_path:
        write_results_parquet(report, args.parquet_path)
    return 1 if report.failed_units else 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_cli_logging(args.verbose)
    try:
        library = load_scenario_library(args.scenarios)
        if args.command == "scenarios":
            print(format_library(library))
            return 0
        if args.command == "check":
            builder = get_runtime_defaults().builder_defaults
            checks = check_library(
                library,
                validation_limit=builder.validation_record_limit,
                validation_complexity=builder.validation_query_complexity,
                max_calls=builder.max_composite_calls,
            )
            print(format_checks(checks))
            return 0 if all(check.valid for check in checks) else 1
        return _run_command(args, library)
    except BenchmarkError as exc:
        print(f"error: {exc.user_message()}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
