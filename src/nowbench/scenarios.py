"""
Scenario library
================

A library maps category keys to :class:`Category` values, each holding an
ordered set of named variants. A variant is either a
:class:`SingleResourceScenario` (one table fetched by both styles) or a
:class:`CompositeScenario` (several Table API calls against one GraphQL
document). Library order is preserved from the source file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Union

from nowbench.config.loader import load_scenario_library_detailed
from nowbench.errors import ConfigurationError
from nowbench.query.builder import (
    build_graphql_request,
    build_table_request,
    query_complexity,
    validate_composite_scenario,
)
from nowbench.util.logging import log_structured_event

_SCENARIO_LOG = logging.getLogger("nowbench.scenarios")
SCENARIO_LIBRARY_SCHEMA_VERSION = 1
_SINGLE_KIND = "single"
_COMPOSITE_KIND = "composite"


@dataclass(frozen=True)
class ResourceCall:
    table: str
    fields: tuple[str, ...]
    filter: str = ""


@dataclass(frozen=True)
class SingleResourceScenario:
    name: str
    table: str
    fields: tuple[str, ...]
    filter: str = ""
    description: str = ""
    suggested_limits: tuple[int, ...] = ()

    @property
    def kind(self) -> str:
        return _SINGLE_KIND


@dataclass(frozen=True)
class CompositeScenario:
    name: str
    calls: tuple[ResourceCall, ...]
    tables: tuple[str, ...] = ()
    description: str = ""
    suggested_limits: tuple[int, ...] = ()

    @property
    def kind(self) -> str:
        return _COMPOSITE_KIND


ScenarioSpec = Union[SingleResourceScenario, CompositeScenario]


@dataclass(frozen=True)
class Category:
    key: str
    title: str
    description: str = ""
    variants: Mapping[str, ScenarioSpec] = field(default_factory=dict)

    def variant_names(self) -> list[str]:
        return list(self.variants)


class ScenarioLibrary:
    def __init__(self, categories=()):
        self._categories: dict[str, Category] = {}
        for category in categories:
            self._categories[category.key] = category

    def __contains__(self, key) -> bool:
        return key in self._categories

    def __iter__(self):
        return iter(self._categories.values())

    def __len__(self) -> int:
        return len(self._categories)

    def category_keys(self) -> list[str]:
        return list(self._categories)

    def get_category(self, key: str) -> Category | None:
        return self._categories.get(key)

    def get_scenario(self, category: str, variant: str) -> ScenarioSpec | None:
        entry = self._categories.get(category)
        if entry is None:
            return None
        return entry.variants.get(variant)


def _string_tuple(raw, where: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str) or not isinstance(raw, (list, tuple)):
        raise ConfigurationError(f"{where} must be a list of strings")
    return tuple(str(item) for item in raw)


def _limit_tuple(raw, where: str) -> tuple[int, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)) or not all(isinstance(item, int) and not isinstance(item, bool) for item in raw):
        raise ConfigurationError(f"{where} must be a list of integers")
    return tuple(raw)


def _parse_call(raw, where: str) -> ResourceCall:
    if not isinstance(raw, Mapping) or not raw.get("table"):
        raise ConfigurationError(f"{where} needs a table")
    return ResourceCall(
        table=str(raw["table"]),
        fields=_string_tuple(raw.get("fields"), f"{where}.fields"),
        filter=str(raw.get("filter") or ""),
    )


def parse_scenario(name: str, raw: Mapping[str, Any], *, where: str = "") -> ScenarioSpec:
    where = where or name
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where} must be a table")
    kind = str(raw.get("kind") or (_COMPOSITE_KIND if "calls" in raw else _SINGLE_KIND))
    description = str(raw.get("description") or "")
    limits = _limit_tuple(raw.get("suggested_limits"), f"{where}.suggested_limits")
    if kind == _SINGLE_KIND:
        if not raw.get("table"):
            raise ConfigurationError(f"{where} needs a table")
        return SingleResourceScenario(
            name=name,
            table=str(raw["table"]),
            fields=_string_tuple(raw.get("fields"), f"{where}.fields"),
            filter=str(raw.get("filter") or ""),
            description=description,
            suggested_limits=limits,
        )
    if kind == _COMPOSITE_KIND:
        calls_raw = raw.get("calls") or []
        if not isinstance(calls_raw, list):
            raise ConfigurationError(f"{where}.calls must be a list")
        return CompositeScenario(
            name=name,
            calls=tuple(_parse_call(call, f"{where}.calls[{index}]") for index, call in enumerate(calls_raw)),
            tables=_string_tuple(raw.get("tables"), f"{where}.tables"),
            description=description,
            suggested_limits=limits,
        )
    raise ConfigurationError(f"{where} has unknown kind {kind!r}")


def parse_scenario_library(payload: Mapping[str, Any] | None) -> ScenarioLibrary:
    root = payload if isinstance(payload, Mapping) else {}
    meta = root.get("meta") if isinstance(root.get("meta"), Mapping) else {}
    version = meta.get("schema_version", SCENARIO_LIBRARY_SCHEMA_VERSION)
    if version != SCENARIO_LIBRARY_SCHEMA_VERSION:
        raise ConfigurationError(f"Unsupported scenario library schema_version {version!r}")

    categories_raw = root.get("categories") or {}
    if not isinstance(categories_raw, Mapping):
        raise ConfigurationError("categories must be a table keyed by category name")
    categories = []
    for key, raw in categories_raw.items():
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"category {key!r} must be a table")
        variants_raw = raw.get("variants") or {}
        if not isinstance(variants_raw, Mapping):
            raise ConfigurationError(f"category {key!r} variants must be a table")
        variants = {
            str(name): parse_scenario(str(name), spec, where=f"{key}.{name}")
            for name, spec in variants_raw.items()
        }
        categories.append(
            Category(
                key=str(key),
                title=str(raw.get("title") or key),
                description=str(raw.get("description") or ""),
                variants=variants,
            )
        )
    return ScenarioLibrary(categories)


def load_scenario_library(path: Path | str | None = None) -> ScenarioLibrary:
    result = load_scenario_library_detailed(Path(path) if path is not None else None)
    if not result.get("ok", False):
        raise ConfigurationError(
            f"Could not load scenario library from {result.get('path')} ({result.get('error_kind')})"
        )
    library = parse_scenario_library(result.get("payload"))
    log_structured_event(
        _SCENARIO_LOG,
        logging.DEBUG,
        "scenario_library_loaded",
        source=result.get("source"),
        path=result.get("path"),
        categories=len(library),
    )
    return library


@dataclass(frozen=True)
class ScenarioCheck:
    category: str
    variant: str
    kind: str
    valid: bool
    errors: tuple[tuple[str, str], ...] = ()
    warnings: tuple[str, ...] = ()
    complexity_score: int = 0


def check_library(
    library: ScenarioLibrary,
    *,
    validation_limit: int = 50,
    validation_complexity: int = 1000,
    max_calls: int = 10,
) -> list[ScenarioCheck]:
    """Dry-run request validation for every variant, without touching the network."""
    checks = []
    for category in library:
        for name, scenario in category.variants.items():
            if isinstance(scenario, CompositeScenario):
                result = validate_composite_scenario(
                    scenario.calls,
                    scenario.tables,
                    validation_limit=validation_limit,
                    validation_complexity=validation_complexity,
                    max_calls=max_calls,
                )
                checks.append(
                    ScenarioCheck(
                        category=category.key,
                        variant=name,
                        kind=scenario.kind,
                        valid=result.valid,
                        errors=result.errors,
                        warnings=result.warnings,
                        complexity_score=result.complexity_score,
                    )
                )
                continue
            errors = (
                *build_table_request(scenario.table, scenario.fields, scenario.filter, validation_limit).errors,
                *build_graphql_request(scenario.table, scenario.fields, scenario.filter, validation_limit).errors,
            )
            checks.append(
                ScenarioCheck(
                    category=category.key,
                    variant=name,
                    kind=scenario.kind,
                    valid=not errors,
                    errors=tuple(errors),
                    complexity_score=query_complexity([ResourceCall(scenario.table, scenario.fields, scenario.filter)]),
                )
            )
    return checks
