from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from nowbench.errors import ConfigurationError
from nowbench.scenarios import ScenarioLibrary

_EXPANDER_LOG = logging.getLogger("nowbench.benchmark.expander")
DEFAULT_RECORD_LIMIT = 10


@dataclass(frozen=True)
class TestUnit:
    """One (category, variant, record limit) cell of the test matrix."""

    __test__ = False

    category: str
    variant: str
    record_limit: int
    category_title: str = field(default="", compare=False)

    @property
    def unit_id(self) -> str:
        return f"{self.category}-{self.variant}-{self.record_limit}"

    @property
    def display_name(self) -> str:
        title = self.category_title or self.category
        return f"{title} - {self.variant} ({self.record_limit} records)"


@dataclass(frozen=True)
class CategoryConfig:
    record_limit: int = DEFAULT_RECORD_LIMIT
    selected_variants: tuple[str, ...] | None = None
    selected_limits: tuple[int, ...] | None = None


def _check_limit(category: str, limit) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ConfigurationError(f"Record limit for {category!r} must be a positive integer, got {limit!r}")
    return limit


def expand(
    enabled_categories: Sequence[str],
    config: Mapping[str, CategoryConfig] | None,
    library: ScenarioLibrary,
) -> list[TestUnit]:
    """
    Expand enabled categories into test units.
    ==========================================

    Units are ordered by category, then variant, then limit. Variants default
    to every variant of the category in library order, and limits default to
    the category's single ``record_limit``. Selected variant names that the
    library no longer knows are skipped.
    """
    config = config or {}
    units: list[TestUnit] = []
    for key in enabled_categories:
        category = library.get_category(key)
        if category is None:
            raise ConfigurationError(f"Unknown test category {key!r}")
        settings = config.get(key) or CategoryConfig()

        if settings.selected_variants:
            variants = list(settings.selected_variants)
        else:
            variants = category.variant_names()
        if settings.selected_limits:
            limits = [_check_limit(key, limit) for limit in settings.selected_limits]
        else:
            limits = [_check_limit(key, settings.record_limit)]

        for variant in variants:
            if variant not in category.variants:
                _EXPANDER_LOG.debug("skipping unknown variant %s in category %s", variant, key)
                continue
            for limit in limits:
                units.append(
                    TestUnit(
                        category=key,
                        variant=variant,
                        record_limit=limit,
                        category_title=category.title,
                    )
                )
    return units
