"""Request parameters for the grouped performance view."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from llmbench_data.analysis.filters import FilterParams
from llmbench_data.analysis.hardware import HardwareCategory, parse_hardware_categories
from llmbench_data.records.scores import DEFAULT_BENCHMARK

logger = logging.getLogger(__name__)

_FLOAT_PARAMS = ("min_quality", "max_memory_gb", "min_speed")
_KNOWN_PARAMS = frozenset(
    {"benchmark", "sort_by", "sort_direction", "hardware_categories", *_FLOAT_PARAMS}
)


def _optional_float(name: str, raw: Any) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e


def _optional_str(raw: Any) -> str | None:
    if raw is None or raw == "":
        return None
    return str(raw)


@dataclass(frozen=True)
class GroupedPerformanceParams:
    """Grouped performance request.

    Attributes:
        benchmark: Benchmark supplying quality scores (``"mmlu"`` when unset).
        min_quality: Minimum quality score.
        max_memory_gb: Maximum memory in GB.
        min_speed: Minimum tokens/second.
        sort_by: ``quality``, ``speed``, ``efficiency``, ``memory`` or ``model_name``.
        sort_direction: ``"asc"`` or ``"desc"``.
        hardware_categories: Allowed hardware categories; empty means any.
    """

    benchmark: str | None = None
    min_quality: float | None = None
    max_memory_gb: float | None = None
    min_speed: float | None = None
    sort_by: str | None = None
    sort_direction: str | None = None
    hardware_categories: frozenset[HardwareCategory] = field(default_factory=frozenset)

    @property
    def benchmark_or_default(self) -> str:
        return self.benchmark or DEFAULT_BENCHMARK

    def filter_params(self) -> FilterParams:
        return FilterParams(
            min_speed=self.min_speed,
            max_memory_gb=self.max_memory_gb,
            min_quality=self.min_quality,
            hardware_categories=self.hardware_categories,
        )

    @classmethod
    def from_query(cls, query: Mapping[str, Any]) -> GroupedPerformanceParams:
        """Parse raw query-string values.

        Empty strings count as unset. Unknown category tokens are dropped.
        No range checks are made on the numeric thresholds.

        Raises:
            ValueError: If a numeric threshold is not a number.
        """
        unknown = set(query) - _KNOWN_PARAMS
        if unknown:
            logger.debug("Ignoring unknown parameters: %s", sorted(unknown))
        cats = query.get("hardware_categories")
        if isinstance(cats, (list, tuple, set, frozenset)):
            cats = ",".join(str(c) for c in cats)
        return cls(
            benchmark=_optional_str(query.get("benchmark")),
            min_quality=_optional_float("min_quality", query.get("min_quality")),
            max_memory_gb=_optional_float("max_memory_gb", query.get("max_memory_gb")),
            min_speed=_optional_float("min_speed", query.get("min_speed")),
            sort_by=_optional_str(query.get("sort_by")),
            sort_direction=_optional_str(query.get("sort_direction")),
            hardware_categories=parse_hardware_categories(cats),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> GroupedPerformanceParams:
        """Load a saved view preset.

        The file holds a mapping with the same keys as `from_query`;
        ``hardware_categories`` may be a list or a comma-separated string.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Preset {path} must contain a mapping, got {type(data).__name__}")
        return cls.from_query(data)
