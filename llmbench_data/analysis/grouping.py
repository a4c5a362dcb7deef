"""Model -> hardware platform -> best configuration grouping."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from llmbench_data.analysis.hardware import HardwareCategory
from llmbench_data.analysis.ranking import (
    DEFAULT_SORT_BY,
    rank,
    rank_configurations,
    rank_models,
)
from llmbench_data.records.configurations import ConfigurationRecord, ConfigurationRecords
from llmbench_data.records.scores import DEFAULT_BENCHMARK

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigurationPerformance:
    """A presented configuration: one run with its derived metrics.

    Missing quality, speed or memory stay ``None`` rather than being shown
    as zero; ranking still treats them as ``0.0``.

    Attributes:
        id: Test run identifier.
        model_name: Model name or slug.
        quantization: Quantization scheme.
        backend: Inference backend.
        hardware: Hardware platform display string.
        hardware_category: Category of the platform.
        quality_score: Score for the selected benchmark.
        tokens_per_second: Generation throughput.
        memory_gb: Peak memory in GB.
        tokens_per_kwh: Derived energy efficiency.
        concurrent_requests: Concurrent request count.
        max_context_length: Maximum context length.
        load_pattern: Load generator pattern name.
        dataset_name: Prompt dataset name.
        gpu_power_limit_watts: GPU power cap in watts.
        gpu_power_watts: Average GPU power draw in watts.
    """

    id: str
    model_name: str
    quantization: str
    backend: str
    hardware: str
    hardware_category: HardwareCategory
    quality_score: float | None
    tokens_per_second: float | None
    memory_gb: float | None
    tokens_per_kwh: float | None
    concurrent_requests: int | None = None
    max_context_length: int | None = None
    load_pattern: str | None = None
    dataset_name: str | None = None
    gpu_power_limit_watts: int | None = None
    gpu_power_watts: float | None = None

    @classmethod
    def from_record(cls, r: ConfigurationRecord) -> ConfigurationPerformance:
        return cls(
            id=r.id,
            model_name=r.model_name,
            quantization=r.quantization,
            backend=r.backend,
            hardware=r.hardware_summary,
            hardware_category=r.hardware_category,
            quality_score=r.quality_score,
            tokens_per_second=r.tokens_per_second,
            memory_gb=r.memory_gb,
            tokens_per_kwh=r.tokens_per_kwh,
            concurrent_requests=r.concurrent_requests,
            max_context_length=r.max_context_length,
            load_pattern=r.load_pattern,
            dataset_name=r.dataset_name,
            gpu_power_limit_watts=r.gpu_power_limit_watts,
            gpu_power_watts=r.gpu_power_watts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "model_name": self.model_name,
            "quantization": self.quantization,
            "backend": self.backend,
            "hardware": self.hardware,
            "hardware_category": self.hardware_category.value,
            "quality_score": self.quality_score,
            "tokens_per_second": self.tokens_per_second,
            "memory_gb": self.memory_gb,
            "tokens_per_kwh": self.tokens_per_kwh,
            "concurrent_requests": self.concurrent_requests,
            "max_context_length": self.max_context_length,
            "load_pattern": self.load_pattern,
            "dataset_name": self.dataset_name,
            "gpu_power_limit_watts": self.gpu_power_limit_watts,
            "gpu_power_watts": self.gpu_power_watts,
        }


@dataclass(frozen=True)
class HardwarePlatformGroup:
    """Best configuration of one model on one hardware platform.

    Attributes:
        hardware: Hardware platform display string.
        hardware_category: Category of the best configuration's platform.
        best_config: Top-ranked configuration in the bucket.
        total_configs: Number of surviving configurations in the bucket.
    """

    hardware: str
    hardware_category: HardwareCategory
    best_config: ConfigurationPerformance
    total_configs: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "hardware": self.hardware,
            "hardware_category": self.hardware_category.value,
            "best_config": self.best_config.to_dict(),
            "total_configs": self.total_configs,
        }


@dataclass(frozen=True)
class ModelPerformanceGroup:
    """One model's best platform plus platform counts.

    Attributes:
        model_name: Model name or slug.
        best_hardware: Top-ranked platform.
        total_hardware_platforms: Distinct platforms before filtering.
        qualifying_platforms: Platforms with at least one surviving configuration.
        all_hardware_platforms: Every qualifying platform, ranked.
    """

    model_name: str
    best_hardware: HardwarePlatformGroup
    total_hardware_platforms: int
    qualifying_platforms: int
    all_hardware_platforms: list[HardwarePlatformGroup] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "best_hardware": self.best_hardware.to_dict(),
            "total_hardware_platforms": self.total_hardware_platforms,
            "qualifying_platforms": self.qualifying_platforms,
            "all_hardware_platforms": (
                None
                if self.all_hardware_platforms is None
                else [p.to_dict() for p in self.all_hardware_platforms]
            ),
        }


@dataclass(frozen=True)
class GroupedPerformanceResponse:
    """Ranked model groups for one request.

    Attributes:
        models: Model groups, best first.
        total_count: Number of model groups.
        benchmark_used: Benchmark the quality scores came from.
    """

    models: list[ModelPerformanceGroup]
    total_count: int
    benchmark_used: str = DEFAULT_BENCHMARK

    def to_dict(self) -> dict[str, Any]:
        return {
            "models": [m.to_dict() for m in self.models],
            "total_count": self.total_count,
            "benchmark_used": self.benchmark_used,
        }


def group_records(records: ConfigurationRecords) -> dict[str, dict[str, ConfigurationRecords]]:
    """Bucket records by model name, then hardware summary, in first-seen order."""
    return {
        model: by_model.group_by("hardware_summary")
        for model, by_model in records.group_by("model_name").items()
    }


def count_platforms(records: ConfigurationRecords) -> dict[str, int]:
    """Distinct hardware summaries per model."""
    return {
        model: len(by_model.group_by("hardware_summary"))
        for model, by_model in records.group_by("model_name").items()
    }


def build_platform_group(
    hardware: str, records: ConfigurationRecords, sort_by: str = DEFAULT_SORT_BY
) -> HardwarePlatformGroup:
    ranked = rank_configurations(list(records), sort_by)
    best = ConfigurationPerformance.from_record(ranked[0])
    return HardwarePlatformGroup(
        hardware=hardware,
        hardware_category=best.hardware_category,
        best_config=best,
        total_configs=len(records),
    )


def build_grouped_performance(
    unfiltered: ConfigurationRecords,
    filtered: ConfigurationRecords,
    *,
    sort_by: str | None = None,
    sort_direction: str | None = None,
    benchmark: str = DEFAULT_BENCHMARK,
    include_all_platforms: bool = True,
) -> GroupedPerformanceResponse:
    """Fold filtered records into ranked model groups.

    Args:
        unfiltered: Every record of the snapshot, used for platform totals.
        filtered: Records that passed the filter stage.
        sort_by: ``quality``, ``speed``, ``efficiency``, ``memory`` or
            ``model_name``. Platforms and configurations use the quality
            chain for the last two and for unknown keys.
        sort_direction: ``"asc"`` or ``"desc"``; see `rank_models`.
        benchmark: Benchmark name echoed in the response.
        include_all_platforms: Attach the full ranked platform list per model.

    Returns:
        The response with models that kept at least one platform.
    """
    chain_key = sort_by or DEFAULT_SORT_BY
    totals = count_platforms(unfiltered)

    models: list[ModelPerformanceGroup] = []
    for model_name, platforms in group_records(filtered).items():
        groups = [build_platform_group(hw, recs, chain_key) for hw, recs in platforms.items()]
        if not groups:
            continue
        ranked = rank(groups, lambda g: g.best_config, chain_key)
        qualifying = len(ranked)
        models.append(
            ModelPerformanceGroup(
                model_name=model_name,
                best_hardware=ranked[0],
                total_hardware_platforms=max(totals.get(model_name, qualifying), qualifying),
                qualifying_platforms=qualifying,
                all_hardware_platforms=ranked if include_all_platforms else None,
            )
        )

    models = rank_models(models, lambda m: m.best_hardware.best_config, sort_by, sort_direction)
    logger.info(
        "Grouped %d filtered records into %d models (sort_by=%s)",
        len(filtered),
        len(models),
        sort_by or DEFAULT_SORT_BY,
    )
    return GroupedPerformanceResponse(
        models=models, total_count=len(models), benchmark_used=benchmark
    )
