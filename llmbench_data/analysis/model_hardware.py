"""Detailed analysis of one model on one GPU model."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from llmbench_data.records.configurations import ConfigurationRecords
from llmbench_data.records.heatmaps import HeatmapCell, HeatmapData, aggregate_cells

logger = logging.getLogger(__name__)


class AnalysisNotFoundError(LookupError):
    """No runs exist for the requested model and GPU."""


def quantization_sort_key(quantization: str) -> tuple[int, str]:
    """Order quantizations from full precision down to GGUF-style schemes.

    FP32, BF16, FP16, FP8_DYNAMIC and FP8 come first, then weight-only
    ``W*A16`` schemes, ``W*A8`` schemes, other ``W*`` schemes, ``Q*`` (GGUF)
    schemes and finally anything else. Ties break by name.
    """
    fixed = {"FP32": 0, "BF16": 1, "FP16": 2, "FP8_DYNAMIC": 3, "FP8": 4}
    if quantization in fixed:
        priority = fixed[quantization]
    elif quantization.startswith("W") and "A16" in quantization:
        priority = 10
    elif quantization.startswith("W") and "A8" in quantization:
        priority = 11
    elif quantization.startswith("W"):
        priority = 20
    elif quantization.startswith("Q"):
        priority = 30
    else:
        priority = 99
    return priority, quantization


@dataclass(frozen=True)
class QuantizationSummary:
    """Best observed metrics of one (backend, quantization) on the GPU.

    Attributes:
        quantization: Quantization scheme.
        backend: Inference backend.
        best_speed: Highest cell speed (``0.0`` when no run reported speed).
        best_ttft: Lowest cell TTFT p95.
        best_tokens_per_kwh: Highest cell efficiency.
        quality_score: Mean of the category scores (``0.0`` without scores).
        configuration_count: Number of (power limit, concurrency) cells.
        category_scores: Mean score per category for the requested adapter.
    """

    quantization: str
    backend: str
    best_speed: float
    best_ttft: float | None
    best_tokens_per_kwh: float | None
    quality_score: float
    configuration_count: int
    category_scores: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "quantization": self.quantization,
            "backend": self.backend,
            "best_speed": self.best_speed,
            "best_ttft": self.best_ttft,
            "best_tokens_per_kwh": self.best_tokens_per_kwh,
            "quality_score": self.quality_score,
            "configuration_count": self.configuration_count,
            "category_scores": dict(self.category_scores),
        }


@dataclass(frozen=True)
class BackendGroup:
    """Consecutive summaries sharing a backend."""

    backend: str
    quantizations: list[QuantizationSummary]

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "quantizations": [q.to_dict() for q in self.quantizations],
        }


@dataclass(frozen=True)
class ModelHardwareAnalysis:
    """Full analysis view for a (model, GPU) pair.

    Attributes:
        model_name: Model name or slug.
        gpu_model: GPU model string.
        total_configurations: Number of aggregated cells.
        backends: Summaries grouped by backend.
        quantizations: Every summary, sorted by backend then quantization order.
        heatmap_data: Power-limit x concurrency grids.
    """

    model_name: str
    gpu_model: str
    total_configurations: int
    backends: list[BackendGroup]
    quantizations: list[QuantizationSummary]
    heatmap_data: HeatmapData

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "gpu_model": self.gpu_model,
            "total_configurations": self.total_configurations,
            "backends": [b.to_dict() for b in self.backends],
            "quantizations": [q.to_dict() for q in self.quantizations],
            "heatmap_data": self.heatmap_data.to_dict(),
        }


CategoryScoreLookup = Callable[[str, str, str], dict[str, float]]


def _summarize(
    backend: str,
    quantization: str,
    cells: list[HeatmapCell],
    category_scores: dict[str, float],
) -> QuantizationSummary:
    speeds = [c.speed for c in cells if c.speed is not None]
    ttfts = [c.ttft for c in cells if c.ttft is not None]
    effs = [c.efficiency for c in cells if c.efficiency is not None]
    quality = float(np.mean(list(category_scores.values()))) if category_scores else 0.0
    return QuantizationSummary(
        quantization=quantization,
        backend=backend,
        best_speed=float(np.max(speeds)) if speeds else 0.0,
        best_ttft=float(np.min(ttfts)) if ttfts else None,
        best_tokens_per_kwh=float(np.max(effs)) if effs else None,
        quality_score=quality,
        configuration_count=len(cells),
        category_scores=category_scores,
    )


def group_backends(summaries: list[QuantizationSummary]) -> list[BackendGroup]:
    """Split sorted summaries into runs of the same backend."""
    groups: list[BackendGroup] = []
    for s in summaries:
        if groups and groups[-1].backend == s.backend:
            groups[-1].quantizations.append(s)
        else:
            groups.append(BackendGroup(backend=s.backend, quantizations=[s]))
    return groups


def analyze_model_hardware(
    records: ConfigurationRecords,
    model_name: str,
    gpu_model: str,
    *,
    lora_adapter: str = "",
    category_scores: CategoryScoreLookup | None = None,
) -> ModelHardwareAnalysis:
    """Build the analysis view for ``model_name`` on ``gpu_model``.

    Every run of the pair counts; no filters apply. Category scores come
    from ``category_scores(model, quantization, lora_adapter)``; a lookup
    that raises is logged and treated as having no scores.

    Raises:
        AnalysisNotFoundError: If no run matches the model and GPU.
    """
    selected = records.model(model_name).gpu(gpu_model)
    if not selected:
        raise AnalysisNotFoundError(
            f"No test runs found for model {model_name!r} on GPU {gpu_model!r}"
        )

    cells = aggregate_cells(selected)
    by_pair: dict[tuple[str, str], list[HeatmapCell]] = {}
    for c in cells:
        by_pair.setdefault((c.backend, c.quantization), []).append(c)

    summaries = []
    for (backend, quant), pair_cells in by_pair.items():
        scores: dict[str, float] = {}
        if category_scores is not None:
            try:
                scores = category_scores(model_name, quant, lora_adapter)
            except Exception:
                logger.warning(
                    "Category score lookup failed for %s/%s (lora=%r)",
                    model_name,
                    quant,
                    lora_adapter,
                    exc_info=True,
                )
        summaries.append(_summarize(backend, quant, pair_cells, scores))

    summaries.sort(key=lambda s: (s.backend, quantization_sort_key(s.quantization)))
    logger.info(
        "Analyzed %s on %s: %d runs in %d cells across %d quantizations",
        model_name,
        gpu_model,
        len(selected),
        len(cells),
        len(summaries),
    )
    return ModelHardwareAnalysis(
        model_name=model_name,
        gpu_model=gpu_model,
        total_configurations=len(cells),
        backends=group_backends(summaries),
        quantizations=summaries,
        heatmap_data=HeatmapData.from_cells(cells),
    )
