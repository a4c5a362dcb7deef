"""Power-limit x concurrency heatmap aggregation for one (model, hardware) pair."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from llmbench_data.analysis.efficiency import tokens_per_kwh
from llmbench_data.records.configurations import HEATMAP_KEY_SEPARATOR, ConfigurationRecord

logger = logging.getLogger(__name__)

DEFAULT_POWER_LIMIT = 0
DEFAULT_CONCURRENCY = 1

METRICS = ("speed", "ttft", "tpot", "itl", "efficiency")

MetricGrid = dict[str, dict[int, dict[int, float]]]


def _reduce(values: Iterable[float | None], fn: Callable[[np.ndarray], Any]) -> float | None:
    arr = np.array([v for v in values if v is not None], dtype=float)
    arr = arr[~np.isnan(arr)]
    if arr.size == 0:
        return None
    return float(fn(arr))


@dataclass(frozen=True)
class HeatmapCell:
    """Runs of one (backend, quantization) sharing a grid position, aggregated.

    Throughput and latency keep the best observed value; power is averaged.

    Attributes:
        backend: Inference backend.
        quantization: Quantization scheme.
        power_limit: GPU power cap in watts (``0`` when the runs set none).
        concurrency: Concurrent requests (``1`` when the runs set none).
        speed: Maximum tokens/second across the runs.
        ttft: Minimum TTFT p95 in milliseconds.
        tpot: Minimum TPOT p95 in milliseconds.
        itl: Minimum ITL p95 in milliseconds.
        power: Mean GPU power draw in watts.
        run_count: Number of runs folded into the cell.
    """

    backend: str
    quantization: str
    power_limit: int
    concurrency: int
    speed: float | None
    ttft: float | None
    tpot: float | None
    itl: float | None
    power: float | None
    run_count: int

    @property
    def key(self) -> str:
        return f"{self.backend}{HEATMAP_KEY_SEPARATOR}{self.quantization}"

    @property
    def efficiency(self) -> float | None:
        """Tokens/kWh of the best speed at the mean power."""
        return tokens_per_kwh(self.speed, self.power)

    def metric(self, name: str) -> float | None:
        if name not in METRICS:
            raise ValueError(f"Unknown heatmap metric {name!r}; expected one of {METRICS}")
        return getattr(self, name)


def aggregate_cells(records: Iterable[ConfigurationRecord]) -> list[HeatmapCell]:
    """Fold records into one cell per (backend, quantization, power limit, concurrency).

    Cells come back in first-seen order.
    """
    groups: dict[tuple[str, str, int, int], list[ConfigurationRecord]] = {}
    for r in records:
        power_limit = (
            r.gpu_power_limit_watts if r.gpu_power_limit_watts is not None else DEFAULT_POWER_LIMIT
        )
        concurrency = (
            r.concurrent_requests if r.concurrent_requests is not None else DEFAULT_CONCURRENCY
        )
        groups.setdefault((r.backend, r.quantization, power_limit, concurrency), []).append(r)

    cells = []
    for (backend, quant, power_limit, concurrency), runs in groups.items():
        cells.append(
            HeatmapCell(
                backend=backend,
                quantization=quant,
                power_limit=power_limit,
                concurrency=concurrency,
                speed=_reduce((r.tokens_per_second for r in runs), np.max),
                ttft=_reduce((r.ttft_p95_ms for r in runs), np.min),
                tpot=_reduce((r.tpot_p95_ms for r in runs), np.min),
                itl=_reduce((r.itl_p95_ms for r in runs), np.min),
                power=_reduce((r.gpu_power_watts for r in runs), np.mean),
                run_count=len(runs),
            )
        )
    logger.debug("Aggregated %d cells from %d groups", len(cells), len(groups))
    return cells


@dataclass(frozen=True)
class HeatmapData:
    """Sparse per-metric grids keyed ``"backend||quantization"`` -> power limit -> concurrency.

    Every composite key appears in all five grids; a grid position is present
    only when some run supplied that metric there.

    Attributes:
        quantizations: Sorted composite ``"backend||quantization"`` keys.
        power_limits: Sorted distinct power limits across all cells.
        concurrent_requests: Sorted distinct concurrency levels across all cells.
        speed_data: Max tokens/second grid.
        ttft_data: Min TTFT p95 grid.
        tpot_data: Min TPOT p95 grid.
        itl_data: Min ITL p95 grid.
        efficiency_data: Tokens/kWh grid.
    """

    quantizations: list[str]
    power_limits: list[int]
    concurrent_requests: list[int]
    speed_data: MetricGrid
    ttft_data: MetricGrid
    tpot_data: MetricGrid
    itl_data: MetricGrid
    efficiency_data: MetricGrid

    @classmethod
    def from_cells(cls, cells: Iterable[HeatmapCell]) -> HeatmapData:
        ordered = sorted(cells, key=lambda c: (c.key, c.power_limit, c.concurrency))
        grids: dict[str, MetricGrid] = {m: {} for m in METRICS}
        for c in ordered:
            for m in METRICS:
                grid = grids[m].setdefault(c.key, {})
                value = c.metric(m)
                if value is not None:
                    grid.setdefault(c.power_limit, {})[c.concurrency] = value
        return cls(
            quantizations=sorted({c.key for c in ordered}),
            power_limits=sorted({c.power_limit for c in ordered}),
            concurrent_requests=sorted({c.concurrency for c in ordered}),
            speed_data=grids["speed"],
            ttft_data=grids["ttft"],
            tpot_data=grids["tpot"],
            itl_data=grids["itl"],
            efficiency_data=grids["efficiency"],
        )

    def grid(self, metric: str) -> MetricGrid:
        if metric not in METRICS:
            raise ValueError(f"Unknown heatmap metric {metric!r}; expected one of {METRICS}")
        return getattr(self, f"{metric}_data")

    def value(self, metric: str, key: str, power_limit: int, concurrency: int) -> float | None:
        """Look up one cell, returning ``None`` where the grid is sparse."""
        return self.grid(metric).get(key, {}).get(power_limit, {}).get(concurrency)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "quantizations": list(self.quantizations),
            "power_limits": list(self.power_limits),
            "concurrent_requests": list(self.concurrent_requests),
        }
        for m in METRICS:
            out[f"{m}_data"] = {
                key: {str(pl): {str(cc): v for cc, v in row.items()} for pl, row in by_pl.items()}
                for key, by_pl in self.grid(m).items()
            }
        return out

    def to_dataframe(self) -> pd.DataFrame:
        """Long-form table with one row per present (metric, key, power limit, concurrency)."""
        rows = []
        for m in METRICS:
            for key, by_pl in self.grid(m).items():
                backend, _, quant = key.partition(HEATMAP_KEY_SEPARATOR)
                for pl, row in by_pl.items():
                    for cc, v in row.items():
                        rows.append(
                            {
                                "metric": m,
                                "key": key,
                                "backend": backend,
                                "quantization": quant,
                                "power_limit": pl,
                                "concurrent_requests": cc,
                                "value": v,
                            }
                        )
        return pd.DataFrame(
            rows,
            columns=[
                "metric",
                "key",
                "backend",
                "quantization",
                "power_limit",
                "concurrent_requests",
                "value",
            ],
        )


def build_heatmap(records: Iterable[ConfigurationRecord]) -> HeatmapData:
    """Build heatmap grids over every given record, with no filtering applied."""
    return HeatmapData.from_cells(aggregate_cells(records))
