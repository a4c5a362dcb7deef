"""Flat benchmark configuration records with typed collection API."""

from __future__ import annotations

import dataclasses
import logging
import math
from collections import defaultdict
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pandas as pd

from llmbench_data.analysis.efficiency import tokens_per_kwh
from llmbench_data.analysis.hardware import (
    HardwareCategory,
    classify_hardware,
    is_placeholder_hardware,
)
from llmbench_data.sources import download_file

logger = logging.getLogger(__name__)

HEATMAP_KEY_SEPARATOR = "||"


def _safe_float(v: object) -> float | None:
    if v is None:
        return None
    try:
        f = float(v)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(f):
        return None
    return f


def _coerce_int(v: object) -> int | None:
    f = _safe_float(v)
    if f is None:
        return None
    return int(f)


def _coerce_str(v: object) -> str | None:
    if v is None or v is pd.NA:
        return None
    if isinstance(v, float) and math.isnan(v):
        return None
    return str(v)


def hardware_summary_for(gpu_model: str, cpu_model: str) -> str:
    """Display string identifying a hardware platform."""
    return f"{gpu_model} / {cpu_model}"


@dataclass(frozen=True)
class ConfigurationRecord:
    """One completed benchmark run joined with its hardware and a quality score.

    Attributes:
        id: Test run identifier.
        model_name: Model name or slug (e.g. ``"meta-llama/Llama-3.1-8B-Instruct"``).
        quantization: Quantization scheme (e.g. ``"Q4_K_M"``, ``"FP8"``).
        backend: Inference backend (e.g. ``"vllm"``, ``"llama.cpp"``).
        gpu_model: GPU model string (``"CPU Only"`` for CPU rigs).
        cpu_model: CPU model string.
        hardware_summary: Display string identifying the hardware platform.
        concurrent_requests: Concurrent request count the run was driven at.
        max_context_length: Maximum context length configured for the run.
        load_pattern: Load generator pattern name.
        dataset_name: Prompt dataset name.
        gpu_power_limit_watts: GPU power cap in watts.
        tokens_per_second: Generation throughput in tokens/second.
        memory_gb: Peak memory usage in GB.
        gpu_power_watts: Average GPU power draw in watts.
        quality_score: 0-100 score for the selected benchmark.
        gpu_memory_gb: GPU memory in GB (``0`` for CPU-only rigs).
        lora_adapter: LoRA adapter identity (empty string for the base model).
        ttft_p95_ms: 95th percentile time-to-first-token in milliseconds.
        tpot_p95_ms: 95th percentile time-per-output-token in milliseconds.
        itl_p95_ms: 95th percentile inter-token latency in milliseconds.
    """

    id: str
    model_name: str
    quantization: str
    backend: str
    gpu_model: str
    cpu_model: str
    hardware_summary: str
    concurrent_requests: int | None = None
    max_context_length: int | None = None
    load_pattern: str | None = None
    dataset_name: str | None = None
    gpu_power_limit_watts: int | None = None
    tokens_per_second: float | None = None
    memory_gb: float | None = None
    gpu_power_watts: float | None = None
    quality_score: float | None = None
    gpu_memory_gb: float | None = None
    lora_adapter: str = ""
    ttft_p95_ms: float | None = None
    tpot_p95_ms: float | None = None
    itl_p95_ms: float | None = None

    @property
    def tokens_per_kwh(self) -> float | None:
        """Derived tokens per kilowatt-hour (``None`` without positive power)."""
        return tokens_per_kwh(self.tokens_per_second, self.gpu_power_watts)

    @property
    def hardware_category(self) -> HardwareCategory:
        """Hardware category of the rig this run used."""
        return classify_hardware(
            self.gpu_model, self.cpu_model, gpu_memory_gb=self.gpu_memory_gb
        )

    @property
    def is_placeholder(self) -> bool:
        """Whether the hardware strings mark a synthetic placeholder rig."""
        return is_placeholder_hardware(self.gpu_model, self.cpu_model)

    @property
    def has_performance_data(self) -> bool:
        """Whether the run reported speed or memory."""
        return self.tokens_per_second is not None or self.memory_gb is not None

    @property
    def heatmap_key(self) -> str:
        """Composite ``"backend||quantization"`` key used by heatmaps."""
        return f"{self.backend}{HEATMAP_KEY_SEPARATOR}{self.quantization}"


_FIELDS = frozenset(f.name for f in dataclasses.fields(ConfigurationRecord))
_REQUIRED_FIELDS = ("id", "model_name", "quantization", "backend", "gpu_model", "cpu_model")
_INT_FIELDS = frozenset(
    {"concurrent_requests", "max_context_length", "gpu_power_limit_watts"}
)
_FLOAT_FIELDS = frozenset(
    {
        "tokens_per_second",
        "memory_gb",
        "gpu_power_watts",
        "quality_score",
        "gpu_memory_gb",
        "ttft_p95_ms",
        "tpot_p95_ms",
        "itl_p95_ms",
    }
)


def _record_from_mapping(rec: Mapping[str, Any]) -> ConfigurationRecord:
    missing = [k for k in _REQUIRED_FIELDS if _coerce_str(rec.get(k)) is None]
    if missing:
        raise ValueError(f"Missing required field(s) {missing} in row {dict(rec)!r}")
    kw: dict[str, Any] = {}
    for k in _FIELDS:
        if k not in rec:
            continue
        v = rec[k]
        if k in _INT_FIELDS:
            kw[k] = _coerce_int(v)
        elif k in _FLOAT_FIELDS:
            kw[k] = _safe_float(v)
        elif k == "lora_adapter":
            kw[k] = _coerce_str(v) or ""
        else:
            kw[k] = _coerce_str(v)
    if kw.get("hardware_summary") is None:
        kw["hardware_summary"] = hardware_summary_for(kw["gpu_model"], kw["cpu_model"])
    return ConfigurationRecord(**kw)


class _ConfigurationRecordsData:
    """Typed field accessor for ConfigurationRecords, returning `list[T]` per field.

    Accessed via `ConfigurationRecords.data`. Keeps field arrays apart from
    filter method names (e.g. `records.data.backend` returns `list[str]`
    whereas `records.backend` is the filter method).

    When adding fields to `ConfigurationRecord`, add a matching `@property`
    stub inside the `if TYPE_CHECKING` block below to keep types in sync.
    """

    __slots__ = ("_cache", "_records")

    def __init__(self, records: tuple[ConfigurationRecord, ...], cache: dict[str, Any]) -> None:
        self._records = records
        self._cache = cache

    @property
    def tokens_per_kwh(self) -> list[float | None]:
        """Derived tokens per kWh per record."""
        key = "_data_tokens_per_kwh"
        if key not in self._cache:
            self._cache[key] = [r.tokens_per_kwh for r in self._records]
        return self._cache[key]

    @property
    def hardware_category(self) -> list[HardwareCategory]:
        """Hardware category per record."""
        key = "_data_hardware_category"
        if key not in self._cache:
            self._cache[key] = [r.hardware_category for r in self._records]
        return self._cache[key]

    if not TYPE_CHECKING:

        def __getattr__(self, name: str) -> list[Any]:
            if name not in _FIELDS:
                raise AttributeError(f"ConfigurationRecord has no field {name!r}")
            key = f"_data_{name}"
            if key not in self._cache:
                self._cache[key] = [getattr(r, name) for r in self._records]
            return self._cache[key]

    if TYPE_CHECKING:

        @property
        def id(self) -> list[str]:
            """Test run identifier."""
            ...

        @property
        def model_name(self) -> list[str]:
            """Model name or slug."""
            ...

        @property
        def quantization(self) -> list[str]:
            """Quantization scheme."""
            ...

        @property
        def backend(self) -> list[str]:
            """Inference backend."""
            ...

        @property
        def gpu_model(self) -> list[str]:
            """GPU model string."""
            ...

        @property
        def cpu_model(self) -> list[str]:
            """CPU model string."""
            ...

        @property
        def hardware_summary(self) -> list[str]:
            """Hardware platform display string."""
            ...

        @property
        def concurrent_requests(self) -> list[int | None]:
            """Concurrent request count."""
            ...

        @property
        def gpu_power_limit_watts(self) -> list[int | None]:
            """GPU power cap in watts."""
            ...

        @property
        def tokens_per_second(self) -> list[float | None]:
            """Generation throughput in tokens/second."""
            ...

        @property
        def memory_gb(self) -> list[float | None]:
            """Peak memory usage in GB."""
            ...

        @property
        def gpu_power_watts(self) -> list[float | None]:
            """Average GPU power draw in watts."""
            ...

        @property
        def quality_score(self) -> list[float | None]:
            """Quality score for the selected benchmark."""
            ...

        @property
        def lora_adapter(self) -> list[str]:
            """LoRA adapter identity."""
            ...


class ConfigurationRecords:
    """Immutable collection of configuration records with fluent filtering.

    Supports chained filtering, grouping, iteration, and conversion to
    DataFrames. Each instance is a snapshot: nothing is shared between
    collections built from separate loads.

    Per-record (row) access:

        for r in records.model("org/model").backend("vllm"):
            print(r.tokens_per_second, r.hardware_summary)

    Per-field (column) access through the `data` property:

        speeds = records.data.tokens_per_second  # list[float | None]

    Example:

        records = ConfigurationRecords.from_directory("/path/to/compiled/data")
        best = max(
            records.category(HardwareCategory.CONSUMER_GPU),
            key=lambda r: r.tokens_per_second or 0.0,
        )
    """

    def __init__(self, records: Sequence[ConfigurationRecord]) -> None:
        self._records = tuple(records)
        self._cache: dict[str, Any] = {}

    def _derive(self, records: Sequence[ConfigurationRecord]) -> ConfigurationRecords:
        return ConfigurationRecords(records)

    @classmethod
    def from_records(cls, rows: Sequence[Mapping[str, Any]]) -> ConfigurationRecords:
        """Build a collection from flat row mappings (e.g. database rows).

        Missing optional fields default to ``None``; NaN values become
        ``None``; ``hardware_summary`` defaults to ``"<gpu> / <cpu>"``.

        Raises:
            ValueError: If a row lacks one of the identity fields.
        """
        records = [_record_from_mapping(rec) for rec in rows]
        logger.info("ConfigurationRecords.from_records: returning %d records", len(records))
        return cls(records)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> ConfigurationRecords:
        """Build a collection from a DataFrame with one row per run."""
        rows: list[dict[str, Any]] = df.to_dict(orient="records")
        return cls.from_records(rows)

    @classmethod
    def from_parquet(cls, path: str | Path) -> ConfigurationRecords:
        """Construct a collection from a parquet file."""
        return cls.from_dataframe(pd.read_parquet(path))

    @classmethod
    def from_csv(cls, path: str | Path) -> ConfigurationRecords:
        """Construct a collection from a CSV file."""
        return cls.from_dataframe(pd.read_csv(path))

    @classmethod
    def from_directory(cls, root: str | Path) -> ConfigurationRecords:
        """Load records from a compiled data directory.

        Reads ``runs/configurations.parquet`` under ``root``.
        """
        parquet = Path(root) / "runs" / "configurations.parquet"
        if not parquet.exists():
            raise FileNotFoundError(f"Missing configurations table: {parquet}")
        return cls.from_parquet(parquet)

    @classmethod
    def from_hf(cls, repo_id: str, *, revision: str | None = None) -> ConfigurationRecords:
        """Load records from a Hugging Face dataset repository.

        Downloads only ``runs/configurations.parquet``. Respects the
        ``HF_HOME`` and ``HF_TOKEN`` environment variables.

        Args:
            repo_id: HF dataset repository ID.
            revision: Git revision (branch, tag, or commit hash).
        """
        parquet_path = download_file(repo_id, "runs/configurations.parquet", revision=revision)
        return cls.from_parquet(parquet_path)

    def model(self, *model_names: str) -> ConfigurationRecords:
        """Filter to records matching any of the given model names."""
        return self._filter("model_name", model_names)

    def quantization(self, *quantizations: str) -> ConfigurationRecords:
        """Filter to records matching any of the given quantizations."""
        return self._filter("quantization", quantizations)

    def backend(self, *backends: str) -> ConfigurationRecords:
        """Filter to records matching any of the given backends."""
        return self._filter("backend", backends)

    def gpu(self, *gpu_models: str) -> ConfigurationRecords:
        """Filter to records matching any of the given GPU models."""
        return self._filter("gpu_model", gpu_models)

    def hardware(self, *summaries: str) -> ConfigurationRecords:
        """Filter to records matching any of the given hardware summaries."""
        return self._filter("hardware_summary", summaries)

    def lora(self, *adapters: str) -> ConfigurationRecords:
        """Filter to records matching any of the given LoRA adapters.

        Use ``""`` for base-model runs.
        """
        return self._filter("lora_adapter", adapters)

    def category(self, *categories: HardwareCategory | str) -> ConfigurationRecords:
        """Filter to records whose hardware falls in any of the given categories."""
        wanted = {HardwareCategory(c) for c in categories}
        return self.where(lambda r: r.hardware_category in wanted)

    def speed(self, *, min: float | None = None, max: float | None = None) -> ConfigurationRecords:
        """Filter to records whose throughput lies in a range (inclusive).

        Records without a throughput value are dropped.
        """
        if min is None and max is None:
            raise TypeError("speed() requires min and/or max")
        return self._filter_range("tokens_per_second", min, max)

    def where(self, predicate: Callable[[ConfigurationRecord], bool]) -> ConfigurationRecords:
        """Filter records by an arbitrary predicate.

        Args:
            predicate: Function that takes a `ConfigurationRecord` and returns
                True to keep it.
        """
        return self._derive([r for r in self._records if predicate(r)])

    def with_quality_scores(
        self, scores: Mapping[tuple[str, str], float | None]
    ) -> ConfigurationRecords:
        """Attach quality scores keyed by ``(model_name, quantization)``.

        Records whose pair is missing from ``scores`` get ``None``.
        """
        return self._derive(
            [
                replace(r, quality_score=scores.get((r.model_name, r.quantization)))
                for r in self._records
            ]
        )

    def _filter(self, field: str, values: tuple[Any, ...]) -> ConfigurationRecords:
        key = f"_filter_{field}_{values}"
        if key not in self._cache:
            value_set = set(values)
            self._cache[key] = self._derive(
                [r for r in self._records if getattr(r, field) in value_set]
            )
        return self._cache[key]

    def _filter_range(self, field: str, min_val: Any, max_val: Any) -> ConfigurationRecords:
        key = f"_filter_range_{field}_{min_val}_{max_val}"
        if key not in self._cache:
            filtered = [r for r in self._records if getattr(r, field) is not None]
            if min_val is not None:
                filtered = [r for r in filtered if getattr(r, field) >= min_val]
            if max_val is not None:
                filtered = [r for r in filtered if getattr(r, field) <= max_val]
            self._cache[key] = self._derive(filtered)
        return self._cache[key]

    @property
    def data(self) -> _ConfigurationRecordsData:
        """Typed field accessor returning `list[T]` per field.

            records.data.tokens_per_second  # list[float | None]
            records.data.hardware_summary   # list[str]

        Each property returns a plain `list` with one element per record,
        in iteration order.
        """
        key = "_data_accessor"
        if key not in self._cache:
            self._cache[key] = _ConfigurationRecordsData(self._records, self._cache)
        return self._cache[key]

    def group_by(self, *fields: str) -> dict[Any, ConfigurationRecords]:
        """Group records by one or more fields, in first-seen order.

        Args:
            fields: One or more `ConfigurationRecord` field or property names.

        Returns:
            Single field: `{value: ConfigurationRecords, ...}`.
            Multiple fields: `{(v1, v2, ...): ConfigurationRecords, ...}`.
        """
        key = f"_group_by_{fields}"
        if key not in self._cache:
            groups: dict[Any, list[ConfigurationRecord]] = defaultdict(list)
            for r in self._records:
                if len(fields) == 1:
                    k = getattr(r, fields[0])
                else:
                    k = tuple(getattr(r, f) for f in fields)
                groups[k].append(r)
            self._cache[key] = {k: self._derive(v) for k, v in groups.items()}
        return self._cache[key]

    def __iter__(self) -> Iterator[ConfigurationRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> ConfigurationRecord:
        return self._records[index]

    def __bool__(self) -> bool:
        return len(self._records) > 0

    def __add__(self, other: ConfigurationRecords) -> ConfigurationRecords:
        return ConfigurationRecords(list(self._records) + list(other._records))

    def __repr__(self) -> str:
        return f"ConfigurationRecords({len(self._records)} records)"

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with one row per record.

        Adds the derived ``tokens_per_kwh`` and ``hardware_category`` columns.
        """
        if not self._records:
            return pd.DataFrame()
        rows = []
        for r in self._records:
            row = dataclasses.asdict(r)
            row["tokens_per_kwh"] = r.tokens_per_kwh
            row["hardware_category"] = r.hardware_category.value
            rows.append(row)
        return pd.DataFrame(rows)
