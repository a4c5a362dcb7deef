"""Single entry point chaining row loading, filtering, grouping and ranking."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import pandas as pd

from llmbench_data.analysis.filters import FilterParams, filter_records
from llmbench_data.analysis.grouping import (
    GroupedPerformanceResponse,
    build_grouped_performance,
    group_records,
)
from llmbench_data.analysis.hardware import HardwareCategory
from llmbench_data.analysis.model_hardware import (
    AnalysisNotFoundError,
    ModelHardwareAnalysis,
    analyze_model_hardware,
)
from llmbench_data.analysis.ranking import DEFAULT_SORT_BY, rank_configurations
from llmbench_data.params import GroupedPerformanceParams
from llmbench_data.records.configurations import ConfigurationRecord, ConfigurationRecords
from llmbench_data.records.heatmaps import HeatmapData, build_heatmap
from llmbench_data.records.scores import BENCHMARKS, DEFAULT_BENCHMARK, QualityScores
from llmbench_data.sources import RowSourceError, SourceLike, resolve_row_source

logger = logging.getLogger(__name__)

COMPLETED_STATUS = "completed"


class AnalysisPipeline:
    """Aggregation views over a row source.

    Every public call reloads rows from the source, so results always
    reflect the source's current contents and nothing is shared between
    calls.

    Example:

        pipeline = AnalysisPipeline("/path/to/compiled/data")
        response = pipeline.grouped_performance(
            GroupedPerformanceParams(sort_by="speed", min_quality=60.0)
        )
        analysis = pipeline.model_hardware_analysis("org/model", "RTX 4090")

    Args:
        source: A `RowSource`, a compiled data directory, a DataFrame of
            configuration rows or a ready `ConfigurationRecords`.
        scores: Quality scores. Defaults to the source's own score table.
    """

    def __init__(
        self,
        source: SourceLike | ConfigurationRecords,
        scores: QualityScores | pd.DataFrame | None = None,
    ) -> None:
        if isinstance(source, ConfigurationRecords):
            self._records: ConfigurationRecords | None = source
            self._source = None
        else:
            self._records = None
            self._source = resolve_row_source(source)
        if isinstance(scores, pd.DataFrame):
            scores = QualityScores(scores)
        self._scores = scores

    def _load_records(self) -> ConfigurationRecords:
        if self._records is not None:
            return self._records
        assert self._source is not None
        try:
            df = self._source.load_configurations()
            if "status" in df.columns:
                df = df.loc[df["status"] == COMPLETED_STATUS]
            records = ConfigurationRecords.from_dataframe(df)
        except Exception as e:
            raise RowSourceError(str(e)) from e
        return records

    def _load_scores(self) -> QualityScores:
        if self._scores is not None:
            return self._scores
        if self._source is None:
            return QualityScores.empty()
        try:
            df = self._source.load_quality_scores()
            return QualityScores.empty() if df is None else QualityScores(df)
        except Exception as e:
            raise RowSourceError(str(e)) from e

    def fetch_rows(self, benchmark: str = DEFAULT_BENCHMARK) -> ConfigurationRecords:
        """Load records with the chosen benchmark's score attached.

        One lookup runs per distinct (model, quantization). A lookup that
        fails leaves that pair without a score. Rows come back ordered by
        model name, then by quality (best first, missing last).

        Raises:
            RowSourceError: If the configuration or score table cannot be loaded.
        """
        records = self._load_records()
        scores = self._load_scores()

        lookup: dict[tuple[str, str], float | None] = {}
        if benchmark.lower() not in BENCHMARKS:
            logger.info("Unknown benchmark %r; quality scores will be absent", benchmark)
        else:
            for pair in dict.fromkeys((r.model_name, r.quantization) for r in records):
                try:
                    lookup[pair] = scores.score(pair[0], pair[1], benchmark)
                except Exception:
                    logger.warning(
                        "Quality lookup failed for %s/%s on %s", *pair, benchmark, exc_info=True
                    )
                    lookup[pair] = None

        scored = records.with_quality_scores(lookup)
        ordered = sorted(
            scored,
            key=lambda r: (
                r.model_name,
                r.quality_score is None,
                -(r.quality_score or 0.0),
            ),
        )
        logger.info(
            "Fetched %d rows (%d scored pairs, benchmark=%s)",
            len(ordered),
            sum(v is not None for v in lookup.values()),
            benchmark,
        )
        return ConfigurationRecords(ordered)

    def classify(self, record: ConfigurationRecord) -> HardwareCategory:
        return record.hardware_category

    def filter(
        self,
        records: ConfigurationRecords,
        params: FilterParams | GroupedPerformanceParams,
    ) -> ConfigurationRecords:
        if isinstance(params, GroupedPerformanceParams):
            params = params.filter_params()
        return filter_records(records, params)

    def group(self, records: ConfigurationRecords) -> dict[str, dict[str, ConfigurationRecords]]:
        return group_records(records)

    def rank(
        self, records: ConfigurationRecords, sort_by: str = DEFAULT_SORT_BY
    ) -> list[ConfigurationRecord]:
        return rank_configurations(list(records), sort_by)

    def grouped_performance(
        self,
        params: GroupedPerformanceParams | Mapping[str, Any] | None = None,
    ) -> GroupedPerformanceResponse:
        """Ranked model -> platform -> best configuration view.

        Args:
            params: Request parameters, or raw query values parsed with
                `GroupedPerformanceParams.from_query`.
        """
        if params is None:
            params = GroupedPerformanceParams()
        elif not isinstance(params, GroupedPerformanceParams):
            params = GroupedPerformanceParams.from_query(params)
        benchmark = params.benchmark_or_default
        records = self.fetch_rows(benchmark)
        filtered = self.filter(records, params)
        return build_grouped_performance(
            records,
            filtered,
            sort_by=params.sort_by,
            sort_direction=params.sort_direction,
            benchmark=benchmark,
        )

    def build_heatmap(self, model_name: str, gpu_model: str) -> HeatmapData:
        """Heatmap grids over every run of a model on a GPU model.

        Raises:
            AnalysisNotFoundError: If no run matches.
        """
        selected = self._load_records().model(model_name).gpu(gpu_model)
        if not selected:
            raise AnalysisNotFoundError(
                f"No test runs found for model {model_name!r} on GPU {gpu_model!r}"
            )
        return build_heatmap(selected)

    def model_hardware_analysis(
        self, model_name: str, gpu_model: str, lora_adapter: str = ""
    ) -> ModelHardwareAnalysis:
        scores = self._load_scores()
        return analyze_model_hardware(
            self._load_records(),
            model_name,
            gpu_model,
            lora_adapter=lora_adapter,
            category_scores=scores.category_scores,
        )
