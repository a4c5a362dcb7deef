from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from llmbench_data.analysis.hardware import HardwareCategory
from llmbench_data.records.configurations import ConfigurationRecord, ConfigurationRecords
from llmbench_data.records.heatmaps import HeatmapData, aggregate_cells, build_heatmap
from llmbench_data.records.scores import QualityScores


def _row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": "run-1",
        "model_name": "org/model",
        "quantization": "FP16",
        "backend": "vllm",
        "gpu_model": "RTX 4090",
        "cpu_model": "AMD Ryzen 9 7950X",
        "tokens_per_second": 50.0,
        "memory_gb": 16.0,
        "gpu_power_watts": 200.0,
    }
    row.update(overrides)
    return row


def _records(*rows: dict[str, Any]) -> ConfigurationRecords:
    return ConfigurationRecords.from_records(list(rows))


class TestConfigurationRecords:
    def test_hardware_summary_defaults_to_gpu_and_cpu(self) -> None:
        r = _records(_row())[0]
        assert r.hardware_summary == "RTX 4090 / AMD Ryzen 9 7950X"

    def test_explicit_hardware_summary_kept(self) -> None:
        r = _records(_row(hardware_summary="GPU-A"))[0]
        assert r.hardware_summary == "GPU-A"

    def test_nan_becomes_none(self) -> None:
        df = pd.DataFrame(
            [
                _row(id="a", memory_gb=float("nan"), concurrent_requests=8),
                _row(id="b", concurrent_requests=float("nan")),
            ]
        )
        recs = ConfigurationRecords.from_dataframe(df)
        assert recs[0].memory_gb is None
        assert recs[0].concurrent_requests == 8
        assert isinstance(recs[0].concurrent_requests, int)
        assert recs[1].concurrent_requests is None
        assert recs[1].lora_adapter == ""

    def test_missing_identity_field_raises(self) -> None:
        row = _row()
        del row["backend"]
        with pytest.raises(ValueError, match="backend"):
            _records(row)

    def test_unknown_columns_ignored(self) -> None:
        recs = _records(_row(status="completed", extra=1))
        assert len(recs) == 1

    def test_derived_properties(self) -> None:
        r = _records(_row(tokens_per_second=80.0, gpu_power_watts=200.0))[0]
        assert r.tokens_per_kwh == pytest.approx(1_440_000.0)
        assert r.hardware_category is HardwareCategory.CONSUMER_GPU
        assert r.heatmap_key == "vllm||FP16"

    def test_tokens_per_kwh_absent_without_power(self) -> None:
        r = _records(_row(gpu_power_watts=None))[0]
        assert r.tokens_per_kwh is None

    def test_filters_chain(self) -> None:
        recs = _records(
            _row(id="a", backend="vllm", quantization="FP16"),
            _row(id="b", backend="llama.cpp", quantization="Q4_K_M"),
            _row(id="c", backend="vllm", quantization="FP8", model_name="org/other"),
        )
        assert [r.id for r in recs.backend("vllm")] == ["a", "c"]
        assert [r.id for r in recs.backend("vllm").model("org/model")] == ["a"]
        assert [r.id for r in recs.quantization("Q4_K_M", "FP8")] == ["b", "c"]
        assert len(recs.gpu("H100")) == 0
        assert not recs.gpu("H100")

    def test_category_filter(self) -> None:
        recs = _records(
            _row(id="a"),
            _row(id="b", gpu_model="H100 80GB"),
            _row(id="c", gpu_model="CPU Only", cpu_model="Intel Xeon Gold"),
        )
        assert [r.id for r in recs.category("datacenter_gpu")] == ["b"]
        assert [r.id for r in recs.category(HardwareCategory.DATACENTER_CPU, "consumer_gpu")] == [
            "a",
            "c",
        ]

    def test_speed_range_drops_missing(self) -> None:
        recs = _records(
            _row(id="a", tokens_per_second=10.0),
            _row(id="b", tokens_per_second=None),
            _row(id="c", tokens_per_second=30.0),
        )
        assert [r.id for r in recs.speed(min=20.0)] == ["c"]
        assert [r.id for r in recs.speed(max=20.0)] == ["a"]
        with pytest.raises(TypeError):
            recs.speed()

    def test_group_by_first_seen_order(self) -> None:
        recs = _records(
            _row(id="a", model_name="m2"),
            _row(id="b", model_name="m1"),
            _row(id="c", model_name="m2"),
        )
        groups = recs.group_by("model_name")
        assert list(groups) == ["m2", "m1"]
        assert [r.id for r in groups["m2"]] == ["a", "c"]

        multi = recs.group_by("model_name", "backend")
        assert ("m1", "vllm") in multi

    def test_data_accessor(self) -> None:
        recs = _records(_row(id="a"), _row(id="b", tokens_per_second=None))
        assert recs.data.id == ["a", "b"]
        assert recs.data.tokens_per_second == [50.0, None]
        assert recs.data.hardware_category == [HardwareCategory.CONSUMER_GPU] * 2
        with pytest.raises(AttributeError):
            recs.data.not_a_field  # noqa: B018

    def test_with_quality_scores(self) -> None:
        recs = _records(_row(id="a"), _row(id="b", quantization="Q4_K_M"))
        scored = recs.with_quality_scores({("org/model", "FP16"): 70.0})
        assert scored.data.quality_score == [70.0, None]
        # Original collection is untouched.
        assert recs.data.quality_score == [None, None]

    def test_add_and_repr(self) -> None:
        recs = _records(_row(id="a")) + _records(_row(id="b"))
        assert len(recs) == 2
        assert repr(recs) == "ConfigurationRecords(2 records)"

    def test_to_dataframe(self) -> None:
        df = _records(_row(tokens_per_second=80.0)).to_dataframe()
        assert df.loc[0, "tokens_per_kwh"] == pytest.approx(1_440_000.0)
        assert df.loc[0, "hardware_category"] == "consumer_gpu"
        assert ConfigurationRecords([]).to_dataframe().empty


def _score(benchmark: str, value: float, **extra: Any) -> dict[str, Any]:
    row = {"benchmark": benchmark, "model_name": "m", "quantization": "FP16", "value": value}
    return {**row, **extra}


class TestQualityScores:
    @pytest.fixture
    def scores(self) -> QualityScores:
        return QualityScores(
            pd.DataFrame(
                [
                    _score("mmlu", 60.0, category="stem"),
                    _score("mmlu", 80.0, category="humanities"),
                    _score("mmlu", 90.0, category="stem", lora_adapter="org/adapter"),
                    _score("gsm8k", 0.5),
                    _score("humaneval", 42.0),
                    _score("truthfulqa", 55.0),
                ]
            )
        )

    def test_mmlu_is_mean_over_all_rows(self, scores: QualityScores) -> None:
        assert scores.score("m", "FP16", "mmlu") == pytest.approx((60.0 + 80.0 + 90.0) / 3)

    def test_gsm8k_scaled_to_percent(self, scores: QualityScores) -> None:
        assert scores.score("m", "FP16", "gsm8k") == pytest.approx(50.0)

    def test_other_benchmarks_as_stored(self, scores: QualityScores) -> None:
        assert scores.score("m", "FP16", "humaneval") == 42.0
        assert scores.score("m", "FP16", "truthfulqa") == 55.0
        assert scores.score("m", "FP16", "hellaswag") is None

    def test_none_and_unknown_benchmarks(self, scores: QualityScores) -> None:
        assert scores.score("m", "FP16", "none") is None
        assert scores.score("m", "FP16", "bogus") is None

    def test_missing_pair(self, scores: QualityScores) -> None:
        assert scores.score("m", "Q4_K_M", "mmlu") is None

    def test_category_scores_exact_lora(self, scores: QualityScores) -> None:
        assert scores.category_scores("m", "FP16") == {"humanities": 80.0, "stem": 60.0}
        assert scores.category_scores("m", "FP16", "org/adapter") == {"stem": 90.0}
        assert scores.category_scores("m", "FP16", "org/unknown") == {}

    def test_missing_columns_rejected(self) -> None:
        with pytest.raises(ValueError, match="value"):
            QualityScores(pd.DataFrame([{"benchmark": "mmlu", "model_name": "m"}]))

    def test_from_directory_without_table(self, tmp_path: Path) -> None:
        assert len(QualityScores.from_directory(tmp_path)) == 0


class TestHeatmaps:
    def test_cell_aggregation(self) -> None:
        recs = _records(
            _row(id="a", gpu_power_limit_watts=300, concurrent_requests=8,
                 tokens_per_second=45.0, ttft_p95_ms=120.0, gpu_power_watts=200.0),
            _row(id="b", gpu_power_limit_watts=300, concurrent_requests=8,
                 tokens_per_second=50.0, ttft_p95_ms=100.0, gpu_power_watts=300.0),
        )
        cells = aggregate_cells(recs)
        assert len(cells) == 1
        cell = cells[0]
        assert cell.speed == 50.0
        assert cell.ttft == 100.0
        assert cell.power == 250.0
        assert cell.run_count == 2
        assert cell.efficiency == pytest.approx(50.0 * 3_600_000 / 250.0)

    def test_defaults_for_missing_grid_coordinates(self) -> None:
        cell = aggregate_cells(_records(_row()))[0]
        assert (cell.power_limit, cell.concurrency) == (0, 1)

    def test_sparse_maps(self) -> None:
        recs = _records(
            _row(id="a", gpu_power_limit_watts=300, concurrent_requests=1, tpot_p95_ms=9.0),
            _row(id="b", gpu_power_limit_watts=250, concurrent_requests=4,
                 tokens_per_second=None, memory_gb=10.0),
            _row(id="c", backend="llama.cpp", quantization="Q4_K_M",
                 gpu_power_limit_watts=300, concurrent_requests=4, gpu_power_watts=None),
        )
        hm = build_heatmap(recs)
        assert isinstance(hm, HeatmapData)
        assert hm.quantizations == ["llama.cpp||Q4_K_M", "vllm||FP16"]
        assert hm.power_limits == [250, 300]
        assert hm.concurrent_requests == [1, 4]
        assert hm.value("speed", "vllm||FP16", 300, 1) == 50.0
        assert hm.value("speed", "vllm||FP16", 250, 4) is None
        assert hm.value("tpot", "vllm||FP16", 300, 1) == 9.0
        assert hm.value("ttft", "vllm||FP16", 300, 1) is None
        assert hm.value("efficiency", "llama.cpp||Q4_K_M", 300, 4) is None
        assert hm.ttft_data["llama.cpp||Q4_K_M"] == {}

    def test_to_dict_and_dataframe(self) -> None:
        hm = build_heatmap(_records(_row(gpu_power_limit_watts=300, concurrent_requests=8)))
        d = hm.to_dict()
        assert d["speed_data"] == {"vllm||FP16": {"300": {"8": 50.0}}}
        df = hm.to_dataframe()
        assert set(df["metric"]) == {"speed", "efficiency"}
        assert set(df["backend"]) == {"vllm"}

    def test_unknown_metric(self) -> None:
        hm = build_heatmap(_records(_row()))
        with pytest.raises(ValueError, match="Unknown heatmap metric"):
            hm.grid("power")

    def test_nan_values_ignored(self) -> None:
        recs = [
            ConfigurationRecord(
                id="a", model_name="m", quantization="FP16", backend="vllm",
                gpu_model="RTX 4090", cpu_model="x", hardware_summary="h",
                tokens_per_second=math.nan,
            )
        ]
        assert aggregate_cells(recs)[0].speed is None
