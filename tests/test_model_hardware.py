from __future__ import annotations

import json
from typing import Any

import pandas as pd
import pytest

from llmbench_data.analysis.model_hardware import (
    AnalysisNotFoundError,
    analyze_model_hardware,
    quantization_sort_key,
)
from llmbench_data.pipeline import AnalysisPipeline
from llmbench_data.records.configurations import ConfigurationRecords


def _row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": "run",
        "model_name": "org/model",
        "quantization": "FP16",
        "backend": "vllm",
        "gpu_model": "RTX 4090",
        "cpu_model": "AMD Ryzen 9 7950X",
        "tokens_per_second": 50.0,
        "gpu_power_watts": 200.0,
        "gpu_power_limit_watts": 300,
        "concurrent_requests": 8,
    }
    row.update(overrides)
    return row


def _category_rows(quant: str, lora: str, **scores: float) -> list[dict[str, Any]]:
    return [
        {
            "benchmark": "mmlu",
            "model_name": "org/model",
            "quantization": quant,
            "lora_adapter": lora,
            "category": cat,
            "value": v,
        }
        for cat, v in scores.items()
    ]


class TestQuantizationOrder:
    def test_logical_order(self) -> None:
        quants = ["Q4_K_M", "other", "W4A16", "FP8", "W8A8", "BF16", "W4", "FP32"]
        quants += ["FP8_DYNAMIC", "FP16", "Q8_0"]
        ordered = sorted(quants, key=quantization_sort_key)
        assert ordered == [
            "FP32",
            "BF16",
            "FP16",
            "FP8_DYNAMIC",
            "FP8",
            "W4A16",
            "W8A8",
            "W4",
            "Q4_K_M",
            "Q8_0",
            "other",
        ]


class TestModelHardwareAnalysis:
    def test_heatmap_cell_best_values(self) -> None:
        recs = ConfigurationRecords.from_records(
            [
                _row(id="a", tokens_per_second=45.0, ttft_p95_ms=120.0),
                _row(id="b", tokens_per_second=50.0, ttft_p95_ms=100.0),
            ]
        )
        analysis = analyze_model_hardware(recs, "org/model", "RTX 4090")
        hm = analysis.heatmap_data
        assert hm.value("speed", "vllm||FP16", 300, 8) == 50.0
        assert hm.value("ttft", "vllm||FP16", 300, 8) == 100.0
        assert analysis.total_configurations == 1
        summary = analysis.quantizations[0]
        assert summary.best_speed == 50.0
        assert summary.best_ttft == 100.0
        assert summary.configuration_count == 1
        assert summary.best_tokens_per_kwh == pytest.approx(50.0 * 3_600_000 / 200.0)

    def test_summaries_sorted_and_grouped_by_backend(self) -> None:
        recs = ConfigurationRecords.from_records(
            [
                _row(id="1", backend="vllm", quantization="W4A16"),
                _row(id="2", backend="llama.cpp", quantization="Q4_K_M"),
                _row(id="3", backend="vllm", quantization="BF16"),
                _row(id="4", backend="llama.cpp", quantization="FP16"),
                _row(id="5", backend="vllm", quantization="BF16", concurrent_requests=16),
            ]
        )
        analysis = analyze_model_hardware(recs, "org/model", "RTX 4090")
        assert [(q.backend, q.quantization) for q in analysis.quantizations] == [
            ("llama.cpp", "FP16"),
            ("llama.cpp", "Q4_K_M"),
            ("vllm", "BF16"),
            ("vllm", "W4A16"),
        ]
        assert [b.backend for b in analysis.backends] == ["llama.cpp", "vllm"]
        assert [q.quantization for q in analysis.backends[1].quantizations] == ["BF16", "W4A16"]
        assert analysis.total_configurations == 5
        bf16 = analysis.quantizations[2]
        assert bf16.configuration_count == 2
        assert analysis.heatmap_data.concurrent_requests == [8, 16]
        assert analysis.heatmap_data.quantizations == [
            "llama.cpp||FP16",
            "llama.cpp||Q4_K_M",
            "vllm||BF16",
            "vllm||W4A16",
        ]

    def test_selects_by_gpu_model_only(self) -> None:
        recs = ConfigurationRecords.from_records(
            [
                _row(id="a", cpu_model="cpu-1"),
                _row(id="b", cpu_model="cpu-2", gpu_power_limit_watts=250),
                _row(id="c", gpu_model="H100"),
                _row(id="d", model_name="org/other"),
            ]
        )
        analysis = analyze_model_hardware(recs, "org/model", "RTX 4090")
        assert analysis.heatmap_data.power_limits == [250, 300]

    def test_missing_speed_and_scores(self) -> None:
        recs = ConfigurationRecords.from_records(
            [_row(tokens_per_second=None, memory_gb=4.0, gpu_power_limit_watts=None,
                  concurrent_requests=None)]
        )
        analysis = analyze_model_hardware(recs, "org/model", "RTX 4090")
        summary = analysis.quantizations[0]
        assert summary.best_speed == 0.0
        assert summary.best_tokens_per_kwh is None
        assert summary.best_ttft is None
        assert summary.quality_score == 0.0
        assert summary.category_scores == {}
        assert analysis.heatmap_data.speed_data == {"vllm||FP16": {}}
        assert analysis.heatmap_data.power_limits == [0]
        assert analysis.heatmap_data.concurrent_requests == [1]

    def test_not_found(self) -> None:
        recs = ConfigurationRecords.from_records([_row()])
        with pytest.raises(AnalysisNotFoundError, match="org/model"):
            analyze_model_hardware(recs, "org/model", "H100")
        with pytest.raises(AnalysisNotFoundError):
            analyze_model_hardware(recs, "org/missing", "RTX 4090")

    def test_category_lookup_failure_means_no_scores(self) -> None:
        def broken(model: str, quant: str, lora: str) -> dict[str, float]:
            raise RuntimeError("score store offline")

        recs = ConfigurationRecords.from_records([_row()])
        analysis = analyze_model_hardware(recs, "org/model", "RTX 4090", category_scores=broken)
        assert analysis.quantizations[0].quality_score == 0.0
        assert analysis.quantizations[0].category_scores == {}


class TestPipelineAnalysis:
    @pytest.fixture
    def pipeline(self) -> AnalysisPipeline:
        runs = pd.DataFrame(
            [
                _row(id="a", quantization="FP16"),
                _row(id="b", quantization="Q4_K_M", backend="llama.cpp", tpot_p95_ms=12.0),
            ]
        )
        scores = pd.DataFrame(
            _category_rows("FP16", "", stem=60.0, humanities=80.0)
            + _category_rows("FP16", "org/adapter", stem=90.0)
            + _category_rows("Q4_K_M", "org/adapter", stem=50.0)
        )
        return AnalysisPipeline(runs, scores=scores)

    def test_base_model_scores(self, pipeline: AnalysisPipeline) -> None:
        analysis = pipeline.model_hardware_analysis("org/model", "RTX 4090")
        by_quant = {q.quantization: q for q in analysis.quantizations}
        assert by_quant["FP16"].quality_score == pytest.approx(70.0)
        assert by_quant["FP16"].category_scores == {"humanities": 80.0, "stem": 60.0}
        # Adapter-only scores do not leak into the base model.
        assert by_quant["Q4_K_M"].quality_score == 0.0

    def test_adapter_scores(self, pipeline: AnalysisPipeline) -> None:
        analysis = pipeline.model_hardware_analysis("org/model", "RTX 4090", "org/adapter")
        by_quant = {q.quantization: q for q in analysis.quantizations}
        assert by_quant["FP16"].quality_score == pytest.approx(90.0)
        assert by_quant["Q4_K_M"].quality_score == pytest.approx(50.0)

    def test_build_heatmap(self, pipeline: AnalysisPipeline) -> None:
        hm = pipeline.build_heatmap("org/model", "RTX 4090")
        assert hm.value("tpot", "llama.cpp||Q4_K_M", 300, 8) == 12.0
        with pytest.raises(AnalysisNotFoundError):
            pipeline.build_heatmap("org/model", "A100")

    def test_to_dict(self, pipeline: AnalysisPipeline) -> None:
        analysis = pipeline.model_hardware_analysis("org/model", "RTX 4090")
        d = json.loads(json.dumps(analysis.to_dict()))
        assert d["model_name"] == "org/model"
        assert d["gpu_model"] == "RTX 4090"
        assert [b["backend"] for b in d["backends"]] == ["llama.cpp", "vllm"]
        assert d["heatmap_data"]["speed_data"]["vllm||FP16"] == {"300": {"8": 50.0}}
