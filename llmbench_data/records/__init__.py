"""Benchmark configuration records, quality scores and heatmaps."""

from llmbench_data.records.configurations import (
    ConfigurationRecord,
    ConfigurationRecords,
)
from llmbench_data.records.heatmaps import HeatmapData, build_heatmap
from llmbench_data.records.scores import QualityScores

__all__ = [
    "ConfigurationRecord",
    "ConfigurationRecords",
    "HeatmapData",
    "QualityScores",
    "build_heatmap",
]
