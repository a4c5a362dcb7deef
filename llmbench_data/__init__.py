"""LLM inference benchmark aggregation toolkit."""

from llmbench_data.analysis.grouping import GroupedPerformanceResponse
from llmbench_data.analysis.hardware import HardwareCategory
from llmbench_data.analysis.model_hardware import AnalysisNotFoundError, ModelHardwareAnalysis
from llmbench_data.params import GroupedPerformanceParams
from llmbench_data.pipeline import AnalysisPipeline
from llmbench_data.records.configurations import (
    ConfigurationRecord,
    ConfigurationRecords,
)
from llmbench_data.records.scores import QualityScores
from llmbench_data.sources import RowSourceError

__all__ = [
    "AnalysisNotFoundError",
    "AnalysisPipeline",
    "ConfigurationRecord",
    "ConfigurationRecords",
    "GroupedPerformanceParams",
    "GroupedPerformanceResponse",
    "HardwareCategory",
    "ModelHardwareAnalysis",
    "QualityScores",
    "RowSourceError",
]

__version__ = "0.1.0"
