"""Classification, filtering, grouping and ranking of benchmark records."""

from llmbench_data.analysis.efficiency import tokens_per_kwh
from llmbench_data.analysis.hardware import (
    HardwareCategory,
    classify_hardware,
    parse_hardware_categories,
)

__all__ = [
    "HardwareCategory",
    "classify_hardware",
    "parse_hardware_categories",
    "tokens_per_kwh",
]
