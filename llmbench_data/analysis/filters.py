"""Filter stage applied to configuration records before grouping."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from llmbench_data.analysis.hardware import HardwareCategory
from llmbench_data.records.configurations import ConfigurationRecord, ConfigurationRecords

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterParams:
    """Thresholds a record must satisfy to be presented.

    Attributes:
        min_speed: Minimum tokens/second. Records without speed fail.
        max_memory_gb: Maximum memory in GB. Records without memory pass.
        min_quality: Minimum quality score. Records without quality fail.
        hardware_categories: Allowed categories; empty means any.
    """

    min_speed: float | None = None
    max_memory_gb: float | None = None
    min_quality: float | None = None
    hardware_categories: frozenset[HardwareCategory] = field(default_factory=frozenset)


def exclusion_reason(record: ConfigurationRecord, params: FilterParams) -> str | None:
    """Name of the first check ``record`` fails, or ``None`` if it survives.

    Checks run in a fixed order: missing performance data, placeholder
    hardware, hardware category, speed, memory, quality.
    """
    if not record.has_performance_data:
        return "no_performance_data"
    if record.is_placeholder:
        return "placeholder_hardware"
    if params.hardware_categories and record.hardware_category not in params.hardware_categories:
        return "hardware_category"
    if params.min_speed is not None:
        if record.tokens_per_second is None or record.tokens_per_second < params.min_speed:
            return "min_speed"
    if params.max_memory_gb is not None:
        if record.memory_gb is not None and record.memory_gb > params.max_memory_gb:
            return "max_memory_gb"
    if params.min_quality is not None:
        if record.quality_score is None or record.quality_score < params.min_quality:
            return "min_quality"
    return None


def filter_records(records: ConfigurationRecords, params: FilterParams) -> ConfigurationRecords:
    """Keep the records passing every active filter, preserving order."""
    excluded: Counter[str] = Counter()
    kept = []
    for r in records:
        reason = exclusion_reason(r, params)
        if reason is None:
            kept.append(r)
        else:
            excluded[reason] += 1
            logger.debug("Excluding run %s (%s): %s", r.id, r.model_name, reason)
    logger.info(
        "Filter kept %d of %d records (excluded: %s)",
        len(kept),
        len(records),
        dict(excluded) or "none",
    )
    return ConfigurationRecords(kept)
