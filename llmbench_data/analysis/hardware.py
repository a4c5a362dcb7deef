"""Hardware category classification for benchmark rigs."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class HardwareCategory(str, enum.Enum):
    """Coarse hardware class a configuration ran on.

    Values double as the tokens accepted by the ``hardware_categories``
    request parameter.
    """

    CONSUMER_GPU = "consumer_gpu"
    CONSUMER_CPU = "consumer_cpu"
    DATACENTER_GPU = "datacenter_gpu"
    DATACENTER_CPU = "datacenter_cpu"


_CONSUMER_GPU_MARKERS = ("RTX", "GTX")
_DATACENTER_GPU_MARKERS = ("A100", "H100", "L4", "L40", "V100", "T4")
_DATACENTER_CPU_MARKERS = ("Xeon", "EPYC")
_PLACEHOLDER_MARKERS = ("Generic", "Benchmark Only")


def _is_cpu_only(gpu_model: str, gpu_memory_gb: float | None) -> bool:
    if gpu_model in ("CPU Only", "N/A") or gpu_model.startswith("CPU"):
        return True
    return gpu_memory_gb is not None and gpu_memory_gb == 0


def _cpu_category(cpu_model: str) -> HardwareCategory:
    if any(m in cpu_model for m in _DATACENTER_CPU_MARKERS):
        return HardwareCategory.DATACENTER_CPU
    return HardwareCategory.CONSUMER_CPU


_Rule = tuple[
    Callable[[str, str, float | None], bool],
    Callable[[str], HardwareCategory],
]

# Evaluated top to bottom; the first matching predicate decides.
_RULES: tuple[_Rule, ...] = (
    (
        lambda gpu, cpu, mem: any(m in gpu for m in _CONSUMER_GPU_MARKERS),
        lambda cpu: HardwareCategory.CONSUMER_GPU,
    ),
    (
        lambda gpu, cpu, mem: any(m in gpu for m in _DATACENTER_GPU_MARKERS),
        lambda cpu: HardwareCategory.DATACENTER_GPU,
    ),
    (
        lambda gpu, cpu, mem: _is_cpu_only(gpu, mem),
        _cpu_category,
    ),
    (
        lambda gpu, cpu, mem: True,
        lambda cpu: HardwareCategory.CONSUMER_GPU,
    ),
)


def classify_hardware(
    gpu_model: str,
    cpu_model: str,
    *,
    gpu_memory_gb: float | None = None,
) -> HardwareCategory:
    """Classify a (GPU, CPU) pairing into a `HardwareCategory`.

    Rules are checked in order and the first match wins, so an ``"RTX"``
    card is always a consumer GPU even when the rig reports zero GPU
    memory. Unknown GPUs default to consumer.

    Args:
        gpu_model: GPU model string (e.g. ``"RTX 4090"``, ``"CPU Only"``).
        cpu_model: CPU model string (e.g. ``"AMD EPYC 7763"``).
        gpu_memory_gb: GPU memory in GB, if known. ``0`` marks a CPU-only rig.
    """
    for predicate, category in _RULES:
        if predicate(gpu_model, cpu_model, gpu_memory_gb):
            return category(cpu_model)
    raise AssertionError("unreachable: the last rule always matches")


def is_placeholder_hardware(gpu_model: str, cpu_model: str) -> bool:
    """Whether the hardware strings mark a synthetic benchmark-only entry."""
    return any(m in gpu_model or m in cpu_model for m in _PLACEHOLDER_MARKERS)


def parse_hardware_categories(raw: str | None) -> frozenset[HardwareCategory]:
    """Parse a comma-separated category list, dropping unknown tokens.

    Args:
        raw: e.g. ``"consumer_gpu, datacenter_cpu"``. ``None`` or an empty
            string yields an empty set (no filtering).
    """
    if not raw:
        return frozenset()
    out: set[HardwareCategory] = set()
    for tok in raw.split(","):
        tok = tok.strip()
        try:
            out.add(HardwareCategory(tok))
        except ValueError:
            logger.debug("Ignoring unknown hardware category %r", tok)
    return frozenset(out)
