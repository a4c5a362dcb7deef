"""Energy efficiency derived metric."""

from __future__ import annotations

# 3600 s/h * 1000 W/kW: converts (tokens/s) / W into tokens/kWh.
JOULES_PER_KWH = 3_600_000.0


def tokens_per_kwh(speed: float | None, power_watts: float | None) -> float | None:
    """Tokens generated per kilowatt-hour.

    Args:
        speed: Generation throughput in tokens/second.
        power_watts: Average GPU power draw in watts.

    Returns:
        ``speed * 3_600_000 / power_watts``, or ``None`` when either input is
        missing or the power is not positive.
    """
    if speed is None or power_watts is None:
        return None
    if not power_watts > 0:
        return None
    return float(speed) * JOULES_PER_KWH / float(power_watts)
