import math
from typing import Sequence

EARTH_RADIUS_KM = 6371.0

def latency_ms(rtts_ms: Sequence[float]) -> float:
    """Latency is the best observed round trip."""
    if not rtts_ms:
        return 0.0
    return float(min(rtts_ms))

def jitter_ms(rtts_ms: Sequence[float]) -> float:
    """Mean absolute difference between consecutive round trips."""
    if len(rtts_ms) < 2:
        return 0.0
    diffs = [abs(rtts_ms[i + 1] - rtts_ms[i]) for i in range(len(rtts_ms) - 1)]
    return sum(diffs) / len(diffs)

def throughput_bps(total_bytes: int, elapsed_s: float) -> float:
    if elapsed_s <= 0 or total_bytes <= 0:
        return 0.0
    return total_bytes / elapsed_s

def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
