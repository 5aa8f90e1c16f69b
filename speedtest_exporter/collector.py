from dataclasses import dataclass
from typing import Iterator

from prometheus_client.core import GaugeMetricFamily

from .models import Snapshot
from .store import SnapshotCache

NAMESPACE = "speedtest"

STATUS_LABELS = ("test_uuid",)
MEASUREMENT_LABELS = (
    "test_uuid",
    "user_lat",
    "user_lon",
    "user_ip",
    "user_isp",
    "server_lat",
    "server_lon",
    "server_id",
    "server_name",
    "server_country",
    "distance",
)

@dataclass(frozen=True)
class MetricSpec:
    name: str
    documentation: str
    labels: tuple[str, ...]

    def family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(f"{NAMESPACE}_{self.name}", self.documentation, labels=list(self.labels))

UP = MetricSpec("up", "Was the last speedtest successful.", STATUS_LABELS)
SCRAPE_DURATION = MetricSpec(
    "scrape_duration_seconds", "Time to perform last speed test", STATUS_LABELS
)
LATENCY = MetricSpec(
    "latency_milliseconds", "Measured latency on last speed test in milliseconds", MEASUREMENT_LABELS
)
JITTER = MetricSpec(
    "jitter_milliseconds", "Measured jitter on last speed test in milliseconds", MEASUREMENT_LABELS
)
UPLOAD = MetricSpec("upload_speed_bytes_per_second", "Last upload speedtest result", MEASUREMENT_LABELS)
DOWNLOAD = MetricSpec("download_speed_bytes_per_second", "Last download speedtest result", MEASUREMENT_LABELS)

METRICS = (UP, SCRAPE_DURATION, LATENCY, JITTER, UPLOAD, DOWNLOAD)

class SpeedtestCollector:
    """Prometheus collector serving the cached snapshot. Never runs a test itself."""

    def __init__(self, cache: SnapshotCache):
        self.cache = cache

    def describe(self) -> Iterator[GaugeMetricFamily]:
        for spec in METRICS:
            yield spec.family()

    def collect(self) -> Iterator[GaugeMetricFamily]:
        if not self.cache.is_ready():
            return
        snap = self.cache.read()
        if snap is None:
            return
        yield from snapshot_families(snap)

def snapshot_families(snap: Snapshot) -> list[GaugeMetricFamily]:
    up = UP.family()
    if snap.result is None:
        up.add_metric([snap.id], 0.0)
        return [up]

    up.add_metric([snap.id], 1.0)
    duration = SCRAPE_DURATION.family()
    duration.add_metric([snap.id], snap.duration)

    labels = snap.result.labels(snap.id)
    m = snap.result.measurement
    families = [up, duration]
    for spec, value in (
        (LATENCY, m.latency_ms),
        (JITTER, m.jitter_ms),
        (UPLOAD, m.upload_bps),
        (DOWNLOAD, m.download_bps),
    ):
        fam = spec.family()
        fam.add_metric(labels, value)
        families.append(fam)
    return families
