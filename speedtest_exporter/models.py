import uuid
from dataclasses import dataclass

def new_snapshot_id() -> str:
    return str(uuid.uuid4())

def format_distance(km: float) -> str:
    """Distance label value, always six decimals."""
    return f"{km:f}"

@dataclass(frozen=True)
class RequesterInfo:
    lat: str
    lon: str
    ip: str
    isp: str

@dataclass(frozen=True)
class Endpoint:
    """A candidate speedtest server as listed by the directory."""

    id: str
    name: str
    country: str
    lat: str
    lon: str
    distance_km: float = 0.0
    url: str = ""
    host: str = ""
    sponsor: str = ""

@dataclass(frozen=True)
class Measurement:
    latency_ms: float
    jitter_ms: float
    download_bps: float  # bytes/s
    upload_bps: float  # bytes/s

    def __post_init__(self):
        for name in ("latency_ms", "jitter_ms", "download_bps", "upload_bps"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

@dataclass(frozen=True)
class MeasurementResult:
    measurement: Measurement
    requester: RequesterInfo
    endpoint: Endpoint

    def labels(self, test_uuid: str) -> list[str]:
        """Label values in the order of `collector.MEASUREMENT_LABELS`."""
        return [
            test_uuid,
            self.requester.lat,
            self.requester.lon,
            self.requester.ip,
            self.requester.isp,
            self.endpoint.lat,
            self.endpoint.lon,
            self.endpoint.id,
            self.endpoint.name,
            self.endpoint.country,
            format_distance(self.endpoint.distance_km),
        ]

@dataclass(frozen=True)
class Snapshot:
    """Outcome of one refresh cycle. `result` is None for a failed cycle."""

    id: str
    duration: float  # seconds
    result: MeasurementResult | None = None

    def __post_init__(self):
        if self.duration < 0:
            raise ValueError("duration must be >= 0")

    @property
    def success(self) -> bool:
        return self.result is not None

    @classmethod
    def succeeded(cls, id: str, duration: float, result: MeasurementResult) -> "Snapshot":
        return cls(id=id, duration=duration, result=result)

    @classmethod
    def failed(cls, id: str, duration: float) -> "Snapshot":
        return cls(id=id, duration=duration)
