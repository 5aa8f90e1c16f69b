import logging
import time
from typing import Union

from .errors import RefreshError
from .models import MeasurementResult, Snapshot, new_snapshot_id
from .selector import CLOSEST, select_server
from .speedtest import Backend
from .store import SnapshotCache

class Refresher:
    """Runs one speedtest cycle and commits its outcome to the cache.

    Every call to `run()` commits exactly one Snapshot, success or failure,
    then marks the cache ready. Failures are re-raised as RefreshError after
    the commit. Cancellation commits nothing.
    """

    def __init__(
        self,
        backend: Backend,
        cache: SnapshotCache,
        preference: Union[str, int] = CLOSEST,
        allow_fallback: bool = False,
    ):
        self.backend = backend
        self.cache = cache
        self.preference = preference
        self.allow_fallback = allow_fallback
        self._log = logging.getLogger(__name__)

    async def run(self) -> Snapshot:
        test_uuid = new_snapshot_id()
        t0 = time.monotonic()
        try:
            result = await self._measure()
        except RefreshError:
            self._commit(Snapshot.failed(test_uuid, time.monotonic() - t0))
            raise
        except Exception as e:
            self._commit(Snapshot.failed(test_uuid, time.monotonic() - t0))
            raise RefreshError(f"unexpected error: {e!r}") from e

        snap = Snapshot.succeeded(test_uuid, time.monotonic() - t0, result)
        self._commit(snap)
        return snap

    async def _measure(self) -> MeasurementResult:
        requester = await self.backend.fetch_requester_info()
        endpoints = await self.backend.fetch_endpoints(requester)
        endpoint = select_server(endpoints, self.preference, self.allow_fallback)
        measurement = await self.backend.measure(endpoint)
        return MeasurementResult(measurement=measurement, requester=requester, endpoint=endpoint)

    def _commit(self, snap: Snapshot) -> None:
        self.cache.replace(snap)
        self.cache.gate.mark_ready()
        self._log.info(
            "snapshot committed",
            extra={
                "event": "refresh.commit",
                "extra_fields": {
                    "test_uuid": snap.id,
                    "success": snap.success,
                    "duration_s": round(snap.duration, 3),
                },
            },
        )
