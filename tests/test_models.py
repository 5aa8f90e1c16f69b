import dataclasses

import pytest

from speedtest_exporter.models import (
    Measurement,
    MeasurementResult,
    Snapshot,
    format_distance,
    new_snapshot_id,
)

from fakes import FIXED, REQUESTER, make_endpoint

def test_snapshot_ids_are_unique():
    ids = {new_snapshot_id() for _ in range(1000)}
    assert len(ids) == 1000

def test_failed_snapshot_has_no_measurement():
    snap = Snapshot.failed("x", 1.0)
    assert not snap.success
    assert snap.result is None

def test_successful_snapshot():
    snap = Snapshot.succeeded("x", 1.0, MeasurementResult(FIXED, REQUESTER, make_endpoint("5")))
    assert snap.success
    assert snap.result.measurement.latency_ms == FIXED.latency_ms

def test_snapshot_is_immutable():
    snap = Snapshot.failed("x", 1.0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.id = "y"

def test_negative_values_rejected():
    with pytest.raises(ValueError):
        Snapshot.failed("x", -0.1)
    with pytest.raises(ValueError):
        Measurement(latency_ms=-1, jitter_ms=0, download_bps=0, upload_bps=0)

def test_distance_format():
    assert format_distance(0) == "0.000000"
    assert format_distance(12.3456789) == "12.345679"
