import os
from dataclasses import fields

from kvcache.clock import Clock
from kvcache.procinfo import ProcInfo, ProcInfoMetrics, version_number


def test_version_number_layout():
    assert version_number(1, 2, 3) == 10203


def test_version_number_orders_like_tuples():
    versions = [(0, 9, 9), (1, 0, 0), (1, 0, 1), (1, 10, 0), (2, 0, 0)]
    encoded = [version_number(*v) for v in versions]
    assert encoded == sorted(encoded)


def test_update_fills_identity_fields():
    clock = Clock(1_700_000_000)
    clock.now = 55
    metrics = ProcInfoMetrics()
    ProcInfo(metrics, clock, (0, 1, 0)).update()
    assert metrics.pid == os.getpid()
    assert metrics.time == clock.now_abs()
    assert metrics.uptime == clock.now
    assert metrics.version == version_number(0, 1, 0)


def test_update_fills_resource_usage():
    metrics = ProcInfoMetrics()
    ProcInfo(metrics, Clock(), (1, 0, 0)).update()
    assert metrics.ru_maxrss > 0
    assert metrics.ru_utime >= 0.0
    assert metrics.ru_stime >= 0.0
    assert metrics.ru_minflt >= 0


def test_update_without_metrics_leaves_object_alone():
    info = ProcInfo(None, Clock(), (1, 0, 0))
    info.update()
    assert info.metrics is None


def test_updated_metrics_carry_descriptions():
    metrics = ProcInfoMetrics()
    ProcInfo(metrics, Clock(1_700_000_000), (1, 2, 3)).update()
    assert metrics.version == 10203
    described = {f.name: f.metadata["description"] for f in fields(metrics)}
    assert described["pid"] == "pid of current process"
    assert all(described.values())