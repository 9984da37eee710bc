import errno
import os
import threading

import pytest

from pano_decom import liveness
from pano_decom.errors import ProbeConfigError
from pano_decom.liveness import probe, resolve_stale_hosts


class FakeSr:
    def __init__(self, answered=0, exc=None):
        self.answered = answered
        self.exc = exc
        self.calls = []

    def __call__(self, packets, timeout, verbose):
        self.calls.append((packets, timeout))
        if self.exc is not None:
            raise self.exc
        return ["reply"] * self.answered, []


class TestProbe:
    def test_reachable_when_any_reply(self, monkeypatch):
        fake = FakeSr(answered=1)
        monkeypatch.setattr(liveness, "sr", fake)
        assert probe("8.8.8.8") is True
        packets, timeout = fake.calls[0]
        assert len(list(packets)) == liveness.PROBE_COUNT
        assert timeout == liveness.PROBE_TIMEOUT

    def test_unreachable_when_no_reply(self, monkeypatch):
        monkeypatch.setattr(liveness, "sr", FakeSr(answered=0))
        assert probe("10.10.10.10") is False

    def test_ipv6_host(self, monkeypatch):
        fake = FakeSr(answered=2)
        monkeypatch.setattr(liveness, "sr", fake)
        assert probe("2001:db8::1", count=2, timeout=1.0) is True
        assert len(list(fake.calls[0][0])) == 2

    def test_network_error_is_unreachable(self, monkeypatch):
        monkeypatch.setattr(liveness, "sr", FakeSr(exc=OSError("network is unreachable")))
        assert probe("10.10.10.10") is False

    @pytest.mark.parametrize("host", ["not-an-ip", "", "300.1.1.1", "10.0.0.0/24"])
    def test_malformed_host_is_fatal(self, monkeypatch, host):
        fake = FakeSr(answered=1)
        monkeypatch.setattr(liveness, "sr", fake)
        with pytest.raises(ProbeConfigError):
            probe(host)
        assert fake.calls == []

    def test_missing_privilege_is_fatal(self, monkeypatch):
        monkeypatch.setattr(liveness, "sr", FakeSr(exc=PermissionError("Operation not permitted")))
        with pytest.raises(ProbeConfigError):
            probe("8.8.8.8")

    @pytest.mark.parametrize("code", [errno.EMFILE, errno.ENFILE, errno.ENOBUFS])
    def test_exhausted_local_resources_are_fatal(self, monkeypatch, code):
        monkeypatch.setattr(liveness, "sr", FakeSr(exc=OSError(code, os.strerror(code))))
        with pytest.raises(ProbeConfigError):
            probe("127.0.0.14")

    @pytest.mark.parametrize("kwargs", [{"count": 0}, {"count": -1}, {"timeout": 0}, {"timeout": -2.5}])
    def test_count_or_timeout_that_sends_nothing_is_fatal(self, monkeypatch, kwargs):
        fake = FakeSr(answered=1)
        monkeypatch.setattr(liveness, "sr", fake)
        with pytest.raises(ProbeConfigError):
            probe("8.8.8.8", **kwargs)
        assert fake.calls == []


class TestResolveStaleHosts:
    def test_partition(self):
        alive = {"8.8.8.8", "8.8.4.4"}
        partition = resolve_stale_hosts(
            ["8.8.8.8", "10.10.10.10", "8.8.4.4", "10.254.254.254"], probe_fn=lambda h: h in alive
        )
        assert partition.fresh == {"8.8.8.8", "8.8.4.4"}
        assert partition.stale == {"10.10.10.10", "10.254.254.254"}

    def test_every_host_in_exactly_one_set(self):
        hosts = [f"10.0.{i // 256}.{i % 256}" for i in range(200)]
        partition = resolve_stale_hosts(hosts, probe_fn=lambda h: int(h.rsplit(".", 1)[1]) % 3 == 0, max_workers=8)
        assert partition.fresh | partition.stale == set(hosts)
        assert not partition.fresh & partition.stale

    def test_probe_error_classifies_as_stale(self):
        def flaky(host):
            if host == "10.1.1.1":
                raise RuntimeError("socket closed")
            return True

        partition = resolve_stale_hosts(["10.1.1.1", "10.1.1.2"], probe_fn=flaky)
        assert partition.stale == {"10.1.1.1"}
        assert partition.fresh == {"10.1.1.2"}

    def test_config_error_aborts(self):
        def bad(host):
            raise ProbeConfigError("no raw socket")

        with pytest.raises(ProbeConfigError):
            resolve_stale_hosts(["10.1.1.1"], probe_fn=bad)

    def test_probes_run_concurrently(self):
        hosts = ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
        barrier = threading.Barrier(len(hosts), timeout=5)

        def rendezvous(host):
            barrier.wait()
            return False

        partition = resolve_stale_hosts(hosts, probe_fn=rendezvous)
        assert partition.stale == set(hosts)

    def test_empty_input(self):
        partition = resolve_stale_hosts([], probe_fn=lambda h: True)
        assert partition.fresh == frozenset()
        assert partition.stale == frozenset()

    def test_zero_count_aborts_instead_of_marking_stale(self, monkeypatch):
        monkeypatch.setattr(liveness, "sr", FakeSr(answered=1))
        with pytest.raises(ProbeConfigError):
            resolve_stale_hosts(["8.8.8.8"], probe_fn=lambda h: probe(h, count=0))

    def test_resource_exhaustion_aborts_instead_of_marking_stale(self, monkeypatch):
        monkeypatch.setattr(liveness, "sr", FakeSr(exc=OSError(errno.EMFILE, "Too many open files")))
        with pytest.raises(ProbeConfigError):
            resolve_stale_hosts([f"127.0.0.{i}" for i in range(1, 60)], probe_fn=probe)

    def test_default_pool_is_capped(self, monkeypatch):
        seen = []
        real_pool = liveness.ThreadPoolExecutor

        def recording_pool(max_workers, **kwargs):
            seen.append(max_workers)
            return real_pool(max_workers=max_workers, **kwargs)

        monkeypatch.setattr(liveness, "ThreadPoolExecutor", recording_pool)
        hosts = [f"10.1.{i // 256}.{i % 256}" for i in range(liveness.MAX_PROBE_WORKERS + 10)]
        partition = resolve_stale_hosts(hosts, probe_fn=lambda h: True)
        assert seen == [liveness.MAX_PROBE_WORKERS]
        assert partition.fresh == set(hosts)
