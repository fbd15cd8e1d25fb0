"""
Tests del monitor de Patroni
"""
import threading
from unittest.mock import MagicMock

import pytest

from glbtool.config.models import GlbConfig, MonitorConfig
from glbtool.core.alarm import MemoryAlarm
from glbtool.core.errors import ConfigError, MonitorStateError, ProbeError, SwitchError
from glbtool.patroni.monitor import MonitorState, PatroniMonitor
from glbtool.patroni.prober import ClusterProber
from tests.conftest import make_response
from tests.test_prober import cluster_doc, fake_session, _timeout


def monitor_config(**overrides):
    data = {
        "enabled": True,
        "check_interval": "30s",
        "mappings": [{
            "cluster": "pg-cluster",
            "nodemap": ["pg-1:first_dc1", "pg-2:first_dc2"],
            "patroni_urls": ["http://pg-a:8008", "http://pg-b:8008"],
        }],
    }
    data.update(overrides)
    return MonitorConfig(**data)


def build_monitor(config=None, prober=None, switcher=None, alarm=None):
    config = config or monitor_config()
    glb_config = GlbConfig(identifier="ctl-1", caddy={"patroni_auto_switch": config})
    return PatroniMonitor(
        config,
        switcher=switcher or MagicMock(),
        prober=prober or MagicMock(spec=ClusterProber),
        alarm=alarm or MemoryAlarm(),
        glb_config=glb_config,
    )


class TestFailoverScenario:
    def test_leader_moves_to_second_node(self):
        session = fake_session({
            "http://pg-a:8008": _timeout,
            "http://pg-b:8008": make_response(200, json_data=cluster_doc(leader="pg-2", replica="pg-1")),
        })
        switcher = MagicMock()
        alarm = MemoryAlarm()
        monitor = build_monitor(
            prober=ClusterProber(session=session, poll_interval=0.01),
            switcher=switcher,
            alarm=alarm,
        )

        monitor.check_all_clusters()

        switcher.assert_called_once_with("first_dc2")
        assert monitor.get_last_primary("pg-cluster") == "pg-2"
        assert alarm.messages == [
            "[lbPolicy - ctl-1] [:switch:] Patroni cluster pg-cluster primary changed: "
            " -> pg-2 (switched to first_dc2)"
        ]

    def test_unchanged_primary_does_not_switch_again(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.return_value = "pg-2"
        switcher = MagicMock()
        monitor = build_monitor(prober=prober, switcher=switcher)

        monitor.check_all_clusters()
        monitor.check_all_clusters()

        assert switcher.call_count == 1

    def test_change_after_known_primary(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.side_effect = ["pg-1", "pg-1", "pg-2"]
        switcher = MagicMock()
        alarm = MemoryAlarm()
        monitor = build_monitor(prober=prober, switcher=switcher, alarm=alarm)

        for _ in range(3):
            monitor.check_all_clusters()

        assert [c.args[0] for c in switcher.call_args_list] == ["first_dc1", "first_dc2"]
        assert alarm.messages[-1].endswith("primary changed: pg-1 -> pg-2 (switched to first_dc2)")

    def test_unmapped_node_uses_default_target(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.return_value = "pg-9"
        switcher = MagicMock()
        monitor = build_monitor(prober=prober, switcher=switcher)

        monitor.check_all_clusters()

        switcher.assert_called_once_with("first_dc1")


class TestCheckCluster:
    def test_probe_failure_is_not_fatal(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.side_effect = ProbeError("failed to check all Patroni URLs")
        switcher = MagicMock()
        alarm = MemoryAlarm()
        monitor = build_monitor(prober=prober, switcher=switcher, alarm=alarm)

        monitor.check_all_clusters()

        switcher.assert_not_called()
        assert alarm.messages == []
        assert monitor.get_last_primary("pg-cluster") is None

    def test_dry_run_only_logs(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.return_value = "pg-2"
        switcher = MagicMock()
        alarm = MemoryAlarm()
        monitor = build_monitor(config=monitor_config(dry_run=True), prober=prober, switcher=switcher, alarm=alarm)

        assert monitor.check_cluster(monitor.config.mappings[0]) == "first_dc2"

        switcher.assert_not_called()
        assert monitor.get_last_primary("pg-cluster") == "pg-2"
        assert alarm.messages == [
            "[lbPolicy - ctl-1] [:switch:] Patroni cluster pg-cluster primary changed: "
            " -> pg-2 (dry run, would switch to first_dc2)"
        ]

    def test_switch_failure_still_records_primary(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.return_value = "pg-2"
        switcher = MagicMock(side_effect=SwitchError("GET failed"))
        alarm = MemoryAlarm()
        monitor = build_monitor(prober=prober, switcher=switcher, alarm=alarm)

        monitor.check_all_clusters()

        assert monitor.get_last_primary("pg-cluster") == "pg-2"
        assert len(alarm.messages) == 1


class TestLifecycle:
    def test_start_primes_and_stop_is_terminal(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.return_value = "pg-1"
        switcher = MagicMock()
        monitor = build_monitor(prober=prober, switcher=switcher)

        monitor.start()
        try:
            assert monitor.is_running()
            assert monitor.get_last_primary("pg-cluster") == "pg-1"
            with pytest.raises(MonitorStateError):
                monitor.start()
        finally:
            monitor.stop(timeout=5)

        assert monitor.state == MonitorState.STOPPED
        assert not monitor.is_running()
        switcher.assert_not_called()
        with pytest.raises(MonitorStateError):
            monitor.start()

    def test_start_tolerates_initial_probe_failure(self):
        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.side_effect = ProbeError("down")
        monitor = build_monitor(prober=prober)

        monitor.start()
        monitor.stop(timeout=5)

        assert monitor.get_last_primary("pg-cluster") is None

    def test_loop_survives_unexpected_error(self, monkeypatch):
        monkeypatch.setattr("glbtool.config.models.MIN_CHECK_INTERVAL", 0.0)
        recovered = threading.Event()
        calls = []

        def _primary(mapping):
            calls.append(mapping.cluster)
            if len(calls) == 2:
                raise RuntimeError("boom")
            if len(calls) >= 3:
                recovered.set()
            return "pg-1"

        prober = MagicMock(spec=ClusterProber)
        prober.probe_primary.side_effect = _primary
        monitor = build_monitor(config=monitor_config(check_interval=0.02), prober=prober)

        monitor.start()
        try:
            assert recovered.wait(2)
            assert monitor._thread.is_alive()
            assert monitor.is_running()
        finally:
            monitor.stop(timeout=5)

        assert not monitor._thread.is_alive()

    def test_stop_when_idle_is_noop(self):
        monitor = build_monitor()
        monitor.stop()
        assert monitor.state == MonitorState.IDLE

    def test_stats(self):
        stats = build_monitor().stats()
        assert stats["state"] == "idle"
        assert stats["clusters"] == 1
        assert stats["check_interval"] == 30.0


class TestStartValidation:
    def test_disabled(self):
        with pytest.raises(ConfigError, match="disabled"):
            build_monitor(config=monitor_config(enabled=False)).start()

    def test_interval_too_short(self):
        with pytest.raises(ConfigError, match="at least 5 seconds"):
            build_monitor(config=monitor_config(check_interval=4)).start()

    def test_no_mappings(self):
        with pytest.raises(ConfigError, match="at least one mapping"):
            build_monitor(config=monitor_config(mappings=[])).start()

    def test_invalid_nodemap_entry(self):
        config = monitor_config(mappings=[{
            "cluster": "pg-cluster",
            "nodemap": ["pg-1"],
            "patroni_urls": ["http://pg-a:8008"],
        }])
        with pytest.raises(ConfigError, match="mapping 0: nodemap entry 0"):
            build_monitor(config=config).start()

    def test_unsupported_switch_target(self):
        config = monitor_config(mappings=[{
            "cluster": "pg-cluster",
            "nodemap": ["pg-1:dc1"],
            "patroni_urls": ["http://pg-a:8008"],
        }])
        with pytest.raises(ConfigError, match="mapping 0"):
            build_monitor(config=config).start()

    def test_failed_validation_leaves_monitor_idle(self):
        monitor = build_monitor(config=monitor_config(enabled=False))
        with pytest.raises(ConfigError):
            monitor.start()
        assert monitor.state == MonitorState.IDLE
