"""
Unit tests for the per-container monitor.
"""
import threading

from orchlink.MANAGERS.container_monitor import ContainerMonitor
from orchlink.MODELS.container import ContainerHandle, ContainerState


def make_monitor(fake_client, applications, updater, name="c1", on_gone=None):
    handle = fake_client.create_container(name, "nginx")
    fake_client.calls.clear()
    return ContainerMonitor(handle, "app1", fake_client, applications, updater,
                            on_gone=on_gone)


class TestContainerMonitor:
    """Tests for ContainerMonitor.tick()."""

    def test_tick_forwards_state(self, fake_client, applications, updater):
        """Each tick reports the fetched state exactly once."""
        monitor = make_monitor(fake_client, applications, updater)
        fake_client.states["c1"] = ContainerState.RUNNING

        monitor.tick()
        assert updater.calls == [("app1", "c1", ContainerState.RUNNING)]
        monitor.tick()
        assert len(updater.calls) == 2
        assert monitor.last_state == ContainerState.RUNNING

    def test_handle_is_refreshed(self, fake_client, applications, updater):
        monitor = make_monitor(fake_client, applications, updater)
        fake_client.states["c1"] = ContainerState.STOPPED
        monitor.tick()
        assert monitor.handle.state == ContainerState.STOPPED

    def test_not_found_cancels_and_deregisters(self, fake_client, applications, updater):
        """A vanished container stops its own monitor."""
        gone = []
        monitor = make_monitor(fake_client, applications, updater, on_gone=gone.append)
        del fake_client.states["c1"]

        monitor.tick()
        monitor.tick()

        assert monitor.cancelled
        assert gone == [monitor]
        assert fake_client.calls == [("fetch_state", "c1")]
        assert updater.calls == []

    def test_transient_failure_keeps_monitoring(self, fake_client, applications, updater,
                                                unavailable):
        monitor = make_monitor(fake_client, applications, updater)
        fake_client.fail_with["fetch_state"] = unavailable
        monitor.tick()
        assert not monitor.cancelled
        assert updater.calls == []

        del fake_client.fail_with["fetch_state"]
        monitor.tick()
        assert updater.calls == [("app1", "c1", ContainerState.CREATED)]

    def test_missing_application_skips_update(self, fake_client, updater):
        class NoApplications:
            def find_one(self, application_id):
                return None

        monitor = make_monitor(fake_client, NoApplications(), updater)
        monitor.tick()
        assert updater.calls == []
        assert not monitor.cancelled

    def test_cancelled_monitor_does_not_poll(self, fake_client, applications, updater):
        monitor = make_monitor(fake_client, applications, updater)
        monitor.cancel()
        monitor.tick()
        assert fake_client.calls == []

    def test_result_discarded_after_cancel(self, applications, updater):
        """A fetch still in flight when cancel() is called is not applied."""
        fetching = threading.Event()
        release = threading.Event()

        class SlowClient:
            def fetch_state(self, handle):
                fetching.set()
                release.wait(timeout=2)
                return handle.model_copy(update={"state": ContainerState.RUNNING})

        monitor = ContainerMonitor(ContainerHandle(name="c1"), "app1", SlowClient(),
                                   applications, updater)
        ticker = threading.Thread(target=monitor.tick)
        ticker.start()
        assert fetching.wait(timeout=2)

        canceller = threading.Thread(target=monitor.cancel)
        canceller.start()
        while not monitor.cancelled:
            pass
        release.set()
        ticker.join(timeout=2)
        canceller.join(timeout=2)

        assert not canceller.is_alive()
        assert updater.calls == []
