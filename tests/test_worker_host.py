import json

import pytest

from services.connectivity import ConnectivityMonitor
from services.errors import BackgroundSyncError
from services.mutation_queue_store import QueuedMutation
from services.replay_client import SupabaseReplayClient
from services.worker_host import (
    MANUAL_SYNC,
    SET_SUPABASE_CONFIG,
    SYNC,
    BackgroundSyncHost,
    BackgroundSyncRegistrar,
)


@pytest.fixture()
def monitor():
    return ConnectivityMonitor(initial=False)


@pytest.fixture()
def host(worker, monitor, tmp_path):
    host = BackgroundSyncHost(
        worker,
        SupabaseReplayClient(),
        monitor,
        periodic_interval_sec=None,
        config_path=tmp_path / "config.json",
    )
    host.start()
    yield host
    host.stop()


def _queue(store, name="x"):
    mutation = QueuedMutation.new("goal", "create", "/api/goals", {"name": name, "target_amount": 100}, "user-1")
    store.enqueue(mutation)
    return mutation


def test_supabase_config_message_configures_client_and_persists(host, tmp_path):
    host.post_message({"type": SET_SUPABASE_CONFIG, "url": "https://demo.supabase.co", "key": "anon"})
    host.wait_idle()

    assert host.replay_client.url == "https://demo.supabase.co"
    assert host.replay_client.key == "anon"
    saved = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert saved["supabase_url"] == "https://demo.supabase.co"


def test_manual_sync_drains_when_online(host, store, monitor, sync_calls):
    monitor.set_online(True)
    host.wait_idle()
    _queue(store)
    host.post_message({"type": MANUAL_SYNC})
    host.wait_idle()

    assert store.count() == 0
    assert sync_calls == [(True, 1)]


def test_manual_sync_while_offline_is_postponed(host, store, sync_calls):
    _queue(store)
    host.post_message({"type": MANUAL_SYNC})
    host.wait_idle()

    assert store.count() == 1
    assert sync_calls == []


def test_registered_tag_drains_when_connectivity_returns(host, store, monitor, sync_calls):
    _queue(store, "a")
    _queue(store, "b")
    host.register("goal-sync")
    host.register("goal-sync")
    host.wait_idle()
    assert host.pending_tags == {"goal-sync"}

    monitor.set_online(True)
    host.wait_idle()

    assert store.count() == 0
    assert host.pending_tags == set()
    assert sync_calls == [(True, 2)]


def test_sync_for_unknown_tag_is_ignored(host, store, monitor, sync_calls):
    monitor.set_online(True)
    host.wait_idle()
    _queue(store)
    host.post_message({"type": SYNC, "tag": "never-registered"})
    host.wait_idle()

    assert store.count() == 1
    assert sync_calls == []


def test_malformed_message_is_rejected(host):
    with pytest.raises(ValueError):
        host.post_message({"url": "missing type"})


def test_register_on_stopped_host_fails(worker, monitor):
    host = BackgroundSyncHost(worker, SupabaseReplayClient(), monitor, periodic_interval_sec=None)
    with pytest.raises(BackgroundSyncError):
        host.register("goal-sync")


def test_registrar_without_host_is_unsupported():
    registrar = BackgroundSyncRegistrar()
    assert registrar.is_supported() is False
    assert registrar.register("goal-sync") is False


def test_registrar_wraps_host_failures():
    class BrokenHost:
        supports_sync = True

        def register(self, tag):
            raise OSError("scheduler gone")

    with pytest.raises(BackgroundSyncError):
        BackgroundSyncRegistrar(BrokenHost()).register("goal-sync")


def test_reconnect_drains_records_from_earlier_run(host, store, monitor, sync_calls):
    # persisted before this host existed, so no tag was ever registered
    _queue(store, "left over")
    assert host.pending_tags == set()

    monitor.set_online(True)
    host.wait_idle()

    assert store.count() == 0
    assert sync_calls == [(True, 1)]


def test_start_while_online_drains_leftovers(worker, store, tmp_path, sync_calls):
    _queue(store, "left over")
    online = ConnectivityMonitor(initial=True)
    host = BackgroundSyncHost(
        worker,
        SupabaseReplayClient(),
        online,
        periodic_interval_sec=None,
        config_path=tmp_path / "config.json",
    )
    host.start()
    try:
        host.wait_idle()
    finally:
        host.stop()

    assert store.count() == 0
    assert sync_calls == [(True, 1)]


def test_wake_handled_offline_keeps_tags(host, store, monitor, sync_calls):
    _queue(store)
    host.register("goal-sync")
    host.post_message({"type": SYNC, "tag": "goal-sync"})
    host.wait_idle()

    assert host.pending_tags == {"goal-sync"}
    assert store.count() == 1

    monitor.set_online(True)
    host.wait_idle()

    assert host.pending_tags == set()
    assert store.count() == 0
    assert sync_calls == [(True, 1)]


def test_reconnect_with_empty_queue_does_not_drain(host, monitor, sync_calls):
    monitor.set_online(True)
    host.wait_idle()
    assert sync_calls == []
