import os
import sys
import tempfile
import threading
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# keep logs, config and the default database out of the real user profile
os.environ.setdefault("SAVEPLUS_DATA_DIR", tempfile.mkdtemp(prefix="saveplus-tests-"))

import pytest

from services.auth_session import AuthSession
from services.connectivity import ConnectivityMonitor
from services.mutation_queue_store import MutationQueueStore
from services.offline_context import OfflineContext
from services.sync_notifier import SyncNotifier
from services.sync_state_storage import SyncStateStorage
from services.sync_worker import SyncWorker
from storage.db import init_db, make_engine, session_factory_for


class FakeTransport:
    """Records replayed mutations; ``failures`` maps an id to the exception to raise."""

    def __init__(self):
        self.replayed = []
        self.failures = {}
        self.entered = threading.Event()
        self.release = None

    def replay(self, mutation):
        self.entered.set()
        if self.release is not None:
            self.release.wait(5)
        error = self.failures.get(mutation.id)
        if error is not None:
            raise error
        self.replayed.append(mutation)


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(tmp_path / "offline.db")
    init_db(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    return session_factory_for(engine)


@pytest.fixture()
def store(session_factory):
    return MutationQueueStore(session_factory=session_factory)


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def auth():
    session = AuthSession()
    session.sign_in("user-1", "token-1")
    return session


@pytest.fixture()
def notifier():
    return SyncNotifier()


@pytest.fixture()
def worker(store, transport, notifier, auth, tmp_path):
    return SyncWorker(
        store,
        transport,
        notifier,
        lambda: auth.user_id,
        state=SyncStateStorage(tmp_path / "sync_state.json"),
        holder_id="test-worker",
    )


@pytest.fixture()
def make_context(engine, transport, auth, tmp_path):
    created = []

    def factory(*, online=False, background_sync=False, **kwargs):
        context = OfflineContext(
            engine=engine,
            auth=auth,
            monitor=ConnectivityMonitor(initial=online),
            transport=transport,
            state=SyncStateStorage(tmp_path / "sync_state.json"),
            background_sync=background_sync,
            config_path=tmp_path / "config.json",
            periodic_interval_sec=None,
            holder_id=f"test-context-{len(created)}",
            **kwargs,
        )
        created.append(context)
        return context.init()

    yield factory
    for context in created:
        context.dispose()


@pytest.fixture()
def sync_calls(notifier):
    calls = []
    notifier.subscribe(lambda success, count: calls.append((success, count)))
    return calls
