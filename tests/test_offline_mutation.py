import json

import pytest

from services.errors import AuthenticationError
from services.offline_mutation import OfflineMutation


class Toasts:
    def __init__(self):
        self.shown = []

    def __call__(self, title, description):
        self.shown.append((title, description))


def _goal_update(context, toasts, **kwargs):
    return OfflineMutation(
        context,
        mutation_fn=kwargs.pop("mutation_fn", lambda variables: {"saved": dict(variables)}),
        type="goal",
        action="update",
        endpoint="/api/goals",
        invalidate_keys=[("goals",)],
        toast=toasts,
        **kwargs,
    )


def test_offline_write_is_queued_and_resolves_none(make_context, transport):
    context = make_context(online=False)
    toasts = Toasts()
    mutation = _goal_update(context, toasts)

    assert mutation.mutate_async({"id": "g-1", "amount": 50}) is None

    assert mutation.is_error is False
    assert mutation.is_pending is True
    assert context.queue_status().pending_count == 1
    assert toasts.shown == [("Saved offline", "Your changes will sync when you're back online")]
    assert transport.replayed == []


def test_reconnect_drains_and_reports(make_context, transport):
    context = make_context(online=False)
    toasts = Toasts()
    mutation = _goal_update(context, toasts)
    context.query_cache.fetch(("goals", "user-1"), lambda: ["stale"])
    mutation.mutate_async({"id": "g-1", "amount": 50})

    context.monitor.set_online(True)

    assert context.queue_status().pending_count == 0
    assert len(transport.replayed) == 1
    assert toasts.shown[-1] == ("Synced", "1 change synced successfully")
    assert ("goals", "user-1") not in context.query_cache
    assert mutation.is_pending is False


def test_online_write_calls_mutation_fn_and_invalidates(make_context):
    context = make_context(online=True)
    toasts = Toasts()
    settled = []
    mutation = _goal_update(
        context,
        toasts,
        on_settled=lambda data, error, variables, ctx: settled.append((data, error)),
    )
    context.query_cache.fetch(("goals", "user-1"), lambda: ["stale"])

    data = mutation.mutate_async({"id": "g-1", "amount": 5})

    assert data == {"saved": {"id": "g-1", "amount": 5}}
    assert mutation.data == data
    assert ("goals", "user-1") not in context.query_cache
    assert context.queue_status().pending_count == 0
    assert settled == [(data, None)]
    assert toasts.shown == []


def test_failed_online_write_rolls_back(make_context):
    context = make_context(online=True)
    applied = []
    errors = []

    def fail(variables):
        raise RuntimeError("server said no")

    mutation = _goal_update(
        context,
        Toasts(),
        mutation_fn=fail,
        optimistic_update=lambda variables: applied.append(variables["amount"]),
        rollback=lambda variables, ctx: applied.remove(variables["amount"]),
        on_error=lambda exc, variables, ctx: errors.append(str(exc)),
    )

    with pytest.raises(RuntimeError):
        mutation.mutate_async({"id": "g-1", "amount": 5})

    assert applied == []
    assert errors == ["server said no"]
    assert mutation.is_error
    assert mutation.is_loading is False


def test_offline_write_without_user_fails(make_context, auth):
    auth.sign_out()
    context = make_context(online=False)
    mutation = _goal_update(context, Toasts())

    with pytest.raises(AuthenticationError):
        mutation.mutate_async({"id": "g-1", "amount": 5})
    assert context.queue_status().pending_count == 0

    # fire-and-forget variant exposes the failure instead of raising
    mutation.mutate({"id": "g-1", "amount": 5})
    assert isinstance(mutation.error, AuthenticationError)


def test_queue_status_reports_oldest_and_dead_letters(make_context):
    context = make_context(online=False)
    mutation = _goal_update(context, Toasts())
    mutation.mutate_async({"id": "g-1", "amount": 1})
    mutation.mutate_async({"id": "g-2", "amount": 2})
    oldest = context.store.list("user-1")[0]
    context.store.mark_dead_letter(oldest.id, "400")

    status = context.queue_status()

    assert status.pending_count == 2
    assert status.dead_letter_count == 1
    assert status.oldest_mutation.id == oldest.id
    as_dict = status.to_dict()
    assert as_dict["pendingCount"] == 2
    assert as_dict["oldestMutation"]["payload"] == {"id": "g-1", "amount": 1}
    assert as_dict["lastSynced"] is None


def test_manual_sync_without_background_worker_drains_directly(make_context, transport):
    context = make_context(online=True)
    context.enqueuer.enqueue("pot", "create", "/api/pots", {"name": "Gifts", "target_amount": 150}, "user-1")

    result = context.manual_sync()

    assert result.synced_count == 1
    assert context.queue_status().last_sync_at is not None


def test_background_worker_drains_on_reconnect(make_context, transport):
    context = make_context(online=False, background_sync=True)
    mutation = _goal_update(context, Toasts())
    mutation.mutate_async({"id": "g-1", "amount": 50})
    assert context.host.pending_tags == {"goal-sync"}

    context.monitor.set_online(True)
    context.host.wait_idle()

    assert context.queue_status().pending_count == 0
    assert len(transport.replayed) == 1


def test_sign_in_remembers_last_user(make_context, auth, tmp_path):
    make_context(online=False)
    auth.sign_in("user-9")

    saved = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert saved["last_user_id"] == "user-9"


def test_set_backend_without_host_persists(make_context, tmp_path):
    context = make_context(online=False)
    context.set_backend("https://demo.supabase.co", "anon")

    assert context.replay_client.configured
    saved = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert saved["supabase_key"] == "anon"


def test_dispose_unsubscribes(make_context, transport):
    context = make_context(online=False)
    context.enqueuer.enqueue("pot", "create", "/api/pots", {"name": "Gifts", "target_amount": 150}, "user-1")
    context.dispose()

    context.monitor.set_online(True)

    assert transport.replayed == []
    assert context.initialized is False


def test_failing_optimistic_update_is_recorded_as_error(make_context):
    context = make_context(online=True)
    errors = []
    settled = []

    def apply(variables):
        raise ValueError("cannot apply locally")

    mutation = _goal_update(
        context,
        Toasts(),
        optimistic_update=apply,
        on_error=lambda exc, variables, ctx: errors.append(str(exc)),
        on_settled=lambda data, error, variables, ctx: settled.append(error),
    )

    mutation.mutate({"id": "g-1", "amount": 5})

    assert mutation.is_error is True
    assert isinstance(mutation.error, ValueError)
    assert errors == ["cannot apply locally"]
    assert settled == [mutation.error]
    assert mutation.is_loading is False


def test_queue_listing_is_cached_until_the_queue_changes(make_context, transport):
    context = make_context(online=False)
    mutation = _goal_update(context, Toasts())

    assert context.queued_mutations() == []
    context.enqueuer.enqueue("goal", "update", "/api/goals", {"id": "g-0", "amount": 1}, "user-1")
    # a write that bypasses the offline mutation is not seen until invalidated
    assert context.queued_mutations() == []

    mutation.mutate_async({"id": "g-1", "amount": 50})
    assert [m.payload["id"] for m in context.queued_mutations()] == ["g-0", "g-1"]

    context.monitor.set_online(True)

    assert ("queue", "user-1") not in context.query_cache
    assert context.queued_mutations() == []
    assert len(transport.replayed) == 2


def test_discarding_a_dead_letter_refreshes_the_listing(make_context):
    context = make_context(online=False)
    context.enqueuer.enqueue("goal", "update", "/api/goals", {"id": "g-1", "amount": 1}, "user-1")
    (queued,) = context.queued_mutations()
    context.store.mark_dead_letter(queued.id, "400 from backend")

    assert context.discard_dead_letter(queued.id) is True
    assert context.queued_mutations() == []
