import threading
from datetime import timedelta

import pytest

from researcher_hut.services.pending_actions import FlowType, InMemoryPendingActionStore

TTL = timedelta(minutes=5)


def test_put_then_get(store):
    store.put("a@x.com", FlowType.admin_login, "hash-1", {}, TTL)
    action = store.get("a@x.com", FlowType.admin_login)
    assert action is not None
    assert action.otp_hash == "hash-1"
    assert action.expires_at - action.created_at == TTL


def test_flows_are_keyed_separately(store):
    store.put("a@x.com", FlowType.admin_login, "login", {}, TTL)
    store.put("a@x.com", FlowType.admin_reset, "reset", {}, TTL)
    assert store.get("a@x.com", FlowType.admin_login).otp_hash == "login"
    assert store.get("a@x.com", FlowType.admin_reset).otp_hash == "reset"


def test_new_put_supersedes_previous(store):
    store.put("a@x.com", FlowType.user_signup, "old", {"username": "first"}, TTL)
    store.put("a@x.com", FlowType.user_signup, "new", {"username": "second"}, TTL)
    action = store.consume("a@x.com", FlowType.user_signup)
    assert action.otp_hash == "new"
    assert action.payload["username"] == "second"
    assert store.consume("a@x.com", FlowType.user_signup) is None


def test_expired_action_reads_as_absent_and_is_evicted(store, clock):
    store.put("a@x.com", FlowType.password_reset, "h", {}, TTL)
    clock.advance(minutes=5)
    assert store.get("a@x.com", FlowType.password_reset) is None
    assert len(store) == 0


def test_consume_is_single_use(store):
    store.put("a@x.com", FlowType.admin_login, "h", {}, TTL)
    assert store.consume("a@x.com", FlowType.admin_login) is not None
    assert store.consume("a@x.com", FlowType.admin_login) is None
    assert store.get("a@x.com", FlowType.admin_login) is None


def test_consume_of_expired_action_returns_none(store, clock):
    store.put("a@x.com", FlowType.admin_login, "h", {}, TTL)
    clock.advance(minutes=6)
    assert store.consume("a@x.com", FlowType.admin_login) is None
    assert len(store) == 0


def test_live_actions_filters_flow_and_expiry(store, clock):
    store.put("old@x.com", FlowType.user_signup, "h1", {}, timedelta(minutes=1))
    store.put("new@x.com", FlowType.user_signup, "h2", {}, timedelta(minutes=10))
    store.put("new@x.com", FlowType.password_reset, "h3", {}, timedelta(minutes=10))
    clock.advance(minutes=2)
    live = store.live_actions(FlowType.user_signup)
    assert [a.subject_key for a in live] == ["new@x.com"]


def test_purge_expired(store, clock):
    store.put("a@x.com", FlowType.admin_login, "h", {}, timedelta(minutes=1))
    store.put("b@x.com", FlowType.admin_login, "h", {}, timedelta(minutes=10))
    clock.advance(minutes=2)
    assert store.purge_expired() == 1
    assert len(store) == 1


def test_payload_is_read_only(store):
    action = store.put("a@x.com", FlowType.email_change, "h", {"new_email": "b@x.com"}, TTL)
    with pytest.raises(TypeError):
        action.payload["new_email"] = "evil@x.com"


def test_concurrent_consume_succeeds_once(store):
    store.put("a@x.com", FlowType.admin_login, "h", {}, TTL)
    results = []
    barrier = threading.Barrier(16)

    def worker():
        barrier.wait()
        results.append(store.consume("a@x.com", FlowType.admin_login))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r is not None) == 1


def test_put_sweeps_abandoned_actions(store, clock):
    for i in range(50):
        store.put(f"user{i}@x.com", FlowType.user_signup, "h", {}, timedelta(minutes=10))
    clock.advance(hours=1)

    store.put("fresh@x.com", FlowType.admin_login, "h", {}, TTL)
    assert len(store) == 1
    assert store.get("fresh@x.com", FlowType.admin_login) is not None


def test_sweep_runs_at_most_once_per_interval(clock):
    store = InMemoryPendingActionStore(clock=clock, sweep_interval=timedelta(minutes=1))
    store.put("a@x.com", FlowType.admin_login, "h", {}, timedelta(seconds=10))
    clock.advance(seconds=20)
    assert store.sweep() == 0
    assert len(store) == 1

    clock.advance(minutes=1)
    assert store.sweep() == 1
    assert len(store) == 0
