"""Transcript reconciliation: idempotent inserts, optimistic sends, snapshots."""

import pytest

from ticketdesk.models.message import DurableId, Message, ProvisionalId, SenderRole
from ticketdesk.reconciler import (
    OptimisticSend, PollerSnapshot, Reconciler, RemoteInsert, TranscriptState, reduce,
)

from fakes import message


def bodies(state_or_reconciler) -> list[str]:
    return [m.body for m in state_or_reconciler.messages]


def own(m: Message) -> Message:
    """The row as the store returns it for a reply sent by admin-7."""
    return m.model_copy(update={"sender_id": "admin-7"})


@pytest.fixture
def reconciler():
    return Reconciler("tkt-uuid-1", SenderRole.ADMIN, viewer_id="admin-7")


class TestRemoteInsert:
    def test_same_id_twice_is_a_no_op(self, reconciler):
        m = message("m1", "Is the helipad open?", seconds=10)
        assert reconciler.apply_remote_insert(m) is True
        before = reconciler.state

        assert reconciler.apply_remote_insert(m) is False
        assert reconciler.state is before
        assert len(reconciler.messages) == 1

    def test_out_of_order_arrivals_are_sorted(self, reconciler):
        reconciler.apply_remote_insert(message("m2", "second", seconds=20))
        reconciler.apply_remote_insert(message("m1", "first", seconds=10))
        reconciler.apply_remote_insert(message("m3", "third", seconds=30))
        assert bodies(reconciler) == ["first", "second", "third"]

    def test_equal_timestamps_keep_arrival_order(self, reconciler):
        reconciler.apply_remote_insert(message("b", "arrived first", seconds=10))
        reconciler.apply_remote_insert(message("a", "arrived second", seconds=10))
        assert bodies(reconciler) == ["arrived first", "arrived second"]

    def test_listener_told_whether_message_is_viewers_own(self, reconciler):
        calls = []
        reconciler.add_listener(lambda state, own: calls.append(own))
        reconciler.apply_remote_insert(message("c1", "from customer", is_admin=False, seconds=1))
        reconciler.apply_remote_insert(message("a1", "from another admin tab", is_admin=True, seconds=2))
        assert calls == [False, True]


class TestOptimisticSend:
    def test_send_then_ack_leaves_exactly_one_durable_entry(self, reconciler):
        provisional = reconciler.apply_optimistic_send("Hello")
        assert provisional.pending
        assert isinstance(provisional.id, ProvisionalId)
        assert reconciler.state.pending_send_count == 1
        assert reconciler.messages[0].sender_id == "admin-7"

        durable = message("srv-1", "Hello", is_admin=True, seconds=5)
        reconciler.reconcile_optimistic(provisional.id, durable)

        hellos = [m for m in reconciler.messages if m.body == "Hello"]
        assert len(hellos) == 1
        assert hellos[0].id == DurableId(value="srv-1")
        assert reconciler.state.pending_send_count == 0

    def test_ack_replaces_in_place(self, reconciler):
        reconciler.apply_remote_insert(message("m1", "before", seconds=1))
        provisional = reconciler.apply_optimistic_send("mine")
        # Server clock puts the durable row earlier than the earlier message.
        reconciler.reconcile_optimistic(provisional.id, message("srv-1", "mine", is_admin=True, seconds=0))
        assert bodies(reconciler) == ["before", "mine"]

    def test_feed_delivers_durable_before_ack(self, reconciler):
        provisional = reconciler.apply_optimistic_send("Hello")
        durable = message("srv-1", "Hello", is_admin=True, seconds=5)
        reconciler.apply_remote_insert(durable)
        reconciler.reconcile_optimistic(provisional.id, durable)

        assert [m.id for m in reconciler.messages] == [DurableId(value="srv-1")]

    def test_own_echo_takes_over_pending_entry_before_ack(self, reconciler):
        provisional = reconciler.apply_optimistic_send("Hello")
        echo = own(message("srv-1", "Hello", is_admin=True, seconds=5))

        assert reconciler.apply_remote_insert(echo) is True
        assert [m.id for m in reconciler.messages] == [DurableId(value="srv-1")]
        assert reconciler.state.pending_send_count == 0

        assert reconciler.reconcile_optimistic(provisional.id, echo) is False
        assert [m.id for m in reconciler.messages] == [DurableId(value="srv-1")]

    def test_echo_claims_only_one_of_two_identical_sends(self, reconciler):
        reconciler.apply_optimistic_send("ok")
        reconciler.apply_optimistic_send("ok")
        reconciler.apply_remote_insert(own(message("srv-1", "ok", is_admin=True, seconds=5)))
        assert bodies(reconciler) == ["ok", "ok"]
        assert reconciler.state.pending_send_count == 1

    def test_customer_message_with_same_text_is_not_claimed(self, reconciler):
        reconciler.apply_optimistic_send("Thanks")
        reconciler.apply_remote_insert(message("c1", "Thanks", seconds=5))
        assert bodies(reconciler) == ["Thanks", "Thanks"]
        assert reconciler.state.pending_send_count == 1

    def test_rejected_send_restores_previous_transcript(self, reconciler):
        reconciler.apply_remote_insert(message("m1", "Hi, my booking failed", seconds=1))
        before = reconciler.messages

        provisional = reconciler.apply_optimistic_send("Looking into it")
        assert len(reconciler.messages) == 2
        reconciler.reconcile_optimistic(provisional.id, None)

        assert reconciler.messages == before

    def test_late_ack_for_unknown_provisional_inserts_once(self, reconciler):
        durable = message("srv-9", "late", is_admin=True, seconds=3)
        reconciler.reconcile_optimistic(ProvisionalId(value="gone"), durable)
        reconciler.reconcile_optimistic(ProvisionalId(value="gone"), durable)
        assert bodies(reconciler) == ["late"]


class TestPollerSnapshot:
    def test_identical_snapshot_changes_nothing(self, reconciler):
        rows = [message("m1", "one", seconds=1), message("m2", "two", seconds=2)]
        reconciler.apply_poller_snapshot(rows)
        before = reconciler.state
        assert reconciler.apply_poller_snapshot(list(rows)) is False
        assert reconciler.state is before

    def test_snapshot_recovers_missed_event(self, reconciler):
        reconciler.apply_remote_insert(message("m1", "one", seconds=1))
        changed = reconciler.apply_poller_snapshot([
            message("m1", "one", seconds=1),
            message("m2", "missed by the feed", seconds=2),
        ])
        assert changed is True
        assert bodies(reconciler) == ["one", "missed by the feed"]

    def test_snapshot_keeps_unreconciled_send(self, reconciler):
        reconciler.apply_remote_insert(message("m1", "one", seconds=1))
        provisional = reconciler.apply_optimistic_send("Hello")
        snapshot = [message("m1", "one", seconds=1)]

        reconciler.apply_poller_snapshot(snapshot)
        assert bodies(reconciler) == ["one", "Hello"]
        assert reconciler.state.pending_send_count == 1

        reconciler.reconcile_optimistic(provisional.id, message("srv-1", "Hello", is_admin=True, seconds=2))
        reconciler.apply_poller_snapshot(snapshot)
        assert bodies(reconciler).count("Hello") == 1

        reconciler.apply_poller_snapshot([*snapshot, message("srv-1", "Hello", is_admin=True, seconds=2)])
        assert bodies(reconciler) == ["one", "Hello"]

    def test_snapshot_holding_own_row_before_ack(self, reconciler):
        reconciler.apply_remote_insert(message("m1", "one", seconds=1))
        provisional = reconciler.apply_optimistic_send("Hello")
        durable = own(message("srv-1", "Hello", is_admin=True, seconds=2))

        reconciler.apply_poller_snapshot([message("m1", "one", seconds=1), durable])
        assert bodies(reconciler) == ["one", "Hello"]
        assert reconciler.state.pending_send_count == 0

        assert reconciler.reconcile_optimistic(provisional.id, durable) is False

    def test_snapshot_does_not_claim_with_an_old_identical_row(self, reconciler):
        old = own(message("m1", "Thanks", is_admin=True, seconds=1))
        reconciler.apply_remote_insert(old)
        reconciler.apply_optimistic_send("Thanks")

        reconciler.apply_poller_snapshot([old])
        assert bodies(reconciler) == ["Thanks", "Thanks"]
        assert reconciler.state.pending_send_count == 1

    def test_stale_snapshot_does_not_drop_known_rows(self, reconciler):
        reconciler.apply_remote_insert(message("m1", "one", seconds=1))
        reconciler.apply_remote_insert(message("m2", "two", seconds=2))
        assert reconciler.apply_poller_snapshot([message("m1", "one", seconds=1)]) is False
        assert bodies(reconciler) == ["one", "two"]

    def test_snapshot_restores_canonical_order(self, reconciler):
        reconciler.apply_remote_insert(message("m1", "before", seconds=1))
        provisional = reconciler.apply_optimistic_send("mine")
        durable = message("srv-1", "mine", is_admin=True, seconds=0)
        reconciler.reconcile_optimistic(provisional.id, durable)
        assert bodies(reconciler) == ["before", "mine"]

        reconciler.apply_poller_snapshot([durable, message("m1", "before", seconds=1)])
        assert bodies(reconciler) == ["mine", "before"]


class TestReduce:
    def test_reduce_is_pure(self):
        empty = TranscriptState()
        m = message("m1", "one", seconds=1)
        after = reduce(empty, RemoteInsert(message=m))
        assert empty.messages == ()
        assert after.messages == (m,)

    def test_optimistic_event_adds_pending_entry(self):
        pending = Message.provisional("tkt-uuid-1", "draft", SenderRole.ADMIN)
        state = reduce(TranscriptState(), OptimisticSend(message=pending))
        assert state.pending_send_count == 1

    def test_snapshot_event_on_empty_state(self):
        state = reduce(TranscriptState(), PollerSnapshot(messages=(message("m1", "one", seconds=1),)))
        assert len(state.messages) == 1

    def test_unknown_event_rejected(self):
        with pytest.raises(TypeError):
            reduce(TranscriptState(), object())  # type: ignore[arg-type]
