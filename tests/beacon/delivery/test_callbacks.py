"""Tests for completion callback reconciliation."""

from beacon.delivery import CallbackReconciler, invoke
from beacon.events import Identify


def _queue_while_in_flight(client, count):
    client.scheduler.in_flight = True
    for i in range(count):
        client.log_event("Event", {"index": i})
    client.scheduler.in_flight = False


def test_callback_runs_after_response(client, transport, recorder):
    client.log_event("test", None, recorder)

    assert len(transport.requests) == 1
    assert recorder.count == 0

    transport.respond(200, "success")
    assert recorder.calls == [(200, "success")]


def test_callback_spanning_two_round_trips(make_client, transport, recorder):
    """Fires once, after the second batch, with the second response."""
    client = make_client({"upload_batch_size": 10})
    _queue_while_in_flight(client, 15)
    client.log_event("Event", {"index": 100}, recorder)

    transport.respond(200, "first")
    assert recorder.count == 0
    assert len(transport.requests) == 2

    transport.respond(200, "second")
    assert recorder.calls == [(200, "second")]


def test_callback_after_413_resolved(client, transport, recorder):
    _queue_while_in_flight(client, 15)
    client.log_event("Event", {"index": 100}, recorder)

    assert len(transport.events(0)) == 16
    transport.respond(413, "")
    assert recorder.count == 0

    assert len(transport.events(1)) == 8
    transport.respond(200, "success")
    assert recorder.count == 0

    assert len(transport.events(2)) == 8
    transport.respond(200, "success")
    assert recorder.calls == [(200, "success")]


def test_callbacks_straddling_batches_fire_independently(make_client, transport):
    client = make_client({"upload_batch_size": 2})
    early, late = [], []
    client.scheduler.in_flight = True
    client.log_event("A")
    client.log_event("B", None, lambda s, b: early.append(s))
    client.log_event("C")
    client.log_event("D", None, lambda s, b: late.append(s))
    client.scheduler.in_flight = False
    client.flush()

    transport.respond()
    assert early == [200]
    assert late == []

    transport.respond()
    assert early == [200]
    assert late == [200]


def test_callback_on_other_status(client, transport, recorder):
    client.log_event("test", None, recorder)
    transport.respond(404, "Not found")

    assert recorder.calls == [(404, "Not found")]
    assert client.unsent_count() == 1


def test_callback_of_dropped_entry_gets_413(make_client, transport, recorder):
    client = make_client({"upload_batch_size": 1})
    client.log_event("huge", None, recorder)
    transport.respond(413, "too large")

    assert recorder.calls == [(413, "too large")]
    assert client.unsent_count() == 0


def test_sentinel_for_empty_event_type(client, transport, recorder):
    client.log_event(None, None, recorder)

    assert recorder.calls == [(0, "No request sent")]
    assert transport.requests == []


def test_sentinel_for_invalid_identify(client, transport, recorder):
    client.identify({"not": "an identify"}, recorder)
    client.identify(Identify(), recorder)

    assert recorder.calls == [(0, "No request sent"), (0, "No request sent")]
    assert transport.requests == []


def test_raising_callback_does_not_break_pipeline(client, transport, caplog):
    def boom(status, body):
        raise RuntimeError("callback failure")

    client.log_event("first", None, boom)
    client.log_event("second")
    transport.respond()

    assert "Response callback raised" in caplog.text
    assert client.scheduler.in_flight is True
    assert [e["event_type"] for e in transport.events(1)] == ["second"]


def test_reconciler_waits_for_legacy_entries(client):
    """No callback fires while an unsequenced entry is still pending."""
    reconciler = CallbackReconciler()
    fired = []
    reconciler.register(5, lambda s, b: fired.append(s))

    client.scheduler.in_flight = True
    client.log_event("legacy")
    client.queue.events[0].sequence_number = None

    assert reconciler.resolve(client.queue, 200, "ok") == 0
    assert fired == []

    client.queue.remove(list(client.queue.events))
    assert reconciler.resolve(client.queue, 200, "ok") == 1
    assert fired == [200]
    assert len(reconciler) == 0


def test_invoke_ignores_missing_callback():
    invoke(None, 200, "success")
