"""Tests for recorded command replay."""

import pytest

from beacon.commands import Command, CommandName, CommandQueue


@pytest.mark.parametrize(
    "name,expected",
    [
        ("logEvent", CommandName.LOG_EVENT),
        ("LOG_EVENT", CommandName.LOG_EVENT),
        ("log_event", CommandName.LOG_EVENT),
        ("setUserId", CommandName.SET_USER_ID),
        ("bogus", None),
        (5, None),
        (None, None),
    ],
)
def test_parse(name, expected):
    assert CommandName.parse(name) is expected


def test_record_and_iterate():
    queue = CommandQueue()
    command = queue.record(CommandName.LOG_EVENT, "A", properties=None)

    assert command == Command(CommandName.LOG_EVENT, ("A",), {"properties": None})
    assert list(queue) == [command]
    assert len(queue) == 1


def test_extend_from_records_skips_bad_records(caplog):
    queue = CommandQueue()

    added = queue.extend_from_records([["logEvent", "A"], [], "junk", ["noSuchCall"], ("setUserId", "u1")])

    assert added == 2
    assert [c.name for c in queue] == [CommandName.LOG_EVENT, CommandName.SET_USER_ID]
    assert "noSuchCall" in caplog.text


def test_replay_executes_in_order(client, transport):
    queue = CommandQueue()
    queue.extend_from_records([["logEvent", "A"], ["setUserId", "u1"], ["logEvent", "B"]])

    assert queue.replay(client) == 3
    assert len(queue) == 0
    assert client.identity.user_id == "u1"

    assert transport.events(0)[0]["event_type"] == "A"
    assert transport.events(0)[0]["user_id"] is None
    transport.respond()
    assert transport.events(1)[0]["event_type"] == "B"
    assert transport.events(1)[0]["user_id"] == "u1"


def test_run_queued_commands_with_records(client, transport):
    executed = client.run_queued_commands(
        [["setVersionName", "2.0"], ["logEvent", "Opened", {"screen": "home"}]]
    )

    assert executed == 2
    event = transport.events(0)[0]
    assert event["version_name"] == "2.0"
    assert event["event_properties"] == {"screen": "home"}


def test_run_queued_commands_ignores_non_list(client):
    assert client.run_queued_commands("not records") == 0


def test_replay_continues_past_argument_errors(client, transport, caplog):
    queue = CommandQueue()
    queue.record(CommandName.SET_USER_ID)
    queue.record(CommandName.LOG_EVENT, "B", unknown_keyword=1)
    queue.record(CommandName.LOG_EVENT, "C")

    assert queue.replay(client) == 1
    assert len(queue) == 0
    assert transport.events(0)[0]["event_type"] == "C"
    assert caplog.text.count("Skipping command") == 2
