"""Tests for the notification channel."""

import json
import threading

import pytest

from meshadapter.core.events import ERROR, INFO, Event, NotificationChannel


def test_event_defaults():
    event = Event(operation_id="op-1", summary="deploying")
    assert event.details == "None"
    assert event.event_type == INFO
    assert event.error_code is None


def test_publish_and_get_in_order():
    channel = NotificationChannel(max_events=10)
    channel.publish(Event("op", "first"))
    channel.publish(Event("op", "second"))

    assert len(channel) == 2
    assert channel.get(timeout=0).summary == "first"
    assert channel.get(timeout=0).summary == "second"
    assert len(channel) == 0


def test_full_channel_drops_oldest():
    channel = NotificationChannel(max_events=2)
    for summary in ("a", "b", "c", "d"):
        channel.publish(Event("op", summary))

    assert [event.summary for event in channel.drain()] == ["c", "d"]
    assert channel.dropped == 2


def test_get_times_out_on_empty_channel():
    channel = NotificationChannel(max_events=1)
    assert channel.get(timeout=0.01) is None


def test_get_waits_for_publisher():
    channel = NotificationChannel(max_events=1)
    publisher = threading.Timer(0.05, channel.publish, args=(Event("op", "late", event_type=ERROR),))
    publisher.start()
    try:
        event = channel.get(timeout=5)
    finally:
        publisher.join()

    assert event is not None
    assert event.summary == "late"


def test_invalid_capacity():
    with pytest.raises(ValueError):
        NotificationChannel(max_events=0)


def test_capacity_from_config(isolated_config):
    (isolated_config / "config.json").write_text(json.dumps({"notifications": {"max_events": 3}}))
    assert NotificationChannel().max_events == 3


def test_default_capacity():
    assert NotificationChannel().max_events == 100
