"""EventBroadcaster tests."""

from forgecraft.services.broadcast import QUEUE_STATUS, EventBroadcaster


def test_publish_reaches_every_listener():
    broadcaster = EventBroadcaster()
    first, second = [], []
    broadcaster.subscribe(lambda channel, payload: first.append((channel, payload)))
    broadcaster.subscribe(lambda channel, payload: second.append((channel, payload)))

    broadcaster.publish(QUEUE_STATUS, {"pending": 1})

    assert first == [(QUEUE_STATUS, {"pending": 1})]
    assert second == [(QUEUE_STATUS, {"pending": 1})]


def test_unsubscribe_stops_delivery():
    broadcaster = EventBroadcaster()
    received = []
    unsubscribe = broadcaster.subscribe(lambda channel, payload: received.append(payload))

    unsubscribe()
    unsubscribe()
    broadcaster.publish(QUEUE_STATUS, "ignored")

    assert received == []
    assert broadcaster.listener_count == 0


def test_failing_listener_does_not_block_others():
    broadcaster = EventBroadcaster()
    received = []

    def broken(channel, payload):
        raise RuntimeError("window closed")

    broadcaster.subscribe(broken)
    broadcaster.subscribe(lambda channel, payload: received.append(payload))

    broadcaster.publish(QUEUE_STATUS, "status")

    assert received == ["status"]
