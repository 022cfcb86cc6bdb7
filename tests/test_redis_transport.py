from collections import deque

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from scribe.analysis import (
    AnalysisMonitor,
    ChannelSession,
    RecordingDiagnosticSink,
    RedisChannelTransport,
    RedisEventPublisher,
    SessionState,
    TransportError,
)


class FakePubSub:
    def __init__(self, server):
        self.server = server
        self.channels = set()
        self.queue = deque()
        self.closed = False

    def subscribe(self, *names):
        if self.server.down:
            raise RedisConnectionError("server unavailable")
        self.channels.update(names)

    def unsubscribe(self, *names):
        self.channels.difference_update(names)

    def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        if self.server.drop_next_read:
            self.server.drop_next_read = False
            raise RedisConnectionError("connection reset")
        return self.queue.popleft() if self.queue else None

    def close(self):
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.down = False
        self.drop_next_read = False
        self.pubsubs = []

    def pubsub(self, ignore_subscribe_messages=False):
        pubsub = FakePubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub

    def publish(self, channel, message):
        if self.down:
            raise RedisConnectionError("server unavailable")
        receivers = 0
        for pubsub in self.pubsubs:
            if not pubsub.closed and channel in pubsub.channels:
                pubsub.queue.append({"type": "message", "channel": channel.encode(), "data": message.encode()})
                receivers += 1
        return receivers


@pytest.fixture
def server():
    return FakeRedis()


def test_publish_and_drain_reach_monitor(server):
    transport = RedisChannelTransport(client=server, diagnostics=RecordingDiagnosticSink())
    publisher = RedisEventPublisher(client=server)
    monitor = AnalysisMonitor(transport, diagnostics=RecordingDiagnosticSink())
    view = monitor.observe("ws-1")

    assert publisher.publish("workspace_ws-1", "stage-update", {"stage": "fileUpload", "status": "in_progress"}) == 1
    assert publisher.publish("workspace_ws-1", "artifact-ready", {"kind": "studyGuide", "payload": "sg"}) == 1
    assert transport.drain() == 2
    assert view.state.is_analyzing is True
    assert view.state.completed_artifacts == {"studyGuide": "sg"}


def test_undecodable_message_is_reported(server):
    sink = RecordingDiagnosticSink()
    transport = RedisChannelTransport(client=server, diagnostics=sink)
    transport.subscribe("workspace_ws-1")
    server.publish("workspace_ws-1", "not json")
    assert transport.drain() == 0
    assert sink.kinds() == ["malformed_event"]


def test_subscribe_failure_becomes_transport_error(server):
    server.down = True
    transport = RedisChannelTransport(client=server)
    with pytest.raises(TransportError):
        transport.subscribe("workspace_ws-1")

    sink = RecordingDiagnosticSink()
    session = ChannelSession(transport, sink)
    assert session.open("ws-1", lambda *_: None) is False
    assert session.state == SessionState.IDLE
    assert sink.kinds() == ["transport_error"]


def test_listen_reconnects_and_restores_subscriptions(server):
    transport = RedisChannelTransport(client=server, diagnostics=RecordingDiagnosticSink())
    sink = RecordingDiagnosticSink()
    session = ChannelSession(transport, sink)
    received = []
    session.open("ws-1", lambda name, payload: received.append(name))

    server.drop_next_read = True
    rounds = iter([False, False, True])

    # First read fails; the next round reconnects and reads again.
    transport.listen(should_stop=lambda: next(rounds), timeout=0)
    assert sink.kinds() == ["transport_error"]
    assert session.is_connected is True
    assert server.pubsubs[0].closed is True

    RedisEventPublisher(client=server).publish("workspace_ws-1", "reset", {})
    transport.drain()
    assert received == ["reset"]


def test_listen_keeps_retrying_while_server_is_down(server):
    transport = RedisChannelTransport(client=server, diagnostics=RecordingDiagnosticSink())
    session = ChannelSession(transport, RecordingDiagnosticSink())
    session.open("ws-1", lambda *_: None)

    server.drop_next_read = True
    server.down = True
    checks = []

    def should_stop():
        checks.append(len(checks))
        if len(checks) == 3:
            server.down = False
        return len(checks) > 4

    transport.listen(should_stop=should_stop, timeout=0)
    assert session.is_connected is True
    assert "workspace_ws-1" in server.pubsubs[-1].channels


def test_unsubscribe_stops_delivery(server):
    transport = RedisChannelTransport(client=server)
    received = []
    channel = transport.subscribe("workspace_ws-1")
    channel.bind(lambda name, payload: received.append(name))
    transport.unsubscribe("workspace_ws-1")

    assert server.publish("workspace_ws-1", '{"event": "reset", "data": {}}') == 0
    assert transport.drain() == 0
    assert received == []
