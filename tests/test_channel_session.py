from scribe.analysis import (
    ChannelSession,
    InMemoryChannelTransport,
    RecordingDiagnosticSink,
    SessionState,
)


def _session():
    transport = InMemoryChannelTransport()
    sink = RecordingDiagnosticSink()
    return ChannelSession(transport, sink), transport, sink


def test_open_subscribes_and_delivers():
    session, transport, _ = _session()
    received = []
    assert session.open("ws-1", lambda name, payload: received.append((name, payload)))
    assert session.state == SessionState.OPEN
    assert session.is_connected
    assert transport.active_channels() == ["workspace_ws-1"]

    transport.publish("workspace_ws-1", "reset", {})
    assert received == [("reset", {})]


def test_open_same_workspace_is_noop():
    session, transport, _ = _session()
    session.open("ws-1", lambda *_: None)
    generation = session.generation
    assert session.open("ws-1", lambda *_: None)
    assert transport.subscribe_calls == ["workspace_ws-1"]
    assert session.generation == generation
    assert transport.channels["workspace_ws-1"].handler_count == 1


def test_switching_workspace_closes_previous_first():
    session, transport, _ = _session()
    received = []
    session.open("ws-1", lambda name, payload: received.append(("ws-1", name)))
    old_channel = transport.channels["workspace_ws-1"]

    session.open("ws-2", lambda name, payload: received.append(("ws-2", name)))
    assert transport.unsubscribe_calls == ["workspace_ws-1"]
    assert transport.active_channels() == ["workspace_ws-2"]
    assert old_channel.handler_count == 0

    transport.publish("workspace_ws-1", "reset", {})
    transport.publish("workspace_ws-2", "reset", {})
    assert received == [("ws-2", "reset")]


def test_close_is_idempotent():
    session, transport, _ = _session()
    session.close()
    session.open("ws-1", lambda *_: None)
    session.close()
    session.close()
    assert session.state == SessionState.IDLE
    assert session.workspace_id is None
    assert transport.unsubscribe_calls == ["workspace_ws-1"]


def test_handler_from_closed_generation_is_discarded():
    session, transport, _ = _session()
    received = []
    session.open("ws-1", lambda name, payload: received.append(name))
    leaked = transport.channels["workspace_ws-1"]._handlers[0]

    session.open("ws-2", lambda name, payload: received.append("ws-2:" + name))
    # A transport that kept calling the old binding must not reach the new callback.
    leaked("stage-update", {"stage": "fileUpload", "status": "completed"})
    assert received == []


def test_transport_failure_is_reported_not_raised():
    session, transport, sink = _session()
    transport.fail_subscriptions = True
    errors = []
    assert session.open("ws-1", lambda *_: None, on_error=errors.append) is False
    assert session.state == SessionState.IDLE
    assert session.is_connected is False
    assert sink.kinds() == ["transport_error"]
    assert len(errors) == 1

    # No automatic retry; the caller opens again when it wants to.
    transport.fail_subscriptions = False
    assert transport.subscribe_calls == ["workspace_ws-1"]
    assert session.open("ws-1", lambda *_: None)
    assert session.state == SessionState.OPEN


def test_reattaches_handler_after_reconnect():
    session, transport, sink = _session()
    received = []
    session.open("ws-1", lambda name, payload: received.append(name))

    transport.simulate_disconnect()
    assert session.is_connected is False
    assert sink.kinds() == ["transport_error"]

    transport.simulate_reconnect()
    assert session.is_connected is True
    transport.publish("workspace_ws-1", "reset", {})
    assert received == ["reset"]
    assert transport.channels["workspace_ws-1"].handler_count == 1


def test_failed_reattach_returns_to_idle():
    session, transport, sink = _session()
    received = []
    session.open("ws-1", lambda name, payload: received.append(name))
    generation = session.generation

    transport.simulate_disconnect()
    transport.fail_subscriptions = True
    transport.simulate_reconnect()
    assert session.state == SessionState.IDLE
    assert session.is_connected is False
    assert session.generation > generation
    assert sink.kinds() == ["transport_error", "transport_error"]
    assert transport.active_channels() == []

    # Later reconnect signals are no longer ours to handle.
    transport.fail_subscriptions = False
    transport.simulate_reconnect()
    assert session.state == SessionState.IDLE

    assert session.open("ws-1", lambda name, payload: received.append(name))
    transport.publish("workspace_ws-1", "reset", {})
    assert received == ["reset"]


def test_reconnect_after_close_does_nothing():
    session, transport, _ = _session()
    session.open("ws-1", lambda *_: None)
    session.close()
    transport.simulate_reconnect()
    assert transport.subscribe_calls == ["workspace_ws-1"]
    assert session.state == SessionState.IDLE


def test_close_from_inside_handler():
    session, transport, _ = _session()
    received = []

    def on_event(name, payload):
        received.append(name)
        session.close()

    session.open("ws-1", on_event)
    transport.publish("workspace_ws-1", "reset", {})
    transport.publish("workspace_ws-1", "reset", {})
    assert received == ["reset"]
    assert session.state == SessionState.IDLE


def test_channel_prefix_is_configurable():
    transport = InMemoryChannelTransport()
    session = ChannelSession(transport, RecordingDiagnosticSink(), channel_prefix="analysis:")
    session.open("ws-9", lambda *_: None)
    assert session.channel_name == "analysis:ws-9"
