from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from .diagnostics import MALFORMED_EVENT, DiagnosticSink, LoggingDiagnosticSink

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Any], None]


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


ConnectionListener = Callable[[ConnectionState, Optional[str]], None]


class TransportError(RuntimeError):
    pass


def channel_name_for(workspace_id: str, prefix: str = "workspace_") -> str:
    return f"{prefix}{workspace_id}"


class Channel:
    """
    One subscribed topic. Handlers receive every named event published on it.
    Binding the same handler twice keeps a single binding.
    """

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[EventHandler] = []

    def bind(self, handler: EventHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unbind(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def unbind_all(self) -> None:
        self._handlers.clear()

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def emit(self, event_name: str, payload: Any) -> None:
        # Copy so a handler may unbind (or close its session) mid-dispatch.
        for handler in list(self._handlers):
            handler(event_name, payload)


class ChannelTransport:
    """
    Named-channel publish/subscribe boundary. ``subscribe`` raises
    ``TransportError`` when the connection cannot be established.

    After a reconnect the transport restores its channel subscriptions and
    reports ``ConnectionState.CONNECTED`` to listeners; handler bindings are
    not guaranteed to survive, so listeners re-bind when they see it.
    """

    def __init__(self):
        self._listeners: List[ConnectionListener] = []

    def subscribe(self, channel_name: str) -> Channel:
        raise NotImplementedError

    def unsubscribe(self, channel_name: str) -> None:
        raise NotImplementedError

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_connection_listener(self, listener: ConnectionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, state: ConnectionState, detail: Optional[str] = None) -> None:
        for listener in list(self._listeners):
            listener(state, detail)


class InMemoryChannelTransport(ChannelTransport):
    """
    Process-local transport for tests and local runs. ``publish`` delivers
    synchronously to the handlers bound on the channel.
    """

    def __init__(self):
        super().__init__()
        self.channels: Dict[str, Channel] = {}
        self.subscribe_calls: List[str] = []
        self.unsubscribe_calls: List[str] = []
        self.fail_subscriptions = False
        self.connected = True

    def subscribe(self, channel_name: str) -> Channel:
        self.subscribe_calls.append(channel_name)
        if self.fail_subscriptions or not self.connected:
            raise TransportError(f"Cannot subscribe to {channel_name}: transport unavailable")
        channel = self.channels.get(channel_name)
        if channel is None:
            channel = Channel(channel_name)
            self.channels[channel_name] = channel
        return channel

    def unsubscribe(self, channel_name: str) -> None:
        self.unsubscribe_calls.append(channel_name)
        channel = self.channels.pop(channel_name, None)
        if channel is not None:
            channel.unbind_all()

    def publish(self, channel_name: str, event_name: str, payload: Any = None) -> None:
        channel = self.channels.get(channel_name)
        if channel is None or not self.connected:
            logger.debug("Dropping %s on %s: no live subscription", event_name, channel_name)
            return
        channel.emit(event_name, payload)

    def active_channels(self) -> List[str]:
        return sorted(self.channels)

    def simulate_disconnect(self, reason: str = "connection lost") -> None:
        self.connected = False
        self._notify(ConnectionState.DISCONNECTED, reason)

    def simulate_reconnect(self) -> None:
        # A fresh connection keeps the subscriptions but loses handler bindings.
        self.connected = True
        for channel in self.channels.values():
            channel.unbind_all()
        self._notify(ConnectionState.CONNECTED, None)


def encode_message(event_name: str, payload: Any) -> str:
    return json.dumps({"event": event_name, "data": payload}, ensure_ascii=False)


class RedisChannelTransport(ChannelTransport):
    """
    Redis pub/sub transport. Messages are JSON objects of the form
    ``{"event": <name>, "data": <payload>}`` published on the channel.

    Delivery happens on the caller's thread: ``drain`` dispatches whatever is
    already waiting, ``listen`` blocks and dispatches until ``should_stop``
    returns True, reconnecting after connection drops.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        client: Optional[Redis] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ):
        super().__init__()
        self.redis = client if client is not None else Redis.from_url(redis_url)
        self.diagnostics = diagnostics or LoggingDiagnosticSink()
        self.channels: Dict[str, Channel] = {}
        self._pubsub = None

    def _ensure_pubsub(self):
        if self._pubsub is None:
            self._pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        return self._pubsub

    def subscribe(self, channel_name: str) -> Channel:
        channel = self.channels.get(channel_name)
        if channel is not None:
            return channel
        try:
            self._ensure_pubsub().subscribe(channel_name)
        except RedisError as exc:
            raise TransportError(f"Cannot subscribe to {channel_name}: {exc}") from exc
        channel = Channel(channel_name)
        self.channels[channel_name] = channel
        logger.info("Subscribed to %s", channel_name)
        return channel

    def unsubscribe(self, channel_name: str) -> None:
        channel = self.channels.pop(channel_name, None)
        if channel is None:
            return
        channel.unbind_all()
        try:
            self._ensure_pubsub().unsubscribe(channel_name)
        except RedisError as exc:
            raise TransportError(f"Cannot unsubscribe from {channel_name}: {exc}") from exc
        logger.info("Unsubscribed from %s", channel_name)

    def drain(self, timeout: float = 0.0) -> int:
        """Dispatch every message already waiting. Returns how many were handled."""
        if self._pubsub is None or not self.channels:
            return 0
        handled = 0
        while True:
            message = self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
            if message is None:
                return handled
            if self._dispatch(message):
                handled += 1

    def listen(self, should_stop: Callable[[], bool] = lambda: False, timeout: float = 1.0) -> None:
        pending_reconnect = False
        while not should_stop():
            if pending_reconnect:
                try:
                    self.reconnect()
                except TransportError as exc:
                    logger.warning("Redis still unavailable: %s", exc)
                    time.sleep(timeout)
                    continue
                pending_reconnect = False
            try:
                self.drain(timeout=timeout)
            except RedisConnectionError as exc:
                logger.warning("Redis connection lost: %s", exc)
                self._notify(ConnectionState.DISCONNECTED, str(exc))
                pending_reconnect = True

    def reconnect(self) -> None:
        if self._pubsub is not None:
            try:
                self._pubsub.close()
            except RedisError as exc:
                logger.debug("Ignoring error while closing pubsub: %s", exc)
        self._pubsub = None
        names = list(self.channels)
        try:
            if names:
                self._ensure_pubsub().subscribe(*names)
        except RedisError as exc:
            self._pubsub = None
            raise TransportError(f"Cannot resubscribe to {names}: {exc}") from exc
        logger.info("Reconnected to redis, restored %d channel(s)", len(names))
        self._notify(ConnectionState.CONNECTED, None)

    def close(self) -> None:
        for name in list(self.channels):
            self.unsubscribe(name)
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None

    def _dispatch(self, message: Dict[str, Any]) -> bool:
        if message.get("type") != "message":
            return False
        name = message.get("channel")
        if isinstance(name, bytes):
            name = name.decode("utf-8")
        channel = self.channels.get(name)
        if channel is None:
            return False
        raw = message.get("data")
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            decoded = json.loads(raw)
            event_name = decoded["event"]
        except (TypeError, ValueError, KeyError) as exc:
            self.diagnostics.report(MALFORMED_EVENT, {"channel": name, "reason": f"undecodable message: {exc}"})
            return False
        channel.emit(str(event_name), decoded.get("data"))
        return True


class RedisEventPublisher:
    """
    Publishing side of the Redis channel, used by the demo script and the
    HTTP test-event endpoint to stand in for the backend pipeline.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", client: Optional[Redis] = None):
        self.redis = client if client is not None else Redis.from_url(redis_url)

    def publish(self, channel_name: str, event_name: str, payload: Any = None) -> int:
        try:
            return self.redis.publish(channel_name, encode_message(event_name, payload))
        except RedisError as exc:
            raise TransportError(f"Cannot publish {event_name} on {channel_name}: {exc}") from exc
