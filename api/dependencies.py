from __future__ import annotations

import threading
from functools import lru_cache
from typing import Any, Dict, Protocol

from redis.exceptions import RedisError

from scribe.analysis import (
    AnalysisMonitor,
    AnalysisSettings,
    AnalysisView,
    ChannelTransport,
    InMemoryChannelTransport,
    RedisChannelTransport,
    RedisEventPublisher,
    TransportError,
)


class EventPublisher(Protocol):
    def publish(self, channel_name: str, event_name: str, payload: Any = None) -> Any:
        ...


class MonitorPool:
    """
    One ``AnalysisMonitor`` per workspace. Each monitor owns its own channel
    session and only ever observes its own workspace, so watching one
    workspace never tears down another's subscription.
    """

    def __init__(self, transport: ChannelTransport, settings: AnalysisSettings):
        self.transport = transport
        self.settings = settings
        self._monitors: Dict[str, AnalysisMonitor] = {}

    def observe(self, workspace_id: str) -> AnalysisView:
        workspace_id = workspace_id.strip()
        monitor = self._monitors.get(workspace_id)
        if monitor is None:
            monitor = AnalysisMonitor(self.transport, settings=self.settings)
            self._monitors[workspace_id] = monitor
        return monitor.observe(workspace_id)

    def close(self) -> None:
        for monitor in self._monitors.values():
            monitor.close()
        self._monitors.clear()


# Requests share the transport and the pool; they take turns on both.
monitor_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_settings() -> AnalysisSettings:
    return AnalysisSettings.from_env()


@lru_cache(maxsize=1)
def get_transport() -> ChannelTransport:
    settings = get_settings()
    if settings.transport == "redis":
        return RedisChannelTransport(settings.redis_url)
    return InMemoryChannelTransport()


@lru_cache(maxsize=1)
def get_publisher() -> EventPublisher:
    settings = get_settings()
    transport = get_transport()
    if isinstance(transport, InMemoryChannelTransport):
        return transport
    return RedisEventPublisher(settings.redis_url)


@lru_cache(maxsize=1)
def get_monitors() -> MonitorPool:
    return MonitorPool(get_transport(), get_settings())


def pump_transport() -> None:
    """Deliver anything the transport has buffered before state is read."""
    transport = get_transport()
    if isinstance(transport, RedisChannelTransport):
        try:
            transport.drain()
        except RedisError as exc:
            raise TransportError(f"Cannot read analysis events: {exc}") from exc


def reset_dependencies() -> None:
    if get_monitors.cache_info().currsize:
        get_monitors().close()
    for cached in (get_settings, get_transport, get_publisher, get_monitors):
        cached.cache_clear()
