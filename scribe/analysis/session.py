from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional

from .diagnostics import TRANSPORT_ERROR, DiagnosticSink, LoggingDiagnosticSink
from .transport import (
    Channel,
    ChannelTransport,
    ConnectionState,
    EventHandler,
    TransportError,
    channel_name_for,
)

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[TransportError], None]


class SessionState(str, Enum):
    IDLE = "idle"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


class ChannelSession:
    """
    Owns the subscription to one workspace channel at a time.

    ``open`` and ``close`` walk the IDLE -> OPENING -> OPEN -> CLOSING -> IDLE
    state machine. Every open and close bumps ``generation``; a handler bound
    under an older generation drops whatever it is handed, so nothing from a
    previous workspace reaches the current callback even if the transport
    delivers late. Transport failures are reported and never raised.
    """

    def __init__(
        self,
        transport: ChannelTransport,
        diagnostics: Optional[DiagnosticSink] = None,
        channel_prefix: str = "workspace_",
    ):
        self.transport = transport
        self.diagnostics = diagnostics or LoggingDiagnosticSink()
        self.channel_prefix = channel_prefix
        self.state = SessionState.IDLE
        self.workspace_id: Optional[str] = None
        self.generation = 0
        self.is_connected = False
        self._channel: Optional[Channel] = None
        self._channel_name: Optional[str] = None
        self._handler: Optional[EventHandler] = None

    @property
    def channel_name(self) -> Optional[str]:
        return self._channel_name

    def open(self, workspace_id: str, on_event: EventHandler, on_error: Optional[ErrorCallback] = None) -> bool:
        if self.state == SessionState.OPEN and self.workspace_id == workspace_id:
            return True
        if self.state in (SessionState.OPENING, SessionState.CLOSING):
            logger.warning("Ignoring open(%s) while session is %s", workspace_id, self.state.value)
            return False
        if self.state == SessionState.OPEN:
            self.close()

        self.state = SessionState.OPENING
        self.generation += 1
        self.workspace_id = workspace_id
        self._channel_name = channel_name_for(workspace_id, self.channel_prefix)
        self._handler = self._guarded(self.generation, on_event)
        try:
            self._channel = self.transport.subscribe(self._channel_name)
            self._channel.bind(self._handler)
        except TransportError as exc:
            self._report_transport_error(exc)
            self._reset_to_idle()
            if on_error is not None:
                on_error(exc)
            return False

        self.transport.add_connection_listener(self._on_connection_change)
        self.state = SessionState.OPEN
        self.is_connected = True
        logger.info("Opened analysis channel %s (generation %d)", self._channel_name, self.generation)
        return True

    def close(self) -> None:
        if self.state in (SessionState.IDLE, SessionState.CLOSING):
            return
        self.state = SessionState.CLOSING
        self.generation += 1
        channel_name = self._channel_name
        try:
            if self._channel is not None and self._handler is not None:
                self._channel.unbind(self._handler)
            self.transport.remove_connection_listener(self._on_connection_change)
            if channel_name is not None:
                self.transport.unsubscribe(channel_name)
        except TransportError as exc:
            self._report_transport_error(exc)
        finally:
            self._reset_to_idle()
        logger.info("Closed analysis channel %s", channel_name)

    def _guarded(self, generation: int, on_event: EventHandler) -> EventHandler:
        def handler(event_name: str, payload: Any) -> None:
            if generation != self.generation or self.state != SessionState.OPEN:
                logger.debug("Discarding stale %s from generation %d", event_name, generation)
                return
            on_event(event_name, payload)

        return handler

    def _on_connection_change(self, state: ConnectionState, detail: Optional[str]) -> None:
        if self.state != SessionState.OPEN:
            return
        if state == ConnectionState.DISCONNECTED:
            self.is_connected = False
            self._report_transport_error(TransportError(detail or "connection lost"))
            return
        # The transport is back; make sure our handler is attached again.
        try:
            self._channel = self.transport.subscribe(self._channel_name)
            self._channel.bind(self._handler)
        except TransportError as exc:
            self._report_transport_error(exc)
            self._abandon()
            return
        self.is_connected = True
        logger.info("Re-attached analysis channel %s after reconnect", self._channel_name)

    def _abandon(self) -> None:
        """Drop a subscription that could not be restored so a later ``open`` starts clean."""
        channel_name = self._channel_name
        self.generation += 1
        self.transport.remove_connection_listener(self._on_connection_change)
        try:
            if channel_name is not None:
                self.transport.unsubscribe(channel_name)
        except TransportError as exc:
            logger.debug("Ignoring unsubscribe failure for %s: %s", channel_name, exc)
        finally:
            self._reset_to_idle()
        logger.info("Abandoned analysis channel %s after a failed re-attach", channel_name)

    def _reset_to_idle(self) -> None:
        self.state = SessionState.IDLE
        self.workspace_id = None
        self.is_connected = False
        self._channel = None
        self._channel_name = None
        self._handler = None

    def _report_transport_error(self, exc: TransportError) -> None:
        try:
            self.diagnostics.report(
                TRANSPORT_ERROR,
                {"workspace_id": self.workspace_id, "channel": self._channel_name, "error": str(exc)},
            )
        except Exception:
            logger.exception("Diagnostic sink failed while reporting a transport error")
