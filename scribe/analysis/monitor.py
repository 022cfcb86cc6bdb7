from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from .config import AnalysisSettings
from .decoding import EventDecoder
from .diagnostics import DiagnosticSink, LoggingDiagnosticSink
from .models import LoadingState, Notice, Reset
from .overlay import completion_notice, should_show
from .reducer import ProgressReducer, ProgressState, initial_state, to_loading_state
from .session import ChannelSession, SessionState
from .transport import ChannelTransport, TransportError

logger = logging.getLogger(__name__)

StateListener = Callable[[LoadingState, bool], None]


class AnalysisView:
    """
    What a UI layer holds after ``observe``. Reads go through the monitor, so
    a view always reflects the latest state; once the monitor has moved to
    another workspace the view reports an empty state and its actions do
    nothing.
    """

    def __init__(self, monitor: "AnalysisMonitor", workspace_id: Optional[str], epoch: int):
        self._monitor = monitor
        self.workspace_id = workspace_id
        self._epoch = epoch

    @property
    def is_current(self) -> bool:
        return self._monitor._epoch == self._epoch

    @property
    def state(self) -> LoadingState:
        if not self.is_current:
            return to_loading_state(initial_state())
        return self._monitor.state

    @property
    def visible(self) -> bool:
        return self.is_current and self._monitor.visible

    @property
    def connected(self) -> bool:
        return self.is_current and self._monitor.connected

    @property
    def notice(self) -> Optional[Notice]:
        if not self.is_current:
            return None
        return self._monitor.notice

    def reset(self) -> None:
        if self.is_current:
            self._monitor.reset()

    def dismiss(self) -> None:
        if self.is_current:
            self._monitor.dismiss()


class AnalysisMonitor:
    """
    Single entry point for consumers of analysis progress.

    Holds exactly one channel session, the reducer state for the workspace
    being observed, and the transient dismissed flag. Switching workspace
    closes the old subscription and clears the state before the new one is
    opened, so a previous workspace's progress is never visible.
    """

    def __init__(
        self,
        transport: ChannelTransport,
        diagnostics: Optional[DiagnosticSink] = None,
        settings: Optional[AnalysisSettings] = None,
    ):
        self.settings = settings or AnalysisSettings()
        self.diagnostics = diagnostics or LoggingDiagnosticSink()
        self.reducer = ProgressReducer(self.diagnostics)
        self.decoder = EventDecoder(self.diagnostics)
        self.session = ChannelSession(transport, self.diagnostics, channel_prefix=self.settings.channel_prefix)
        self.workspace_id: Optional[str] = None
        self._state: ProgressState = initial_state()
        self._loading: LoadingState = to_loading_state(self._state)
        self._dismissed = False
        self._epoch = 0
        self._listeners: List[StateListener] = []

    def __enter__(self) -> "AnalysisMonitor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def observe(self, workspace_id: Optional[str]) -> AnalysisView:
        workspace_id = (workspace_id or "").strip() or None
        if workspace_id != self.workspace_id:
            self.session.close()
            self.workspace_id = workspace_id
            self._epoch += 1
            self._replace_state(initial_state())
            self._dismissed = False
            self._publish()
        if workspace_id is not None and not self._session_serves(workspace_id):
            self.session.open(workspace_id, self._on_event, self._on_transport_error)
        return AnalysisView(self, workspace_id, self._epoch)

    @property
    def state(self) -> LoadingState:
        return to_loading_state(self._state)

    @property
    def visible(self) -> bool:
        return should_show(self._loading, self._dismissed)

    @property
    def dismissed(self) -> bool:
        return self._dismissed

    @property
    def connected(self) -> bool:
        return self.session.is_connected

    @property
    def notice(self) -> Optional[Notice]:
        return completion_notice(self._loading)

    def reset(self) -> None:
        """Start a fresh run locally; nothing is sent to the channel."""
        self._replace_state(self.reducer.apply(self._state, Reset()))
        self._dismissed = False
        self._publish()

    def dismiss(self) -> None:
        self._dismissed = True
        self._publish()

    def close(self) -> None:
        self.session.close()
        if self.workspace_id is not None:
            self.workspace_id = None
            self._epoch += 1
            self._replace_state(initial_state())
            self._dismissed = False
            self._publish()

    def add_listener(self, listener: StateListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _session_serves(self, workspace_id: str) -> bool:
        return self.session.state == SessionState.OPEN and self.session.workspace_id == workspace_id

    def _on_event(self, event_name: str, payload: Any) -> None:
        events = self.decoder.decode(event_name, payload, workspace_id=self.workspace_id)
        if not events:
            return
        state = self._state
        for event in events:
            state = self.reducer.apply(state, event)
        # New activity brings a dismissed overlay back; dropped events are not activity.
        if any(self.reducer.accepts(event) for event in events):
            self._dismissed = False
        self._replace_state(state)
        self._publish()

    def _on_transport_error(self, exc: TransportError) -> None:
        logger.info("Analysis channel for workspace %s unavailable: %s", self.workspace_id, exc)

    def _replace_state(self, state: ProgressState) -> None:
        if state is not self._state:
            self._state = state
            self._loading = to_loading_state(state)

    def _publish(self) -> None:
        visible = self.visible
        for listener in list(self._listeners):
            try:
                listener(to_loading_state(self._state), visible)
            except Exception:
                logger.exception("Analysis state listener failed")
