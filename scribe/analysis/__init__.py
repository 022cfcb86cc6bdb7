"""
Analysis progress exports.
"""

from .artifacts import ArtifactRegistry
from .config import AnalysisSettings
from .decoding import EventDecoder
from .diagnostics import DiagnosticSink, LoggingDiagnosticSink, RecordingDiagnosticSink
from .models import (
    STATUS_MESSAGES,
    AnalysisProgress,
    AnalysisStatus,
    ArtifactReady,
    FileType,
    LoadingState,
    Notice,
    OverallUpdate,
    PipelineStage,
    ProgressEvent,
    Reset,
    RunError,
    StageTransition,
    StageUpdate,
    StepState,
    StepStatus,
)
from .monitor import AnalysisMonitor, AnalysisView
from .overlay import completion_notice, should_show
from .reducer import ProgressReducer, ProgressState, initial_state, to_loading_state
from .session import ChannelSession, SessionState
from .steps import is_forward, is_terminal, ordered_stages, stage_label, stage_rank, status_rank
from .transport import (
    Channel,
    ChannelTransport,
    ConnectionState,
    InMemoryChannelTransport,
    RedisChannelTransport,
    RedisEventPublisher,
    TransportError,
    channel_name_for,
)

__all__ = [
    "AnalysisMonitor",
    "AnalysisProgress",
    "AnalysisSettings",
    "AnalysisStatus",
    "AnalysisView",
    "ArtifactReady",
    "ArtifactRegistry",
    "Channel",
    "ChannelSession",
    "ChannelTransport",
    "ConnectionState",
    "DiagnosticSink",
    "EventDecoder",
    "FileType",
    "InMemoryChannelTransport",
    "LoadingState",
    "LoggingDiagnosticSink",
    "Notice",
    "OverallUpdate",
    "PipelineStage",
    "ProgressEvent",
    "ProgressReducer",
    "ProgressState",
    "RecordingDiagnosticSink",
    "RedisChannelTransport",
    "RedisEventPublisher",
    "Reset",
    "RunError",
    "STATUS_MESSAGES",
    "SessionState",
    "StageTransition",
    "StageUpdate",
    "StepState",
    "StepStatus",
    "TransportError",
    "channel_name_for",
    "completion_notice",
    "initial_state",
    "is_forward",
    "is_terminal",
    "ordered_stages",
    "should_show",
    "stage_label",
    "stage_rank",
    "status_rank",
    "to_loading_state",
]
