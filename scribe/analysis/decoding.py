"""
Turns named channel messages into reducer events.

The backend publishes the canonical names (``stage-update``,
``overall-update``, ``artifact-ready``, ``run-error``, ``reset``). Older
backends emit one event per pipeline milestone, sometimes prefixed with the
workspace id (``<workspaceId>_studyguide_ended``), or a whole progress
snapshot under ``analysis_progress``; those are translated here as well so the
reducer only ever sees the closed set of event types.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from .diagnostics import MALFORMED_EVENT, UNKNOWN_EVENT, DiagnosticSink, LoggingDiagnosticSink
from .models import (
    AnalysisStatus,
    ArtifactReady,
    OverallUpdate,
    PipelineStage,
    ProgressEvent,
    Reset,
    RunError,
    StageUpdate,
    StepStatus,
)

logger = logging.getLogger(__name__)

STAGE_UPDATE = "stage-update"
OVERALL_UPDATE = "overall-update"
ARTIFACT_READY = "artifact-ready"
RUN_ERROR = "run-error"
RESET = "reset"
LEGACY_SNAPSHOT = "analysis_progress"


class MalformedEvent(ValueError):
    pass


def _require(payload: Mapping[str, Any], key: str) -> Any:
    if key not in payload or payload[key] is None:
        raise MalformedEvent(f"missing field '{key}'")
    return payload[key]


def _optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    return None if value is None else str(value)


def _optional_int(payload: Mapping[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise MalformedEvent(f"field '{key}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedEvent(f"field '{key}' must be an integer") from exc


def _overall_from(payload: Mapping[str, Any], status: Optional[str] = None) -> OverallUpdate:
    return OverallUpdate(
        status=status if status is not None else _optional_str(payload, "status"),
        filename=_optional_str(payload, "filename"),
        file_type=_optional_str(payload, "fileType"),
        started_at=_optional_str(payload, "startedAt"),
        completed_at=_optional_str(payload, "completedAt"),
        error=_optional_str(payload, "error"),
    )


def _stage_update(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    return [
        StageUpdate(
            stage=str(_require(payload, "stage")),
            status=str(_require(payload, "status")),
            order=_optional_int(payload, "order"),
        )
    ]


def _overall_update(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    return [_overall_from(payload)]


def _artifact_ready(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    return [ArtifactReady(kind=str(_require(payload, "kind")), payload=payload.get("payload"))]


def _run_error(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    return [RunError(message=str(_require(payload, "message")))]


def _reset(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    return [Reset()]


def _snapshot(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    events: List[ProgressEvent] = [_overall_from(payload)]
    steps = payload.get("steps") or {}
    if not isinstance(steps, Mapping):
        raise MalformedEvent("field 'steps' must be an object")
    for stage, step in steps.items():
        if not isinstance(step, Mapping):
            raise MalformedEvent(f"step '{stage}' must be an object")
        events.append(
            StageUpdate(
                stage=str(stage),
                status=str(_require(step, "status")),
                order=_optional_int(step, "order"),
            )
        )
    return events


def _stage_started(stage: PipelineStage, run_status: Optional[AnalysisStatus] = None):
    def translate(payload: Mapping[str, Any]) -> List[ProgressEvent]:
        events: List[ProgressEvent] = []
        if run_status is not None:
            events.append(_overall_from(payload, status=run_status.value))
        events.append(StageUpdate(stage=stage.value, status=StepStatus.IN_PROGRESS.value))
        return events

    return translate


def _stage_finished(stage: PipelineStage, artifact_kind: Optional[str] = None):
    def translate(payload: Mapping[str, Any]) -> List[ProgressEvent]:
        events: List[ProgressEvent] = [StageUpdate(stage=stage.value, status=StepStatus.COMPLETED.value)]
        if artifact_kind is not None:
            events.append(ArtifactReady(kind=artifact_kind, payload=payload.get("result")))
        return events

    return translate


def _analysis_ended(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    events: List[ProgressEvent] = [
        OverallUpdate(
            status=AnalysisStatus.COMPLETED.value,
            filename=_optional_str(payload, "filename"),
            completed_at=_optional_str(payload, "timestamp"),
        )
    ]
    artifacts = payload.get("artifacts") or {}
    if not isinstance(artifacts, Mapping):
        raise MalformedEvent("field 'artifacts' must be an object")
    for kind, artifact in artifacts.items():
        events.append(ArtifactReady(kind=str(kind), payload=artifact))
    return events


def _analysis_error(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    return [OverallUpdate(error=str(_require(payload, "error")))]


def _informational(payload: Mapping[str, Any]) -> List[ProgressEvent]:
    return []


_Translator = Callable[[Mapping[str, Any]], List[ProgressEvent]]

_CANONICAL: Dict[str, _Translator] = {
    STAGE_UPDATE: _stage_update,
    OVERALL_UPDATE: _overall_update,
    ARTIFACT_READY: _artifact_ready,
    RUN_ERROR: _run_error,
    RESET: _reset,
}

_LEGACY: Dict[str, _Translator] = {
    LEGACY_SNAPSHOT: _snapshot,
    "file_analysis_start": _stage_started(PipelineStage.FILE_ANALYSIS, AnalysisStatus.ANALYZING),
    "file_analysis_complete": _stage_finished(PipelineStage.FILE_ANALYSIS),
    "study_guide_load_start": _stage_started(PipelineStage.STUDY_GUIDE, AnalysisStatus.GENERATING_STUDY_GUIDE),
    "study_guide_info": _informational,
    "studyguide_ended": _stage_finished(PipelineStage.STUDY_GUIDE, "studyGuide"),
    "flash_card_load_start": _stage_started(PipelineStage.FLASHCARDS, AnalysisStatus.GENERATING_FLASHCARDS),
    "flash_card_info": _informational,
    "flashcard_ended": _stage_finished(PipelineStage.FLASHCARDS, "flashcards"),
    "worksheet_load_start": _stage_started(PipelineStage.WORKSHEET, AnalysisStatus.GENERATING_ARTIFACTS),
    "worksheet_info": _informational,
    "worksheet_ended": _stage_finished(PipelineStage.WORKSHEET, "worksheet"),
    "analysis_cleanup_start": _stage_started(PipelineStage.CLEANUP),
    "analysis_cleanup_complete": _stage_finished(PipelineStage.CLEANUP),
    "analysis_ended": _analysis_ended,
    "analysis_error": _analysis_error,
}


class EventDecoder:
    """
    Decodes ``(event_name, payload)`` pairs. Never raises: unknown names and
    malformed payloads are reported to the diagnostic sink and yield no events.
    """

    def __init__(self, diagnostics: Optional[DiagnosticSink] = None):
        self.diagnostics = diagnostics or LoggingDiagnosticSink()

    def decode(self, event_name: str, payload: Any, workspace_id: Optional[str] = None) -> List[ProgressEvent]:
        translate = self._lookup(event_name, workspace_id)
        if translate is None:
            self._report(UNKNOWN_EVENT, {"event": event_name, "workspace_id": workspace_id})
            return []
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            self._report(
                MALFORMED_EVENT,
                {"event": event_name, "workspace_id": workspace_id, "reason": "payload must be an object"},
            )
            return []
        try:
            return translate(payload)
        except MalformedEvent as exc:
            self._report(MALFORMED_EVENT, {"event": event_name, "workspace_id": workspace_id, "reason": str(exc)})
            return []

    def _lookup(self, event_name: str, workspace_id: Optional[str]) -> Optional[_Translator]:
        if event_name in _CANONICAL:
            return _CANONICAL[event_name]
        name = event_name
        if workspace_id and name.startswith(f"{workspace_id}_"):
            name = name[len(workspace_id) + 1 :]
        return _LEGACY.get(name)

    def _report(self, kind: str, detail: Dict[str, Any]) -> None:
        try:
            self.diagnostics.report(kind, detail)
        except Exception:
            logger.exception("Diagnostic sink failed while reporting %s", kind)
