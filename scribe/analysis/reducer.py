from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .artifacts import ArtifactRegistry
from .diagnostics import (
    UNKNOWN_EVENT,
    UNKNOWN_STAGE,
    UNKNOWN_STATUS,
    DiagnosticSink,
    LoggingDiagnosticSink,
)
from .models import (
    STATUS_MESSAGES,
    AnalysisProgress,
    AnalysisStatus,
    ArtifactReady,
    FileType,
    LoadingState,
    OverallUpdate,
    PipelineStage,
    Reset,
    RunError,
    StageTransition,
    StageUpdate,
    StepStatus,
    TransitionLog,
)
from .steps import (
    empty_steps,
    is_forward,
    is_run_finished,
    ordered_stages,
    run_status_rank,
    stage_label,
    stage_rank,
)

logger = logging.getLogger(__name__)


@dataclass
class ProgressState:
    """
    Everything the reducer owns for one workspace: the run record, the error
    log, the artifact registry and the stage transitions accepted this run.
    """

    progress: AnalysisProgress = field(default_factory=lambda: AnalysisProgress(steps=empty_steps()))
    errors: List[str] = field(default_factory=list)
    artifacts: ArtifactRegistry = field(default_factory=ArtifactRegistry)
    transitions: TransitionLog = ()


def initial_state() -> ProgressState:
    return ProgressState()


class ProgressReducer:
    """
    Maps (state, event) to the next state without touching the input.

    Delivery is unordered and may repeat, so every rule here is written to be
    safe under redelivery: step statuses only move forward within a run, the
    run status only moves forward until ``Reset``, artifacts are last-write per
    kind, and errors are an append-only log. Events that change nothing and
    events that are dropped return the very same state object.
    """

    def __init__(self, diagnostics: Optional[DiagnosticSink] = None):
        self.diagnostics = diagnostics or LoggingDiagnosticSink()

    def apply(self, state: ProgressState, event: Any) -> ProgressState:
        if isinstance(event, StageUpdate):
            return self._apply_stage(state, event)
        if isinstance(event, OverallUpdate):
            return self._apply_overall(state, event)
        if isinstance(event, ArtifactReady):
            return self._apply_artifact(state, event)
        if isinstance(event, RunError):
            return self._apply_run_error(state, event)
        if isinstance(event, Reset):
            return initial_state()
        self._report(UNKNOWN_EVENT, {"event": repr(event)})
        return state

    def accepts(self, event: Any) -> bool:
        """Whether ``apply`` would take the event rather than drop it as malformed."""
        if isinstance(event, StageUpdate):
            return PipelineStage.parse(event.stage) is not None and StepStatus.parse(event.status) is not None
        if isinstance(event, OverallUpdate):
            return (
                (event.status is not None and AnalysisStatus.parse(event.status) is not None)
                or (event.file_type is not None and FileType.parse(event.file_type) is not None)
                or any(
                    value is not None
                    for value in (event.filename, event.started_at, event.completed_at, event.error)
                )
            )
        return isinstance(event, (ArtifactReady, RunError, Reset))

    def _apply_stage(self, state: ProgressState, event: StageUpdate) -> ProgressState:
        stage = PipelineStage.parse(event.stage)
        if stage is None:
            self._report(UNKNOWN_STAGE, {"stage": event.stage, "status": event.status})
            return state
        status = StepStatus.parse(event.status)
        if status is None:
            self._report(UNKNOWN_STATUS, {"stage": stage.value, "status": event.status})
            return state

        current = state.progress.steps[stage]
        moves = is_forward(current.status, status)
        reorders = event.order is not None and event.order != current.order
        if not moves and not reorders:
            if status != current.status:
                logger.debug("Ignoring backward move of %s from %s to %s", stage.value, current.status.value, status.value)
            return state

        nxt = self._clone(state)
        step = nxt.progress.steps[stage]
        if event.order is not None:
            step.order = event.order
        if moves:
            nxt.transitions = nxt.transitions + (StageTransition(stage, step.status, status),)
            step.status = status
            if nxt.progress.status is None:
                nxt.progress.status = AnalysisStatus.STARTING
        return nxt

    def _apply_overall(self, state: ProgressState, event: OverallUpdate) -> ProgressState:
        nxt = self._clone(state)
        run = nxt.progress

        if event.status is not None:
            status = AnalysisStatus.parse(event.status)
            if status is None:
                self._report(UNKNOWN_STATUS, {"run_status": event.status})
            elif self._run_moves(run.status, status):
                run.status = status
        if event.file_type is not None:
            file_type = FileType.parse(event.file_type)
            if file_type is None:
                self._report(UNKNOWN_STATUS, {"file_type": event.file_type})
            else:
                run.file_type = file_type
        if event.filename is not None:
            run.filename = event.filename
        if event.started_at is not None:
            run.started_at = event.started_at
        if event.completed_at is not None:
            run.completed_at = event.completed_at
        if event.error is not None:
            # Authoritative run failure. Stage statuses are left as they are.
            run.status = AnalysisStatus.ERROR
            run.error = event.error
            nxt.errors.append(event.error)

        if nxt == state:
            return state
        return nxt

    def _apply_artifact(self, state: ProgressState, event: ArtifactReady) -> ProgressState:
        if event.kind in state.artifacts and state.artifacts.get(event.kind) == event.payload:
            return state
        nxt = self._clone(state)
        nxt.artifacts.put(event.kind, event.payload)
        return nxt

    def _apply_run_error(self, state: ProgressState, event: RunError) -> ProgressState:
        # Errors are a log: a repeated message is a repeated failure.
        nxt = self._clone(state)
        nxt.errors.append(event.message)
        return nxt

    def _run_moves(self, current: Optional[AnalysisStatus], new: AnalysisStatus) -> bool:
        if current is None:
            return True
        if current == AnalysisStatus.ERROR:
            return False
        if new == AnalysisStatus.ERROR:
            return True
        return run_status_rank(new) > run_status_rank(current)

    def _clone(self, state: ProgressState) -> ProgressState:
        return deepcopy(state)

    def _report(self, kind: str, detail: Dict[str, Any]) -> None:
        try:
            self.diagnostics.report(kind, detail)
        except Exception:
            logger.exception("Diagnostic sink failed while reporting %s", kind)


def to_loading_state(state: ProgressState) -> LoadingState:
    """Derive the render-ready view of a reducer state."""
    run = state.progress
    steps = run.steps
    counted = [s for s in steps.values() if s.status != StepStatus.SKIPPED]
    completed = [s for s in counted if s.status == StepStatus.COMPLETED]
    percentage = round(len(completed) / len(counted) * 100) if counted else 0

    return LoadingState(
        is_analyzing=run.status is not None and not is_run_finished(run.status),
        current_step=_current_step(state),
        progress={
            stage.value: steps[stage].status in (StepStatus.COMPLETED, StepStatus.SKIPPED)
            for stage in ordered_stages()
        },
        errors=list(state.errors),
        completed_artifacts=state.artifacts.all(),
        status=run.status,
        percentage=percentage,
    )


def _current_step(state: ProgressState) -> str:
    run = state.progress
    if run.status is not None and is_run_finished(run.status):
        return STATUS_MESSAGES[run.status]
    running = [stage for stage, step in run.steps.items() if step.status == StepStatus.IN_PROGRESS]
    if running:
        return stage_label(max(running, key=stage_rank))
    if state.transitions:
        return stage_label(state.transitions[-1].stage)
    if run.status is not None:
        return STATUS_MESSAGES[run.status]
    return ""
