from __future__ import annotations

from typing import Dict, List

from .models import AnalysisStatus, PipelineStage, StepState, StepStatus

_STAGE_RANKS: Dict[PipelineStage, int] = {
    PipelineStage.FILE_UPLOAD: 0,
    PipelineStage.FILE_ANALYSIS: 1,
    PipelineStage.STUDY_GUIDE: 2,
    PipelineStage.FLASHCARDS: 3,
    PipelineStage.WORKSHEET: 4,
    PipelineStage.CLEANUP: 5,
}

_STAGE_LABELS: Dict[PipelineStage, str] = {
    PipelineStage.FILE_UPLOAD: "Uploading File",
    PipelineStage.FILE_ANALYSIS: "Analyzing Content",
    PipelineStage.STUDY_GUIDE: "Creating Study Guide",
    PipelineStage.FLASHCARDS: "Generating Flashcards",
    PipelineStage.WORKSHEET: "Building Worksheet",
    PipelineStage.CLEANUP: "Cleaning Up",
}

# Terminal statuses share the top tier; within it error outranks completed,
# which outranks skipped, so the final status does not depend on arrival order.
_STATUS_RANKS: Dict[StepStatus, int] = {
    StepStatus.PENDING: 0,
    StepStatus.IN_PROGRESS: 1,
    StepStatus.SKIPPED: 2,
    StepStatus.COMPLETED: 3,
    StepStatus.ERROR: 4,
}

_TERMINAL = frozenset({StepStatus.COMPLETED, StepStatus.SKIPPED, StepStatus.ERROR})

_RUN_RANKS: Dict[AnalysisStatus, int] = {
    AnalysisStatus.STARTING: 0,
    AnalysisStatus.UPLOADING: 1,
    AnalysisStatus.ANALYZING: 2,
    AnalysisStatus.GENERATING_ARTIFACTS: 3,
    AnalysisStatus.GENERATING_STUDY_GUIDE: 4,
    AnalysisStatus.GENERATING_FLASHCARDS: 5,
    AnalysisStatus.COMPLETED: 6,
    AnalysisStatus.ERROR: 7,
}


def stage_rank(stage: PipelineStage) -> int:
    """Display position of a stage. Presentation only."""
    return _STAGE_RANKS[stage]


def stage_label(stage: PipelineStage) -> str:
    return _STAGE_LABELS[stage]


def ordered_stages() -> List[PipelineStage]:
    return sorted(PipelineStage, key=stage_rank)


def is_terminal(status: StepStatus) -> bool:
    return status in _TERMINAL


def status_rank(status: StepStatus) -> int:
    return _STATUS_RANKS[status]


def is_forward(current: StepStatus, new: StepStatus) -> bool:
    """True when moving a step from ``current`` to ``new`` is allowed within a run."""
    return status_rank(new) > status_rank(current)


def is_run_finished(status: AnalysisStatus) -> bool:
    return status in (AnalysisStatus.COMPLETED, AnalysisStatus.ERROR)


def run_status_rank(status: AnalysisStatus) -> int:
    return _RUN_RANKS[status]


def empty_steps() -> Dict[PipelineStage, StepState]:
    return {stage: StepState(status=StepStatus.PENDING, order=stage_rank(stage)) for stage in ordered_stages()}
