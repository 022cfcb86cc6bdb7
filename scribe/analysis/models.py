from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class PipelineStage(str, Enum):
    FILE_UPLOAD = "fileUpload"
    FILE_ANALYSIS = "fileAnalysis"
    STUDY_GUIDE = "studyGuide"
    FLASHCARDS = "flashcards"
    WORKSHEET = "worksheet"
    CLEANUP = "cleanup"

    @classmethod
    def parse(cls, value: Any) -> Optional["PipelineStage"]:
        try:
            return cls(value)
        except ValueError:
            return None


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"

    @classmethod
    def parse(cls, value: Any) -> Optional["StepStatus"]:
        try:
            return cls(value)
        except ValueError:
            return None


class AnalysisStatus(str, Enum):
    STARTING = "starting"
    UPLOADING = "uploading"
    ANALYZING = "analyzing"
    GENERATING_ARTIFACTS = "generating_artifacts"
    GENERATING_STUDY_GUIDE = "generating_study_guide"
    GENERATING_FLASHCARDS = "generating_flashcards"
    COMPLETED = "completed"
    ERROR = "error"

    @classmethod
    def parse(cls, value: Any) -> Optional["AnalysisStatus"]:
        try:
            return cls(value)
        except ValueError:
            return None


class FileType(str, Enum):
    IMAGE = "image"
    PDF = "pdf"

    @classmethod
    def parse(cls, value: Any) -> Optional["FileType"]:
        try:
            return cls(value)
        except ValueError:
            return None


STATUS_MESSAGES: Dict[AnalysisStatus, str] = {
    AnalysisStatus.STARTING: "Initializing...",
    AnalysisStatus.UPLOADING: "Uploading file...",
    AnalysisStatus.ANALYZING: "Analyzing content...",
    AnalysisStatus.GENERATING_ARTIFACTS: "Preparing artifacts...",
    AnalysisStatus.GENERATING_STUDY_GUIDE: "Creating study guide...",
    AnalysisStatus.GENERATING_FLASHCARDS: "Generating flashcards...",
    AnalysisStatus.COMPLETED: "Analysis complete!",
    AnalysisStatus.ERROR: "An error occurred",
}


@dataclass
class StepState:
    status: StepStatus = StepStatus.PENDING
    order: int = 0


@dataclass
class AnalysisProgress:
    """
    Per-run record. ``status`` stays None until the first event of a run
    arrives; steps are keyed by stage name, never by position.
    """

    steps: Dict[PipelineStage, StepState]
    status: Optional[AnalysisStatus] = None
    filename: str = ""
    file_type: Optional[FileType] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class StageTransition:
    stage: PipelineStage
    previous: StepStatus
    current: StepStatus


# Reducer input. Stage and status stay as delivered so the reducer can drop
# and report values it does not recognise.


@dataclass(frozen=True)
class StageUpdate:
    stage: str
    status: str
    order: Optional[int] = None


@dataclass(frozen=True)
class OverallUpdate:
    status: Optional[str] = None
    filename: Optional[str] = None
    file_type: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ArtifactReady:
    kind: str
    payload: Any = None


@dataclass(frozen=True)
class RunError:
    message: str


@dataclass(frozen=True)
class Reset:
    pass


ProgressEvent = Union[StageUpdate, OverallUpdate, ArtifactReady, RunError, Reset]


@dataclass
class LoadingState:
    is_analyzing: bool = False
    current_step: str = ""
    progress: Dict[str, bool] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    completed_artifacts: Dict[str, Any] = field(default_factory=dict)
    status: Optional[AnalysisStatus] = None
    percentage: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isAnalyzing": self.is_analyzing,
            "currentStep": self.current_step,
            "progress": dict(self.progress),
            "errors": list(self.errors),
            "completedArtifacts": dict(self.completed_artifacts),
            "status": self.status.value if self.status else None,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class Notice:
    level: str
    message: str


TransitionLog = Tuple[StageTransition, ...]
