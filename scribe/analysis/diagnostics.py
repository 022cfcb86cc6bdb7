from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Tuple

logger = logging.getLogger(__name__)

MALFORMED_EVENT = "malformed_event"
UNKNOWN_EVENT = "unknown_event"
UNKNOWN_STAGE = "unknown_stage"
UNKNOWN_STATUS = "unknown_status"
TRANSPORT_ERROR = "transport_error"


class DiagnosticSink(Protocol):
    def report(self, kind: str, detail: Dict[str, Any]) -> None:
        ...


class LoggingDiagnosticSink:
    """
    Default sink. Writes every report as a warning on the diagnostics logger.
    """

    def report(self, kind: str, detail: Dict[str, Any]) -> None:
        logger.warning("analysis diagnostic %s: %s", kind, detail)


@dataclass
class RecordingDiagnosticSink:
    """
    Keeps reports in memory for tests and local inspection.
    """

    reports: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def report(self, kind: str, detail: Dict[str, Any]) -> None:
        self.reports.append((kind, dict(detail)))

    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.reports]
