from __future__ import annotations

from typing import Optional

from .models import LoadingState, Notice


def should_show(state: LoadingState, dismissed: bool = False) -> bool:
    """
    The overlay stays up while a run is active, after a failure, and after
    artifacts arrive, until the user dismisses it.
    """
    if dismissed:
        return False
    return state.is_analyzing or bool(state.errors) or bool(state.completed_artifacts)


def completion_notice(state: LoadingState) -> Optional[Notice]:
    """Summary shown once a run is over: the first error, or the artifact count."""
    if state.is_analyzing:
        return None
    if state.errors:
        return Notice(level="error", message=state.errors[0] or "Analysis failed")
    count = len(state.completed_artifacts)
    if count:
        return Notice(level="success", message=f"Analysis complete: {count} artifact{'' if count == 1 else 's'} generated")
    return None
