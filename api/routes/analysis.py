from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException

from scribe.analysis import AnalysisView, TransportError, channel_name_for

from api.dependencies import get_monitors, get_publisher, get_settings, monitor_lock, pump_transport

router = APIRouter(prefix="/workspaces", tags=["analysis"])


def _serialize(view: AnalysisView) -> Dict[str, Any]:
    notice = view.notice
    return {
        "workspaceId": view.workspace_id,
        "state": view.state.to_dict(),
        "visible": view.visible,
        "connected": view.connected,
        "notice": {"level": notice.level, "message": notice.message} if notice else None,
    }


def _observe(workspace_id: str) -> AnalysisView:
    if not workspace_id.strip():
        raise HTTPException(status_code=400, detail="Workspace id must not be empty")
    view = get_monitors().observe(workspace_id)
    try:
        pump_transport()
    except TransportError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return view


@router.get("/{workspace_id}/analysis")
def get_analysis(workspace_id: str):
    with monitor_lock:
        return _serialize(_observe(workspace_id))


@router.post("/{workspace_id}/analysis/reset")
def reset_analysis(workspace_id: str):
    with monitor_lock:
        view = _observe(workspace_id)
        view.reset()
        return _serialize(view)


@router.post("/{workspace_id}/analysis/dismiss")
def dismiss_analysis(workspace_id: str):
    with monitor_lock:
        view = _observe(workspace_id)
        view.dismiss()
        return _serialize(view)


@router.post("/{workspace_id}/analysis/events")
def publish_test_event(
    workspace_id: str,
    event: str = Body(..., embed=True),
    data: Optional[Dict[str, Any]] = Body(None, embed=True),
):
    """Publish an event on the workspace channel, standing in for the backend."""
    if not event.strip():
        raise HTTPException(status_code=400, detail="Event name must not be empty")
    channel = channel_name_for(workspace_id, get_settings().channel_prefix)
    with monitor_lock:
        try:
            get_publisher().publish(channel, event, data)
            pump_transport()
        except TransportError as exc:
            raise HTTPException(status_code=503, detail=str(exc))
    return {"status": "published", "channel": channel, "event": event}
