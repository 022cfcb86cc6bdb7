"""
Example: watch a workspace's analysis channel over Redis, or play a sample run onto it.

Usage:
    python3 progress_demo.py --workspace ws-1                 # watch and print state changes
    python3 progress_demo.py --workspace ws-1 --simulate      # publish a sample run
"""

import argparse
import logging
import time

from scribe.analysis import (
    AnalysisMonitor,
    AnalysisSettings,
    LoadingState,
    RedisChannelTransport,
    RedisEventPublisher,
    channel_name_for,
)

SAMPLE_RUN = [
    ("overall-update", {"status": "starting", "filename": "notes.pdf", "fileType": "pdf"}),
    ("stage-update", {"stage": "fileUpload", "status": "in_progress"}),
    ("stage-update", {"stage": "fileUpload", "status": "completed"}),
    ("stage-update", {"stage": "fileAnalysis", "status": "in_progress"}),
    ("overall-update", {"status": "analyzing"}),
    ("stage-update", {"stage": "fileAnalysis", "status": "completed"}),
    ("stage-update", {"stage": "studyGuide", "status": "in_progress"}),
    ("artifact-ready", {"kind": "studyGuide", "payload": {"artifactId": "sg_123", "title": "Study Guide"}}),
    ("stage-update", {"stage": "studyGuide", "status": "completed"}),
    ("stage-update", {"stage": "flashcards", "status": "in_progress"}),
    ("artifact-ready", {"kind": "flashcards", "payload": {"artifactId": "fc_123", "title": "Flashcards"}}),
    ("stage-update", {"stage": "flashcards", "status": "completed"}),
    ("stage-update", {"stage": "worksheet", "status": "skipped"}),
    ("stage-update", {"stage": "cleanup", "status": "completed"}),
    ("overall-update", {"status": "completed", "completedAt": "2026-01-01T00:00:00Z"}),
]


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


def print_state(state: LoadingState, visible: bool) -> None:
    print(
        f"[{state.percentage:3d}%] analyzing={state.is_analyzing} step={state.current_step!r} "
        f"errors={state.errors} artifacts={sorted(state.completed_artifacts)} visible={visible}"
    )


def simulate(settings: AnalysisSettings, workspace_id: str, delay: float) -> None:
    publisher = RedisEventPublisher(settings.redis_url)
    channel = channel_name_for(workspace_id, settings.channel_prefix)
    for event_name, payload in SAMPLE_RUN:
        receivers = publisher.publish(channel, event_name, payload)
        print(f"published {event_name} to {channel} ({receivers} receiver(s))")
        time.sleep(delay)


def watch(settings: AnalysisSettings, workspace_id: str) -> None:
    transport = RedisChannelTransport(settings.redis_url)
    with AnalysisMonitor(transport, settings=settings) as monitor:
        monitor.add_listener(print_state)
        view = monitor.observe(workspace_id)
        if not view.connected:
            raise SystemExit(f"Could not subscribe to workspace {workspace_id}")
        print(f"Watching {channel_name_for(workspace_id, settings.channel_prefix)}; Ctrl+C to stop")
        try:
            transport.listen()
        except KeyboardInterrupt:
            pass
        finally:
            transport.close()


def main():
    defaults = AnalysisSettings.from_env()
    parser = argparse.ArgumentParser()
    parser.add_argument("--workspace", required=True, help="Workspace id whose channel to use")
    parser.add_argument("--redis-url", default=defaults.redis_url, help="Redis connection URL")
    parser.add_argument("--prefix", default=defaults.channel_prefix, help="Channel name prefix")
    parser.add_argument("--simulate", action="store_true", help="Publish a sample run instead of watching")
    parser.add_argument("--delay", default=0.5, type=float, help="Seconds between simulated events")
    parser.add_argument("--log-level", default=defaults.log_level, help="Logging level")
    args = parser.parse_args()

    setup_logging(args.log_level.upper())
    settings = AnalysisSettings(
        transport="redis",
        redis_url=args.redis_url,
        channel_prefix=args.prefix,
        log_level=args.log_level.upper(),
    )
    if args.simulate:
        simulate(settings, args.workspace, args.delay)
    else:
        watch(settings, args.workspace)


if __name__ == "__main__":
    main()
