"""
Build event logging for vignette-builder.

Appends one JSON object per line to the build events file so that the history
of every target (compiling, cached, completed, failed) can be filtered and
replayed after the fact. Detailed per-session logging lives in
vignette_builder.utils.logger instead.

Usage:
    from vignette_builder.utils.event_logging import log_status_change

    log_status_change(
        target_name="intro",
        new_status="compiling_completed",
        source="compiling",
        elapsed_s=3.2,
    )
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from vignette_builder.utils.timestamp import now_exact

load_dotenv()
BUILD_EVENTS_FILE = Path(os.getenv("BUILD_EVENTS_FILE", "outs/logs/build_events.log"))


def log_build_event(
    event_type: str,
    target_name: str,
    source: str,
    events_file: Optional[Path] = None,
    **extra_fields,
) -> None:
    """
    Append an event to the build events log (JSON Lines).

    Args:
        event_type: Type of event (e.g., "status_change", "link_resolved")
        target_name: Vignette identifier
        source: Event source (e.g., "compiling", "cli")
        events_file: Override for BUILD_EVENTS_FILE
        **extra_fields: Additional event-specific fields
    """
    events_file = Path(events_file) if events_file is not None else BUILD_EVENTS_FILE
    events_file.parent.mkdir(parents=True, exist_ok=True)

    event = {
        "timestamp": now_exact(),
        "event_type": event_type,
        "target_name": target_name,
        "source": source,
        **extra_fields,
    }

    with open(events_file, "a", encoding="utf-8") as f:
        f.write(json.dumps(event) + "\n")


def log_status_change(
    target_name: str,
    new_status: str,
    source: str,
    events_file: Optional[Path] = None,
    **extra_fields,
) -> None:
    """Log a status change event for a target."""
    log_build_event(
        event_type="status_change",
        target_name=target_name,
        source=source,
        events_file=events_file,
        new_status=new_status,
        **extra_fields,
    )


def read_events(events_file: Optional[Path] = None) -> List[Dict]:
    """Read all events in file order, skipping malformed lines."""
    events_file = Path(events_file) if events_file is not None else BUILD_EVENTS_FILE
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r", encoding="utf-8") as f:
        for line in f:
            try:
                events.append(json.loads(line.strip()))
            except json.JSONDecodeError:
                continue
    return events


def get_recent_events(
    n: int = 10,
    target_name: Optional[str] = None,
    event_type: Optional[str] = None,
    events_file: Optional[Path] = None,
) -> List[Dict]:
    """
    Get the last n events, optionally filtered.

    Args:
        n: Number of recent events to return (default: 10)
        target_name: Only events for this target
        event_type: Only events of this type
        events_file: Override for BUILD_EVENTS_FILE

    Returns:
        List of event dicts (most recent last)
    """
    if n <= 0:
        return []

    events = read_events(events_file)

    if target_name:
        events = [e for e in events if e.get("target_name") == target_name]
    if event_type:
        events = [e for e in events if e.get("event_type") == event_type]

    return events[-n:] if len(events) > n else events


def latest_statuses(events_file: Optional[Path] = None) -> Dict[str, str]:
    """Map each target name to the status of its most recent status_change event."""
    statuses = {}
    for event in read_events(events_file):
        if event.get("event_type") == "status_change":
            statuses[event["target_name"]] = event["new_status"]
    return statuses
