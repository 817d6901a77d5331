"""Cloud backup of reports and store snapshots.

Only a simulated sink ships today; it accepts the upload after a fixed
delay so the dashboard flow matches a real OAuth-backed Drive upload.
"""

from __future__ import annotations

import json
import os
import time
from collections import deque
from datetime import date, datetime

from trucktrack import api_tracker

MAX_UPLOAD_LOG = 50


class SnapshotSink:
    """Destination for exported files."""

    def save_file(self, filename: str, content: str, mime_type: str = "text/csv") -> bool:
        raise NotImplementedError


class SimulatedDriveSink(SnapshotSink):
    def __init__(self, delay: float | None = None) -> None:
        self._delay = float(os.getenv("TRUCKTRACK_DRIVE_DELAY", "1.5")) if delay is None else delay
        self.saved: deque[dict] = deque(maxlen=MAX_UPLOAD_LOG)

    def save_file(self, filename: str, content: str, mime_type: str = "text/csv") -> bool:
        print(f"[drive] Attempting to save {filename} to Google Drive...", flush=True)
        with api_tracker.track("drive", "save_file"):
            if self._delay > 0:
                time.sleep(self._delay)
            self.saved.append({
                "filename": filename,
                "mime_type": mime_type,
                "size": len(content.encode("utf-8")),
            })
        print(f"[drive] File {filename} successfully saved!", flush=True)
        return True


def state_filename(today: date | None = None) -> str:
    return f"TruckTrack_State_{(today or date.today()).isoformat()}.json"


def sync_state(sink: SnapshotSink, state: dict, today: date | None = None) -> str:
    """Upload the full store snapshot; returns the backup time for display."""
    content = json.dumps(state, indent=2, ensure_ascii=False, default=str)
    sink.save_file(state_filename(today), content, "application/json")
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")
