#!/usr/bin/env python3
"""
pipeline_lock.py — File-based PID lock on an output directory.

render_variants.py and generate_photo_records.py both write into trees that
only one process may own at a time. The lock lives next to what it protects
(e.g. _processed/.pipeline.lock). Stale locks (from dead processes) are
auto-cleaned.
"""
from __future__ import annotations

import json
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

LOCK_NAME = ".pipeline.lock"


def lock_path_for(directory: Path) -> Path:
    return Path(directory) / LOCK_NAME


def _pid_alive(pid: int) -> bool:
    """Check if a process with the given PID is still running."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
        return True
    except (OSError, ProcessLookupError):
        return False


def acquire_lock(lock_path: Path, script_name: str) -> None:
    """Acquire the lock. Raises RuntimeError if another live process holds it."""
    lock_path = Path(lock_path)
    if lock_path.exists():
        try:
            info = json.loads(lock_path.read_text())
            pid = int(info.get("pid", 0))
            if pid != os.getpid() and _pid_alive(pid):
                raise RuntimeError(
                    f"Lock held by {info.get('script', '?')} "
                    f"(PID {pid}, started {info.get('started', '?')}). "
                    f"If this is stale, delete {lock_path}"
                )
            # Dead PID: stale lock
            lock_path.unlink()
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
            # Corrupt lock file
            lock_path.unlink(missing_ok=True)

    lock_info = {
        "pid": os.getpid(),
        "script": script_name,
        "started": datetime.now().isoformat(timespec="seconds"),
    }
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text(json.dumps(lock_info, indent=2))


def release_lock(lock_path: Path) -> None:
    """Release the lock if the current process owns it."""
    lock_path = Path(lock_path)
    if not lock_path.exists():
        return
    try:
        info = json.loads(lock_path.read_text())
    except json.JSONDecodeError:
        return
    if isinstance(info, dict) and info.get("pid") == os.getpid():
        lock_path.unlink(missing_ok=True)


def lock_status(lock_path: Path) -> dict | None:
    """Return current lock info, or None if no lock is held."""
    lock_path = Path(lock_path)
    if not lock_path.exists():
        return None
    try:
        info = json.loads(lock_path.read_text())
    except json.JSONDecodeError:
        return None
    if not isinstance(info, dict):
        return None
    try:
        pid = int(info.get("pid", 0) or 0)
    except (TypeError, ValueError):
        pid = 0
    info["alive"] = _pid_alive(pid)
    return info


@contextmanager
def held(lock_path: Path, script_name: str) -> Iterator[Path]:
    acquire_lock(lock_path, script_name)
    try:
        yield Path(lock_path)
    finally:
        release_lock(lock_path)
