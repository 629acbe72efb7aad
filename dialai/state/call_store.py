"""Durable storage of call records."""

import os
import json
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union
import structlog

from .models import Call


logger = structlog.get_logger()


def atomic_write_json(path: Path, data: Any) -> None:
    """Write ``data`` as JSON so readers see either the old file or the new one."""
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w", dir=path.parent, delete=False, suffix=".tmp"
    ) as tmp_file:
        json.dump(data, tmp_file, indent=2, ensure_ascii=False)
        tmp_file.flush()
        os.fsync(tmp_file.fileno())
        tmp_path = tmp_file.name

    os.replace(tmp_path, path)


class CallStore:
    """Keeps every call, keyed by id, in one JSON file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path or "~/.dialai/calls.json").expanduser()

    def save(self, calls: Dict[str, Call]) -> None:
        """Persist the whole call collection."""
        try:
            atomic_write_json(self.path, {call_id: call.to_dict() for call_id, call in calls.items()})
        except OSError as e:
            logger.error("Failed to save calls", path=str(self.path), error=str(e))
            raise

        logger.debug("Calls saved", path=str(self.path), count=len(calls))

    def load(self) -> Dict[str, Call]:
        """Load all calls; a missing or unreadable file yields no calls."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            calls = {call_id: Call.from_dict(record) for call_id, record in data.items()}
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Error loading calls from storage", path=str(self.path), error=str(e))
            return {}

        logger.info("Calls loaded", path=str(self.path), count=len(calls))
        return calls

    def clear(self) -> None:
        """Remove every stored call."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.info("Call store cleared", path=str(self.path))
