"""Append-only JSONL log of identification attempts.

Every attempt the orchestrator returns is appended to a session-specific JSONL
file for diagnostics. Entries are never modified or deleted.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict
from pathlib import Path

from rock_identifier.config import ATTEMPT_LOG_DIR
from rock_identifier.models import AttemptRecord, FinalAttempt, IdentificationAttempt


class AttemptLog:
    """Append-only JSONL logger for identification attempts."""

    def __init__(self, log_dir: Path | None = None) -> None:
        self.log_dir = log_dir or ATTEMPT_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _session_path(self, session_id: str) -> Path:
        # Sanitize session_id to prevent path traversal
        safe_id = os.path.basename(session_id)
        return self.log_dir / f"{safe_id}.jsonl"

    def record(self, session_id: str, attempt: IdentificationAttempt) -> AttemptRecord:
        """Flatten an attempt into a record and append it."""
        entry = AttemptRecord(
            session_id=session_id,
            attempt_number=attempt.attempt_number,
            needs_retry=attempt.needs_retry,
            confidence_tier=attempt.confidence_tier,
            raw_confidence=attempt.raw_confidence,
        )
        if isinstance(attempt, FinalAttempt):
            entry.identification_method = attempt.result.identification_method
            entry.rock_name = attempt.result.rock_name
        else:
            entry.retry_message = attempt.retry_prompt.message
        self.append(entry)
        return entry

    def append(self, entry: AttemptRecord) -> None:
        path = self._session_path(entry.session_id)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(entry), ensure_ascii=False) + "\n")

    def iter_session(self, session_id: str):
        """Yield all records for a session in order."""
        path = self._session_path(session_id)
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield AttemptRecord(**json.loads(line))

    def list_sessions(self) -> list[str]:
        """Return all session IDs that have log files."""
        return [p.stem for p in sorted(self.log_dir.glob("*.jsonl"))]
