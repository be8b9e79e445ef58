"""
Run History
===========
Optional append-only record of the most recent runs, for audit and trends.

Storage: one JSON array in a file, newest entry last, trimmed to the most
recent ``max_runs`` entries. Writes are guarded by a FileLock so concurrent
processes never interleave. Each entry is validated against
``schemas/run_history_entry.schema.json`` before it is written.

History is never load-bearing: write failures are logged and swallowed by
``record``, and turning history off does not change what ``run`` returns.

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from filelock import FileLock, Timeout
from jsonschema import Draft202012Validator, FormatChecker
from loguru import logger

from analysis_orchestrator.config import HISTORY
from analysis_orchestrator.models import RunResult


SCHEMA_FILENAME = "run_history_entry.schema.json"


@lru_cache(maxsize=8)
def _load_schema(schema_filename: str) -> Dict[str, Any]:
    """Load a schema JSON file from the package schemas directory.

    Raises:
        FileNotFoundError: When the schema file is missing.
        ValueError: When the schema is not a JSON object.
    """
    schema_path = Path(__file__).resolve().parent / "schemas" / schema_filename
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_filename}")
    with open(schema_path, "r", encoding="utf-8") as f:
        schema = json.load(f)
    if not isinstance(schema, dict):
        raise ValueError(f"Schema {schema_filename} must be a JSON object")
    return schema


def validate_history_entry(entry: Dict[str, Any]) -> None:
    """Validate one history entry.

    Raises:
        ValueError: When the entry fails validation.
    """
    validator = Draft202012Validator(_load_schema(SCHEMA_FILENAME), format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(entry), key=lambda e: list(e.path))
    if not errors:
        return
    error = errors[0]
    path = "/".join(str(p) for p in error.path)
    prefix = f"Validation failed at '{path}': " if path else "Validation failed: "
    raise ValueError(prefix + error.message)


def history_entry(result: RunResult) -> Dict[str, Any]:
    """Compact history record of a RunResult (no payloads)."""
    return {
        "run_id": result.run_id,
        "target": result.target,
        "created_at": result.created_at,
        "status": result.summary.get("status", "healthy"),
        "execution_plan": [list(batch) for batch in result.execution_plan],
        "agents": {
            name: {
                "status": r.status.value,
                "error": r.error,
                "duration_seconds": r.duration_seconds,
            }
            for name, r in result.results.items()
        },
        "summary": json.loads(json.dumps(result.summary, default=str)),
    }


class RunHistory:
    """
    Most-recent-N run log on disk.

    Usage:
        history = RunHistory(".analysis_history/runs.json", max_runs=50)
        history.record(run_result)
        recent = history.load()
    """

    def __init__(
        self,
        path: Optional[str] = None,
        max_runs: Optional[int] = None,
        lock_timeout_seconds: float = 30,
    ):
        self.path = Path(path or HISTORY.PATH)
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self.max_runs = max(1, max_runs if max_runs is not None else HISTORY.MAX_RUNS)
        self.lock_timeout_seconds = lock_timeout_seconds

    def load(self) -> List[Dict[str, Any]]:
        """Return stored entries, oldest first; an unreadable file reads as empty."""
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read run history {self.path}: {e}")
            return []
        return data if isinstance(data, list) else []

    def append(self, entry: Dict[str, Any]) -> int:
        """
        Validate and append one entry, trimming to ``max_runs``.

        Returns:
            Number of entries stored after the write

        Raises:
            ValueError: Invalid entry
            TimeoutError: Lock not acquired in time
        """
        validate_history_entry(entry)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with FileLock(self.lock_path, timeout=self.lock_timeout_seconds):
                entries = self.load()
                entries.append(entry)
                entries = entries[-self.max_runs:]
                with open(self.path, "w", encoding="utf-8") as f:
                    json.dump(entries, f, indent=2, ensure_ascii=False)
        except Timeout as e:
            raise TimeoutError(
                f"Timed out acquiring run history lock {self.lock_path} after {self.lock_timeout_seconds}s"
            ) from e
        return len(entries)

    def record(self, result: RunResult) -> bool:
        """Best-effort append of a run; returns False when the write failed."""
        try:
            count = self.append(history_entry(result))
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to record run {result.run_id} in history: {e}")
            return False
        logger.debug(f"Recorded run {result.run_id} in history ({count} entries)")
        return True

    def clear(self) -> None:
        with FileLock(self.lock_path, timeout=self.lock_timeout_seconds):
            if self.path.exists():
                self.path.unlink()
