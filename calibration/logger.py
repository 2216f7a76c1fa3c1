"""
Audit logging for weight calibration.

Writes JSON logs for every weight update attempt (applied or failed).
"""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import pandas as pd

if TYPE_CHECKING:
    from .transaction import WeightUpdateResult
    from .store import WeightHistoryEntry


class CalibrationLogger:
    """Structured JSON logging for weight updates."""

    def __init__(self, logs_dir: Path | str):
        """
        Initialize logger.

        Args:
            logs_dir: Directory to write log files
        """
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def log_update(
        self,
        result: "WeightUpdateResult",
        entry: "WeightHistoryEntry",
    ) -> Path:
        """
        Log an applied weight update.

        Args:
            result: WeightUpdateResult from the transaction
            entry: History entry that was written

        Returns:
            Path to log file
        """
        log_entry = {
            "event_id": f"upd_{result.version:04d}_{result.history_id[:8]}",
            "timestamp": entry.created_at.isoformat(),
            "version": result.version,
            "history_id": result.history_id,
            "changed_by": entry.changed_by,
            "change_reason": entry.change_reason,
            "case_study_student_id": entry.case_study_student_id,
            "case_study_session_id": entry.case_study_session_id,
            "old_weights": entry.old_weights,
            "new_weights": entry.new_weights,
            "results": {
                "accuracy_before": result.accuracy_before,
                "accuracy_after": result.accuracy_after,
                "delta": result.delta,
            },
            "status": "APPLIED",
        }

        log_path = self.logs_dir / f"{log_entry['event_id']}.json"
        with open(log_path, "w") as f:
            json.dump(log_entry, f, indent=2, default=str)

        return log_path

    def log_failure(
        self,
        changed_by: str,
        change_reason: str,
        error: str,
        version: Optional[int] = None,
    ) -> Path:
        """
        Log a failed weight update.

        A failure with a version means the weights were persisted but the
        history entry was not: the version is applied without full audit.

        Returns:
            Path to log file
        """
        event_id = f"err_{uuid.uuid4().hex[:8]}"
        log_entry = {
            "event_id": event_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": version,
            "changed_by": changed_by,
            "change_reason": change_reason,
            "status": "UNAUDITED" if version is not None else "ERROR",
            "error": error,
        }

        log_path = self.logs_dir / f"{event_id}.json"
        with open(log_path, "w") as f:
            json.dump(log_entry, f, indent=2)

        return log_path

    def get_all_logs(self) -> list[dict]:
        """
        Load all calibration logs.

        Returns:
            List of log dictionaries, sorted by timestamp
        """
        logs = []
        for pattern in ("upd_*.json", "err_*.json"):
            for log_file in self.logs_dir.glob(pattern):
                with open(log_file) as f:
                    logs.append(json.load(f))
        return sorted(logs, key=lambda log: log["timestamp"])

    def get_failures(self) -> list[dict]:
        """Get only failed updates."""
        return [log for log in self.get_all_logs() if log["status"] != "APPLIED"]

    def get_summary_dataframe(self) -> pd.DataFrame:
        """
        Get summary of all weight updates as DataFrame.

        Returns:
            DataFrame with one row per logged event, newest first
        """
        logs = self.get_all_logs()
        if not logs:
            return pd.DataFrame()

        summary = []
        for log in logs:
            entry = {
                "event_id": log["event_id"],
                "version": log.get("version"),
                "changed_by": log.get("changed_by"),
                "timestamp": log["timestamp"],
                "status": log["status"],
            }
            results = log.get("results", {})
            for key in ["accuracy_before", "accuracy_after", "delta"]:
                entry[key] = results.get(key)
            summary.append(entry)

        df = pd.DataFrame(summary)
        return df.sort_values("timestamp", ascending=False)
