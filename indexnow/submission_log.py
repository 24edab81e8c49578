"""Submission log — JSON Lines history of IndexNow submissions with rotation and success-rate alerts.

Each submission attempt is one line in logs/indexnow-submissions.json. Once
the file reaches max_bytes it is renamed to indexnow-submissions-{epoch_ms}.json
and a fresh file starts on the next write.

Writing is best-effort: a deploy must never fail because its log could not be
written, so log_submission() reports problems through `logging` and its return
value instead of raising. Assumes a single writer; there is no file locking.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from indexnow.client import SubmissionResult
from indexnow.storage import append_line, ensure_dir, read_records

logger = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path("logs") / "indexnow-submissions.json"
MAX_LOG_SIZE_BYTES = 10 * 1024 * 1024
SUCCESS_RATE_THRESHOLD = 0.9
STATS_WINDOW = 10
API_KEY_REDACTION = "***REDACTED***"

_API_KEY_RE = re.compile(r"\b[0-9a-fA-F]{8,128}\b")


def redact_api_key(text, redaction: str = API_KEY_REDACTION):
    """Replace key-like hex runs (8-128 chars) in {text}. Non-strings pass through."""
    if not isinstance(text, str):
        return text
    return _API_KEY_RE.sub(redaction, text)


@dataclass(frozen=True)
class Statistics:
    total_submissions: int = 0
    successful_submissions: int = 0
    failed_submissions: int = 0
    success_rate: float = 0.0
    last_successful_submission: str | None = None
    average_url_count: float = 0.0

    def to_dict(self) -> dict:
        return {
            "totalSubmissions": self.total_submissions,
            "successfulSubmissions": self.successful_submissions,
            "failedSubmissions": self.failed_submissions,
            "successRate": self.success_rate,
            "lastSuccessfulSubmission": self.last_successful_submission,
            "averageUrlCount": self.average_url_count,
        }


def _entry_to_record(entry, deployment_id: str | None) -> dict:
    if isinstance(entry, SubmissionResult):
        record = entry.to_dict()
    elif isinstance(entry, Mapping):
        record = dict(entry)
    else:
        raise TypeError(f"Cannot log entry of type {type(entry).__name__}")
    if deployment_id is not None:
        record["deploymentId"] = deployment_id
    return record


def compute_statistics(records: list[dict]) -> Statistics:
    """Aggregate a window of log records (oldest first)."""
    if not records:
        return Statistics()

    successful = 0
    url_total = 0
    last_success = None
    for record in records:
        if record.get("success"):
            successful += 1
            last_success = record.get("timestamp")
        count = record.get("urlCount")
        if isinstance(count, (int, float)):
            url_total += count

    total = len(records)
    return Statistics(
        total_submissions=total,
        successful_submissions=successful,
        failed_submissions=total - successful,
        success_rate=successful / total,
        last_successful_submission=last_success,
        average_url_count=url_total / total,
    )


class SubmissionLog:
    """Append-only submission history at {path}."""

    def __init__(
        self,
        path: str | Path = DEFAULT_LOG_PATH,
        max_bytes: int = MAX_LOG_SIZE_BYTES,
        success_rate_threshold: float = SUCCESS_RATE_THRESHOLD,
        window: int = STATS_WINDOW,
        redaction: str = API_KEY_REDACTION,
    ):
        self.path = Path(path)
        self.max_bytes = max_bytes
        self.success_rate_threshold = success_rate_threshold
        self.window = window
        self.redaction = redaction
        self.last_error: Exception | None = None

    def log_submission(self, entry: SubmissionResult | Mapping[str, Any],
                       deployment_id: str | None = None) -> bool:
        """Append {entry} to the log. Returns False if it had to fall back to the diagnostic log."""
        try:
            record = _entry_to_record(entry, deployment_id)
            if "error" in record:
                record["error"] = redact_api_key(record["error"], self.redaction)

            ensure_dir(self.path.parent)
            self.rotate()
            append_line(self.path, record)
        except (OSError, TypeError, ValueError) as e:
            self.last_error = e
            logger.error("Failed to write to log file %s: %s", self.path, e)
            logger.info("Log entry (fallback): %s", _fallback_repr(entry, deployment_id, self.redaction))
            return False

        self.last_error = None
        self.check_success_rate()
        return True

    def check_success_rate(self) -> Statistics:
        """Warn when the success rate over the last {window} submissions drops below threshold."""
        stats = self.get_statistics(self.window)
        if stats.total_submissions >= self.window and stats.success_rate < self.success_rate_threshold:
            logger.warning(
                "IndexNow success rate (%.1f%%) has fallen below %.0f%% over the last %d submissions",
                stats.success_rate * 100, self.success_rate_threshold * 100, self.window,
            )
        return stats

    def read_entries(self) -> list[dict]:
        """All parseable entries in append order. Corrupt lines are skipped with a warning."""
        records, malformed = read_records(self.path)
        if malformed:
            logger.warning("Skipped %d malformed line(s) in %s", malformed, self.path)
        return records

    def get_statistics(self, limit: int = STATS_WINDOW) -> Statistics:
        """Statistics over the most recent {limit} entries.

        "Most recent" means last appended; with a single writer that is also
        chronological order.
        """
        if limit <= 0:
            return Statistics()
        try:
            records = self.read_entries()
        except (OSError, ValueError) as e:
            logger.warning("Failed to read log file %s: %s", self.path, e)
            return Statistics()
        return compute_statistics(records[-limit:])

    def rotate(self) -> str | None:
        """Rename the active log once it reaches {max_bytes}. Returns the archive path, if any."""
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to stat log file %s: %s", self.path, e)
            return None

        if size < self.max_bytes:
            return None

        rotated = self.path.with_name(f"indexnow-submissions-{int(time.time() * 1000)}.json")
        try:
            self.path.rename(rotated)
        except OSError as e:
            logger.warning("Failed to rotate log file %s: %s", self.path, e)
            return None

        logger.info("Log file rotated: %s (%.2fMB)", rotated.name, size / 1024 / 1024)
        return str(rotated)


def _fallback_repr(entry, deployment_id: str | None, redaction: str) -> str:
    try:
        data = _entry_to_record(entry, deployment_id)
    except TypeError:
        return repr(entry)
    if "error" in data:
        data["error"] = redact_api_key(data["error"], redaction)
    try:
        return json.dumps(data, default=str)
    except (TypeError, ValueError):
        # non-str keys, circular references
        return redact_api_key(repr(data), redaction)
