"""Local JSON Lines persistence for the submission log."""

import json
from pathlib import Path
from datetime import datetime, timezone


def ensure_dir(path: Path):
    path.mkdir(parents=True, exist_ok=True)


def append_line(path: Path, record: dict):
    """Append one record to {path} as a single JSON line."""
    line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
    with open(path, "a", encoding="utf-8") as f:
        f.write(line + "\n")


def read_records(path: Path) -> tuple[list[dict], int]:
    """Read every JSON line from {path}. Returns (records, malformed_count).

    Blank lines are ignored. Lines that fail to parse, or parse to something
    other than an object, are counted and skipped.
    """
    if not path.exists():
        return [], 0
    records = []
    malformed = 0
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                malformed += 1
                continue
            if isinstance(data, dict):
                records.append(data)
            else:
                malformed += 1
    return records, malformed


def timestamp() -> str:
    """Return current UTC timestamp as ISO string with milliseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
