"""IndexNow key file checks — is the key published where search engines will look?"""

import logging
from dataclasses import dataclass
from pathlib import Path

import requests

from indexnow.client import validate_api_key

logger = logging.getLogger(__name__)


def find_key_file(public_dir: str | Path) -> tuple[str, Path] | None:
    """Find {key}.txt in the static site's public dir whose content is the key itself."""
    public_dir = Path(public_dir)
    if not public_dir.is_dir():
        return None
    for path in sorted(public_dir.glob("*.txt")):
        if path.name == "robots.txt" or not validate_api_key(path.stem):
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable key file candidate %s: %s", path, e)
            continue
        if content.strip() == path.stem:
            return path.stem, path
    return None


def validate_content_type(content_type: str | None) -> bool:
    """Key files must be served as text/plain (optionally charset=utf-8)."""
    if not content_type:
        return False
    normalized = ";".join(part.strip() for part in content_type.lower().split(";"))
    return normalized in ("text/plain", "text/plain;charset=utf-8")


@dataclass
class KeyCheck:
    key: str
    key_url: str
    file_exists: bool | None = False  # None: no public dir given, not checked
    format_valid: bool = False
    https_accessible: bool = False
    content_type_valid: bool = False
    content_valid: bool = False
    status_code: int | None = None
    content_type: str | None = None
    actual_content: str | None = None
    error: str | None = None

    @property
    def all_passed(self) -> bool:
        return (self.file_exists is not False and self.format_valid and self.https_accessible
                and self.content_type_valid and self.content_valid)


def check_key_file(key: str, key_url: str, public_dir: str | Path | None = None,
                   timeout: int = 10) -> KeyCheck:
    """Verify the key locally (if {public_dir} given) and over HTTPS at {key_url}."""
    check = KeyCheck(key=key, key_url=key_url)
    check.format_valid = validate_api_key(key)
    if public_dir is not None:
        check.file_exists = (Path(public_dir) / f"{key}.txt").is_file()
    else:
        check.file_exists = None

    try:
        resp = requests.get(key_url, timeout=timeout)
    except requests.RequestException as e:
        logger.debug("Key file request to %s failed: %s", key_url, e)
        check.error = str(e)
        return check

    check.status_code = resp.status_code
    check.content_type = resp.headers.get("Content-Type")
    if resp.status_code != 200:
        check.error = f"HTTP {resp.status_code}"
        return check

    check.https_accessible = True
    check.content_type_valid = validate_content_type(check.content_type)
    check.actual_content = resp.text.strip()
    check.content_valid = check.actual_content == key
    return check
