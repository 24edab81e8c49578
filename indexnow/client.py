"""IndexNow — instant URL submission to Bing, Yandex, Naver, Seznam."""

import json
import logging
import re
import time
from dataclasses import dataclass

import requests

from indexnow.storage import timestamp

logger = logging.getLogger(__name__)

ENDPOINT = "https://api.indexnow.org/indexnow"
MAX_URLS_PER_REQUEST = 10000
DEFAULT_TIMEOUT_MS = 30000

_KEY_RE = re.compile(r"[0-9a-fA-F]{8,128}")

_STATUS_MESSAGES = {
    400: "Bad request - Invalid request format",
    403: "Forbidden - Invalid API key",
    422: "Unprocessable entity - Invalid URLs",
    429: "Rate limit exceeded",
}


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    status_code: int
    url_count: int
    timestamp: str
    duration: int
    error: str | None = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "statusCode": self.status_code,
            "urlCount": self.url_count,
            "timestamp": self.timestamp,
            "duration": self.duration,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def validate_api_key(key) -> bool:
    """IndexNow keys are 8-128 hex characters (either case)."""
    return isinstance(key, str) and _KEY_RE.fullmatch(key) is not None


def key_location_url(key: str, base_host: str) -> str:
    """Conventional key file location: https://{host}/{key}.txt"""
    return f"https://{base_host}/{key}.txt"


def batch_urls(urls: list[str], batch_size: int = MAX_URLS_PER_REQUEST) -> list[list[str]]:
    """Split {urls} into ordered chunks of at most {batch_size}."""
    if not isinstance(urls, (list, tuple)):
        raise TypeError("URLs must be a list")
    if batch_size <= 0:
        raise ValueError("Batch size must be positive")
    return [list(urls[i:i + batch_size]) for i in range(0, len(urls), batch_size)]


def error_message(status_code: int, body: str = "") -> str:
    """Human-readable error for a non-2xx IndexNow response."""
    if status_code >= 500:
        message = "Server error"
    else:
        message = _STATUS_MESSAGES.get(status_code, f"HTTP {status_code}")

    if body:
        try:
            parsed = json.loads(body)
        except ValueError:
            message += f" - {body[:200]}"
        else:
            if isinstance(parsed, dict) and parsed.get("message"):
                message += f" - {parsed['message']}"
    return message


def submit_urls(
    host: str,
    key: str,
    key_location: str,
    url_list: list[str],
    timeout: int = DEFAULT_TIMEOUT_MS,
    endpoint: str = ENDPOINT,
    session: requests.Session | None = None,
) -> SubmissionResult:
    """Submit URLs via IndexNow. Max 10,000 per request; extras are dropped.

    Bad arguments raise ValueError/TypeError before any request is made. After
    that nothing is raised: HTTP errors, connection failures and timeouts all
    come back as a failed SubmissionResult (status_code 0 when no response).
    {timeout} is in milliseconds.
    """
    if not host:
        raise ValueError("Host is required")
    if not key:
        raise ValueError("API key is required")
    if not key_location:
        raise ValueError("Key location URL is required")
    if not isinstance(url_list, (list, tuple)):
        raise TypeError("URL list must be a list")
    if not validate_api_key(key):
        raise ValueError("Invalid API key format (must be hexadecimal, 8-128 characters)")

    urls = list(url_list[:MAX_URLS_PER_REQUEST])
    if len(url_list) > MAX_URLS_PER_REQUEST:
        logger.warning(
            "URL list has %d entries, over the %d limit. Submitting the first %d.",
            len(url_list), MAX_URLS_PER_REQUEST, MAX_URLS_PER_REQUEST,
        )

    payload = json.dumps({
        "host": host,
        "key": key,
        "keyLocation": key_location,
        "urlList": urls,
    }).encode("utf-8")
    headers = {
        "Content-Type": "application/json; charset=utf-8",
        "Content-Length": str(len(payload)),
    }

    post = session.post if session is not None else requests.post
    start = time.monotonic()

    def _result(success: bool, status_code: int, error: str | None = None) -> SubmissionResult:
        return SubmissionResult(
            success=success,
            status_code=status_code,
            url_count=len(urls),
            timestamp=timestamp(),
            duration=int((time.monotonic() - start) * 1000),
            error=error,
        )

    logger.debug("POST %s (%d URLs, host=%s)", endpoint, len(urls), host)
    try:
        resp = post(endpoint, data=payload, headers=headers, timeout=timeout / 1000)
    except requests.Timeout:
        return _result(False, 0, f"Request timeout after {timeout}ms")
    except requests.RequestException as e:
        return _result(False, 0, f"Network error: {e}")

    if resp.status_code in (200, 202):
        return _result(True, resp.status_code)
    return _result(False, resp.status_code, error_message(resp.status_code, resp.text))
