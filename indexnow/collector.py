"""Sitemap URL collector — turn out/sitemap.xml into a clean IndexNow URL list."""

import logging
import re
from pathlib import Path
from urllib.parse import quote, urlsplit
from xml.sax.saxutils import unescape

logger = logging.getLogger(__name__)

DEFAULT_SITEMAP_PATH = "out/sitemap.xml"
DEFAULT_EXCLUDE_PATHS = ["/thank-you/"]

_LOC_RE = re.compile(r"<loc>(.*?)</loc>", re.S)

# Characters left as-is when re-encoding each URL component. Existing %XX
# escapes are kept, everything else outside these sets is percent-encoded.
_PATH_SAFE = "/%:@!$&'()*+,;=[]|^\\"
_QUERY_SAFE = _PATH_SAFE + "?{}`"
_FRAGMENT_SAFE = _QUERY_SAFE + "#"


def parse_sitemap_xml(xml_content: str) -> list[str]:
    """Extract <loc> values in document order. Duplicates and junk are kept."""
    return [unescape(m.group(1).strip()) for m in _LOC_RE.finditer(xml_content)]


def _ascii_host(host: str) -> str | None:
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError:
        return None


def validate_url(url: str, domain: str) -> str | None:
    """Normalize a sitemap URL for submission, or None if it doesn't belong to {domain}.

    The result is always https, the path always ends with '/', and query
    string / fragment are kept. Non-ASCII hosts are punycoded and non-ASCII
    path characters percent-encoded, as a browser would send them:

        validate_url("http://example.com/page?id=1", "example.com")
        -> "https://example.com/page/?id=1"
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return None

    if not hostname:
        return None
    hostname = _ascii_host(hostname)
    if not hostname or hostname != _ascii_host(domain.lower()):
        return None

    path = quote(parts.path or "/", safe=_PATH_SAFE)
    if not path.endswith("/"):
        path += "/"

    normalized = f"https://{hostname}{path}"
    if parts.query:
        normalized += f"?{quote(parts.query, safe=_QUERY_SAFE)}"
    if parts.fragment:
        normalized += f"#{quote(parts.fragment, safe=_FRAGMENT_SAFE)}"
    return normalized


def should_index(url: str, exclude_paths: list[str]) -> bool:
    """False if the URL path contains any of {exclude_paths} (substring match)."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return not any(excluded in path for excluded in exclude_paths)


def collect_urls(
    domain: str,
    exclude_paths: list[str] | None = None,
    sitemap_path: str | Path = DEFAULT_SITEMAP_PATH,
) -> list[str]:
    """Collect every indexable URL for {domain} from a built sitemap.

    Returns unique https URLs with trailing slashes, sorted. Raises ValueError
    without a domain and OSError if the sitemap can't be read.
    """
    if not domain:
        raise ValueError("Domain is required")
    if exclude_paths is None:
        exclude_paths = DEFAULT_EXCLUDE_PATHS

    content = Path(sitemap_path).read_text(encoding="utf-8")
    raw = parse_sitemap_xml(content)

    seen = set()
    rejected = excluded = 0
    for url in raw:
        normalized = validate_url(url, domain)
        if not normalized:
            rejected += 1
            continue
        if not should_index(normalized, exclude_paths):
            excluded += 1
            continue
        seen.add(normalized)

    logger.info(
        "Collected %d URLs from %s (%d <loc> entries, %d rejected, %d excluded)",
        len(seen), sitemap_path, len(raw), rejected, excluded,
    )
    return sorted(seen)


def read_urls_from_file(path: str | Path) -> list[str]:
    """Read a newline-separated URL list. Blank lines and '#' comments are skipped."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise OSError(f"Failed to read file {path}: {e}") from e
    urls = []
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            urls.append(line)
    return urls
