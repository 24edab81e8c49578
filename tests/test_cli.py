"""
tests/test_cli.py

End-to-end command tests through click's CliRunner. Every run gets its own
config.yaml, sitemap and log under tmp_path; HTTP calls are patched.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner
from rich.logging import RichHandler

import cli as cli_module
from cli import cli

KEY = "a1b2c3d4e5f6789012345678abcdef01"

SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>http://example.com/</loc></url>
  <url><loc>http://example.com/about</loc></url>
  <url><loc>https://example.com/services/</loc></url>
  <url><loc>https://example.com/thank-you/</loc></url>
  <url><loc>https://elsewhere.com/</loc></url>
</urlset>
"""


def _response(status: int, text: str = "", headers: dict | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.headers = headers or {}
    return resp


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    # Keep rich from wrapping long tmp paths mid-message.
    monkeypatch.setattr(cli_module.console, "width", 200)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SITE_DOMAIN", "CLOUDFRONT_DOMAIN", "INDEXNOW_API_KEY", "INDEXNOW_CONFIG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def site(tmp_path):
    """Writes a config.yaml wired to tmp paths. Returns a helper namespace."""
    sitemap = tmp_path / "out" / "sitemap.xml"
    sitemap.parent.mkdir()
    sitemap.write_text(SITEMAP, encoding="utf-8")
    public = tmp_path / "public"
    public.mkdir()
    log_path = tmp_path / "logs" / "indexnow-submissions.json"

    def write_config(key: str = KEY):
        config = tmp_path / "config.yaml"
        config.write_text(
            "site:\n"
            "  domain: example.com\n"
            "  key_host: cdn.example.net\n"
            "indexnow:\n"
            f"  key: '{key}'\n"
            "collector:\n"
            f"  sitemap: {sitemap}\n"
            f"  public_dir: {public}\n"
            "log:\n"
            f"  path: {log_path}\n"
        )
        return str(config)

    class Site:
        pass

    s = Site()
    s.tmp = tmp_path
    s.config = write_config()
    s.write_config = write_config
    s.log_path = log_path
    s.public = public
    return s


def _run(site, *args):
    return CliRunner().invoke(cli, ["--config", site.config, *args])


def _log_lines(site) -> list[dict]:
    return [json.loads(line) for line in site.log_path.read_text().splitlines()]


class TestCollect:
    def test_lists_normalized_urls(self, site) -> None:
        result = _run(site, "collect")
        assert result.exit_code == 0, result.output
        assert "https://example.com/about/" in result.output
        assert "thank-you" not in result.output
        assert "elsewhere.com" not in result.output
        assert "3 URLs" in result.output

    def test_exclude_option_overrides_config(self, site) -> None:
        result = _run(site, "collect", "--exclude", "/services/")
        assert "https://example.com/thank-you/" in result.output
        assert "https://example.com/services/" not in result.output

    def test_missing_sitemap(self, site) -> None:
        result = _run(site, "collect", "--sitemap", str(site.tmp / "nope.xml"))
        assert result.exit_code == 1
        assert "ERROR" in result.output

    def test_missing_config_file(self, tmp_path) -> None:
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "collect"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestLogging:
    def test_rich_handler_on_package_logger(self, site) -> None:
        _run(site, "collect")
        pkg_handlers = logging.getLogger("indexnow").handlers
        assert sum(isinstance(h, RichHandler) for h in pkg_handlers) == 1
        assert not any(isinstance(h, RichHandler) for h in logging.getLogger().handlers)


class TestSubmit:
    def test_needs_file_or_all(self, site) -> None:
        result = _run(site, "submit")
        assert result.exit_code == 1
        assert "--file or --all" in result.output

    def test_rejects_file_and_all(self, site) -> None:
        result = _run(site, "submit", "--all", "--file", "urls.txt")
        assert result.exit_code == 1

    def test_dry_run_makes_no_request(self, site) -> None:
        site.config = site.write_config(key="")
        with patch("indexnow.client.requests.post") as post:
            result = _run(site, "submit", "--all", "--dry-run")
        assert result.exit_code == 0, result.output
        assert "DRY RUN" in result.output
        post.assert_not_called()
        assert not site.log_path.exists()

    def test_live_submission_without_key(self, site) -> None:
        site.config = site.write_config(key="")
        result = _run(site, "submit", "--all")
        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_invalid_key_fails_fast(self, site) -> None:
        site.config = site.write_config(key="not-a-key")
        with patch("indexnow.client.requests.post") as post:
            result = _run(site, "submit", "--all")
        assert result.exit_code == 1
        assert "Invalid API key format" in result.output
        post.assert_not_called()

    def test_success_is_logged(self, site) -> None:
        with patch("indexnow.client.requests.post", return_value=_response(200)) as post:
            result = _run(site, "submit", "--all", "--deployment-id", "deploy-1")
        assert result.exit_code == 0, result.output

        body = json.loads(post.call_args.kwargs["data"])
        assert body["host"] == "example.com"
        assert body["keyLocation"] == f"https://cdn.example.net/{KEY}.txt"
        assert body["urlList"] == [
            "https://example.com/",
            "https://example.com/about/",
            "https://example.com/services/",
        ]

        [entry] = _log_lines(site)
        assert entry["success"] is True
        assert entry["urlCount"] == 3
        assert entry["deploymentId"] == "deploy-1"

    def test_failure_exits_nonzero_and_is_logged(self, site) -> None:
        with patch("indexnow.client.requests.post", return_value=_response(429)):
            result = _run(site, "submit", "--all")
        assert result.exit_code == 1
        [entry] = _log_lines(site)
        assert entry["success"] is False
        assert entry["statusCode"] == 429
        assert entry["error"] == "Rate limit exceeded"

    def test_batches(self, site) -> None:
        with patch("indexnow.client.requests.post", return_value=_response(202)) as post:
            result = _run(site, "submit", "--all", "--batch-size", "2")
        assert result.exit_code == 0, result.output
        assert post.call_count == 2
        assert [e["urlCount"] for e in _log_lines(site)] == [2, 1]

    def test_one_failed_batch_fails_the_run(self, site) -> None:
        responses = [_response(200), _response(500)]
        with patch("indexnow.client.requests.post", side_effect=responses):
            result = _run(site, "submit", "--all", "--batch-size", "2")
        assert result.exit_code == 1
        assert [e["success"] for e in _log_lines(site)] == [True, False]

    def test_from_file(self, site) -> None:
        url_file = site.tmp / "urls.txt"
        url_file.write_text("# changed pages\nhttps://example.com/blog/new-post/\n")
        with patch("indexnow.client.requests.post", return_value=_response(200)) as post:
            result = _run(site, "submit", "--file", str(url_file))
        assert result.exit_code == 0, result.output
        assert json.loads(post.call_args.kwargs["data"])["urlList"] == ["https://example.com/blog/new-post/"]

    def test_empty_file(self, site) -> None:
        url_file = site.tmp / "urls.txt"
        url_file.write_text("# nothing yet\n")
        result = _run(site, "submit", "--file", str(url_file))
        assert result.exit_code == 1
        assert "No URLs to submit" in result.output

    def test_missing_file(self, site) -> None:
        result = _run(site, "submit", "--file", str(site.tmp / "missing.txt"))
        assert result.exit_code == 1
        assert "Failed to read file" in result.output

    def test_env_key_overrides_config(self, site, monkeypatch) -> None:
        site.config = site.write_config(key="")
        monkeypatch.setenv("INDEXNOW_API_KEY", "deadbeefdeadbeef")
        with patch("indexnow.client.requests.post", return_value=_response(200)) as post:
            result = _run(site, "submit", "--all")
        assert result.exit_code == 0, result.output
        assert json.loads(post.call_args.kwargs["data"])["key"] == "deadbeefdeadbeef"


class TestStats:
    def test_no_log_yet(self, site) -> None:
        result = _run(site, "stats")
        assert result.exit_code == 0
        assert "No submissions logged yet" in result.output

    def test_summarizes_recent_entries(self, site) -> None:
        site.log_path.parent.mkdir()
        lines = [
            {"success": i != 0, "urlCount": 10, "timestamp": f"2026-01-{i + 1:02d}T00:00:00.000Z", "statusCode": 200}
            for i in range(10)
        ]
        site.log_path.write_text("".join(json.dumps(line) + "\n" for line in lines))
        result = _run(site, "stats")
        assert result.exit_code == 0, result.output
        assert "90.0%" in result.output
        assert "2026-01-10T00:00:00.000Z" in result.output
        assert "WARNING" not in result.output

    def test_warns_below_threshold(self, site) -> None:
        site.log_path.parent.mkdir()
        lines = [{"success": i > 2, "urlCount": 1, "timestamp": "t"} for i in range(10)]
        site.log_path.write_text("".join(json.dumps(line) + "\n" for line in lines))
        result = _run(site, "stats")
        assert "70.0%" in result.output
        assert "WARNING" in result.output


class TestRotate:
    def test_small_log_not_rotated(self, site) -> None:
        site.log_path.parent.mkdir()
        site.log_path.write_text("{}\n")
        result = _run(site, "rotate")
        assert result.exit_code == 0
        assert site.log_path.exists()


class TestVerifyKey:
    def test_all_checks_pass(self, site) -> None:
        (site.public / f"{KEY}.txt").write_text(KEY)
        resp = _response(200, KEY, {"Content-Type": "text/plain; charset=utf-8"})
        with patch("indexnow.keyfile.requests.get", return_value=resp) as get:
            result = _run(site, "verify-key")
        assert result.exit_code == 0, result.output
        assert get.call_args.args[0] == f"https://cdn.example.net/{KEY}.txt"
        assert "5/5 passed" in result.output

    def test_auto_detects_key_from_public_dir(self, site) -> None:
        site.config = site.write_config(key="")
        (site.public / "deadbeefdeadbeef.txt").write_text("deadbeefdeadbeef\n")
        resp = _response(200, "deadbeefdeadbeef", {"Content-Type": "text/plain"})
        with patch("indexnow.keyfile.requests.get", return_value=resp) as get:
            result = _run(site, "verify-key")
        assert result.exit_code == 0, result.output
        assert get.call_args.args[0] == "https://cdn.example.net/deadbeefdeadbeef.txt"

    def test_no_key_anywhere(self, site) -> None:
        site.config = site.write_config(key="")
        result = _run(site, "verify-key")
        assert result.exit_code == 1
        assert "No valid key file" in result.output

    def test_unreachable_key_file(self, site) -> None:
        (site.public / f"{KEY}.txt").write_text(KEY)
        with patch("indexnow.keyfile.requests.get", return_value=_response(404)):
            result = _run(site, "verify-key")
        assert result.exit_code == 1

    def test_undecodable_candidate_in_public_dir(self, site) -> None:
        site.config = site.write_config(key="")
        (site.public / "deadbeef.txt").write_bytes(b"\xff\xfe\x00garbage")
        result = _run(site, "verify-key")
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "No valid key file" in result.output
