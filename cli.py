#!/usr/bin/env python3
"""IndexNow CLI — push freshly deployed site URLs to search engines."""

import logging
import sys
import time
import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.panel import Panel
from rich import box

from indexnow.config import ConfigError, load_config as _load_config

console = Console()


def _trunc(text: str, width: int = 70) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= width:
        return text
    return text[:width - 1] + "…"


def _fmt_duration(ms: int) -> str:
    """Format duration: <1s as '420ms', >=1s as '1.5s'."""
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms / 1000:.1f}s"


def _setup_logging(verbose: bool):
    pkg_logger = logging.getLogger("indexnow")
    pkg_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(h, RichHandler) for h in pkg_logger.handlers):
        pkg_logger.addHandler(RichHandler(console=console, show_path=False, markup=False))


def load_config(ctx: click.Context) -> dict:
    try:
        return _load_config(ctx.obj.get("config_path"), required=ctx.obj.get("config_required", False))
    except ConfigError as e:
        console.print(f"[red]ERROR:[/] {e}")
        sys.exit(1)


def _submission_log(cfg: dict):
    from indexnow.submission_log import SubmissionLog
    log = cfg["log"]
    return SubmissionLog(
        path=log["path"],
        max_bytes=log["max_bytes"],
        success_rate_threshold=log["success_rate_threshold"],
        window=log["window"],
    )


def _require_domain(cfg: dict, domain: str | None = None) -> str:
    domain = domain or cfg["site"]["domain"]
    if not domain:
        console.print("[red]ERROR:[/] Site domain not configured. Set 'site.domain' in config.yaml or SITE_DOMAIN.")
        sys.exit(1)
    return domain


# ─── CLI ─────────────────────────────────────────────────────────────────


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="Path to config.yaml (default: ./config.yaml or $INDEXNOW_CONFIG)")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """IndexNow CLI — push freshly deployed site URLs to search engines."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["config_required"] = config_path is not None


@cli.command()
@click.option("--domain", help="Expected hostname (default: site.domain)")
@click.option("--sitemap", "sitemap_path", help="Sitemap file (default: collector.sitemap)")
@click.option("--exclude", "exclude_paths", multiple=True, help="Path substring to skip (repeatable)")
@click.pass_context
def collect(ctx, domain, sitemap_path, exclude_paths):
    """List the URLs that would be submitted from the built sitemap."""
    cfg = load_config(ctx)
    domain = _require_domain(cfg, domain)

    from indexnow.collector import collect_urls
    try:
        urls = collect_urls(
            domain,
            exclude_paths=list(exclude_paths) or cfg["collector"]["exclude_paths"],
            sitemap_path=sitemap_path or cfg["collector"]["sitemap"],
        )
    except (OSError, ValueError) as e:
        console.print(f"[red]ERROR:[/] {e}")
        sys.exit(1)

    for url in urls:
        console.print(url, highlight=False)
    console.print(f"\n[bold]{len(urls)}[/] URLs for {domain}")


@cli.command()
@click.option("--file", "-f", "url_file", type=click.Path(dir_okay=False),
              help="Submit URLs from a newline-separated text file")
@click.option("--all", "-a", "submit_all", is_flag=True, help="Submit all indexable URLs from the sitemap")
@click.option("--dry-run", "-d", is_flag=True, help="Validate URLs without submitting")
@click.option("--deployment-id", help="Tag log entries with a deployment identifier")
@click.option("--batch-size", type=click.IntRange(1, 10000), default=10000, show_default=True,
              help="URLs per IndexNow request")
@click.pass_context
def submit(ctx, url_file, submit_all, dry_run, deployment_id, batch_size):
    """Submit URLs to IndexNow (Bing + Yandex + Naver + Seznam).

    Exit code is 0 only if every batch was accepted.
    """
    if not url_file and not submit_all:
        console.print("[red]ERROR:[/] Either --file or --all must be specified")
        sys.exit(1)
    if url_file and submit_all:
        console.print("[red]ERROR:[/] Cannot specify both --file and --all")
        sys.exit(1)

    cfg = load_config(ctx)
    domain = _require_domain(cfg)
    key = cfg["indexnow"]["key"]
    if not dry_run and not key:
        console.print("[red]IndexNow not configured.[/] Set 'indexnow.key' in config.yaml or INDEXNOW_API_KEY")
        sys.exit(1)

    from indexnow.collector import collect_urls, read_urls_from_file
    from indexnow.client import batch_urls, key_location_url, submit_urls

    console.print(Panel(
        f"Domain: [bold]{domain}[/]\n"
        f"Key host: {cfg['site']['key_host']}\n"
        f"Mode: {'[yellow]DRY RUN[/] (validation only)' if dry_run else '[green]LIVE SUBMISSION[/]'}",
        title="IndexNow", style="blue",
    ))

    try:
        if url_file:
            urls = read_urls_from_file(url_file)
            console.print(f"  [green]+[/] Read {len(urls)} URLs from {url_file}")
        else:
            urls = collect_urls(
                domain,
                exclude_paths=cfg["collector"]["exclude_paths"],
                sitemap_path=cfg["collector"]["sitemap"],
            )
            console.print(f"  [green]+[/] Collected {len(urls)} URLs from {cfg['collector']['sitemap']}")
    except (OSError, ValueError) as e:
        console.print(f"[red]ERROR:[/] {e}")
        sys.exit(1)

    if not urls:
        console.print("[red]ERROR:[/] No URLs to submit")
        sys.exit(1)

    for i, url in enumerate(urls[:10], 1):
        console.print(f"  {i:>3}. {_trunc(url)}", highlight=False)
    if len(urls) > 10:
        console.print(f"  [dim]... and {len(urls) - 10} more[/]")

    batches = batch_urls(urls, batch_size)
    if dry_run:
        console.print(f"\n[green]DRY RUN:[/] {len(urls)} URLs in {len(batches)} batch(es) validated, nothing submitted")
        return

    try:
        key_location = key_location_url(key, cfg["site"]["key_host"])
        log = _submission_log(cfg)
        results = []
        for n, batch in enumerate(batches, 1):
            with console.status(f"Submitting batch {n}/{len(batches)} ({len(batch)} URLs)..."):
                result = submit_urls(
                    host=domain,
                    key=key,
                    key_location=key_location,
                    url_list=batch,
                    timeout=cfg["indexnow"]["timeout_ms"],
                    endpoint=cfg["indexnow"]["endpoint"],
                )
            log.log_submission(result, deployment_id=deployment_id)
            results.append(result)
    except (TypeError, ValueError) as e:
        console.print(f"[red]ERROR:[/] {e}")
        sys.exit(1)

    table = Table(title="Submission Results", box=box.ROUNDED)
    table.add_column("Batch", justify="right")
    table.add_column("Status", justify="center", width=6)
    table.add_column("HTTP", justify="right")
    table.add_column("URLs", justify="right", style="cyan")
    table.add_column("Duration", justify="right")
    table.add_column("Error")
    for n, r in enumerate(results, 1):
        icon = "[green]+[/]" if r.success else "[red]x[/]"
        table.add_row(str(n), icon, str(r.status_code or "N/A"), str(r.url_count),
                      _fmt_duration(r.duration), r.error or "")
    console.print(table)

    failed = sum(1 for r in results if not r.success)
    submitted = sum(r.url_count for r in results if r.success)
    console.print(Panel(
        f"[bold]{submitted}[/] URLs accepted, {failed} failed batch(es)",
        style="green" if not failed else "red",
    ))
    sys.exit(1 if failed else 0)


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), default=10, show_default=True,
              help="Number of recent submissions to analyze")
@click.pass_context
def stats(ctx, limit):
    """Success rate and volume of recent submissions."""
    cfg = load_config(ctx)
    log = _submission_log(cfg)
    s = log.get_statistics(limit)

    if not s.total_submissions:
        console.print(f"[dim]No submissions logged yet ({log.path})[/]")
        return

    table = Table(title=f"IndexNow — last {s.total_submissions} submissions", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    rate_color = "green" if s.success_rate >= log.success_rate_threshold else "red"
    table.add_row("Submissions", str(s.total_submissions))
    table.add_row("Successful", f"[green]{s.successful_submissions}[/]")
    table.add_row("Failed", f"[red]{s.failed_submissions}[/]" if s.failed_submissions else "0")
    table.add_row("Success rate", f"[{rate_color}]{s.success_rate * 100:.1f}%[/]")
    table.add_row("Avg URLs / submission", f"{s.average_url_count:.0f}")
    table.add_row("Last success", s.last_successful_submission or "[dim]never[/]")
    console.print(table)

    if s.total_submissions >= log.window and s.success_rate < log.success_rate_threshold:
        console.print(f"[yellow]WARNING:[/] success rate below {log.success_rate_threshold * 100:.0f}%")


@cli.command()
@click.pass_context
def rotate(ctx):
    """Archive the submission log if it is over the size limit."""
    cfg = load_config(ctx)
    log = _submission_log(cfg)
    rotated = log.rotate()
    if rotated:
        console.print(f"  [green]+[/] Rotated to {rotated}")
    else:
        console.print(f"  [dim]- {log.path} below {log.max_bytes / 1024 / 1024:.0f}MB, not rotated[/]")


@cli.command("verify-key")
@click.pass_context
def verify_key(ctx):
    """Check the IndexNow key file exists locally and is served over HTTPS."""
    cfg = load_config(ctx)
    from indexnow.client import key_location_url
    from indexnow.keyfile import check_key_file, find_key_file

    public_dir = cfg["collector"]["public_dir"]
    key = cfg["indexnow"]["key"]
    if key:
        console.print("Using API key from configuration")
    else:
        found = find_key_file(public_dir)
        if not found:
            console.print(f"[red]x[/] No valid key file found in {public_dir}/")
            sys.exit(1)
        key, path = found
        console.print(f"  [green]+[/] Found key file {path}")

    key_host = cfg["site"]["key_host"]
    if not key_host:
        console.print("[red]ERROR:[/] Site domain not configured. Set 'site.domain' or 'site.key_host'.")
        sys.exit(1)

    key_url = key_location_url(key, key_host)
    start = time.monotonic()
    check = check_key_file(key, key_url, public_dir=public_dir or None)
    elapsed = int((time.monotonic() - start) * 1000)

    steps = [
        ("Key file in public dir", check.file_exists, f"{public_dir}/{key}.txt"),
        ("Key format", check.format_valid, f"{len(key)} chars, hex" if check.format_valid else "must be 8-128 hex chars"),
        ("HTTPS accessible", check.https_accessible,
         f"HTTP {check.status_code} in {_fmt_duration(elapsed)}" if check.https_accessible else (check.error or "Unknown error")),
        ("Content-Type", check.content_type_valid, check.content_type or "Not set"),
        ("Content matches key", check.content_valid,
         "Verified" if check.content_valid else _trunc(check.actual_content or "-", 40)),
    ]
    table = Table(title=_trunc(key_url), box=box.ROUNDED)
    table.add_column("Check", min_width=22)
    table.add_column("Status", justify="center", width=6)
    table.add_column("Details")
    for name, ok, detail in steps:
        icon = "[dim]-[/]" if ok is None else "[green]+[/]" if ok else "[red]x[/]"
        table.add_row(name, icon, "skipped" if ok is None else detail)
    console.print(table)

    passed = sum(1 for _, ok, _ in steps if ok)
    ran = sum(1 for _, ok, _ in steps if ok is not None)
    console.print(Panel(
        "Key file is published and IndexNow can verify it." if check.all_passed
        else "Fix the failing checks before submitting.",
        title=f"{passed}/{ran} passed",
        style="green" if check.all_passed else "yellow",
    ))
    sys.exit(0 if check.all_passed else 1)


def main():
    cli()


if __name__ == "__main__":
    main()
