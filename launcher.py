#!/usr/bin/env python3
"""
ChromeSec - Main Launcher
Entry point for the two ways of running the scanner:
1. ``scan``: launch one browser session and scan each URL in turn
2. ``serve``: start the FastAPI backend
"""

import argparse
import asyncio
import signal
import sys
from dataclasses import replace
from pathlib import Path

# Rich for pretty terminal output
from rich.console import Console
from rich.table import Table

from chromesec import __version__
from chromesec.browser import BrowserSession
from chromesec.config import get_config, parse_proxy_spec
from chromesec.errors import LaunchError, UnsupportedPlatformError
from chromesec.scanner import ScanOrchestrator, ScanResult

console = Console()


BANNER = rf"""
   ___ _                               ___
  / __| |_  _ _ ___ _ __  ___ ___ ___ / __| ___ __
 | (__| ' \| '_/ _ \ '  \/ -_)___|___|\__ \/ -_) _|
  \___|_||_|_| \___/_|_|_\___|        |___/\___\__|

            ChromeSec v{__version__}
            Browser-driven XSS / SQLi / CSRF probing
"""


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chromesec", description="Browser-driven web vulnerability scanner")
    p.add_argument("--config", type=Path, default=None, help="JSON config file (default: ./chromesec.json)")
    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan one or more URLs")
    scan.add_argument("urls", nargs="+", help="Target URL(s)")
    scan.add_argument("--proxy", action="append", default=[],
                      help="Proxy as address[,username,password]; repeat to rotate")
    scan.add_argument("--headed", action="store_true", help="Show the browser window")
    scan.add_argument("--safe-flags", action="store_true",
                      help="Keep the Chromium sandbox and web security enabled")
    scan.add_argument("--executable", default=None, help="Chrome/Chromium executable path")
    scan.add_argument("--reports-dir", type=Path, default=None, help="Output directory for reports")
    scan.add_argument("--probe-timeout", type=float, default=None, help="Per-probe timeout in seconds")

    serve = sub.add_parser("serve", help="Run the REST API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return p


def print_result(result: ScanResult):
    report = result.report
    table = Table(title=f"{report.target_url}  ({report.timestamp})")
    table.add_column("Test Type", style="cyan")
    table.add_column("Payload", overflow="fold")
    table.add_column("Vulnerable")
    for f in report.findings:
        verdict = "[red]yes[/red]" if f.is_vulnerable else "[green]no[/green]"
        table.add_row(f.test_type.value, f.payload, verdict)
    console.print(table)
    if result.ok:
        console.print(f"[green]✓ {report.vulnerable_count} vulnerable of {len(report.findings)} checks[/green]")
    else:
        console.print(f"[yellow]! Scan incomplete: {result.error}[/yellow]")


async def scan_main(args) -> int:
    """Launch one session and scan every URL sequentially."""
    try:
        config = get_config(args.config)
        if args.proxy:
            config.proxies = [parse_proxy_spec(s) for s in args.proxy]
    except ValueError as e:
        console.print(f"[red]✗ Invalid configuration: {e}[/red]")
        return 2

    if args.reports_dir:
        config.reports_dir = args.reports_dir
    if args.probe_timeout:
        config.probe_timeout_s = args.probe_timeout

    options = config.launch
    if args.headed:
        options = replace(options, headless=False)
    if args.safe_flags:
        options = replace(options, no_sandbox=False, disable_web_security=False)
    if args.executable:
        options = replace(options, executable_path=args.executable)

    failed = 0
    async with BrowserSession(config=config) as session:
        try:
            await session.launch(options)
        except (UnsupportedPlatformError, LaunchError) as e:
            console.print(f"[red]✗ {e}[/red]")
            return 2

        orchestrator = ScanOrchestrator(session)
        for url in args.urls:
            result = await orchestrator.run_scan(url)
            print_result(result)
            if not result.ok:
                failed += 1
    return 1 if failed else 0


def serve_main(args) -> int:
    """Run the FastAPI backend under uvicorn."""
    import uvicorn

    config = get_config(args.config)
    host = args.host or config.api.host
    port = args.port or config.api.port
    console.print(f"[cyan]🚀 API on http://{host}:{port}[/cyan]")
    uvicorn.run("chromesec.api:app", host=host, port=port, log_level="warning", reload=False)
    return 0


def run():
    """Entry point with signal handling."""
    args = build_parser().parse_args()
    console.print(BANNER, style="bold cyan")

    if args.command == "serve":
        sys.exit(serve_main(args))

    loop = asyncio.new_event_loop()
    task = loop.create_task(scan_main(args))

    def signal_handler(sig, frame):
        console.print("\n[yellow]Received shutdown signal...[/yellow]")
        task.cancel()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    exit_code = 130
    try:
        exit_code = loop.run_until_complete(task)
    except asyncio.CancelledError:
        console.print("[yellow]Scan cancelled.[/yellow]")
    finally:
        loop.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
