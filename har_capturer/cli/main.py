#!/usr/bin/env python3
"""Main CLI entry point for har-capturer using Typer.

Commands:
    capture   load URLs in Chromium and write the resulting HAR
    convert   convert a recorded CDP event log into a HAR
    version   show version information
"""

import asyncio
import logging
from enum import IntEnum
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..capture.context import BrowserFactory
from ..capture.replay import from_log, load_event_log
from ..capture.runner import CaptureRunner
from ..config import load_config
from ..errors import CaptureError, ConfigLoadError, IncompleteCapture
from .output import configure_logging, write_document

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """CLI exit codes for scripting and CI/CD integration."""
    SUCCESS = 0           # Every page captured
    PAGE_FAILURES = 1     # Some pages failed to capture
    CONFIG_ERROR = 3      # Configuration or setup error
    RUNTIME_ERROR = 4     # Runtime error during execution


app = typer.Typer(
    name="har-capturer",
    help="Capture HAR files from Chromium through the DevTools Protocol",
    add_completion=False,
)


@app.callback()
def main():
    """
    har-capturer - HAR 1.2 capture from Chrome DevTools Protocol events.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"har-capturer v{__version__}")


@app.command()
def capture(
    urls: Annotated[
        List[str],
        typer.Argument(help="URLs to load")
    ],

    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the HAR to this file instead of stdout")
    ] = None,

    content: Annotated[
        Optional[bool],
        typer.Option("--content", "-c", help="Include response bodies")
    ] = None,

    timeout: Annotated[
        Optional[int],
        typer.Option("--timeout", "-t", help="Per-page timeout in milliseconds")
    ] = None,

    retry: Annotated[
        Optional[int],
        typer.Option("--retry", "-r", help="Extra attempts for failed pages")
    ] = None,

    retry_delay: Annotated[
        Optional[int],
        typer.Option("--retry-delay", help="Delay between attempts in milliseconds")
    ] = None,

    parallel: Annotated[
        Optional[int],
        typer.Option("--parallel", "-p", help="Number of pages loaded concurrently")
    ] = None,

    agent: Annotated[
        Optional[str],
        typer.Option("--agent", "-a", help="User-Agent override")
    ] = None,

    block: Annotated[
        Optional[List[str]],
        typer.Option("--block", "-b", help="URL pattern to block (repeatable)")
    ] = None,

    width: Annotated[
        Optional[int],
        typer.Option("--width", help="Viewport width")
    ] = None,

    height: Annotated[
        Optional[int],
        typer.Option("--height", help="Viewport height")
    ] = None,

    cache: Annotated[
        Optional[bool],
        typer.Option("--cache/--no-cache", help="Allow the browser cache")
    ] = None,

    insecure: Annotated[
        bool,
        typer.Option("--insecure", help="Ignore TLS certificate errors")
    ] = False,

    headful: Annotated[
        bool,
        typer.Option("--headful", help="Run browser with GUI (for debugging)")
    ] = False,

    no_interaction: Annotated[
        bool,
        typer.Option("--no-interaction", help="Do not scroll the page after load")
    ] = False,

    config: Annotated[
        Optional[Path],
        typer.Option("--config", help="Path to capture configuration YAML")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
):
    """
    Load URLs in fresh Chromium contexts and write their HAR.

    Examples:

        # Single page to stdout
        har-capturer capture https://example.com

        # Several pages with bodies, two at a time
        har-capturer capture -c -p 2 -o out.har https://example.com https://example.org
    """
    configure_logging(verbose)

    try:
        capture_config = load_config(config)
        browser_config = capture_config.get_browser_config()
        session_config = capture_config.get_session_config()
        runner_config = capture_config.get_runner_config()
    except ConfigLoadError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    # Command line options take precedence over the configuration file
    if agent is not None:
        browser_config.user_agent = agent
    if block:
        browser_config.block_urls = list(block)
    if width is not None:
        browser_config.viewport['width'] = width
    if height is not None:
        browser_config.viewport['height'] = height
    if cache is not None:
        browser_config.disable_cache = not cache
    if insecure:
        browser_config.ignore_https_errors = True
    if headful:
        browser_config.headless = False

    if content is not None:
        session_config.content = content
    if timeout is not None:
        session_config.timeout_ms = timeout
    if no_interaction:
        session_config.simulate_interaction = False

    try:
        if parallel is not None:
            if parallel < 1:
                raise ValueError("--parallel must be at least 1")
            runner_config.parallel = parallel
        if retry is not None:
            if retry < 0:
                raise ValueError("--retry must not be negative")
            runner_config.retry = retry
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)
    if retry_delay is not None:
        runner_config.retry_delay_ms = retry_delay

    runner = CaptureRunner(
        BrowserFactory(browser_config),
        config=runner_config,
        session_config=session_config,
        on_load=lambda url, index, urls: typer.echo(f"- {url} ...", err=True),
        on_done=lambda url, index, urls: typer.echo(f"✓ {url}", err=True),
        on_fail=lambda url, error, index, urls: typer.echo(f"✗ {url}: {error}", err=True),
    )

    async def run_capture():
        async with runner.session():
            return await runner.run(urls)

    try:
        document = asyncio.run(run_capture())
    except CaptureError as e:
        typer.echo(f"❌ Capture failed: {e}", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)

    write_document(document, output)

    stats = runner.get_stats()
    if stats['pages_failed']:
        typer.echo(f"⚠️  {stats['pages_failed']} of {len(urls)} pages failed", err=True)
        raise typer.Exit(code=ExitCode.PAGE_FAILURES.value)


@app.command()
def convert(
    log_file: Annotated[
        Path,
        typer.Argument(help="JSON file holding the recorded CDP events")
    ],

    url: Annotated[
        str,
        typer.Option("--url", help="URL of the recorded page")
    ],

    content: Annotated[
        bool,
        typer.Option("--content", "-c", help="Include response bodies")
    ] = False,

    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the HAR to this file instead of stdout")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
):
    """
    Convert a recorded CDP event log into a HAR.
    """
    configure_logging(verbose)

    try:
        events = load_event_log(log_file)
    except CaptureError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)

    try:
        document = from_log(url, events, content=content)
    except IncompleteCapture as e:
        typer.echo(f"✗ {e}", err=True)
        if e.pending:
            typer.echo(f"  pending requests: {', '.join(e.pending)}", err=True)
        raise typer.Exit(code=ExitCode.PAGE_FAILURES.value)

    write_document(document, output)


if __name__ == "__main__":
    app()
