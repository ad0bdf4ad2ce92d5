"""Command-line interface (CLI) entrypoint.

Objective:
    Provide a human-friendly CLI wrapper around
    :class:`src.gmail_labeler.orchestrator.RunOrchestrator`.

Responsibilities:
    - Parse arguments (scope, access token, verbosity).
    - Configure logging (including suppressing noisy HTTP request logs).
    - Run the orchestrator, printing progress after every batch.
    - Turn Ctrl+C into a cooperative stop at the next batch boundary.
    - Print a readable summary of results.

High-level call tree:
    - :func:`main`
        - :func:`setup_logging`
            - installs :class:`_HttpxRequestInfoToDebugFilter`
        - :meth:`RunOrchestrator.run_all`
            - :func:`print_progress` (per batch)
        - :func:`print_results`

Operational notes:
    - This module supports being run both as a package module
      (``python -m src.gmail_labeler.cli``) and as a script
      (``python src/gmail_labeler/cli.py``). The import fallback handles
      the script case.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

try:
    from .config import EmailCategory, get_settings
    from .models import RunProgress, RunState
    from .orchestrator import CancellationToken, RunOrchestrator
    from .sanitizer import extract_sender_address
except ImportError:  # pragma: no cover
    src_root = Path(__file__).resolve().parents[1]
    if str(src_root) not in sys.path:
        sys.path.insert(0, str(src_root))

    from gmail_labeler.config import EmailCategory, get_settings
    from gmail_labeler.models import RunProgress, RunState
    from gmail_labeler.orchestrator import CancellationToken, RunOrchestrator
    from gmail_labeler.sanitizer import extract_sender_address


class _HttpxRequestInfoToDebugFilter(logging.Filter):
    """Filter to suppress noisy httpx "HTTP Request:" INFO logs.

    The Groq SDK logs each HTTP request at INFO level through httpx. This
    filter hides those messages unless the root logger is in DEBUG mode.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if record.name.startswith("httpx") and msg.startswith("HTTP Request:"):
            # Only show request logs when running in DEBUG/verbose mode.
            return logging.getLogger().isEnabledFor(logging.DEBUG)
        return True


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the application.

    This sets the root logger level and installs the
    :class:`_HttpxRequestInfoToDebugFilter` on all root handlers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    root_logger = logging.getLogger()
    downgrade_filter = _HttpxRequestInfoToDebugFilter()
    for handler in root_logger.handlers:
        handler.addFilter(downgrade_filter)


def print_progress(progress: RunProgress) -> None:
    """Print a one-line status after a batch."""
    stats = progress.statistics
    print(
        f"  Batch {stats.batches}: {stats.processed} labeled, "
        f"{stats.errors} errors, {stats.total} fetched"
    )


def print_results(progress: RunProgress, verbose: bool = False) -> None:
    """
    Print the outcome of a run to the console.

    Output format:
        - Group results by category, with the category's short description.
        - Display sender address and subject for each message when verbose.
        - Print the run state, counters and any error.

    Args:
        progress: Terminal run progress.
        verbose: If True, list every labeled message.
    """
    stats = progress.statistics

    print(f"\n{'='*60}")
    print(f"RUN {progress.state.value.upper()}: {stats.batches} batches")
    print(f"{'='*60}\n")

    if not progress.results:
        print("No emails labeled.")
    else:
        by_category: dict[EmailCategory, list] = {}
        for item in progress.results:
            by_category.setdefault(item.category, []).append(item)

        for category in EmailCategory:
            items = by_category.get(category)
            if not items:
                continue

            print(f"\n{category.label_name} ({len(items)}) - {category.description}")
            print("-" * 40)

            if verbose:
                for item in items:
                    subject = item.message.subject
                    if len(subject) > 50:
                        subject = subject[:50] + "..."
                    sender = extract_sender_address(item.message.sender)
                    print(f"  {sender} {subject}")

    if progress.error:
        print(f"\nError: {progress.error}")

    print(f"\n{'='*60}")
    print(
        f"SUMMARY: {stats.processed} labeled, {stats.errors} errors, "
        f"{stats.skipped} skipped, {stats.total} fetched"
    )
    print(f"{'='*60}\n")


def main(args: Optional[list[str]] = None) -> int:
    """
    Main CLI entry point.

    This function is structured to be testable: pass an explicit ``args`` list
    instead of relying on ``sys.argv``.

    Args:
        args: Command line arguments (uses sys.argv if None).

    Returns:
        int: Exit code (0 for a clean run, 1 for errors or failure).
    """
    parser = argparse.ArgumentParser(
        description="Gmail Labeler - AI-powered Gmail triage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                    Label all mail except spam and trash
  %(prog)s --scope inbox      Label only messages in the inbox
  %(prog)s --verbose          Show detailed output

Press Ctrl+C to stop after the current batch.
        """,
    )

    parser.add_argument(
        "--scope",
        "-s",
        choices=["inbox", "all"],
        default="all",
        help="Mailbox section to process",
    )

    parser.add_argument(
        "--access-token",
        type=str,
        default=None,
        help="Gmail OAuth access token. Overrides GMAIL_ACCESS_TOKEN when provided.",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to LOG_LEVEL from settings)",
    )

    parsed_args = parser.parse_args(args)

    # Setup logging
    log_level = "DEBUG" if parsed_args.verbose else (parsed_args.log_level or "INFO")
    setup_logging(log_level)

    logger = logging.getLogger(__name__)

    try:
        settings = get_settings()
        if not parsed_args.verbose and parsed_args.log_level is None:
            logging.getLogger().setLevel(settings.log_level.upper())

        access_token = parsed_args.access_token or settings.gmail_access_token
        if not access_token:
            print("\nError: no Gmail access token (use --access-token or GMAIL_ACCESS_TOKEN)\n")
            return 1

        print(f"\nStarting Gmail Labeler (scope={parsed_args.scope})...\n")

        cancel_token = CancellationToken()

        def request_stop(signum, frame) -> None:
            print("\nStop requested; finishing the current batch...")
            cancel_token.cancel()

        previous_handler = signal.signal(signal.SIGINT, request_stop)
        try:
            orchestrator = RunOrchestrator(access_token, settings=settings)
            final: Optional[RunProgress] = None
            for progress in orchestrator.run_all(parsed_args.scope, cancel_token):
                if not progress.state.is_terminal:
                    print_progress(progress)
                final = progress
        finally:
            signal.signal(signal.SIGINT, previous_handler)

        print_results(final, verbose=parsed_args.verbose)

        if final.state is RunState.FAILED or final.statistics.errors > 0:
            return 1
        return 0

    except Exception as e:
        logger.exception("Fatal error")
        print(f"\nError: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
