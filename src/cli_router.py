#!/usr/bin/env python3
"""
CLI Router for the listing harvester.

Parses `<command> <subcommand> [options]` and dispatches to the command classes.
"""

import argparse
import logging
import sys
from typing import Optional, List

from commands import get_command, COMMANDS
from core.config import PARSING_MODES, get_config_manager
from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class CLIRouter:
    """
    CLI router for harvester commands.

    Command structure:
    - python run.py harvest run --urls urls.txt --mode safe
    - python run.py harvest check
    - python run.py stats show
    - python run.py stats limits --daily 500
    """

    def __init__(self, container=None):
        """Initialize CLI router."""
        self._container = container
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the main argument parser."""
        parser = argparse.ArgumentParser(
            description="Polite sequential harvester for classifieds listing pages",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=self._get_examples_text()
        )
        parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')

        subparsers = parser.add_subparsers(
            dest='command',
            help='Available commands',
            metavar='{command}'
        )

        self._add_harvest_parser(subparsers)
        self._add_stats_parser(subparsers)

        return parser

    def _add_harvest_parser(self, subparsers):
        """Add harvest command parser."""
        harvest_parser = subparsers.add_parser(
            'harvest',
            help='Run a harvest over a URL list'
        )

        harvest_subparsers = harvest_parser.add_subparsers(
            dest='subcommand',
            help='Harvest operations',
            metavar='{run,check}'
        )

        run_parser = harvest_subparsers.add_parser('run', help='Fetch every URL in the list, one at a time')
        run_parser.add_argument('--urls', default='urls.txt', help='URL list file, one per line, # for comments (default: urls.txt)')
        run_parser.add_argument('--output-dir', default=None, help='Directory for results/errors/stats JSON (default: OUTPUT_DIR or ./parsed-data)')
        run_parser.add_argument('--mode', choices=sorted(PARSING_MODES), default=None, help='Pacing preset (default: HARVEST_MODE or safe)')
        run_parser.add_argument('--min-delay-ms', type=int, default=None, help='Minimum pause between URLs in ms')
        run_parser.add_argument('--max-delay-ms', type=int, default=None, help='Maximum pause between URLs in ms')
        run_parser.add_argument('--max-requests', type=int, default=None, help='Process at most this many URLs')
        run_parser.add_argument('--flush-every', type=int, default=None, help='Save a snapshot every N URLs (default: 10)')
        run_parser.add_argument('--max-failures', type=int, default=None, help='Stop once failures exceed this number (default: 5)')
        run_parser.add_argument('--retries', type=int, default=None, help='Retries per URL for network/HTTP errors (default: 3)')
        run_parser.add_argument('--direct', action='store_true', help='Fetch pages directly instead of through the parse API')
        run_parser.add_argument('--skip-check', action='store_true', help='Do not probe the parse API before starting')
        run_parser.add_argument('--no-tracker', action='store_true', help='Do not log requests or enforce rate limits')

        harvest_subparsers.add_parser('check', help='Check that the parse API is reachable')

    def _add_stats_parser(self, subparsers):
        """Add stats command parser."""
        stats_parser = subparsers.add_parser(
            'stats',
            help='Request statistics and rate limits'
        )

        stats_subparsers = stats_parser.add_subparsers(
            dest='subcommand',
            help='Stats operations',
            metavar='{show,limits,export,cleanup}'
        )

        stats_subparsers.add_parser('show', help='Show request counters and limit status')

        limits_parser = stats_subparsers.add_parser('limits', help='Show or update rate limits')
        limits_parser.add_argument('--daily', type=int, default=None, help='Requests allowed per day')
        limits_parser.add_argument('--hourly', type=int, default=None, help='Requests allowed per hour')
        limits_parser.add_argument('--min-delay-ms', type=int, default=None, help='Minimum gap between requests in ms')

        export_parser = stats_subparsers.add_parser('export', help='Export the request log as JSON')
        export_parser.add_argument('--since', default=None, help='Only requests at or after this date/time')
        export_parser.add_argument('--until', default=None, help='Only requests at or before this date/time')
        export_parser.add_argument('--output', default=None, help='Write to this file instead of stdout')

        cleanup_parser = stats_subparsers.add_parser('cleanup', help='Drop old request log entries')
        cleanup_parser.add_argument('--days', type=int, default=30, help='Keep entries from the last N days (default: 30)')

    def _get_examples_text(self) -> str:
        """Get examples text for help."""
        return """
Examples:
  # Safe run through the local parse API
  python run.py harvest run --urls urls.txt

  # Faster pacing, checkpoint every 5 URLs
  python run.py harvest run --mode moderate --flush-every 5

  # Fetch pages directly (no parse API)
  python run.py harvest run --direct --max-requests 20

  # Request statistics and limits
  python run.py stats show
  python run.py stats limits --daily 500 --hourly 50
  python run.py stats export --since 2024-01-01 --output requests.json
"""

    def route_command(self, args: Optional[List[str]] = None) -> int:
        """
        Route command to appropriate handler.

        Returns:
            Exit code
        """
        try:
            if args is None:
                args = sys.argv[1:]

            parsed_args = self.parser.parse_args(args)

            if getattr(parsed_args, 'verbose', False):
                logging.getLogger().setLevel(logging.DEBUG)

            if not parsed_args.command:
                self.parser.print_help()
                return 1

            return self._handle_command(parsed_args)

        except SystemExit as e:
            # argparse calls sys.exit() on error or help
            return e.code if e.code is not None else 0

    def _handle_command(self, args: argparse.Namespace) -> int:
        """Handle command structure."""
        logger.debug(f"Handling command: {args.command}")

        if args.command not in COMMANDS:
            available = ', '.join(COMMANDS.keys())
            logger.error(f"Unknown command '{args.command}'. Available: {available}")
            return 1

        subcommand = getattr(args, 'subcommand', None)
        if not subcommand:
            logger.error(f"No subcommand specified for '{args.command}'")
            self.parser.parse_args([args.command, '--help'])
            return 1

        command = get_command(args.command, container=self._container)
        return command.execute(subcommand, args)


def main(args: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        get_config_manager().update_logging()
    except ConfigurationError as e:
        logger.error(str(e))
        return 22

    router = CLIRouter()
    try:
        return router.route_command(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user, partial results are in the last saved snapshot")
        return 130


if __name__ == '__main__':
    sys.exit(main())
