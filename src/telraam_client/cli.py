# telraam_client/cli.py
"""
Command-line interface for the Telraam client.

    telraam welcome
    telraam traffic SEGMENT_ID --start 2024-01-01 --end 2024-07-01 [--csv out.csv]
    telraam segment SEGMENT_ID
    telraam active-segments [--bbox min_lon,min_lat,max_lon,max_lat]
    telraam cameras [--segment-id ID | --mac-id MAC]

The token comes from -t/--token or the TELRAAM_TOKEN environment variable.
--config loads a YAML configuration (see config/telraam_config.example.yaml);
a token given on the command line replaces the one in the file.

Results are printed to stdout as JSON; logs go to stderr.

Exit codes:
    0: success
    1: Telraam or configuration error
    2: usage error, or traffic result with missing chunks
"""

import argparse
import json
import logging
import os
import sys
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, Final

import httpx
import yaml
from pydantic import BaseModel

from telraam_client import __version__
from telraam_client.commands import TelraamApi
from telraam_client.common.logger import setup_logger
from telraam_client.config import TelraamConfig, load_config
from telraam_client.errors import TelraamError
from telraam_client.fetcher import TrafficFetchOutcome
from telraam_client.models.requests import TrafficFormat, TrafficLevel

__all__: list[str] = ['build_parser', 'main']

logger: logging.Logger = logging.getLogger(__name__)

TOKEN_ENV_VAR: Final[str] = 'TELRAAM_TOKEN'

EXIT_OK: Final[int] = 0
EXIT_ERROR: Final[int] = 1
EXIT_PARTIAL: Final[int] = 2

CommandHandler = Callable[[TelraamApi, argparse.Namespace], int]


# =============================================================================
# Output helpers
# =============================================================================


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode='json')
    if isinstance(value, list | tuple):
        return [_to_jsonable(item) for item in value]
    return value


def _print_json(value: Any) -> None:
    print(json.dumps(_to_jsonable(value), indent=2))


def _parse_timestamp(value: str) -> datetime:
    """argparse type for ISO-8601 dates and datetimes (naive means UTC)."""
    try:
        return datetime.fromisoformat(value)
    except ValueError as error:
        raise argparse.ArgumentTypeError(
            f'invalid date/time {value!r}, expected ISO-8601 (e.g. 2024-01-01)'
        ) from error


# =============================================================================
# Subcommand handlers
# =============================================================================


def handle_welcome(api: TelraamApi, args: argparse.Namespace) -> int:
    _print_json(api.welcome())
    return EXIT_OK


def handle_traffic(api: TelraamApi, args: argparse.Namespace) -> int:
    outcome: TrafficFetchOutcome = api.traffic_report(
        args.segment_id,
        start=args.start,
        end=args.end,
        traffic_format=args.format,
        level=args.level,
    )

    if args.csv:
        csv_path = Path(args.csv)
        outcome.to_dataframe().to_csv(csv_path, index=False)
        print(f'Wrote {len(outcome.reports)} bucket(s) to {csv_path}', file=sys.stderr)
    else:
        _print_json(
            {
                'status': outcome.status.value,
                'reports': _to_jsonable(outcome.reports),
            }
        )

    if outcome.is_partial:
        for failed in outcome.failed_chunks:
            print(
                f'Missing {failed.chunk.label()} after {failed.attempts} '
                f'attempt(s): {failed.error}',
                file=sys.stderr,
            )
        return EXIT_PARTIAL

    return EXIT_OK


def handle_segment(api: TelraamApi, args: argparse.Namespace) -> int:
    _print_json(api.segment(args.segment_id))
    return EXIT_OK


def handle_active_segments(api: TelraamApi, args: argparse.Namespace) -> int:
    _print_json(api.active_segments(bbox=args.bbox).segments)
    return EXIT_OK


def handle_cameras(api: TelraamApi, args: argparse.Namespace) -> int:
    if args.segment_id is not None:
        cameras = api.cameras_by_segment(args.segment_id)
    elif args.mac_id is not None:
        cameras = api.camera_by_mac(args.mac_id)
    else:
        cameras = api.cameras()
    _print_json(cameras)
    return EXIT_OK


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog='telraam',
        description='Query the Telraam traffic counting API.',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '-t',
        '--token',
        default=os.environ.get(TOKEN_ENV_VAR),
        help=f'API token (default: ${TOKEN_ENV_VAR})',
    )
    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='YAML configuration file',
    )
    parser.add_argument(
        '-v',
        '--verbose',
        action='count',
        default=0,
        help='Increase log output (-v info, -vv debug)',
    )

    subs = parser.add_subparsers(dest='command', required=True, metavar='<command>')

    p_welcome = subs.add_parser('welcome', help='Check that the API is up')
    p_welcome.set_defaults(handler=handle_welcome)

    p_traffic = subs.add_parser(
        'traffic', help='Traffic counts for a segment over a date range'
    )
    p_traffic.add_argument('segment_id', help='Segment id')
    p_traffic.add_argument(
        '--start', required=True, type=_parse_timestamp, help='Start (inclusive, UTC)'
    )
    p_traffic.add_argument(
        '--end', required=True, type=_parse_timestamp, help='End (exclusive, UTC)'
    )
    p_traffic.add_argument(
        '--format',
        choices=[choice.value for choice in TrafficFormat],
        default=None,
        help='Bucket granularity (default from config: per-hour)',
    )
    p_traffic.add_argument(
        '--level',
        choices=[choice.value for choice in TrafficLevel],
        default=None,
        help='Aggregation level (default from config: segments)',
    )
    p_traffic.add_argument('--csv', default=None, help='Write buckets to a CSV file')
    p_traffic.set_defaults(handler=handle_traffic)

    p_segment = subs.add_parser('segment', help='Look up a segment')
    p_segment.add_argument('segment_id', help='Segment id')
    p_segment.set_defaults(handler=handle_segment)

    p_active = subs.add_parser(
        'active-segments', help='Segments with at least one active camera'
    )
    p_active.add_argument(
        '--bbox',
        default=None,
        help='Only segments intersecting min_lon,min_lat,max_lon,max_lat',
    )
    p_active.set_defaults(handler=handle_active_segments)

    p_cameras = subs.add_parser('cameras', help='Camera instances')
    camera_filter = p_cameras.add_mutually_exclusive_group()
    camera_filter.add_argument('--segment-id', default=None, help='Cameras on a segment')
    camera_filter.add_argument('--mac-id', default=None, help='Instances of one device')
    p_cameras.set_defaults(handler=handle_cameras)

    return parser


def _resolve_config(
    parser: argparse.ArgumentParser,
    args: argparse.Namespace,
) -> TelraamConfig:
    if args.config is not None:
        return load_config(args.config, api_key=args.token)
    if not args.token:
        parser.error(f'an API token is required (-t/--token or ${TOKEN_ENV_VAR})')
    return TelraamConfig.from_token(args.token)


def _configure_logging(verbosity: int, config: TelraamConfig) -> None:
    if verbosity == 0 and 'logging' in config.model_fields_set:
        setup_logger(config=config.logging)
        return
    levels: dict[int, int] = {0: logging.WARNING, 1: logging.INFO}
    setup_logger(logging_level=levels.get(verbosity, logging.DEBUG))


def main(
    argv: Sequence[str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> int:
    """
    Parse arguments, run the chosen command and return the exit code.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:]).
        transport: Optional httpx transport for the underlying client.
    """
    parser: argparse.ArgumentParser = build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    try:
        config: TelraamConfig = _resolve_config(parser, args)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as error:
        print(f'Error: {error}', file=sys.stderr)
        return EXIT_ERROR

    _configure_logging(args.verbose, config)

    handler: CommandHandler = args.handler
    try:
        with TelraamApi.from_config(config, transport=transport) as api:
            return handler(api, args)
    except TelraamError as error:
        logger.debug('Command %s failed', args.command, exc_info=True)
        print(f'Error: {error}', file=sys.stderr)
        return EXIT_ERROR
    except ValueError as error:
        # Bad --bbox and similar input rejected after parsing
        print(f'Error: {error}', file=sys.stderr)
        return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
