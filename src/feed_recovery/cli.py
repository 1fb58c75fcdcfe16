#!/usr/bin/env python3
"""
Command Line Interface for the feed recovery client
"""

import sys
import logging
import argparse
from typing import List, Optional

from . import __version__
from .client import FeedRecoveryClient, TransportSetupError
from .config import ConfigError, load_config
from .output_formatter import OutputWriteError

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False):
    """Configure the root logger (INFO, or DEBUG when requested)"""
    level = logging.DEBUG if debug else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(levelname)s:%(name)s:%(message)s'))
        root_logger.addHandler(handler)
    else:
        for handler in root_logger.handlers:
            handler.setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='feed-recovery',
        description='Stream a fixed-length market-data feed, recover missing records '
                    'and write the result as JSON',
    )
    parser.add_argument('--config', '-c', help='Configuration file path (TOML)')
    parser.add_argument('--host', help='Feed server host')
    parser.add_argument('--port', type=int, help='Feed server port')
    parser.add_argument('--timeout', type=float, help='Idle receive timeout in seconds')
    parser.add_argument('--output', '-o', help='Output JSON file')
    parser.add_argument('--debug', '-d', action='store_true', help='Enable DEBUG logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the feed-recovery command"""
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)

    try:
        config = load_config(args.config).with_overrides(
            host=args.host,
            port=args.port,
            timeout_sec=args.timeout,
            output_file=args.output,
        )
    except ConfigError as e:
        logger.error(str(e))
        return 1

    client = FeedRecoveryClient(config)
    try:
        store = client.run()
    except TransportSetupError as e:
        logger.error(f"Initial stream failed: {e}")
        return 1

    try:
        client.write(store)
    except OutputWriteError as e:
        logger.error(str(e))
        return 1

    logger.info(f"Run summary: {client.metrics.to_dict()}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
