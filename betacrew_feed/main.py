"""
BetaCrew Exchange Client - Main Application
===========================================

This script:
1. Loads configuration (config.json + command-line overrides)
2. Streams all packets from the exchange server
3. Detects missing sequences
4. Requests each missing packet on its own connection
5. Writes the ordered packets to stock_data.json

Usage:
    python -m betacrew_feed.main
    python -m betacrew_feed.main --host localhost --port 3000 --output out/stock_data.json

Exit codes:
    0 - every sequence 1..N collected
    1 - could not connect for the initial stream
    2 - finished, but some sequences are still missing
    3 - configuration file is invalid
"""

import sys
import copy
import json
import logging
import argparse
from typing import List, Optional

from betacrew_feed.packet_receiver import PacketReceiver
from betacrew_feed.recovery import RecoveryOrchestrator
from betacrew_feed.saver import DataSaver

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_CONNECTION_FAILED = 1
EXIT_PARTIAL_RECOVERY = 2
EXIT_CONFIG_ERROR = 3

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_CONFIG = {
    'server': {
        'host': 'localhost',
        'port': 3000
    },
    'timeout': 30,
    'buffer_size': 4096,
    'output': {
        'path': 'stock_data.json',
        'save_csv': False
    },
    'log_level': 'INFO',
    'log_file': 'betacrew_client.log'
}


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None):
    """Configure root logging to the console and, optionally, a log file."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )


def load_config(config_path: str = 'config.json') -> dict:
    """
    Load configuration from JSON file, merged over DEFAULT_CONFIG.

    Args:
        config_path: Path to configuration file

    Returns:
        dict: Configuration dictionary

    Raises:
        json.JSONDecodeError: If config file is invalid JSON
        ValueError: If the top level or a nested section is not a JSON object
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, 'r') as f:
            loaded = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Configuration file not found: {config_path} - using defaults")
        return config

    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration in {config_path} must be a JSON object")

    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key].update(value)
        else:
            config[key] = value

    for section in ('server', 'output'):
        if not isinstance(config[section], dict):
            raise ValueError(f"Configuration section '{section}' in {config_path} must be a JSON object")

    return config


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Collect all trade packets from the BetaCrew exchange server, recovering gaps.'
    )
    parser.add_argument('--config', default='config.json', help='Path to JSON configuration file')
    parser.add_argument('--host', help='Exchange server host')
    parser.add_argument('--port', type=int, help='Exchange server port')
    parser.add_argument('--timeout', type=float,
                        help='Socket timeout in seconds (0 waits forever)')
    parser.add_argument('--output', help='JSON output file')
    parser.add_argument('--csv', action='store_true', help='Also write a CSV file')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, WARNING, ...)')
    return parser.parse_args(argv)


def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Apply command-line arguments on top of the loaded configuration."""
    if args.host:
        config['server']['host'] = args.host
    if args.port is not None:
        config['server']['port'] = args.port
    if args.timeout is not None:
        config['timeout'] = args.timeout or None
    if args.output:
        config['output']['path'] = args.output
    if args.csv:
        config['output']['save_csv'] = True
    if args.log_level:
        config['log_level'] = args.log_level
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point.

    Returns:
        Process exit code (see module docstring)
    """
    args = parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
    except (json.JSONDecodeError, ValueError) as e:
        setup_logging()
        logger.error(f"✗ Invalid configuration file {args.config}: {e}")
        return EXIT_CONFIG_ERROR

    setup_logging(config.get('log_level', 'INFO'), config.get('log_file'))

    server = config['server']
    logger.info(f"BetaCrew exchange client starting - server {server['host']}:{server['port']}, "
                f"timeout {config.get('timeout')}s")

    receiver = PacketReceiver(config)
    output = config['output']
    saver = DataSaver(output_path=output['path'], save_csv=output.get('save_csv', False))
    orchestrator = RecoveryOrchestrator(receiver, saver)

    try:
        result = orchestrator.run()
    except OSError as e:
        if orchestrator.state != RecoveryOrchestrator.STATE_STREAMING_ALL:
            raise
        logger.error(f"✗ Could not connect to exchange server {server['host']}:{server['port']}: {e}")
        return EXIT_CONNECTION_FAILED
    finally:
        receiver.log_statistics()

    logger.info(f"Collected {len(result['packets'])} packets "
                f"(recovered {len(result['recovered'])}, failed {len(result['failed'])})")

    if not result['complete']:
        return EXIT_PARTIAL_RECOVERY
    return EXIT_SUCCESS


if __name__ == '__main__':
    sys.exit(main())
