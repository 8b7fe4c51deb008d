"""
Shared command-line plumbing for the pkr commands.
"""
import argparse
import logging
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

from rich.console import Console

from .config import generate_sample_config, load_config
from .errors import PkrkitError
from .utils import setup_logging

logger = logging.getLogger(__name__)


class PkrArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on invalid flags."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def global_options() -> argparse.ArgumentParser:
    """Options accepted by every command."""
    parser = argparse.ArgumentParser(add_help=False)
    group = parser.add_argument_group('global options')
    group.add_argument('--config', '-c', help='Path to YAML config file')
    group.add_argument('--generate-config', action='store_true',
                       help='Print a sample config file and exit')
    group.add_argument('--log-level', help='Logging level (default: INFO)')
    group.add_argument('--log-dir', help='Also write logs to a file in this directory')
    group.add_argument('--no-color', action='store_true', help='Disable colored output')
    return parser


def provider_options(parser: argparse.ArgumentParser) -> None:
    """Per-provider account settings."""
    group = parser.add_argument_group('provider settings')
    group.add_argument('--region', help='AWS region (default: AWS_DEFAULT_REGION or us-east-1)')
    group.add_argument('--project', help='GCP project (default: application default credentials project)')
    group.add_argument('--subscription', help='Azure subscription id (default: ARM_SUBSCRIPTION_ID)')


def init_command(args: argparse.Namespace) -> Tuple[Dict[str, Any], Console]:
    """Load configuration, set up logging and build the console for one command."""
    config = load_config(args)
    setup_logging(config.get('log_level') or 'INFO', output_dir=config.get('log_dir'))
    if config:
        logger.debug(f"Loaded configuration: {list(config.keys())}")
    console = Console(no_color=getattr(args, 'no_color', False), highlight=False)
    return config, console


def run_command(
    parser: argparse.ArgumentParser,
    handler: Callable[[argparse.Namespace, Dict[str, Any], Console], int],
    argv: Optional[List[str]] = None,
) -> int:
    """Parse argv, run handler and turn PkrkitError into exit status 1."""
    args = parser.parse_args(argv)

    if getattr(args, 'generate_config', False):
        print(generate_sample_config())
        return 0

    console = Console(stderr=True, highlight=False)
    try:
        config, console = init_command(args)
        return handler(args, config, console)
    except PkrkitError as e:
        logger.error(str(e))
        console.print(f"[bold red]✗ {e}[/bold red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 1
