#!/usr/bin/env python3
"""
pkrkit - Emergency Builder Cleanup

Terminates running or pending Packer builder instances right away, for
example after an interrupted build. Images and snapshots are never touched.

Usage:
    python3 emergency_cleanup.py --dry-run
    python3 emergency_cleanup.py --force
    python3 emergency_cleanup.py --providers aws --force
"""
import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console

from pkrkit.cli import PkrArgumentParser, global_options, provider_options, run_command
from pkrkit.config import build_run_config, parse_providers
from pkrkit.providers import get_providers
from pkrkit.sweeper import Sweeper
from pkrkit.utils import print_run_summary, write_json

logger = logging.getLogger(__name__)


def add_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--dry-run', '-d', action='store_true',
                        help='List builder instances without terminating them')
    parser.add_argument('--force', '-f', action='store_true', help='Skip confirmation prompts')
    parser.add_argument('--providers', help='Comma-separated providers (aws,gcp,azure)')
    parser.add_argument('--output', '-o', help='Write the run report as JSON to this file')
    provider_options(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = PkrArgumentParser(
        prog='emergency_cleanup.py',
        description='pkrkit - Emergency Builder Cleanup',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[global_options()],
    )
    add_arguments(parser)
    return parser


def run(args: argparse.Namespace, config: Dict[str, Any], console: Console) -> int:
    providers = parse_providers(args.providers)
    run_config = build_run_config(
        config,
        dry_run=args.dry_run,
        force_confirm=args.force,
        providers=providers,
    )

    console.print("[bold red]Emergency Builder Cleanup[/bold red]")
    console.print(
        f"Target: running/pending instances tagged "
        f"[yellow]{run_config.builder_tag_key}={run_config.builder_tag_value}[/yellow] "
        f"and Packer build VMs"
    )
    console.print()

    sweeper = Sweeper(run_config, get_providers(run_config), console=console, emergency=True)
    report = sweeper.run()

    console.print()
    print_run_summary(console, report)

    if args.output:
        write_json(report.to_dict(), args.output)

    failed = report.unprocessed(run_config.required_providers)
    if failed:
        console.print(f"[bold red]✗ Required provider(s) could not be processed: {', '.join(failed)}[/bold red]")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    return run_command(build_parser(), run, argv)


if __name__ == '__main__':
    sys.exit(main())
