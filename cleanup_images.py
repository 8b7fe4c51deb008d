#!/usr/bin/env python3
"""
pkrkit - Packer Resource Cleanup

Removes the images, snapshots and leftover build resources Packer created
on AWS, GCP and Azure. Providers whose credentials are missing are skipped.

Usage:
    # Interactive cleanup of poc-nginx-image* resources
    python3 cleanup_images.py

    # Dry run to see what would be deleted
    python3 cleanup_images.py --dry-run

    # Force cleanup of my-image* resources
    python3 cleanup_images.py --prefix my-image --force

    # Only AWS and GCP; fail if either cannot be reached
    python3 cleanup_images.py --providers aws,gcp --yes
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
    parser.add_argument('--prefix', '-p',
                        help='Image name prefix to search for (default: poc-nginx-image)')
    parser.add_argument('--dry-run', '-d', action='store_true',
                        help='Show what would be deleted without deleting anything')
    parser.add_argument('--force', '-f', action='store_true', help='Skip confirmation prompts')
    parser.add_argument('--yes', '-y', action='store_true', help='Answer yes to all prompts')
    parser.add_argument('--providers',
                        help='Comma-separated providers to clean (aws,gcp,azure). '
                             'Named providers that cannot be reached make the command fail.')
    parser.add_argument('--output', '-o', help='Write the run report as JSON to this file')
    provider_options(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = PkrArgumentParser(
        prog='cleanup_images.py',
        description='pkrkit - Packer Resource Cleanup',
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
        force_confirm=args.force or args.yes,
        providers=providers,
    )

    console.print("[bold cyan]Packer Resource Cleanup[/bold cyan]")
    console.print(f"Image prefix: [yellow]{run_config.prefix}[/yellow]")
    if run_config.dry_run:
        console.print("Mode: [yellow]DRY RUN (no resources will be deleted)[/yellow]")
    console.print()

    sweeper = Sweeper(run_config, get_providers(run_config), console=console)
    report = sweeper.run()

    console.print()
    print_run_summary(console, report)

    if args.output:
        write_json(report.to_dict(), args.output)

    if run_config.dry_run:
        console.print("\n[cyan]Dry run completed. Run without --dry-run to delete resources.[/cyan]")

    failed = report.unprocessed(run_config.required_providers)
    if failed:
        console.print(f"[bold red]✗ Required provider(s) could not be processed: {', '.join(failed)}[/bold red]")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    return run_command(build_parser(), run, argv)


if __name__ == '__main__':
    sys.exit(main())
