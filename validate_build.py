#!/usr/bin/env python3
"""
pkrkit - Pre-build Duplicate Image Check

Checks every reachable provider for an image named
{name}-{provider}-v{version} before a build, and applies the conflict
policy: fail, skip, overwrite or auto-increment.

Usage:
    # Name and version from variables.auto.pkrvars.hcl
    python3 validate_build.py

    python3 validate_build.py --name foo --version 1.0.0
    python3 validate_build.py --name foo --version 1.0.0 --auto-increment --update-vars
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from pkrkit.cli import PkrArgumentParser, global_options, provider_options, run_command
from pkrkit.config import build_run_config, parse_providers
from pkrkit.constants import DEFAULT_VARS_FILE, VAR_IMAGE_NAME, VAR_IMAGE_VERSION
from pkrkit.errors import InvalidArgument
from pkrkit.providers import get_providers
from pkrkit.varsfile import read_vars, update_var
from pkrkit.versioning import (
    VersionCheck,
    VersionPolicy,
    available_clients,
    provider_image_name,
    resolve_version,
)

logger = logging.getLogger(__name__)


def add_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--name', help='Image base name (default: image_name from the variables file)')
    parser.add_argument('--version', help='Image version (default: image_version from the variables file)')
    parser.add_argument('--auto-increment', action='store_true',
                        help='Bump the version until a free one is found (same as --policy auto-increment)')
    parser.add_argument('--policy', choices=VersionPolicy.values(),
                        help='What to do when the image exists (default: fail)')
    parser.add_argument('--update-vars', action='store_true',
                        help='Write the resolved version back to the variables file')
    parser.add_argument('--vars-file', '-v', help=f'Variables file (default: {DEFAULT_VARS_FILE})')
    parser.add_argument('--providers', help='Comma-separated providers to check (aws,gcp,azure)')
    provider_options(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = PkrArgumentParser(
        prog='validate_build.py',
        description='pkrkit - Pre-build Duplicate Image Check',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[global_options()],
    )
    add_arguments(parser)
    return parser


def select_policy(args: argparse.Namespace) -> VersionPolicy:
    if args.auto_increment and args.policy and args.policy != VersionPolicy.AUTO_INCREMENT.value:
        raise InvalidArgument(f"--auto-increment conflicts with --policy {args.policy}")
    if args.auto_increment:
        return VersionPolicy.AUTO_INCREMENT
    return VersionPolicy(args.policy) if args.policy else VersionPolicy.FAIL


def image_coordinates(name: Optional[str], version: Optional[str], vars_file: str) -> Tuple[str, str]:
    """Fill missing name/version from the variables file."""
    if not (name and version) and Path(vars_file).is_file():
        variables = read_vars(vars_file)
        name = name or variables.get(VAR_IMAGE_NAME)
        version = version or variables.get(VAR_IMAGE_VERSION)
    if not name:
        raise InvalidArgument(f"No image name: pass --name or set {VAR_IMAGE_NAME} in {vars_file}")
    if not version:
        raise InvalidArgument(f"No image version: pass --version or set {VAR_IMAGE_VERSION} in {vars_file}")
    return name, version


def print_check(console: Console, check: VersionCheck) -> None:
    table = Table(title=f"Image check: {check.name} v{check.requested_version}")
    table.add_column("Provider", style="cyan")
    table.add_column("Requested")
    table.add_column("Status")
    table.add_column("Will build", style="green")

    final_names = check.image_names()
    for provider in check.checked_providers:
        requested = provider_image_name(check.name, provider, check.requested_version)
        status = "[yellow]exists[/yellow]" if provider in check.conflicts else "[green]free[/green]"
        table.add_row(provider, requested, status, final_names[provider] if check.should_build else "-")
    for provider in check.skipped_providers:
        table.add_row(provider, "-", "[dim]unavailable[/dim]", "-")

    console.print(table)


def run(args: argparse.Namespace, config: Dict[str, Any], console: Console) -> int:
    policy = select_policy(args)
    vars_file = args.vars_file or config.get('vars_file') or DEFAULT_VARS_FILE
    name, version = image_coordinates(args.name, args.version, vars_file)

    providers = parse_providers(args.providers)
    run_config = build_run_config(config, providers=providers)

    clients = get_providers(run_config)
    usable = available_clients(clients)
    skipped = [c.provider.value for c in clients if c not in usable]

    check = resolve_version(usable, name, version, policy, skipped=skipped)
    print_check(console, check)

    if not check.checked_providers:
        console.print("[yellow]⚠ No provider could be reached; nothing was checked[/yellow]")
    elif not check.has_conflict:
        console.print(f"[green]✓ Version {version} is free on every reachable provider[/green]")
    elif policy == VersionPolicy.SKIP:
        console.print(f"[yellow]Image exists; build would be skipped ({', '.join(check.conflicts.values())})[/yellow]")
    elif policy == VersionPolicy.OVERWRITE:
        console.print("[yellow]Image exists; build would overwrite it (packer -force)[/yellow]")
    elif check.version_changed:
        console.print(f"[green]✓ Next free version: {check.resolved_version}[/green]")
        for image_name in check.image_names().values():
            console.print(f"  {image_name}")

    if args.update_vars and check.version_changed:
        update_var(vars_file, VAR_IMAGE_VERSION, check.resolved_version)
        console.print(f"Updated {VAR_IMAGE_VERSION} in {vars_file}")

    unreachable = [p for p in check.skipped_providers if p in run_config.required_providers]
    if unreachable:
        console.print(f"[bold red]✗ Required provider(s) could not be reached: {', '.join(unreachable)}[/bold red]")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    return run_command(build_parser(), run, argv)


if __name__ == '__main__':
    sys.exit(main())
