#!/usr/bin/env python3
"""
pkrkit - Multi-Cloud NGINX Image Builder

Runs `packer init`, `packer validate` and `packer build` on main.pkr.hcl,
optionally restricted to one cloud.

Usage:
    # Build for all platforms
    python3 build_image.py

    # Build only for AWS
    python3 build_image.py --platform aws

    # Build for GCP with PACKER_LOG enabled
    python3 build_image.py --debug --platform gcp

    # Only validate the template
    python3 build_image.py --validate-only

    # Bump the version when the image already exists
    python3 build_image.py --on-conflict auto-increment
"""
import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel

from pkrkit.cli import PkrArgumentParser, global_options, provider_options, run_command
from pkrkit.config import build_run_config
from pkrkit.constants import (
    ALL_PROVIDERS,
    DEFAULT_TEMPLATE,
    DEFAULT_VARS_FILE,
    EXAMPLE_VARS_FILE,
    PLATFORM_ALL,
    VALID_PLATFORMS,
    VAR_IMAGE_NAME,
    VAR_IMAGE_VERSION,
)
from pkrkit.errors import InvalidArgument
from pkrkit.packer import PackerRunner
from pkrkit.provisioning import SCRIPT_PATH, write_provisioning
from pkrkit.providers import get_providers
from pkrkit.varsfile import ensure_vars_file, read_vars
from pkrkit.versioning import VersionPolicy, available_clients, resolve_version

logger = logging.getLogger(__name__)

IMAGE_LOCATIONS = {
    'aws': "AWS: Check EC2 Console -> AMIs",
    'gcp': "GCP: Check Compute Engine -> Images",
    'azure': "Azure: Check your resource group for managed images",
}


def add_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--platform', '-p', choices=VALID_PLATFORMS, default=PLATFORM_ALL,
                        help='Cloud platform to build for (default: all)')
    parser.add_argument('--vars-file', '-v', help=f'Variables file (default: {DEFAULT_VARS_FILE})')
    parser.add_argument('--template', help=f'Packer image definition (default: {DEFAULT_TEMPLATE})')
    parser.add_argument('--debug', '-d', action='store_true', help='Run Packer with PACKER_LOG=1')
    parser.add_argument('--validate-only', '-t', action='store_true',
                        help="Only validate, don't build")
    parser.add_argument('--on-conflict', choices=VersionPolicy.values(),
                        help='Check for an existing image first and apply this policy')
    parser.add_argument('--render-provisioning', action='store_true',
                        help='Write scripts/install_nginx.sh and the nginx cookbook before building')
    provider_options(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = PkrArgumentParser(
        prog='build_image.py',
        description='pkrkit - Multi-Cloud NGINX Image Builder',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[global_options()],
    )
    add_arguments(parser)
    return parser


def check_existing_image(
    config: Dict[str, Any],
    platform: str,
    vars_file: str,
    policy: VersionPolicy,
    console: Console,
):
    """Run the duplicate check for the platforms being built."""
    variables = read_vars(vars_file)
    name = variables.get(VAR_IMAGE_NAME)
    version = variables.get(VAR_IMAGE_VERSION)
    if not name or not version:
        raise InvalidArgument(
            f"--on-conflict needs {VAR_IMAGE_NAME} and {VAR_IMAGE_VERSION} in {vars_file}"
        )

    platforms = ALL_PROVIDERS if platform == PLATFORM_ALL else (platform,)
    run_config = build_run_config(config, providers=platforms)
    clients = get_providers(run_config)
    usable = available_clients(clients)
    skipped = [c.provider.value for c in clients if c not in usable]

    console.print(f"[blue]Checking for existing {name} v{version} images...[/blue]")
    return resolve_version(usable, name, version, policy, skipped=skipped)


def run(args: argparse.Namespace, config: Dict[str, Any], console: Console) -> int:
    template = args.template or config.get('template') or DEFAULT_TEMPLATE
    vars_file = args.vars_file or config.get('vars_file') or DEFAULT_VARS_FILE

    console.print("[bold cyan]Multi-Cloud NGINX Image Builder[/bold cyan]")

    runner = PackerRunner(template, vars_file=vars_file, debug=args.debug, console=console)
    runner.find_binary()
    console.print(f"[green]✓[/green] Packer found: {runner.version()}")
    runner.check_template()

    example = os.path.join(os.path.dirname(template), EXAMPLE_VARS_FILE)
    if ensure_vars_file(vars_file, example):
        console.print(f"[yellow]Variables file '{vars_file}' was not found and has been created.[/yellow]")
        console.print(f"[yellow]Pausing build. Edit {vars_file} with your cloud settings, then run again.[/yellow]")
        return 0

    base_dir = os.path.dirname(template) or '.'
    if args.render_provisioning or not os.path.exists(os.path.join(base_dir, SCRIPT_PATH)):
        written = write_provisioning(base_dir)
        console.print(f"[green]✓[/green] Rendered {len(written)} provisioning file(s)")

    console.print("[blue]Initializing Packer...[/blue]")
    runner.init()
    console.print("[green]✓[/green] Packer initialized successfully")

    console.print("[blue]Validating Packer template...[/blue]")
    runner.validate()
    console.print("[green]✓[/green] Template validation successful")

    if args.validate_only:
        console.print("[green]✓ Validation complete. Exiting as requested.[/green]")
        return 0

    overrides: Dict[str, str] = {}
    force = False
    if args.on_conflict:
        check = check_existing_image(config, args.platform, vars_file, VersionPolicy(args.on_conflict), console)
        if not check.should_build:
            console.print(f"[yellow]Image already exists, skipping build: "
                          f"{', '.join(check.conflicts.values())}[/yellow]")
            return 0
        if check.version_changed:
            console.print(f"[yellow]Image exists, building version {check.resolved_version} instead[/yellow]")
            overrides[VAR_IMAGE_VERSION] = check.resolved_version
        force = check.force

    if args.debug:
        console.print("[yellow]Debug mode enabled (PACKER_LOG=1)[/yellow]")

    console.print(f"[blue]Starting image build for platform(s): {args.platform}[/blue]")
    runner.build(args.platform, variables=overrides, force=force)

    platforms = ALL_PROVIDERS if args.platform == PLATFORM_ALL else (args.platform,)
    console.print(Panel(
        "\n".join(IMAGE_LOCATIONS[p] for p in platforms),
        title="[bold green]Build completed successfully[/bold green]",
    ))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    return run_command(build_parser(), run, argv)


if __name__ == '__main__':
    sys.exit(main())
