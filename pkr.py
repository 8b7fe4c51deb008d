#!/usr/bin/env python3
"""
pkrkit - Unified Entry Point

Usage:
    pkr build [--platform aws|gcp|azure|all] [--validate-only] [--debug]
    pkr cleanup [--prefix PREFIX] [--dry-run] [--force] [--yes]
    pkr emergency-cleanup [--dry-run] [--force]
    pkr validate-build [--name NAME] [--version X.Y.Z] [--auto-increment]
    pkr render-provisioning [--output-dir DIR]

Every command also accepts --config, --log-level, --log-dir and --no-color.
"""
import argparse
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console

import build_image
import cleanup_images
import emergency_cleanup
import validate_build
from pkrkit import __version__
from pkrkit.cli import PkrArgumentParser, global_options, run_command
from pkrkit.config import parse_providers
from pkrkit.constants import ALL_PROVIDERS
from pkrkit.provisioning import write_provisioning


def render_provisioning(args: argparse.Namespace, config: Dict[str, Any], console: Console) -> int:
    platforms = parse_providers(args.platforms) or ALL_PROVIDERS
    for path in write_provisioning(args.output_dir, platforms):
        console.print(f"[green]✓[/green] {path}")
    return 0


COMMANDS = {
    'build': (build_image, 'Validate and build images with Packer'),
    'cleanup': (cleanup_images, 'Delete images and build leftovers matching a prefix'),
    'emergency-cleanup': (emergency_cleanup, 'Terminate running Packer builder instances'),
    'validate-build': (validate_build, 'Check whether the image version already exists'),
}


def build_parser() -> argparse.ArgumentParser:
    common = global_options()
    parser = PkrArgumentParser(
        prog='pkr',
        description='pkrkit - Multi-Cloud Image Build and Cleanup Kit',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--generate-config', action='store_true',
                        help='Print a sample config file and exit')
    parser.add_argument('--version', action='version', version=f'pkrkit {__version__}')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND', parser_class=PkrArgumentParser)

    for name, (module, help_text) in COMMANDS.items():
        sub = subparsers.add_parser(name, help=help_text, description=help_text, parents=[common])
        module.add_arguments(sub)
        sub.set_defaults(handler=module.run)

    render = subparsers.add_parser(
        'render-provisioning',
        help='Write the NGINX install script and Chef cookbook',
        description='Write scripts/install_nginx.sh and cookbooks/nginx from the packaged templates',
        parents=[common],
    )
    render.add_argument('--output-dir', default='.', help='Directory to write into (default: .)')
    render.add_argument('--platforms', help='Platforms listed on the welcome page (default: aws,gcp,azure)')
    render.set_defaults(handler=render_provisioning)

    return parser


def dispatch(args: argparse.Namespace, config: Dict[str, Any], console: Console) -> int:
    return args.handler(args, config, console)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args_list = list(sys.argv[1:] if argv is None else argv)

    known, _ = parser.parse_known_args(args_list)
    if not known.command and not known.generate_config:
        parser.print_help()
        return 1

    return run_command(parser, dispatch, args_list)


if __name__ == '__main__':
    sys.exit(main())
