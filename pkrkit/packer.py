"""
Packer runner: `packer init`, `validate` and `build` as child processes.

Commands are passed as argument lists, never through a shell. Output is
streamed line by line to the console while the child runs.
"""
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape

from .constants import PACKER_BINARY, PACKER_DOWNLOAD_URL, PACKER_SOURCES, PLATFORM_ALL, VALID_PLATFORMS
from .errors import BuildFailure, InvalidArgument, MissingDependency, ValidationFailure

logger = logging.getLogger(__name__)


def only_filter(platform: str) -> Optional[str]:
    """Packer `-only` value for a platform, None when building everything."""
    if platform not in VALID_PLATFORMS:
        raise InvalidArgument(
            f"Invalid platform: {platform}. Valid options: {', '.join(VALID_PLATFORMS)}"
        )
    if platform == PLATFORM_ALL:
        return None
    return PACKER_SOURCES[platform]


class PackerRunner:
    """Wraps one image definition and its variables file."""

    def __init__(
        self,
        template: str,
        vars_file: Optional[str] = None,
        debug: bool = False,
        binary: str = PACKER_BINARY,
        console: Optional[Console] = None,
    ):
        self.template = template
        self.vars_file = vars_file
        self.debug = debug
        self.binary = binary
        self.console = console or Console()
        self._path: Optional[str] = None

    def find_binary(self) -> str:
        if self._path is None:
            path = shutil.which(self.binary)
            if not path:
                raise MissingDependency(
                    f"Packer not found. Please install Packer first: {PACKER_DOWNLOAD_URL}"
                )
            self._path = path
        return self._path

    def version(self) -> str:
        result = subprocess.run(
            [self.find_binary(), 'version'],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise MissingDependency(f"Failed to get Packer version: {result.stderr.strip()}")
        lines = result.stdout.strip().splitlines()
        return lines[0] if lines else ''

    def check_template(self) -> None:
        if not Path(self.template).is_file():
            raise MissingDependency(f"Image definition not found: {self.template}")

    def _env(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.debug:
            env['PACKER_LOG'] = '1'
        return env

    def _var_file_args(self) -> List[str]:
        if self.vars_file and Path(self.vars_file).is_file():
            return [f"-var-file={self.vars_file}"]
        return []

    def _stream(self, args: List[str]) -> int:
        cmd = [self.find_binary()] + args
        logger.info(f"Running: {' '.join(cmd)}")

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            env=self._env(),
        )
        for line in process.stdout or ():
            self.console.print(f"[dim]{escape(line.rstrip())}[/dim]")
        return process.wait()

    def init(self) -> None:
        returncode = self._stream(['init', self.template])
        if returncode != 0:
            raise BuildFailure(f"packer init failed with exit code {returncode}")

    def validate(self, variables: Optional[Dict[str, str]] = None) -> None:
        args = ['validate'] + self._var_file_args() + _var_args(variables) + [self.template]
        returncode = self._stream(args)
        if returncode != 0:
            raise ValidationFailure(f"packer validate failed with exit code {returncode}")

    def build_args(
        self,
        platform: str = PLATFORM_ALL,
        variables: Optional[Dict[str, str]] = None,
        force: bool = False,
    ) -> List[str]:
        args = ['build'] + self._var_file_args()
        source = only_filter(platform)
        if source:
            args.append(f"-only={source}")
        if force:
            args.append('-force')
        return args + _var_args(variables) + [self.template]

    def build(
        self,
        platform: str = PLATFORM_ALL,
        variables: Optional[Dict[str, str]] = None,
        force: bool = False,
    ) -> None:
        returncode = self._stream(self.build_args(platform, variables, force))
        if returncode != 0:
            raise BuildFailure(f"packer build failed with exit code {returncode}")


def _var_args(variables: Optional[Dict[str, str]]) -> List[str]:
    args: List[str] = []
    for key, value in (variables or {}).items():
        args.extend(['-var', f"{key}={value}"])
    return args
