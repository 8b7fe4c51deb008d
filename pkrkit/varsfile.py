"""
Reader and writer for the Packer variables file (variables.auto.pkrvars.hcl).

The file is edited by hand, so updates rewrite only the line holding the
variable and keep every comment and blank line as it was. Only top-level
`key = value` assignments are understood; lists and maps are skipped.
"""
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Dict, Optional

from .errors import InvalidArgument, MissingDependency

logger = logging.getLogger(__name__)

ASSIGNMENT_PATTERN = re.compile(r'^(\s*)([A-Za-z_][A-Za-z0-9_-]*)(\s*=\s*)(.*?)\s*$')

DEFAULT_VARS_TEMPLATE = '''# Packer variables for the multi-cloud NGINX image
# Fill in the values for the clouds you build for, then run `pkr build`.

image_name    = "poc-nginx-image"
image_version = "1.0.0"

# AWS
aws_region        = "us-east-1"
aws_instance_type = "t3.micro"

# GCP
gcp_project_id   = "your-gcp-project-id"
gcp_zone         = "us-central1-a"
gcp_machine_type = "e2-micro"

# Azure
azure_subscription_id = "your-azure-subscription-id"
azure_resource_group  = "packer-images-rg"
azure_location        = "East US"
azure_vm_size         = "Standard_B1s"
'''


def _parse_value(raw: str) -> Optional[str]:
    """Return a scalar value as a string, or None for lists, maps and heredocs."""
    raw = raw.strip()
    if raw.startswith('"'):
        end = raw.find('"', 1)
        while end > 0 and raw[end - 1] == '\\':
            end = raw.find('"', end + 1)
        return raw[1:end] if end > 0 else raw[1:]
    if raw.startswith(('{', '[', '<<')):
        return None
    # Unquoted numbers and booleans, trailing comments dropped
    return re.split(r'\s+(#|//)', raw, maxsplit=1)[0]


def read_vars(path: str) -> Dict[str, str]:
    """Read top-level scalar assignments from a .pkrvars.hcl file."""
    file_path = Path(path)
    if not file_path.exists():
        raise MissingDependency(f"Variables file not found: {path}")

    variables: Dict[str, str] = {}
    depth = 0

    for line in file_path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(('#', '//')):
            continue
        if depth > 0:
            depth += stripped.count('{') + stripped.count('[')
            depth -= stripped.count('}') + stripped.count(']')
            continue

        match = ASSIGNMENT_PATTERN.match(line)
        if not match:
            continue
        key, raw = match.group(2), match.group(4)
        value = _parse_value(raw)
        if value is None:
            depth = raw.count('{') + raw.count('[') - raw.count('}') - raw.count(']')
            continue
        variables[key] = value

    return variables


def _quote(value: str) -> str:
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def update_var(path: str, key: str, value: str) -> None:
    """Set key to value, rewriting the existing line or appending a new one."""
    if not re.match(r'^[A-Za-z_][A-Za-z0-9_-]*$', key):
        raise InvalidArgument(f"Invalid variable name: {key}")

    file_path = Path(path)
    if not file_path.exists():
        raise MissingDependency(f"Variables file not found: {path}")

    lines = file_path.read_text().splitlines()
    replaced = False

    for index, line in enumerate(lines):
        match = ASSIGNMENT_PATTERN.match(line)
        if match and match.group(2) == key:
            lines[index] = f"{match.group(1)}{key}{match.group(3)}{_quote(value)}"
            replaced = True
            break

    if not replaced:
        lines.append(f"{key} = {_quote(value)}")

    file_path.write_text('\n'.join(lines) + '\n')
    logger.info(f"Set {key} = {value} in {path}")


def ensure_vars_file(path: str, example_path: str) -> bool:
    """
    Create the variables file when it is missing.

    Copies the example file when present, else writes the built-in
    template. Returns True when a new file was created. The file holds
    cloud identifiers, so it is created readable by the owner only.
    """
    if Path(path).exists():
        return False

    if Path(example_path).exists():
        shutil.copyfile(example_path, path)
        logger.info(f"Created {path} from {example_path}")
    else:
        Path(path).write_text(DEFAULT_VARS_TEMPLATE)
        logger.info(f"Created {path} from the built-in template")

    os.chmod(path, 0o600)
    return True
