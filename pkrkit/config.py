"""
pkrkit - Configuration Management

Supports loading configuration from:
1. YAML config file (--config)
2. Environment variables (PKRKIT_*)
3. Command-line arguments (highest priority)

Config file example:
```yaml
prefix: "poc-nginx-image"
log_level: INFO

builder_tag:
  key: Name
  value: Packer Builder

aws:
  region: us-east-1
gcp:
  project: ${GOOGLE_CLOUD_PROJECT}   # env var substitution
azure:
  subscription: ${ARM_SUBSCRIPTION_ID}
```
"""
import logging
import os
import re
import stat
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from .constants import (
    ALL_PROVIDERS,
    DEFAULT_BUILDER_TAG_KEY,
    DEFAULT_BUILDER_TAG_VALUE,
    DEFAULT_IMAGE_PREFIX,
)
from .errors import InvalidArgument
from .models import RunConfig

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './pkrkit.yaml',
    './pkrkit.yml',
    '~/.pkrkit/config.yaml',
    '~/.pkrkit/config.yml',
]

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'prefix': 'PKRKIT_PREFIX',
    'log_level': 'PKRKIT_LOG_LEVEL',
    'log_dir': 'PKRKIT_LOG_DIR',
    'template': 'PKRKIT_TEMPLATE',
    'vars_file': 'PKRKIT_VARS_FILE',
    'builder_tag.key': 'PKRKIT_BUILDER_TAG_KEY',
    'builder_tag.value': 'PKRKIT_BUILDER_TAG_VALUE',
    'aws.region': 'PKRKIT_AWS_REGION',
    'gcp.project': 'PKRKIT_GCP_PROJECT',
    'azure.subscription': 'PKRKIT_AZURE_SUBSCRIPTION',
}

# Provider settings fall back to the variables the vendor tools already use
VENDOR_ENV_FALLBACKS = {
    'aws.region': ('AWS_REGION', 'AWS_DEFAULT_REGION'),
    'gcp.project': ('GOOGLE_CLOUD_PROJECT', 'CLOUDSDK_CORE_PROJECT', 'GCLOUD_PROJECT'),
    'azure.subscription': ('ARM_SUBSCRIPTION_ID', 'AZURE_SUBSCRIPTION_ID'),
}


def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _get_nested(data: Dict, key_path: str, default: Any = None) -> Any:
    """Get a nested value from a dict using dot notation."""
    keys = key_path.split('.')
    value = data
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _set_nested(data: Dict, key_path: str, value: Any) -> None:
    """Set a nested value in a dict using dot notation."""
    keys = key_path.split('.')
    for key in keys[:-1]:
        data = data.setdefault(key, {})
    data[keys[-1]] = value


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise InvalidArgument(f"Config file not found: {config_path}")

    # Warn if config file has loose permissions
    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")

    with open(path) as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise InvalidArgument(f"Config file {config_path} is not valid YAML: {e}") from e

    if not isinstance(config, dict):
        raise InvalidArgument(f"Config file {config_path} must contain a mapping")

    return _substitute_env_vars(config)


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config() -> Dict[str, Any]:
    """Load configuration from environment variables."""
    config: Dict[str, Any] = {}

    for config_key, fallbacks in VENDOR_ENV_FALLBACKS.items():
        for env_var in fallbacks:
            value = os.environ.get(env_var)
            if value:
                _set_nested(config, config_key, value)
                break

    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(config, config_key, value)

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


def args_to_config(args) -> Dict[str, Any]:
    """Convert argparse args to config dict format."""
    config: Dict[str, Any] = {}

    arg_mapping = {
        'prefix': 'prefix',
        'log_level': 'log_level',
        'log_dir': 'log_dir',
        'template': 'template',
        'vars_file': 'vars_file',
        'region': 'aws.region',
        'project': 'gcp.project',
        'subscription': 'azure.subscription',
    }

    for arg_name, config_key in arg_mapping.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            _set_nested(config, config_key, value)

    return config


def config_to_args(config: Dict[str, Any], args) -> None:
    """Apply merged config values back onto an argparse namespace."""
    for key in ('prefix', 'log_level', 'log_dir', 'template', 'vars_file'):
        if key in config and hasattr(args, key):
            setattr(args, key, config[key])


def load_config(args) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict.
    """
    configs = []

    env_config = load_env_config()
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    config_path = getattr(args, 'config', None)
    if config_path:
        configs.append(load_config_file(config_path))
    else:
        default_config = find_default_config()
        if default_config:
            logger.info(f"Found default config file: {default_config}")
            configs.append(load_config_file(default_config))

    configs.append(args_to_config(args))

    merged = merge_configs(*configs)
    config_to_args(merged, args)

    return merged


def parse_providers(value: Optional[str]) -> Tuple[str, ...]:
    """Parse a comma-separated provider list such as "aws,gcp"."""
    if not value:
        return ()

    providers: List[str] = []
    for item in value.split(','):
        name = item.strip().lower()
        if not name:
            continue
        if name not in ALL_PROVIDERS:
            raise InvalidArgument(
                f"Unknown provider '{name}'. Valid options: {', '.join(ALL_PROVIDERS)}"
            )
        if name not in providers:
            providers.append(name)
    return tuple(providers)


def build_run_config(
    config: Dict[str, Any],
    dry_run: bool = False,
    force_confirm: bool = False,
    providers: Sequence[str] = (),
) -> RunConfig:
    """
    Build the immutable RunConfig for a cleanup invocation.

    Providers named explicitly become required: the run fails if one of
    them cannot be reached.
    """
    prefix = config.get('prefix', DEFAULT_IMAGE_PREFIX)
    if not isinstance(prefix, str) or not prefix.strip():
        raise InvalidArgument("Prefix must be a non-empty string")

    selected = tuple(providers) or ALL_PROVIDERS

    return RunConfig(
        prefix=prefix,
        dry_run=dry_run,
        force_confirm=force_confirm,
        providers=selected,
        required_providers=tuple(providers),
        builder_tag_key=_get_nested(config, 'builder_tag.key', DEFAULT_BUILDER_TAG_KEY),
        builder_tag_value=_get_nested(config, 'builder_tag.value', DEFAULT_BUILDER_TAG_VALUE),
        aws_region=_get_nested(config, 'aws.region'),
        gcp_project=_get_nested(config, 'gcp.project'),
        azure_subscription=_get_nested(config, 'azure.subscription'),
    )


def generate_sample_config() -> str:
    """Generate a sample config file content."""
    return '''# pkrkit configuration
#
# Environment variable substitution supported:
#   ${VAR_NAME}           - required env var
#   ${VAR_NAME:-default}  - env var with default value

# =============================================================================
# Common Settings
# =============================================================================

# Image name prefix swept by `pkr cleanup`
prefix: "poc-nginx-image"

# Logging level: DEBUG, INFO, WARNING, ERROR
log_level: INFO

# Directory for log files (optional)
# log_dir: ./logs

# Packer image definition and variables file used by `pkr build`
template: main.pkr.hcl
vars_file: variables.auto.pkrvars.hcl

# Tag Packer puts on its temporary build instances
builder_tag:
  key: Name
  value: Packer Builder


# =============================================================================
# Provider Settings
# =============================================================================
aws:
  # Region to sweep (default: AWS_DEFAULT_REGION or us-east-1)
  region: ${AWS_DEFAULT_REGION:-us-east-1}

gcp:
  # Project to sweep (default: application default credentials project)
  # project: "my-project-id"

azure:
  # Subscription to sweep (default: ARM_SUBSCRIPTION_ID)
  subscription: ${ARM_SUBSCRIPTION_ID}
'''
