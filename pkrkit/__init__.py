"""
pkrkit shared library: Packer image builds and cleanup of their cloud leftovers.
"""
from . import constants
from .constants import (
    ALL_PROVIDERS,
    DEFAULT_IMAGE_PREFIX,
    PROVIDER_AWS,
    PROVIDER_AZURE,
    PROVIDER_GCP,
)
from .errors import (
    AuthenticationMissing,
    BuildFailure,
    DeleteFailure,
    InvalidArgument,
    MissingDependency,
    PkrkitError,
    ProviderUnavailable,
    ValidationFailure,
)
from .models import (
    CleanupPlan,
    CloudResource,
    DeleteOutcome,
    Provider,
    ProviderReport,
    ProviderStatus,
    ResourceKind,
    RunConfig,
    RunReport,
    RunStatus,
)
from .planner import build_plan
from .policy import is_eligible, matches_prefix
from .sweeper import Sweeper, sweep
from .utils import setup_logging, write_json
from .versioning import VersionPolicy, bump_version, format_image_name, provider_image_name, resolve_version

__version__ = "1.0.0"

__all__ = [
    'constants',
    'ALL_PROVIDERS',
    'DEFAULT_IMAGE_PREFIX',
    'PROVIDER_AWS',
    'PROVIDER_AZURE',
    'PROVIDER_GCP',
    # Errors
    'PkrkitError',
    'MissingDependency',
    'InvalidArgument',
    'AuthenticationMissing',
    'ProviderUnavailable',
    'ValidationFailure',
    'BuildFailure',
    'DeleteFailure',
    # Models
    'Provider',
    'ResourceKind',
    'CloudResource',
    'RunConfig',
    'CleanupPlan',
    'DeleteOutcome',
    'ProviderStatus',
    'ProviderReport',
    'RunStatus',
    'RunReport',
    # Workflow
    'build_plan',
    'is_eligible',
    'matches_prefix',
    'Sweeper',
    'sweep',
    'VersionPolicy',
    'bump_version',
    'format_image_name',
    'provider_image_name',
    'resolve_version',
    # Utils
    'setup_logging',
    'write_json',
]
