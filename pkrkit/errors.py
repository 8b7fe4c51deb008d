"""
Error taxonomy for pkrkit commands.

Propagation rules:
- MissingDependency, InvalidArgument: abort the command, exit 1
- AuthenticationMissing / ProviderUnavailable: caught per provider, provider skipped
- ValidationFailure, BuildFailure: abort the command, exit 1
- DeleteFailure: caught per resource, recorded in the run report
"""
from typing import Optional


class PkrkitError(Exception):
    """Base class for errors that end a command with a readable message."""


class MissingDependency(PkrkitError):
    """A required external tool or file is absent."""


class InvalidArgument(PkrkitError):
    """A flag or value given by the operator is not acceptable."""


class AuthenticationMissing(PkrkitError):
    """Provider credentials are absent or rejected.

    Raised when a cloud API returns an auth error that should stop work
    against that provider rather than being logged per resource.
    """
    def __init__(self, message: str, provider: str, original_error: Optional[Exception] = None):
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class ProviderUnavailable(AuthenticationMissing):
    """The provider cannot be used in this run (no credentials, project or subscription)."""


class ValidationFailure(PkrkitError):
    """`packer validate` rejected the image definition."""


class BuildFailure(PkrkitError):
    """`packer init` or `packer build` exited non-zero."""


class DeleteFailure(PkrkitError):
    """A single resource could not be deleted."""
    def __init__(self, message: str, resource_id: str, error_kind: str = "other"):
        self.resource_id = resource_id
        self.error_kind = error_kind
        super().__init__(message)
