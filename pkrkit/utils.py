"""
Utility functions for pkrkit commands.

Logging Level Standards:
------------------------
- ERROR: Provider-level failures that stop a whole batch
         "Failed to list AWS resources: {e}"
- WARNING: Skipped providers, individual delete failures
           "GCP unavailable, skipping: no project configured"
           "Failed to delete snap-0abc (in_use): {e}"
- INFO: Progress messages, resource counts
        "Found 3 AWS resources matching 'poc-nginx-image'"
- DEBUG: Per-resource detail
         "Planned image ami-0abc (poc-nginx-image-aws-v1.0.0)"
"""
import json
import logging
import os
import re
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, TypeVar

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .constants import DEFAULT_RETRY_ATTEMPTS
from .errors import AuthenticationMissing

logger = logging.getLogger(__name__)

# Type variable for generic function decorator
F = TypeVar('F', bound=Callable[..., Any])


# =============================================================================
# Error Classification
# =============================================================================

# AWS error codes that indicate auth/permission issues
AWS_AUTH_ERROR_CODES = {
    'AccessDenied', 'AccessDeniedException', 'UnauthorizedAccess',
    'UnauthorizedOperation', 'InvalidClientTokenId', 'ExpiredToken',
    'ExpiredTokenException', 'AuthFailure', 'InvalidIdentityToken',
    'CredentialsNotFound', 'SignatureDoesNotMatch',
}

AWS_NOT_FOUND_ERROR_CODES = {
    'InvalidAMIID.NotFound', 'InvalidAMIID.Unavailable', 'InvalidSnapshot.NotFound',
    'InvalidInstanceID.NotFound', 'InvalidGroup.NotFound', 'InvalidKeyPair.NotFound',
}

AWS_IN_USE_ERROR_CODES = {
    'InvalidSnapshot.InUse', 'DependencyViolation', 'InvalidGroup.InUse',
    'IncorrectState', 'IncorrectInstanceState',
}

# Azure error status codes that indicate auth/permission issues
AZURE_AUTH_STATUS_CODES = {401, 403}

# GCP exception types that indicate auth/permission issues
GCP_AUTH_EXCEPTION_NAMES = {'PermissionDenied', 'Unauthenticated', 'Forbidden'}

ERROR_KIND_PERMISSION_DENIED = "permission_denied"
ERROR_KIND_NOT_FOUND = "not_found"
ERROR_KIND_IN_USE = "in_use"
ERROR_KIND_OTHER = "other"


def _aws_error_code(exc: Exception) -> str:
    return getattr(exc, 'response', {}).get('Error', {}).get('Code', '')


def is_auth_error(exc: Exception) -> bool:
    """
    Check if an exception represents an authentication/authorization error.

    Detects auth errors across cloud providers:
    - AWS: ClientError with specific error codes, NoCredentialsError
    - Azure: HttpResponseError with 401/403 status, ClientAuthenticationError
    - GCP: PermissionDenied, Unauthenticated exceptions, DefaultCredentialsError

    Args:
        exc: The exception to check

    Returns:
        True if the exception is an authentication/authorization error
    """
    if isinstance(exc, AuthenticationMissing):
        return True

    exc_type_name = type(exc).__name__

    # AWS - botocore
    if exc_type_name == 'ClientError':
        return _aws_error_code(exc) in AWS_AUTH_ERROR_CODES
    if exc_type_name in ('NoCredentialsError', 'PartialCredentialsError'):
        return True

    # Azure - HttpResponseError or ClientAuthenticationError
    if exc_type_name == 'ClientAuthenticationError':
        return True
    if exc_type_name == 'HttpResponseError':
        status_code = getattr(exc, 'status_code', None)
        if status_code in AZURE_AUTH_STATUS_CODES:
            return True
        error_msg = str(exc).lower()
        return 'authentication' in error_msg or 'authorization' in error_msg

    # GCP - PermissionDenied, Unauthenticated
    if exc_type_name in GCP_AUTH_EXCEPTION_NAMES or exc_type_name == 'DefaultCredentialsError':
        return True

    return False


def classify_error(exc: Exception) -> str:
    """Map a provider SDK exception to an error kind for the run report."""
    if is_auth_error(exc):
        return ERROR_KIND_PERMISSION_DENIED

    exc_type_name = type(exc).__name__

    if exc_type_name == 'ClientError':
        code = _aws_error_code(exc)
        if code in AWS_NOT_FOUND_ERROR_CODES or code.endswith('.NotFound'):
            return ERROR_KIND_NOT_FOUND
        if code in AWS_IN_USE_ERROR_CODES or code.endswith('.InUse'):
            return ERROR_KIND_IN_USE
        return ERROR_KIND_OTHER

    if exc_type_name in ('ResourceNotFoundError', 'NotFound'):
        return ERROR_KIND_NOT_FOUND
    if exc_type_name in ('ResourceExistsError', 'Conflict', 'FailedPrecondition'):
        return ERROR_KIND_IN_USE
    if exc_type_name == 'HttpResponseError':
        status_code = getattr(exc, 'status_code', None)
        if status_code == 404:
            return ERROR_KIND_NOT_FOUND
        if status_code == 409:
            return ERROR_KIND_IN_USE

    return ERROR_KIND_OTHER


# =============================================================================
# Retry
# =============================================================================

def retry_with_backoff(
    max_attempts: int = DEFAULT_RETRY_ATTEMPTS,
    min_wait: float = 1,
    max_wait: float = 30,
) -> Callable[[F], F]:
    """
    Decorator for retrying listing calls with exponential backoff.

    Auth errors are never retried: they mean the provider must be skipped.

    Example:
        @retry_with_backoff(max_attempts=5)
        def list_images():
            ...
    """
    def decorator(func: F) -> F:
        return retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception(lambda e: not is_auth_error(e)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )(func)  # type: ignore[return-value]
    return decorator


# =============================================================================
# Tags & Ids
# =============================================================================

def tags_to_dict(tags: Any) -> Dict[str, str]:
    """
    Convert cloud provider tag list to dictionary.

    Supports:
    - AWS format: [{"Key": "Name", "Value": "my-instance"}]
    - Azure/GCP format: {"Name": "my-instance"} (already a mapping)
    """
    if not tags:
        return {}

    if isinstance(tags, dict):
        return dict(tags)

    if isinstance(tags, list):
        return {tag.get("Key", ""): tag.get("Value", "") for tag in tags if tag.get("Key")}

    # proto-plus MapComposite (GCP labels)
    try:
        return dict(tags)
    except (TypeError, ValueError):
        return {}


def get_name_from_tags(tags: Dict[str, str], resource_id: str = "") -> str:
    """Get name from tags, falling back to resource ID."""
    return tags.get("Name", tags.get("name", resource_id))


def generate_run_id() -> str:
    """Generate a unique run ID."""
    return f"{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}-{str(uuid.uuid4())[:8]}"


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse provider timestamps (ISO strings or datetimes) into datetimes."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value}")
        return None


def mask_account_id(arn: str) -> str:
    """
    Mask the account ID in an AWS ARN for safe logging.

    Example: arn:aws:iam::123456789012:role/MyRole
          -> arn:aws:iam::***:role/MyRole
    """
    return re.sub(r'(\d{12})', '***', arn)


# =============================================================================
# Logging
# =============================================================================

_LOG_REDACT_PATTERNS = [
    # AWS account IDs
    (re.compile(r'\b(\d{12})\b(?!\d)'), '***'),
    # Azure subscription paths and bare GUIDs
    (re.compile(r'(/subscriptions/)([0-9a-f-]{36})', re.IGNORECASE), r'\1***'),
    (re.compile(r'\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b', re.IGNORECASE), '***'),
]


def redact_log_message(message: str) -> str:
    """Mask account and subscription identifiers in a log message."""
    if not message:
        return message

    for pattern, replacement in _LOG_REDACT_PATTERNS:
        message = pattern.sub(replacement, message)

    return message


class RedactingFilter(logging.Filter):
    """
    Logging filter that redacts account identifiers from log messages.

    Attached to the file handler only; console output is left intact.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_log_message(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_log_message(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def setup_logging(level: str = "INFO", output_dir: Optional[str] = None) -> logging.Logger:
    """
    Setup logging configuration with console and optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        output_dir: If provided, also write logs to a file in this directory

    Returns:
        Logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
        log_file = os.path.join(output_dir, f"pkrkit_{timestamp}.log")

        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RedactingFilter())
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to: {log_file}")

    return logging.getLogger(__name__)


# =============================================================================
# Output
# =============================================================================

def write_json(data: Any, filepath: str) -> None:
    """Write data to JSON file with secure permissions."""
    # Owner read/write only: reports carry account and resource identifiers
    fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        f = os.fdopen(fd, 'w')
    except Exception:
        os.close(fd)
        raise
    with f:
        json.dump(data, f, indent=2, default=str)
    logger.info(f"Wrote {filepath}")


def print_resource_table(console: Console, title: str, resources: Iterable[Any]) -> None:
    """Print planned resources as a table."""
    table = Table(title=title)
    table.add_column("Kind", style="cyan")
    table.add_column("ID")
    table.add_column("Name", style="yellow")
    table.add_column("Created")
    table.add_column("Depends on", style="dim")

    for resource in resources:
        table.add_row(
            resource.kind.value,
            resource.resource_id,
            resource.name or "",
            resource.created_at.strftime('%Y-%m-%d %H:%M') if resource.created_at else "",
            ", ".join(sorted(resource.parent_refs)),
        )

    console.print(table)


STATUS_STYLES = {
    'completed': ('green', 'Completed fully'),
    'completed_with_failures': ('yellow', 'Completed with some failures'),
    'aborted': ('red', 'Aborted before starting'),
}


def print_run_summary(console: Console, report: Any) -> None:
    """Print per provider and kind counts, then the overall run status."""
    table = Table(title="Cleanup Summary" + (" (dry run)" if report.dry_run else ""))
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Kind")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")

    for provider_report in report.reports:
        rows = provider_report.counts()
        if not rows:
            table.add_row(provider_report.provider.value, provider_report.status.value, "-", "0", "0", "0")
            continue
        for row in rows:
            table.add_row(
                row.provider.value,
                provider_report.status.value,
                row.kind.value,
                str(row.succeeded),
                str(row.failed),
                str(row.skipped),
            )

    style, label = STATUS_STYLES[report.status.value]
    console.print(Panel(table, title=f"[{style}]{label}[/{style}]"))

    for provider_report in report.reports:
        if provider_report.message:
            console.print(f"  [dim]{provider_report.provider.value}: {provider_report.message}[/dim]")
        for failure in provider_report.failures:
            console.print(f"  [red]✗[/red] {failure.resource_id} ({failure.error_kind}): {failure.message}")
