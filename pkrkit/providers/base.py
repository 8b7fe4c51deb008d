"""
Common interface for the per-cloud resource clients.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterator, List

from ..errors import DeleteFailure
from ..models import CloudResource, Provider, RunConfig
from ..utils import classify_error

logger = logging.getLogger(__name__)


class ProviderClient(ABC):
    """
    Typed client for one cloud.

    Listing methods return generators built fresh on every call. Nothing
    is cached between calls, so two enumerations always reflect the
    provider's current state.
    """

    provider: Provider

    def __init__(self, run_config: RunConfig):
        self.run_config = run_config

    @property
    def display_name(self) -> str:
        return self.provider.value.upper()

    @abstractmethod
    def check_available(self) -> None:
        """Raise ProviderUnavailable when credentials or account settings are missing."""

    @abstractmethod
    def list_resources(self, prefix: str) -> Iterator[CloudResource]:
        """Yield resources whose name starts with prefix, plus builder-owned leftovers."""

    @abstractmethod
    def list_builder_instances(self) -> Iterator[CloudResource]:
        """Yield running or pending instances carrying the builder marker."""

    @abstractmethod
    def find_images(self, name: str) -> List[CloudResource]:
        """Return images whose name is exactly name."""

    @abstractmethod
    def delete(self, resource: CloudResource) -> None:
        """Delete one resource. Raises DeleteFailure on any provider error."""

    def image_exists(self, name: str) -> bool:
        return bool(self.find_images(name))

    def _delete_failure(self, resource: CloudResource, exc: Exception) -> DeleteFailure:
        """Wrap a provider SDK exception for the run report."""
        return DeleteFailure(
            f"Failed to delete {self.display_name} {resource.kind.value} {resource.label}: {exc}",
            resource_id=resource.resource_id,
            error_kind=classify_error(exc),
        )
