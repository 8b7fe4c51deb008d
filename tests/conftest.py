"""
Shared fixtures: an in-memory provider client that records delete calls.
"""
import os
import sys
from typing import Dict, Iterable, List, Optional

import pytest
from rich.console import Console

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pkrkit.errors import DeleteFailure, ProviderUnavailable
from pkrkit.models import CloudResource, Provider, ResourceKind, RunConfig
from pkrkit.providers.base import ProviderClient


class FakeProvider(ProviderClient):
    """
    Provider client backed by a list of resources.

    Deleted resources disappear from later listings. Ids in fail_ids raise
    DeleteFailure and stay listed. lookup_error is raised by image lookups.
    """

    def __init__(
        self,
        provider: Provider,
        resources: Iterable[CloudResource] = (),
        run_config: Optional[RunConfig] = None,
        available: bool = True,
        list_error: Optional[Exception] = None,
        fail_ids: Optional[Dict[str, str]] = None,
        lookup_error: Optional[Exception] = None,
    ):
        super().__init__(run_config or RunConfig())
        self.provider = provider
        self.resources: List[CloudResource] = list(resources)
        self.available = available
        self.list_error = list_error
        self.fail_ids = dict(fail_ids or {})
        self.lookup_error = lookup_error
        self.deleted: List[str] = []
        self.delete_calls: List[str] = []
        self.list_calls = 0

    def check_available(self) -> None:
        if not self.available:
            raise ProviderUnavailable(f"{self.provider.value} credentials missing", self.provider.value)

    def list_resources(self, prefix: str):
        self.list_calls += 1
        if self.list_error:
            raise self.list_error
        return iter(list(self.resources))

    def list_builder_instances(self):
        self.list_calls += 1
        if self.list_error:
            raise self.list_error
        return iter([
            r for r in self.resources
            if r.kind == ResourceKind.INSTANCE and r.state in ('running', 'pending')
        ])

    def find_images(self, name: str) -> List[CloudResource]:
        if self.lookup_error:
            raise self.lookup_error
        return [r for r in self.resources if r.kind == ResourceKind.IMAGE and r.name == name]

    def delete(self, resource: CloudResource) -> None:
        self.delete_calls.append(resource.resource_id)
        if resource.resource_id in self.fail_ids:
            raise DeleteFailure(
                f"Failed to delete {resource.resource_id}",
                resource_id=resource.resource_id,
                error_kind=self.fail_ids[resource.resource_id],
            )
        self.deleted.append(resource.resource_id)
        self.resources = [r for r in self.resources if r.resource_id != resource.resource_id]


def make_resource(
    resource_id: str,
    name: str = "",
    kind: ResourceKind = ResourceKind.IMAGE,
    provider: Provider = Provider.AWS,
    parents: Iterable[str] = (),
    state: Optional[str] = None,
    builder_owned: bool = False,
    tags: Optional[Dict[str, str]] = None,
) -> CloudResource:
    return CloudResource(
        provider=provider,
        kind=kind,
        resource_id=resource_id,
        name=name,
        parent_refs=frozenset(parents),
        state=state,
        builder_owned=builder_owned,
        tags=tags or {},
    )


@pytest.fixture
def run_config():
    return RunConfig(prefix="poc-nginx-image")


@pytest.fixture
def console():
    """Console writing to an in-memory buffer."""
    return Console(record=True, width=160, file=open(os.devnull, 'w'))


@pytest.fixture
def aws_fixture_resources():
    """An AMI with its snapshot, an unrelated AMI, and a Packer build instance."""
    return [
        make_resource("i-builder", "Packer Builder", ResourceKind.INSTANCE, state="running",
                      tags={"Name": "Packer Builder"}),
        make_resource("ami-111", "poc-nginx-image-aws-v1.0.0"),
        make_resource("ami-222", "other-image"),
        make_resource("snap-111", "poc-nginx-image-aws-v1.0.0", ResourceKind.SNAPSHOT, parents=["ami-111"]),
        make_resource("snap-222", "other-image", ResourceKind.SNAPSHOT, parents=["ami-222"]),
    ]
