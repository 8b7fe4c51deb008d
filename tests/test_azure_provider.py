"""
Tests for the Azure provider client using unittest.mock.

Covers:
- Subscription and credential checks
- VM, managed image and snapshot enumeration
- Snapshot to image parent references
- Power-state filtering for emergency cleanup
- Deletion through pollers
"""
import os
import sys
from unittest.mock import Mock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pkrkit.errors import DeleteFailure, ProviderUnavailable
from pkrkit.models import CloudResource, Provider, ResourceKind, RunConfig
from pkrkit.planner import build_plan, check_ordering
from pkrkit.providers.azure import AzureProvider, _extract_resource_group

SUBSCRIPTION = "12345678-1234-1234-1234-123456789012"
RG_PATH = f"/subscriptions/{SUBSCRIPTION}/resourceGroups/packer-images-rg/providers/Microsoft.Compute"

# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def mock_credential():
    """Create a mock Azure credential."""
    return Mock()


@pytest.fixture
def compute_client():
    client = Mock()
    client.virtual_machines.list_all.return_value = []
    client.images.list.return_value = []
    client.snapshots.list.return_value = []
    return client


@pytest.fixture
def provider(mock_credential, compute_client):
    return AzureProvider(
        RunConfig(prefix="poc-nginx-image", azure_subscription=SUBSCRIPTION),
        credential=mock_credential,
        compute_client=compute_client,
    )


# =============================================================================
# Helper Functions
# =============================================================================

def create_mock_vm(name: str, tags: dict = None):
    """Create a mock Azure VM object."""
    vm = Mock()
    vm.id = f"{RG_PATH}/virtualMachines/{name}"
    vm.name = name
    vm.location = "eastus"
    vm.tags = tags or {}
    vm.provisioning_state = "Succeeded"
    return vm


def create_mock_image(name: str, source_snapshot: str = None):
    """Create a mock managed image."""
    image = Mock()
    image.id = f"{RG_PATH}/images/{name}"
    image.name = name
    image.location = "eastus"
    image.tags = {}
    image.provisioning_state = "Succeeded"
    if source_snapshot:
        image.storage_profile.os_disk.snapshot.id = f"{RG_PATH}/snapshots/{source_snapshot}"
    else:
        image.storage_profile.os_disk.snapshot = None
    return image


def create_mock_snapshot(name: str):
    """Create a mock disk snapshot."""
    snapshot = Mock()
    snapshot.id = f"{RG_PATH}/snapshots/{name}"
    snapshot.name = name
    snapshot.location = "eastus"
    snapshot.tags = {}
    snapshot.provisioning_state = "Succeeded"
    snapshot.time_created = "2024-05-01T10:00:00Z"
    return snapshot


def power_view(code: str):
    view = Mock()
    provisioning = Mock()
    provisioning.code = "ProvisioningState/succeeded"
    power = Mock()
    power.code = code
    view.statuses = [provisioning, power]
    return view


# =============================================================================
# Tests
# =============================================================================

class TestExtractResourceGroup:

    def test_standard_id(self):
        assert _extract_resource_group(f"{RG_PATH}/images/x") == "packer-images-rg"

    def test_lowercase_segment(self):
        assert _extract_resource_group("/subscriptions/s/resourcegroups/rg1/providers/x") == "rg1"

    def test_invalid_id(self):
        assert _extract_resource_group("not-an-id") == "unknown"


class TestAvailability:

    def test_missing_subscription(self, mock_credential):
        provider = AzureProvider(RunConfig(), credential=mock_credential)
        with pytest.raises(ProviderUnavailable, match="subscription"):
            provider.check_available()

    def test_token_failure(self, mock_credential):
        mock_credential.get_token.side_effect = Exception("no login")
        provider = AzureProvider(RunConfig(azure_subscription=SUBSCRIPTION), credential=mock_credential)
        with pytest.raises(ProviderUnavailable):
            provider.check_available()

    def test_available(self, provider, mock_credential):
        provider.check_available()
        mock_credential.get_token.assert_called_once()


class TestListResources:

    def test_images_by_prefix(self, provider, compute_client):
        compute_client.images.list.return_value = [
            create_mock_image("poc-nginx-image-azure-v1.0.0"),
            create_mock_image("other-image"),
        ]

        resources = list(provider.list_resources("poc-nginx-image"))

        assert [r.name for r in resources] == ["poc-nginx-image-azure-v1.0.0"]
        assert resources[0].location == {"resource_group": "packer-images-rg"}

    def test_builder_vms(self, provider, compute_client):
        compute_client.virtual_machines.list_all.return_value = [
            create_mock_vm("pkrvm6512ab"),
            create_mock_vm("tagged", tags={"Name": "Packer Builder"}),
            create_mock_vm("web-1"),
        ]

        resources = list(provider.list_resources("poc-nginx-image"))

        assert [(r.name, r.builder_owned) for r in resources] == [("pkrvm6512ab", True), ("tagged", True)]

    def test_snapshot_references_image(self, provider, compute_client):
        compute_client.images.list.return_value = [
            create_mock_image("poc-nginx-image-azure-v1.0.0", source_snapshot="poc-nginx-image-snap"),
        ]
        compute_client.snapshots.list.return_value = [
            create_mock_snapshot("poc-nginx-image-snap"),
            create_mock_snapshot("other-snap"),
        ]

        resources = list(provider.list_resources("poc-nginx-image"))
        snapshots = [r for r in resources if r.kind == ResourceKind.SNAPSHOT]

        assert [s.name for s in snapshots] == ["poc-nginx-image-snap"]
        assert snapshots[0].parent_refs == frozenset({f"{RG_PATH}/images/poc-nginx-image-azure-v1.0.0"})
        assert check_ordering(build_plan(resources)) == []

    def test_builder_instances_by_power_state(self, provider, compute_client):
        compute_client.virtual_machines.list_all.return_value = [
            create_mock_vm("pkrvm-running"),
            create_mock_vm("pkrvm-stopped"),
            create_mock_vm("web-1"),
        ]
        compute_client.virtual_machines.instance_view.side_effect = lambda rg, name: (
            power_view("PowerState/running") if name == "pkrvm-running" else power_view("PowerState/deallocated")
        )

        found = list(provider.list_builder_instances())

        assert [r.name for r in found] == ["pkrvm-running"]
        assert found[0].state == "PowerState/running"

    def test_find_images_exact(self, provider, compute_client):
        compute_client.images.list.return_value = [
            create_mock_image("foo-azure-v1.0.0"),
            create_mock_image("foo-azure-v1.0.0-old"),
        ]
        assert [r.name for r in provider.find_images("foo-azure-v1.0.0")] == ["foo-azure-v1.0.0"]


class TestDelete:

    def test_delete_image(self, provider, compute_client):
        resource = CloudResource(Provider.AZURE, ResourceKind.IMAGE, f"{RG_PATH}/images/img", "img",
                                 location={"resource_group": "packer-images-rg"})

        provider.delete(resource)

        compute_client.images.begin_delete.assert_called_once_with("packer-images-rg", "img")
        compute_client.images.begin_delete.return_value.result.assert_called_once()

    def test_delete_snapshot_rg_from_id(self, provider, compute_client):
        resource = CloudResource(Provider.AZURE, ResourceKind.SNAPSHOT, f"{RG_PATH}/snapshots/snap", "snap")

        provider.delete(resource)

        compute_client.snapshots.begin_delete.assert_called_once_with("packer-images-rg", "snap")

    def test_delete_vm_failure(self, provider, compute_client):
        compute_client.virtual_machines.begin_delete.side_effect = RuntimeError("conflict")
        resource = CloudResource(Provider.AZURE, ResourceKind.INSTANCE, f"{RG_PATH}/virtualMachines/vm", "vm")

        with pytest.raises(DeleteFailure) as exc_info:
            provider.delete(resource)

        assert exc_info.value.error_kind == "other"
