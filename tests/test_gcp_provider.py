"""
Tests for the GCP provider client using unittest.mock.

Covers:
- Credential and project resolution
- Image and instance enumeration by prefix
- Packer build instances
- Deletion through long-running operations
"""
import os
import sys
from typing import Optional
from unittest.mock import Mock, patch

import pytest
from google.api_core.exceptions import Forbidden, NotFound, ServiceUnavailable
from google.auth.exceptions import DefaultCredentialsError

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pkrkit.errors import DeleteFailure, ProviderUnavailable, ValidationFailure
from pkrkit.models import CloudResource, Provider, ResourceKind, RunConfig
from pkrkit.providers.gcp import GCPProvider
from pkrkit.versioning import VersionPolicy, resolve_version

# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def project_id():
    """Test project ID."""
    return "my-test-project"


@pytest.fixture
def mock_credentials():
    """Create mock GCP credentials."""
    return Mock()


@pytest.fixture
def images_client():
    return Mock()


@pytest.fixture
def instances_client():
    client = Mock()
    client.aggregated_list.return_value = []
    return client


@pytest.fixture
def provider(project_id, mock_credentials, images_client, instances_client):
    return GCPProvider(
        RunConfig(prefix="poc-nginx-image", gcp_project=project_id),
        credentials=mock_credentials,
        images_client=images_client,
        instances_client=instances_client,
    )


# =============================================================================
# Helper Functions
# =============================================================================

def create_mock_image(name: str, labels: Optional[dict] = None, status: str = "READY"):
    """Create a mock Compute Engine image."""
    image = Mock()
    image.name = name
    image.status = status
    image.labels = labels or {}
    image.creation_timestamp = "2024-05-01T10:00:00.000-07:00"
    return image


def create_mock_instance(name: str, status: str = "RUNNING", labels: Optional[dict] = None):
    """Create a mock Compute Engine instance."""
    instance = Mock()
    instance.name = name
    instance.status = status
    instance.labels = labels or {}
    instance.creation_timestamp = "2024-05-01T10:00:00.000-07:00"
    return instance


def aggregated(*pairs):
    """Build an aggregated_list response: [(zone, [instances]), ...]."""
    result = []
    for zone, instances in pairs:
        scoped = Mock()
        scoped.instances = instances
        result.append((f"zones/{zone}", scoped))
    return result


# =============================================================================
# Availability
# =============================================================================

class TestAvailability:

    def test_configured_project(self, provider):
        provider.check_available()
        assert provider.project == "my-test-project"

    @patch("pkrkit.providers.gcp.google.auth.default")
    def test_default_credentials_project(self, mock_default):
        mock_default.return_value = (Mock(), "adc-project")
        provider = GCPProvider(RunConfig())

        provider.check_available()

        assert provider.project == "adc-project"

    @patch("pkrkit.providers.gcp.google.auth.default")
    def test_missing_credentials(self, mock_default):
        mock_default.side_effect = DefaultCredentialsError("not found")
        with pytest.raises(ProviderUnavailable):
            GCPProvider(RunConfig(gcp_project="p")).check_available()

    @patch("pkrkit.providers.gcp.google.auth.default")
    def test_missing_project(self, mock_default):
        mock_default.return_value = (Mock(), None)
        with pytest.raises(ProviderUnavailable, match="No GCP project"):
            GCPProvider(RunConfig()).check_available()


# =============================================================================
# Listing
# =============================================================================

class TestListResources:

    def test_images_by_prefix(self, provider, images_client):
        images_client.list.return_value = [
            create_mock_image("poc-nginx-image-gcp-v1-0-0", labels={"builder": "packer"}),
            create_mock_image("other-image"),
        ]

        resources = list(provider.list_resources("poc-nginx-image"))

        assert [r.resource_id for r in resources] == ["poc-nginx-image-gcp-v1-0-0"]
        image = resources[0]
        assert image.kind == ResourceKind.IMAGE
        assert image.provider == Provider.GCP
        assert image.tags == {"builder": "packer"}
        assert image.location == {"project": "my-test-project"}
        images_client.list.assert_called_once_with(project="my-test-project")

    def test_instances(self, provider, images_client, instances_client):
        images_client.list.return_value = []
        instances_client.aggregated_list.return_value = aggregated(
            ("us-central1-a", [
                create_mock_instance("packer-6512ab"),
                create_mock_instance("poc-nginx-image-debug"),
                create_mock_instance("web-1"),
            ]),
            ("europe-west1-b", None),
        )

        resources = list(provider.list_resources("poc-nginx-image"))

        assert [(r.resource_id, r.builder_owned) for r in resources] == [
            ("packer-6512ab", True),
            ("poc-nginx-image-debug", False),
        ]
        assert resources[0].location["zone"] == "us-central1-a"
        assert resources[0].region == "us-central1"

    def test_builder_instances_running_only(self, provider, instances_client):
        instances_client.aggregated_list.return_value = aggregated(
            ("us-central1-a", [
                create_mock_instance("packer-running"),
                create_mock_instance("packer-stopped", status="TERMINATED"),
                create_mock_instance("web-1"),
            ]),
        )

        found = [r.resource_id for r in provider.list_builder_instances()]

        assert found == ["packer-running"]


class TestFindImages:

    def test_found(self, provider, images_client):
        images_client.get.return_value = create_mock_image("foo-gcp-v1-0-0")
        assert provider.image_exists("foo-gcp-v1-0-0")
        images_client.get.assert_called_once_with(project="my-test-project", image="foo-gcp-v1-0-0")

    def test_not_found(self, provider, images_client):
        images_client.get.side_effect = NotFound("missing")
        assert provider.find_images("foo-gcp-v1-0-0") == []


class TestDuplicateCheck:
    """Pre-build version check against images named the way the googlecompute builder names them."""

    @staticmethod
    def known_images(*names):
        def get(project, image):
            if image in names:
                return create_mock_image(image)
            raise NotFound(f"The resource 'projects/{project}/global/images/{image}' was not found")
        return get

    def test_existing_image_detected(self, provider, images_client):
        images_client.get.side_effect = self.known_images("foo-gcp-v1-0-0")

        with pytest.raises(ValidationFailure, match="foo-gcp-v1-0-0"):
            resolve_version([provider], "foo", "1.0.0", VersionPolicy.FAIL)
        images_client.get.assert_called_once_with(project="my-test-project", image="foo-gcp-v1-0-0")

    def test_auto_increment(self, provider, images_client):
        images_client.get.side_effect = self.known_images("foo-gcp-v1-0-0", "foo-gcp-v1-0-1")

        check = resolve_version([provider], "foo", "1.0.0", VersionPolicy.AUTO_INCREMENT)

        assert check.resolved_version == "1.0.2"
        assert check.image_names() == {"gcp": "foo-gcp-v1-0-2"}

    def test_permission_denied_skips_gcp(self, provider, images_client):
        images_client.get.side_effect = Forbidden("Required 'compute.images.get' permission")

        check = resolve_version([provider], "foo", "1.0.0", VersionPolicy.FAIL)

        assert check.skipped_providers == ["gcp"]
        assert check.checked_providers == []
        assert not check.has_conflict

    def test_lookup_error_names_provider(self, provider, images_client):
        images_client.get.side_effect = ServiceUnavailable("backend unavailable")

        with pytest.raises(ValidationFailure, match="GCP image lookup failed for foo-gcp-v1-0-0"):
            resolve_version([provider], "foo", "1.0.0", VersionPolicy.FAIL)


# =============================================================================
# Deletion
# =============================================================================

class TestDelete:

    def test_delete_image_waits_for_operation(self, provider, images_client):
        operation = Mock()
        images_client.delete.return_value = operation
        resource = CloudResource(Provider.GCP, ResourceKind.IMAGE, "poc-nginx-image-gcp-v1-0-0",
                                 location={"project": "my-test-project"})

        provider.delete(resource)

        images_client.delete.assert_called_once_with(project="my-test-project", image="poc-nginx-image-gcp-v1-0-0")
        operation.result.assert_called_once()

    def test_delete_instance_uses_zone(self, provider, instances_client):
        resource = CloudResource(Provider.GCP, ResourceKind.INSTANCE, "packer-6512ab",
                                 location={"project": "my-test-project", "zone": "us-central1-a"})

        provider.delete(resource)

        instances_client.delete.assert_called_once_with(
            project="my-test-project", zone="us-central1-a", instance="packer-6512ab"
        )

    def test_delete_failure_classified(self, provider, images_client):
        images_client.delete.side_effect = NotFound("gone")
        resource = CloudResource(Provider.GCP, ResourceKind.IMAGE, "poc-nginx-image-gcp-v1-0-0")

        with pytest.raises(DeleteFailure) as exc_info:
            provider.delete(resource)

        assert exc_info.value.error_kind == "not_found"

    def test_snapshot_unsupported(self, provider):
        resource = CloudResource(Provider.GCP, ResourceKind.SNAPSHOT, "snap")
        with pytest.raises(DeleteFailure):
            provider.delete(resource)
