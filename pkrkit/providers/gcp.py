"""
GCP client: Compute Engine images and instances of one project.
"""
import logging
from typing import Iterator, List, Optional, Tuple

import google.auth
from google.api_core.exceptions import NotFound
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import compute_v1

from ..constants import GCP_BUILDER_INSTANCE_PREFIX, GCP_EMERGENCY_INSTANCE_STATES
from ..errors import ProviderUnavailable
from ..models import CloudResource, Provider, ResourceKind, RunConfig
from ..utils import parse_timestamp, retry_with_backoff, tags_to_dict
from .base import ProviderClient

logger = logging.getLogger(__name__)


def _zone_name(zone: str) -> str:
    """'zones/us-central1-a' -> 'us-central1-a'"""
    return zone.split('/')[-1] if '/' in zone else zone


class GCPProvider(ProviderClient):
    """Compute Engine resources, read and deleted through google-cloud-compute."""

    provider = Provider.GCP

    def __init__(
        self,
        run_config: RunConfig,
        credentials=None,
        images_client: Optional[compute_v1.ImagesClient] = None,
        instances_client: Optional[compute_v1.InstancesClient] = None,
    ):
        super().__init__(run_config)
        self.project = run_config.gcp_project
        self._credentials = credentials
        self._images_client = images_client
        self._instances_client = instances_client

    def check_available(self) -> None:
        """Resolve application default credentials and the target project."""
        if self._credentials is None:
            try:
                credentials, default_project = google.auth.default()
            except DefaultCredentialsError as e:
                raise ProviderUnavailable(
                    f"GCP credentials not configured: {e}", "gcp", original_error=e
                ) from e
            self._credentials = credentials
            self.project = self.project or default_project

        if not self.project:
            raise ProviderUnavailable("No GCP project set", "gcp")

        logger.info(f"GCP project: {self.project}")

    @property
    def images(self) -> compute_v1.ImagesClient:
        if self._images_client is None:
            self._images_client = compute_v1.ImagesClient(credentials=self._credentials)
        return self._images_client

    @property
    def instances(self) -> compute_v1.InstancesClient:
        if self._instances_client is None:
            self._instances_client = compute_v1.InstancesClient(credentials=self._credentials)
        return self._instances_client

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    @retry_with_backoff()
    def _list_images(self) -> list:
        return list(self.images.list(project=self.project))

    @retry_with_backoff()
    def _list_instances(self) -> List[Tuple[str, object]]:
        """All instances of the project as (zone, instance) pairs."""
        request = compute_v1.AggregatedListInstancesRequest(project=self.project)
        pairs = []
        for zone, response in self.instances.aggregated_list(request=request):
            for instance in response.instances or []:
                pairs.append((_zone_name(zone), instance))
        return pairs

    def _image_resource(self, image) -> CloudResource:
        return CloudResource(
            provider=self.provider,
            kind=ResourceKind.IMAGE,
            resource_id=image.name,
            name=image.name,
            created_at=parse_timestamp(image.creation_timestamp),
            region='global',
            state=image.status,
            tags=tags_to_dict(image.labels),
            location={'project': self.project},
        )

    def _instance_resource(self, zone: str, instance, builder_owned: bool) -> CloudResource:
        return CloudResource(
            provider=self.provider,
            kind=ResourceKind.INSTANCE,
            resource_id=instance.name,
            name=instance.name,
            created_at=parse_timestamp(instance.creation_timestamp),
            region='-'.join(zone.split('-')[:-1]),
            state=instance.status,
            builder_owned=builder_owned,
            tags=tags_to_dict(instance.labels),
            location={'project': self.project, 'zone': zone},
        )

    def list_resources(self, prefix: str) -> Iterator[CloudResource]:
        for zone, instance in self._list_instances():
            if instance.name.startswith(GCP_BUILDER_INSTANCE_PREFIX):
                yield self._instance_resource(zone, instance, builder_owned=True)
            elif instance.name.startswith(prefix):
                yield self._instance_resource(zone, instance, builder_owned=False)

        # The images API has no prefix filter, so the listing is filtered here
        for image in self._list_images():
            if image.name.startswith(prefix):
                yield self._image_resource(image)

    def list_builder_instances(self) -> Iterator[CloudResource]:
        for zone, instance in self._list_instances():
            if (instance.name.startswith(GCP_BUILDER_INSTANCE_PREFIX)
                    and instance.status in GCP_EMERGENCY_INSTANCE_STATES):
                yield self._instance_resource(zone, instance, builder_owned=True)

    def find_images(self, name: str) -> List[CloudResource]:
        try:
            image = self.images.get(project=self.project, image=name)
        except NotFound:
            return []
        return [self._image_resource(image)]

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def delete(self, resource: CloudResource) -> None:
        project = resource.location.get('project', self.project)
        try:
            if resource.kind == ResourceKind.IMAGE:
                operation = self.images.delete(project=project, image=resource.resource_id)
            elif resource.kind == ResourceKind.INSTANCE:
                operation = self.instances.delete(
                    project=project,
                    zone=resource.location['zone'],
                    instance=resource.resource_id,
                )
            else:
                raise ValueError(f"Unsupported resource kind: {resource.kind.value}")
            # Wait for the long-running operation
            operation.result()
        except Exception as e:
            raise self._delete_failure(resource, e) from e
