"""
Azure client: managed images, snapshots and virtual machines of one subscription.
"""
import logging
from typing import Dict, Iterator, List, Optional, Set

from azure.identity import DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient

from ..constants import AZURE_BUILDER_VM_PREFIX, AZURE_EMERGENCY_POWER_STATES
from ..errors import ProviderUnavailable
from ..models import CloudResource, Provider, ResourceKind, RunConfig
from ..utils import parse_timestamp, retry_with_backoff
from .base import ProviderClient

logger = logging.getLogger(__name__)

AZURE_MANAGEMENT_SCOPE = "https://management.azure.com/.default"


def _extract_resource_group(resource_id: str) -> str:
    """Extract resource group from Azure resource ID."""
    try:
        parts = resource_id.split('/')
        rg_index = [p.lower() for p in parts].index('resourcegroups') + 1
        return parts[rg_index]
    except (ValueError, IndexError):
        return 'unknown'


def _image_source_snapshot(image) -> Optional[str]:
    """Id of the snapshot an image's OS disk was captured from, if any."""
    storage_profile = getattr(image, 'storage_profile', None)
    os_disk = getattr(storage_profile, 'os_disk', None) if storage_profile else None
    snapshot = getattr(os_disk, 'snapshot', None) if os_disk else None
    snapshot_id = getattr(snapshot, 'id', None) if snapshot else None
    return snapshot_id.lower() if isinstance(snapshot_id, str) else None


class AzureProvider(ProviderClient):
    """Compute resources, read and deleted through azure-mgmt-compute."""

    provider = Provider.AZURE

    def __init__(
        self,
        run_config: RunConfig,
        credential=None,
        compute_client: Optional[ComputeManagementClient] = None,
    ):
        super().__init__(run_config)
        self.subscription_id = run_config.azure_subscription
        self._credential = credential
        self._compute_client = compute_client

    def check_available(self) -> None:
        """Require a subscription id and a credential that can get a management token."""
        if not self.subscription_id:
            raise ProviderUnavailable("No Azure subscription set (ARM_SUBSCRIPTION_ID)", "azure")

        if self._credential is None:
            self._credential = DefaultAzureCredential()

        try:
            self._credential.get_token(AZURE_MANAGEMENT_SCOPE)
        except Exception as e:
            raise ProviderUnavailable(
                f"Azure not authenticated: {e}", "azure", original_error=e
            ) from e

    @property
    def compute(self) -> ComputeManagementClient:
        if self._compute_client is None:
            self._compute_client = ComputeManagementClient(self._credential, self.subscription_id)
        return self._compute_client

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    @retry_with_backoff()
    def _list_images(self) -> list:
        return [image for image in self.compute.images.list() if image.id]

    @retry_with_backoff()
    def _list_snapshots(self) -> list:
        return [snapshot for snapshot in self.compute.snapshots.list() if snapshot.id]

    @retry_with_backoff()
    def _list_vms(self) -> list:
        return [vm for vm in self.compute.virtual_machines.list_all() if vm.id]

    def _resource(self, kind: ResourceKind, item, **kwargs) -> CloudResource:
        return CloudResource(
            provider=self.provider,
            kind=kind,
            resource_id=item.id,
            name=item.name,
            region=item.location,
            tags=dict(item.tags or {}),
            location={'resource_group': _extract_resource_group(item.id)},
            **kwargs,
        )

    def _is_builder_vm(self, vm) -> bool:
        tags = vm.tags or {}
        if tags.get(self.run_config.builder_tag_key) == self.run_config.builder_tag_value:
            return True
        return vm.name.startswith(AZURE_BUILDER_VM_PREFIX)

    def list_resources(self, prefix: str) -> Iterator[CloudResource]:
        for vm in self._list_vms():
            if self._is_builder_vm(vm):
                yield self._resource(ResourceKind.INSTANCE, vm, builder_owned=True,
                                     state=vm.provisioning_state)
            elif vm.name.startswith(prefix):
                yield self._resource(ResourceKind.INSTANCE, vm, state=vm.provisioning_state)

        images = [image for image in self._list_images() if image.name.startswith(prefix)]

        images_by_snapshot: Dict[str, Set[str]] = {}
        for image in images:
            source = _image_source_snapshot(image)
            if source:
                images_by_snapshot.setdefault(source, set()).add(image.id)
            yield self._resource(ResourceKind.IMAGE, image, state=image.provisioning_state)

        for snapshot in self._list_snapshots():
            if not snapshot.name.startswith(prefix):
                continue
            yield self._resource(
                ResourceKind.SNAPSHOT,
                snapshot,
                created_at=parse_timestamp(snapshot.time_created),
                parent_refs=frozenset(images_by_snapshot.get(snapshot.id.lower(), set())),
                state=snapshot.provisioning_state,
            )

    def _power_state(self, resource: CloudResource) -> Optional[str]:
        view = self.compute.virtual_machines.instance_view(
            resource.location['resource_group'], resource.name
        )
        for status in view.statuses or []:
            if status.code and status.code.startswith('PowerState/'):
                return status.code
        return None

    def list_builder_instances(self) -> Iterator[CloudResource]:
        for vm in self._list_vms():
            if not self._is_builder_vm(vm):
                continue
            resource = self._resource(ResourceKind.INSTANCE, vm, builder_owned=True)
            power_state = self._power_state(resource)
            if power_state in AZURE_EMERGENCY_POWER_STATES:
                yield self._resource(ResourceKind.INSTANCE, vm, builder_owned=True, state=power_state)

    def find_images(self, name: str) -> List[CloudResource]:
        return [
            self._resource(ResourceKind.IMAGE, image, state=image.provisioning_state)
            for image in self._list_images()
            if image.name == name
        ]

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def delete(self, resource: CloudResource) -> None:
        resource_group = resource.location.get('resource_group') or _extract_resource_group(resource.resource_id)
        try:
            if resource.kind == ResourceKind.INSTANCE:
                poller = self.compute.virtual_machines.begin_delete(resource_group, resource.name)
            elif resource.kind == ResourceKind.IMAGE:
                poller = self.compute.images.begin_delete(resource_group, resource.name)
            elif resource.kind == ResourceKind.SNAPSHOT:
                poller = self.compute.snapshots.begin_delete(resource_group, resource.name)
            else:
                raise ValueError(f"Unsupported resource kind: {resource.kind.value}")
            poller.result()
        except Exception as e:
            raise self._delete_failure(resource, e) from e
