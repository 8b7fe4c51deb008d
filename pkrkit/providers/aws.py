"""
AWS client: EC2 instances, AMIs, EBS snapshots, and the temporary
security groups and key pairs Packer leaves behind.
"""
import logging
from typing import Any, Dict, Iterator, List, Optional

import boto3

from ..constants import (
    AWS_BUILDER_ARTIFACT_PREFIX,
    AWS_EMERGENCY_INSTANCE_STATES,
    AWS_LIVE_INSTANCE_STATES,
    DEFAULT_AWS_REGION,
    NAME_TAG_KEY,
)
from ..errors import ProviderUnavailable
from ..models import CloudResource, Provider, ResourceKind, RunConfig
from ..utils import (
    get_name_from_tags,
    mask_account_id,
    parse_timestamp,
    retry_with_backoff,
    tags_to_dict,
)
from .base import ProviderClient

logger = logging.getLogger(__name__)


class AWSProvider(ProviderClient):
    """EC2 resources in a single region, read and deleted through boto3."""

    provider = Provider.AWS

    def __init__(self, run_config: RunConfig, session: Optional[boto3.Session] = None):
        super().__init__(run_config)
        self.region = run_config.aws_region or DEFAULT_AWS_REGION
        self._session = session
        self._ec2_client = None

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = boto3.Session(region_name=self.region)
        return self._session

    @property
    def ec2(self):
        if self._ec2_client is None:
            self._ec2_client = self.session.client('ec2', region_name=self.region)
        return self._ec2_client

    def check_available(self) -> None:
        """Probe credentials with sts:GetCallerIdentity."""
        try:
            identity = self.session.client('sts', region_name=self.region).get_caller_identity()
        except Exception as e:
            raise ProviderUnavailable(
                f"AWS credentials not configured or rejected: {e}", "aws", original_error=e
            ) from e
        logger.info(f"AWS identity: {mask_account_id(identity.get('Arn', ''))} ({self.region})")

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    @retry_with_backoff()
    def _describe_instances(self, filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        instances = []
        paginator = self.ec2.get_paginator('describe_instances')
        for page in paginator.paginate(Filters=filters):
            for reservation in page.get('Reservations', []):
                instances.extend(reservation.get('Instances', []))
        return instances

    @retry_with_backoff()
    def _describe_images(self, filters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        images = []
        paginator = self.ec2.get_paginator('describe_images')
        for page in paginator.paginate(Owners=['self'], Filters=filters):
            images.extend(page.get('Images', []))
        return images

    @retry_with_backoff()
    def _describe_security_groups(self) -> List[Dict[str, Any]]:
        groups = []
        paginator = self.ec2.get_paginator('describe_security_groups')
        for page in paginator.paginate():
            groups.extend(page.get('SecurityGroups', []))
        return groups

    @retry_with_backoff()
    def _describe_key_pairs(self) -> List[Dict[str, Any]]:
        return self.ec2.describe_key_pairs().get('KeyPairs', [])

    def _instance_resource(self, instance: Dict[str, Any], builder_owned: bool) -> CloudResource:
        tags = tags_to_dict(instance.get('Tags', []))
        instance_id = instance.get('InstanceId', '')
        return CloudResource(
            provider=self.provider,
            kind=ResourceKind.INSTANCE,
            resource_id=instance_id,
            name=get_name_from_tags(tags, instance_id),
            created_at=parse_timestamp(instance.get('LaunchTime')),
            region=self.region,
            state=instance.get('State', {}).get('Name'),
            builder_owned=builder_owned,
            tags=tags,
        )

    def _builder_filters(self, states: List[str]) -> List[Dict[str, Any]]:
        return [
            {'Name': f"tag:{self.run_config.builder_tag_key}", 'Values': [self.run_config.builder_tag_value]},
            {'Name': 'instance-state-name', 'Values': states},
        ]

    def list_builder_instances(self) -> Iterator[CloudResource]:
        for instance in self._describe_instances(self._builder_filters(AWS_EMERGENCY_INSTANCE_STATES)):
            yield self._instance_resource(instance, builder_owned=True)

    def list_resources(self, prefix: str) -> Iterator[CloudResource]:
        seen = set()

        # Temporary build instances
        for instance in self._describe_instances(self._builder_filters(AWS_LIVE_INSTANCE_STATES)):
            seen.add(instance.get('InstanceId'))
            yield self._instance_resource(instance, builder_owned=True)

        # Instances orphaned by failed builds carry the image prefix in their Name tag
        orphan_filters = [
            {'Name': f"tag:{NAME_TAG_KEY}", 'Values': [f"{prefix}*"]},
            {'Name': 'instance-state-name', 'Values': AWS_LIVE_INSTANCE_STATES},
        ]
        for instance in self._describe_instances(orphan_filters):
            if instance.get('InstanceId') in seen:
                continue
            resource = self._instance_resource(instance, builder_owned=False)
            if resource.name.startswith(prefix):
                seen.add(resource.resource_id)
                yield resource

        for group in self._describe_security_groups():
            group_name = group.get('GroupName', '')
            if not group_name.startswith(AWS_BUILDER_ARTIFACT_PREFIX):
                continue
            yield CloudResource(
                provider=self.provider,
                kind=ResourceKind.SECURITY_GROUP,
                resource_id=group.get('GroupId', ''),
                name=group_name,
                region=self.region,
                builder_owned=True,
                tags=tags_to_dict(group.get('Tags', [])),
            )

        for key_pair in self._describe_key_pairs():
            key_name = key_pair.get('KeyName', '')
            if not key_name.startswith(AWS_BUILDER_ARTIFACT_PREFIX):
                continue
            yield CloudResource(
                provider=self.provider,
                kind=ResourceKind.KEY_PAIR,
                resource_id=key_pair.get('KeyPairId') or key_name,
                name=key_name,
                created_at=parse_timestamp(key_pair.get('CreateTime')),
                region=self.region,
                builder_owned=True,
                tags=tags_to_dict(key_pair.get('Tags', [])),
            )

        # Server-side wildcard, then an exact prefix recheck
        images = [
            image for image in self._describe_images([{'Name': 'name', 'Values': [f"{prefix}*"]}])
            if image.get('Name', '').startswith(prefix)
        ]
        for image in images:
            yield self._image_resource(image)

        # Snapshots backing the AMIs, listed after all images
        for image in images:
            for snapshot_id in _snapshot_ids(image):
                yield CloudResource(
                    provider=self.provider,
                    kind=ResourceKind.SNAPSHOT,
                    resource_id=snapshot_id,
                    name=image.get('Name', ''),
                    created_at=parse_timestamp(image.get('CreationDate')),
                    parent_refs=frozenset({image['ImageId']}),
                    region=self.region,
                )

    def _image_resource(self, image: Dict[str, Any]) -> CloudResource:
        return CloudResource(
            provider=self.provider,
            kind=ResourceKind.IMAGE,
            resource_id=image.get('ImageId', ''),
            name=image.get('Name', ''),
            created_at=parse_timestamp(image.get('CreationDate')),
            region=self.region,
            state=image.get('State'),
            tags=tags_to_dict(image.get('Tags', [])),
        )

    def find_images(self, name: str) -> List[CloudResource]:
        return [
            self._image_resource(image)
            for image in self._describe_images([{'Name': 'name', 'Values': [name]}])
            if image.get('Name') == name
        ]

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def delete(self, resource: CloudResource) -> None:
        try:
            if resource.kind == ResourceKind.INSTANCE:
                self.ec2.terminate_instances(InstanceIds=[resource.resource_id])
            elif resource.kind == ResourceKind.IMAGE:
                self.ec2.deregister_image(ImageId=resource.resource_id)
            elif resource.kind == ResourceKind.SNAPSHOT:
                self.ec2.delete_snapshot(SnapshotId=resource.resource_id)
            elif resource.kind == ResourceKind.SECURITY_GROUP:
                self.ec2.delete_security_group(GroupId=resource.resource_id)
            elif resource.kind == ResourceKind.KEY_PAIR:
                self.ec2.delete_key_pair(KeyName=resource.name)
            else:
                raise ValueError(f"Unsupported resource kind: {resource.kind.value}")
        except Exception as e:
            raise self._delete_failure(resource, e) from e


def _snapshot_ids(image: Dict[str, Any]) -> List[str]:
    """EBS snapshot ids referenced by an AMI's block device mappings."""
    snapshot_ids = []
    for mapping in image.get('BlockDeviceMappings', []):
        snapshot_id = mapping.get('Ebs', {}).get('SnapshotId')
        if snapshot_id and snapshot_id not in snapshot_ids:
            snapshot_ids.append(snapshot_id)
    return snapshot_ids
