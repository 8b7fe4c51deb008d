"""
Match policy: decides which enumerated resources the sweeper may delete.

A resource is eligible when its name, or the value of its Name tag, starts
with the configured prefix. Matching is case-sensitive and an empty prefix
matches nothing.

Builder-owned leftovers are matched independently of the prefix: instances
carrying the builder tag, and the packer_* security groups and key pairs
Packer creates for a build. Images and snapshots are only ever matched by
prefix.
"""
import logging
from typing import Iterable, List, Optional

from .constants import NAME_TAG_KEY
from .models import CloudResource, ResourceKind, RunConfig

logger = logging.getLogger(__name__)

BUILDER_MARKED_KINDS = frozenset({
    ResourceKind.INSTANCE,
    ResourceKind.SECURITY_GROUP,
    ResourceKind.KEY_PAIR,
})


def name_matches(value: Optional[str], prefix: str) -> bool:
    """True iff value starts with a non-empty prefix."""
    if not prefix or not value:
        return False
    return value.startswith(prefix)


def matches_prefix(resource: CloudResource, prefix: str) -> bool:
    """Match the resource name or its designated tag against the prefix."""
    return name_matches(resource.name, prefix) or name_matches(resource.tag(NAME_TAG_KEY), prefix)


def is_builder_owned(resource: CloudResource, run_config: RunConfig) -> bool:
    """Whether the resource carries the image builder's ownership marker."""
    if resource.kind not in BUILDER_MARKED_KINDS:
        return False
    if resource.builder_owned:
        return True
    return (
        resource.kind == ResourceKind.INSTANCE
        and resource.tag(run_config.builder_tag_key) == run_config.builder_tag_value
    )


def is_eligible(resource: CloudResource, run_config: RunConfig) -> bool:
    if is_builder_owned(resource, run_config):
        return True
    return matches_prefix(resource, run_config.prefix)


def select_eligible(resources: Iterable[CloudResource], run_config: RunConfig) -> List[CloudResource]:
    """Keep the resources the sweeper may delete, preserving enumeration order."""
    selected = []
    for resource in resources:
        if is_eligible(resource, run_config):
            selected.append(resource)
        else:
            logger.debug(f"Ignoring {resource.kind.value} {resource.label}: no prefix match")
    return selected


def select_builder_instances(resources: Iterable[CloudResource], run_config: RunConfig) -> List[CloudResource]:
    """Emergency path: only builder-owned instances, images and snapshots are never touched."""
    return [
        resource for resource in resources
        if resource.kind == ResourceKind.INSTANCE and is_builder_owned(resource, run_config)
    ]
