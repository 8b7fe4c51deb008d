"""
Action planner: turns matched resources into an ordered CleanupPlan.
"""
import logging
from typing import Iterable, List, Set, Tuple

from .models import KIND_ORDER, PROVIDER_ORDER, CleanupPlan, CloudResource

logger = logging.getLogger(__name__)


def _sort_key(indexed: Tuple[int, CloudResource]) -> Tuple[int, int, int]:
    position, resource = indexed
    return (
        PROVIDER_ORDER.index(resource.provider),
        KIND_ORDER.index(resource.kind),
        position,
    )


def build_plan(resources: Iterable[CloudResource]) -> CleanupPlan:
    """
    Group resources by provider, then by kind in KIND_ORDER.

    Within a kind, enumeration order is kept. Snapshots always follow the
    images of the same provider, so an image's delete call is attempted
    before any snapshot that references it. Duplicates are planned once.
    """
    seen: Set[Tuple[str, str, str]] = set()
    unique: List[CloudResource] = []

    for resource in resources:
        key = (resource.provider.value, resource.kind.value, resource.resource_id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(resource)

    ordered = [resource for _, resource in sorted(enumerate(unique), key=_sort_key)]

    for resource in ordered:
        logger.debug(f"Planned {resource.provider.value} {resource.kind.value} {resource.label}")

    return CleanupPlan(tuple(ordered))


def check_ordering(plan: CleanupPlan) -> List[str]:
    """
    Return the ids of dependents planned before one of their parents.

    An empty list means every snapshot follows the images it references.
    """
    position = {resource.resource_id: index for index, resource in enumerate(plan)}
    misplaced = []
    for index, resource in enumerate(plan):
        for parent in resource.parent_refs:
            if parent in position and position[parent] > index:
                misplaced.append(resource.resource_id)
                break
    return misplaced
